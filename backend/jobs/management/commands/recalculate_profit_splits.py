from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from jobs.costs import aggregate_costs, calculate_profit_split, to_decimal
from jobs.exceptions import NegativeMarginError
from jobs.models import Job, ProfitSplit
from jobs.services import recompute_profit_split


class Command(BaseCommand):
    help = "Recompute cached profit splits for live jobs, leaving overridden splits alone."

    def add_arguments(self, parser):
        parser.add_argument(
            "--job",
            type=int,
            action="append",
            dest="job_ids",
            help="Only recompute this job id. Repeatable.",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report the splits that would be written without saving them.",
        )

    def handle(self, *args, **options):
        dry_run = bool(options["dry_run"])
        job_ids = options.get("job_ids") or []

        jobs = Job.objects.active().order_by("id")
        if job_ids:
            jobs = jobs.filter(id__in=job_ids)
            missing = sorted(set(job_ids) - set(jobs.values_list("id", flat=True)))
            if missing:
                raise CommandError(f"Unknown or deleted job id(s): {', '.join(map(str, missing))}.")

        overridden_ids = set(
            ProfitSplit.objects.filter(is_overridden=True).values_list("job_id", flat=True)
        )
        updated = 0
        skipped = 0
        negative: list[str] = []

        for job in jobs.iterator():
            if job.id in overridden_ids:
                skipped += 1
                self.stdout.write(f"skip job={job.job_number} reason=overridden")
                continue

            if dry_run:
                if to_decimal(job.sell_price) <= 0:
                    skipped += 1
                    self.stdout.write(f"skip job={job.job_number} reason=unpriced")
                    continue
                breakdown = aggregate_costs(job.purchase_orders.all())
                result = calculate_profit_split(
                    sell_price=job.sell_price,
                    total_cost=breakdown.total_cost,
                    paper_markup=breakdown.paper_markup,
                    routing_type=job.routing_type,
                )
                self.stdout.write(
                    f"[dry-run] job={job.job_number} sell={result.sell_price} "
                    f"cost={result.total_cost} margin={result.gross_margin} "
                    f"intermediary={result.intermediary_share} buyer={result.buyer_share}"
                )
                if result.is_negative_margin:
                    negative.append(job.job_number)
                continue

            try:
                outcome = recompute_profit_split(job.id)
            except NegativeMarginError as exc:
                negative.append(job.job_number)
                self.stdout.write(
                    self.style.WARNING(
                        f"negative job={job.job_number} margin={exc.extra.get('gross_margin')}"
                    )
                )
                continue
            if outcome.skipped:
                skipped += 1
                self.stdout.write(f"skip job={job.job_number} reason={outcome.skipped_reason}")
            else:
                updated += 1

        if negative:
            self.stdout.write(
                self.style.WARNING(f"Negative margin on: {', '.join(negative)}")
            )
        if dry_run:
            self.stdout.write(self.style.WARNING("Dry run complete: nothing was written."))
            return
        self.stdout.write(
            self.style.SUCCESS(
                f"Recomputed {updated} split(s); skipped {skipped}; {len(negative)} negative margin."
            )
        )
