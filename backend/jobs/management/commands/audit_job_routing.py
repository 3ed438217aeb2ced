from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from jobs.constants import INACTIVE_PO_STATUSES, CompanyId
from jobs.models import Job, PurchaseOrder
from jobs.pathway import active_vendor_count_for_job, classify_pathway


class Command(BaseCommand):
    help = (
        "Report pathway/routing inconsistencies, stale vendor counts and vendor "
        "purchase orders still waiting for an execution id. Read only."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--fail-on-issues",
            action="store_true",
            help="Exit with an error when any issue is found.",
        )

    def handle(self, *args, **options):
        issues = 0
        for job in Job.objects.active().order_by("id").iterator():
            vendor_count = active_vendor_count_for_job(job.id)
            expected, inconsistency = classify_pathway(
                routing_type=job.routing_type,
                current_pathway=job.pathway,
                vendor_count=vendor_count,
            )
            if inconsistency:
                issues += 1
                self.stdout.write(f"inconsistent job={job.job_number}: {inconsistency}")
            if job.vendor_count != vendor_count:
                issues += 1
                self.stdout.write(
                    f"stale-count job={job.job_number} stored={job.vendor_count} "
                    f"actual={vendor_count}"
                )
            if expected != job.pathway:
                issues += 1
                self.stdout.write(
                    f"stale-pathway job={job.job_number} stored={job.pathway} expected={expected}"
                )

        unfinalized = (
            PurchaseOrder.objects.filter(
                job__deleted_at__isnull=True,
                origin_company=CompanyId.BUYER,
                target_vendor__isnull=False,
                execution_id__isnull=True,
            )
            .exclude(status__in=INACTIVE_PO_STATUSES)
            .select_related("job")
            .order_by("job_id", "id")
        )
        for purchase_order in unfinalized:
            issues += 1
            self.stdout.write(
                f"unfinalized po={purchase_order.po_number} job={purchase_order.job.job_number}"
            )

        if issues and options["fail_on_issues"]:
            raise CommandError(f"{issues} routing issue(s) found.")
        style = self.style.WARNING if issues else self.style.SUCCESS
        self.stdout.write(style(f"Routing audit complete: {issues} issue(s)."))
