from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Any

from django.db import transaction
from django.utils import timezone

from vendors.models import Vendor

from .audit import record_job_event
from .constants import (
    FINANCIALLY_LOCKED_FIELDS,
    INACTIVE_PO_STATUSES,
    CompanyId,
    JobMetaType,
    Pathway,
    PurchaseOrderKind,
    PurchaseOrderStatus,
    RoutingType,
)
from .costs import (
    NEGATIVE_SHARE_WARNING,
    SplitResult,
    aggregate_costs,
    calculate_paper_markup,
    calculate_profit_split,
    round2,
    to_decimal,
)
from .exceptions import (
    BrokerValidationError,
    ExecutionIdLockedError,
    FinancialLockError,
    InvalidPurchaseOrderError,
    NegativeMarginError,
)
from .identifiers import mint_base_job_id, next_job_number
from .locks import job_id_for_purchase_order, lock_job, lock_purchase_order
from .mailing import detect_mailing_type
from .models import Job, ProfitSplit, PurchaseOrder, generate_po_number
from .pathway import apply_classification
from .readiness import calculate_readiness, determine_initial_qc_flags, refresh_readiness

logger = logging.getLogger("printbroker.services")

JOB_WRITABLE_FIELDS = frozenset(
    {
        "title",
        "customer_name",
        "notes",
        "specs",
        "job_meta_type",
        "mail_format",
        "envelope_components",
        "job_type",
        "routing_type",
        "sell_price",
        "quantity",
        "size_name",
        "paper_source",
        "mailing_vendor",
        "match_type",
        "mail_date",
        "in_homes_date",
    }
)
MAILING_SIGNAL_FIELDS = frozenset(
    {"mailing_vendor", "match_type", "mail_date", "in_homes_date", "specs", "notes"}
)
PO_WRITABLE_FIELDS = frozenset(
    {
        "target_vendor",
        "buy_cost",
        "paper_cost",
        "paper_markup",
        "mfg_cost",
        "description",
        "vendor_ref",
        "status",
    }
)
PO_COST_FIELDS = frozenset({"buy_cost", "paper_cost", "paper_markup", "mfg_cost"})
THOUSAND = Decimal("1000")


def _money(value) -> str | None:
    return None if value is None else str(value)


def _reject_unknown_fields(changes: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise BrokerValidationError(
            f"Fields cannot be written here: {', '.join(unknown)}.",
            code="unknown_fields",
            extra={"fields": unknown},
        )


def initial_pathway(routing_type: str) -> str:
    return Pathway.P1 if routing_type == RoutingType.PARTNER_MEDIATED else Pathway.P2


def create_job(*, title: str, actor=None, **fields) -> Job:
    _reject_unknown_fields(fields, JOB_WRITABLE_FIELDS - {"title"})
    data = dict(fields)
    if not data.get("job_meta_type"):
        detection = detect_mailing_type({"title": title, **data})
        if detection.is_mailing:
            data["job_meta_type"] = JobMetaType.MAILING
            data.setdefault("mail_format", detection.suggested_format)
            if detection.envelope_components and not data.get("envelope_components"):
                data["envelope_components"] = detection.envelope_components
        else:
            data["job_meta_type"] = JobMetaType.PRINT

    with transaction.atomic():
        job = Job(
            title=title,
            created_by=actor if getattr(actor, "is_authenticated", False) else None,
            **data,
        )
        job.job_number = next_job_number()
        job.base_job_id = mint_base_job_id(job)
        job.pathway = initial_pathway(job.routing_type)
        job.vendor_count = 0
        for field_name, value in determine_initial_qc_flags(job).items():
            setattr(job, field_name, value)
        readiness = calculate_readiness(job)
        job.readiness_status = readiness.status
        job.readiness_calculated_at = timezone.now()
        job.save()
        record_job_event(
            action="job.created",
            message=f"Job {job.job_number} created as {job.base_job_id}.",
            job=job,
            actor=actor,
            metadata={
                "job_number": job.job_number,
                "base_job_id": job.base_job_id,
                "pathway": job.pathway,
            },
        )
    logger.info(f"Created job {job.job_number} ({job.base_job_id}) on {job.pathway}")
    return job


def create_jobs(batch: list[dict[str, Any]], *, actor=None) -> list[Job]:
    """Create several jobs in one transaction; any failure creates none."""
    with transaction.atomic():
        return [create_job(actor=actor, **dict(item)) for item in batch]


@dataclass(frozen=True)
class SplitOutcome:
    split: ProfitSplit | None
    result: SplitResult | None
    skipped_reason: str | None = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


def _recompute_locked(job: Job, *, allow_negative_margin: bool = False, actor=None) -> SplitOutcome:
    split = ProfitSplit.objects.select_for_update().filter(job=job).first()
    if split is not None and split.is_overridden:
        logger.info(f"Job {job.id}: profit split is overridden, automatic recompute skipped")
        return SplitOutcome(split=split, result=None, skipped_reason="overridden")

    breakdown = aggregate_costs(job.purchase_orders.all())
    sell_price = to_decimal(job.sell_price)
    if sell_price <= 0:
        if split is not None:
            split.delete()
        return SplitOutcome(split=None, result=None, skipped_reason="unpriced")

    result = calculate_profit_split(
        sell_price=sell_price,
        total_cost=breakdown.total_cost,
        paper_markup=breakdown.paper_markup,
        routing_type=job.routing_type,
    )
    if result.is_negative_margin and not allow_negative_margin:
        raise NegativeMarginError(
            extra={
                "job_id": job.id,
                "sell_price": str(result.sell_price),
                "total_cost": str(result.total_cost),
                "gross_margin": str(result.gross_margin),
            }
        )

    split, _ = ProfitSplit.objects.update_or_create(
        job=job,
        defaults={
            "routing_type": job.routing_type,
            "sell_price": result.sell_price,
            "total_cost": result.total_cost,
            "paper_cost": breakdown.paper_cost,
            "paper_markup": result.paper_markup,
            "gross_margin": result.gross_margin,
            "intermediary_share": result.intermediary_share,
            "buyer_share": result.buyer_share,
            "margin_percent": result.margin_percent,
            "po_count": breakdown.po_count,
            "warnings": result.warnings,
            "calculated_at": timezone.now(),
        },
    )
    if result.is_negative_margin:
        logger.warning(f"Job {job.id}: negative margin {result.gross_margin} accepted by override")
        record_job_event(
            action="split.negative_margin_accepted",
            message=f"Negative margin {result.gross_margin} persisted by explicit override.",
            job=job,
            actor=actor,
            metadata={"gross_margin": str(result.gross_margin)},
        )
    return SplitOutcome(split=split, result=result)


def recompute_profit_split(
    job_id: int, *, allow_negative_margin: bool = False, actor=None
) -> SplitOutcome:
    with transaction.atomic():
        job = lock_job(job_id)
        return _recompute_locked(job, allow_negative_margin=allow_negative_margin, actor=actor)


def override_profit_split(
    job_id: int,
    *,
    intermediary_share,
    buyer_share,
    reason: str,
    actor=None,
) -> ProfitSplit:
    reason = (reason or "").strip()
    if not reason:
        raise BrokerValidationError("An override needs a reason.", code="override_reason_required")
    with transaction.atomic():
        job = lock_job(job_id)
        breakdown = aggregate_costs(job.purchase_orders.all())
        # Margin figures come from the automatic calculation; only the shares are manual.
        computed = calculate_profit_split(
            sell_price=job.sell_price,
            total_cost=breakdown.total_cost,
            paper_markup=breakdown.paper_markup,
            routing_type=job.routing_type,
        )
        intermediary_share = round2(to_decimal(intermediary_share))
        buyer_share = round2(to_decimal(buyer_share))
        warnings = [text for text in computed.warnings if text != NEGATIVE_SHARE_WARNING]
        if intermediary_share < 0:
            warnings.append(NEGATIVE_SHARE_WARNING)
        split, _ = ProfitSplit.objects.update_or_create(
            job=job,
            defaults={
                "routing_type": job.routing_type,
                "sell_price": computed.sell_price,
                "total_cost": computed.total_cost,
                "paper_cost": breakdown.paper_cost,
                "paper_markup": computed.paper_markup,
                "gross_margin": computed.gross_margin,
                "intermediary_share": intermediary_share,
                "buyer_share": buyer_share,
                "margin_percent": computed.margin_percent,
                "warnings": warnings,
                "po_count": breakdown.po_count,
                "is_overridden": True,
                "override_reason": reason,
                "overridden_by": actor if getattr(actor, "is_authenticated", False) else None,
                "overridden_at": timezone.now(),
                "calculated_at": timezone.now(),
            },
        )
        record_job_event(
            action="split.overridden",
            message=f"Profit split overridden: {reason}",
            job=job,
            actor=actor,
            metadata={
                "intermediary_share": str(split.intermediary_share),
                "buyer_share": str(split.buyer_share),
            },
        )
    return split


def clear_profit_split_override(
    job_id: int, *, allow_negative_margin: bool = False, actor=None
) -> SplitOutcome:
    with transaction.atomic():
        job = lock_job(job_id)
        updated = ProfitSplit.objects.filter(job=job, is_overridden=True).update(
            is_overridden=False,
            override_reason="",
            overridden_by=None,
            overridden_at=None,
            updated_at=timezone.now(),
        )
        if updated:
            record_job_event(
                action="split.override_cleared",
                message="Profit split override cleared.",
                job=job,
                actor=actor,
            )
        return _recompute_locked(job, allow_negative_margin=allow_negative_margin, actor=actor)


def update_job(
    job_id: int,
    changes: dict[str, Any],
    *,
    actor=None,
    allow_negative_margin: bool = False,
) -> Job:
    _reject_unknown_fields(changes, JOB_WRITABLE_FIELDS)
    with transaction.atomic():
        job = lock_job(job_id)
        changed = sorted(
            field_name for field_name, value in changes.items() if getattr(job, field_name) != value
        )
        if not changed:
            return job
        locked = [field_name for field_name in changed if field_name in FINANCIALLY_LOCKED_FIELDS]
        if locked and job.is_financially_locked:
            raise FinancialLockError(extra={"job_id": job.id, "fields": locked})

        for field_name in changed:
            setattr(job, field_name, changes[field_name])
        job.save(update_fields=[*changed, "updated_at"])
        record_job_event(
            action="job.updated",
            message=f"Job fields updated: {', '.join(changed)}.",
            job=job,
            actor=actor,
            metadata={"fields": changed},
        )

        if "routing_type" in changed:
            apply_classification(job, actor=actor)
        if {"sell_price", "routing_type"} & set(changed):
            _recompute_locked(job, allow_negative_margin=allow_negative_margin, actor=actor)
        if MAILING_SIGNAL_FIELDS & set(changed):
            refresh_readiness(job)
    return job


def mark_invoice_generated(job_id: int, *, actor=None) -> Job:
    with transaction.atomic():
        job = lock_job(job_id)
        if job.invoice_generated_at is None:
            job.invoice_generated_at = timezone.now()
            job.save(update_fields=["invoice_generated_at", "updated_at"])
            record_job_event(
                action="job.invoiced",
                message="Invoice generated; price, quantity and specs are now locked.",
                job=job,
                actor=actor,
            )
    return job


def soft_delete_job(job_id: int, *, actor=None) -> Job:
    with transaction.atomic():
        job = lock_job(job_id)
        job.deleted_at = timezone.now()
        job.save(update_fields=["deleted_at", "updated_at"])
        record_job_event(
            action="job.deleted",
            message=f"Job {job.job_number} soft-deleted.",
            job=job,
            actor=actor,
        )
    return job


def _per_thousand(amount, quantity: int) -> Decimal | None:
    if amount is None or not quantity:
        return None
    return (to_decimal(amount) / Decimal(quantity) * THOUSAND).quantize(Decimal("0.0001"))


def _refresh_rates(purchase_order: PurchaseOrder, quantity: int) -> None:
    if purchase_order.buy_cost is None:
        purchase_order.print_cpm = None
    else:
        print_cost = (
            to_decimal(purchase_order.buy_cost)
            - to_decimal(purchase_order.paper_cost)
            - to_decimal(purchase_order.paper_markup)
        )
        purchase_order.print_cpm = _per_thousand(print_cost, quantity)
    purchase_order.paper_cpm = _per_thousand(purchase_order.paper_cost, quantity)


def _resolve_vendor(value) -> Vendor | None:
    if value is None or isinstance(value, Vendor):
        return value
    try:
        return Vendor.objects.get(id=value)
    except Vendor.DoesNotExist as exc:
        raise InvalidPurchaseOrderError("Vendor not found.", extra={"vendor_id": value}) from exc


def _affects_vendor_count(purchase_order: PurchaseOrder) -> bool:
    return purchase_order.is_vendor_facing and purchase_order.is_cost_bearing


def create_purchase_order(
    job_id: int,
    *,
    kind: str,
    target_vendor=None,
    buy_cost=None,
    paper_cost=None,
    paper_markup=None,
    mfg_cost=None,
    description: str = "",
    vendor_ref: str = "",
    status: str = PurchaseOrderStatus.PENDING,
    actor=None,
    allow_negative_margin: bool = False,
) -> PurchaseOrder:
    """Create a purchase order. Execution ids are assigned later, on finalize."""
    vendor = _resolve_vendor(target_vendor)
    if kind == PurchaseOrderKind.VENDOR:
        if vendor is None:
            raise InvalidPurchaseOrderError("Vendor purchase orders need a target vendor.")
        if not vendor.is_active:
            raise InvalidPurchaseOrderError(
                "Vendor is inactive.", extra={"vendor_id": vendor.id}
            )
        routing = {"origin_company": CompanyId.BUYER, "target_vendor": vendor}
    elif kind == PurchaseOrderKind.PARTNER:
        routing = {"origin_company": CompanyId.BUYER, "target_company": CompanyId.PARTNER}
    elif kind == PurchaseOrderKind.INTERNAL:
        routing = {"origin_company": CompanyId.PARTNER, "target_company": CompanyId.PRODUCER}
    else:
        raise InvalidPurchaseOrderError(
            f"Unknown purchase order kind '{kind}'.",
            extra={"allowed": list(PurchaseOrderKind.values)},
        )
    if kind != PurchaseOrderKind.VENDOR and vendor is not None:
        raise InvalidPurchaseOrderError("Only vendor purchase orders target a vendor.")
    if status not in PurchaseOrderStatus.values:
        raise InvalidPurchaseOrderError(f"Unknown status '{status}'.")

    if paper_markup is None and paper_cost is not None and kind == PurchaseOrderKind.PARTNER:
        paper_markup = calculate_paper_markup(paper_cost)

    with transaction.atomic():
        job = lock_job(job_id)
        purchase_order = PurchaseOrder(
            job=job,
            po_number=generate_po_number(kind),
            buy_cost=buy_cost,
            paper_cost=paper_cost,
            paper_markup=paper_markup,
            mfg_cost=mfg_cost,
            description=description,
            vendor_ref=vendor_ref,
            status=status,
            created_by=actor if getattr(actor, "is_authenticated", False) else None,
            **routing,
        )
        _refresh_rates(purchase_order, job.quantity)
        purchase_order.save()
        record_job_event(
            action="po.created",
            message=f"Purchase order {purchase_order.po_number} created.",
            job=job,
            purchase_order=purchase_order,
            actor=actor,
            metadata={
                "kind": kind,
                "vendor_id": vendor.id if vendor else None,
                "buy_cost": _money(purchase_order.buy_cost),
            },
        )
        if _affects_vendor_count(purchase_order):
            apply_classification(job, actor=actor)
        if purchase_order.is_cost_bearing:
            _recompute_locked(job, allow_negative_margin=allow_negative_margin, actor=actor)
    return purchase_order


def update_purchase_order(
    po_id: int,
    changes: dict[str, Any],
    *,
    actor=None,
    allow_negative_margin: bool = False,
) -> PurchaseOrder:
    _reject_unknown_fields(changes, PO_WRITABLE_FIELDS)
    changes = dict(changes)
    if "target_vendor" in changes:
        changes["target_vendor"] = _resolve_vendor(changes["target_vendor"])
    if "status" in changes and changes["status"] not in PurchaseOrderStatus.values:
        raise InvalidPurchaseOrderError(f"Unknown status '{changes['status']}'.")

    with transaction.atomic():
        job = lock_job(job_id_for_purchase_order(po_id))
        purchase_order = lock_purchase_order(po_id)
        changed = sorted(
            field_name
            for field_name, value in changes.items()
            if getattr(purchase_order, field_name) != value
        )
        if not changed:
            return purchase_order

        if "target_vendor" in changed:
            if purchase_order.execution_id:
                raise ExecutionIdLockedError(
                    extra={
                        "purchase_order_id": purchase_order.id,
                        "execution_id": purchase_order.execution_id,
                    }
                )
            if not purchase_order.is_vendor_facing or changes["target_vendor"] is None:
                raise InvalidPurchaseOrderError(
                    "Only vendor purchase orders can be re-targeted to another vendor."
                )

        was_active = purchase_order.status not in INACTIVE_PO_STATUSES
        for field_name in changed:
            setattr(purchase_order, field_name, changes[field_name])
        update_fields = [*changed, "updated_at"]
        if "status" in changed:
            now = timezone.now()
            if purchase_order.status == PurchaseOrderStatus.ISSUED and not purchase_order.issued_at:
                purchase_order.issued_at = now
                update_fields.append("issued_at")
            if purchase_order.status == PurchaseOrderStatus.PAID and not purchase_order.paid_at:
                purchase_order.paid_at = now
                update_fields.append("paid_at")
        if PO_COST_FIELDS & set(changed):
            _refresh_rates(purchase_order, job.quantity)
            update_fields.extend(["print_cpm", "paper_cpm"])
        purchase_order.save(update_fields=update_fields)
        record_job_event(
            action="po.updated",
            message=f"Purchase order {purchase_order.po_number} updated: {', '.join(changed)}.",
            job=job,
            purchase_order=purchase_order,
            actor=actor,
            metadata={"fields": changed},
        )

        is_active = purchase_order.status not in INACTIVE_PO_STATUSES
        if _affects_vendor_count(purchase_order) and (
            "target_vendor" in changed or was_active != is_active
        ):
            apply_classification(job, actor=actor)
        if purchase_order.is_cost_bearing and PO_COST_FIELDS & set(changed):
            _recompute_locked(job, allow_negative_margin=allow_negative_margin, actor=actor)
    return purchase_order


def delete_purchase_order(
    po_id: int, *, actor=None, allow_negative_margin: bool = False
) -> None:
    with transaction.atomic():
        job = lock_job(job_id_for_purchase_order(po_id))
        purchase_order = lock_purchase_order(po_id)
        if job.is_financially_locked:
            raise FinancialLockError(
                "Job is invoiced; purchase orders can no longer be deleted.",
                extra={"job_id": job.id, "purchase_order_id": purchase_order.id},
            )
        if purchase_order.execution_id:
            raise ExecutionIdLockedError(
                "Finalized purchase orders cannot be deleted; cancel them instead.",
                extra={
                    "purchase_order_id": purchase_order.id,
                    "execution_id": purchase_order.execution_id,
                },
            )
        affects_vendor_count = _affects_vendor_count(purchase_order)
        cost_bearing = purchase_order.is_cost_bearing
        po_number = purchase_order.po_number
        deleted_id = purchase_order.id
        purchase_order.delete()
        record_job_event(
            action="po.deleted",
            message=f"Purchase order {po_number} deleted.",
            job=job,
            actor=actor,
            metadata={"purchase_order_id": deleted_id, "po_number": po_number},
        )
        if affects_vendor_count:
            apply_classification(job, actor=actor)
        if cost_bearing:
            _recompute_locked(job, allow_negative_margin=allow_negative_margin, actor=actor)
