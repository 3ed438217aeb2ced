from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Iterable

from django.db import transaction

from .audit import record_job_event
from .constants import INACTIVE_PO_STATUSES, CompanyId, Pathway, RoutingType
from .costs import is_cost_bearing
from .locks import lock_job
from .models import Job, PurchaseOrder

logger = logging.getLogger("printbroker.pathway")


@dataclass(frozen=True)
class ClassificationResult:
    job_id: int
    pathway: str
    vendor_count: int
    previous_pathway: str
    previous_vendor_count: int
    inconsistency: str | None = None

    @property
    def changed(self) -> bool:
        return (
            self.pathway != self.previous_pathway
            or self.vendor_count != self.previous_vendor_count
        )


def _po_value(po: Any, name: str) -> Any:
    if isinstance(po, dict):
        return po.get(name)
    return getattr(po, name, None)


def count_active_vendors(purchase_orders: Iterable[Any]) -> int:
    """Distinct vendors on cost-bearing, still-active vendor orders.

    Always derived from the current rows, never kept as a running tally.
    """
    vendor_ids = set()
    for po in purchase_orders:
        vendor_id = _po_value(po, "target_vendor_id")
        if not vendor_id or not is_cost_bearing(po):
            continue
        if _po_value(po, "status") in INACTIVE_PO_STATUSES:
            continue
        vendor_ids.add(vendor_id)
    return len(vendor_ids)


def active_vendor_count_for_job(job_id: int) -> int:
    return (
        PurchaseOrder.objects.filter(
            job_id=job_id,
            origin_company=CompanyId.BUYER,
            target_vendor__isnull=False,
        )
        .exclude(status__in=INACTIVE_PO_STATUSES)
        .values("target_vendor_id")
        .distinct()
        .count()
    )


def classify_pathway(
    *,
    routing_type: str,
    current_pathway: str | None,
    vendor_count: int,
) -> tuple[str, str | None]:
    """Return ``(pathway, inconsistency)``.

    Partner-mediated routing is P1 regardless of vendors. A job sitting on P1
    without partner routing keeps P1 and is reported, not repaired.
    """
    if routing_type == RoutingType.PARTNER_MEDIATED:
        return Pathway.P1, None
    if current_pathway == Pathway.P1:
        return Pathway.P1, (
            f"Job is on pathway P1 but routing type is '{routing_type}'; "
            "left unchanged for manual review."
        )
    if vendor_count > 1:
        return Pathway.P3, None
    return Pathway.P2, None


def apply_classification(job: Job, *, actor=None) -> ClassificationResult:
    """Recompute pathway and vendor count for a job row the caller has locked."""
    previous_pathway = job.pathway
    previous_vendor_count = job.vendor_count
    vendor_count = active_vendor_count_for_job(job.id)
    pathway, inconsistency = classify_pathway(
        routing_type=job.routing_type,
        current_pathway=previous_pathway,
        vendor_count=vendor_count,
    )
    result = ClassificationResult(
        job_id=job.id,
        pathway=pathway,
        vendor_count=vendor_count,
        previous_pathway=previous_pathway,
        previous_vendor_count=previous_vendor_count,
        inconsistency=inconsistency,
    )

    if result.changed:
        job.pathway = pathway
        job.vendor_count = vendor_count
        job.save(update_fields=["pathway", "vendor_count", "updated_at"])
    if pathway != previous_pathway:
        logger.info(f"Job {job.id} pathway {previous_pathway} -> {pathway} ({vendor_count} vendors)")
        record_job_event(
            action="job.pathway_changed",
            message=f"Pathway changed from {previous_pathway} to {pathway}.",
            job=job,
            actor=actor,
            metadata={
                "previous_pathway": previous_pathway,
                "pathway": pathway,
                "vendor_count": vendor_count,
            },
        )
    if inconsistency:
        logger.warning(f"Job {job.id}: {inconsistency}")
        record_job_event(
            action="job.pathway_inconsistent",
            message=inconsistency,
            job=job,
            actor=actor,
            metadata={
                "pathway": pathway,
                "routing_type": job.routing_type,
                "vendor_count": vendor_count,
            },
        )
    return result


def reclassify_pathway(job_id: int, *, actor=None) -> ClassificationResult:
    with transaction.atomic():
        job = lock_job(job_id)
        return apply_classification(job, actor=actor)
