"""Change orders: versioned spec deltas attached to a job.

A change order never rewrites ``Job.specs``. Approved deltas are merged over
the base specs in version order to give the effective job state, which is how
an invoiced job's specs are amended without breaking its financial lock.

Lifecycle: draft -> pending_approval -> approved | rejected. Only drafts can
be edited or deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from django.db import transaction
from django.db.models import Max
from django.utils import timezone

from .audit import record_job_event
from .constants import ChangeOrderStatus
from .exceptions import (
    BrokerValidationError,
    ChangeOrderStateError,
    JobNotFoundError,
    MissingBaseJobIdError,
)
from .identifiers import format_change_order_id
from .locks import lock_change_order, lock_job
from .models import ChangeOrder, Job

logger = logging.getLogger("printbroker.change_orders")

CHANGE_ORDER_WRITABLE_FIELDS = frozenset(
    {"summary", "changes", "affects_vendors", "requires_new_po", "requires_reprice"}
)


def _clean_summary(summary: str | None) -> str:
    summary = (summary or "").strip()
    if not summary:
        raise BrokerValidationError("A change order needs a summary.", code="summary_required")
    return summary


def _require_status(change_order: ChangeOrder, expected: str, verb: str) -> None:
    if change_order.status != expected:
        raise ChangeOrderStateError(
            f"Cannot {verb} change order with status {change_order.status}; "
            f"only {expected} change orders allow it.",
            extra={"change_order_id": change_order.id, "status": change_order.status},
        )


def next_change_order_version(job: Job) -> int:
    current = ChangeOrder.objects.filter(job=job).aggregate(top=Max("version"))["top"]
    return (current or 0) + 1


def create_change_order(
    job_id: int,
    *,
    summary: str,
    changes: dict[str, Any] | None = None,
    affects_vendors: list[Any] | None = None,
    requires_new_po: bool = False,
    requires_reprice: bool = False,
    actor=None,
) -> ChangeOrder:
    summary = _clean_summary(summary)
    with transaction.atomic():
        job = lock_job(job_id)
        if not job.base_job_id:
            raise MissingBaseJobIdError(
                "Job has no base job id; change order numbers cannot be generated.",
                extra={"job_id": job.id},
            )
        version = next_change_order_version(job)
        change_order = ChangeOrder.objects.create(
            job=job,
            change_order_no=format_change_order_id(job.base_job_id, version),
            version=version,
            summary=summary,
            changes=changes or {},
            affects_vendors=affects_vendors or [],
            requires_new_po=requires_new_po,
            requires_reprice=requires_reprice,
            created_by=actor if getattr(actor, "is_authenticated", False) else None,
        )
        record_job_event(
            action="change_order.created",
            message=f"Change order {change_order.change_order_no} drafted.",
            job=job,
            actor=actor,
            metadata={"change_order_id": change_order.id, "version": version},
        )
    logger.info(f"Job {job_id}: change order {change_order.change_order_no} drafted")
    return change_order


def update_change_order(
    change_order_id: int, changes: dict[str, Any], *, actor=None
) -> ChangeOrder:
    unknown = sorted(set(changes) - CHANGE_ORDER_WRITABLE_FIELDS)
    if unknown:
        raise BrokerValidationError(
            f"Fields cannot be written here: {', '.join(unknown)}.",
            code="unknown_fields",
            extra={"fields": unknown},
        )
    if "summary" in changes:
        changes = {**changes, "summary": _clean_summary(changes["summary"])}
    with transaction.atomic():
        job, change_order = lock_change_order(change_order_id)
        _require_status(change_order, ChangeOrderStatus.DRAFT, "update")
        for name, value in changes.items():
            setattr(change_order, name, value)
        change_order.save(update_fields=[*changes, "updated_at"])
        record_job_event(
            action="change_order.updated",
            message=f"Change order {change_order.change_order_no} edited.",
            job=job,
            actor=actor,
            metadata={"change_order_id": change_order.id, "fields": sorted(changes)},
        )
    return change_order


def delete_change_order(change_order_id: int, *, actor=None) -> None:
    with transaction.atomic():
        job, change_order = lock_change_order(change_order_id)
        _require_status(change_order, ChangeOrderStatus.DRAFT, "delete")
        change_order_no = change_order.change_order_no
        change_order.delete()
        record_job_event(
            action="change_order.deleted",
            message=f"Draft change order {change_order_no} deleted.",
            job=job,
            actor=actor,
            metadata={"change_order_no": change_order_no},
        )


def submit_change_order(change_order_id: int, *, actor=None) -> ChangeOrder:
    with transaction.atomic():
        job, change_order = lock_change_order(change_order_id)
        _require_status(change_order, ChangeOrderStatus.DRAFT, "submit")
        change_order.status = ChangeOrderStatus.PENDING_APPROVAL
        change_order.save(update_fields=["status", "updated_at"])
        record_job_event(
            action="change_order.submitted",
            message=f"Change order {change_order.change_order_no} submitted for approval.",
            job=job,
            actor=actor,
            metadata={"change_order_id": change_order.id},
        )
    return change_order


def approve_change_order(change_order_id: int, *, actor=None) -> ChangeOrder:
    """Approve a pending change order and advance the job's effective version.

    The effective version only moves forward, so approving an older pending
    order after a newer one leaves the newer one in force.
    """
    with transaction.atomic():
        job, change_order = lock_change_order(change_order_id)
        _require_status(change_order, ChangeOrderStatus.PENDING_APPROVAL, "approve")
        change_order.status = ChangeOrderStatus.APPROVED
        change_order.approved_at = timezone.now()
        change_order.approved_by = actor if getattr(actor, "is_authenticated", False) else None
        change_order.save(update_fields=["status", "approved_at", "approved_by", "updated_at"])

        if (job.effective_change_order_version or 0) < change_order.version:
            job.effective_change_order_version = change_order.version
            job.save(update_fields=["effective_change_order_version", "updated_at"])
        record_job_event(
            action="change_order.approved",
            message=f"Change order {change_order.change_order_no} approved.",
            job=job,
            actor=actor,
            metadata={
                "change_order_id": change_order.id,
                "version": change_order.version,
                "requires_reprice": change_order.requires_reprice,
            },
        )
    logger.info(f"Job {job.id}: change order {change_order.change_order_no} approved")
    return change_order


def reject_change_order(change_order_id: int, *, reason: str = "", actor=None) -> ChangeOrder:
    with transaction.atomic():
        job, change_order = lock_change_order(change_order_id)
        _require_status(change_order, ChangeOrderStatus.PENDING_APPROVAL, "reject")
        change_order.status = ChangeOrderStatus.REJECTED
        change_order.rejection_reason = (reason or "").strip()
        change_order.save(update_fields=["status", "rejection_reason", "updated_at"])
        record_job_event(
            action="change_order.rejected",
            message=f"Change order {change_order.change_order_no} rejected.",
            job=job,
            actor=actor,
            metadata={"change_order_id": change_order.id, "reason": change_order.rejection_reason},
        )
    return change_order


@dataclass(frozen=True)
class EffectiveJobState:
    job: Job
    base_specs: dict[str, Any]
    effective_specs: dict[str, Any]
    latest_approved: ChangeOrder | None
    applied_count: int


def effective_job_state(job_id: int) -> EffectiveJobState:
    try:
        job = Job.objects.active().get(id=job_id)
    except Job.DoesNotExist as exc:
        raise JobNotFoundError(extra={"job_id": job_id}) from exc

    approved = list(
        job.change_orders.filter(status=ChangeOrderStatus.APPROVED).order_by("version")
    )
    base_specs = dict(job.specs or {})
    effective_specs = dict(base_specs)
    for change_order in approved:
        effective_specs.update(change_order.changes or {})
    return EffectiveJobState(
        job=job,
        base_specs=base_specs,
        effective_specs=effective_specs,
        latest_approved=approved[-1] if approved else None,
        applied_count=len(approved),
    )
