from __future__ import annotations

from typing import Any

from .models import Job, JobAuditLog, PurchaseOrder


def record_job_event(
    *,
    action: str,
    message: str,
    job: Job | None = None,
    purchase_order: PurchaseOrder | None = None,
    actor=None,
    metadata: dict[str, Any] | None = None,
) -> JobAuditLog:
    if job is None and purchase_order is not None:
        job = purchase_order.job
    metadata_payload: dict[str, Any] = {}
    if job is not None:
        metadata_payload["job_id"] = job.id
    if purchase_order is not None:
        metadata_payload["purchase_order_id"] = purchase_order.id
    metadata_payload.update(metadata or {})
    return JobAuditLog.objects.create(
        action=action,
        message=message,
        actor=actor if getattr(actor, "is_authenticated", False) else None,
        job=job,
        purchase_order=purchase_order,
        metadata=metadata_payload,
    )
