from __future__ import annotations

from .exceptions import ChangeOrderNotFoundError, JobNotFoundError, PurchaseOrderNotFoundError
from .models import ChangeOrder, Job, PurchaseOrder


def lock_job(job_id: int) -> Job:
    """Lock a live job row for the rest of the surrounding transaction.

    Every multi-write operation on a job takes this lock first, so
    finalize, purchase-order churn and reclassification on one job run
    one at a time.
    """
    try:
        return Job.objects.active().select_for_update().get(id=job_id)
    except Job.DoesNotExist as exc:
        raise JobNotFoundError(extra={"job_id": job_id}) from exc


def lock_purchase_order(po_id: int) -> PurchaseOrder:
    try:
        return PurchaseOrder.objects.select_for_update().get(
            id=po_id, job__deleted_at__isnull=True
        )
    except PurchaseOrder.DoesNotExist as exc:
        raise PurchaseOrderNotFoundError(extra={"purchase_order_id": po_id}) from exc


def job_id_for_purchase_order(po_id: int) -> int:
    job_id = (
        PurchaseOrder.objects.filter(id=po_id, job__deleted_at__isnull=True)
        .values_list("job_id", flat=True)
        .first()
    )
    if job_id is None:
        raise PurchaseOrderNotFoundError(extra={"purchase_order_id": po_id})
    return job_id


def lock_change_order(change_order_id: int) -> tuple[Job, ChangeOrder]:
    """Lock a change order together with its job, job row first."""
    job_id = (
        ChangeOrder.objects.filter(id=change_order_id, job__deleted_at__isnull=True)
        .values_list("job_id", flat=True)
        .first()
    )
    if job_id is None:
        raise ChangeOrderNotFoundError(extra={"change_order_id": change_order_id})
    job = lock_job(job_id)
    change_order = ChangeOrder.objects.select_for_update().get(id=change_order_id)
    return job, change_order
