"""Job numbers, base job ids and vendor-scoped execution ids.

Base job id: ``{TYPE_CODE}-{MASTER_SEQ}``, e.g. ``ME2-3001``.
Execution id: ``{BASE_JOB_ID}-{VENDOR_CODE}.{VENDOR_COUNT}``, e.g.
``ME2-3001-4198.2``. The vendor count is taken when the order is finalized,
so every sibling finalized together carries the same suffix.
Change order id: ``{BASE_JOB_ID}-CO{N}``.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from vendors.models import Vendor

from .audit import record_job_event
from .constants import INACTIVE_PO_STATUSES, JobMetaType, JobType, MailFormat
from .exceptions import (
    ExecutionIdConflictError,
    InactivePurchaseOrderError,
    MissingBaseJobIdError,
    MissingVendorCodeError,
    NotVendorFacingError,
)
from .locks import job_id_for_purchase_order, lock_job, lock_purchase_order
from .models import Job, PurchaseOrder, SequenceCounter
from .pathway import active_vendor_count_for_job
from .tasks import notify_vendor_po_finalized

logger = logging.getLogger("printbroker.identifiers")

BASE_JOB_ID_RE = re.compile(r"^([A-Z]+\d*)-(\d+)$")
EXECUTION_ID_RE = re.compile(r"^([A-Z]+\d*-\d+)-(\w+)\.(\d+)$")
CHANGE_ORDER_ID_RE = re.compile(r"^([A-Z]+\d*-\d+)-CO(\d+)$")


def next_sequence_value(name: str, *, start: int) -> int:
    """Hand out the next value of a named counter.

    Must run inside the transaction that stores the value; the counter row
    stays locked until that transaction ends so no value is handed out twice.
    """
    counter, _ = SequenceCounter.objects.select_for_update().get_or_create(
        name=name,
        defaults={"next_value": start},
    )
    value = int(counter.next_value)
    counter.next_value = value + 1
    counter.save(update_fields=["next_value", "updated_at"])
    return value


def next_job_number() -> str:
    value = next_sequence_value(
        SequenceCounter.Name.JOB_NUMBER, start=settings.JOB_NUMBER_START
    )
    return f"J-{value}"


def get_type_code(
    *,
    job_meta_type: str | None = None,
    mail_format: str | None = None,
    envelope_components: int | None = None,
    job_type: str | None = None,
) -> str:
    if job_meta_type == JobMetaType.MAILING:
        if mail_format == MailFormat.POSTCARD:
            return "MP"
        if mail_format == MailFormat.ENVELOPE:
            return f"ME{envelope_components or 1}"
        return "MS"
    if job_type == JobType.FOLDED:
        return "HJ"
    if job_type in {JobType.BOOKLET_SELF_COVER, JobType.BOOKLET_PLUS_COVER}:
        return "BJ"
    return "FJ"


def mint_base_job_id(job: Job) -> str:
    type_code = get_type_code(
        job_meta_type=job.job_meta_type,
        mail_format=job.mail_format,
        envelope_components=job.envelope_components,
        job_type=job.job_type,
    )
    sequence = next_sequence_value(
        SequenceCounter.Name.BASE_JOB_ID, start=settings.BASE_JOB_SEQUENCE_START
    )
    return f"{type_code}-{sequence}"


def format_execution_id(base_job_id: str, vendor_code: str, vendor_count: int) -> str:
    return f"{base_job_id}-{vendor_code}.{vendor_count}"


def format_change_order_id(base_job_id: str, version: int) -> str:
    return f"{base_job_id}-CO{version}"


@dataclass(frozen=True)
class ParsedBaseJobId:
    type_code: str
    master_sequence: int


@dataclass(frozen=True)
class ParsedExecutionId:
    base_job_id: str
    vendor_code: str
    vendor_count: int


@dataclass(frozen=True)
class ParsedChangeOrderId:
    base_job_id: str
    version: int


def parse_base_job_id(value: str) -> ParsedBaseJobId | None:
    match = BASE_JOB_ID_RE.match(value or "")
    if not match:
        return None
    return ParsedBaseJobId(type_code=match.group(1), master_sequence=int(match.group(2)))


def parse_execution_id(value: str) -> ParsedExecutionId | None:
    match = EXECUTION_ID_RE.match(value or "")
    if not match:
        return None
    return ParsedExecutionId(
        base_job_id=match.group(1),
        vendor_code=match.group(2),
        vendor_count=int(match.group(3)),
    )


def parse_change_order_id(value: str) -> ParsedChangeOrderId | None:
    match = CHANGE_ORDER_ID_RE.match(value or "")
    if not match:
        return None
    return ParsedChangeOrderId(base_job_id=match.group(1), version=int(match.group(2)))


@dataclass(frozen=True)
class FinalizeResult:
    purchase_order: PurchaseOrder
    execution_id: str
    created: bool


def _finalize_locked(job: Job, purchase_order: PurchaseOrder, *, actor=None) -> FinalizeResult:
    if purchase_order.execution_id:
        return FinalizeResult(
            purchase_order=purchase_order,
            execution_id=purchase_order.execution_id,
            created=False,
        )
    if not purchase_order.is_vendor_facing:
        raise NotVendorFacingError(extra={"purchase_order_id": purchase_order.id})
    if purchase_order.status in INACTIVE_PO_STATUSES:
        raise InactivePurchaseOrderError(
            extra={"purchase_order_id": purchase_order.id, "status": purchase_order.status}
        )
    if not job.base_job_id:
        raise MissingBaseJobIdError(extra={"job_id": job.id})
    vendor = Vendor.objects.get(id=purchase_order.target_vendor_id)
    if not vendor.vendor_code:
        raise MissingVendorCodeError(
            f"Vendor '{vendor.name}' has no vendor code; assign one before finalizing.",
            extra={"vendor_id": vendor.id},
        )

    vendor_count = active_vendor_count_for_job(job.id)
    execution_id = format_execution_id(job.base_job_id, vendor.vendor_code, vendor_count)
    if PurchaseOrder.objects.filter(execution_id=execution_id).exists():
        raise ExecutionIdConflictError(
            extra={"purchase_order_id": purchase_order.id, "execution_id": execution_id}
        )

    purchase_order.execution_id = execution_id
    purchase_order.execution_id_assigned_at = timezone.now()
    purchase_order.save(update_fields=["execution_id", "execution_id_assigned_at", "updated_at"])
    record_job_event(
        action="po.finalized",
        message=f"Execution id {execution_id} assigned.",
        job=job,
        purchase_order=purchase_order,
        actor=actor,
        metadata={
            "execution_id": execution_id,
            "vendor_id": vendor.id,
            "vendor_count": vendor_count,
        },
    )
    logger.info(f"PO {purchase_order.po_number} finalized as {execution_id}")

    po_id = purchase_order.id
    transaction.on_commit(lambda: notify_vendor_po_finalized.delay(po_id), robust=True)
    return FinalizeResult(purchase_order=purchase_order, execution_id=execution_id, created=True)


def finalize_execution_id(po_id: int, *, actor=None) -> FinalizeResult:
    """Assign the permanent execution id of a vendor purchase order.

    Idempotent: an order that already carries an id is returned untouched.
    The job row is locked before the order so the vendor count and the write
    are seen by one finalize at a time.
    """
    with transaction.atomic():
        job = lock_job(job_id_for_purchase_order(po_id))
        purchase_order = lock_purchase_order(po_id)
        return _finalize_locked(job, purchase_order, actor=actor)


def finalize_all_execution_ids(job_id: int, *, actor=None) -> list[FinalizeResult]:
    """Finalize every active vendor order of a job that has no id yet.

    All or nothing: one failing order rolls the whole batch back.
    """
    with transaction.atomic():
        job = lock_job(job_id)
        pending = list(
            PurchaseOrder.objects.select_for_update()
            .filter(job_id=job.id, target_vendor__isnull=False, execution_id__isnull=True)
            .exclude(status__in=INACTIVE_PO_STATUSES)
            .order_by("id")
        )
        results = [_finalize_locked(job, po, actor=actor) for po in pending]
    if results:
        logger.info(f"Job {job_id}: finalized {len(results)} purchase order(s)")
    return results
