from __future__ import annotations

import logging

from celery import shared_task
from django.template.loader import render_to_string

from accounts.email_utils import send_resend_email

from .models import JobAuditLog, PurchaseOrder

logger = logging.getLogger("printbroker.tasks")


def _log_notification(purchase_order: PurchaseOrder, action: str, message: str, **metadata) -> None:
    JobAuditLog.objects.create(
        action=f"po.notification_{action}",
        message=message,
        actor=None,
        job=purchase_order.job,
        purchase_order=purchase_order,
        metadata={"purchase_order_id": purchase_order.id, **metadata},
    )


@shared_task
def notify_vendor_po_finalized(po_id: int) -> bool:
    """Tell the vendor its order is final. Outcomes are audited, never raised."""
    purchase_order = (
        PurchaseOrder.objects.select_related("job", "target_vendor").filter(id=po_id).first()
    )
    if purchase_order is None or not purchase_order.execution_id:
        return False

    vendor = purchase_order.target_vendor
    if vendor is None or not vendor.email:
        _log_notification(
            purchase_order,
            "skipped",
            "Vendor notification skipped because the vendor has no email.",
            reason="no_recipients",
        )
        return False

    context = {
        "purchase_order": purchase_order,
        "job": purchase_order.job,
        "vendor": vendor,
    }
    html = render_to_string("jobs/email/po_finalized.html", context)
    text = render_to_string("jobs/email/po_finalized.txt", context)
    ok, reason = send_resend_email(
        vendor.email,
        f"Purchase order {purchase_order.execution_id}",
        html,
        text,
        tags={"execution_id": purchase_order.execution_id.replace(".", "_")},
    )
    if ok:
        _log_notification(
            purchase_order,
            "sent",
            f"Vendor notified at {vendor.email}.",
            recipient=vendor.email,
        )
    else:
        logger.warning(f"Vendor notification for PO {purchase_order.po_number} failed: {reason}")
        _log_notification(
            purchase_order,
            "failed",
            "Vendor notification failed.",
            recipient=vendor.email,
            reason=reason,
        )
    return ok
