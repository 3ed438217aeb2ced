from __future__ import annotations

from typing import Any

from rest_framework import status


class BrokerError(Exception):
    """Structured failure raised by the job core.

    ``code`` is stable and machine readable; ``detail`` is for people.
    Views render both with ``status_code``.
    """

    default_detail = "Request could not be processed."
    default_code = "broker_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        detail: str | None = None,
        *,
        code: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.detail = detail or self.default_detail
        self.code = code or self.default_code
        self.extra = dict(extra or {})
        super().__init__(self.detail)

    def as_payload(self) -> dict[str, Any]:
        return {"detail": self.detail, "code": self.code, **self.extra}


class BrokerValidationError(BrokerError):
    default_code = "validation_failed"


class MissingBaseJobIdError(BrokerValidationError):
    default_detail = "Job has no base job id; execution ids cannot be generated."
    default_code = "missing_base_job_id"


class MissingVendorCodeError(BrokerValidationError):
    default_detail = "Vendor has no vendor code; assign one before finalizing."
    default_code = "missing_vendor_code"


class NotVendorFacingError(BrokerValidationError):
    default_detail = "Only purchase orders targeting a vendor receive execution ids."
    default_code = "not_vendor_facing"


class InactivePurchaseOrderError(BrokerValidationError):
    default_detail = "Cancelled or rejected purchase orders cannot be finalized."
    default_code = "inactive_purchase_order"


class ExecutionIdLockedError(BrokerValidationError):
    default_detail = (
        "Purchase order already has an execution id; create a new purchase order "
        "to change the vendor."
    )
    default_code = "execution_id_locked"


class NegativeMarginError(BrokerValidationError):
    default_detail = "Sell price is below total cost; pass an explicit override to accept it."
    default_code = "negative_margin"


class InvalidQcFlagError(BrokerValidationError):
    default_code = "invalid_qc_flag"


class InvalidPurchaseOrderError(BrokerValidationError):
    default_code = "invalid_purchase_order"


class FinancialLockError(BrokerError):
    default_detail = (
        "Job is invoiced; price, quantity and specs are locked. "
        "Amend specs with a change order."
    )
    default_code = "financial_lock"
    status_code = status.HTTP_409_CONFLICT


class JobNotFoundError(BrokerError):
    default_detail = "Job not found."
    default_code = "job_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class PurchaseOrderNotFoundError(BrokerError):
    default_detail = "Purchase order not found."
    default_code = "purchase_order_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ExecutionIdConflictError(BrokerError):
    default_detail = (
        "Another purchase order already carries this execution id; cancel or merge "
        "the duplicate vendor order first."
    )
    default_code = "execution_id_conflict"
    status_code = status.HTTP_409_CONFLICT


class ComponentNotFoundError(BrokerError):
    default_detail = "Job component not found."
    default_code = "component_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ChangeOrderStateError(BrokerValidationError):
    default_detail = "Change order is not in a state that allows this action."
    default_code = "change_order_state"


class ChangeOrderNotFoundError(BrokerError):
    default_detail = "Change order not found."
    default_code = "change_order_not_found"
    status_code = status.HTTP_404_NOT_FOUND
