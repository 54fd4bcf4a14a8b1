"""Return and refund domain exceptions."""

from __future__ import annotations

from modules.core.exceptions import Conflict, NotFound, ValidationFailed


class ReturnNotFound(NotFound):
    default_code = "return_not_found"


class RefundNotFound(NotFound):
    default_code = "refund_not_found"


class UnitNotReturnable(ValidationFailed):
    """The unit has not been delivered (or was already returned)."""

    default_code = "unit_not_delivered"


class ReturnWindowExpired(ValidationFailed):
    """The request arrived after ``delivered_at + RETURN_WINDOW_DAYS``."""

    default_code = "return_window_expired"


class InvalidReturnItem(ValidationFailed):
    """An item is foreign to the unit, over-quantity or over-claimed."""

    default_code = "invalid_return_item"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message, code=code, attr="items")


class ReturnAlreadyOpen(Conflict):
    default_code = "return_already_exists"


class RefundAlreadyExists(Conflict):
    default_code = "refund_already_exists"


class ReturnNotRefundable(ValidationFailed):
    """Refunds wait until the returned goods were inspected."""

    default_code = "return_not_inspected"


class RefundAmountExceeded(ValidationFailed):
    default_code = "refund_amount_exceeded"


class UnitRefundOpen(Conflict):
    """Another return of the same unit still has an unsettled refund."""

    default_code = "unit_refund_open"


class RefundInProgress(Conflict):
    """The return's refund is already moving money and cannot be cancelled."""

    default_code = "refund_in_progress"
