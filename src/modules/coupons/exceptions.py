"""Coupon exceptions."""

from __future__ import annotations

from modules.core.exceptions import ValidationFailed
from modules.coupons.constants import RejectionReason


class CouponRejected(ValidationFailed):
    """The coupon cannot be applied; ``code`` is the stable rejection reason."""

    def __init__(self, reason: RejectionReason, coupon_code: str = "") -> None:
        super().__init__(str(reason.label), code=str(reason.value), attr="coupon_code")
        self.reason = reason
        self.coupon_code = coupon_code
