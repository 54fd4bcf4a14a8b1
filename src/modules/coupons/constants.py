"""Coupon types and rejection reason codes."""

from django.db import models


class CouponType(models.TextChoices):
    PERCENTAGE = "PERCENTAGE", "Percentage"
    FIXED = "FIXED", "Fixed amount"


class RejectionReason(models.TextChoices):
    NOT_FOUND = "not_found", "Coupon not found"
    INACTIVE = "inactive", "Coupon is not active"
    EXPIRED = "expired", "Coupon has expired"
    NOT_STARTED = "not_started", "Coupon is not yet valid"
    USAGE_LIMIT_EXCEEDED = "usage_limit_exceeded", "Coupon usage limit exceeded"
    CUSTOMER_LIMIT_EXCEEDED = (
        "customer_limit_exceeded",
        "You have already used this coupon the maximum number of times",
    )
    MIN_ORDER_NOT_MET = "min_order_not_met", "Order total is below the coupon minimum"
