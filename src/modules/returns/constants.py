"""Return and refund state machines."""

from __future__ import annotations

from django.db import models


class ReturnStatus(models.TextChoices):
    REQUESTED = "REQUESTED", "Requested"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"
    PICKED_UP = "PICKED_UP", "Picked up"
    IN_TRANSIT = "IN_TRANSIT", "In transit"
    RECEIVED = "RECEIVED", "Received"
    INSPECTED = "INSPECTED", "Inspected"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"


class RefundStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    INITIATED = "INITIATED", "Initiated"
    PROCESSING = "PROCESSING", "Processing"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"
    CANCELLED = "CANCELLED", "Cancelled"


class RefundMethod(models.TextChoices):
    ORIGINAL_PAYMENT_METHOD = "ORIGINAL_PAYMENT_METHOD", "Original payment method"
    WALLET = "WALLET", "Wallet"
    BANK_TRANSFER = "BANK_TRANSFER", "Bank transfer"
    STORE_CREDIT = "STORE_CREDIT", "Store credit"


RETURN_TRANSITIONS: dict[str, set[str]] = {
    ReturnStatus.REQUESTED: {
        ReturnStatus.APPROVED,
        ReturnStatus.REJECTED,
        ReturnStatus.CANCELLED,
    },
    ReturnStatus.APPROVED: {ReturnStatus.PICKED_UP, ReturnStatus.CANCELLED},
    ReturnStatus.PICKED_UP: {ReturnStatus.IN_TRANSIT},
    ReturnStatus.IN_TRANSIT: {ReturnStatus.RECEIVED},
    ReturnStatus.RECEIVED: {ReturnStatus.INSPECTED},
    ReturnStatus.INSPECTED: {ReturnStatus.COMPLETED, ReturnStatus.REJECTED},
    ReturnStatus.REJECTED: set(),
    ReturnStatus.COMPLETED: set(),
    ReturnStatus.CANCELLED: set(),
}

RETURN_TERMINAL_STATES: set[str] = {
    ReturnStatus.REJECTED,
    ReturnStatus.COMPLETED,
    ReturnStatus.CANCELLED,
}

# Timestamp column stamped when a return enters the state.
RETURN_TIMESTAMPS: dict[str, str] = {
    ReturnStatus.APPROVED: "approved_at",
    ReturnStatus.REJECTED: "rejected_at",
    ReturnStatus.COMPLETED: "completed_at",
}

REFUND_TRANSITIONS: dict[str, set[str]] = {
    RefundStatus.PENDING: {RefundStatus.INITIATED, RefundStatus.CANCELLED},
    RefundStatus.INITIATED: {
        RefundStatus.PROCESSING,
        RefundStatus.FAILED,
        RefundStatus.CANCELLED,
    },
    RefundStatus.PROCESSING: {RefundStatus.COMPLETED, RefundStatus.FAILED},
    RefundStatus.FAILED: {RefundStatus.INITIATED},
    RefundStatus.COMPLETED: set(),
    RefundStatus.CANCELLED: set(),
}

# A refund can only be opened once the returned goods were inspected.
REFUNDABLE_RETURN_STATES: set[str] = {ReturnStatus.INSPECTED, ReturnStatus.COMPLETED}

# Refunds that can no longer move money. A unit holds at most one refund
# outside these states.
REFUND_SETTLED_STATES: set[str] = {RefundStatus.COMPLETED, RefundStatus.CANCELLED}

RETURN_NUMBER_SEQUENCE = "return"
REFUND_NUMBER_SEQUENCE = "refund"

REASON_MIN_LENGTH = 10
