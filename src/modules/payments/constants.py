"""Payment webhook constants."""

from __future__ import annotations

from django.db import models


class PaymentEventType(models.TextChoices):
    CAPTURED = "payment.captured", "Payment captured"
    AUTHORIZED = "payment.authorized", "Payment authorized"
    FAILED = "payment.failed", "Payment failed"


class ProcessingStatus(models.TextChoices):
    PROCESSED = "PROCESSED", "Processed"
    IGNORED = "IGNORED", "Ignored"
    FAILED = "FAILED", "Failed"


SUCCESS_EVENTS = {PaymentEventType.CAPTURED, PaymentEventType.AUTHORIZED}

SIGNATURE_HEADER = "X-Webhook-Signature"
