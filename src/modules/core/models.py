"""Base abstract models and domain infrastructure for the marketplace.

Provides:
- ``BaseModel``: UUIDv7 primary key + created_at / updated_at timestamps.
- ``OutboxEvent``: Transactional Outbox pattern for reliable domain events.
- ``SequenceCounter``: per-year atomic counters behind human-readable
  document numbers (invoices, returns, refunds).

Design decisions:
- UUIDv7 keys sort by creation time, so ``-created_at`` and ``-id`` agree.
- ``SequenceCounter.next_value`` locks the counter row and increments it
  with an ``F()`` expression, so two concurrent callers in the same year can
  never read the same value.
"""

from __future__ import annotations

import uuid6
from django.db import models, transaction
from django.db.models import F
from django.utils import timezone

# ---------------------------------------------------------------------------
# BaseModel
# ---------------------------------------------------------------------------


class BaseModel(models.Model):
    """Abstract base with UUIDv7 PK and timestamp bookkeeping."""

    id = models.UUIDField(
        primary_key=True,
        default=uuid6.uuid7,
        editable=False,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs) -> None:
        """Ensure ``updated_at`` is refreshed even when ``update_fields`` is passed."""
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "updated_at" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["updated_at"]
        super().save(*args, **kwargs)


# ---------------------------------------------------------------------------
# Transactional Outbox
# ---------------------------------------------------------------------------


class EventStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PUBLISHED = "PUBLISHED", "Published"
    FAILED = "FAILED", "Failed"


class OutboxEvent(BaseModel):
    """Transactional Outbox for reliable domain event delivery.

    Events are persisted in the **same database transaction** as the business
    data that produced them, guaranteeing atomicity.  A relay reads
    ``PENDING`` events and publishes them to the broker.

    Workflow:
    1. Repository creates ``OutboxEvent`` inside ``transaction.atomic()``.
    2. Relay queries ``status=PENDING`` ordered by ``created_at``.
    3. On success -> ``mark_as_published()``.
    4. On failure -> ``mark_as_failed(error)`` increments ``retry_count``.
    """

    event_type = models.CharField(max_length=100)
    payload = models.JSONField()
    aggregate_id = models.CharField(max_length=255)
    topic = models.CharField(max_length=100)
    status = models.CharField(
        max_length=20,
        choices=EventStatus.choices,
        default=EventStatus.PENDING,
    )
    processed_at = models.DateTimeField(null=True, blank=True, default=None)
    error_message = models.TextField(null=True, blank=True, default=None)  # noqa: DJ01
    retry_count = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "outbox_events"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["event_type"], name="outbox_event_type_idx"),
            models.Index(fields=["aggregate_id"], name="outbox_aggregate_id_idx"),
            models.Index(
                fields=["status", "created_at"],
                name="outbox_status_created_idx",
            ),
        ]

    def mark_as_published(self) -> None:
        """Mark event as successfully published."""
        self.status = EventStatus.PUBLISHED
        self.processed_at = timezone.now()
        self.save(update_fields=["status", "processed_at", "updated_at"])

    def mark_as_failed(self, error: str) -> None:
        """Mark event as failed and record the error."""
        self.status = EventStatus.FAILED
        self.error_message = error
        self.retry_count += 1
        self.save(update_fields=["status", "error_message", "retry_count", "updated_at"])

    def __str__(self) -> str:
        return f"{self.event_type} [{self.status}] ({self.aggregate_id})"


# ---------------------------------------------------------------------------
# Sequence counters
# ---------------------------------------------------------------------------


class SequenceCounter(BaseModel):
    """Per-year monotonically increasing counter.

    ``(name, year)`` is unique at the storage layer.  ``next_value`` must be
    called inside the transaction that persists the numbered document so a
    rolled-back document also rolls back its number.
    """

    name = models.CharField(max_length=50)
    year = models.PositiveIntegerField()
    value = models.PositiveBigIntegerField(default=0)

    class Meta:
        db_table = "sequence_counters"
        constraints = [
            models.UniqueConstraint(
                fields=["name", "year"], name="sequence_counter_name_year_uniq"
            ),
        ]

    @classmethod
    def next_value(cls, name: str, year: int) -> int:
        """Atomically reserve and return the next value for ``(name, year)``."""
        with transaction.atomic():
            cls.objects.get_or_create(name=name, year=year)
            counter = cls.objects.select_for_update().get(name=name, year=year)
            counter.value = F("value") + 1
            counter.save(update_fields=["value", "updated_at"])
            counter.refresh_from_db(fields=["value"])
            return counter.value

    def __str__(self) -> str:
        return f"{self.name}/{self.year} = {self.value}"
