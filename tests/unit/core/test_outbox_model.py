"""Unit tests for the OutboxEvent model and the outbox writer.

Covers:
- Event creation with all required fields.
- Default status is PENDING.
- mark_as_published() transition (PENDING -> PUBLISHED).
- mark_as_failed(error) transition with retry counter.
- flush_domain_events() persists pending events and clears the entity.
"""

from __future__ import annotations

import uuid

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.orders.events import UnitStatusChanged
from modules.orders.models import FulfillmentUnit
from shared.infrastructure.bus import event_bus
from shared.infrastructure.outbox import flush_domain_events

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_event(**overrides) -> OutboxEvent:
    """Create and persist an OutboxEvent with sensible defaults."""
    defaults = {
        "event_type": "OrderPlaced",
        "payload": {"order_number": "ORD-1-ABCDEF", "final_amount": "1180.00"},
        "aggregate_id": "abc-123",
        "topic": "orders",
    }
    defaults.update(overrides)
    return OutboxEvent.objects.create(**defaults)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestOutboxEventCreation:
    def test_create_event_with_defaults(self):
        event = _make_event()
        event.refresh_from_db()
        assert event.event_type == "OrderPlaced"
        assert event.aggregate_id == "abc-123"
        assert event.topic == "orders"
        assert event.status == EventStatus.PENDING
        assert event.processed_at is None
        assert event.error_message is None
        assert event.retry_count == 0

    def test_id_is_uuid7(self):
        event = _make_event()
        assert isinstance(event.id, uuid.UUID)
        assert event.id.version == 7

    def test_payload_persisted_and_retrieved(self):
        payload = {"unit_id": "xyz-789", "lines": [1, 2, 3], "nested": {"key": "val"}}
        event = _make_event(payload=payload)
        event.refresh_from_db()
        assert event.payload == payload


# ---------------------------------------------------------------------------
# Status Transitions
# ---------------------------------------------------------------------------


class TestOutboxEventTransitions:
    def test_mark_as_published(self):
        event = _make_event()
        event.mark_as_published()
        event.refresh_from_db()

        assert event.status == EventStatus.PUBLISHED
        assert event.processed_at is not None

    def test_mark_as_failed_increments_retry(self):
        event = _make_event()
        event.mark_as_failed("Error 1")
        event.mark_as_failed("Error 2")
        event.refresh_from_db()

        assert event.status == EventStatus.FAILED
        assert event.retry_count == 2
        assert event.error_message == "Error 2"

    def test_str_representation(self):
        event = _make_event(event_type="InvoiceGenerated", aggregate_id="inv-456")
        result = str(event)
        assert "InvoiceGenerated" in result
        assert "PENDING" in result
        assert "inv-456" in result


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------


class TestFlushDomainEvents:
    def test_writes_rows_and_clears_entity(self):
        unit = FulfillmentUnit()
        order_id = uuid.uuid4()
        unit.add_domain_event(
            UnitStatusChanged(
                aggregate_id=unit.id,
                order_id=order_id,
                old_status="PENDING",
                new_status="CONFIRMED",
            )
        )

        flushed = flush_domain_events(unit, topic="fulfillment")

        assert len(flushed) == 1
        assert unit.domain_events == []
        row = OutboxEvent.objects.get(aggregate_id=str(unit.id))
        assert row.event_type == "UnitStatusChanged"
        assert row.topic == "fulfillment"
        assert row.payload["order_id"] == str(order_id)
        assert row.payload["new_status"] == "CONFIRMED"

    def test_publishes_after_commit(self, django_capture_on_commit_callbacks):
        received = []

        class Recorder:
            def handle(self, event) -> None:
                received.append(event)

        recorder = Recorder()
        event_bus.subscribe(UnitStatusChanged, recorder)
        try:
            unit = FulfillmentUnit()
            event = UnitStatusChanged(aggregate_id=unit.id, new_status="SHIPPED")
            unit.add_domain_event(event)

            with django_capture_on_commit_callbacks(execute=True):
                flush_domain_events(unit, topic="fulfillment")
                assert received == []

            assert received == [event]
        finally:
            event_bus._handlers[UnitStatusChanged].remove(recorder)

    def test_nothing_pending_writes_nothing(self):
        flush_domain_events(FulfillmentUnit(), topic="fulfillment")
        assert not OutboxEvent.objects.exists()
