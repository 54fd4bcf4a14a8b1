"""Outbox writer shared by the aggregate repositories.

Collected domain events are written as ``OutboxEvent`` rows in the caller's
transaction and handed to the in-memory bus once that transaction commits.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List
from uuid import UUID

import structlog
from django.db import transaction

from shared.domain.events import DomainEvent, DomainEventMixin
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)


def flush_domain_events(entity: DomainEventMixin, topic: str) -> List[DomainEvent]:
    """Persist and schedule publication of *entity*'s pending events."""
    from modules.core.models import OutboxEvent

    events = entity.domain_events
    for event in events:
        OutboxEvent.objects.create(
            event_type=event.event_name,
            aggregate_id=str(event.aggregate_id),
            payload=serialize_event_payload(event),
            topic=topic,
        )
        transaction.on_commit(lambda event=event: event_bus.publish(event))
    entity.clear_domain_events()
    if events:
        logger.debug("outbox.events_recorded", topic=topic, event_count=len(events))
    return events


def serialize_event_payload(event: Any) -> Dict[str, Any]:
    data = asdict(event)
    normalized = _normalize_for_json(data)
    return json.loads(json.dumps(normalized))


def _normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value
