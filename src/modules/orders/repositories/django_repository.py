"""Django ORM implementation of the Order repository.

Concurrency control on unit transitions is optimistic: the ``UPDATE``
carries ``WHERE status=<expected>`` and zero affected rows means another
writer won.  Order-wide operations (cancellation, payment) lock the order
row first with ``select_for_update()``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from modules.core.exceptions import ConcurrentModification
from modules.core.money import ZERO
from modules.orders.constants import (
    STATS_IN_TRANSIT_STATES,
    STATS_PROCESSING_STATES,
    STATUS_TIMESTAMPS,
    FulfillmentStatus,
)
from modules.orders.dtos import SellerStats
from modules.orders.models import (
    AggregateOrder,
    FulfillmentItem,
    FulfillmentStatusHistory,
    FulfillmentUnit,
)
from modules.orders.repositories.interfaces import IOrderRepository
from shared.infrastructure.outbox import flush_domain_events

logger = structlog.get_logger(__name__)

_ORDER_PREFETCH = ("units__items", "units__status_history")


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: Any) -> Optional[AggregateOrder]:
        """Retrieve an order with eager-loaded units.

        Returns ``None`` for non-existent or malformed ids.
        """
        try:
            return (
                AggregateOrder.objects.prefetch_related(*_ORDER_PREFETCH)
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: Any) -> Optional[AggregateOrder]:
        try:
            return AggregateOrder.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[AggregateOrder]:
        queryset = AggregateOrder.objects.prefetch_related(*_ORDER_PREFETCH)
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def get_by_idempotency_key(self, key: str) -> Optional[AggregateOrder]:
        return (
            AggregateOrder.objects.prefetch_related(*_ORDER_PREFETCH)
            .filter(idempotency_key=key)
            .first()
        )

    def get_by_payment_reference(self, reference: str) -> Optional[AggregateOrder]:
        if not reference:
            return None
        order = AggregateOrder.objects.filter(gateway_order_ref=reference).first()
        if order is None:
            order = AggregateOrder.objects.filter(order_number=reference).first()
        return order

    def get_unit(self, unit_id: Any) -> Optional[FulfillmentUnit]:
        try:
            return (
                FulfillmentUnit.objects.select_related("order")
                .prefetch_related("items")
                .filter(id=unit_id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_unit_by_tracking_number(self, awb: str) -> Optional[FulfillmentUnit]:
        if not awb:
            return None
        return (
            FulfillmentUnit.objects.select_related("order")
            .filter(tracking_number=awb)
            .first()
        )

    def unit_statuses(self, order_id: UUID) -> List[str]:
        return list(
            FulfillmentUnit.objects.filter(order_id=order_id).values_list(
                "status", flat=True
            )
        )

    def seller_stats(self, seller_id: UUID) -> SellerStats:
        """One aggregate query over the seller's units."""
        delivered = Q(status=FulfillmentStatus.DELIVERED)
        totals = FulfillmentUnit.objects.filter(seller_id=seller_id).aggregate(
            total_units=Count("id"),
            pending_units=Count("id", filter=Q(status=FulfillmentStatus.PENDING)),
            processing_units=Count("id", filter=Q(status__in=STATS_PROCESSING_STATES)),
            in_transit_units=Count("id", filter=Q(status__in=STATS_IN_TRANSIT_STATES)),
            delivered_units=Count("id", filter=delivered),
            delivered_payout=Sum("seller_payout", filter=delivered, default=ZERO),
            delivered_platform_fees=Sum("platform_fee", filter=delivered, default=ZERO),
        )
        return SellerStats(seller_id=seller_id, **totals)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: AggregateOrder) -> AggregateOrder:
        """Persist (create or update) an order and record its events."""
        entity.save()
        events = flush_domain_events(entity, topic="orders")
        logger.debug("order.saved", order_id=str(entity.id), event_count=len(events))
        return entity

    @transaction.atomic
    def save_unit(self, unit: FulfillmentUnit) -> FulfillmentUnit:
        unit.save()
        flush_domain_events(unit, topic="fulfillment")
        return unit

    @transaction.atomic
    def transition_unit(
        self,
        unit: FulfillmentUnit,
        new_status: str,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> FulfillmentUnit:
        expected = unit.status
        now = timezone.now()
        changes: Dict[str, Any] = dict(extra_fields or {})
        changes["status"] = new_status
        changes["updated_at"] = now
        stamp = STATUS_TIMESTAMPS.get(new_status)
        if stamp:
            changes[stamp] = now

        updated = FulfillmentUnit.objects.filter(id=unit.id, status=expected).update(
            **changes
        )
        if not updated:
            logger.warning(
                "fulfillment.concurrent_modification",
                unit_id=str(unit.id),
                expected_status=expected,
                target_status=new_status,
            )
            raise ConcurrentModification(
                f"Fulfillment unit {unit.unit_number} changed while being updated."
            )

        for field, value in changes.items():
            setattr(unit, field, value)
        flush_domain_events(unit, topic="fulfillment")
        return unit

    @transaction.atomic
    def add_history(
        self,
        unit_id: UUID,
        old_status: Optional[str],
        new_status: str,
        changed_by: Optional[UUID] = None,
        actor_kind: str = "system",
        notes: str = "",
    ) -> FulfillmentStatusHistory:
        history = FulfillmentStatusHistory.objects.create(
            unit_id=unit_id,
            old_status=old_status,
            new_status=new_status,
            changed_by=changed_by,
            actor_kind=actor_kind,
            notes=notes,
        )
        logger.debug(
            "fulfillment.history_added",
            unit_id=str(unit_id),
            old_status=old_status,
            new_status=new_status,
        )
        return history

    @transaction.atomic
    def update_order_fields(self, order: AggregateOrder, **fields: Any) -> AggregateOrder:
        for field, value in fields.items():
            setattr(order, field, value)
        order.save(update_fields=list(fields))
        flush_domain_events(order, topic="orders")
        return order

    @transaction.atomic
    def add_items(self, items: List[FulfillmentItem]) -> List[FulfillmentItem]:
        for item in items:
            item.save()
        return items

    @transaction.atomic
    def update_unit_fields(self, unit: FulfillmentUnit, **fields: Any) -> FulfillmentUnit:
        for field, value in fields.items():
            setattr(unit, field, value)
        unit.save(update_fields=list(fields))
        return unit
