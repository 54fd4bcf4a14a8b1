"""Event handlers for Orders domain events."""

from __future__ import annotations

import structlog

from modules.orders.events import OrderCancelled, OrderPlaced, UnitStatusChanged
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderPlacedHandler(IEventHandler[OrderPlaced]):
    def handle(self, event: OrderPlaced) -> None:
        logger.info(
            "order.placed_event",
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
            unit_count=event.unit_count,
        )


class OrderCancelledHandler(IEventHandler[OrderCancelled]):
    def handle(self, event: OrderCancelled) -> None:
        logger.info(
            "order.cancelled_event",
            order_id=str(event.aggregate_id),
            reason=event.reason,
        )


class UnitStatusChangedHandler(IEventHandler[UnitStatusChanged]):
    def handle(self, event: UnitStatusChanged) -> None:
        logger.info(
            "fulfillment.status_changed_event",
            unit_id=str(event.aggregate_id),
            order_id=str(event.order_id),
            old_status=event.old_status,
            new_status=event.new_status,
        )


order_placed_handler = OrderPlacedHandler()
order_cancelled_handler = OrderCancelledHandler()
unit_status_changed_handler = UnitStatusChangedHandler()
