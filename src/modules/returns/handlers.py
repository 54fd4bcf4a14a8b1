"""Event handlers for return and refund events."""

from __future__ import annotations

import structlog

from modules.returns.events import RefundStatusChanged, ReturnStatusChanged
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class ReturnStatusChangedHandler(IEventHandler[ReturnStatusChanged]):
    def handle(self, event: ReturnStatusChanged) -> None:
        logger.info(
            "return.status_changed_event",
            return_id=str(event.aggregate_id),
            unit_id=str(event.unit_id),
            old_status=event.old_status,
            new_status=event.new_status,
        )


class RefundStatusChangedHandler(IEventHandler[RefundStatusChanged]):
    def handle(self, event: RefundStatusChanged) -> None:
        logger.info(
            "refund.status_changed_event",
            refund_id=str(event.aggregate_id),
            return_id=str(event.return_id),
            old_status=event.old_status,
            new_status=event.new_status,
            amount=event.amount,
        )


return_status_changed_handler = ReturnStatusChangedHandler()
refund_status_changed_handler = RefundStatusChangedHandler()
