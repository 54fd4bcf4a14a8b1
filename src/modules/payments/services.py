"""Payment gateway webhook processing.

Business rules enforced:
- A provider event id is processed at most once; replays are no-ops.
- A successful payment marks the order PAID and confirms its PENDING units.
- A failed payment marks the order FAILED and cancels every cancellable
  unit, restocking and releasing the coupon.
- A capture whose amount differs from the order's final amount changes
  nothing and is recorded for reconciliation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import uuid4

import structlog
from django.db import IntegrityError, transaction

from modules.core.context import RequestContext
from modules.core.exceptions import Conflict, DomainError
from modules.core.money import to_money
from modules.orders.constants import CANCELLABLE_STATES, FulfillmentStatus, PaymentStatus
from modules.orders.exceptions import OrderNotFound
from modules.payments.constants import PaymentEventType, ProcessingStatus, SUCCESS_EVENTS
from modules.payments.models import PaymentEvent

if TYPE_CHECKING:
    from modules.orders.models import AggregateOrder
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.services import FulfillmentService
    from modules.payments.dtos import PaymentWebhookDTO

logger = structlog.get_logger(__name__)


class PaymentService:
    def __init__(
        self,
        order_repository: IOrderRepository,
        fulfillment_service: FulfillmentService,
    ) -> None:
        self._order_repo = order_repository
        self._fulfillment = fulfillment_service

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def attach_gateway_order(
        self, ctx: RequestContext, order_id: Any, gateway_order_ref: str
    ) -> AggregateOrder:
        """Remember the gateway's order reference for an online order.

        Raises:
            OrderNotFound: order does not exist.
            Conflict: the order already carries a different reference.
        """
        order = self._order_repo.get_for_update(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        ctx.require_buyer(order.buyer_id)
        if order.gateway_order_ref == gateway_order_ref:
            return order
        if order.gateway_order_ref:
            raise Conflict(
                "The order already has a gateway reference.",
                code="gateway_ref_already_set",
                attr="gateway_order_ref",
            )
        self._order_repo.update_order_fields(order, gateway_order_ref=gateway_order_ref)
        logger.info(
            "payment.gateway_order_attached",
            order_id=str(order.id),
            gateway_order_ref=gateway_order_ref,
        )
        return order

    def handle_event(
        self, dto: PaymentWebhookDTO, payload: Optional[Dict[str, Any]] = None
    ) -> PaymentEvent:
        """Record and apply one webhook delivery.

        The event row is inserted first, in the same transaction as the
        order changes, so a concurrent replay of the same event id fails on
        the unique key and leaves nothing applied twice.
        """
        log = logger.bind(event_id=dto.event_id, event_type=dto.event)
        try:
            with transaction.atomic():
                return self._process(dto, payload or {})
        except IntegrityError:
            log.info("payment.webhook_duplicate")
            return PaymentEvent.objects.get(event_id=dto.event_id)

    def record_rejected(
        self, reason: str, payload: Optional[Dict[str, Any]] = None
    ) -> PaymentEvent:
        """Keep a trace of a delivery that could not be trusted or parsed."""
        payload = payload or {}
        event = PaymentEvent.objects.create(
            event_id=f"rejected:{uuid4()}",
            event_type=str(payload.get("event", ""))[:50],
            gateway_order_ref=str(payload.get("gateway_order_ref", ""))[:100],
            processing_status=ProcessingStatus.FAILED,
            error_message=reason,
            payload=payload,
        )
        logger.warning("payment.webhook_rejected", reason=reason, record_id=str(event.id))
        return event

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _process(self, dto: PaymentWebhookDTO, payload: Dict[str, Any]) -> PaymentEvent:
        existing = PaymentEvent.objects.filter(event_id=dto.event_id).first()
        if existing is not None:
            logger.info("payment.webhook_duplicate", event_id=dto.event_id)
            return existing

        event = PaymentEvent.objects.create(
            event_id=dto.event_id,
            event_type=dto.event,
            gateway_order_ref=dto.gateway_order_ref,
            payment_ref=dto.payment_ref,
            amount=to_money(dto.amount) if dto.amount is not None else None,
            currency=dto.currency,
            status=dto.status,
            error_code=dto.error_code or "",
            error_description=dto.error_description or "",
            payload=payload,
        )
        log = logger.bind(event_id=dto.event_id, event_type=dto.event)

        order = self._order_repo.get_by_payment_reference(dto.gateway_order_ref)
        if order is not None:
            order = self._order_repo.get_for_update(order.id)
        if order is None:
            log.warning("payment.order_not_found", gateway_order_ref=dto.gateway_order_ref)
            return self._finish(event, ProcessingStatus.IGNORED, "order_not_found")

        event.order = order
        log = log.bind(order_id=str(order.id))

        try:
            # Order changes roll back on error; the event row itself is kept.
            with transaction.atomic():
                if dto.event in SUCCESS_EVENTS:
                    status, message = self._apply_success(order, event)
                elif dto.event == PaymentEventType.FAILED:
                    status, message = self._apply_failure(order, dto)
                else:
                    status, message = ProcessingStatus.IGNORED, "unsupported_event"
        except DomainError as exc:
            log.warning("payment.processing_failed", error_code=exc.code, error=exc.message)
            return self._finish(event, ProcessingStatus.FAILED, exc.message)

        log.info("payment.webhook_processed", processing_status=str(status), note=message)
        return self._finish(event, status, message)

    def _apply_success(self, order: AggregateOrder, event: PaymentEvent) -> tuple:
        if order.payment_status == PaymentStatus.PAID:
            return ProcessingStatus.IGNORED, "already_paid"
        if event.amount is not None and event.amount != order.final_amount:
            logger.warning(
                "payment.amount_mismatch",
                order_id=str(order.id),
                expected=str(order.final_amount),
                received=str(event.amount),
            )
            return ProcessingStatus.FAILED, "amount_mismatch"
        units = list(order.units.order_by("sequence"))
        if units and all(u.status == FulfillmentStatus.CANCELLED for u in units):
            logger.warning("payment.captured_after_cancellation", order_id=str(order.id))
            return ProcessingStatus.IGNORED, "order_cancelled"

        fields = {"payment_status": PaymentStatus.PAID}
        if not order.gateway_order_ref:
            fields["gateway_order_ref"] = event.gateway_order_ref
        self._order_repo.update_order_fields(order, **fields)

        ctx = RequestContext.system()
        for unit in units:
            if unit.status == FulfillmentStatus.PENDING:
                self._fulfillment.confirm_unit(ctx, unit.id, notes="Payment captured")
        logger.info("payment.order_paid", order_id=str(order.id))
        return ProcessingStatus.PROCESSED, ""

    def _apply_failure(self, order: AggregateOrder, dto: PaymentWebhookDTO) -> tuple:
        if order.payment_status == PaymentStatus.PAID:
            return ProcessingStatus.IGNORED, "already_paid"
        self._order_repo.update_order_fields(order, payment_status=PaymentStatus.FAILED)
        if order.units.filter(status__in=CANCELLABLE_STATES).exists():
            self._fulfillment.cancel_order(
                RequestContext.system(),
                order.id,
                reason=dto.error_description or "Payment failed",
            )
        logger.info(
            "payment.order_failed",
            order_id=str(order.id),
            error_code=dto.error_code or "",
        )
        return ProcessingStatus.PROCESSED, ""

    @staticmethod
    def _finish(event: PaymentEvent, status: str, message: str) -> PaymentEvent:
        event.processing_status = status
        event.error_message = message
        event.save(update_fields=["order", "processing_status", "error_message"])
        return event
