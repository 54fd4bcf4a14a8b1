"""Return & refund workflow.

Business rules enforced:
- Only the buyer of a DELIVERED unit may ask for a return, and only
  within ``RETURN_WINDOW_DAYS`` of delivery.
- Returned quantities never exceed what was ordered; the claimed refund
  for a line never exceeds what the buyer paid for that quantity.
- One open return per unit.
- The unit's seller (or an admin) drives the return through its states;
  the buyer may withdraw it while it is still REQUESTED.
- A COMPLETED return moves the unit to RETURNED.
- A refund needs an inspected return, is capped at the claimed amount and
  restocks the returned quantities when it completes.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from modules.core.context import ActorKind, RequestContext
from modules.core.exceptions import InvalidStateTransition, NotAuthorized, ValidationFailed
from modules.core.money import to_money
from modules.orders.constants import FulfillmentStatus
from modules.orders.exceptions import UnitNotFound
from modules.returns.constants import (
    REFUND_SETTLED_STATES,
    REFUNDABLE_RETURN_STATES,
    RefundStatus,
    ReturnStatus,
)
from modules.returns.events import RefundStatusChanged, ReturnStatusChanged
from modules.returns.exceptions import (
    InvalidReturnItem,
    RefundAlreadyExists,
    RefundAmountExceeded,
    RefundInProgress,
    RefundNotFound,
    ReturnAlreadyOpen,
    ReturnNotFound,
    ReturnNotRefundable,
    ReturnWindowExpired,
    UnitNotReturnable,
    UnitRefundOpen,
)
from modules.returns.models import Refund, ReturnItem, ReturnRequest

if TYPE_CHECKING:
    from modules.inventory.providers import IInventoryProvider
    from modules.orders.models import FulfillmentUnit
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.services import FulfillmentService
    from modules.returns.dtos import (
        CreateRefundDTO,
        CreateReturnDTO,
        RefundStatusUpdateDTO,
        ReturnStatusUpdateDTO,
    )
    from modules.returns.repositories.interfaces import IReturnRepository

logger = structlog.get_logger(__name__)


class ReturnService:
    def __init__(
        self,
        return_repository: IReturnRepository,
        order_repository: IOrderRepository,
        fulfillment_service: FulfillmentService,
    ) -> None:
        self._return_repo = return_repository
        self._order_repo = order_repository
        self._fulfillment = fulfillment_service

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_return(self, ctx: RequestContext, return_id: Any) -> ReturnRequest:
        return_request = self._return_repo.get_by_id(return_id)
        if not return_request:
            raise ReturnNotFound(f"Return {return_id} not found.")
        ctx.require_party(return_request.buyer_id, return_request.unit.seller_id)
        return return_request

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_return(
        self,
        ctx: RequestContext,
        dto: CreateReturnDTO,
        now: Optional[datetime] = None,
    ) -> ReturnRequest:
        """Open a return for a delivered unit.

        Raises:
            UnitNotFound: unit does not exist.
            NotAuthorized: caller is not the order's buyer.
            UnitNotReturnable: unit is not DELIVERED.
            ReturnWindowExpired: delivered more than the window ago.
            InvalidReturnItem: an item is foreign, over-quantity or over-claimed.
            ReturnAlreadyOpen: the unit already has an open return.
        """
        unit = self._order_repo.get_unit(dto.unit_id)
        if not unit:
            raise UnitNotFound(f"Fulfillment unit {dto.unit_id} not found.")
        order = unit.order
        ctx.require_buyer(order.buyer_id)
        log = logger.bind(unit_id=str(unit.id), unit_number=unit.unit_number)

        if unit.status != FulfillmentStatus.DELIVERED or unit.delivered_at is None:
            raise UnitNotReturnable(
                f"Unit {unit.unit_number} is {unit.status}; only delivered units can be returned."
            )
        # Whole days since delivery; the last day of the window counts in full.
        now = now or timezone.now()
        days_since_delivery = (now - unit.delivered_at).days
        if days_since_delivery > settings.RETURN_WINDOW_DAYS:
            log.info("return.window_expired", days_since_delivery=days_since_delivery)
            raise ReturnWindowExpired(
                f"The return window of {settings.RETURN_WINDOW_DAYS} days has expired."
            )

        items = self._validate_items(unit, dto)
        if self._return_repo.has_open_return(unit.id):
            raise ReturnAlreadyOpen(f"Unit {unit.unit_number} already has an open return.")

        return_request = ReturnRequest(
            unit=unit,
            buyer_id=order.buyer_id,
            reason=dto.reason,
            description=dto.description,
            pickup_address=dict(dto.pickup_address or order.shipping_address or {}),
        )
        return_request.add_domain_event(
            ReturnStatusChanged(
                aggregate_id=return_request.id,
                unit_id=unit.id,
                new_status=ReturnStatus.REQUESTED,
            )
        )
        try:
            with transaction.atomic():
                self._return_repo.save(return_request)
        except IntegrityError as exc:
            raise ReturnAlreadyOpen(
                f"Unit {unit.unit_number} already has an open return."
            ) from exc

        for item in items:
            item.return_request = return_request
        self._return_repo.add_items(items)
        log.info(
            "return.requested",
            return_id=str(return_request.id),
            return_number=return_request.return_number,
            item_count=len(items),
        )
        return self._return_repo.get_by_id(return_request.id) or return_request

    @transaction.atomic
    def update_status(
        self, ctx: RequestContext, dto: ReturnStatusUpdateDTO
    ) -> ReturnRequest:
        """Move a return through its states.

        Raises:
            ReturnNotFound: return does not exist.
            NotAuthorized: caller may not drive this transition.
            ValidationFailed: REJECTED without a rejection reason.
            InvalidStateTransition: transition not in the table.
            RefundInProgress: rejecting a return whose refund is processing.
            ConcurrentModification: another writer moved the return first.
        """
        return_request = self._return_repo.get_by_id(dto.return_id)
        if not return_request:
            raise ReturnNotFound(f"Return {dto.return_id} not found.")
        target = ReturnStatus(dto.status)
        self._authorize(ctx, return_request, target)

        log = logger.bind(
            return_id=str(return_request.id),
            return_number=return_request.return_number,
            current_status=return_request.status,
            new_status=target,
        )
        if not return_request.can_transition_to(target):
            log.warning("return.invalid_transition")
            raise InvalidStateTransition(return_request.status, target)

        extra: Dict[str, Any] = {}
        if target == ReturnStatus.REJECTED:
            if not dto.rejection_reason.strip():
                raise ValidationFailed(
                    "A rejection reason is required.",
                    code="rejection_reason_required",
                    attr="rejection_reason",
                )
            extra["rejection_reason"] = dto.rejection_reason.strip()
            self._cancel_refund(return_request)
        if dto.tracking_number:
            extra["tracking_number"] = dto.tracking_number

        old_status = return_request.status
        return_request.add_domain_event(
            ReturnStatusChanged(
                aggregate_id=return_request.id,
                unit_id=return_request.unit_id,
                old_status=old_status,
                new_status=target,
            )
        )
        self._return_repo.transition_return(return_request, target, extra)

        if target == ReturnStatus.COMPLETED:
            self._fulfillment.mark_returned(
                ctx,
                return_request.unit_id,
                notes=f"Return {return_request.return_number} completed",
            )
        log.info("return.status_changed")
        return return_request

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel_refund(self, return_request: ReturnRequest) -> None:
        """Cancel the unsettled refund of a return that is being rejected."""
        refund = self._return_repo.refund_for_return(return_request.id)
        if refund is None or refund.status in REFUND_SETTLED_STATES:
            return
        if not refund.can_transition_to(RefundStatus.CANCELLED):
            raise RefundInProgress(
                f"Refund {refund.refund_number} is {refund.status}; "
                "settle it before rejecting the return."
            )
        refund.add_domain_event(
            RefundStatusChanged(
                aggregate_id=refund.id,
                return_id=refund.return_request_id,
                old_status=refund.status,
                new_status=RefundStatus.CANCELLED,
                amount=str(refund.amount),
            )
        )
        self._return_repo.transition_refund(refund, RefundStatus.CANCELLED)
        logger.info(
            "refund.cancelled_with_return",
            refund_id=str(refund.id),
            return_id=str(return_request.id),
        )

    @staticmethod
    def _authorize(
        ctx: RequestContext, return_request: ReturnRequest, target: str
    ) -> None:
        if ctx.actor_kind == ActorKind.BUYER:
            ctx.require_buyer(return_request.buyer_id)
            if target != ReturnStatus.CANCELLED or return_request.status != ReturnStatus.REQUESTED:
                raise NotAuthorized("Buyers can only withdraw a return before it is approved.")
            return
        ctx.require_seller(return_request.unit.seller_id)

    @staticmethod
    def _validate_items(unit: FulfillmentUnit, dto: CreateReturnDTO) -> List[ReturnItem]:
        ordered = {item.id: item for item in unit.items.all()}
        items: List[ReturnItem] = []
        for line in dto.items:
            item = ordered.get(line.item_id)
            if item is None:
                raise InvalidReturnItem(
                    f"Item {line.item_id} is not part of unit {unit.unit_number}.",
                    code="item_not_in_unit",
                )
            if line.quantity > item.quantity:
                raise InvalidReturnItem(
                    f"Cannot return {line.quantity} of '{item.product_name}'; "
                    f"{item.quantity} ordered.",
                    code="return_quantity_exceeded",
                )
            claimed = to_money(line.refund_amount)
            paid = to_money(item.paid_per_unit * line.quantity)
            if claimed > paid:
                raise InvalidReturnItem(
                    f"Claimed {claimed} for '{item.product_name}' exceeds the {paid} paid.",
                    code="refund_amount_exceeded",
                )
            items.append(
                ReturnItem(fulfillment_item=item, quantity=line.quantity, refund_amount=claimed)
            )
        return items


class RefundService:
    def __init__(
        self,
        return_repository: IReturnRepository,
        inventory_provider: IInventoryProvider,
    ) -> None:
        self._return_repo = return_repository
        self._inventory = inventory_provider

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_refund(self, ctx: RequestContext, refund_id: Any) -> Refund:
        refund = self._return_repo.get_refund(refund_id)
        if not refund:
            raise RefundNotFound(f"Refund {refund_id} not found.")
        return_request = refund.return_request
        ctx.require_party(return_request.buyer_id, return_request.unit.seller_id)
        return refund

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_refund(self, ctx: RequestContext, dto: CreateRefundDTO) -> Refund:
        """Open a refund for an inspected return and initiate it.

        Raises:
            ReturnNotFound: return does not exist.
            NotAuthorized: caller is not the unit's seller.
            ReturnNotRefundable: the return was not inspected yet.
            RefundAlreadyExists: the return already has a refund.
            UnitRefundOpen: another return of the unit has an unsettled refund.
            RefundAmountExceeded: amount above the claimed total.
        """
        return_request = self._return_repo.get_by_id(dto.return_id)
        if not return_request:
            raise ReturnNotFound(f"Return {dto.return_id} not found.")
        ctx.require_seller(return_request.unit.seller_id)
        self._return_repo.lock_unit(return_request.unit_id)

        if return_request.status not in REFUNDABLE_RETURN_STATES:
            raise ReturnNotRefundable(
                f"Return {return_request.return_number} is {return_request.status}; "
                "refunds need an inspected return."
            )
        if self._return_repo.refund_for_return(return_request.id) is not None:
            raise RefundAlreadyExists(
                f"Return {return_request.return_number} already has a refund."
            )
        open_refund = self._return_repo.open_refund_for_unit(return_request.unit_id)
        if open_refund is not None:
            raise UnitRefundOpen(
                f"Refund {open_refund.refund_number} of this unit is still {open_refund.status}."
            )
        amount = to_money(dto.amount)
        claimed = return_request.claimed_amount
        if amount > claimed:
            raise RefundAmountExceeded(
                f"Refund of {amount} exceeds the {claimed} claimed.", attr="amount"
            )

        refund = Refund(
            return_request=return_request,
            amount=amount,
            method=dto.method,
            transaction_id=dto.transaction_id,
        )
        try:
            with transaction.atomic():
                self._return_repo.save_refund(refund)
        except IntegrityError as exc:
            raise RefundAlreadyExists(
                f"Return {return_request.return_number} already has a refund."
            ) from exc

        logger.info(
            "refund.created",
            refund_id=str(refund.id),
            refund_number=refund.refund_number,
            return_id=str(return_request.id),
            amount=str(amount),
        )
        return self._transition(refund, RefundStatus.INITIATED)

    @transaction.atomic
    def update_status(self, ctx: RequestContext, dto: RefundStatusUpdateDTO) -> Refund:
        """Move a refund through its states.

        Raises:
            RefundNotFound: refund does not exist.
            NotAuthorized: caller is not the unit's seller.
            ValidationFailed: FAILED without a failure reason.
            InvalidStateTransition: transition not in the table.
        """
        refund = self._return_repo.get_refund(dto.refund_id)
        if not refund:
            raise RefundNotFound(f"Refund {dto.refund_id} not found.")
        ctx.require_seller(refund.return_request.unit.seller_id)

        target = RefundStatus(dto.status)
        extra: Dict[str, Any] = {}
        if target == RefundStatus.FAILED:
            if not dto.failure_reason.strip():
                raise ValidationFailed(
                    "A failure reason is required.",
                    code="failure_reason_required",
                    attr="failure_reason",
                )
            extra["failure_reason"] = dto.failure_reason.strip()
        if dto.transaction_id:
            extra["transaction_id"] = dto.transaction_id

        refund = self._transition(refund, target, extra)
        if target == RefundStatus.COMPLETED:
            self._restock(refund)
        return refund

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(
        self,
        refund: Refund,
        target: str,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> Refund:
        log = logger.bind(
            refund_id=str(refund.id),
            refund_number=refund.refund_number,
            current_status=refund.status,
            new_status=target,
        )
        if not refund.can_transition_to(target):
            log.warning("refund.invalid_transition")
            raise InvalidStateTransition(refund.status, target)

        refund.add_domain_event(
            RefundStatusChanged(
                aggregate_id=refund.id,
                return_id=refund.return_request_id,
                old_status=refund.status,
                new_status=target,
                amount=str(refund.amount),
            )
        )
        self._return_repo.transition_refund(refund, target, extra_fields)
        log.info("refund.status_changed")
        return refund

    def _restock(self, refund: Refund) -> None:
        items = sorted(
            refund.return_request.items.all(),
            key=lambda i: str(i.fulfillment_item.variant_id),
        )
        for item in items:
            self._inventory.increment(item.fulfillment_item.variant_id, item.quantity)
        logger.info(
            "refund.restocked",
            refund_id=str(refund.id),
            item_count=len(items),
        )
