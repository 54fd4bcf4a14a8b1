"""Order service layer (Use Cases).

``CheckoutService`` decomposes a buyer's cart into one AggregateOrder and
one FulfillmentUnit per seller.  ``FulfillmentService`` drives the unit
state machine and keeps the aggregate status derived from the units.

Business rules enforced:
- Checkout is all-or-nothing: stock shortfall, unknown variants or a
  rejected coupon leave no order, no stock change and no coupon usage.
- The coupon discount is applied once at the aggregate level and absorbed
  by the platform; seller payouts are computed on undiscounted subtotals.
- Unit transitions follow ``VALID_TRANSITIONS`` and are written with an
  optimistic status guard.
- ``RETURNED`` is only reachable through the return workflow.
- Cancelling a unit restocks its items; cancelling the whole order also
  releases the coupon usage.
"""

from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.core.context import ActorKind, RequestContext
from modules.core.exceptions import (
    InvalidStateTransition,
    NotAuthorized,
    ValidationFailed,
)
from modules.core.money import ZERO, money_sum, to_money
from modules.orders.constants import (
    CANCELLABLE_STATES,
    FORWARD_PATH,
    AggregateStatus,
    FulfillmentStatus,
    PaymentMethod,
    PaymentStatus,
    derive_aggregate_status,
)
from modules.orders.events import OrderCancelled, OrderPlaced, UnitStatusChanged
from modules.orders.exceptions import (
    EmptyCart,
    InsufficientStock,
    OrderNotCancellable,
    OrderNotFound,
    ProductNotFound,
    UnitNotFound,
)
from modules.orders.models import AggregateOrder, FulfillmentItem, FulfillmentUnit
from modules.pricing.dtos import PricedLine
from modules.pricing.services import TaxCommissionCalculator

if TYPE_CHECKING:
    from modules.carts.dtos import CartLine
    from modules.carts.providers import ICartProvider
    from modules.coupons.services import CouponEngine, CouponQuote
    from modules.inventory.dtos import VariantInfo
    from modules.inventory.providers import IInventoryProvider
    from modules.orders.dtos import (
        PlaceOrderDTO,
        SellerStats,
        TrackingUpdateDTO,
        UnitStatusUpdateDTO,
    )
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


def _enqueue(task: Any, *args: Any) -> None:
    """Hand *task* to celery; failures are logged and never propagated."""
    try:
        task.delay(*args)
    except Exception:
        logger.exception("fulfillment.side_effect_enqueue_failed", task=task.name)


class CheckoutService:
    """Application service for placing orders.

    Receives its collaborators via constructor injection.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        cart_provider: ICartProvider,
        inventory_provider: IInventoryProvider,
        coupon_engine: CouponEngine,
        calculator_factory: Callable[[], TaxCommissionCalculator] = TaxCommissionCalculator,
    ) -> None:
        self._order_repo = order_repository
        self._carts = cart_provider
        self._inventory = inventory_provider
        self._coupons = coupon_engine
        self._calculator_factory = calculator_factory

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def place_order(self, ctx: RequestContext, dto: PlaceOrderDTO) -> AggregateOrder:
        """Turn the buyer's active cart into an order with per-seller units.

        Steps:
        1. Idempotency look-up.
        2. Load cart and resolve every variant.
        3. Group lines by seller (first-appearance order).
        4. Evaluate the coupon against the aggregate subtotal.
        5. Price each unit and the order.
        6. Persist order, units, items and initial history.
        7. Decrement stock (sorted by variant id), redeem coupon, consume cart.

        Raises:
            EmptyCart: no active cart or no lines.
            ProductNotFound: a cart line references an unknown variant.
            CouponRejected: the coupon does not apply.
            InsufficientStock: a variant is short; nothing is persisted.
        """
        ctx.require_buyer(dto.buyer_id)
        log = logger.bind(buyer_id=str(dto.buyer_id))
        log.info("order.checkout_started")

        # 0. Idempotency check
        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing:
                if existing.buyer_id != dto.buyer_id:
                    raise NotAuthorized("Idempotency key belongs to another buyer.")
                log.info(
                    "order.idempotency_hit",
                    order_id=str(existing.id),
                    key=dto.idempotency_key,
                )
                return existing

        # 1. Cart and variants
        cart = self._carts.get_active_cart(dto.buyer_id, dto.cart_id)
        if cart is None or cart.is_empty:
            raise EmptyCart("Cart is empty.")

        variants = self._inventory.get_variants(line.variant_id for line in cart.lines)
        for line in cart.lines:
            variant = variants.get(line.variant_id)
            if variant is None or not variant.is_active:
                raise ProductNotFound(
                    f"Product variant {line.variant_id} not found.", attr="items"
                )

        shipping_address = dict(dto.shipping_address or cart.shipping_address or {})
        if not shipping_address:
            raise ValidationFailed(
                "A shipping address is required.",
                code="shipping_address_required",
                attr="shipping_address",
            )

        # 2. Price every cart line, then group by seller preserving first
        # appearance. Lines repeating a variant stay separate items.
        priced: List[PricedLine] = [
            PricedLine(
                category_id=variants[line.variant_id].category_id,
                quantity=line.quantity,
                unit_price=to_money(line.unit_price),
            )
            for line in cart.lines
        ]
        groups: Dict[UUID, List[Tuple[CartLine, PricedLine]]] = OrderedDict()
        for line, priced_line in zip(cart.lines, priced):
            groups.setdefault(variants[line.variant_id].seller_id, []).append(
                (line, priced_line)
            )

        calculator = self._calculator_factory()
        subtotal = money_sum(p.subtotal for p in priced)

        # 3. Coupon (aggregate level)
        quote: Optional[CouponQuote] = None
        if dto.coupon_code:
            quote = self._coupons.evaluate(dto.coupon_code, dto.buyer_id, subtotal)
        discount = quote.discount if quote else ZERO

        # 4. Unit and order money
        unit_charges = []
        for seller_id, pairs in groups.items():
            lines = [line for line, _ in pairs]
            seller_lines = [priced_line for _, priced_line in pairs]
            unit_subtotal = money_sum(p.subtotal for p in seller_lines)
            charges = calculator.compute_unit(
                seller_id, seller_lines, calculator.shipping_fee_for(unit_subtotal)
            )
            unit_charges.append((seller_id, lines, charges))

        shipping_amount = money_sum(c.shipping_fee for _, _, c in unit_charges)
        tax_amount = calculator.order_tax(priced, discount)
        final_amount = subtotal - discount + tax_amount + shipping_amount

        # 5. Persist order + units + items
        order = AggregateOrder(
            buyer_id=dto.buyer_id,
            status=AggregateStatus.PENDING,
            total_amount=subtotal,
            discount_amount=discount,
            shipping_amount=shipping_amount,
            tax_amount=tax_amount,
            final_amount=final_amount,
            payment_method=dto.payment_method,
            payment_status=PaymentStatus.PENDING,
            coupon_code=quote.code if quote else "",
            shipping_address=shipping_address,
            notes=dto.notes or "",
            idempotency_key=dto.idempotency_key,
        )
        self._order_repo.save(order)
        log = log.bind(order_id=str(order.id), order_number=order.order_number)

        for index, (seller_id, lines, charges) in enumerate(unit_charges, start=1):
            unit = FulfillmentUnit(
                order=order,
                seller_id=seller_id,
                unit_number=f"{order.order_number}-S{index}",
                sequence=index,
                subtotal=charges.subtotal,
                shipping_fee=charges.shipping_fee,
                tax_amount=charges.tax_amount,
                platform_fee=charges.platform_fee,
                seller_payout=charges.seller_payout,
                commission_rate=charges.commission_rate,
                status=FulfillmentStatus.PENDING,
            )
            self._order_repo.save_unit(unit)
            self._order_repo.add_items(
                [
                    self._build_item(unit, line, variants[line.variant_id], line_tax)
                    for line, line_tax in zip(lines, charges.line_taxes)
                ]
            )
            self._order_repo.add_history(
                unit_id=unit.id,
                old_status=None,
                new_status=FulfillmentStatus.PENDING,
                changed_by=ctx.audit_id,
                actor_kind=str(ctx.actor_kind),
                notes="Order placed",
            )

        # 6. Stock - sorted by variant id to keep lock order stable
        quantities: Dict[UUID, int] = {}
        for line in cart.lines:
            quantities[line.variant_id] = quantities.get(line.variant_id, 0) + line.quantity
        for variant_id in sorted(quantities, key=str):
            if not self._inventory.try_decrement(variant_id, quantities[variant_id]):
                variant = variants[variant_id]
                log.warning(
                    "order.insufficient_stock",
                    variant_id=str(variant_id),
                    requested=quantities[variant_id],
                )
                raise InsufficientStock(
                    variant.product_name, quantities[variant_id], variant.available
                )

        # 7. Coupon usage + cart
        if quote is not None:
            self._coupons.redeem(quote, dto.buyer_id, order)
        self._carts.consume_cart(cart.cart_id)

        order.add_domain_event(
            OrderPlaced(
                aggregate_id=order.id,
                order_number=order.order_number,
                buyer_id=order.buyer_id,
                unit_count=len(unit_charges),
                final_amount=str(final_amount),
            )
        )
        self._order_repo.save(order)

        log.info(
            "order.placed",
            unit_count=len(unit_charges),
            final_amount=str(final_amount),
            discount=str(discount),
        )
        return self._order_repo.get_by_id(order.id) or order

    @staticmethod
    def _build_item(
        unit: FulfillmentUnit, line: CartLine, variant: VariantInfo, line_tax: Decimal
    ) -> FulfillmentItem:
        unit_price = to_money(line.unit_price)
        return FulfillmentItem(
            unit=unit,
            product_id=variant.product_id,
            variant_id=variant.variant_id,
            category_id=variant.category_id,
            sku=variant.sku,
            product_name=variant.product_name,
            quantity=line.quantity,
            unit_price=unit_price,
            discount=to_money(line.discount),
            tax_amount=line_tax,
            line_total=unit_price * line.quantity,
        )


class FulfillmentService:
    """Fulfillment state machine over FulfillmentUnits.

    Every transition appends history, recomputes the aggregate status in
    the same transaction and emits ``UnitStatusChanged``.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        inventory_provider: IInventoryProvider,
        coupon_engine: CouponEngine,
    ) -> None:
        self._order_repo = order_repository
        self._inventory = inventory_provider
        self._coupons = coupon_engine

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, ctx: RequestContext, order_id: Any) -> AggregateOrder:
        """Order visible to its buyer, to sellers with a unit in it, and admins.

        Raises:
            OrderNotFound: if the order does not exist.
            NotAuthorized: the caller is not a party to the order.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        if ctx.actor_kind == ActorKind.SELLER:
            if not any(unit.seller_id == ctx.actor_id for unit in order.units.all()):
                raise NotAuthorized("You have no fulfillment unit in this order.")
        else:
            ctx.require_buyer(order.buyer_id)
        return order

    def get_unit(self, ctx: RequestContext, unit_id: Any) -> FulfillmentUnit:
        unit = self._order_repo.get_unit(unit_id)
        if not unit:
            raise UnitNotFound(f"Fulfillment unit {unit_id} not found.")
        ctx.require_party(unit.order.buyer_id, unit.seller_id)
        return unit

    def seller_stats(self, ctx: RequestContext, seller_id: UUID) -> SellerStats:
        """Dashboard counts for one seller.

        Pending, processing (confirmed to packed), in transit (shipped or
        out for delivery) and delivered units, with payout and platform fee
        summed over delivered units only.

        Raises:
            NotAuthorized: the caller is neither that seller nor an admin.
        """
        ctx.require_seller(seller_id)
        stats = self._order_repo.seller_stats(seller_id)
        logger.info(
            "fulfillment.seller_stats",
            seller_id=str(seller_id),
            total_units=stats.total_units,
        )
        return stats

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def update_unit_status(
        self, ctx: RequestContext, dto: UnitStatusUpdateDTO
    ) -> FulfillmentUnit:
        """Seller-driven transition of one unit.

        Raises:
            UnitNotFound: unit does not exist.
            NotAuthorized: caller is not the unit's seller.
            ValidationFailed: RETURNED requested directly, or the unit is
                confirmed before an online payment was captured.
            InvalidStateTransition: transition not in the table.
            ConcurrentModification: another writer moved the unit first.
        """
        unit = self._order_repo.get_unit(dto.unit_id)
        if not unit:
            raise UnitNotFound(f"Fulfillment unit {dto.unit_id} not found.")
        ctx.require_seller(unit.seller_id)

        target = FulfillmentStatus(dto.status)
        if target == FulfillmentStatus.RETURNED:
            raise ValidationFailed(
                "Units are returned through the return workflow.",
                code="return_workflow_required",
                attr="status",
            )
        if target == FulfillmentStatus.CANCELLED:
            return self._cancel(ctx, unit, dto.notes or "Cancelled by seller")
        if target == FulfillmentStatus.CONFIRMED and unit.status == FulfillmentStatus.PENDING:
            order = unit.order
            if (
                order.payment_method != PaymentMethod.CASH_ON_DELIVERY
                and order.payment_status != PaymentStatus.PAID
            ):
                raise ValidationFailed(
                    "The order has not been paid yet.",
                    code="payment_pending",
                    attr="status",
                )

        extra: Dict[str, Any] = {}
        for field in ("tracking_number", "courier_name", "tracking_url"):
            value = getattr(dto, field)
            if value:
                extra[field] = value
        return self._transition(ctx, unit, target, notes=dto.notes, extra_fields=extra)

    @transaction.atomic
    def confirm_unit(
        self, ctx: RequestContext, unit_id: Any, notes: str = ""
    ) -> FulfillmentUnit:
        """Move a PENDING unit to CONFIRMED (payment capture, admin)."""
        unit = self._order_repo.get_unit(unit_id)
        if not unit:
            raise UnitNotFound(f"Fulfillment unit {unit_id} not found.")
        ctx.require_seller(unit.seller_id)
        return self._transition(ctx, unit, FulfillmentStatus.CONFIRMED, notes=notes)

    @transaction.atomic
    def cancel_unit(
        self, ctx: RequestContext, unit_id: Any, reason: str = ""
    ) -> FulfillmentUnit:
        """Cancel one unit (buyer or seller); its stock goes back.

        Raises:
            InvalidStateTransition: unit is past CONFIRMED.
        """
        unit = self._order_repo.get_unit(unit_id)
        if not unit:
            raise UnitNotFound(f"Fulfillment unit {unit_id} not found.")
        ctx.require_party(unit.order.buyer_id, unit.seller_id)
        return self._cancel(ctx, unit, reason or "Cancelled")

    @transaction.atomic
    def cancel_order(
        self, ctx: RequestContext, order_id: Any, reason: str = ""
    ) -> AggregateOrder:
        """Cancel every unit of an order and release its coupon usage.

        Acquires a row-level lock on the order first so two concurrent
        cancellations cannot restock twice.

        Raises:
            OrderNotFound: order does not exist.
            OrderNotCancellable: a unit is past CONFIRMED.
            InvalidStateTransition: the order is already cancelled.
        """
        order = self._order_repo.get_for_update(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        ctx.require_buyer(order.buyer_id)

        log = logger.bind(order_id=str(order.id), current_status=order.status)
        units = list(order.units.prefetch_related("items").order_by("sequence"))
        blocking = [
            u.unit_number
            for u in units
            if u.status not in CANCELLABLE_STATES and u.status != FulfillmentStatus.CANCELLED
        ]
        if blocking:
            log.warning("order.cancel_not_allowed", blocking_units=blocking)
            raise OrderNotCancellable(
                f"Units {', '.join(blocking)} can no longer be cancelled."
            )
        cancellable = [u for u in units if u.status in CANCELLABLE_STATES]
        if not cancellable:
            raise InvalidStateTransition(order.status, AggregateStatus.CANCELLED)

        notes = reason or "Order cancelled"
        for unit in cancellable:
            unit.order = order
            self._cancel(ctx, unit, notes, release_coupon=False)

        self._coupons.release(order)
        order.add_domain_event(OrderCancelled(aggregate_id=order.id, reason=notes))
        self._order_repo.update_order_fields(order, cancelled_at=timezone.now())

        log.info("order.cancelled", unit_count=len(cancellable))
        return self._order_repo.get_by_id(order.id) or order

    @transaction.atomic
    def mark_returned(
        self, ctx: RequestContext, unit_id: Any, notes: str = ""
    ) -> FulfillmentUnit:
        """DELIVERED -> RETURNED, called by the return workflow on completion."""
        unit = self._order_repo.get_unit(unit_id)
        if not unit:
            raise UnitNotFound(f"Fulfillment unit {unit_id} not found.")
        return self._transition(ctx, unit, FulfillmentStatus.RETURNED, notes=notes)

    @transaction.atomic
    def apply_tracking_update(
        self, ctx: RequestContext, dto: TrackingUpdateDTO
    ) -> FulfillmentUnit:
        """Carrier-driven forward move.

        When the carrier reports a state ahead of the next one, the unit
        walks through the intermediate states.  Reports that would move the
        unit backwards, or that arrive for a cancelled or returned unit, are
        ignored.
        """
        unit = self._order_repo.get_unit(dto.unit_id)
        if not unit:
            raise UnitNotFound(f"Fulfillment unit {dto.unit_id} not found.")
        log = logger.bind(unit_id=str(unit.id), current_status=unit.status, reported=dto.status)

        if unit.status not in FORWARD_PATH or dto.status not in FORWARD_PATH:
            log.info("fulfillment.tracking_update_ignored")
            return unit
        current = FORWARD_PATH.index(unit.status)
        target = FORWARD_PATH.index(dto.status)
        if target <= current:
            log.info("fulfillment.tracking_update_ignored")
            return unit

        notes = dto.remarks or f"Carrier update: {dto.location}".strip()
        for step in FORWARD_PATH[current + 1 : target + 1]:
            self._transition(ctx, unit, step, notes=notes)
        return unit

    def recompute_aggregate(self, order: AggregateOrder) -> str:
        """Derive and persist the aggregate status of *order*."""
        derived = derive_aggregate_status(self._order_repo.unit_statuses(order.id))
        if derived != order.status:
            logger.info(
                "order.aggregate_status_changed",
                order_id=str(order.id),
                old_status=order.status,
                new_status=derived,
            )
            self._order_repo.update_order_fields(order, status=derived)
        return derived

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(
        self,
        ctx: RequestContext,
        unit: FulfillmentUnit,
        target: str,
        notes: str = "",
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> FulfillmentUnit:
        log = logger.bind(
            unit_id=str(unit.id),
            unit_number=unit.unit_number,
            current_status=unit.status,
            new_status=target,
        )
        if not unit.can_transition_to(target):
            log.warning("fulfillment.invalid_transition")
            raise InvalidStateTransition(unit.status, target)

        old_status = unit.status
        unit.add_domain_event(
            UnitStatusChanged(
                aggregate_id=unit.id,
                order_id=unit.order_id,
                seller_id=unit.seller_id,
                old_status=old_status,
                new_status=target,
            )
        )
        self._order_repo.transition_unit(unit, target, extra_fields)
        self._order_repo.add_history(
            unit_id=unit.id,
            old_status=old_status,
            new_status=target,
            changed_by=ctx.audit_id,
            actor_kind=str(ctx.actor_kind),
            notes=notes,
        )
        aggregate = self.recompute_aggregate(unit.order)
        log.info("fulfillment.status_changed", aggregate_status=aggregate)

        if target == FulfillmentStatus.CONFIRMED:
            self._schedule_confirmation_effects(unit)
        return unit

    def _cancel(
        self,
        ctx: RequestContext,
        unit: FulfillmentUnit,
        notes: str,
        release_coupon: bool = True,
    ) -> FulfillmentUnit:
        self._transition(ctx, unit, FulfillmentStatus.CANCELLED, notes=notes)
        for item in sorted(unit.items.all(), key=lambda i: str(i.variant_id)):
            self._inventory.increment(item.variant_id, item.quantity)
        if release_coupon and unit.order.status == AggregateStatus.CANCELLED:
            self._coupons.release(unit.order)
        return unit

    @staticmethod
    def _schedule_confirmation_effects(unit: FulfillmentUnit) -> None:
        """Invoice and shipment creation run after commit, fire-and-forget."""
        from modules.invoices.tasks import generate_order_invoices
        from modules.shipping.tasks import create_unit_shipment

        order_id = str(unit.order_id)
        unit_id = str(unit.id)
        transaction.on_commit(lambda: _enqueue(generate_order_invoices, order_id))
        transaction.on_commit(lambda: _enqueue(create_unit_shipment, unit_id))
