"""Coupon Engine.

``evaluate`` is read-only and may run before the order exists;
``redeem`` and ``release`` write and must run inside the caller's
transaction so a rolled-back checkout or cancellation also rolls back the
usage counter.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.db.models import F
from django.utils import timezone
from pydantic import BaseModel, ConfigDict

from modules.core.money import ZERO, to_money
from modules.coupons.constants import CouponType, RejectionReason
from modules.coupons.exceptions import CouponRejected
from modules.coupons.models import CouponRedemption, Promotion

if TYPE_CHECKING:
    from modules.orders.models import AggregateOrder

logger = structlog.get_logger(__name__)


class CouponQuote(BaseModel):
    """Result of a successful evaluation."""

    model_config = ConfigDict(frozen=True)

    promotion_id: UUID
    code: str
    discount: Decimal


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class CouponEngine:
    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def evaluate(
        self,
        code: str,
        buyer_id: UUID,
        subtotal: Decimal,
        now: Optional[datetime] = None,
    ) -> CouponQuote:
        """Validate *code* for *buyer_id* against an order *subtotal*.

        Raises:
            CouponRejected: with the first failing reason, checked in the
                order not_found, inactive, not_started / expired,
                usage_limit_exceeded, customer_limit_exceeded,
                min_order_not_met.
        """
        now = now or timezone.now()
        normalized = normalize_code(code)
        log = logger.bind(coupon_code=normalized, buyer_id=str(buyer_id))

        promotion = Promotion.objects.filter(code=normalized).first()
        reason = self._rejection_reason(promotion, buyer_id, subtotal, now)
        if reason is not None:
            log.info("coupon.rejected", reason=str(reason.value))
            raise CouponRejected(reason, coupon_code=normalized)

        discount = self.discount_for(promotion, subtotal)
        log.info("coupon.evaluated", discount=str(discount))
        return CouponQuote(promotion_id=promotion.id, code=promotion.code, discount=discount)

    @staticmethod
    def discount_for(promotion: Promotion, subtotal: Decimal) -> Decimal:
        subtotal = to_money(subtotal)
        if promotion.coupon_type == CouponType.PERCENTAGE:
            discount = to_money(subtotal * promotion.value / Decimal(100))
            if promotion.max_discount_amount is not None:
                discount = min(discount, to_money(promotion.max_discount_amount))
        else:
            discount = min(to_money(promotion.value), subtotal)
        return max(discount, ZERO)

    @staticmethod
    def redemptions_by(promotion_id: UUID, buyer_id: UUID) -> int:
        return CouponRedemption.objects.filter(
            promotion_id=promotion_id, buyer_id=buyer_id
        ).count()

    def _rejection_reason(
        self,
        promotion: Optional[Promotion],
        buyer_id: UUID,
        subtotal: Decimal,
        now: datetime,
    ) -> Optional[RejectionReason]:
        if promotion is None:
            return RejectionReason.NOT_FOUND
        if not promotion.is_active:
            return RejectionReason.INACTIVE
        if now < promotion.start_date:
            return RejectionReason.NOT_STARTED
        if now > promotion.end_date:
            return RejectionReason.EXPIRED
        if promotion.usage_count >= promotion.usage_limit:
            return RejectionReason.USAGE_LIMIT_EXCEEDED
        if self.redemptions_by(promotion.id, buyer_id) >= promotion.per_customer_limit:
            return RejectionReason.CUSTOMER_LIMIT_EXCEEDED
        if to_money(subtotal) < promotion.min_order_value:
            return RejectionReason.MIN_ORDER_NOT_MET
        return None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def redeem(
        self, quote: CouponQuote, buyer_id: UUID, order: AggregateOrder
    ) -> CouponRedemption:
        """Consume one use of the coupon for *order*.

        The promotion row is locked first so the same buyer's checkouts
        queue up behind each other and each re-counts their redemptions.
        The counter moves only while it is still below the limit, so
        concurrent checkouts can never push it past ``usage_limit``.
        """
        promotion = Promotion.objects.select_for_update().get(id=quote.promotion_id)
        if self.redemptions_by(promotion.id, buyer_id) >= promotion.per_customer_limit:
            logger.warning(
                "coupon.redeem_rejected",
                coupon_code=quote.code,
                order_id=str(order.id),
                reason=RejectionReason.CUSTOMER_LIMIT_EXCEEDED.value,
            )
            raise CouponRejected(
                RejectionReason.CUSTOMER_LIMIT_EXCEEDED, coupon_code=quote.code
            )

        updated = Promotion.objects.filter(
            id=quote.promotion_id, usage_count__lt=F("usage_limit")
        ).update(usage_count=F("usage_count") + 1, updated_at=timezone.now())
        if not updated:
            logger.warning(
                "coupon.redeem_rejected",
                coupon_code=quote.code,
                order_id=str(order.id),
                reason=RejectionReason.USAGE_LIMIT_EXCEEDED.value,
            )
            raise CouponRejected(
                RejectionReason.USAGE_LIMIT_EXCEEDED, coupon_code=quote.code
            )

        redemption = CouponRedemption.objects.create(
            promotion_id=quote.promotion_id,
            buyer_id=buyer_id,
            order=order,
            discount_amount=quote.discount,
        )
        logger.info(
            "coupon.redeemed",
            coupon_code=quote.code,
            order_id=str(order.id),
            buyer_id=str(buyer_id),
        )
        return redemption

    @transaction.atomic
    def release(self, order: AggregateOrder) -> bool:
        """Undo the redemption recorded for *order*, if any."""
        redemption = (
            CouponRedemption.objects.select_for_update().filter(order=order).first()
        )
        if redemption is None:
            return False
        promotion_id = redemption.promotion_id
        redemption.delete()
        Promotion.objects.filter(id=promotion_id, usage_count__gt=0).update(
            usage_count=F("usage_count") - 1, updated_at=timezone.now()
        )
        logger.info(
            "coupon.released", order_id=str(order.id), promotion_id=str(promotion_id)
        )
        return True
