"""Cart provider contract and its Django implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

import structlog
from django.utils import timezone

from modules.carts.dtos import CartLine, CartSnapshot
from modules.carts.models import Cart, CartStatus

logger = structlog.get_logger(__name__)


class ICartProvider(ABC):
    @abstractmethod
    def get_active_cart(
        self, buyer_id: UUID, cart_id: Optional[UUID] = None
    ) -> Optional[CartSnapshot]:
        """Return the buyer's active cart (or the given one, if it is theirs)."""

    @abstractmethod
    def consume_cart(self, cart_id: UUID) -> None:
        """Mark the cart as turned into an order."""


class DjangoCartProvider(ICartProvider):
    def get_active_cart(
        self, buyer_id: UUID, cart_id: Optional[UUID] = None
    ) -> Optional[CartSnapshot]:
        queryset = Cart.objects.filter(buyer_id=buyer_id, status=CartStatus.ACTIVE)
        if cart_id is not None:
            queryset = queryset.filter(id=cart_id)
        cart = queryset.prefetch_related("items").first()
        if cart is None:
            return None
        return CartSnapshot(
            cart_id=cart.id,
            buyer_id=cart.buyer_id,
            shipping_address=cart.shipping_address or {},
            lines=[
                CartLine(
                    variant_id=item.variant_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    discount=item.discount,
                )
                for item in cart.items.all()
            ],
        )

    def consume_cart(self, cart_id: UUID) -> None:
        updated = Cart.objects.filter(id=cart_id, status=CartStatus.ACTIVE).update(
            status=CartStatus.CONSUMED,
            consumed_at=timezone.now(),
            updated_at=timezone.now(),
        )
        logger.info("cart.consumed", cart_id=str(cart_id), updated=bool(updated))
