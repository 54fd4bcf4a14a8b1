"""Inventory provider contract and its Django implementation.

Services depend on ``IInventoryProvider``; the checkout and the
cancellation / refund compensations are the only writers of stock.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Iterable
from uuid import UUID

import structlog
from django.db.models import F

from modules.inventory.dtos import VariantInfo
from modules.inventory.models import StockRecord

logger = structlog.get_logger(__name__)


class IInventoryProvider(ABC):
    @abstractmethod
    def get_variants(self, variant_ids: Iterable[UUID]) -> Dict[UUID, VariantInfo]:
        """Resolve variants by id; unknown ids are simply absent."""

    @abstractmethod
    def try_decrement(self, variant_id: UUID, quantity: int) -> bool:
        """Atomically take *quantity* from stock; ``False`` on shortfall."""

    @abstractmethod
    def increment(self, variant_id: UUID, quantity: int) -> None:
        """Return *quantity* to stock."""


class DjangoInventoryProvider(IInventoryProvider):
    """``StockRecord``-backed provider using conditional updates."""

    def get_variants(self, variant_ids: Iterable[UUID]) -> Dict[UUID, VariantInfo]:
        records = StockRecord.objects.filter(variant_id__in=list(variant_ids))
        return {
            record.variant_id: VariantInfo(
                variant_id=record.variant_id,
                product_id=record.product_id,
                seller_id=record.seller_id,
                category_id=record.category_id,
                sku=record.sku,
                product_name=record.product_name,
                available=record.stock,
                is_active=record.is_active,
            )
            for record in records
        }

    def try_decrement(self, variant_id: UUID, quantity: int) -> bool:
        updated = StockRecord.objects.filter(
            variant_id=variant_id, stock__gte=quantity
        ).update(stock=F("stock") - quantity)
        if not updated:
            logger.warning(
                "inventory.decrement_rejected",
                variant_id=str(variant_id),
                quantity=quantity,
            )
            return False
        logger.info(
            "inventory.decremented", variant_id=str(variant_id), quantity=quantity
        )
        return True

    def increment(self, variant_id: UUID, quantity: int) -> None:
        updated = StockRecord.objects.filter(variant_id=variant_id).update(
            stock=F("stock") + quantity
        )
        if not updated:
            logger.warning(
                "inventory.restock_skipped_unknown_variant",
                variant_id=str(variant_id),
                quantity=quantity,
            )
            return
        logger.info("inventory.restocked", variant_id=str(variant_id), quantity=quantity)
