"""Order repository interface.

Extends ``IRepository[AggregateOrder]`` with what the checkout and the
fulfillment state machine need: unit look-ups, guarded status writes,
history and the idempotency / gateway reference look-ups.

The Service Layer depends exclusively on this contract.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.dtos import SellerStats
    from modules.orders.models import (
        AggregateOrder,
        FulfillmentItem,
        FulfillmentStatusHistory,
        FulfillmentUnit,
    )


class IOrderRepository(IRepository["AggregateOrder"]):
    """Repository contract for the AggregateOrder aggregate root.

    The aggregate includes FulfillmentUnit children (with their items and
    history).  Mutations run inside the caller's transaction.
    """

    @abstractmethod
    def get_by_id(self, id: Any) -> Optional[AggregateOrder]:
        """Retrieve an order with prefetched units, items and history."""

    @abstractmethod
    def get_for_update(self, id: Any) -> Optional[AggregateOrder]:
        """Retrieve an order holding a row lock for the transaction."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[AggregateOrder]:
        """Retrieve an order by its idempotency key."""

    @abstractmethod
    def get_by_payment_reference(self, reference: str) -> Optional[AggregateOrder]:
        """Match ``gateway_order_ref`` first, then ``order_number``."""

    @abstractmethod
    def get_unit(self, unit_id: Any) -> Optional[FulfillmentUnit]:
        """Retrieve a unit with its order and items."""

    @abstractmethod
    def get_unit_by_tracking_number(self, awb: str) -> Optional[FulfillmentUnit]:
        """Retrieve the unit shipped under carrier waybill *awb*."""

    @abstractmethod
    def save_unit(self, unit: FulfillmentUnit) -> FulfillmentUnit:
        """Persist a unit and flush its collected domain events."""

    @abstractmethod
    def transition_unit(
        self,
        unit: FulfillmentUnit,
        new_status: str,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> FulfillmentUnit:
        """Move *unit* from its in-memory status to *new_status*.

        The write only applies while the stored status still equals the
        in-memory one.

        Raises:
            ConcurrentModification: another writer moved the unit first.
        """

    @abstractmethod
    def add_history(
        self,
        unit_id: UUID,
        old_status: Optional[str],
        new_status: str,
        changed_by: Optional[UUID] = None,
        actor_kind: str = "system",
        notes: str = "",
    ) -> FulfillmentStatusHistory:
        """Record a unit status change in the audit trail."""

    @abstractmethod
    def unit_statuses(self, order_id: UUID) -> List[str]:
        """Current status of every unit of the order."""

    @abstractmethod
    def update_order_fields(self, order: AggregateOrder, **fields: Any) -> AggregateOrder:
        """Write the given columns of *order* and refresh the instance."""

    @abstractmethod
    def add_items(self, items: List[FulfillmentItem]) -> List[FulfillmentItem]:
        """Persist price-snapshot items of freshly created units."""

    @abstractmethod
    def update_unit_fields(self, unit: FulfillmentUnit, **fields: Any) -> FulfillmentUnit:
        """Write non-status columns (tracking details) of *unit*."""

    @abstractmethod
    def seller_stats(self, seller_id: UUID) -> SellerStats:
        """Unit counts by bucket and payout/fee sums over delivered units."""
