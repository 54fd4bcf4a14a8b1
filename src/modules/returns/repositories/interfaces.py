"""Return repository interface.

Covers ReturnRequest (the aggregate root), its items and its refund.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.returns.models import Refund, ReturnItem, ReturnRequest


class IReturnRepository(IRepository["ReturnRequest"]):
    @abstractmethod
    def get_by_id(self, id: Any) -> Optional[ReturnRequest]:
        """Retrieve a return with its items, unit and order."""

    @abstractmethod
    def has_open_return(self, unit_id: UUID) -> bool:
        """Whether the unit already has a non-terminal return."""

    @abstractmethod
    def add_items(self, items: List[ReturnItem]) -> List[ReturnItem]: ...

    @abstractmethod
    def transition_return(
        self,
        return_request: ReturnRequest,
        new_status: str,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> ReturnRequest:
        """Guarded status write; raises ``ConcurrentModification`` on a lost race."""

    @abstractmethod
    def get_refund(self, id: Any) -> Optional[Refund]: ...

    @abstractmethod
    def save_refund(self, refund: Refund) -> Refund: ...

    @abstractmethod
    def transition_refund(
        self,
        refund: Refund,
        new_status: str,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> Refund:
        """Guarded status write; raises ``ConcurrentModification`` on a lost race."""

    @abstractmethod
    def refund_for_return(self, return_id: UUID) -> Optional[Refund]: ...

    @abstractmethod
    def open_refund_for_unit(self, unit_id: UUID) -> Optional[Refund]:
        """The unit's refund that is neither completed nor cancelled, if any."""

    @abstractmethod
    def lock_unit(self, unit_id: UUID) -> None:
        """Row-lock the fulfillment unit until the transaction ends."""
