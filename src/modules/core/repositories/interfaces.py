"""Generic repository interface.

Provides ``IRepository[T]``, the base contract extended by every
aggregate-specific repository (orders, returns).  Services depend on this
abstraction and receive the Django implementation through their
constructor.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class IRepository(ABC, Generic[T]):
    """Base generic repository contract.

    ``T`` is the aggregate root managed by the repository
    (e.g. ``AggregateOrder``, ``ReturnRequest``).
    """

    @abstractmethod
    def get_by_id(self, id: Any) -> Optional[T]:
        """Retrieve an aggregate by primary key (``None`` when absent)."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[T]:
        """List aggregates with optional ORM look-ups."""

    @abstractmethod
    def save(self, entity: T) -> T:
        """Persist the aggregate and flush its collected domain events."""
