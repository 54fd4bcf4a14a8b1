"""Domain bus interfaces for in-process event handling.

Producers never call the bus directly: ``flush_domain_events`` writes the
outbox row and schedules ``publish`` for after the surrounding commit.
"""

from __future__ import annotations

from typing import Generic, List, Protocol, Type, TypeVar

from shared.domain.events import DomainEvent

E = TypeVar("E", bound=DomainEvent, contravariant=True)


class IEventHandler(Protocol, Generic[E]):
    """Handler interface for domain events."""

    def handle(self, event: E) -> None: ...


class IEventBus(Protocol):
    """Event bus interface.

    ``subscribe`` is idempotent per ``(event_class, handler)`` pair.
    """

    def publish(self, event: DomainEvent) -> None: ...

    def subscribe(self, event_class: Type[E], handler: IEventHandler[E]) -> None: ...

    def handlers_for(self, event_class: Type[DomainEvent]) -> List[IEventHandler]: ...
