"""
Event Bus Port: publish/subscribe of synchronization events.

Orchestrators publish to it; listeners register per event class and may
narrow the registration to one producer (`source`) and one record
(`account_type`). One bus is typically shared by every orchestrator of a
process, so these filters are what keeps listeners of one orchestrator from
seeing another's events.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from ledger_sync.domain.events import SyncEvent

E = TypeVar("E", bound=SyncEvent)
EventHandler = Callable[[E], Awaitable[None]]


class EventBusPort(ABC):
    """
    Abstract interface for the sync event bus.

    Delivery rules:
    - A handler registered for a class also receives its subclasses
      (registering for SyncEvent observes everything).
    - Events are delivered in publish order, handlers in registration order.
    - A failing handler never prevents delivery to the others.
    """

    @abstractmethod
    async def start(self) -> None:
        """Switch to background delivery."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Deliver whatever is still pending and return to inline delivery."""
        ...

    @abstractmethod
    def subscribe(
        self,
        event_type: type[E],
        handler: EventHandler[E],
        *,
        source: str | None = None,
        account_type: Any = None,
    ) -> None:
        """
        Register a handler. Registering the same (type, handler, filters) twice is a no-op.

        Args:
            event_type: Event class to listen to (subclasses included).
            handler: Async callable receiving the event.
            source: Only deliver events published by this producer.
            account_type: Only deliver events about this record.
        """
        ...

    @abstractmethod
    def unsubscribe(
        self,
        event_type: type[E],
        handler: EventHandler[E],
        *,
        source: str | None = None,
        account_type: Any = None,
    ) -> None:
        """Remove a registration made with the same arguments. Unknown registrations are ignored."""
        ...

    @abstractmethod
    async def publish(self, event: SyncEvent) -> None:
        """Deliver an event to every matching registration."""
        ...

    @abstractmethod
    def subscriber_count(self, event_type: type[SyncEvent]) -> int:
        """Number of registrations made directly for an event class."""
        ...
