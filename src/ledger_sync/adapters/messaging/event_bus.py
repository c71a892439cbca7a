"""
In-Memory Event Bus Implementation.

Routes sync events to handlers by event class, producer and record.
Handlers are awaited one after another in registration order so a listener
always observes one orchestrator's events in the order they were published;
handler exceptions are logged, never propagated to the publisher.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from ledger_sync.domain.events import SyncEvent
from ledger_sync.observability.logging import get_logger
from ledger_sync.ports.event_bus import E, EventBusPort, EventHandler

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True, eq=False)
class _Route:
    handler: EventHandler[Any]
    source: str | None = None
    account_type: Any = None

    def same(self, handler: EventHandler[Any], source: str | None, account_type: Any) -> bool:
        # Handlers compare by identity: two equal-looking callables are still two listeners
        return self.handler is handler and self.source == source and self.account_type == account_type

    def matches(self, event: SyncEvent) -> bool:
        if self.source is not None and event.source != self.source:
            return False
        if self.account_type is not None and getattr(event, "account_type", None) != self.account_type:
            return False
        return True


class InMemoryEventBus(EventBusPort):
    """
    In-memory async event bus.

    Features:
    - Routes keyed by event class; base-class routes see subclasses
    - Optional `source` / `account_type` filters per route
    - Exception isolation (one failing handler doesn't affect others)
    - Inline delivery until started, single worker task afterwards
    - stop() delivers every queued event before returning
    """

    def __init__(self):
        self._routes: dict[type[SyncEvent], list[_Route]] = defaultdict(list)
        self._queue: asyncio.Queue[SyncEvent | None] | None = None
        self._worker: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._worker is not None

    async def start(self) -> None:
        if self._worker is not None:
            return

        queue: asyncio.Queue[SyncEvent | None] = asyncio.Queue()
        self._queue = queue
        self._worker = asyncio.create_task(self._run(queue), name="sync_event_bus")
        logger.debug("[SYNC] event bus started")

    async def stop(self) -> None:
        worker, queue = self._worker, self._queue
        if worker is None or queue is None:
            return

        # Publishes from here on are delivered inline
        self._worker = None
        self._queue = None

        queue.put_nowait(None)
        await worker
        logger.debug("[SYNC] event bus stopped")

    def subscribe(
        self,
        event_type: type[E],
        handler: EventHandler[E],
        *,
        source: str | None = None,
        account_type: Any = None,
    ) -> None:
        routes = self._routes[event_type]
        if any(route.same(handler, source, account_type) for route in routes):
            return
        routes.append(_Route(handler, source, account_type))

    def unsubscribe(
        self,
        event_type: type[E],
        handler: EventHandler[E],
        *,
        source: str | None = None,
        account_type: Any = None,
    ) -> None:
        routes = self._routes.get(event_type)
        if not routes:
            return
        routes[:] = [route for route in routes if not route.same(handler, source, account_type)]
        if not routes:
            del self._routes[event_type]

    async def publish(self, event: SyncEvent) -> None:
        if self._queue is None:
            await self._deliver(event)
        else:
            self._queue.put_nowait(event)

    def subscriber_count(self, event_type: type[SyncEvent]) -> int:
        return len(self._routes.get(event_type, ()))

    async def _run(self, queue: asyncio.Queue[SyncEvent | None]) -> None:
        while (event := await queue.get()) is not None:
            await self._deliver(event)

    def _matching(self, event: SyncEvent) -> list[_Route]:
        matching: list[_Route] = []
        for cls in type(event).__mro__:
            for route in self._routes.get(cls, ()):
                if route.matches(event):
                    matching.append(route)
        return matching

    async def _deliver(self, event: SyncEvent) -> None:
        for route in self._matching(event):
            try:
                await route.handler(event)
            except Exception:
                handler_name = getattr(route.handler, "__name__", repr(route.handler))
                logger.exception(
                    f"[SYNC] handler {handler_name} failed for {event.event_type} from {event.source or '?'}",
                    extra={"event_id": event.event_id},
                )
