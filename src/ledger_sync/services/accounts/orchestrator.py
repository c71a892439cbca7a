"""
Multi-account orchestrator.

Composes one AccountSubscriber per requested record into a single unit with
one lifecycle:

    UNSUBSCRIBED --subscribe()--> SUBSCRIBING --ok--> SUBSCRIBED
         ^                            |                   |
         +-------- failure -----------+                   |
         +------------------- unsubscribe() --------------+

Concurrent subscribe() calls share one resolution. Record addresses are
resolved level by level: roots are known up front, each derived record's
address is read out of its parent's decoded value.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from functools import partial
from typing import Any, Generic, TypeVar

from ledger_sync.adapters.messaging.event_bus import InMemoryEventBus
from ledger_sync.domain.accounts import AccountSpec
from ledger_sync.domain.errors import AccountNotFoundError, NotSubscribedError, SyncError
from ledger_sync.domain.events import (
    AccountFetched,
    AccountUpdated,
    Fetched,
    SyncErrorOccurred,
    SyncEvent,
    Updated,
)
from ledger_sync.domain.models import AccountSnapshot, Address, SubscriptionState
from ledger_sync.observability.logging import get_logger
from ledger_sync.services.accounts.context import (
    PollingSubscriptionConfig,
    SubscriptionConfig,
    SyncContext,
    create_account_subscriber,
)
from ledger_sync.services.accounts.subscriber import AccountSubscriber

logger = get_logger(__name__)

K = TypeVar("K")
E = TypeVar("E", bound=SyncEvent)

NOT_SUBSCRIBED_MESSAGE = "You must call `subscribe` before using this function"


async def _gather_all(*aws: Awaitable[Any]) -> list[Any]:
    """Run every awaitable to completion, then raise the first failure (if any)."""
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


class AccountOrchestrator(Generic[K]):
    """
    Shared machinery of the protocol-global and per-user orchestrators.

    Subclasses provide the record catalogue (`specs`) and root addresses,
    and expose typed getters on top of `_get`.
    """

    kind: str = "account"

    def __init__(
        self,
        name: str,
        context: SyncContext,
        config: SubscriptionConfig,
        specs: dict[K, AccountSpec],
        root_addresses: dict[K, Address | str],
    ):
        self.name = name
        self.context = context
        self.config = config
        self.event_bus = context.event_bus or InMemoryEventBus()

        self._specs = specs
        self._root_addresses = {k: Address.coerce(a) for k, a in root_addresses.items()}

        self._state = SubscriptionState.UNSUBSCRIBED
        self._pending: asyncio.Future[bool] | None = None
        self._subscribers: dict[K, AccountSubscriber[Any]] = {}
        self._error_callback_id: str | None = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def is_subscribed(self) -> bool:
        return self._state is SubscriptionState.SUBSCRIBED

    @property
    def subscribed_accounts(self) -> list[K]:
        return list(self._subscribers)

    def address_of(self, account_type: K) -> Address | None:
        sub = self._subscribers.get(account_type)
        return sub.address if sub else None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def subscribe(self, optional: Iterable[K] = ()) -> bool:
        """
        Subscribe every required record plus the requested optional ones.

        Returns True once subscribed. Calls made while a subscribe is in
        flight wait for that one and share its outcome; the optional set of
        the first call wins.
        """
        if self._state is SubscriptionState.SUBSCRIBED:
            return True
        if self._state is SubscriptionState.SUBSCRIBING and self._pending is not None:
            return await asyncio.shield(self._pending)

        selected = self._selection(optional)
        self._state = SubscriptionState.SUBSCRIBING
        pending: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._pending = pending

        try:
            if isinstance(self.config, PollingSubscriptionConfig):
                self._error_callback_id = self.config.loader.add_error_callback(self._on_loader_error)
            await self._subscribe_all(selected)
        except BaseException as e:
            await self._teardown()
            self._state = SubscriptionState.UNSUBSCRIBED
            self._pending = None
            if isinstance(e, asyncio.CancelledError):
                pending.cancel()
            else:
                pending.set_exception(e)
                # Mark retrieved; coalesced waiters (if any) re-raise it themselves
                pending.exception()
            logger.warning(f"[SYNC] {self.name} subscribe failed: {e!r}")
            raise

        self._state = SubscriptionState.SUBSCRIBED
        self._pending = None
        pending.set_result(True)
        logger.info(f"[SYNC] {self.name} subscribed ({', '.join(self._names())})")
        await self._publish(Updated(source=self.name))
        return True

    async def fetch(self) -> None:
        """
        Force-read every subscribed record.

        All reads run to completion; the first failure is then re-raised.
        Publishes Fetched only when every read succeeded.
        """
        if not self.is_subscribed:
            logger.debug(f"[SYNC] {self.name} fetch ignored: not subscribed")
            return

        await _gather_all(*(sub.fetch() for sub in self._subscribers.values()))
        await self._publish(Fetched(source=self.name))

    async def unsubscribe(self) -> None:
        """Release every record. Idempotent; waits for an in-flight subscribe first."""
        if self._state is SubscriptionState.SUBSCRIBING and self._pending is not None:
            await asyncio.wait([self._pending])

        if self._state is SubscriptionState.UNSUBSCRIBED:
            return

        await self._teardown()
        self._state = SubscriptionState.UNSUBSCRIBED
        logger.info(f"[SYNC] {self.name} unsubscribed")

    async def _teardown(self) -> None:
        subscribers = list(self._subscribers.items())
        self._subscribers.clear()

        for account_type, sub in subscribers:
            try:
                await sub.unsubscribe()
            except Exception:
                logger.exception(f"[SYNC] {self.name}: unsubscribe of {self._label(account_type)} failed")

        if self._error_callback_id is not None and isinstance(self.config, PollingSubscriptionConfig):
            self.config.loader.remove_error_callback(self._error_callback_id)
        self._error_callback_id = None

    # =========================================================================
    # Resolution
    # =========================================================================

    def _selection(self, optional: Iterable[K]) -> set[K]:
        selected = {k for k, spec in self._specs.items() if not spec.optional}
        for account_type in optional:
            if account_type not in self._specs:
                raise ValueError(f"{account_type!r} is not a {self.kind} account")
            selected.add(account_type)
        return selected

    def _depth(self, account_type: K) -> int:
        depth = 0
        spec = self._specs[account_type]
        while spec.parent is not None:
            depth += 1
            spec = self._specs[spec.parent]
        return depth

    async def _subscribe_all(self, selected: set[K]) -> None:
        levels: dict[int, list[K]] = {}
        for account_type in selected:
            levels.setdefault(self._depth(account_type), []).append(account_type)

        # Decoded values of parents that were not requested, read once
        unsubscribed_parents: dict[K, Any] = {}

        for depth in sorted(levels):
            level = levels[depth]
            addresses = await _gather_all(*(self._resolve(k, unsubscribed_parents) for k in level))
            for account_type, address in zip(level, addresses, strict=True):
                self._subscribers[account_type] = create_account_subscriber(
                    self.context,
                    self.config,
                    f"{self.name}.{self._label(account_type)}",
                    address,
                    self._specs[account_type].decode_as,
                    on_change=partial(self._on_account_change, account_type),
                )

            await _gather_all(*(self._subscribers[k].subscribe() for k in level))

            for account_type in level:
                sub = self._subscribers[account_type]
                if sub.data is None:
                    raise AccountNotFoundError(
                        f"{self._label(account_type)} account {sub.address} does not exist",
                        address=str(sub.address),
                        account=self._label(account_type),
                    )

    async def _resolve(self, account_type: K, unsubscribed_parents: dict[K, Any]) -> Address:
        spec = self._specs[account_type]
        if spec.is_root:
            return self._root_addresses[account_type]

        parent_value = await self._parent_value(spec.parent, unsubscribed_parents)
        located = spec.locate(parent_value) if spec.locate else None
        if located is None or not str(located).strip():
            raise AccountNotFoundError(
                f"{self._label(spec.parent)} has no {self._label(account_type)} address",
                account=self._label(account_type),
            )
        return Address.coerce(located)

    async def _parent_value(self, parent: K, unsubscribed_parents: dict[K, Any]) -> Any:
        sub = self._subscribers.get(parent)
        if sub is not None:
            return sub.data
        if parent in unsubscribed_parents:
            return unsubscribed_parents[parent]

        address = await self._resolve(parent, unsubscribed_parents)
        _, raw = await self.context.reader.read(address, self.context.commitment)
        if raw is None:
            raise AccountNotFoundError(
                f"{self._label(parent)} account {address} does not exist",
                address=str(address),
                account=self._label(parent),
            )
        value = self.context.decoder.decode(self._specs[parent].decode_as, raw)
        unsubscribed_parents[parent] = value
        return value

    # =========================================================================
    # Accessors
    # =========================================================================

    def _subscriber(self, account_type: K) -> AccountSubscriber[Any]:
        if not self.is_subscribed:
            raise NotSubscribedError(NOT_SUBSCRIBED_MESSAGE, account=self._label(account_type))
        sub = self._subscribers.get(account_type)
        if sub is None:
            raise NotSubscribedError(
                f'You need to subscribe to the optional {self.kind} account "{self._label(account_type)}" '
                f"to use this method",
                account=self._label(account_type),
            )
        return sub

    def _get(self, account_type: K) -> Any:
        return self._subscriber(account_type).data

    def get_snapshot(self, account_type: K) -> AccountSnapshot[Any]:
        return self._subscriber(account_type).snapshot

    # =========================================================================
    # Per-account polling
    # =========================================================================

    def start_polling(self, account_type: K) -> None:
        """
        Poll one record at its own rate; emits AccountFetched after each fetch.

        Raises:
            NotSubscribedError: not subscribed, or record not selected.
            AlreadyPollingError: already polling that record.
        """
        sub = self._subscriber(account_type)
        sub.start_polling(on_fetched=partial(self._on_account_fetched, account_type))

    async def stop_polling(self, account_type: K) -> None:
        await self._subscriber(account_type).stop_polling()

    def set_polling_rate(self, account_type: K, seconds: float) -> None:
        self._subscriber(account_type).set_polling_rate(seconds)

    # =========================================================================
    # Events
    # =========================================================================

    def on(self, event_type: type[E], handler: Callable[[E], Awaitable[None]]) -> None:
        """Listen to events of this orchestrator only (the bus may be shared)."""
        self.event_bus.subscribe(event_type, handler, source=self.name)

    def off(self, event_type: type[E], handler: Callable[[E], Awaitable[None]]) -> None:
        self.event_bus.unsubscribe(event_type, handler, source=self.name)

    def on_account(self, account_type: K, handler: Callable[[AccountUpdated], Awaitable[None]]) -> None:
        """Listen to AccountUpdated events of one record."""
        self.event_bus.subscribe(AccountUpdated, handler, source=self.name, account_type=account_type)

    def off_account(self, account_type: K, handler: Callable[[AccountUpdated], Awaitable[None]]) -> None:
        self.event_bus.unsubscribe(AccountUpdated, handler, source=self.name, account_type=account_type)

    async def _publish(self, event: SyncEvent) -> None:
        await self.event_bus.publish(event)

    async def _on_account_change(self, account_type: K, data: Any, slot: int | None) -> None:
        await self._publish(AccountUpdated(source=self.name, account_type=account_type, data=data, slot=slot))
        await self._publish(Updated(source=self.name))

    async def _on_account_fetched(self, account_type: K) -> None:
        await self._publish(AccountFetched(source=self.name, account_type=account_type))

    async def _on_loader_error(self, error: Exception) -> None:
        details = error.to_dict() if isinstance(error, SyncError) else {"message": str(error)}
        await self._publish(SyncErrorOccurred(source=self.name, error=error, details=details))

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _label(account_type: Any) -> str:
        return getattr(account_type, "value", str(account_type))

    def _names(self) -> list[str]:
        return [self._label(k) for k in self._subscribers]
