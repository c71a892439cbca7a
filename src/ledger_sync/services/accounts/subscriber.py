"""
Single-account subscribers.

An AccountSubscriber keeps the decoded value of one remote record current,
either from server pushes (WebSocketAccountSubscriber) or from a shared
BulkAccountLoader (BulkAccountSubscriber). Both expose the same lifecycle:
subscribe, fetch, unsubscribe, plus an optional per-account polling timer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from ledger_sync.domain.errors import DecodeError, NotSubscribedError, RemoteReadError
from ledger_sync.domain.models import AccountSnapshot, Address, Commitment
from ledger_sync.observability.logging import get_logger
from ledger_sync.ports.account_stream import AccountStreamPort
from ledger_sync.ports.decoder import AccountDecoderPort
from ledger_sync.ports.remote_reader import RemoteReaderPort
from ledger_sync.services.accounts.bulk_loader import BulkAccountLoader
from ledger_sync.services.accounts.poller import AccountPoller, OnFetched

logger = get_logger(__name__)

T = TypeVar("T")

OnDataChange = Callable[[Any, int | None], Awaitable[None]]


class AccountSubscriber(ABC, Generic[T]):
    """
    Decoded mirror of one address.

    `data` only changes when the bytes change and decode succeeded; a failed
    decode leaves the last-known-good value in place. `data` is None while the
    account does not exist remotely.
    """

    def __init__(
        self,
        name: str,
        address: Address | str,
        decoder: AccountDecoderPort,
        decode_as: str,
        on_change: OnDataChange | None = None,
        poll_rate: float = 1.0,
    ):
        self.name = name
        self.address = Address.coerce(address)
        self.decoder = decoder
        self.decode_as = decode_as
        self.on_change = on_change

        self.data: T | None = None
        self.slot: int | None = None
        self.is_subscribed = False

        self._raw: bytes | None = None
        self._has_value = False
        self._poller = AccountPoller(name, self.fetch, rate=poll_rate)

    @property
    def snapshot(self) -> AccountSnapshot[T]:
        return AccountSnapshot(data=self.data, slot=self.slot, subscribed=self.is_subscribed)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @abstractmethod
    async def subscribe(self, on_change: OnDataChange | None = None) -> None:
        """Attach to the update source and load the initial value. Idempotent."""
        ...

    @abstractmethod
    async def fetch(self) -> None:
        """Read the current value now."""
        ...

    @abstractmethod
    async def _detach(self) -> None:
        ...

    async def unsubscribe(self) -> None:
        """Detach from the update source and stop the polling timer. Idempotent."""
        await self._poller.cancel()
        if not self.is_subscribed:
            return
        await self._detach()
        self.is_subscribed = False
        logger.debug(f"[SYNC] unsubscribed {self.name} ({self.address})")

    # =========================================================================
    # Polling
    # =========================================================================

    @property
    def is_polling(self) -> bool:
        return self._poller.is_running

    @property
    def polling_rate(self) -> float:
        return self._poller.rate

    def start_polling(self, on_fetched: OnFetched | None = None) -> None:
        """
        Start the per-account fetch timer.

        Raises:
            NotSubscribedError: subscribe() has not completed.
            AlreadyPollingError: the timer is already running.
        """
        if not self.is_subscribed:
            raise NotSubscribedError(
                f"{self.name} must be subscribed before polling",
                address=str(self.address),
                account=self.name,
            )
        self._poller.start(on_fetched)

    async def stop_polling(self) -> None:
        await self._poller.stop()

    def set_polling_rate(self, seconds: float) -> None:
        self._poller.set_rate(seconds)

    # =========================================================================
    # Cache
    # =========================================================================

    async def _apply(self, raw: bytes | None, slot: int) -> bool:
        """
        Offer a read to the cache.

        Returns True when the value changed and on_change fired.

        Raises:
            DecodeError: the bytes could not be decoded (cache left untouched).
        """
        if self.slot is not None and slot < self.slot:
            return False

        if self._has_value and raw == self._raw:
            self.slot = slot
            return False

        decoded = None if raw is None else self.decoder.decode(self.decode_as, raw)

        self._raw = raw
        self.data = decoded
        self.slot = slot
        self._has_value = True

        if self.on_change is not None:
            await self.on_change(decoded, slot)
        return True


class BulkAccountSubscriber(AccountSubscriber[T]):
    """Polling-backed subscriber fed by a shared BulkAccountLoader."""

    def __init__(
        self,
        name: str,
        address: Address | str,
        loader: BulkAccountLoader,
        decoder: AccountDecoderPort,
        decode_as: str,
        on_change: OnDataChange | None = None,
        poll_rate: float = 1.0,
    ):
        super().__init__(name, address, decoder, decode_as, on_change, poll_rate)
        self.loader = loader
        self._callback_id: str | None = None

    async def subscribe(self, on_change: OnDataChange | None = None) -> None:
        if self.is_subscribed:
            return
        if on_change is not None:
            self.on_change = on_change

        self._callback_id = self.loader.add_account(self.address, self._on_loader_change)
        try:
            if not self.loader.is_loaded(self.address):
                await self.loader.load([self.address], raise_errors=True)
            await self._apply_cached()
        except BaseException:
            self.loader.remove_account(self.address, self._callback_id)
            self._callback_id = None
            raise

        self.is_subscribed = True
        logger.debug(f"[SYNC] subscribed {self.name} ({self.address}) via loader")

    async def fetch(self) -> None:
        """
        Re-read this address through the loader.

        Raises:
            RemoteReadError: the read failed (the cached value is not re-applied).
            DecodeError: the bytes read could not be decoded.
        """
        await self.loader.load([self.address], raise_errors=True)
        await self._apply_cached()

    async def _detach(self) -> None:
        if self._callback_id is not None:
            self.loader.remove_account(self.address, self._callback_id)
            self._callback_id = None

    async def _apply_cached(self) -> None:
        if not self.loader.is_loaded(self.address):
            raise RemoteReadError(f"Could not read {self.name} at {self.address}", address=str(self.address))
        await self._apply(self.loader.get_account_data(self.address), self.loader.get_slot(self.address))

    async def _on_loader_change(self, data: bytes | None, slot: int) -> None:
        await self._apply(data, slot)


class WebSocketAccountSubscriber(AccountSubscriber[T]):
    """Push-backed subscriber: initial read, then server notifications."""

    def __init__(
        self,
        name: str,
        address: Address | str,
        reader: RemoteReaderPort,
        stream: AccountStreamPort,
        decoder: AccountDecoderPort,
        decode_as: str,
        commitment: Commitment = Commitment.CONFIRMED,
        on_change: OnDataChange | None = None,
        poll_rate: float = 1.0,
    ):
        super().__init__(name, address, decoder, decode_as, on_change, poll_rate)
        self.reader = reader
        self.stream = stream
        self.commitment = commitment
        self._stream_id: int | None = None

    async def subscribe(self, on_change: OnDataChange | None = None) -> None:
        if self.is_subscribed:
            return
        if on_change is not None:
            self.on_change = on_change

        # Listen first so nothing written between the read and the subscription is lost
        self._stream_id = await self.stream.subscribe(
            self.address,
            self.commitment,
            self._on_push,
            on_resubscribed=self._resync,
        )
        try:
            await self.fetch()
        except BaseException:
            await self._detach()
            raise

        self.is_subscribed = True
        logger.debug(f"[SYNC] subscribed {self.name} ({self.address}) via stream")

    async def fetch(self) -> None:
        slot, raw = await self.reader.read(self.address, self.commitment)
        await self._apply(raw, slot)

    async def _resync(self) -> None:
        """Catch up on writes missed while the stream was reconnecting."""
        try:
            await self.fetch()
        except (RemoteReadError, DecodeError) as e:
            logger.warning(f"[SYNC] resync of {self.name} after reconnect failed: {e}")

    async def _detach(self) -> None:
        if self._stream_id is not None:
            stream_id, self._stream_id = self._stream_id, None
            await self.stream.unsubscribe(stream_id)

    async def _on_push(self, slot: int, raw: bytes | None) -> None:
        try:
            await self._apply(raw, slot)
        except DecodeError as e:
            logger.warning(f"[SYNC] dropping undecodable push for {self.name} at slot {slot}: {e}")
