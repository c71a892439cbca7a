"""
Bulk Account Loader.

Shared polling engine: keeps a registry of tracked addresses, reads them in
chunks of at most `chunk_size` per remote call, and notifies the listeners
of an address only when it was read at a newer slot with different bytes.

Invariants:
- The cached slot of an address never decreases.
- A listener fires once per distinct payload, not once per poll tick.
- A failing chunk never affects the other chunks of the same pass.
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from collections.abc import Iterable

from ledger_sync.domain.errors import DuplicateCallbackError, RemoteReadError
from ledger_sync.domain.models import (
    Address,
    Commitment,
    OnAccountChange,
    OnLoaderError,
    TrackedAccount,
)
from ledger_sync.observability.logging import get_logger
from ledger_sync.ports.remote_reader import RemoteReaderPort
from ledger_sync.utils.batching import chunked

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 99


class BulkAccountLoader:
    """
    Batched poller shared by any number of polling-backed subscribers.

    Features:
    - Many listeners per address (keyed by callback id)
    - Chunked concurrent reads bounded by the reader's batch limit
    - Slot-monotonic, byte-level dedup of notifications
    - Error callbacks for chunk and listener failures
    """

    def __init__(
        self,
        reader: RemoteReaderPort,
        commitment: Commitment = Commitment.CONFIRMED,
        polling_interval: float = 1.0,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if polling_interval <= 0:
            raise ValueError(f"polling_interval must be > 0, got {polling_interval}")
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")

        self.reader = reader
        self.commitment = commitment
        self._polling_interval = float(polling_interval)
        self._chunk_size = min(chunk_size, reader.max_batch_size)

        self._accounts: dict[str, TrackedAccount] = {}
        self._error_callbacks: dict[str, OnLoaderError] = {}

        self._polling_task: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, reader: RemoteReaderPort, settings) -> BulkAccountLoader:
        return cls(
            reader,
            commitment=Commitment.from_string(settings.rpc.commitment),
            polling_interval=float(settings.loader.polling_interval_seconds),
            chunk_size=settings.loader.chunk_size,
        )

    # =========================================================================
    # Registry
    # =========================================================================

    def add_account(
        self,
        address: Address | str,
        on_change: OnAccountChange,
        callback_id: str | None = None,
    ) -> str:
        """
        Track an address and register a listener for it.

        Returns the callback id to pass to remove_account().

        Raises:
            DuplicateCallbackError: callback_id is already registered for this address.
        """
        address = Address.coerce(address)
        key = str(address)
        callback_id = callback_id or str(uuid.uuid4())

        tracked = self._accounts.get(key)
        if tracked is None:
            tracked = TrackedAccount(address=address)
            self._accounts[key] = tracked
            logger.debug(f"[SYNC] tracking {key}")
        elif callback_id in tracked.callbacks:
            raise DuplicateCallbackError(
                f"Callback {callback_id} already registered for {key}",
                address=key,
            )

        tracked.callbacks[callback_id] = on_change
        return callback_id

    def remove_account(self, address: Address | str, callback_id: str) -> None:
        """Remove one listener; the address is untracked with its last listener. Unknown ids are ignored."""
        key = str(address)
        tracked = self._accounts.get(key)
        if tracked is None:
            return

        tracked.callbacks.pop(callback_id, None)
        if not tracked.callbacks:
            del self._accounts[key]
            logger.debug(f"[SYNC] untracked {key}")

    def add_error_callback(self, callback: OnLoaderError) -> str:
        callback_id = str(uuid.uuid4())
        self._error_callbacks[callback_id] = callback
        return callback_id

    def remove_error_callback(self, callback_id: str) -> None:
        self._error_callbacks.pop(callback_id, None)

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def tracked_addresses(self) -> list[Address]:
        return [t.address for t in self._accounts.values()]

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def is_tracked(self, address: Address | str) -> bool:
        return str(address) in self._accounts

    def get_account_data(self, address: Address | str) -> bytes | None:
        """Last bytes read for an address (None when untracked, not loaded yet or absent remotely)."""
        tracked = self._accounts.get(str(address))
        return tracked.data if tracked else None

    def get_slot(self, address: Address | str) -> int | None:
        tracked = self._accounts.get(str(address))
        return tracked.slot if tracked else None

    def is_loaded(self, address: Address | str) -> bool:
        tracked = self._accounts.get(str(address))
        return bool(tracked and tracked.loaded)

    # =========================================================================
    # Loading
    # =========================================================================

    async def load(
        self,
        addresses: Iterable[Address | str] | None = None,
        *,
        raise_errors: bool = False,
    ) -> None:
        """
        Read every tracked address (or the tracked subset of `addresses`) once.

        Chunks run concurrently. Read failures are always reported to the
        error callbacks. With `raise_errors` the first chunk failure is also
        raised once every chunk has finished; otherwise the next tick retries.

        Raises:
            RemoteReadError: a chunk failed and `raise_errors` is set.
        """
        if addresses is None:
            targets = list(self._accounts.values())
        else:
            wanted = {str(a) for a in addresses}
            targets = [t for key, t in self._accounts.items() if key in wanted]

        if not targets:
            return

        chunks = list(chunked(targets, self._chunk_size))
        logger.debug(f"[SYNC] loading {len(targets)} accounts in {len(chunks)} chunks")
        errors = await asyncio.gather(*(self._load_chunk(chunk) for chunk in chunks))

        if raise_errors:
            for error in errors:
                if error is not None:
                    raise error

    async def _load_chunk(self, chunk: list[TrackedAccount]) -> RemoteReadError | None:
        addresses = [t.address for t in chunk]

        try:
            result = await self.reader.batch_read(addresses, self.commitment)
            if len(result.values) != len(addresses):
                raise RemoteReadError(
                    f"Reader returned {len(result.values)} values for {len(addresses)} addresses",
                    details={"expected": len(addresses), "received": len(result.values)},
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e if isinstance(e, RemoteReadError) else RemoteReadError(f"Chunk read failed: {e!r}")
            if error is not e:
                error.__cause__ = e
            error.details.setdefault("addresses", [str(a) for a in addresses])
            logger.warning(f"[SYNC] chunk of {len(addresses)} accounts failed: {error}")
            await self._report(error)
            return error

        for tracked, data in zip(chunk, result.values, strict=True):
            # Skip accounts removed while the read was in flight
            if self._accounts.get(tracked.key) is not tracked:
                continue
            if tracked.observe(result.slot, data):
                await self._notify(tracked)
        return None

    async def _notify(self, tracked: TrackedAccount) -> None:
        slot = tracked.slot
        data = tracked.data
        delivered = True

        for callback_id, callback in list(tracked.callbacks.items()):
            try:
                await callback(data, slot)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                delivered = False
                logger.exception(
                    f"[SYNC] listener {callback_id} failed for {tracked.key} at slot {slot}",
                    extra={"address": tracked.key, "slot": slot},
                )
                await self._report(e)

        tracked.delivered = delivered

    async def _report(self, error: Exception) -> None:
        for callback in list(self._error_callbacks.values()):
            try:
                await callback(error)
            except Exception:
                logger.exception("[SYNC] loader error callback failed")

    # =========================================================================
    # Polling
    # =========================================================================

    @property
    def is_polling(self) -> bool:
        return self._polling_task is not None and not self._polling_task.done()

    @property
    def polling_interval(self) -> float:
        return self._polling_interval

    @polling_interval.setter
    def polling_interval(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValueError(f"polling_interval must be > 0, got {seconds}")
        self._polling_interval = float(seconds)

    def start_polling(self) -> None:
        """Start the periodic load timer. No-op when already polling."""
        if self.is_polling:
            return
        self._polling_task = asyncio.create_task(self._poll_loop(), name="bulk_account_loader")
        logger.debug(f"[SYNC] loader polling every {self._polling_interval}s")

    async def stop_polling(self) -> None:
        """Stop the periodic load timer. No-op when not polling."""
        task = self._polling_task
        self._polling_task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("[SYNC] loader polling stopped")

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._polling_interval)
            try:
                await self.load()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"[SYNC] loader poll tick failed: {e}")
