"""
Per-account polling timer.

Drives `fetch()` of a single subscriber at its own rate, independently of
the shared loader interval.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

from ledger_sync.domain.errors import AlreadyPollingError, NotPollingError
from ledger_sync.observability.logging import get_logger

logger = get_logger(__name__)

OnFetched = Callable[[], Awaitable[None]]


class AccountPoller:
    """Timer loop calling `fetch` every `rate` seconds, then `on_fetched`."""

    def __init__(self, name: str, fetch: Callable[[], Awaitable[None]], rate: float = 1.0):
        if rate <= 0:
            raise ValueError(f"polling rate must be > 0, got {rate}")
        self.name = name
        self._fetch = fetch
        self._rate = float(rate)
        self._task: asyncio.Task | None = None
        self._on_fetched: OnFetched | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def rate(self) -> float:
        return self._rate

    def set_rate(self, seconds: float) -> None:
        """Change the interval; applies from the next tick."""
        if seconds <= 0:
            raise ValueError(f"polling rate must be > 0, got {seconds}")
        self._rate = float(seconds)

    def start(self, on_fetched: OnFetched | None = None) -> None:
        """
        Start the timer.

        Raises:
            AlreadyPollingError: the timer is already running.
        """
        if self.is_running:
            raise AlreadyPollingError(f"Already polling {self.name}", account=self.name)
        self._on_fetched = on_fetched
        self._task = asyncio.create_task(self._loop(), name=f"account_poller:{self.name}")
        logger.debug(f"[SYNC] polling {self.name} every {self._rate}s")

    async def stop(self) -> None:
        """
        Stop the timer.

        Raises:
            NotPollingError: the timer is not running.
        """
        if not self.is_running:
            raise NotPollingError(f"Not polling {self.name}", account=self.name)
        await self.cancel()

    async def cancel(self) -> None:
        """Stop the timer if it runs."""
        task = self._task
        self._task = None
        self._on_fetched = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._rate)
            try:
                await self._fetch()
                if self._on_fetched is not None:
                    await self._on_fetched()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[SYNC] polled fetch of {self.name} failed: {e}", extra={"account": self.name})
