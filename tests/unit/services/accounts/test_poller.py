"""
Unit tests for AccountPoller.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from ledger_sync.domain.errors import AlreadyPollingError, NotPollingError
from ledger_sync.services.accounts.poller import AccountPoller


class TestAccountPoller:
    """Tests for the per-account timer."""

    @pytest.mark.asyncio
    async def test_fetch_then_on_fetched(self):
        fetch = AsyncMock()
        on_fetched = AsyncMock()
        poller = AccountPoller("state", fetch, rate=0.01)

        poller.start(on_fetched)
        await asyncio.sleep(0.05)
        await poller.stop()

        assert fetch.await_count >= 1
        assert on_fetched.await_count == fetch.await_count

    @pytest.mark.asyncio
    async def test_fetch_failure_keeps_timer_running(self):
        attempts = 0

        async def fetch():
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise RuntimeError("boom")

        on_fetched = AsyncMock()
        poller = AccountPoller("state", fetch, rate=0.005)

        poller.start(on_fetched)
        await asyncio.sleep(0.05)
        assert poller.is_running
        await poller.stop()

        assert attempts >= 2
        assert on_fetched.await_count == attempts - 1

    @pytest.mark.asyncio
    async def test_start_twice_raises(self):
        poller = AccountPoller("state", AsyncMock(), rate=10)
        poller.start()
        with pytest.raises(AlreadyPollingError):
            poller.start()
        await poller.cancel()

    @pytest.mark.asyncio
    async def test_stop_without_start_raises(self):
        poller = AccountPoller("state", AsyncMock())
        with pytest.raises(NotPollingError):
            await poller.stop()

    @pytest.mark.asyncio
    async def test_cancel_is_silent(self):
        poller = AccountPoller("state", AsyncMock())
        await poller.cancel()
        assert not poller.is_running

    def test_rate_validation(self):
        with pytest.raises(ValueError):
            AccountPoller("state", AsyncMock(), rate=0)

        poller = AccountPoller("state", AsyncMock())
        poller.set_rate(2.0)
        assert poller.rate == 2.0
        with pytest.raises(ValueError):
            poller.set_rate(0)
