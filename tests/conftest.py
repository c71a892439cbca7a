"""
Shared fixtures.

OFFLINE-FIRST: these tests do NOT require an RPC node or network access.
"""

from __future__ import annotations

import pytest

from ledger_sync.adapters.decoding.registry import DecoderRegistry
from ledger_sync.adapters.messaging.event_bus import InMemoryEventBus
from ledger_sync.services.accounts.context import SyncContext
from tests.mocks import FakeLedger, Recorder, make_decoder


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def decoder() -> DecoderRegistry:
    return make_decoder()


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def context(ledger: FakeLedger, decoder: DecoderRegistry, event_bus: InMemoryEventBus) -> SyncContext:
    return SyncContext(reader=ledger, decoder=decoder, stream=ledger, event_bus=event_bus)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
