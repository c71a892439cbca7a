"""
Unit tests for BulkAccountLoader.

Covers:
- Slot monotonicity and byte-level dedup of notifications
- Chunking bounded by the reader batch limit
- Listener registry (multi-listener, duplicate ids, idempotent removal)
- Error isolation between chunks and error callbacks
- Polling lifecycle

OFFLINE-FIRST: These tests do NOT require an RPC node or network access.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Sequence

import pytest

from ledger_sync.domain.errors import DuplicateCallbackError, RemoteReadError
from ledger_sync.domain.models import Address, BatchReadResult, Commitment
from ledger_sync.ports.remote_reader import RemoteReaderPort
from ledger_sync.services.accounts.bulk_loader import BulkAccountLoader
from tests.mocks import FakeLedger, Recorder


class ScriptedReader(RemoteReaderPort):
    """Returns pre-scripted (slot, values) answers in order."""

    def __init__(self, answers: list[tuple[int, list[bytes | None]]]):
        self._answers = list(answers)
        self.calls = 0

    @property
    def max_batch_size(self) -> int:
        return 99

    async def batch_read(self, addresses: Sequence[Address], commitment: Commitment) -> BatchReadResult:
        self.calls += 1
        slot, values = self._answers.pop(0)
        return BatchReadResult(slot=slot, values=values)


# =============================================================================
# DIFFING
# =============================================================================


class TestChangeDetection:
    """Tests for when listeners fire."""

    @pytest.mark.asyncio
    async def test_concrete_sequence(self, ledger: FakeLedger, recorder: Recorder):
        """Same slot, then same bytes at a newer slot, never fire; new bytes fire once."""
        loader = BulkAccountLoader(ledger)
        loader.add_account("A", recorder)

        ledger.put("A", b"b1", slot=10)
        await loader.load()
        assert recorder.calls == [(b"b1", 10)]

        await loader.load()
        assert len(recorder) == 1

        ledger.slot = 12
        await loader.load()
        assert len(recorder) == 1
        assert loader.get_slot("A") == 12

        ledger.put("A", b"b2", slot=15)
        await loader.load()
        assert recorder.calls == [(b"b1", 10), (b"b2", 15)]
        assert loader.get_account_data("A") == b"b2"

    @pytest.mark.asyncio
    async def test_stale_result_is_ignored(self, recorder: Recorder):
        """A result older than the cached slot never regresses the cache."""
        reader = ScriptedReader([(10, [b"new"]), (8, [b"old"]), (12, [b"newer"])])
        loader = BulkAccountLoader(reader)
        loader.add_account("A", recorder)

        await loader.load()
        await loader.load()
        assert loader.get_slot("A") == 10
        assert loader.get_account_data("A") == b"new"
        assert recorder.calls == [(b"new", 10)]

        await loader.load()
        assert loader.get_slot("A") == 12
        assert recorder.calls[-1] == (b"newer", 12)

    @pytest.mark.asyncio
    async def test_cached_slot_is_running_maximum(self, recorder: Recorder):
        """Cached slot equals max of slots seen regardless of arrival order."""
        slots = [5, 9, 3, 9, 7, 14, 2]
        reader = ScriptedReader([(s, [f"v{s}".encode()]) for s in slots])
        loader = BulkAccountLoader(reader)
        loader.add_account("A", recorder)

        seen: list[int] = []
        for slot in slots:
            await loader.load()
            seen.append(slot)
            assert loader.get_slot("A") == max(seen)

    @pytest.mark.asyncio
    async def test_same_bytes_newer_slot_fires_once(self, ledger: FakeLedger, recorder: Recorder):
        loader = BulkAccountLoader(ledger)
        loader.add_account("A", recorder)
        ledger.put("A", b"same", slot=1)

        await loader.load()
        ledger.slot = 2
        await loader.load()
        ledger.slot = 3
        await loader.load()

        assert recorder.calls == [(b"same", 1)]
        assert loader.get_slot("A") == 3

    @pytest.mark.asyncio
    async def test_absent_account_reports_none(self, ledger: FakeLedger, recorder: Recorder):
        """Missing accounts fire once with None, then fire again when created."""
        loader = BulkAccountLoader(ledger)
        loader.add_account("A", recorder)

        await loader.load()
        assert recorder.calls == [(None, ledger.slot)]
        assert loader.is_loaded("A")
        assert loader.get_account_data("A") is None

        ledger.slot += 1
        await loader.load()
        assert len(recorder) == 1

        ledger.put("A", b"created")
        await loader.load()
        assert recorder.calls[-1] == (b"created", ledger.slot)

    @pytest.mark.asyncio
    async def test_failed_listener_is_retried_on_newer_slot(self, ledger: FakeLedger):
        """Bytes a listener failed on are offered again at the next newer slot only."""
        calls: list[tuple] = []

        async def flaky(data, slot):
            calls.append((data, slot))
            if len(calls) == 1:
                raise ValueError("decode failed")

        errors = Recorder()
        loader = BulkAccountLoader(ledger)
        loader.add_account("A", flaky)
        loader.add_error_callback(errors)
        ledger.put("A", b"payload", slot=20)

        await loader.load()
        assert len(calls) == 1
        assert isinstance(errors.calls[0][0], ValueError)

        await loader.load()
        assert len(calls) == 1

        ledger.slot = 21
        await loader.load()
        assert calls[-1] == (b"payload", 21)

        ledger.slot = 22
        await loader.load()
        assert len(calls) == 2


# =============================================================================
# CHUNKING
# =============================================================================


class TestChunking:
    """Tests for batching reads."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count,batch", [(1, 3), (3, 3), (7, 3), (10, 4)])
    async def test_every_address_read_exactly_once(self, count: int, batch: int, recorder: Recorder):
        ledger = FakeLedger(max_batch_size=batch)
        loader = BulkAccountLoader(ledger)
        addresses = [f"Acc{i}" for i in range(count)]
        for address in addresses:
            ledger.put(address, address.encode())
            loader.add_account(address, recorder)

        await loader.load()

        assert len(ledger.batch_calls) == math.ceil(count / batch)
        assert all(len(call) <= batch for call in ledger.batch_calls)
        flattened = [a for call in ledger.batch_calls for a in call]
        assert sorted(flattened) == sorted(addresses)

    @pytest.mark.asyncio
    async def test_chunk_size_capped_by_reader(self):
        loader = BulkAccountLoader(FakeLedger(max_batch_size=5), chunk_size=50)
        assert loader.chunk_size == 5

    @pytest.mark.asyncio
    async def test_configured_chunk_size_below_reader_limit(self, ledger: FakeLedger, recorder: Recorder):
        loader = BulkAccountLoader(ledger, chunk_size=2)
        for i in range(5):
            loader.add_account(f"Acc{i}", recorder)

        await loader.load()
        assert len(ledger.batch_calls) == 3

    @pytest.mark.asyncio
    async def test_shared_address_read_once(self, ledger: FakeLedger):
        """Two listeners on one address share a single read and both fire."""
        first, second = Recorder(), Recorder()
        loader = BulkAccountLoader(ledger)
        loader.add_account("A", first)
        loader.add_account("A", second)
        ledger.put("A", b"x")

        await loader.load()

        assert ledger.batch_calls == [["A"]]
        assert len(first) == 1
        assert len(second) == 1

    @pytest.mark.asyncio
    async def test_targeted_load(self, ledger: FakeLedger, recorder: Recorder):
        """load(addresses) reads only the tracked subset requested."""
        loader = BulkAccountLoader(ledger)
        loader.add_account("A", recorder)
        loader.add_account("B", recorder)

        await loader.load(["B", "Untracked"])
        assert ledger.batch_calls == [["B"]]

        await loader.load([])
        assert len(ledger.batch_calls) == 1

    @pytest.mark.asyncio
    async def test_empty_registry_makes_no_calls(self, ledger: FakeLedger):
        await BulkAccountLoader(ledger).load()
        assert ledger.batch_calls == []


# =============================================================================
# REGISTRY
# =============================================================================


class TestRegistry:
    """Tests for add_account / remove_account."""

    def test_returns_generated_callback_id(self, ledger: FakeLedger, recorder: Recorder):
        loader = BulkAccountLoader(ledger)
        first = loader.add_account("A", recorder)
        second = loader.add_account("A", recorder)
        assert first != second
        assert loader.tracked_addresses == [Address("A")]

    def test_duplicate_callback_id_rejected(self, ledger: FakeLedger, recorder: Recorder):
        loader = BulkAccountLoader(ledger)
        loader.add_account("A", recorder, callback_id="cb")

        with pytest.raises(DuplicateCallbackError):
            loader.add_account("A", recorder, callback_id="cb")

    def test_same_callback_id_on_other_address_allowed(self, ledger: FakeLedger, recorder: Recorder):
        loader = BulkAccountLoader(ledger)
        loader.add_account("A", recorder, callback_id="cb")
        loader.add_account("B", recorder, callback_id="cb")
        assert len(loader.tracked_addresses) == 2

    def test_remove_is_idempotent(self, ledger: FakeLedger, recorder: Recorder):
        loader = BulkAccountLoader(ledger)
        keep = loader.add_account("A", recorder)
        drop = loader.add_account("A", recorder)

        loader.remove_account("A", drop)
        loader.remove_account("A", drop)
        assert loader.is_tracked("A")

        loader.remove_account("A", keep)
        loader.remove_account("A", keep)
        loader.remove_account("Unknown", "nope")
        assert not loader.is_tracked("A")
        assert loader.tracked_addresses == []

    @pytest.mark.asyncio
    async def test_account_removed_during_read_is_not_notified(self, ledger: FakeLedger, recorder: Recorder):
        ledger.read_delay = 0.01
        loader = BulkAccountLoader(ledger)
        callback_id = loader.add_account("A", recorder)

        task = asyncio.create_task(loader.load())
        await asyncio.sleep(0)
        loader.remove_account("A", callback_id)
        await task

        assert recorder.calls == []

    def test_invalid_arguments(self, ledger: FakeLedger):
        with pytest.raises(ValueError):
            BulkAccountLoader(ledger, polling_interval=0)
        with pytest.raises(ValueError):
            BulkAccountLoader(ledger, chunk_size=0)


# =============================================================================
# ERRORS
# =============================================================================


class TestErrorHandling:
    """Tests for chunk failure isolation."""

    @pytest.mark.asyncio
    async def test_failed_chunk_does_not_affect_others(self, ledger: FakeLedger, recorder: Recorder):
        errors = Recorder()
        loader = BulkAccountLoader(ledger, chunk_size=2)
        loader.add_error_callback(errors)
        for address in ("A", "B", "C", "D"):
            ledger.put(address, address.encode())
            loader.add_account(address, recorder)
        ledger.failing.add("A")

        await loader.load()

        notified = sorted(data for data, _ in recorder.calls)
        assert notified == [b"C", b"D"]
        assert len(errors) == 1
        error = errors.calls[0][0]
        assert isinstance(error, RemoteReadError)
        assert error.details["addresses"] == ["A", "B"]
        assert not loader.is_loaded("A")

    @pytest.mark.asyncio
    async def test_raise_errors_after_every_chunk(self, ledger: FakeLedger, recorder: Recorder):
        errors = Recorder()
        loader = BulkAccountLoader(ledger, chunk_size=2)
        loader.add_error_callback(errors)
        for address in ("A", "B", "C", "D"):
            ledger.put(address, address.encode())
            loader.add_account(address, recorder)
        ledger.failing.add("A")

        with pytest.raises(RemoteReadError) as exc_info:
            await loader.load(raise_errors=True)

        assert exc_info.value.details["addresses"] == ["A", "B"]
        assert sorted(data for data, _ in recorder.calls) == [b"C", b"D"]
        assert loader.is_loaded("C")
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_raise_errors_ignores_untargeted_failures(self, ledger: FakeLedger, recorder: Recorder):
        loader = BulkAccountLoader(ledger, chunk_size=1)
        for address in ("A", "B"):
            ledger.put(address, address.encode())
            loader.add_account(address, recorder)
        ledger.failing.add("A")

        await loader.load(["B"], raise_errors=True)
        await loader.load()

        assert loader.is_loaded("B")
        assert not loader.is_loaded("A")

    @pytest.mark.asyncio
    async def test_unexpected_reader_error_wrapped(self, recorder: Recorder):
        class BrokenReader(ScriptedReader):
            async def batch_read(self, addresses, commitment):
                raise RuntimeError("socket reset")

        errors = Recorder()
        loader = BulkAccountLoader(BrokenReader([]))
        loader.add_error_callback(errors)
        loader.add_account("A", recorder)

        await loader.load()

        error = errors.calls[0][0]
        assert isinstance(error, RemoteReadError)
        assert isinstance(error.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_short_reader_answer_is_a_chunk_failure(self, recorder: Recorder):
        errors = Recorder()
        loader = BulkAccountLoader(ScriptedReader([(5, [b"only-one"])]))
        loader.add_error_callback(errors)
        loader.add_account("A", recorder)
        loader.add_account("B", recorder)

        await loader.load()

        assert recorder.calls == []
        assert isinstance(errors.calls[0][0], RemoteReadError)

    @pytest.mark.asyncio
    async def test_removed_error_callback_not_called(self, ledger: FakeLedger, recorder: Recorder):
        errors = Recorder()
        loader = BulkAccountLoader(ledger)
        callback_id = loader.add_error_callback(errors)
        loader.remove_error_callback(callback_id)
        loader.remove_error_callback(callback_id)
        loader.add_account("A", recorder)
        ledger.failing.add("A")

        await loader.load()
        assert errors.calls == []


# =============================================================================
# POLLING
# =============================================================================


class TestPolling:
    """Tests for the shared polling timer."""

    @pytest.mark.asyncio
    async def test_start_and_stop_are_idempotent(self, ledger: FakeLedger):
        loader = BulkAccountLoader(ledger, polling_interval=10)

        loader.start_polling()
        task = loader._polling_task
        loader.start_polling()
        assert loader.is_polling
        assert loader._polling_task is task

        await loader.stop_polling()
        await loader.stop_polling()
        assert not loader.is_polling

    @pytest.mark.asyncio
    async def test_polling_loads_periodically(self, ledger: FakeLedger, recorder: Recorder):
        loader = BulkAccountLoader(ledger, polling_interval=0.01)
        loader.add_account("A", recorder)
        ledger.put("A", b"x")

        loader.start_polling()
        await asyncio.sleep(0.1)
        await loader.stop_polling()

        assert len(ledger.batch_calls) >= 2
        assert recorder.calls == [(b"x", ledger.slot)]

    def test_polling_interval_setter_validates(self, ledger: FakeLedger):
        loader = BulkAccountLoader(ledger)
        loader.polling_interval = 2.5
        assert loader.polling_interval == 2.5
        with pytest.raises(ValueError):
            loader.polling_interval = -1
