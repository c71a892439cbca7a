"""
Remote Reader Port: Abstract interface for batched account reads.

Implementations return, for one logical slot, the raw bytes currently
stored at each requested address. Retry/backoff policy belongs to the
implementation, not to its callers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from ledger_sync.domain.models import Address, BatchReadResult, Commitment


class RemoteReaderPort(ABC):
    """
    Abstract interface for batched reads.

    A single call never carries more than `max_batch_size` addresses.
    """

    @property
    @abstractmethod
    def max_batch_size(self) -> int:
        """Largest number of addresses accepted by one batch_read call."""
        ...

    @abstractmethod
    async def batch_read(
        self,
        addresses: Sequence[Address],
        commitment: Commitment,
    ) -> BatchReadResult:
        """
        Read every address at one slot.

        Args:
            addresses: Addresses to read (at most max_batch_size).
            commitment: Consistency level.

        Returns:
            BatchReadResult whose values are positional to `addresses`.

        Raises:
            RemoteReadError: The remote call failed.
        """
        ...

    async def read(self, address: Address, commitment: Commitment) -> tuple[int, bytes | None]:
        """Read a single address. Returns (slot, data)."""
        result = await self.batch_read([address], commitment)
        return result.slot, result.values[0]

    async def close(self) -> None:
        """Release transport resources."""
        return None
