"""
Canonical Domain Models.

Addresses, consistency levels, raw read results and the loader's tracked
account records. Decoded account payloads live in `domain.accounts`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")

# =============================================================================
# ENUMS
# =============================================================================


class Commitment(str, Enum):
    """Consistency level requested from the remote node."""

    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"
    RECENT = "recent"

    @classmethod
    def from_string(cls, value: str) -> Commitment:
        """Parse commitment from config strings."""
        normalized = value.lower().strip()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Unknown commitment: {value}")


class SubscriptionState(str, Enum):
    """Orchestrator lifecycle."""

    UNSUBSCRIBED = "UNSUBSCRIBED"
    SUBSCRIBING = "SUBSCRIBING"
    SUBSCRIBED = "SUBSCRIBED"


class SubscriptionType(str, Enum):
    """How single-account subscribers receive updates."""

    WEBSOCKET = "websocket"
    POLLING = "polling"


# =============================================================================
# VALUE OBJECTS
# =============================================================================


@dataclass(frozen=True, slots=True)
class Address:
    """Opaque identifier of a remote record, keyed by its canonical string form."""

    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValueError("Address must be a non-empty string")

    def __str__(self) -> str:
        return self.value

    @classmethod
    def coerce(cls, value: Address | str) -> Address:
        return value if isinstance(value, Address) else cls(value)


@dataclass(frozen=True, slots=True)
class BatchReadResult:
    """
    Answer of one batched remote read.

    All values were read at the same `slot`; `values` is positional to the
    requested address list, `None` meaning the account does not exist.
    """

    slot: int
    values: list[bytes | None]


# =============================================================================
# LOADER RECORDS
# =============================================================================

OnAccountChange = Callable[[bytes | None, int], Awaitable[None]]
OnLoaderError = Callable[[Exception], Awaitable[None]]


@dataclass(slots=True)
class TrackedAccount:
    """
    One address registered with the bulk loader.

    `slot`/`data` stay None until the first successful read. `delivered` is
    False while the stored bytes have not reached every listener without an
    error; such bytes are offered again on the next newer read.
    """

    address: Address
    callbacks: dict[str, OnAccountChange] = field(default_factory=dict)
    slot: int | None = None
    data: bytes | None = None
    delivered: bool = True

    @property
    def key(self) -> str:
        return str(self.address)

    @property
    def loaded(self) -> bool:
        return self.slot is not None

    def observe(self, slot: int, data: bytes | None) -> bool:
        """
        Apply a read of this address.

        Returns True when the listeners must be notified.
        """
        if data is not None:
            data = bytes(data)

        if self.slot is None:
            self.slot = slot
            self.data = data
            return True

        if slot <= self.slot:
            return False

        if data == self.data and self.delivered:
            self.slot = slot
            return False

        self.slot = slot
        self.data = data
        return True


@dataclass(frozen=True, slots=True)
class AccountSnapshot(Generic[T]):
    """Decoded account value as last seen by its subscriber."""

    data: T | None
    slot: int | None
    subscribed: bool
