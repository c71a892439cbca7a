"""
Domain Events.

Events are immutable records of synchronization activity. Every event
carries the `source` that produced it so one bus can be shared by many
orchestrators; per-record updates use `account_type` as discriminant.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ledger_sync.domain.accounts import AccountType


@dataclass(frozen=True, slots=True)
class SyncEvent:
    """Base class for all synchronization events."""

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    source: str = ""

    @property
    def event_type(self) -> str:
        return self.__class__.__name__


@dataclass(frozen=True, slots=True)
class AccountUpdated(SyncEvent):
    """Emitted when a subscribed record changed; carries the new decoded value."""

    account_type: AccountType | None = None
    data: Any = None
    slot: int | None = None


@dataclass(frozen=True, slots=True)
class Updated(SyncEvent):
    """Emitted alongside every AccountUpdated and after a completed subscribe."""


@dataclass(frozen=True, slots=True)
class Fetched(SyncEvent):
    """Emitted once per successful orchestrator fetch()."""


@dataclass(frozen=True, slots=True)
class AccountFetched(SyncEvent):
    """Emitted when a per-account polling timer finished a fetch."""

    account_type: AccountType | None = None


@dataclass(frozen=True, slots=True)
class SyncErrorOccurred(SyncEvent):
    """Emitted when the shared loader reported a read or listener failure."""

    error: Exception | None = None
    details: dict[str, Any] = field(default_factory=dict)
