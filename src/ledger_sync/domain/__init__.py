"""
Domain Layer: Core entities, value objects, events and errors.

This layer has NO external dependencies (no transport types, no wire formats).
All types here are canonical and used throughout the package.
"""

from ledger_sync.domain.accounts import (
    PROTOCOL_ACCOUNT_SPECS,
    USER_ACCOUNT_SPECS,
    AccountSpec,
    AccountType,
    OrderStateAccount,
    ProtocolAccountType,
    StateAccount,
    UserAccount,
    UserAccountType,
)
from ledger_sync.domain.errors import (
    AccountNotFoundError,
    AlreadyPollingError,
    DecodeError,
    DuplicateCallbackError,
    NotPollingError,
    NotSubscribedError,
    RateLimitedError,
    RemoteReadError,
    SyncError,
)
from ledger_sync.domain.events import (
    AccountFetched,
    AccountUpdated,
    Fetched,
    SyncErrorOccurred,
    SyncEvent,
    Updated,
)
from ledger_sync.domain.models import (
    AccountSnapshot,
    Address,
    BatchReadResult,
    Commitment,
    SubscriptionState,
    SubscriptionType,
    TrackedAccount,
)

__all__ = [
    # Enums
    "Commitment",
    "SubscriptionState",
    "SubscriptionType",
    "ProtocolAccountType",
    "UserAccountType",
    "AccountType",
    # Models
    "Address",
    "BatchReadResult",
    "TrackedAccount",
    "AccountSnapshot",
    "AccountSpec",
    "StateAccount",
    "OrderStateAccount",
    "UserAccount",
    "PROTOCOL_ACCOUNT_SPECS",
    "USER_ACCOUNT_SPECS",
    # Events
    "SyncEvent",
    "AccountUpdated",
    "Updated",
    "Fetched",
    "AccountFetched",
    "SyncErrorOccurred",
    # Errors
    "SyncError",
    "NotSubscribedError",
    "AlreadyPollingError",
    "NotPollingError",
    "DuplicateCallbackError",
    "AccountNotFoundError",
    "RemoteReadError",
    "RateLimitedError",
    "DecodeError",
]
