"""
Domain Error Taxonomy.

All synchronization-layer exceptions with clear categorization:
- Subscription lifecycle misuse (caller contract violations, never retried)
- Address resolution failures
- Remote read failures (reported through loader error callbacks)
- Decode failures (last-known-good snapshot is retained)
"""

from __future__ import annotations

from typing import Any


class SyncError(Exception):
    """
    Base class for all synchronization errors.

    Includes structured error info for logging and debugging.
    """

    error_code: str = "SYNC_ERROR"

    def __init__(
        self,
        message: str,
        *,
        address: str | None = None,
        account: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.address = address
        self.account = account
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for logging."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "address": self.address,
            "account": self.account,
            "details": self.details,
        }


# =============================================================================
# Subscription Lifecycle Errors
# =============================================================================


class SubscriptionError(SyncError):
    """Subscription API used outside of its contract."""

    error_code = "SUBSCRIPTION_ERROR"


class NotSubscribedError(SubscriptionError):
    """Getter or polling control used before subscribe (or for an unrequested optional account)."""

    error_code = "NOT_SUBSCRIBED"


class AlreadyPollingError(SubscriptionError):
    """start_polling called twice without stop_polling."""

    error_code = "ALREADY_POLLING"


class NotPollingError(SubscriptionError):
    """stop_polling called without a running poller."""

    error_code = "NOT_POLLING"


class DuplicateCallbackError(SubscriptionError):
    """The same callback id was registered twice with the loader."""

    error_code = "DUPLICATE_CALLBACK"


# =============================================================================
# Resolution Errors
# =============================================================================


class ResolutionError(SyncError):
    """Address of an account could not be resolved."""

    error_code = "RESOLUTION_ERROR"


class AccountNotFoundError(ResolutionError):
    """Root account does not exist on the ledger or a derived address field is empty."""

    error_code = "ACCOUNT_NOT_FOUND"


# =============================================================================
# Transport / Decode Errors
# =============================================================================


class RemoteReadError(SyncError):
    """Batch read against the remote node failed (network, node error, malformed reply)."""

    error_code = "REMOTE_READ_ERROR"


class RateLimitedError(RemoteReadError):
    """Remote node rejected the request because of rate limiting."""

    error_code = "RATE_LIMITED"


class DecodeError(SyncError):
    """Account bytes did not match the expected record layout."""

    error_code = "DECODE_ERROR"

    def __init__(self, message: str, *, type_name: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.type_name = type_name
        self.details["type_name"] = type_name
