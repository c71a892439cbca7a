"""
Account synchronization service package (facade).
"""

from __future__ import annotations

from ledger_sync.services.accounts.bulk_loader import BulkAccountLoader
from ledger_sync.services.accounts.bulk_user import bulk_subscribe_users
from ledger_sync.services.accounts.context import (
    PollingSubscriptionConfig,
    SubscriptionConfig,
    SyncContext,
    WebSocketSubscriptionConfig,
    create_account_subscriber,
)
from ledger_sync.services.accounts.factory import (
    create_bulk_account_loader,
    create_protocol_subscriber,
    create_subscription_config,
    create_sync_context,
    create_user_subscriber,
)
from ledger_sync.services.accounts.orchestrator import AccountOrchestrator
from ledger_sync.services.accounts.poller import AccountPoller
from ledger_sync.services.accounts.protocol import ProtocolAccountSubscriber
from ledger_sync.services.accounts.subscriber import (
    AccountSubscriber,
    BulkAccountSubscriber,
    WebSocketAccountSubscriber,
)
from ledger_sync.services.accounts.user import UserAccountSubscriber

__all__ = [
    "BulkAccountLoader",
    "AccountPoller",
    "AccountSubscriber",
    "BulkAccountSubscriber",
    "WebSocketAccountSubscriber",
    "AccountOrchestrator",
    "ProtocolAccountSubscriber",
    "UserAccountSubscriber",
    "SyncContext",
    "SubscriptionConfig",
    "WebSocketSubscriptionConfig",
    "PollingSubscriptionConfig",
    "create_account_subscriber",
    "create_sync_context",
    "create_bulk_account_loader",
    "create_subscription_config",
    "create_protocol_subscriber",
    "create_user_subscriber",
    "bulk_subscribe_users",
]
