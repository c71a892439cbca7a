"""
Bulk user subscription.

Subscribing N polling-backed users one by one costs N initial reads of the
user records. Registering every user record first and loading once turns
that into one read per loader chunk.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from ledger_sync.observability.logging import get_logger
from ledger_sync.services.accounts.bulk_loader import BulkAccountLoader
from ledger_sync.services.accounts.context import PollingSubscriptionConfig
from ledger_sync.services.accounts.user import UserAccountSubscriber

logger = get_logger(__name__)

_PRIME_CALLBACK_ID = "bulk_subscribe_users"


async def _noop(data: bytes | None, slot: int) -> None:
    return None


async def bulk_subscribe_users(
    users: Sequence[UserAccountSubscriber],
    loader: BulkAccountLoader,
) -> None:
    """
    Subscribe many users that share `loader`.

    Raises:
        ValueError: a user is not configured to poll through `loader`.
    """
    for user in users:
        if not isinstance(user.config, PollingSubscriptionConfig) or user.config.loader is not loader:
            raise ValueError(f"{user.name} is not configured with this BulkAccountLoader")

    primed = []
    for user in users:
        if not loader.is_tracked(user.user_address):
            loader.add_account(user.user_address, _noop, callback_id=_PRIME_CALLBACK_ID)
            primed.append(user.user_address)

    try:
        await loader.load()
        results = await asyncio.gather(*(user.subscribe() for user in users), return_exceptions=True)
    finally:
        for address in primed:
            loader.remove_account(address, _PRIME_CALLBACK_ID)

    failures = [r for r in results if isinstance(r, BaseException)]
    logger.info(f"[SYNC] bulk subscribed {len(users) - len(failures)}/{len(users)} users")
    if failures:
        raise failures[0]
