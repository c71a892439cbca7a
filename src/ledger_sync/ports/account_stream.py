"""
Account Stream Port: Abstract interface for server-push account notifications.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from ledger_sync.domain.models import Address, Commitment

AccountNotificationHandler = Callable[[int, bytes | None], Awaitable[None]]
ResubscribedHandler = Callable[[], Awaitable[None]]


class AccountStreamPort(ABC):
    """
    Abstract interface for push subscriptions.

    The stream guarantees per-address delivery in slot order. Writes made
    while the stream was disconnected are not replayed; subscribers that
    need them pass `on_resubscribed` and re-read.
    """

    @abstractmethod
    async def subscribe(
        self,
        address: Address,
        commitment: Commitment,
        handler: AccountNotificationHandler,
        *,
        on_resubscribed: ResubscribedHandler | None = None,
    ) -> int:
        """
        Start receiving notifications for an address.

        Args:
            address: Account to watch.
            commitment: Consistency level.
            handler: Async callable receiving (slot, data) for each notification.
            on_resubscribed: Awaited after the subscription was re-established
                following a reconnect.

        Returns:
            Subscription id to pass to unsubscribe().
        """
        ...

    @abstractmethod
    async def unsubscribe(self, subscription_id: int) -> None:
        """Stop a subscription. Unknown ids are ignored."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the underlying connection and drop every subscription."""
        ...
