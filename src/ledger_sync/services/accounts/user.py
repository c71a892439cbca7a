"""
Per-user account orchestrator.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from ledger_sync.domain.accounts import USER_ACCOUNT_SPECS, UserAccount, UserAccountType
from ledger_sync.domain.models import Address
from ledger_sync.services.accounts.context import SubscriptionConfig, SyncContext
from ledger_sync.services.accounts.orchestrator import AccountOrchestrator


class UserAccountSubscriber(AccountOrchestrator[UserAccountType]):
    """Orchestrator over one user record, its positions and (on request) its orders."""

    kind = "user"

    def __init__(
        self,
        context: SyncContext,
        config: SubscriptionConfig,
        user_address: Address | str,
        authority: Address | str | None = None,
        name: str | None = None,
    ):
        self.user_address = Address.coerce(user_address)
        super().__init__(
            name or f"user:{self.user_address}",
            context,
            config,
            USER_ACCOUNT_SPECS,
            {UserAccountType.USER: self.user_address},
        )
        self._authority = Address.coerce(authority) if authority is not None else None

    @property
    def authority(self) -> Address | None:
        """Owner of the user record (given at construction or read from the record)."""
        if self._authority is not None:
            return self._authority
        if self.is_subscribed:
            user = self.get_user_account()
            if user is not None and user.authority is not None:
                return Address.coerce(user.authority)
        return None

    async def subscribe(self, optional: Iterable[UserAccountType] = ()) -> bool:
        return await super().subscribe(optional)

    def get_user_account(self) -> UserAccount:
        return self._get(UserAccountType.USER)

    def get_user_positions_account(self) -> Any:
        return self._get(UserAccountType.USER_POSITIONS)

    def get_user_orders_account(self) -> Any:
        return self._get(UserAccountType.USER_ORDERS)
