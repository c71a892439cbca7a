"""
Protocol-global account orchestrator.

Mirrors the protocol's state record and everything reachable from it:
markets (always), the history records and order records (on request).
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from ledger_sync.domain.accounts import (
    PROTOCOL_ACCOUNT_SPECS,
    OrderStateAccount,
    ProtocolAccountType,
    StateAccount,
)
from ledger_sync.domain.models import Address
from ledger_sync.services.accounts.context import SubscriptionConfig, SyncContext
from ledger_sync.services.accounts.orchestrator import AccountOrchestrator

OPTIONAL_PROTOCOL_ACCOUNTS: tuple[ProtocolAccountType, ...] = tuple(
    k for k, spec in PROTOCOL_ACCOUNT_SPECS.items() if spec.optional
)


class ProtocolAccountSubscriber(AccountOrchestrator[ProtocolAccountType]):
    """Orchestrator over the protocol state record and its derived records."""

    kind = "protocol"

    def __init__(
        self,
        context: SyncContext,
        config: SubscriptionConfig,
        state_address: Address | str,
        name: str = "protocol",
    ):
        super().__init__(
            name,
            context,
            config,
            PROTOCOL_ACCOUNT_SPECS,
            {ProtocolAccountType.STATE: state_address},
        )
        self.state_address = Address.coerce(state_address)

    async def subscribe(self, optional: Iterable[ProtocolAccountType] = ()) -> bool:
        return await super().subscribe(optional)

    async def subscribe_to_all(self) -> bool:
        """Subscribe every record, optional ones included."""
        return await self.subscribe(OPTIONAL_PROTOCOL_ACCOUNTS)

    def get_state_account(self) -> StateAccount:
        return self._get(ProtocolAccountType.STATE)

    def get_markets_account(self) -> Any:
        return self._get(ProtocolAccountType.MARKETS)

    def get_trade_history_account(self) -> Any:
        return self._get(ProtocolAccountType.TRADE_HISTORY)

    def get_deposit_history_account(self) -> Any:
        return self._get(ProtocolAccountType.DEPOSIT_HISTORY)

    def get_funding_payment_history_account(self) -> Any:
        return self._get(ProtocolAccountType.FUNDING_PAYMENT_HISTORY)

    def get_funding_rate_history_account(self) -> Any:
        return self._get(ProtocolAccountType.FUNDING_RATE_HISTORY)

    def get_curve_history_account(self) -> Any:
        return self._get(ProtocolAccountType.CURVE_HISTORY)

    def get_liquidation_history_account(self) -> Any:
        return self._get(ProtocolAccountType.LIQUIDATION_HISTORY)

    def get_order_state_account(self) -> OrderStateAccount:
        return self._get(ProtocolAccountType.ORDER_STATE)

    def get_order_history_account(self) -> Any:
        return self._get(ProtocolAccountType.ORDER_HISTORY)
