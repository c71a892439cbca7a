"""
Account Catalogue.

Closed set of subscribable records, where each record's address comes from,
and the typed root records that carry derived addresses.

Root records (state, user) are located directly. Every other record is
located by reading an address field out of its parent's decoded value, so
subscribing is a multi-phase resolution: STATE -> MARKETS, STATE ->
ORDER_STATE -> ORDER_HISTORY, USER -> USER_POSITIONS, ...
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from operator import attrgetter
from typing import Any

from ledger_sync.domain.models import Address

# =============================================================================
# ACCOUNT TYPES
# =============================================================================


class ProtocolAccountType(str, Enum):
    """Protocol-global records."""

    STATE = "state"
    MARKETS = "markets"
    TRADE_HISTORY = "trade_history"
    DEPOSIT_HISTORY = "deposit_history"
    FUNDING_PAYMENT_HISTORY = "funding_payment_history"
    FUNDING_RATE_HISTORY = "funding_rate_history"
    CURVE_HISTORY = "curve_history"
    LIQUIDATION_HISTORY = "liquidation_history"
    ORDER_STATE = "order_state"
    ORDER_HISTORY = "order_history"


class UserAccountType(str, Enum):
    """Per-user records."""

    USER = "user"
    USER_POSITIONS = "user_positions"
    USER_ORDERS = "user_orders"


AccountType = ProtocolAccountType | UserAccountType


# =============================================================================
# ROOT RECORDS
# =============================================================================


@dataclass(frozen=True, slots=True)
class StateAccount:
    """Protocol configuration; holds the addresses of every other protocol record."""

    admin: Address | None = None
    markets: Address | None = None
    trade_history: Address | None = None
    deposit_history: Address | None = None
    funding_payment_history: Address | None = None
    funding_rate_history: Address | None = None
    curve_history: Address | None = None
    liquidation_history: Address | None = None
    order_state: Address | None = None
    margin_ratio_initial: int = 0
    margin_ratio_maintenance: int = 0
    margin_ratio_partial: int = 0
    fee_numerator: int = 0
    fee_denominator: int = 0


@dataclass(frozen=True, slots=True)
class OrderStateAccount:
    """Order configuration; holds the order history address."""

    order_history: Address | None = None
    reward_numerator: int = 0
    reward_denominator: int = 0


@dataclass(frozen=True, slots=True)
class UserAccount:
    """Per-user root record."""

    authority: Address | None = None
    positions: Address | None = None
    orders: Address | None = None
    collateral: int = 0
    cumulative_deposits: int = 0
    total_fee_paid: int = 0


# =============================================================================
# SPECS
# =============================================================================


@dataclass(frozen=True, slots=True)
class AccountSpec:
    """
    How to find and decode one record.

    Args:
        account_type: Catalogue entry.
        decode_as: Record type name handed to the decoder.
        parent: Record whose decoded value holds this record's address (None for roots).
        locate: Reads the address out of the parent's decoded value.
        optional: Only subscribed when the caller asks for it.
    """

    account_type: AccountType
    decode_as: str
    parent: AccountType | None = None
    locate: Callable[[Any], Address | str | None] | None = None
    optional: bool = False

    @property
    def is_root(self) -> bool:
        return self.parent is None


def _derived(
    account_type: AccountType,
    decode_as: str,
    parent: AccountType,
    field_name: str,
    *,
    optional: bool = True,
) -> AccountSpec:
    return AccountSpec(
        account_type=account_type,
        decode_as=decode_as,
        parent=parent,
        locate=attrgetter(field_name),
        optional=optional,
    )


_P = ProtocolAccountType
_U = UserAccountType

PROTOCOL_ACCOUNT_SPECS: dict[ProtocolAccountType, AccountSpec] = {
    _P.STATE: AccountSpec(_P.STATE, "State"),
    _P.MARKETS: _derived(_P.MARKETS, "Markets", _P.STATE, "markets", optional=False),
    _P.TRADE_HISTORY: _derived(_P.TRADE_HISTORY, "TradeHistory", _P.STATE, "trade_history"),
    _P.DEPOSIT_HISTORY: _derived(_P.DEPOSIT_HISTORY, "DepositHistory", _P.STATE, "deposit_history"),
    _P.FUNDING_PAYMENT_HISTORY: _derived(
        _P.FUNDING_PAYMENT_HISTORY, "FundingPaymentHistory", _P.STATE, "funding_payment_history"
    ),
    _P.FUNDING_RATE_HISTORY: _derived(
        _P.FUNDING_RATE_HISTORY, "FundingRateHistory", _P.STATE, "funding_rate_history"
    ),
    _P.CURVE_HISTORY: _derived(_P.CURVE_HISTORY, "ExtendedCurveHistory", _P.STATE, "curve_history"),
    _P.LIQUIDATION_HISTORY: _derived(
        _P.LIQUIDATION_HISTORY, "LiquidationHistory", _P.STATE, "liquidation_history"
    ),
    _P.ORDER_STATE: _derived(_P.ORDER_STATE, "OrderState", _P.STATE, "order_state"),
    _P.ORDER_HISTORY: _derived(_P.ORDER_HISTORY, "OrderHistory", _P.ORDER_STATE, "order_history"),
}

USER_ACCOUNT_SPECS: dict[UserAccountType, AccountSpec] = {
    _U.USER: AccountSpec(_U.USER, "User"),
    _U.USER_POSITIONS: _derived(_U.USER_POSITIONS, "UserPositions", _U.USER, "positions", optional=False),
    _U.USER_ORDERS: _derived(_U.USER_ORDERS, "UserOrders", _U.USER, "orders"),
}
