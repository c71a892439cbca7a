"""
Explicit synchronization context and subscription configs.

Everything an orchestrator needs is passed in through a SyncContext; the
subscription config picks the single-account subscriber variant.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ledger_sync.domain.models import Address, Commitment, SubscriptionType
from ledger_sync.ports.account_stream import AccountStreamPort
from ledger_sync.ports.decoder import AccountDecoderPort
from ledger_sync.ports.event_bus import EventBusPort
from ledger_sync.ports.remote_reader import RemoteReaderPort
from ledger_sync.services.accounts.bulk_loader import BulkAccountLoader
from ledger_sync.services.accounts.subscriber import (
    AccountSubscriber,
    BulkAccountSubscriber,
    OnDataChange,
    WebSocketAccountSubscriber,
)

if TYPE_CHECKING:
    from ledger_sync.config.settings import Settings

DEFAULT_POLL_RATE_SECONDS = 1.0


@dataclass(slots=True)
class SyncContext:
    """Collaborators shared by the orchestrators of one client."""

    reader: RemoteReaderPort
    decoder: AccountDecoderPort
    commitment: Commitment = Commitment.CONFIRMED
    stream: AccountStreamPort | None = None
    event_bus: EventBusPort | None = None
    settings: Settings | None = None
    loader: BulkAccountLoader | None = None

    @property
    def default_poll_rate(self) -> float:
        if self.settings is None:
            return DEFAULT_POLL_RATE_SECONDS
        return float(self.settings.subscriber.default_poll_rate_seconds)


@dataclass(frozen=True, slots=True)
class WebSocketSubscriptionConfig:
    """Push updates through the context's account stream."""

    @property
    def type(self) -> SubscriptionType:
        return SubscriptionType.WEBSOCKET


@dataclass(frozen=True, slots=True)
class PollingSubscriptionConfig:
    """Pull updates through a shared BulkAccountLoader."""

    loader: BulkAccountLoader

    @property
    def type(self) -> SubscriptionType:
        return SubscriptionType.POLLING


SubscriptionConfig = WebSocketSubscriptionConfig | PollingSubscriptionConfig


def create_account_subscriber(
    context: SyncContext,
    config: SubscriptionConfig,
    name: str,
    address: Address | str,
    decode_as: str,
    on_change: OnDataChange | None = None,
) -> AccountSubscriber[Any]:
    """Build the single-account subscriber variant selected by `config`."""
    if isinstance(config, PollingSubscriptionConfig):
        return BulkAccountSubscriber(
            name,
            address,
            config.loader,
            context.decoder,
            decode_as,
            on_change=on_change,
            poll_rate=context.default_poll_rate,
        )

    if context.stream is None:
        raise ValueError("WebSocketSubscriptionConfig requires a SyncContext with an account stream")

    return WebSocketAccountSubscriber(
        name,
        address,
        context.reader,
        context.stream,
        context.decoder,
        decode_as,
        commitment=context.commitment,
        on_change=on_change,
        poll_rate=context.default_poll_rate,
    )
