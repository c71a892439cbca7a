"""
Factories wiring the synchronization layer from Settings.
"""

from __future__ import annotations

from ledger_sync.adapters.messaging.event_bus import InMemoryEventBus
from ledger_sync.adapters.rpc.http_reader import JsonRpcAccountReader
from ledger_sync.adapters.rpc.ws_stream import WebSocketAccountStream
from ledger_sync.config.settings import Settings, get_settings
from ledger_sync.domain.models import Address, Commitment, SubscriptionType
from ledger_sync.ports.decoder import AccountDecoderPort
from ledger_sync.ports.event_bus import EventBusPort
from ledger_sync.ports.remote_reader import RemoteReaderPort
from ledger_sync.services.accounts.bulk_loader import BulkAccountLoader
from ledger_sync.services.accounts.context import (
    PollingSubscriptionConfig,
    SubscriptionConfig,
    SyncContext,
    WebSocketSubscriptionConfig,
)
from ledger_sync.services.accounts.protocol import ProtocolAccountSubscriber
from ledger_sync.services.accounts.user import UserAccountSubscriber


def create_sync_context(
    decoder: AccountDecoderPort,
    settings: Settings | None = None,
    event_bus: EventBusPort | None = None,
) -> SyncContext:
    """
    Build a context with JSON-RPC transports from settings.

    The push stream is only created in websocket mode.
    """
    settings = settings or get_settings()
    errors = settings.validate_settings()
    if errors:
        raise ValueError(f"Invalid settings: {'; '.join(errors)}")

    stream = None
    if SubscriptionType(settings.subscriber.mode.lower()) is SubscriptionType.WEBSOCKET:
        stream = WebSocketAccountStream.from_settings(settings)

    return SyncContext(
        reader=JsonRpcAccountReader.from_settings(settings),
        decoder=decoder,
        commitment=Commitment.from_string(settings.rpc.commitment),
        stream=stream,
        event_bus=event_bus or InMemoryEventBus(),
        settings=settings,
    )


def create_bulk_account_loader(
    reader: RemoteReaderPort,
    settings: Settings | None = None,
) -> BulkAccountLoader:
    return BulkAccountLoader.from_settings(reader, settings or get_settings())


def create_subscription_config(context: SyncContext) -> SubscriptionConfig:
    """
    Subscription config selected by `subscriber.mode`.

    Polling mode shares one loader per context, created on first use.
    """
    mode = context.settings.subscriber.mode.lower() if context.settings else SubscriptionType.WEBSOCKET.value
    if SubscriptionType(mode) is SubscriptionType.WEBSOCKET:
        return WebSocketSubscriptionConfig()

    if context.loader is None:
        context.loader = create_bulk_account_loader(context.reader, context.settings)
    return PollingSubscriptionConfig(loader=context.loader)


def create_protocol_subscriber(
    context: SyncContext,
    state_address: Address | str,
    config: SubscriptionConfig | None = None,
    name: str = "protocol",
) -> ProtocolAccountSubscriber:
    return ProtocolAccountSubscriber(
        context,
        config or create_subscription_config(context),
        state_address,
        name=name,
    )


def create_user_subscriber(
    context: SyncContext,
    user_address: Address | str,
    authority: Address | str | None = None,
    config: SubscriptionConfig | None = None,
    name: str | None = None,
) -> UserAccountSubscriber:
    return UserAccountSubscriber(
        context,
        config or create_subscription_config(context),
        user_address,
        authority=authority,
        name=name,
    )
