"""
WebSocket Account Stream.

One multiplexed JSON-RPC websocket connection carrying every
`accountSubscribe` of the process. Responses are matched to requests by
id, notifications are routed to handlers by subscription id and delivered
in arrival order from a single dispatcher task.

The connection is opened lazily on the first subscribe and re-established
with exponential backoff; live subscriptions are re-issued after every
reconnect.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import random
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed

from ledger_sync.adapters.rpc import codec
from ledger_sync.domain.errors import RemoteReadError
from ledger_sync.domain.models import Address, Commitment
from ledger_sync.observability.logging import get_logger
from ledger_sync.ports.account_stream import (
    AccountNotificationHandler,
    AccountStreamPort,
    ResubscribedHandler,
)
from ledger_sync.utils.json_parser import dumps as json_dumps
from ledger_sync.utils.json_parser import loads as json_loads

logger = get_logger(__name__)


@dataclass(slots=True)
class _StreamSubscription:
    local_id: int
    address: Address
    commitment: Commitment
    handler: AccountNotificationHandler
    on_resubscribed: ResubscribedHandler | None = None
    server_id: int | None = None


class WebSocketAccountStream(AccountStreamPort):
    """AccountStreamPort implementation over a Solana-style pubsub websocket."""

    def __init__(
        self,
        ws_url: str,
        *,
        api_key: str = "",
        request_timeout: float = 10.0,
        ping_interval: float = 20.0,
        ping_timeout: float = 20.0,
        reconnect_delay_initial: float = 1.0,
        reconnect_delay_max: float = 30.0,
    ):
        self._url = f"{ws_url}{'&' if '?' in ws_url else '?'}{urlencode({'api-key': api_key})}" if api_key else ws_url
        self._request_timeout = request_timeout
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._reconnect_delay_initial = reconnect_delay_initial
        self._reconnect_delay_max = reconnect_delay_max

        self._subscriptions: dict[int, _StreamSubscription] = {}
        self._by_server_id: dict[int, int] = {}
        # request id -> (future, local subscription id for accountSubscribe requests)
        self._pending: dict[int, tuple[asyncio.Future, int | None]] = {}

        self._local_ids = itertools.count(1)
        self._request_ids = itertools.count(1)

        self._ws: Any = None
        self._connected = asyncio.Event()
        self._closing = False
        self._runner: asyncio.Task | None = None
        self._dispatcher: asyncio.Task | None = None
        self._resubscribe_task: asyncio.Task | None = None
        self._notifications: asyncio.Queue[tuple[int, int, bytes | None]] = asyncio.Queue()

    @classmethod
    def from_settings(cls, settings: Any) -> WebSocketAccountStream:
        rpc = settings.rpc
        return cls(
            rpc.ws_url,
            api_key=rpc.api_key,
            request_timeout=float(rpc.request_timeout_seconds),
        )

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    # =========================================================================
    # AccountStreamPort
    # =========================================================================

    async def subscribe(
        self,
        address: Address,
        commitment: Commitment,
        handler: AccountNotificationHandler,
        *,
        on_resubscribed: ResubscribedHandler | None = None,
    ) -> int:
        local_id = next(self._local_ids)
        sub = _StreamSubscription(
            local_id=local_id,
            address=address,
            commitment=commitment,
            handler=handler,
            on_resubscribed=on_resubscribed,
        )
        self._subscriptions[local_id] = sub

        try:
            await self._issue_subscribe(sub)
        except BaseException:
            self._subscriptions.pop(local_id, None)
            raise

        logger.debug(f"[RPC] accountSubscribe {address} -> {sub.server_id}")
        return local_id

    async def unsubscribe(self, subscription_id: int) -> None:
        sub = self._subscriptions.pop(subscription_id, None)
        if sub is None:
            return

        server_id = sub.server_id
        if server_id is None:
            return
        self._by_server_id.pop(server_id, None)

        if not self.is_connected:
            return

        payload = codec.build_account_unsubscribe(next(self._request_ids), server_id)
        try:
            await self._request(payload)
        except RemoteReadError as e:
            logger.warning(f"[RPC] accountUnsubscribe {server_id} failed: {e}")

    async def close(self) -> None:
        self._closing = True

        for task in (self._resubscribe_task, self._runner, self._dispatcher):
            if task and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._resubscribe_task = None
        self._runner = None
        self._dispatcher = None

        if self._ws is not None:
            with contextlib.suppress(Exception):
                await self._ws.close()
            self._ws = None

        self._connected.clear()
        self._fail_pending(RemoteReadError("Account stream closed"))
        self._subscriptions.clear()
        self._by_server_id.clear()
        logger.debug("[RPC] account stream closed")

    # =========================================================================
    # Requests
    # =========================================================================

    async def _issue_subscribe(self, sub: _StreamSubscription) -> None:
        payload = codec.build_account_subscribe(next(self._request_ids), sub.address, sub.commitment)
        result = await self._request(payload, local_id=sub.local_id)
        self._bind(sub.local_id, result)

    def _bind(self, local_id: int, result: Any) -> None:
        sub = self._subscriptions.get(local_id)
        if sub is None:
            return
        try:
            server_id = int(result)
        except (TypeError, ValueError) as e:
            raise RemoteReadError(f"Malformed accountSubscribe result: {result!r}") from e
        sub.server_id = server_id
        self._by_server_id[server_id] = local_id

    async def _request(self, payload: dict[str, Any], local_id: int | None = None) -> Any:
        await self._ensure_connected()

        request_id = payload["id"]
        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = (fut, local_id)

        try:
            await self._ws.send(json_dumps(payload))
            response = await asyncio.wait_for(fut, timeout=self._request_timeout)
        except ConnectionClosed as e:
            raise RemoteReadError(f"Account stream disconnected: {e}") from e
        except TimeoutError as e:
            raise RemoteReadError(f"{payload['method']} timed out after {self._request_timeout}s") from e
        finally:
            self._pending.pop(request_id, None)

        return codec.parse_result(response)

    def _fail_pending(self, error: Exception) -> None:
        for fut, _ in list(self._pending.values()):
            if not fut.done():
                fut.set_exception(error)
        self._pending.clear()

    # =========================================================================
    # Connection
    # =========================================================================

    async def _ensure_connected(self) -> None:
        if self._closing:
            raise RemoteReadError("Account stream is closed")

        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(self._run(), name="account_stream_connection")
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.create_task(self._dispatch_notifications(), name="account_stream_dispatcher")

        try:
            await asyncio.wait_for(self._connected.wait(), timeout=self._request_timeout)
        except TimeoutError as e:
            raise RemoteReadError(f"Could not connect to {self._url} within {self._request_timeout}s") from e

    async def _run(self) -> None:
        delay = self._reconnect_delay_initial

        while not self._closing:
            try:
                async with connect(
                    self._url,
                    ping_interval=self._ping_interval,
                    ping_timeout=self._ping_timeout,
                    open_timeout=self._request_timeout,
                ) as ws:
                    self._ws = ws
                    self._connected.set()
                    delay = self._reconnect_delay_initial
                    logger.info("[RPC] account stream connected")

                    if self._subscriptions:
                        self._resubscribe_task = asyncio.create_task(self._resubscribe_all())

                    async for raw in ws:
                        self._handle_message(raw)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[RPC] account stream connection error: {e!r}")
            finally:
                self._connected.clear()
                self._ws = None
                self._by_server_id.clear()
                for sub in self._subscriptions.values():
                    sub.server_id = None
                self._fail_pending(RemoteReadError("Account stream disconnected"))

            if self._closing:
                break

            jitter = random.random() * 0.25 * delay
            await asyncio.sleep(min(self._reconnect_delay_max, delay + jitter))
            delay = min(self._reconnect_delay_max, max(self._reconnect_delay_initial, delay * 2))

    async def _resubscribe_all(self) -> None:
        resubscribed: list[_StreamSubscription] = []
        for sub in list(self._subscriptions.values()):
            try:
                await self._issue_subscribe(sub)
            except RemoteReadError as e:
                logger.warning(f"[RPC] resubscribe of {sub.address} failed: {e}")
                return
            resubscribed.append(sub)
        logger.info(f"[RPC] re-issued {len(resubscribed)} account subscriptions")

        # Writes made during the outage were never pushed
        await asyncio.gather(
            *(self._notify_resubscribed(sub) for sub in resubscribed if sub.on_resubscribed is not None)
        )

    async def _notify_resubscribed(self, sub: _StreamSubscription) -> None:
        if sub.local_id not in self._subscriptions:
            return
        try:
            await sub.on_resubscribed()
        except Exception:
            logger.exception(f"[RPC] resubscribe handler for {sub.address} failed")

    def _handle_message(self, raw: str | bytes) -> None:
        try:
            msg = json_loads(raw)
        except ValueError:
            logger.debug("[RPC] dropping non-JSON stream message")
            return
        if not isinstance(msg, dict):
            return

        request_id = msg.get("id")
        if request_id is not None and request_id in self._pending:
            fut, local_id = self._pending[request_id]
            if local_id is not None and "result" in msg:
                # Bind before any notification for this subscription is routed
                with contextlib.suppress(RemoteReadError):
                    self._bind(local_id, msg["result"])
            if not fut.done():
                fut.set_result(msg)
            return

        try:
            notification = codec.parse_account_notification(msg)
        except RemoteReadError as e:
            logger.warning(f"[RPC] {e}")
            return

        if notification is None:
            logger.debug(f"[RPC] unhandled stream message: {msg.get('method') or msg.get('id')}")
            return

        self._notifications.put_nowait(notification)

    async def _dispatch_notifications(self) -> None:
        while True:
            server_id, slot, data = await self._notifications.get()
            local_id = self._by_server_id.get(server_id)
            sub = self._subscriptions.get(local_id) if local_id is not None else None
            if sub is None:
                logger.debug(f"[RPC] notification for unknown subscription {server_id}")
                continue
            try:
                await sub.handler(slot, data)
            except Exception:
                logger.exception(f"[RPC] notification handler for {sub.address} failed")
