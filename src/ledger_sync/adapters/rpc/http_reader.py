"""
JSON-RPC Remote Reader.

Batched account reads over HTTP with a pooled aiohttp session.
Failures are surfaced as RemoteReadError; retrying is left to the
next polling tick.
"""

from __future__ import annotations

import itertools
from collections.abc import Sequence
from typing import Any

import aiohttp

from ledger_sync.adapters.rpc import codec
from ledger_sync.domain.errors import RateLimitedError, RemoteReadError
from ledger_sync.domain.models import Address, BatchReadResult, Commitment
from ledger_sync.observability.logging import get_logger
from ledger_sync.ports.remote_reader import RemoteReaderPort

logger = get_logger(__name__)

DEFAULT_MAX_BATCH_SIZE = 99


class JsonRpcAccountReader(RemoteReaderPort):
    """
    RemoteReaderPort implementation backed by `getMultipleAccounts`.

    Features:
    - Connection pooling (one persistent ClientSession)
    - Optional api key sent as `api-key` query parameter
    - HTTP 429 mapped to RateLimitedError
    """

    def __init__(
        self,
        http_url: str,
        *,
        api_key: str = "",
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        request_timeout: float = 30.0,
        connect_timeout: float = 10.0,
        max_connections: int = 20,
        session: aiohttp.ClientSession | None = None,
    ):
        if max_batch_size < 1:
            raise ValueError(f"max_batch_size must be >= 1, got {max_batch_size}")

        self._http_url = http_url
        self._api_key = api_key
        self._max_batch_size = max_batch_size
        self._request_timeout = request_timeout
        self._connect_timeout = connect_timeout
        self._max_connections = max_connections

        self._session = session
        self._owns_session = session is None
        self._request_ids = itertools.count(1)

    @classmethod
    def from_settings(cls, settings: Any) -> JsonRpcAccountReader:
        rpc = settings.rpc
        return cls(
            rpc.http_url,
            api_key=rpc.api_key,
            max_batch_size=rpc.max_batch_size,
            request_timeout=float(rpc.request_timeout_seconds),
            connect_timeout=float(rpc.connect_timeout_seconds),
            max_connections=rpc.max_connections,
        )

    @property
    def max_batch_size(self) -> int:
        return self._max_batch_size

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self._max_connections,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            timeout = aiohttp.ClientTimeout(total=self._request_timeout, connect=self._connect_timeout)
            self._session = aiohttp.ClientSession(connector=connector, timeout=timeout)
            self._owns_session = True
            logger.debug(f"[RPC] HTTP session opened (max_connections={self._max_connections})")
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this reader opened it."""
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
            logger.debug("[RPC] HTTP session closed")
        self._session = None

    async def batch_read(
        self,
        addresses: Sequence[Address],
        commitment: Commitment,
    ) -> BatchReadResult:
        if not addresses:
            raise ValueError("batch_read requires at least one address")
        if len(addresses) > self._max_batch_size:
            raise ValueError(f"batch_read got {len(addresses)} addresses, max is {self._max_batch_size}")

        payload = codec.build_get_multiple_accounts(next(self._request_ids), addresses, commitment)
        response = await self._post(payload)
        return codec.parse_multiple_accounts(response, expected=len(addresses))

    async def _post(self, payload: dict[str, Any]) -> Any:
        session = await self._get_session()
        params = {"api-key": self._api_key} if self._api_key else None

        try:
            async with session.post(self._http_url, json=payload, params=params) as resp:
                if resp.status == 429:
                    retry_after = resp.headers.get("Retry-After")
                    raise RateLimitedError(
                        f"Rate limited by {self._http_url}",
                        details={"status": 429, "retry_after": retry_after},
                    )
                if resp.status >= 400:
                    body = await resp.text()
                    raise RemoteReadError(
                        f"HTTP {resp.status} from RPC node: {body[:200]}",
                        details={"status": resp.status},
                    )
                return await resp.json(content_type=None)
        except RemoteReadError:
            raise
        except (aiohttp.ClientError, TimeoutError) as e:
            raise RemoteReadError(f"RPC request failed: {e!r}") from e
        except ValueError as e:
            raise RemoteReadError(f"RPC node returned invalid JSON: {e}") from e
