"""
JSON-RPC wire codec.

Request builders and response parsers for the account methods of a
Solana-style node. Account data travels as `[<base64>, "base64"]`.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Sequence
from typing import Any

from ledger_sync.domain.errors import RemoteReadError
from ledger_sync.domain.models import Address, BatchReadResult, Commitment

JSONRPC_VERSION = "2.0"
ACCOUNT_ENCODING = "base64"

METHOD_GET_MULTIPLE_ACCOUNTS = "getMultipleAccounts"
METHOD_ACCOUNT_SUBSCRIBE = "accountSubscribe"
METHOD_ACCOUNT_UNSUBSCRIBE = "accountUnsubscribe"
METHOD_ACCOUNT_NOTIFICATION = "accountNotification"


# =============================================================================
# Requests
# =============================================================================


def build_request(request_id: int, method: str, params: list[Any]) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method, "params": params}


def build_get_multiple_accounts(
    request_id: int,
    addresses: Sequence[Address],
    commitment: Commitment,
) -> dict[str, Any]:
    return build_request(
        request_id,
        METHOD_GET_MULTIPLE_ACCOUNTS,
        [
            [str(a) for a in addresses],
            {"commitment": commitment.value, "encoding": ACCOUNT_ENCODING},
        ],
    )


def build_account_subscribe(request_id: int, address: Address, commitment: Commitment) -> dict[str, Any]:
    return build_request(
        request_id,
        METHOD_ACCOUNT_SUBSCRIBE,
        [str(address), {"commitment": commitment.value, "encoding": ACCOUNT_ENCODING}],
    )


def build_account_unsubscribe(request_id: int, subscription_id: int) -> dict[str, Any]:
    return build_request(request_id, METHOD_ACCOUNT_UNSUBSCRIBE, [subscription_id])


# =============================================================================
# Responses
# =============================================================================


def parse_result(response: Any) -> Any:
    """
    Extract `result` from a JSON-RPC response.

    Raises:
        RemoteReadError: the node answered with an error object or the payload is malformed.
    """
    if not isinstance(response, dict):
        raise RemoteReadError(f"Malformed JSON-RPC response: expected object, got {type(response).__name__}")

    error = response.get("error")
    if error is not None:
        if isinstance(error, dict):
            code = error.get("code")
            message = error.get("message", "")
        else:
            code, message = None, str(error)
        raise RemoteReadError(
            f"JSON-RPC error {code}: {message}",
            details={"code": code, "rpc_message": message},
        )

    if "result" not in response:
        raise RemoteReadError("Malformed JSON-RPC response: missing result")

    return response["result"]


def decode_account_data(value: Any) -> bytes | None:
    """
    Decode one account value as returned by the node.

    `None` means the account does not exist.
    """
    if value is None:
        return None
    if not isinstance(value, dict):
        raise RemoteReadError(f"Malformed account value: {value!r}")

    data = value.get("data")
    if isinstance(data, list) and len(data) == 2 and data[1] == ACCOUNT_ENCODING:
        encoded = data[0]
    elif isinstance(data, str):
        encoded = data
    else:
        raise RemoteReadError(f"Unsupported account data encoding: {data!r}")

    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise RemoteReadError(f"Invalid base64 account data: {e}") from e


def _context_slot(result: dict[str, Any]) -> int:
    try:
        return int(result["context"]["slot"])
    except (KeyError, TypeError, ValueError) as e:
        raise RemoteReadError("Malformed JSON-RPC response: missing context.slot") from e


def parse_multiple_accounts(response: Any, expected: int) -> BatchReadResult:
    """Parse a getMultipleAccounts response into positional values read at one slot."""
    result = parse_result(response)
    if not isinstance(result, dict):
        raise RemoteReadError("Malformed getMultipleAccounts result")

    slot = _context_slot(result)
    values = result.get("value")
    if not isinstance(values, list):
        raise RemoteReadError("Malformed getMultipleAccounts result: value is not a list")
    if len(values) != expected:
        raise RemoteReadError(
            f"getMultipleAccounts returned {len(values)} values for {expected} addresses",
            details={"expected": expected, "received": len(values)},
        )

    return BatchReadResult(slot=slot, values=[decode_account_data(v) for v in values])


def parse_account_notification(message: Any) -> tuple[int, int, bytes | None] | None:
    """
    Parse an accountNotification push.

    Returns (subscription_id, slot, data), or None when the message is not an
    account notification.
    """
    if not isinstance(message, dict) or message.get("method") != METHOD_ACCOUNT_NOTIFICATION:
        return None

    params = message.get("params")
    if not isinstance(params, dict) or "subscription" not in params:
        raise RemoteReadError("Malformed accountNotification: missing subscription")

    result = params.get("result")
    if not isinstance(result, dict):
        raise RemoteReadError("Malformed accountNotification: missing result")

    return int(params["subscription"]), _context_slot(result), decode_account_data(result.get("value"))
