"""
Decoder Registry.

Maps record type names to decode callables. Any failure inside a decode
callable is re-raised as DecodeError with the original exception chained.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from ledger_sync.domain.errors import DecodeError
from ledger_sync.ports.decoder import AccountDecoderPort

DecodeFn = Callable[[bytes], Any]


class DecoderRegistry(AccountDecoderPort):
    """AccountDecoderPort backed by a name -> callable table."""

    def __init__(self, decoders: dict[str, DecodeFn] | None = None):
        self._decoders: dict[str, DecodeFn] = dict(decoders or {})

    def register(self, type_name: str, decode: DecodeFn) -> None:
        """Register (or replace) the decoder of one record type."""
        self._decoders[type_name] = decode

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._decoders

    @property
    def type_names(self) -> list[str]:
        return sorted(self._decoders)

    def decode(self, type_name: str, data: bytes) -> Any:
        decode = self._decoders.get(type_name)
        if decode is None:
            raise DecodeError(f"No decoder registered for {type_name}", type_name=type_name)

        try:
            return decode(data)
        except DecodeError:
            raise
        except Exception as e:
            raise DecodeError(
                f"Failed to decode {type_name} ({len(data)} bytes): {e}",
                type_name=type_name,
            ) from e
