"""
Decoder Port: turns raw account bytes into structured values.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class AccountDecoderPort(ABC):
    """Pure, total decoding for well-formed bytes."""

    @abstractmethod
    def decode(self, type_name: str, data: bytes) -> Any:
        """
        Decode one record.

        Raises:
            DecodeError: bytes do not match the `type_name` layout.
        """
        ...
