"""Mock package for testing."""

from tests.mocks.ledger import (
    FakeLedger,
    Recorder,
    encode,
    make_decoder,
    seed_protocol,
    seed_user,
)

__all__ = [
    "FakeLedger",
    "Recorder",
    "encode",
    "make_decoder",
    "seed_protocol",
    "seed_user",
]
