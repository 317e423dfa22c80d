"""Pinchgut Ledger - tamper-evident, hash-chained storage for Layer 8 instruction frames."""

from __future__ import annotations

from importlib import import_module
from typing import Any, TYPE_CHECKING

__all__ = [
    "Block",
    "BlockSummary",
    "CorruptStoreError",
    "CorruptStoreWarning",
    "InvalidFrameError",
    "LedgerClient",
    "LedgerSnapshot",
    "LedgerStore",
    "PROTOCOL_VERSION",
    "VerificationResult",
    "create_app",
    "digest_block",
    "validate_frame",
    "verify_chain",
]

if TYPE_CHECKING:
    from .api import create_app
    from .canonical import digest_block
    from .client import LedgerClient
    from .exceptions import CorruptStoreError, CorruptStoreWarning, InvalidFrameError
    from .frames import validate_frame
    from .schemas import (
        PROTOCOL_VERSION,
        Block,
        BlockSummary,
        LedgerSnapshot,
        VerificationResult,
    )
    from .store import LedgerStore
    from .verifier import verify_chain


def __getattr__(name: str) -> Any:
    """Lazily import modules so the core does not pull in the web stack."""

    module_map = {
        "Block": "schemas",
        "BlockSummary": "schemas",
        "LedgerSnapshot": "schemas",
        "PROTOCOL_VERSION": "schemas",
        "VerificationResult": "schemas",
        "CorruptStoreError": "exceptions",
        "CorruptStoreWarning": "exceptions",
        "InvalidFrameError": "exceptions",
        "LedgerClient": "client",
        "LedgerStore": "store",
        "create_app": "api",
        "digest_block": "canonical",
        "validate_frame": "frames",
        "verify_chain": "verifier",
    }

    if name not in module_map:
        raise AttributeError(name)

    module = import_module(f".{module_map[name]}", __name__)
    return getattr(module, name)
