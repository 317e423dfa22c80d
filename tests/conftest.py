"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Ensure src/ is on sys.path for tests so the src layout is used during test runs
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from pinchgut_ledger.store import LedgerStore  # noqa: E402


@pytest.fixture
def ledger_path(tmp_path: Path) -> Path:
    """Ledger location inside a not-yet-existing data directory."""

    return tmp_path / "data" / "ledger.json"


@pytest.fixture
def store(ledger_path: Path) -> LedgerStore:
    """Fresh strict-policy store backed by ``ledger_path``."""

    return LedgerStore(ledger_path)


@pytest.fixture
def make_frame() -> Callable[..., dict[str, Any]]:
    """Build a valid instruction frame, overriding any field via kwargs."""

    def _make(**overrides: Any) -> dict[str, Any]:
        frame: dict[str, Any] = {
            "msgId": "m1",
            "origin": "nodeA",
            "kind": "cmd",
            "intent": "ping",
        }
        frame.update(overrides)
        return frame

    return _make
