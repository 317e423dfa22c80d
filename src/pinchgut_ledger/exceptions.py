"""Pinchgut ledger exception hierarchy."""

from __future__ import annotations

from collections.abc import Sequence

__all__ = [
    "CorruptStoreError",
    "CorruptStoreWarning",
    "InvalidFrameError",
    "LedgerUnavailableError",
    "PinchgutError",
]


class PinchgutError(Exception):
    """Base exception for all Pinchgut ledger errors."""


class InvalidFrameError(PinchgutError, ValueError):
    """Raised when an instruction frame fails structural validation.

    Attributes:
        problems: Human readable descriptions of each failed check.
        expected_version: Protocol version the frame must declare, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        problems: Sequence[str] = (),
        expected_version: str | None = None,
    ) -> None:
        super().__init__(message)
        self.problems: tuple[str, ...] = tuple(problems)
        self.expected_version = expected_version


class CorruptStoreError(PinchgutError, RuntimeError):
    """Raised when the persisted ledger cannot be parsed."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class CorruptStoreWarning(UserWarning):
    """Emitted when an unreadable ledger is set aside and replaced by an empty one."""


class LedgerUnavailableError(PinchgutError, RuntimeError):
    """Raised when the ledger service cannot be reached or answers garbage."""
