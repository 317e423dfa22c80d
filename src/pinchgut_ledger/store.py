"""Append-only, hash-chained ledger persisted as a single JSON document.

The whole chain is rewritten on every append: the new document goes to a
temporary file in the ledger's directory, is fsynced, and replaces the old one
with :func:`os.replace`, so readers only ever see the previous or the next
complete chain. Appends are serialized in-process with a re-entrant lock and
across processes with an advisory ``portalocker`` lock on ``<ledger>.lock``.

On-disk layout::

    {"format": 1, "entries": [{"timestamp": ..., "frame": {...},
                               "prevHash": ..., "hash": ...}, ...]}

A bare JSON list of blocks is also accepted on load and upgraded to the
versioned layout by the next append.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import warnings
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import IO

import portalocker
from pydantic import ValidationError

from .canonical import digest_block
from .exceptions import CorruptStoreError, CorruptStoreWarning
from .frames import validate_frame
from .schemas import (
    STORE_FORMAT_VERSION,
    Block,
    BlockSummary,
    LedgerSnapshot,
    VerificationResult,
)
from .settings import CorruptPolicy
from .verifier import verify_chain

__all__ = ["LedgerStore", "utc_timestamp"]

logger = logging.getLogger(__name__)

_StatSignature = tuple[int, int, int]


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string with millisecond precision."""

    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _fsync_directory(path: Path) -> None:
    """Durably flush directory metadata when supported by the platform."""
    if os.name == "nt":  # pragma: no cover - Windows does not need dir fsync
        return
    flags = getattr(os, "O_DIRECTORY", None)
    if flags is None:  # pragma: no cover - platform without O_DIRECTORY
        return
    fd = os.open(str(path), flags)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _parse_document(raw: str) -> list[Block]:
    """Parse persisted text into blocks.

    Raises:
        ValueError: If the text is not a recognised ledger document.
    """

    data = json.loads(raw)
    if isinstance(data, dict):
        version = data.get("format")
        if version != STORE_FORMAT_VERSION:
            raise ValueError(f"unsupported ledger format {version!r}")
        entries = data.get("entries")
    else:
        entries = data
    if not isinstance(entries, list):
        raise ValueError("ledger entries must be a list")
    return [Block.model_validate(entry) for entry in entries]


class LedgerStore:
    """Durable, ordered storage of blocks with append-only semantics.

    Construct one instance per process and share it. Every public method is
    safe to call from multiple threads.

    Args:
        path: Location of the ledger document.
        corrupt_policy: ``"strict"`` raises :class:`CorruptStoreError` when the
            document cannot be parsed and refuses to append until an operator
            fixes it. ``"recover"`` renames the unreadable file to
            ``<name>.corrupt-<stamp>``, emits :class:`CorruptStoreWarning` and
            continues with an empty ledger.
        clock: Timestamp source for new blocks; defaults to :func:`utc_timestamp`.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        corrupt_policy: CorruptPolicy = "strict",
        clock: Callable[[], str] | None = None,
    ) -> None:
        if corrupt_policy not in ("strict", "recover"):
            raise ValueError(f"Unknown corrupt_policy: {corrupt_policy!r}")
        self.path = Path(path)
        self.corrupt_policy: CorruptPolicy = corrupt_policy
        self._clock = clock or utc_timestamp
        self._lock = threading.RLock()
        self._blocks: list[Block] = []
        self._signature: _StatSignature | None = None

    @property
    def lock_path(self) -> Path:
        return self.path.with_suffix(self.path.suffix + ".lock")

    @contextmanager
    def _file_lock(self) -> Iterator[IO[bytes]]:
        """Hold the cross-process advisory lock for the ledger."""
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with self.lock_path.open("a+b") as lock_fp:
            portalocker.lock(lock_fp, portalocker.LOCK_EX)
            try:
                yield lock_fp
            finally:
                portalocker.unlock(lock_fp)

    def _stat_signature(self) -> _StatSignature | None:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return None
        return (stat.st_mtime_ns, stat.st_size, stat.st_ino)

    def _write(self, blocks: list[Block]) -> None:
        """Atomically replace the ledger document with ``blocks``."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document = {
            "format": STORE_FORMAT_VERSION,
            "entries": [block.to_json_dict() for block in blocks],
        }
        payload = json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")

        temp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "wb", dir=str(self.path.parent), prefix=f".{self.path.name}.", delete=False
            ) as tmp:
                temp_path = Path(tmp.name)
                tmp.write(payload)
                tmp.flush()
                try:
                    os.fsync(tmp.fileno())
                except OSError as exc:
                    logger.warning(
                        "Failed to fsync ledger temp file",
                        extra={"error": str(exc)},
                    )
            os.replace(temp_path, self.path)
        except Exception:
            if temp_path is not None and temp_path.exists():
                temp_path.unlink(missing_ok=True)
            raise

        try:
            _fsync_directory(self.path.parent)
        except OSError as exc:
            logger.warning(
                "Failed to fsync ledger directory",
                extra={"error": str(exc)},
            )
        self._blocks = blocks
        self._signature = self._stat_signature()

    def _quarantine(self, reason: str) -> None:
        """Move an unreadable ledger aside so a fresh one can take its place."""
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        target = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        os.replace(self.path, target)
        message = (
            f"Ledger at {self.path} is unreadable ({reason}); "
            f"moved to {target.name} and started an empty ledger."
        )
        logger.error(
            "Corrupt ledger quarantined",
            extra={"path": str(self.path), "quarantine": str(target), "reason": reason},
        )
        warnings.warn(message, CorruptStoreWarning, stacklevel=4)

    def _refresh(self, *, locked: bool = False) -> list[Block]:
        """Bring the cache in line with the file on disk.

        Caller holds ``_lock``. ``locked`` says whether the caller also holds
        the file lock; any write made here (first-use initialisation or
        recovery) happens under it, after stat-ing the file again.
        """
        signature = self._stat_signature()
        if signature is not None and signature == self._signature:
            return self._blocks
        if signature is None:
            if not locked:
                with self._file_lock():
                    return self._refresh(locked=True)
            logger.info("Initialising empty ledger", extra={"path": str(self.path)})
            self._write([])
            return self._blocks

        try:
            raw = self.path.read_text(encoding="utf-8")
            blocks = _parse_document(raw)
        except (UnicodeDecodeError, ValueError, ValidationError) as exc:
            reason = str(exc).splitlines()[0] if str(exc) else type(exc).__name__
            if self.corrupt_policy == "strict":
                logger.error(
                    "Corrupt ledger refused",
                    extra={"path": str(self.path), "reason": reason},
                )
                raise CorruptStoreError(
                    f"Ledger at {self.path} cannot be parsed: {reason}",
                    path=str(self.path),
                ) from exc
            if not locked:
                with self._file_lock():
                    return self._refresh(locked=True)
            self._quarantine(reason)
            self._write([])
            return self._blocks

        self._blocks = blocks
        self._signature = signature
        return self._blocks

    def load(self) -> list[Block]:
        """Return the full persisted chain in append order.

        Creates an empty persisted ledger on first use.

        Raises:
            CorruptStoreError: Under the strict policy, if the document on
                disk cannot be parsed.
        """
        with self._lock:
            return [block.model_copy(deep=True) for block in self._refresh()]

    def append(self, frame: object) -> BlockSummary:
        """Validate ``frame``, link it to the chain head and persist it.

        Args:
            frame: Instruction frame as decoded from the caller's JSON.

        Returns:
            ``{timestamp, hash, prevHash}`` of the persisted block.

        Raises:
            InvalidFrameError: If the frame fails structural validation.
            CorruptStoreError: Under the strict policy, if the existing
                ledger cannot be parsed; nothing is written in that case.
        """
        normalized = validate_frame(frame)
        with self._lock, self._file_lock():
            blocks = self._refresh(locked=True)
            prev_hash = blocks[-1].hash if blocks else None
            timestamp = self._clock()
            block = Block(
                timestamp=timestamp,
                frame=normalized,
                prev_hash=prev_hash,
                hash=digest_block(timestamp, normalized, prev_hash),
            )
            self._write([*blocks, block])
            index = len(blocks)

        logger.info(
            "Appended ledger block",
            extra={
                "index": index,
                "hash": block.hash,
                "msg_id": normalized.get("msgId"),
            },
        )
        return block.summary()

    def snapshot(self) -> LedgerSnapshot:
        """Return an independent copy of the chain and its length."""
        with self._lock:
            blocks = self._refresh()
            entries = [block.model_copy(deep=True) for block in blocks]
        return LedgerSnapshot(count=len(entries), entries=entries)

    def count(self) -> int:
        with self._lock:
            return len(self._refresh())

    def verify(self) -> VerificationResult:
        """Run the chain verifier over the persisted ledger."""
        with self._lock:
            blocks = list(self._refresh())
        result = verify_chain(blocks)
        logger.info(
            "Verified ledger",
            extra={"valid": result.valid, "count": result.count, "bad_index": result.bad_index},
        )
        return result
