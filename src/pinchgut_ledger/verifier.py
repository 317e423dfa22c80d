"""Chain verification for hash-linked ledgers."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from .canonical import digest_block
from .schemas import Block, ChainFailure, VerificationResult

__all__ = ["verify_chain"]

LOGGER = logging.getLogger(__name__)


def _fields(entry: Block | Mapping[str, Any]) -> tuple[object, object, object, object]:
    """Return ``(timestamp, frame, prev_hash, hash)`` for a block or raw mapping."""

    if isinstance(entry, Block):
        return entry.timestamp, entry.frame, entry.prev_hash, entry.hash
    return (
        entry.get("timestamp"),
        entry.get("frame"),
        entry.get("prevHash"),
        entry.get("hash"),
    )


def _recompute(timestamp: object, frame: object, prev_hash: object) -> str | None:
    """Recompute a digest, or return ``None`` when the fields cannot be hashed."""

    if not isinstance(timestamp, str) or not isinstance(frame, Mapping):
        return None
    if prev_hash is not None and not isinstance(prev_hash, str):
        return None
    try:
        return digest_block(timestamp, frame, prev_hash)
    except (TypeError, ValueError):
        return None


def verify_chain(blocks: Sequence[Block | Mapping[str, Any]]) -> VerificationResult:
    """Scan ``blocks`` from the start and report the first inconsistency.

    At each index the declared ``prevHash`` must equal the preceding block's
    ``hash`` (``None`` at index 0), and the stored ``hash`` must equal the
    digest recomputed from the block's current fields. Scanning stops at the
    first failure. The input is never modified.

    Args:
        blocks: Chain in append order, as :class:`Block` models or the raw
            mappings read from disk.

    Returns:
        Result carrying validity, entry count and the earliest bad index.
    """

    count = len(blocks)
    expected_prev: object = None
    for index, entry in enumerate(blocks):
        failure: ChainFailure | None = None
        if not isinstance(entry, (Block, Mapping)):
            failure = "content"
        else:
            timestamp, frame, prev_hash, stored_hash = _fields(entry)
            if prev_hash != expected_prev:
                failure = "linkage"
            elif _recompute(timestamp, frame, prev_hash) != stored_hash or not stored_hash:
                failure = "content"
            expected_prev = stored_hash

        if failure is not None:
            LOGGER.warning(
                "Ledger chain invalid",
                extra={"bad_index": index, "reason": failure, "count": count},
            )
            return VerificationResult(
                valid=False, count=count, bad_index=index, reason=failure
            )

    return VerificationResult(valid=True, count=count, bad_index=None, reason=None)
