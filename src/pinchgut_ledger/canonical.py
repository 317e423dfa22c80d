"""Deterministic JSON canonicalization and block hashing helpers.

The digest of a block is defined over an exact byte sequence, so the encoding
is pinned down here rather than left to whatever ``json.dumps`` defaults to:

- UTF-8 output, non-ASCII characters emitted as-is (``ensure_ascii=False``);
- compact separators, no insignificant whitespace;
- nested mapping keys sorted, so caller key order never changes the digest;
- the block envelope emitted as ``timestamp``, ``frame``, ``prevHash`` in that
  fixed order;
- only JSON-native values accepted; NaN and infinities are rejected.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any

__all__ = [
    "canonical_block_bytes",
    "canonicalize",
    "digest_block",
]


class _StrictJSONEncoder(json.JSONEncoder):
    """JSON encoder that refuses anything outside the JSON data model."""

    def default(self, o: object) -> object:
        raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")


def _check_keys(obj: object) -> None:
    """Reject non-string mapping keys, which ``json`` would silently coerce."""

    if isinstance(obj, Mapping):
        for key, value in obj.items():
            if not isinstance(key, str):
                raise TypeError(
                    f"Mapping keys must be strings, got {type(key).__name__}"
                )
            _check_keys(value)
    elif isinstance(obj, (list, tuple)):
        for item in obj:
            _check_keys(item)


def canonicalize(obj: object) -> str:
    """Return the canonical JSON text for ``obj``.

    Raises:
        TypeError: If ``obj`` contains non-JSON values or non-string keys.
        ValueError: If ``obj`` contains NaN or infinite floats.
    """

    _check_keys(obj)
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
        cls=_StrictJSONEncoder,
    )


def canonical_block_bytes(
    timestamp: str, frame: Mapping[str, Any], prev_hash: str | None
) -> bytes:
    """Return the exact digest input for a block's hashed fields."""

    text = "".join(
        (
            '{"timestamp":',
            canonicalize(timestamp),
            ',"frame":',
            canonicalize(frame),
            ',"prevHash":',
            canonicalize(prev_hash),
            "}",
        )
    )
    return text.encode("utf-8")


def digest_block(
    timestamp: str, frame: Mapping[str, Any], prev_hash: str | None
) -> str:
    """Return the lowercase hex SHA-256 digest of a block's canonical form."""

    return hashlib.sha256(canonical_block_bytes(timestamp, frame, prev_hash)).hexdigest()
