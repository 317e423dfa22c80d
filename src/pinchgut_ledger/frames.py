"""Structural validation for inbound instruction frames."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from .canonical import canonicalize
from .exceptions import InvalidFrameError
from .schemas import PROTOCOL_VERSION, InstructionFrame

__all__ = ["INVALID_FRAME_MESSAGE", "validate_frame"]

INVALID_FRAME_MESSAGE = (
    "msgId, origin, kind, intent are required; optional version must match."
)


def _describe(error: Mapping[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ())) or "frame"
    return f"{location}: {error.get('msg', 'invalid')}"


def validate_frame(raw: object) -> dict[str, Any]:
    """Validate ``raw`` and return the frame as it will be stored.

    The returned mapping is a deep copy of the caller's payload in the
    caller's key order, with ``version`` appended when it was omitted.

    Args:
        raw: Decoded JSON body supplied by the caller.

    Returns:
        Normalized frame ready to be placed in a block.

    Raises:
        InvalidFrameError: If the payload is not an object, a required field is
            missing, empty or not a string, ``version`` does not match
            :data:`~pinchgut_ledger.schemas.PROTOCOL_VERSION`, or a value
            has no canonical JSON form (NaN, infinities, non-string keys).
    """

    if not isinstance(raw, Mapping):
        raise InvalidFrameError(
            INVALID_FRAME_MESSAGE,
            problems=("frame: expected a JSON object",),
            expected_version=PROTOCOL_VERSION,
        )

    problems: list[str] = []
    try:
        InstructionFrame.model_validate(dict(raw))
    except ValidationError as exc:
        problems.extend(_describe(error) for error in exc.errors())

    version = raw.get("version")
    if version is not None and version != PROTOCOL_VERSION:
        problems.append(f"version: expected {PROTOCOL_VERSION!r}, got {version!r}")

    if problems:
        raise InvalidFrameError(
            INVALID_FRAME_MESSAGE,
            problems=problems,
            expected_version=PROTOCOL_VERSION,
        )

    frame: dict[str, Any] = {str(key): copy.deepcopy(value) for key, value in raw.items()}
    if frame.get("version") is None:
        frame["version"] = PROTOCOL_VERSION

    try:
        canonicalize(frame)
    except (TypeError, ValueError) as exc:
        raise InvalidFrameError(
            INVALID_FRAME_MESSAGE,
            problems=(f"frame: {exc}",),
            expected_version=PROTOCOL_VERSION,
        ) from exc
    return frame
