"""Pydantic models describing the Pinchgut ledger data model."""

from __future__ import annotations

from typing import Any, Final, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr

PROTOCOL_VERSION: Final[str] = "PINCHGUT-L8-0.1"
STORE_FORMAT_VERSION: Final[int] = 1
REQUIRED_FRAME_FIELDS: Final[tuple[str, ...]] = ("msgId", "origin", "kind", "intent")

ChainFailure = Literal["linkage", "content"]


class InstructionFrame(BaseModel):
    """Shape check for an inbound Layer 8 instruction frame.

    Only the routing fields are declared; any other caller keys are accepted
    and carried through untouched.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    msgId: StrictStr = Field(..., min_length=1)
    origin: StrictStr = Field(..., min_length=1)
    kind: StrictStr = Field(..., min_length=1)
    intent: StrictStr = Field(..., min_length=1)
    version: StrictStr | None = Field(
        default=None,
        description="Protocol version; defaults to PROTOCOL_VERSION when omitted.",
    )


class Block(BaseModel):
    """Immutable ledger entry binding a frame to its predecessor."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    timestamp: str = Field(..., description="ISO-8601 capture time (UTC).")
    frame: dict[str, Any] = Field(..., description="Instruction frame stored verbatim.")
    prev_hash: str | None = Field(
        default=None,
        alias="prevHash",
        description="Hash of the preceding block, or null for the first block.",
    )
    hash: str = Field(..., description="SHA-256 hex digest of the canonical block.")

    def to_json_dict(self) -> dict[str, Any]:
        """Return the persisted JSON representation using wire aliases."""

        return self.model_dump(mode="json", by_alias=True)

    def summary(self) -> BlockSummary:
        return BlockSummary(
            timestamp=self.timestamp, hash=self.hash, prev_hash=self.prev_hash
        )


class BlockSummary(BaseModel):
    """Acknowledgement returned to the caller after an append."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    timestamp: str
    hash: str
    prev_hash: str | None = Field(default=None, alias="prevHash")


class LedgerSnapshot(BaseModel):
    """Read-only copy of the full chain."""

    model_config = ConfigDict(frozen=True)

    count: int = Field(..., ge=0)
    entries: list[Block]


class VerificationResult(BaseModel):
    """Outcome of a chain scan.

    ``bad_index`` is the earliest offending block, or ``None`` for a valid
    chain. ``reason`` names the check that tripped.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    valid: bool
    count: int = Field(..., ge=0)
    bad_index: int | None = Field(default=None, alias="badIndex")
    reason: ChainFailure | None = None
