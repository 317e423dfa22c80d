"""Tests for the persisted ledger store."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from pinchgut_ledger.canonical import digest_block
from pinchgut_ledger.exceptions import (
    CorruptStoreError,
    CorruptStoreWarning,
    InvalidFrameError,
)
from pinchgut_ledger.schemas import PROTOCOL_VERSION, STORE_FORMAT_VERSION
from pinchgut_ledger.store import LedgerStore

FrameFactory = Callable[..., dict[str, Any]]


def _read_document(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def test_load_initialises_empty_store(store: LedgerStore, ledger_path: Path) -> None:
    assert not ledger_path.exists()
    assert store.load() == []
    assert _read_document(ledger_path) == {"format": STORE_FORMAT_VERSION, "entries": []}


def test_append_links_blocks_and_persists(
    store: LedgerStore, ledger_path: Path, make_frame: FrameFactory
) -> None:
    first = store.append(make_frame())
    second = store.append(make_frame(msgId="m2", intent="pong"))

    assert first.prev_hash is None
    assert second.prev_hash == first.hash

    entries = _read_document(ledger_path)["entries"]
    assert [entry["hash"] for entry in entries] == [first.hash, second.hash]
    assert entries[1]["prevHash"] == first.hash
    assert set(entries[0]) == {"timestamp", "frame", "prevHash", "hash"}
    assert entries[0]["hash"] == digest_block(
        entries[0]["timestamp"], entries[0]["frame"], None
    )


def test_append_summary_uses_wire_names(store: LedgerStore, make_frame: FrameFactory) -> None:
    saved = store.append(make_frame())
    assert set(saved.model_dump(by_alias=True)) == {"timestamp", "hash", "prevHash"}


def test_append_defaults_version(store: LedgerStore, make_frame: FrameFactory) -> None:
    store.append(make_frame())
    assert store.load()[0].frame["version"] == PROTOCOL_VERSION


def test_append_assigns_timestamp_from_clock(ledger_path: Path, make_frame: FrameFactory) -> None:
    store = LedgerStore(ledger_path, clock=lambda: "2025-06-01T12:00:00.000Z")
    saved = store.append(make_frame(timestamp="caller-supplied"))
    assert saved.timestamp == "2025-06-01T12:00:00.000Z"
    assert store.load()[0].frame["timestamp"] == "caller-supplied"


def test_default_timestamp_is_iso8601_utc(store: LedgerStore, make_frame: FrameFactory) -> None:
    saved = store.append(make_frame())
    assert saved.timestamp.endswith("Z")
    assert saved.timestamp[10] == "T"


def test_invalid_frame_is_never_persisted(
    store: LedgerStore, ledger_path: Path, make_frame: FrameFactory
) -> None:
    store.append(make_frame())
    before = ledger_path.read_bytes()

    bad = make_frame()
    del bad["intent"]
    with pytest.raises(InvalidFrameError):
        store.append(bad)
    with pytest.raises(InvalidFrameError):
        store.append(make_frame(version="OTHER"))

    assert ledger_path.read_bytes() == before
    assert store.count() == 1


def test_caller_mutation_does_not_reach_the_ledger(
    store: LedgerStore, make_frame: FrameFactory
) -> None:
    frame = make_frame(args={"level": 1})
    store.append(frame)
    frame["args"]["level"] = 99
    assert store.load()[0].frame["args"] == {"level": 1}
    assert store.verify().valid


def test_snapshot_returns_copies(store: LedgerStore, make_frame: FrameFactory) -> None:
    store.append(make_frame())
    snapshot = store.snapshot()
    assert snapshot.count == 1
    snapshot.entries[0].frame["intent"] = "pwned"
    assert store.snapshot().entries[0].frame["intent"] == "ping"
    assert store.verify().valid


def test_load_output_is_detached_from_the_ledger(
    ledger_path: Path, store: LedgerStore, make_frame: FrameFactory
) -> None:
    store.append(make_frame())
    store.load()[0].frame["intent"] = "pwned"
    store.append(make_frame(msgId="m2"))

    reloaded = LedgerStore(ledger_path)
    assert reloaded.load()[0].frame["intent"] == "ping"
    assert reloaded.verify().valid


def test_first_use_initialisation_takes_the_file_lock(store: LedgerStore) -> None:
    assert store.load() == []
    assert store.lock_path.exists()


def test_initialisation_keeps_a_block_written_after_a_stale_stat(
    ledger_path: Path,
    store: LedgerStore,
    make_frame: FrameFactory,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    LedgerStore(ledger_path).append(make_frame())

    real_stat = store._stat_signature
    calls = {"n": 0}

    def stale_first(*_: Any) -> Any:
        calls["n"] += 1
        return None if calls["n"] == 1 else real_stat()

    monkeypatch.setattr(store, "_stat_signature", stale_first)

    blocks = store.load()
    assert [block.frame["msgId"] for block in blocks] == ["m1"]
    assert LedgerStore(ledger_path).count() == 1


def test_second_instance_sees_appends(
    ledger_path: Path, store: LedgerStore, make_frame: FrameFactory
) -> None:
    other = LedgerStore(ledger_path)
    store.append(make_frame())
    other.append(make_frame(msgId="m2"))
    store.append(make_frame(msgId="m3"))

    assert store.count() == 3
    assert other.count() == 3
    assert store.verify().valid


def test_end_to_end_tamper_scenario(
    store: LedgerStore, ledger_path: Path, make_frame: FrameFactory
) -> None:
    block0 = store.append(make_frame(msgId="m1", intent="ping"))
    block1 = store.append(make_frame(msgId="m2", intent="pong"))
    assert block0.prev_hash is None
    assert block1.prev_hash == block0.hash

    result = store.verify()
    assert (result.valid, result.count, result.bad_index) == (True, 2, None)

    document = _read_document(ledger_path)
    document["entries"][0]["frame"]["intent"] = "pwned"
    ledger_path.write_text(json.dumps(document), encoding="utf-8")

    result = store.verify()
    assert (result.valid, result.count, result.bad_index) == (False, 2, 0)


def test_legacy_list_layout_is_read_and_upgraded(
    ledger_path: Path, make_frame: FrameFactory
) -> None:
    seed = LedgerStore(ledger_path)
    seed.append(make_frame())
    entries = _read_document(ledger_path)["entries"]
    ledger_path.write_text(json.dumps(entries), encoding="utf-8")

    store = LedgerStore(ledger_path)
    assert store.count() == 1
    store.append(make_frame(msgId="m2"))
    document = _read_document(ledger_path)
    assert document["format"] == STORE_FORMAT_VERSION
    assert len(document["entries"]) == 2
    assert store.verify().valid


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        '{"format": 99, "entries": []}',
        '{"entries": "nope", "format": 1}',
        '[{"timestamp": "t"}]',
        "42",
    ],
)
def test_strict_policy_refuses_corrupt_store(
    ledger_path: Path, make_frame: FrameFactory, content: str
) -> None:
    ledger_path.parent.mkdir(parents=True)
    ledger_path.write_text(content, encoding="utf-8")
    store = LedgerStore(ledger_path)

    with pytest.raises(CorruptStoreError):
        store.load()
    with pytest.raises(CorruptStoreError):
        store.append(make_frame())
    with pytest.raises(CorruptStoreError):
        store.verify()
    assert ledger_path.read_text(encoding="utf-8") == content


def test_recover_policy_quarantines_and_warns(
    ledger_path: Path, make_frame: FrameFactory
) -> None:
    ledger_path.parent.mkdir(parents=True)
    ledger_path.write_text("{not json", encoding="utf-8")
    store = LedgerStore(ledger_path, corrupt_policy="recover")

    with pytest.warns(CorruptStoreWarning):
        assert store.load() == []

    quarantined = list(ledger_path.parent.glob("ledger.json.corrupt-*"))
    assert len(quarantined) == 1
    assert quarantined[0].read_text(encoding="utf-8") == "{not json"

    saved = store.append(make_frame())
    assert saved.prev_hash is None
    assert store.verify().valid


def test_unknown_policy_is_rejected(ledger_path: Path) -> None:
    with pytest.raises(ValueError):
        LedgerStore(ledger_path, corrupt_policy="ignore")  # type: ignore[arg-type]
