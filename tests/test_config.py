"""Tests for environment settings and structured configuration loading."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from pinchgut_ledger.config import PinchgutConfig, load_config
from pinchgut_ledger.settings import PinchgutSettings

_ENV_VARS = (
    "PINCHGUT_LEDGER_PATH",
    "PINCHGUT_HOST",
    "PINCHGUT_PORT",
    "PORT",
    "PINCHGUT_CORRUPT_POLICY",
    "PINCHGUT_LOG_LEVEL",
    "PINCHGUT_CONFIG_PATH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults() -> None:
    config = load_config()
    assert config == PinchgutConfig()
    assert config.store.path == Path("data/ledger.json")
    assert config.store.corrupt_policy == "strict"
    assert config.service.port == 8080


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PINCHGUT_LEDGER_PATH", "/srv/ledger.json")
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("PINCHGUT_CORRUPT_POLICY", "Recover")
    monkeypatch.setenv("PINCHGUT_LOG_LEVEL", "debug")

    config = load_config()
    assert config.store.path == Path("/srv/ledger.json")
    assert config.store.corrupt_policy == "recover"
    assert config.service.port == 9000
    assert config.logging.level == "DEBUG"


def test_pinchgut_port_wins_over_port(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("PINCHGUT_PORT", "9100")
    assert PinchgutSettings().port == 9100


@pytest.mark.parametrize("raw", ["eighty", "0", "70000"])
def test_malformed_env_values_fall_back(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("PINCHGUT_PORT", raw)
    monkeypatch.setenv("PINCHGUT_CORRUPT_POLICY", "yolo")
    settings = PinchgutSettings()
    assert settings.port == 8080
    assert settings.corrupt_policy == "strict"


def test_yaml_file_overrides_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("PINCHGUT_PORT", "9000")
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "pinchgut.yml").write_text(
        "store:\n"
        "  path: ledgers/main.json\n"
        "  corrupt_policy: recover\n"
        "service:\n"
        "  port: 9443\n"
        "  name: Harbour Gate\n"
        "logging:\n"
        "  level: warning\n"
        "  json: false\n",
        encoding="utf-8",
    )

    config = load_config()
    assert config.store.path == Path("ledgers/main.json")
    assert config.store.corrupt_policy == "recover"
    assert config.service.port == 9443
    assert config.service.service_name == "Harbour Gate"
    assert config.logging.level == "WARNING"
    assert config.logging.json is False


def test_explicit_json_file(tmp_path: Path) -> None:
    path = tmp_path / "custom.json"
    path.write_text(json.dumps({"service": {"host": "127.0.0.1"}}), encoding="utf-8")
    config = load_config(str(path))
    assert config.service.host == "127.0.0.1"
    assert config.service.port == 8080


def test_config_path_from_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = tmp_path / "elsewhere.yaml"
    path.write_text("store:\n  path: other.json\n", encoding="utf-8")
    monkeypatch.setenv("PINCHGUT_CONFIG_PATH", str(path))
    assert load_config().store.path == Path("other.json")


def test_invalid_values_are_ignored_with_warning(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    path = tmp_path / "bad.json"
    path.write_text(
        json.dumps({"store": {"corrupt_policy": "shrug"}, "service": {"port": "http"}}),
        encoding="utf-8",
    )
    with caplog.at_level(logging.WARNING, logger="pinchgut_ledger.config"):
        config = load_config(str(path))
    assert config.store.corrupt_policy == "strict"
    assert config.service.port == 8080
    assert len(caplog.records) == 2


def test_malformed_file_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "broken.yml"
    path.write_text("store: [unclosed", encoding="utf-8")
    assert load_config(str(path)) == PinchgutConfig()
