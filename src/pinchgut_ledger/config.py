"""Typed configuration loading for the ledger service.

Configuration is assembled in layers: dataclass defaults, then environment
variables (via :class:`~pinchgut_ledger.settings.PinchgutSettings`), then an
optional YAML or JSON file. Command-line flags are applied last by the
entrypoints themselves.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import cast, get_args

import yaml

from .settings import CorruptPolicy, PinchgutSettings, get_settings

__all__ = [
    "LoggingSettings",
    "PinchgutConfig",
    "ServiceSettings",
    "StoreSettings",
    "load_config",
    "load_structured_config",
]

LOGGER = logging.getLogger(__name__)

_DEFAULT_CANDIDATES: tuple[Path, ...] = (
    Path("config/pinchgut.yml"),
    Path("config/pinchgut.yaml"),
    Path("config/pinchgut.json"),
)


@dataclass(slots=True)
class StoreSettings:
    """Where the ledger lives and how unreadable files are handled."""

    path: Path = Path("data/ledger.json")
    corrupt_policy: CorruptPolicy = "strict"


@dataclass(slots=True)
class ServiceSettings:
    """HTTP binding for the gateway."""

    host: str = "0.0.0.0"
    port: int = 8080
    service_name: str = "Pinchgut Protocol L8"


@dataclass(slots=True)
class LoggingSettings:
    """Controls for the service log pipeline.

    Attributes:
        level: Log level name applied to the ``pinchgut_ledger`` logger.
        json: Emit structured JSON lines instead of plain text.
    """

    level: str = "INFO"
    json: bool = True


@dataclass(slots=True)
class PinchgutConfig:
    """Strongly typed configuration container for the ledger service."""

    store: StoreSettings = field(default_factory=StoreSettings)
    service: ServiceSettings = field(default_factory=ServiceSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def load_config(
    path: str | None = None, *, settings: PinchgutSettings | None = None
) -> PinchgutConfig:
    """Load configuration from environment and optional file sources.

    Args:
        path: Optional explicit path to a configuration file. When omitted the
            loader consults ``PINCHGUT_CONFIG_PATH`` and then the default
            search locations.
        settings: Optional pre-instantiated environment settings.

    Returns:
        Fully populated :class:`PinchgutConfig` instance.
    """

    env_settings = settings or get_settings()
    config = apply_environment_overrides(PinchgutConfig(), env_settings)
    structured = load_structured_config(path, env_settings)
    if structured is None:
        return config
    return apply_structured_overrides(config, structured)


def apply_environment_overrides(
    config: PinchgutConfig, settings: PinchgutSettings
) -> PinchgutConfig:
    """Apply environment-derived settings on top of ``config``."""

    return replace(
        config,
        store=replace(
            config.store,
            path=Path(settings.ledger_path),
            corrupt_policy=settings.corrupt_policy,
        ),
        service=replace(config.service, host=settings.host, port=settings.port),
        logging=replace(config.logging, level=settings.log_level),
    )


def apply_structured_overrides(
    config: PinchgutConfig, data: Mapping[str, object]
) -> PinchgutConfig:
    """Apply overrides sourced from a parsed configuration file.

    Unknown keys and values of the wrong type are ignored with a warning.
    """

    updated = config

    store = _expect_mapping(data.get("store"))
    if store is not None:
        path = store.get("path")
        if isinstance(path, str) and path:
            updated = replace(updated, store=replace(updated.store, path=Path(path)))
        policy = store.get("corrupt_policy")
        if policy is not None:
            if policy in get_args(CorruptPolicy):
                updated = replace(
                    updated,
                    store=replace(
                        updated.store, corrupt_policy=cast(CorruptPolicy, policy)
                    ),
                )
            else:
                LOGGER.warning(
                    "Ignoring unknown corrupt_policy", extra={"value": policy}
                )

    service = _expect_mapping(data.get("service"))
    if service is not None:
        host = service.get("host")
        if isinstance(host, str) and host:
            updated = replace(updated, service=replace(updated.service, host=host))
        port = service.get("port")
        if isinstance(port, int) and not isinstance(port, bool) and 0 < port < 65536:
            updated = replace(updated, service=replace(updated.service, port=port))
        elif port is not None:
            LOGGER.warning("Ignoring invalid service port", extra={"value": port})
        name = service.get("name")
        if isinstance(name, str) and name:
            updated = replace(
                updated, service=replace(updated.service, service_name=name)
            )

    log_section = _expect_mapping(data.get("logging"))
    if log_section is not None:
        level = log_section.get("level")
        if isinstance(level, str) and level:
            updated = replace(
                updated, logging=replace(updated.logging, level=level.upper())
            )
        as_json = log_section.get("json")
        if isinstance(as_json, bool):
            updated = replace(updated, logging=replace(updated.logging, json=as_json))

    return updated


def load_structured_config(
    path: str | None, settings: PinchgutSettings
) -> dict[str, object] | None:
    """Load configuration data from disk.

    Args:
        path: Explicit configuration path provided by the caller.
        settings: Environment-derived settings used for fallback discovery.

    Returns:
        A dictionary representation of the configuration file when discovered,
        otherwise ``None``.
    """

    candidates: Iterable[Path]
    if path is not None:
        candidates = (Path(path),)
    elif settings.config_path:
        candidates = (Path(settings.config_path),)
    else:
        candidates = _DEFAULT_CANDIDATES

    for candidate in candidates:
        data = _load_config_file(candidate)
        if data is not None:
            return data
    return None


def _load_config_file(path: Path) -> dict[str, object] | None:
    """Load a configuration file based on its suffix."""

    if not path.exists():
        return None
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        LOGGER.warning("Unable to read config file %s: %s", path, exc)
        return None

    suffix = path.suffix.lower()
    try:
        if suffix == ".json":
            data = json.loads(text)
        elif suffix in {".yml", ".yaml"}:
            data = yaml.safe_load(text)
        else:
            return None
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        LOGGER.warning("Ignoring malformed config file %s: %s", path, exc)
        return None
    return _normalize_mapping(data)


def _expect_mapping(value: object) -> Mapping[str, object] | None:
    if isinstance(value, Mapping):
        return cast(Mapping[str, object], value)
    return None


def _normalize_mapping(value: object) -> dict[str, object] | None:
    """Normalize parsed values to ``dict[str, object]``, dropping non-string keys."""

    if not isinstance(value, dict):
        return None
    value_dict = cast(dict[object, object], value)
    return {key: item for key, item in value_dict.items() if isinstance(key, str)}
