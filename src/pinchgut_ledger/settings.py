"""Environment-backed settings primitives for :mod:`pinchgut_ledger`."""

from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["CorruptPolicy", "PinchgutSettings", "get_settings"]

CorruptPolicy = Literal["strict", "recover"]


class PinchgutSettings(BaseSettings):
    """Expose environment-derived configuration knobs for the ledger service.

    All environment access goes through this class. Malformed numeric or enum
    values fall back to the defaults instead of aborting start-up.

    Attributes:
        ledger_path: Location of the persisted ledger document.
        host: Interface the HTTP service binds to.
        port: TCP port of the HTTP service. ``PORT`` is honoured for
            compatibility with container platforms.
        corrupt_policy: ``"strict"`` refuses to operate on an unreadable
            ledger; ``"recover"`` sets it aside and starts empty.
        log_level: Root log level name for the service process.
        config_path: Explicit path to a YAML or JSON configuration file.
    """

    ledger_path: str = Field(default="data/ledger.json", alias="PINCHGUT_LEDGER_PATH")
    host: str = Field(default="0.0.0.0", alias="PINCHGUT_HOST")
    port: int = Field(
        default=8080, validation_alias=AliasChoices("PINCHGUT_PORT", "PORT")
    )
    corrupt_policy: CorruptPolicy = Field(
        default="strict", alias="PINCHGUT_CORRUPT_POLICY"
    )
    log_level: str = Field(default="INFO", alias="PINCHGUT_LOG_LEVEL")
    config_path: str | None = Field(default=None, alias="PINCHGUT_CONFIG_PATH")

    model_config = SettingsConfigDict(
        env_file=None, extra="ignore", populate_by_name=True
    )

    @field_validator("port", mode="before")
    @classmethod
    def _parse_port(cls, value: object) -> int:
        """Parse the port while tolerating malformed input.

        Args:
            value: Raw environment value.

        Returns:
            Parsed port when conversion succeeds, otherwise ``8080``.
        """

        if isinstance(value, int) and 0 < value < 65536:
            return value
        if isinstance(value, str):
            try:
                parsed = int(value.strip())
            except ValueError:
                return 8080
            if 0 < parsed < 65536:
                return parsed
        return 8080

    @field_validator("corrupt_policy", mode="before")
    @classmethod
    def _parse_policy(cls, value: object) -> str:
        if isinstance(value, str) and value.strip().lower() in ("strict", "recover"):
            return value.strip().lower()
        return "strict"

    @field_validator("log_level", mode="before")
    @classmethod
    def _parse_log_level(cls, value: object) -> str:
        if isinstance(value, str) and value.strip():
            return value.strip().upper()
        return "INFO"


def get_settings() -> PinchgutSettings:
    """Return a :class:`PinchgutSettings` instance.

    Returns:
        Settings parsed from environment variables.
    """

    return PinchgutSettings()
