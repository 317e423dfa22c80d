"""Client helpers for talking to a running Pinchgut ledger gateway."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import ValidationError

from .exceptions import InvalidFrameError, LedgerUnavailableError
from .schemas import BlockSummary, LedgerSnapshot, VerificationResult

__all__ = ["HealthStatus", "LedgerClient"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class HealthStatus:
    """Informational health payload reported by the gateway."""

    service: str
    status: str
    ledger_entries: int
    time: str


class LedgerClient:
    """Thin synchronous client over the gateway's HTTP API.

    Args:
        base_url: Root URL of the gateway, e.g. ``http://localhost:8080``.
        timeout: Per-request timeout in seconds.
        http_client: Optional pre-built :class:`httpx.Client`. When supplied
            the caller owns its lifecycle and ``base_url`` is ignored.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8080",
        *,
        timeout: float = 5.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            base_url=base_url.rstrip("/"), timeout=timeout
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> LedgerClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(
        self, method: str, path: str, *, json: object | None = None
    ) -> tuple[int, dict[str, Any]]:
        """Send a request and return ``(status_code, decoded JSON object)``."""
        try:
            response = self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            LOGGER.warning(
                "Ledger gateway transport error",
                extra={"method": method, "path": path},
                exc_info=exc,
            )
            raise LedgerUnavailableError(
                f"Failed to reach ledger gateway for {method} {path}: {exc}"
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise LedgerUnavailableError(
                f"Ledger gateway returned a non-JSON response ({response.status_code})"
            ) from exc
        if not isinstance(payload, dict):
            raise LedgerUnavailableError("Ledger gateway response is not a JSON object")

        if response.status_code >= 500:
            raise LedgerUnavailableError(
                f"Ledger gateway error {response.status_code}: "
                f"{payload.get('error', 'UNKNOWN')} {payload.get('message', '')}".strip()
            )
        return response.status_code, payload

    def health(self) -> HealthStatus:
        _, payload = self._request("GET", "/health")
        try:
            return HealthStatus(
                service=str(payload["service"]),
                status=str(payload["status"]),
                ledger_entries=int(payload["ledgerEntries"]),
                time=str(payload["time"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise LedgerUnavailableError("Malformed health response") from exc

    def submit(self, frame: Mapping[str, Any]) -> BlockSummary:
        """Submit ``frame`` and return the appended block's summary.

        Raises:
            InvalidFrameError: If the gateway rejects the frame.
            LedgerUnavailableError: On transport, server or decoding errors.
        """
        status, payload = self._request("POST", "/instruction", json=dict(frame))
        if status == 400 and payload.get("error") == "INVALID_FRAME":
            raise InvalidFrameError(
                str(payload.get("message", "Invalid instruction frame")),
                problems=payload.get("problems") or (),
                expected_version=payload.get("expectedVersion"),
            )
        if status != 201:
            raise LedgerUnavailableError(f"Unexpected status {status} from /instruction")
        return self._parse(BlockSummary, payload.get("saved"))

    def ledger(self) -> LedgerSnapshot:
        _, payload = self._request("GET", "/ledger")
        return self._parse(
            LedgerSnapshot,
            {"count": payload.get("count"), "entries": payload.get("entries")},
        )

    def verify(self) -> VerificationResult:
        _, payload = self._request("GET", "/verify")
        return self._parse(VerificationResult, payload)

    @staticmethod
    def _parse(model: Any, data: object) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise LedgerUnavailableError(
                f"Malformed {model.__name__} in gateway response"
            ) from exc
