"""HTTP boundary for the Pinchgut L8 instruction gateway."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .config import ServiceSettings
from .exceptions import CorruptStoreError, InvalidFrameError
from .schemas import PROTOCOL_VERSION
from .store import LedgerStore

__all__ = ["create_app"]

LOGGER = logging.getLogger(__name__)
ACCESS_LOGGER = logging.getLogger("pinchgut_ledger.access")


def _invalid_frame(exc: InvalidFrameError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "ok": False,
            "error": "INVALID_FRAME",
            "message": str(exc),
            "expectedVersion": exc.expected_version or PROTOCOL_VERSION,
            "problems": list(exc.problems),
        },
    )


def create_app(
    store: LedgerStore, service: ServiceSettings | None = None
) -> FastAPI:
    """Build the gateway application around a single shared store.

    Args:
        store: The process-wide ledger store.
        service: Service identity and binding; defaults are used when omitted.

    Returns:
        Configured FastAPI application.
    """

    service = service or ServiceSettings()
    app = FastAPI(
        title=service.service_name,
        description="Layer 8 instruction gateway backed by a hash-linked ledger.",
        version="0.1.0",
    )
    app.state.store = store

    @app.middleware("http")
    async def access_log(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        ACCESS_LOGGER.info(
            "%s %s %s - %.3f ms",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000.0,
        )
        return response

    @app.exception_handler(CorruptStoreError)
    async def corrupt_store(request: Request, exc: CorruptStoreError) -> JSONResponse:
        LOGGER.error("Refusing request on corrupt ledger", extra={"path": exc.path})
        return JSONResponse(
            status_code=503,
            content={"ok": False, "error": "CORRUPT_STORE", "message": str(exc)},
        )

    @app.get("/health")
    def health() -> dict[str, Any]:
        """Report service identity and the current ledger size."""
        return {
            "ok": True,
            "service": service.service_name,
            "status": "running",
            "ledgerEntries": store.count(),
            "time": datetime.now(timezone.utc).isoformat(),
        }

    @app.post("/instruction", status_code=201)
    async def submit_instruction(request: Request) -> JSONResponse:
        """Validate an instruction frame and append it to the ledger."""
        try:
            frame = json.loads(await request.body())
        except (json.JSONDecodeError, UnicodeDecodeError):
            return _invalid_frame(
                InvalidFrameError(
                    "Request body must be a JSON object.",
                    problems=("body: invalid JSON",),
                    expected_version=PROTOCOL_VERSION,
                )
            )
        try:
            saved = await run_in_threadpool(store.append, frame)
        except InvalidFrameError as exc:
            LOGGER.info("Rejected instruction frame", extra={"problems": list(exc.problems)})
            return _invalid_frame(exc)
        return JSONResponse(
            status_code=201,
            content={"ok": True, "saved": saved.model_dump(by_alias=True)},
        )

    @app.get("/ledger")
    def read_ledger() -> dict[str, Any]:
        """Return every block in chain order."""
        snapshot = store.snapshot()
        return {
            "ok": True,
            "count": snapshot.count,
            "entries": [block.to_json_dict() for block in snapshot.entries],
        }

    @app.get("/verify")
    def verify_ledger() -> dict[str, Any]:
        """Recompute the chain and report the first bad block, if any."""
        result = store.verify()
        return {"ok": result.valid, **result.model_dump(by_alias=True)}

    return app
