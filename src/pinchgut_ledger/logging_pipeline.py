"""Structured logging setup for the ledger service process."""

from __future__ import annotations

import json
import logging
import logging.handlers
from collections.abc import Iterable
from datetime import datetime, timezone
from queue import Full, Queue
import sys

if sys.version_info >= (3, 12):
    from typing import override
else:
    from typing_extensions import override
from uuid import uuid4

__all__ = [
    "BoundedQueueHandler",
    "JsonFormatter",
    "configure_logging",
    "shutdown_listeners",
]

LOGGER = logging.getLogger(__name__)

_RESERVED_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
    | {"message", "asctime", "taskName", "instance_id"}
)


class JsonFormatter(logging.Formatter):
    """Render log records as one JSON object per line.

    Anything passed through ``extra=`` ends up under ``context``.
    """

    def __init__(self, *, instance_id: str | None = None) -> None:
        super().__init__()
        self._instance_id = instance_id

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_KEYS
        }
        payload: dict[str, object] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "instance_id": getattr(record, "instance_id", None) or self._instance_id,
            "context": context,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exception"] = record.exc_text
        return json.dumps(payload, default=str)


class BoundedQueueHandler(logging.handlers.QueueHandler):
    """Queue handler that drops records when the queue is full."""

    @override
    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except Full:
            self.handleError(record)

    @override
    def handleError(self, record: logging.LogRecord) -> None:
        """Drop the record silently when the queue is full."""

        return


def configure_logging(
    logger: logging.Logger,
    *,
    level: int | str = logging.INFO,
    json_output: bool = True,
    instance_id: str | None = None,
    queue_size: int = 1024,
) -> logging.handlers.QueueListener:
    """Route ``logger`` through a bounded queue to a stderr stream handler.

    Request handlers never block on log I/O; when the queue is full records
    are dropped.

    Args:
        logger: Target logger, normally the ``pinchgut_ledger`` package logger.
        level: Logging verbosity as an int or level name.
        json_output: Use :class:`JsonFormatter`; otherwise a plain text format.
        instance_id: Identifier stamped on every JSON record. A random one is
            generated when omitted.
        queue_size: Capacity of the record queue.

    Returns:
        The started queue listener. Stop it with :func:`shutdown_listeners`.
    """

    logger.setLevel(level)

    record_queue: Queue[logging.LogRecord] = Queue(maxsize=queue_size)
    logger.addHandler(BoundedQueueHandler(record_queue))

    stream_handler = logging.StreamHandler()
    if json_output:
        stream_handler.setFormatter(
            JsonFormatter(instance_id=instance_id or str(uuid4()))
        )
    else:
        stream_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    listener = logging.handlers.QueueListener(record_queue, stream_handler)
    listener.start()
    return listener


def shutdown_listeners(listeners: Iterable[logging.handlers.QueueListener]) -> None:
    """Stop all queue listeners while suppressing shutdown errors."""
    for listener in listeners:
        try:
            listener.stop()
        except Exception as exc:  # pragma: no cover - defensive logging cleanup
            LOGGER.warning("Failed to stop logging listener", exc_info=exc)
