"""Command-line entrypoint for the Pinchgut ledger gateway service."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

import uvicorn

from .api import create_app
from .config import PinchgutConfig, load_config
from .logging_pipeline import configure_logging, shutdown_listeners
from .store import LedgerStore

LOGGER = logging.getLogger("pinchgut_ledger.server")


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the service CLI.

    Flags left unset fall back to the config file, then the environment.
    """

    parser = argparse.ArgumentParser(description="Pinchgut Protocol L8 ledger gateway")
    parser.add_argument("--host", help="Interface to bind (default: 0.0.0.0).")
    parser.add_argument("--port", type=int, help="TCP port to listen on (default: 8080).")
    parser.add_argument(
        "--ledger-path",
        type=Path,
        help="Ledger document location (default: data/ledger.json).",
    )
    parser.add_argument(
        "--config",
        help="YAML or JSON configuration file (default: config/pinchgut.yml).",
    )
    parser.add_argument(
        "--corrupt-policy",
        choices=("strict", "recover"),
        help="How to treat an unreadable ledger (default: strict).",
    )
    parser.add_argument("--log-level", help="Log level name (default: INFO).")
    parser.add_argument(
        "--plain-logs",
        action="store_true",
        help="Emit plain text logs instead of JSON lines.",
    )
    return parser


def resolve_config(args: argparse.Namespace) -> PinchgutConfig:
    """Layer command-line flags over the loaded configuration."""

    config = load_config(args.config)
    store = config.store
    if args.ledger_path is not None:
        store = replace(store, path=args.ledger_path)
    if args.corrupt_policy is not None:
        store = replace(store, corrupt_policy=args.corrupt_policy)

    service = config.service
    if args.host:
        service = replace(service, host=args.host)
    if args.port is not None:
        service = replace(service, port=args.port)

    log_settings = config.logging
    if args.log_level:
        log_settings = replace(log_settings, level=args.log_level.upper())
    if args.plain_logs:
        log_settings = replace(log_settings, json=False)

    return replace(config, store=store, service=service, logging=log_settings)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for ``pinchgut-ledger-server``.

    Args:
        argv: Optional argument list override.

    Returns:
        Exit status code (``0`` for success).
    """

    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    config = resolve_config(args)

    listener = configure_logging(
        logging.getLogger("pinchgut_ledger"),
        level=config.logging.level,
        json_output=config.logging.json,
    )
    try:
        store = LedgerStore(
            config.store.path, corrupt_policy=config.store.corrupt_policy
        )
        entries = store.count()
        LOGGER.info(
            "Pinchgut L8 server starting",
            extra={
                "host": config.service.host,
                "port": config.service.port,
                "ledger_path": str(config.store.path),
                "ledger_entries": entries,
            },
        )
        uvicorn.run(
            create_app(store, config.service),
            host=config.service.host,
            port=config.service.port,
            log_level=config.logging.level.lower(),
            access_log=False,
        )
    except Exception as exc:
        LOGGER.error("Ledger gateway terminated with error", exc_info=exc)
        return 1
    finally:
        shutdown_listeners([listener])
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
