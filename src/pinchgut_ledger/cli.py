"""Command-line utilities for inspecting and appending to a ledger file."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .exceptions import InvalidFrameError, PinchgutError
from .store import LedgerStore


def _read_stdin() -> str | None:
    """Read JSON payload from stdin if available."""
    try:
        if sys.stdin and not sys.stdin.isatty():
            return sys.stdin.read()
    except OSError as e:
        print(f"Error reading stdin: {e}", file=sys.stderr)
    return None


def _load_frame(path: str | None, stdin_payload: str | None) -> object:
    """Load the frame JSON from a file or stdin."""
    if path:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    if stdin_payload:
        return json.loads(stdin_payload)
    raise ValueError("No input provided. Use --input or pipe JSON via stdin.")


def _emit(payload: object, quiet: bool) -> None:
    if not quiet:
        print(json.dumps(payload, separators=(",", ":"), ensure_ascii=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pinchgut-ledger",
        description="Verify, inspect and append to a Pinchgut hash-chained ledger.",
    )
    parser.add_argument(
        "--ledger",
        "-l",
        default="data/ledger.json",
        help="Ledger document path (default: data/ledger.json).",
    )
    parser.add_argument(
        "--recover",
        action="store_true",
        help="Set an unreadable ledger aside instead of failing.",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Quiet mode: suppress output, just return exit code.",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("verify", help="Recompute the chain and report the first bad block.")
    sub.add_parser("show", help="Print every block in chain order.")
    append = sub.add_parser("append", help="Append an instruction frame.")
    append.add_argument(
        "--input",
        "-i",
        help="Path to the frame JSON file. If omitted, reads from stdin.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run a ledger command; exit 0 on success or a valid chain, 1 otherwise."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:  # pragma: no cover - controlled via tests
        exit_code = int(exc.code) if isinstance(exc.code, int) else 1
        return 0 if exit_code == 0 else 1

    store = LedgerStore(
        args.ledger, corrupt_policy="recover" if args.recover else "strict"
    )
    try:
        if args.command == "verify":
            result = store.verify()
            _emit(result.model_dump(by_alias=True), args.quiet)
            return 0 if result.valid else 1

        if args.command == "show":
            snapshot = store.snapshot()
            _emit(
                {
                    "count": snapshot.count,
                    "entries": [block.to_json_dict() for block in snapshot.entries],
                },
                args.quiet,
            )
            return 0

        frame = _load_frame(args.input, _read_stdin())
        saved = store.append(frame)
        _emit(saved.model_dump(by_alias=True), args.quiet)
        return 0

    except InvalidFrameError as exc:
        if not args.quiet:
            print(f"{exc} ({'; '.join(exc.problems)})", file=sys.stderr)
        return 1
    except (PinchgutError, ValueError, OSError) as exc:
        if not args.quiet:
            print(str(exc), file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
