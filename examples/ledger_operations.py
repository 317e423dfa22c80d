#!/usr/bin/env python3
"""
Ledger Operations Example

This example demonstrates:
- Appending instruction frames to a hash-chained ledger
- Verifying chain integrity
- Detecting a tampered block
- Concurrent appends from several threads
"""

import json
import threading
from pathlib import Path

from pinchgut_ledger.store import LedgerStore


def demonstrate_ledger_operations(ledger_path):
    """Append a few frames, verify, then tamper and verify again."""
    print("Pinchgut Ledger Operations Example")
    print("=" * 40)

    store = LedgerStore(ledger_path)

    for msg_id, intent in (("m1", "ping"), ("m2", "pong"), ("m3", "ping")):
        saved = store.append(
            {"msgId": msg_id, "origin": "nodeA", "kind": "cmd", "intent": intent}
        )
        print(f"Appended {msg_id}: {saved.hash[:16]}... (prev {str(saved.prev_hash)[:16]})")

    result = store.verify()
    print(f"Verify: valid={result.valid} count={result.count}")

    # Edit the file behind the store's back.
    document = json.loads(ledger_path.read_text(encoding="utf-8"))
    document["entries"][1]["frame"]["intent"] = "pwned"
    ledger_path.write_text(json.dumps(document, indent=2), encoding="utf-8")

    result = store.verify()
    print(
        f"After tampering: valid={result.valid} badIndex={result.bad_index} "
        f"reason={result.reason}"
    )


def demonstrate_concurrent_writes(ledger_path, num_threads=3, per_thread=5):
    """Several threads append through one shared store."""
    print("Demonstrating concurrent ledger writes...")
    store = LedgerStore(ledger_path)

    def worker(thread_id):
        for i in range(per_thread):
            store.append(
                {
                    "msgId": f"t{thread_id}-{i}",
                    "origin": f"node{thread_id}",
                    "kind": "evt",
                    "intent": "tick",
                }
            )

    threads = [threading.Thread(target=worker, args=(t,)) for t in range(num_threads)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    result = store.verify()
    print(f"Concurrent ledger: valid={result.valid} count={result.count}")


def cleanup_example_files(*paths):
    """Clean up example files."""
    for path in paths:
        for candidate in (path, path.with_suffix(path.suffix + ".lock")):
            if candidate.exists():
                candidate.unlink()


if __name__ == "__main__":
    main_ledger = Path("example_ledger.json")
    concurrent_ledger = Path("concurrent_ledger.json")
    try:
        demonstrate_ledger_operations(main_ledger)
        demonstrate_concurrent_writes(concurrent_ledger)
    finally:
        cleanup_example_files(main_ledger, concurrent_ledger)
