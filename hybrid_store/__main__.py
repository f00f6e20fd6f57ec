"""CLI entry point for the hybrid store.

Usage:
    python -m hybrid_store status [--json]
    python -m hybrid_store sync
    python -m hybrid_store list COLLECTION [--json]
    python -m hybrid_store add COLLECTION FIELD=VALUE ...
    python -m hybrid_store update COLLECTION KEY FIELD=VALUE ... [--key-field NAME]
    python -m hybrid_store delete COLLECTION KEY [--key-field NAME]

Backend options (before the command):
    --backend csv --data-dir ./data
    --backend sheets --spreadsheet-id ID --token TOKEN

Mutating commands wait for the write queue to drain before exiting.
"""

import argparse
import json
import sys
from typing import Dict, List

from hybrid_store import HybridStore, EngineConfig, __version__, load_config
from hybrid_store.backends import get_backend
from hybrid_store.utils.logging import configure_root_logger


def parse_assignments(pairs: List[str]) -> Dict[str, str]:
    """Turn ["Status=Done", "IsNil=FALSE"] into a dict.

    Raises:
        ValueError: If an item has no '='
    """
    result = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Expected FIELD=VALUE, got '{pair}'")
        field_name, value = pair.split("=", 1)
        result[field_name.strip()] = value
    return result


def build_store(args: argparse.Namespace) -> HybridStore:
    """Create a HybridStore from the global CLI options."""
    config = load_config(args.config) if args.config else EngineConfig()
    if args.write_delay is not None:
        config.write_delay = args.write_delay

    if args.backend == "csv":
        remote = get_backend("csv", data_dir=args.data_dir)
    elif args.backend == "sheets":
        remote = get_backend(
            "sheets", spreadsheet_id=args.spreadsheet_id, token=args.token
        )
    else:
        remote = get_backend("memory")
    return HybridStore(remote, config)


def _ready(store: HybridStore, args: argparse.Namespace) -> bool:
    if not store.await_ready(timeout=args.timeout):
        print("Error: timed out waiting for the first sync", file=sys.stderr)
        return False
    if not store.gate.has_data:
        print("Warning: first sync failed, serving an empty store", file=sys.stderr)
    return True


def _finish(store: HybridStore, args: argparse.Namespace) -> int:
    if not store.flush(timeout=args.timeout):
        print(f"Error: {store.queue.pending} writes still pending", file=sys.stderr)
        return 1
    stats = store.queue.stats
    if stats.failed:
        print(f"Error: {stats.failed} writes failed: {stats.last_error}", file=sys.stderr)
        return 1
    return 0


def cmd_status(store: HybridStore, args: argparse.Namespace) -> int:
    """Handle the 'status' command - sync once and report."""
    store.run_sync_cycle()
    status = store.status()

    if args.json:
        print(json.dumps(status, indent=2, default=str))
        return 0

    print(f"Remote: {status['remote']}")
    print(f"Ready: {status['ready']} (data loaded: {status['has_data']})")
    print()
    for name, count in status["collections"].items():
        print(f"  [{name}] {count} records")
    last = status["sync"]["last"]
    if last and last["errors"]:
        print()
        print(f"Last sync errors: {'; '.join(last['errors'])}")
    return 0


def cmd_sync(store: HybridStore, args: argparse.Namespace) -> int:
    """Handle the 'sync' command - run one bulk sync."""
    stats = store.run_sync_cycle()
    if stats.applied:
        print("Sync complete:")
        for name, count in stats.records.items():
            print(f"  {name}: {count} records")
        print(f"  Changed: {', '.join(stats.collections_changed) or 'none'}")
        print(f"  Duration: {stats.duration_ms:.1f} ms")
        return 0
    reason = stats.skip_reason or "; ".join(stats.errors) or "snapshot discarded"
    print(f"Sync failed: {reason}", file=sys.stderr)
    return 1


def cmd_list(store: HybridStore, args: argparse.Namespace) -> int:
    """Handle the 'list' command - print a collection."""
    if not _ready(store, args):
        return 1
    records = store.list(args.collection)
    if args.json:
        print(json.dumps(records, indent=2))
    else:
        for record in records:
            print("  " + ", ".join(f"{k}={v}" for k, v in record.items()))
        print(f"{len(records)} records")
    return 0


def cmd_add(store: HybridStore, args: argparse.Namespace) -> int:
    """Handle the 'add' command."""
    if not _ready(store, args):
        return 1
    job = store.enqueue_add(args.collection, parse_assignments(args.fields))
    print(f"Queued #{job.seq}: {job.describe()}")
    return _finish(store, args)


def cmd_update(store: HybridStore, args: argparse.Namespace) -> int:
    """Handle the 'update' command."""
    if not _ready(store, args):
        return 1
    job = store.enqueue_update(
        args.collection, args.key_field, args.key, parse_assignments(args.fields)
    )
    if job is None:
        print(f"No record with key '{args.key}' in {args.collection}")
        return 0
    print(f"Queued #{job.seq}: {job.describe()}")
    return _finish(store, args)


def cmd_delete(store: HybridStore, args: argparse.Namespace) -> int:
    """Handle the 'delete' command."""
    if not _ready(store, args):
        return 1
    job = store.enqueue_delete(args.collection, args.key_field, args.key)
    if job is None:
        print(f"No record with key '{args.key}' in {args.collection}")
        return 0
    print(f"Queued #{job.seq}: {job.describe()}")
    return _finish(store, args)


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="hybrid_store",
        description="Memory-first mirror of a slow remote record store",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--json-logs", action="store_true", help="Log as JSON lines")
    parser.add_argument("--config", help="JSON engine config file")
    parser.add_argument(
        "--backend", choices=["memory", "csv", "sheets"], default="csv",
        help="Remote store backend (default: csv)"
    )
    parser.add_argument("--data-dir", default="./data", help="CSV backend directory")
    parser.add_argument("--spreadsheet-id", help="Sheets backend spreadsheet ID")
    parser.add_argument("--token", help="Sheets backend OAuth bearer token")
    parser.add_argument("--write-delay", type=float, help="Override seconds between remote writes")
    parser.add_argument(
        "--timeout", type=float, default=60.0,
        help="Seconds to wait for sync / queue drain (default: 60)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    status_parser = subparsers.add_parser("status", help="Sync once and show status")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")

    subparsers.add_parser("sync", help="Run one bulk sync")

    list_parser = subparsers.add_parser("list", help="Print a collection")
    list_parser.add_argument("collection")
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    add_parser = subparsers.add_parser("add", help="Add a record")
    add_parser.add_argument("collection")
    add_parser.add_argument("fields", nargs="+", metavar="FIELD=VALUE")

    update_parser = subparsers.add_parser("update", help="Patch a record")
    update_parser.add_argument("collection")
    update_parser.add_argument("key", help="Key value of the record")
    update_parser.add_argument("fields", nargs="+", metavar="FIELD=VALUE")
    update_parser.add_argument("--key-field", help="Key field (default: collection key)")

    delete_parser = subparsers.add_parser("delete", help="Delete a record")
    delete_parser.add_argument("collection")
    delete_parser.add_argument("key", help="Key value of the record")
    delete_parser.add_argument("--key-field", help="Key field (default: collection key)")

    return parser


def main(argv: List[str] = None) -> int:
    """Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_root_logger(
        level="DEBUG" if args.verbose else "WARNING",
        json_output=args.json_logs,
    )

    if args.backend == "sheets" and not args.spreadsheet_id:
        print("Error: --spreadsheet-id is required for the sheets backend", file=sys.stderr)
        return 1

    commands = {
        "status": cmd_status,
        "sync": cmd_sync,
        "list": cmd_list,
        "add": cmd_add,
        "update": cmd_update,
        "delete": cmd_delete,
    }

    try:
        store = build_store(args)
        return commands[args.command](store, args)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
