#!/usr/bin/env python3
"""Query or watch network time from the command line.

Usage examples:
  - python scripts/netclock_cli.py query
  - python scripts/netclock_cli.py query --server time.google.com --server 0.pool.ntp.org:123
  - python scripts/netclock_cli.py watch --interval-ms 10000
  - python scripts/netclock_cli.py watch --servers-file config/servers.yaml
"""

from __future__ import annotations

import argparse
import json
import sys
import threading
from pathlib import Path


# Ensure src is on sys.path when running from a checkout
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from netclock.config.servers import load_server_list  # noqa: E402
from netclock.config.settings import parse_server, settings  # noqa: E402
from netclock.time.engine import SyncEngine  # noqa: E402
from netclock.time.errors import SyncError  # noqa: E402
from netclock.time.packet import to_datetime  # noqa: E402
from netclock.utils.logging_config import setup_logging  # noqa: E402


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SNTP time sync client")
    parser.add_argument("command", choices=["query", "watch"], help="query once, or keep syncing")
    parser.add_argument(
        "--server",
        action="append",
        default=[],
        help="host[:port] to query; repeat to add failover servers",
    )
    parser.add_argument("--servers-file", help="Path to a servers YAML file")
    parser.add_argument("--interval-ms", type=int, default=settings.SYNC_INTERVAL_MS)
    parser.add_argument("--timeout-ms", type=int, default=settings.SYNC_TIMEOUT_MS)
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    return parser


def _resolve_servers(args):
    if args.server:
        return [parse_server(s) for s in args.server]
    if args.servers_file:
        return load_server_list(args.servers_file)
    return settings.server_list()


def _print_history(history) -> None:
    print(json.dumps(history.as_dict(), default=str))


def run_query(args) -> int:
    config = settings.to_sync_config(
        servers=_resolve_servers(args),
        sync_timeout_ms=args.timeout_ms,
        sync_interval_ms=args.interval_ms,
        sync_on_creation=False,
        auto_sync=False,
    )
    with SyncEngine(config) as engine:
        # Try each server once before giving up
        for _ in range(len(config.servers)):
            try:
                result = engine.get_delta()
            except SyncError as e:
                print(f"{e.server}: {e.kind}: {e}", file=sys.stderr)
                continue
            now = engine.get_time()
            print(f"server:  {result.server}")
            print(f"offset:  {result.offset_ms} ms")
            print(f"time:    {to_datetime(now).isoformat()}")
            return 0
    return 1


def run_watch(args) -> int:
    config = settings.to_sync_config(
        servers=_resolve_servers(args),
        sync_timeout_ms=args.timeout_ms,
        sync_interval_ms=args.interval_ms,
        sync_on_creation=False,
        auto_sync=True,
    )
    stop = threading.Event()
    with SyncEngine(config) as engine:
        engine.add_listener(_print_history)
        if not engine.sync_time():
            _print_history(engine.get_history())
        print("Press Ctrl+C to stop.", file=sys.stderr)
        try:
            stop.wait()
        except KeyboardInterrupt:
            pass
    return 0


def main() -> None:
    args = build_parser().parse_args()
    setup_logging(level=args.log_level, component="netclock-cli")
    if args.command == "query":
        raise SystemExit(run_query(args))
    raise SystemExit(run_watch(args))


if __name__ == "__main__":
    main()
