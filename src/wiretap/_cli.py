"""Wiretap CLI — wiretap run / wiretap tail.

Entry point for the ``wiretap`` command-line interface.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from datetime import datetime
from typing import Any

from wiretap._errors import ConfigError


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the wiretap CLI."""
    parser = argparse.ArgumentParser(
        prog="wiretap",
        description="Live capture of a process's logs and outbound HTTP calls.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # wiretap run
    run_parser = subparsers.add_parser(
        "run",
        help="Run a Python script or module under capture",
    )
    run_parser.add_argument("--host", default=None, help="Observer bind address")
    run_parser.add_argument("--port", type=int, default=None, help="Observer bind port")
    run_parser.add_argument("--config", default=None, help="Config file path")
    run_parser.add_argument(
        "--no-banner", action="store_true", help="Do not print the startup banner",
    )
    run_parser.add_argument(
        "--hold", action="store_true",
        help="Keep serving observers after the target exits (Ctrl-C to stop)",
    )
    run_parser.add_argument(
        "-m", dest="module", action="store_true", help="Treat target as a module name",
    )
    run_parser.add_argument("target", help="Script path (or module name with -m)")
    run_parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for the target")

    # wiretap tail
    tail_parser = subparsers.add_parser(
        "tail",
        help="Connect to a running capture and print its stream",
    )
    tail_parser.add_argument("--host", default="127.0.0.1", help="Capture host")
    tail_parser.add_argument("--port", type=int, default=3001, help="Capture port")
    tail_parser.add_argument(
        "--json", dest="raw_json", action="store_true", help="Print raw protocol messages",
    )

    return parser


def _get_version() -> str:
    """Get the package version."""
    from wiretap import __version__

    return __version__


# ---------------------------------------------------------------------------
# wiretap run
# ---------------------------------------------------------------------------


def _run(args: argparse.Namespace) -> None:
    import runpy

    from wiretap.config_loader import load_config
    from wiretap.session import start

    config = load_config(
        config_path=args.config,
        host=args.host,
        port=args.port,
        banner=False if args.no_banner else None,
    )
    handle = start(config)

    sys.argv = [args.target, *args.args]
    try:
        if args.module:
            runpy.run_module(args.target, run_name="__main__", alter_sys=True)
        else:
            runpy.run_path(args.target, run_name="__main__")
        if args.hold:
            _hold()
    finally:
        handle.shutdown()


def _hold() -> None:
    try:
        while True:
            time.sleep(3600)
    except KeyboardInterrupt:
        pass


# ---------------------------------------------------------------------------
# wiretap tail
# ---------------------------------------------------------------------------


def _clock(timestamp_ms: Any) -> str:
    try:
        return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%H:%M:%S.%f")[:-3]
    except (TypeError, ValueError, OverflowError, OSError):
        return "--:--:--.---"


def format_message(message: dict[str, Any]) -> str:
    """Render one protocol message as a single human-readable line."""
    kind = message.get("type")
    data = message.get("data") or {}

    if kind == "log":
        level = str(data.get("level", "log")).upper()
        return f"{_clock(data.get('timestamp'))} {level:<5} {data.get('message', '')}"

    if kind == "network":
        status = data.get("status") or "ERR"
        line = (
            f"{_clock(data.get('timestamp'))} {data.get('method', '?'):<7} {status} "
            f"{data.get('url', '')} ({data.get('duration', 0)}ms)"
        )
        if data.get("error"):
            line += f" {data['error']}"
        return line

    if kind == "batch":
        return (
            f"-- history: {len(data.get('logs', []))} logs, "
            f"{len(data.get('requests', []))} requests"
        )

    if kind == "status":
        logs = "paused" if data.get("pausedLogs") else "live"
        network = "paused" if data.get("pausedNetwork") else "live"
        return f"-- status: logs {logs}, network {network}"

    if kind == "config":
        headers = ", ".join(data.get("redactHeaders", [])) or "none"
        return (
            f"-- config: truncate {data.get('truncateBodyBytes')} bytes, "
            f"request bodies {'on' if data.get('captureRequestBodies') else 'off'}, "
            f"response bodies {'on' if data.get('captureResponseBodies') else 'off'}, "
            f"redact {headers}"
        )

    if kind == "clear":
        return f"-- cleared {message.get('target')}"

    return json.dumps(message)


async def _tail(url: str, raw_json: bool) -> None:
    from websockets.asyncio.client import connect

    async with connect(url) as websocket:
        async for raw in websocket:
            if raw_json:
                print(raw, flush=True)
                continue
            try:
                message = json.loads(raw)
            except ValueError:
                continue
            if isinstance(message, dict):
                print(format_message(message), flush=True)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "run":
        try:
            _run(args)
        except ConfigError as exc:
            print(f"wiretap: {exc}", file=sys.stderr)
            sys.exit(2)
    elif args.command == "tail":
        url = f"ws://{args.host}:{args.port}"
        try:
            asyncio.run(_tail(url, args.raw_json))
        except KeyboardInterrupt:
            pass
        except OSError as exc:
            print(f"wiretap: cannot connect to {url}: {exc}", file=sys.stderr)
            sys.exit(1)


if __name__ == "__main__":
    main()
