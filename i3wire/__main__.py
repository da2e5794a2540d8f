"""
Entry point for i3wire.

Run with: python -m i3wire [-t TYPE] [payload ...]
      or: python -m i3wire --monitor window --monitor workspace
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional

import yaml

from .config import (
    COMMAND_NAMES,
    CONFIG_FILE,
    EVENT_NAMES,
    RuntimeConfig,
    apply_config_file,
    load_config_file,
    save_default_config,
)
from .connection import I3Connection
from .discovery import connect
from .exceptions import I3WireError
from .logging_setup import log, setup_logging


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, sort_keys=True))


def _event_printer(name: str):
    def _print(payload: Any) -> None:
        print(json.dumps({"event": name, "payload": payload}), flush=True)
    return _print


async def _monitor(connection: I3Connection, events: List[str]) -> int:
    """Print events until the connection closes."""
    def _on_error(exc: BaseException) -> None:
        print(f"error: {exc}", file=sys.stderr)

    connection.on("error", _on_error)
    for name in events:
        connection.on(name, _event_printer(name))
        connection.subscribe(name)

    log(f"[MAIN] Monitoring {', '.join(events)}")
    await connection.wait_closed()
    return 0


async def _run(args: argparse.Namespace, config: RuntimeConfig) -> int:
    connection = await connect(config=config)
    try:
        if args.monitor:
            return await _monitor(connection, args.monitor)

        payload: Optional[str] = " ".join(args.payload) if args.payload else None
        reply = await connection.request(args.type, payload)
        _print_json(reply)

        # COMMAND replies are a list of per-command results
        if isinstance(reply, list) and not all(
            isinstance(r, dict) and r.get("success", True) for r in reply
        ):
            return 2
        return 0
    finally:
        connection.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for i3wire."""
    ap = argparse.ArgumentParser(
        prog="i3wire",
        description="Send a message to i3 over its IPC socket, or monitor events",
    )
    ap.add_argument(
        "-s", "--socket",
        help="IPC socket path (default: $I3SOCK or `i3 --get-socketpath`)",
    )
    ap.add_argument(
        "-t", "--type",
        default="COMMAND",
        choices=COMMAND_NAMES,
        help="Message type (default: COMMAND)",
    )
    ap.add_argument(
        "-m", "--monitor",
        action="append",
        choices=EVENT_NAMES,
        metavar="EVENT",
        help=f"Subscribe to an event and print it; repeatable ({', '.join(EVENT_NAMES)})",
    )
    ap.add_argument(
        "--timeout",
        type=float,
        help="Seconds to wait for a reply",
    )
    ap.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: config file level, else WARNING)",
    )
    ap.add_argument(
        "--log-file",
        action="store_true",
        help="Also log to the rotating log file",
    )
    ap.add_argument(
        "--config",
        help=f"Path to config file (default: {CONFIG_FILE})",
    )
    ap.add_argument(
        "--init-config",
        action="store_true",
        help="Generate default configuration file and exit",
    )
    ap.add_argument(
        "payload",
        nargs="*",
        help="Payload, e.g. a command such as: focus right",
    )
    args = ap.parse_args(argv)

    if args.init_config:
        config_path = args.config or CONFIG_FILE
        if save_default_config(config_path):
            print(f"Default configuration saved to: {config_path}")
            return 0
        print(f"Failed to save configuration to: {config_path}")
        return 1

    # CLI args take precedence over the config file
    config = RuntimeConfig(
        socket_path=args.socket,
        log_to_file=args.log_file,
        log_level=args.log_level,
        request_timeout=args.timeout,
    )
    try:
        apply_config_file(config, load_config_file(args.config))
    except (OSError, yaml.YAMLError) as e:
        print(f"Error: cannot read config file: {e}", file=sys.stderr)
        return 1

    setup_logging(
        log_to_file=config.log_to_file,
        log_to_console=True,
        log_level=config.log_level or "WARNING",
    )

    try:
        return asyncio.run(_run(args, config))
    except I3WireError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except asyncio.TimeoutError:
        print("Error: timed out waiting for a reply", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
