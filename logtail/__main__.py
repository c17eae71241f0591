"""CLI entry point for logtail."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .client import LogTailClient, TailView
from .config import Config, load_config
from .models import LogEntry, level_rank


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        # Safe JSON serialization
        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            # Fallback for non-serializable objects
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.WARNING

    # Log records go to stderr so tailed entries on stdout stay clean
    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def format_entry(entry: LogEntry) -> str:
    """Render an entry for terminal output."""
    if entry.formatted:
        return entry.formatted.rstrip("\n")

    event = entry.event
    line = (
        f"{event.timestamp.strftime('%Y-%m-%d %H:%M:%S')} "
        f"{event.level:<5} {event.logger_name} - {event.message}"
    )
    if event.exception:
        line = f"{line}\n{event.exception.rstrip()}"
    return line


def _matches(entry: LogEntry, logger_name: str | None, min_level: str | None) -> bool:
    if logger_name and entry.logger_name != logger_name:
        return False
    if min_level and level_rank(entry.level) < level_rank(min_level):
        return False
    return True


def _load(args: argparse.Namespace) -> Config | None:
    try:
        return load_config(args.config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return None


async def cmd_tail(args: argparse.Namespace) -> int:
    """Print the catch-up snapshot, then follow live entries."""
    config = _load(args)
    if config is None:
        return 2

    client = LogTailClient.from_config(config)

    def print_catch_up(view: TailView) -> None:
        entries = [e for e in view.entries if _matches(e, args.logger, args.level)]
        if args.lines is not None:
            entries = entries[-args.lines:] if args.lines > 0 else []
        for entry in entries:
            print(format_entry(entry), flush=True)

    def print_entry(entry: LogEntry) -> None:
        if _matches(entry, args.logger, args.level):
            print(format_entry(entry), flush=True)

    def print_connection(connected: bool) -> None:
        state = "connected" if connected else "disconnected, retrying"
        print(f"-- {state} --", file=sys.stderr, flush=True)

    client.on_catch_up(print_catch_up)
    client.on_entry_received(print_entry)
    client.on_connection_changed(print_connection)

    print(
        f"Tailing group '{config.subscription.group}' via "
        f"{config.mqtt.broker}:{config.mqtt.port}",
        file=sys.stderr,
    )

    try:
        await client.start()
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        print("\nShutting down...", file=sys.stderr)
    finally:
        await client.stop()

    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Connect once and report what the log feed provides."""
    config = _load(args)
    if config is None:
        return 2

    client = LogTailClient.from_config(config)
    caught_up = asyncio.Event()
    client.on_catch_up(lambda view: caught_up.set())

    await client.start()
    try:
        await asyncio.wait_for(caught_up.wait(), timeout=args.timeout)
    except asyncio.TimeoutError:
        pass

    view = client.view()
    status_data = {
        "timestamp": datetime.now().isoformat(),
        "client": config.client.name,
        "broker": f"{config.mqtt.broker}:{config.mqtt.port}",
        "group": config.subscription.group,
        "connected": client.is_connected,
        "caught_up": caught_up.is_set(),
        "loggers": sorted(view.loggers),
        "entries": len(view.entries),
        "offset": view.offset,
    }
    await client.stop()

    if args.json:
        print(json.dumps(status_data, indent=2))
    else:
        print("logtail Status Check")
        print("====================")
        print(f"Client: {status_data['client']}")
        print(f"Broker: {status_data['broker']}")
        print(f"Group: {status_data['group']}")
        print(f"  Status: {'Connected' if status_data['connected'] else 'Not connected'}")
        if status_data["caught_up"]:
            print(f"  Cached entries: {status_data['entries']} (offset {status_data['offset']})")
            print(f"  Loggers: {', '.join(status_data['loggers']) or 'none'}")
        else:
            print(f"  No catch-up received within {args.timeout}s")

    return 0 if status_data["connected"] else 1


async def cmd_dashboard(args: argparse.Namespace) -> int:
    """Run the tail client and serve it through the web dashboard."""
    config = _load(args)
    if config is None:
        return 2

    try:
        from .dashboard import create_app

        import uvicorn
    except ImportError as e:
        print(f"Dashboard dependencies not installed: {e}", file=sys.stderr)
        print("Install with: pip install logtail[dashboard]", file=sys.stderr)
        return 1

    host = args.host or config.dashboard.host
    port = args.port or config.dashboard.port

    client = LogTailClient.from_config(config)
    app = create_app(config, client)

    print("Starting logtail Dashboard")
    print(f"Group: {config.subscription.group}")
    print(f"URL: http://{host}:{port}")

    await client.start()
    try:
        verbose = getattr(args, "verbose", False)
        config_uvicorn = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info" if verbose else "warning",
        )
        server = uvicorn.Server(config_uvicorn)
        await server.serve()
    finally:
        await client.stop()

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logtail",
        description="Follow a push-based log feed with gap-free reconnects",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Tail command
    tail_parser = subparsers.add_parser("tail", help="Follow the log feed")
    tail_parser.add_argument(
        "--logger",
        type=str,
        default=None,
        help="Only show entries from this logger",
    )
    tail_parser.add_argument(
        "--level",
        type=str,
        default=None,
        help="Only show entries at or above this level (e.g. WARN)",
    )
    tail_parser.add_argument(
        "-n", "--lines",
        type=int,
        default=None,
        help="Show only the last N cached entries on connect",
    )
    tail_parser.set_defaults(func=cmd_tail)

    # Status command
    status_parser = subparsers.add_parser("status", help="Check the log feed")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Seconds to wait for the catch-up payload (default: 5)",
    )
    status_parser.set_defaults(func=cmd_status)

    # Dashboard command
    dashboard_parser = subparsers.add_parser("dashboard", help="Start the web dashboard")
    dashboard_parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Port to run dashboard on (default: from config, 8080)",
    )
    dashboard_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind dashboard to (default: from config, 127.0.0.1)",
    )
    dashboard_parser.set_defaults(func=cmd_dashboard)

    return parser


def main() -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, getattr(args, "json", False))

    if not args.command:
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
