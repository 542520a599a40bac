"""piohome command line entry point.

Usage:
    piohome start [--port PORT] [--host HOST] [--secure] [--listen]
        (stays in the foreground while the server it spawned runs)
    piohome status --port PORT --session-id TOKEN
    piohome url --port PORT [--start PATH] [--session-id TOKEN]
    piohome stop --port PORT --session-id TOKEN
    piohome sweep
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from piohome.home.config import HomeConfig
from piohome.home.errors import HomeServerError
from piohome.home.models import MAX_PORT, Endpoint
from piohome.home.supervisor import HomeServerManager
from piohome.home.telemetry import ErrorReporter, set_error_reporter
from piohome.home.yaml_config import load_yaml_config
from piohome.shared.services.core import get_core_dir
from piohome.shared.services.preferences import show_at_startup

logger = logging.getLogger(__name__)


def _configure_logging(level_name: str, log_dir: Path) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "piohome.log"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name.upper(), logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    root.addHandler(stream_handler)
    return log_file


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from None
    if not 1 <= port <= MAX_PORT:
        raise argparse.ArgumentTypeError(f"port must be in 1-{MAX_PORT}, got {port}")
    return port


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="piohome",
        description="Launch and supervise the local PIO Home server",
    )
    parser.add_argument(
        "--config", "-C",
        default=None,
        help="YAML file with a 'home' section (default: env vars only)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    start = sub.add_parser("start", help="Start PIO Home unless it is running")
    start.add_argument("--port", type=_port, default=None)
    start.add_argument("--host", default=None)
    start.add_argument("--secure", action="store_true", default=None)
    start.add_argument(
        "--listen",
        action="store_true",
        help="Stay attached and print IDE commands as JSON lines",
    )
    start.add_argument(
        "--caller",
        default=os.getenv("PLATFORMIO_CALLER"),
        help="Skip the start when showOnStartup is off for this caller",
    )

    url = sub.add_parser("url", help="Print the frontend URL for this session")
    url.add_argument("--start", default="/")
    url.add_argument("--theme", default=None)
    url.add_argument("--workspace", default=None)
    url.add_argument("--port", type=_port, required=True)
    url.add_argument("--host", default=None)
    url.add_argument("--session-id", default=None)

    for name, help_text in (
        ("status", "Check whether a session's server answers"),
        ("stop", "Gracefully stop a session's server"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--port", type=_port, required=True)
        cmd.add_argument("--host", default=None)
        cmd.add_argument("--session-id", required=True)

    sub.add_parser("sweep", help="Send shutdown to every port in the range")
    return parser


async def _listen(manager: HomeServerManager) -> None:
    def _print_command(method: str, params: object) -> None:
        print(json.dumps({"method": method, "params": params}), flush=True)

    await manager.listen_ide_commands(_print_command)
    channel = manager.channel
    if channel is not None:
        await channel.wait_closed()


async def _run(args: argparse.Namespace, config: HomeConfig) -> int:
    if args.command in ("status", "stop", "url"):
        endpoint = Endpoint(
            host=args.host or config.host, port=args.port, secure=config.secure,
        )
        manager = HomeServerManager(
            config, session_id=args.session_id, endpoint=endpoint,
        )
    else:
        manager = HomeServerManager(config)

    async with manager:
        if args.command == "start":
            if args.caller and not show_at_startup(args.caller):
                logger.info("showOnStartup disabled for %s; not starting", args.caller)
                return 0
            await manager.ensure_server_started(
                port=args.port, host=args.host, secure=args.secure,
            )
            print(manager.get_frontend_url())
            if args.listen:
                await _listen(manager)
            else:
                # the spawned server lives only as long as this process
                await manager.wait_for_server()
            return 0

        if args.command == "url":
            print(manager.get_frontend_url(
                start=args.start, theme=args.theme, workspace=args.workspace,
            ))
            return 0

        if args.command == "status":
            started = await manager.is_server_started()
            version = await manager.get_frontend_version() if started else None
            print(json.dumps({"started": started, "version": version}))
            return 0 if started else 1

        if args.command == "stop":
            status = await manager.shutdown_server()
            print(json.dumps({"status": status}))
            return 0

        await manager.shutdown_all_servers()
        return 0


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    config = HomeConfig.from_env()
    if args.config:
        config = load_yaml_config(args.config, base=config)

    core_dir = get_core_dir()
    log_file = _configure_logging(
        "DEBUG" if args.verbose else config.log_level,
        core_dir / "logs",
    )
    set_error_reporter(ErrorReporter(core_dir / "piohome-errors.db"))
    logger.info("piohome %s log=%s", args.command, log_file)

    try:
        code = asyncio.run(_run(args, config))
    except HomeServerError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(130)
    sys.exit(code)


if __name__ == "__main__":
    main()
