"""CLI entry point: python -m ironarchive

Usage:
    ironarchive [serve]         connect, validate, wait for SIGINT/SIGTERM, shut down
    ironarchive check           probe every service once and print a health report
    ironarchive config          print the effective configuration, credentials masked
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from ironarchive import __version__
from ironarchive.config import ServiceConfig
from ironarchive.errors import ConfigError, LoggingSetupError, StartupError
from ironarchive.lifecycle import LifecycleOrchestrator
from ironarchive.observability.logging import setup_logging

logger = logging.getLogger("ironarchive")


async def _serve(config: ServiceConfig) -> int:
    orchestrator = LifecycleOrchestrator(config)
    try:
        await orchestrator.run()
    except StartupError:
        return 1
    return 0


async def _check(config: ServiceConfig) -> int:
    orchestrator = LifecycleOrchestrator(config)
    try:
        await orchestrator.start()
    except StartupError as exc:
        print(json.dumps({"status": "unhealthy", "service": exc.service, "error": str(exc.cause)}, indent=2))
        return 1
    report = await orchestrator.health()
    await orchestrator.shutdown()
    print(json.dumps(report, indent=2))
    return 0 if report["status"] == "healthy" else 1


def cmd_serve(config: ServiceConfig) -> int:
    logger.info(
        "IronArchive server starting...",
        extra={"version": __version__, "port": config.server_port},
    )
    return asyncio.run(_serve(config))


def cmd_check(config: ServiceConfig) -> int:
    return asyncio.run(_check(config))


def cmd_config(config: ServiceConfig) -> int:
    print(json.dumps(config.describe(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ironarchive", description="IronArchive service lifecycle")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config", "-c", default="ironarchive.yaml", help="Optional YAML config file (env vars take precedence)"
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Run until SIGINT/SIGTERM (default)")
    sub.add_parser("check", help="Probe all services once and print a health report")
    sub.add_parser("config", help="Print the effective configuration with credentials masked")
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = ServiceConfig.load(args.config)
    except ConfigError as exc:
        print(f"Failed to load configuration: {exc}", file=sys.stderr)
        sys.exit(1)

    try:
        setup_logging(config.log_level, config.log_format)
    except LoggingSetupError as exc:
        print(f"Failed to initialize logger: {exc}", file=sys.stderr)
        sys.exit(1)

    commands = {
        "serve": cmd_serve,
        "check": cmd_check,
        "config": cmd_config,
    }
    sys.exit(commands[args.command or "serve"](config))


if __name__ == "__main__":
    main()
