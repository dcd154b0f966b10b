"""Command-line interface for the ThinLever position monitor."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from aiohttp import web

from .chains import EvmRpcClient
from .config import AppConfig, load_config
from .contracts import ThinLeverReader
from .logging_setup import configure_logging
from .services import Distributor
from .web import create_app

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="thinlever-monitor",
        description="Live health-factor monitor for a ThinLever position",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Serve the dashboard feed and stream updates")
    sub.add_parser("check", help="Fetch and evaluate the position once, print JSON")

    return parser


def build_distributor(config: AppConfig) -> Distributor:
    client = EvmRpcClient(config.policy)
    reader = ThinLeverReader(client, config.policy.contract_address)
    return Distributor(config.policy, reader)


async def _serve(config: AppConfig) -> None:
    distributor = build_distributor(config)
    app = create_app(config, distributor)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.server.host, config.server.port)
    await site.start()

    policy = config.policy
    logger.info(
        "ThinLever monitor running on http://localhost:%d", config.server.port
    )
    logger.info("Monitoring contract: %s", policy.contract_address)
    logger.info("Target HF: %s ± %s", policy.target_health_factor, policy.tolerance)

    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


async def _check(config: AppConfig) -> None:
    snapshot = await build_distributor(config).capture()
    print(json.dumps(snapshot.to_dict(), indent=2))


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)

    if args.command == "serve":
        await _serve(config)
    elif args.command == "check":
        await _check(config)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("Shutting down")
