"""
Command line entry point.

Usage:
    chat-gateway run                      # reads ./config.yaml if present
    chat-gateway run -c /etc/gateway.yaml
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from gateway.config import load_config
from gateway.errors import ConfigError, StartupError
from gateway.logging import configure_logging, get_logger
from gateway.main import create_app
from gateway.server import serve

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")


def run(config_path: Path) -> None:
    """Load config, set up logging and serve until shut down."""
    config = load_config(config_path)
    configure_logging(config.debug)
    app = create_app(config)
    asyncio.run(serve(config, app))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chat-gateway",
        description="OpenAI-compatible chat completion gateway",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the gateway server")
    run_parser.add_argument(
        "-c", "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to the YAML config file; defaults are used if it does not exist",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    if args.command == "run":
        try:
            run(args.config)
        except (ConfigError, StartupError) as e:
            logger.error(f"Startup failed: {e}")
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
