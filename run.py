#!/usr/bin/env python3
"""
Bank Ledger Entry Point

Starts the FastAPI server with the ledger engine.
"""

import argparse
import sys

from bank_ledger.api import run_server
from bank_ledger.config import get_config
from bank_ledger.logging_config import setup_logging


def parse_args(argv=None) -> argparse.Namespace:
    config = get_config()
    parser = argparse.ArgumentParser(description="Run the bank ledger API server")
    parser.add_argument("--host", default=config.api_host, help="Bind address")
    parser.add_argument("--port", type=int, default=config.api_port, help="Bind port")
    parser.add_argument("--seed", action="store_true", help="Load sample data before serving")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    config = get_config()
    if args.seed:
        config.seed_on_startup = True
    logger = setup_logging(config.log_level, config.log_format, config.log_file)
    logger.info(f"Starting bank ledger API on {args.host}:{args.port} ({config.database_url})")

    try:
        run_server(host=args.host, port=args.port, log_level=config.log_level.lower())
    except KeyboardInterrupt:
        logger.info("Shutting down bank ledger API")
    return 0


if __name__ == "__main__":
    sys.exit(main())
