#!/usr/bin/env python3
"""
Fault-injection test server CLI

Usage:
    python -m fault_test_server                      # serve ./ on port 8888
    python -m fault_test_server --port 9000 --root site
    fault-test-server --name 0.0.0.0 --timeout 5
"""

import argparse
import logging
import sys
from typing import List, Optional

from .core.config import ServerConfig, setup_logging
from .errors import StartupBindError
from .server import run_server

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="HTTP test server with static files and forced 404/timeout routes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Routes:
  /error/404        always 404 Not Found
  /error/timeout    stalls until the timeout guard answers 503
  /                 static files from --root

Options default to TESTSERVER_* environment variables (a .env file is read).
        """
    )
    parser.add_argument(
        "--name", "--host",
        dest="host",
        help="HTTP server name (host name to bind; empty binds all interfaces)",
    )
    parser.add_argument("--port", type=int, help="port for HTTP server")
    parser.add_argument("--root", help="directory to serve static files from")
    parser.add_argument(
        "--timeout",
        dest="timeout_seconds",
        type=float,
        help="seconds before /error/timeout answers with the timeout error",
    )
    parser.add_argument(
        "--stall-margin",
        dest="stall_margin_seconds",
        type=float,
        help="seconds the stalled handler outlives the timeout guard",
    )
    parser.add_argument("--timeout-message", help="body of the timeout error response")
    parser.add_argument("--index-page", help="page named in the startup announcement")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="logging level",
    )
    parser.add_argument("--env-file", help="dotenv file to read before parsing options")
    return parser


def load_config(argv: Optional[List[str]] = None) -> ServerConfig:
    """Environment first, then command-line overrides."""
    args = build_parser().parse_args(argv)
    overrides = vars(args)
    env_file = overrides.pop("env_file")
    return ServerConfig.from_env(env_file).with_overrides(**overrides)


def main(argv: Optional[List[str]] = None) -> None:
    try:
        config = load_config(argv)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(config.log_level)

    try:
        run_server(config)
    except StartupBindError as e:
        logger.critical(f"ListenAndServe: {e}")
        sys.exit(1)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
