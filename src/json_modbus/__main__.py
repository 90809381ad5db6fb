"""
JSON Modbus Server Entry Point
==============================

Usage:
    python -m json_modbus [config.json] [--verbose | --quiet] [--autostart]

stdout carries the JSON control protocol only; logs go to stderr.

Date: October 2026
License: MIT
"""

import argparse
import logging
import signal
import sys

from . import __version__
from .config import DEFAULT_CONFIG_FILE, load_config
from .core import ControlChannel, EventLoop, ServerContext, ServerController
from .errors import ConfigError

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, quiet: bool = False):
    """Configure logging on stderr (stdout is reserved for JSON)."""
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def install_signal_handlers(context: ServerContext):
    """Route SIGINT/SIGTERM to the shutdown flag of the server context."""

    def signal_handler(sig, frame):
        context.shutdown_requested = True

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="json-modbus-server",
        description="Modbus TCP/RTU slave controlled through JSON on stdin/stdout",
    )
    parser.add_argument(
        "config",
        nargs="?",
        default=DEFAULT_CONFIG_FILE,
        help=f"JSON configuration file (default: {DEFAULT_CONFIG_FILE})",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "--verbose", action="store_true", help="Enable debug logging"
    )
    verbosity.add_argument(
        "--quiet", action="store_true", help="Log warnings and errors only"
    )
    parser.add_argument(
        "--autostart",
        action="store_true",
        help="Start the Modbus server without waiting for a start command",
    )
    parser.add_argument(
        "--ignore-eof",
        action="store_true",
        help="Keep running when stdin is closed",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.quiet)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    channel = ControlChannel()
    controller = ServerController(config, notify=channel.send)
    context = ServerContext(
        config=config,
        controller=controller,
        channel=channel,
        ignore_eof=args.ignore_eof,
    )
    install_signal_handlers(context)

    logger.info(
        f"JSON Modbus server {__version__} (tcp={config.enable_tcp}, "
        f"rtu={config.enable_rtu}, unit_id={config.unit_id})"
    )

    if args.autostart:
        controller.request_start()

    EventLoop(context).run()
    logger.info("Server exited cleanly")
    return 0


if __name__ == "__main__":
    sys.exit(main())
