"""
LocalRepo Command Line Interface.

Serves a directory as a zip archive and keeps a MODULE.bazel or
WORKSPACE declaration pointed at the latest one.
Requires Python 3.11+.
"""

import argparse
import asyncio
import sys
from collections.abc import Sequence
from pathlib import Path

from pydantic import ValidationError

from publisher.pipeline import Publisher
from utils.config import Settings, WatcherSettings, get_settings
from utils.errors import ConfigurationError, LocalRepoError
from utils.logger import configure_logging, get_logger


logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        description=(
            "Serve a directory as a hash-addressed zip archive and keep a "
            "Bazel archive_override/http_archive declaration pointed at it"
        )
    )
    parser.add_argument(
        "--input",
        type=Path,
        default=None,
        help="Input directory to watch and archive",
    )
    parser.add_argument(
        "--http_addr",
        default=None,
        help="Serving address to use for the HTTP server (default: localhost:8673)",
    )
    parser.add_argument(
        "--module_file",
        "--workspace",
        dest="module_file",
        type=Path,
        default=None,
        help="MODULE.bazel or WORKSPACE file to update",
    )
    parser.add_argument(
        "--import_path",
        "--rule_name",
        dest="import_path",
        default=None,
        help="Go import path (archive_override) or rule name (http_archive) to update",
    )
    parser.add_argument(
        "--debounce_ms",
        type=int,
        default=None,
        help="Quiet period after a change before a new archive is built",
    )
    parser.add_argument(
        "--log_level",
        default=None,
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


def parse_address(address: str) -> tuple[str, int]:
    """
    Split a host:port serving address.

    Raises:
        ConfigurationError: If the address is empty or malformed
    """
    host, sep, port_text = address.rpartition(":")
    if not address or not sep or not host:
        raise ConfigurationError(f"must pass --http_addr as host:port, got {address!r}")
    try:
        port = int(port_text)
    except ValueError as e:
        raise ConfigurationError(f"invalid port in --http_addr {address!r}") from e
    if not 1 <= port <= 65535:
        raise ConfigurationError(f"port out of range in --http_addr {address!r}")
    return host, port


def apply_args(settings: Settings, args: argparse.Namespace) -> Settings:
    """
    Override settings with command line values.

    Raises:
        ConfigurationError: If a value is invalid
    """
    if args.input is not None:
        settings.publisher.input_dir = args.input
    if args.module_file is not None:
        settings.publisher.module_file = args.module_file
    if args.import_path is not None:
        settings.publisher.import_path = args.import_path
    if args.http_addr is not None:
        settings.server.host, settings.server.port = parse_address(args.http_addr)
    if args.debounce_ms is not None:
        try:
            settings.watcher = WatcherSettings(
                **{**settings.watcher.model_dump(), "debounce_delay_ms": args.debounce_ms}
            )
        except ValidationError as e:
            raise ConfigurationError(f"invalid --debounce_ms {args.debounce_ms}: {e}") from e
    return settings


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        configure_logging(args.log_level)
        settings = apply_args(get_settings(), args)
        publisher = Publisher.from_settings(settings)
        asyncio.run(publisher.run())
    except KeyboardInterrupt:
        logger.info("shutdown_requested")
        return 0
    except LocalRepoError as e:
        logger.error("fatal_error", error=str(e), error_type=type(e).__name__)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
