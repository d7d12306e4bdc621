"""Command-line entry point: ``python -m token_scanner``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from token_scanner.config import get_settings
from token_scanner.pipeline import Pipeline

logger = logging.getLogger(__name__)

_QUIET_LOGGERS = ("httpx", "httpcore")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="token_scanner",
        description="Token Scanner - watch launches, trades and alerts on the launchpad",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log notifications instead of sending them",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override LOG_LEVEL from the environment",
    )
    return parser.parse_args(argv)


def setup_logging(level: int) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


async def main_async(args: argparse.Namespace) -> None:
    """Async main function."""
    settings = get_settings()
    level = getattr(logging, args.log_level) if args.log_level else settings.get_logging_level()
    setup_logging(level)
    logger.info("Configuration: %s", settings.redacted_summary())

    pipeline = Pipeline(settings, dry_run=True if args.dry_run else None)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    await pipeline.start()
    try:
        await shutdown_event.wait()
    finally:
        await pipeline.stop()


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    try:
        asyncio.run(main_async(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
