"""Run Herald from the command line.

Usage:
    python -m herald      # delivery worker only
    herald-worker         # same
    herald-api            # admin API with the delivery loops in-process

The worker runs the dispatch, sweep, and purge loops until SIGINT or
SIGTERM. Configuration comes from HERALD_* environment variables.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal

import uvicorn

from herald.config import Settings, load_settings
from herald.exceptions import ConfigurationError
from herald.logging import configure_logging, get_logger
from herald.scheduler import DeliveryScheduler
from herald.service import WebhookService

logger = get_logger("herald.worker")


async def run_worker(settings: Settings | None = None) -> None:
    """Run the scheduler against Qdrant-backed storage until signalled."""
    settings = settings or load_settings()
    configure_logging(level=settings.log_level, format=settings.log_format)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    async with WebhookService.create(settings) as service, DeliveryScheduler(service):
        logger.info("Herald worker running", qdrant_url=settings.qdrant_url)
        await stop.wait()
    logger.info("Herald worker stopped")


def _settings_or_exit() -> Settings:
    try:
        return load_settings()
    except ConfigurationError as e:
        logger.error("Herald cannot start", error=e.message)
        raise SystemExit(2) from e


def main() -> None:
    asyncio.run(run_worker(_settings_or_exit()))


def serve() -> None:
    """Serve the admin API with uvicorn."""
    from herald.api.app import create_app

    settings = _settings_or_exit()
    configure_logging(level=settings.log_level, format=settings.log_format)
    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
