"""Periodic triggers for dispatch, sweep, and retention purge.

Each job runs in its own asyncio task on a fixed interval. A job that
raises is logged and retried on its next tick. Overlapping runs of the
same job cannot happen because each loop awaits its job before sleeping.

Example:
    ```python
    scheduler = DeliveryScheduler(service)
    await scheduler.start()
    ...
    await scheduler.stop()
    ```
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from herald.logging import get_logger

if TYPE_CHECKING:
    from herald.service import WebhookService

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScheduledJob:
    """A named coroutine run every `interval` seconds."""

    name: str
    interval: float
    run: Callable[[], Awaitable[Any]]
    run_immediately: bool = True


class DeliveryScheduler:
    """Runs the dispatcher, sweep, and purge on their configured intervals."""

    def __init__(
        self,
        service: WebhookService,
        jobs: list[ScheduledJob] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            service: Service whose dispatch, sweep, and purge are triggered.
            jobs: Override the default job set.
        """
        self._service = service
        self._jobs = jobs if jobs is not None else self.default_jobs(service)
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False

    @staticmethod
    def default_jobs(service: WebhookService) -> list[ScheduledJob]:
        settings = service.settings

        async def purge() -> int:
            return await service.purge(settings.retention_days)

        return [
            ScheduledJob("dispatch", settings.dispatch_interval_seconds, service.dispatch),
            ScheduledJob(
                "sweep", settings.sweep_interval_seconds, service.sweep, run_immediately=False
            ),
            ScheduledJob("purge", settings.purge_interval_seconds, purge, run_immediately=False),
        ]

    @property
    def running(self) -> bool:
        return self._running

    @property
    def jobs(self) -> list[ScheduledJob]:
        return list(self._jobs)

    async def start(self) -> None:
        """Start one background task per job."""
        if self._running:
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._loop(job), name=f"herald-{job.name}") for job in self._jobs
        ]
        logger.info("Scheduler started", jobs=[job.name for job in self._jobs])

    async def stop(self) -> None:
        """Cancel all job tasks and wait for them to finish."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Scheduler stopped")

    async def run_job(self, job: ScheduledJob) -> None:
        """Run a job once, logging instead of raising on failure."""
        try:
            result = await job.run()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled job failed", job=job.name)
        else:
            logger.debug("Scheduled job finished", job=job.name, result=str(result))

    async def _loop(self, job: ScheduledJob) -> None:
        if not job.run_immediately:
            await asyncio.sleep(job.interval)
        while self._running:
            await self.run_job(job)
            await asyncio.sleep(job.interval)

    async def __aenter__(self) -> DeliveryScheduler:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()


__all__ = ["DeliveryScheduler", "ScheduledJob"]
