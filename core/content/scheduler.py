"""
APScheduler-based periodic trigger for repository syncs.

Registers a single interval job that calls the sync manager. Registration
is idempotent: the hosting framework may run startup code more than once,
and each extra call must not add another timer.

The job catches and logs its own failures so one bad cycle never stops
the schedule.
"""

import logging
from datetime import datetime, timezone
from typing import Callable

import sentry_sdk
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .types import JobDescriptor, SyncReason, SyncResult

logger = logging.getLogger(__name__)


SYNC_JOB_ID = "repository_sync"


def _create_apscheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler(
        job_defaults={
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,
            "misfire_grace_time": 30,
        },
    )


class SyncScheduler:
    """Runs request_sync(scheduled) on a fixed interval."""

    def __init__(
        self,
        sync_manager,
        interval_seconds: int,
        scheduler: AsyncIOScheduler | None = None,
        on_result: Callable[[SyncResult], None] | None = None,
        run_immediately: bool = True,
    ):
        """
        Args:
            sync_manager: The SyncManager to trigger
            interval_seconds: Seconds between scheduled syncs
            scheduler: APScheduler instance (created on registration if None)
            on_result: Called with every SyncResult this scheduler produces
            run_immediately: Fire the first sync right after registration
        """
        self._sync_manager = sync_manager
        self._interval_seconds = interval_seconds
        self._scheduler = scheduler
        self._on_result = on_result
        self._run_immediately = run_immediately
        self._registered = False
        self._job: JobDescriptor | None = None

    @property
    def is_registered(self) -> bool:
        return self._registered

    def get_job(self) -> JobDescriptor | None:
        return self._job

    def ensure_registered(self) -> None:
        """
        Register the periodic sync job. Safe to call any number of times.

        Must be called from a running event loop (FastAPI lifespan).
        """
        if self._registered:
            logger.debug("Sync job already registered")
            return

        if self._scheduler is None:
            self._scheduler = _create_apscheduler()

        job = JobDescriptor(id=SYNC_JOB_ID, interval_ms=self._interval_seconds * 1000)
        job_kwargs = {}
        if self._run_immediately:
            job_kwargs["next_run_time"] = datetime.now(timezone.utc)

        self._scheduler.add_job(
            self._run_scheduled_sync,
            trigger="interval",
            seconds=self._interval_seconds,
            id=SYNC_JOB_ID,
            replace_existing=True,
            **job_kwargs,
        )
        if not self._scheduler.running:
            self._scheduler.start()

        self._job = job
        self._registered = True
        logger.info(f"Registered repository sync job every {self._interval_seconds}s")

    async def trigger_now(self) -> SyncResult:
        """Run a forced sync immediately (admin or external cron caller)."""
        logger.info("Manual sync triggered")
        result = await self._sync_manager.request_sync(SyncReason.forced)
        self._report(result)
        return result

    def shutdown(self) -> None:
        """Stop the timer on process shutdown."""
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Sync scheduler stopped")

    async def _run_scheduled_sync(self) -> None:
        """APScheduler job body. Never raises."""
        if self._job:
            self._job.last_run_at = datetime.now(timezone.utc)
        try:
            result = await self._sync_manager.request_sync(SyncReason.scheduled)
            self._report(result)
        except Exception as e:
            logger.error(f"Scheduled sync failed: {e}", exc_info=True)
            sentry_sdk.capture_exception(e)

    def _report(self, result: SyncResult) -> None:
        """Hand the result to on_result. A failing hook never fails the sync."""
        if not self._on_result:
            return
        try:
            self._on_result(result)
        except Exception as e:
            logger.error(f"Sync result hook failed: {e}", exc_info=True)
            sentry_sdk.capture_exception(e)
