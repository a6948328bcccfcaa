# core/content/sync_manager.py
"""Single-flight synchronization of the content mirror.

At most one sync runs at a time. A caller arriving while a sync is in
progress gets an "already in progress" result immediately instead of
queueing. Every completed attempt (success or failure) bumps the sync
generation, which the content cache compares against to detect staleness.
"""

import asyncio
import dataclasses
import logging
import random
import time
from datetime import datetime, timedelta, timezone

import sentry_sdk

from .errors import ContentSyncError, PermanentSyncError, TransientSyncError
from .types import HeadCommit, SyncOutcome, SyncReason, SyncResult, SyncState

logger = logging.getLogger(__name__)


DEFAULT_SYNC_TIMEOUT_SECONDS = 300.0
DEFAULT_MAX_ATTEMPTS = 3


def get_retry_delay(
    attempt: int,
    base_seconds: float = 1.0,
    cap_seconds: float = 60.0,
    include_jitter: bool = True,
) -> float:
    """
    Calculate retry delay using exponential backoff with cap.

    Args:
        attempt: Zero-based attempt number (0 = first retry)
        base_seconds: Delay before the first retry
        cap_seconds: Upper bound for the delay (before jitter)
        include_jitter: Add random jitter to prevent thundering herd

    Returns:
        Delay in seconds (base, 2*base, 4*base, ... capped)
    """
    base_delay = min(base_seconds * 2**attempt, cap_seconds)
    if include_jitter:
        jitter = random.uniform(0, base_delay * 0.1)
        return base_delay + jitter
    return float(base_delay)


class SyncManager:
    """Owns SyncState and runs at most one mirror update at a time."""

    def __init__(
        self,
        mirror,
        timeout_seconds: float = DEFAULT_SYNC_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_base_seconds: float = 1.0,
        retry_cap_seconds: float = 60.0,
        auto_sync_disabled: bool = False,
        interval_seconds: int | None = None,
    ):
        """
        Args:
            mirror: Accessor with ensure_local_mirror(), head_commit() and
                    is_remote_configured (normally a GitMirror)
            timeout_seconds: Hard upper bound for one attempt
            max_attempts: Attempts for transient failures (>= 1)
            retry_base_seconds: Backoff delay before the first retry
            retry_cap_seconds: Maximum backoff delay
            auto_sync_disabled: Skip scheduled syncs (development only)
            interval_seconds: Scheduler interval, used to report next_sync_at
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self._mirror = mirror
        self._timeout_seconds = timeout_seconds
        self._max_attempts = max_attempts
        self._retry_base_seconds = retry_base_seconds
        self._retry_cap_seconds = retry_cap_seconds
        self._auto_sync_disabled = auto_sync_disabled
        self._interval_seconds = interval_seconds

        self._state = SyncState()
        self._lock = asyncio.Lock()
        self._abandoned: set[asyncio.Task] = set()

    @property
    def generation(self) -> int:
        return self._state.generation

    def get_status(self) -> SyncState:
        """Return a copy of the current sync state. Never waits on a sync."""
        return dataclasses.replace(self._state)

    async def request_sync(self, reason: SyncReason) -> SyncResult:
        """Bring the local mirror up to date.

        Never raises: git errors, timeouts and unexpected failures are all
        reported through the returned SyncResult.
        """
        if reason is SyncReason.scheduled and self._auto_sync_disabled:
            logger.debug("Sync disabled in development mode (DISABLE_AUTO_SYNC=true)")
            return SyncResult(
                success=True,
                message="Sync disabled in development mode",
                outcome=SyncOutcome.disabled,
                reason=reason,
                timestamp=datetime.now(timezone.utc),
                details="Background sync is skipped (DISABLE_AUTO_SYNC=true)",
            )

        if self._lock.locked():
            logger.info(f"Sync already in progress, skipping {reason.value} sync")
            return SyncResult(
                success=False,
                message="Sync already in progress",
                outcome=SyncOutcome.already_in_progress,
                reason=reason,
                timestamp=datetime.now(timezone.utc),
                details="Skipped to prevent concurrent sync operations",
            )

        async with self._lock:
            self._state.in_progress = True
            try:
                logger.info(f"Starting {reason.value} repository sync")
                try:
                    result = await self._run_attempts(reason)
                except Exception as e:
                    logger.error(f"Unexpected error during sync: {e}", exc_info=True)
                    sentry_sdk.capture_exception(e)
                    result = SyncResult(
                        success=False,
                        message="Repository synchronization failed",
                        outcome=SyncOutcome.failed,
                        reason=reason,
                        timestamp=datetime.now(timezone.utc),
                        details=f"Unexpected error: {e}",
                    )

                self._state.generation += 1
                self._state.last_sync_at = result.timestamp
                self._state.last_result = result
                if self._interval_seconds:
                    self._state.next_sync_at = result.timestamp + timedelta(
                        seconds=self._interval_seconds
                    )
                return result
            finally:
                self._state.in_progress = False

    async def _run_attempts(self, reason: SyncReason) -> SyncResult:
        started = time.monotonic()
        attempt = 0

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        while True:
            attempt += 1
            try:
                head = await self._update_with_timeout()
            except (asyncio.TimeoutError, TransientSyncError) as e:
                timed_out = isinstance(e, asyncio.TimeoutError)
                error = e
                if timed_out:
                    error = TransientSyncError(
                        f"No result from git after {self._timeout_seconds:.0f}s, "
                        "operation abandoned"
                    )
                if attempt >= self._max_attempts:
                    logger.error(
                        f"Max attempts ({self._max_attempts}) reached, giving up: {error}"
                    )
                    if timed_out:
                        return self._timed_out_result(
                            reason, error, attempt, elapsed_ms()
                        )
                    return self._failed_result(reason, error, attempt, elapsed_ms())
                delay = get_retry_delay(
                    attempt - 1,
                    base_seconds=self._retry_base_seconds,
                    cap_seconds=self._retry_cap_seconds,
                )
                logger.warning(
                    f"Transient sync failure (attempt {attempt}/{self._max_attempts}), "
                    f"retrying in {delay:.1f}s: {error}"
                )
                await asyncio.sleep(delay)
                continue
            except PermanentSyncError as e:
                logger.error(f"Sync failed, not retrying: {e}")
                return self._failed_result(reason, e, attempt, elapsed_ms())

            duration_ms = elapsed_ms()
            details = f"Sync completed in {duration_ms}ms"
            if head:
                self._state.head_commit = head
                details += f" at {head.hash[:8]} ({head.message})"
            logger.info(f"Repository sync completed successfully in {duration_ms}ms")
            return SyncResult(
                success=True,
                message="Repository synchronized successfully",
                outcome=SyncOutcome.completed,
                reason=reason,
                timestamp=datetime.now(timezone.utc),
                duration_ms=duration_ms,
                details=details,
                attempts=attempt,
            )

    def _failed_result(
        self, reason: SyncReason, error: Exception, attempt: int, duration_ms: int
    ) -> SyncResult:
        return SyncResult(
            success=False,
            message="Repository synchronization failed",
            outcome=SyncOutcome.failed,
            reason=reason,
            timestamp=datetime.now(timezone.utc),
            duration_ms=duration_ms,
            details=f"{error} (attempt {attempt}/{self._max_attempts})",
            attempts=attempt,
        )

    def _timed_out_result(
        self, reason: SyncReason, error: Exception, attempt: int, duration_ms: int
    ) -> SyncResult:
        return SyncResult(
            success=False,
            message="sync timed out",
            outcome=SyncOutcome.timed_out,
            reason=reason,
            timestamp=datetime.now(timezone.utc),
            duration_ms=duration_ms,
            details=f"{error} (attempt {attempt}/{self._max_attempts})",
            attempts=attempt,
        )

    async def _update_with_timeout(self) -> HeadCommit | None:
        """Run one mirror update, abandoning it if it exceeds the timeout."""
        task = asyncio.create_task(self._update_mirror())
        try:
            return await asyncio.wait_for(
                asyncio.shield(task), timeout=self._timeout_seconds
            )
        finally:
            if not task.done():
                self._abandon(task)

    async def _update_mirror(self) -> HeadCommit | None:
        await self._mirror.ensure_local_mirror()
        if not self._mirror.is_remote_configured:
            return None
        try:
            return await self._mirror.head_commit()
        except ContentSyncError as e:
            logger.warning(f"Could not read head commit: {e}")
            return None

    def _abandon(self, task: asyncio.Task) -> None:
        """Let an abandoned update finish in the background, discarding its result."""
        self._abandoned.add(task)

        def _on_done(finished: asyncio.Task) -> None:
            self._abandoned.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error:
                logger.warning(f"Abandoned sync finished with error: {error}")
            else:
                logger.info("Abandoned sync finished, result discarded")

        task.add_done_callback(_on_done)

    async def drain(self) -> None:
        """Wait for abandoned updates to finish (shutdown and tests)."""
        if self._abandoned:
            await asyncio.gather(*self._abandoned, return_exceptions=True)
