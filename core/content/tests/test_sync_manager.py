"""Tests for single-flight repository sync."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from core.content.errors import PermanentSyncError, TransientSyncError
from core.content.sync_manager import SyncManager, get_retry_delay
from core.content.types import HeadCommit, SyncOutcome, SyncReason


class FakeMirror:
    """Mirror stub: fails with queued errors, optionally blocks on a gate."""

    def __init__(self, errors=None, head=None, remote=True, gate=None, gated_calls=None):
        self.calls = 0
        self.errors = list(errors or [])
        self.head = head
        self.remote = remote
        self.gate = gate
        # Only the first N calls wait on the gate (None: every call)
        self.gated_calls = gated_calls
        self.started = asyncio.Event()

    @property
    def is_remote_configured(self) -> bool:
        return self.remote

    async def ensure_local_mirror(self) -> None:
        self.calls += 1
        self.started.set()
        gated = self.gated_calls is None or self.calls <= self.gated_calls
        if self.gate is not None and gated:
            await self.gate.wait()
        if self.errors:
            raise self.errors.pop(0)

    async def head_commit(self) -> HeadCommit:
        if self.head is None:
            raise PermanentSyncError("git log failed: no commits")
        return self.head


HEAD = HeadCommit(
    hash="0123456789abcdef",
    message="Add new tools",
    author="Ada",
    timestamp=datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc),
)


class TestRequestSync:
    """Test the basic sync lifecycle."""

    @pytest.mark.asyncio
    async def test_success_bumps_generation(self):
        manager = SyncManager(FakeMirror(head=HEAD))

        result = await manager.request_sync(SyncReason.forced)

        assert result.success is True
        assert result.outcome == SyncOutcome.completed
        assert result.reason == SyncReason.forced
        assert result.attempts == 1
        assert manager.generation == 1

        state = manager.get_status()
        assert state.in_progress is False
        assert state.last_result is result
        assert state.last_sync_at == result.timestamp
        assert state.head_commit == HEAD
        assert "01234567 (Add new tools)" in result.details

    @pytest.mark.asyncio
    async def test_failure_also_bumps_generation(self):
        manager = SyncManager(FakeMirror(errors=[PermanentSyncError("bad credentials")]))

        result = await manager.request_sync(SyncReason.scheduled)

        assert result.success is False
        assert result.outcome == SyncOutcome.failed
        assert "bad credentials" in result.details
        assert manager.generation == 1
        assert manager.get_status().last_result is result

    @pytest.mark.asyncio
    async def test_local_only_mirror_has_no_head_commit(self):
        manager = SyncManager(FakeMirror(remote=False))

        result = await manager.request_sync(SyncReason.scheduled)

        assert result.success is True
        assert manager.get_status().head_commit is None

    @pytest.mark.asyncio
    async def test_unreadable_head_commit_does_not_fail_sync(self):
        manager = SyncManager(FakeMirror(head=None))

        result = await manager.request_sync(SyncReason.scheduled)

        assert result.success is True
        assert manager.get_status().head_commit is None

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported_not_raised(self):
        manager = SyncManager(FakeMirror(errors=[RuntimeError("boom")]))

        with patch("core.content.sync_manager.sentry_sdk") as mock_sentry:
            result = await manager.request_sync(SyncReason.forced)

        assert result.outcome == SyncOutcome.failed
        assert "boom" in result.details
        assert manager.generation == 1
        assert manager.get_status().in_progress is False
        mock_sentry.capture_exception.assert_called_once()

    @pytest.mark.asyncio
    async def test_next_sync_at_follows_interval(self):
        manager = SyncManager(FakeMirror(head=HEAD), interval_seconds=60)

        result = await manager.request_sync(SyncReason.scheduled)

        assert manager.get_status().next_sync_at == result.timestamp + timedelta(
            seconds=60
        )

    @pytest.mark.asyncio
    async def test_status_is_a_copy(self):
        manager = SyncManager(FakeMirror(head=HEAD))
        await manager.request_sync(SyncReason.forced)

        status = manager.get_status()
        status.generation = 99

        assert manager.generation == 1

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            SyncManager(FakeMirror(), max_attempts=0)


class TestSingleFlight:
    """Test that at most one sync runs at a time."""

    @pytest.mark.asyncio
    async def test_concurrent_request_is_rejected(self):
        """A second caller gets 'already in progress' without waiting."""
        gate = asyncio.Event()
        mirror = FakeMirror(head=HEAD, gate=gate)
        manager = SyncManager(mirror)

        first = asyncio.create_task(manager.request_sync(SyncReason.scheduled))
        await mirror.started.wait()

        second = await manager.request_sync(SyncReason.forced)

        assert second.success is False
        assert second.outcome == SyncOutcome.already_in_progress
        assert second.message == "Sync already in progress"
        assert manager.get_status().in_progress is True

        others = await asyncio.gather(
            *(manager.request_sync(SyncReason.scheduled) for _ in range(5))
        )
        assert all(r.outcome == SyncOutcome.already_in_progress for r in others)

        gate.set()
        result = await first

        assert result.success is True
        assert mirror.calls == 1
        # Only the sync that actually ran bumps the generation
        assert manager.generation == 1

    @pytest.mark.asyncio
    async def test_status_readable_during_sync(self):
        gate = asyncio.Event()
        mirror = FakeMirror(head=HEAD, gate=gate)
        manager = SyncManager(mirror)

        task = asyncio.create_task(manager.request_sync(SyncReason.scheduled))
        await mirror.started.wait()

        status = manager.get_status()
        assert status.in_progress is True
        assert status.generation == 0

        gate.set()
        await task

    @pytest.mark.asyncio
    async def test_sequential_syncs_both_run(self):
        mirror = FakeMirror(head=HEAD)
        manager = SyncManager(mirror)

        await manager.request_sync(SyncReason.scheduled)
        await manager.request_sync(SyncReason.forced)

        assert mirror.calls == 2
        assert manager.generation == 2


class TestRetries:
    """Test bounded retry of transient failures."""

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        mirror = FakeMirror(
            errors=[TransientSyncError("connection reset"), TransientSyncError("early EOF")],
            head=HEAD,
        )
        manager = SyncManager(mirror, max_attempts=3, retry_base_seconds=0)

        result = await manager.request_sync(SyncReason.scheduled)

        assert result.success is True
        assert result.attempts == 3
        assert mirror.calls == 3
        assert manager.generation == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        mirror = FakeMirror(errors=[TransientSyncError("could not resolve host")] * 3)
        manager = SyncManager(mirror, max_attempts=3, retry_base_seconds=0)

        result = await manager.request_sync(SyncReason.scheduled)

        assert result.outcome == SyncOutcome.failed
        assert "(attempt 3/3)" in result.details
        assert mirror.calls == 3

    @pytest.mark.asyncio
    async def test_permanent_failure_is_not_retried(self):
        mirror = FakeMirror(errors=[PermanentSyncError("authentication failed")])
        manager = SyncManager(mirror, max_attempts=3, retry_base_seconds=0)

        result = await manager.request_sync(SyncReason.scheduled)

        assert result.outcome == SyncOutcome.failed
        assert result.attempts == 1
        assert mirror.calls == 1


class TestTimeout:
    """Test the hard per-attempt timeout."""

    @pytest.mark.asyncio
    async def test_hung_update_times_out_and_releases_lock(self):
        gate = asyncio.Event()
        mirror = FakeMirror(head=HEAD, gate=gate)
        manager = SyncManager(
            mirror, timeout_seconds=0.05, max_attempts=3, retry_base_seconds=0
        )

        result = await manager.request_sync(SyncReason.forced)

        assert result.success is False
        assert result.outcome == SyncOutcome.timed_out
        assert result.message == "sync timed out"
        assert result.attempts == 3
        assert "(attempt 3/3)" in result.details
        assert mirror.calls == 3
        assert manager.generation == 1
        assert manager.get_status().in_progress is False

        # The next sync is not blocked by the abandoned ones
        gate.set()
        follow_up = await manager.request_sync(SyncReason.forced)
        assert follow_up.success is True
        assert manager.generation == 2

        await manager.drain()

    @pytest.mark.asyncio
    async def test_timeout_is_retried_like_a_transient_error(self):
        """One hung attempt followed by a good one is a successful sync."""
        gate = asyncio.Event()
        mirror = FakeMirror(head=HEAD, gate=gate, gated_calls=1)
        manager = SyncManager(
            mirror, timeout_seconds=0.05, max_attempts=3, retry_base_seconds=0
        )

        result = await manager.request_sync(SyncReason.scheduled)

        assert result.success is True
        assert result.outcome == SyncOutcome.completed
        assert result.attempts == 2
        assert mirror.calls == 2
        assert manager.generation == 1
        assert manager.get_status().head_commit == HEAD

        gate.set()
        await manager.drain()

    @pytest.mark.asyncio
    async def test_single_attempt_timeout_is_reported_as_timed_out(self):
        gate = asyncio.Event()
        mirror = FakeMirror(head=HEAD, gate=gate)
        manager = SyncManager(mirror, timeout_seconds=0.05, max_attempts=1)

        result = await manager.request_sync(SyncReason.forced)

        assert result.outcome == SyncOutcome.timed_out
        assert result.attempts == 1
        assert mirror.calls == 1

        gate.set()
        await manager.drain()

    @pytest.mark.asyncio
    async def test_transient_error_after_timeout_is_reported_as_failed(self):
        """Only a timeout on the final attempt yields timed_out."""
        gate = asyncio.Event()
        mirror = FakeMirror(
            errors=[TransientSyncError("early EOF")], gate=gate, gated_calls=1
        )
        manager = SyncManager(
            mirror, timeout_seconds=0.05, max_attempts=2, retry_base_seconds=0
        )

        result = await manager.request_sync(SyncReason.scheduled)

        assert result.outcome == SyncOutcome.failed
        assert "early EOF" in result.details
        assert result.attempts == 2

        gate.set()
        await manager.drain()


class TestDisabledMode:
    """Test DISABLE_AUTO_SYNC behaviour."""

    @pytest.mark.asyncio
    async def test_scheduled_sync_is_skipped(self):
        mirror = FakeMirror(head=HEAD)
        manager = SyncManager(mirror, auto_sync_disabled=True)

        result = await manager.request_sync(SyncReason.scheduled)

        assert result.success is True
        assert result.outcome == SyncOutcome.disabled
        assert mirror.calls == 0
        assert manager.generation == 0

    @pytest.mark.asyncio
    async def test_forced_sync_still_runs(self):
        mirror = FakeMirror(head=HEAD)
        manager = SyncManager(mirror, auto_sync_disabled=True)

        result = await manager.request_sync(SyncReason.forced)

        assert result.outcome == SyncOutcome.completed
        assert mirror.calls == 1


class TestGetRetryDelay:
    """Test exponential backoff calculation."""

    def test_exponential_growth(self):
        """Delay should double each attempt."""
        assert get_retry_delay(attempt=0, include_jitter=False) == 1
        assert get_retry_delay(attempt=1, include_jitter=False) == 2
        assert get_retry_delay(attempt=2, include_jitter=False) == 4

    def test_caps_delay(self):
        assert get_retry_delay(attempt=10, include_jitter=False) == 60
        assert get_retry_delay(attempt=5, cap_seconds=5, include_jitter=False) == 5

    def test_jitter_is_bounded(self):
        delays = [get_retry_delay(attempt=3) for _ in range(20)]
        assert all(8 <= delay <= 8.8 for delay in delays)
