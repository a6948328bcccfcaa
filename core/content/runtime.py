"""Process-wide wiring of the content sync engine.

One ContentRuntime per process holds the mirror, sync manager, scheduler,
cache and invalidation gateway. Components receive each other explicitly;
only this module keeps the process-wide instance, so tests can build and
install a fresh runtime with set_runtime().
"""

import logging
from dataclasses import dataclass

from core.config import ContentSettings, load_content_settings

from .cache import ContentCache
from .errors import RuntimeNotInitializedError
from .git_mirror import GitMirror
from .invalidation import CacheInvalidationGateway
from .page_cache import PageCacheRevalidator
from .parser import ContentParser
from .scheduler import SyncScheduler
from .sync_manager import SyncManager
from .types import ContentSnapshot, SyncResult

logger = logging.getLogger(__name__)


@dataclass
class ContentRuntime:
    settings: ContentSettings
    mirror: GitMirror
    sync_manager: SyncManager
    scheduler: SyncScheduler
    cache: ContentCache
    gateway: CacheInvalidationGateway

    async def get_content(self, locale: str | None = None) -> ContentSnapshot:
        return await self.cache.get(locale or self.settings.default_locale)

    def is_supported_locale(self, locale: str) -> bool:
        return locale in self.settings.supported_locales

    async def shutdown(self) -> None:
        self.scheduler.shutdown()
        await self.gateway.drain()


def git_command_timeout(settings: ContentSettings) -> float:
    """Per-command git timeout, kept below the hard sync timeout.

    A hung git call must be killed before the sync manager abandons the
    attempt, otherwise the retry just waits on the mirror lock.
    """
    return min(
        settings.git_command_timeout_seconds,
        settings.sync_timeout_seconds * 0.8,
    )


def build_runtime(settings: ContentSettings) -> ContentRuntime:
    """Construct all engine components from settings (nothing is started)."""
    mirror = GitMirror(
        path=settings.content_path,
        repository_url=settings.data_repository,
        token=settings.github_token,
        branch=settings.branch,
        command_timeout=git_command_timeout(settings),
    )
    sync_manager = SyncManager(
        mirror,
        timeout_seconds=settings.sync_timeout_seconds,
        max_attempts=settings.sync_max_attempts,
        retry_base_seconds=settings.sync_retry_base_seconds,
        auto_sync_disabled=settings.auto_sync_disabled,
        interval_seconds=settings.sync_interval_seconds,
    )
    cache = ContentCache(
        ContentParser(settings.content_path, default_locale=settings.default_locale),
        generation_source=lambda: sync_manager.generation,
    )
    gateway = CacheInvalidationGateway(
        cache,
        PageCacheRevalidator(settings.revalidate_url, settings.revalidate_secret),
    )

    def on_result(result: SyncResult) -> None:
        # The content cache notices the new generation by itself; rendered
        # pages downstream have to be told.
        if result.success and result.attempts > 0:
            gateway.request_page_revalidation(["/"])

    scheduler = SyncScheduler(
        sync_manager,
        interval_seconds=settings.sync_interval_seconds,
        on_result=on_result,
    )
    return ContentRuntime(
        settings=settings,
        mirror=mirror,
        sync_manager=sync_manager,
        scheduler=scheduler,
        cache=cache,
        gateway=gateway,
    )


# Global runtime singleton
_runtime: ContentRuntime | None = None


def get_runtime() -> ContentRuntime:
    """Get the content runtime.

    Raises:
        RuntimeNotInitializedError: If init_content_runtime() hasn't run.
    """
    if _runtime is None:
        raise RuntimeNotInitializedError(
            "Content runtime not initialized. Call init_content_runtime() first."
        )
    return _runtime


def set_runtime(runtime: ContentRuntime) -> None:
    """Set the content runtime (used by startup and tests)."""
    global _runtime
    _runtime = runtime


def clear_runtime() -> None:
    """Clear the content runtime (used by tests and shutdown)."""
    global _runtime
    _runtime = None


def init_content_runtime(settings: ContentSettings | None = None) -> ContentRuntime:
    """
    Build the runtime once per process and register the sync job.

    Call this during app startup (in FastAPI lifespan). Repeated calls
    return the existing runtime without registering another job.
    """
    global _runtime

    if _runtime is None:
        settings = settings or load_content_settings()
        _runtime = build_runtime(settings)
        print(f"Content mirror: {settings.content_path}")
        if settings.data_repository:
            print(f"  Repository: {settings.data_repository}")
        else:
            print("  Repository: not configured (local content only)")

    _runtime.scheduler.ensure_registered()
    return _runtime


async def shutdown_content_runtime() -> None:
    """Stop the scheduler and flush pending revalidations. Call on shutdown."""
    if _runtime is not None:
        await _runtime.shutdown()
        print("Content sync scheduler stopped")
