# core/content/invalidation.py
"""Cache invalidation for mutations that don't come through the Git sync.

Admin edits (collections, categories, featured items, ...) are stored
outside the mirror but still change what pages render. Those flows call
notify_content_changed(), which:

1. Drops the affected content cache entries synchronously
2. Fires a background request to revalidate the frontend's page cache

Step 2 is fire-and-forget: failures are logged and retried a few times but
never reach the caller, since the content cache is already correct.
"""

import asyncio
import logging
from dataclasses import dataclass

from .page_cache import PageCacheRevalidator, PageRevalidationError
from .sync_manager import get_retry_delay

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvalidationScope:
    """Which cached content a mutation affects."""

    locale: str | None = None  # None means every locale
    paths: tuple[str, ...] = ()  # Page paths to revalidate downstream

    @classmethod
    def all(cls, paths: tuple[str, ...] = ()) -> "InvalidationScope":
        return cls(locale=None, paths=tuple(paths))

    @classmethod
    def for_locale(cls, locale: str, paths: tuple[str, ...] = ()) -> "InvalidationScope":
        return cls(locale=locale, paths=tuple(paths))

    @property
    def is_global(self) -> bool:
        return self.locale is None

    def page_paths(self) -> list[str]:
        if self.paths:
            return list(self.paths)
        return ["/"] if self.is_global else [f"/{self.locale}"]


class CacheInvalidationGateway:
    """Routes "content changed" events to the content and page caches."""

    def __init__(
        self,
        cache,
        revalidator: PageCacheRevalidator,
        max_attempts: int = 3,
        retry_base_seconds: float = 1.0,
    ):
        self._cache = cache
        self._revalidator = revalidator
        self._max_attempts = max_attempts
        self._retry_base_seconds = retry_base_seconds
        self._pending: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def notify_content_changed(self, scope: InvalidationScope) -> None:
        """Invalidate the content cache now, the page cache in the background."""
        self._cache.invalidate(scope.locale)
        self.request_page_revalidation(scope.page_paths())

    def request_page_revalidation(self, paths: list[str]) -> None:
        """Schedule a downstream revalidation without waiting for it."""
        if not self._revalidator.is_configured:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop, skipping revalidation of {paths}")
            return

        task = loop.create_task(self._revalidate(list(paths)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _revalidate(self, paths: list[str]) -> None:
        for attempt in range(self._max_attempts):
            try:
                await self._revalidator.revalidate(paths)
                return
            except PageRevalidationError as e:
                if attempt + 1 >= self._max_attempts:
                    logger.error(
                        f"Giving up on page revalidation after "
                        f"{self._max_attempts} attempts: {e}"
                    )
                    return
                delay = get_retry_delay(attempt, base_seconds=self._retry_base_seconds)
                logger.warning(f"{e}, retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
            except Exception as e:
                logger.error(f"Unexpected page revalidation error: {e}", exc_info=True)
                return

    async def drain(self) -> None:
        """Wait for outstanding revalidation requests (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
