"""Read-through, generation-versioned cache of parsed content.

Entries are keyed by locale and tagged with the sync generation they were
built from. A read whose entry is missing, stale (older generation) or
explicitly invalidated triggers a rebuild; concurrent readers of the same
locale share a single in-flight build, other locales are never blocked.

A failed parse is never cached. If the locale has a last known-good
snapshot, readers keep getting it until the next sync or invalidation.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable

from .errors import ContentParseError
from .types import CacheEntry, ContentSnapshot

logger = logging.getLogger(__name__)


class ContentCache:
    """Cache of ContentSnapshot per locale.

    Args:
        parser: Object with a blocking parse(locale) -> ContentSnapshot
        generation_source: Returns the current sync generation
    """

    def __init__(self, parser, generation_source: Callable[[], int]):
        self._parser = parser
        self._generation_source = generation_source
        self._entries: dict[str, CacheEntry[ContentSnapshot]] = {}
        self._builds: dict[str, asyncio.Task] = {}
        # Last successfully parsed snapshot per locale; survives invalidation
        self._last_good: dict[str, ContentSnapshot] = {}
        # Generation whose parse failed, so it isn't retried on every read
        self._failed_generation: dict[str, int] = {}
        self._epochs: dict[str, int] = {}
        self._global_epoch = 0

    async def get(self, locale: str) -> ContentSnapshot:
        """Return the snapshot for `locale`, rebuilding it if needed.

        Raises:
            ContentParseError: If parsing fails and no earlier snapshot exists
        """
        generation = self._generation_source()
        entry = self._entries.get(locale)
        if entry is not None and entry.generation == generation:
            return entry.value

        if self._failed_generation.get(locale) == generation:
            fallback = self._last_good.get(locale)
            if fallback is not None:
                return fallback

        build = self._builds.get(locale)
        if build is None:
            logger.debug(f"Cache miss for '{locale}' at generation {generation}")
            build = asyncio.create_task(self._rebuild(locale, generation))
            build.add_done_callback(_retrieve_exception)
            self._builds[locale] = build

        # Shield so one cancelled reader doesn't cancel the build for everyone
        return await asyncio.shield(build)

    def invalidate(self, locale: str | None = None) -> None:
        """Drop the entry for one locale, or for every locale if omitted.

        Builds already in flight still answer their waiters, but their result
        is not stored.
        """
        if locale is None:
            self._entries.clear()
            self._builds.clear()
            self._failed_generation.clear()
            self._global_epoch += 1
            logger.info("Content cache invalidated for all locales")
            return

        self._entries.pop(locale, None)
        self._builds.pop(locale, None)
        self._failed_generation.pop(locale, None)
        self._epochs[locale] = self._epochs.get(locale, 0) + 1
        logger.info(f"Content cache invalidated for locale '{locale}'")

    def entries(self) -> dict[str, CacheEntry[ContentSnapshot]]:
        return dict(self._entries)

    def stats(self) -> dict:
        """Per-locale cache state for the status endpoint."""
        generation = self._generation_source()
        return {
            "generation": generation,
            "locales": {
                locale: {
                    "generation": entry.generation,
                    "loaded_at": entry.loaded_at.isoformat(),
                    "stale": entry.generation != generation,
                    "items": entry.value.total,
                }
                for locale, entry in self._entries.items()
            },
            "building": sorted(self._builds),
        }

    def _epoch(self, locale: str) -> tuple[int, int]:
        return (self._global_epoch, self._epochs.get(locale, 0))

    async def _rebuild(self, locale: str, generation: int) -> ContentSnapshot:
        epoch = self._epoch(locale)
        try:
            try:
                snapshot = await asyncio.to_thread(self._parser.parse, locale)
            except ContentParseError as e:
                fallback = self._last_good.get(locale)
                if fallback is None:
                    logger.error(f"Failed to parse content for '{locale}': {e}")
                    raise
                logger.warning(
                    f"Failed to parse content for '{locale}', "
                    f"serving last known-good snapshot: {e}"
                )
                if epoch == self._epoch(locale):
                    self._failed_generation[locale] = generation
                return fallback

            if epoch == self._epoch(locale):
                self._entries[locale] = CacheEntry(
                    value=snapshot,
                    generation=generation,
                    loaded_at=datetime.now(timezone.utc),
                )
                self._last_good[locale] = snapshot
                self._failed_generation.pop(locale, None)
            else:
                logger.debug(f"'{locale}' was invalidated during rebuild, not storing")
            return snapshot
        finally:
            if self._builds.get(locale) is asyncio.current_task():
                del self._builds[locale]


def _retrieve_exception(task: asyncio.Task) -> None:
    # Every waiter re-raises the error; this only stops asyncio from warning
    # about it when all waiters were cancelled first.
    if not task.cancelled():
        task.exception()
