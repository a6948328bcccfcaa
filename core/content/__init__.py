"""Content mirroring, synchronization and caching."""

from .cache import ContentCache
from .errors import (
    ContentParseError,
    ContentSyncError,
    PermanentSyncError,
    RuntimeNotInitializedError,
    TransientSyncError,
)
from .git_mirror import GitMirror
from .invalidation import CacheInvalidationGateway, InvalidationScope
from .page_cache import PageCacheRevalidator, PageRevalidationError
from .parser import ContentParser, parse_locale
from .runtime import (
    ContentRuntime,
    build_runtime,
    clear_runtime,
    get_runtime,
    init_content_runtime,
    set_runtime,
    shutdown_content_runtime,
)
from .scheduler import SYNC_JOB_ID, SyncScheduler
from .sync_manager import SyncManager, get_retry_delay
from .types import (
    ContentSnapshot,
    HeadCommit,
    JobDescriptor,
    SyncOutcome,
    SyncReason,
    SyncResult,
    SyncState,
)

__all__ = [
    "ContentCache",
    "ContentParseError",
    "ContentSyncError",
    "PermanentSyncError",
    "RuntimeNotInitializedError",
    "TransientSyncError",
    "GitMirror",
    "CacheInvalidationGateway",
    "InvalidationScope",
    "PageCacheRevalidator",
    "PageRevalidationError",
    "ContentParser",
    "parse_locale",
    "ContentRuntime",
    "build_runtime",
    "clear_runtime",
    "get_runtime",
    "init_content_runtime",
    "set_runtime",
    "shutdown_content_runtime",
    "SYNC_JOB_ID",
    "SyncScheduler",
    "SyncManager",
    "get_retry_delay",
    "ContentSnapshot",
    "HeadCommit",
    "JobDescriptor",
    "SyncOutcome",
    "SyncReason",
    "SyncResult",
    "SyncState",
]
