# core/content/types.py
"""
Type definitions for the content sync engine.

Sync bookkeeping (SyncState, SyncResult, JobDescriptor), cache entries, and
the parsed content snapshot served to readers. Snapshot types are frozen:
once the parser has built one it is shared by every reader of that locale.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class SyncReason(str, enum.Enum):
    scheduled = "scheduled"
    forced = "forced"


class SyncOutcome(str, enum.Enum):
    completed = "completed"
    failed = "failed"
    timed_out = "timed_out"
    already_in_progress = "already_in_progress"
    disabled = "disabled"


@dataclass(frozen=True)
class HeadCommit:
    """The commit currently checked out in the mirror."""

    hash: str
    message: str
    author: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "hash": self.hash,
            "message": self.message,
            "author": self.author,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one request_sync() call."""

    success: bool
    message: str
    outcome: SyncOutcome
    reason: SyncReason
    timestamp: datetime
    duration_ms: int = 0
    details: str | None = None
    attempts: int = 0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "outcome": self.outcome.value,
            "reason": self.reason.value,
            "details": self.details,
            "duration_ms": self.duration_ms,
            "attempts": self.attempts,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class SyncState:
    """Process-wide sync bookkeeping, owned by the SyncManager."""

    in_progress: bool = False
    last_sync_at: datetime | None = None
    last_result: SyncResult | None = None
    generation: int = 0
    head_commit: HeadCommit | None = None
    next_sync_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "in_progress": self.in_progress,
            "generation": self.generation,
            "last_sync_at": self.last_sync_at.isoformat()
            if self.last_sync_at
            else None,
            "next_sync_at": self.next_sync_at.isoformat()
            if self.next_sync_at
            else None,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "head_commit": self.head_commit.to_dict() if self.head_commit else None,
        }


@dataclass
class JobDescriptor:
    """A periodic job registered by the scheduler."""

    id: str
    interval_ms: int
    last_run_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "interval_ms": self.interval_ms,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
        }


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value tagged with the sync generation it was built from."""

    value: T
    generation: int
    loaded_at: datetime


# --- Parsed content ---


@dataclass(frozen=True)
class TaxonomyRef:
    """A category or tag reference as attached to an item."""

    id: str
    name: str


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    icon_url: str | None = None
    count: int = 0


@dataclass(frozen=True)
class Tag:
    id: str
    name: str
    icon_url: str | None = None
    count: int = 0


@dataclass(frozen=True)
class Item:
    """A directory entry from data/<slug>/<slug>.yml."""

    slug: str
    name: str
    description: str
    source_url: str
    categories: tuple[TaxonomyRef, ...]
    tags: tuple[TaxonomyRef, ...]
    updated_at: datetime | None
    featured: bool = False
    icon_url: str | None = None
    body: str | None = None  # Markdown/MDX body, if the item has one
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self, include_body: bool = False) -> dict:
        data = {
            "slug": self.slug,
            "name": self.name,
            "description": self.description,
            "source_url": self.source_url,
            "category": [{"id": c.id, "name": c.name} for c in self.categories],
            "tags": [{"id": t.id, "name": t.name} for t in self.tags],
            "featured": self.featured,
            "icon_url": self.icon_url,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            **self.extra,
        }
        if include_body:
            data["content"] = self.body
        return data


@dataclass(frozen=True)
class Collection:
    id: str
    slug: str
    name: str
    description: str = ""
    items: tuple[str, ...] = ()  # item slugs
    icon_url: str | None = None
    is_active: bool = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "description": self.description,
            "items": list(self.items),
            "item_count": len(self.items),
            "icon_url": self.icon_url,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class Page:
    """A static page from pages/<slug>.md."""

    slug: str
    title: str
    body: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "slug": self.slug,
            "title": self.title,
            "content": self.body,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class ContentSnapshot:
    """Everything parsed from the mirror for one locale."""

    locale: str
    items: tuple[Item, ...] = ()
    categories: tuple[Category, ...] = ()
    tags: tuple[Tag, ...] = ()
    collections: tuple[Collection, ...] = ()
    pages: tuple[Page, ...] = ()
    site_config: dict[str, Any] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.items)

    def get_item(self, slug: str) -> Item | None:
        for item in self.items:
            if item.slug == slug:
                return item
        return None

    def items_in_category(self, category_id: str) -> list[Item]:
        return [
            item
            for item in self.items
            if any(c.id == category_id for c in item.categories)
        ]

    def items_with_tag(self, tag_id: str) -> list[Item]:
        return [item for item in self.items if any(t.id == tag_id for t in item.tags)]

    def get_collection(self, slug: str) -> Collection | None:
        for collection in self.collections:
            if collection.slug == slug:
                return collection
        return None

    def items_in_collection(self, slug: str) -> list[Item]:
        collection = self.get_collection(slug)
        if collection is None:
            return []
        by_slug = {item.slug: item for item in self.items}
        return [by_slug[s] for s in collection.items if s in by_slug]

    def get_page(self, slug: str) -> Page | None:
        for page in self.pages:
            if page.slug == slug:
                return page
        return None
