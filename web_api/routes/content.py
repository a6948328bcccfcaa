"""
Content API routes.

Endpoints:
- POST /api/content/sync - Force a repository sync (cron secret or admin)
- GET /api/content/sync/status - Sync state, scheduler job and cache state
- GET /api/content/{locale}/config - Site config from the content repo
- GET /api/content/{locale}/items - All items (optionally ?category= / ?tag=)
- GET /api/content/{locale}/items/{slug} - One item with its markdown body
- GET /api/content/{locale}/categories/{category_id} - Items in a category
- GET /api/content/{locale}/tags/{tag_id} - Items with a tag
- GET /api/content/{locale}/collections - All collections
- GET /api/content/{locale}/collections/{slug} - One collection with items
- GET /api/content/{locale}/pages/{slug} - A static page
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from core.content import (
    ContentParseError,
    ContentRuntime,
    ContentSnapshot,
    RuntimeNotInitializedError,
    SyncOutcome,
    get_runtime,
)
from core.content.types import Item
from web_api.auth import require_sync_caller

router = APIRouter(prefix="/api/content", tags=["content"])

logger = logging.getLogger(__name__)


# Forced sync response codes: a no-op because another sync is running is a
# partial result (207); timeouts and git failures are total failures (500).
SYNC_STATUS_CODES = {
    SyncOutcome.completed: 200,
    SyncOutcome.disabled: 200,
    SyncOutcome.already_in_progress: 207,
    SyncOutcome.failed: 500,
    SyncOutcome.timed_out: 500,
}


def _get_runtime() -> ContentRuntime:
    try:
        return get_runtime()
    except RuntimeNotInitializedError:
        raise HTTPException(status_code=503, detail="Content not yet initialized")


async def _get_snapshot(locale: str) -> ContentSnapshot:
    runtime = _get_runtime()
    if not runtime.is_supported_locale(locale):
        raise HTTPException(status_code=404, detail=f"Unknown locale: {locale}")
    try:
        return await runtime.get_content(locale)
    except ContentParseError as e:
        logger.error(f"Content unavailable for '{locale}': {e}")
        raise HTTPException(status_code=503, detail=f"Content unavailable: {e}")


def _listing(snapshot: ContentSnapshot, items: list[Item]) -> dict:
    return {
        "total": snapshot.total,
        "items": [item.to_dict() for item in items],
        "categories": [
            {"id": c.id, "name": c.name, "icon_url": c.icon_url, "count": c.count}
            for c in snapshot.categories
        ],
        "tags": [
            {"id": t.id, "name": t.name, "icon_url": t.icon_url, "count": t.count}
            for t in snapshot.tags
        ],
    }


# --- Sync ---


@router.post("/sync")
async def force_sync(caller: dict = Depends(require_sync_caller)):
    """
    Force a repository sync.

    Called by the external cron job and the admin dashboard.
    """
    runtime = _get_runtime()
    logger.info(f"Forced sync requested by {caller.get('sub')}")
    result = await runtime.scheduler.trigger_now()
    return JSONResponse(
        status_code=SYNC_STATUS_CODES[result.outcome],
        content=result.to_dict(),
    )


@router.get("/sync/status")
async def sync_status():
    """Get sync and cache status for the admin dashboard and debugging."""
    runtime = _get_runtime()
    job = runtime.scheduler.get_job()
    return {
        "sync": runtime.sync_manager.get_status().to_dict(),
        "job": job.to_dict() if job else None,
        "cache": runtime.cache.stats(),
        "repository_configured": runtime.mirror.is_remote_configured,
    }


# --- Content reads ---


@router.get("/{locale}/config")
async def site_config(locale: str):
    snapshot = await _get_snapshot(locale)
    return snapshot.site_config


@router.get("/{locale}/items")
async def list_items(locale: str, category: str | None = None, tag: str | None = None):
    """List items, featured first then most recently updated."""
    snapshot = await _get_snapshot(locale)
    items = list(snapshot.items)
    if category:
        items = [i for i in items if any(c.id == category for c in i.categories)]
    if tag:
        items = [i for i in items if any(t.id == tag for t in i.tags)]
    return _listing(snapshot, items)


@router.get("/{locale}/items/{slug}")
async def get_item(locale: str, slug: str):
    snapshot = await _get_snapshot(locale)
    item = snapshot.get_item(slug)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Item not found: {slug}")
    return item.to_dict(include_body=True)


@router.get("/{locale}/categories/{category_id}")
async def items_by_category(locale: str, category_id: str):
    snapshot = await _get_snapshot(locale)
    return _listing(snapshot, snapshot.items_in_category(category_id))


@router.get("/{locale}/tags/{tag_id}")
async def items_by_tag(locale: str, tag_id: str):
    snapshot = await _get_snapshot(locale)
    return _listing(snapshot, snapshot.items_with_tag(tag_id))


@router.get("/{locale}/collections")
async def list_collections(locale: str):
    snapshot = await _get_snapshot(locale)
    return {
        "collections": [
            c.to_dict() for c in snapshot.collections if c.is_active
        ]
    }


@router.get("/{locale}/collections/{slug}")
async def get_collection(locale: str, slug: str):
    snapshot = await _get_snapshot(locale)
    collection = snapshot.get_collection(slug)
    if collection is None:
        raise HTTPException(status_code=404, detail=f"Collection not found: {slug}")
    return {
        **collection.to_dict(),
        "items": [item.to_dict() for item in snapshot.items_in_collection(slug)],
    }


@router.get("/{locale}/pages/{slug}")
async def get_page(locale: str, slug: str):
    snapshot = await _get_snapshot(locale)
    page = snapshot.get_page(slug)
    if page is None:
        raise HTTPException(status_code=404, detail=f"Page not found: {slug}")
    return page.to_dict()
