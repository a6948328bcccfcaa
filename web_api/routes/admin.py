"""
Admin panel API routes.

All endpoints require admin authentication.

Endpoints:
- POST /api/admin/content/invalidate - Drop cached content after an admin edit
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from core.content import InvalidationScope, RuntimeNotInitializedError, get_runtime
from web_api.auth import require_admin

router = APIRouter(prefix="/api/admin", tags=["admin"])

logger = logging.getLogger(__name__)


class InvalidateContentRequest(BaseModel):
    """Request body for content invalidation."""

    locale: str | None = None  # None invalidates every locale
    paths: list[str] = []  # Page paths to revalidate, e.g. ["/collections"]


@router.post("/content/invalidate")
async def invalidate_content(
    request: InvalidateContentRequest,
    admin: dict = Depends(require_admin),
) -> dict[str, Any]:
    """
    Invalidate cached content after a mutation outside the Git repository.

    Called by admin flows that change rendered content (collections,
    featured items, category edits).
    """
    try:
        runtime = get_runtime()
    except RuntimeNotInitializedError:
        raise HTTPException(status_code=503, detail="Content not yet initialized")

    if request.locale and not runtime.is_supported_locale(request.locale):
        raise HTTPException(status_code=404, detail=f"Unknown locale: {request.locale}")

    if request.locale:
        scope = InvalidationScope.for_locale(request.locale, tuple(request.paths))
    else:
        scope = InvalidationScope.all(tuple(request.paths))

    runtime.gateway.notify_content_changed(scope)
    logger.info(
        f"Content invalidated by {admin.get('username')}: "
        f"locale={request.locale or 'all'}, paths={scope.page_paths()}"
    )
    return {
        "status": "ok",
        "locale": request.locale,
        "paths": scope.page_paths(),
    }
