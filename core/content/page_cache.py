# core/content/page_cache.py
"""Client for the frontend's page-cache revalidation endpoint.

After content changes, rendered pages cached by the frontend must be
revalidated. The frontend exposes an endpoint that accepts a list of paths:

    POST {REVALIDATE_URL}
    x-revalidate-secret: {REVALIDATE_SECRET}
    {"paths": ["/collections", "/collections/ai-tools"]}
"""

import logging

import httpx

logger = logging.getLogger(__name__)


class PageRevalidationError(Exception):
    """Raised when the frontend rejects or fails a revalidation request."""

    pass


class PageCacheRevalidator:
    """Sends revalidation requests for rendered page paths."""

    def __init__(
        self,
        url: str | None,
        secret: str | None = None,
        timeout_seconds: float = 10.0,
    ):
        self.url = url
        self._secret = secret
        self._timeout_seconds = timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self.url)

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._secret:
            headers["x-revalidate-secret"] = self._secret
        return headers

    async def revalidate(self, paths: list[str]) -> None:
        """Ask the frontend to drop its cached copies of `paths`.

        Raises:
            PageRevalidationError: On network failure or a non-2xx response
        """
        if not self.url:
            logger.debug(f"No REVALIDATE_URL configured, skipping {paths}")
            return

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                response = await client.post(
                    self.url, json={"paths": paths}, headers=self._get_headers()
                )
        except httpx.HTTPError as e:
            raise PageRevalidationError(f"Revalidation request failed: {e}")

        if response.status_code >= 300:
            raise PageRevalidationError(
                f"Revalidation of {paths} failed: HTTP {response.status_code}"
            )
        logger.info(f"Revalidated {len(paths)} page path(s)")
