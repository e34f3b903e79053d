"""
DigitalOcean page sources.

The v2 API paginates with ``page``/``per_page`` query parameters and advertises
the following page in ``links.pages.next``; the page number is used as cursor.
"""
from __future__ import annotations

from typing import Any

import httpx
import structlog

from cloudledger.shared.adapters.http_retry import execute_with_http_retry
from cloudledger.shared.adapters.pagination import Page
from cloudledger.shared.adapters.rate_limiter import RateLimiter
from cloudledger.shared.core.config import Settings
from cloudledger.shared.core.exceptions import AdapterError, ConfigurationError

logger = structlog.get_logger()


def build_digitalocean_client(settings: Settings) -> httpx.AsyncClient:
    """Create a fresh authenticated client; callers own and close it."""
    if not settings.DO_API_TOKEN:
        raise ConfigurationError("DO_API_TOKEN is required for DigitalOcean inventory")
    return httpx.AsyncClient(
        base_url=settings.DO_API_BASE_URL,
        headers={
            "Authorization": f"Bearer {settings.DO_API_TOKEN}",
            "Accept": "application/json",
            "User-Agent": f"{settings.APP_NAME}/{settings.VERSION}",
        },
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )


def _next_page_cursor(payload: dict[str, Any]) -> str | None:
    next_url = ((payload.get("links") or {}).get("pages") or {}).get("next")
    if not next_url:
        return None
    page = httpx.URL(next_url).params.get("page")
    if not page:
        raise AdapterError("DigitalOcean next link has no page parameter", details={"next": next_url})
    return page


class DigitalOceanSource:
    """List endpoint such as ``/v2/domains`` or ``/v2/domains/{scope}/records``."""

    short_page_is_last = False

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        path: str,
        collection_key: str,
        limiter: RateLimiter | None = None,
        max_retries: int = 3,
    ):
        self.client = client
        self.path = path
        self.collection_key = collection_key
        self.limiter = limiter
        self.max_retries = max_retries
        self.name = f"digitalocean:{collection_key}"

    def _url(self, scope: str | None) -> str:
        if "{scope}" in self.path:
            if not scope:
                raise ConfigurationError(f"{self.path} requires a parent scope")
            return self.path.format(scope=scope)
        return self.path

    async def list_page(self, scope: str | None, cursor: str | None, page_size: int) -> Page:
        url = self._url(scope)
        params = {"page": cursor or "1", "per_page": str(page_size)}

        async def _request() -> httpx.Response:
            if self.limiter is not None:
                await self.limiter.acquire()
            return await self.client.get(url, params=params)

        response = await execute_with_http_retry(
            request=_request,
            url=url,
            max_retries=self.max_retries,
            retry_http_status_log_event="digitalocean_status_retry",
            retry_transport_log_event="digitalocean_transport_retry",
            status_error_prefix=f"DigitalOcean list {self.collection_key} (page {params['page']})",
            transport_error_prefix=f"DigitalOcean list {self.collection_key} transport error",
        )
        payload = response.json()
        items = payload.get(self.collection_key)
        if items is None:
            raise AdapterError(
                f"DigitalOcean response has no '{self.collection_key}' collection",
                details={"url": url},
            )
        return Page(items=list(items), next_cursor=_next_page_cursor(payload))


class DigitalOceanObjectSource:
    """Single-object endpoint such as ``/v2/account``, exposed as a one-page collection."""

    short_page_is_last = False

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        path: str,
        object_key: str,
        limiter: RateLimiter | None = None,
        max_retries: int = 3,
    ):
        self.client = client
        self.path = path
        self.object_key = object_key
        self.limiter = limiter
        self.max_retries = max_retries
        self.name = f"digitalocean:{object_key}"

    async def list_page(self, scope: str | None, cursor: str | None, page_size: int) -> Page:
        async def _request() -> httpx.Response:
            if self.limiter is not None:
                await self.limiter.acquire()
            return await self.client.get(self.path)

        response = await execute_with_http_retry(
            request=_request,
            url=self.path,
            max_retries=self.max_retries,
            retry_http_status_log_event="digitalocean_status_retry",
            retry_transport_log_event="digitalocean_transport_retry",
            status_error_prefix=f"DigitalOcean get {self.object_key}",
            transport_error_prefix=f"DigitalOcean get {self.object_key} transport error",
        )
        obj = response.json().get(self.object_key)
        return Page(items=[obj] if obj else [], next_cursor=None)
