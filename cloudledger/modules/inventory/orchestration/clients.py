from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog

from cloudledger.modules.inventory.domain.resource import ResourceType
from cloudledger.shared.adapters.pagination import PageSource
from cloudledger.shared.adapters.rate_limiter import RateLimiter, get_rate_limiter
from cloudledger.shared.core.config import Settings

logger = structlog.get_logger()

ClientBuilder = Callable[[Settings], Any]


class ClientFactory:
    """
    Builds a fresh provider client and page source for each unit execution.

    ``client_builders`` replaces the resource type's own client builder, keyed
    by resource type name or by provider (used to point sources at fakes or
    alternate endpoints). A resource type name wins over its provider.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client_builders: Mapping[str, ClientBuilder] | None = None,
    ):
        self.settings = settings
        self.client_builders = dict(client_builders or {})

    def rate_limiter(self, provider: str) -> RateLimiter:
        rates = {
            "digitalocean": self.settings.DO_RATE_LIMIT_PER_SECOND,
            "gcp": self.settings.GCP_RATE_LIMIT_PER_SECOND,
        }
        return get_rate_limiter(provider, rates.get(provider, 1.0))

    def page_size(self, resource_type: ResourceType) -> int:
        return resource_type.page_size(self.settings)

    @asynccontextmanager
    async def open_source(self, resource_type: ResourceType) -> AsyncIterator[PageSource]:
        build_client = (
            self.client_builders.get(resource_type.name)
            or self.client_builders.get(resource_type.provider)
            or resource_type.build_client
        )
        client = build_client(self.settings)
        try:
            yield resource_type.build_source(
                client, self.rate_limiter(resource_type.provider), self.settings
            )
        finally:
            await _close_client(client)


async def _close_client(client: Any) -> None:
    if isinstance(client, httpx.AsyncClient):
        await client.aclose()
    elif hasattr(client, "__exit__"):
        # google-cloud clients close their transport on __exit__
        client.__exit__(None, None, None)
