"""
GCP Compute page sources.

The Compute API paginates with ``max_results`` / ``page_token``. The client
library is blocking, so each page is requested in a worker thread.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, cast

import structlog
from google.api_core import exceptions as google_exceptions
from google.auth.credentials import Credentials as GoogleCredentials
from google.cloud import compute_v1
from google.oauth2 import service_account

from cloudledger.shared.adapters.pagination import Page
from cloudledger.shared.adapters.rate_limiter import RateLimiter
from cloudledger.shared.core.config import Settings
from cloudledger.shared.core.exceptions import (
    AdapterError,
    ConfigurationError,
    ExternalAPIError,
)

logger = structlog.get_logger()

_TRANSIENT_GOOGLE_ERRORS = (
    google_exceptions.TooManyRequests,
    google_exceptions.InternalServerError,
    google_exceptions.BadGateway,
    google_exceptions.ServiceUnavailable,
    google_exceptions.GatewayTimeout,
    google_exceptions.DeadlineExceeded,
)


def load_gcp_credentials(settings: Settings) -> GoogleCredentials | None:
    """Service account JSON from settings, or None to fall back to application default credentials."""
    if not settings.GCP_SERVICE_ACCOUNT_JSON:
        return None
    try:
        info = json.loads(settings.GCP_SERVICE_ACCOUNT_JSON)
        return cast(
            GoogleCredentials,
            service_account.Credentials.from_service_account_info(info),  # type: ignore[no-untyped-call]
        )
    except (ValueError, KeyError) as exc:
        raise ConfigurationError(f"GCP_SERVICE_ACCOUNT_JSON is invalid: {exc}") from exc


def build_backend_services_client(settings: Settings) -> compute_v1.BackendServicesClient:
    return compute_v1.BackendServicesClient(credentials=load_gcp_credentials(settings))


def build_security_policies_client(settings: Settings) -> compute_v1.SecurityPoliciesClient:
    return compute_v1.SecurityPoliciesClient(credentials=load_gcp_credentials(settings))


class GCPComputeListSource:
    """
    One global Compute collection of a project (scope = project id).

    Subclasses name the list request and item message types.
    """

    short_page_is_last = False
    name = "gcp:compute"
    label = "resources"
    request_type: Any = None
    item_type: Any = None

    def __init__(
        self,
        client: Any,
        *,
        limiter: RateLimiter | None = None,
    ):
        self.client = client
        self.limiter = limiter

    def _list_page_sync(self, project: str, cursor: str | None, page_size: int) -> Page:
        request = self.request_type(
            project=project,
            max_results=page_size,
            page_token=cursor or "",
        )
        pager = self.client.list(request=request)
        # The pager's first page is the response to this request; later pages are fetched lazily.
        response = next(iter(pager.pages))
        items: list[dict[str, Any]] = [
            self.item_type.to_dict(item, preserving_proto_field_name=True)
            for item in response.items
        ]
        return Page(items=items, next_cursor=response.next_page_token or None)

    async def list_page(self, scope: str | None, cursor: str | None, page_size: int) -> Page:
        if not scope:
            raise ConfigurationError(f"GCP {self.label} require a project id scope")
        if self.limiter is not None:
            await self.limiter.acquire()
        try:
            return await asyncio.to_thread(self._list_page_sync, scope, cursor, page_size)
        except _TRANSIENT_GOOGLE_ERRORS as exc:
            raise ExternalAPIError(
                f"GCP list {self.label} failed for project {scope}: {exc}",
                details={"project": scope},
            ) from exc
        except google_exceptions.GoogleAPICallError as exc:
            raise AdapterError(
                f"GCP list {self.label} rejected for project {scope}: {exc}",
                details={"project": scope},
            ) from exc


class GCPBackendServiceSource(GCPComputeListSource):
    name = "gcp:compute.backendServices"
    label = "backend services"
    request_type = compute_v1.ListBackendServicesRequest
    item_type = compute_v1.BackendService


class GCPSecurityPolicySource(GCPComputeListSource):
    name = "gcp:compute.securityPolicies"
    label = "security policies"
    request_type = compute_v1.ListSecurityPoliciesRequest
    item_type = compute_v1.SecurityPolicy
