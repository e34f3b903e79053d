from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from cloudledger.shared.core.exceptions import PaginationError
from cloudledger.shared.core.ops_metrics import FETCH_PAGES

logger = structlog.get_logger()

Heartbeat = Callable[[], None]


@dataclass(frozen=True)
class Page:
    """One page of a provider collection. ``next_cursor=None`` marks the last page."""

    items: list[dict[str, Any]] = field(default_factory=list)
    next_cursor: str | None = None


class PageSource(Protocol):
    """Cursor/page protocol every provider collection implements. Reads must be idempotent."""

    name: str
    # Treat a page shorter than page_size as the last one even if a cursor is returned.
    short_page_is_last: bool

    async def list_page(self, scope: str | None, cursor: str | None, page_size: int) -> Page:
        ...


async def fetch_all(
    source: PageSource,
    scope: str | None,
    *,
    page_size: int,
    heartbeat: Heartbeat | None = None,
    max_pages: int | None = None,
) -> list[dict[str, Any]]:
    """
    Retrieve a complete collection by walking pages until the source is exhausted.

    The caller receives either every item in fetch order or an exception; partial
    results are never returned. Empty collections return ``[]``.
    """
    if page_size <= 0:
        raise ValueError("page_size must be > 0")
    if max_pages is not None and max_pages <= 0:
        raise ValueError("max_pages must be > 0 when provided")

    items: list[dict[str, Any]] = []
    cursor: str | None = None
    seen_cursors: set[str] = set()
    pages_seen = 0

    while True:
        page = await source.list_page(scope, cursor, page_size)
        pages_seen += 1
        FETCH_PAGES.labels(source=source.name).inc()
        items.extend(page.items)

        if heartbeat is not None:
            heartbeat()

        if page.next_cursor is None or not page.items:
            break
        if getattr(source, "short_page_is_last", False) and len(page.items) < page_size:
            break
        if page.next_cursor in seen_cursors:
            raise PaginationError(
                f"{source.name} returned a repeated page cursor",
                details={"scope": scope, "cursor": page.next_cursor, "pages": pages_seen},
            )
        if max_pages is not None and pages_seen >= max_pages:
            logger.warning(
                "fetch_page_cap_reached",
                source=source.name,
                scope=scope,
                max_pages=max_pages,
            )
            raise PaginationError(
                f"{source.name} exceeded {max_pages} pages",
                details={"scope": scope, "pages": pages_seen},
            )

        seen_cursors.add(page.next_cursor)
        cursor = page.next_cursor

    logger.debug(
        "fetch_all_completed",
        source=source.name,
        scope=scope,
        pages=pages_seen,
        items=len(items),
    )
    return items
