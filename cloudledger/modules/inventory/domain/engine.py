"""
Snapshot Engine

Runs one resource type end to end:
Fetch -> Convert -> Persist (one transaction) -> Reap (own transaction).

The engine is generic; everything type specific lives in the ``ResourceType``
definition and the page source handed to ``sync``.
"""
from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cloudledger.modules.inventory.domain.converter import (
    CanonicalRecord,
    convert_record,
    utc_now,
)
from cloudledger.modules.inventory.domain.persistence import persist_records
from cloudledger.modules.inventory.domain.reaper import reap_stale
from cloudledger.modules.inventory.domain.repository import SnapshotRepository
from cloudledger.modules.inventory.domain.resource import ResourceType
from cloudledger.shared.adapters.pagination import Heartbeat, PageSource, fetch_all
from cloudledger.shared.core.exceptions import ConversionError
from cloudledger.shared.core.ops_metrics import INVENTORY_RECORDS
from cloudledger.shared.db.session import transaction

logger = structlog.get_logger()

Clock = Callable[[], datetime]


@dataclass
class SyncResult:
    resource_type: str
    scope: str | None
    collected_at: datetime
    fetched: int = 0
    new: int = 0
    changed: int = 0
    unchanged: int = 0
    skipped: int = 0
    reaped: list[str] = field(default_factory=list)
    reap_skipped: bool = False
    duration_seconds: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "resource_type": self.resource_type,
            "scope": self.scope,
            "collected_at": self.collected_at.isoformat(),
            "fetched": self.fetched,
            "new": self.new,
            "changed": self.changed,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "reaped": len(self.reaped),
            "reap_skipped": self.reap_skipped,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class SnapshotEngine:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        clock: Clock = utc_now,
        max_pages: int | None = None,
        parent_lookup: Callable[[str], ResourceType] | None = None,
    ):
        self.session_maker = session_maker
        self.clock = clock
        self.max_pages = max_pages
        self.parent_lookup = parent_lookup

    async def _scopes_for(self, resource_type: ResourceType, scope: str | None) -> list[str | None]:
        """Child types without an explicit scope fan out over every stored parent id."""
        if resource_type.parent is None or scope is not None:
            return [scope]
        if self.parent_lookup is None:
            from cloudledger.modules.inventory.domain.resources import get_resource_type

            parent = get_resource_type(resource_type.parent)
        else:
            parent = self.parent_lookup(resource_type.parent)
        async with transaction(self.session_maker) as session:
            parent_ids = await SnapshotRepository(session, parent).list_resource_ids()
        return list(parent_ids)

    async def sync(
        self,
        resource_type: ResourceType,
        source: PageSource,
        *,
        scope: str | None = None,
        page_size: int,
        heartbeat: Heartbeat | None = None,
    ) -> SyncResult:
        started = time.perf_counter()
        collected_at = self.clock()
        result = SyncResult(resource_type=resource_type.name, scope=scope, collected_at=collected_at)
        log = logger.bind(resource_type=resource_type.name, scope=scope)

        records: dict[str, CanonicalRecord] = {}
        touch_ids: set[str] = set()

        for fetch_scope in await self._scopes_for(resource_type, scope):
            raw_items = await fetch_all(
                source,
                fetch_scope,
                page_size=page_size,
                heartbeat=heartbeat,
                max_pages=self.max_pages,
            )
            result.fetched += len(raw_items)

            for raw in raw_items:
                try:
                    record = convert_record(resource_type, raw, fetch_scope, collected_at)
                except ConversionError as exc:
                    if resource_type.strict:
                        log.error("record_conversion_failed", resource_id=exc.resource_id, error=exc.message)
                        raise
                    result.skipped += 1
                    log.warning(
                        "record_conversion_skipped",
                        resource_id=exc.resource_id,
                        fetch_scope=fetch_scope,
                        error=exc.message,
                    )
                    if exc.resource_id is None:
                        result.reap_skipped = True
                    else:
                        touch_ids.add(exc.resource_id)
                    continue

                if record.resource_id in records:
                    log.warning("duplicate_resource_in_fetch", resource_id=record.resource_id)
                records[record.resource_id] = record

            if heartbeat is not None:
                heartbeat()

        outcomes = await persist_records(
            self.session_maker,
            resource_type,
            list(records.values()),
            now=collected_at,
            touch_ids=touch_ids - set(records),
            heartbeat=heartbeat,
        )
        result.new = outcomes["new"]
        result.changed = outcomes["changed"]
        result.unchanged = outcomes["unchanged"]

        for outcome in ("new", "changed", "unchanged"):
            if outcomes[outcome]:
                INVENTORY_RECORDS.labels(resource_type=resource_type.name, outcome=outcome).inc(
                    outcomes[outcome]
                )
        if result.skipped:
            INVENTORY_RECORDS.labels(resource_type=resource_type.name, outcome="skipped").inc(result.skipped)

        if result.reap_skipped:
            log.warning("stale_reap_skipped_unidentified_records", skipped=result.skipped)
        else:
            try:
                result.reaped = await reap_stale(
                    self.session_maker,
                    resource_type,
                    collected_at,
                    scope=scope,
                    now=self.clock(),
                    heartbeat=heartbeat,
                )
            except Exception as exc:
                # Snapshots are already committed; a later run reaps instead.
                log.warning("stale_reap_failed", error=str(exc), error_type=type(exc).__name__)

        if heartbeat is not None:
            heartbeat()

        result.duration_seconds = time.perf_counter() - started
        log.info("inventory_sync_completed", **result.as_dict())
        return result
