from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cloudledger.modules.inventory.domain.converter import utc_now
from cloudledger.modules.inventory.domain.repository import SnapshotRepository
from cloudledger.modules.inventory.domain.resource import ResourceType
from cloudledger.shared.adapters.pagination import Heartbeat
from cloudledger.shared.core.ops_metrics import INVENTORY_REAPED
from cloudledger.shared.db.session import transaction

logger = structlog.get_logger()


async def reap_stale(
    session_maker: async_sessionmaker[AsyncSession],
    resource_type: ResourceType,
    run_started_at: datetime,
    *,
    scope: str | None = None,
    now: datetime | None = None,
    heartbeat: Heartbeat | None = None,
) -> list[str]:
    """
    Tombstone snapshots not observed since ``run_started_at``.

    Runs in its own transaction. With ``scope`` set (and a scoped resource
    type) only rows belonging to that scope are considered.
    """
    now = now or utc_now()
    reaped: list[str] = []
    async with transaction(session_maker) as session:
        repo = SnapshotRepository(session, resource_type)
        for row in await repo.stale_rows(run_started_at, scope=scope):
            await repo.tombstone(row, now)
            reaped.append(row.resource_id)
            if heartbeat is not None:
                heartbeat()

    if reaped:
        INVENTORY_REAPED.labels(resource_type=resource_type.name).inc(len(reaped))
        logger.info(
            "stale_resources_reaped",
            resource_type=resource_type.name,
            scope=scope,
            count=len(reaped),
        )
    return reaped
