from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cloudledger.modules.inventory.domain.converter import CanonicalRecord
from cloudledger.modules.inventory.domain.repository import SnapshotRepository
from cloudledger.modules.inventory.domain.resource import ResourceType
from cloudledger.shared.adapters.pagination import Heartbeat
from cloudledger.shared.db.session import transaction

logger = structlog.get_logger()


async def persist_records(
    session_maker: async_sessionmaker[AsyncSession],
    resource_type: ResourceType,
    records: Sequence[CanonicalRecord],
    *,
    now: datetime,
    touch_ids: Iterable[str] = (),
    heartbeat: Heartbeat | None = None,
) -> Counter[str]:
    """
    Upsert a whole batch atomically.

    ``touch_ids`` are identities observed this run whose records could not be
    converted; only their ``collected_at`` is advanced so the reaper keeps them.
    Returns outcome counts keyed by ``new``/``changed``/``unchanged``/``touched``.
    """
    outcomes: Counter[str] = Counter()
    async with transaction(session_maker) as session:
        repo = SnapshotRepository(session, resource_type)
        for record in records:
            diff = await repo.upsert(record, now)
            if diff.is_new:
                outcomes["new"] += 1
            elif diff.is_changed:
                outcomes["changed"] += 1
            else:
                outcomes["unchanged"] += 1
            if heartbeat is not None:
                heartbeat()
        for resource_id in touch_ids:
            if await repo.touch(resource_id, now):
                outcomes["touched"] += 1
            if heartbeat is not None:
                heartbeat()

    logger.info(
        "inventory_batch_persisted",
        resource_type=resource_type.name,
        records=len(records),
        **dict(outcomes),
    )
    return outcomes
