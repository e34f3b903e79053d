from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from cloudledger.models import DOKey, DOKeyHistory
from cloudledger.modules.inventory.domain.converter import CanonicalRecord, convert_record
from cloudledger.modules.inventory.domain.persistence import persist_records
from cloudledger.modules.inventory.domain.repository import SnapshotRepository
from cloudledger.modules.inventory.domain.resources.digitalocean import DO_KEY
from cloudledger.shared.core.exceptions import PersistenceError

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
T1 = T0 + timedelta(hours=1)
T2 = T0 + timedelta(hours=2)


def _key(key_id=1, name="laptop", at=T0):
    raw = {"id": key_id, "name": name, "fingerprint": "aa", "public_key": "ssh-ed25519 AAA"}
    return convert_record(DO_KEY, raw, None, at)


async def _history(session, resource_id="1"):
    result = await session.execute(
        select(DOKeyHistory).where(DOKeyHistory.resource_id == resource_id).order_by(DOKeyHistory.history_id)
    )
    return list(result.scalars().all())


async def test_new_record_creates_snapshot_and_open_history(db_session, utc):
    repo = SnapshotRepository(db_session, DO_KEY)
    diff = await repo.upsert(_key(), T0)
    await db_session.commit()

    assert diff.is_new
    snapshot = await db_session.get(DOKey, "1")
    assert utc(snapshot.first_collected_at) == utc(snapshot.collected_at) == T0
    history = await _history(db_session)
    assert len(history) == 1
    assert utc(history[0].valid_from) == T0
    assert history[0].valid_to is None
    assert history[0].name == "laptop"


async def test_unchanged_record_only_touches_collected_at(db_session, utc):
    repo = SnapshotRepository(db_session, DO_KEY)
    await repo.upsert(_key(), T0)
    diff = await repo.upsert(_key(at=T1), T1)
    await db_session.commit()

    assert not diff.is_new and not diff.is_changed
    snapshot = await db_session.get(DOKey, "1")
    assert utc(snapshot.collected_at) == T1
    assert utc(snapshot.first_collected_at) == T0
    assert len(await _history(db_session)) == 1


async def test_changed_record_closes_and_opens_history(db_session, utc):
    repo = SnapshotRepository(db_session, DO_KEY)
    await repo.upsert(_key(), T0)
    diff = await repo.upsert(_key(name="renamed", at=T1), T1)
    await db_session.commit()

    assert diff.is_changed and diff.changed_fields == ("name",)
    snapshot = await db_session.get(DOKey, "1")
    assert snapshot.name == "renamed"
    assert utc(snapshot.first_collected_at) == T0

    closed, opened = await _history(db_session)
    assert closed.name == "laptop" and utc(closed.valid_to) == T1
    assert opened.name == "renamed" and opened.valid_to is None
    assert utc(opened.valid_from) == T1
    assert utc(opened.first_collected_at) == T0


async def test_changed_record_without_open_history_still_appends(db_session, utc):
    repo = SnapshotRepository(db_session, DO_KEY)
    await repo.upsert(_key(), T0)
    for row in await _history(db_session):
        row.valid_to = T0
    await db_session.flush()

    await repo.upsert(_key(name="renamed", at=T1), T1)
    await db_session.commit()

    open_rows = [row for row in await _history(db_session) if row.valid_to is None]
    assert len(open_rows) == 1
    assert open_rows[0].name == "renamed"


async def test_reappearing_identity_closes_dangling_history(db_session, utc):
    # A dangling open row without a snapshot must not block the new interval.
    db_session.add(
        DOKeyHistory(
            resource_id="1",
            valid_from=T0,
            valid_to=None,
            collected_at=T0,
            first_collected_at=T0,
            name="ghost",
            fingerprint="aa",
            public_key="k",
        )
    )
    await db_session.flush()

    diff = await SnapshotRepository(db_session, DO_KEY).upsert(_key(at=T2), T2)
    await db_session.commit()

    assert diff.is_new
    ghost, fresh = await _history(db_session)
    assert utc(ghost.valid_to) == T2
    assert fresh.valid_to is None


async def test_open_interval_is_unique_per_resource(db_session):
    for _ in range(2):
        db_session.add(
            DOKeyHistory(
                resource_id="1",
                valid_from=T0,
                valid_to=None,
                collected_at=T0,
                first_collected_at=T0,
                name="dup",
                fingerprint="aa",
                public_key="k",
            )
        )
    with pytest.raises(IntegrityError):
        await db_session.flush()


async def test_list_resource_ids_is_sorted(db_session):
    repo = SnapshotRepository(db_session, DO_KEY)
    for key_id in (3, 1, 2):
        await repo.upsert(_key(key_id=key_id), T0)
    assert await repo.list_resource_ids() == ["1", "2", "3"]


async def test_persist_records_counts_outcomes_and_touches(session_maker):
    await persist_records(session_maker, DO_KEY, [_key(1), _key(2)], now=T0)

    outcomes = await persist_records(
        session_maker,
        DO_KEY,
        [_key(1, at=T1), _key(3, at=T1)],
        now=T1,
        touch_ids=["2", "missing"],
    )

    assert outcomes["new"] == 1
    assert outcomes["unchanged"] == 1
    assert outcomes["touched"] == 1
    async with session_maker() as session:
        touched = await session.get(DOKey, "2")
        assert touched.collected_at.replace(tzinfo=timezone.utc) == T1


async def test_persist_records_rolls_back_whole_batch(session_maker):
    # name is NOT NULL, so the second insert fails after the first was flushed.
    broken = CanonicalRecord(
        resource_id="2",
        fields={"name": None, "fingerprint": "aa", "public_key": "k"},
        collected_at=T0,
    )

    with pytest.raises(PersistenceError) as exc_info:
        await persist_records(session_maker, DO_KEY, [_key(1), broken], now=T0)
    assert exc_info.value.resource_id == "2"

    async with session_maker() as session:
        assert await session.get(DOKey, "1") is None
        assert (await session.execute(select(DOKeyHistory))).scalars().all() == []
