"""
Snapshot/history persistence for one resource type.

All writes for a record go through ``upsert`` so the snapshot row and its SCD2
history rows always move together. The repository never commits; callers own
the transaction (see ``cloudledger.shared.db.session.transaction``).
"""
from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cloudledger.modules.inventory.domain.converter import CanonicalRecord
from cloudledger.modules.inventory.domain.diff import DiffResult, diff_record
from cloudledger.modules.inventory.domain.resource import ResourceType
from cloudledger.shared.core.exceptions import PersistenceError

logger = structlog.get_logger()


class SnapshotRepository:
    def __init__(self, session: AsyncSession, resource_type: ResourceType):
        self.session = session
        self.resource_type = resource_type
        self.snapshot_model = resource_type.snapshot_model
        self.history_model = resource_type.history_model

    def _error(self, action: str, resource_id: str | None, exc: SQLAlchemyError) -> PersistenceError:
        return PersistenceError(
            f"Failed to {action} {self.resource_type.name}",
            resource_type=self.resource_type.name,
            resource_id=resource_id,
            details={"error": str(exc)},
        )

    def _assign_fields(self, row: Any, record: CanonicalRecord) -> None:
        for name in self.resource_type.tracked_fields:
            setattr(row, name, record.fields[name])

    async def get(self, resource_id: str) -> Any | None:
        try:
            return await self.session.get(self.snapshot_model, resource_id)
        except SQLAlchemyError as exc:
            raise self._error("load", resource_id, exc) from exc

    async def open_history(self, resource_id: str) -> list[Any]:
        """Open history rows for ``resource_id``; normally zero or one."""
        stmt = (
            select(self.history_model)
            .where(self.history_model.resource_id == resource_id)
            .where(self.history_model.valid_to.is_(None))
            .order_by(self.history_model.valid_from)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise self._error("load open history for", resource_id, exc) from exc
        return list(result.scalars().all())

    async def close_history(self, resource_id: str, now: datetime) -> int:
        rows = await self.open_history(resource_id)
        for row in rows:
            row.valid_to = now
        if rows:
            try:
                await self.session.flush()
            except SQLAlchemyError as exc:
                raise self._error("close history for", resource_id, exc) from exc
        return len(rows)

    def _append_history(self, record: CanonicalRecord, now: datetime, first_collected_at: datetime) -> Any:
        row = self.history_model(
            resource_id=record.resource_id,
            valid_from=now,
            valid_to=None,
            collected_at=now,
            first_collected_at=first_collected_at,
        )
        self._assign_fields(row, record)
        self.session.add(row)
        return row

    async def upsert(self, record: CanonicalRecord, now: datetime) -> DiffResult:
        """
        Apply one converted record.

        unchanged -> advance ``collected_at``;
        new -> insert snapshot and open a history interval;
        changed -> update in place, close the open interval, open a new one.
        """
        existing = await self.get(record.resource_id)
        diff = diff_record(existing, record, self.resource_type)
        log = logger.bind(resource_type=self.resource_type.name, resource_id=record.resource_id)

        try:
            if diff.is_new:
                dangling = await self.close_history(record.resource_id, now)
                if dangling:
                    log.warning("dangling_open_history_closed", rows=dangling)
                snapshot = self.snapshot_model(
                    resource_id=record.resource_id,
                    collected_at=now,
                    first_collected_at=now,
                )
                self._assign_fields(snapshot, record)
                self.session.add(snapshot)
                self._append_history(record, now, first_collected_at=now)
                log.debug("snapshot_created")
            elif diff.is_changed:
                self._assign_fields(existing, record)
                existing.collected_at = now
                closed = await self.close_history(record.resource_id, now)
                if not closed:
                    log.warning("open_history_missing_for_changed_resource")
                self._append_history(record, now, first_collected_at=existing.first_collected_at)
                log.debug("snapshot_changed", changed_fields=list(diff.changed_fields))
            else:
                existing.collected_at = now

            await self.session.flush()
        except SQLAlchemyError as exc:
            raise self._error("upsert", record.resource_id, exc) from exc

        return diff

    async def touch(self, resource_id: str, now: datetime) -> bool:
        """Advance ``collected_at`` without touching state; False if the row does not exist."""
        existing = await self.get(resource_id)
        if existing is None:
            return False
        existing.collected_at = now
        try:
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise self._error("touch", resource_id, exc) from exc
        return True

    async def stale_rows(self, before: datetime, scope: str | None = None) -> Sequence[Any]:
        stmt = select(self.snapshot_model).where(self.snapshot_model.collected_at < before)
        if scope is not None and self.resource_type.scope_field is not None:
            stmt = stmt.where(getattr(self.snapshot_model, self.resource_type.scope_field) == scope)
        try:
            result = await self.session.execute(stmt.order_by(self.snapshot_model.resource_id))
        except SQLAlchemyError as exc:
            raise self._error("select stale", None, exc) from exc
        return result.scalars().all()

    async def tombstone(self, row: Any, now: datetime) -> None:
        """Close the open interval and drop the snapshot row."""
        await self.close_history(row.resource_id, now)
        try:
            await self.session.delete(row)
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise self._error("delete", row.resource_id, exc) from exc

    async def list_resource_ids(self, scope: str | None = None) -> list[str]:
        stmt = select(self.snapshot_model.resource_id)
        if scope is not None and self.resource_type.scope_field is not None:
            stmt = stmt.where(getattr(self.snapshot_model, self.resource_type.scope_field) == scope)
        try:
            result = await self.session.execute(stmt.order_by(self.snapshot_model.resource_id))
        except SQLAlchemyError as exc:
            raise self._error("list ids of", None, exc) from exc
        return list(result.scalars().all())
