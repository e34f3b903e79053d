from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

# Columns maintained by the engine itself; never part of resource state.
BOOKKEEPING_COLUMNS = frozenset(
    {
        "resource_id",
        "collected_at",
        "first_collected_at",
        "history_id",
        "valid_from",
        "valid_to",
    }
)


class SnapshotMixin:
    """
    Current-state row: one per live resource identity.

    ``first_collected_at`` is written once on insert; ``collected_at`` advances on
    every run that still observes the resource.
    """

    resource_id: Mapped[str] = mapped_column(String(512), primary_key=True)
    collected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    first_collected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.resource_id}>"


class HistoryMixin:
    """
    SCD2 version row. ``valid_to IS NULL`` marks the open (current) version;
    the partial unique index keeps at most one open row per resource.
    """

    history_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    resource_id: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    collected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    first_collected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    @declared_attr.directive
    def __table_args__(cls) -> tuple[Any, ...]:
        return (
            Index(
                f"uq_{cls.__tablename__}_open_interval",  # type: ignore[attr-defined]
                "resource_id",
                unique=True,
                postgresql_where=text("valid_to IS NULL"),
                sqlite_where=text("valid_to IS NULL"),
            ),
        )

    def __repr__(self) -> str:
        state = "open" if self.valid_to is None else "closed"
        return f"<{type(self).__name__} {self.resource_id} #{self.history_id} ({state})>"
