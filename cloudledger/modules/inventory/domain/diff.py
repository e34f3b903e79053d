from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from cloudledger.modules.inventory.domain.converter import CanonicalRecord


@dataclass(frozen=True)
class DiffResult:
    is_new: bool = False
    is_changed: bool = False
    changed_fields: tuple[str, ...] = ()
    # keyed collection field -> whether its members changed
    child_changes: Mapping[str, bool] = field(default_factory=dict)


def _normalize(value: Any) -> Any:
    # Stores without tz support (SQLite) hand back naive datetimes; they are UTC.
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return value


def values_equal(old: Any, new: Any) -> bool:
    """Exact equality with explicit null handling."""
    if old is None or new is None:
        return old is None and new is None
    return _normalize(old) == _normalize(new)


def keyed_collection_changed(
    old_blob: str | None,
    new_blob: str | None,
    key: Callable[[Mapping[str, Any]], str],
) -> bool:
    """Compare two keyed collections as sets: size, membership, then member fields."""
    old_items = json.loads(old_blob) if old_blob else []
    new_items = json.loads(new_blob) if new_blob else []
    if len(old_items) != len(new_items):
        return True

    old_by_key = {key(item): item for item in old_items}
    for item in new_items:
        previous = old_by_key.get(key(item))
        if previous is None or previous != item:
            return True
    return False


def diff_record(old: Any | None, new: CanonicalRecord, resource_type: Any) -> DiffResult:
    """Classify ``new`` against the persisted snapshot row ``old``."""
    if old is None:
        return DiffResult(is_new=True)

    keyed = resource_type.keyed_collection_map
    changed: list[str] = []
    child_changes: dict[str, bool] = {}

    for name in resource_type.tracked_fields:
        old_value = getattr(old, name)
        new_value = new.fields[name]
        collection = keyed.get(name)
        if collection is not None:
            differs = keyed_collection_changed(old_value, new_value, collection.key)
            child_changes[name] = differs
        else:
            differs = not values_equal(old_value, new_value)
        if differs:
            changed.append(name)

    return DiffResult(
        is_new=False,
        is_changed=bool(changed),
        changed_fields=tuple(changed),
        child_changes=child_changes,
    )
