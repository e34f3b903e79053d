"""
Canonical record conversion.

Converters are pure: no I/O, no clock reads. Nested structures become opaque
canonical JSON blobs so the differencer can compare them as plain strings.
"""
from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from cloudledger.shared.core.exceptions import ConversionError


@dataclass(frozen=True)
class CanonicalRecord:
    resource_id: str
    fields: dict[str, Any]
    collected_at: datetime


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_blob(value: Any) -> str | None:
    """
    Serialize a nested structure to canonical JSON.

    Empty collections and ``None`` map to ``None`` so "absent" and "empty" never
    flap between runs.
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple, dict, set)) and not value:
        return None
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"value is not representable as JSON: {exc}") from exc


def keyed_blob(
    items: Iterable[Mapping[str, Any]] | None,
    key: Callable[[Mapping[str, Any]], str],
) -> str | None:
    """Canonical JSON list sorted by sub-identity; duplicate keys are rejected."""
    materialized = list(items or [])
    keys = [key(item) for item in materialized]
    if len(set(keys)) != len(keys):
        raise ValueError("keyed collection contains duplicate sub-identities")
    ordered = [item for _, item in sorted(zip(keys, materialized), key=lambda pair: pair[0])]
    return to_blob(ordered)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 provider timestamp into an aware UTC datetime."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def optional_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    return int(value)


def convert_record(
    resource_type: Any,
    raw: Mapping[str, Any],
    scope: str | None,
    collected_at: datetime,
) -> CanonicalRecord:
    """
    Run the resource type's identify/convert pair and validate the field set.

    Raises ``ConversionError`` carrying the resource id when it was derivable.
    """
    try:
        resource_id = resource_type.identify(raw, scope)
    except (KeyError, TypeError, ValueError) as exc:
        raise ConversionError(
            f"cannot derive resource id: {exc}", resource_type=resource_type.name
        ) from exc
    if not resource_id:
        raise ConversionError("empty resource id", resource_type=resource_type.name)

    try:
        fields = resource_type.convert(raw, scope, collected_at)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ConversionError(
            f"cannot convert record: {exc}",
            resource_type=resource_type.name,
            resource_id=resource_id,
        ) from exc

    expected = set(resource_type.tracked_fields)
    produced = set(fields)
    if produced != expected:
        raise ConversionError(
            "converter produced the wrong field set",
            resource_type=resource_type.name,
            resource_id=resource_id,
            details={
                "missing": sorted(expected - produced),
                "unexpected": sorted(produced - expected),
            },
        )

    return CanonicalRecord(resource_id=resource_id, fields=dict(fields), collected_at=collected_at)
