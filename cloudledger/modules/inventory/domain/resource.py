"""
Resource type definitions.

A ``ResourceType`` tells the snapshot engine everything it needs to sync one
collection: where the rows live, how raw provider records are identified and
converted, how to build the page source, and how the type depends on others.
"""
from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from functools import cached_property
from typing import Any

from sqlalchemy import inspect as sa_inspect

from cloudledger.models._bronze import BOOKKEEPING_COLUMNS
from cloudledger.shared.adapters.pagination import PageSource
from cloudledger.shared.adapters.rate_limiter import RateLimiter
from cloudledger.shared.core.config import Settings
from cloudledger.shared.core.exceptions import ConfigurationError

IdentifyFn = Callable[[Mapping[str, Any], "str | None"], str]
ConvertFn = Callable[[Mapping[str, Any], "str | None", datetime], dict[str, Any]]
SourceBuilder = Callable[[Any, "RateLimiter | None", Settings], PageSource]


@dataclass(frozen=True)
class KeyedCollection:
    """A tracked column holding a sub-item list diffed as a set keyed by ``key``."""

    field: str
    key: Callable[[Mapping[str, Any]], str]


@dataclass(frozen=True)
class ResourceType:
    name: str
    provider: str
    snapshot_model: type[Any]
    history_model: type[Any]
    identify: IdentifyFn
    convert: ConvertFn
    build_source: SourceBuilder
    # Builds a fresh provider client per unit execution; the caller closes it.
    build_client: Callable[[Settings], Any]
    page_size_setting: str
    keyed_collections: tuple[KeyedCollection, ...] = ()
    # Column holding the fetch scope (project id, parent id); restricts reaping when set.
    scope_field: str | None = None
    # Parent resource type whose snapshot ids are the fetch scopes of this type.
    parent: str | None = None
    # Strict types fail the unit on a conversion error instead of skipping the record.
    strict: bool = False

    def __post_init__(self) -> None:
        snapshot_fields = self._tracked(self.snapshot_model)
        history_fields = self._tracked(self.history_model)
        if set(snapshot_fields) != set(history_fields):
            raise ConfigurationError(
                f"{self.name}: snapshot and history tables track different fields",
                details={
                    "snapshot_only": sorted(set(snapshot_fields) - set(history_fields)),
                    "history_only": sorted(set(history_fields) - set(snapshot_fields)),
                },
            )
        for collection in self.keyed_collections:
            if collection.field not in snapshot_fields:
                raise ConfigurationError(
                    f"{self.name}: keyed collection '{collection.field}' is not a tracked column"
                )
        if self.scope_field is not None and self.scope_field not in snapshot_fields:
            raise ConfigurationError(f"{self.name}: scope field '{self.scope_field}' is not a column")

    @staticmethod
    def _tracked(model: type[Any]) -> tuple[str, ...]:
        return tuple(
            attr.key
            for attr in sa_inspect(model).column_attrs
            if attr.key not in BOOKKEEPING_COLUMNS
        )

    @cached_property
    def tracked_fields(self) -> tuple[str, ...]:
        """Resource state columns; bookkeeping timestamps are excluded."""
        return self._tracked(self.snapshot_model)

    @cached_property
    def keyed_collection_map(self) -> dict[str, KeyedCollection]:
        return {collection.field: collection for collection in self.keyed_collections}

    def page_size(self, settings: Settings) -> int:
        return int(getattr(settings, self.page_size_setting))
