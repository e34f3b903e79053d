from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from cloudledger.modules.inventory.domain.engine import SnapshotEngine
from cloudledger.modules.inventory.domain.resource import ResourceType
from cloudledger.modules.inventory.domain.resources import RESOURCE_TYPES
from cloudledger.modules.inventory.orchestration.clients import ClientFactory
from cloudledger.modules.inventory.orchestration.host import UnitContext
from cloudledger.modules.inventory.orchestration.registry import UnitFn, UnitRegistry


def unit_name(resource_type_name: str) -> str:
    return f"ingest.{resource_type_name}"


def build_sync_unit(
    resource_type: ResourceType,
    engine: SnapshotEngine,
    clients: ClientFactory,
) -> UnitFn:
    """One unit per resource type: open a fresh source, sync, close the client."""

    async def sync_unit(ctx: UnitContext, payload: dict[str, Any]) -> dict[str, Any]:
        async with clients.open_source(resource_type) as source:
            result = await engine.sync(
                resource_type,
                source,
                scope=payload.get("scope"),
                page_size=clients.page_size(resource_type),
                heartbeat=ctx.heartbeat,
            )
        return result.as_dict()

    sync_unit.__name__ = f"sync_{resource_type.name}"
    return sync_unit


def register_inventory_units(
    registry: UnitRegistry,
    engine: SnapshotEngine,
    clients: ClientFactory,
    resource_types: Iterable[ResourceType] | None = None,
) -> UnitRegistry:
    for resource_type in resource_types or RESOURCE_TYPES.values():
        registry.register(unit_name(resource_type.name), build_sync_unit(resource_type, engine, clients))
    return registry
