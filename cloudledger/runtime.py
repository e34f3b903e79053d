"""
Runtime wiring.

Builds the engine, unit registry, host and workflows from settings. Nothing
here opens network connections; provider clients are created per unit.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cloudledger.modules.inventory.domain.engine import SnapshotEngine
from cloudledger.modules.inventory.orchestration.clients import ClientFactory
from cloudledger.modules.inventory.orchestration.host import UnitHost
from cloudledger.modules.inventory.orchestration.registry import UnitRegistry
from cloudledger.modules.inventory.orchestration.units import register_inventory_units
from cloudledger.modules.inventory.orchestration.workflows import (
    DIGITALOCEAN_WORKFLOW,
    InventoryWorkflow,
    WorkflowResult,
    gcp_workflow,
    run_inventory,
)
from cloudledger.shared.core.config import Settings
from cloudledger.shared.core.exceptions import ConfigurationError
from cloudledger.shared.core.retry import RetryPolicy
from cloudledger.shared.db.session import get_session_maker

logger = structlog.get_logger()

PROVIDERS = ("digitalocean", "gcp")


@dataclass
class Runtime:
    settings: Settings
    engine: SnapshotEngine
    registry: UnitRegistry
    host: UnitHost
    clients: ClientFactory

    def workflows(self, providers: Sequence[str] | None = None) -> list[InventoryWorkflow]:
        """Workflows for ``providers``; by default every provider that is configured."""
        requested = list(providers or [])
        selected: list[InventoryWorkflow] = []
        if "digitalocean" in requested or (not requested and self.settings.DO_API_TOKEN):
            selected.append(DIGITALOCEAN_WORKFLOW)
        if "gcp" in requested or (not requested and self.settings.GCP_PROJECT_IDS):
            selected.append(gcp_workflow(self.settings.GCP_PROJECT_IDS))
        unknown = sorted(set(requested) - set(PROVIDERS))
        if unknown:
            raise ConfigurationError(f"Unknown providers: {', '.join(unknown)}")
        if not selected:
            raise ConfigurationError("No provider configured; set DO_API_TOKEN or GCP_PROJECT_IDS")
        return selected

    async def run_once(self, providers: Sequence[str] | None = None) -> list[WorkflowResult]:
        return await run_inventory(self.host, self.workflows(providers))


def build_runtime(
    settings: Settings,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
    clients: ClientFactory | None = None,
) -> Runtime:
    engine = SnapshotEngine(
        session_maker or get_session_maker(),
        max_pages=settings.FETCH_MAX_PAGES,
    )
    clients = clients or ClientFactory(settings)
    registry = register_inventory_units(UnitRegistry(), engine, clients)
    host = UnitHost(
        registry,
        retry_policy=RetryPolicy.from_settings(settings),
        timeout=settings.UNIT_TIMEOUT_SECONDS,
        heartbeat_timeout=settings.UNIT_HEARTBEAT_TIMEOUT_SECONDS,
    )
    logger.debug("runtime_built", units=registry.names())
    return Runtime(settings=settings, engine=engine, registry=registry, host=host, clients=clients)
