"""
Inventory Workflows

A workflow is an ordered list of phases. Units in one phase run concurrently;
a phase starts only after the previous one has finished. Parent resource types
must sit in an earlier phase than their children, and a child whose parent
failed in the same run is skipped rather than run against stale parent data.
"""
from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from cloudledger.modules.inventory.domain.resources import get_resource_type
from cloudledger.modules.inventory.orchestration.host import UnitHost
from cloudledger.modules.inventory.orchestration.units import unit_name
from cloudledger.shared.core.exceptions import ConfigurationError
from cloudledger.shared.core.retry import RetryPolicy

logger = structlog.get_logger()


@dataclass(frozen=True)
class InventoryWorkflow:
    name: str
    phases: tuple[tuple[str, ...], ...]
    # Every resource type runs once per scope (e.g. once per GCP project).
    scopes: tuple[str | None, ...] = (None,)

    def __post_init__(self) -> None:
        if not self.scopes:
            raise ConfigurationError(f"Workflow '{self.name}' has no scopes")
        seen: set[str] = set()
        for index, phase in enumerate(self.phases):
            for type_name in phase:
                if type_name in seen:
                    raise ConfigurationError(
                        f"Workflow '{self.name}' lists '{type_name}' more than once"
                    )
                parent = get_resource_type(type_name).parent
                if parent is not None and parent not in seen:
                    raise ConfigurationError(
                        f"Workflow '{self.name}': '{type_name}' in phase {index + 1} "
                        f"requires parent '{parent}' in an earlier phase",
                        details={"resource_type": type_name, "parent": parent},
                    )
            seen.update(phase)

    @property
    def resource_types(self) -> list[str]:
        return [type_name for phase in self.phases for type_name in phase]


@dataclass
class WorkflowResult:
    workflow: str
    succeeded: dict[str, Any] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped


def _key(type_name: str, scope: str | None) -> str:
    return type_name if scope is None else f"{type_name}@{scope}"


async def run_workflow(
    host: UnitHost,
    workflow: InventoryWorkflow,
    *,
    retry_policy: RetryPolicy | None = None,
    timeout: float | None = None,
    heartbeat_timeout: float | None = None,
) -> WorkflowResult:
    """Run all phases; unit failures are recorded and logged, never raised."""
    result = WorkflowResult(workflow=workflow.name)
    blocked: set[str] = set()
    log = logger.bind(workflow=workflow.name)
    log.info("inventory_workflow_started", phases=len(workflow.phases), scopes=len(workflow.scopes))

    for phase in workflow.phases:
        calls: list[tuple[str, str | None]] = []
        for type_name in phase:
            parent = get_resource_type(type_name).parent
            for scope in workflow.scopes:
                if parent is not None and _key(parent, scope) in blocked:
                    key = _key(type_name, scope)
                    log.warning("unit_skipped_parent_failed", resource_type=type_name, scope=scope, parent=parent)
                    result.skipped.append(key)
                    blocked.add(key)
                    continue
                calls.append((type_name, scope))

        outcomes = await asyncio.gather(
            *(
                host.execute_child_unit(
                    workflow.name,
                    unit_name(type_name),
                    {"scope": scope},
                    retry_policy=retry_policy,
                    timeout=timeout,
                    heartbeat_timeout=heartbeat_timeout,
                )
                for type_name, scope in calls
            ),
            return_exceptions=True,
        )

        for (type_name, scope), outcome in zip(calls, outcomes):
            key = _key(type_name, scope)
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                log.error(
                    "inventory_unit_failed",
                    resource_type=type_name,
                    scope=scope,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                result.failed[key] = str(outcome)
                blocked.add(key)
            else:
                result.succeeded[key] = outcome

    log.info(
        "inventory_workflow_completed",
        succeeded=len(result.succeeded),
        failed=len(result.failed),
        skipped=len(result.skipped),
    )
    return result


async def run_inventory(
    host: UnitHost,
    workflows: Sequence[InventoryWorkflow],
    **options: Any,
) -> list[WorkflowResult]:
    """Top-level run: provider workflows run concurrently and fail independently."""
    return list(await asyncio.gather(*(run_workflow(host, workflow, **options) for workflow in workflows)))


DIGITALOCEAN_WORKFLOW = InventoryWorkflow(
    name="digitalocean_inventory",
    phases=(
        (
            "do_account",
            "do_key",
            "do_domain",
            "do_project",
            "do_droplet",
            "do_load_balancer",
            "do_kubernetes_cluster",
        ),
        ("do_domain_record", "do_kubernetes_node_pool"),
    ),
)


def gcp_workflow(project_ids: Sequence[str]) -> InventoryWorkflow:
    if not project_ids:
        raise ConfigurationError("GCP inventory requires at least one project id (GCP_PROJECT_IDS)")
    return InventoryWorkflow(
        name="gcp_inventory",
        phases=(("gcp_compute_backend_service", "gcp_compute_security_policy"),),
        scopes=tuple(project_ids),
    )
