import asyncio

import pytest

from cloudledger.modules.inventory.orchestration.host import UnitHost
from cloudledger.modules.inventory.orchestration.registry import UnitRegistry
from cloudledger.modules.inventory.orchestration.units import unit_name
from cloudledger.modules.inventory.orchestration.workflows import (
    DIGITALOCEAN_WORKFLOW,
    InventoryWorkflow,
    gcp_workflow,
    run_inventory,
    run_workflow,
)
from cloudledger.shared.core.exceptions import AdapterError, ConfigurationError
from cloudledger.shared.core.retry import RetryPolicy

ONCE = RetryPolicy(initial_interval=0, maximum_interval=0, maximum_attempts=1)


def _host(units):
    registry = UnitRegistry()
    for type_name, fn in units.items():
        registry.register(unit_name(type_name), fn)
    return UnitHost(registry, retry_policy=ONCE, check_interval=0.01)


def _recording(calls, type_name, fail_scopes=()):
    async def unit(ctx, payload):
        calls.append((type_name, payload["scope"]))
        if payload["scope"] in fail_scopes or "*" in fail_scopes:
            raise AdapterError(f"{type_name} failed")
        return {"resource_type": type_name, "scope": payload["scope"]}

    return unit


def test_child_before_parent_is_rejected():
    with pytest.raises(ConfigurationError, match="do_domain"):
        InventoryWorkflow(name="bad", phases=(("do_domain_record",), ("do_domain",)))


def test_child_in_same_phase_as_parent_is_rejected():
    with pytest.raises(ConfigurationError):
        InventoryWorkflow(name="bad", phases=(("do_domain", "do_domain_record"),))


def test_duplicate_type_is_rejected():
    with pytest.raises(ConfigurationError, match="more than once"):
        InventoryWorkflow(name="bad", phases=(("do_key",), ("do_key",)))


def test_default_workflows():
    assert DIGITALOCEAN_WORKFLOW.phases[-1] == ("do_domain_record", "do_kubernetes_node_pool")
    assert "do_kubernetes_cluster" in DIGITALOCEAN_WORKFLOW.phases[0]
    assert len(DIGITALOCEAN_WORKFLOW.resource_types) == 9

    workflow = gcp_workflow(["proj-a", "proj-b"])
    assert workflow.scopes == ("proj-a", "proj-b")
    assert workflow.resource_types == ["gcp_compute_backend_service", "gcp_compute_security_policy"]
    with pytest.raises(ConfigurationError, match="GCP_PROJECT_IDS"):
        gcp_workflow([])


async def test_phases_run_in_order():
    calls = []
    workflow = InventoryWorkflow(name="do", phases=(("do_domain", "do_key"), ("do_domain_record",)))
    host = _host({name: _recording(calls, name) for name in workflow.resource_types})

    result = await run_workflow(host, workflow)

    assert result.ok
    assert set(result.succeeded) == {"do_domain", "do_key", "do_domain_record"}
    assert calls[-1] == ("do_domain_record", None)


async def test_failed_parent_skips_child_but_siblings_complete():
    calls = []
    workflow = InventoryWorkflow(name="do", phases=(("do_domain", "do_key"), ("do_domain_record",)))
    host = _host(
        {
            "do_domain": _recording(calls, "do_domain", fail_scopes=("*",)),
            "do_key": _recording(calls, "do_key"),
            "do_domain_record": _recording(calls, "do_domain_record"),
        }
    )

    result = await run_workflow(host, workflow)

    assert not result.ok
    assert result.failed == {"do_domain": "do_domain failed"}
    assert result.skipped == ["do_domain_record"]
    assert "do_key" in result.succeeded
    assert ("do_domain_record", None) not in calls


async def test_scopes_fail_independently():
    calls = []
    workflow = gcp_workflow(["proj-a", "proj-b"])
    host = _host(
        {
            "gcp_compute_backend_service": _recording(calls, "gcp_compute_backend_service", fail_scopes=("proj-a",)),
            "gcp_compute_security_policy": _recording(calls, "gcp_compute_security_policy"),
        }
    )

    result = await run_workflow(host, workflow)

    assert set(result.failed) == {"gcp_compute_backend_service@proj-a"}
    assert set(result.succeeded) == {
        "gcp_compute_backend_service@proj-b",
        "gcp_compute_security_policy@proj-a",
        "gcp_compute_security_policy@proj-b",
    }


async def test_missing_unit_is_recorded_as_failure():
    workflow = InventoryWorkflow(name="do", phases=(("do_key",),))
    result = await run_workflow(_host({}), workflow)
    assert "do_key" in result.failed


async def test_run_inventory_runs_workflows_concurrently():
    started = []
    both_started = asyncio.Event()

    async def unit(ctx, payload):
        started.append(ctx.unit)
        if len(started) == 2:
            both_started.set()
        await asyncio.wait_for(both_started.wait(), timeout=1)
        return payload

    host = _host({"do_key": unit, "gcp_compute_backend_service": unit})
    results = await run_inventory(
        host,
        [
            InventoryWorkflow(name="do", phases=(("do_key",),)),
            gcp_workflow(["proj-a"]),
        ],
    )

    assert [result.ok for result in results] == [True, True]
