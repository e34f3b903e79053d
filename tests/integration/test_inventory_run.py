"""
End-to-end DigitalOcean sweep: runtime wiring, HTTP sources (mocked with respx),
unit host, workflow phases and the snapshot/history tables.
"""
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest
import respx
from google.cloud import compute_v1
from sqlalchemy import select

from cloudledger.models import (
    DOAccount,
    DODomain,
    DODomainRecord,
    DODroplet,
    DODropletHistory,
    DOKubernetesCluster,
    DOKubernetesNodePool,
    DOLoadBalancer,
    GCPComputeBackendService,
    GCPComputeSecurityPolicy,
    GCPComputeSecurityPolicyHistory,
)
from cloudledger.modules.inventory.orchestration.clients import ClientFactory
from cloudledger.runtime import build_runtime
from cloudledger.shared.core.config import Settings
from cloudledger.shared.core.exceptions import ConfigurationError

BASE = "https://api.digitalocean.test"


def _settings(**overrides):
    values = dict(
        DO_API_TOKEN="dop_v1_test",
        DO_API_BASE_URL=BASE,
        DO_RATE_LIMIT_PER_SECOND=1000.0,
        HTTP_MAX_RETRIES=1,
        RETRY_INITIAL_INTERVAL_SECONDS=0.0,
        RETRY_MAX_INTERVAL_SECONDS=0.0,
        RETRY_MAX_ATTEMPTS=1,
        GCP_PROJECT_IDS=[],
    )
    values.update(overrides)
    return Settings(**values)


def _collection(key, items):
    return httpx.Response(200, json={key: items, "links": {}, "meta": {"total": len(items)}})


def _droplet(droplet_id, status="active"):
    return {
        "id": droplet_id,
        "name": f"web-{droplet_id}",
        "memory": 1024,
        "vcpus": 1,
        "disk": 25,
        "region": {"slug": "ams3"},
        "size_slug": "s-1vcpu-1gb",
        "status": status,
        "tags": ["web"],
        "created_at": "2025-06-01T10:00:00Z",
    }


def _mock_account(mock, *, droplets, domains_status=200):
    mock.get("/v2/account").mock(
        return_value=httpx.Response(200, json={"account": {"uuid": "acct-1", "email": "ops@example.com"}})
    )
    mock.get("/v2/account/keys").mock(
        return_value=_collection(
            "ssh_keys", [{"id": 7, "name": "ops", "fingerprint": "aa:bb", "public_key": "ssh-ed25519 AAA"}]
        )
    )
    if domains_status == 200:
        mock.get("/v2/domains").mock(
            return_value=_collection("domains", [{"name": "example.com", "ttl": 1800}])
        )
    else:
        mock.get("/v2/domains").mock(return_value=httpx.Response(domains_status, json={"id": "forbidden"}))
    mock.get("/v2/domains/example.com/records").mock(
        return_value=_collection(
            "domain_records",
            [
                {"id": 1, "type": "A", "name": "@", "data": "203.0.113.10", "ttl": 3600},
                {"id": 2, "type": "CNAME", "name": "www", "data": "@", "ttl": 3600},
            ],
        )
    )
    mock.get("/v2/projects").mock(return_value=_collection("projects", [{"id": "proj-1", "name": "default"}]))
    mock.get("/v2/droplets").mock(return_value=_collection("droplets", droplets))
    mock.get("/v2/kubernetes/clusters").mock(
        return_value=_collection(
            "kubernetes_clusters",
            [
                {
                    "id": "k8s-1",
                    "name": "prod",
                    "region": "ams3",
                    "version": "1.31.1-do.0",
                    "ha": True,
                    "status": {"state": "running"},
                    "tags": ["k8s"],
                    "created_at": "2025-06-01T10:00:00Z",
                }
            ],
        )
    )
    mock.get("/v2/kubernetes/clusters/k8s-1/node_pools").mock(
        return_value=httpx.Response(
            200,
            json={
                "node_pools": [
                    {"id": "pool-a", "name": "workers", "size": "s-2vcpu-4gb", "count": 3, "labels": {"tier": "app"}}
                ]
            },
        )
    )
    mock.get("/v2/load_balancers").mock(
        return_value=_collection(
            "load_balancers",
            [
                {
                    "id": "lb-1",
                    "name": "edge",
                    "region": {"slug": "ams3"},
                    "forwarding_rules": [
                        {"entry_protocol": "https", "entry_port": 443, "target_protocol": "http", "target_port": 80},
                        {"entry_protocol": "http", "entry_port": 80, "target_protocol": "http", "target_port": 80},
                    ],
                    "droplet_ids": [2, 1],
                }
            ],
        )
    )


async def _all(session_maker, model):
    async with session_maker() as session:
        return list((await session.execute(select(model))).scalars().all())


async def test_digitalocean_sweep_builds_snapshots_and_history(session_maker):
    runtime = build_runtime(_settings(), session_maker=session_maker)

    with respx.mock(base_url=BASE, assert_all_called=False) as mock:
        _mock_account(mock, droplets=[_droplet(1), _droplet(2)])
        (first,) = await runtime.run_once()

    assert first.ok, first.failed
    assert first.succeeded["do_droplet"]["new"] == 2
    assert [row.resource_id for row in await _all(session_maker, DOAccount)] == ["acct-1"]
    assert [row.resource_id for row in await _all(session_maker, DODomain)] == ["example.com"]
    records = await _all(session_maker, DODomainRecord)
    assert sorted(row.resource_id for row in records) == ["example.com:1", "example.com:2"]
    (lb,) = await _all(session_maker, DOLoadBalancer)
    assert lb.droplet_ids_json == "[1,2]"
    (cluster,) = await _all(session_maker, DOKubernetesCluster)
    assert (cluster.resource_id, cluster.status_state, cluster.ha) == ("k8s-1", "running", True)
    (pool,) = await _all(session_maker, DOKubernetesNodePool)
    assert (pool.resource_id, pool.cluster_id, pool.node_count) == ("k8s-1:pool-a", "k8s-1", 3)

    with respx.mock(base_url=BASE, assert_all_called=False) as mock:
        _mock_account(mock, droplets=[_droplet(1, status="off")])
        (second,) = await runtime.run_once(["digitalocean"])

    assert second.ok, second.failed
    droplet_run = second.succeeded["do_droplet"]
    assert droplet_run["changed"] == 1
    assert droplet_run["reaped"] == 1
    assert second.succeeded["do_load_balancer"]["unchanged"] == 1

    (remaining,) = await _all(session_maker, DODroplet)
    assert remaining.resource_id == "1" and remaining.status == "off"
    history = await _all(session_maker, DODropletHistory)
    assert len(history) == 3
    assert sum(1 for row in history if row.valid_to is None) == 1


async def test_failed_parent_skips_child_and_keeps_existing_rows(session_maker):
    runtime = build_runtime(_settings(), session_maker=session_maker)

    with respx.mock(base_url=BASE, assert_all_called=False) as mock:
        _mock_account(mock, droplets=[_droplet(1)])
        await runtime.run_once()

    with respx.mock(base_url=BASE, assert_all_called=False) as mock:
        _mock_account(mock, droplets=[_droplet(1)], domains_status=403)
        (result,) = await runtime.run_once()

    assert not result.ok
    assert set(result.failed) == {"do_domain"}
    assert result.skipped == ["do_domain_record"]
    assert "do_droplet" in result.succeeded
    assert len(await _all(session_maker, DODomain)) == 1
    assert len(await _all(session_maker, DODomainRecord)) == 2


async def test_no_configured_provider_is_rejected(session_maker):
    runtime = build_runtime(_settings(DO_API_TOKEN=None), session_maker=session_maker)
    with pytest.raises(ConfigurationError, match="No provider configured"):
        runtime.workflows()
    with pytest.raises(ConfigurationError, match="Unknown providers"):
        runtime.workflows(["aws"])


def _gcp_client(messages):
    client = MagicMock()
    client.list.side_effect = lambda request: SimpleNamespace(
        pages=iter([SimpleNamespace(items=messages.get(request.project, []), next_page_token="")])
    )
    return client


def _security_policy(priorities):
    return compute_v1.SecurityPolicy(
        id=55,
        name="edge-armor",
        type_="CLOUD_ARMOR",
        rules=[compute_v1.SecurityPolicyRule(priority=p, action="allow") for p in priorities],
    )


async def test_gcp_sweep_tracks_security_policies_per_project(session_maker):
    settings = _settings(DO_API_TOKEN=None, GCP_PROJECT_IDS=["proj-a"])
    policies = {"proj-a": [_security_policy([1000, 2147483647])]}
    backend_services = {
        "proj-a": [
            compute_v1.BackendService(
                id=7,
                name="web",
                security_policy="global/securityPolicies/edge-armor",
                backends=[compute_v1.Backend(group="zones/us-central1-a/instanceGroups/web")],
            )
        ]
    }
    clients = ClientFactory(
        settings,
        client_builders={
            "gcp_compute_backend_service": lambda _: _gcp_client(backend_services),
            "gcp_compute_security_policy": lambda _: _gcp_client(policies),
        },
    )
    runtime = build_runtime(settings, session_maker=session_maker, clients=clients)

    (first,) = await runtime.run_once()

    assert first.ok, first.failed
    assert first.succeeded["gcp_compute_security_policy@proj-a"]["new"] == 1
    (backend,) = await _all(session_maker, GCPComputeBackendService)
    assert backend.security_policy == "global/securityPolicies/edge-armor"
    (policy,) = await _all(session_maker, GCPComputeSecurityPolicy)
    assert (policy.resource_id, policy.project_id, policy.policy_type) == ("55", "proj-a", "CLOUD_ARMOR")

    # Same rules listed in another order is not a change.
    policies["proj-a"] = [_security_policy([2147483647, 1000])]
    (second,) = await runtime.run_once(["gcp"])

    assert second.succeeded["gcp_compute_security_policy@proj-a"]["unchanged"] == 1
    assert len(await _all(session_maker, GCPComputeSecurityPolicyHistory)) == 1
