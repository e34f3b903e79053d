"""
DigitalOcean resource types.

Raw records are the JSON objects returned by the v2 API. Identity comes from
stable API ids only (account uuid, domain name, record id...).
"""
from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from cloudledger.models.digitalocean import (
    DOAccount,
    DOAccountHistory,
    DODomain,
    DODomainHistory,
    DODomainRecord,
    DODomainRecordHistory,
    DODroplet,
    DODropletHistory,
    DOKey,
    DOKeyHistory,
    DOKubernetesCluster,
    DOKubernetesClusterHistory,
    DOKubernetesNodePool,
    DOKubernetesNodePoolHistory,
    DOLoadBalancer,
    DOLoadBalancerHistory,
    DOProject,
    DOProjectHistory,
)
from cloudledger.modules.inventory.domain.converter import (
    keyed_blob,
    optional_int,
    parse_timestamp,
    to_blob,
)
from cloudledger.modules.inventory.domain.resource import KeyedCollection, ResourceType
from cloudledger.shared.adapters.digitalocean import (
    DigitalOceanObjectSource,
    DigitalOceanSource,
    build_digitalocean_client,
)

Raw = Mapping[str, Any]


def _list_source(path: str, collection_key: str):
    def build(client, limiter, settings):
        return DigitalOceanSource(
            client,
            path=path,
            collection_key=collection_key,
            limiter=limiter,
            max_retries=settings.HTTP_MAX_RETRIES,
        )

    return build


def _region_slug(raw: Raw) -> str | None:
    region = raw.get("region")
    if isinstance(region, Mapping):
        return region.get("slug")
    return region


# Account


def identify_account(raw: Raw, scope: str | None) -> str:
    return str(raw["uuid"])


def convert_account(raw: Raw, scope: str | None, collected_at: datetime) -> dict[str, Any]:
    team = raw.get("team") or {}
    return {
        "email": raw.get("email"),
        "name": raw.get("name"),
        "status": raw.get("status"),
        "status_message": raw.get("status_message") or None,
        "droplet_limit": int(raw.get("droplet_limit") or 0),
        "floating_ip_limit": int(raw.get("floating_ip_limit") or 0),
        "reserved_ip_limit": int(raw.get("reserved_ip_limit") or 0),
        "volume_limit": int(raw.get("volume_limit") or 0),
        "email_verified": bool(raw.get("email_verified")),
        "team_name": team.get("name"),
        "team_uuid": team.get("uuid"),
    }


# SSH keys


def identify_key(raw: Raw, scope: str | None) -> str:
    return str(raw["id"])


def convert_key(raw: Raw, scope: str | None, collected_at: datetime) -> dict[str, Any]:
    return {
        "name": raw["name"],
        "fingerprint": raw["fingerprint"],
        "public_key": raw["public_key"],
    }


# Domains and their records


def identify_domain(raw: Raw, scope: str | None) -> str:
    return str(raw["name"])


def convert_domain(raw: Raw, scope: str | None, collected_at: datetime) -> dict[str, Any]:
    return {
        "ttl": optional_int(raw.get("ttl")),
        "zone_file": raw.get("zone_file") or None,
    }


def identify_domain_record(raw: Raw, scope: str | None) -> str:
    if not scope:
        raise ValueError("domain records require the parent domain name as scope")
    return f"{scope}:{raw['id']}"


def convert_domain_record(raw: Raw, scope: str | None, collected_at: datetime) -> dict[str, Any]:
    return {
        "domain_name": scope,
        "record_id": int(raw["id"]),
        "type": raw["type"],
        "name": raw["name"],
        "data": raw.get("data"),
        "priority": optional_int(raw.get("priority")),
        "port": optional_int(raw.get("port")),
        "ttl": optional_int(raw.get("ttl")),
        "weight": optional_int(raw.get("weight")),
        "flags": optional_int(raw.get("flags")),
        "tag": raw.get("tag") or None,
    }


# Projects


def identify_project(raw: Raw, scope: str | None) -> str:
    return str(raw["id"])


def convert_project(raw: Raw, scope: str | None, collected_at: datetime) -> dict[str, Any]:
    return {
        "owner_uuid": raw.get("owner_uuid"),
        "owner_id": optional_int(raw.get("owner_id")),
        "name": raw["name"],
        "description": raw.get("description") or None,
        "purpose": raw.get("purpose") or None,
        "environment": raw.get("environment") or None,
        "is_default": bool(raw.get("is_default")),
        "api_created_at": parse_timestamp(raw.get("created_at")),
        "api_updated_at": parse_timestamp(raw.get("updated_at")),
    }


# Droplets


def identify_droplet(raw: Raw, scope: str | None) -> str:
    return str(raw["id"])


def convert_droplet(raw: Raw, scope: str | None, collected_at: datetime) -> dict[str, Any]:
    return {
        "name": raw["name"],
        "memory": int(raw.get("memory") or 0),
        "vcpus": int(raw.get("vcpus") or 0),
        "disk": int(raw.get("disk") or 0),
        "region": _region_slug(raw),
        "size_slug": raw.get("size_slug"),
        "status": raw.get("status"),
        "locked": bool(raw.get("locked")),
        "vpc_uuid": raw.get("vpc_uuid") or None,
        "api_created_at": parse_timestamp(raw.get("created_at")),
        "image_json": to_blob(raw.get("image")),
        "size_json": to_blob(raw.get("size")),
        "networks_json": to_blob(raw.get("networks")),
        "kernel_json": to_blob(raw.get("kernel")),
        "tags_json": to_blob(raw.get("tags")),
        "features_json": to_blob(raw.get("features")),
        "volume_ids_json": to_blob(raw.get("volume_ids")),
        "backup_ids_json": to_blob(raw.get("backup_ids")),
        "snapshot_ids_json": to_blob(raw.get("snapshot_ids")),
    }


# Load balancers


def forwarding_rule_key(rule: Mapping[str, Any]) -> str:
    return f"{rule['entry_protocol']}:{rule['entry_port']}"


def identify_load_balancer(raw: Raw, scope: str | None) -> str:
    return str(raw["id"])


def convert_load_balancer(raw: Raw, scope: str | None, collected_at: datetime) -> dict[str, Any]:
    return {
        "name": raw["name"],
        "ip": raw.get("ip") or None,
        "ipv6": raw.get("ipv6") or None,
        "size_slug": raw.get("size"),
        "size_unit": optional_int(raw.get("size_unit")),
        "lb_type": raw.get("type"),
        "algorithm": raw.get("algorithm"),
        "status": raw.get("status"),
        "region": _region_slug(raw),
        "tag": raw.get("tag") or None,
        "redirect_http_to_https": bool(raw.get("redirect_http_to_https")),
        "enable_proxy_protocol": bool(raw.get("enable_proxy_protocol")),
        "enable_backend_keepalive": bool(raw.get("enable_backend_keepalive")),
        "vpc_uuid": raw.get("vpc_uuid") or None,
        "project_id": raw.get("project_id") or None,
        "http_idle_timeout_seconds": optional_int(raw.get("http_idle_timeout_seconds")),
        "api_created_at": parse_timestamp(raw.get("created_at")),
        "forwarding_rules": keyed_blob(raw.get("forwarding_rules"), forwarding_rule_key),
        "health_check_json": to_blob(raw.get("health_check")),
        "sticky_sessions_json": to_blob(raw.get("sticky_sessions")),
        "firewall_json": to_blob(raw.get("firewall")),
        "droplet_ids_json": to_blob(sorted(raw.get("droplet_ids") or [])),
        "tags_json": to_blob(raw.get("tags")),
    }


# Kubernetes clusters and their node pools


def identify_kubernetes_cluster(raw: Raw, scope: str | None) -> str:
    return str(raw["id"])


def convert_kubernetes_cluster(raw: Raw, scope: str | None, collected_at: datetime) -> dict[str, Any]:
    status = raw.get("status") or {}
    return {
        "name": raw["name"],
        "region": raw.get("region") or None,
        "version": raw.get("version") or None,
        "cluster_subnet": raw.get("cluster_subnet") or None,
        "service_subnet": raw.get("service_subnet") or None,
        "ipv4": raw.get("ipv4") or None,
        "endpoint": raw.get("endpoint") or None,
        "vpc_uuid": raw.get("vpc_uuid") or None,
        "ha": bool(raw.get("ha")),
        "auto_upgrade": bool(raw.get("auto_upgrade")),
        "surge_upgrade": bool(raw.get("surge_upgrade")),
        "registry_enabled": bool(raw.get("registry_enabled")),
        "status_state": status.get("state") or None,
        "status_message": status.get("message") or None,
        "tags_json": to_blob(raw.get("tags")),
        "maintenance_policy_json": to_blob(raw.get("maintenance_policy")),
        "control_plane_firewall_json": to_blob(raw.get("control_plane_firewall")),
        "autoscaler_config_json": to_blob(raw.get("cluster_autoscaler_configuration")),
        "api_created_at": parse_timestamp(raw.get("created_at")),
        "api_updated_at": parse_timestamp(raw.get("updated_at")),
    }


def identify_kubernetes_node_pool(raw: Raw, scope: str | None) -> str:
    if not scope:
        raise ValueError("node pools require the parent cluster id as scope")
    return f"{scope}:{raw['id']}"


def convert_kubernetes_node_pool(raw: Raw, scope: str | None, collected_at: datetime) -> dict[str, Any]:
    return {
        "cluster_id": scope,
        "node_pool_id": str(raw["id"]),
        "name": raw["name"],
        "size": raw.get("size") or None,
        "node_count": int(raw.get("count") or 0),
        "auto_scale": bool(raw.get("auto_scale")),
        "min_nodes": int(raw.get("min_nodes") or 0),
        "max_nodes": int(raw.get("max_nodes") or 0),
        "tags_json": to_blob(raw.get("tags")),
        "labels_json": to_blob(raw.get("labels")),
        "taints_json": to_blob(raw.get("taints")),
        "nodes_json": to_blob(raw.get("nodes")),
    }


DO_ACCOUNT = ResourceType(
    name="do_account",
    provider="digitalocean",
    snapshot_model=DOAccount,
    history_model=DOAccountHistory,
    identify=identify_account,
    convert=convert_account,
    build_source=lambda client, limiter, settings: DigitalOceanObjectSource(
        client,
        path="/v2/account",
        object_key="account",
        limiter=limiter,
        max_retries=settings.HTTP_MAX_RETRIES,
    ),
    build_client=build_digitalocean_client,
    page_size_setting="DO_PAGE_SIZE",
    strict=True,
)

DO_KEY = ResourceType(
    name="do_key",
    provider="digitalocean",
    snapshot_model=DOKey,
    history_model=DOKeyHistory,
    identify=identify_key,
    convert=convert_key,
    build_source=_list_source("/v2/account/keys", "ssh_keys"),
    build_client=build_digitalocean_client,
    page_size_setting="DO_PAGE_SIZE",
)

DO_DOMAIN = ResourceType(
    name="do_domain",
    provider="digitalocean",
    snapshot_model=DODomain,
    history_model=DODomainHistory,
    identify=identify_domain,
    convert=convert_domain,
    build_source=_list_source("/v2/domains", "domains"),
    build_client=build_digitalocean_client,
    page_size_setting="DO_PAGE_SIZE",
)

DO_DOMAIN_RECORD = ResourceType(
    name="do_domain_record",
    provider="digitalocean",
    snapshot_model=DODomainRecord,
    history_model=DODomainRecordHistory,
    identify=identify_domain_record,
    convert=convert_domain_record,
    build_source=_list_source("/v2/domains/{scope}/records", "domain_records"),
    build_client=build_digitalocean_client,
    page_size_setting="DO_PAGE_SIZE",
    scope_field="domain_name",
    parent="do_domain",
)

DO_PROJECT = ResourceType(
    name="do_project",
    provider="digitalocean",
    snapshot_model=DOProject,
    history_model=DOProjectHistory,
    identify=identify_project,
    convert=convert_project,
    build_source=_list_source("/v2/projects", "projects"),
    build_client=build_digitalocean_client,
    page_size_setting="DO_PAGE_SIZE",
)

DO_DROPLET = ResourceType(
    name="do_droplet",
    provider="digitalocean",
    snapshot_model=DODroplet,
    history_model=DODropletHistory,
    identify=identify_droplet,
    convert=convert_droplet,
    build_source=_list_source("/v2/droplets", "droplets"),
    build_client=build_digitalocean_client,
    page_size_setting="DO_PAGE_SIZE",
)

DO_LOAD_BALANCER = ResourceType(
    name="do_load_balancer",
    provider="digitalocean",
    snapshot_model=DOLoadBalancer,
    history_model=DOLoadBalancerHistory,
    identify=identify_load_balancer,
    convert=convert_load_balancer,
    build_source=_list_source("/v2/load_balancers", "load_balancers"),
    build_client=build_digitalocean_client,
    page_size_setting="DO_PAGE_SIZE",
    keyed_collections=(KeyedCollection("forwarding_rules", forwarding_rule_key),),
)

DO_KUBERNETES_CLUSTER = ResourceType(
    name="do_kubernetes_cluster",
    provider="digitalocean",
    snapshot_model=DOKubernetesCluster,
    history_model=DOKubernetesClusterHistory,
    identify=identify_kubernetes_cluster,
    convert=convert_kubernetes_cluster,
    build_source=_list_source("/v2/kubernetes/clusters", "kubernetes_clusters"),
    build_client=build_digitalocean_client,
    page_size_setting="DO_PAGE_SIZE",
)

DO_KUBERNETES_NODE_POOL = ResourceType(
    name="do_kubernetes_node_pool",
    provider="digitalocean",
    snapshot_model=DOKubernetesNodePool,
    history_model=DOKubernetesNodePoolHistory,
    identify=identify_kubernetes_node_pool,
    convert=convert_kubernetes_node_pool,
    build_source=_list_source("/v2/kubernetes/clusters/{scope}/node_pools", "node_pools"),
    build_client=build_digitalocean_client,
    page_size_setting="DO_PAGE_SIZE",
    scope_field="cluster_id",
    parent="do_kubernetes_cluster",
)

DIGITALOCEAN_RESOURCE_TYPES = (
    DO_ACCOUNT,
    DO_KEY,
    DO_DOMAIN,
    DO_DOMAIN_RECORD,
    DO_PROJECT,
    DO_DROPLET,
    DO_LOAD_BALANCER,
    DO_KUBERNETES_CLUSTER,
    DO_KUBERNETES_NODE_POOL,
)
