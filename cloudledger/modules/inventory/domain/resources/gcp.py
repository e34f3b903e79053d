"""GCP resource types. Raw records are ``compute_v1`` messages rendered with ``to_dict``."""
from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from cloudledger.models.gcp import (
    GCPComputeBackendService,
    GCPComputeBackendServiceHistory,
    GCPComputeSecurityPolicy,
    GCPComputeSecurityPolicyHistory,
)
from cloudledger.modules.inventory.domain.converter import keyed_blob, optional_int, to_blob
from cloudledger.modules.inventory.domain.resource import KeyedCollection, ResourceType
from cloudledger.shared.adapters.gcp import (
    GCPBackendServiceSource,
    GCPSecurityPolicySource,
    build_backend_services_client,
    build_security_policies_client,
)


def backend_key(backend: Mapping[str, Any]) -> str:
    return str(backend["group"])


def identify_backend_service(raw: Mapping[str, Any], scope: str | None) -> str:
    # uint64 ids are rendered as strings by to_dict
    return str(raw["id"])


def convert_backend_service(
    raw: Mapping[str, Any], scope: str | None, collected_at: datetime
) -> dict[str, Any]:
    if not scope:
        raise ValueError("backend services require the project id as scope")
    enable_cdn = raw.get("enable_c_d_n", raw.get("enable_cdn"))
    return {
        "project_id": scope,
        "name": raw["name"],
        "description": raw.get("description") or None,
        "self_link": raw.get("self_link") or None,
        "creation_timestamp": raw.get("creation_timestamp") or None,
        "load_balancing_scheme": raw.get("load_balancing_scheme") or None,
        "protocol": raw.get("protocol") or None,
        "port_name": raw.get("port_name") or None,
        "port": optional_int(raw.get("port")),
        "timeout_sec": optional_int(raw.get("timeout_sec")),
        "region": raw.get("region") or None,
        "network": raw.get("network") or None,
        "security_policy": raw.get("security_policy") or None,
        "session_affinity": raw.get("session_affinity") or None,
        "locality_lb_policy": raw.get("locality_lb_policy") or None,
        "enable_cdn": bool(enable_cdn),
        "health_checks_json": to_blob(raw.get("health_checks")),
        "cdn_policy_json": to_blob(raw.get("cdn_policy")),
        "connection_draining_json": to_blob(raw.get("connection_draining")),
        "log_config_json": to_blob(raw.get("log_config")),
        "iap_json": to_blob(raw.get("iap")),
        "backends": keyed_blob(raw.get("backends"), backend_key),
    }



def security_rule_key(rule: Mapping[str, Any]) -> str:
    # Priorities are unique within a policy.
    return str(rule["priority"])


def identify_security_policy(raw: Mapping[str, Any], scope: str | None) -> str:
    return str(raw["id"])


def convert_security_policy(
    raw: Mapping[str, Any], scope: str | None, collected_at: datetime
) -> dict[str, Any]:
    if not scope:
        raise ValueError("security policies require the project id as scope")
    return {
        "project_id": scope,
        "name": raw["name"],
        "description": raw.get("description") or None,
        "self_link": raw.get("self_link") or None,
        "creation_timestamp": raw.get("creation_timestamp") or None,
        "policy_type": raw.get("type", raw.get("type_")) or None,
        "fingerprint": raw.get("fingerprint") or None,
        "rules": keyed_blob(raw.get("rules"), security_rule_key),
        "associations_json": to_blob(raw.get("associations")),
        "adaptive_protection_config_json": to_blob(raw.get("adaptive_protection_config")),
        "advanced_options_config_json": to_blob(raw.get("advanced_options_config")),
        "ddos_protection_config_json": to_blob(raw.get("ddos_protection_config")),
        "recaptcha_options_config_json": to_blob(raw.get("recaptcha_options_config")),
        "labels_json": to_blob(raw.get("labels")),
    }


GCP_COMPUTE_BACKEND_SERVICE = ResourceType(
    name="gcp_compute_backend_service",
    provider="gcp",
    snapshot_model=GCPComputeBackendService,
    history_model=GCPComputeBackendServiceHistory,
    identify=identify_backend_service,
    convert=convert_backend_service,
    build_source=lambda client, limiter, settings: GCPBackendServiceSource(client, limiter=limiter),
    build_client=build_backend_services_client,
    page_size_setting="GCP_PAGE_SIZE",
    keyed_collections=(KeyedCollection("backends", backend_key),),
    scope_field="project_id",
)

GCP_COMPUTE_SECURITY_POLICY = ResourceType(
    name="gcp_compute_security_policy",
    provider="gcp",
    snapshot_model=GCPComputeSecurityPolicy,
    history_model=GCPComputeSecurityPolicyHistory,
    identify=identify_security_policy,
    convert=convert_security_policy,
    build_source=lambda client, limiter, settings: GCPSecurityPolicySource(client, limiter=limiter),
    build_client=build_security_policies_client,
    page_size_setting="GCP_PAGE_SIZE",
    keyed_collections=(KeyedCollection("rules", security_rule_key),),
    scope_field="project_id",
)

GCP_RESOURCE_TYPES = (GCP_COMPUTE_BACKEND_SERVICE, GCP_COMPUTE_SECURITY_POLICY)
