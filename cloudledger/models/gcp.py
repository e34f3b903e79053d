"""GCP bronze tables."""
from typing import Optional

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cloudledger.models._bronze import HistoryMixin, SnapshotMixin
from cloudledger.shared.db.base import Base


class _BackendServiceColumns:
    project_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    self_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    creation_timestamp: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    load_balancing_scheme: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    protocol: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    port_name: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    port: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    timeout_sec: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    region: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    network: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    security_policy: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    session_affinity: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    locality_lb_policy: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    enable_cdn: Mapped[bool] = mapped_column(Boolean, default=False)
    health_checks_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cdn_policy_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    connection_draining_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    log_config_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    iap_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Keyed by backend "group" URL
    backends: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class GCPComputeBackendService(_BackendServiceColumns, SnapshotMixin, Base):
    __tablename__ = "bronze_gcp_compute_backend_services"


class GCPComputeBackendServiceHistory(_BackendServiceColumns, HistoryMixin, Base):
    __tablename__ = "bronze_history_gcp_compute_backend_services"


class _SecurityPolicyColumns:
    project_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    self_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    creation_timestamp: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    policy_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    fingerprint: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # Keyed by rule priority
    rules: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    associations_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    adaptive_protection_config_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    advanced_options_config_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ddos_protection_config_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recaptcha_options_config_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    labels_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class GCPComputeSecurityPolicy(_SecurityPolicyColumns, SnapshotMixin, Base):
    __tablename__ = "bronze_gcp_compute_security_policies"


class GCPComputeSecurityPolicyHistory(_SecurityPolicyColumns, HistoryMixin, Base):
    __tablename__ = "bronze_history_gcp_compute_security_policies"
