"""
DigitalOcean bronze tables.

Each resource defines its tracked columns once in a ``_...Columns`` mixin that is
shared by the snapshot table and its history table, so both always carry the
same field set.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cloudledger.models._bronze import HistoryMixin, SnapshotMixin
from cloudledger.shared.db.base import Base


class _AccountColumns:
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    droplet_limit: Mapped[int] = mapped_column(Integer, default=0)
    floating_ip_limit: Mapped[int] = mapped_column(Integer, default=0)
    reserved_ip_limit: Mapped[int] = mapped_column(Integer, default=0)
    volume_limit: Mapped[int] = mapped_column(Integer, default=0)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    team_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    team_uuid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


class DOAccount(_AccountColumns, SnapshotMixin, Base):
    __tablename__ = "bronze_do_accounts"


class DOAccountHistory(_AccountColumns, HistoryMixin, Base):
    __tablename__ = "bronze_history_do_accounts"


class _KeyColumns:
    name: Mapped[str] = mapped_column(String(255))
    fingerprint: Mapped[str] = mapped_column(String(128))
    public_key: Mapped[str] = mapped_column(Text)


class DOKey(_KeyColumns, SnapshotMixin, Base):
    __tablename__ = "bronze_do_keys"


class DOKeyHistory(_KeyColumns, HistoryMixin, Base):
    __tablename__ = "bronze_history_do_keys"


class _DomainColumns:
    ttl: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    zone_file: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class DODomain(_DomainColumns, SnapshotMixin, Base):
    """Keyed by domain name, which is also the parent scope of its records."""

    __tablename__ = "bronze_do_domains"


class DODomainHistory(_DomainColumns, HistoryMixin, Base):
    __tablename__ = "bronze_history_do_domains"


class _DomainRecordColumns:
    domain_name: Mapped[str] = mapped_column(String(255), index=True)
    record_id: Mapped[int] = mapped_column(Integer)
    type: Mapped[str] = mapped_column(String(16))
    name: Mapped[str] = mapped_column(String(255))
    data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    port: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    ttl: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    weight: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    flags: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tag: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


class DODomainRecord(_DomainRecordColumns, SnapshotMixin, Base):
    """Resource id is ``<domain name>:<record id>``."""

    __tablename__ = "bronze_do_domain_records"


class DODomainRecordHistory(_DomainRecordColumns, HistoryMixin, Base):
    __tablename__ = "bronze_history_do_domain_records"


class _ProjectColumns:
    owner_uuid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    owner_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    purpose: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    environment: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    api_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    api_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class DOProject(_ProjectColumns, SnapshotMixin, Base):
    __tablename__ = "bronze_do_projects"


class DOProjectHistory(_ProjectColumns, HistoryMixin, Base):
    __tablename__ = "bronze_history_do_projects"


class _DropletColumns:
    name: Mapped[str] = mapped_column(String(255))
    memory: Mapped[int] = mapped_column(Integer, default=0)
    vcpus: Mapped[int] = mapped_column(Integer, default=0)
    disk: Mapped[int] = mapped_column(Integer, default=0)
    region: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    size_slug: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    locked: Mapped[bool] = mapped_column(Boolean, default=False)
    vpc_uuid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    api_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    image_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    size_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    networks_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    kernel_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    features_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    volume_ids_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    backup_ids_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    snapshot_ids_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class DODroplet(_DropletColumns, SnapshotMixin, Base):
    __tablename__ = "bronze_do_droplets"


class DODropletHistory(_DropletColumns, HistoryMixin, Base):
    __tablename__ = "bronze_history_do_droplets"


class _LoadBalancerColumns:
    name: Mapped[str] = mapped_column(String(255))
    ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ipv6: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    size_slug: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    size_unit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    lb_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    algorithm: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    tag: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    redirect_http_to_https: Mapped[bool] = mapped_column(Boolean, default=False)
    enable_proxy_protocol: Mapped[bool] = mapped_column(Boolean, default=False)
    enable_backend_keepalive: Mapped[bool] = mapped_column(Boolean, default=False)
    vpc_uuid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    project_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    http_idle_timeout_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    api_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # Keyed by "<entry_protocol>:<entry_port>"
    forwarding_rules: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    health_check_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sticky_sessions_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    firewall_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    droplet_ids_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class DOLoadBalancer(_LoadBalancerColumns, SnapshotMixin, Base):
    __tablename__ = "bronze_do_load_balancers"


class DOLoadBalancerHistory(_LoadBalancerColumns, HistoryMixin, Base):
    __tablename__ = "bronze_history_do_load_balancers"


class _KubernetesClusterColumns:
    name: Mapped[str] = mapped_column(String(255))
    region: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    version: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    cluster_subnet: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    service_subnet: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ipv4: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    endpoint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    vpc_uuid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ha: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_upgrade: Mapped[bool] = mapped_column(Boolean, default=False)
    surge_upgrade: Mapped[bool] = mapped_column(Boolean, default=False)
    registry_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    status_state: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    status_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    maintenance_policy_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    control_plane_firewall_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    autoscaler_config_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    api_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    api_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class DOKubernetesCluster(_KubernetesClusterColumns, SnapshotMixin, Base):
    """Keyed by cluster id, which is also the parent scope of its node pools."""

    __tablename__ = "bronze_do_kubernetes_clusters"


class DOKubernetesClusterHistory(_KubernetesClusterColumns, HistoryMixin, Base):
    __tablename__ = "bronze_history_do_kubernetes_clusters"


class _KubernetesNodePoolColumns:
    cluster_id: Mapped[str] = mapped_column(String(64), index=True)
    node_pool_id: Mapped[str] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(255))
    size: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    node_count: Mapped[int] = mapped_column(Integer, default=0)
    auto_scale: Mapped[bool] = mapped_column(Boolean, default=False)
    min_nodes: Mapped[int] = mapped_column(Integer, default=0)
    max_nodes: Mapped[int] = mapped_column(Integer, default=0)
    tags_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    labels_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    taints_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    nodes_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class DOKubernetesNodePool(_KubernetesNodePoolColumns, SnapshotMixin, Base):
    """Resource id is ``<cluster id>:<node pool id>``."""

    __tablename__ = "bronze_do_kubernetes_node_pools"


class DOKubernetesNodePoolHistory(_KubernetesNodePoolColumns, HistoryMixin, Base):
    __tablename__ = "bronze_history_do_kubernetes_node_pools"
