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
from cloudledger.models.gcp import (
    GCPComputeBackendService,
    GCPComputeBackendServiceHistory,
    GCPComputeSecurityPolicy,
    GCPComputeSecurityPolicyHistory,
)

__all__ = [
    "DOAccount",
    "DOAccountHistory",
    "DODomain",
    "DODomainHistory",
    "DODomainRecord",
    "DODomainRecordHistory",
    "DODroplet",
    "DODropletHistory",
    "DOKey",
    "DOKeyHistory",
    "DOKubernetesCluster",
    "DOKubernetesClusterHistory",
    "DOKubernetesNodePool",
    "DOKubernetesNodePoolHistory",
    "DOLoadBalancer",
    "DOLoadBalancerHistory",
    "DOProject",
    "DOProjectHistory",
    "GCPComputeBackendService",
    "GCPComputeBackendServiceHistory",
    "GCPComputeSecurityPolicy",
    "GCPComputeSecurityPolicyHistory",
]
