from cloudledger.modules.inventory.domain.resource import ResourceType
from cloudledger.modules.inventory.domain.resources.digitalocean import DIGITALOCEAN_RESOURCE_TYPES
from cloudledger.modules.inventory.domain.resources.gcp import GCP_RESOURCE_TYPES
from cloudledger.shared.core.exceptions import ConfigurationError

RESOURCE_TYPES: dict[str, ResourceType] = {
    rtype.name: rtype for rtype in (*DIGITALOCEAN_RESOURCE_TYPES, *GCP_RESOURCE_TYPES)
}


def get_resource_type(name: str) -> ResourceType:
    try:
        return RESOURCE_TYPES[name]
    except KeyError:
        raise ConfigurationError(f"Unknown resource type '{name}'", details={"resource_type": name}) from None


__all__ = ["RESOURCE_TYPES", "get_resource_type"]
