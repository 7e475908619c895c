"""Resource type registry and object id helpers.

Object ids are ``<namespace>/<name>`` for namespaced objects, ``<name>`` for
cluster-scoped ones and ``*`` for the synthetic "all objects of this type"
resource. Names are kept verbatim, so ``system:masters`` is a valid id.
"""

from __future__ import annotations

from datetime import datetime, timezone

from ...exceptions import MalformedResourceIdError
from ...schemas.graph import (
    WILDCARD,
    Resource,
    ResourceId,
    ResourceTrait,
    ResourceType,
    ResourceTypeId,
)


def _rt(
    type_id: ResourceTypeId,
    display_name: str,
    *traits: ResourceTrait,
    namespaced: bool = False,
    description: str | None = None,
) -> ResourceType:
    return ResourceType(
        id=type_id,
        display_name=display_name,
        traits=traits,
        namespaced=namespaced,
        description=description,
    )


RESOURCE_TYPES: dict[ResourceTypeId, ResourceType] = {
    rt.id: rt
    for rt in (
        _rt(ResourceTypeId.NAMESPACE, "Namespace"),
        _rt(ResourceTypeId.SERVICE_ACCOUNT, "Service Account", ResourceTrait.USER, namespaced=True),
        _rt(ResourceTypeId.ROLE, "Role", ResourceTrait.ROLE, namespaced=True),
        _rt(ResourceTypeId.CLUSTER_ROLE, "Cluster Role", ResourceTrait.ROLE),
        _rt(ResourceTypeId.SECRET, "Secret", ResourceTrait.SECRET, namespaced=True),
        _rt(ResourceTypeId.CONFIGMAP, "Config Map", namespaced=True),
        _rt(ResourceTypeId.NODE, "Node"),
        _rt(ResourceTypeId.POD, "Pod", namespaced=True),
        _rt(ResourceTypeId.DEPLOYMENT, "Deployment", namespaced=True),
        _rt(ResourceTypeId.STATEFULSET, "Stateful Set", namespaced=True),
        _rt(ResourceTypeId.DAEMONSET, "Daemon Set", namespaced=True),
        _rt(ResourceTypeId.KUBE_USER, "Kubernetes User", ResourceTrait.USER),
        _rt(ResourceTypeId.KUBE_GROUP, "Kubernetes Group", ResourceTrait.GROUP),
        _rt(
            ResourceTypeId.BINDING,
            "Binding",
            namespaced=True,
            description="Internal type for processing RBAC bindings",
        ),
    )
}


def resource_type(type_id: ResourceTypeId | str) -> ResourceType:
    return RESOURCE_TYPES[ResourceTypeId(type_id)]


def format_resource_id(type_id: ResourceTypeId, resource: str) -> ResourceId:
    if not resource:
        raise MalformedResourceIdError(
            f"Empty object id for resource type {type_id.value}",
            details={"resource_type": type_id.value},
        )
    return ResourceId(resource_type=type_id, resource=resource)


def namespaced_resource_id(type_id: ResourceTypeId, namespace: str, name: str) -> ResourceId:
    if namespace == WILDCARD and name == WILDCARD:
        return format_resource_id(type_id, WILDCARD)
    if not namespace or not name:
        raise MalformedResourceIdError(
            f"Namespaced {type_id.value} id needs both namespace and name",
            details={"namespace": namespace, "name": name},
        )
    return format_resource_id(type_id, f"{namespace}/{name}")


def cluster_resource_id(type_id: ResourceTypeId, name: str) -> ResourceId:
    return format_resource_id(type_id, name)


def namespace_resource_id(namespace: str) -> ResourceId:
    return format_resource_id(ResourceTypeId.NAMESPACE, namespace)


def parse_namespaced_id(resource_id: ResourceId | str) -> tuple[str, str]:
    """Split a ``namespace/name`` id; anything else is malformed."""
    raw = resource_id.resource if isinstance(resource_id, ResourceId) else resource_id
    parts = raw.split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise MalformedResourceIdError(
            f"Invalid resource id {raw!r}, expected namespace/name",
            details={"resource": raw},
        )
    return parts[0], parts[1]


def wildcard_resource(type_id: ResourceTypeId) -> Resource:
    """Synthetic resource standing for every object of ``type_id``."""
    rt = resource_type(type_id)
    display_name = f"All {rt.display_name}"
    if type_id is ResourceTypeId.SECRET:
        description = "Represents all secrets in the cluster"
    else:
        description = f"Represents all resources of type {rt.display_name}"
    profile = {"name": display_name, "uid": f"wildcard-{type_id.value}"}
    if type_id is ResourceTypeId.SECRET:
        profile["created_at"] = datetime.now(tz=timezone.utc).isoformat()
    return Resource(
        id=format_resource_id(type_id, WILDCARD),
        display_name=display_name,
        description=description,
        traits=rt.traits,
        profile=profile,
    )


def parse_typed_id(text: str) -> ResourceId:
    """Parse ``<type>:<object id>``, e.g. ``kube_group:system:masters``."""
    type_part, sep, resource = text.partition(":")
    try:
        type_id = ResourceTypeId(type_part)
    except ValueError:
        type_id = None
    if not sep or type_id is None:
        raise MalformedResourceIdError(
            f"Invalid typed id {text!r}, expected <type>:<id>",
            details={"id": text},
        )
    return format_resource_id(type_id, resource)
