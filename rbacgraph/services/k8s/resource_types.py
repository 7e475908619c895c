"""Map ``(apiGroup, resource)`` pairs from policy rules to internal resource types."""

from __future__ import annotations

from typing import NamedTuple, Optional

from ...schemas.graph import WILDCARD, ResourceTypeId
from .identifiers import RESOURCE_TYPES


class MappedType(NamedTuple):
    type_id: ResourceTypeId
    namespaced: bool


CORE_GROUP = "core"
APPS_GROUP = "apps"
RBAC_GROUP = "rbac.authorization.k8s.io"
OPENSHIFT_USER_GROUP = "user.openshift.io"

_GROUP_ALIASES = {
    "": CORE_GROUP,
    "core": CORE_GROUP,
    "apps": APPS_GROUP,
    "apps/v1": APPS_GROUP,
    RBAC_GROUP: RBAC_GROUP,
    f"{RBAC_GROUP}/v1": RBAC_GROUP,
    OPENSHIFT_USER_GROUP: OPENSHIFT_USER_GROUP,
    f"{OPENSHIFT_USER_GROUP}/v1": OPENSHIFT_USER_GROUP,
}

# plural names; singular spellings are accepted by stripping one trailing "s"
_RESOURCE_TABLE: dict[str, dict[str, ResourceTypeId]] = {
    CORE_GROUP: {
        "pods": ResourceTypeId.POD,
        "namespaces": ResourceTypeId.NAMESPACE,
        "configmaps": ResourceTypeId.CONFIGMAP,
        "secrets": ResourceTypeId.SECRET,
        "serviceaccounts": ResourceTypeId.SERVICE_ACCOUNT,
        "nodes": ResourceTypeId.NODE,
        # impersonation targets
        "users": ResourceTypeId.KUBE_USER,
        "groups": ResourceTypeId.KUBE_GROUP,
    },
    APPS_GROUP: {
        "deployments": ResourceTypeId.DEPLOYMENT,
        "statefulsets": ResourceTypeId.STATEFULSET,
        "daemonsets": ResourceTypeId.DAEMONSET,
    },
    RBAC_GROUP: {
        "roles": ResourceTypeId.ROLE,
        "clusterroles": ResourceTypeId.CLUSTER_ROLE,
        "rolebindings": ResourceTypeId.BINDING,
        "clusterrolebindings": ResourceTypeId.BINDING,
    },
    OPENSHIFT_USER_GROUP: {
        "users": ResourceTypeId.KUBE_USER,
        "groups": ResourceTypeId.KUBE_GROUP,
    },
}

_SINGULAR_TABLE: dict[str, dict[str, ResourceTypeId]] = {
    group: {plural[:-1]: type_id for plural, type_id in kinds.items()}
    for group, kinds in _RESOURCE_TABLE.items()
}


def is_namespaced(type_id: ResourceTypeId) -> bool:
    return RESOURCE_TYPES[type_id].namespaced


def map_resource_type(api_group: str, resource: str) -> Optional[MappedType]:
    """Return the internal type for a rule's ``(api_group, resource)`` pair.

    Wildcard groups and resources are never expanded and return None, as do
    subresources (``pods/log``) and kinds with no internal type, e.g. services
    or custom resources.
    """
    if api_group == WILDCARD or resource == WILDCARD:
        return None
    group = _GROUP_ALIASES.get(api_group)
    if group is None:
        return None
    type_id = _RESOURCE_TABLE[group].get(resource) or _SINGULAR_TABLE[group].get(resource)
    if type_id is None:
        return None
    return MappedType(type_id, is_namespaced(type_id))
