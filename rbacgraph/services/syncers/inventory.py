"""Plain object listings with no graph semantics of their own.

These objects only appear in the graph as permission targets; their
syncers translate one upstream object into one resource and offer
per-verb entitlements.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import NamedTuple, Optional

from ...schemas.graph import Entitlement, Resource, ResourceTypeId
from ...schemas.rbac import KubeObject
from ..k8s.client import KubeClient
from ..k8s.pagination import Page
from .base import RESOURCE_VERBS, PagedSyncer, SyncPage, impersonate_entitlement, object_resource, verb_entitlements


def _in_namespace(label: str) -> Callable[[KubeObject], str]:
    return lambda obj: f"{label} in namespace {obj.namespace}"


def _secret_description(obj: KubeObject) -> str:
    return f"Secret of type {obj.attributes.get('type') or 'Opaque'} in namespace {obj.namespace}"


class InventoryKind(NamedTuple):
    type_id: ResourceTypeId
    noun: str
    describe: Optional[Callable[[KubeObject], str]] = None
    extra_verbs: tuple[str, ...] = ()


INVENTORY_KINDS: dict[ResourceTypeId, InventoryKind] = {
    kind.type_id: kind
    for kind in (
        InventoryKind(ResourceTypeId.NAMESPACE, "namespace"),
        InventoryKind(ResourceTypeId.SERVICE_ACCOUNT, "service account"),
        InventoryKind(ResourceTypeId.SECRET, "secret", _secret_description),
        InventoryKind(ResourceTypeId.CONFIGMAP, "configmap", _in_namespace("ConfigMap")),
        InventoryKind(ResourceTypeId.NODE, "node", lambda obj: "Kubernetes node"),
        InventoryKind(ResourceTypeId.POD, "pod", _in_namespace("Pod"), ("exec", "portforward")),
        InventoryKind(ResourceTypeId.DEPLOYMENT, "deployment", _in_namespace("Deployment"), ("scale", "rollback")),
        InventoryKind(ResourceTypeId.STATEFULSET, "statefulset", _in_namespace("StatefulSet"), ("scale",)),
        InventoryKind(ResourceTypeId.DAEMONSET, "daemonset", _in_namespace("DaemonSet")),
    )
}


class InventorySyncer(PagedSyncer[KubeObject]):
    def __init__(self, client: KubeClient, kind: InventoryKind) -> None:
        super().__init__(client)
        self.kind = kind
        # instance attribute shadows the ClassVar so one class serves every kind
        self.type_id = kind.type_id  # type: ignore[misc]

    @classmethod
    def for_type(cls, client: KubeClient, type_id: ResourceTypeId) -> InventorySyncer:
        if type_id is ResourceTypeId.SERVICE_ACCOUNT:
            return ServiceAccountSyncer(client, INVENTORY_KINDS[type_id])
        return cls(client, INVENTORY_KINDS[type_id])

    async def fetch_page(self, continue_token: Optional[str]) -> Page[KubeObject]:
        return await self.client.list_objects(self.type_id, continue_token)

    def to_resource(self, obj: KubeObject) -> Resource:
        description = self.kind.describe(obj) if self.kind.describe else None
        return object_resource(self.type_id, obj, description)

    async def entitlements(self, resource: Resource, page_token: str = "") -> SyncPage[Entitlement]:
        verbs = RESOURCE_VERBS + self.kind.extra_verbs
        return SyncPage(verb_entitlements(resource, verbs, self.kind.noun))


class ServiceAccountSyncer(InventorySyncer):
    """Service accounts are principals: they carry ``impersonate`` rather than verb entitlements."""

    async def entitlements(self, resource: Resource, page_token: str = "") -> SyncPage[Entitlement]:
        return SyncPage([impersonate_entitlement(resource, self.kind.noun)])
