from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, Optional, TypeVar

import structlog

from ...exceptions import AppException
from ...schemas.graph import Entitlement, Grant, Resource, ResourceId, ResourceType, ResourceTypeId
from ...schemas.rbac import KubeObject
from ..k8s.client import KubeClient
from ..k8s.identifiers import (
    cluster_resource_id,
    namespace_resource_id,
    namespaced_resource_id,
    resource_type,
    wildcard_resource,
)
from ..k8s.pagination import Page, decode_page_token, next_token

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# verbs offered as entitlements on inventory objects
RESOURCE_VERBS: tuple[str, ...] = ("get", "list", "watch", "create", "update", "patch", "delete")

ROLE_HOLDERS = (ResourceTypeId.ROLE, ResourceTypeId.CLUSTER_ROLE)
PRINCIPALS = (ResourceTypeId.KUBE_USER, ResourceTypeId.KUBE_GROUP, ResourceTypeId.SERVICE_ACCOUNT)


@dataclass
class SyncPage(Generic[T]):
    """Result of one sync call; an empty ``next_page_token`` means done."""

    items: list[T] = field(default_factory=list)
    next_page_token: str = ""


class ResourceSyncer(ABC):
    """List/Entitlements/Grants for one resource type."""

    type_id: ClassVar[ResourceTypeId]

    def __init__(self, client: KubeClient) -> None:
        self.client = client

    def resource_type(self) -> ResourceType:
        return resource_type(self.type_id)

    @abstractmethod
    async def list(self, parent_id: Optional[ResourceId] = None, page_token: str = "") -> SyncPage[Resource]:
        ...

    async def entitlements(self, resource: Resource, page_token: str = "") -> SyncPage[Entitlement]:
        return SyncPage()

    async def grants(self, resource: Resource, page_token: str = "") -> SyncPage[Grant]:
        return SyncPage()


class PagedSyncer(ResourceSyncer, Generic[T]):
    """Single upstream list walked page by page.

    The first page is prefixed with the ``All <Type>`` wildcard resource when
    ``emits_wildcard`` is set.
    """

    emits_wildcard: ClassVar[bool] = True

    @abstractmethod
    async def fetch_page(self, continue_token: str | None) -> Page[T]:
        ...

    @abstractmethod
    def to_resource(self, obj: T) -> Resource:
        ...

    async def list(self, parent_id: Optional[ResourceId] = None, page_token: str = "") -> SyncPage[Resource]:
        state = decode_page_token(page_token)
        items: list[Resource] = []
        if state.is_first_page and self.emits_wildcard:
            items.append(wildcard_resource(self.type_id))

        page = await self.fetch_page(state.token)
        for obj in page.items:
            try:
                items.append(self.to_resource(obj))
            except AppException as exc:
                logger.error(
                    "sync.resource_skipped",
                    resource_type=self.type_id.value,
                    name=getattr(obj, "name", None),
                    namespace=getattr(obj, "namespace", None),
                    error=exc.message,
                )
        return SyncPage(items, next_token(page.continue_token))


def object_id(type_id: ResourceTypeId, obj: KubeObject) -> ResourceId:
    if resource_type(type_id).namespaced:
        return namespaced_resource_id(type_id, obj.namespace or "", obj.name)
    return cluster_resource_id(type_id, obj.name)


def object_profile(obj: KubeObject) -> dict[str, Any]:
    profile: dict[str, Any] = {
        "name": obj.name,
        "uid": obj.uid or "",
        "creationTimestamp": obj.created_at.isoformat() if obj.created_at else "",
    }
    if obj.namespace:
        profile["namespace"] = obj.namespace
    if obj.labels:
        profile["labels"] = dict(obj.labels)
    if obj.annotations:
        profile["annotations"] = dict(obj.annotations)
    profile.update({k: v for k, v in obj.attributes.items() if v is not None})
    return profile


def object_resource(type_id: ResourceTypeId, obj: KubeObject, description: str | None = None) -> Resource:
    rt = resource_type(type_id)
    return Resource(
        id=object_id(type_id, obj),
        display_name=obj.name,
        description=description,
        parent_id=namespace_resource_id(obj.namespace) if rt.namespaced and obj.namespace else None,
        traits=rt.traits,
        profile=object_profile(obj),
    )


def permission_entitlement(resource: Resource, slug: str, display_name: str, description: str) -> Entitlement:
    return Entitlement(
        slug=slug,
        resource=resource.id,
        purpose="permission",
        display_name=display_name,
        description=description,
        grantable_to=ROLE_HOLDERS,
    )


def verb_entitlements(resource: Resource, verbs: Iterable[str], noun: str) -> list[Entitlement]:
    return [
        permission_entitlement(
            resource,
            verb,
            f"{verb} {resource.display_name}",
            f"Grants {verb} permission on the {resource.display_name} {noun}",
        )
        for verb in verbs
    ]


def impersonate_entitlement(resource: Resource, noun: str) -> Entitlement:
    return permission_entitlement(
        resource,
        "impersonate",
        f"Impersonate {resource.display_name}",
        f"Grants the ability to impersonate the {resource.display_name} {noun}",
    )


def member_entitlement(
    resource: Resource,
    slug: str,
    display_name: str,
    description: str,
    grantable_to: Sequence[ResourceTypeId] = PRINCIPALS,
) -> Entitlement:
    return Entitlement(
        slug=slug,
        resource=resource.id,
        purpose="assignment",
        display_name=display_name,
        description=description,
        grantable_to=tuple(grantable_to),
    )
