from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Optional

import structlog
from cachetools import TTLCache

from ...schemas.graph import Entitlement, Grant, Resource, ResourceTypeId
from ...schemas.rbac import ClusterRole
from ..k8s.bindings import BindingCache, drain
from ..k8s.client import KubeClient
from ..k8s.grants import membership_grants, synthesize_permission_grants
from ..k8s.pagination import Page
from .base import PagedSyncer, SyncPage, member_entitlement, object_resource

logger = structlog.get_logger(__name__)

CLUSTER_SCOPED_MEMBER = "all:member"
_NAMESPACES_KEY = "namespaces"


class ClusterRoleSyncer(PagedSyncer[ClusterRole]):
    type_id = ResourceTypeId.CLUSTER_ROLE

    def __init__(
        self,
        client: KubeClient,
        bindings: BindingCache,
        *,
        namespace_ttl_seconds: float = 300,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(client)
        self.bindings = bindings
        self._namespaces: TTLCache[str, tuple[str, ...]] = TTLCache(
            maxsize=1, ttl=namespace_ttl_seconds, timer=timer
        )
        self._namespace_lock = asyncio.Lock()

    async def fetch_page(self, continue_token: Optional[str]) -> Page[ClusterRole]:
        return await self.client.list_cluster_roles(continue_token)

    def to_resource(self, obj: ClusterRole) -> Resource:
        resource = object_resource(self.type_id, obj)
        if obj.aggregation_rule:
            resource.profile["aggregationRule"] = obj.aggregation_rule
        return resource

    async def entitlements(self, resource: Resource, page_token: str = "") -> SyncPage[Entitlement]:
        name = resource.display_name
        items = [
            member_entitlement(
                resource,
                CLUSTER_SCOPED_MEMBER,
                f"{name} Cluster Role Member",
                f"Grants membership to the {name} cluster role",
            )
        ]
        # a RoleBinding can bind the ClusterRole inside any single namespace
        for namespace in await self.namespaces():
            items.append(
                member_entitlement(
                    resource,
                    f"{namespace}:member",
                    f'"{name}" Cluster Role Member in "{namespace}" namespace',
                    f'Grants membership to the "{name}" cluster role in namespace "{namespace}"',
                )
            )
        return SyncPage(items)

    async def grants(self, resource: Resource, page_token: str = "") -> SyncPage[Grant]:
        if resource.id.is_wildcard:
            return SyncPage()

        name = resource.id.resource
        log = logger.bind(cluster_role=name)

        role_bindings, cluster_role_bindings = await self.bindings.matching_for_cluster_role(name)
        if not role_bindings and not cluster_role_bindings:
            log.debug("rbac.cluster_role_unbound")

        items = membership_grants(resource.id, cluster_role_bindings)
        items.extend(membership_grants(resource.id, role_bindings, scope_to_binding=True))

        cluster_role = await self.client.get_cluster_role(name)
        items.extend(synthesize_permission_grants(resource.id, cluster_role.rules))
        log.debug(
            "rbac.cluster_role_grants_built",
            role_bindings=len(role_bindings),
            cluster_role_bindings=len(cluster_role_bindings),
            grants=len(items),
        )
        return SyncPage(items)

    async def namespaces(self) -> tuple[str, ...]:
        """Namespace names, cached for ``namespace_ttl_seconds``."""
        async with self._namespace_lock:
            cached = self._namespaces.get(_NAMESPACES_KEY)
            if cached is not None:
                return cached

            objects = await drain(self.client.list_namespaces)
            names = tuple(obj.name for obj in objects)
            self._namespaces[_NAMESPACES_KEY] = names
            logger.debug("rbac.namespaces_cached", count=len(names))
            return names
