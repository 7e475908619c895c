from __future__ import annotations

from typing import Optional

import structlog

from ...schemas.graph import Entitlement, Grant, Resource, ResourceTypeId
from ...schemas.rbac import Role
from ..k8s.bindings import BindingCache
from ..k8s.client import KubeClient
from ..k8s.grants import membership_grants, synthesize_permission_grants
from ..k8s.identifiers import parse_namespaced_id
from ..k8s.pagination import Page
from .base import PagedSyncer, SyncPage, member_entitlement, object_resource, permission_entitlement

logger = structlog.get_logger(__name__)


class RoleSyncer(PagedSyncer[Role]):
    type_id = ResourceTypeId.ROLE

    def __init__(self, client: KubeClient, bindings: BindingCache) -> None:
        super().__init__(client)
        self.bindings = bindings

    async def fetch_page(self, continue_token: Optional[str]) -> Page[Role]:
        return await self.client.list_roles(continue_token)

    def to_resource(self, obj: Role) -> Resource:
        return object_resource(self.type_id, obj)

    async def entitlements(self, resource: Resource, page_token: str = "") -> SyncPage[Entitlement]:
        name = resource.display_name
        return SyncPage(
            [
                member_entitlement(
                    resource,
                    "member",
                    f"{name} Role Member",
                    f"Grants membership to the {name} role",
                ),
                permission_entitlement(
                    resource,
                    "bind",
                    f"Bind {name}",
                    f"Grants the ability to bind the {name} role to subjects without having the permissions it grants",
                ),
                permission_entitlement(
                    resource,
                    "escalate",
                    f"Escalate {name}",
                    f"Grants the ability to escalate the {name} role to include permissions the holder does not have",
                ),
            ]
        )

    async def grants(self, resource: Resource, page_token: str = "") -> SyncPage[Grant]:
        if resource.id.is_wildcard:
            return SyncPage()

        namespace, name = parse_namespaced_id(resource.id)
        log = logger.bind(role=str(resource.id))
        log.debug("rbac.role_grants", namespace=namespace, name=name)

        role = await self.client.get_role(namespace, name)
        bindings = await self.bindings.matching_for_role(namespace, name)

        items = membership_grants(resource.id, bindings)
        items.extend(synthesize_permission_grants(resource.id, role.rules, namespace))
        log.debug("rbac.role_grants_built", bindings=len(bindings), grants=len(items))
        return SyncPage(items)
