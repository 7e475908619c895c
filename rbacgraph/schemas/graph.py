"""Models of the resource/entitlement/grant sync protocol."""

from __future__ import annotations

from enum import Enum
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field


MEMBER = "member"
WILDCARD = "*"


class ResourceTypeId(str, Enum):
    NAMESPACE = "namespace"
    SERVICE_ACCOUNT = "service_account"
    ROLE = "role"
    CLUSTER_ROLE = "cluster_role"
    SECRET = "secret"
    CONFIGMAP = "configmap"
    NODE = "node"
    POD = "pod"
    DEPLOYMENT = "deployment"
    STATEFULSET = "statefulset"
    DAEMONSET = "daemonset"
    KUBE_USER = "kube_user"
    KUBE_GROUP = "kube_group"
    # placeholder target for rolebindings/clusterrolebindings; never listed
    BINDING = "binding"


class ResourceTrait(str, Enum):
    USER = "user"
    GROUP = "group"
    ROLE = "role"
    SECRET = "secret"


class ResourceType(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: ResourceTypeId
    display_name: str
    description: str | None = None
    traits: tuple[ResourceTrait, ...] = ()
    namespaced: bool = False


class ResourceId(BaseModel):
    """Opaque object reference: ``namespace/name``, ``name`` or ``*``."""

    model_config = ConfigDict(frozen=True)

    resource_type: ResourceTypeId
    resource: str

    @property
    def is_wildcard(self) -> bool:
        return self.resource == WILDCARD

    def __str__(self) -> str:
        return f"{self.resource_type.value}:{self.resource}"


class Resource(BaseModel):
    id: ResourceId
    display_name: str
    description: str | None = None
    parent_id: ResourceId | None = None
    traits: tuple[ResourceTrait, ...] = ()
    profile: dict[str, Any] = Field(default_factory=dict)


class Entitlement(BaseModel):
    slug: str
    resource: ResourceId
    purpose: Literal["assignment", "permission"]
    display_name: str
    description: str | None = None
    grantable_to: tuple[ResourceTypeId, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def id(self) -> str:
        return f"{self.resource}:{self.slug}"


class Grant(BaseModel):
    """One edge ``holder --entitlement--> target``.

    Membership edges have ``entitlement == "member"`` and a Role/ClusterRole
    target; permission edges carry a verb and a Role/ClusterRole holder.
    ``scope`` restricts a ClusterRole membership to one namespace.
    """

    model_config = ConfigDict(frozen=True)

    entitlement: str
    holder: ResourceId
    target: ResourceId
    scope: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def entitlement_slug(self) -> str:
        if self.entitlement != MEMBER or self.target.resource_type is not ResourceTypeId.CLUSTER_ROLE:
            return self.entitlement
        return f"{self.scope or 'all'}:{MEMBER}"

    @property
    def is_membership(self) -> bool:
        return self.entitlement == MEMBER


class ConnectorMetadata(BaseModel):
    display_name: str = "Kubernetes"
    description: str = "Connector for Kubernetes resources and RBAC permissions"
    cluster: str | None = None


class SyncSnapshot(BaseModel):
    """Everything a full sync produced, in enumeration order."""

    resource_types: list[ResourceType] = Field(default_factory=list)
    resources: list[Resource] = Field(default_factory=list)
    entitlements: list[Entitlement] = Field(default_factory=list)
    grants: list[Grant] = Field(default_factory=list)

    def resources_of(self, type_id: ResourceTypeId) -> list[Resource]:
        return [r for r in self.resources if r.id.resource_type is type_id]


T = TypeVar("T")


class PageResponse(BaseModel, Generic[T]):
    items: list[T] = Field(default_factory=list)
    next_page_token: str = ""


class GrantPathOut(BaseModel):
    role: ResourceId
    scope: str | None = None
    permission_target: ResourceId


class CanIResponse(BaseModel):
    allowed: bool
    principal: ResourceId
    verb: str
    target: ResourceId
    paths: list[GrantPathOut] = Field(default_factory=list)
