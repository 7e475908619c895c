"""Builders and an in-memory cluster client for the test suite."""

import asyncio
from collections import Counter
from collections.abc import Iterable, Sequence

from rbacgraph.exceptions import UpstreamFetchError
from rbacgraph.schemas.graph import ResourceTypeId
from rbacgraph.schemas.rbac import (
    ClusterRole,
    ClusterRoleBinding,
    KubeObject,
    PolicyRule,
    Role,
    RoleBinding,
    RoleRef,
    Subject,
)
from rbacgraph.services.k8s.pagination import Page


def subject(kind: str, name: str, namespace: str = "") -> Subject:
    return Subject(kind=kind, name=name, namespace=namespace)


def rule(
    verbs: Sequence[str],
    resources: Sequence[str],
    api_groups: Sequence[str] = ("",),
    names: Sequence[str] = (),
) -> PolicyRule:
    return PolicyRule(
        verbs=list(verbs),
        api_groups=list(api_groups),
        resources=list(resources),
        resource_names=list(names),
    )


def role_binding(name: str, namespace: str, ref_kind: str, ref_name: str, *subjects: Subject) -> RoleBinding:
    return RoleBinding(
        name=name,
        namespace=namespace,
        role_ref=RoleRef(kind=ref_kind, name=ref_name, api_group="rbac.authorization.k8s.io"),
        subjects=list(subjects),
    )


def cluster_role_binding(name: str, ref_name: str, *subjects: Subject) -> ClusterRoleBinding:
    return ClusterRoleBinding(
        name=name,
        role_ref=RoleRef(kind="ClusterRole", name=ref_name, api_group="rbac.authorization.k8s.io"),
        subjects=list(subjects),
    )


def make_role(namespace: str, name: str, *rules: PolicyRule) -> Role:
    return Role(name=name, namespace=namespace, uid=f"uid-{namespace}-{name}", rules=list(rules))


def make_cluster_role(name: str, *rules: PolicyRule) -> ClusterRole:
    return ClusterRole(name=name, uid=f"uid-{name}", rules=list(rules))


def kube_object(kind: str, name: str, namespace: str | None = None, **attributes) -> KubeObject:
    return KubeObject(kind=kind, name=name, namespace=namespace, uid=f"uid-{name}", attributes=attributes)


class FakeKubeClient:
    """In-memory stand-in for KubeClient that pages by offset and counts calls."""

    cluster_display_name = "test-cluster"

    def __init__(
        self,
        *,
        role_bindings: Iterable[RoleBinding] = (),
        cluster_role_bindings: Iterable[ClusterRoleBinding] = (),
        roles: Iterable[Role] = (),
        cluster_roles: Iterable[ClusterRole] = (),
        objects: dict[ResourceTypeId, list[KubeObject]] | None = None,
        page_size: int = 100,
        delay: float = 0,
    ) -> None:
        self.role_bindings = list(role_bindings)
        self.cluster_role_bindings = list(cluster_role_bindings)
        self.roles = list(roles)
        self.cluster_roles = list(cluster_roles)
        self.objects = objects or {}
        self.page_size = page_size
        self.delay = delay
        self.calls: Counter[str] = Counter()
        self.limits: list[int | None] = []
        # call name -> exception raised by the next call with that name
        self.fail_next: dict[str, Exception] = {}

    async def _serve(self, name: str, items: list, continue_token: str | None, limit: int | None = None) -> Page:
        self.calls[name] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)
        exc = self.fail_next.pop(name, None)
        if exc is not None:
            raise exc
        size = limit or self.page_size
        start = int(continue_token or 0)
        end = start + size
        return Page(items=items[start:end], continue_token=str(end) if end < len(items) else None)

    async def list_role_bindings(self, continue_token=None):
        return await self._serve("rolebindings", self.role_bindings, continue_token)

    async def list_cluster_role_bindings(self, continue_token=None):
        return await self._serve("clusterrolebindings", self.cluster_role_bindings, continue_token)

    async def list_roles(self, continue_token=None):
        return await self._serve("roles", self.roles, continue_token)

    async def list_cluster_roles(self, continue_token=None):
        return await self._serve("clusterroles", self.cluster_roles, continue_token)

    async def get_role(self, namespace, name):
        self.calls["get_role"] += 1
        for role in self.roles:
            if role.namespace == namespace and role.name == name:
                return role
        raise UpstreamFetchError(f"role {namespace}/{name} not found", upstream_status=404)

    async def get_cluster_role(self, name):
        self.calls["get_cluster_role"] += 1
        for cluster_role in self.cluster_roles:
            if cluster_role.name == name:
                return cluster_role
        raise UpstreamFetchError(f"clusterrole {name} not found", upstream_status=404)

    async def list_namespaces(self, continue_token=None, limit=None):
        self.limits.append(limit)
        return await self._serve(
            "namespaces", self.objects.get(ResourceTypeId.NAMESPACE, []), continue_token, limit
        )

    async def list_objects(self, type_id, continue_token=None, limit=None):
        return await self._serve(type_id.value, self.objects.get(type_id, []), continue_token, limit)


