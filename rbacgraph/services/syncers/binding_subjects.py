"""Users and groups exist only as binding subjects, so they are listed by scanning bindings."""

from __future__ import annotations

from collections.abc import Iterable
from typing import ClassVar, Optional

import structlog

from ...schemas.graph import Entitlement, Resource, ResourceId, ResourceTypeId
from ...schemas.rbac import ClusterRoleBinding, RoleBinding, SubjectKind
from ..k8s.client import KubeClient
from ..k8s.identifiers import cluster_resource_id, resource_type
from ..k8s.pagination import BindingPhase, PageState, decode_page_token, encode_page_token
from .base import ResourceSyncer, SyncPage, impersonate_entitlement

logger = structlog.get_logger(__name__)

BUILT_IN_GROUPS: tuple[str, ...] = (
    "system:masters",
    "system:authenticated",
    "system:unauthenticated",
)


class BindingSubjectSyncer(ResourceSyncer):
    """Two-phase listing: all RoleBindings, then all ClusterRoleBindings.

    Names already emitted by this instance are not emitted again, across
    pages and phases. A new instance starts with an empty seen-set.
    """

    subject_kind: ClassVar[SubjectKind]
    built_in: ClassVar[tuple[str, ...]] = ()
    noun: ClassVar[str]

    def __init__(self, client: KubeClient) -> None:
        super().__init__(client)
        self._seen: set[str] = set()

    async def list(self, parent_id: Optional[ResourceId] = None, page_token: str = "") -> SyncPage[Resource]:
        state = decode_page_token(page_token)
        items: list[Resource] = []
        self._collect(self.built_in, items)

        if state.phase in (None, BindingPhase.ROLE_BINDINGS):
            page = await self.client.list_role_bindings(state.token)
            self._collect(self._subject_names(page.items), items)
            if page.continue_token:
                return self._page(items, BindingPhase.ROLE_BINDINGS, page.continue_token)
            logger.debug("sync.binding_phase_done", resource_type=self.type_id.value, phase="rolebindings")
            return self._page(items, BindingPhase.CLUSTER_ROLE_BINDINGS, None)

        page = await self.client.list_cluster_role_bindings(state.token)
        self._collect(self._subject_names(page.items), items)
        if page.continue_token:
            return self._page(items, BindingPhase.CLUSTER_ROLE_BINDINGS, page.continue_token)
        return SyncPage(items)

    async def entitlements(self, resource: Resource, page_token: str = "") -> SyncPage[Entitlement]:
        return SyncPage([impersonate_entitlement(resource, self.noun)])

    def _subject_names(self, bindings: Iterable[RoleBinding | ClusterRoleBinding]) -> Iterable[str]:
        for binding in bindings:
            for subject in binding.subjects:
                if subject.subject_kind is self.subject_kind and subject.name:
                    yield subject.name

    def _collect(self, names: Iterable[str], items: list[Resource]) -> None:
        for name in names:
            if name in self._seen:
                continue
            self._seen.add(name)
            items.append(self.to_resource(name))

    def _page(self, items: list[Resource], phase: BindingPhase, token: str | None) -> SyncPage[Resource]:
        return SyncPage(items, encode_page_token(PageState(phase=phase, token=token)))

    def to_resource(self, name: str) -> Resource:
        rt = resource_type(self.type_id)
        return Resource(
            id=cluster_resource_id(self.type_id, name),
            display_name=name,
            traits=rt.traits,
            profile={"name": name},
        )


class KubeUserSyncer(BindingSubjectSyncer):
    type_id = ResourceTypeId.KUBE_USER
    subject_kind = SubjectKind.USER
    noun = "user"


class KubeGroupSyncer(BindingSubjectSyncer):
    type_id = ResourceTypeId.KUBE_GROUP
    subject_kind = SubjectKind.GROUP
    built_in = BUILT_IN_GROUPS
    noun = "group"
