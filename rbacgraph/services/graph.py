"""Point and bulk queries over a compiled grant set.

Membership edges (principal -> role) and permission edges (role -> target)
are kept separate and composed at query time.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from typing import NamedTuple, Optional

from ..schemas.graph import Grant, ResourceId, ResourceTypeId
from .k8s.resource_types import is_namespaced

_ROLE_TYPES = (ResourceTypeId.ROLE, ResourceTypeId.CLUSTER_ROLE)


class GrantPath(NamedTuple):
    """Why a principal holds a verb on a target: the membership and the permission used."""

    membership: Grant
    permission: Grant


def _namespace_constraint(membership: Grant) -> Optional[str]:
    role = membership.target
    if role.resource_type is ResourceTypeId.ROLE:
        return role.resource.partition("/")[0]
    return membership.scope


def _covers(granted: ResourceId, constraint: Optional[str], target: ResourceId) -> bool:
    if granted.resource_type is not target.resource_type:
        return False

    namespaced = is_namespaced(target.resource_type)
    if constraint is not None:
        # a namespace-bound role reaches neither cluster-scoped objects nor the type as a whole
        if not namespaced or target.is_wildcard:
            return False
        if target.resource.partition("/")[0] != constraint:
            return False

    if granted.is_wildcard or granted.resource == target.resource:
        return True
    # ClusterRole resourceNames carry the bare object name
    if namespaced and "/" not in granted.resource and not target.is_wildcard:
        return target.resource.partition("/")[2] == granted.resource
    return False


class PermissionGraph:
    def __init__(self, grants: Iterable[Grant] = ()) -> None:
        self._memberships: dict[ResourceId, list[Grant]] = defaultdict(list)
        self._permissions: dict[ResourceId, list[Grant]] = defaultdict(list)
        for grant in grants:
            self.add(grant)

    def add(self, grant: Grant) -> None:
        if grant.is_membership and grant.target.resource_type in _ROLE_TYPES:
            self._memberships[grant.holder].append(grant)
        elif grant.holder.resource_type in _ROLE_TYPES:
            self._permissions[grant.holder].append(grant)

    @property
    def principals(self) -> list[ResourceId]:
        return sorted(self._memberships, key=str)

    def roles_of(self, principal: ResourceId) -> list[Grant]:
        return list(self._memberships.get(principal, ()))

    def explain(
        self,
        principal: ResourceId,
        verb: str,
        target: ResourceId,
        groups: Iterable[ResourceId] = (),
    ) -> list[GrantPath]:
        """Every (membership, permission) pair letting ``principal`` ``verb`` ``target``.

        ``groups`` are extra identities the principal acts as, e.g. the groups
        an authenticated user belongs to.
        """
        paths: list[GrantPath] = []
        for identity in (principal, *groups):
            for membership in self._memberships.get(identity, ()):
                constraint = _namespace_constraint(membership)
                for permission in self._permissions.get(membership.target, ()):
                    if permission.entitlement != verb:
                        continue
                    if _covers(permission.target, constraint, target):
                        paths.append(GrantPath(membership, permission))
        return paths

    def can(
        self,
        principal: ResourceId,
        verb: str,
        target: ResourceId,
        groups: Iterable[ResourceId] = (),
    ) -> bool:
        return bool(self.explain(principal, verb, target, groups))

    def who_can(self, verb: str, target: ResourceId) -> list[ResourceId]:
        """Principals holding ``verb`` on ``target`` through some role, sorted by id."""
        return [p for p in self.principals if self.explain(p, verb, target)]
