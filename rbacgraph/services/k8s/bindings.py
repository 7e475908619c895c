from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

import structlog

from ...schemas.rbac import ClusterRoleBinding, RoleBinding, RoleRefKind
from .pagination import Page

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class BindingSource(Protocol):
    async def list_role_bindings(self, continue_token: str | None = None) -> Page[RoleBinding]: ...

    async def list_cluster_role_bindings(self, continue_token: str | None = None) -> Page[ClusterRoleBinding]: ...


async def drain(fetch: Callable[[str | None], Awaitable[Page[T]]]) -> list[T]:
    """Follow ``continue`` tokens until the upstream list is exhausted."""
    items: list[T] = []
    token: str | None = None
    while True:
        page = await fetch(token)
        items.extend(page.items)
        if not page.continue_token:
            return items
        token = page.continue_token


class BindingCache:
    """Snapshot of every RoleBinding and ClusterRoleBinding in the cluster.

    The first query loads both lists in full; concurrent first queries wait
    on that single load instead of issuing their own. A failed load publishes
    nothing, so the next query starts over. With ``ttl_seconds`` of 0 the
    snapshot is kept for the lifetime of the cache; a positive TTL makes the
    first query after expiry reload it under the same guarantees.
    """

    def __init__(
        self,
        source: BindingSource,
        *,
        ttl_seconds: float = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        self._role_bindings: tuple[RoleBinding, ...] = ()
        self._cluster_role_bindings: tuple[ClusterRoleBinding, ...] = ()
        self._loaded = False
        self._loaded_at = 0.0
        self.load_count = 0

    @property
    def loaded(self) -> bool:
        if not self._loaded:
            return False
        return not self._ttl or self._clock() - self._loaded_at < self._ttl

    async def ensure_loaded(self) -> None:
        if self.loaded:
            return

        async with self._lock:
            if self.loaded:
                return

            logger.debug("rbac.binding_cache_loading", reload=self._loaded)
            self._loaded = False
            try:
                role_bindings = await drain(self._source.list_role_bindings)
                cluster_role_bindings = await drain(self._source.list_cluster_role_bindings)
            except Exception as exc:
                logger.warning("rbac.binding_cache_load_failed", error=str(exc))
                raise

            self._role_bindings = tuple(role_bindings)
            self._cluster_role_bindings = tuple(cluster_role_bindings)
            self._loaded_at = self._clock()
            self._loaded = True
            self.load_count += 1
            logger.info(
                "rbac.binding_cache_loaded",
                role_bindings=len(role_bindings),
                cluster_role_bindings=len(cluster_role_bindings),
            )

    async def matching_for_role(self, namespace: str, role_name: str) -> list[RoleBinding]:
        """RoleBindings in ``namespace`` whose roleRef is the Role ``role_name``."""
        await self.ensure_loaded()
        return [
            rb
            for rb in self._role_bindings
            if rb.namespace == namespace and rb.role_ref.ref_kind is RoleRefKind.ROLE and rb.role_ref.name == role_name
        ]

    async def matching_for_cluster_role(self, name: str) -> tuple[list[RoleBinding], list[ClusterRoleBinding]]:
        """RoleBindings and ClusterRoleBindings whose roleRef is the ClusterRole ``name``."""
        await self.ensure_loaded()
        role_bindings = [
            rb
            for rb in self._role_bindings
            if rb.role_ref.ref_kind is RoleRefKind.CLUSTER_ROLE and rb.role_ref.name == name
        ]
        cluster_role_bindings = [
            crb
            for crb in self._cluster_role_bindings
            if crb.role_ref.ref_kind is RoleRefKind.CLUSTER_ROLE and crb.role_ref.name == name
        ]
        return role_bindings, cluster_role_bindings
