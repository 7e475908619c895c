from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable

import structlog
from cachetools import TTLCache

from .config import Settings, get_settings
from .exceptions import InvalidPageTokenError, UnknownResourceTypeError, UpstreamFetchError
from .schemas.graph import ConnectorMetadata, Resource, ResourceTypeId, SyncSnapshot
from .services.graph import PermissionGraph
from .services.k8s.bindings import BindingCache
from .services.k8s.client import KubeClient
from .services.k8s.pagination import decode_page_token, encode_page_token
from .services.syncers.base import ResourceSyncer, SyncPage
from .services.syncers.binding_subjects import KubeGroupSyncer, KubeUserSyncer
from .services.syncers.cluster_role import ClusterRoleSyncer
from .services.syncers.inventory import InventorySyncer
from .services.syncers.role import RoleSyncer

logger = structlog.get_logger(__name__)

_INVENTORY_ORDER = (
    ResourceTypeId.NAMESPACE,
    ResourceTypeId.SERVICE_ACCOUNT,
)
_INVENTORY_TAIL = (
    ResourceTypeId.SECRET,
    ResourceTypeId.CONFIGMAP,
    ResourceTypeId.NODE,
    ResourceTypeId.DEPLOYMENT,
    ResourceTypeId.STATEFULSET,
    ResourceTypeId.DAEMONSET,
)


async def _drain_pages(fetch: Callable[[str], Awaitable[SyncPage]]) -> list:
    items: list = []
    token = ""
    while True:
        page = await fetch(token)
        items.extend(page.items)
        if not page.next_page_token:
            return items
        token = page.next_page_token


class KubernetesConnector:
    """Owns the cluster client and the binding snapshot shared by the RBAC syncers."""

    def __init__(self, client: KubeClient, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.client = client
        self.bindings = BindingCache(client, ttl_seconds=self.settings.binding_cache_ttl_seconds)
        self._syncers: dict[ResourceTypeId, ResourceSyncer] | None = None
        self._graph: PermissionGraph | None = None
        self._graph_lock = asyncio.Lock()
        # listing id -> syncer serving that listing's follow-up pages
        self._listings: TTLCache[str, ResourceSyncer] = TTLCache(
            maxsize=1024, ttl=self.settings.listing_ttl_seconds
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> KubernetesConnector:
        settings = settings or get_settings()
        return cls(KubeClient(settings), settings)

    def metadata(self) -> ConnectorMetadata:
        return ConnectorMetadata(cluster=self.client.cluster_display_name)

    async def validate(self) -> None:
        """List a single namespace to prove connectivity and credentials."""
        try:
            await self.client.list_namespaces(limit=1)
        except UpstreamFetchError as exc:
            if exc.upstream_status == 401:
                message = "Unauthorized access to Kubernetes API"
            elif exc.upstream_status == 403:
                message = "Forbidden access to Kubernetes API (check RBAC permissions)"
            else:
                message = "Validating Kubernetes connection failed"
            logger.warning("connector.validate_failed", status=exc.upstream_status, error=exc.message)
            raise UpstreamFetchError(
                f"{message}: {exc.message}",
                upstream_status=exc.upstream_status,
                details=exc.details,
            ) from exc
        logger.info("connector.validated", cluster=self.client.cluster_display_name)

    def resource_syncers(self) -> list[ResourceSyncer]:
        """A fresh syncer per resource type; binding-subject seen-sets start empty."""
        syncers: list[ResourceSyncer] = [InventorySyncer.for_type(self.client, t) for t in _INVENTORY_ORDER]
        syncers.append(RoleSyncer(self.client, self.bindings))
        syncers.append(
            ClusterRoleSyncer(
                self.client,
                self.bindings,
                namespace_ttl_seconds=self.settings.namespace_cache_ttl_seconds,
            )
        )
        syncers.extend(InventorySyncer.for_type(self.client, t) for t in _INVENTORY_TAIL)
        if self.settings.sync_pods:
            syncers.append(InventorySyncer.for_type(self.client, ResourceTypeId.POD))
        syncers.append(KubeUserSyncer(self.client))
        syncers.append(KubeGroupSyncer(self.client))
        return syncers

    def syncer(self, type_id: ResourceTypeId | str) -> ResourceSyncer:
        """Long-lived syncer for entitlement and grant lookups, e.g. from the HTTP API."""
        if self._syncers is None:
            self._syncers = {s.type_id: s for s in self.resource_syncers()}
        try:
            return self._syncers[ResourceTypeId(type_id)]
        except (KeyError, ValueError):
            raise UnknownResourceTypeError(
                f"No syncer for resource type {type_id!s}",
                details={"resource_type": str(type_id)},
            ) from None

    async def list_page(self, type_id: ResourceTypeId | str, page_token: str = "") -> SyncPage[Resource]:
        """One page of a resource listing driven by an external caller.

        Every listing gets its own syncer instance, found again through the
        listing id carried in the page token, so concurrent listings never
        share a binding-subject seen-set.
        """
        key = self.syncer(type_id).type_id
        state = decode_page_token(page_token)
        if state.listing is None:
            listing = uuid.uuid4().hex
            syncer = next(s for s in self.resource_syncers() if s.type_id is key)
        else:
            listing = state.listing
            syncer = self._listings.get(listing)
            if syncer is None or syncer.type_id is not key:
                raise InvalidPageTokenError(
                    "Page token does not belong to an active listing",
                    details={"resource_type": key.value},
                )

        page = await syncer.list(None, page_token)
        if not page.next_page_token:
            self._listings.pop(listing, None)
            return page

        self._listings[listing] = syncer
        next_state = decode_page_token(page.next_page_token).model_copy(update={"listing": listing})
        return SyncPage(page.items, encode_page_token(next_state))

    async def sync(self) -> SyncSnapshot:
        """Drain List, Entitlements and Grants of every syncer into one snapshot."""
        snapshot = SyncSnapshot()
        for syncer in self.resource_syncers():
            type_id = syncer.type_id
            snapshot.resource_types.append(syncer.resource_type())

            resources: list[Resource] = await _drain_pages(lambda token: syncer.list(None, token))
            snapshot.resources.extend(resources)
            for resource in resources:
                snapshot.entitlements.extend(
                    await _drain_pages(lambda token: syncer.entitlements(resource, token))
                )
                snapshot.grants.extend(await _drain_pages(lambda token: syncer.grants(resource, token)))
            logger.info("connector.synced_type", resource_type=type_id.value, resources=len(resources))

        logger.info(
            "connector.sync_complete",
            resources=len(snapshot.resources),
            entitlements=len(snapshot.entitlements),
            grants=len(snapshot.grants),
        )
        return snapshot

    async def permission_graph(self, refresh: bool = False) -> PermissionGraph:
        """Graph of the last full sync; the first call, or ``refresh``, runs a new one."""
        async with self._graph_lock:
            if self._graph is None or refresh:
                snapshot = await self.sync()
                self._graph = PermissionGraph(snapshot.grants)
            return self._graph
