from fastapi import APIRouter, Depends, Query

from ...connector import KubernetesConnector
from ...dependencies import get_connector
from ...schemas.graph import (
    CanIResponse,
    ConnectorMetadata,
    Entitlement,
    Grant,
    GrantPathOut,
    PageResponse,
    Resource,
    ResourceId,
    ResourceType,
)
from ...services.k8s.identifiers import format_resource_id, parse_typed_id


router = APIRouter(prefix="/sync", tags=["sync"])


def _resource_ref(connector: KubernetesConnector, resource_type: str, resource_id: str) -> Resource:
    syncer = connector.syncer(resource_type)
    rid = format_resource_id(syncer.type_id, resource_id)
    return Resource(id=rid, display_name=resource_id.rpartition("/")[2])


@router.get("/metadata", response_model=ConnectorMetadata)
async def get_metadata(connector: KubernetesConnector = Depends(get_connector)) -> ConnectorMetadata:
    return connector.metadata()


@router.get("/resource-types", response_model=list[ResourceType], summary="List synced resource types")
async def list_resource_types(connector: KubernetesConnector = Depends(get_connector)) -> list[ResourceType]:
    return [s.resource_type() for s in connector.resource_syncers()]


@router.get("/can-i", response_model=CanIResponse, summary="Check a single permission")
async def can_i(
    principal: str = Query(..., description="<type>:<id>, e.g. kube_user:alice"),
    verb: str = Query(...),
    target: str = Query(..., description="<type>:<id>, e.g. pod:default/web"),
    refresh: bool = Query(default=False, description="Run a new full sync first"),
    connector: KubernetesConnector = Depends(get_connector),
) -> CanIResponse:
    principal_id = parse_typed_id(principal)
    target_id = parse_typed_id(target)
    graph = await connector.permission_graph(refresh=refresh)
    paths = graph.explain(principal_id, verb, target_id)
    return CanIResponse(
        allowed=bool(paths),
        principal=principal_id,
        verb=verb,
        target=target_id,
        paths=[
            GrantPathOut(
                role=path.membership.target,
                scope=path.membership.scope,
                permission_target=path.permission.target,
            )
            for path in paths
        ],
    )


@router.get("/who-can", response_model=list[ResourceId], summary="Principals holding a verb on a target")
async def who_can(
    verb: str = Query(...),
    target: str = Query(...),
    connector: KubernetesConnector = Depends(get_connector),
) -> list[ResourceId]:
    graph = await connector.permission_graph()
    return graph.who_can(verb, parse_typed_id(target))


@router.get("/{resource_type}/resources", response_model=PageResponse[Resource])
async def list_resources(
    resource_type: str,
    page_token: str = Query(default=""),
    connector: KubernetesConnector = Depends(get_connector),
) -> PageResponse[Resource]:
    page = await connector.list_page(resource_type, page_token)
    return PageResponse[Resource](items=page.items, next_page_token=page.next_page_token)


@router.get("/{resource_type}/resources/{resource_id:path}/entitlements", response_model=PageResponse[Entitlement])
async def list_entitlements(
    resource_type: str,
    resource_id: str,
    page_token: str = Query(default=""),
    connector: KubernetesConnector = Depends(get_connector),
) -> PageResponse[Entitlement]:
    resource = _resource_ref(connector, resource_type, resource_id)
    page = await connector.syncer(resource_type).entitlements(resource, page_token)
    return PageResponse[Entitlement](items=page.items, next_page_token=page.next_page_token)


@router.get("/{resource_type}/resources/{resource_id:path}/grants", response_model=PageResponse[Grant])
async def list_grants(
    resource_type: str,
    resource_id: str,
    page_token: str = Query(default=""),
    connector: KubernetesConnector = Depends(get_connector),
) -> PageResponse[Grant]:
    resource = _resource_ref(connector, resource_type, resource_id)
    page = await connector.syncer(resource_type).grants(resource, page_token)
    return PageResponse[Grant](items=page.items, next_page_token=page.next_page_token)
