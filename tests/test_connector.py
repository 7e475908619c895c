import pytest

from rbacgraph.connector import KubernetesConnector
from rbacgraph.exceptions import InvalidPageTokenError, UnknownResourceTypeError, UpstreamFetchError
from rbacgraph.schemas.graph import ResourceId, ResourceTypeId
from rbacgraph.services.k8s.pagination import decode_page_token
from rbacgraph.services.syncers.binding_subjects import BUILT_IN_GROUPS

from .helpers import FakeKubeClient, role_binding, subject


pytestmark = pytest.mark.asyncio


@pytest.fixture
def connector(cluster, settings) -> KubernetesConnector:
    return KubernetesConnector(cluster, settings)


def rid(type_id: ResourceTypeId, resource: str) -> ResourceId:
    return ResourceId(resource_type=type_id, resource=resource)


async def test_validate_lists_one_namespace(connector, cluster):
    await connector.validate()
    assert cluster.limits == [1]


@pytest.mark.parametrize(
    "status,prefix",
    [
        (401, "Unauthorized access"),
        (403, "Forbidden access"),
        (500, "Validating Kubernetes connection failed"),
    ],
)
async def test_validate_failures(connector, cluster, status, prefix):
    cluster.fail_next["namespaces"] = UpstreamFetchError("denied", upstream_status=status)
    with pytest.raises(UpstreamFetchError) as info:
        await connector.validate()
    assert info.value.message.startswith(prefix)
    assert info.value.upstream_status == status


async def test_syncer_lookup(connector):
    assert connector.syncer("role") is connector.syncer(ResourceTypeId.ROLE)
    for unknown in ("widget", "binding"):
        with pytest.raises(UnknownResourceTypeError):
            connector.syncer(unknown)


async def test_pods_can_be_left_out(cluster, settings):
    connector = KubernetesConnector(cluster, settings.model_copy(update={"sync_pods": False}))
    type_ids = [s.type_id for s in connector.resource_syncers()]
    assert ResourceTypeId.POD not in type_ids
    assert len(type_ids) == 12


async def test_full_sync(connector, cluster):
    snapshot = await connector.sync()

    assert len(snapshot.resource_types) == 13
    assert [r.display_name for r in snapshot.resources_of(ResourceTypeId.KUBE_GROUP)] == [
        *BUILT_IN_GROUPS,
        "team-b-devs",
    ]
    assert [r.display_name for r in snapshot.resources_of(ResourceTypeId.KUBE_USER)] == ["alice", "root-admin"]
    assert [r.id.resource for r in snapshot.resources_of(ResourceTypeId.CLUSTER_ROLE)] == [
        "*",
        "secret-admin",
        "node-viewer",
    ]

    memberships = [g for g in snapshot.grants if g.is_membership]
    assert len(memberships) == 4
    assert len(snapshot.grants) == 4 + 2 + 8 + 1

    cluster_role_slugs = {
        e.slug for e in snapshot.entitlements if e.resource == rid(ResourceTypeId.CLUSTER_ROLE, "secret-admin")
    }
    assert cluster_role_slugs == {"all:member", "team-a:member", "team-b:member"}

    # one binding snapshot serves every Role and ClusterRole
    assert connector.bindings.load_count == 1
    assert cluster.calls["get_cluster_role"] == 2


async def test_permission_graph_is_cached(connector, cluster):
    graph = await connector.permission_graph()
    assert graph.can(rid(ResourceTypeId.KUBE_USER, "alice"), "list", rid(ResourceTypeId.POD, "team-a/web"))
    assert not graph.can(rid(ResourceTypeId.KUBE_USER, "alice"), "list", rid(ResourceTypeId.POD, "team-b/web"))

    assert await connector.permission_graph() is graph
    assert cluster.calls["roles"] == 1

    refreshed = await connector.permission_graph(refresh=True)
    assert refreshed is not graph
    assert cluster.calls["roles"] == 2


async def test_sync_failure_propagates(connector, cluster):
    cluster.fail_next["rolebindings"] = UpstreamFetchError("gone", upstream_status=500)
    with pytest.raises(UpstreamFetchError):
        await connector.sync()


def _three_users() -> FakeKubeClient:
    return FakeKubeClient(
        page_size=1,
        role_bindings=[
            role_binding(f"rb-{name}", "team-a", "Role", "reader", subject("User", name))
            for name in ("alice", "bob", "carol")
        ],
    )


async def _drain_listing(connector, token="") -> tuple[list[str], str]:
    page = await connector.list_page("kube_user", token)
    return [r.display_name for r in page.items], page.next_page_token


async def test_interleaved_listings_keep_their_own_seen_set(settings):
    connector = KubernetesConnector(_three_users(), settings)

    first_a, token_a = await _drain_listing(connector)
    first_b, token_b = await _drain_listing(connector)
    assert first_a == first_b == ["alice"]
    assert decode_page_token(token_a).listing != decode_page_token(token_b).listing

    names_a, names_b = list(first_a), list(first_b)
    while token_a:
        page, token_a = await _drain_listing(connector, token_a)
        names_a.extend(page)
    while token_b:
        page, token_b = await _drain_listing(connector, token_b)
        names_b.extend(page)

    assert names_a == ["alice", "bob", "carol"]
    assert names_b == ["alice", "bob", "carol"]


async def test_finished_listing_is_forgotten(settings):
    connector = KubernetesConnector(_three_users(), settings)
    token = ""
    tokens = []
    while True:
        _, token = await _drain_listing(connector, token)
        if not token:
            break
        tokens.append(token)

    with pytest.raises(InvalidPageTokenError):
        await connector.list_page("kube_user", tokens[-1])


async def test_listing_token_is_bound_to_its_type(settings):
    connector = KubernetesConnector(_three_users(), settings)
    _, token = await _drain_listing(connector)
    with pytest.raises(InvalidPageTokenError):
        await connector.list_page("kube_group", token)
