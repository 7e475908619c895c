import pytest
from fastapi.testclient import TestClient

from rbacgraph.connector import KubernetesConnector
from rbacgraph.dependencies import get_connector
from rbacgraph.exceptions import UpstreamFetchError
from rbacgraph.main import app

from .helpers import FakeKubeClient, role_binding, subject


@pytest.fixture
def connector(cluster, settings) -> KubernetesConnector:
    return KubernetesConnector(cluster, settings)


@pytest.fixture
def api(connector):
    app.dependency_overrides[get_connector] = lambda: connector
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def data(resp):
    body = resp.json()
    assert body["success"] is True
    return body["data"]


def error(resp):
    body = resp.json()
    assert body["success"] is False
    return body["error"]


def test_health(api):
    assert data(api.get("/health")) == {"status": "healthy"}


def test_request_id_is_echoed(api):
    resp = api.get("/api/sync/metadata", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"
    assert resp.json()["request_id"] == "req-123"
    assert data(resp)["cluster"] == "test-cluster"


def test_resource_types(api):
    types = data(api.get("/api/sync/resource-types"))
    assert [t["id"] for t in types][:4] == ["namespace", "service_account", "role", "cluster_role"]
    assert types[-1]["id"] == "kube_group"


def test_list_resources(api):
    page = data(api.get("/api/sync/role/resources"))
    assert [item["id"]["resource"] for item in page["items"]] == ["*", "team-a/pod-reader"]
    assert page["next_page_token"] == ""


def test_user_listing_pages_through_phases(api):
    names, token = [], ""
    for _ in range(5):
        page = data(api.get("/api/sync/kube_user/resources", params={"page_token": token}))
        names.extend(item["display_name"] for item in page["items"])
        token = page["next_page_token"]
        if not token:
            break
    assert names == ["alice", "root-admin"]


def test_grants(api):
    page = data(api.get("/api/sync/cluster_role/resources/secret-admin/grants"))
    slugs = sorted(g["entitlement_slug"] for g in page["items"] if g["entitlement"] == "member")
    assert slugs == ["all:member", "team-b:member", "team-b:member"]


def test_namespaced_grants_path(api):
    page = data(api.get("/api/sync/role/resources/team-a/pod-reader/grants"))
    assert len(page["items"]) == 3


def test_entitlements(api):
    page = data(api.get("/api/sync/pod/resources/team-a/web/entitlements"))
    slugs = [e["slug"] for e in page["items"]]
    assert slugs[-2:] == ["exec", "portforward"]
    assert page["items"][0]["id"] == "pod:team-a/web:get"


def test_can_i(api):
    body = data(
        api.get(
            "/api/sync/can-i",
            params={"principal": "kube_group:team-b-devs", "verb": "delete", "target": "secret:team-b/db-password"},
        )
    )
    assert body["allowed"] is True
    (path,) = body["paths"]
    assert path["role"] == {"resource_type": "cluster_role", "resource": "secret-admin"}
    assert path["scope"] == "team-b"

    denied = data(
        api.get(
            "/api/sync/can-i",
            params={"principal": "kube_group:team-b-devs", "verb": "delete", "target": "secret:team-a/other"},
        )
    )
    assert denied == {**denied, "allowed": False, "paths": []}


def test_who_can(api):
    principals = data(api.get("/api/sync/who-can", params={"verb": "get", "target": "secret:team-b/db-password"}))
    assert [f"{p['resource_type']}:{p['resource']}" for p in principals] == [
        "kube_group:team-b-devs",
        "kube_user:root-admin",
        "service_account:team-b/deployer",
    ]


@pytest.mark.parametrize(
    "path,status,code",
    [
        ("/api/sync/widget/resources", 404, "UNKNOWN_RESOURCE_TYPE"),
        ("/api/sync/role/resources/pod-reader/grants", 400, "MALFORMED_RESOURCE_ID"),
        ("/api/sync/role/resources?page_token=%25%25", 400, "INVALID_PAGE_TOKEN"),
        ("/api/sync/can-i?principal=alice&verb=get&target=pod:a/b", 400, "MALFORMED_RESOURCE_ID"),
        ("/api/sync/can-i?verb=get", 422, "VALIDATION_ERROR"),
    ],
)
def test_errors(api, path, status, code):
    resp = api.get(path)
    assert resp.status_code == status
    assert error(resp)["code"] == code
    assert resp.json()["status_code"] == status


def test_upstream_failure(api, cluster):
    cluster.fail_next["roles"] = UpstreamFetchError("boom", upstream_status=503)
    resp = api.get("/api/sync/role/resources")
    assert resp.status_code == 502
    assert error(resp)["details"]["upstream_status"] == 503


def test_new_listing_starts_with_empty_seen_set(api):
    first = data(api.get("/api/sync/kube_group/resources"))
    second = data(api.get("/api/sync/kube_group/resources"))
    assert [g["display_name"] for g in second["items"]] == [g["display_name"] for g in first["items"]]
    assert first["items"][0]["display_name"] == "system:masters"


def test_interleaved_user_listings(settings):
    client = FakeKubeClient(
        page_size=1,
        role_bindings=[
            role_binding(f"rb-{name}", "ns", "Role", "reader", subject("User", name))
            for name in ("alice", "bob", "carol")
        ],
    )
    connector = KubernetesConnector(client, settings)
    app.dependency_overrides[get_connector] = lambda: connector

    def page(token):
        body = data(api.get("/api/sync/kube_user/resources", params={"page_token": token}))
        return [item["display_name"] for item in body["items"]], body["next_page_token"]

    try:
        with TestClient(app) as api:
            names_a, token_a = page("")
            names_b, token_b = page("")
            while token_a:
                names, token_a = page(token_a)
                names_a.extend(names)
            while token_b:
                names, token_b = page(token_b)
                names_b.extend(names)
    finally:
        app.dependency_overrides.clear()

    assert names_a == ["alice", "bob", "carol"]
    assert names_b == ["alice", "bob", "carol"]
