import pytest

from rbacgraph.config import Settings
from rbacgraph.schemas.graph import ResourceTypeId

from .helpers import (
    FakeKubeClient,
    cluster_role_binding,
    kube_object,
    make_cluster_role,
    make_role,
    role_binding,
    rule,
    subject,
)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, app_env="test", namespace_cache_ttl_seconds=300, binding_cache_ttl_seconds=0)


@pytest.fixture
def cluster() -> FakeKubeClient:
    """A small cluster: one namespaced Role, one ClusterRole bound both ways."""
    return FakeKubeClient(
        roles=[make_role("team-a", "pod-reader", rule(["get", "list"], ["pods"]))],
        cluster_roles=[
            make_cluster_role("secret-admin", rule(["*"], ["secrets"])),
            make_cluster_role("node-viewer", rule(["get"], ["nodes"])),
        ],
        role_bindings=[
            role_binding("read-pods", "team-a", "Role", "pod-reader", subject("User", "alice")),
            role_binding(
                "team-b-secrets",
                "team-b",
                "ClusterRole",
                "secret-admin",
                subject("Group", "team-b-devs"),
                subject("ServiceAccount", "deployer"),
            ),
        ],
        cluster_role_bindings=[
            cluster_role_binding("global-secrets", "secret-admin", subject("User", "root-admin")),
        ],
        objects={
            ResourceTypeId.NAMESPACE: [
                kube_object("Namespace", "team-a", **{"status.phase": "Active"}),
                kube_object("Namespace", "team-b", **{"status.phase": "Active"}),
            ],
            ResourceTypeId.SERVICE_ACCOUNT: [kube_object("ServiceAccount", "deployer", "team-b")],
            ResourceTypeId.POD: [kube_object("Pod", "web", "team-a", phase="Running")],
            ResourceTypeId.SECRET: [kube_object("Secret", "db-password", "team-b", type="Opaque")],
            ResourceTypeId.NODE: [kube_object("Node", "node-1")],
        },
    )
