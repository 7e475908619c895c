from rbacgraph.schemas.graph import MEMBER, Grant, ResourceId, ResourceTypeId
from rbacgraph.schemas.rbac import PolicyRule
from rbacgraph.services.k8s.grants import membership_grants, synthesize_permission_grants
from rbacgraph.services.k8s.verbs import STANDARD_VERBS

from .helpers import cluster_role_binding, role_binding, rule, subject


ROLE = ResourceId(resource_type=ResourceTypeId.ROLE, resource="team-a/reader")
CLUSTER_ROLE = ResourceId(resource_type=ResourceTypeId.CLUSTER_ROLE, resource="viewer")


def targets(grants):
    return {(str(g.target), g.entitlement) for g in grants}


class TestPermissionGrants:
    def test_one_edge_per_verb_and_type(self):
        grants = synthesize_permission_grants(
            ROLE, [rule(["get", "list"], ["pods", "configmaps", "secrets"])], "team-a"
        )
        assert len(grants) == 6
        assert targets(grants) == {
            (f"{type_id}:*", verb)
            for type_id in ("pod", "configmap", "secret")
            for verb in ("get", "list")
        }
        assert all(g.holder == ROLE for g in grants)

    def test_wildcard_verb_without_api_groups(self):
        grants = synthesize_permission_grants(ROLE, [PolicyRule(verbs=["*"], resources=["pods"])], "team-a")
        assert len(grants) == 8
        assert {g.entitlement for g in grants} == set(STANDARD_VERBS)
        assert all(g.target.resource_type is ResourceTypeId.POD and g.target.is_wildcard for g in grants)

    def test_unmapped_resource_is_skipped(self):
        grants = synthesize_permission_grants(
            ROLE,
            [rule(["get"], ["widgets", "pods"], api_groups=["custom.example.com", ""])],
            "team-a",
        )
        assert targets(grants) == {("pod:*", "get")}

    def test_only_unmapped_resources(self):
        assert synthesize_permission_grants(ROLE, [rule(["get"], ["*"], api_groups=["*"])]) == []

    def test_resource_names_in_role_namespace(self):
        grants = synthesize_permission_grants(
            ROLE, [rule(["get"], ["pods", "nodes"], names=["web"])], "team-a"
        )
        assert targets(grants) == {("pod:team-a/web", "get"), ("node:web", "get")}

    def test_cluster_role_resource_names_are_bare(self):
        grants = synthesize_permission_grants(CLUSTER_ROLE, [rule(["delete"], ["secrets"], names=["tls"])])
        assert targets(grants) == {("secret:tls", "delete")}

    def test_empty_resource_name_is_skipped(self):
        grants = synthesize_permission_grants(ROLE, [rule(["get"], ["pods"], names=["", "web"])], "team-a")
        assert targets(grants) == {("pod:team-a/web", "get")}

    def test_non_resource_urls_and_empty_verbs(self):
        rules = [
            PolicyRule(verbs=["get"], non_resource_urls=["/healthz"]),
            rule([], ["pods"]),
        ]
        assert synthesize_permission_grants(CLUSTER_ROLE, rules) == []

    def test_duplicate_rules_are_collapsed(self):
        rules = [rule(["get"], ["pods"]), rule(["get", "get"], ["pod"])]
        grants = synthesize_permission_grants(CLUSTER_ROLE, rules)
        assert grants == [Grant(entitlement="get", holder=CLUSTER_ROLE, target=grants[0].target)]


class TestMembershipGrants:
    def test_one_edge_per_subject(self):
        binding = role_binding(
            "rb",
            "team-a",
            "Role",
            "reader",
            subject("User", "alice"),
            subject("Group", "devs"),
            subject("ServiceAccount", "bot"),
        )
        grants = membership_grants(ROLE, [binding])
        assert [str(g.holder) for g in grants] == [
            "kube_user:alice",
            "kube_group:devs",
            "service_account:team-a/bot",
        ]
        assert all(g.entitlement == MEMBER and g.target == ROLE and g.scope is None for g in grants)

    def test_unresolvable_subjects_are_skipped(self):
        binding = cluster_role_binding(
            "crb",
            "viewer",
            subject("ServiceAccount", "orphan"),
            subject("Robot", "r2"),
            subject("User", "bob"),
        )
        grants = membership_grants(CLUSTER_ROLE, [binding])
        assert [str(g.holder) for g in grants] == ["kube_user:bob"]

    def test_scope_to_binding_namespace(self):
        binding = role_binding("rb", "team-b", "ClusterRole", "viewer", subject("User", "carol"))
        (grant,) = membership_grants(CLUSTER_ROLE, [binding], scope_to_binding=True)
        assert grant.scope == "team-b"
        assert grant.entitlement_slug == "team-b:member"

    def test_cluster_role_binding_slug(self):
        binding = cluster_role_binding("crb", "viewer", subject("User", "dave"))
        (grant,) = membership_grants(CLUSTER_ROLE, [binding], scope_to_binding=True)
        assert grant.scope is None
        assert grant.entitlement_slug == "all:member"

    def test_role_membership_slug(self):
        binding = role_binding("rb", "team-a", "Role", "reader", subject("User", "alice"))
        (grant,) = membership_grants(ROLE, [binding])
        assert grant.entitlement_slug == "member"
