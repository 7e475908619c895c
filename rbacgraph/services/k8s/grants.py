"""Compile Roles/ClusterRoles and their bindings into grant edges.

Two edge classes are produced and never composed here:

* membership: ``subject --member--> role``, one per (binding, subject)
* permission: ``role --verb--> target``, from the role's own rules

A consumer chains them to answer "can subject verb target".
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence

import structlog

from ...exceptions import MalformedResourceIdError, UnresolvableSubjectError
from ...schemas.graph import MEMBER, WILDCARD, Grant, ResourceId
from ...schemas.rbac import ClusterRoleBinding, PolicyRule, RoleBinding
from .identifiers import cluster_resource_id, format_resource_id, namespaced_resource_id
from .resource_types import MappedType, map_resource_type
from .subjects import resolve_subject
from .verbs import normalize_verbs

logger = structlog.get_logger(__name__)


def membership_grants(
    role: ResourceId,
    bindings: Iterable[RoleBinding | ClusterRoleBinding],
    *,
    scope_to_binding: bool = False,
) -> list[Grant]:
    """One ``member`` grant per resolvable subject of ``bindings``.

    With ``scope_to_binding`` a RoleBinding's namespace becomes the grant
    scope; this is how a ClusterRole bound inside one namespace is recorded.
    Unresolvable subjects are logged and skipped.
    """
    grants: list[Grant] = []
    for binding in bindings:
        namespace = binding.namespace
        scope = (namespace or None) if scope_to_binding else None
        for subject in binding.subjects:
            try:
                principal = resolve_subject(subject, namespace)
            except UnresolvableSubjectError as exc:
                logger.warning(
                    "rbac.subject_skipped",
                    role=str(role),
                    binding=binding.name,
                    binding_namespace=namespace,
                    subject_kind=subject.kind,
                    subject_name=subject.name,
                    error=exc.message,
                )
                continue
            grants.append(Grant(entitlement=MEMBER, holder=principal, target=role, scope=scope))
    return grants


def synthesize_permission_grants(
    holder: ResourceId,
    rules: Sequence[PolicyRule],
    role_namespace: str = "",
) -> list[Grant]:
    """Permission edges ``holder --verb--> target`` for every rule of a role.

    ``role_namespace`` is empty for ClusterRoles. Rules naming
    ``resourceNames`` target those objects (``<ns>/<name>`` for namespaced
    types when the role has a namespace, else ``<name>``); other rules target
    the type wildcard ``*``. Non-resource URL rules, empty verb sets and
    unmapped ``(apiGroup, resource)`` pairs contribute nothing.
    """
    grants: dict[Grant, None] = {}
    for index, rule in enumerate(rules):
        if rule.non_resource_urls:
            logger.debug(
                "rbac.rule_skipped",
                holder=str(holder),
                rule_index=index,
                reason="non_resource_urls",
                urls=rule.non_resource_urls,
            )
            continue

        verbs = normalize_verbs(rule.verbs)
        if not verbs:
            logger.debug("rbac.rule_skipped", holder=str(holder), rule_index=index, reason="no_verbs")
            continue

        # a rule without apiGroups names core resources
        for api_group in rule.api_groups or [""]:
            for resource in rule.resources:
                mapped = map_resource_type(api_group, resource)
                if mapped is None:
                    logger.debug(
                        "rbac.unmapped_resource",
                        holder=str(holder),
                        rule_index=index,
                        api_group=api_group,
                        resource=resource,
                    )
                    continue
                for target in _targets(holder, index, mapped, rule.resource_names, role_namespace):
                    for verb in verbs:
                        grants.setdefault(Grant(entitlement=verb, holder=holder, target=target), None)
    return list(grants)


def _targets(
    holder: ResourceId,
    rule_index: int,
    mapped: MappedType,
    resource_names: Sequence[str],
    role_namespace: str,
) -> Iterator[ResourceId]:
    if not resource_names:
        yield format_resource_id(mapped.type_id, WILDCARD)
        return

    for name in resource_names:
        try:
            if role_namespace and mapped.namespaced:
                yield namespaced_resource_id(mapped.type_id, role_namespace, name)
            else:
                yield cluster_resource_id(mapped.type_id, name)
        except MalformedResourceIdError as exc:
            logger.warning(
                "rbac.target_skipped",
                holder=str(holder),
                rule_index=rule_index,
                target_type=mapped.type_id.value,
                resource_name=name,
                error=exc.message,
            )
