from __future__ import annotations

from ...exceptions import UnresolvableSubjectError, UnsupportedSubjectKindError
from ...schemas.graph import ResourceId, ResourceTypeId
from ...schemas.rbac import Subject, SubjectKind


def resolve_subject(subject: Subject, binding_namespace: str = "") -> ResourceId:
    """Map a binding subject to the principal it names.

    A ServiceAccount without a namespace inherits ``binding_namespace``.
    User and Group names are used verbatim, ``system:`` prefixes included.
    """
    kind = subject.subject_kind
    if kind is SubjectKind.SERVICE_ACCOUNT:
        namespace = subject.namespace or binding_namespace
        if not namespace or not subject.name:
            raise UnresolvableSubjectError(
                f"Service account subject {subject.name!r} has no namespace",
                details={"subject": subject.model_dump()},
            )
        return ResourceId(resource_type=ResourceTypeId.SERVICE_ACCOUNT, resource=f"{namespace}/{subject.name}")
    if kind is SubjectKind.USER or kind is SubjectKind.GROUP:
        if not subject.name:
            raise UnresolvableSubjectError(
                f"{kind.value} subject has an empty name",
                details={"subject": subject.model_dump()},
            )
        type_id = ResourceTypeId.KUBE_USER if kind is SubjectKind.USER else ResourceTypeId.KUBE_GROUP
        return ResourceId(resource_type=type_id, resource=subject.name)
    raise UnsupportedSubjectKindError(
        f"Unsupported subject kind: {subject.kind}",
        details={"subject": subject.model_dump()},
    )
