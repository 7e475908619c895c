"""Typed RBAC objects, parsed once from kubernetes client models at the API boundary."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SubjectKind(str, Enum):
    USER = "User"
    GROUP = "Group"
    SERVICE_ACCOUNT = "ServiceAccount"


class RoleRefKind(str, Enum):
    ROLE = "Role"
    CLUSTER_ROLE = "ClusterRole"


def _safe_get(obj: Any, *attrs: str, default: Any = None) -> Any:
    for attr in attrs:
        obj = getattr(obj, attr, None)
        if obj is None:
            return default
    return obj


def _string_map(value: Any) -> dict[str, str]:
    return {str(k): str(v) for k, v in (value or {}).items()}


class PolicyRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    verbs: list[str] = Field(default_factory=list)
    api_groups: list[str] = Field(default_factory=list)
    resources: list[str] = Field(default_factory=list)
    resource_names: list[str] = Field(default_factory=list)
    non_resource_urls: list[str] = Field(default_factory=list)

    @classmethod
    def from_k8s_object(cls, obj: Any) -> PolicyRule:
        return cls(
            verbs=list(getattr(obj, "verbs", None) or []),
            api_groups=list(getattr(obj, "api_groups", None) or []),
            resources=list(getattr(obj, "resources", None) or []),
            resource_names=list(getattr(obj, "resource_names", None) or []),
            # the generated client spells nonResourceURLs as non_resource_ur_ls
            non_resource_urls=list(
                getattr(obj, "non_resource_ur_ls", None) or getattr(obj, "non_resource_urls", None) or []
            ),
        )


class RoleRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    name: str
    api_group: str = ""

    @property
    def ref_kind(self) -> RoleRefKind | None:
        try:
            return RoleRefKind(self.kind)
        except ValueError:
            return None

    @classmethod
    def from_k8s_object(cls, obj: Any) -> RoleRef:
        return cls(
            kind=getattr(obj, "kind", "") or "",
            name=getattr(obj, "name", "") or "",
            api_group=getattr(obj, "api_group", "") or "",
        )


class Subject(BaseModel):
    """User, Group or ServiceAccount reference inside a binding."""

    model_config = ConfigDict(frozen=True)

    kind: str
    name: str
    namespace: str = ""
    api_group: str = ""

    @property
    def subject_kind(self) -> SubjectKind | None:
        try:
            return SubjectKind(self.kind)
        except ValueError:
            return None

    @classmethod
    def from_k8s_object(cls, obj: Any) -> Subject:
        return cls(
            kind=getattr(obj, "kind", "") or "",
            name=getattr(obj, "name", "") or "",
            namespace=getattr(obj, "namespace", "") or "",
            api_group=getattr(obj, "api_group", "") or "",
        )


class RoleBinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str
    role_ref: RoleRef
    subjects: list[Subject] = Field(default_factory=list)

    @classmethod
    def from_k8s_object(cls, obj: Any) -> RoleBinding:
        return cls(
            name=_safe_get(obj, "metadata", "name", default=""),
            namespace=_safe_get(obj, "metadata", "namespace", default=""),
            role_ref=RoleRef.from_k8s_object(getattr(obj, "role_ref", None)),
            subjects=[Subject.from_k8s_object(s) for s in (getattr(obj, "subjects", None) or [])],
        )


class ClusterRoleBinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    role_ref: RoleRef
    subjects: list[Subject] = Field(default_factory=list)

    @property
    def namespace(self) -> str:
        return ""

    @classmethod
    def from_k8s_object(cls, obj: Any) -> ClusterRoleBinding:
        return cls(
            name=_safe_get(obj, "metadata", "name", default=""),
            role_ref=RoleRef.from_k8s_object(getattr(obj, "role_ref", None)),
            subjects=[Subject.from_k8s_object(s) for s in (getattr(obj, "subjects", None) or [])],
        )


class KubeObject(BaseModel):
    """Metadata shared by every listed object; ``attributes`` holds kind-specific profile fields."""

    kind: str
    name: str
    namespace: str | None = None
    uid: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    created_at: datetime | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_k8s_object(cls, kind: str, obj: Any, attributes: dict[str, Any] | None = None) -> KubeObject:
        md = getattr(obj, "metadata", None)
        return cls(
            kind=kind,
            name=getattr(md, "name", None) or "",
            namespace=getattr(md, "namespace", None) or None,
            uid=getattr(md, "uid", None),
            labels=_string_map(getattr(md, "labels", None)),
            annotations=_string_map(getattr(md, "annotations", None)),
            created_at=getattr(md, "creation_timestamp", None),
            attributes=attributes or {},
        )


class Role(KubeObject):
    kind: str = "Role"
    rules: list[PolicyRule] = Field(default_factory=list)

    @classmethod
    def from_k8s_object(cls, obj: Any) -> Role:  # type: ignore[override]
        base = KubeObject.from_k8s_object("Role", obj)
        return cls(
            **base.model_dump(exclude={"kind"}),
            rules=[PolicyRule.from_k8s_object(r) for r in (getattr(obj, "rules", None) or [])],
        )


class ClusterRole(KubeObject):
    kind: str = "ClusterRole"
    rules: list[PolicyRule] = Field(default_factory=list)
    aggregation_rule: dict[str, Any] | None = None

    @classmethod
    def from_k8s_object(cls, obj: Any) -> ClusterRole:  # type: ignore[override]
        base = KubeObject.from_k8s_object("ClusterRole", obj)
        aggregation = getattr(obj, "aggregation_rule", None)
        if aggregation is not None and hasattr(aggregation, "to_dict"):
            aggregation = aggregation.to_dict()
        return cls(
            **base.model_dump(exclude={"kind", "namespace"}),
            rules=[PolicyRule.from_k8s_object(r) for r in (getattr(obj, "rules", None) or [])],
            aggregation_rule=aggregation or None,
        )
