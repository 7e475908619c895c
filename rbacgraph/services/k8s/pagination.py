"""Opaque page tokens handed to sync callers."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from ...exceptions import InvalidPageTokenError


T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    """One upstream list page; ``continue_token`` is None on the last page."""

    items: list[T] = field(default_factory=list)
    continue_token: Optional[str] = None


class BindingPhase(str, Enum):
    ROLE_BINDINGS = "rolebindings"
    CLUSTER_ROLE_BINDINGS = "clusterrolebindings"


class PageState(BaseModel):
    """Decoded form of a page token.

    ``phase`` is only used by enumerators that drain RoleBindings and then
    ClusterRoleBindings; ``token`` is the upstream ``continue`` value.
    ``listing`` ties follow-up pages to the syncer that served the first one.
    """

    phase: Optional[BindingPhase] = None
    token: Optional[str] = None
    listing: Optional[str] = None

    @property
    def is_first_page(self) -> bool:
        return self.token is None and self.phase in (None, BindingPhase.ROLE_BINDINGS)


def encode_page_token(state: PageState | None) -> str:
    """Serialize ``state``; an empty string means there are no more pages."""
    if state is None:
        return ""
    raw = state.model_dump_json(exclude_none=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_page_token(token: str | None) -> PageState:
    if not token:
        return PageState()
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
        return PageState.model_validate(json.loads(raw))
    except (binascii.Error, UnicodeError, ValueError, ValidationError) as exc:
        raise InvalidPageTokenError("Invalid page token", details={"token": token}) from exc


def next_token(continue_token: str | None) -> str:
    """Page token for a single-phase listing following ``continue_token``."""
    if not continue_token:
        return ""
    return encode_page_token(PageState(token=continue_token))
