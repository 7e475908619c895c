from __future__ import annotations

from collections.abc import Iterable

STANDARD_VERBS: tuple[str, ...] = (
    "get",
    "list",
    "watch",
    "create",
    "update",
    "patch",
    "delete",
    "deletecollection",
)

_EXPANDING = frozenset({"*", ""})


def normalize_verbs(verbs: Iterable[str]) -> list[str]:
    """Sorted, deduplicated effective verbs of one policy rule.

    ``*`` or an empty string anywhere in ``verbs`` yields the full standard
    set and discards whatever else was listed.
    """
    listed = list(verbs)
    if any(verb in _EXPANDING for verb in listed):
        return sorted(STANDARD_VERBS)
    return sorted(set(listed))
