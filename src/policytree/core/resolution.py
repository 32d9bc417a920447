"""
Pure resolution of a behavior's settings matrix.

Given the parent's resolved matrix and a node's ordered patches, every
concrete operation key receives the field-by-field merge of every matching
patch, in recorded order. The same inputs always produce an equal matrix,
which is what makes caching the result safe.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from .builder import Patch
from .operations import ALL_OPERATION_KEYS, OperationKey
from .settings import EMPTY_SETTINGS, SettingsRecord, field_applies

ResolvedMatrix = Mapping[OperationKey, SettingsRecord]


def empty_matrix() -> ResolvedMatrix:
    """Every concrete key mapped to an all-unset record."""
    return MappingProxyType({key: EMPTY_SETTINGS for key in ALL_OPERATION_KEYS})


def resolve_matrix(
    patches: Iterable[Patch],
    parent_matrix: ResolvedMatrix | None = None,
) -> ResolvedMatrix:
    """Merge ``patches`` over ``parent_matrix`` and return a read-only matrix."""

    base = parent_matrix if parent_matrix is not None else empty_matrix()
    # Records are immutable, so a shallow copy of the mapping is a full copy.
    rows: dict[OperationKey, SettingsRecord] = {
        key: base.get(key, EMPTY_SETTINGS) for key in ALL_OPERATION_KEYS
    }
    for patch in patches:
        configured = patch.settings.as_dict()
        if not configured:
            continue
        for key in patch.selector.matching_keys():
            # A field outside its scope (ttl percent on a write) never lands on that key.
            applicable = {
                name: value for name, value in configured.items() if field_applies(name, key)
            }
            if applicable:
                rows[key] = rows[key].model_copy(update=applicable)
    return MappingProxyType(rows)


def render_matrix(matrix: ResolvedMatrix) -> list[str]:
    width = max(len(key.label()) for key in ALL_OPERATION_KEYS)
    return [f"{key.label():<{width}}  {matrix[key].describe()}" for key in ALL_OPERATION_KEYS]


__all__ = ["ResolvedMatrix", "empty_matrix", "render_matrix", "resolve_matrix"]
