"""
Operation taxonomy used to address rows of the resolution matrix.

A concrete :class:`OperationKey` is a fully specified (kind, shape, mode)
triple. Only a fixed set of combinations exists: reads come in point, batch
and query shapes, writes only in point and batch shapes, and every shape
exists in both availability (AP) and consistency (CP) mode.
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple

from .errors import InvalidOperationKeyError


class OperationKind(Enum):
    READ = "read"
    WRITE_RETRYABLE = "write_retryable"
    WRITE_NON_RETRYABLE = "write_non_retryable"

    @property
    def is_write(self) -> bool:
        return self is not OperationKind.READ


class OperationShape(Enum):
    ANY = "any"
    POINT = "point"
    BATCH = "batch"
    QUERY = "query"


class ConsistencyMode(Enum):
    ANY = "any"
    AVAILABILITY = "availability"
    CONSISTENCY = "consistency"


ALL_KINDS: frozenset[OperationKind] = frozenset(OperationKind)
WRITE_KINDS: frozenset[OperationKind] = frozenset(
    {OperationKind.WRITE_RETRYABLE, OperationKind.WRITE_NON_RETRYABLE}
)

_SHAPES_BY_KIND: dict[OperationKind, tuple[OperationShape, ...]] = {
    OperationKind.READ: (OperationShape.POINT, OperationShape.BATCH, OperationShape.QUERY),
    OperationKind.WRITE_RETRYABLE: (OperationShape.POINT, OperationShape.BATCH),
    OperationKind.WRITE_NON_RETRYABLE: (OperationShape.POINT, OperationShape.BATCH),
}
_CONCRETE_MODES = (ConsistencyMode.AVAILABILITY, ConsistencyMode.CONSISTENCY)


class OperationKey(NamedTuple):
    """One row of the resolution matrix."""

    kind: OperationKind
    shape: OperationShape
    mode: ConsistencyMode

    def label(self) -> str:
        return f"{self.kind.value}/{self.shape.value}/{self.mode.value}"


ALL_OPERATION_KEYS: tuple[OperationKey, ...] = tuple(
    OperationKey(kind, shape, mode)
    for kind in OperationKind
    for shape in _SHAPES_BY_KIND[kind]
    for mode in _CONCRETE_MODES
)
_KEY_SET = frozenset(ALL_OPERATION_KEYS)


def _coerce(enum_type: type[Enum], value: object) -> Enum:
    if isinstance(value, enum_type):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return enum_type[text.upper()]
        except KeyError:
            pass
        try:
            return enum_type(text.lower())
        except ValueError:
            pass
    raise InvalidOperationKeyError(f"{value!r} is not a valid {enum_type.__name__}")


def operation_key(
    kind: OperationKind | str,
    shape: OperationShape | str,
    mode: ConsistencyMode | str,
) -> OperationKey:
    """
    Build a concrete key, accepting enum members or their names/values.

    Wildcards and combinations outside the key space (e.g. a retryable write
    query) raise :class:`InvalidOperationKeyError`.
    """

    key = OperationKey(
        _coerce(OperationKind, kind),  # type: ignore[arg-type]
        _coerce(OperationShape, shape),  # type: ignore[arg-type]
        _coerce(ConsistencyMode, mode),  # type: ignore[arg-type]
    )
    if key not in _KEY_SET:
        raise InvalidOperationKeyError(
            f"({key.kind.name}, {key.shape.name}, {key.mode.name}) is not a concrete operation"
        )
    return key


__all__ = [
    "ALL_KINDS",
    "ALL_OPERATION_KEYS",
    "ConsistencyMode",
    "OperationKey",
    "OperationKind",
    "OperationShape",
    "WRITE_KINDS",
    "operation_key",
]
