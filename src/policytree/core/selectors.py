"""
Selectors address a slice of the operation space.

A :class:`SelectorSpec` is plain data: a set of operation kinds, a shape
(or ``ANY``) and a consistency mode (or ``ANY``). Narrowing helpers such as
``Selectors.reads().batch().ap()`` each overwrite one component of the
triple, so the order of narrowing calls never changes what a selector
matches. A selector that would match no concrete operation is rejected at
construction time.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import BehaviorConfigurationError
from .operations import (
    ALL_KINDS,
    ALL_OPERATION_KEYS,
    WRITE_KINDS,
    ConsistencyMode,
    OperationKey,
    OperationKind,
    OperationShape,
)


class SelectorSpec(BaseModel):
    """Pattern over (kinds, shape, mode) deciding which keys a patch touches."""

    model_config = ConfigDict(frozen=True)

    kinds: frozenset[OperationKind] = Field(default=ALL_KINDS)
    shape: OperationShape = Field(default=OperationShape.ANY)
    mode: ConsistencyMode = Field(default=ConsistencyMode.ANY)

    @model_validator(mode="after")
    def _must_match_something(self) -> SelectorSpec:
        if not self.kinds:
            raise ValueError("selector must name at least one operation kind")
        if not any(self.matches(key) for key in ALL_OPERATION_KEYS):
            raise ValueError(f"selector {self.describe()} does not match any operation")
        return self

    def matches(self, key: OperationKey) -> bool:
        if key.kind not in self.kinds:
            return False
        if self.shape is not OperationShape.ANY and self.shape is not key.shape:
            return False
        return self.mode is ConsistencyMode.ANY or self.mode is key.mode

    def matching_keys(self) -> tuple[OperationKey, ...]:
        return tuple(key for key in ALL_OPERATION_KEYS if self.matches(key))

    def describe(self) -> str:
        if self.kinds == ALL_KINDS:
            kinds = "all"
        elif self.kinds == WRITE_KINDS:
            kinds = "writes"
        else:
            kinds = "+".join(sorted(kind.value for kind in self.kinds))
        return f"[{kinds} | shape={self.shape.value} | mode={self.mode.value}]"

    def _narrow(self, **changes: object) -> SelectorSpec:
        data = {"kinds": self.kinds, "shape": self.shape, "mode": self.mode, **changes}
        return _build(**data)  # type: ignore[arg-type]

    # Kind narrowing
    def reads(self) -> SelectorSpec:
        return self._narrow(kinds=frozenset({OperationKind.READ}))

    def writes(self) -> SelectorSpec:
        return self._narrow(kinds=WRITE_KINDS)

    def retryable(self) -> SelectorSpec:
        return self._narrow(kinds=self._write_subset(OperationKind.WRITE_RETRYABLE))

    def non_retryable(self) -> SelectorSpec:
        return self._narrow(kinds=self._write_subset(OperationKind.WRITE_NON_RETRYABLE))

    # Shape narrowing
    def point(self) -> SelectorSpec:
        return self._narrow(shape=OperationShape.POINT)

    def batch(self) -> SelectorSpec:
        return self._narrow(shape=OperationShape.BATCH)

    def query(self) -> SelectorSpec:
        return self._narrow(shape=OperationShape.QUERY)

    # Mode narrowing
    def ap(self) -> SelectorSpec:
        return self._narrow(mode=ConsistencyMode.AVAILABILITY)

    def cp(self) -> SelectorSpec:
        return self._narrow(mode=ConsistencyMode.CONSISTENCY)

    def _write_subset(self, kind: OperationKind) -> frozenset[OperationKind]:
        if kind not in self.kinds:
            raise BehaviorConfigurationError(
                f"Cannot narrow {self.describe()} to {kind.value}: kind not selected"
            )
        return frozenset({kind})


def _build(
    kinds: frozenset[OperationKind],
    shape: OperationShape,
    mode: ConsistencyMode,
) -> SelectorSpec:
    try:
        return SelectorSpec(kinds=kinds, shape=shape, mode=mode)
    except ValueError as exc:
        # pydantic's ValidationError is a ValueError subclass.
        raise BehaviorConfigurationError(str(exc)) from exc


def selector_for(
    kinds: OperationKind | Iterable[OperationKind] | None = None,
    shape: OperationShape = OperationShape.ANY,
    mode: ConsistencyMode = ConsistencyMode.ANY,
) -> SelectorSpec:
    """
    Build a selector from explicit components.

    ``kinds=None`` selects every kind; a single kind or an iterable of kinds
    narrows the selection.
    """

    if kinds is None:
        resolved = ALL_KINDS
    elif isinstance(kinds, OperationKind):
        resolved = frozenset({kinds})
    else:
        resolved = frozenset(kinds)
    return _build(resolved, shape, mode)


class Selectors:
    """Entry points for fluent selector narrowing."""

    @staticmethod
    def all() -> SelectorSpec:
        return selector_for()

    @staticmethod
    def reads() -> SelectorSpec:
        return selector_for(OperationKind.READ)

    @staticmethod
    def writes() -> SelectorSpec:
        return selector_for(WRITE_KINDS)


__all__ = ["SelectorSpec", "Selectors", "selector_for"]
