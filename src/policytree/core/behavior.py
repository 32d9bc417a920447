"""
Named, immutable behavior nodes with a lazily resolved settings matrix.

A node never owns its parent: it stores the parent's *name* and looks it up
through its registry on every recomputation, so replacing a parent by name
is picked up by descendants after invalidation.

The cached matrix is published as an immutable snapshot with a single
reference assignment. Invalidation bumps a generation counter; a matrix
computed against a generation that has since been invalidated is returned to
its caller but never cached, so a child can never keep a matrix built from a
stale parent.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from .builder import BehaviorBuilder, Patch
from .errors import BehaviorConfigurationError
from .operations import ConsistencyMode, OperationKind, OperationShape, operation_key
from .resolution import ResolvedMatrix, render_matrix, resolve_matrix
from .settings import EMPTY_INFO, InfoSettings, SettingsRecord

if TYPE_CHECKING:
    from .metrics import ResolutionMetrics
    from .registry import BehaviorRegistry

logger = logging.getLogger(__name__)

ROOT_NAME = "default"

BehaviorChanger = Callable[[BehaviorBuilder], Any]


class BehaviorNode:
    """One behavior in the tree: name, parent name, and ordered patches."""

    def __init__(
        self,
        name: str,
        patches: Iterable[Patch] = (),
        *,
        registry: BehaviorRegistry,
        parent: str | None = ROOT_NAME,
        info: InfoSettings = EMPTY_INFO,
        metrics: ResolutionMetrics | None = None,
    ) -> None:
        if not name or not name.strip():
            raise BehaviorConfigurationError("Behavior name must not be empty")
        if parent == name:
            raise BehaviorConfigurationError(f"Behavior '{name}' cannot be its own parent")
        self._name = name
        self._parent_name = parent
        self._patches: tuple[Patch, ...] = tuple(patches)
        self._info = info
        self._registry = registry
        self._metrics = metrics
        self._lock = threading.Lock()
        self._state: tuple[int, ResolvedMatrix | None] = (0, None)

    @property
    def name(self) -> str:
        return self._name

    @property
    def parent_name(self) -> str | None:
        return self._parent_name

    @property
    def patches(self) -> tuple[Patch, ...]:
        return self._patches

    @property
    def info(self) -> InfoSettings:
        """Info settings configured on this node only."""
        return self._info

    @property
    def registry(self) -> BehaviorRegistry:
        return self._registry

    @property
    def is_root(self) -> bool:
        return self._parent_name is None

    @property
    def is_resolved(self) -> bool:
        return self._state[1] is not None

    @property
    def parent(self) -> BehaviorNode | None:
        """Current node registered under the parent name."""
        if self._parent_name is None:
            return None
        node = self._registry.get(self._parent_name)
        if node is None:
            logger.warning(
                "Parent '%s' of behavior '%s' is not registered; resolving against '%s'.",
                self._parent_name,
                self._name,
                self._registry.root.name,
            )
            node = self._registry.root
        return node if node is not self else None

    def matrix(self) -> ResolvedMatrix:
        """Resolved matrix, computed on first access after construction or invalidation."""
        generation, cached = self._state
        if cached is not None:
            return cached
        parent = self.parent
        computed = resolve_matrix(self._patches, parent.matrix() if parent is not None else None)
        with self._lock:
            if self._state[0] == generation:
                self._state = (generation, computed)
        if self._metrics is not None:
            self._metrics.record_computation(self._name)
        logger.debug("Resolved matrix for behavior %s (generation %d)", self._name, generation)
        return computed

    def invalidate(self) -> None:
        """Drop the cached matrix. Descendants are handled by the registry."""
        with self._lock:
            self._state = (self._state[0] + 1, None)

    def get_settings(
        self,
        kind: OperationKind | str,
        shape: OperationShape | str,
        mode: ConsistencyMode | str,
    ) -> SettingsRecord:
        """
        Effective settings for one concrete operation.

        Fields never configured anywhere in the ancestor chain are ``None``;
        callers supply their own fallback via :meth:`SettingsRecord.value_or`.
        """
        return self.matrix()[operation_key(kind, shape, mode)]

    def info_settings(self) -> InfoSettings:
        """Effective info settings: this node over its ancestors."""
        resolved = self._info
        seen = {self._name}
        node = self.parent
        while node is not None and node.name not in seen:
            seen.add(node.name)
            resolved = node.info.merged_with(resolved)
            node = node.parent
        return resolved

    def derive_with_changes(self, name: str, configure: BehaviorChanger) -> BehaviorNode:
        """
        Build a child of this behavior, register it, and return it.

        Example::

            fast = registry.root.derive_with_changes(
                "fast",
                lambda b: b.on_retryable_writes(
                    lambda ops: ops.maximum_number_of_call_attempts(7)
                ),
            )
        """
        builder = BehaviorBuilder()
        configure(builder)
        child = BehaviorNode(
            name,
            builder.build(),
            registry=self._registry,
            parent=self._name,
            info=builder.build_info(),
            metrics=self._metrics,
        )
        self._registry.register(child)
        return child

    def children(self) -> list[BehaviorNode]:
        return self._registry.children(self._name)

    def find_behavior(self, name: str) -> BehaviorNode | None:
        """Search this node's subtree by name."""
        return self._registry.find_in_tree(name, start=self._name)

    def ancestry(self) -> list[str]:
        """Names from this node up to the root."""
        names = [self._name]
        node = self.parent
        while node is not None and node.name not in names:
            names.append(node.name)
            node = node.parent
        return names

    def explain(self) -> str:
        """Ordered patch list plus the fully resolved matrix, for diagnostics."""
        lines = [f"behavior: {self._name}", f"ancestry: {' -> '.join(self.ancestry())}"]
        if self._patches:
            lines.append("patches:")
            for index, patch in enumerate(self._patches, start=1):
                lines.append(f"  {index}. {patch.describe()}")
        else:
            lines.append("patches: <none, inherits parent>")
        lines.append("resolved:")
        lines.extend(f"  {row}" for row in render_matrix(self.matrix()))
        lines.append(f"info: {self.info_settings().describe()}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"BehaviorNode(name={self._name!r}, parent={self._parent_name!r}, "
            f"patches={len(self._patches)})"
        )


__all__ = ["BehaviorChanger", "BehaviorNode", "ROOT_NAME"]
