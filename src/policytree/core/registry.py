"""
Process-wide name -> behavior table plus tree helpers.

The table and the children index are copy-on-write mappings replaced with a
single reference assignment, so readers never lock and always observe either
the complete old table or the complete new one. Writers serialise on a lock.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from .behavior import ROOT_NAME, BehaviorNode
from .builder import Patch, baseline_info, baseline_patches
from .errors import BehaviorConfigurationError, UnknownBehaviorError
from .metrics import ResolutionMetrics
from .settings import EMPTY_INFO, InfoSettings

logger = logging.getLogger(__name__)


class BehaviorRegistry:
    """Arena of behavior nodes addressed by name."""

    def __init__(
        self,
        *,
        root_patches: Iterable[Patch] | None = None,
        metrics: ResolutionMetrics | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._metrics = metrics
        self._baseline: tuple[Patch, ...] = (
            tuple(root_patches) if root_patches is not None else baseline_patches()
        )
        self._nodes: Mapping[str, BehaviorNode] = MappingProxyType({})
        self._children: Mapping[str, tuple[str, ...]] = MappingProxyType({})
        self.register(self.new_root())

    @property
    def metrics(self) -> ResolutionMetrics | None:
        return self._metrics

    @property
    def baseline(self) -> tuple[Patch, ...]:
        return self._baseline

    @property
    def root(self) -> BehaviorNode:
        return self._nodes[ROOT_NAME]

    def new_root(
        self, extra_patches: Iterable[Patch] = (), info: InfoSettings = EMPTY_INFO
    ) -> BehaviorNode:
        """Construct (without registering) a root layered over the baseline patches."""
        return BehaviorNode(
            ROOT_NAME,
            (*self._baseline, *extra_patches),
            registry=self,
            parent=None,
            info=baseline_info().merged_with(info),
            metrics=self._metrics,
        )

    def create(
        self,
        name: str,
        patches: Iterable[Patch] = (),
        *,
        parent: str = ROOT_NAME,
        info: InfoSettings = EMPTY_INFO,
    ) -> BehaviorNode:
        """Construct (without registering) a node bound to this registry."""
        return BehaviorNode(
            name, patches, registry=self, parent=parent, info=info, metrics=self._metrics
        )

    def register(self, node: BehaviorNode) -> BehaviorNode:
        """Add or replace one behavior; a replacement invalidates its whole subtree."""
        self.replace_all([node])
        return node

    def replace_all(self, nodes: Iterable[BehaviorNode]) -> list[str]:
        """
        Atomically swap several behaviors into the table.

        Every replaced name, and transitively every behavior naming it as
        parent, is invalidated afterwards in parent-before-child order.
        """

        incoming = list(nodes)
        with self._lock:
            table = dict(self._nodes)
            replaced: list[str] = []
            for node in incoming:
                self._check_node(node)
                if node.name in table:
                    replaced.append(node.name)
                table[node.name] = node
            for node in incoming:
                self._check_acyclic(node, table)
            self._nodes = MappingProxyType(table)
            self._children = MappingProxyType(self._index_children(table))
            count = len(table)
        for name in sorted({node.name for node in incoming}, key=self.depth):
            self.invalidate(name)
        if self._metrics is not None:
            self._metrics.set_registered(count)
        for node in incoming:
            action = "Replaced" if node.name in replaced else "Registered"
            logger.info("%s behavior %s (parent=%s)", action, node.name, node.parent_name)
        return replaced

    def _check_node(self, node: BehaviorNode) -> None:
        if node.registry is not self:
            raise BehaviorConfigurationError(
                f"Behavior '{node.name}' was created for a different registry"
            )
        if node.name == ROOT_NAME and not node.is_root:
            raise BehaviorConfigurationError(f"'{ROOT_NAME}' is the root and cannot have a parent")
        if node.name != ROOT_NAME and node.is_root:
            raise BehaviorConfigurationError(f"Only '{ROOT_NAME}' may be registered without parent")

    @staticmethod
    def _check_acyclic(node: BehaviorNode, table: Mapping[str, BehaviorNode]) -> None:
        seen = {node.name}
        parent_name = node.parent_name
        while parent_name is not None:
            if parent_name in seen:
                raise BehaviorConfigurationError(
                    f"Behavior '{node.name}' would create a parent cycle via '{parent_name}'"
                )
            seen.add(parent_name)
            parent = table.get(parent_name)
            parent_name = parent.parent_name if parent is not None else None

    @staticmethod
    def _index_children(table: Mapping[str, BehaviorNode]) -> dict[str, tuple[str, ...]]:
        index: dict[str, list[str]] = {}
        for node in table.values():
            if node.parent_name is not None:
                index.setdefault(node.parent_name, []).append(node.name)
        return {parent: tuple(sorted(names)) for parent, names in index.items()}

    def invalidate(self, name: str) -> int:
        """
        Clear the cached matrix of ``name`` and of every descendant.

        Returns the number of nodes invalidated. Recomputation is lazy: each
        node rebuilds from its parent's then-current matrix on next access.
        """
        nodes, children = self._nodes, self._children
        pending = [name]
        visited: set[str] = set()
        while pending:
            current = pending.pop(0)
            if current in visited:
                continue
            visited.add(current)
            node = nodes.get(current)
            if node is not None:
                node.invalidate()
            pending.extend(children.get(current, ()))
        return len(visited)

    def invalidate_all(self) -> int:
        return self.invalidate(ROOT_NAME)

    def depth(self, name: str) -> int:
        """Distance from the root following registered parent names."""
        nodes = self._nodes
        depth = 0
        seen = {name}
        node = nodes.get(name)
        while node is not None and node.parent_name is not None:
            if node.parent_name in seen:
                break
            seen.add(node.parent_name)
            depth += 1
            node = nodes.get(node.parent_name)
        return depth

    def get(self, name: str) -> BehaviorNode | None:
        return self._nodes.get(name)

    def get_or_default(self, name: str) -> BehaviorNode:
        return self._nodes.get(name) or self.root

    def require(self, name: str) -> BehaviorNode:
        node = self._nodes.get(name)
        if node is None:
            raise UnknownBehaviorError(f"Unknown behavior '{name}'")
        return node

    def has(self, name: str) -> bool:
        return name in self._nodes

    def names(self) -> list[str]:
        return sorted(self._nodes)

    def behaviors(self) -> dict[str, BehaviorNode]:
        return dict(self._nodes)

    def children(self, name: str) -> list[BehaviorNode]:
        nodes = self._nodes
        return [nodes[child] for child in self._children.get(name, ()) if child in nodes]

    def find_in_tree(self, name: str, *, start: str = ROOT_NAME) -> BehaviorNode | None:
        """Depth-first search below ``start``; O(tree size), not for hot paths."""
        nodes, children = self._nodes, self._children
        stack = [start]
        visited: set[str] = set()
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            if current == name:
                return nodes.get(current)
            stack.extend(reversed(children.get(current, ())))
        return None

    def remove(self, name: str) -> BehaviorNode | None:
        """Drop a behavior; its descendants resolve against the root until re-parented."""
        if name == ROOT_NAME:
            raise BehaviorConfigurationError(f"The '{ROOT_NAME}' behavior cannot be removed")
        with self._lock:
            table = dict(self._nodes)
            removed = table.pop(name, None)
            if removed is None:
                return None
            orphans = self._children.get(name, ())
            self._nodes = MappingProxyType(table)
            self._children = MappingProxyType(self._index_children(table))
            count = len(table)
        for orphan in orphans:
            self.invalidate(orphan)
        if self._metrics is not None:
            self._metrics.set_registered(count)
        logger.info("Removed behavior %s", name)
        return removed

    def clear(self) -> None:
        """Forget every behavior and install a fresh root."""
        with self._lock:
            self._nodes = MappingProxyType({})
            self._children = MappingProxyType({})
        self.register(self.new_root())


_default_registry: BehaviorRegistry | None = None
_default_lock = threading.Lock()


def default_registry() -> BehaviorRegistry:
    """Lazily created process-wide registry."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            _default_registry = BehaviorRegistry()
        return _default_registry


__all__ = ["BehaviorRegistry", "default_registry"]
