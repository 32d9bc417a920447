"""
YAML behavior documents -> registered behavior nodes.

A document maps behavior names to blocks::

    behaviors:
      fast:
        parent: default
        allOperations:
          abandonCallAfter: 5s
          maximumNumberOfCallAttempts: 2
        consistencyModeReads:
          readConsistency: LINEARIZE
        retryableWrites:
          delayBetweenRetries: 20ms

An ``info:`` block sets the call budget of cluster info commands. A
``system:`` section next to the ``behaviors:`` wrapper is accepted and
ignored with a warning.

The ``behaviors:`` wrapper is optional. Sub-blocks are applied from general
to specific regardless of the order they appear in the file, and a block
named ``default`` layers its patches on top of the built-in baseline.
Loading is all-or-nothing: any error leaves the registry untouched.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any, ClassVar

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from .behavior import ROOT_NAME, BehaviorNode
from .builder import BehaviorBuilder
from .errors import BehaviorConfigurationError, BehaviorLoadError
from .metrics import ResolutionMetrics
from .registry import BehaviorRegistry
from .settings import InfoSettings, SettingsRecord

logger = logging.getLogger(__name__)

# (block attribute, BehaviorBuilder method), general before specific.
SUB_BLOCK_ORDER: tuple[tuple[str, str], ...] = (
    ("all_operations", "for_all_operations"),
    ("reads", "on_reads"),
    ("writes", "on_writes"),
    ("consistency_mode_reads", "on_consistency_mode_reads"),
    ("availability_mode_reads", "on_availability_mode_reads"),
    ("retryable_writes", "on_retryable_writes"),
    ("non_retryable_writes", "on_non_retryable_writes"),
    ("batch_reads", "on_batch_reads"),
    ("batch_writes", "on_batch_writes"),
    ("query", "on_query"),
)


class BehaviorBlock(BaseModel):
    """One named behavior as written in a document."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    parent: str | None = None
    all_operations: SettingsRecord | None = Field(
        default=None, validation_alias=AliasChoices("all_operations", "allOperations")
    )
    reads: SettingsRecord | None = None
    writes: SettingsRecord | None = None
    consistency_mode_reads: SettingsRecord | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "consistency_mode_reads", "consistencyModeReads", "readModeSC"
        ),
    )
    availability_mode_reads: SettingsRecord | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "availability_mode_reads", "availabilityModeReads", "readModeAP"
        ),
    )
    retryable_writes: SettingsRecord | None = Field(
        default=None, validation_alias=AliasChoices("retryable_writes", "retryableWrites")
    )
    non_retryable_writes: SettingsRecord | None = Field(
        default=None,
        validation_alias=AliasChoices("non_retryable_writes", "nonRetryableWrites"),
    )
    batch_reads: SettingsRecord | None = Field(
        default=None, validation_alias=AliasChoices("batch_reads", "batchReads")
    )
    batch_writes: SettingsRecord | None = Field(
        default=None, validation_alias=AliasChoices("batch_writes", "batchWrites")
    )
    query: SettingsRecord | None = None
    info: InfoSettings | None = None

    @model_validator(mode="before")
    @classmethod
    def _empty_sub_blocks(cls, data: Any) -> Any:
        # ``reads:`` with nothing under it parses as None; treat it as an empty block.
        if data is None:
            return {}
        if isinstance(data, dict):
            return {
                key: {} if value is None and key != "parent" else value
                for key, value in data.items()
            }
        return data


class BehaviorDocument(BaseModel):
    """
    Parsed document: behavior name -> block, in file order.

    ``system`` holds client-wide settings (connections, circuit breaker,
    refresh). They are kept as raw data and not applied by this package.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    SECTIONS: ClassVar[frozenset[str]] = frozenset({"behaviors", "system"})

    behaviors: dict[str, BehaviorBlock] = Field(default_factory=dict)
    system: dict[str, Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_map(cls, data: Any) -> Any:
        if data is None:
            return {"behaviors": {}}
        if not isinstance(data, dict):
            return data
        wrapped = data.get("behaviors")
        if "behaviors" in data and (wrapped is None or isinstance(wrapped, dict)):
            unknown = sorted(str(key) for key in set(data) - cls.SECTIONS)
            if unknown:
                raise ValueError(
                    f"unknown top-level section(s) {', '.join(unknown)}; "
                    "expected 'behaviors' and optionally 'system'"
                )
            return {**data, "behaviors": wrapped or {}}
        return {"behaviors": data}

    @model_validator(mode="after")
    def _names_not_blank(self) -> BehaviorDocument:
        for name in self.behaviors:
            if not str(name).strip():
                raise ValueError("behavior names must not be empty")
        return self


class BehaviorLoader:
    """Parses behavior documents and swaps the result into a registry."""

    def __init__(
        self, registry: BehaviorRegistry, *, metrics: ResolutionMetrics | None = None
    ) -> None:
        self._registry = registry
        self._metrics = metrics
        self._lock = threading.Lock()

    @property
    def registry(self) -> BehaviorRegistry:
        return self._registry

    def parse(self, text: str, *, source: str = "<string>") -> BehaviorDocument:
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise BehaviorLoadError(f"{source}: invalid YAML") from exc
        try:
            return BehaviorDocument.model_validate(raw)
        except ValidationError as exc:
            raise BehaviorLoadError(f"{source}: invalid behavior document\n{exc}") from exc

    def build(self, document: BehaviorDocument) -> dict[str, BehaviorNode]:
        """
        Turn a parsed document into unregistered nodes, parents first.

        Parents may live in the same document or already be registered.
        A parent found in neither place is replaced by ``default``.
        """

        parents = {
            name: self._parent_for(name, block, document)
            for name, block in document.behaviors.items()
        }
        nodes: dict[str, BehaviorNode] = {}
        for name in self._topological_order(parents):
            block = document.behaviors[name]
            try:
                builder = self._builder_for(block)
                if name == ROOT_NAME:
                    nodes[name] = self._registry.new_root(builder.build(), builder.build_info())
                else:
                    nodes[name] = self._registry.create(
                        name, builder.build(), parent=parents[name], info=builder.build_info()
                    )
            except BehaviorConfigurationError as exc:
                raise BehaviorLoadError(f"Behavior '{name}': {exc}") from exc
        return nodes

    def _parent_for(
        self, name: str, block: BehaviorBlock, document: BehaviorDocument
    ) -> str | None:
        if name == ROOT_NAME:
            if block.parent not in (None, ROOT_NAME):
                raise BehaviorLoadError(f"'{ROOT_NAME}' is the root and cannot have a parent")
            return None
        parent = block.parent or ROOT_NAME
        if parent == name:
            raise BehaviorLoadError(f"Behavior '{name}' names itself as parent")
        if parent not in document.behaviors and not self._registry.has(parent):
            logger.warning(
                "Behavior '%s' names unknown parent '%s'; using '%s'.", name, parent, ROOT_NAME
            )
            return ROOT_NAME
        return parent

    @staticmethod
    def _topological_order(parents: Mapping[str, str | None]) -> list[str]:
        order: list[str] = []
        done: set[str] = set()
        for start in parents:
            path: list[str] = []
            current: str | None = start
            while current is not None and current in parents and current not in done:
                if current in path:
                    cycle = " -> ".join([*path[path.index(current):], current])
                    raise BehaviorLoadError(f"Parent cycle detected: {cycle}")
                path.append(current)
                current = parents[current]
            for name in reversed(path):
                done.add(name)
                order.append(name)
        return order

    @staticmethod
    def _builder_for(block: BehaviorBlock) -> BehaviorBuilder:
        builder = BehaviorBuilder()
        for attribute, method in SUB_BLOCK_ORDER:
            record: SettingsRecord | None = getattr(block, attribute)
            if record is None or record.is_empty():
                continue
            getattr(builder, method)(lambda ops, values=record: ops.update(values))
        if block.info is not None and not block.info.is_empty():
            builder.on_info(lambda ops, values=block.info: ops.update(values))
        return builder

    def load_string(self, text: str, *, source: str = "<string>") -> dict[str, BehaviorNode]:
        """Parse, build, and atomically register every behavior in ``text``."""
        try:
            with self._lock:
                document = self.parse(text, source=source)
                if document.system:
                    logger.warning(
                        "%s: ignoring system settings for %s; only behaviors are loaded",
                        source,
                        ", ".join(sorted(map(str, document.system))),
                    )
                nodes = self.build(document)
                try:
                    self._registry.replace_all(nodes.values())
                except BehaviorConfigurationError as exc:
                    raise BehaviorLoadError(f"{source}: {exc}") from exc
        except BehaviorLoadError:
            self._record("failure")
            raise
        self._record("success")
        logger.info("Loaded %d behavior(s) from %s", len(nodes), source)
        return nodes

    def _record(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.record_reload(outcome)

    def load_file(self, path: str | Path) -> dict[str, BehaviorNode]:
        location = Path(path)
        try:
            text = location.read_text(encoding="utf-8")
        except OSError as exc:
            self._record("failure")
            raise BehaviorLoadError(f"Cannot read behavior document {location}") from exc
        return self.load_string(text, source=str(location))


__all__ = ["BehaviorBlock", "BehaviorDocument", "BehaviorLoader", "SUB_BLOCK_ORDER"]
