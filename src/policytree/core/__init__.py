"""
Core engine for hierarchical policy behaviors.

This package exposes the settings record and operation taxonomy, the
builders used to describe behaviors, the registry that resolves and caches
them, and the loader/watcher pair that keeps a registry in sync with a YAML
document.
"""

from .behavior import ROOT_NAME, BehaviorNode
from .builder import BehaviorBuilder, Patch, PatchBuilder, baseline_patches
from .config import RuntimeConfigService, RuntimeSettings
from .durations import format_duration, parse_duration
from .errors import (
    BehaviorConfigurationError,
    BehaviorLoadError,
    ConfigError,
    DurationParseError,
    InvalidOperationKeyError,
    PolicyTreeError,
    UnknownBehaviorError,
)
from .loader import BehaviorDocument, BehaviorLoader
from .metrics import ResolutionMetrics
from .operations import (
    ALL_OPERATION_KEYS,
    ConsistencyMode,
    OperationKey,
    OperationKind,
    OperationShape,
    operation_key,
)
from .registry import BehaviorRegistry, default_registry
from .resolution import empty_matrix, resolve_matrix
from .selectors import Selectors, SelectorSpec, selector_for
from .settings import (
    CommitLevel,
    InfoSettings,
    ReadModeAP,
    ReadModeSC,
    Replica,
    SettingsRecord,
)
from .watcher import ConfigWatcher, ReloadOutcome

__all__ = [
    "ALL_OPERATION_KEYS",
    "BehaviorBuilder",
    "BehaviorConfigurationError",
    "BehaviorDocument",
    "BehaviorLoadError",
    "BehaviorLoader",
    "BehaviorNode",
    "BehaviorRegistry",
    "CommitLevel",
    "ConfigError",
    "ConfigWatcher",
    "ConsistencyMode",
    "DurationParseError",
    "InfoSettings",
    "InvalidOperationKeyError",
    "OperationKey",
    "OperationKind",
    "OperationShape",
    "Patch",
    "PatchBuilder",
    "PolicyTreeError",
    "ROOT_NAME",
    "ReadModeAP",
    "ReadModeSC",
    "ReloadOutcome",
    "Replica",
    "ResolutionMetrics",
    "RuntimeConfigService",
    "RuntimeSettings",
    "SelectorSpec",
    "Selectors",
    "SettingsRecord",
    "UnknownBehaviorError",
    "baseline_patches",
    "default_registry",
    "empty_matrix",
    "format_duration",
    "operation_key",
    "parse_duration",
    "resolve_matrix",
    "selector_for",
]
