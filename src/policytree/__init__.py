"""
policytree - hierarchical policy resolution for database client operations

Named behaviors hold sparse overrides; every concrete operation resolves to
one effective settings record that stays correct across live reloads.
"""

__version__ = "0.1.0"

from policytree.core import (
    BehaviorBuilder,
    BehaviorLoader,
    BehaviorNode,
    BehaviorRegistry,
    ConfigWatcher,
    ConsistencyMode,
    OperationKind,
    OperationShape,
    Selectors,
    SettingsRecord,
    default_registry,
)

__all__ = [
    "BehaviorBuilder",
    "BehaviorLoader",
    "BehaviorNode",
    "BehaviorRegistry",
    "ConfigWatcher",
    "ConsistencyMode",
    "OperationKind",
    "OperationShape",
    "Selectors",
    "SettingsRecord",
    "default_registry",
]
