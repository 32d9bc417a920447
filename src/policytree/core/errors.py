"""
Exception hierarchy shared by the behavior engine.

Absent settings are not errors: a field that was never configured anywhere
in a behavior's ancestor chain simply resolves to ``None``.
"""

from __future__ import annotations


class PolicyTreeError(RuntimeError):
    """Base class for every error raised by policytree."""


class BehaviorConfigurationError(PolicyTreeError, ValueError):
    """Raised when a selector or setter call cannot describe any valid operation."""


class InvalidOperationKeyError(PolicyTreeError, ValueError):
    """Raised when a lookup uses a wildcard or an impossible (kind, shape, mode) triple."""


class UnknownBehaviorError(PolicyTreeError, KeyError):
    """Raised when a behavior name is not present in the registry."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable.
        return str(self.args[0]) if self.args else "unknown behavior"


class DurationParseError(PolicyTreeError, ValueError):
    """Raised when a duration token uses an unknown unit or is malformed."""


class BehaviorLoadError(PolicyTreeError):
    """Raised when a behavior document cannot be parsed, validated, or linked."""


class ConfigError(PolicyTreeError):
    """Raised when runtime configuration files are missing or invalid."""


__all__ = [
    "BehaviorConfigurationError",
    "BehaviorLoadError",
    "ConfigError",
    "DurationParseError",
    "InvalidOperationKeyError",
    "PolicyTreeError",
    "UnknownBehaviorError",
]
