"""
Sparse settings record and the enumerations its fields use.

Every field is independently optional. ``None`` means "not configured here,
inherit"; any other value is authoritative. Field names accept both the
snake_case Python spelling and the camelCase spelling used in behavior
documents.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Callable
from enum import Enum
from typing import Any, ClassVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .durations import format_duration, parse_duration
from .operations import ConsistencyMode, OperationKey, OperationKind, OperationShape


class Replica(Enum):
    """Order in which replicas are tried for a call."""

    SEQUENCE = "SEQUENCE"
    MASTER = "MASTER"
    MASTER_PROLES = "MASTER_PROLES"
    PREFER_RACK = "PREFER_RACK"
    RANDOM = "RANDOM"


class ReadModeAP(Enum):
    """Read consistency while migrations are in progress (AP namespaces)."""

    ONE = "ONE"
    ALL = "ALL"


class ReadModeSC(Enum):
    """Read consistency guarantee for strong-consistency namespaces."""

    SESSION = "SESSION"
    LINEARIZE = "LINEARIZE"
    ALLOW_REPLICA = "ALLOW_REPLICA"
    ALLOW_UNAVAILABLE = "ALLOW_UNAVAILABLE"


class CommitLevel(Enum):
    """How many copies must acknowledge a write."""

    COMMIT_ALL = "COMMIT_ALL"
    COMMIT_MASTER = "COMMIT_MASTER"


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class SettingsRecord(BaseModel):
    """Partial or resolved bag of policy knob values."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    DURATION_FIELDS: ClassVar[tuple[str, ...]] = (
        "abandon_call_after",
        "delay_between_retries",
        "wait_for_call_to_complete",
        "wait_for_connection_to_complete",
        "wait_for_socket_response_after_call_fails",
    )

    abandon_call_after: dt.timedelta | None = Field(
        default=None,
        validation_alias=_alias("abandon_call_after", "abandonCallAfter"),
        description="Total time budget for a call, including retries.",
    )
    delay_between_retries: dt.timedelta | None = Field(
        default=None,
        validation_alias=_alias("delay_between_retries", "delayBetweenRetries"),
    )
    maximum_number_of_call_attempts: int | None = Field(
        default=None,
        ge=1,
        validation_alias=_alias(
            "maximum_number_of_call_attempts", "maximumNumberOfCallAttempts", "maxAttempts"
        ),
    )
    replica_order: Replica | None = Field(
        default=None, validation_alias=_alias("replica_order", "replicaOrder")
    )
    send_key: bool | None = Field(default=None, validation_alias=_alias("send_key", "sendKey"))
    use_compression: bool | None = Field(
        default=None, validation_alias=_alias("use_compression", "useCompression")
    )
    wait_for_call_to_complete: dt.timedelta | None = Field(
        default=None,
        validation_alias=_alias("wait_for_call_to_complete", "waitForCallToComplete"),
        description="Socket timeout for a single attempt.",
    )
    wait_for_connection_to_complete: dt.timedelta | None = Field(
        default=None,
        validation_alias=_alias("wait_for_connection_to_complete", "waitForConnectionToComplete"),
    )
    wait_for_socket_response_after_call_fails: dt.timedelta | None = Field(
        default=None,
        validation_alias=_alias(
            "wait_for_socket_response_after_call_fails", "waitForSocketResponseAfterCallFails"
        ),
    )
    stack_trace_on_exception: bool | None = Field(
        default=None,
        validation_alias=_alias("stack_trace_on_exception", "stackTraceOnException"),
    )
    reset_ttl_on_read_at_percent: int | None = Field(
        default=None,
        ge=0,
        le=100,
        validation_alias=_alias("reset_ttl_on_read_at_percent", "resetTtlOnReadAtPercent"),
    )
    read_mode_ap: ReadModeAP | None = Field(
        default=None,
        validation_alias=_alias("read_mode_ap", "readModeAP", "migrationReadConsistency"),
    )
    read_mode_sc: ReadModeSC | None = Field(
        default=None,
        validation_alias=_alias("read_mode_sc", "readModeSC", "readConsistency"),
    )
    record_queue_size: int | None = Field(
        default=None, ge=1, validation_alias=_alias("record_queue_size", "recordQueueSize")
    )
    max_concurrent_nodes: int | None = Field(
        default=None,
        ge=0,
        validation_alias=_alias(
            "max_concurrent_nodes", "maxConcurrentNodes", "maxConcurrentServers"
        ),
        description="0 means all nodes in parallel.",
    )
    allow_inline_memory_access: bool | None = Field(
        default=None,
        validation_alias=_alias("allow_inline_memory_access", "allowInlineMemoryAccess"),
    )
    allow_inline_ssd_access: bool | None = Field(
        default=None,
        validation_alias=_alias("allow_inline_ssd_access", "allowInlineSsdAccess"),
    )
    use_durable_delete: bool | None = Field(
        default=None, validation_alias=_alias("use_durable_delete", "useDurableDelete")
    )
    simulate_xdr_write: bool | None = Field(
        default=None, validation_alias=_alias("simulate_xdr_write", "simulateXdrWrite")
    )
    commit_level: CommitLevel | None = Field(
        default=None, validation_alias=_alias("commit_level", "commitLevel")
    )

    @field_validator(*DURATION_FIELDS, mode="before")
    @classmethod
    def _parse_durations(cls, value: Any) -> Any:
        if value is None:
            return None
        return parse_duration(value)

    @field_validator("replica_order", "read_mode_ap", "read_mode_sc", "commit_level", mode="before")
    @classmethod
    def _normalise_enum_names(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    def merged_with(self, other: SettingsRecord) -> SettingsRecord:
        """Return a copy where every configured field of ``other`` wins."""
        updates = other.as_dict()
        if not updates:
            return self
        return self.model_copy(update=updates)

    def as_dict(self) -> dict[str, Any]:
        """Configured fields only, in declaration order."""
        return {
            name: value
            for name in type(self).model_fields
            if (value := getattr(self, name)) is not None
        }

    def configured_fields(self) -> tuple[str, ...]:
        return tuple(self.as_dict())

    def is_configured(self, name: str) -> bool:
        return getattr(self, name) is not None

    def value_or(self, name: str, default: Any) -> Any:
        """Return the field value, or ``default`` when it was never configured."""
        value = getattr(self, name)
        return default if value is None else value

    def is_empty(self) -> bool:
        return not self.as_dict()

    def describe(self) -> str:
        """Compact ``name=value`` rendering used by diagnostics."""
        parts = []
        for name, value in self.as_dict().items():
            if isinstance(value, dt.timedelta):
                rendered = format_duration(value)
            elif isinstance(value, Enum):
                rendered = value.name
            else:
                rendered = str(value).lower() if isinstance(value, bool) else str(value)
            parts.append(f"{name}={rendered}")
        return ", ".join(parts) if parts else "<nothing configured>"


SETTINGS_FIELDS: tuple[str, ...] = tuple(SettingsRecord.model_fields)
EMPTY_SETTINGS = SettingsRecord()


class InfoSettings(BaseModel):
    """
    Settings for cluster info commands.

    Info commands sit outside the (kind, shape, mode) key space and carry a
    single knob, so they are resolved separately from the matrix.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    abandon_call_after: dt.timedelta | None = Field(
        default=None,
        validation_alias=_alias("abandon_call_after", "abandonCallAfter"),
    )

    @field_validator("abandon_call_after", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> Any:
        if value is None:
            return None
        return parse_duration(value)

    def merged_with(self, other: InfoSettings) -> InfoSettings:
        updates = {name: value for name, value in other if value is not None}
        return self.model_copy(update=updates) if updates else self

    def is_empty(self) -> bool:
        return self.abandon_call_after is None

    def describe(self) -> str:
        if self.abandon_call_after is None:
            return "<nothing configured>"
        return f"abandon_call_after={format_duration(self.abandon_call_after)}"


EMPTY_INFO = InfoSettings()


def _always(key: OperationKey) -> bool:
    return True


def _reads(key: OperationKey) -> bool:
    return key.kind is OperationKind.READ


def _writes(key: OperationKey) -> bool:
    return key.kind.is_write


FIELD_SCOPES: dict[str, Callable[[OperationKey], bool]] = {
    "abandon_call_after": _always,
    "delay_between_retries": _always,
    "maximum_number_of_call_attempts": _always,
    "replica_order": _always,
    "send_key": _always,
    "use_compression": _always,
    "wait_for_call_to_complete": _always,
    "wait_for_connection_to_complete": _always,
    "wait_for_socket_response_after_call_fails": _always,
    "stack_trace_on_exception": _always,
    "reset_ttl_on_read_at_percent": _reads,
    "read_mode_ap": lambda key: _reads(key) and key.mode is ConsistencyMode.AVAILABILITY,
    "read_mode_sc": lambda key: _reads(key) and key.mode is ConsistencyMode.CONSISTENCY,
    "record_queue_size": lambda key: key.shape is OperationShape.QUERY,
    "max_concurrent_nodes": lambda key: key.shape in (OperationShape.BATCH, OperationShape.QUERY),
    "allow_inline_memory_access": lambda key: key.shape is OperationShape.BATCH,
    "allow_inline_ssd_access": lambda key: key.shape is OperationShape.BATCH,
    "use_durable_delete": _writes,
    "simulate_xdr_write": _writes,
    "commit_level": _writes,
}


def field_applies(name: str, key: OperationKey) -> bool:
    """Whether ``name`` is meaningful for operations addressed by ``key``."""
    return FIELD_SCOPES[name](key)


__all__ = [
    "CommitLevel",
    "EMPTY_INFO",
    "EMPTY_SETTINGS",
    "FIELD_SCOPES",
    "InfoSettings",
    "ReadModeAP",
    "ReadModeSC",
    "Replica",
    "SETTINGS_FIELDS",
    "SettingsRecord",
    "field_applies",
]
