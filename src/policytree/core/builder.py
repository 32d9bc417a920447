"""
Patch builders used both by application code and by the document loader.

A :class:`PatchBuilder` collects setter calls for one selector; every setter
checks that the field is meaningful for at least one operation the selector
matches, so ``Selectors.writes()`` cannot carry a query queue size. The
:class:`BehaviorBuilder` appends frozen patches in call order.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import BehaviorConfigurationError
from .selectors import SelectorSpec, Selectors
from .settings import (
    EMPTY_INFO,
    SETTINGS_FIELDS,
    CommitLevel,
    InfoSettings,
    ReadModeAP,
    ReadModeSC,
    Replica,
    SettingsRecord,
    field_applies,
)


class Patch(BaseModel):
    """One ordered override entry: selector plus partial settings."""

    model_config = ConfigDict(frozen=True)

    selector: SelectorSpec
    settings: SettingsRecord

    def describe(self) -> str:
        return f"{self.selector.describe()} {self.settings.describe()}"


class PatchBuilder:
    """Mutable accumulator for a single patch; frozen by :meth:`build`."""

    def __init__(self, selector: SelectorSpec) -> None:
        self._selector = selector
        self._values: dict[str, Any] = {}

    @property
    def selector(self) -> SelectorSpec:
        return self._selector

    def set(self, name: str, value: Any) -> PatchBuilder:
        """Set one field by name, validating scope and value."""
        if name not in SETTINGS_FIELDS:
            raise BehaviorConfigurationError(f"Unknown setting '{name}'")
        if value is None:
            raise BehaviorConfigurationError(f"Setting '{name}' cannot be set to None")
        if not any(field_applies(name, key) for key in self._selector.matching_keys()):
            raise BehaviorConfigurationError(
                f"Setting '{name}' does not apply to operations selected by "
                f"{self._selector.describe()}"
            )
        try:
            validated = SettingsRecord.model_validate({name: value})
        except ValidationError as exc:
            raise BehaviorConfigurationError(f"Invalid value for '{name}': {value!r}") from exc
        self._values[name] = getattr(validated, name)
        return self

    def update(self, values: SettingsRecord) -> PatchBuilder:
        """Apply every configured field of ``values`` through :meth:`set`."""
        for name, value in values.as_dict().items():
            self.set(name, value)
        return self

    def build(self) -> Patch:
        return Patch(selector=self._selector, settings=SettingsRecord.model_validate(self._values))

    # Common knobs
    def abandon_call_after(self, value: dt.timedelta | str) -> PatchBuilder:
        return self.set("abandon_call_after", value)

    def delay_between_retries(self, value: dt.timedelta | str) -> PatchBuilder:
        return self.set("delay_between_retries", value)

    def maximum_number_of_call_attempts(self, value: int) -> PatchBuilder:
        return self.set("maximum_number_of_call_attempts", value)

    def replica_order(self, value: Replica | str) -> PatchBuilder:
        return self.set("replica_order", value)

    def send_key(self, value: bool) -> PatchBuilder:
        return self.set("send_key", value)

    def use_compression(self, value: bool) -> PatchBuilder:
        return self.set("use_compression", value)

    def wait_for_call_to_complete(self, value: dt.timedelta | str) -> PatchBuilder:
        return self.set("wait_for_call_to_complete", value)

    def wait_for_connection_to_complete(self, value: dt.timedelta | str) -> PatchBuilder:
        return self.set("wait_for_connection_to_complete", value)

    def wait_for_socket_response_after_call_fails(
        self, value: dt.timedelta | str
    ) -> PatchBuilder:
        return self.set("wait_for_socket_response_after_call_fails", value)

    def stack_trace_on_exception(self, value: bool) -> PatchBuilder:
        return self.set("stack_trace_on_exception", value)

    # Reads
    def reset_ttl_on_read_at_percent(self, value: int) -> PatchBuilder:
        return self.set("reset_ttl_on_read_at_percent", value)

    def read_mode_ap(self, value: ReadModeAP | str) -> PatchBuilder:
        return self.set("read_mode_ap", value)

    def read_mode_sc(self, value: ReadModeSC | str) -> PatchBuilder:
        return self.set("read_mode_sc", value)

    # Batch and query
    def record_queue_size(self, value: int) -> PatchBuilder:
        return self.set("record_queue_size", value)

    def max_concurrent_nodes(self, value: int) -> PatchBuilder:
        return self.set("max_concurrent_nodes", value)

    def allow_inline_memory_access(self, value: bool) -> PatchBuilder:
        return self.set("allow_inline_memory_access", value)

    def allow_inline_ssd_access(self, value: bool) -> PatchBuilder:
        return self.set("allow_inline_ssd_access", value)

    # Writes
    def use_durable_delete(self, value: bool) -> PatchBuilder:
        return self.set("use_durable_delete", value)

    def simulate_xdr_write(self, value: bool) -> PatchBuilder:
        return self.set("simulate_xdr_write", value)

    def commit_level(self, value: CommitLevel | str) -> PatchBuilder:
        return self.set("commit_level", value)


class InfoPatchBuilder:
    """Setters for info commands; only the call budget applies."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def abandon_call_after(self, value: dt.timedelta | str) -> InfoPatchBuilder:
        if value is None:
            raise BehaviorConfigurationError("Info setting 'abandon_call_after' cannot be None")
        try:
            validated = InfoSettings.model_validate({"abandon_call_after": value})
        except ValidationError as exc:
            raise BehaviorConfigurationError(
                f"Invalid value for info 'abandon_call_after': {value!r}"
            ) from exc
        self._values["abandon_call_after"] = validated.abandon_call_after
        return self

    def update(self, values: InfoSettings) -> InfoPatchBuilder:
        if values.abandon_call_after is not None:
            self.abandon_call_after(values.abandon_call_after)
        return self

    def build(self) -> InfoSettings:
        return InfoSettings.model_validate(self._values)


Configurator = Callable[[PatchBuilder], Any]
InfoConfigurator = Callable[[InfoPatchBuilder], Any]


class BehaviorBuilder:
    """
    Ordered collection of patches for a behavior under construction.

    Patches are appended in call order and later patches win field by field
    wherever their selectors overlap.
    """

    def __init__(self) -> None:
        self._patches: list[Patch] = []
        self._info: InfoSettings = EMPTY_INFO

    def on(self, selector: SelectorSpec, configure: Configurator) -> BehaviorBuilder:
        patch_builder = PatchBuilder(selector)
        configure(patch_builder)
        self._patches.append(patch_builder.build())
        return self

    def add_patch(self, patch: Patch) -> BehaviorBuilder:
        self._patches.append(patch)
        return self

    def for_all_operations(self, configure: Configurator) -> BehaviorBuilder:
        return self.on(Selectors.all(), configure)

    def on_reads(self, configure: Configurator) -> BehaviorBuilder:
        return self.on(Selectors.reads(), configure)

    def on_writes(self, configure: Configurator) -> BehaviorBuilder:
        return self.on(Selectors.writes(), configure)

    def on_availability_mode_reads(self, configure: Configurator) -> BehaviorBuilder:
        return self.on(Selectors.reads().ap(), configure)

    def on_consistency_mode_reads(self, configure: Configurator) -> BehaviorBuilder:
        return self.on(Selectors.reads().cp(), configure)

    def on_retryable_writes(self, configure: Configurator) -> BehaviorBuilder:
        return self.on(Selectors.writes().retryable(), configure)

    def on_non_retryable_writes(self, configure: Configurator) -> BehaviorBuilder:
        return self.on(Selectors.writes().non_retryable(), configure)

    def on_batch_reads(self, configure: Configurator) -> BehaviorBuilder:
        return self.on(Selectors.reads().batch(), configure)

    def on_batch_writes(self, configure: Configurator) -> BehaviorBuilder:
        return self.on(Selectors.writes().batch(), configure)

    def on_query(self, configure: Configurator) -> BehaviorBuilder:
        return self.on(Selectors.reads().query(), configure)

    def on_info(self, configure: InfoConfigurator) -> BehaviorBuilder:
        """Configure info commands; repeated calls merge, later values win."""
        info_builder = InfoPatchBuilder()
        configure(info_builder)
        self._info = self._info.merged_with(info_builder.build())
        return self

    def build(self) -> tuple[Patch, ...]:
        return tuple(self._patches)

    def build_info(self) -> InfoSettings:
        return self._info


def baseline_info() -> InfoSettings:
    """Info settings of the built-in root behavior."""
    return InfoSettings(abandon_call_after=dt.timedelta(seconds=1))


def baseline_patches() -> tuple[Patch, ...]:
    """Patches of the built-in root behavior; every common knob is set for every key."""

    return (
        BehaviorBuilder()
        .for_all_operations(
            lambda ops: ops.abandon_call_after(dt.timedelta(seconds=30))
            .delay_between_retries(dt.timedelta(0))
            .maximum_number_of_call_attempts(1)
            .replica_order(Replica.SEQUENCE)
            .reset_ttl_on_read_at_percent(0)
            .send_key(True)
            .use_compression(False)
            .wait_for_call_to_complete(dt.timedelta(seconds=1))
            .wait_for_connection_to_complete(dt.timedelta(0))
            .wait_for_socket_response_after_call_fails(dt.timedelta(0))
            .stack_trace_on_exception(False)
        )
        .on_availability_mode_reads(lambda ops: ops.read_mode_ap(ReadModeAP.ALL))
        .on_consistency_mode_reads(lambda ops: ops.read_mode_sc(ReadModeSC.SESSION))
        .on_batch_reads(
            lambda ops: ops.max_concurrent_nodes(1)
            .allow_inline_memory_access(True)
            .allow_inline_ssd_access(False)
        )
        .on_batch_writes(
            lambda ops: ops.max_concurrent_nodes(1)
            .allow_inline_memory_access(True)
            .allow_inline_ssd_access(False)
        )
        .on_writes(
            lambda ops: ops.use_durable_delete(False)
            .simulate_xdr_write(False)
            .commit_level(CommitLevel.COMMIT_ALL)
        )
        .on_retryable_writes(lambda ops: ops.maximum_number_of_call_attempts(3))
        .on_query(
            lambda ops: ops.record_queue_size(5000)
            .max_concurrent_nodes(0)
            .maximum_number_of_call_attempts(6)
        )
        .build()
    )


__all__ = [
    "BehaviorBuilder",
    "Configurator",
    "InfoConfigurator",
    "InfoPatchBuilder",
    "Patch",
    "PatchBuilder",
    "baseline_info",
    "baseline_patches",
]
