"""
Dynaconf-powered runtime settings with Pydantic validation.

Runtime settings describe how the process hosts the behavior tree (which
document to watch, debounce window, logging, metrics exporter). They are
separate from the behavior documents themselves. Values come from an optional
YAML file and ``POLICYTREE_*`` environment variables, the latter winning.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from dynaconf import Dynaconf
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .behavior import ROOT_NAME
from .errors import ConfigError

ENVVAR_PREFIX = "POLICYTREE"
_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    """Case-insensitive dictionary lookup helper."""
    value = raw.get(key) or raw.get(key.upper()) or raw.get(key.lower())
    if isinstance(value, dict):
        return value
    return {}


def _lowercase_keys(raw: dict[str, Any]) -> dict[str, Any]:
    # Dynaconf upper-cases top-level keys.
    return {str(key).lower(): value for key, value in raw.items()}


class RuntimeSettings(BaseModel):
    """Validated snapshot of runtime settings."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    document_path: Path | None = Field(default=None)
    debounce_seconds: float = Field(default=1.0, gt=0)
    default_behavior: str = Field(default=ROOT_NAME, min_length=1)
    log_level: str = Field(default="INFO")
    log_file: Path | None = Field(default=None)
    metrics_port: int | None = Field(default=None, ge=0, le=65535)

    @field_validator("document_path", "log_file", mode="before")
    @classmethod
    def _blank_path_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            level = value.strip().upper()
            if level not in _LOG_LEVELS:
                raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
            return level
        return value

    @property
    def logging_level(self) -> int:
        return logging.getLevelName(self.log_level)


class RuntimeConfigService:
    """
    Runtime facade for loading and validating :class:`RuntimeSettings`.

    Settings may live at the top level of the file or under a ``policytree:``
    section.
    """

    def __init__(
        self,
        config_file: str | Path | None = None,
        *,
        settings: Dynaconf | None = None,
    ) -> None:
        self._config_file = Path(config_file) if config_file else None
        if self._config_file is not None and not self._config_file.is_file():
            raise ConfigError(f"Configuration file not found: {self._config_file}")
        settings_files = [str(self._config_file)] if self._config_file else []
        self._settings = settings or Dynaconf(
            envvar_prefix=ENVVAR_PREFIX,
            settings_files=settings_files,
            load_dotenv=True,
            environments=False,
        )
        self._snapshot = self._build_snapshot()

    @property
    def snapshot(self) -> RuntimeSettings:
        """Latest validated settings snapshot."""
        return self._snapshot

    @property
    def config_file(self) -> Path | None:
        return self._config_file

    def refresh(self) -> RuntimeSettings:
        """Reload the file and environment, then rebuild the snapshot."""
        if self._config_file is not None and not self._config_file.is_file():
            raise ConfigError(f"Configuration file not found: {self._config_file}")
        self._settings.reload()
        self._snapshot = self._build_snapshot()
        return self._snapshot

    def with_overrides(self, **overrides: Any) -> RuntimeSettings:
        """Return a snapshot with CLI-style overrides applied; ``None`` values are ignored."""
        data = self._snapshot.model_dump()
        data.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return RuntimeSettings.model_validate(data)
        except ValidationError as exc:
            raise ConfigError("Runtime setting overrides are invalid") from exc

    def _build_snapshot(self) -> RuntimeSettings:
        raw = self._settings.as_dict()
        data = _lowercase_keys(raw)
        data.update(_lowercase_keys(_section(raw, "policytree")))
        try:
            return RuntimeSettings.model_validate(data)
        except ValidationError as exc:
            raise ConfigError("Runtime configuration validation failed") from exc


__all__ = ["ENVVAR_PREFIX", "RuntimeConfigService", "RuntimeSettings"]
