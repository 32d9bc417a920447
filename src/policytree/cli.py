"""
Command-line entrypoint for inspecting and hot-reloading behavior documents.

``policytree explain`` and ``policytree get`` load a document into a fresh
registry and print what a behavior resolves to. ``policytree watch`` keeps a
registry in sync with a document until interrupted, which is mostly useful
to validate edits against a running configuration.
"""

from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import logging
import logging.handlers
import signal
from collections.abc import Sequence
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .core.config import RuntimeConfigService, RuntimeSettings
from .core.durations import format_duration
from .core.errors import ConfigError, PolicyTreeError
from .core.loader import BehaviorLoader
from .core.metrics import ResolutionMetrics
from .core.registry import BehaviorRegistry
from .core.settings import SettingsRecord
from .core.watcher import ConfigWatcher, ReloadOutcome

LOGGER = logging.getLogger(__name__)
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def configure_logging(level: str, log_file: Path | None = None) -> None:
    """
    Log to stderr at ``level`` and, when ``log_file`` is set, to a rotating file.

    Calling this again with the same file does not add a second handler.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(numeric_level)
    if log_file is None:
        return

    target = log_file.resolve()
    already_attached = any(
        isinstance(handler, logging.handlers.RotatingFileHandler)
        and Path(handler.baseFilename) == target
        for handler in root.handlers
    )
    if already_attached:
        return
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            target, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
        )
    except OSError as exc:
        LOGGER.warning("Logging to %s disabled: %s", target, exc)
        return
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(file_handler)


def record_to_dict(record: SettingsRecord) -> dict[str, Any]:
    """Configured fields as plain YAML-friendly values."""
    rendered: dict[str, Any] = {}
    for name, value in record.as_dict().items():
        if isinstance(value, dt.timedelta):
            rendered[name] = format_duration(value)
        elif isinstance(value, Enum):
            rendered[name] = value.value
        else:
            rendered[name] = value
    return rendered


def _load_registry(document: Path, metrics: ResolutionMetrics | None = None) -> BehaviorRegistry:
    registry = BehaviorRegistry(metrics=metrics)
    BehaviorLoader(registry, metrics=metrics).load_file(document)
    return registry


def cmd_explain(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    registry = _load_registry(args.document)
    print(registry.require(args.behavior).explain())
    return 0


def cmd_get(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    registry = _load_registry(args.document)
    record = registry.require(args.behavior).get_settings(args.kind, args.shape, args.mode)
    print(yaml.safe_dump(record_to_dict(record), sort_keys=False).rstrip())
    return 0


def cmd_watch(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    document = args.document or settings.document_path
    if document is None:
        raise ConfigError("No behavior document given; pass DOCUMENT or set document_path")
    asyncio.run(run_watch(Path(document), settings))
    return 0


async def run_watch(document: Path, settings: RuntimeSettings) -> None:
    """Load ``document``, watch it for edits, and run until a shutdown signal."""

    metrics = ResolutionMetrics()
    registry = BehaviorRegistry(metrics=metrics)
    loader = BehaviorLoader(registry, metrics=metrics)

    def _log_outcome(outcome: ReloadOutcome) -> None:
        if outcome.success and not outcome.skipped:
            behavior = registry.get_or_default(settings.default_behavior)
            LOGGER.info("Active behavior %s after reload:\n%s", behavior.name, behavior.explain())
        elif not outcome.success:
            LOGGER.warning("Keeping previous behaviors: %s", outcome.error)

    watcher = ConfigWatcher(
        loader,
        debounce_seconds=settings.debounce_seconds,
        listeners=[_log_outcome],
        metrics=metrics,
    )
    if settings.metrics_port is not None:
        metrics.serve(settings.metrics_port)

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    try:
        async with watcher.watching(document):
            LOGGER.info(
                "Watching %s with %d behavior(s). Press Ctrl+C to stop.",
                document,
                len(registry.names()),
            )
            await stop_event.wait()
    finally:
        metrics.shutdown()


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _request_shutdown(sig_name: str) -> None:
        if not stop_event.is_set():
            LOGGER.info("Received %s, stopping watcher.", sig_name)
            stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_shutdown, sig.name)
        except NotImplementedError:  # Windows Proactor loop
            signal.signal(  # type: ignore[arg-type]
                sig,
                lambda signum, _frame, sig_name=sig.name: loop.call_soon_threadsafe(
                    _request_shutdown, sig_name or str(signum)
                ),
            )


def parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect and hot-reload policy behavior trees.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Runtime settings YAML (POLICYTREE_* environment variables also apply).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Python logging level (default: from settings, else INFO).",
    )
    parser.add_argument(
        "--debounce",
        type=float,
        default=None,
        help="Seconds of quiet before a changed document is reloaded.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    explain = subparsers.add_parser("explain", help="Print a behavior's patches and matrix.")
    explain.add_argument("document", type=Path)
    explain.add_argument("behavior")
    explain.set_defaults(handler=cmd_explain)

    get = subparsers.add_parser("get", help="Print the settings for one operation as YAML.")
    get.add_argument("document", type=Path)
    get.add_argument("behavior")
    get.add_argument("kind", help="read, write_retryable or write_non_retryable")
    get.add_argument("shape", help="point, batch or query")
    get.add_argument("mode", help="availability or consistency")
    get.set_defaults(handler=cmd_get)

    watch = subparsers.add_parser("watch", help="Hot-reload a document until interrupted.")
    watch.add_argument("document", type=Path, nargs="?", default=None)
    watch.set_defaults(handler=cmd_watch)
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        service = RuntimeConfigService(args.config)
        settings = service.with_overrides(
            log_level=args.log_level, debounce_seconds=args.debounce
        )
    except ConfigError as exc:
        configure_logging(args.log_level or "INFO")
        LOGGER.error("Configuration failed: %s", exc)
        return 2
    configure_logging(settings.log_level, settings.log_file)
    try:
        return args.handler(args, settings)
    except KeyboardInterrupt:
        LOGGER.info("Interrupted by user.")
        return 0
    except PolicyTreeError as exc:
        LOGGER.error("%s", exc)
        return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
