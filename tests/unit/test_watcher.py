from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest
from watchdog.events import FileModifiedEvent, FileMovedEvent

from policytree.core.errors import BehaviorLoadError, PolicyTreeError
from policytree.core.loader import BehaviorLoader
from policytree.core.metrics import ResolutionMetrics
from policytree.core.operations import ConsistencyMode, OperationKind, OperationShape
from policytree.core.watcher import ConfigWatcher, ReloadOutcome

DEBOUNCE = 0.05
READ_POINT_AP = (OperationKind.READ, OperationShape.POINT, ConsistencyMode.AVAILABILITY)


class FakeObserver:
    """Stands in for watchdog's Observer; events are fired by the test."""

    def __init__(self) -> None:
        self.handlers: list[tuple[object, str, bool]] = []
        self.daemon = False
        self.started = False
        self.stopped = False
        self.joined = False

    def schedule(self, handler, path: str, recursive: bool = False) -> None:
        self.handlers.append((handler, path, recursive))

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def join(self, timeout: float | None = None) -> None:
        self.joined = True

    def fire(self, event) -> None:
        for handler, _path, _recursive in self.handlers:
            handler.dispatch(event)

    def modified(self, path: Path) -> None:
        self.fire(FileModifiedEvent(str(path)))


def _attempts(value: str) -> str:
    return f"svc:\n  allOperations:\n    maxAttempts: {value}\n"


@pytest.fixture
def observer() -> FakeObserver:
    return FakeObserver()


@pytest.fixture
def outcomes() -> asyncio.Queue[ReloadOutcome]:
    return asyncio.Queue()


@pytest.fixture
def watcher(
    loader: BehaviorLoader,
    observer: FakeObserver,
    outcomes: asyncio.Queue[ReloadOutcome],
    metrics: ResolutionMetrics,
) -> ConfigWatcher:
    return ConfigWatcher(
        loader,
        debounce_seconds=DEBOUNCE,
        observer_factory=lambda: observer,
        listeners=[outcomes.put_nowait],
        metrics=metrics,
    )


def _svc_attempts(loader: BehaviorLoader) -> int | None:
    record = loader.registry.require("svc").get_settings(*READ_POINT_AP)
    return record.maximum_number_of_call_attempts


async def _next(outcomes: asyncio.Queue[ReloadOutcome]) -> ReloadOutcome:
    return await asyncio.wait_for(outcomes.get(), timeout=2.0)


async def _assert_quiet(outcomes: asyncio.Queue[ReloadOutcome]) -> None:
    await asyncio.sleep(DEBOUNCE * 4)
    assert outcomes.empty()


@pytest.mark.asyncio
async def test_start_loads_document_and_watches_parent_directory(
    watcher: ConfigWatcher,
    observer: FakeObserver,
    loader: BehaviorLoader,
    write_document: Callable[..., Path],
) -> None:
    path = write_document(_attempts("2"))
    await watcher.start(path)
    try:
        assert watcher.is_active()
        assert _svc_attempts(loader) == 2
        assert observer.started and observer.daemon
        [(_handler, watched, recursive)] = observer.handlers
        assert Path(watched) == path.resolve().parent
        assert recursive is False
        assert watcher.fingerprint is not None
    finally:
        await watcher.stop()
    assert observer.stopped and observer.joined
    assert not watcher.is_active()


@pytest.mark.asyncio
async def test_modification_triggers_reload(
    watcher: ConfigWatcher,
    observer: FakeObserver,
    loader: BehaviorLoader,
    outcomes: asyncio.Queue[ReloadOutcome],
    write_document: Callable[..., Path],
) -> None:
    path = write_document(_attempts("2"))
    async with watcher.watching(path):
        write_document(_attempts("5"))
        observer.modified(path)
        outcome = await _next(outcomes)
        assert outcome.success and not outcome.skipped
        assert outcome.behaviors == ("svc",)
        assert _svc_attempts(loader) == 5


@pytest.mark.asyncio
async def test_burst_of_events_reloads_once(
    watcher: ConfigWatcher,
    observer: FakeObserver,
    metrics: ResolutionMetrics,
    outcomes: asyncio.Queue[ReloadOutcome],
    write_document: Callable[..., Path],
) -> None:
    path = write_document(_attempts("2"))
    async with watcher.watching(path):
        for value in ("3", "4", "6"):
            write_document(_attempts(value))
            observer.modified(path)
        outcome = await _next(outcomes)
        assert outcome.success
        await _assert_quiet(outcomes)
    # Initial load plus exactly one debounced reload.
    assert metrics.reloads("success") == 2


@pytest.mark.asyncio
async def test_unchanged_content_is_skipped(
    watcher: ConfigWatcher,
    observer: FakeObserver,
    metrics: ResolutionMetrics,
    outcomes: asyncio.Queue[ReloadOutcome],
    write_document: Callable[..., Path],
) -> None:
    path = write_document(_attempts("2"))
    async with watcher.watching(path):
        observer.modified(path)
        outcome = await _next(outcomes)
        assert outcome.skipped
    assert metrics.reloads("skipped") == 1


@pytest.mark.asyncio
async def test_broken_document_keeps_previous_behaviors(
    watcher: ConfigWatcher,
    observer: FakeObserver,
    loader: BehaviorLoader,
    outcomes: asyncio.Queue[ReloadOutcome],
    write_document: Callable[..., Path],
) -> None:
    path = write_document(_attempts("2"))
    async with watcher.watching(path):
        write_document("svc:\n  allOperations:\n    abandonCallAfter: 10xyz\n")
        observer.modified(path)
        failed = await _next(outcomes)
        assert not failed.success
        assert failed.error
        assert watcher.is_active()
        assert _svc_attempts(loader) == 2

        write_document(_attempts("7"))
        observer.modified(path)
        recovered = await _next(outcomes)
        assert recovered.success
        assert _svc_attempts(loader) == 7


@pytest.mark.asyncio
async def test_deleted_file_is_reported_not_raised(
    watcher: ConfigWatcher,
    observer: FakeObserver,
    loader: BehaviorLoader,
    outcomes: asyncio.Queue[ReloadOutcome],
    write_document: Callable[..., Path],
) -> None:
    path = write_document(_attempts("2"))
    async with watcher.watching(path):
        path.unlink()
        observer.modified(path)
        outcome = await _next(outcomes)
        assert not outcome.success
        assert watcher.is_active()
        assert _svc_attempts(loader) == 2


@pytest.mark.asyncio
async def test_rename_onto_target_triggers_reload(
    watcher: ConfigWatcher,
    observer: FakeObserver,
    loader: BehaviorLoader,
    outcomes: asyncio.Queue[ReloadOutcome],
    write_document: Callable[..., Path],
) -> None:
    path = write_document(_attempts("2"))
    async with watcher.watching(path):
        temp = write_document(_attempts("9"), "behaviors.yaml.tmp")
        temp.replace(path)
        observer.fire(FileMovedEvent(str(temp), str(path)))
        outcome = await _next(outcomes)
        assert outcome.success
        assert _svc_attempts(loader) == 9


@pytest.mark.asyncio
async def test_events_for_other_files_are_ignored(
    watcher: ConfigWatcher,
    observer: FakeObserver,
    outcomes: asyncio.Queue[ReloadOutcome],
    write_document: Callable[..., Path],
) -> None:
    path = write_document(_attempts("2"))
    other = write_document("unrelated: true\n", "notes.yaml")
    async with watcher.watching(path):
        observer.modified(other)
        await _assert_quiet(outcomes)


@pytest.mark.asyncio
async def test_async_listeners_and_failing_listeners(
    loader: BehaviorLoader,
    observer: FakeObserver,
    write_document: Callable[..., Path],
) -> None:
    received: asyncio.Queue[ReloadOutcome] = asyncio.Queue()

    def broken(outcome: ReloadOutcome) -> None:
        raise RuntimeError("listener bug")

    async def collect(outcome: ReloadOutcome) -> None:
        await received.put(outcome)

    watcher = ConfigWatcher(
        loader,
        debounce_seconds=DEBOUNCE,
        observer_factory=lambda: observer,
        listeners=[broken, collect],
    )
    path = write_document(_attempts("2"))
    async with watcher.watching(path):
        write_document(_attempts("3"))
        observer.modified(path)
        outcome = await _next(received)
        assert outcome.success
        assert watcher.is_active()


@pytest.mark.asyncio
async def test_start_errors_propagate(
    watcher: ConfigWatcher,
    observer: FakeObserver,
    tmp_path: Path,
    write_document: Callable[..., Path],
) -> None:
    with pytest.raises(BehaviorLoadError):
        await watcher.start(tmp_path / "missing.yaml")
    broken = write_document("svc:\n  allOperations:\n    maxAttempts: 0\n")
    with pytest.raises(BehaviorLoadError):
        await watcher.start(broken)
    assert observer.handlers == []
    assert not watcher.is_active()


@pytest.mark.asyncio
async def test_double_start_is_rejected(
    watcher: ConfigWatcher, write_document: Callable[..., Path]
) -> None:
    path = write_document(_attempts("2"))
    async with watcher.watching(path):
        with pytest.raises(PolicyTreeError):
            await watcher.start(path)


@pytest.mark.asyncio
async def test_force_reload_raises_and_respects_debounce_override(
    watcher: ConfigWatcher,
    loader: BehaviorLoader,
    write_document: Callable[..., Path],
) -> None:
    path = write_document(_attempts("2"))
    async with watcher.watching(path, debounce=0.2):
        assert watcher.debounce_seconds == 0.2
        write_document(_attempts("4"))
        outcome = watcher.force_reload()
        assert outcome.success and not outcome.skipped
        assert _svc_attempts(loader) == 4

        write_document("svc: [broken\n")
        with pytest.raises(BehaviorLoadError):
            watcher.force_reload()
        assert _svc_attempts(loader) == 4


def test_debounce_must_be_positive(loader: BehaviorLoader) -> None:
    with pytest.raises(ValueError):
        ConfigWatcher(loader, debounce_seconds=0)
