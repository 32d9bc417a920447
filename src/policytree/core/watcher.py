"""
Watch a behavior document and hot-reload it into the registry.

Filesystem notifications arrive on watchdog's observer thread and are handed
to the event loop with ``call_soon_threadsafe``. A single consumer task
collapses bursts of events: after the first event it keeps draining until the
debounce window passes without new events, then performs exactly one reload.
A reload whose file content hashes to the previous fingerprint is skipped.
Reload failures are logged and reported to listeners, never raised; the
previous registry contents stay in effect.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import inspect
import logging
import os
from collections.abc import AsyncIterator, Callable, Iterable
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .errors import BehaviorLoadError, PolicyTreeError
from .loader import BehaviorLoader
from .metrics import ResolutionMetrics

logger = logging.getLogger(__name__)


class ReloadOutcome(BaseModel):
    """What happened when the watched document was (re)loaded."""

    model_config = ConfigDict(frozen=True)

    path: Path
    success: bool
    skipped: bool = False
    behaviors: tuple[str, ...] = Field(default_factory=tuple)
    error: str | None = None
    fingerprint: str | None = None


ReloadListener = Callable[[ReloadOutcome], Any]
ObserverFactory = Callable[[], Any]


def _fingerprint(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class _DocumentEventHandler(FileSystemEventHandler):
    """Forwards events touching one file into an asyncio queue."""

    def __init__(
        self, target: Path, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[Path]
    ) -> None:
        super().__init__()
        self._target = target
        self._loop = loop
        self._queue = queue

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._offer(event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._offer(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Editors often save by writing a temp file and renaming it over the target.
        if not event.is_directory:
            self._offer(event.dest_path)

    def _offer(self, raw_path: str | bytes) -> None:
        if not raw_path:
            return
        if Path(os.fsdecode(raw_path)).resolve() != self._target:
            return
        with contextlib.suppress(RuntimeError):
            # Loop already closed during shutdown.
            self._loop.call_soon_threadsafe(self._queue.put_nowait, self._target)


class ConfigWatcher:
    """Keeps a registry in sync with a behavior document on disk."""

    JOIN_TIMEOUT_SECONDS = 2.0

    def __init__(
        self,
        loader: BehaviorLoader,
        *,
        debounce_seconds: float = 1.0,
        observer_factory: ObserverFactory | None = None,
        listeners: Iterable[ReloadListener] = (),
        metrics: ResolutionMetrics | None = None,
    ) -> None:
        if debounce_seconds <= 0:
            raise ValueError("debounce_seconds must be positive")
        self._loader = loader
        self._debounce = debounce_seconds
        self._observer_factory = observer_factory or Observer
        self._listeners: list[ReloadListener] = list(listeners)
        self._metrics = metrics
        self._path: Path | None = None
        self._fingerprint: str | None = None
        self._observer: Any | None = None
        self._queue: asyncio.Queue[Path] | None = None
        self._consumer_task: asyncio.Task[None] | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def fingerprint(self) -> str | None:
        return self._fingerprint

    @property
    def debounce_seconds(self) -> float:
        return self._debounce

    def add_listener(self, listener: ReloadListener) -> None:
        self._listeners.append(listener)

    def is_active(self) -> bool:
        task = self._consumer_task
        return self._observer is not None and task is not None and not task.done()

    async def start(self, location: str | Path, debounce: float | None = None) -> None:
        """
        Load the document once, then watch it for changes.

        Errors from the initial load propagate; later reload errors do not.
        """
        if self.is_active():
            raise PolicyTreeError(f"Watcher is already active for {self._path}")
        path = Path(location).resolve()
        if not path.is_file():
            raise BehaviorLoadError(f"Behavior document not found: {path}")
        if debounce is not None:
            if debounce <= 0:
                raise ValueError("debounce must be positive")
            self._debounce = debounce
        self._path = path
        self._fingerprint = None
        self.force_reload()

        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        handler = _DocumentEventHandler(path, loop, self._queue)
        observer = self._observer_factory()
        observer.schedule(handler, str(path.parent), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        self._consumer_task = asyncio.create_task(self._consume(), name="policytree-watcher")
        logger.info("Watching %s (debounce %.2fs)", path, self._debounce)

    async def stop(self) -> None:
        """Stop the observer thread and the consumer task."""
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            await asyncio.to_thread(observer.join, self.JOIN_TIMEOUT_SECONDS)
        task, self._consumer_task = self._consumer_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._queue = None
        if observer is not None:
            logger.info("Stopped watching %s", self._path)

    @contextlib.asynccontextmanager
    async def watching(
        self, location: str | Path, debounce: float | None = None
    ) -> AsyncIterator[ConfigWatcher]:
        await self.start(location, debounce)
        try:
            yield self
        finally:
            await self.stop()

    def force_reload(self) -> ReloadOutcome:
        """Reload the watched document now; errors are raised to the caller."""
        return self._reload(skip_unchanged=False)

    def _reload(self, *, skip_unchanged: bool) -> ReloadOutcome:
        if self._path is None:
            raise PolicyTreeError("Watcher has no document; call start() first")
        path = self._path
        try:
            data = path.read_bytes()
        except OSError as exc:
            self._record("failure")
            raise BehaviorLoadError(f"Cannot read behavior document {path}") from exc
        fingerprint = _fingerprint(data)
        if skip_unchanged and fingerprint == self._fingerprint:
            logger.debug("Skipping reload of %s; content unchanged", path)
            self._record("skipped")
            return ReloadOutcome(path=path, success=True, skipped=True, fingerprint=fingerprint)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            self._record("failure")
            raise BehaviorLoadError(f"Behavior document {path} is not UTF-8") from exc
        nodes = self._loader.load_string(text, source=str(path))
        self._fingerprint = fingerprint
        return ReloadOutcome(
            path=path, success=True, behaviors=tuple(nodes), fingerprint=fingerprint
        )

    def _record(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.record_reload(outcome)

    async def _consume(self) -> None:
        queue = self._queue
        assert queue is not None
        while True:
            await queue.get()
            await self._drain_until_quiet(queue)
            try:
                outcome = self._reload(skip_unchanged=True)
            except Exception as exc:  # reload errors never stop the watcher
                logger.exception("Reload of %s failed; keeping previous behaviors", self._path)
                outcome = ReloadOutcome(
                    path=self._path or Path(), success=False, error=str(exc)
                )
            else:
                if not outcome.skipped:
                    logger.info(
                        "Reloaded %s: %s", outcome.path, ", ".join(outcome.behaviors) or "<empty>"
                    )
            await self._notify(outcome)

    async def _drain_until_quiet(self, queue: asyncio.Queue[Path]) -> None:
        while True:
            try:
                await asyncio.wait_for(queue.get(), timeout=self._debounce)
            except TimeoutError:
                return

    async def _notify(self, outcome: ReloadOutcome) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(outcome)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Reload listener %r failed", listener)


__all__ = ["ConfigWatcher", "ReloadListener", "ReloadOutcome"]
