from __future__ import annotations

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from policytree.core.loader import BehaviorLoader
from policytree.core.metrics import ResolutionMetrics
from policytree.core.registry import BehaviorRegistry


def _write_yaml(path: Path, content: str) -> None:
    path.write_text(textwrap.dedent(content).strip() + "\n", encoding="utf-8")


SAMPLE_DOCUMENT = """
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
      maximumNumberOfCallAttempts: 4
  fast-batch:
    parent: fast
    batchReads:
      maxConcurrentNodes: 8
"""


@pytest.fixture
def metrics() -> ResolutionMetrics:
    return ResolutionMetrics()


@pytest.fixture
def registry(metrics: ResolutionMetrics) -> BehaviorRegistry:
    """Fresh registry holding only the built-in root."""
    return BehaviorRegistry(metrics=metrics)


@pytest.fixture
def loader(registry: BehaviorRegistry, metrics: ResolutionMetrics) -> BehaviorLoader:
    return BehaviorLoader(registry, metrics=metrics)


@pytest.fixture
def write_document(tmp_path: Path) -> Callable[..., Path]:
    """Write a YAML document under ``tmp_path`` and return its path."""

    def _write(content: str, name: str = "behaviors.yaml") -> Path:
        path = tmp_path / name
        _write_yaml(path, content)
        return path

    return _write


@pytest.fixture
def sample_document(write_document: Callable[..., Path]) -> Path:
    return write_document(SAMPLE_DOCUMENT)
