"""
Prometheus instrumentation for matrix recomputation and reloads.

Each :class:`ResolutionMetrics` owns its own ``CollectorRegistry`` so tests
and multiple registries never collide on metric names.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest, start_http_server

logger = logging.getLogger(__name__)


def _default_server_factory(
    port: int, addr: str, registry: CollectorRegistry
) -> object:  # pragma: no cover - thin wrapper
    return start_http_server(port=port, addr=addr, registry=registry)


class ResolutionMetrics:
    """Counters and gauges describing the behavior tree at runtime."""

    def __init__(
        self,
        *,
        registry: CollectorRegistry | None = None,
        server_factory: Callable[[int, str, CollectorRegistry], object] | None = None,
    ) -> None:
        self.registry = registry or CollectorRegistry()
        self._server_factory = server_factory or _default_server_factory
        self._server: object | None = None
        self._computations = Counter(
            "policytree_matrix_computations_total",
            "Resolution matrices computed, per behavior.",
            ["behavior"],
            registry=self.registry,
        )
        self._reloads = Counter(
            "policytree_reloads_total",
            "Behavior document reload attempts by outcome.",
            ["outcome"],
            registry=self.registry,
        )
        self._registered = Gauge(
            "policytree_registered_behaviors",
            "Behaviors currently present in the registry.",
            registry=self.registry,
        )

    def record_computation(self, behavior: str) -> None:
        self._computations.labels(behavior=behavior).inc()

    def record_reload(self, outcome: str) -> None:
        self._reloads.labels(outcome=outcome).inc()

    def set_registered(self, count: int) -> None:
        self._registered.set(count)

    def computations(self, behavior: str) -> float:
        return self.registry.get_sample_value(
            "policytree_matrix_computations_total", {"behavior": behavior}
        ) or 0.0

    def reloads(self, outcome: str) -> float:
        return self.registry.get_sample_value(
            "policytree_reloads_total", {"outcome": outcome}
        ) or 0.0

    def render(self) -> str:
        return generate_latest(self.registry).decode("utf-8")

    def serve(self, port: int, addr: str = "127.0.0.1") -> None:
        if self._server is None:
            self._server = self._server_factory(port, addr, self.registry)
            logger.info("Serving policytree metrics on %s:%d", addr, port)

    def shutdown(self) -> None:
        # start_http_server returns (server, thread) on current prometheus_client.
        server = self._server[0] if isinstance(self._server, tuple) else self._server
        stop = getattr(server, "shutdown", None)
        if callable(stop):
            stop()
        self._server = None


__all__ = ["ResolutionMetrics"]
