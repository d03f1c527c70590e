"""Prometheus metrics for simulation batches.

Each ``LabMetrics`` owns a private ``CollectorRegistry`` so several instances
(one per batch, or per test) never collide on metric names.

Example:
    >>> metrics = LabMetrics()
    >>> metrics.record_run("COMPLETED", duration_seconds=0.42)
    >>> metrics.runs_total("COMPLETED")
    1.0
"""

import logging
import threading

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from tradelab_engine.config.models import MetricsConfig

logger = logging.getLogger(__name__)


class LabMetrics:
    """Counters and histograms describing simulation activity.

    Exposes:
    - Runs by terminal status
    - Run wall-clock duration
    - Reprices applied and red transitions
    - Liquidity cache hits/misses
    """

    def __init__(self, config: MetricsConfig | None = None) -> None:
        """Initialize metrics.

        Args:
            config: Metrics configuration (uses defaults if not provided)
        """
        self.config = config or MetricsConfig()
        self.registry = CollectorRegistry()
        self._lock = threading.Lock()

        prefix = self.config.prefix

        self._runs = Counter(
            f"{prefix}_runs_total",
            "Simulation runs by terminal status",
            ["status"],
            registry=self.registry,
        )
        self._run_duration = Histogram(
            f"{prefix}_run_duration_seconds",
            "Wall-clock duration of simulation runs",
            buckets=[0.01, 0.05, 0.1, 0.5, 1, 5, 15, 60, 300],
            registry=self.registry,
        )
        self._reprices = Counter(
            f"{prefix}_reprices_total",
            "Reprice events applied to listed positions",
            registry=self.registry,
        )
        self._red_transitions = Counter(
            f"{prefix}_red_positions_total",
            "Positions frozen after a reprice would breach the margin floor",
            registry=self.registry,
        )
        self._cache_lookups = Counter(
            f"{prefix}_liquidity_cache_lookups_total",
            "Liquidity snapshot cache lookups",
            ["result"],
            registry=self.registry,
        )

    @property
    def is_enabled(self) -> bool:
        return self.config.enabled

    def record_run(self, status: str, duration_seconds: float) -> None:
        if not self.config.enabled:
            return
        self._runs.labels(status=status).inc()
        self._run_duration.observe(duration_seconds)

    def record_reprices(self, count: int) -> None:
        if self.config.enabled and count > 0:
            self._reprices.inc(count)

    def record_red(self, count: int = 1) -> None:
        if self.config.enabled and count > 0:
            self._red_transitions.inc(count)

    def record_cache_lookup(self, hit: bool) -> None:
        if self.config.enabled:
            self._cache_lookups.labels(result="hit" if hit else "miss").inc()

    def runs_total(self, status: str) -> float:
        value = self.registry.get_sample_value(f"{self.config.prefix}_runs_total", {"status": status})
        return value or 0.0

    def cache_lookups(self, result: str) -> float:
        value = self.registry.get_sample_value(
            f"{self.config.prefix}_liquidity_cache_lookups_total", {"result": result}
        )
        return value or 0.0

    def render(self) -> bytes:
        """Serialize the registry in Prometheus text format."""
        with self._lock:
            return generate_latest(self.registry)
