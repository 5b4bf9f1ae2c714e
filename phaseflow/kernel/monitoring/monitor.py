"""Performance monitor: running aggregates over scheduler observations.

Every average is updated incrementally as ``(old * (n - 1) + new) / n`` and
every rate is recomputed from integer counters, so replaying the same ordered
observations into a fresh monitor reproduces the same metrics exactly.
"""

import threading
from collections import deque

from pydantic import BaseModel, ConfigDict

from phaseflow.kernel.config.models import MonitoringConfig
from phaseflow.kernel.logging import get_logger

logger = get_logger(__name__)


def running_average(old_average: float, count: int, new_value: float) -> float:
    """Fold ``new_value`` into an average over ``count`` observations (``count`` includes it)."""
    if count <= 1:
        return float(new_value)
    return (old_average * (count - 1) + new_value) / count


class PerformanceMetrics(BaseModel):
    """Snapshot of monitor aggregates.

    Times are milliseconds, memory is megabytes, rates are fractions.
    """

    model_config = ConfigDict(frozen=True)

    execution_time: float = 0.0
    cache_hit_rate: float = 0.0
    cache_size: int = 0
    memory_usage: float = 0.0
    concurrent_operations: int = 0
    engine_success_rate: float = 0.0
    average_response_time: float = 0.0
    throughput: float = 0.0
    error_rate: float = 0.0

    cache_hits: int = 0
    cache_misses: int = 0
    memory_samples: int = 0
    operations_recorded: int = 0
    operations_failed: int = 0
    executions_recorded: int = 0


class PerformanceMonitor:
    """Accumulates cache, latency, success and memory observations.

    Only the monitor mutates its metrics; readers get copies from
    ``get_current_metrics``.

    Examples
    --------
    >>> monitor = PerformanceMonitor()
    >>> monitor.record_cache_hit("k1")
    >>> monitor.record_cache_miss("k2")
    >>> monitor.get_current_metrics().cache_hit_rate
    0.5
    """

    def __init__(self, config: MonitoringConfig | None = None) -> None:
        self.config = config or MonitoringConfig()
        self._lock = threading.Lock()
        self._metrics = PerformanceMetrics()
        self._history: deque[PerformanceMetrics] = deque(maxlen=self.config.history_size or None)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_cache_hit(self, key: str) -> None:
        with self._lock:
            hits = self._metrics.cache_hits + 1
            self._update(cache_hits=hits, cache_hit_rate=self._hit_rate(hits, self._metrics.cache_misses))
        logger.trace("Cache hit {key}", key=key)

    def record_cache_miss(self, key: str) -> None:
        with self._lock:
            misses = self._metrics.cache_misses + 1
            self._update(
                cache_misses=misses, cache_hit_rate=self._hit_rate(self._metrics.cache_hits, misses)
            )
        logger.trace("Cache miss {key}", key=key)

    def record_memory_usage(self, operation_id: str, delta: float) -> None:
        """Record the memory delta (MB) observed around one operation."""
        with self._lock:
            samples = self._metrics.memory_samples + 1
            self._update(
                memory_samples=samples,
                memory_usage=running_average(self._metrics.memory_usage, samples, delta),
            )
        logger.trace("Operation {op} memory delta {delta:.3f}MB", op=operation_id, delta=delta)

    def record_operation(self, operation_id: str, duration_ms: float, success: bool) -> None:
        """Record one operation outcome and its response time."""
        with self._lock:
            recorded = self._metrics.operations_recorded + 1
            failed = self._metrics.operations_failed + (0 if success else 1)
            self._update(
                operations_recorded=recorded,
                operations_failed=failed,
                average_response_time=running_average(
                    self._metrics.average_response_time, recorded, duration_ms
                ),
                engine_success_rate=(recorded - failed) / recorded,
                error_rate=failed / recorded,
            )

    def record_execution(self, duration_ms: float, operations: int) -> None:
        """Record a completed scheduling request and snapshot history."""
        with self._lock:
            executions = self._metrics.executions_recorded + 1
            ops_per_second = operations / (duration_ms / 1000) if duration_ms > 0 else 0.0
            self._update(
                executions_recorded=executions,
                execution_time=running_average(self._metrics.execution_time, executions, duration_ms),
                throughput=running_average(self._metrics.throughput, executions, ops_per_second),
            )
            if self.config.history_size:
                self._history.append(self._metrics)

    def record_concurrency(self, active: int) -> None:
        """Set the concurrency gauge (operations allowed to run at once)."""
        with self._lock:
            self._update(concurrent_operations=active)

    def record_cache_size(self, size: int) -> None:
        with self._lock:
            self._update(cache_size=size)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def get_current_metrics(self) -> PerformanceMetrics:
        """Return a copy of the current metrics."""
        with self._lock:
            return self._metrics.model_copy(deep=True)

    @property
    def history(self) -> list[PerformanceMetrics]:
        with self._lock:
            return list(self._history)

    def check_alerts(self) -> list[str]:
        """Compare current metrics against alert thresholds and log each breach."""
        metrics = self.get_current_metrics()
        alerts: list[str] = []
        if metrics.average_response_time > self.config.response_time_alert:
            alerts.append(
                f"average response time {metrics.average_response_time:.0f}ms exceeds "
                f"{self.config.response_time_alert:.0f}ms"
            )
        if metrics.operations_recorded and metrics.error_rate > self.config.error_rate_alert:
            alerts.append(
                f"error rate {metrics.error_rate:.2%} exceeds {self.config.error_rate_alert:.2%}"
            )
        if metrics.memory_usage > self.config.memory_alert:
            alerts.append(
                f"memory usage {metrics.memory_usage:.1f}MB exceeds {self.config.memory_alert:.1f}MB"
            )
        for alert in alerts:
            logger.warning("Performance alert: {alert}", alert=alert)
        return alerts

    def reset(self) -> None:
        with self._lock:
            self._metrics = PerformanceMetrics()
            self._history.clear()

    # ------------------------------------------------------------------

    def _update(self, **changes: float | int) -> None:
        self._metrics = self._metrics.model_copy(update=changes)

    @staticmethod
    def _hit_rate(hits: int, misses: int) -> float:
        total = hits + misses
        return hits / total if total else 0.0
