"""Adaptive optimizer: feeds monitor observations back into tuning knobs.

The optimizer never touches an in-flight plan. It mutates a ``TuningState``
that the planner reads when it builds the *next* plan and that the cache
reads on every lookup.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING

from phaseflow.kernel.config.models import OptimizationConfig
from phaseflow.kernel.logging import get_logger

if TYPE_CHECKING:
    from phaseflow.kernel.domain.plan import ExecutionPlan
    from phaseflow.kernel.monitoring.monitor import PerformanceMetrics
    from phaseflow.kernel.orchestration.models import PerformanceReport

logger = get_logger(__name__)

_TTL_SHRINK = 0.75
_TTL_GROW = 1.5
_DEFAULT_LEARNING_HISTORY = 100


@dataclass(slots=True)
class TuningState:
    """Mutable knobs shared between the optimizer, the planner and the cache.

    Attributes
    ----------
    concurrency : int
        Concurrency hint the planner uses when options do not pin one
    cache_ttl : float
        Entry time-to-live in seconds the cache applies on lookup
    """

    concurrency: int
    cache_ttl: float


@dataclass(frozen=True, slots=True)
class LearningRecord:
    """Outcome of one scheduled request, kept for recommendations."""

    phases: int
    parallel_phases: int
    operations: int
    cache_hits: int
    speedup_factor: float


class AdaptiveOptimizer:
    """Adjusts concurrency and cache ttl from observed performance.

    Args
    ----
        tuning: Shared state the optimizer mutates
        config: Thresholds and ttl bounds
        max_concurrency: Ceiling for the concurrency hint
        history_size: Number of learning records retained

    Examples
    --------
    >>> state = TuningState(concurrency=4, cache_ttl=1000.0)
    >>> optimizer = AdaptiveOptimizer(state, max_concurrency=4)
    >>> optimizer.optimize_for_response_time()
    ['concurrency 4 -> 3', 'cache ttl 1000s -> 750s']
    >>> state.concurrency
    3
    """

    def __init__(
        self,
        tuning: TuningState,
        config: OptimizationConfig | None = None,
        max_concurrency: int | None = None,
        history_size: int = _DEFAULT_LEARNING_HISTORY,
    ) -> None:
        self.tuning = tuning
        self.config = config or OptimizationConfig()
        self.max_concurrency = max(max_concurrency or tuning.concurrency, 1)
        self._lock = threading.Lock()
        self._records: deque[LearningRecord] = deque(maxlen=history_size)

    # ------------------------------------------------------------------
    # Tuning passes
    # ------------------------------------------------------------------

    def optimize_for_response_time(self) -> list[str]:
        """Lower the concurrency hint by one and shorten the cache ttl by a quarter."""
        actions: list[str] = []
        with self._lock:
            if self.tuning.concurrency > 1:
                old = self.tuning.concurrency
                self.tuning.concurrency = old - 1
                actions.append(f"concurrency {old} -> {self.tuning.concurrency}")

            old_ttl = self.tuning.cache_ttl
            new_ttl = max(old_ttl * _TTL_SHRINK, self.config.min_ttl)
            if new_ttl < old_ttl:
                self.tuning.cache_ttl = new_ttl
                actions.append(f"cache ttl {old_ttl:.0f}s -> {new_ttl:.0f}s")

        if actions:
            logger.info("Response-time tuning applied: {actions}", actions=actions)
        return actions

    def optimize_cache_strategy(self) -> list[str]:
        """Lengthen the cache ttl by half and raise concurrency toward its ceiling."""
        actions: list[str] = []
        with self._lock:
            old_ttl = self.tuning.cache_ttl
            new_ttl = min(old_ttl * _TTL_GROW, self.config.max_ttl)
            if new_ttl > old_ttl:
                self.tuning.cache_ttl = new_ttl
                actions.append(f"cache ttl {old_ttl:.0f}s -> {new_ttl:.0f}s")

            if self.tuning.concurrency < self.max_concurrency:
                old = self.tuning.concurrency
                self.tuning.concurrency = old + 1
                actions.append(f"concurrency {old} -> {self.tuning.concurrency}")

        if actions:
            logger.info("Cache tuning applied: {actions}", actions=actions)
        return actions

    def evaluate(
        self, metrics: PerformanceMetrics, config: OptimizationConfig | None = None
    ) -> list[str]:
        """Run the tuning passes whose thresholds ``metrics`` cross.

        Parameters
        ----------
        metrics : PerformanceMetrics
            Current monitor snapshot
        config : OptimizationConfig | None
            Thresholds to apply; defaults to the optimizer's own

        Returns
        -------
        list[str]
            Human-readable descriptions of every adjustment made
        """
        config = config or self.config
        if not (config.enabled and config.auto_tuning):
            return []

        actions: list[str] = []
        if metrics.average_response_time > config.response_time_threshold:
            actions.extend(self.optimize_for_response_time())

        lookups = metrics.cache_hits + metrics.cache_misses
        if lookups and metrics.cache_hit_rate < config.cache_hit_threshold:
            actions.extend(self.optimize_cache_strategy())

        return actions

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def learn_from_execution(self, plan: ExecutionPlan, report: PerformanceReport) -> None:
        """Record the outcome of one planned execution."""
        record = LearningRecord(
            phases=len(plan.phases),
            parallel_phases=plan.parallel_phase_count,
            operations=sum(len(phase) for phase in plan.phases),
            cache_hits=report.cache_hits,
            speedup_factor=report.speedup_factor,
        )
        with self._lock:
            self._records.append(record)
        logger.debug(
            "Learned from execution: {phases} phases, speedup {speedup:.2f}",
            phases=record.phases,
            speedup=record.speedup_factor,
        )

    @property
    def records(self) -> list[LearningRecord]:
        with self._lock:
            return list(self._records)

    def recommendations(self) -> list[str]:
        """Suggestions derived from the learned execution records."""
        records = self.records
        if not records:
            return []

        suggestions: list[str] = []
        average_speedup = sum(r.speedup_factor for r in records) / len(records)
        if average_speedup < 1.0:
            suggestions.append(
                "Executions run slower than estimated; consider lowering max_concurrent_operations."
            )

        total_ops = sum(r.operations for r in records)
        total_hits = sum(r.cache_hits for r in records)
        if total_ops and total_hits / total_ops < 0.3:
            suggestions.append("Few operations are served from cache; consider a longer cache ttl.")

        if all(r.parallel_phases == 0 for r in records):
            suggestions.append(
                "No phase has run in parallel; review operation dependencies for independent work."
            )
        return suggestions
