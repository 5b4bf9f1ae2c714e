"""Scheduler facade: the single entry point for optimized execution.

``execute_optimized`` runs the full pipeline for one request:

1. cache analysis
2. dependency leveling
3. planning
4. phase-by-phase execution
5. performance analysis
6. learning

Failures of individual operations stay local to those operations. Any other
exception raised along the way triggers a sequential, uncached fallback
over the original operation list, so the caller always receives a
``SchedulerResult``.

Examples
--------
Example usage::

    async with Scheduler() as scheduler:
        result = await scheduler.execute_optimized(
            [load, parse.after("load"), render.after("parse")],
            ExecutionContext(content_type="article", project_id="p-1"),
        )
        print(result.results["render"], result.performance.speedup_factor)
"""

import asyncio
import contextlib
import dataclasses
import inspect
import uuid
from collections.abc import Awaitable, Callable, Sequence
from types import TracebackType
from typing import Any, Self

from phaseflow.kernel.caching import ResultCache
from phaseflow.kernel.config.loader import load_config
from phaseflow.kernel.config.models import SchedulerConfig
from phaseflow.kernel.domain.dependency_graph import DependencyGraph, build_dependency_graph
from phaseflow.kernel.domain.operation import ExecutionContext, Operation
from phaseflow.kernel.domain.plan import ExecutionPlan
from phaseflow.kernel.logging import (
    configure_logging,
    get_logger,
    reset_correlation_id,
    set_correlation_id,
)
from phaseflow.kernel.monitoring.monitor import PerformanceMetrics, PerformanceMonitor
from phaseflow.kernel.monitoring.optimizer import AdaptiveOptimizer, TuningState
from phaseflow.kernel.orchestration.components.phase_executor import (
    PhaseExecutor,
    overall_parallelization_factor,
)
from phaseflow.kernel.orchestration.events import (
    Event,
    FallbackTriggered,
    Observer,
    SchedulerCompleted,
    SchedulerStarted,
    notify_observer,
)
from phaseflow.kernel.orchestration.models import (
    CacheAnalysis,
    CachedResult,
    CacheOptimizationResult,
    OperationResult,
    OptimizationOptions,
    OptimizationRecommendation,
    ParallelExecutionResult,
    PerformanceReport,
    PhaseResult,
    SchedulerResult,
)
from phaseflow.kernel.orchestration.planner import ExecutionPlanner
from phaseflow.kernel.utils import Timer, memory_efficiency, process_memory_mb

logger = get_logger(__name__)

LOW_CACHE_HIT_RATE = 0.3

CACHE_RECOMMENDATION = OptimizationRecommendation(
    type="cache_optimization",
    priority="high",
    description="Low cache hit rate detected. Consider adjusting cache strategy.",
    expected_impact="Reduce response time by 30-50%",
)
PARALLEL_RECOMMENDATION = OptimizationRecommendation(
    type="parallelization",
    priority="medium",
    description="Operations could benefit from parallel execution.",
    expected_impact="Reduce response time by 20-40%",
)
FALLBACK_RECOMMENDATION = OptimizationRecommendation(
    type="general",
    priority="low",
    description="Enable optimizations for better performance",
)


def _collect(phase_results: Sequence[PhaseResult]) -> dict[str, OperationResult]:
    return {op_id: r for phase_result in phase_results for op_id, r in phase_result.results.items()}


def _success_rate(operation_results: dict[str, OperationResult]) -> float:
    """Successful over all operations; 1.0 for an empty request."""
    if not operation_results:
        return 1.0
    return sum(1 for r in operation_results.values() if r.succeeded) / len(operation_results)


def _plan_factor(phase_results: Sequence[PhaseResult]) -> float:
    return overall_parallelization_factor(
        [r.duration_ms for r in phase_result.results.values()] for phase_result in phase_results
    )


class Scheduler:
    """Dependency-aware parallel scheduler with an integrated result cache.

    Each instance owns its cache, monitor, optimizer and tuning state; create
    one per application (or per test) and share it explicitly.

    Args
    ----
        config: Scheduler configuration; when omitted it is loaded from
            TOML/environment and its logging section is applied
        observer: Optional sync or async callable receiving events
    """

    def __init__(
        self, config: SchedulerConfig | None = None, observer: Observer | None = None
    ) -> None:
        if config is None:
            config = load_config()
            configure_logging(**dataclasses.asdict(config.logging))
        self.config = config
        self.observer = observer

        self.tuning = TuningState(
            concurrency=self.config.parallel.max_concurrent_operations,
            cache_ttl=self.config.cache.ttl,
        )
        self.monitor = PerformanceMonitor(self.config.monitoring)
        self.cache = ResultCache(
            self.config.cache, listener=self.monitor, ttl_provider=lambda: self.tuning.cache_ttl
        )
        self.optimizer = AdaptiveOptimizer(
            self.tuning,
            self.config.optimization,
            max_concurrency=self.config.parallel.max_concurrent_operations,
        )
        self.planner = ExecutionPlanner(self.config, self.tuning)
        self.executor = PhaseExecutor(self.cache, self.monitor, self.config.parallel, observer)
        self._monitoring_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Optimized execution
    # ------------------------------------------------------------------

    async def execute_optimized(
        self,
        operations: Sequence[Operation],
        context: ExecutionContext,
        options: OptimizationOptions | None = None,
    ) -> SchedulerResult:
        """Schedule and run ``operations`` under ``context``.

        Parameters
        ----------
        operations : Sequence[Operation]
            Operations of this request; ids must be unique
        context : ExecutionContext
            Context passed to every operation and used for cache validity
        options : OptimizationOptions | None
            Per-request knobs

        Returns
        -------
        SchedulerResult
            Always ``success=True``; per-operation failures are in ``errors``
        """
        options = options or OptimizationOptions()
        execution_id = f"exec_{uuid.uuid4().hex[:12]}"
        token = set_correlation_id(execution_id)
        try:
            timer = Timer()
            logger.info(
                "Starting optimized execution of {count} operations", count=len(operations)
            )
            await self._notify(SchedulerStarted(execution_id, len(operations)))

            try:
                result = await self._execute_planned(
                    operations, context, options, execution_id, timer
                )
            except Exception as e:
                logger.opt(exception=e).error(
                    "Optimized execution failed, falling back to sequential: {error}", error=e
                )
                await self._notify(FallbackTriggered(execution_id, e))
                result = await self._execute_sequential_fallback(
                    operations, context, execution_id, timer
                )

            duration_ms = timer.stop()
            self.monitor.record_execution(duration_ms, len(operations))
            self.monitor.record_cache_size(len(self.cache))
            await self._notify(
                SchedulerCompleted(
                    execution_id,
                    duration_ms,
                    succeeded=len(result.results),
                    failed=len(result.errors),
                    fallback_used=result.fallback_used,
                )
            )
            logger.info(
                "Execution finished in {ms:.2f}ms: {ok} succeeded, {failed} failed",
                ms=duration_ms,
                ok=len(result.results),
                failed=len(result.errors),
            )
            return result
        finally:
            reset_correlation_id(token)

    async def _execute_planned(
        self,
        operations: Sequence[Operation],
        context: ExecutionContext,
        options: OptimizationOptions,
        execution_id: str,
        timer: Timer,
    ) -> SchedulerResult:
        use_cache = options.enable_caching and self.config.cache.enabled

        cache_analysis = self.planner.analyze_cache(operations, context, self.cache)
        graph = build_dependency_graph(operations)
        plan = self.planner.create_plan(graph, cache_analysis, options)

        phase_results = await self._run_phases(plan, context, use_cache)
        operation_results = _collect(phase_results)
        report = self.analyze_performance(operation_results, timer.duration_ms, plan)
        self.optimizer.learn_from_execution(plan, report)

        return self._build_result(
            execution_id,
            operation_results,
            report,
            plan=plan,
            cache_analysis=cache_analysis,
            phase_results=phase_results,
        )

    async def _run_phases(
        self, plan: ExecutionPlan, context: ExecutionContext, use_cache: bool
    ) -> list[PhaseResult]:
        """Run phases in order; each starts only after the previous one settled."""
        concurrency = plan.resource_allocation.max_concurrent_operations
        phase_results: list[PhaseResult] = []
        unsuccessful: set[str] = set()
        for phase in plan.phases:
            phase_result = await self.executor.execute_phase(
                phase, context, use_cache, concurrency, unsuccessful
            )
            phase_results.append(phase_result)
            unsuccessful.update(
                op_id for op_id, r in phase_result.results.items() if not r.succeeded
            )
        return phase_results

    async def execute_in_parallel(
        self,
        operations: Sequence[Operation],
        context: ExecutionContext,
        graph: DependencyGraph | None = None,
    ) -> ParallelExecutionResult:
        """Run ``operations`` level by level without consulting the cache.

        Unlike ``execute_optimized`` there is no fallback: graph errors such
        as duplicate ids raise to the caller. Operation failures are reported
        in ``errors``.

        Parameters
        ----------
        operations : Sequence[Operation]
            Operations to run
        context : ExecutionContext
            Context passed to every operation
        graph : DependencyGraph | None
            Pre-built graph over ``operations``; built when omitted

        Returns
        -------
        ParallelExecutionResult
            Per-operation outputs and timings plus level-wide statistics

        Raises
        ------
        SchedulingError
            If the dependency graph cannot be built
        """
        graph = graph if graph is not None else build_dependency_graph(operations)
        plan = self.planner.create_plan(
            graph, CacheAnalysis(), OptimizationOptions(enable_caching=False)
        )
        phase_results = await self._run_phases(plan, context, use_cache=False)
        operation_results = _collect(phase_results)
        succeeded = {op_id: r for op_id, r in operation_results.items() if r.succeeded}

        return ParallelExecutionResult(
            results={op_id: r.output for op_id, r in succeeded.items()},
            execution_times={op_id: r.duration_ms for op_id, r in succeeded.items()},
            errors={
                op_id: r.error or str(r.status)
                for op_id, r in operation_results.items()
                if not r.succeeded
            },
            success_rate=_success_rate(operation_results),
            group_count=len(plan.phases),
            parallelization_factor=_plan_factor(phase_results),
        )

    async def _execute_sequential_fallback(
        self,
        operations: Sequence[Operation],
        context: ExecutionContext,
        execution_id: str,
        timer: Timer,
    ) -> SchedulerResult:
        """Run every operation in input order with no cache and no concurrency."""
        operation_results: dict[str, OperationResult] = {}
        for op in operations:
            operation_results[op.id] = await self.executor.execute_operation(
                op, context, use_cache=False
            )

        elapsed = timer.duration_ms
        report = PerformanceReport(
            original_time=elapsed,
            optimized_time=elapsed,
            speedup_factor=1.0,
            cache_hits=0,
            parallelization_gain=0.0,
            success_rate=_success_rate(operation_results),
            memory_efficiency=memory_efficiency(),
            recommendations=[FALLBACK_RECOMMENDATION],
        )
        return self._build_result(execution_id, operation_results, report, fallback_used=True)

    def analyze_performance(
        self,
        operation_results: dict[str, OperationResult],
        elapsed_ms: float,
        plan: ExecutionPlan | None,
    ) -> PerformanceReport:
        """Compare measured wall time against the plan estimate.

        Parameters
        ----------
        operation_results : dict[str, OperationResult]
            Results of every operation in the request
        elapsed_ms : float
            Measured wall time
        plan : ExecutionPlan | None
            Plan that was executed; without one the estimate is twice the
            measured time

        Returns
        -------
        PerformanceReport
            Report including recommendations
        """
        original = plan.estimated_time if plan is not None else elapsed_ms * 2
        cache_hits = sum(1 for r in operation_results.values() if r.from_cache)
        hit_rate = cache_hits / len(operation_results) if operation_results else 0.0

        recommendations: list[OptimizationRecommendation] = []
        if hit_rate < LOW_CACHE_HIT_RATE:
            recommendations.append(CACHE_RECOMMENDATION)
        if plan is not None and plan.parallel_phase_count == 0:
            recommendations.append(PARALLEL_RECOMMENDATION)

        gain = 0.0
        factor = 1.0
        if plan is not None and plan.phases:
            gain = plan.parallel_phase_count / len(plan.phases)
            durations = [
                [operation_results[i].duration_ms for i in phase.operation_ids if i in operation_results]
                for phase in plan.phases
            ]
            factor = overall_parallelization_factor(durations)

        return PerformanceReport(
            original_time=original,
            optimized_time=elapsed_ms,
            speedup_factor=original / elapsed_ms if elapsed_ms > 0 else 1.0,
            cache_hits=cache_hits,
            parallelization_gain=gain,
            parallelization_factor=factor,
            success_rate=_success_rate(operation_results),
            memory_efficiency=memory_efficiency(),
            recommendations=recommendations,
        )

    @staticmethod
    def _build_result(
        execution_id: str,
        operation_results: dict[str, OperationResult],
        report: PerformanceReport,
        plan: ExecutionPlan | None = None,
        cache_analysis: CacheAnalysis | None = None,
        phase_results: list[PhaseResult] | None = None,
        fallback_used: bool = False,
    ) -> SchedulerResult:
        return SchedulerResult(
            execution_id=execution_id,
            results={op_id: r.output for op_id, r in operation_results.items() if r.succeeded},
            errors={
                op_id: r.error or str(r.status)
                for op_id, r in operation_results.items()
                if not r.succeeded
            },
            operation_results=operation_results,
            phase_results=phase_results or [],
            performance=report,
            plan=plan,
            cache_analysis=cache_analysis,
            success=True,
            fallback_used=fallback_used,
        )

    # ------------------------------------------------------------------
    # Cache access
    # ------------------------------------------------------------------

    async def get_cached_result(
        self,
        key: str,
        context: ExecutionContext,
        generator: Callable[[], Awaitable[Any] | Any],
    ) -> CachedResult:
        """Return the cached value for ``key`` or generate, store and return it.

        Errors raised by ``generator`` propagate to the caller and nothing is
        cached.
        """
        entry = self.cache.get_entry(key, context)
        if entry is not None:
            return CachedResult(
                value=entry.value,
                from_cache=True,
                cache_key=key,
                age_ms=entry.age() * 1000,
                generation_time_ms=entry.generation_time,
            )

        timer = Timer()
        value = generator()
        if inspect.isawaitable(value):
            value = await value
        generation_time = timer.stop()

        self.cache.set(key, value, context, generation_time=generation_time)
        logger.debug("Cached new result {key} ({ms:.2f}ms)", key=key[:50], ms=generation_time)
        return CachedResult(
            value=value, from_cache=False, cache_key=key, generation_time_ms=generation_time
        )

    def get_performance_metrics(self) -> PerformanceMetrics:
        """Current monitor snapshot (a copy)."""
        self.monitor.record_cache_size(len(self.cache))
        return self.monitor.get_current_metrics()

    def optimize_cache(self) -> CacheOptimizationResult:
        """Run cache maintenance and report what changed."""
        before = self.cache.get_metrics()
        removed = self.cache.remove_expired_entries()
        compressed = self.cache.compress_large_entries()
        rebalanced = self.cache.rebalance_partitions()
        after = self.cache.get_metrics()

        result = CacheOptimizationResult(
            removed=removed,
            compressed=compressed,
            rebalanced=rebalanced,
            memory_freed=before.memory_usage - after.memory_usage,
            hit_rate_improvement=after.hit_rate - before.hit_rate,
        )
        logger.info(
            "Cache optimized: removed {removed}, freed {freed:.3f}MB",
            removed=removed,
            freed=result.memory_freed,
        )
        self.monitor.record_cache_size(after.size)
        return result

    def clear_cache(self, pattern: str | None = None) -> int:
        """Remove entries whose key matches ``pattern``, or every entry."""
        cleared = self.cache.clear_by_pattern(pattern) if pattern else self.cache.clear_all()
        self.monitor.record_cache_size(len(self.cache))
        return cleared

    # ------------------------------------------------------------------
    # Background monitoring
    # ------------------------------------------------------------------

    def run_maintenance(self) -> list[str]:
        """One monitoring tick: tune, relieve memory pressure, raise alerts.

        Returns
        -------
        list[str]
            Descriptions of the tuning actions and evictions performed
        """
        metrics = self.get_performance_metrics()
        actions = self.optimizer.evaluate(metrics, self.config.optimization)

        if process_memory_mb() > self.config.resource_limits.max_memory_usage:
            evicted = self.cache.perform_memory_optimization()
            if evicted:
                actions.append(f"evicted {evicted} cache entries")

        self.monitor.check_alerts()
        return actions

    async def _monitoring_loop(self) -> None:
        interval = self.config.monitoring.metrics_interval
        while True:
            await asyncio.sleep(interval)
            try:
                self.run_maintenance()
            except Exception as e:
                logger.opt(exception=e).error("Monitoring tick failed: {error}", error=e)

    def start_monitoring(self) -> None:
        """Start the periodic monitoring task on the running event loop."""
        if not self.config.monitoring.enabled:
            logger.debug("Monitoring disabled by configuration")
            return
        if self.monitoring_active:
            return
        self._monitoring_task = asyncio.get_running_loop().create_task(
            self._monitoring_loop(), name="phaseflow-monitoring"
        )
        logger.debug(
            "Monitoring started (interval {interval}s)",
            interval=self.config.monitoring.metrics_interval,
        )

    async def stop_monitoring(self) -> None:
        """Cancel the monitoring task and wait for it to finish."""
        task, self._monitoring_task = self._monitoring_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("Monitoring stopped")

    @property
    def monitoring_active(self) -> bool:
        return self._monitoring_task is not None and not self._monitoring_task.done()

    async def __aenter__(self) -> Self:
        self.start_monitoring()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop_monitoring()

    async def _notify(self, event: Event) -> None:
        await notify_observer(self.observer, event)
