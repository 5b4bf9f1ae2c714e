"""Execution planner: turns a leveled dependency graph into an execution plan."""

from collections.abc import Sequence

from phaseflow.kernel.caching import ResultCache, try_cache_key
from phaseflow.kernel.config.models import SchedulerConfig
from phaseflow.kernel.domain.dependency_graph import DependencyGraph
from phaseflow.kernel.domain.operation import ExecutionContext, Operation
from phaseflow.kernel.domain.plan import (
    CacheStrategy,
    ExecutionMode,
    ExecutionPhase,
    ExecutionPlan,
    ParallelStrategy,
    ResourceAllocation,
)
from phaseflow.kernel.logging import get_logger
from phaseflow.kernel.monitoring.optimizer import TuningState
from phaseflow.kernel.orchestration.models import CacheAnalysis, OptimizationOptions

logger = get_logger(__name__)

AGGRESSIVE_CACHE_HIT_RATE = 0.7
MODERATE_CACHE_HIT_RATE = 0.3
AGGRESSIVE_PARALLEL_DEPTH = 3


class ExecutionPlanner:
    """Builds per-request execution plans.

    The concurrency hint comes from ``options.max_concurrency`` when given,
    otherwise from the shared ``TuningState``. The hint is read once per plan,
    so later tuning never changes a plan already built.

    Args
    ----
        config: Scheduler configuration
        tuning: Shared tuning state; defaults to the configured concurrency
    """

    def __init__(self, config: SchedulerConfig | None = None, tuning: TuningState | None = None):
        self.config = config or SchedulerConfig()
        self.tuning = tuning or TuningState(
            concurrency=self.config.parallel.max_concurrent_operations,
            cache_ttl=self.config.cache.ttl,
        )

    def analyze_cache(
        self,
        operations: Sequence[Operation],
        context: ExecutionContext,
        cache: ResultCache,
    ) -> CacheAnalysis:
        """Classify operations and probe the cache without touching hit counters.

        Returns
        -------
        CacheAnalysis
            ``estimated_hit_rate`` is potential hits over all operations
        """
        analysis = CacheAnalysis()
        for op in operations:
            key = try_cache_key(op, context) if op.cacheable else None
            if key is None:
                analysis.non_cacheable.append(op.id)
                continue
            analysis.cacheable.append(op.id)
            if cache.has(key, context):
                analysis.potential_hits.append(op.id)

        if operations:
            analysis.estimated_hit_rate = len(analysis.potential_hits) / len(operations)
        logger.debug(
            "Cache analysis: {cacheable} cacheable, {hits} potential hits",
            cacheable=len(analysis.cacheable),
            hits=len(analysis.potential_hits),
        )
        return analysis

    def create_plan(
        self,
        graph: DependencyGraph,
        cache_analysis: CacheAnalysis,
        options: OptimizationOptions | None = None,
    ) -> ExecutionPlan:
        """Build one phase per graph level.

        Parameters
        ----------
        graph : DependencyGraph
            Leveled operations of the request
        cache_analysis : CacheAnalysis
            Result of ``analyze_cache`` for the same operations
        options : OptimizationOptions | None
            Caller knobs; defaults apply when omitted

        Returns
        -------
        ExecutionPlan
            Phases in level order with strategy metadata
        """
        options = options or OptimizationOptions()
        parallel_allowed = options.enable_parallelization and self.config.parallel.enabled

        phases: list[ExecutionPhase] = []
        for index in range(graph.depth):
            operations = tuple(graph.operations_at(index))
            mode = (
                ExecutionMode.PARALLEL
                if parallel_allowed and len(operations) > 1
                else ExecutionMode.SEQUENTIAL
            )
            phases.append(
                ExecutionPhase(
                    index=index,
                    operations=operations,
                    mode=mode,
                    estimated_time=max(op.estimated_time for op in operations),
                )
            )

        cache_strategy = self.select_cache_strategy(cache_analysis)
        parallel_strategy = self.select_parallel_strategy(graph, options)
        optimizations = [f"cache:{cache_strategy}", f"parallel:{parallel_strategy}"]
        if not options.enable_caching or not self.config.cache.enabled:
            optimizations.append("caching_disabled")
        if not parallel_allowed:
            optimizations.append("parallelization_disabled")
        if graph.forced:
            optimizations.append(f"cycle_broken:{','.join(sorted(graph.forced))}")

        plan = ExecutionPlan(
            phases=tuple(phases),
            cache_strategy=cache_strategy,
            parallel_strategy=parallel_strategy,
            resource_allocation=self.calculate_resource_allocation(
                len(graph), options, parallel_allowed
            ),
            estimated_time=sum(phase.estimated_time for phase in phases),
            optimizations=tuple(optimizations),
        )
        logger.debug("Execution plan: {summary}", summary=plan.summary())
        return plan

    @staticmethod
    def select_cache_strategy(analysis: CacheAnalysis) -> CacheStrategy:
        if analysis.estimated_hit_rate > AGGRESSIVE_CACHE_HIT_RATE:
            return CacheStrategy.AGGRESSIVE
        if analysis.estimated_hit_rate > MODERATE_CACHE_HIT_RATE:
            return CacheStrategy.MODERATE
        return CacheStrategy.CONSERVATIVE

    @staticmethod
    def select_parallel_strategy(
        graph: DependencyGraph, options: OptimizationOptions
    ) -> ParallelStrategy:
        if options.level == "maximum" or graph.depth > AGGRESSIVE_PARALLEL_DEPTH:
            return ParallelStrategy.AGGRESSIVE
        return ParallelStrategy.CONSERVATIVE

    def calculate_resource_allocation(
        self,
        operation_count: int,
        options: OptimizationOptions,
        parallel_allowed: bool = True,
    ) -> ResourceAllocation:
        """Split the memory and CPU budget over ``min(operations, concurrency hint)``.

        ``resource_limits.max_concurrent_operations`` caps the hint, including
        one pinned through ``options.max_concurrency``.
        """
        hint = options.max_concurrency or self.tuning.concurrency
        ceiling = self.config.resource_limits.max_concurrent_operations
        limit = 1 if not parallel_allowed else max(1, min(operation_count, hint, ceiling))
        return ResourceAllocation(
            max_concurrent_operations=limit,
            memory_per_operation=self.config.resource_limits.max_memory_usage / limit,
            cpu_per_operation=1 / limit,
        )
