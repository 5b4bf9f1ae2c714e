"""Tests for the execution planner."""

import pytest

from phaseflow.kernel.caching import ResultCache, cache_key
from phaseflow.kernel.config.models import (
    ParallelExecutionConfig,
    ResourceLimits,
    SchedulerConfig,
)
from phaseflow.kernel.domain import (
    CacheStrategy,
    ExecutionContext,
    ExecutionMode,
    Operation,
    ParallelStrategy,
    build_dependency_graph,
)
from phaseflow.kernel.monitoring import TuningState
from phaseflow.kernel.orchestration.models import CacheAnalysis, OptimizationOptions
from phaseflow.kernel.orchestration.planner import ExecutionPlanner


def work(params, ctx):
    return None


def op(op_id: str, *deps: str, estimated_time: float = 5000.0, type: str | None = None):
    return Operation(
        op_id, work, dependencies=frozenset(deps), estimated_time=estimated_time, type=type
    )


@pytest.fixture
def planner() -> ExecutionPlanner:
    return ExecutionPlanner(
        SchedulerConfig(
            parallel=ParallelExecutionConfig(max_concurrent_operations=5),
            resource_limits=ResourceLimits(max_memory_usage=1000.0),
        )
    )


class TestAnalyzeCache:
    """Tests for cache analysis."""

    def test_classifies_and_probes(self, planner: ExecutionPlanner, context: ExecutionContext):
        """Cached cacheable operations count as potential hits."""
        cache = ResultCache()
        cached, fresh, live = op("cached"), op("fresh"), op("live", type="real-time")
        cache.set(cache_key(cached, context), "value", context)
        cache.set(cache_key(live, context), "value", context)

        analysis = planner.analyze_cache([cached, fresh, live], context, cache)

        assert analysis.cacheable == ["cached", "fresh"]
        assert analysis.non_cacheable == ["live"]
        assert analysis.potential_hits == ["cached"]
        assert analysis.estimated_hit_rate == pytest.approx(1 / 3)
        assert cache.get_metrics().misses == 0

    def test_unhashable_parameters_are_non_cacheable(
        self, planner: ExecutionPlanner, context: ExecutionContext
    ):
        """Parameters that cannot be digested mark only that operation non-cacheable."""
        mixed = Operation("mixed", work, parameters={"opts": {1: "x", "y": 2}})
        analysis = planner.analyze_cache([op("plain"), mixed], context, ResultCache())
        assert analysis.cacheable == ["plain"]
        assert analysis.non_cacheable == ["mixed"]

    def test_empty_request(self, planner: ExecutionPlanner, context: ExecutionContext):
        """An empty request has a zero hit rate."""
        assert planner.analyze_cache([], context, ResultCache()).estimated_hit_rate == 0.0


class TestCreatePlan:
    """Tests for plan construction."""

    def test_phase_per_level_with_modes_and_estimates(self, planner: ExecutionPlanner):
        """Multi-operation phases are parallel; estimates take the phase maximum."""
        graph = build_dependency_graph(
            [op("a", estimated_time=100.0), op("b", estimated_time=300.0), op("c", "a", "b")]
        )
        plan = planner.create_plan(graph, CacheAnalysis())

        assert [phase.operation_ids for phase in plan.phases] == [["a", "b"], ["c"]]
        assert [phase.mode for phase in plan.phases] == [
            ExecutionMode.PARALLEL,
            ExecutionMode.SEQUENTIAL,
        ]
        assert plan.phases[0].estimated_time == 300.0
        assert plan.estimated_time == 5300.0

    @pytest.mark.parametrize(
        ("hit_rate", "expected"),
        [
            (0.71, CacheStrategy.AGGRESSIVE),
            (0.7, CacheStrategy.MODERATE),
            (0.31, CacheStrategy.MODERATE),
            (0.3, CacheStrategy.CONSERVATIVE),
            (0.0, CacheStrategy.CONSERVATIVE),
        ],
    )
    def test_cache_strategy_thresholds(self, hit_rate: float, expected: CacheStrategy) -> None:
        """Strict thresholds at 0.7 and 0.3."""
        analysis = CacheAnalysis(estimated_hit_rate=hit_rate)
        assert ExecutionPlanner.select_cache_strategy(analysis) is expected

    def test_parallel_strategy_from_depth(self, planner: ExecutionPlanner):
        """More than three levels selects the aggressive strategy."""
        shallow = build_dependency_graph([op("a"), op("b", "a"), op("c", "b")])
        deep = build_dependency_graph([op("a"), op("b", "a"), op("c", "b"), op("d", "c")])
        assert planner.create_plan(shallow, CacheAnalysis()).parallel_strategy is (
            ParallelStrategy.CONSERVATIVE
        )
        assert planner.create_plan(deep, CacheAnalysis()).parallel_strategy is (
            ParallelStrategy.AGGRESSIVE
        )

    def test_maximum_level_is_aggressive(self, planner: ExecutionPlanner):
        """level=maximum selects the aggressive strategy regardless of depth."""
        graph = build_dependency_graph([op("a")])
        plan = planner.create_plan(graph, CacheAnalysis(), OptimizationOptions(level="maximum"))
        assert plan.parallel_strategy is ParallelStrategy.AGGRESSIVE

    def test_resource_allocation(self, planner: ExecutionPlanner):
        """Concurrency is min(operation count, hint) and splits the budget."""
        graph = build_dependency_graph([op("a"), op("b")])
        allocation = planner.create_plan(graph, CacheAnalysis()).resource_allocation
        assert allocation.max_concurrent_operations == 2
        assert allocation.memory_per_operation == 500.0
        assert allocation.cpu_per_operation == 0.5

    def test_options_pin_concurrency(self, planner: ExecutionPlanner):
        """max_concurrency overrides the tuned hint."""
        graph = build_dependency_graph([op(f"o{i}") for i in range(10)])
        plan = planner.create_plan(graph, CacheAnalysis(), OptimizationOptions(max_concurrency=3))
        assert plan.resource_allocation.max_concurrent_operations == 3

    def test_resource_limit_caps_concurrency(self):
        """The process-wide concurrency limit wins over larger hints."""
        planner = ExecutionPlanner(
            SchedulerConfig(resource_limits=ResourceLimits(max_concurrent_operations=2))
        )
        graph = build_dependency_graph([op(f"o{i}") for i in range(10)])
        plan = planner.create_plan(graph, CacheAnalysis(), OptimizationOptions(max_concurrency=8))
        assert plan.resource_allocation.max_concurrent_operations == 2

    def test_tuned_hint_is_snapshotted(self):
        """Changing the tuning state after planning leaves the plan untouched."""
        tuning = TuningState(concurrency=4, cache_ttl=60.0)
        planner = ExecutionPlanner(SchedulerConfig(), tuning)
        graph = build_dependency_graph([op(f"o{i}") for i in range(10)])
        plan = planner.create_plan(graph, CacheAnalysis())
        tuning.concurrency = 1
        assert plan.resource_allocation.max_concurrent_operations == 4

    def test_parallelization_disabled(self, planner: ExecutionPlanner):
        """Disabling parallelization yields sequential phases and concurrency 1."""
        graph = build_dependency_graph([op("a"), op("b")])
        plan = planner.create_plan(
            graph, CacheAnalysis(), OptimizationOptions(enable_parallelization=False)
        )
        assert plan.phases[0].mode is ExecutionMode.SEQUENTIAL
        assert plan.resource_allocation.max_concurrent_operations == 1
        assert "parallelization_disabled" in plan.optimizations

    def test_forced_cycle_is_recorded(self, planner: ExecutionPlanner):
        """Broken cycles are listed among the plan's optimizations."""
        graph = build_dependency_graph([op("a", "b"), op("b", "a")])
        plan = planner.create_plan(graph, CacheAnalysis())
        assert "cycle_broken:a" in plan.optimizations
