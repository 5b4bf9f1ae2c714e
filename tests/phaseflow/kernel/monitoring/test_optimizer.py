"""Tests for the adaptive optimizer."""

import pytest

from phaseflow.kernel.config.models import OptimizationConfig
from phaseflow.kernel.domain import (
    CacheStrategy,
    ExecutionMode,
    ExecutionPhase,
    ExecutionPlan,
    Operation,
    ParallelStrategy,
    ResourceAllocation,
)
from phaseflow.kernel.monitoring import AdaptiveOptimizer, PerformanceMetrics, TuningState
from phaseflow.kernel.orchestration.models import PerformanceReport


def work(params, ctx):
    return None


def make_plan(parallel: bool) -> ExecutionPlan:
    ops = (Operation("a", work), Operation("b", work))
    mode = ExecutionMode.PARALLEL if parallel else ExecutionMode.SEQUENTIAL
    return ExecutionPlan(
        phases=(ExecutionPhase(0, ops, mode, 5000.0),),
        cache_strategy=CacheStrategy.CONSERVATIVE,
        parallel_strategy=ParallelStrategy.CONSERVATIVE,
        resource_allocation=ResourceAllocation(2, 512.0, 0.5),
        estimated_time=5000.0,
    )


@pytest.fixture
def state() -> TuningState:
    return TuningState(concurrency=3, cache_ttl=1000.0)


class TestTuningPasses:
    """Tests for the individual tuning passes."""

    def test_response_time_pass(self, state: TuningState) -> None:
        """Concurrency drops by one and ttl by a quarter."""
        optimizer = AdaptiveOptimizer(state, OptimizationConfig(min_ttl=60.0))
        optimizer.optimize_for_response_time()
        assert state.concurrency == 2
        assert state.cache_ttl == 750.0

    def test_response_time_pass_floors(self) -> None:
        """Concurrency never drops below one and ttl never below min_ttl."""
        state = TuningState(concurrency=1, cache_ttl=70.0)
        optimizer = AdaptiveOptimizer(state, OptimizationConfig(min_ttl=60.0))
        optimizer.optimize_for_response_time()
        assert state.concurrency == 1
        assert state.cache_ttl == 60.0
        assert optimizer.optimize_for_response_time() == []

    def test_cache_pass(self, state: TuningState) -> None:
        """ttl grows by half and concurrency climbs toward the ceiling."""
        optimizer = AdaptiveOptimizer(state, OptimizationConfig(), max_concurrency=4)
        optimizer.optimize_cache_strategy()
        assert state.cache_ttl == 1500.0
        assert state.concurrency == 4
        optimizer.optimize_cache_strategy()
        assert state.concurrency == 4

    def test_cache_pass_caps_ttl(self) -> None:
        """ttl never exceeds max_ttl."""
        state = TuningState(concurrency=1, cache_ttl=900.0)
        optimizer = AdaptiveOptimizer(state, OptimizationConfig(max_ttl=1000.0))
        optimizer.optimize_cache_strategy()
        assert state.cache_ttl == 1000.0


class TestEvaluate:
    """Tests for threshold-driven evaluation."""

    def test_slow_responses_trigger_response_time_pass(self, state: TuningState) -> None:
        """Average response time above the threshold lowers concurrency."""
        optimizer = AdaptiveOptimizer(state, OptimizationConfig(response_time_threshold=100.0))
        actions = optimizer.evaluate(PerformanceMetrics(average_response_time=500.0))
        assert state.concurrency == 2
        assert actions

    def test_low_hit_rate_triggers_cache_pass(self, state: TuningState) -> None:
        """A hit rate below the threshold lengthens the ttl."""
        optimizer = AdaptiveOptimizer(state, OptimizationConfig(cache_hit_threshold=0.7))
        optimizer.evaluate(PerformanceMetrics(cache_hits=1, cache_misses=3, cache_hit_rate=0.25))
        assert state.cache_ttl == 1500.0

    def test_no_lookups_means_no_cache_pass(self, state: TuningState) -> None:
        """A zero hit rate with no lookups is not a signal."""
        optimizer = AdaptiveOptimizer(state)
        assert optimizer.evaluate(PerformanceMetrics()) == []
        assert state.cache_ttl == 1000.0

    def test_auto_tuning_disabled(self, state: TuningState) -> None:
        """Nothing changes when auto tuning is off."""
        optimizer = AdaptiveOptimizer(state, OptimizationConfig(auto_tuning=False))
        assert optimizer.evaluate(PerformanceMetrics(average_response_time=1e9)) == []
        assert state.concurrency == 3


class TestLearning:
    """Tests for learning records and recommendations."""

    def test_records_are_bounded(self, state: TuningState) -> None:
        """Only the latest history_size records are kept."""
        optimizer = AdaptiveOptimizer(state, history_size=2)
        report = PerformanceReport(original_time=10.0, optimized_time=5.0, speedup_factor=2.0)
        for _ in range(3):
            optimizer.learn_from_execution(make_plan(parallel=True), report)
        assert len(optimizer.records) == 2
        assert optimizer.records[0].operations == 2

    def test_recommendations(self, state: TuningState) -> None:
        """Slow, uncached, serial executions produce all three suggestions."""
        optimizer = AdaptiveOptimizer(state)
        report = PerformanceReport(original_time=5.0, optimized_time=10.0, speedup_factor=0.5)
        optimizer.learn_from_execution(make_plan(parallel=False), report)
        assert len(optimizer.recommendations()) == 3

    def test_no_records_no_recommendations(self, state: TuningState) -> None:
        """Nothing learned means nothing to suggest."""
        assert AdaptiveOptimizer(state).recommendations() == []
