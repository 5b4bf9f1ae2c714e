"""Planning, phase execution and the scheduler facade."""

from phaseflow.kernel.orchestration.components import PhaseExecutor
from phaseflow.kernel.orchestration.models import (
    CacheAnalysis,
    CachedResult,
    CacheOptimizationResult,
    OperationResult,
    OperationStatus,
    OptimizationOptions,
    OptimizationRecommendation,
    ParallelExecutionResult,
    PerformanceReport,
    PhaseResult,
    SchedulerResult,
)
from phaseflow.kernel.orchestration.planner import ExecutionPlanner
from phaseflow.kernel.orchestration.scheduler import Scheduler

__all__ = [
    "CacheAnalysis",
    "CacheOptimizationResult",
    "CachedResult",
    "ExecutionPlanner",
    "OperationResult",
    "OperationStatus",
    "OptimizationOptions",
    "OptimizationRecommendation",
    "ParallelExecutionResult",
    "PerformanceReport",
    "PhaseExecutor",
    "PhaseResult",
    "Scheduler",
    "SchedulerResult",
]
