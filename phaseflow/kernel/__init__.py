"""phaseflow kernel - the public API.

Application code should import from ``phaseflow.kernel`` (or the top-level
``phaseflow`` package) rather than from kernel submodules.

The exports are grouped by category:
- Scheduling (primary entry point)
- Domain types
- Caching
- Monitoring and tuning
- Events
- Configuration
- Exceptions
- Logging
"""

# Caching
from phaseflow.kernel.caching import CacheEntry, CacheMetrics, ResultCache, cache_key

# Configuration
from phaseflow.kernel.config import (
    CacheConfig,
    DependencyFailurePolicy,
    LoggingConfig,
    MonitoringConfig,
    OptimizationConfig,
    ParallelExecutionConfig,
    ResourceLimits,
    SchedulerConfig,
    load_config,
)

# Domain types
from phaseflow.kernel.domain import (
    CacheStrategy,
    DependencyGraph,
    ExecutionContext,
    ExecutionMode,
    ExecutionPhase,
    ExecutionPlan,
    Operation,
    ParallelStrategy,
    ResourceAllocation,
    build_dependency_graph,
)

# Exceptions
from phaseflow.kernel.exceptions import (
    ConfigurationError,
    CyclicDependencyUnresolved,
    DependencyFailedError,
    DuplicateOperationError,
    OperationExecutionError,
    OperationTimeoutError,
    PhaseflowError,
    SchedulingError,
    ValidationError,
)

# Logging
from phaseflow.kernel.logging import configure_logging, get_logger

# Monitoring and tuning
from phaseflow.kernel.monitoring import (
    AdaptiveOptimizer,
    PerformanceMetrics,
    PerformanceMonitor,
    TuningState,
)

# Scheduling
from phaseflow.kernel.orchestration import (
    CachedResult,
    CacheOptimizationResult,
    OperationResult,
    OperationStatus,
    OptimizationOptions,
    ParallelExecutionResult,
    PerformanceReport,
    Scheduler,
    SchedulerResult,
)

# Events
from phaseflow.kernel.orchestration.events import Event, Observer

__all__ = [
    "AdaptiveOptimizer",
    "CacheConfig",
    "CacheEntry",
    "CacheMetrics",
    "CacheOptimizationResult",
    "CacheStrategy",
    "CachedResult",
    "ConfigurationError",
    "CyclicDependencyUnresolved",
    "DependencyFailedError",
    "DependencyFailurePolicy",
    "DependencyGraph",
    "DuplicateOperationError",
    "Event",
    "ExecutionContext",
    "ExecutionMode",
    "ExecutionPhase",
    "ExecutionPlan",
    "LoggingConfig",
    "MonitoringConfig",
    "Observer",
    "Operation",
    "OperationExecutionError",
    "OperationResult",
    "OperationStatus",
    "OperationTimeoutError",
    "OptimizationConfig",
    "OptimizationOptions",
    "ParallelExecutionConfig",
    "ParallelExecutionResult",
    "ParallelStrategy",
    "PerformanceMetrics",
    "PerformanceMonitor",
    "PerformanceReport",
    "PhaseflowError",
    "ResourceAllocation",
    "ResourceLimits",
    "ResultCache",
    "Scheduler",
    "SchedulerConfig",
    "SchedulerResult",
    "SchedulingError",
    "TuningState",
    "ValidationError",
    "build_dependency_graph",
    "cache_key",
    "configure_logging",
    "get_logger",
    "load_config",
]
