"""phaseflow: dependency-aware parallel execution with an integrated result cache.

Operations declare their dependencies; phaseflow levels them into phases,
runs each phase with bounded concurrency, serves repeat work from a
context-aware cache and tunes itself from observed performance.
"""

# Version is defined in pyproject.toml and read dynamically
try:
    from importlib.metadata import version

    __version__ = version("phaseflow")
except Exception:
    __version__ = "0.0.0.dev0"  # Fallback for development installs

from phaseflow.kernel import (
    CacheConfig,
    ExecutionContext,
    Operation,
    OptimizationOptions,
    ParallelExecutionConfig,
    PhaseflowError,
    Scheduler,
    SchedulerConfig,
    SchedulerResult,
    configure_logging,
    get_logger,
    load_config,
)

__all__ = [
    "CacheConfig",
    "ExecutionContext",
    "Operation",
    "OptimizationOptions",
    "ParallelExecutionConfig",
    "PhaseflowError",
    "Scheduler",
    "SchedulerConfig",
    "SchedulerResult",
    "__version__",
    "configure_logging",
    "get_logger",
    "load_config",
]
