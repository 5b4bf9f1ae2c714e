"""Configuration loading and management for phaseflow."""

from phaseflow.kernel.config.loader import (
    ConfigLoader,
    clear_config_cache,
    get_default_config,
    load_config,
)
from phaseflow.kernel.config.models import (
    CacheConfig,
    DependencyFailurePolicy,
    LoggingConfig,
    MonitoringConfig,
    OptimizationConfig,
    ParallelExecutionConfig,
    ResourceLimits,
    SchedulerConfig,
)

__all__ = [
    "CacheConfig",
    "ConfigLoader",
    "DependencyFailurePolicy",
    "LoggingConfig",
    "MonitoringConfig",
    "OptimizationConfig",
    "ParallelExecutionConfig",
    "ResourceLimits",
    "SchedulerConfig",
    "clear_config_cache",
    "get_default_config",
    "load_config",
]
