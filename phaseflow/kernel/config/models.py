"""Configuration data models for phaseflow.

Durations follow two conventions: cache ttl, intervals and timeouts are in
seconds; response-time thresholds are in milliseconds because that is the
unit the performance monitor reports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal

from phaseflow.kernel.exceptions import ValidationError


class DependencyFailurePolicy(StrEnum):
    """What happens to an operation whose dependency failed.

    Attributes
    ----------
    RUN : str
        Run the dependent at its level anyway, with no failure signal
    SKIP : str
        Do not invoke the dependent; record it as skipped
    """

    RUN = "run"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Logging configuration.

    Environment variable overrides::

        export PHASEFLOW_LOG_LEVEL=DEBUG
        export PHASEFLOW_LOG_FORMAT=rich
        export PHASEFLOW_LOG_FILE=/var/log/phaseflow/app.log
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "structured", "dual", "rich"] = "structured"
    output_file: str | None = None
    use_color: bool = True
    include_timestamp: bool = True
    enable_stdlib_bridge: bool = False
    backtrace: bool = True
    diagnose: bool = True


@dataclass(frozen=True, slots=True)
class CacheConfig:
    """Result cache settings.

    Attributes
    ----------
    enabled : bool
        When False the cache behaves as permanently empty
    max_size : int
        Entry count above which the memory-pressure pass evicts
    ttl : float
        Entry time-to-live in seconds
    """

    enabled: bool = True
    max_size: int = 1000
    ttl: float = 3600.0

    def __post_init__(self) -> None:
        if self.max_size <= 0:
            raise ValidationError("cache.max_size", "must be positive", self.max_size)
        if self.ttl <= 0:
            raise ValidationError("cache.ttl", "must be positive", self.ttl)


@dataclass(frozen=True, slots=True)
class ParallelExecutionConfig:
    """Phase execution settings.

    Attributes
    ----------
    enabled : bool
        When False every phase runs its operations one at a time
    max_concurrent_operations : int
        Upper bound on operations running at once inside a phase
    default_operation_timeout : float | None
        Timeout in seconds applied to operations without their own; None waits forever
    dependency_failure_policy : DependencyFailurePolicy
        Treatment of operations whose dependencies failed
    """

    enabled: bool = True
    max_concurrent_operations: int = 5
    default_operation_timeout: float | None = None
    dependency_failure_policy: DependencyFailurePolicy = DependencyFailurePolicy.RUN

    def __post_init__(self) -> None:
        if self.max_concurrent_operations < 1:
            raise ValidationError(
                "parallel.max_concurrent_operations",
                "must be at least 1",
                self.max_concurrent_operations,
            )
        if self.default_operation_timeout is not None and self.default_operation_timeout <= 0:
            raise ValidationError(
                "parallel.default_operation_timeout",
                "must be positive or None",
                self.default_operation_timeout,
            )
        object.__setattr__(
            self,
            "dependency_failure_policy",
            DependencyFailurePolicy(self.dependency_failure_policy),
        )


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Performance monitor settings."""

    enabled: bool = True
    metrics_interval: float = 60.0
    history_size: int = 1000
    response_time_alert: float = 30000.0
    error_rate_alert: float = 0.05
    memory_alert: float = 512.0

    def __post_init__(self) -> None:
        if self.metrics_interval <= 0:
            raise ValidationError(
                "monitoring.metrics_interval", "must be positive", self.metrics_interval
            )
        if self.history_size < 0:
            raise ValidationError(
                "monitoring.history_size", "cannot be negative", self.history_size
            )


@dataclass(frozen=True, slots=True)
class OptimizationConfig:
    """Adaptive optimizer thresholds and bounds."""

    enabled: bool = True
    response_time_threshold: float = 25000.0
    cache_hit_threshold: float = 0.7
    auto_tuning: bool = True
    min_ttl: float = 60.0
    max_ttl: float = 86400.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.cache_hit_threshold <= 1.0:
            raise ValidationError(
                "optimization.cache_hit_threshold",
                "must be between 0 and 1",
                self.cache_hit_threshold,
            )
        if self.min_ttl <= 0 or self.max_ttl < self.min_ttl:
            raise ValidationError(
                "optimization.ttl_bounds",
                "require 0 < min_ttl <= max_ttl",
                (self.min_ttl, self.max_ttl),
            )


@dataclass(frozen=True, slots=True)
class ResourceLimits:
    """Process-wide resource budget.

    Attributes
    ----------
    max_memory_usage : float
        Process memory (MB) above which maintenance evicts cache entries
    max_concurrent_operations : int
        Ceiling on the per-plan concurrency, whatever the hint
    """

    max_memory_usage: float = 1024.0
    max_concurrent_operations: int = 10

    def __post_init__(self) -> None:
        if self.max_memory_usage <= 0:
            raise ValidationError(
                "resource_limits.max_memory_usage", "must be positive", self.max_memory_usage
            )
        if self.max_concurrent_operations < 1:
            raise ValidationError(
                "resource_limits.max_concurrent_operations",
                "must be at least 1",
                self.max_concurrent_operations,
            )


@dataclass(frozen=True, slots=True)
class SchedulerConfig:
    """Complete scheduler configuration.

    Examples
    --------
    TOML configuration in pyproject.toml:

    ```toml
    [tool.phaseflow.cache]
    max_size = 500
    ttl = 1800

    [tool.phaseflow.parallel]
    max_concurrent_operations = 8
    dependency_failure_policy = "skip"

    [tool.phaseflow.logging]
    level = "DEBUG"
    ```
    """

    cache: CacheConfig = field(default_factory=CacheConfig)
    parallel: ParallelExecutionConfig = field(default_factory=ParallelExecutionConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    optimization: OptimizationConfig = field(default_factory=OptimizationConfig)
    resource_limits: ResourceLimits = field(default_factory=ResourceLimits)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
