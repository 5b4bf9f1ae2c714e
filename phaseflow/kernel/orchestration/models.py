"""Request options and result models for the scheduler.

Results are Pydantic models so callers can inspect or serialize them; the
opaque operation outputs they carry are allowed as arbitrary types.
"""

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from phaseflow.kernel.domain.plan import ExecutionMode, ExecutionPlan


class OperationStatus(StrEnum):
    """Terminal state of one operation."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class OptimizationOptions(BaseModel):
    """Caller knobs for one ``execute_optimized`` request.

    Attributes
    ----------
    level : str
        ``maximum`` forces the aggressive parallel strategy
    enable_caching : bool
        When False the cache is neither read nor written
    enable_parallelization : bool
        When False every phase runs one operation at a time
    max_concurrency : int | None
        Pins the concurrency for this request instead of the tuned hint
    """

    model_config = ConfigDict(frozen=True)

    level: Literal["basic", "standard", "aggressive", "maximum"] = "standard"
    enable_caching: bool = True
    enable_parallelization: bool = True
    max_concurrency: int | None = Field(default=None, ge=1)


class OperationResult(BaseModel):
    """Outcome of a single operation.

    Attributes
    ----------
    operation_id : str
        Id of the operation
    status : OperationStatus
        success, failed or skipped
    output : Any
        Value produced or served from cache (None unless successful)
    from_cache : bool
        Whether ``output`` came from the cache
    duration_ms : float
        Time spent resolving the operation
    error : str | None
        Error message for failed or skipped operations
    error_type : str | None
        Exception class name for failed or skipped operations
    cache_key : str | None
        Key used for cache lookup and storage, if any
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    operation_id: str
    status: OperationStatus = OperationStatus.SUCCESS
    output: Any = None
    from_cache: bool = False
    duration_ms: float = 0.0
    error: str | None = None
    error_type: str | None = None
    cache_key: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is OperationStatus.SUCCESS


class PhaseResult(BaseModel):
    """Outcome of one phase; every operation of the phase has an entry."""

    phase_index: int
    mode: ExecutionMode
    results: dict[str, OperationResult] = Field(default_factory=dict)
    duration_ms: float = 0.0
    parallelization_factor: float = 1.0

    @property
    def cache_hits(self) -> int:
        return sum(1 for r in self.results.values() if r.from_cache)


class CacheAnalysis(BaseModel):
    """Pre-execution cache probe over a request's operations."""

    cacheable: list[str] = Field(default_factory=list)
    non_cacheable: list[str] = Field(default_factory=list)
    potential_hits: list[str] = Field(default_factory=list)
    estimated_hit_rate: float = 0.0


class OptimizationRecommendation(BaseModel):
    """A suggestion attached to a performance report."""

    model_config = ConfigDict(frozen=True)

    type: str
    priority: Literal["low", "medium", "high"]
    description: str
    expected_impact: str = ""


class PerformanceReport(BaseModel):
    """How one request performed against its plan estimate.

    Attributes
    ----------
    original_time : float
        Plan estimate in ms (twice the actual time when no plan exists)
    optimized_time : float
        Measured wall time in ms
    speedup_factor : float
        ``original_time / optimized_time``; 1.0 for fallback or zero time
    cache_hits : int
        Operations served from cache
    parallelization_gain : float
        Fraction of phases that ran in parallel mode
    parallelization_factor : float
        Sum of operation times over the sum of each phase's longest time
    success_rate : float
        Fraction of operations that succeeded
    memory_efficiency : float
        ``1 - process RSS / total system memory``
    recommendations : list[OptimizationRecommendation]
        Suggestions for the caller
    """

    original_time: float
    optimized_time: float
    speedup_factor: float = 1.0
    cache_hits: int = 0
    parallelization_gain: float = 0.0
    parallelization_factor: float = 1.0
    success_rate: float = 1.0
    memory_efficiency: float = 0.0
    recommendations: list[OptimizationRecommendation] = Field(default_factory=list)


class SchedulerResult(BaseModel):
    """Everything ``execute_optimized`` returns.

    ``results`` holds outputs of successful operations only; ``errors`` holds
    messages for failed and skipped ones. ``operation_results`` covers every
    submitted operation.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    execution_id: str
    results: dict[str, Any] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)
    operation_results: dict[str, OperationResult] = Field(default_factory=dict)
    phase_results: list[PhaseResult] = Field(default_factory=list)
    performance: PerformanceReport
    plan: ExecutionPlan | None = None
    cache_analysis: CacheAnalysis | None = None
    success: bool = True
    fallback_used: bool = False

    @property
    def cache_hits(self) -> int:
        return sum(1 for r in self.operation_results.values() if r.from_cache)

    @property
    def success_rate(self) -> float:
        return self.performance.success_rate


class ParallelExecutionResult(BaseModel):
    """What ``Scheduler.execute_in_parallel`` returns.

    Attributes
    ----------
    results : dict[str, Any]
        Outputs of successful operations
    execution_times : dict[str, float]
        Milliseconds each successful operation took
    errors : dict[str, str]
        Messages for failed and skipped operations
    success_rate : float
        Successful operations over submitted operations
    group_count : int
        Number of dependency levels executed
    parallelization_factor : float
        Sum of operation times over the sum of each level's longest time
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    results: dict[str, Any] = Field(default_factory=dict)
    execution_times: dict[str, float] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)
    success_rate: float = 1.0
    group_count: int = 0
    parallelization_factor: float = 1.0


class CachedResult(BaseModel):
    """Value returned by ``Scheduler.get_cached_result``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    value: Any
    from_cache: bool
    cache_key: str
    age_ms: float = 0.0
    generation_time_ms: float = 0.0


class CacheOptimizationResult(BaseModel):
    """Counters from one cache maintenance pass (memory in MB)."""

    removed: int = 0
    compressed: int = 0
    rebalanced: int = 0
    memory_freed: float = 0.0
    hit_rate_improvement: float = 0.0
