"""Execution plan primitives.

Plans are built fresh for every request and never mutated afterwards. The
strategy tags are advisory metadata; they tune, they do not change results.
"""

from dataclasses import dataclass, field
from enum import StrEnum

from phaseflow.kernel.domain.operation import Operation


class ExecutionMode(StrEnum):
    """How the operations of one phase are run."""

    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"


class CacheStrategy(StrEnum):
    """Cache posture chosen from the estimated hit rate."""

    AGGRESSIVE = "aggressive"
    MODERATE = "moderate"
    CONSERVATIVE = "conservative"


class ParallelStrategy(StrEnum):
    """Parallelism posture chosen from graph depth and caller aggressiveness."""

    AGGRESSIVE = "aggressive"
    CONSERVATIVE = "conservative"


@dataclass(frozen=True, slots=True)
class ResourceAllocation:
    """Per-plan resource split.

    Attributes
    ----------
    max_concurrent_operations : int
        Concurrency used by every phase of this plan
    memory_per_operation : float
        Memory budget (MB) divided by the concurrency
    cpu_per_operation : float
        CPU share per concurrent operation
    """

    max_concurrent_operations: int
    memory_per_operation: float
    cpu_per_operation: float


@dataclass(frozen=True, slots=True)
class ExecutionPhase:
    """Operations scheduled together at one dependency level."""

    index: int
    operations: tuple[Operation, ...]
    mode: ExecutionMode
    estimated_time: float

    @property
    def operation_ids(self) -> list[str]:
        return [op.id for op in self.operations]

    def __len__(self) -> int:
        return len(self.operations)


@dataclass(frozen=True, slots=True)
class ExecutionPlan:
    """Ordered phases plus the strategy metadata chosen at planning time."""

    phases: tuple[ExecutionPhase, ...]
    cache_strategy: CacheStrategy
    parallel_strategy: ParallelStrategy
    resource_allocation: ResourceAllocation
    estimated_time: float
    optimizations: tuple[str, ...] = field(default_factory=tuple)

    @property
    def parallel_phase_count(self) -> int:
        return sum(1 for phase in self.phases if phase.mode is ExecutionMode.PARALLEL)

    def summary(self) -> dict[str, object]:
        """Plain-data view for logging and reports."""
        return {
            "phases": [phase.operation_ids for phase in self.phases],
            "modes": [str(phase.mode) for phase in self.phases],
            "cache_strategy": str(self.cache_strategy),
            "parallel_strategy": str(self.parallel_strategy),
            "max_concurrent_operations": self.resource_allocation.max_concurrent_operations,
            "estimated_time": self.estimated_time,
            "optimizations": list(self.optimizations),
        }
