"""Domain primitives: operations, contexts, dependency graphs and plans."""

from phaseflow.kernel.domain.dependency_graph import (
    DependencyGraph,
    DependencyNode,
    build_dependency_graph,
)
from phaseflow.kernel.domain.operation import (
    NON_CACHEABLE_TYPES,
    ExecutionContext,
    Operation,
)
from phaseflow.kernel.domain.plan import (
    CacheStrategy,
    ExecutionMode,
    ExecutionPhase,
    ExecutionPlan,
    ParallelStrategy,
    ResourceAllocation,
)

__all__ = [
    "NON_CACHEABLE_TYPES",
    "CacheStrategy",
    "DependencyGraph",
    "DependencyNode",
    "ExecutionContext",
    "ExecutionMode",
    "ExecutionPhase",
    "ExecutionPlan",
    "Operation",
    "ParallelStrategy",
    "ResourceAllocation",
    "build_dependency_graph",
]
