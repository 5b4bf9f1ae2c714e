"""Dependency graph builder: levels a flat operation list into phases.

Level 0 holds operations with no dependencies; level *k* holds operations
whose dependencies all resolve in levels ``0..k-1``. Cycles are broken
deterministically by forcing the first unassigned operation (in input order)
into the next level, so the builder always terminates.
"""

from collections import defaultdict
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from phaseflow.kernel.domain.operation import Operation
from phaseflow.kernel.exceptions import CyclicDependencyUnresolved, DuplicateOperationError
from phaseflow.kernel.logging import get_logger

logger = get_logger(__name__)

_EMPTY_SET: frozenset[str] = frozenset()


@dataclass(frozen=True, slots=True)
class DependencyNode:
    """An operation with its declared dependencies and computed dependents."""

    operation: Operation
    dependencies: frozenset[str]
    dependents: frozenset[str] = field(default_factory=frozenset)

    @property
    def id(self) -> str:
        return self.operation.id


class DependencyGraph:
    """Read-only leveled view of one scheduling request.

    Attributes
    ----------
    nodes : Mapping[str, DependencyNode]
        Operation id to node, in input order
    edges : Mapping[str, frozenset[str]]
        Dependency id to the ids that depend on it
    levels : tuple[tuple[str, ...], ...]
        Operation ids per level; every id appears exactly once
    forced : frozenset[str]
        Ids placed with unmet dependencies to break a cycle
    """

    __slots__ = ("_level_index", "edges", "forced", "levels", "nodes")

    def __init__(
        self,
        nodes: Mapping[str, DependencyNode],
        edges: Mapping[str, frozenset[str]],
        levels: Sequence[Sequence[str]],
        forced: frozenset[str] = _EMPTY_SET,
    ) -> None:
        self.nodes: Mapping[str, DependencyNode] = MappingProxyType(dict(nodes))
        self.edges: Mapping[str, frozenset[str]] = MappingProxyType(dict(edges))
        self.levels: tuple[tuple[str, ...], ...] = tuple(tuple(level) for level in levels)
        self.forced = forced
        self._level_index = {
            op_id: index for index, level in enumerate(self.levels) for op_id in level
        }

    @property
    def depth(self) -> int:
        """Number of levels."""
        return len(self.levels)

    def level_of(self, operation_id: str) -> int:
        """Return the level index assigned to ``operation_id``.

        Raises
        ------
        KeyError
            If the operation is not part of the graph.
        """
        if operation_id not in self._level_index:
            raise KeyError(f"Operation '{operation_id}' not found in graph")
        return self._level_index[operation_id]

    def get_dependencies(self, operation_id: str) -> frozenset[str]:
        """Explicit dependency ids of an operation.

        Raises
        ------
        KeyError
            If the operation is not part of the graph.
        """
        if operation_id not in self.nodes:
            raise KeyError(f"Operation '{operation_id}' not found in graph")
        return self.nodes[operation_id].dependencies

    def get_dependents(self, operation_id: str) -> frozenset[str]:
        """Ids of operations that declare a dependency on ``operation_id``.

        Raises
        ------
        KeyError
            If the operation is not part of the graph.
        """
        if operation_id not in self.nodes:
            raise KeyError(f"Operation '{operation_id}' not found in graph")
        return self.nodes[operation_id].dependents

    def operations_at(self, level: int) -> list[Operation]:
        """Operations assigned to ``level`` in leveling order."""
        return [self.nodes[op_id].operation for op_id in self.levels[level]]

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, operation_id: object) -> bool:
        return operation_id in self.nodes

    def __iter__(self) -> Iterator[DependencyNode]:
        return iter(self.nodes.values())

    def __repr__(self) -> str:
        return f"DependencyGraph(operations={len(self.nodes)}, levels={[list(lv) for lv in self.levels]})"


def build_dependency_graph(operations: Sequence[Operation]) -> DependencyGraph:
    """Level ``operations`` into a ``DependencyGraph``.

    Each pass assigns every unassigned operation whose dependencies are all
    already assigned. When a pass finds none while operations remain, the first
    remaining operation in input order is forced into the next level, treating
    its unmet dependencies as satisfied for planning only. Dependencies on ids
    outside the request are ignored for leveling.

    Parameters
    ----------
    operations : Sequence[Operation]
        Operations of one request; ids must be unique

    Returns
    -------
    DependencyGraph
        Leveled graph covering every operation exactly once

    Raises
    ------
    DuplicateOperationError
        If two operations share an id
    CyclicDependencyUnresolved
        If a pass assigns nothing even after forcing (cannot happen for
        non-empty input)

    Examples
    --------
    >>> a = Operation("a", lambda p, c: 1)
    >>> b = Operation("b", lambda p, c: 2)
    >>> c = Operation("c", lambda p, c: 3, dependencies=frozenset({"a", "b"}))
    >>> build_dependency_graph([a, b, c]).levels
    (('a', 'b'), ('c',))
    """
    by_id: dict[str, Operation] = {}
    for op in operations:
        if op.id in by_id:
            raise DuplicateOperationError(op.id)
        by_id[op.id] = op

    forward: defaultdict[str, set[str]] = defaultdict(set)
    effective_deps: dict[str, frozenset[str]] = {}
    for op in operations:
        known = op.dependencies & by_id.keys()
        unknown = op.dependencies - known
        if unknown:
            logger.warning(
                "Operation '{op}' depends on unknown operations {missing}; ignoring them for leveling",
                op=op.id,
                missing=sorted(unknown),
            )
        effective_deps[op.id] = known
        for dep in known:
            forward[dep].add(op.id)

    assigned: set[str] = set()
    levels: list[list[str]] = []
    forced: set[str] = set()

    while len(assigned) < len(by_id):
        current_level = [
            op_id
            for op_id in by_id
            if op_id not in assigned and effective_deps[op_id] <= assigned
        ]

        if not current_level:
            victim = next(op_id for op_id in by_id if op_id not in assigned)
            logger.warning(
                "Circular dependency detected; forcing '{op}' into level {level} "
                "(unmet: {unmet})",
                op=victim,
                level=len(levels),
                unmet=sorted(effective_deps[victim] - assigned),
            )
            current_level = [victim]
            forced.add(victim)

        before = len(assigned)
        assigned.update(current_level)
        if len(assigned) == before:
            raise CyclicDependencyUnresolved(by_id.keys() - assigned)
        levels.append(current_level)

    nodes = {
        op_id: DependencyNode(
            operation=op,
            dependencies=op.dependencies,
            dependents=frozenset(forward.get(op_id, _EMPTY_SET)),
        )
        for op_id, op in by_id.items()
    }
    edges = {dep: frozenset(dependents) for dep, dependents in forward.items()}

    return DependencyGraph(nodes, edges, levels, frozenset(forced))
