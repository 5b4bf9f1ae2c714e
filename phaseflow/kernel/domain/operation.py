"""Operation and execution-context primitives.

An ``Operation`` is one unit of schedulable work. It is created per scheduling
request, never persisted, and discarded when the request completes.
"""

import sys
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

NON_CACHEABLE_TYPES: tuple[str, ...] = ("real-time", "user-specific", "time-sensitive")

DEFAULT_ESTIMATED_TIME_MS = 5000.0

OperationWork = Callable[[Mapping[str, Any], "ExecutionContext"], Awaitable[Any] | Any]


@dataclass(frozen=True, slots=True)
class ExecutionContext:
    """Ambient parameters shared by every operation in one request.

    Only ``content_type`` and ``project_id`` take part in cache validity;
    ``payload`` is passed through to operations untouched.
    """

    content_type: str
    project_id: str | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    def is_compatible_with(self, other: "ExecutionContext | None") -> bool:
        """Conservative equality on classification and project identifier."""
        if other is None:
            return False
        return self.content_type == other.content_type and self.project_id == other.project_id

    def cache_fields(self) -> dict[str, Any]:
        """Fields that participate in cache key derivation."""
        return {"content_type": self.content_type, "project_id": self.project_id}


@dataclass(frozen=True, slots=True)
class Operation:
    """Immutable description of a schedulable unit of work.

    ``work`` is called as ``work(parameters, context)`` and may be a coroutine
    function or a plain callable. ``estimated_time`` (milliseconds) is advisory
    and only feeds planning estimates.

    Examples
    --------
    >>> async def fetch(params, ctx):
    ...     return params["n"] * 2
    >>> op = Operation("double", fetch, parameters={"n": 21})
    >>> op.after("load").dependencies
    frozenset({'load'})
    """

    id: str
    work: OperationWork
    name: str = ""
    dependencies: frozenset[str] = field(default_factory=frozenset)
    parameters: Mapping[str, Any] = field(default_factory=dict)
    type: str | None = None
    estimated_time: float = DEFAULT_ESTIMATED_TIME_MS
    timeout: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", sys.intern(self.id))
        if not self.name:
            object.__setattr__(self, "name", self.id)
        object.__setattr__(
            self, "dependencies", frozenset(sys.intern(d) for d in self.dependencies)
        )
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    @property
    def cacheable(self) -> bool:
        """False when the declared type marks real-time, user-specific or time-sensitive work."""
        if not self.type:
            return True
        return not any(marker in self.type for marker in NON_CACHEABLE_TYPES)

    def after(self, *operation_ids: str) -> "Operation":
        """Return a copy that also depends on ``operation_ids``."""
        return replace(self, dependencies=self.dependencies | frozenset(operation_ids))

    def __repr__(self) -> str:
        deps = f", deps={sorted(self.dependencies)}" if self.dependencies else ""
        kind = f", type={self.type!r}" if self.type else ""
        return f"Operation({self.id!r}{kind}{deps})"
