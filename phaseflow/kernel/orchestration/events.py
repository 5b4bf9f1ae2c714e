"""Event data classes emitted while a scheduling request runs.

An observer is any callable taking one event; it may be sync or async.
Observer failures are logged and never affect scheduling.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from phaseflow.kernel.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class Event:
    """Base class for all events - provides timestamp."""

    timestamp: datetime = field(default_factory=datetime.now, init=False)

    def log_message(self) -> str:
        """Get a formatted log message for this event.

        Returns
        -------
        str
            A formatted string suitable for logging
        """
        return f"{self.__class__.__name__} at {self.timestamp.isoformat()}"


Observer = Callable[[Event], Awaitable[None] | None]


# Scheduler events
@dataclass(slots=True)
class SchedulerStarted(Event):
    """A scheduling request has been accepted."""

    execution_id: str
    operation_count: int

    def log_message(self) -> str:
        return f"🎬 Execution {self.execution_id} started with {self.operation_count} operations"


@dataclass(slots=True)
class SchedulerCompleted(Event):
    """A scheduling request has finished, optimized or via fallback."""

    execution_id: str
    duration_ms: float
    succeeded: int
    failed: int
    fallback_used: bool = False

    def log_message(self) -> str:
        mode = " (fallback)" if self.fallback_used else ""
        return (
            f"🏁 Execution {self.execution_id} completed{mode} in {self.duration_ms / 1000:.2f}s: "
            f"{self.succeeded} succeeded, {self.failed} failed"
        )


@dataclass(slots=True)
class FallbackTriggered(Event):
    """Optimized execution failed and sequential fallback took over."""

    execution_id: str
    error: Exception

    def log_message(self) -> str:
        return f"⚠️ Execution {self.execution_id} falling back to sequential: {self.error}"


# Phase events
@dataclass(slots=True)
class PhaseStarted(Event):
    """A phase has started."""

    phase_index: int
    operations: tuple[str, ...]
    mode: str

    def log_message(self) -> str:
        return f"🌊 Phase {self.phase_index} ({self.mode}) started: {', '.join(self.operations)}"


@dataclass(slots=True)
class PhaseCompleted(Event):
    """A phase has completed; every operation in it has a result."""

    phase_index: int
    duration_ms: float
    parallelization_factor: float

    def log_message(self) -> str:
        return (
            f"✅ Phase {self.phase_index} completed in {self.duration_ms / 1000:.2f}s "
            f"(parallelization x{self.parallelization_factor:.2f})"
        )


# Operation events
@dataclass(slots=True)
class OperationStarted(Event):
    """An operation has started."""

    operation_id: str
    phase_index: int
    dependencies: tuple[str, ...] = field(default_factory=tuple)

    def log_message(self) -> str:
        deps = f" (deps: {', '.join(self.dependencies)})" if self.dependencies else ""
        return f"🚀 Operation '{self.operation_id}' started in phase {self.phase_index}{deps}"


@dataclass(slots=True)
class OperationCompleted(Event):
    """An operation has completed successfully."""

    operation_id: str
    phase_index: int
    duration_ms: float
    from_cache: bool = False

    def log_message(self) -> str:
        source = " from cache" if self.from_cache else ""
        return (
            f"✅ Operation '{self.operation_id}' completed{source} in "
            f"{self.duration_ms / 1000:.2f}s"
        )


@dataclass(slots=True)
class OperationFailed(Event):
    """An operation has failed."""

    operation_id: str
    phase_index: int
    error: Exception

    def log_message(self) -> str:
        return f"❌ Operation '{self.operation_id}' failed: {self.error}"


@dataclass(slots=True)
class OperationSkipped(Event):
    """An operation was not run because a dependency did not succeed."""

    operation_id: str
    phase_index: int
    reason: str | None = None

    def log_message(self) -> str:
        return f"⏭️ Operation '{self.operation_id}' skipped: {self.reason or 'unknown'}"


@dataclass(slots=True)
class CacheHit(Event):
    """An operation result was served from the cache."""

    operation_id: str
    cache_key: str

    def log_message(self) -> str:
        return f"💾 Cache hit for '{self.operation_id}'"


async def notify_observer(observer: Observer | None, event: Event) -> None:
    """Deliver ``event`` to ``observer`` if one is configured.

    Parameters
    ----------
    observer : Observer | None
        Sync or async callable receiving the event
    event : Event
        Event to send

    Examples
    --------
    >>> await notify_observer(print, PhaseStarted(0, ("a",), "sequential"))  # doctest: +SKIP
    """
    if observer is None:
        return
    try:
        outcome: Any = observer(event)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception as e:
        logger.warning(
            "Observer failed handling {event}: {error}",
            event=type(event).__name__,
            error=e,
        )


__all__ = [
    "CacheHit",
    "Event",
    "FallbackTriggered",
    "Observer",
    "OperationCompleted",
    "OperationFailed",
    "OperationSkipped",
    "OperationStarted",
    "PhaseCompleted",
    "PhaseStarted",
    "SchedulerCompleted",
    "SchedulerStarted",
    "notify_observer",
]
