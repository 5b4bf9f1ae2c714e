"""Phase executor: runs the operations of one phase with bounded concurrency.

Each operation is resolved independently: a cache hit short-circuits the
work, a miss runs the work and stores the output. Any failure is captured
in that operation's ``OperationResult`` and never cancels its siblings.
"""

import asyncio
import contextvars
import inspect
from collections.abc import Collection, Iterable
from typing import Any

from phaseflow.kernel.caching import CacheEntry, ResultCache, try_cache_key
from phaseflow.kernel.config.models import DependencyFailurePolicy, ParallelExecutionConfig
from phaseflow.kernel.domain.operation import ExecutionContext, Operation
from phaseflow.kernel.domain.plan import ExecutionMode, ExecutionPhase
from phaseflow.kernel.exceptions import (
    DependencyFailedError,
    OperationExecutionError,
    OperationTimeoutError,
)
from phaseflow.kernel.logging import get_logger
from phaseflow.kernel.monitoring.monitor import PerformanceMonitor
from phaseflow.kernel.orchestration.events import (
    CacheHit,
    Event,
    Observer,
    OperationCompleted,
    OperationFailed,
    OperationSkipped,
    OperationStarted,
    PhaseCompleted,
    PhaseStarted,
    notify_observer,
)
from phaseflow.kernel.orchestration.models import OperationResult, OperationStatus, PhaseResult
from phaseflow.kernel.utils import operation_timer, process_memory_mb

logger = get_logger(__name__)


def parallelization_factor(durations: Collection[float]) -> float:
    """``sum(durations) / max(durations)``; 1.0 when nothing took measurable time.

    Examples
    --------
    >>> parallelization_factor([100.0, 100.0, 50.0])
    2.5
    """
    longest = max(durations, default=0.0)
    if longest <= 0:
        return 1.0
    return sum(durations) / longest


def overall_parallelization_factor(phase_durations: Iterable[Collection[float]]) -> float:
    """Sum of every operation time over the sum of each phase's longest time.

    Examples
    --------
    >>> overall_parallelization_factor([[100.0, 50.0], [30.0]])
    1.3846153846153846
    """
    groups = list(phase_durations)
    sequential = sum(sum(durations) for durations in groups)
    parallel = sum(max(durations, default=0.0) for durations in groups)
    if parallel <= 0:
        return 1.0
    return sequential / parallel


def _cancellation_requested() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


class PhaseExecutor:
    """Executes phases of an execution plan.

    Args
    ----
        cache: Result cache consulted and filled per operation
        monitor: Receives per-operation outcomes and memory deltas
        config: Concurrency, timeout and dependency-failure settings
        observer: Optional event receiver

    Examples
    --------
    Example usage::

        executor = PhaseExecutor(cache, monitor, ParallelExecutionConfig())
        phase_result = await executor.execute_phase(plan.phases[0], context)
        for op_id, result in phase_result.results.items():
            print(op_id, result.status, result.from_cache)
    """

    def __init__(
        self,
        cache: ResultCache,
        monitor: PerformanceMonitor,
        config: ParallelExecutionConfig | None = None,
        observer: Observer | None = None,
    ) -> None:
        self.cache = cache
        self.monitor = monitor
        self.config = config or ParallelExecutionConfig()
        self.observer = observer

    async def execute_phase(
        self,
        phase: ExecutionPhase,
        context: ExecutionContext,
        use_cache: bool = True,
        concurrency: int | None = None,
        unsuccessful: Collection[str] = (),
    ) -> PhaseResult:
        """Run every operation of ``phase`` and collect their results.

        Parameters
        ----------
        phase : ExecutionPhase
            Phase to run
        context : ExecutionContext
            Request context passed to each operation
        use_cache : bool
            Whether cacheable operations consult and fill the cache
        concurrency : int | None
            Operations allowed to run at once in a parallel phase; defaults to
            ``max_concurrent_operations``
        unsuccessful : Collection[str]
            Ids that failed or were skipped in earlier phases, consulted by
            the ``skip`` dependency-failure policy

        Returns
        -------
        PhaseResult
            One ``OperationResult`` per operation, in phase order
        """
        limit = max(1, concurrency or self.config.max_concurrent_operations)
        self.monitor.record_concurrency(limit if phase.mode is ExecutionMode.PARALLEL else 1)
        await self._notify(PhaseStarted(phase.index, tuple(phase.operation_ids), str(phase.mode)))

        with operation_timer() as timer:
            if phase.mode is ExecutionMode.PARALLEL and len(phase) > 1:
                op_results = await self._execute_parallel(
                    phase, context, use_cache, limit, unsuccessful
                )
            else:
                op_results = [
                    await self.execute_operation(op, context, phase.index, use_cache, unsuccessful)
                    for op in phase.operations
                ]

        factor = parallelization_factor([r.duration_ms for r in op_results])
        result = PhaseResult(
            phase_index=phase.index,
            mode=phase.mode,
            results={r.operation_id: r for r in op_results},
            duration_ms=timer.duration_ms,
            parallelization_factor=factor,
        )
        await self._notify(PhaseCompleted(phase.index, result.duration_ms, factor))
        return result

    async def _execute_parallel(
        self,
        phase: ExecutionPhase,
        context: ExecutionContext,
        use_cache: bool,
        limit: int,
        unsuccessful: Collection[str],
    ) -> list[OperationResult]:
        semaphore = asyncio.Semaphore(limit)

        async def execute_with_limit(op: Operation) -> OperationResult:
            async with semaphore:
                return await self.execute_operation(
                    op, context, phase.index, use_cache, unsuccessful
                )

        gathered = await asyncio.gather(
            *[execute_with_limit(op) for op in phase.operations],
            return_exceptions=True,
        )

        results: list[OperationResult] = []
        for outcome in gathered:
            if isinstance(outcome, OperationResult):
                results.append(outcome)
            elif isinstance(outcome, BaseException):
                # Per-operation errors are captured inside execute_operation;
                # anything reaching here is a defect in the executor itself.
                logger.error("Exception during phase {index}: {error}", index=phase.index, error=outcome)
                raise outcome
        return results

    async def execute_operation(
        self,
        op: Operation,
        context: ExecutionContext,
        phase_index: int = 0,
        use_cache: bool = True,
        unsuccessful: Collection[str] = (),
    ) -> OperationResult:
        """Resolve a single operation from cache or by running its work.

        Never raises for failures of the work itself; they are reported in the
        returned result.
        """
        if self.config.dependency_failure_policy is DependencyFailurePolicy.SKIP:
            failed_deps = op.dependencies.intersection(unsuccessful)
            if failed_deps:
                return await self._skip(op, phase_index, failed_deps)

        await self._notify(OperationStarted(op.id, phase_index, tuple(sorted(op.dependencies))))
        key = try_cache_key(op, context) if use_cache and op.cacheable else None

        with operation_timer() as timer:
            entry = self._lookup(key, context) if key is not None else None
            if entry is not None:
                self.monitor.record_operation(op.id, timer.duration_ms, success=True)
                await self._notify(CacheHit(op.id, key))
                await self._notify(
                    OperationCompleted(op.id, phase_index, timer.duration_ms, from_cache=True)
                )
                return OperationResult(
                    operation_id=op.id,
                    output=entry.value,
                    from_cache=True,
                    duration_ms=timer.duration_ms,
                    cache_key=key,
                )

            memory_before = process_memory_mb()
            try:
                output = await self._run_with_timeout(op, context)
            except asyncio.CancelledError as e:
                # Only a cancellation raised by the work itself is an operation failure
                if _cancellation_requested():
                    raise
                return await self._fail(op, phase_index, e, timer.duration_ms, memory_before, key)
            except Exception as e:
                return await self._fail(op, phase_index, e, timer.duration_ms, memory_before, key)

            duration_ms = timer.duration_ms

        self.monitor.record_memory_usage(op.id, process_memory_mb() - memory_before)
        self.monitor.record_operation(op.id, duration_ms, success=True)
        if key is not None:
            self._store(key, output, context, duration_ms)

        logger.debug("Operation '{op}' completed in {ms:.2f}ms", op=op.id, ms=duration_ms)
        await self._notify(OperationCompleted(op.id, phase_index, duration_ms))
        return OperationResult(
            operation_id=op.id,
            output=output,
            duration_ms=duration_ms,
            cache_key=key,
        )

    async def _fail(
        self,
        op: Operation,
        phase_index: int,
        cause: BaseException,
        duration_ms: float,
        memory_before: float,
        key: str | None,
    ) -> OperationResult:
        error = (
            cause
            if isinstance(cause, OperationExecutionError)
            else OperationExecutionError(op.id, cause)
        )
        self.monitor.record_memory_usage(op.id, process_memory_mb() - memory_before)
        self.monitor.record_operation(op.id, duration_ms, success=False)
        logger.warning("Operation '{op}' failed: {error}", op=op.id, error=error)
        await self._notify(OperationFailed(op.id, phase_index, error))
        return OperationResult(
            operation_id=op.id,
            status=OperationStatus.FAILED,
            duration_ms=duration_ms,
            error=str(error),
            error_type=type(cause).__name__,
            cache_key=key,
        )

    def _lookup(self, key: str, context: ExecutionContext) -> CacheEntry | None:
        """Cache read where any cache error counts as a miss."""
        try:
            return self.cache.get_entry(key, context)
        except Exception as e:
            logger.warning("Cache lookup failed for {key}, treating as miss: {error}", key=key, error=e)
            self.monitor.record_cache_miss(key)
            return None

    def _store(self, key: str, output: Any, context: ExecutionContext, duration_ms: float) -> None:
        try:
            self.cache.set(key, output, context, generation_time=duration_ms)
        except Exception as e:
            logger.warning("Cache store failed for {key}: {error}", key=key, error=e)

    async def _run_with_timeout(self, op: Operation, context: ExecutionContext) -> Any:
        timeout = op.timeout if op.timeout is not None else self.config.default_operation_timeout
        if timeout is None:
            return await self._run_work(op, context)
        try:
            async with asyncio.timeout(timeout):
                return await self._run_work(op, context)
        except TimeoutError as e:
            raise OperationTimeoutError(op.id, timeout, e) from e

    async def _run_work(self, op: Operation, context: ExecutionContext) -> Any:
        if inspect.iscoroutinefunction(op.work):
            return await op.work(op.parameters, context)
        # Run sync work in the default executor with a copy of the current context
        ctx = contextvars.copy_context()

        def _run_sync() -> Any:
            return op.work(op.parameters, context)

        outcome = await asyncio.get_running_loop().run_in_executor(None, ctx.run, _run_sync)
        if inspect.isawaitable(outcome):
            return await outcome
        return outcome

    async def _skip(
        self, op: Operation, phase_index: int, failed_deps: Collection[str]
    ) -> OperationResult:
        error = DependencyFailedError(op.id, failed_deps)
        logger.info("Skipping operation '{op}': {error}", op=op.id, error=error)
        await self._notify(OperationSkipped(op.id, phase_index, str(error)))
        return OperationResult(
            operation_id=op.id,
            status=OperationStatus.SKIPPED,
            error=str(error),
            error_type=type(error).__name__,
        )

    async def _notify(self, event: Event) -> None:
        await notify_observer(self.observer, event)
