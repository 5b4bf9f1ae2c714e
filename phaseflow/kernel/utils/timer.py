"""Wall-clock timing for operations, phases and whole requests.

``Timer`` keeps running until ``stop()``; ``operation_timer`` stops it when
the block exits, so durations read afterwards describe the block alone.
"""

import time
from collections.abc import Generator
from contextlib import contextmanager


class Timer:
    """Elapsed milliseconds since construction, frozen once stopped.

    Examples
    --------
    >>> timer = Timer()
    >>> timer.stop() == timer.duration_ms
    True
    """

    __slots__ = ("_start", "_end")

    def __init__(self) -> None:
        self._start = time.perf_counter()
        self._end: float | None = None

    def stop(self) -> float:
        """Freeze the timer and return the final duration in milliseconds."""
        if self._end is None:
            self._end = time.perf_counter()
        return self.duration_ms

    @property
    def duration_ms(self) -> float:
        end = self._end if self._end is not None else time.perf_counter()
        return (end - self._start) * 1000


@contextmanager
def operation_timer() -> Generator[Timer, None, None]:
    """Time a block; the yielded ``Timer`` is stopped on exit, even on error."""
    timer = Timer()
    try:
        yield timer
    finally:
        timer.stop()
