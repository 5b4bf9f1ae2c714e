"""Small shared helpers: timers and memory probes."""

from phaseflow.kernel.utils.memory import memory_efficiency, process_memory_mb
from phaseflow.kernel.utils.timer import Timer, operation_timer

__all__ = ["Timer", "memory_efficiency", "operation_timer", "process_memory_mb"]
