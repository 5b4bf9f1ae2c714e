"""Performance monitoring and adaptive tuning."""

from phaseflow.kernel.monitoring.monitor import (
    PerformanceMetrics,
    PerformanceMonitor,
    running_average,
)
from phaseflow.kernel.monitoring.optimizer import AdaptiveOptimizer, LearningRecord, TuningState

__all__ = [
    "AdaptiveOptimizer",
    "LearningRecord",
    "PerformanceMetrics",
    "PerformanceMonitor",
    "TuningState",
    "running_average",
]
