"""Execution components used by the scheduler."""

from phaseflow.kernel.orchestration.components.phase_executor import (
    PhaseExecutor,
    overall_parallelization_factor,
    parallelization_factor,
)

__all__ = ["PhaseExecutor", "overall_parallelization_factor", "parallelization_factor"]
