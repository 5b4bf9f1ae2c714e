"""Core exception hierarchy for the phaseflow scheduler.

All phaseflow exceptions inherit from PhaseflowError so callers can catch
every scheduler-specific failure with a single handler.
"""

from __future__ import annotations

from collections.abc import Iterable

# ============================================================================
# Base Exception
# ============================================================================


class PhaseflowError(Exception):
    """Base exception for all phaseflow errors."""

    pass


# ============================================================================
# Configuration & Validation Errors
# ============================================================================


class ConfigurationError(PhaseflowError):
    """Raised when configuration is invalid or missing.

    Examples
    --------
    Example usage::

        raise ConfigurationError("cache", "ttl must be positive")
    """

    def __init__(self, component: str, reason: str) -> None:
        """Initialize configuration error.

        Args
        ----
            component: Name of the component with invalid configuration
            reason: Explanation of what's wrong
        """
        super().__init__(f"Configuration error in '{component}': {reason}")
        self.component = component
        self.reason = reason


class ValidationError(PhaseflowError):
    """Raised when a configuration or request field fails validation.

    Examples
    --------
    Example usage::

        raise ValidationError("max_size", "must be positive", value=-1)
    """

    def __init__(self, field: str, constraint: str, value: object = None) -> None:
        """Initialize validation error.

        Args
        ----
            field: Name of the field that failed validation
            constraint: Description of the validation constraint
            value: The invalid value (optional)
        """
        if value is not None:
            msg = f"Validation failed for '{field}': {constraint} (got {value!r})"
        else:
            msg = f"Validation failed for '{field}': {constraint}"
        super().__init__(msg)
        self.field = field
        self.constraint = constraint
        self.value = value


# ============================================================================
# Scheduling Errors
# ============================================================================


class SchedulingError(PhaseflowError):
    """Raised when graph building or planning cannot complete.

    The scheduler never lets these escape ``execute_optimized``; they trigger
    the sequential fallback instead.
    """

    pass


class CyclicDependencyUnresolved(SchedulingError):
    """Raised when cycle breaking fails to assign any operation to a level."""

    def __init__(self, remaining: Iterable[str]) -> None:
        self.remaining = sorted(remaining)
        super().__init__(f"Could not break dependency cycle. Remaining operations: {self.remaining}")


class DuplicateOperationError(SchedulingError):
    """Raised when two operations in one request share an id."""

    def __init__(self, operation_id: str) -> None:
        self.operation_id = operation_id
        super().__init__(f"Duplicate operation id '{operation_id}' in scheduling request")


# ============================================================================
# Operation Errors
# ============================================================================


class OperationExecutionError(PhaseflowError):
    """Exception raised when an operation's work fails."""

    def __init__(self, operation_id: str, original_error: BaseException) -> None:
        self.operation_id = operation_id
        self.original_error = original_error
        super().__init__(f"Operation '{operation_id}' failed: {original_error}")


class OperationTimeoutError(OperationExecutionError):
    """Exception raised when an operation exceeds its timeout."""

    def __init__(self, operation_id: str, timeout: float, original_error: TimeoutError) -> None:
        self.timeout = timeout
        super().__init__(operation_id, original_error)

    def __str__(self) -> str:
        return f"Operation '{self.operation_id}' timed out after {self.timeout}s"


class DependencyFailedError(PhaseflowError):
    """Raised in place of running an operation whose dependencies did not succeed."""

    def __init__(self, operation_id: str, failed_dependencies: Iterable[str]) -> None:
        self.operation_id = operation_id
        self.failed_dependencies = sorted(failed_dependencies)
        super().__init__(
            f"Operation '{operation_id}' skipped: dependencies failed "
            f"({', '.join(self.failed_dependencies)})"
        )


__all__ = [
    "ConfigurationError",
    "CyclicDependencyUnresolved",
    "DependencyFailedError",
    "DuplicateOperationError",
    "OperationExecutionError",
    "OperationTimeoutError",
    "PhaseflowError",
    "SchedulingError",
    "ValidationError",
]
