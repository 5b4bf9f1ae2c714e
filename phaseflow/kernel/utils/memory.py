"""Process memory probes backed by psutil."""

import psutil

_BYTES_PER_MB = 1024 * 1024


def process_memory_mb() -> float:
    """Resident set size of the current process in megabytes."""
    return psutil.Process().memory_info().rss / _BYTES_PER_MB


def memory_efficiency() -> float:
    """Fraction of system memory not held by this process, in ``[0, 1]``."""
    total = psutil.virtual_memory().total
    if total <= 0:
        return 0.0
    used = psutil.Process().memory_info().rss
    return max(0.0, 1.0 - used / total)
