"""Shared fixtures for phaseflow tests."""

from collections.abc import Iterator

import pytest

from phaseflow.kernel.config import clear_config_cache
from phaseflow.kernel.config.models import (
    CacheConfig,
    MonitoringConfig,
    ParallelExecutionConfig,
    SchedulerConfig,
)
from phaseflow.kernel.domain import ExecutionContext

_ENV_VARS = (
    "PHASEFLOW_CONFIG_PATH",
    "PHASEFLOW_LOG_LEVEL",
    "PHASEFLOW_LOG_FORMAT",
    "PHASEFLOW_LOG_FILE",
    "PHASEFLOW_LOG_COLOR",
    "PHASEFLOW_CACHE_ENABLED",
    "PHASEFLOW_CACHE_TTL",
    "PHASEFLOW_CACHE_MAX_SIZE",
    "PHASEFLOW_MAX_CONCURRENCY",
    "PHASEFLOW_OPERATION_TIMEOUT",
    "PHASEFLOW_MONITORING_INTERVAL",
    "PHASEFLOW_MEMORY_BUDGET",
)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep tests independent of the caller's environment and config cache."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def context() -> ExecutionContext:
    return ExecutionContext(content_type="article", project_id="p-1")


@pytest.fixture
def scheduler_config() -> SchedulerConfig:
    """Defaults with a small cache and background monitoring disabled."""
    return SchedulerConfig(
        cache=CacheConfig(max_size=100, ttl=600.0),
        parallel=ParallelExecutionConfig(max_concurrent_operations=4),
        monitoring=MonitoringConfig(enabled=False),
    )
