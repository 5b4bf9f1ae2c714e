"""TOML configuration loader for phaseflow."""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import fields
from functools import lru_cache
from pathlib import Path
from typing import Any, TypeVar

from phaseflow.kernel.config.models import (
    CacheConfig,
    LoggingConfig,
    MonitoringConfig,
    OptimizationConfig,
    ParallelExecutionConfig,
    ResourceLimits,
    SchedulerConfig,
)
from phaseflow.kernel.exceptions import ConfigurationError, ValidationError
from phaseflow.kernel.logging import get_logger

_TRUTHY_VALUES = frozenset({"true", "1", "yes", "on", "enabled"})
_FALSY_VALUES = frozenset({"false", "0", "no", "off", "disabled"})

_SECTIONS: dict[str, type] = {
    "cache": CacheConfig,
    "parallel": ParallelExecutionConfig,
    "monitoring": MonitoringConfig,
    "optimization": OptimizationConfig,
    "resource_limits": ResourceLimits,
    "logging": LoggingConfig,
}

# (env var, section, key, converter)
_ENV_OVERRIDES: tuple[tuple[str, str, str, str], ...] = (
    ("PHASEFLOW_LOG_LEVEL", "logging", "level", "upper"),
    ("PHASEFLOW_LOG_FORMAT", "logging", "format", "lower"),
    ("PHASEFLOW_LOG_FILE", "logging", "output_file", "str"),
    ("PHASEFLOW_LOG_COLOR", "logging", "use_color", "bool"),
    ("PHASEFLOW_CACHE_ENABLED", "cache", "enabled", "bool"),
    ("PHASEFLOW_CACHE_TTL", "cache", "ttl", "float"),
    ("PHASEFLOW_CACHE_MAX_SIZE", "cache", "max_size", "int"),
    ("PHASEFLOW_MAX_CONCURRENCY", "parallel", "max_concurrent_operations", "int"),
    ("PHASEFLOW_OPERATION_TIMEOUT", "parallel", "default_operation_timeout", "float"),
    ("PHASEFLOW_MONITORING_INTERVAL", "monitoring", "metrics_interval", "float"),
    ("PHASEFLOW_MEMORY_BUDGET", "resource_limits", "max_memory_usage", "float"),
)

T = TypeVar("T")

logger = get_logger(__name__)


def _parse_bool_env(value: str) -> bool:
    """Parse boolean from environment variable value.

    Raises
    ------
    ValueError
        If value is not a recognized boolean string
    """
    normalized = value.lower().strip()
    if normalized in _TRUTHY_VALUES:
        return True
    if normalized in _FALSY_VALUES:
        return False
    expected = sorted(_TRUTHY_VALUES | _FALSY_VALUES)
    raise ValueError(f"Invalid boolean value: {value!r}. Expected one of: {expected}")


def _convert_env(raw: str, converter: str) -> Any:
    if converter == "bool":
        return _parse_bool_env(raw)
    if converter == "int":
        return int(raw)
    if converter == "float":
        return float(raw)
    if converter == "upper":
        return raw.upper()
    if converter == "lower":
        return raw.lower()
    return raw


@lru_cache(maxsize=32)
def _load_and_parse_cached(path_str: str) -> SchedulerConfig:
    """Cached configuration loader keyed by absolute path."""
    return ConfigLoader()._load_and_parse(Path(path_str))


class ConfigLoader:
    """Loads scheduler configuration from TOML files and the environment."""

    ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

    def load_from_toml(self, path: str | Path | None = None) -> SchedulerConfig:
        """Load configuration from a TOML file.

        Parameters
        ----------
        path : str | Path | None
            Path to TOML file. If None, searches for phaseflow.toml or pyproject.toml

        Raises
        ------
        FileNotFoundError
            If no configuration file is found
        ConfigurationError
            If a section holds values the models reject
        """
        config_path = self._find_config_file(path)
        return _load_and_parse_cached(str(config_path.absolute()))

    def _load_and_parse(self, config_path: Path) -> SchedulerConfig:
        logger.info("Loading configuration from {path}", path=config_path)

        with config_path.open("rb") as f:
            data = tomllib.load(f)

        if "tool" in data and "phaseflow" in data.get("tool", {}):
            section_data = data["tool"]["phaseflow"]
        elif config_path.name == "pyproject.toml":
            logger.warning("No [tool.phaseflow] section found in pyproject.toml, using defaults")
            section_data = {}
        else:
            section_data = data

        section_data = self._substitute_env_vars(section_data)
        return self.parse_config(section_data)

    def _find_config_file(self, path: str | Path | None) -> Path:
        if path:
            config_path = Path(path)
            if not config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
            return config_path

        if env_path := os.getenv("PHASEFLOW_CONFIG_PATH"):
            config_path = Path(env_path)
            if config_path.exists():
                logger.debug("Using config from PHASEFLOW_CONFIG_PATH: {path}", path=config_path)
                return config_path
            logger.warning("PHASEFLOW_CONFIG_PATH set but file not found: {path}", path=config_path)

        for search_path in (Path("phaseflow.toml"), Path(".phaseflow.toml")):
            if search_path.exists():
                return search_path

        current = Path.cwd()
        while True:
            pyproject = current / "pyproject.toml"
            if pyproject.exists():
                with pyproject.open("rb") as f:
                    data = tomllib.load(f)
                if "phaseflow" in data.get("tool", {}):
                    return pyproject
            if current == current.parent:
                break
            current = current.parent

        raise FileNotFoundError(
            "No configuration file found. Searched for: phaseflow.toml, .phaseflow.toml, "
            "pyproject.toml with [tool.phaseflow]"
        )

    def _substitute_env_vars(self, data: Any) -> Any:
        """Recursively replace ``${VAR}`` placeholders with environment values."""
        if isinstance(data, str):

            def replacer(match: re.Match[str]) -> str:
                var_name = match.group(1)
                value = os.environ.get(var_name)
                if value is None:
                    logger.debug(
                        "Environment variable ${{{var}}} not found, keeping placeholder",
                        var=var_name,
                    )
                    return match.group(0)
                return value

            return self.ENV_VAR_PATTERN.sub(replacer, data)

        if isinstance(data, dict):
            return {key: self._substitute_env_vars(value) for key, value in data.items()}

        if isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]

        return data

    def parse_config(self, data: dict[str, Any]) -> SchedulerConfig:
        """Build a ``SchedulerConfig`` from raw section data plus env overrides."""
        sections: dict[str, dict[str, Any]] = {
            name: dict(data.get(name, {})) for name in _SECTIONS
        }

        for unknown in set(data) - set(_SECTIONS):
            logger.warning("Ignoring unknown configuration section '{section}'", section=unknown)

        for env_name, section, key, converter in _ENV_OVERRIDES:
            raw = os.getenv(env_name)
            if raw is None:
                continue
            try:
                sections[section][key] = _convert_env(raw, converter)
            except ValueError as e:
                logger.warning("Invalid {env} value: {error}", env=env_name, error=e)
                continue
            logger.debug("Overriding {section}.{key} from {env}", section=section, key=key, env=env_name)

        built = {name: self._build_section(name, cls, sections[name]) for name, cls in _SECTIONS.items()}
        return SchedulerConfig(**built)

    @staticmethod
    def _build_section(name: str, cls: type[T], values: dict[str, Any]) -> T:
        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        for key in set(values) - known:
            logger.warning("Ignoring unknown key '{key}' in [{section}]", key=key, section=name)
        try:
            return cls(**{k: v for k, v in values.items() if k in known})
        except (ValidationError, ValueError, TypeError) as e:
            raise ConfigurationError(name, str(e)) from e


def load_config(path: str | Path | None = None) -> SchedulerConfig:
    """Load configuration from TOML file or return defaults (with env overrides)."""
    loader = ConfigLoader()
    try:
        return loader.load_from_toml(path)
    except FileNotFoundError:
        if path is not None:
            raise
        logger.info("No configuration file found, using defaults")
        return loader.parse_config({})


def clear_config_cache() -> None:
    """Forget cached parses, e.g. after editing a config file in tests."""
    _load_and_parse_cached.cache_clear()


def get_default_config() -> SchedulerConfig:
    """Return the built-in defaults without reading files or the environment."""
    return SchedulerConfig()
