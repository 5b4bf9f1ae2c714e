"""Tests for TOML configuration loading and environment overrides."""

from pathlib import Path

import pytest

from phaseflow.kernel.config import ConfigLoader, load_config
from phaseflow.kernel.config.models import DependencyFailurePolicy, SchedulerConfig
from phaseflow.kernel.exceptions import ConfigurationError


def write(path: Path, content: str) -> Path:
    path.write_text(content)
    return path


class TestLoadFromToml:
    """Tests for file-based configuration."""

    def test_flat_phaseflow_toml(self, tmp_path: Path) -> None:
        """Top-level sections in phaseflow.toml are read."""
        path = write(
            tmp_path / "phaseflow.toml",
            '[cache]\nmax_size = 50\nttl = 120\n\n[parallel]\ndependency_failure_policy = "skip"\n',
        )
        config = load_config(path)
        assert config.cache.max_size == 50
        assert config.cache.ttl == 120
        assert config.parallel.dependency_failure_policy is DependencyFailurePolicy.SKIP

    def test_pyproject_tool_section(self, tmp_path: Path) -> None:
        """[tool.phaseflow] in pyproject.toml is read."""
        path = write(
            tmp_path / "pyproject.toml",
            "[project]\nname = 'x'\n\n[tool.phaseflow.monitoring]\nmetrics_interval = 5\n",
        )
        assert load_config(path).monitoring.metrics_interval == 5

    def test_discovers_file_in_working_directory(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Without a path, phaseflow.toml in the working directory is used."""
        write(tmp_path / "phaseflow.toml", "[cache]\nmax_size = 7\n")
        monkeypatch.chdir(tmp_path)
        assert load_config().cache.max_size == 7

    def test_config_path_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """PHASEFLOW_CONFIG_PATH points at an explicit file."""
        path = write(tmp_path / "custom.toml", "[cache]\nmax_size = 9\n")
        monkeypatch.setenv("PHASEFLOW_CONFIG_PATH", str(path))
        monkeypatch.chdir(tmp_path)
        assert load_config().cache.max_size == 9

    def test_env_var_substitution(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """${VAR} placeholders are replaced from the environment."""
        monkeypatch.setenv("LOG_TARGET", "/tmp/phaseflow.log")
        path = write(tmp_path / "phaseflow.toml", '[logging]\noutput_file = "${LOG_TARGET}"\n')
        assert load_config(path).logging.output_file == "/tmp/phaseflow.log"

    def test_missing_explicit_path_raises(self, tmp_path: Path) -> None:
        """An explicit path that does not exist is an error."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.toml")

    def test_no_file_falls_back_to_defaults(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Without any config file the defaults are returned."""
        monkeypatch.chdir(tmp_path)
        assert load_config() == SchedulerConfig()

    def test_invalid_section_raises_configuration_error(self, tmp_path: Path) -> None:
        """Values rejected by the models surface as ConfigurationError."""
        path = write(tmp_path / "phaseflow.toml", "[cache]\nmax_size = -5\n")
        with pytest.raises(ConfigurationError, match="cache"):
            load_config(path)


class TestEnvironmentOverrides:
    """Tests for PHASEFLOW_* overrides."""

    def test_overrides_apply(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment values override file and defaults."""
        monkeypatch.setenv("PHASEFLOW_CACHE_TTL", "90")
        monkeypatch.setenv("PHASEFLOW_CACHE_MAX_SIZE", "25")
        monkeypatch.setenv("PHASEFLOW_MAX_CONCURRENCY", "8")
        monkeypatch.setenv("PHASEFLOW_LOG_LEVEL", "debug")
        monkeypatch.setenv("PHASEFLOW_CACHE_ENABLED", "off")

        config = ConfigLoader().parse_config({"cache": {"ttl": 10}})

        assert config.cache.ttl == 90.0
        assert config.cache.max_size == 25
        assert config.cache.enabled is False
        assert config.parallel.max_concurrent_operations == 8
        assert config.logging.level == "DEBUG"

    def test_invalid_override_is_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Unparseable values are logged and skipped."""
        monkeypatch.setenv("PHASEFLOW_CACHE_MAX_SIZE", "lots")
        assert ConfigLoader().parse_config({}).cache.max_size == 1000

    def test_unknown_keys_are_ignored(self) -> None:
        """Unknown sections and keys do not break parsing."""
        config = ConfigLoader().parse_config({"cache": {"flavor": "lru"}, "extras": {}})
        assert config.cache == SchedulerConfig().cache
