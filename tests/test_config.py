"""Tests for configuration management."""

import json
from pathlib import Path

import pytest
import yaml

from cronward.config import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILE,
    DEFAULT_DATA_DIR,
    DEFAULT_TASKS_FILE,
    AppConfig,
    SchedulerSettings,
    _config_to_dict,
    clear_config_cache,
    ensure_directories,
    export_config_json,
    export_config_yaml,
    get_config,
    load_config,
    set_config,
)

ENV_VARS = [
    "CRONWARD_CONFIG_DIR",
    "CRONWARD_DATA_DIR",
    "CRONWARD_TASKS_FILE",
    "CRONWARD_HISTORY_DIR",
    "CRONWARD_WATCH_CONFIG",
    "CRONWARD_HTTP_TIMEOUT",
    "CRONWARD_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Remove cronward environment overrides for every test."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


class TestConfigConstants:
    """Test configuration constants."""

    def test_default_config_dir(self):
        """Test default config directory."""
        assert DEFAULT_CONFIG_DIR == Path.home() / ".config" / "cronward"

    def test_default_data_dir(self):
        assert DEFAULT_DATA_DIR == Path.home() / ".local" / "share" / "cronward"

    def test_default_file_names(self):
        assert DEFAULT_CONFIG_FILE == "settings.toml"
        assert DEFAULT_TASKS_FILE == "scheduler.json"


class TestAppConfig:
    """Test AppConfig dataclass."""

    def test_defaults(self):
        """Scheduler paths derive from the config and data directories."""
        config = AppConfig(config_dir=Path("/etc/cw"), data_dir=Path("/var/lib/cw"))

        assert config.scheduler.tasks_file == Path("/etc/cw/scheduler.json")
        assert config.scheduler.history_dir == Path("/var/lib/cw/history")
        assert config.pid_file == Path("/var/lib/cw/cronward.pid")
        assert config.scheduler.watch_config is True
        assert config.scheduler.http_timeout == 30.0
        assert config.scheduler.max_history_records == 1000
        assert config.logging.level == "WARNING"

    def test_explicit_paths_kept(self):
        settings = SchedulerSettings(tasks_file=Path("/srv/tasks.json"))
        config = AppConfig(config_dir=Path("/etc/cw"), scheduler=settings)

        assert config.scheduler.tasks_file == Path("/srv/tasks.json")


class TestLoadConfig:
    """Test load_config function."""

    def test_missing_file_uses_defaults(self, tmp_path: Path):
        config = load_config(tmp_path / "missing.toml")

        assert config.scheduler.http_timeout == 30.0
        assert config.scheduler.tasks_file == DEFAULT_CONFIG_DIR / DEFAULT_TASKS_FILE

    def test_load_from_toml(self, tmp_path: Path):
        """Settings file values override defaults."""
        path = tmp_path / "settings.toml"
        path.write_text(
            'data_dir = "/var/lib/cronward"\n'
            "\n"
            "[scheduler]\n"
            'tasks_file = "/srv/scheduler.json"\n'
            "watch_config = false\n"
            "http_timeout = 5.0\n"
            "max_history_records = 200\n"
            "\n"
            "[logging]\n"
            'level = "INFO"\n'
        )

        config = load_config(path)

        assert config.scheduler.tasks_file == Path("/srv/scheduler.json")
        assert config.scheduler.watch_config is False
        assert config.scheduler.http_timeout == 5.0
        assert config.scheduler.max_history_records == 200
        assert config.scheduler.history_dir == Path("/var/lib/cronward/history")
        assert config.logging.level == "INFO"

    def test_unknown_keys_ignored(self, tmp_path: Path):
        path = tmp_path / "settings.toml"
        path.write_text("[scheduler]\nnot_a_setting = 1\n")

        config = load_config(path)

        assert not hasattr(config.scheduler, "not_a_setting")

    def test_invalid_toml_falls_back(self, tmp_path: Path, capsys):
        """A broken settings file prints a warning and keeps defaults."""
        path = tmp_path / "settings.toml"
        path.write_text("[scheduler\nbroken")

        config = load_config(path)

        assert config.scheduler.http_timeout == 30.0
        assert "Failed to load config" in capsys.readouterr().out

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        """Environment variables take precedence over the settings file."""
        path = tmp_path / "settings.toml"
        path.write_text("[scheduler]\nhttp_timeout = 5.0\nwatch_config = true\n")
        monkeypatch.setenv("CRONWARD_HTTP_TIMEOUT", "7.5")
        monkeypatch.setenv("CRONWARD_WATCH_CONFIG", "no")
        monkeypatch.setenv("CRONWARD_TASKS_FILE", str(tmp_path / "tasks.json"))
        monkeypatch.setenv("CRONWARD_LOG_LEVEL", "debug")

        config = load_config(path)

        assert config.scheduler.http_timeout == 7.5
        assert config.scheduler.watch_config is False
        assert config.scheduler.tasks_file == tmp_path / "tasks.json"
        assert config.logging.level == "DEBUG"

    def test_env_config_dir_locates_settings(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        """CRONWARD_CONFIG_DIR selects both the settings file and the tasks file."""
        (tmp_path / "settings.toml").write_text("[scheduler]\nmax_instances = 3\n")
        monkeypatch.setenv("CRONWARD_CONFIG_DIR", str(tmp_path))

        config = load_config()

        assert config.scheduler.max_instances == 3
        assert config.scheduler.tasks_file == tmp_path / "scheduler.json"

    def test_env_data_dir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CRONWARD_DATA_DIR", str(tmp_path / "data"))

        config = load_config(tmp_path / "missing.toml")

        assert config.scheduler.history_dir == tmp_path / "data" / "history"
        assert config.pid_file == tmp_path / "data" / "cronward.pid"

    def test_invalid_timeout_ignored(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CRONWARD_HTTP_TIMEOUT", "soon")

        config = load_config(tmp_path / "missing.toml")

        assert config.scheduler.http_timeout == 30.0


class TestGlobalConfig:
    """Test the cached global configuration."""

    def test_get_config_is_cached(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CRONWARD_CONFIG_DIR", str(tmp_path))

        assert get_config() is get_config()

    def test_set_config(self, tmp_path: Path):
        config = AppConfig(config_dir=tmp_path)
        set_config(config)

        assert get_config() is config

    def test_clear_config_cache(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CRONWARD_CONFIG_DIR", str(tmp_path))
        first = get_config()

        clear_config_cache()

        assert get_config() is not first


class TestDirectoriesAndExport:
    """Test directory creation and export helpers."""

    def test_ensure_directories(self, tmp_path: Path):
        config = AppConfig(config_dir=tmp_path / "config", data_dir=tmp_path / "data")

        ensure_directories(config)

        assert (tmp_path / "config").is_dir()
        assert (tmp_path / "data" / "history").is_dir()

    def test_config_to_dict(self, tmp_path: Path):
        config = AppConfig(config_dir=tmp_path)

        data = _config_to_dict(config)

        assert data["config_dir"] == str(tmp_path)
        assert data["scheduler"]["tasks_file"] == str(tmp_path / "scheduler.json")
        assert data["logging"]["file"] is None

    def test_export_json(self, tmp_path: Path):
        config = AppConfig(config_dir=tmp_path)

        data = json.loads(export_config_json(config))

        assert data["scheduler"]["max_instances"] == 10

    def test_export_yaml(self, tmp_path: Path):
        config = AppConfig(config_dir=tmp_path)

        data = yaml.safe_load(export_config_yaml(config))

        assert data["scheduler"]["watch_config"] is True
        assert data["scheduler"]["misfire_grace_time"] == 60
