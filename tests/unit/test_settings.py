"""Tests for configuration settings."""
import pytest
from pydantic import ValidationError

from stepgraph.config.settings import Settings, get_settings, reset_settings
from stepgraph.dry_run import ExecutorRuntime


class TestSettings:
    """Test Settings configuration."""

    def test_settings_default_values(self, monkeypatch):
        """Test default values are set correctly."""
        monkeypatch.delenv("STEPGRAPH_LOG_LEVEL", raising=False)

        settings = Settings()

        # env is set to 'test' in conftest.py
        assert settings.env in ("development", "test")
        assert settings.log_level == "INFO"
        assert settings.http_default_timeout_ms == 5000
        assert settings.http_max_timeout_ms == 60000
        assert settings.code_timeout_s == 10
        assert settings.code_memory_limit_mb == 128
        assert settings.layout_rankdir == "LR"
        assert settings.layout_nodesep == 80
        assert settings.layout_ranksep == 250
        assert settings.node_width == 220
        assert settings.node_height == 80

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("STEPGRAPH_HTTP_DEFAULT_TIMEOUT_MS", "2500")
        monkeypatch.setenv("STEPGRAPH_LAYOUT_RANKDIR", "TB")

        settings = Settings()

        assert settings.http_default_timeout_ms == 2500
        assert settings.layout_rankdir == "TB"

    def test_log_level_normalised(self, monkeypatch):
        monkeypatch.setenv("STEPGRAPH_LOG_LEVEL", "warning")

        assert Settings().log_level == "WARNING"

    def test_invalid_log_level(self, monkeypatch):
        monkeypatch.setenv("STEPGRAPH_LOG_LEVEL", "LOUD")

        with pytest.raises(ValidationError):
            Settings()

    @pytest.mark.parametrize("name", [
        "STEPGRAPH_HTTP_DEFAULT_TIMEOUT_MS",
        "STEPGRAPH_CODE_TIMEOUT_S",
        "STEPGRAPH_CODE_MEMORY_LIMIT_MB",
    ])
    def test_limits_must_be_positive(self, monkeypatch, name):
        monkeypatch.setenv(name, "0")

        with pytest.raises(ValidationError):
            Settings()

    def test_invalid_rankdir(self, monkeypatch):
        monkeypatch.setenv("STEPGRAPH_LAYOUT_RANKDIR", "RL")

        with pytest.raises(ValidationError):
            Settings()


class TestGetSettings:
    """Test the cached settings instance."""

    def test_cached_until_reset(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("STEPGRAPH_CODE_TIMEOUT_S", "3")

        assert get_settings() is first

        reset_settings()

        assert get_settings() is not first
        assert get_settings().code_timeout_s == 3

    def test_runtime_from_settings(self, monkeypatch):
        monkeypatch.setenv("STEPGRAPH_HTTP_DEFAULT_TIMEOUT_MS", "1000")
        monkeypatch.setenv("STEPGRAPH_HTTP_MAX_TIMEOUT_MS", "2000")
        monkeypatch.setenv("STEPGRAPH_CODE_MEMORY_LIMIT_MB", "64")

        runtime = ExecutorRuntime.from_settings()

        assert runtime.http.timeout_ms == 1000
        assert runtime.http.max_timeout_ms == 2000
        assert runtime.sandbox.memory_limit_mb == 64
