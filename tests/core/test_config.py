"""Tests for library configuration and logging setup."""

import logging

import pytest

from luna_llm.core import LunaConfig, configure_logging

ENV_VARS = (
    "LUNA_POOL_STRATEGY",
    "LUNA_MAX_STEPS",
    "LUNA_STREAM_BUFFER_SIZE",
    "LUNA_LOG_LEVEL",
    "LUNA_DEFAULT_RETRIES",
    "LUNA_DEFAULT_CONCURRENCY",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Remove luna-llm variables and point dotenv at an empty file."""
    for name in ENV_VARS:
        # set first so values loaded from .env are undone too
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    env_file = tmp_path / ".env"
    env_file.write_text("")
    return env_file


class TestLunaConfig:
    """Test suite for LunaConfig."""

    def test_defaults(self, clean_env):
        """Test defaults with no environment set."""
        config = LunaConfig.from_env(str(clean_env))

        assert config == LunaConfig()
        assert config.pool_strategy == "round-robin"
        assert config.max_steps == 5
        assert config.stream_buffer_size == 256

    def test_from_env(self, clean_env, monkeypatch):
        """Test that environment variables override defaults."""
        monkeypatch.setenv("LUNA_POOL_STRATEGY", "least-concurrent")
        monkeypatch.setenv("LUNA_MAX_STEPS", "8")
        monkeypatch.setenv("LUNA_LOG_LEVEL", "debug")
        monkeypatch.setenv("LUNA_DEFAULT_RETRIES", "0")

        config = LunaConfig.from_env(str(clean_env))

        assert config.pool_strategy == "least-concurrent"
        assert config.max_steps == 8
        assert config.log_level == "DEBUG"
        assert config.default_retries == 0

    def test_dotenv_file(self, clean_env, monkeypatch):
        """Test that a .env file is read and process variables win."""
        clean_env.write_text("LUNA_MAX_STEPS=3\nLUNA_DEFAULT_CONCURRENCY=4\n")
        monkeypatch.setenv("LUNA_DEFAULT_CONCURRENCY", "2")

        config = LunaConfig.from_env(str(clean_env))

        assert config.max_steps == 3
        assert config.default_concurrency == 2

    def test_non_integer(self, clean_env, monkeypatch):
        """Test that a malformed integer names the variable."""
        monkeypatch.setenv("LUNA_MAX_STEPS", "many")

        with pytest.raises(ValueError, match="LUNA_MAX_STEPS"):
            LunaConfig.from_env(str(clean_env))

    @pytest.mark.parametrize("kwargs", [
        {"pool_strategy": "alphabetical"},
        {"max_steps": 0},
        {"stream_buffer_size": 0},
        {"default_retries": -1},
        {"default_concurrency": 0},
        {"log_level": "LOUD"},
    ])
    def test_invalid_values(self, kwargs):
        """Test that invalid settings are rejected at construction."""
        with pytest.raises(ValueError):
            LunaConfig(**kwargs)


class TestConfigureLogging:
    """Test suite for configure_logging."""

    def test_idempotent(self):
        """Test that repeated calls add a single handler and update the level."""
        logger = configure_logging("info")
        handlers = len(logger.handlers)

        again = configure_logging("debug")

        assert again is logger
        assert logger.name == "luna_llm"
        assert len(logger.handlers) == handlers
        assert logger.level == logging.DEBUG
