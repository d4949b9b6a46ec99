"""Unit tests for gemstock configuration management.

Tests AppConfig loading from environment variables, validation, and defaults.
"""

from __future__ import annotations

import pytest

from gemstock.config import AppConfig, get_config, reset_config


class TestAppConfig:
    """Test AppConfig creation and validation."""

    def test_from_env_requires_database_url(self, monkeypatch):
        """Test DATABASE_URL is required."""
        monkeypatch.delenv("DATABASE_URL", raising=False)

        with pytest.raises(KeyError) as exc_info:
            AppConfig.from_env()

        assert "DATABASE_URL" in str(exc_info.value)

    def test_from_env_with_minimal_config(self, monkeypatch):
        """Test loading with only required env vars."""
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        config = AppConfig.from_env()

        assert config.db.url == "sqlite+aiosqlite:///./test.db"
        assert config.log_level == "INFO"
        assert config.inventory.conflict_retry_attempts == 3

    def test_log_settings(self, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        monkeypatch.delenv("LOG_FILE", raising=False)
        config = AppConfig.from_env()
        assert config.log_format == "json"
        assert config.log_file is None

        monkeypatch.setenv("LOG_FORMAT", "text")
        monkeypatch.setenv("LOG_FILE", "logs/gemstock.log")
        config = AppConfig.from_env()
        assert config.log_format == "text"
        assert config.log_file == "logs/gemstock.log"

    def test_highlighting_defaults(self):
        config = AppConfig.from_env()

        assert config.highlighting.neutral_color == "#ffffff"
        assert config.highlighting.date_color == "#3b82f6"
        assert config.highlighting.date_range_days == 30

    def test_note_writer_defaults(self):
        """Defaults match the casting workflow's retry budget."""
        notes = AppConfig.from_env().notes

        assert notes.status == "Casting Order"
        assert notes.max_attempts == 3
        assert notes.backoff_initial == 1.0
        assert notes.backoff_max == 5.0
        assert notes.readback_attempts == 5
        assert notes.readback_settle_seconds == 0.5
        assert notes.readback_max_wait == 2.0
        assert notes.final_check_attempts == 3

    def test_note_writer_overrides(self, monkeypatch):
        monkeypatch.setenv("STATUS_NOTE_STATUS", "Shipped")
        monkeypatch.setenv("STATUS_NOTE_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("STATUS_NOTE_READBACK_SETTLE", "0")

        notes = AppConfig.from_env().notes

        assert notes.status == "Shipped"
        assert notes.max_attempts == 5
        assert notes.readback_settle_seconds == 0.0

    def test_pool_and_retry_overrides(self, monkeypatch):
        monkeypatch.setenv("DB_POOL_SIZE", "4")
        monkeypatch.setenv("DB_ECHO", "true")
        monkeypatch.setenv("STOCK_CONFLICT_RETRIES", "7")

        config = AppConfig.from_env()

        assert config.db.pool_size == 4
        assert config.db.echo is True
        assert config.inventory.conflict_retry_attempts == 7


class TestGetConfig:
    def test_singleton_until_reset(self, monkeypatch):
        first = get_config()
        assert get_config() is first

        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        assert get_config().log_level == first.log_level

        reset_config()
        assert get_config().log_level == "WARNING"
