"""Tests for configuration loading."""

from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from token_scanner.config import (
    DatabaseSettings,
    ProviderSettings,
    ScoringSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)


@pytest.fixture
def env(monkeypatch):
    """Minimal valid environment."""
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://scanner:hunter2@db:5432/scanner")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
    clear_settings_cache()
    yield monkeypatch
    clear_settings_cache()


class TestSettings:
    """Tests for the Settings model."""

    def test_defaults(self, env):
        """Groups fall back to documented defaults."""
        settings = Settings()

        assert settings.providers.pump_max_requests == 30
        assert settings.providers.pump_window_ms == 60_000
        assert settings.cache.price_ttl_seconds == 60
        assert settings.scoring.launch_notable_threshold == 7.0
        assert settings.scoring.strategy_buy_threshold == 0.65
        assert settings.scoring.strategy_sell_threshold == 0.35
        assert settings.portfolio.var_confidence == 0.95
        assert settings.log_level == "INFO"
        assert settings.dry_run is False
        assert not settings.discord.enabled
        assert not settings.telegram.enabled

    def test_env_overrides(self, env):
        """Environment variables override group defaults."""
        env.setenv("PROVIDER_PUMP_MAX_REQUESTS", "5")
        env.setenv("SWEEP_ALERT_INTERVAL_SECONDS", "2.5")
        env.setenv("DRY_RUN", "true")
        env.setenv("LOG_LEVEL", "DEBUG")

        settings = Settings()

        assert settings.providers.pump_max_requests == 5
        assert settings.sweeps.alert_interval_seconds == 2.5
        assert settings.dry_run is True
        assert settings.get_logging_level() == logging.DEBUG

    def test_missing_database_url(self, monkeypatch):
        """DATABASE_URL is required."""
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(ValidationError):
            DatabaseSettings(_env_file=None)

    def test_rejects_unknown_database_scheme(self, monkeypatch):
        """Only PostgreSQL and async SQLite URLs are accepted."""
        monkeypatch.setenv("DATABASE_URL", "mysql://localhost/db")
        with pytest.raises(ValidationError):
            DatabaseSettings(_env_file=None)

    def test_rejects_non_http_provider_url(self, monkeypatch):
        """Provider URLs must be HTTP(S)."""
        monkeypatch.setenv("PROVIDER_PUMP_API_URL", "ftp://example.com")
        with pytest.raises(ValidationError):
            ProviderSettings(_env_file=None)

    def test_provider_url_trailing_slash_stripped(self, monkeypatch):
        """Trailing slashes are removed from provider URLs."""
        monkeypatch.setenv("PROVIDER_DEXSCREENER_API_URL", "https://api.dexscreener.com/")
        assert ProviderSettings(_env_file=None).dexscreener_api_url == "https://api.dexscreener.com"

    def test_quota_bounds(self, monkeypatch):
        """A zero request quota is rejected."""
        monkeypatch.setenv("PROVIDER_PUMP_MAX_REQUESTS", "0")
        with pytest.raises(ValidationError):
            ProviderSettings(_env_file=None)

    def test_strategy_thresholds(self, monkeypatch):
        """Strategy buy and sell thresholds come from the environment."""
        monkeypatch.setenv("SCORING_STRATEGY_BUY_THRESHOLD", "0.8")
        monkeypatch.setenv("SCORING_STRATEGY_SELL_THRESHOLD", "0.2")

        scoring = ScoringSettings(_env_file=None)

        assert scoring.strategy_buy_threshold == 0.8
        assert scoring.strategy_sell_threshold == 0.2

    def test_strategy_thresholds_must_not_cross(self, monkeypatch):
        """A sell threshold at or above the buy threshold is rejected."""
        monkeypatch.setenv("SCORING_STRATEGY_BUY_THRESHOLD", "0.4")
        monkeypatch.setenv("SCORING_STRATEGY_SELL_THRESHOLD", "0.5")
        with pytest.raises(ValidationError):
            ScoringSettings(_env_file=None)

    def test_telegram_needs_token_and_chat(self, env):
        """Telegram is only enabled with both a token and a chat id."""
        env.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
        assert not Settings().telegram.enabled

        env.setenv("TELEGRAM_CHAT_ID", "-100200")
        assert Settings().telegram.enabled


class TestRedactedSummary:
    """Tests for secret redaction."""

    def test_password_redacted(self, env):
        """Database passwords never appear in the summary."""
        summary = Settings().redacted_summary()

        assert "hunter2" not in str(summary)
        assert summary["database_url"] == "postgresql+asyncpg://scanner:***@db:5432/scanner"

    def test_cookie_redacted(self, env):
        """The provider cookie is reported as set, not shown."""
        env.setenv("PROVIDER_PUMP_COOKIE", "session=secret")
        summary = Settings().redacted_summary()

        assert "secret" not in str(summary)
        assert summary["providers"]["pump_cookie"] == "(set)"


class TestGetSettings:
    """Tests for the settings singleton."""

    def test_cached(self, env):
        """get_settings returns the same instance until cleared."""
        first = get_settings()
        assert get_settings() is first

        clear_settings_cache()
        assert get_settings() is not first
