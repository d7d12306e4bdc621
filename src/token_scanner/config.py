"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Token Scanner application, loading and validating environment
variables at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL (or SQLite for local runs) connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="redis://localhost:6379",
        alias="REDIS_URL",
        description="Redis connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate Redis URL format."""
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class ProviderSettings(BaseSettings):
    """External market-data provider endpoints and request quotas."""

    model_config = SettingsConfigDict(env_prefix="PROVIDER_", extra="ignore")

    pump_api_url: str = Field(
        default="https://frontend-api.pump.fun",
        alias="PROVIDER_PUMP_API_URL",
        description="Launchpad frontend API (tokens, trades, replies, candles)",
    )
    pump_max_requests: int = Field(
        default=30,
        alias="PROVIDER_PUMP_MAX_REQUESTS",
        ge=1,
        le=10_000,
        description="Maximum launchpad requests per quota window",
    )
    pump_window_ms: int = Field(
        default=60_000,
        alias="PROVIDER_PUMP_WINDOW_MS",
        ge=100,
        le=3_600_000,
        description="Launchpad quota window (milliseconds)",
    )
    pump_cookie: SecretStr | None = Field(
        default=None,
        alias="PROVIDER_PUMP_COOKIE",
        description="Optional session cookie sent to the launchpad API",
    )
    dexscreener_api_url: str = Field(
        default="https://api.dexscreener.com",
        alias="PROVIDER_DEXSCREENER_API_URL",
        description="DEX aggregator API (pairs, listing orders)",
    )
    dexscreener_max_requests: int = Field(
        default=20,
        alias="PROVIDER_DEXSCREENER_MAX_REQUESTS",
        ge=1,
        le=10_000,
        description="Maximum DEX aggregator requests per quota window",
    )
    dexscreener_window_ms: int = Field(
        default=60_000,
        alias="PROVIDER_DEXSCREENER_WINDOW_MS",
        ge=100,
        le=3_600_000,
        description="DEX aggregator quota window (milliseconds)",
    )
    chain_id: str = Field(
        default="solana",
        alias="PROVIDER_CHAIN_ID",
        description="Chain identifier used in DEX aggregator paths",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        alias="PROVIDER_REQUEST_TIMEOUT_SECONDS",
        ge=0.5,
        le=120.0,
        description="HTTP request timeout",
    )
    user_agent: str = Field(
        default="Token-Scanner-Bot/1.0",
        alias="PROVIDER_USER_AGENT",
        description="User-Agent header sent to providers",
    )

    @field_validator("pump_api_url", "dexscreener_api_url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Provider URL must be an HTTP(S) endpoint")
        return v.rstrip("/")


class CacheSettings(BaseSettings):
    """Gateway cache TTLs per data category."""

    model_config = SettingsConfigDict(env_prefix="CACHE_", extra="ignore")

    key_prefix: str = Field(
        default="scanner:cache:",
        alias="CACHE_KEY_PREFIX",
        description="Redis key prefix for cached provider payloads",
    )
    tokens_ttl_seconds: int = Field(default=60, alias="CACHE_TOKENS_TTL_SECONDS", ge=1, le=86_400)
    trades_ttl_seconds: int = Field(default=30, alias="CACHE_TRADES_TTL_SECONDS", ge=1, le=86_400)
    replies_ttl_seconds: int = Field(default=300, alias="CACHE_REPLIES_TTL_SECONDS", ge=1, le=86_400)
    price_ttl_seconds: int = Field(default=60, alias="CACHE_PRICE_TTL_SECONDS", ge=1, le=86_400)
    listing_ttl_seconds: int = Field(default=300, alias="CACHE_LISTING_TTL_SECONDS", ge=1, le=86_400)
    history_ttl_seconds: int = Field(default=300, alias="CACHE_HISTORY_TTL_SECONDS", ge=1, le=86_400)


class SweepSettings(BaseSettings):
    """Periodic sweep cadences."""

    model_config = SettingsConfigDict(env_prefix="SWEEP_", extra="ignore")

    launch_interval_seconds: float = Field(
        default=5.0,
        alias="SWEEP_LAUNCH_INTERVAL_SECONDS",
        ge=0.5,
        le=3600,
        description="How often to poll for new launches",
    )
    alert_interval_seconds: float = Field(
        default=30.0,
        alias="SWEEP_ALERT_INTERVAL_SECONDS",
        ge=1,
        le=3600,
        description="How often to evaluate active price alerts",
    )
    alert_expiry_interval_seconds: float = Field(
        default=3600.0,
        alias="SWEEP_ALERT_EXPIRY_INTERVAL_SECONDS",
        ge=10,
        le=86_400,
        description="How often to deactivate stale alerts",
    )
    alert_max_age_hours: float = Field(
        default=168.0,
        alias="SWEEP_ALERT_MAX_AGE_HOURS",
        ge=1,
        le=24 * 365,
        description="Maximum lifetime of an untriggered alert",
    )
    portfolio_interval_seconds: float = Field(
        default=60.0,
        alias="SWEEP_PORTFOLIO_INTERVAL_SECONDS",
        ge=5,
        le=86_400,
        description="How often to recompute all portfolios",
    )
    trade_interval_seconds: float = Field(
        default=5.0,
        alias="SWEEP_TRADE_INTERVAL_SECONDS",
        ge=0.5,
        le=3600,
        description="How often to scan the trade feed",
    )
    takeover_interval_seconds: float = Field(
        default=10.0,
        alias="SWEEP_TAKEOVER_INTERVAL_SECONDS",
        ge=1,
        le=3600,
        description="How often to scan replies for community takeovers",
    )
    wallet_interval_seconds: float = Field(
        default=300.0,
        alias="SWEEP_WALLET_INTERVAL_SECONDS",
        ge=10,
        le=86_400,
        description="How often to refresh tracked wallet statistics",
    )
    max_concurrency: int = Field(
        default=10,
        alias="SWEEP_MAX_CONCURRENCY",
        ge=1,
        le=500,
        description="Maximum concurrent per-item tasks inside one sweep",
    )


class ScoringSettings(BaseSettings):
    """Use-case specific scoring thresholds."""

    model_config = SettingsConfigDict(env_prefix="SCORING_", extra="ignore")

    launch_notable_threshold: float = Field(
        default=7.0,
        alias="SCORING_LAUNCH_NOTABLE_THRESHOLD",
        ge=0.0,
        le=10.0,
        description="Launch composite (0-10 scale) at or above which a launch is notified",
    )
    launch_dedup_window_seconds: int = Field(
        default=24 * 3600,
        alias="SCORING_LAUNCH_DEDUP_WINDOW_SECONDS",
        ge=60,
        le=30 * 86_400,
        description="Window during which a launch is notified at most once",
    )
    recommendation_limit: int = Field(
        default=10,
        alias="SCORING_RECOMMENDATION_LIMIT",
        ge=1,
        le=100,
        description="Number of ranked recommendations to return",
    )
    recommendation_min_holders: int = Field(
        default=10,
        alias="SCORING_RECOMMENDATION_MIN_HOLDERS",
        ge=0,
        le=1_000_000,
        description="Minimum holder count for a recommendation candidate",
    )
    recommendation_lookback_hours: float = Field(
        default=24.0,
        alias="SCORING_RECOMMENDATION_LOOKBACK_HOURS",
        ge=1,
        le=24 * 30,
        description="How far back launches are considered as candidates",
    )
    alert_epsilon: float = Field(
        default=1e-4,
        alias="SCORING_ALERT_EPSILON",
        gt=0.0,
        le=1.0,
        description="Tolerance for the 'equals' alert condition",
    )
    strategy_buy_threshold: float = Field(
        default=0.65,
        alias="SCORING_STRATEGY_BUY_THRESHOLD",
        ge=0.0,
        le=1.0,
        description="Strategy score at or above which the suggested action is buy",
    )
    strategy_sell_threshold: float = Field(
        default=0.35,
        alias="SCORING_STRATEGY_SELL_THRESHOLD",
        ge=0.0,
        le=1.0,
        description="Strategy score at or below which the suggested action is sell",
    )

    @model_validator(mode="after")
    def validate_strategy_thresholds(self) -> ScoringSettings:
        if self.strategy_sell_threshold >= self.strategy_buy_threshold:
            raise ValueError("SCORING_STRATEGY_SELL_THRESHOLD must be below SCORING_STRATEGY_BUY_THRESHOLD")
        return self


class TradeSettings(BaseSettings):
    """Trade-feed significance thresholds (SOL)."""

    model_config = SettingsConfigDict(env_prefix="TRADE_", extra="ignore")

    volume_low: float = Field(default=3.0, alias="TRADE_VOLUME_LOW", ge=0.0)
    volume_medium: float = Field(default=5.0, alias="TRADE_VOLUME_MEDIUM", ge=0.0)
    volume_high: float = Field(default=10.0, alias="TRADE_VOLUME_HIGH", ge=0.0)
    price_impact_pct: float = Field(
        default=5.0,
        alias="TRADE_PRICE_IMPACT_PCT",
        ge=0.0,
        le=100.0,
        description="Price impact (percent) that makes a trade significant",
    )
    liquidity_fraction: float = Field(
        default=0.1,
        alias="TRADE_LIQUIDITY_FRACTION",
        ge=0.0,
        le=1.0,
        description="Fraction of pool liquidity that makes a trade significant",
    )


class PortfolioSettings(BaseSettings):
    """Portfolio valuation and risk estimator settings."""

    model_config = SettingsConfigDict(env_prefix="PORTFOLIO_", extra="ignore")

    risk_free_rate: float = Field(
        default=0.02,
        alias="PORTFOLIO_RISK_FREE_RATE",
        ge=0.0,
        le=1.0,
        description="Annual risk-free rate used for the Sharpe ratio",
    )
    var_confidence: float = Field(
        default=0.95,
        alias="PORTFOLIO_VAR_CONFIDENCE",
        gt=0.5,
        lt=1.0,
        description="Value-at-risk confidence level",
    )
    diversification_cap: int = Field(
        default=10,
        alias="PORTFOLIO_DIVERSIFICATION_CAP",
        ge=1,
        le=1000,
        description="Distinct holdings at which the diversification score saturates",
    )
    history_timeframe_minutes: int = Field(
        default=60,
        alias="PORTFOLIO_HISTORY_TIMEFRAME_MINUTES",
        ge=1,
        le=1440,
        description="Candle timeframe used for return series",
    )
    history_limit: int = Field(
        default=168,
        alias="PORTFOLIO_HISTORY_LIMIT",
        ge=2,
        le=5000,
        description="Number of candles fetched per holding",
    )
    benchmark_address: str | None = Field(
        default=None,
        alias="PORTFOLIO_BENCHMARK_ADDRESS",
        description="Token whose returns act as the market benchmark for beta",
    )


class DiscordSettings(BaseSettings):
    """Discord notification settings."""

    model_config = SettingsConfigDict(env_prefix="DISCORD_", extra="ignore")

    webhook_url: SecretStr | None = Field(
        default=None,
        alias="DISCORD_WEBHOOK_URL",
        description="Discord webhook URL for alerts",
    )

    @property
    def enabled(self) -> bool:
        """Check if Discord notifications are enabled."""
        return self.webhook_url is not None


class TelegramSettings(BaseSettings):
    """Telegram notification settings."""

    model_config = SettingsConfigDict(env_prefix="TELEGRAM_", extra="ignore")

    bot_token: SecretStr | None = Field(
        default=None,
        alias="TELEGRAM_BOT_TOKEN",
        description="Telegram bot token",
    )
    chat_id: str | None = Field(
        default=None,
        alias="TELEGRAM_CHAT_ID",
        description="Telegram chat ID for alerts",
    )

    @property
    def enabled(self) -> bool:
        """Check if Telegram notifications are enabled."""
        return self.bot_token is not None and self.chat_id is not None


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from token_scanner.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    providers: ProviderSettings = Field(
        default_factory=lambda: ProviderSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    cache: CacheSettings = Field(
        default_factory=lambda: CacheSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    sweeps: SweepSettings = Field(
        default_factory=lambda: SweepSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    scoring: ScoringSettings = Field(
        default_factory=lambda: ScoringSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    trades: TradeSettings = Field(
        default_factory=lambda: TradeSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    portfolio: PortfolioSettings = Field(
        default_factory=lambda: PortfolioSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    discord: DiscordSettings = Field(
        default_factory=lambda: DiscordSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    telegram: TelegramSettings = Field(
        default_factory=lambda: TelegramSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Run without sending actual notifications",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "redis_url": self._redact_url(self.redis.url),
            "providers": {
                "pump_api_url": self.providers.pump_api_url,
                "pump_quota": f"{self.providers.pump_max_requests}/{self.providers.pump_window_ms}ms",
                "pump_cookie": "(set)" if self.providers.pump_cookie else "(not set)",
                "dexscreener_api_url": self.providers.dexscreener_api_url,
                "dexscreener_quota": (
                    f"{self.providers.dexscreener_max_requests}/{self.providers.dexscreener_window_ms}ms"
                ),
            },
            "sweeps": {
                "launch_interval_seconds": str(self.sweeps.launch_interval_seconds),
                "alert_interval_seconds": str(self.sweeps.alert_interval_seconds),
                "portfolio_interval_seconds": str(self.sweeps.portfolio_interval_seconds),
                "trade_interval_seconds": str(self.sweeps.trade_interval_seconds),
            },
            "scoring": {
                "launch_notable_threshold": str(self.scoring.launch_notable_threshold),
                "recommendation_limit": str(self.scoring.recommendation_limit),
            },
            "portfolio": {
                "risk_free_rate": str(self.portfolio.risk_free_rate),
                "var_confidence": str(self.portfolio.var_confidence),
                "benchmark_address": self.portfolio.benchmark_address or "(not set)",
            },
            "discord_enabled": str(self.discord.enabled),
            "telegram_enabled": str(self.telegram.enabled),
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
