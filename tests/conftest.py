"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from token_scanner.errors import ProviderUnavailable
from token_scanner.gateway.gateway import CATEGORY_SPECS
from token_scanner.gateway.models import FetchCategory, FetchFailed, FetchOk, LaunchedToken
from token_scanner.storage.database import DatabaseManager

SAMPLE_MINT = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr"
SAMPLE_DEPLOYER = "DeP1oyer1111111111111111111111111111111111"


@pytest.fixture
def sample_mint() -> str:
    """Sample token mint address for testing."""
    return SAMPLE_MINT


@pytest.fixture
def sample_launch() -> LaunchedToken:
    """A freshly launched token as decoded from the launchpad feed."""
    return LaunchedToken(
        address=SAMPLE_MINT,
        ticker="TEST",
        name="Test Token",
        deployer=SAMPLE_DEPLOYER,
        created_at=datetime(2026, 10, 19, 12, 0, tzinfo=UTC),
        price_sol=0.000000028,
        total_supply=1_000_000_000,
        market_cap_sol=28.0,
        liquidity_sol=5.0,
        liquidity_locked=True,
        holder_count=50,
        top_holder_concentration=0.2,
        reply_count=12,
        description="a test launch",
    )


@pytest.fixture
async def db(tmp_path):
    """A DatabaseManager on a throwaway SQLite file with the schema created."""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'scanner.db'}")
    await manager.init_schema_async()
    yield manager
    await manager.dispose_async()


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Create a mock Redis client."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.setex = AsyncMock()
    redis.delete = AsyncMock(return_value=1)
    redis.scan = AsyncMock(return_value=(0, []))
    redis.hset = AsyncMock(return_value=1)
    redis.hgetall = AsyncMock(return_value={})
    return redis


@pytest.fixture
def redis_store(mock_redis: AsyncMock) -> dict[str, str]:
    """Back the mock Redis get/setex/delete with a plain dict."""
    store: dict[str, str] = {}

    async def get(key):
        return store.get(key)

    async def setex(key, ttl, value):
        store[key] = value
        return True

    async def delete(*keys):
        return sum(1 for key in keys if store.pop(key, None) is not None)

    mock_redis.get.side_effect = get
    mock_redis.setex.side_effect = setex
    mock_redis.delete.side_effect = delete
    return store


def _default(category: FetchCategory):
    return CATEGORY_SPECS[category].default_factory()


def _ok(category: FetchCategory, value, key: str = "k") -> FetchOk:
    return FetchOk(category=category, key=key, value=value)


def _failed(category: FetchCategory, value=None, key: str = "k") -> FetchFailed:
    return FetchFailed(
        category=category,
        key=key,
        value=value,
        error=ProviderUnavailable("provider down", provider="test"),
    )


@pytest.fixture
def mock_gateway() -> MagicMock:
    """Create a mock DataGateway whose lookups all miss."""
    gateway = MagicMock()
    gateway.fetch = AsyncMock(side_effect=lambda category, params=None, **_: _failed(category, _default(category)))
    gateway.spot_price = AsyncMock(return_value=None)
    gateway.price_history = AsyncMock(return_value=[])
    gateway.close = AsyncMock()
    return gateway


@pytest.fixture
def mock_notifier() -> AsyncMock:
    """Create a mock notification sink."""
    notifier = AsyncMock()
    notifier.notify = AsyncMock()
    return notifier


@pytest.fixture
def fetch_ok():
    """Builder for successful fetch results."""
    return _ok


@pytest.fixture
def fetch_failed():
    """Builder for failed fetch results carrying a default value."""
    return _failed
