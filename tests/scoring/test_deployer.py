"""Tests for deployer reputation profiles."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from token_scanner.gateway.models import FetchCategory, LaunchedToken
from token_scanner.scoring.deployer import DeployerProfiler, profile_from_history
from token_scanner.storage.repos import DeployerRepository

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
DEPLOYER = "DeP1oyer1111111111111111111111111111111111"


def past_launch(index: int, *, complete: bool, market_cap: float) -> LaunchedToken:
    return LaunchedToken(
        address=f"mint{index}",
        ticker=f"T{index}",
        name=f"Token {index}",
        deployer=DEPLOYER,
        created_at=NOW - timedelta(days=index),
        market_cap_sol=market_cap,
        complete=complete,
    )


@pytest.fixture
def history() -> list[LaunchedToken]:
    """Four past launches, one of which graduated."""
    return [
        past_launch(1, complete=True, market_cap=80.0),
        past_launch(2, complete=False, market_cap=10.0),
        past_launch(3, complete=False, market_cap=5.0),
        past_launch(4, complete=False, market_cap=5.0),
    ]


class TestProfileFromHistory:
    """Tests for profile_from_history."""

    def test_counts_and_value(self, history):
        """Launch counts, success rate and value come from the history."""
        profile = profile_from_history(DEPLOYER, history)

        assert profile.total_launches == 4
        assert profile.successful_launches == 1
        assert profile.success_rate == pytest.approx(0.25)
        assert profile.total_value == pytest.approx(100.0)
        assert profile.last_active_at == NOW - timedelta(days=1)
        assert profile.reputation == pytest.approx(0.25 * 0.4 + 0.4 * 0.3 + 1.0 * 0.3)

    def test_empty_history(self):
        """A first-time deployer starts from zero."""
        profile = profile_from_history(DEPLOYER, [])

        assert profile.total_launches == 0
        assert profile.success_rate == 0.0
        assert profile.last_active_at is None


class TestDeployerProfiler:
    """Tests for DeployerProfiler."""

    @pytest.mark.asyncio
    async def test_lookup_creates_once(self, db, mock_gateway, fetch_ok, history):
        """The first lookup seeds the profile, later lookups read it back."""
        mock_gateway.fetch.side_effect = lambda category, params=None, **_: fetch_ok(category, history)
        profiler = DeployerProfiler(db, mock_gateway)

        created = await profiler.lookup(DEPLOYER)
        again = await profiler.lookup(DEPLOYER)

        assert created is not None
        assert created.total_launches == 4
        assert again == created
        mock_gateway.fetch.assert_awaited_once_with(FetchCategory.USER_TOKENS, {"address": DEPLOYER})

    @pytest.mark.asyncio
    async def test_lookup_with_feed_down(self, db, mock_gateway):
        """An unavailable history still yields an empty profile."""
        profiler = DeployerProfiler(db, mock_gateway)

        profile = await profiler.lookup(DEPLOYER)

        assert profile is not None
        assert profile.total_launches == 0

    @pytest.mark.asyncio
    async def test_empty_address(self, db, mock_gateway):
        """Tokens without a deployer have no profile."""
        assert await DeployerProfiler(db, mock_gateway).lookup("") is None
        mock_gateway.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_record_launch(self, db, mock_gateway):
        """Observed launches increment the count of a known deployer."""
        profiler = DeployerProfiler(db, mock_gateway)
        await profiler.lookup(DEPLOYER)

        await profiler.record_launch(DEPLOYER, at=NOW)

        profile = await profiler.get(DEPLOYER)
        assert profile.total_launches == 1
        assert profile.last_active_at == NOW

    @pytest.mark.asyncio
    async def test_record_launch_unknown(self, db, mock_gateway):
        """Recording for an unknown deployer is a no-op."""
        profiler = DeployerProfiler(db, mock_gateway)

        await profiler.record_launch("nobody", at=NOW)

        async with db.get_async_session() as session:
            assert await DeployerRepository(session).get_by_address("nobody") is None
