"""Tests for token persistence and refresh."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from token_scanner.errors import NotFoundError
from token_scanner.gateway.models import FetchCategory, MarketSnapshot
from token_scanner.monitor.scanner import TokenScanner, build_metrics, merge_snapshot
from token_scanner.scoring.models import TOKEN_QUALITY_WEIGHTS, ScoreBreakdown
from token_scanner.storage.repos import DeployerProfileDTO


def breakdown(address: str, composite: float) -> ScoreBreakdown:
    return ScoreBreakdown(
        address=address,
        table=TOKEN_QUALITY_WEIGHTS.name,
        composite=composite,
        raw=composite,
        sub_scores={},
    )


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def engine() -> MagicMock:
    """Scoring engine with a fixed quality score."""
    engine = MagicMock()
    engine.score = AsyncMock(side_effect=lambda profile, table: breakdown(profile.address, 0.72))
    return engine


@pytest.fixture
def profiler(sample_launch) -> MagicMock:
    """Deployer profiler that knows the sample deployer as whitelisted."""
    profile = DeployerProfileDTO(
        address=sample_launch.deployer,
        reputation=0.9,
        total_launches=4,
        is_whitelisted=True,
    )
    profiler = MagicMock()
    profiler.get = AsyncMock(return_value=profile)
    profiler.lookup = AsyncMock(return_value=profile)
    profiler.record_launch = AsyncMock()
    return profiler


@pytest.fixture
def scanner(db, mock_gateway, engine, profiler) -> TokenScanner:
    """Scanner over a real database."""
    return TokenScanner(db, mock_gateway, engine, profiler)


# ============================================================================
# Snapshot helper Tests
# ============================================================================


class TestBuildMetrics:
    """Tests for build_metrics and merge_snapshot."""

    def test_metrics(self, sample_launch):
        """Launch figures are copied and market cap is converted to USD."""
        metrics = build_metrics(sample_launch, 150.0)

        assert metrics["liquidity_amount"] == 5.0
        assert metrics["holder_count"] == 50
        assert metrics["market_cap_usd"] == pytest.approx(28.0 * 150.0)

    def test_unknown_values_pessimistic(self, sample_launch):
        """Missing liquidity and holder data never look healthy."""
        launch = replace(sample_launch, liquidity_sol=None, holder_count=None, top_holder_concentration=None)
        metrics = build_metrics(launch, None)

        assert metrics["liquidity_amount"] == 0.0
        assert metrics["holder_count"] == 0
        assert metrics["top_holder_concentration"] == 1.0
        assert metrics["market_cap_usd"] is None

    def test_merge_snapshot(self):
        """Known pair figures override; unknown ones leave the old value."""
        merged = merge_snapshot(
            {"liquidity_usd": 1.0, "price_usd": 2.0},
            MarketSnapshot(token_address="m", price_usd=3.0, liquidity_usd=None),
        )
        assert merged == {"liquidity_usd": 1.0, "price_usd": 3.0}

    def test_merge_without_snapshot(self):
        """No snapshot leaves the metrics unchanged."""
        assert merge_snapshot({"a": 1}, None) == {"a": 1}


# ============================================================================
# TokenScanner Tests
# ============================================================================


class TestScanToken:
    """Tests for scan_token."""

    @pytest.mark.asyncio
    async def test_creates_token(self, scanner, sample_launch, profiler, engine):
        """A new launch is analyzed, scored and stored."""
        token = await scanner.scan_token(sample_launch)

        assert token.id is not None
        assert token.address == sample_launch.address
        assert token.score == pytest.approx(0.72)
        assert token.is_verified is True
        assert token.deployer_snapshot["reputation"] == 0.9
        assert token.metrics["holder_count"] == 50
        profiler.record_launch.assert_awaited_once_with(sample_launch.deployer, at=sample_launch.created_at)
        assert engine.score.await_args.args[1] is TOKEN_QUALITY_WEIGHTS

    @pytest.mark.asyncio
    async def test_existing_token_unchanged(self, scanner, sample_launch, engine):
        """Scanning a stored token returns it without re-scoring."""
        first = await scanner.scan_token(sample_launch)
        second = await scanner.scan_token(sample_launch)

        assert second.id == first.id
        assert engine.score.await_count == 1

    @pytest.mark.asyncio
    async def test_unknown_deployer_not_recorded(self, scanner, sample_launch, profiler):
        """A first-seen deployer gets a profile but no launch increment."""
        profiler.get.return_value = None
        profiler.lookup.return_value = None

        token = await scanner.scan_token(sample_launch)

        profiler.record_launch.assert_not_awaited()
        assert token.is_verified is False
        assert token.deployer_snapshot == {"is_whitelisted": False, "reputation": 0.0, "total_launches": 0}


class TestGetAndRefresh:
    """Tests for get_token_info and refresh_token."""

    @pytest.mark.asyncio
    async def test_get_missing(self, scanner):
        """Unknown tokens raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await scanner.get_token_info("missing")

    @pytest.mark.asyncio
    async def test_get_stored(self, scanner, sample_launch):
        """Stored tokens are returned."""
        await scanner.scan_token(sample_launch)
        token = await scanner.get_token_info(sample_launch.address)
        assert token.ticker == "TEST"

    @pytest.mark.asyncio
    async def test_refresh(self, scanner, sample_launch, mock_gateway, engine, fetch_ok):
        """Refreshing merges the DEX snapshot and stores the new score."""
        await scanner.scan_token(sample_launch)
        snapshot = MarketSnapshot(token_address=sample_launch.address, price_usd=0.01, liquidity_usd=12_000.0)
        mock_gateway.fetch.side_effect = None
        mock_gateway.fetch.return_value = fetch_ok(FetchCategory.MARKET_SNAPSHOT, snapshot)
        engine.score.side_effect = lambda profile, table: breakdown(profile.address, 0.4)

        token = await scanner.refresh_token(sample_launch.address)

        assert token.score == pytest.approx(0.4)
        assert token.metrics["liquidity_usd"] == 12_000.0
        assert token.metrics["holder_count"] == 50
        assert token.updated_at is not None

    @pytest.mark.asyncio
    async def test_refresh_missing(self, scanner):
        """Refreshing an unknown token raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await scanner.refresh_token("missing")
