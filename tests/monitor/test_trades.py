"""Tests for significant-trade detection."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from token_scanner.alerter.models import NotificationKind, Severity
from token_scanner.gateway.models import FetchCategory, MarketSnapshot, TradeEvent
from token_scanner.monitor.trades import TradeMonitor

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


def trade(signature: str, sol: float, *, impact: float | None = None, mint: str = "Mint1") -> TradeEvent:
    return TradeEvent(
        signature=signature,
        token_address=mint,
        wallet_address="Wallet1",
        is_buy=True,
        sol_amount=sol,
        token_amount=sol * 1000,
        timestamp=NOW,
        ticker="TEST",
        price_impact_pct=impact,
    )


@pytest.fixture
def feed(mock_gateway, fetch_ok, fetch_failed):
    """Route gateway fetches to per-category values; others fail."""
    values: dict[FetchCategory, object] = {}

    async def fetch(category, params=None, **_):
        if category in values:
            return fetch_ok(category, values[category])
        return fetch_failed(category, [] if category is FetchCategory.TRADE_LIST else None)

    mock_gateway.fetch.side_effect = fetch
    return values


@pytest.fixture
def monitor(mock_gateway, mock_notifier) -> TradeMonitor:
    """Trade monitor with default thresholds."""
    return TradeMonitor(mock_gateway, mock_notifier)


class TestClassification:
    """Tests for get_severity and is_significant."""

    @pytest.mark.parametrize(
        ("sol", "severity"),
        [(3.0, Severity.LOW), (5.0, Severity.MEDIUM), (9.99, Severity.MEDIUM), (10.0, Severity.HIGH)],
    )
    def test_severity_bands(self, monitor, sol, severity):
        """Severity follows the volume bands."""
        assert monitor.get_severity(sol) is severity

    def test_large_trade_significant(self, monitor):
        """Trades at the medium volume are significant on size alone."""
        assert monitor.is_significant(trade("a", 5.0), None)

    def test_price_impact(self, monitor):
        """A high price impact makes a small trade significant."""
        assert monitor.is_significant(trade("a", 3.0, impact=6.0), None)
        assert not monitor.is_significant(trade("a", 3.0, impact=1.0), None)

    def test_liquidity_fraction(self, monitor):
        """A trade that is a large share of the pool is significant."""
        assert monitor.is_significant(trade("a", 3.5), 30.0)
        assert not monitor.is_significant(trade("a", 3.5), 100.0)
        assert not monitor.is_significant(trade("a", 3.5), None)


class TestRunOnce:
    """Tests for run_once."""

    @pytest.mark.asyncio
    async def test_flags_significant_trades(self, monitor, feed, mock_notifier):
        """Small trades are skipped; big and pool-moving ones notify."""
        feed[FetchCategory.TRADE_LIST] = [
            trade("small", 1.0),
            trade("big", 12.0),
            trade("pool-share", 3.5),
        ]
        feed[FetchCategory.SOL_PRICE] = 150.0
        feed[FetchCategory.MARKET_SNAPSHOT] = MarketSnapshot(token_address="Mint1", price_usd=0.01, liquidity_usd=4500.0)

        result = await monitor.run_once()

        assert result.fetched == 3
        assert result.examined == 2
        assert result.significant == 2
        events = [call.args[0] for call in mock_notifier.notify.await_args_list]
        assert {e.severity for e in events} == {Severity.HIGH, Severity.LOW}
        assert all(e.kind is NotificationKind.WHALE_TRADE for e in events)

    @pytest.mark.asyncio
    async def test_signature_seen_once(self, monitor, feed, mock_notifier):
        """The same trade is never reported twice."""
        feed[FetchCategory.TRADE_LIST] = [trade("big", 12.0)]

        await monitor.run_once()
        second = await monitor.run_once()

        assert second.examined == 0
        assert mock_notifier.notify.await_count == 1

    @pytest.mark.asyncio
    async def test_no_liquidity_lookup_for_large_trades(self, monitor, feed, mock_gateway):
        """Trades significant on size skip the SOL price and pool lookups."""
        feed[FetchCategory.TRADE_LIST] = [trade("big", 12.0)]

        await monitor.run_once()

        categories = [call.args[0] for call in mock_gateway.fetch.await_args_list]
        assert categories == [FetchCategory.TRADE_LIST]

    @pytest.mark.asyncio
    async def test_unknown_liquidity_not_significant(self, monitor, feed, mock_notifier):
        """Without a SOL price a mid-size trade is not flagged."""
        feed[FetchCategory.TRADE_LIST] = [trade("mid", 3.5)]

        result = await monitor.run_once()

        assert result.examined == 1
        assert result.significant == 0
        mock_notifier.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_feed_down(self, monitor, feed):
        """An unavailable feed yields an empty result."""
        result = await monitor.run_once()
        assert result.fetched == 0
