"""Portfolio valuation and risk aggregation.

Prices and histories are fetched once per distinct token, concurrently,
then the performance and risk blocks are computed locally and written back
in a single UPDATE.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import numpy as np

from token_scanner.portfolio import metrics
from token_scanner.portfolio.models import (
    Holding,
    PerformanceBlock,
    PortfolioMetrics,
    PortfolioView,
    RiskBlock,
)
from token_scanner.storage.repos import PortfolioDTO, PortfolioRepository

if TYPE_CHECKING:
    from token_scanner.config import PortfolioSettings
    from token_scanner.gateway.gateway import DataGateway
    from token_scanner.gateway.models import Candle
    from token_scanner.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_RISK_FREE_RATE = 0.02
DEFAULT_VAR_CONFIDENCE = 0.95
DEFAULT_DIVERSIFICATION_CAP = 10
DEFAULT_HISTORY_TIMEFRAME_MINUTES = 60
DEFAULT_HISTORY_LIMIT = 168
DEFAULT_MAX_CONCURRENCY = 10


@dataclass
class PortfolioSweepResult:
    """Outcome of one ``update_all_portfolios`` pass."""

    total: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0


def _price_day_ago(history: Sequence[Candle], now: datetime) -> tuple[float, float] | None:
    """Return (latest close, close at or before 24h ago) from a history."""
    if not history:
        return None
    ordered = sorted(history, key=lambda c: c.timestamp)
    cutoff = now - timedelta(hours=24)
    older = [c for c in ordered if c.timestamp <= cutoff]
    if not older or older[-1].close <= 0:
        return None
    return ordered[-1].close, older[-1].close


class PortfolioAggregator:
    """Values portfolios and estimates their risk.

    Example:
        ```python
        aggregator = PortfolioAggregator(db, gateway)
        view = await aggregator.add_holding("user-1", Holding(mint, 10, 1.0))
        print(view.performance.total_pnl)
        ```
    """

    def __init__(
        self,
        db: DatabaseManager,
        gateway: DataGateway,
        *,
        risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
        var_confidence: float = DEFAULT_VAR_CONFIDENCE,
        diversification_cap: int = DEFAULT_DIVERSIFICATION_CAP,
        history_timeframe_minutes: int = DEFAULT_HISTORY_TIMEFRAME_MINUTES,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        benchmark_address: str | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        """Initialize the aggregator.

        Args:
            db: Database manager for portfolio persistence.
            gateway: Data gateway for spot prices and price history.
            risk_free_rate: Annual risk-free rate for the Sharpe ratio.
            var_confidence: Confidence level for historical VaR.
            diversification_cap: Distinct holdings at which diversification saturates.
            history_timeframe_minutes: Candle timeframe for return series.
            history_limit: Number of candles per holding.
            benchmark_address: Token used as the market for beta. When unset
                an equal-weighted basket of the holdings is used.
            max_concurrency: Maximum portfolios recomputed at once in a sweep.
        """
        self._db = db
        self._gateway = gateway
        self._risk_free_rate = risk_free_rate
        self._var_confidence = var_confidence
        self._diversification_cap = diversification_cap
        self._timeframe = history_timeframe_minutes
        self._history_limit = history_limit
        self._benchmark = benchmark_address
        self._max_concurrency = max_concurrency

    @classmethod
    def from_settings(
        cls,
        db: DatabaseManager,
        gateway: DataGateway,
        settings: PortfolioSettings,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> PortfolioAggregator:
        return cls(
            db,
            gateway,
            risk_free_rate=settings.risk_free_rate,
            var_confidence=settings.var_confidence,
            diversification_cap=settings.diversification_cap,
            history_timeframe_minutes=settings.history_timeframe_minutes,
            history_limit=settings.history_limit,
            benchmark_address=settings.benchmark_address,
            max_concurrency=max_concurrency,
        )

    async def recompute(
        self,
        holdings: Sequence[Holding],
        *,
        now: datetime | None = None,
    ) -> PortfolioMetrics:
        """Value a list of holdings and estimate its risk.

        Args:
            holdings: Holdings in portfolio order.
            now: Reference time for daily PnL. Defaults to the current time.

        Returns:
            Performance and risk blocks. Nothing is persisted.
        """
        now = now or datetime.now(UTC)
        if not holdings:
            return PortfolioMetrics(performance=PerformanceBlock(), risk=RiskBlock())

        addresses = list(dict.fromkeys(h.token_address for h in holdings))
        history_addresses = list(addresses)
        if self._benchmark and self._benchmark not in history_addresses:
            history_addresses.append(self._benchmark)

        prices_list, histories_list = await asyncio.gather(
            asyncio.gather(*(self._gateway.spot_price(a) for a in addresses)),
            asyncio.gather(
                *(
                    self._gateway.price_history(
                        a, timeframe_minutes=self._timeframe, limit=self._history_limit
                    )
                    for a in history_addresses
                )
            ),
        )
        prices = dict(zip(addresses, prices_list, strict=True))
        histories = dict(zip(history_addresses, histories_list, strict=True))

        performance = self._performance(holdings, prices, histories, now)
        risk = self._risk(holdings, histories, performance.total_value)
        return PortfolioMetrics(performance=performance, risk=risk)

    def _performance(
        self,
        holdings: Sequence[Holding],
        prices: dict[str, float | None],
        histories: dict[str, list[Candle]],
        now: datetime,
    ) -> PerformanceBlock:
        total_value = 0.0
        total_cost = 0.0
        total_pnl = 0.0
        daily_pnl = 0.0
        returns: dict[str, float] = {}
        unpriced: list[str] = []
        best: tuple[str, float] | None = None
        worst: tuple[str, float] | None = None

        for holding in holdings:
            price = prices.get(holding.token_address)
            total_cost += holding.cost
            if price is None or price <= 0:
                total_value += holding.cost
                if holding.token_address not in unpriced:
                    unpriced.append(holding.token_address)
                continue

            total_value += holding.amount * price
            total_pnl += holding.amount * (price - holding.buy_price)
            ret = (price - holding.buy_price) / holding.buy_price
            returns.setdefault(holding.token_address, ret)
            if best is None or ret > best[1]:
                best = (holding.token_address, ret)
            if worst is None or ret < worst[1]:
                worst = (holding.token_address, ret)

            # History closes may be quoted in another unit; only their ratio is used.
            day = _price_day_ago(histories.get(holding.token_address) or [], now)
            if day is not None:
                latest_close, day_ago_close = day
                if latest_close > 0:
                    price_day_ago = price * day_ago_close / latest_close
                    daily_pnl += holding.amount * (price - price_day_ago)

        return PerformanceBlock(
            total_value=total_value,
            total_cost=total_cost,
            total_pnl=total_pnl,
            daily_pnl=daily_pnl,
            best_performer=best[0] if best else None,
            worst_performer=worst[0] if worst else None,
            returns=returns,
            unpriced=tuple(unpriced),
        )

    def _risk(
        self,
        holdings: Sequence[Holding],
        histories: dict[str, list[Candle]],
        total_value: float,
    ) -> RiskBlock:
        amounts: dict[str, float] = {}
        for holding in holdings:
            amounts[holding.token_address] = amounts.get(holding.token_address, 0.0) + holding.amount

        closes = {
            address: [c.close for c in sorted(histories.get(address) or [], key=lambda c: c.timestamp)]
            for address in amounts
        }
        values = metrics.aligned_value_series(closes, amounts)
        portfolio_returns = metrics.simple_returns(values)

        if self._benchmark:
            benchmark_candles = sorted(histories.get(self._benchmark) or [], key=lambda c: c.timestamp)
            benchmark_returns = metrics.simple_returns([c.close for c in benchmark_candles])
        else:
            benchmark_returns = metrics.equal_weight_returns(closes)

        beta = metrics.beta(portfolio_returns, benchmark_returns)
        sharpe = metrics.sharpe_ratio(
            portfolio_returns,
            risk_free_rate=self._risk_free_rate,
            periods=metrics.periods_per_year(self._timeframe),
        )
        var = metrics.historical_var(portfolio_returns, confidence=self._var_confidence, value=total_value)

        return RiskBlock(
            beta=beta if beta is not None and np.isfinite(beta) else 1.0,
            sharpe=sharpe if sharpe is not None and np.isfinite(sharpe) else 0.0,
            diversification=metrics.diversification_score(len(amounts), self._diversification_cap),
            value_at_risk=var if var is not None and np.isfinite(var) else 0.0,
        )

    async def update_portfolio(self, user_id: str, holdings: Sequence[Holding]) -> PortfolioView:
        """Recompute and persist a user's portfolio, creating it if needed."""
        computed = await self.recompute(holdings)
        now = datetime.now(UTC)
        async with self._db.get_async_session() as session:
            repo = PortfolioRepository(session)
            if await repo.get_by_user(user_id) is None:
                await repo.create(user_id)
            await repo.replace(
                user_id,
                holdings=[h.to_dict() for h in holdings],
                performance=computed.performance.to_dict(),
                risk=computed.risk.to_dict(),
                at=now,
            )
        logger.debug(
            "Portfolio updated: user=%s holdings=%d value=%.4f",
            user_id,
            len(holdings),
            computed.performance.total_value,
        )
        return PortfolioView(
            user_id=user_id,
            holdings=tuple(holdings),
            performance=computed.performance,
            risk=computed.risk,
            last_updated=now,
        )

    async def add_holding(self, user_id: str, holding: Holding) -> PortfolioView:
        """Append a holding to a user's portfolio and recompute it."""
        current = await self.get_portfolio(user_id)
        holdings = list(current.holdings) if current else []
        holdings.append(holding)
        return await self.update_portfolio(user_id, holdings)

    async def get_portfolio(self, user_id: str) -> PortfolioView | None:
        async with self._db.get_async_session() as session:
            dto = await PortfolioRepository(session).get_by_user(user_id)
        return self._to_view(dto) if dto else None

    @staticmethod
    def _to_view(dto: PortfolioDTO) -> PortfolioView:
        return PortfolioView(
            user_id=dto.user_id,
            holdings=tuple(Holding.from_dict(h) for h in dto.holdings),
            performance=PerformanceBlock.from_dict(dto.performance),
            risk=RiskBlock.from_dict(dto.risk),
            last_updated=dto.last_updated,
        )

    async def update_all_portfolios(self) -> PortfolioSweepResult:
        """Recompute every stored portfolio with bounded concurrency."""
        async with self._db.get_async_session() as session:
            user_ids = await PortfolioRepository(session).list_user_ids()

        result = PortfolioSweepResult(total=len(user_ids))
        if not user_ids:
            return result

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def refresh(user_id: str) -> bool:
            async with semaphore:
                return await self.refresh_portfolio(user_id)

        outcomes = await asyncio.gather(*(refresh(u) for u in user_ids), return_exceptions=True)
        for user_id, outcome in zip(user_ids, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                result.failed += 1
                logger.warning("Portfolio update failed for %s: %s", user_id, outcome)
            elif outcome:
                result.updated += 1
            else:
                result.skipped += 1

        logger.info(
            "Portfolio sweep: total=%d updated=%d skipped=%d failed=%d",
            result.total,
            result.updated,
            result.skipped,
            result.failed,
        )
        return result

    async def refresh_portfolio(self, user_id: str) -> bool:
        """Recompute the derived blocks of a stored portfolio.

        Holdings are never written here. Returns False when the portfolio
        is gone or its holdings changed while prices were being fetched;
        the user's own update already stored fresh blocks in that case.
        """
        async with self._db.get_async_session() as session:
            dto = await PortfolioRepository(session).get_by_user(user_id)
        if dto is None:
            return False

        holdings = [Holding.from_dict(h) for h in dto.holdings]
        computed = await self.recompute(holdings)
        async with self._db.get_async_session() as session:
            written = await PortfolioRepository(session).replace_blocks(
                user_id,
                performance=computed.performance.to_dict(),
                risk=computed.risk.to_dict(),
                at=datetime.now(UTC),
                expected_version=dto.holdings_version,
            )
        if not written:
            logger.debug("Portfolio %s changed during refresh; keeping the newer write", user_id)
        return written
