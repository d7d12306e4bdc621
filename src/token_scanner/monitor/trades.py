"""Significant-trade detection on the launchpad trade feed."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from token_scanner.alerter.formatter import format_sol
from token_scanner.alerter.models import NotificationEvent, NotificationKind, Severity
from token_scanner.gateway.models import FetchCategory

if TYPE_CHECKING:
    from token_scanner.alerter.models import Notifier
    from token_scanner.gateway.gateway import DataGateway
    from token_scanner.gateway.models import TradeEvent

logger = logging.getLogger(__name__)

# Default configuration (SOL)
DEFAULT_VOLUME_LOW = 3.0
DEFAULT_VOLUME_MEDIUM = 5.0
DEFAULT_VOLUME_HIGH = 10.0
DEFAULT_PRICE_IMPACT_PCT = 5.0
DEFAULT_LIQUIDITY_FRACTION = 0.1
DEFAULT_MAX_SEEN = 5_000
DEFAULT_MAX_CONCURRENCY = 10


@dataclass
class TradeSweepResult:
    """Outcome of one ``run_once`` pass."""

    fetched: int = 0
    examined: int = 0
    significant: int = 0
    notified: int = 0
    failed: int = 0


class TradeMonitor:
    """Flags large or market-moving trades.

    A trade at or above the LOW volume is examined. It is significant when
    any of these hold:
    1. Its size is at least the MEDIUM volume
    2. Its reported price impact is at least ``price_impact_pct``
    3. Its size is at least ``liquidity_fraction`` of the pool's liquidity

    Example:
        ```python
        monitor = TradeMonitor(gateway, dispatcher)
        result = await monitor.run_once()
        ```
    """

    def __init__(
        self,
        gateway: DataGateway,
        notifier: Notifier,
        *,
        volume_low: float = DEFAULT_VOLUME_LOW,
        volume_medium: float = DEFAULT_VOLUME_MEDIUM,
        volume_high: float = DEFAULT_VOLUME_HIGH,
        price_impact_pct: float = DEFAULT_PRICE_IMPACT_PCT,
        liquidity_fraction: float = DEFAULT_LIQUIDITY_FRACTION,
        max_seen: int = DEFAULT_MAX_SEEN,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self._gateway = gateway
        self._notifier = notifier
        self._volume_low = volume_low
        self._volume_medium = volume_medium
        self._volume_high = volume_high
        self._price_impact_pct = price_impact_pct
        self._liquidity_fraction = liquidity_fraction
        self._max_seen = max_seen
        self._max_concurrency = max_concurrency
        self._seen: OrderedDict[str, None] = OrderedDict()

    def get_severity(self, sol_amount: float) -> Severity:
        if sol_amount >= self._volume_high:
            return Severity.HIGH
        if sol_amount >= self._volume_medium:
            return Severity.MEDIUM
        return Severity.LOW

    def is_significant(self, trade: TradeEvent, liquidity_sol: float | None) -> bool:
        if trade.sol_amount >= self._volume_medium:
            return True
        if trade.price_impact_pct is not None and trade.price_impact_pct >= self._price_impact_pct:
            return True
        return bool(liquidity_sol) and trade.sol_amount >= liquidity_sol * self._liquidity_fraction

    def _needs_liquidity(self, trade: TradeEvent) -> bool:
        return trade.sol_amount < self._volume_medium and (
            trade.price_impact_pct is None or trade.price_impact_pct < self._price_impact_pct
        )

    def _mark_seen(self, signature: str) -> bool:
        """Record a signature. Returns False if it was already seen."""
        if signature in self._seen:
            return False
        self._seen[signature] = None
        while len(self._seen) > self._max_seen:
            self._seen.popitem(last=False)
        return True

    async def _liquidity_sol(self, token_address: str, sol_price_usd: float | None) -> float | None:
        if not sol_price_usd:
            return None
        snapshot = (
            await self._gateway.fetch(FetchCategory.MARKET_SNAPSHOT, {"address": token_address})
        ).value
        if snapshot is None or snapshot.liquidity_usd is None:
            return None
        return snapshot.liquidity_usd / sol_price_usd

    async def run_once(self) -> TradeSweepResult:
        """Scan the latest trades once."""
        result = TradeSweepResult()
        fetched = await self._gateway.fetch(FetchCategory.TRADE_LIST)
        if not fetched.ok:
            logger.warning("Trade feed unavailable")
            return result

        trades: list[TradeEvent] = fetched.value
        result.fetched = len(trades)
        candidates = [
            t for t in trades if t.sol_amount >= self._volume_low and t.signature and self._mark_seen(t.signature)
        ]
        result.examined = len(candidates)
        if not candidates:
            return result

        sol_price: float | None = None
        if any(self._needs_liquidity(t) for t in candidates):
            sol_price = (await self._gateway.fetch(FetchCategory.SOL_PRICE)).value

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def examine(trade: TradeEvent) -> bool:
            async with semaphore:
                liquidity = (
                    await self._liquidity_sol(trade.token_address, sol_price)
                    if self._needs_liquidity(trade)
                    else None
                )
                if not self.is_significant(trade, liquidity):
                    return False
                await self._notifier.notify(self._build_event(trade))
                return True

        outcomes = await asyncio.gather(*(examine(t) for t in candidates), return_exceptions=True)
        for trade, outcome in zip(candidates, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                result.failed += 1
                logger.warning("Trade %s check failed: %s", trade.signature, outcome)
            elif outcome:
                result.significant += 1
                result.notified += 1

        if result.significant or result.failed:
            logger.info(
                "Trade sweep: fetched=%d examined=%d significant=%d failed=%d",
                result.fetched,
                result.examined,
                result.significant,
                result.failed,
            )
        return result

    def _build_event(self, trade: TradeEvent) -> NotificationEvent:
        side = "Buy" if trade.is_buy else "Sell"
        fields: list[tuple[str, str]] = [
            ("Side", side),
            ("Amount", format_sol(trade.sol_amount)),
        ]
        if trade.price_impact_pct is not None:
            fields.append(("Price Impact", f"{trade.price_impact_pct:.2f}%"))
        return NotificationEvent(
            kind=NotificationKind.WHALE_TRADE,
            title=f"Significant {side}: {trade.ticker or trade.token_address[:8]}",
            message=f"{format_sol(trade.sol_amount)} {side.lower()} detected",
            fields=tuple(fields),
            severity=self.get_severity(trade.sol_amount),
            token_address=trade.token_address,
            wallet_address=trade.wallet_address,
            timestamp=trade.timestamp,
        )
