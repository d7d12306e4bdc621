"""Wallet tracking and trade-history analysis."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter, deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError

from token_scanner.errors import NotFoundError, ValidationFailure
from token_scanner.gateway.models import FetchCategory
from token_scanner.storage.repos import TrackedWalletDTO, TrackedWalletRepository

if TYPE_CHECKING:
    from token_scanner.gateway.gateway import DataGateway
    from token_scanner.gateway.models import TradeEvent
    from token_scanner.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_MAX_CONCURRENCY = 5
PREFERRED_TOKEN_COUNT = 3

# Average trade size (SOL) bands for the risk level
HIGH_RISK_AVG_SOL = 10.0
MEDIUM_RISK_AVG_SOL = 3.0


@dataclass(frozen=True)
class WalletAnalysis:
    """Summary of a wallet's trading history."""

    address: str
    total_trades: int = 0
    closed_trades: int = 0
    successful_trades: int = 0
    win_rate: float = 0.0
    avg_hold_seconds: float = 0.0
    realized_pnl: float = 0.0
    preferred_tokens: tuple[str, ...] = ()
    risk_level: str = "low"
    last_trade_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "total_trades": self.total_trades,
            "closed_trades": self.closed_trades,
            "successful_trades": self.successful_trades,
            "win_rate": self.win_rate,
            "avg_hold_seconds": self.avg_hold_seconds,
            "realized_pnl": self.realized_pnl,
            "preferred_tokens": list(self.preferred_tokens),
            "risk_level": self.risk_level,
            "last_trade_at": self.last_trade_at.isoformat() if self.last_trade_at else None,
        }


@dataclass
class _Lot:
    amount: float
    price: float
    opened_at: datetime


@dataclass
class WalletSweepResult:
    """Outcome of one ``refresh_tracked_wallets`` pass."""

    total: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


def risk_level(trades: Sequence[TradeEvent]) -> str:
    if not trades:
        return "low"
    average = sum(t.sol_amount for t in trades) / len(trades)
    if average >= HIGH_RISK_AVG_SOL:
        return "high"
    if average >= MEDIUM_RISK_AVG_SOL:
        return "medium"
    return "low"


def analyze_trades(address: str, trades: Sequence[TradeEvent]) -> WalletAnalysis:
    """Match sells against earlier buys first-in first-out, per token.

    Each sell that matches at least one lot is a closed trade; it is
    successful when its matched PnL is positive. Sells with nothing to match
    (tokens bought before the history starts) are ignored.
    """
    if not trades:
        return WalletAnalysis(address=address)

    ordered = sorted(trades, key=lambda t: t.timestamp)
    lots: dict[str, deque[_Lot]] = {}
    closed = 0
    wins = 0
    realized = 0.0
    hold_seconds: list[float] = []

    for trade in ordered:
        if trade.token_amount <= 0:
            continue
        price = trade.sol_amount / trade.token_amount
        queue = lots.setdefault(trade.token_address, deque())
        if trade.is_buy:
            queue.append(_Lot(trade.token_amount, price, trade.timestamp))
            continue

        remaining = trade.token_amount
        pnl = 0.0
        matched = False
        while remaining > 0 and queue:
            lot = queue[0]
            take = min(lot.amount, remaining)
            pnl += take * (price - lot.price)
            hold_seconds.append((trade.timestamp - lot.opened_at).total_seconds())
            lot.amount -= take
            remaining -= take
            matched = True
            if lot.amount <= 0:
                queue.popleft()
        if matched:
            closed += 1
            realized += pnl
            if pnl > 0:
                wins += 1

    counts = Counter(t.ticker or t.token_address for t in ordered)
    return WalletAnalysis(
        address=address,
        total_trades=len(ordered),
        closed_trades=closed,
        successful_trades=wins,
        win_rate=wins / closed if closed else 0.0,
        avg_hold_seconds=sum(hold_seconds) / len(hold_seconds) if hold_seconds else 0.0,
        realized_pnl=realized,
        preferred_tokens=tuple(name for name, _ in counts.most_common(PREFERRED_TOKEN_COUNT)),
        risk_level=risk_level(ordered),
        last_trade_at=ordered[-1].timestamp,
    )


class WalletTracker:
    """Per-user wallet watch lists and trade-history analysis.

    Example:
        ```python
        tracker = WalletTracker(db, gateway)
        await tracker.track_wallet("user-1", wallet)
        analysis = await tracker.analyze_wallet(wallet)
        print(analysis.win_rate, analysis.risk_level)
        ```
    """

    def __init__(
        self,
        db: DatabaseManager,
        gateway: DataGateway,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self._db = db
        self._gateway = gateway
        self._max_concurrency = max_concurrency

    async def track_wallet(self, user_id: str, address: str) -> TrackedWalletDTO:
        """Start tracking a wallet. Tracking twice returns the existing row."""
        if not user_id or not address:
            raise ValidationFailure("user_id and address are required")
        async with self._db.get_async_session() as session:
            repo = TrackedWalletRepository(session)
            existing = await repo.get(user_id, address)
            if existing is not None:
                return existing
        try:
            async with self._db.get_async_session() as session:
                created = await TrackedWalletRepository(session).insert(user_id, address)
        except IntegrityError:
            async with self._db.get_async_session() as session:
                stored = await TrackedWalletRepository(session).get(user_id, address)
            if stored is None:
                raise
            return stored
        logger.info("User %s tracking wallet %s", user_id, address[:10] + "...")
        return created

    async def untrack_wallet(self, user_id: str, address: str) -> None:
        """Stop tracking a wallet.

        Raises:
            NotFoundError: If the user was not tracking it.
        """
        async with self._db.get_async_session() as session:
            deleted = await TrackedWalletRepository(session).delete(user_id, address)
        if not deleted:
            raise NotFoundError(f"Wallet {address} is not tracked by user {user_id}")
        logger.info("User %s stopped tracking wallet %s", user_id, address[:10] + "...")

    async def list_wallets(self, user_id: str) -> list[TrackedWalletDTO]:
        async with self._db.get_async_session() as session:
            return await TrackedWalletRepository(session).list_for_user(user_id)

    async def analyze_wallet(self, address: str) -> WalletAnalysis:
        """Analyze a wallet's recent trades. An unavailable feed yields an empty analysis."""
        result = await self._gateway.fetch(FetchCategory.WALLET_TRADES, {"address": address})
        if not result.ok:
            logger.debug("Trades unavailable for wallet %s", address)
        return analyze_trades(address, result.value)

    async def refresh_tracked_wallets(self) -> WalletSweepResult:
        """Analyze every tracked address and store the results on its rows."""
        async with self._db.get_async_session() as session:
            addresses = await TrackedWalletRepository(session).list_distinct_addresses()

        result = WalletSweepResult(total=len(addresses))
        if not addresses:
            return result

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def refresh(address: str) -> None:
            async with semaphore:
                analysis = await self.analyze_wallet(address)
                async with self._db.get_async_session() as session:
                    await TrackedWalletRepository(session).update_stats(
                        address,
                        last_trade_at=analysis.last_trade_at,
                        realized_pnl=analysis.realized_pnl,
                        total_trades=analysis.total_trades,
                        successful_trades=analysis.successful_trades,
                        at=datetime.now(UTC),
                    )

        outcomes = await asyncio.gather(*(refresh(a) for a in addresses), return_exceptions=True)
        for address, outcome in zip(addresses, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                result.failed += 1
                result.errors.append(f"{address}: {outcome}")
                logger.warning("Wallet refresh failed for %s: %s", address, outcome)
            else:
                result.updated += 1

        logger.info(
            "Wallet sweep: total=%d updated=%d failed=%d",
            result.total,
            result.updated,
            result.failed,
        )
        return result
