"""Multi-factor weighted scoring shared by every use case.

This module provides the ScoringEngine, which fetches only the signals a
weight table needs, computes each sub-score (falling back to its neutral
default when inputs are unavailable), and combines them.

Scoring Formula:
    raw = sum(sub_score[name] * weight[name] for name in table)
    composite = raw * table.scale

Sub-scores are not clamped before weighting, so the composite can exceed
the table's nominal range when an analyzer does.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections import defaultdict
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING

from token_scanner.gateway.models import FetchCategory
from token_scanner.scoring.analyzers import (
    ReplyActivitySentiment,
    RsiMacdTechnical,
    SentimentAnalyzer,
    TechnicalAnalyzer,
)
from token_scanner.scoring.models import (
    NEUTRAL_DEFAULTS,
    ScoreBreakdown,
    SubScore,
    TokenProfile,
    TokenSignals,
    WeightTable,
)

if TYPE_CHECKING:
    from token_scanner.gateway.gateway import DataGateway
    from token_scanner.gateway.models import Candle, ListingStatus, TradeEvent
    from token_scanner.storage.repos import DeployerProfileDTO

logger = logging.getLogger(__name__)

DeployerLookup = Callable[[str], Awaitable["DeployerProfileDTO | None"]]

# Constants
LIQUIDITY_SATURATION_SOL = 10.0
HOLDER_SATURATION = 100
LAUNCH_SATURATION = 10
DEPLOYER_VALUE_SATURATION_SOL = 100.0
SANE_SUPPLY = 1_000_000_000
HEALTHY_POOL_DEPTH = 0.1
BURN_SATURATION = 0.5
WHALE_TOP_N = 5
DEFAULT_HISTORY_TIMEFRAME_MINUTES = 5
DEFAULT_HISTORY_LIMIT = 200

_HISTORY_SCORES = frozenset({SubScore.PRICE_VS_ATH, SubScore.MOMENTUM, SubScore.TECHNICAL})


def growth_rate(values: Sequence[float]) -> float | None:
    """Relative change from the first to the last value.

    Fewer than two points is zero growth; a non-positive base is undefined.
    """
    if len(values) < 2:
        return 0.0
    oldest, newest = values[0], values[-1]
    if oldest <= 0:
        return None
    return (newest - oldest) / oldest


def deployer_score(profile: DeployerProfileDTO | None) -> float | None:
    if profile is None:
        return None
    if profile.is_whitelisted:
        return 1.0
    success_rate = profile.successful_launches / max(1, profile.total_launches)
    experience = min(profile.total_launches / LAUNCH_SATURATION, 1.0)
    value = min(profile.total_value / DEPLOYER_VALUE_SATURATION_SOL, 1.0)
    return success_rate * 0.4 + experience * 0.3 + value * 0.3


def liquidity_score(token: TokenProfile) -> float | None:
    if not token.liquidity_sol:
        return 0.0
    lock_bonus = 0.2 if token.liquidity_locked else 0.0
    return min(token.liquidity_sol / LIQUIDITY_SATURATION_SOL, 1.0) * 0.8 + lock_bonus


def holder_score(token: TokenProfile) -> float | None:
    if not token.holder_count:
        return 0.0
    # Unknown concentration is treated as fully concentrated.
    concentration = token.top_holder_concentration
    if concentration is None:
        concentration = 1.0
    return min(token.holder_count / HOLDER_SATURATION, 1.0) * (1.0 - concentration)


def tokenomics_score(token: TokenProfile) -> float | None:
    """Mean of supply sanity and pool depth; None when neither is known."""
    parts: list[float] = []
    if token.total_supply is not None and token.total_supply > 0:
        if token.total_supply <= SANE_SUPPLY:
            parts.append(1.0)
        else:
            parts.append(max(0.0, 1.0 - math.log10(token.total_supply / SANE_SUPPLY) / 3.0))
    if token.liquidity_sol and token.market_cap_sol and token.market_cap_sol > 0:
        depth = token.liquidity_sol / token.market_cap_sol
        parts.append(min(depth / HEALTHY_POOL_DEPTH, 1.0))
    if not parts:
        return None
    return sum(parts) / len(parts)


def whale_score(trades: list[TradeEvent] | None) -> float | None:
    """One minus the share of buy volume held by the top buyers."""
    if trades is None:
        return None
    volume_by_wallet: dict[str, float] = defaultdict(float)
    for trade in trades:
        if trade.is_buy:
            volume_by_wallet[trade.wallet_address] += trade.sol_amount
    total = sum(volume_by_wallet.values())
    if total <= 0:
        return None
    top = sorted(volume_by_wallet.values(), reverse=True)[:WHALE_TOP_N]
    return 1.0 - sum(top) / total


def burn_rate_score(token: TokenProfile) -> float | None:
    if token.burned_fraction is None:
        return None
    return min(max(token.burned_fraction, 0.0) / BURN_SATURATION, 1.0)


def listing_paid_score(listing: ListingStatus | None) -> float | None:
    if listing is None:
        return None
    return 1.0 if listing.paid else 0.0


def price_vs_ath_score(history: list[Candle] | None) -> float | None:
    if not history:
        return None
    ath = max(candle.high for candle in history)
    if ath <= 0:
        return None
    return min(max(history[-1].close / ath, 0.0), 1.0)


def momentum_score(history: list[Candle] | None) -> float | None:
    if not history:
        return None
    growth = growth_rate([candle.volume for candle in history])
    if growth is None:
        return None
    return 0.5 + max(-1.0, min(growth, 1.0)) / 2.0


class ScoringEngine:
    """Computes weighted composite scores for tokens.

    Example:
        ```python
        engine = ScoringEngine(gateway, deployer_lookup=profiler.lookup)
        breakdown = await engine.score(TokenProfile.from_launch(token), LAUNCH_WEIGHTS)
        if breakdown.composite >= 7.0:
            ...
        ```
    """

    def __init__(
        self,
        gateway: DataGateway,
        *,
        deployer_lookup: DeployerLookup | None = None,
        sentiment: SentimentAnalyzer | None = None,
        technical: TechnicalAnalyzer | None = None,
        history_timeframe_minutes: int = DEFAULT_HISTORY_TIMEFRAME_MINUTES,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        """Initialize the scoring engine.

        Args:
            gateway: Data gateway for provider lookups.
            deployer_lookup: Async callable returning a deployer profile or None.
            sentiment: Reply-thread analyzer (default: ReplyActivitySentiment).
            technical: Close-series analyzer (default: RsiMacdTechnical).
            history_timeframe_minutes: Candle size for price history.
            history_limit: Number of candles requested.
        """
        self._gateway = gateway
        self._deployer_lookup = deployer_lookup
        self._sentiment = sentiment or ReplyActivitySentiment()
        self._technical = technical or RsiMacdTechnical()
        self._history_timeframe = history_timeframe_minutes
        self._history_limit = history_limit

    async def collect_signals(self, token: TokenProfile, table: WeightTable) -> TokenSignals:
        """Fetch, concurrently, only the inputs the table's sub-scores use."""
        required = table.required
        signals = TokenSignals()
        address = {"address": token.address}

        async def load_deployer() -> None:
            if self._deployer_lookup is not None and token.deployer:
                signals.deployer = await self._deployer_lookup(token.deployer)

        async def load_replies() -> None:
            result = await self._gateway.fetch(FetchCategory.REPLY_THREAD, address)
            signals.replies = result.value if result.ok else None

        async def load_trades() -> None:
            result = await self._gateway.fetch(FetchCategory.TOKEN_TRADES, address)
            signals.trades = result.value if result.ok else None

        async def load_history() -> None:
            result = await self._gateway.fetch(
                FetchCategory.PRICE_HISTORY,
                {
                    "address": token.address,
                    "timeframe": self._history_timeframe,
                    "limit": self._history_limit,
                    "offset": 0,
                },
            )
            signals.history = result.value if result.ok else None

        async def load_listing() -> None:
            result = await self._gateway.fetch(FetchCategory.LISTING_STATUS, address)
            signals.listing = result.value if result.ok else None

        loaders: list[Callable[[], Awaitable[None]]] = []
        if SubScore.DEPLOYER in required:
            loaders.append(load_deployer)
        if SubScore.SOCIAL in required:
            loaders.append(load_replies)
        if SubScore.WHALE in required:
            loaders.append(load_trades)
        if required & _HISTORY_SCORES:
            loaders.append(load_history)
        if SubScore.LISTING_PAID in required:
            loaders.append(load_listing)

        results = await asyncio.gather(*(load() for load in loaders), return_exceptions=True)
        for load, result in zip(loaders, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(
                    "Signal %s failed for %s, using default: %s",
                    load.__name__.removeprefix("load_"),
                    token.address,
                    result,
                )
        return signals

    def compute_sub_score(
        self,
        name: SubScore,
        token: TokenProfile,
        signals: TokenSignals,
    ) -> float | None:
        """Compute one sub-score; None means use the neutral default."""
        if name is SubScore.DEPLOYER:
            return deployer_score(signals.deployer)
        if name is SubScore.LIQUIDITY:
            return liquidity_score(token)
        if name is SubScore.HOLDERS:
            return holder_score(token)
        if name is SubScore.TOKENOMICS:
            return tokenomics_score(token)
        if name is SubScore.SOCIAL:
            return None if signals.replies is None else self._sentiment.score(signals.replies)
        if name is SubScore.WHALE:
            return whale_score(signals.trades)
        if name is SubScore.BURN_RATE:
            return burn_rate_score(token)
        if name is SubScore.LISTING_PAID:
            return listing_paid_score(signals.listing)
        if name is SubScore.PRICE_VS_ATH:
            return price_vs_ath_score(signals.history)
        if name is SubScore.MOMENTUM:
            return momentum_score(signals.history)
        if name is SubScore.TECHNICAL:
            if not signals.history:
                return None
            return self._technical.score([candle.close for candle in signals.history])
        raise ValueError(f"Unknown sub-score: {name}")

    def combine(self, token: TokenProfile, signals: TokenSignals, table: WeightTable) -> ScoreBreakdown:
        """Combine already-fetched signals into a breakdown (no I/O)."""
        sub_scores: dict[SubScore, float] = {}
        defaults_used: set[SubScore] = set()
        for name in table.weights:
            try:
                value = self.compute_sub_score(name, token, signals)
            except Exception as e:
                logger.warning("Sub-score %s failed for %s: %s", name.value, token.address, e)
                value = None
            if value is None or not math.isfinite(value):
                value = NEUTRAL_DEFAULTS[name]
                defaults_used.add(name)
            sub_scores[name] = value

        raw = table.combine(sub_scores)
        return ScoreBreakdown(
            address=token.address,
            table=table.name,
            composite=raw * table.scale,
            raw=raw,
            sub_scores=sub_scores,
            defaults_used=frozenset(defaults_used),
            as_of=token.observed_at,
        )

    async def score(self, token: TokenProfile, table: WeightTable) -> ScoreBreakdown:
        """Fetch the table's signals for a token and score it."""
        signals = await self.collect_signals(token, table)
        breakdown = self.combine(token, signals, table)
        logger.debug(
            "Scored %s with %s: composite=%.3f defaults=%s",
            token.address,
            table.name,
            breakdown.composite,
            sorted(d.value for d in breakdown.defaults_used),
        )
        return breakdown
