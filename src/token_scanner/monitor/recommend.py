"""Ranked token recommendations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from token_scanner.scoring.models import RECOMMENDATION_WEIGHTS, ScoreBreakdown, TokenProfile
from token_scanner.storage.repos import TokenDTO, TokenRepository

if TYPE_CHECKING:
    from token_scanner.monitor.filters import FilterManager, TokenFilters
    from token_scanner.scoring.engine import ScoringEngine
    from token_scanner.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_LIMIT = 10
DEFAULT_MIN_HOLDERS = 10
DEFAULT_LOOKBACK_HOURS = 24.0
DEFAULT_CANDIDATE_POOL = 200
DEFAULT_MAX_CONCURRENCY = 10


@dataclass(frozen=True)
class Recommendation:
    """A candidate token with its recommendation score."""

    token: TokenDTO
    breakdown: ScoreBreakdown

    @property
    def score(self) -> float:
        return self.breakdown.composite


def rank_key(breakdown: ScoreBreakdown) -> tuple[float, float]:
    """Sort key: composite descending, then newest data first."""
    return (-breakdown.composite, -breakdown.as_of.timestamp())


def rank(recommendations: Iterable[Recommendation], limit: int = DEFAULT_LIMIT) -> list[Recommendation]:
    return sorted(recommendations, key=lambda r: rank_key(r.breakdown))[:limit]


class RecommendationEngine:
    """Scores recent tokens and returns the best few.

    Example:
        ```python
        engine = RecommendationEngine(db, scoring_engine, filters=filter_manager)
        for rec in await engine.generate_recommendations(min_market_cap=50):
            print(rec.token.ticker, rec.score)
        ```
    """

    def __init__(
        self,
        db: DatabaseManager,
        engine: ScoringEngine,
        *,
        filters: FilterManager | None = None,
        limit: int = DEFAULT_LIMIT,
        min_holders: int = DEFAULT_MIN_HOLDERS,
        lookback_hours: float = DEFAULT_LOOKBACK_HOURS,
        candidate_pool: int = DEFAULT_CANDIDATE_POOL,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        """Initialize the recommendation engine.

        Args:
            db: Database manager for the candidate pool.
            engine: Scoring engine.
            filters: Optional per-user filter store.
            limit: Maximum recommendations returned.
            min_holders: Minimum holder count for a candidate.
            lookback_hours: Only tokens launched within this window are candidates.
            candidate_pool: Maximum tokens loaded as candidates.
            max_concurrency: Maximum tokens scored at once.
            clock: Source of the current time.
        """
        self._db = db
        self._engine = engine
        self._filters = filters
        self._limit = limit
        self._min_holders = min_holders
        self._lookback = timedelta(hours=lookback_hours)
        self._candidate_pool = candidate_pool
        self._max_concurrency = max_concurrency
        self._clock = clock

    async def candidates(
        self,
        *,
        min_market_cap: float | None = None,
        user_id: str | None = None,
        filters: TokenFilters | None = None,
    ) -> list[TokenDTO]:
        """Recent tokens passing the holder, market-cap and user filters."""
        since = self._clock() - self._lookback
        async with self._db.get_async_session() as session:
            tokens = await TokenRepository(session).list_recent(since=since, limit=self._candidate_pool)

        pool = [t for t in tokens if (t.metrics.get("holder_count") or 0) >= self._min_holders]
        if min_market_cap:
            pool = [t for t in pool if (t.metrics.get("market_cap") or 0.0) >= min_market_cap]

        if filters is None and user_id and self._filters is not None:
            filters = await self._filters.get_filters(user_id)
        if filters is not None and not filters.is_empty:
            pool = [t for t in pool if filters.matches(t)]
        return pool

    async def generate_recommendations(
        self,
        *,
        min_market_cap: float | None = None,
        user_id: str | None = None,
        filters: TokenFilters | None = None,
    ) -> list[Recommendation]:
        """Score the candidate pool and return the ranked top ``limit``."""
        pool = await self.candidates(min_market_cap=min_market_cap, user_id=user_id, filters=filters)
        if not pool:
            return []

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def score(token: TokenDTO) -> ScoreBreakdown:
            async with semaphore:
                return await self._engine.score(TokenProfile.from_dto(token), RECOMMENDATION_WEIGHTS)

        outcomes = await asyncio.gather(*(score(t) for t in pool), return_exceptions=True)
        scored: list[Recommendation] = []
        for token, outcome in zip(pool, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.warning("Recommendation scoring failed for %s: %s", token.address, outcome)
                continue
            scored.append(Recommendation(token=token, breakdown=outcome))

        ranked = rank(scored, self._limit)
        logger.debug("Recommendations: %d candidates, %d scored, %d returned", len(pool), len(scored), len(ranked))
        return ranked
