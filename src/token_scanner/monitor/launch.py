"""New-launch detection.

Each pass fetches the launchpad's latest tokens, keeps the ones that are
unseen and created after the cursor, persists and scores them, and notifies
notable launches once per dedup window.

The cursor advances to the time the pass started, not to the newest
``created_at`` in the batch. A token whose timestamp lags behind the
provider's listing can therefore be skipped.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from token_scanner.alerter.formatter import format_sol
from token_scanner.alerter.models import NotificationEvent, NotificationKind, Severity
from token_scanner.gateway.models import FetchCategory
from token_scanner.scoring.models import LAUNCH_WEIGHTS, ScoreBreakdown, SubScore, TokenProfile

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from token_scanner.alerter.models import Notifier
    from token_scanner.gateway.gateway import DataGateway
    from token_scanner.gateway.models import LaunchedToken
    from token_scanner.monitor.scanner import TokenScanner
    from token_scanner.scoring.engine import ScoringEngine
    from token_scanner.storage.repos import TokenDTO

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_NOTABLE_THRESHOLD = 7.0
DEFAULT_DEDUP_WINDOW_SECONDS = 24 * 3600
DEFAULT_KEY_PREFIX = "token_scanner:launch:"
DEFAULT_MAX_CONCURRENCY = 10
DEFAULT_MAX_SEEN = 10_000


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SeenTokenSet:
    """Addresses already handled plus the creation-time cursor.

    The address set is bounded; the oldest entries are evicted first; the
    cursor keeps evicted tokens from coming back.
    """

    def __init__(self, *, max_size: int = DEFAULT_MAX_SEEN, cursor: datetime | None = None) -> None:
        self._max_size = max_size
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._cursor = cursor or _utcnow()

    @property
    def cursor(self) -> datetime:
        return self._cursor

    def is_new(self, token: LaunchedToken) -> bool:
        return token.address not in self._seen and token.created_at > self._cursor

    def add(self, address: str) -> None:
        self._seen[address] = None
        self._seen.move_to_end(address)
        while len(self._seen) > self._max_size:
            self._seen.popitem(last=False)

    def advance(self, to: datetime) -> None:
        """Move the cursor forward; it never moves back."""
        if to > self._cursor:
            self._cursor = to

    def reset(self, cursor: datetime | None = None) -> None:
        self._seen.clear()
        self._cursor = cursor or _utcnow()

    def __contains__(self, address: object) -> bool:
        return address in self._seen

    def __len__(self) -> int:
        return len(self._seen)


@dataclass
class LaunchAnalysis:
    """A scored new launch."""

    launch: LaunchedToken
    token: TokenDTO
    breakdown: ScoreBreakdown
    notable: bool


@dataclass
class LaunchSweepResult:
    """Outcome of one ``run_once`` pass."""

    fetched: int = 0
    new: int = 0
    analyzed: int = 0
    notified: int = 0
    failed: int = 0


class LaunchMonitor:
    """Polls for launches and notifies the notable ones.

    Example:
        ```python
        monitor = LaunchMonitor(gateway, scanner, engine, dispatcher, redis, seen=SeenTokenSet())
        result = await monitor.run_once()
        print(f"{result.new} new, {result.notified} notified")
        ```
    """

    def __init__(
        self,
        gateway: DataGateway,
        scanner: TokenScanner,
        engine: ScoringEngine,
        notifier: Notifier,
        redis: Redis,
        *,
        seen: SeenTokenSet,
        notable_threshold: float = DEFAULT_NOTABLE_THRESHOLD,
        dedup_window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the launch monitor.

        Args:
            gateway: Data gateway for the launch feed.
            scanner: Token scanner that persists new launches.
            engine: Scoring engine for the launch score.
            notifier: Notification sink.
            redis: Redis client for notification dedup.
            seen: Process-local seen-token set and cursor.
            notable_threshold: Launch composite (0-10) that triggers a notification.
            dedup_window_seconds: Window during which a launch notifies at most once.
            key_prefix: Redis key prefix for dedup keys.
            max_concurrency: Maximum launches analyzed at once.
            clock: Source of the current time.
        """
        self._gateway = gateway
        self._scanner = scanner
        self._engine = engine
        self._notifier = notifier
        self._redis = redis
        self._seen = seen
        self._threshold = notable_threshold
        self._dedup_window = dedup_window_seconds
        self._key_prefix = key_prefix
        self._max_concurrency = max_concurrency
        self._clock = clock

    @property
    def seen(self) -> SeenTokenSet:
        return self._seen

    def filter_new_tokens(self, tokens: Iterable[LaunchedToken]) -> list[LaunchedToken]:
        """Unseen tokens created after the cursor, first occurrence only."""
        new: list[LaunchedToken] = []
        batch: set[str] = set()
        for token in tokens:
            if token.address in batch or not self._seen.is_new(token):
                continue
            batch.add(token.address)
            new.append(token)
        return new

    async def analyze_launch(self, launch: LaunchedToken) -> LaunchAnalysis:
        """Persist a launch and score it with the launch weights."""
        token = await self._scanner.scan_token(launch)
        breakdown = await self._engine.score(TokenProfile.from_launch(launch), LAUNCH_WEIGHTS)
        return LaunchAnalysis(
            launch=launch,
            token=token,
            breakdown=breakdown,
            notable=breakdown.composite >= self._threshold,
        )

    async def run_once(self) -> LaunchSweepResult:
        """Run one detection pass."""
        started = self._clock()
        result = LaunchSweepResult()

        fetched = await self._gateway.fetch(FetchCategory.TOKEN_LIST)
        if not fetched.ok:
            logger.warning("Launch feed unavailable, cursor kept at %s", self._seen.cursor.isoformat())
            return result

        result.fetched = len(fetched.value)
        new_tokens = self.filter_new_tokens(fetched.value)
        for token in new_tokens:
            self._seen.add(token.address)
        self._seen.advance(started)
        result.new = len(new_tokens)
        if not new_tokens:
            return result

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def handle(launch: LaunchedToken) -> bool:
            async with semaphore:
                analysis = await self.analyze_launch(launch)
                if not analysis.notable:
                    return False
                if await self._is_duplicate(launch.address):
                    logger.debug("Launch %s already notified", launch.address)
                    return False
                await self._notifier.notify(self._build_event(analysis))
                return True

        outcomes = await asyncio.gather(*(handle(t) for t in new_tokens), return_exceptions=True)
        for launch, outcome in zip(new_tokens, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                result.failed += 1
                logger.warning("Launch analysis failed for %s: %s", launch.address, outcome)
                continue
            result.analyzed += 1
            if outcome:
                result.notified += 1

        logger.info(
            "Launch sweep: fetched=%d new=%d analyzed=%d notified=%d failed=%d",
            result.fetched,
            result.new,
            result.analyzed,
            result.notified,
            result.failed,
        )
        return result

    async def _is_duplicate(self, address: str) -> bool:
        key = f"{self._key_prefix}{address}"
        was_set = await self._redis.set(
            key,
            self._clock().isoformat(),
            nx=True,
            ex=self._dedup_window,
        )
        return not was_set

    def _build_event(self, analysis: LaunchAnalysis) -> NotificationEvent:
        launch = analysis.launch
        breakdown = analysis.breakdown
        fields: list[tuple[str, str]] = [
            ("Score", f"{breakdown.composite:.1f}/10"),
            ("Deployer", f"{breakdown.sub_scores.get(SubScore.DEPLOYER, 0.0):.2f}"),
            ("Liquidity", format_sol(launch.liquidity_sol) if launch.liquidity_sol is not None else "unknown"),
        ]
        if launch.market_cap_sol is not None:
            fields.append(("Market Cap", format_sol(launch.market_cap_sol)))
        if analysis.token.is_verified:
            fields.append(("Verified", "yes"))
        return NotificationEvent(
            kind=NotificationKind.LAUNCH,
            title=f"New Launch: {launch.ticker or launch.name}",
            message=launch.description or launch.name,
            fields=tuple(fields),
            severity=Severity.HIGH if breakdown.composite >= 9.0 else Severity.MEDIUM,
            token_address=launch.address,
            wallet_address=launch.deployer or None,
            timestamp=self._clock(),
        )
