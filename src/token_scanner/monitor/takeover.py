"""Community-takeover detection from the global reply feed."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from token_scanner.alerter.models import NotificationEvent, NotificationKind, Severity
from token_scanner.gateway.models import FetchCategory
from token_scanner.storage.repos import TokenRepository

if TYPE_CHECKING:
    from token_scanner.alerter.models import Notifier
    from token_scanner.gateway.gateway import DataGateway
    from token_scanner.gateway.models import ListingStatus, Reply
    from token_scanner.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_KEYWORDS = ("cto", "community takeover", "takeover", "take over")
DEFAULT_MIN_MENTIONS = 5
DEFAULT_REPLY_LIMIT = 100
DEFAULT_MAX_CONCURRENCY = 5


@dataclass
class TakeoverSweepResult:
    """Outcome of one ``run_once`` pass."""

    replies: int = 0
    candidates: int = 0
    paid: int = 0
    notified: int = 0
    failed: int = 0


class CommunityTakeoverScanner:
    """Finds tokens the community is taking over that have paid for a DEX listing.

    Example:
        ```python
        scanner = CommunityTakeoverScanner(gateway, db, dispatcher)
        result = await scanner.run_once()
        ```
    """

    def __init__(
        self,
        gateway: DataGateway,
        db: DatabaseManager,
        notifier: Notifier,
        *,
        keywords: Sequence[str] = DEFAULT_KEYWORDS,
        min_mentions: int = DEFAULT_MIN_MENTIONS,
        reply_limit: int = DEFAULT_REPLY_LIMIT,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self._gateway = gateway
        self._db = db
        self._notifier = notifier
        self._keywords = tuple(k.lower() for k in keywords)
        self._min_mentions = min_mentions
        self._reply_limit = reply_limit
        self._max_concurrency = max_concurrency
        # Unstored tokens have no is_cto flag to guard repeat notifications.
        self._notified: set[str] = set()

    def mentions_takeover(self, text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in self._keywords)

    def count_mentions(self, replies: Iterable[Reply]) -> Counter[str]:
        return Counter(r.token_address for r in replies if r.token_address and self.mentions_takeover(r.text))

    async def run_once(self) -> TakeoverSweepResult:
        """Scan the latest replies once."""
        result = TakeoverSweepResult()
        fetched = await self._gateway.fetch(
            FetchCategory.REPLY_THREAD,
            {"limit": self._reply_limit, "offset": 0},
        )
        if not fetched.ok:
            logger.warning("Reply feed unavailable")
            return result

        result.replies = len(fetched.value)
        counts = self.count_mentions(fetched.value)
        mints = [mint for mint, count in counts.items() if count >= self._min_mentions]
        result.candidates = len(mints)
        if not mints:
            return result

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def check(mint: str) -> tuple[bool, bool]:
            async with semaphore:
                listing: ListingStatus | None = (
                    await self._gateway.fetch(FetchCategory.LISTING_STATUS, {"address": mint})
                ).value
                if listing is None or not listing.paid:
                    return False, False
                if not await self._claim(mint):
                    return True, False
                await self._notifier.notify(self._build_event(mint, counts[mint], listing))
                return True, True

        outcomes = await asyncio.gather(*(check(m) for m in mints), return_exceptions=True)
        for mint, outcome in zip(mints, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                result.failed += 1
                logger.warning("Takeover check failed for %s: %s", mint, outcome)
                continue
            paid, notified = outcome
            result.paid += int(paid)
            result.notified += int(notified)

        if result.notified or result.failed:
            logger.info(
                "Takeover sweep: replies=%d candidates=%d paid=%d notified=%d failed=%d",
                result.replies,
                result.candidates,
                result.paid,
                result.notified,
                result.failed,
            )
        return result

    async def _claim(self, mint: str) -> bool:
        """Mark a token as CTO. Returns True only the first time."""
        async with self._db.get_async_session() as session:
            repo = TokenRepository(session)
            if await repo.mark_cto(mint):
                return True
            stored = await repo.get_by_address(mint)
        if stored is not None:
            return False
        if mint in self._notified:
            return False
        self._notified.add(mint)
        return True

    def _build_event(self, mint: str, mentions: int, listing: ListingStatus) -> NotificationEvent:
        fields: list[tuple[str, str]] = [
            ("Mentions", str(mentions)),
            ("DEX Listing", listing.status or "approved"),
        ]
        if listing.order_type:
            fields.append(("Order Type", listing.order_type))
        return NotificationEvent(
            kind=NotificationKind.COMMUNITY_TAKEOVER,
            title="Community Takeover Detected",
            message=f"{mentions} recent replies mention a takeover and the DEX listing is paid",
            fields=tuple(fields),
            severity=Severity.HIGH,
            token_address=mint,
        )
