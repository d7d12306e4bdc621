"""Token persistence and quality scoring.

The scanner is the single place tokens enter the database: a candidate seen
for the first time gets a deployer analysis, a metrics snapshot and a
quality score before it is stored.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError

from token_scanner.errors import NotFoundError
from token_scanner.gateway.models import FetchCategory
from token_scanner.scoring.models import TOKEN_QUALITY_WEIGHTS, TokenProfile
from token_scanner.storage.repos import TokenDTO, TokenRepository

if TYPE_CHECKING:
    from token_scanner.gateway.gateway import DataGateway
    from token_scanner.gateway.models import LaunchedToken, MarketSnapshot
    from token_scanner.scoring.deployer import DeployerProfiler
    from token_scanner.scoring.engine import ScoringEngine
    from token_scanner.storage.database import DatabaseManager
    from token_scanner.storage.repos import DeployerProfileDTO

logger = logging.getLogger(__name__)


def build_metrics(token: LaunchedToken, sol_price_usd: float | None) -> dict[str, Any]:
    """Metrics snapshot stored with a token.

    Unknown liquidity and holder data are stored as zero liquidity and full
    concentration so that they never read as healthy.
    """
    market_cap_usd = token.market_cap_usd
    if market_cap_usd is None and token.market_cap_sol is not None and sol_price_usd:
        market_cap_usd = token.market_cap_sol * sol_price_usd
    return {
        "market_cap": token.market_cap_sol,
        "market_cap_usd": market_cap_usd,
        "liquidity_amount": token.liquidity_sol or 0.0,
        "liquidity_locked": token.liquidity_locked,
        "holder_count": token.holder_count or 0,
        "top_holder_concentration": (
            token.top_holder_concentration if token.top_holder_concentration is not None else 1.0
        ),
        "total_supply": token.total_supply,
        "burned_fraction": token.burned_fraction,
        "reply_count": token.reply_count,
    }


def merge_snapshot(metrics: dict[str, Any], snapshot: MarketSnapshot | None) -> dict[str, Any]:
    """Overlay DEX pair figures on a stored metrics snapshot."""
    merged = dict(metrics)
    if snapshot is None:
        return merged
    if snapshot.price_usd is not None:
        merged["price_usd"] = snapshot.price_usd
    if snapshot.liquidity_usd is not None:
        merged["liquidity_usd"] = snapshot.liquidity_usd
    if snapshot.market_cap_usd is not None:
        merged["market_cap_usd"] = snapshot.market_cap_usd
    if snapshot.volume_24h_usd is not None:
        merged["volume_24h_usd"] = snapshot.volume_24h_usd
    return merged


class TokenScanner:
    """Creates, looks up and refreshes persisted tokens.

    Example:
        ```python
        scanner = TokenScanner(db, gateway, engine, profiler)
        token = await scanner.scan_token(launched_token)
        print(token.score, token.is_verified)
        ```
    """

    def __init__(
        self,
        db: DatabaseManager,
        gateway: DataGateway,
        engine: ScoringEngine,
        profiler: DeployerProfiler,
    ) -> None:
        self._db = db
        self._gateway = gateway
        self._engine = engine
        self._profiler = profiler

    async def scan_token(self, candidate: LaunchedToken) -> TokenDTO:
        """Return the stored token, creating it on first sight.

        Args:
            candidate: Launch observed on the launchpad feed.

        Returns:
            The persisted token. An existing row is returned unchanged.
        """
        existing = await self._get(candidate.address)
        if existing is not None:
            return existing

        known_before = await self._profiler.get(candidate.deployer) if candidate.deployer else None
        deployer = await self._profiler.lookup(candidate.deployer)
        if known_before is not None:
            await self._profiler.record_launch(candidate.deployer, at=candidate.created_at)

        sol_price = (await self._gateway.fetch(FetchCategory.SOL_PRICE)).value
        metrics = build_metrics(candidate, sol_price)
        breakdown = await self._engine.score(TokenProfile.from_launch(candidate), TOKEN_QUALITY_WEIGHTS)

        dto = TokenDTO(
            address=candidate.address,
            ticker=candidate.ticker,
            name=candidate.name,
            deployer_address=candidate.deployer,
            launched_at=candidate.created_at,
            initial_price=candidate.price_sol,
            description=candidate.description,
            deployer_snapshot=self._deployer_snapshot(deployer),
            metrics=metrics,
            score=breakdown.composite,
            is_verified=bool(deployer and deployer.is_whitelisted),
        )
        try:
            async with self._db.get_async_session() as session:
                created = await TokenRepository(session).insert(dto)
        except IntegrityError:
            # Another sweep stored it first.
            stored = await self._get(candidate.address)
            if stored is None:
                raise
            return stored

        logger.info(
            "New token %s (%s): score=%.3f verified=%s",
            created.ticker,
            created.address[:10] + "...",
            created.score,
            created.is_verified,
        )
        return created

    async def get_token_info(self, address: str) -> TokenDTO:
        """Look up a stored token.

        Raises:
            NotFoundError: If the address has never been scanned.
        """
        token = await self._get(address)
        if token is None:
            raise NotFoundError(f"Token {address} not found")
        return token

    async def refresh_token(self, address: str) -> TokenDTO:
        """Re-score a stored token and replace its snapshots.

        Raises:
            NotFoundError: If the address has never been scanned.
        """
        token = await self.get_token_info(address)
        snapshot = (await self._gateway.fetch(FetchCategory.MARKET_SNAPSHOT, {"address": address})).value
        metrics = merge_snapshot(token.metrics, snapshot)
        deployer = await self._profiler.lookup(token.deployer_address)

        token.metrics = metrics
        breakdown = await self._engine.score(TokenProfile.from_dto(token), TOKEN_QUALITY_WEIGHTS)
        async with self._db.get_async_session() as session:
            repo = TokenRepository(session)
            await repo.update_snapshot(
                address,
                score=breakdown.composite,
                metrics=metrics,
                deployer_snapshot=self._deployer_snapshot(deployer),
            )
            refreshed = await repo.get_by_address(address)

        if refreshed is None:
            raise NotFoundError(f"Token {address} not found")
        logger.debug("Refreshed token %s: score=%.3f", address, refreshed.score)
        return refreshed

    async def _get(self, address: str) -> TokenDTO | None:
        async with self._db.get_async_session() as session:
            return await TokenRepository(session).get_by_address(address)

    @staticmethod
    def _deployer_snapshot(profile: DeployerProfileDTO | None) -> dict[str, Any]:
        if profile is None:
            return {"is_whitelisted": False, "reputation": 0.0, "total_launches": 0}
        return profile.to_snapshot()
