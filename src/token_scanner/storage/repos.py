"""Repository pattern implementations for data access.

This module provides data access abstractions for tokens, deployer
profiles, alerts, portfolios and tracked wallets. Every repository works
on a caller-owned AsyncSession; commit/rollback happens in
``DatabaseManager.get_async_session``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, select, update

from token_scanner.storage.models import (
    AlertModel,
    DeployerProfileModel,
    PortfolioModel,
    TokenModel,
    TrackedWalletModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone=True columns.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


@dataclass
class TokenDTO:
    """Data transfer object for launched tokens."""

    address: str
    ticker: str
    name: str
    deployer_address: str
    launched_at: datetime
    initial_price: float | None = None
    description: str = ""
    deployer_snapshot: dict[str, Any] = field(default_factory=dict)
    metrics: dict[str, Any] = field(default_factory=dict)
    score: float = 0.0
    is_verified: bool = False
    is_cto: bool = False
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: TokenModel) -> TokenDTO:
        return cls(
            id=model.id,
            address=model.address,
            ticker=model.ticker,
            name=model.name,
            deployer_address=model.deployer_address,
            launched_at=_as_utc(model.launched_at) or datetime.now(UTC),
            initial_price=model.initial_price,
            description=model.description,
            deployer_snapshot=dict(model.deployer_snapshot or {}),
            metrics=dict(model.metrics or {}),
            score=model.score,
            is_verified=model.is_verified,
            is_cto=model.is_cto,
            created_at=_as_utc(model.created_at),
            updated_at=_as_utc(model.updated_at),
        )


class TokenRepository:
    """Repository for launched tokens, keyed by address."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_address(self, address: str) -> TokenDTO | None:
        result = await self.session.execute(select(TokenModel).where(TokenModel.address == address))
        model = result.scalar_one_or_none()
        return TokenDTO.from_model(model) if model else None

    async def insert(self, dto: TokenDTO) -> TokenDTO:
        model = TokenModel(
            address=dto.address,
            ticker=dto.ticker,
            name=dto.name,
            deployer_address=dto.deployer_address,
            launched_at=dto.launched_at,
            initial_price=dto.initial_price,
            description=dto.description,
            deployer_snapshot=dto.deployer_snapshot,
            metrics=dto.metrics,
            score=dto.score,
            is_verified=dto.is_verified,
            is_cto=dto.is_cto,
        )
        self.session.add(model)
        await self.session.flush()
        return TokenDTO.from_model(model)

    async def update_snapshot(
        self,
        address: str,
        *,
        score: float,
        metrics: dict[str, Any],
        deployer_snapshot: dict[str, Any] | None = None,
    ) -> bool:
        """Replace a token's score and snapshots. Returns False if unknown."""
        values: dict[str, Any] = {
            "score": score,
            "metrics": metrics,
            "updated_at": datetime.now(UTC),
        }
        if deployer_snapshot is not None:
            values["deployer_snapshot"] = deployer_snapshot
        result = await self.session.execute(
            update(TokenModel).where(TokenModel.address == address).values(**values)
        )
        return bool(result.rowcount)

    async def mark_cto(self, address: str) -> bool:
        """Flag a token as a community takeover. Returns True on first marking."""
        result = await self.session.execute(
            update(TokenModel)
            .where(TokenModel.address == address, TokenModel.is_cto.is_(False))
            .values(is_cto=True, updated_at=datetime.now(UTC))
        )
        return result.rowcount == 1

    async def list_recent(self, *, since: datetime, limit: int = 200) -> list[TokenDTO]:
        result = await self.session.execute(
            select(TokenModel)
            .where(TokenModel.launched_at >= since)
            .order_by(TokenModel.launched_at.desc())
            .limit(limit)
        )
        return [TokenDTO.from_model(m) for m in result.scalars().all()]


@dataclass
class DeployerProfileDTO:
    """Data transfer object for deployer reputation records."""

    address: str
    reputation: float = 0.0
    success_rate: float = 0.0
    total_launches: int = 0
    successful_launches: int = 0
    total_value: float = 0.0
    is_whitelisted: bool = False
    is_blacklisted: bool = False
    last_active_at: datetime | None = None
    id: int | None = None

    @classmethod
    def from_model(cls, model: DeployerProfileModel) -> DeployerProfileDTO:
        return cls(
            id=model.id,
            address=model.address,
            reputation=model.reputation,
            success_rate=model.success_rate,
            total_launches=model.total_launches,
            successful_launches=model.successful_launches,
            total_value=model.total_value,
            is_whitelisted=model.is_whitelisted,
            is_blacklisted=model.is_blacklisted,
            last_active_at=_as_utc(model.last_active_at),
        )

    def to_snapshot(self) -> dict[str, Any]:
        """Compact view embedded in a token's deployer snapshot."""
        return {
            "address": self.address,
            "reputation": self.reputation,
            "success_rate": self.success_rate,
            "total_launches": self.total_launches,
            "successful_launches": self.successful_launches,
            "total_value": self.total_value,
            "is_whitelisted": self.is_whitelisted,
            "is_blacklisted": self.is_blacklisted,
        }


class DeployerRepository:
    """Repository for deployer profiles, keyed by address."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_address(self, address: str) -> DeployerProfileDTO | None:
        result = await self.session.execute(
            select(DeployerProfileModel).where(DeployerProfileModel.address == address)
        )
        model = result.scalar_one_or_none()
        return DeployerProfileDTO.from_model(model) if model else None

    async def insert(self, dto: DeployerProfileDTO) -> DeployerProfileDTO:
        model = DeployerProfileModel(
            address=dto.address,
            reputation=dto.reputation,
            success_rate=dto.success_rate,
            total_launches=dto.total_launches,
            successful_launches=dto.successful_launches,
            total_value=dto.total_value,
            is_whitelisted=dto.is_whitelisted,
            is_blacklisted=dto.is_blacklisted,
            last_active_at=dto.last_active_at,
        )
        self.session.add(model)
        await self.session.flush()
        return DeployerProfileDTO.from_model(model)

    async def record_launch(self, address: str, *, at: datetime) -> bool:
        """Increment a deployer's launch count. Returns False if unknown."""
        result = await self.session.execute(
            update(DeployerProfileModel)
            .where(DeployerProfileModel.address == address)
            .values(
                total_launches=DeployerProfileModel.total_launches + 1,
                last_active_at=at,
                updated_at=datetime.now(UTC),
            )
        )
        return bool(result.rowcount)

    async def set_whitelisted(self, address: str, whitelisted: bool) -> bool:
        result = await self.session.execute(
            update(DeployerProfileModel)
            .where(DeployerProfileModel.address == address)
            .values(is_whitelisted=whitelisted, updated_at=datetime.now(UTC))
        )
        return bool(result.rowcount)


@dataclass
class AlertDTO:
    """Data transfer object for price alerts."""

    id: int
    user_id: str
    token_address: str
    price_target: float
    condition: str
    active: bool
    created_at: datetime
    triggered_at: datetime | None = None
    trigger_price: float | None = None
    notification_count: int = 0
    expired_at: datetime | None = None

    @classmethod
    def from_model(cls, model: AlertModel) -> AlertDTO:
        return cls(
            id=model.id,
            user_id=model.user_id,
            token_address=model.token_address,
            price_target=model.price_target,
            condition=model.condition,
            active=model.active,
            created_at=_as_utc(model.created_at) or datetime.now(UTC),
            triggered_at=_as_utc(model.triggered_at),
            trigger_price=model.trigger_price,
            notification_count=model.notification_count,
            expired_at=_as_utc(model.expired_at),
        )


class AlertRepository:
    """Repository for price alerts.

    The active -> inactive transition is only ever made through a
    conditional UPDATE on ``active``, so it can happen at most once.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(
        self,
        *,
        user_id: str,
        token_address: str,
        price_target: float,
        condition: str,
        created_at: datetime | None = None,
    ) -> AlertDTO:
        model = AlertModel(
            user_id=user_id,
            token_address=token_address,
            price_target=price_target,
            condition=condition,
            active=True,
            notification_count=0,
            created_at=created_at or datetime.now(UTC),
        )
        self.session.add(model)
        await self.session.flush()
        return AlertDTO.from_model(model)

    async def get(self, alert_id: int) -> AlertDTO | None:
        result = await self.session.execute(select(AlertModel).where(AlertModel.id == alert_id))
        model = result.scalar_one_or_none()
        return AlertDTO.from_model(model) if model else None

    async def list_for_user(self, user_id: str) -> list[AlertDTO]:
        result = await self.session.execute(
            select(AlertModel).where(AlertModel.user_id == user_id).order_by(AlertModel.id)
        )
        return [AlertDTO.from_model(m) for m in result.scalars().all()]

    async def list_active(self) -> list[AlertDTO]:
        result = await self.session.execute(
            select(AlertModel).where(AlertModel.active.is_(True)).order_by(AlertModel.id)
        )
        return [AlertDTO.from_model(m) for m in result.scalars().all()]

    async def delete_for_user(self, user_id: str, alert_id: int) -> bool:
        """Delete an alert owned by a user. Returns False if nothing matched."""
        result = await self.session.execute(
            delete(AlertModel).where(AlertModel.id == alert_id, AlertModel.user_id == user_id)
        )
        return result.rowcount == 1

    async def mark_triggered(self, alert_id: int, *, price: float, at: datetime) -> bool:
        """Deactivate an active alert as triggered.

        Returns:
            True only if this call performed the transition.
        """
        result = await self.session.execute(
            update(AlertModel)
            .where(AlertModel.id == alert_id, AlertModel.active.is_(True))
            .values(
                active=False,
                triggered_at=at,
                trigger_price=price,
                notification_count=AlertModel.notification_count + 1,
            )
        )
        return result.rowcount == 1

    async def expire_older_than(self, cutoff: datetime, *, at: datetime) -> int:
        """Deactivate every active alert created before ``cutoff``."""
        result = await self.session.execute(
            update(AlertModel)
            .where(AlertModel.active.is_(True), AlertModel.created_at < cutoff)
            .values(active=False, expired_at=at)
        )
        return int(result.rowcount or 0)


@dataclass
class PortfolioDTO:
    """Data transfer object for portfolios."""

    user_id: str
    holdings: list[dict[str, Any]] = field(default_factory=list)
    performance: dict[str, Any] = field(default_factory=dict)
    risk: dict[str, Any] = field(default_factory=dict)
    holdings_version: int = 0
    last_updated: datetime | None = None
    id: int | None = None

    @classmethod
    def from_model(cls, model: PortfolioModel) -> PortfolioDTO:
        return cls(
            id=model.id,
            user_id=model.user_id,
            holdings=list(model.holdings or []),
            performance=dict(model.performance or {}),
            risk=dict(model.risk or {}),
            holdings_version=model.holdings_version or 0,
            last_updated=_as_utc(model.last_updated),
        )


class PortfolioRepository:
    """Repository for portfolios, keyed by user id."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_user(self, user_id: str) -> PortfolioDTO | None:
        result = await self.session.execute(select(PortfolioModel).where(PortfolioModel.user_id == user_id))
        model = result.scalar_one_or_none()
        return PortfolioDTO.from_model(model) if model else None

    async def list_user_ids(self) -> list[str]:
        result = await self.session.execute(select(PortfolioModel.user_id).order_by(PortfolioModel.id))
        return [row[0] for row in result.all()]

    async def create(self, user_id: str) -> PortfolioDTO:
        model = PortfolioModel(user_id=user_id, holdings=[], performance={}, risk={})
        self.session.add(model)
        await self.session.flush()
        return PortfolioDTO.from_model(model)

    async def replace(
        self,
        user_id: str,
        *,
        holdings: list[dict[str, Any]],
        performance: dict[str, Any],
        risk: dict[str, Any],
        at: datetime,
    ) -> bool:
        """Replace holdings, performance and risk in one UPDATE statement.

        Bumps ``holdings_version`` so in-flight ``replace_blocks`` calls
        computed from the old holdings no longer match.
        """
        result = await self.session.execute(
            update(PortfolioModel)
            .where(PortfolioModel.user_id == user_id)
            .values(
                holdings=holdings,
                performance=performance,
                risk=risk,
                last_updated=at,
                holdings_version=PortfolioModel.holdings_version + 1,
            )
        )
        return result.rowcount == 1

    async def replace_blocks(
        self,
        user_id: str,
        *,
        performance: dict[str, Any],
        risk: dict[str, Any],
        at: datetime,
        expected_version: int,
    ) -> bool:
        """Write derived blocks only if holdings are still at ``expected_version``."""
        result = await self.session.execute(
            update(PortfolioModel)
            .where(
                PortfolioModel.user_id == user_id,
                PortfolioModel.holdings_version == expected_version,
            )
            .values(performance=performance, risk=risk, last_updated=at)
        )
        return result.rowcount == 1


@dataclass
class TrackedWalletDTO:
    """Data transfer object for tracked wallets."""

    user_id: str
    address: str
    last_trade_at: datetime | None = None
    realized_pnl: float = 0.0
    total_trades: int = 0
    successful_trades: int = 0
    last_analyzed_at: datetime | None = None
    created_at: datetime | None = None
    id: int | None = None

    @classmethod
    def from_model(cls, model: TrackedWalletModel) -> TrackedWalletDTO:
        return cls(
            id=model.id,
            user_id=model.user_id,
            address=model.address,
            last_trade_at=_as_utc(model.last_trade_at),
            realized_pnl=model.realized_pnl,
            total_trades=model.total_trades,
            successful_trades=model.successful_trades,
            last_analyzed_at=_as_utc(model.last_analyzed_at),
            created_at=_as_utc(model.created_at),
        )


class TrackedWalletRepository:
    """Repository for wallets followed by users."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: str, address: str) -> TrackedWalletDTO | None:
        result = await self.session.execute(
            select(TrackedWalletModel).where(
                TrackedWalletModel.user_id == user_id,
                TrackedWalletModel.address == address,
            )
        )
        model = result.scalar_one_or_none()
        return TrackedWalletDTO.from_model(model) if model else None

    async def insert(self, user_id: str, address: str) -> TrackedWalletDTO:
        model = TrackedWalletModel(user_id=user_id, address=address)
        self.session.add(model)
        await self.session.flush()
        return TrackedWalletDTO.from_model(model)

    async def delete(self, user_id: str, address: str) -> bool:
        result = await self.session.execute(
            delete(TrackedWalletModel).where(
                TrackedWalletModel.user_id == user_id,
                TrackedWalletModel.address == address,
            )
        )
        return result.rowcount == 1

    async def list_for_user(self, user_id: str) -> list[TrackedWalletDTO]:
        result = await self.session.execute(
            select(TrackedWalletModel)
            .where(TrackedWalletModel.user_id == user_id)
            .order_by(TrackedWalletModel.id)
        )
        return [TrackedWalletDTO.from_model(m) for m in result.scalars().all()]

    async def list_distinct_addresses(self) -> list[str]:
        result = await self.session.execute(
            select(TrackedWalletModel.address).distinct().order_by(TrackedWalletModel.address)
        )
        return [row[0] for row in result.all()]

    async def update_stats(
        self,
        address: str,
        *,
        last_trade_at: datetime | None,
        realized_pnl: float,
        total_trades: int,
        successful_trades: int,
        at: datetime,
    ) -> int:
        """Write analysis results onto every row tracking ``address``."""
        result = await self.session.execute(
            update(TrackedWalletModel)
            .where(TrackedWalletModel.address == address)
            .values(
                last_trade_at=last_trade_at,
                realized_pnl=realized_pnl,
                total_trades=total_trades,
                successful_trades=successful_trades,
                last_analyzed_at=at,
            )
        )
        return int(result.rowcount or 0)
