"""Data models for the portfolio module."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from token_scanner.errors import ValidationFailure
from token_scanner.gateway.models import to_datetime


@dataclass(frozen=True)
class Holding:
    """One position in a portfolio."""

    token_address: str
    amount: float
    buy_price: float
    buy_date: datetime = field(default_factory=lambda: datetime.now(UTC))
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.token_address:
            raise ValidationFailure("Holding needs a token address")
        if not math.isfinite(self.amount) or self.amount <= 0:
            raise ValidationFailure(f"Holding amount must be positive, got {self.amount}")
        if not math.isfinite(self.buy_price) or self.buy_price <= 0:
            raise ValidationFailure(f"Holding buy price must be positive, got {self.buy_price}")

    @property
    def cost(self) -> float:
        return self.amount * self.buy_price

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_address": self.token_address,
            "amount": self.amount,
            "buy_price": self.buy_price,
            "buy_date": self.buy_date.isoformat(),
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Holding:
        return cls(
            token_address=str(data["token_address"]),
            amount=float(data["amount"]),
            buy_price=float(data["buy_price"]),
            buy_date=to_datetime(data.get("buy_date")) or datetime.now(UTC),
            tags=tuple(data.get("tags") or ()),
        )


@dataclass(frozen=True)
class PerformanceBlock:
    """Valuation of a portfolio at current prices."""

    total_value: float = 0.0
    total_cost: float = 0.0
    total_pnl: float = 0.0
    daily_pnl: float = 0.0
    best_performer: str | None = None
    worst_performer: str | None = None
    returns: dict[str, float] = field(default_factory=dict)
    unpriced: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_value": self.total_value,
            "total_cost": self.total_cost,
            "total_pnl": self.total_pnl,
            "daily_pnl": self.daily_pnl,
            "best_performer": self.best_performer,
            "worst_performer": self.worst_performer,
            "returns": dict(self.returns),
            "unpriced": list(self.unpriced),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PerformanceBlock:
        return cls(
            total_value=float(data.get("total_value", 0.0)),
            total_cost=float(data.get("total_cost", 0.0)),
            total_pnl=float(data.get("total_pnl", 0.0)),
            daily_pnl=float(data.get("daily_pnl", 0.0)),
            best_performer=data.get("best_performer"),
            worst_performer=data.get("worst_performer"),
            returns={k: float(v) for k, v in (data.get("returns") or {}).items()},
            unpriced=tuple(data.get("unpriced") or ()),
        )


@dataclass(frozen=True)
class RiskBlock:
    """Risk estimators for a portfolio.

    The defaults (beta 1, Sharpe 0, VaR 0) stand in when there is too
    little price history; they are not errors.
    """

    beta: float = 1.0
    sharpe: float = 0.0
    diversification: float = 0.0
    value_at_risk: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "beta": self.beta,
            "sharpe": self.sharpe,
            "diversification": self.diversification,
            "value_at_risk": self.value_at_risk,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RiskBlock:
        return cls(
            beta=float(data.get("beta", 1.0)),
            sharpe=float(data.get("sharpe", 0.0)),
            diversification=float(data.get("diversification", 0.0)),
            value_at_risk=float(data.get("value_at_risk", 0.0)),
        )


@dataclass(frozen=True)
class PortfolioMetrics:
    """Result of one recompute."""

    performance: PerformanceBlock
    risk: RiskBlock


@dataclass(frozen=True)
class PortfolioView:
    """A stored portfolio as seen by callers."""

    user_id: str
    holdings: tuple[Holding, ...]
    performance: PerformanceBlock
    risk: RiskBlock
    last_updated: datetime | None = None
