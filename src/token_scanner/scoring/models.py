"""Data models for the scoring module."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from token_scanner.gateway.models import Candle, LaunchedToken, ListingStatus, Reply, TradeEvent
    from token_scanner.storage.repos import DeployerProfileDTO, TokenDTO

_WEIGHT_SUM_TOLERANCE = 1e-9


class SubScore(str, Enum):
    """Individual factors a composite score is built from."""

    DEPLOYER = "deployer"
    LIQUIDITY = "liquidity"
    HOLDERS = "holders"
    TOKENOMICS = "tokenomics"
    SOCIAL = "social"
    WHALE = "whale"
    BURN_RATE = "burn_rate"
    LISTING_PAID = "listing_paid"
    PRICE_VS_ATH = "price_vs_ath"
    MOMENTUM = "momentum"
    TECHNICAL = "technical"


# Value used for a sub-score whose inputs are unavailable.
NEUTRAL_DEFAULTS: Mapping[SubScore, float] = MappingProxyType(
    {
        SubScore.DEPLOYER: 0.0,
        SubScore.LIQUIDITY: 0.0,
        SubScore.HOLDERS: 0.0,
        SubScore.TOKENOMICS: 0.5,
        SubScore.SOCIAL: 0.5,
        SubScore.WHALE: 0.5,
        SubScore.BURN_RATE: 0.5,
        SubScore.LISTING_PAID: 0.0,
        SubScore.PRICE_VS_ATH: 0.5,
        SubScore.MOMENTUM: 0.5,
        SubScore.TECHNICAL: 0.5,
    }
)


@dataclass(frozen=True)
class WeightTable:
    """Named set of sub-score weights.

    Weights must be non-negative and sum to 1.0. The composite is the
    weighted sum multiplied by ``scale``.
    """

    name: str
    weights: Mapping[SubScore, float]
    scale: float = 1.0

    def __post_init__(self) -> None:
        if not self.weights:
            raise ValueError(f"Weight table {self.name!r} is empty")
        if any(w < 0 for w in self.weights.values()):
            raise ValueError(f"Weight table {self.name!r} has negative weights")
        total = math.fsum(self.weights.values())
        if abs(total - 1.0) > _WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"Weights of {self.name!r} sum to {total}, expected 1.0")
        if self.scale <= 0:
            raise ValueError(f"Weight table {self.name!r} needs a positive scale")
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))

    @property
    def required(self) -> frozenset[SubScore]:
        """Sub-scores this table needs."""
        return frozenset(self.weights)

    def combine(self, sub_scores: Mapping[SubScore, float]) -> float:
        """Weighted sum of the given sub-scores (unscaled)."""
        return math.fsum(weight * sub_scores[name] for name, weight in self.weights.items())


LAUNCH_WEIGHTS = WeightTable(
    name="launch",
    weights={
        SubScore.DEPLOYER: 0.4,
        SubScore.LIQUIDITY: 0.2,
        SubScore.SOCIAL: 0.2,
        SubScore.TOKENOMICS: 0.2,
    },
    scale=10.0,
)

TOKEN_QUALITY_WEIGHTS = WeightTable(
    name="token_quality",
    weights={
        SubScore.DEPLOYER: 0.3,
        SubScore.LIQUIDITY: 0.2,
        SubScore.HOLDERS: 0.2,
        SubScore.TOKENOMICS: 0.15,
        SubScore.SOCIAL: 0.15,
    },
)

RECOMMENDATION_WEIGHTS = WeightTable(
    name="recommendation",
    weights={
        SubScore.DEPLOYER: 0.2,
        SubScore.LIQUIDITY: 0.15,
        SubScore.HOLDERS: 0.15,
        SubScore.SOCIAL: 0.15,
        SubScore.MOMENTUM: 0.15,
        SubScore.LISTING_PAID: 0.1,
        SubScore.BURN_RATE: 0.05,
        SubScore.PRICE_VS_ATH: 0.05,
    },
)

STRATEGY_WEIGHTS = WeightTable(
    name="strategy",
    weights={
        SubScore.TECHNICAL: 0.3,
        SubScore.SOCIAL: 0.2,
        SubScore.LIQUIDITY: 0.25,
        SubScore.WHALE: 0.25,
    },
)


@dataclass(frozen=True)
class TokenProfile:
    """The token-level facts scoring works from.

    Built either from a fresh launchpad observation or from a persisted
    token's metrics snapshot.
    """

    address: str
    deployer: str
    observed_at: datetime
    liquidity_sol: float | None = None
    liquidity_locked: bool = False
    holder_count: int | None = None
    top_holder_concentration: float | None = None
    total_supply: float | None = None
    market_cap_sol: float | None = None
    burned_fraction: float | None = None

    @classmethod
    def from_launch(cls, token: LaunchedToken) -> TokenProfile:
        return cls(
            address=token.address,
            deployer=token.deployer,
            observed_at=token.created_at,
            liquidity_sol=token.liquidity_sol,
            liquidity_locked=token.liquidity_locked,
            holder_count=token.holder_count,
            top_holder_concentration=token.top_holder_concentration,
            total_supply=token.total_supply,
            market_cap_sol=token.market_cap_sol,
            burned_fraction=token.burned_fraction,
        )

    @classmethod
    def from_dto(cls, token: TokenDTO) -> TokenProfile:
        metrics: dict[str, Any] = token.metrics
        return cls(
            address=token.address,
            deployer=token.deployer_address,
            observed_at=token.updated_at or token.launched_at,
            liquidity_sol=metrics.get("liquidity_amount"),
            liquidity_locked=bool(metrics.get("liquidity_locked", False)),
            holder_count=metrics.get("holder_count"),
            top_holder_concentration=metrics.get("top_holder_concentration"),
            total_supply=metrics.get("total_supply"),
            market_cap_sol=metrics.get("market_cap"),
            burned_fraction=metrics.get("burned_fraction"),
        )


@dataclass
class TokenSignals:
    """Fetched inputs for one scoring pass.

    ``None`` means the input was not requested or its fetch failed; an
    empty list means it was fetched and is genuinely empty.
    """

    deployer: DeployerProfileDTO | None = None
    replies: list[Reply] | None = None
    trades: list[TradeEvent] | None = None
    history: list[Candle] | None = None
    listing: ListingStatus | None = None


@dataclass(frozen=True)
class ScoreBreakdown:
    """Result of scoring one token against one weight table."""

    address: str
    table: str
    composite: float
    raw: float
    sub_scores: Mapping[SubScore, float]
    defaults_used: frozenset[SubScore] = field(default_factory=frozenset)
    as_of: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "address": self.address,
            "table": self.table,
            "composite": self.composite,
            "raw": self.raw,
            "sub_scores": {name.value: value for name, value in self.sub_scores.items()},
            "defaults_used": sorted(name.value for name in self.defaults_used),
            "as_of": self.as_of.isoformat(),
        }
