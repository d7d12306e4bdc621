"""Trading strategy suggestions per risk tier."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from token_scanner.errors import ValidationFailure
from token_scanner.scoring.models import STRATEGY_WEIGHTS, ScoreBreakdown, SubScore, TokenProfile

if TYPE_CHECKING:
    from token_scanner.gateway.gateway import DataGateway
    from token_scanner.monitor.scanner import TokenScanner
    from token_scanner.scoring.engine import ScoringEngine

logger = logging.getLogger(__name__)

DEFAULT_BUY_THRESHOLD = 0.65
DEFAULT_SELL_THRESHOLD = 0.35


@dataclass(frozen=True)
class RiskTier:
    """Exit-plan parameters for one risk appetite (fractions of entry price)."""

    name: str
    stop_loss_pct: float
    take_profit_pcts: tuple[float, float, float]
    trailing_stop_pct: float
    position_size_pct: float


RISK_TIERS = MappingProxyType(
    {
        "conservative": RiskTier("conservative", 0.10, (0.20, 0.35, 0.50), 0.08, 0.02),
        "moderate": RiskTier("moderate", 0.20, (0.50, 1.00, 2.00), 0.15, 0.05),
        "aggressive": RiskTier("aggressive", 0.35, (1.00, 2.00, 5.00), 0.25, 0.10),
    }
)


@dataclass(frozen=True)
class ExitPlan:
    """Where to get out. Prices are ``None`` when no spot price is known."""

    stop_loss_pct: float
    take_profit_pcts: tuple[float, ...]
    trailing_stop_pct: float
    position_size_pct: float
    stop_loss: float | None = None
    take_profits: tuple[float, ...] = ()


@dataclass(frozen=True)
class TradingStrategy:
    """A buy/hold/sell suggestion with its entry and exit plan."""

    token_address: str
    risk_tier: str
    action: str
    confidence: float
    price: float | None
    entry_points: tuple[float, ...]
    exit_plan: ExitPlan
    breakdown: ScoreBreakdown

    @property
    def reports(self) -> dict[str, float]:
        """Sub-reports that went into the decision."""
        return {
            "technical": self.breakdown.sub_scores[SubScore.TECHNICAL],
            "sentiment": self.breakdown.sub_scores[SubScore.SOCIAL],
            "on_chain": self.breakdown.sub_scores[SubScore.LIQUIDITY],
            "whales": self.breakdown.sub_scores[SubScore.WHALE],
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_address": self.token_address,
            "risk_tier": self.risk_tier,
            "action": self.action,
            "confidence": self.confidence,
            "price": self.price,
            "entry_points": list(self.entry_points),
            "exit_plan": {
                "stop_loss": self.exit_plan.stop_loss,
                "take_profits": list(self.exit_plan.take_profits),
                "stop_loss_pct": self.exit_plan.stop_loss_pct,
                "take_profit_pcts": list(self.exit_plan.take_profit_pcts),
                "trailing_stop_pct": self.exit_plan.trailing_stop_pct,
                "position_size_pct": self.exit_plan.position_size_pct,
            },
            "reports": self.reports,
        }


def resolve_tier(risk_tier: str) -> RiskTier:
    tier = RISK_TIERS.get(str(risk_tier).lower())
    if tier is None:
        choices = ", ".join(RISK_TIERS)
        raise ValidationFailure(f"Unknown risk tier {risk_tier!r}; expected one of: {choices}")
    return tier


def choose_action(
    score: float,
    *,
    buy_threshold: float = DEFAULT_BUY_THRESHOLD,
    sell_threshold: float = DEFAULT_SELL_THRESHOLD,
) -> str:
    if score >= buy_threshold:
        return "buy"
    if score <= sell_threshold:
        return "sell"
    return "hold"


def build_exit_plan(tier: RiskTier, price: float | None) -> ExitPlan:
    if price is None:
        return ExitPlan(
            stop_loss_pct=tier.stop_loss_pct,
            take_profit_pcts=tier.take_profit_pcts,
            trailing_stop_pct=tier.trailing_stop_pct,
            position_size_pct=tier.position_size_pct,
        )
    return ExitPlan(
        stop_loss_pct=tier.stop_loss_pct,
        take_profit_pcts=tier.take_profit_pcts,
        trailing_stop_pct=tier.trailing_stop_pct,
        position_size_pct=tier.position_size_pct,
        stop_loss=price * (1 - tier.stop_loss_pct),
        take_profits=tuple(price * (1 + pct) for pct in tier.take_profit_pcts),
    )


def build_entry_points(tier: RiskTier, price: float | None) -> tuple[float, ...]:
    """Scale-in ladder: at market, then half and one full trailing distance lower."""
    if price is None:
        return ()
    return (
        price,
        price * (1 - tier.trailing_stop_pct / 2),
        price * (1 - tier.trailing_stop_pct),
    )


class StrategyAdvisor:
    """Combines technical, sentiment, on-chain and whale reports into a plan.

    Example:
        ```python
        advisor = StrategyAdvisor(engine, gateway, scanner)
        strategy = await advisor.generate_strategy(mint, "moderate")
        print(strategy.action, strategy.exit_plan.stop_loss)
        ```
    """

    def __init__(
        self,
        engine: ScoringEngine,
        gateway: DataGateway,
        scanner: TokenScanner,
        *,
        buy_threshold: float = DEFAULT_BUY_THRESHOLD,
        sell_threshold: float = DEFAULT_SELL_THRESHOLD,
    ) -> None:
        if not 0.0 <= sell_threshold < buy_threshold <= 1.0:
            raise ValueError(
                f"Need 0 <= sell_threshold < buy_threshold <= 1, got {sell_threshold} and {buy_threshold}"
            )
        self._engine = engine
        self._gateway = gateway
        self._scanner = scanner
        self._buy_threshold = buy_threshold
        self._sell_threshold = sell_threshold

    async def generate_strategy(self, address: str, risk_tier: str) -> TradingStrategy:
        """Build a strategy for a stored token.

        Raises:
            ValidationFailure: On an unknown risk tier.
            NotFoundError: If the token has never been scanned.
        """
        tier = resolve_tier(risk_tier)
        token = await self._scanner.get_token_info(address)

        breakdown = await self._engine.score(TokenProfile.from_dto(token), STRATEGY_WEIGHTS)
        price = await self._gateway.spot_price(address)
        action = choose_action(
            breakdown.raw,
            buy_threshold=self._buy_threshold,
            sell_threshold=self._sell_threshold,
        )

        logger.info(
            "Strategy for %s (%s): action=%s score=%.3f",
            address[:10] + "...",
            tier.name,
            action,
            breakdown.raw,
        )
        return TradingStrategy(
            token_address=address,
            risk_tier=tier.name,
            action=action,
            confidence=breakdown.raw,
            price=price,
            entry_points=build_entry_points(tier, price),
            exit_plan=build_exit_plan(tier, price),
            breakdown=breakdown,
        )
