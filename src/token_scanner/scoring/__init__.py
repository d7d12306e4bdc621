"""Scoring module - weighted multi-factor token scores."""

from token_scanner.scoring.analyzers import (
    ReplyActivitySentiment,
    RsiMacdTechnical,
    SentimentAnalyzer,
    TechnicalAnalyzer,
)
from token_scanner.scoring.deployer import DeployerProfiler
from token_scanner.scoring.engine import ScoringEngine, growth_rate
from token_scanner.scoring.models import (
    LAUNCH_WEIGHTS,
    NEUTRAL_DEFAULTS,
    RECOMMENDATION_WEIGHTS,
    STRATEGY_WEIGHTS,
    TOKEN_QUALITY_WEIGHTS,
    ScoreBreakdown,
    SubScore,
    TokenProfile,
    TokenSignals,
    WeightTable,
)

__all__ = [
    "LAUNCH_WEIGHTS",
    "NEUTRAL_DEFAULTS",
    "RECOMMENDATION_WEIGHTS",
    "STRATEGY_WEIGHTS",
    "TOKEN_QUALITY_WEIGHTS",
    "DeployerProfiler",
    "ReplyActivitySentiment",
    "RsiMacdTechnical",
    "ScoreBreakdown",
    "ScoringEngine",
    "SentimentAnalyzer",
    "SubScore",
    "TechnicalAnalyzer",
    "TokenProfile",
    "TokenSignals",
    "WeightTable",
    "growth_rate",
]
