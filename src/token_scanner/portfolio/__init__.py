"""Portfolio module - valuation and risk estimation."""

from token_scanner.portfolio.aggregator import PortfolioAggregator, PortfolioSweepResult
from token_scanner.portfolio.models import (
    Holding,
    PerformanceBlock,
    PortfolioMetrics,
    PortfolioView,
    RiskBlock,
)

__all__ = [
    "Holding",
    "PerformanceBlock",
    "PortfolioAggregator",
    "PortfolioMetrics",
    "PortfolioSweepResult",
    "PortfolioView",
    "RiskBlock",
]
