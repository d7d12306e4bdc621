"""Monitor module - orchestrators built on the gateway and scoring engine."""

from token_scanner.monitor.filters import FilterManager, TokenFilters
from token_scanner.monitor.launch import (
    LaunchAnalysis,
    LaunchMonitor,
    LaunchSweepResult,
    SeenTokenSet,
)
from token_scanner.monitor.recommend import Recommendation, RecommendationEngine, rank
from token_scanner.monitor.scanner import TokenScanner
from token_scanner.monitor.strategy import (
    RISK_TIERS,
    ExitPlan,
    RiskTier,
    StrategyAdvisor,
    TradingStrategy,
)
from token_scanner.monitor.takeover import CommunityTakeoverScanner, TakeoverSweepResult
from token_scanner.monitor.trades import TradeMonitor, TradeSweepResult
from token_scanner.monitor.wallets import WalletAnalysis, WalletSweepResult, WalletTracker, analyze_trades

__all__ = [
    "RISK_TIERS",
    "CommunityTakeoverScanner",
    "ExitPlan",
    "FilterManager",
    "LaunchAnalysis",
    "LaunchMonitor",
    "LaunchSweepResult",
    "Recommendation",
    "RecommendationEngine",
    "RiskTier",
    "SeenTokenSet",
    "StrategyAdvisor",
    "TakeoverSweepResult",
    "TokenFilters",
    "TokenScanner",
    "TradeMonitor",
    "TradeSweepResult",
    "TradingStrategy",
    "WalletAnalysis",
    "WalletSweepResult",
    "WalletTracker",
    "analyze_trades",
    "rank",
]
