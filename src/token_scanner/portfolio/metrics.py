"""Return-series risk estimators built on numpy.

All functions return ``None`` when the series is too short or degenerate;
callers substitute the documented defaults.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

MINUTES_PER_YEAR = 365 * 24 * 60


def simple_returns(prices: Sequence[float]) -> np.ndarray:
    """Period-over-period returns of a price series."""
    values = np.asarray(prices, dtype=float)
    if len(values) < 2:
        return np.empty(0)
    base = values[:-1]
    with np.errstate(divide="ignore", invalid="ignore"):
        returns = np.diff(values) / base
    return returns[np.isfinite(returns)]


def periods_per_year(timeframe_minutes: int) -> float:
    return MINUTES_PER_YEAR / timeframe_minutes


def beta(asset: np.ndarray, benchmark: np.ndarray) -> float | None:
    """Covariance of the asset with the benchmark over benchmark variance."""
    n = min(len(asset), len(benchmark))
    if n < 2:
        return None
    a, b = asset[-n:], benchmark[-n:]
    variance = float(np.var(b, ddof=1))
    if variance == 0:
        return None
    return float(np.cov(a, b, ddof=1)[0, 1] / variance)


def sharpe_ratio(returns: np.ndarray, *, risk_free_rate: float, periods: float) -> float | None:
    """Annualised Sharpe ratio of a per-period return series."""
    if len(returns) < 2:
        return None
    deviation = float(np.std(returns, ddof=1))
    if deviation == 0:
        return None
    excess = float(np.mean(returns)) - risk_free_rate / periods
    return excess / deviation * float(np.sqrt(periods))


def historical_var(returns: np.ndarray, *, confidence: float, value: float) -> float | None:
    """Historical value-at-risk as a currency amount (positive is a loss)."""
    if len(returns) < 2 or value <= 0:
        return None
    cutoff = float(np.percentile(returns, (1.0 - confidence) * 100.0))
    return max(0.0, -cutoff * value)


def diversification_score(distinct_tokens: int, cap: int) -> float:
    return min(distinct_tokens / cap, 1.0)


def aligned_value_series(
    closes_by_token: dict[str, Sequence[float]],
    amounts: dict[str, float],
) -> np.ndarray:
    """Portfolio value per period over the longest common tail of histories."""
    series = [np.asarray(closes_by_token[t], dtype=float) for t in amounts if len(closes_by_token.get(t, ())) >= 2]
    weights = [amounts[t] for t in amounts if len(closes_by_token.get(t, ())) >= 2]
    if not series:
        return np.empty(0)
    n = min(len(s) for s in series)
    return sum(w * s[-n:] for w, s in zip(weights, series, strict=True))


def equal_weight_returns(closes_by_token: dict[str, Sequence[float]]) -> np.ndarray:
    """Returns of an equal-weighted basket of the given tokens."""
    per_token = [simple_returns(c) for c in closes_by_token.values()]
    per_token = [r for r in per_token if len(r) >= 1]
    if not per_token:
        return np.empty(0)
    n = min(len(r) for r in per_token)
    return np.mean([r[-n:] for r in per_token], axis=0)
