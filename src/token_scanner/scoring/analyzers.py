"""Pluggable sentiment and technical analyzers.

The scoring engine treats both as opaque producers of a score in [0, 1].
The default implementations are intentionally simple heuristics; swap
them out by passing any object satisfying the protocol.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

import numpy as np

if TYPE_CHECKING:
    from token_scanner.gateway.models import Reply

DEFAULT_RSI_PERIOD = 14
DEFAULT_MACD_FAST = 12
DEFAULT_MACD_SLOW = 26
DEFAULT_MACD_SIGNAL = 9

# Reply count at which thread activity saturates.
ACTIVITY_SATURATION = 50

POSITIVE_TERMS = frozenset(
    {"moon", "bullish", "gem", "send", "pump", "lfg", "based", "buy", "buying", "hold", "diamond", "good", "great"}
)
NEGATIVE_TERMS = frozenset(
    {"rug", "rugged", "scam", "dump", "dumping", "sell", "selling", "dead", "bearish", "honeypot", "fake", "bad"}
)

_WORD_RE = re.compile(r"[a-z0-9']+")


class SentimentAnalyzer(Protocol):
    """Scores a token's reply thread."""

    def score(self, replies: Sequence[Reply]) -> float | None:
        """Return a score in [0, 1], or None when no opinion can be formed."""
        ...


class TechnicalAnalyzer(Protocol):
    """Scores a closing-price series."""

    def score(self, closes: Sequence[float]) -> float | None:
        """Return a score in [0, 1], or None when the series is too short."""
        ...


class ReplyActivitySentiment:
    """Lexicon polarity blended with thread activity.

    An empty thread scores 0.0: nobody is talking about the token.
    """

    def score(self, replies: Sequence[Reply]) -> float | None:
        if not replies:
            return 0.0
        positive = 0
        negative = 0
        for reply in replies:
            words = set(_WORD_RE.findall(reply.text.lower()))
            positive += len(words & POSITIVE_TERMS)
            negative += len(words & NEGATIVE_TERMS)
        polarity = (positive - negative) / (positive + negative) if positive + negative else 0.0
        activity = min(len(replies) / ACTIVITY_SATURATION, 1.0)
        return 0.5 * activity + 0.5 * (polarity + 1.0) / 2.0


def ema(values: np.ndarray, span: int) -> np.ndarray:
    """Exponential moving average with the usual ``2 / (span + 1)`` factor."""
    alpha = 2.0 / (span + 1.0)
    out = np.empty_like(values, dtype=float)
    out[0] = values[0]
    for i in range(1, len(values)):
        out[i] = alpha * values[i] + (1.0 - alpha) * out[i - 1]
    return out


def rsi(closes: Sequence[float], period: int = DEFAULT_RSI_PERIOD) -> float | None:
    """Wilder's relative strength index of the last bar."""
    prices = np.asarray(closes, dtype=float)
    if len(prices) <= period:
        return None
    deltas = np.diff(prices)
    gains = np.clip(deltas, 0.0, None)
    losses = np.clip(-deltas, 0.0, None)
    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    for gain, loss in zip(gains[period:], losses[period:], strict=True):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return float(100.0 - 100.0 / (1.0 + rs))


def macd_histogram(
    closes: Sequence[float],
    fast: int = DEFAULT_MACD_FAST,
    slow: int = DEFAULT_MACD_SLOW,
    signal: int = DEFAULT_MACD_SIGNAL,
) -> float | None:
    """MACD line minus its signal line at the last bar."""
    prices = np.asarray(closes, dtype=float)
    if len(prices) < slow + signal:
        return None
    line = ema(prices, fast) - ema(prices, slow)
    return float(line[-1] - ema(line, signal)[-1])


class RsiMacdTechnical:
    """Half mean-reversion (RSI), half trend (MACD histogram sign)."""

    def __init__(self, *, rsi_period: int = DEFAULT_RSI_PERIOD) -> None:
        self._rsi_period = rsi_period

    def score(self, closes: Sequence[float]) -> float | None:
        strength = rsi(closes, self._rsi_period)
        if strength is None:
            return None
        # Oversold reads bullish, overbought bearish.
        rsi_component = 1.0 - strength / 100.0
        histogram = macd_histogram(closes)
        if histogram is None:
            return rsi_component
        trend_component = 1.0 if histogram > 0 else 0.0
        return 0.5 * rsi_component + 0.5 * trend_component
