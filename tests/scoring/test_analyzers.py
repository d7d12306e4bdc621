"""Tests for the sentiment and technical analyzers."""

from __future__ import annotations

from datetime import UTC, datetime

import numpy as np
import pytest

from token_scanner.gateway.models import Reply
from token_scanner.scoring.analyzers import (
    ReplyActivitySentiment,
    RsiMacdTechnical,
    ema,
    macd_histogram,
    rsi,
)

NOW = datetime(2026, 10, 19, tzinfo=UTC)


def reply(text: str) -> Reply:
    return Reply(reply_id="1", token_address="mint", text=text, user="u", timestamp=NOW)


class TestReplyActivitySentiment:
    """Tests for ReplyActivitySentiment."""

    def test_empty_thread_scores_zero(self):
        """Nobody talking is the worst social signal."""
        assert ReplyActivitySentiment().score([]) == 0.0

    def test_polarity_and_activity(self):
        """Lexicon polarity is blended with thread activity."""
        score = ReplyActivitySentiment().score([reply("to the MOON lfg"), reply("rug incoming")])

        polarity = (2 - 1) / 3
        activity = 2 / 50
        assert score == pytest.approx(0.5 * activity + 0.5 * (polarity + 1) / 2)

    def test_neutral_words(self):
        """Replies without lexicon words read as neutral polarity."""
        score = ReplyActivitySentiment().score([reply("hello there")])
        assert score == pytest.approx(0.5 * (1 / 50) + 0.25)

    def test_bounded(self):
        """Scores stay within [0, 1]."""
        score = ReplyActivitySentiment().score([reply("moon gem based")] * 200)
        assert 0.0 <= score <= 1.0
        assert score == pytest.approx(1.0)


class TestIndicators:
    """Tests for the numpy indicator helpers."""

    def test_ema_constant_series(self):
        """The EMA of a constant is that constant."""
        assert np.allclose(ema(np.full(10, 3.0), 5), 3.0)

    def test_rsi_rising(self):
        """A series that only rises has RSI 100."""
        assert rsi([float(i) for i in range(1, 21)]) == 100.0

    def test_rsi_flat(self):
        """A flat series has RSI 50."""
        assert rsi([1.0] * 20) == 50.0

    def test_rsi_falling(self):
        """A series that only falls has RSI 0."""
        assert rsi([float(i) for i in range(20, 0, -1)]) == pytest.approx(0.0)

    def test_rsi_short_series(self):
        """RSI needs more than one period of data."""
        assert rsi([1.0] * 14) is None

    def test_macd_needs_history(self):
        """MACD needs slow + signal bars."""
        assert macd_histogram([1.0] * 34) is None
        assert macd_histogram([1.0] * 35) == pytest.approx(0.0)


class TestRsiMacdTechnical:
    """Tests for RsiMacdTechnical."""

    def test_short_series(self):
        """Too little history gives no opinion."""
        assert RsiMacdTechnical().score([1.0, 2.0]) is None

    def test_rsi_only_without_macd_history(self):
        """Between RSI and MACD minimums only the RSI half is used."""
        closes = [float(i) for i in range(20, 0, -1)]
        assert RsiMacdTechnical().score(closes) == pytest.approx(1.0)

    def test_uptrend(self):
        """A steady uptrend is overbought but trending up."""
        closes = [float(i) for i in range(1, 41)]
        assert RsiMacdTechnical().score(closes) == pytest.approx(0.5)
