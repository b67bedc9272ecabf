import numpy as np
import pytest

from chart_decision.signals.technical import (
    analyze_technical,
    bollinger_b,
    bollinger_signal,
    ema,
    macd_signal,
    rsi,
    rsi_signal,
    stochastic_signal,
)
from conftest import build_flat, build_uptrend, make_bar


def build_downtrend(n=20):
    closes = [100 * 0.999**i for i in range(n)]
    return [make_bar(i, c + 0.05, c + 0.08, c - 0.03, c) for i, c in enumerate(closes)]


def kinds(report):
    return [s.kind for s in report.signals]


class TestReadings:
    def test_uptrend_is_overbought(self):
        report = analyze_technical(build_uptrend())
        assert report.rsi == 100.0
        assert report.stochastic_k > 80 and report.stochastic_d > 80
        assert report.macd_histogram is None
        assert kinds(report) == ["rsi", "stochastic", "bollinger"]
        assert report.signals[0].action == "sell"
        assert report.signals[0].confidence == 0.8

    def test_downtrend_is_oversold(self):
        report = analyze_technical(build_downtrend())
        assert report.rsi == 0.0
        assert report.stochastic_k < 20
        assert [s.action for s in report.signals[:2]] == ["buy", "buy"]

    def test_flat_series_is_neutral(self):
        report = analyze_technical(build_flat())
        assert report.rsi == pytest.approx(50, abs=5)
        assert report.signals[0].action == "wait"

    def test_short_series_has_no_readings(self):
        report = analyze_technical(build_uptrend(10))
        assert report.rsi is None
        assert report.signals == []
        assert analyze_technical([]).signals == []

    def test_long_series_adds_macd(self):
        report = analyze_technical(build_uptrend(40))
        assert report.macd_histogram is not None
        assert "macd" in kinds(report)

    def test_constant_closes(self):
        assert rsi([100.0] * 20) == 50.0
        assert bollinger_b([100.0] * 20) == 0.5
        assert np.allclose(ema([1.0, 1.0, 1.0], 3), 1.0)


class TestRules:
    @pytest.mark.parametrize(
        "value, action, confidence",
        [(25, "buy", 0.8), (35, "buy", 0.65), (50, "wait", 0.5), (65, "sell", 0.65), (75, "sell", 0.8)],
    )
    def test_rsi(self, value, action, confidence):
        s = rsi_signal(value)
        assert (s.action, s.confidence) == (action, confidence)

    @pytest.mark.parametrize(
        "line, hist, action, confidence",
        [(0.5, 0.2, "buy", 0.8), (0.5, 0.01, "buy", 0.65), (-0.5, 0.2, "buy", 0.5), (-0.5, -0.2, "sell", 0.8)],
    )
    def test_macd(self, line, hist, action, confidence):
        s = macd_signal(line, hist, 100.0)
        assert (s.action, s.confidence) == (action, confidence)

    def test_macd_flat_histogram_waits(self):
        assert macd_signal(0.0, 0.0, 100.0).action == "wait"

    @pytest.mark.parametrize(
        "k, d, action, confidence",
        [
            (10, 15, "buy", 0.8),
            (90, 85, "sell", 0.8),
            (25, 20, "buy", 0.65),
            (75, 78, "sell", 0.65),
            (50, 50, "wait", 0.5),
        ],
    )
    def test_stochastic(self, k, d, action, confidence):
        s = stochastic_signal(k, d)
        assert (s.action, s.confidence) == (action, confidence)

    @pytest.mark.parametrize(
        "b, action, confidence",
        [(-0.1, "buy", 0.8), (1.2, "sell", 0.8), (0.3, "buy", 0.5), (0.7, "sell", 0.5)],
    )
    def test_bollinger(self, b, action, confidence):
        s = bollinger_signal(b)
        assert (s.action, s.confidence) == (action, confidence)
