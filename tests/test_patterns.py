import pytest

from chart_decision.signals.patterns import (
    LOOKBACK,
    detect_patterns,
    doji,
    hammer,
    shooting_star,
)
from conftest import build_flat, build_uptrend, make_bar


def kinds(report):
    return {p.kind: p for p in report.patterns}


def test_hammer():
    bar = make_bar(0, 10.0, 10.21, 9.0, 10.2)
    sig = hammer([bar], 0)
    assert sig.action == "buy"
    assert sig.confidence == pytest.approx(0.95)
    assert shooting_star([bar], 0) is None


def test_shooting_star():
    bar = make_bar(0, 10.2, 11.2, 9.99, 10.0)
    sig = shooting_star([bar], 0)
    assert sig.action == "sell"
    assert sig.confidence > 0.6


def test_doji_is_neutral():
    bar = make_bar(0, 10.0, 10.5, 9.5, 10.001)
    sig = doji([bar], 0)
    assert sig.action == "wait"
    assert sig.confidence == pytest.approx(0.79, abs=1e-3)


def test_flat_range_bar_is_ignored():
    bar = make_bar(0, 10.0, 10.0, 10.0, 10.0)
    assert doji([bar], 0) is None
    assert hammer([bar], 0) is None


def test_bullish_engulfing():
    bars = build_flat(5) + [make_bar(5, 10.5, 10.55, 9.95, 10.0), make_bar(6, 9.9, 10.85, 9.85, 10.8)]
    found = kinds(detect_patterns(bars))
    assert found["bullish_engulfing"].action == "buy"
    assert found["bullish_engulfing"].confidence == pytest.approx(0.9)


def test_morning_star():
    bars = [
        make_bar(0, 11.0, 11.05, 9.95, 10.0),
        make_bar(1, 9.9, 10.0, 9.8, 9.95),
        make_bar(2, 10.0, 10.85, 9.98, 10.8),
    ]
    found = kinds(detect_patterns(bars))
    assert found["morning_star"].action == "buy"
    assert found["morning_star"].confidence == pytest.approx(0.8)


def test_evening_star():
    bars = [
        make_bar(0, 10.0, 11.05, 9.95, 11.0),
        make_bar(1, 11.1, 11.2, 11.0, 11.05),
        make_bar(2, 11.0, 11.02, 10.15, 10.2),
    ]
    found = kinds(detect_patterns(bars))
    assert found["evening_star"].action == "sell"


def test_three_black_crows():
    bars = [
        make_bar(0, 12.0, 12.02, 10.98, 11.0),
        make_bar(1, 11.0, 11.02, 9.98, 10.0),
        make_bar(2, 10.0, 10.02, 8.98, 9.0),
    ]
    found = kinds(detect_patterns(bars))
    assert found["three_black_crows"].action == "sell"


def test_uptrend_reports_soldiers_once():
    report = detect_patterns(build_uptrend())
    names = [p.kind for p in report.patterns]
    assert names.count("three_white_soldiers") == 1
    assert report.best_confidence > 0.8


def test_report_is_bounded_and_sorted():
    report = detect_patterns(build_uptrend())
    confs = [p.confidence for p in report.patterns]
    assert len(confs) <= 5
    assert confs == sorted(confs, reverse=True)
    assert all(c > 0.6 for c in confs)


def test_patterns_outside_lookback_are_ignored():
    hammer_bar = make_bar(0, 100.0, 100.21, 99.0, 100.2)
    bars = [hammer_bar] + build_flat(LOOKBACK)
    assert "hammer" not in kinds(detect_patterns(bars))
    assert "hammer" in kinds(detect_patterns(bars[: LOOKBACK]))


def test_flat_series_has_no_patterns():
    assert detect_patterns(build_flat()).count == 0
