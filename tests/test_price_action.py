from dataclasses import replace

from chart_decision.signals.price_action import absorptions, detect_price_action, is_local_high, rejections
from conftest import build_flat, build_uptrend, make_bar


def found(report, kind, action):
    return [s for s in report.signals if s.kind == kind and s.action == action]


def test_needs_ten_bars():
    assert detect_price_action(build_uptrend(9)).signals == []


def test_breakout_after_compression():
    report = detect_price_action(build_uptrend())
    (sig,) = found(report, "breakout", "buy")
    assert sig.strength == "moderate"
    assert sig.confidence == 0.7
    low, high, optimal = sig.entry_zone
    assert low <= optimal <= high


def test_bullish_pin_bar_rejection():
    bars = build_flat(9) + [make_bar(9, 100.0, 100.03, 99.8, 100.02)]
    report = detect_price_action(bars)
    (sig,) = found(report, "rejection", "buy")
    assert sig.strength == "strong"
    assert sig.confidence == 0.9


def test_bearish_pin_bar_rejection():
    bar = make_bar(1, 100.02, 100.25, 99.99, 100.0)
    (sig,) = rejections([make_bar(0, 100, 100.01, 99.99, 100), bar])
    assert sig.action == "sell"


def test_pin_bar_below_neighbour_highs_is_not_a_rejection():
    bars = [make_bar(i, 105, 110, 100, 106) for i in range(10)]
    bars[5] = make_bar(5, 101, 103, 100.4, 100.5)
    assert not is_local_high(bars, 5)
    assert rejections(bars) == []


def test_pin_bar_at_local_high_is_a_rejection():
    bars = [make_bar(i, 105, 110, 100, 106) for i in range(10)]
    bars[5] = make_bar(5, 101, 112, 100.4, 100.5)
    assert [(s.kind, s.action) for s in rejections(bars)] == [("rejection", "sell")]


def test_bullish_absorption():
    bars = build_flat(9) + [make_bar(9, 99.97, 100.06, 99.96, 100.05)]
    (sig,) = absorptions(bars)
    assert (sig.action, sig.strength, sig.confidence) == ("buy", "strong", 0.75)
    assert found(detect_price_action(bars), "absorption", "buy")


def test_bearish_absorption():
    bars = build_flat(9) + [make_bar(9, 100.03, 100.04, 99.94, 99.95)]
    (sig,) = absorptions(bars)
    assert (sig.action, sig.strength, sig.confidence) == ("sell", "strong", 0.75)
    assert found(detect_price_action(bars), "absorption", "sell")


def test_liquidity_sweep():
    bars = build_flat(10)
    bars[7] = replace(bars[7], low=99.9)
    bars[8] = replace(bars[8], close=100.05, high=100.06)
    report = detect_price_action(bars)
    assert found(report, "liquidity_sweep", "buy")


def test_institutional_move():
    bars = build_flat(9) + [make_bar(9, 100.0, 100.42, 99.98, 100.4)]
    report = detect_price_action(bars)
    (sig,) = found(report, "institutional_move", "buy")
    assert sig.strength == "strong"


def test_signals_sorted_by_confidence():
    bars = build_flat(9) + [make_bar(9, 100.0, 100.42, 99.98, 100.4)]
    confs = [s.confidence for s in detect_price_action(bars).signals]
    assert confs == sorted(confs, reverse=True)


def test_flat_series_is_quiet():
    assert detect_price_action(build_flat()).signals == []
