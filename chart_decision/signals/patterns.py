# chart_decision/signals/patterns.py
from dataclasses import dataclass, field
from typing import Callable

from ..types import OHLCBar, Signal

LOOKBACK = 15
MIN_CONFIDENCE = 0.6
TOP_N = 5


@dataclass
class PatternReport:
    """Candlestick patterns found in the look-back window.

    Attributes
    ----------
    patterns : list[Signal]
        At most ``TOP_N`` patterns, unique by kind, highest confidence first.
    """

    patterns: list[Signal] = field(default_factory=list)

    @property
    def signals(self) -> list[Signal]:
        return self.patterns

    @property
    def count(self) -> int:
        return len(self.patterns)

    @property
    def best_confidence(self) -> float:
        return max((p.confidence for p in self.patterns), default=0.0)


def _strength(confidence: float) -> str:
    if confidence >= 0.8:
        return "strong"
    if confidence >= 0.7:
        return "moderate"
    return "weak"


def _signal(kind: str, action: str, confidence: float, *evidence: str) -> Signal:
    confidence = round(confidence, 4)
    return Signal(kind, action, confidence, evidence=list(evidence), strength=_strength(confidence))


def _ratios(bar: OHLCBar) -> tuple[float, float, float] | None:
    """(body, upper wick, lower wick) as fractions of the range."""
    rng = bar.range
    if rng <= 0:
        return None
    return bar.body / rng, bar.upper_wick / rng, bar.lower_wick / rng


# ---------- Single bar ----------
def doji(bars: list[OHLCBar], i: int) -> Signal | None:
    r = _ratios(bars[i])
    if r is None or r[0] >= 0.05:
        return None
    return _signal("doji", "wait", min(0.9, 0.8 - r[0] * 10), f"body {r[0]:.1%} of range")


def hammer(bars: list[OHLCBar], i: int) -> Signal | None:
    bar = bars[i]
    r = _ratios(bar)
    if r is None:
        return None
    br, uwr, lwr = r
    if br < 0.3 and lwr > 0.5 and uwr < 0.1 and bar.lower_wick > 2 * bar.body:
        conf = min(0.95, 0.5 + lwr * 0.8 + (0.3 - br))
        return _signal("hammer", "buy", conf, f"lower wick {lwr:.0%} of range")
    return None


def shooting_star(bars: list[OHLCBar], i: int) -> Signal | None:
    bar = bars[i]
    r = _ratios(bar)
    if r is None:
        return None
    br, uwr, lwr = r
    if br < 0.3 and uwr > 0.5 and lwr < 0.1 and bar.upper_wick > 2 * bar.body:
        conf = min(0.95, 0.5 + uwr * 0.8 + (0.3 - br))
        return _signal("shooting_star", "sell", conf, f"upper wick {uwr:.0%} of range")
    return None


# ---------- Two bars ----------
def _engulfing(bars: list[OHLCBar], i: int, bullish: bool) -> Signal | None:
    if i < 1:
        return None
    prev, cur = bars[i - 1], bars[i]
    if prev.body <= 0:
        return None
    if bullish:
        shaped = prev.is_bearish and cur.is_bullish and cur.open <= prev.close and cur.close >= prev.open
    else:
        shaped = prev.is_bullish and cur.is_bearish and cur.open >= prev.close and cur.close <= prev.open
    ratio = cur.body / prev.body
    if not shaped or ratio <= 1.2:
        return None
    kind = "bullish_engulfing" if bullish else "bearish_engulfing"
    return _signal(kind, "buy" if bullish else "sell", min(0.9, 0.6 + ratio * 0.2), f"body {ratio:.1f}x previous")


def bullish_engulfing(bars: list[OHLCBar], i: int) -> Signal | None:
    return _engulfing(bars, i, bullish=True)


def bearish_engulfing(bars: list[OHLCBar], i: int) -> Signal | None:
    return _engulfing(bars, i, bullish=False)


# ---------- Three bars ----------
def _star(bars: list[OHLCBar], i: int, bullish: bool) -> Signal | None:
    if i < 2:
        return None
    first, mid, last = bars[i - 2], bars[i - 1], bars[i]
    r_first, r_mid = _ratios(first), _ratios(mid)
    if r_first is None or r_mid is None or r_first[0] < 0.5 or r_mid[0] >= 0.3:
        return None
    midpoint = (first.open + first.close) / 2
    half_body = first.body / 2
    if bullish:
        if not (first.is_bearish and last.is_bullish and last.close > midpoint):
            return None
        penetration = (last.close - midpoint) / half_body
    else:
        if not (first.is_bullish and last.is_bearish and last.close < midpoint):
            return None
        penetration = (midpoint - last.close) / half_body
    conf = min(0.9, 0.65 + 0.25 * min(1.0, penetration))
    kind = "morning_star" if bullish else "evening_star"
    return _signal(kind, "buy" if bullish else "sell", conf, f"recovered {min(1.0, penetration):.0%} of first body")


def morning_star(bars: list[OHLCBar], i: int) -> Signal | None:
    return _star(bars, i, bullish=True)


def evening_star(bars: list[OHLCBar], i: int) -> Signal | None:
    return _star(bars, i, bullish=False)


def _three_in_a_row(bars: list[OHLCBar], i: int, bullish: bool) -> Signal | None:
    if i < 2:
        return None
    trio = bars[i - 2 : i + 1]
    body_ratios = []
    for k, bar in enumerate(trio):
        r = _ratios(bar)
        aligned = bar.is_bullish if bullish else bar.is_bearish
        if r is None or r[0] < 0.5 or not aligned:
            return None
        body_ratios.append(r[0])
        if k == 0:
            continue
        prev = trio[k - 1]
        if bullish and not (bar.close > prev.close and prev.open <= bar.open <= prev.close):
            return None
        if not bullish and not (bar.close < prev.close and prev.close <= bar.open <= prev.open):
            return None
    conf = min(0.9, 0.7 + 0.2 * min(body_ratios))
    kind = "three_white_soldiers" if bullish else "three_black_crows"
    return _signal(kind, "buy" if bullish else "sell", conf, f"three bodies >= {min(body_ratios):.0%} of range")


def three_white_soldiers(bars: list[OHLCBar], i: int) -> Signal | None:
    return _three_in_a_row(bars, i, bullish=True)


def three_black_crows(bars: list[OHLCBar], i: int) -> Signal | None:
    return _three_in_a_row(bars, i, bullish=False)


DETECTORS: tuple[Callable[[list[OHLCBar], int], Signal | None], ...] = (
    doji,
    hammer,
    shooting_star,
    bullish_engulfing,
    bearish_engulfing,
    morning_star,
    evening_star,
    three_white_soldiers,
    three_black_crows,
)


def detect_patterns(bars: list[OHLCBar], lookback: int = LOOKBACK) -> PatternReport:
    """Match every detector at each bar of the last ``lookback`` bars."""
    window = bars[-lookback:]
    best: dict[str, Signal] = {}
    for i in range(len(window)):
        for detector in DETECTORS:
            sig = detector(window, i)
            if sig is None or sig.confidence <= MIN_CONFIDENCE:
                continue
            # later bars win ties
            if sig.kind not in best or sig.confidence >= best[sig.kind].confidence:
                best[sig.kind] = sig
    ranked = sorted(best.values(), key=lambda s: -s.confidence)
    return PatternReport(ranked[:TOP_N])
