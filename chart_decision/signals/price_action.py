# chart_decision/signals/price_action.py
from dataclasses import dataclass, field

from ..types import OHLCBar, Signal

WINDOW = 10
BOX_BARS = 4
MAX_BOX_RANGES = 3.5  # compression box height in average ranges
STRONG_BREAK = 0.005
SWEEP_LOOKBACK = 3
INSTITUTIONAL_RANGE = 2.0
EXTREME_SPAN = 2


@dataclass
class PriceActionReport:
    signals: list[Signal] = field(default_factory=list)


def _entry(low: float, high: float, optimal: float) -> tuple[float, float, float]:
    return round(low, 4), round(high, 4), round(optimal, 4)


def _pa(kind, action, strength, confidence, evidence, entry_zone, risk_reward) -> Signal:
    return Signal(
        kind=kind,
        action=action,
        confidence=round(confidence, 4),
        evidence=[evidence, f"risk/reward {risk_reward:.1f}"],
        strength=strength,
        entry_zone=entry_zone,
    )


def _neighbours(bars: list[OHLCBar], i: int, span: int = EXTREME_SPAN) -> list[OHLCBar]:
    return bars[max(0, i - span) : i] + bars[i + 1 : i + span + 1]


def is_local_high(bars: list[OHLCBar], i: int, span: int = EXTREME_SPAN) -> bool:
    """High of bar ``i`` is not exceeded by the ``span`` bars on either side."""
    near = _neighbours(bars, i, span)
    return bool(near) and bars[i].high >= max(b.high for b in near)


def is_local_low(bars: list[OHLCBar], i: int, span: int = EXTREME_SPAN) -> bool:
    near = _neighbours(bars, i, span)
    return bool(near) and bars[i].low <= min(b.low for b in near)


def rejections(bars: list[OHLCBar]) -> list[Signal]:
    """Pin bars at a local extreme whose long wick is more than 60% of the range and 2x the body."""
    out = []
    for i in range(1, len(bars)):
        bar = bars[i]
        body, rng = bar.body, bar.range
        if rng <= 0:
            continue
        ref = max(body, rng * 1e-3)
        for wick, action, closes_with, extreme in (
            (bar.upper_wick, "sell", bar.is_bearish, is_local_high),
            (bar.lower_wick, "buy", bar.is_bullish, is_local_low),
        ):
            if not (closes_with and wick > body * 2 and wick > rng * 0.6):
                continue
            if not extreme(bars, i):
                continue
            strength = "strong" if wick > body * 3 else "moderate" if wick > body * 2.5 else "weak"
            conf = min(0.9, wick / ref * 0.2 + 0.4)
            if action == "sell":
                zone = _entry(bar.close - body * 0.5, bar.close, bar.close - body * 0.2)
            else:
                zone = _entry(bar.close, bar.close + body * 0.5, bar.close + body * 0.2)
            out.append(
                _pa("rejection", action, strength, conf, f"pin bar wick {wick / rng:.0%} of range", zone,
                    3.5 if strength == "strong" else 2.8)
            )
    return out


def absorptions(bars: list[OHLCBar]) -> list[Signal]:
    """Wide bar that swallows the two before it against their direction."""
    out = []
    for i in range(2, len(bars)):
        cur, prev, before = bars[i], bars[i - 1], bars[i - 2]
        if cur.range <= prev.range * 1.5:
            continue
        if cur.is_bullish and cur.open <= prev.low and cur.close >= before.high:
            zone = _entry(cur.close - cur.body * 0.3, cur.close, cur.close - cur.body * 0.1)
            out.append(_pa("absorption", "buy", "strong", 0.75, "bullish bar absorbed selling", zone, 3.2))
        elif cur.is_bearish and cur.open >= prev.high and cur.close <= before.low:
            zone = _entry(cur.close, cur.close + cur.body * 0.3, cur.close + cur.body * 0.1)
            out.append(_pa("absorption", "sell", "strong", 0.75, "bearish bar absorbed buying", zone, 3.2))
    return out


def breakouts(bars: list[OHLCBar]) -> list[Signal]:
    """Strong close beyond a compressed box formed by the previous bars."""
    if len(bars) < BOX_BARS + 1:
        return []
    avg_range = sum(b.range for b in bars) / len(bars)
    box = bars[-BOX_BARS - 1 : -1]
    cur = bars[-1]
    box_high = max(b.high for b in box)
    box_low = min(b.low for b in box)
    if avg_range <= 0 or box_high - box_low > MAX_BOX_RANGES * avg_range:
        return []
    if cur.range <= 0 or cur.body / cur.range < 0.5:
        return []

    if cur.is_bullish and cur.close > box_high:
        strength = "strong" if cur.close > box_high * (1 + STRONG_BREAK) else "moderate"
        zone = _entry(box_high, cur.close + cur.body * 0.2, box_high + (cur.close - box_high) * 0.3)
        return [_pa("breakout", "buy", strength, 0.7, f"close above box high {box_high:.2f}", zone, 2.8)]
    if cur.is_bearish and cur.close < box_low:
        strength = "strong" if cur.close < box_low * (1 - STRONG_BREAK) else "moderate"
        zone = _entry(cur.close - cur.body * 0.2, box_low, box_low - (box_low - cur.close) * 0.3)
        return [_pa("breakout", "sell", strength, 0.7, f"close below box low {box_low:.2f}", zone, 2.8)]
    return []


def liquidity_sweeps(bars: list[OHLCBar]) -> list[Signal]:
    """Fake break of a recent extreme, reclaimed by the next bar."""
    out = []
    if len(bars) < 7:
        return out
    for i in range(SWEEP_LOOKBACK, len(bars) - 1):
        cur, nxt = bars[i], bars[i + 1]
        prior = bars[i - SWEEP_LOOKBACK : i]
        recent_low = min(b.low for b in prior)
        recent_high = max(b.high for b in prior)
        if cur.low < recent_low and nxt.close > cur.open and nxt.close > recent_low:
            zone = _entry(recent_low, nxt.close, recent_low + (nxt.close - recent_low) * 0.3)
            out.append(_pa("liquidity_sweep", "buy", "strong", 0.8, "lows swept then reclaimed", zone, 4.0))
        if cur.high > recent_high and nxt.close < cur.open and nxt.close < recent_high:
            zone = _entry(nxt.close, recent_high, recent_high - (recent_high - nxt.close) * 0.3)
            out.append(_pa("liquidity_sweep", "sell", "strong", 0.8, "highs swept then rejected", zone, 4.0))
    return out


def institutional_moves(bars: list[OHLCBar]) -> list[Signal]:
    """Last bar at least twice the average range with a dominant body."""
    if len(bars) < 2:
        return []
    cur = bars[-1]
    avg_range = sum(b.range for b in bars[:-1]) / (len(bars) - 1)
    if avg_range <= 0 or cur.range < INSTITUTIONAL_RANGE * avg_range or cur.body < 0.6 * cur.range:
        return []
    action = "buy" if cur.is_bullish else "sell"
    if action == "buy":
        zone = _entry(cur.close - cur.body * 0.5, cur.close, cur.close - cur.body * 0.25)
    else:
        zone = _entry(cur.close, cur.close + cur.body * 0.5, cur.close + cur.body * 0.25)
    return [_pa("institutional_move", action, "strong", 0.8, f"range {cur.range / avg_range:.1f}x average", zone, 3.0)]


def detect_price_action(bars: list[OHLCBar], window: int = WINDOW) -> PriceActionReport:
    """Price-action signals over the last ``window`` bars, best first."""
    if len(bars) < window:
        return PriceActionReport()
    recent = bars[-window:]
    signals = (
        rejections(recent)
        + absorptions(recent)
        + breakouts(recent)
        + liquidity_sweeps(recent)
        + institutional_moves(recent)
    )
    signals.sort(key=lambda s: -s.confidence)
    return PriceActionReport(signals)
