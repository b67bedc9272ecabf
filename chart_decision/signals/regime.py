# chart_decision/signals/regime.py
from dataclasses import dataclass, field

import numpy as np

from ..types import OHLCBar, Signal
from .confluence import efficiency_ratio, trend_direction

WINDOW = 20
RECENT = 5
MIN_BARS = 5

# ---------- Volatility ----------
LOW_RATIO = 0.6
NORMAL_RATIO = 1.3
HIGH_RATIO = 2.0
VOLATILITY_CONFIDENCE = {"low": 0.6, "normal": 0.8, "high": 0.4, "extreme": 0.1}

# ---------- Regime ----------
TREND_EFFICIENCY = 0.4
CHAOTIC_REVERSALS = 0.6
CHAOTIC_EFFICIENCY = 0.2
WICK_HUNT_RATIO = 0.35

# ---------- Volume ----------
ABNORMAL_VOLUME = 1.5
HIGH_SIGNIFICANCE = 2.0
VOLUME_TREND_BAND = 0.10

CONTEXT_PENALTIES = {
    "extreme": 50,
    "high": 25,
    "chaotic": 30,
    "manipulated": 40,
}
MANIPULATION_PENALTIES = {"high": 20, "medium": 10, "low": 0}


@dataclass(frozen=True)
class VolumeState:
    """Volume proxy summary.

    Attributes
    ----------
    trend : str
        ``'increasing'``, ``'decreasing'`` or ``'stable'`` (last 3 bars vs the 3 before).
    abnormal : bool
        Last bar above 1.5x the window average.
    significance : str
        ``'high'`` above 2x, ``'medium'`` above 1.5x, else ``'low'``.
    relative_to_average : float
        Last bar volume over the window average.
    """

    trend: str = "stable"
    abnormal: bool = False
    significance: str = "low"
    relative_to_average: float = 1.0


@dataclass(frozen=True)
class ManipulationCounts:
    fake_moves: int = 0
    stop_hunts: int = 0
    wick_hunts: int = 0

    @property
    def total(self) -> int:
        return self.fake_moves + self.stop_hunts + self.wick_hunts

    @property
    def risk(self) -> str:
        if self.total >= 4:
            return "high"
        if self.total >= 2:
            return "medium"
        return "low"


@dataclass
class RegimeReport:
    regime: str = "range"
    trend: str = "wait"
    volatility: str = "normal"
    volatility_ratio: float = 1.0
    volatility_trend: str = "stable"
    volume: VolumeState = field(default_factory=VolumeState)
    manipulation: ManipulationCounts = field(default_factory=ManipulationCounts)
    context_score: float = 50.0
    institutional_bias: str = "neutral"
    sentiment: str = "neutral"
    signals: list[Signal] = field(default_factory=list)

    def signal(self, kind: str) -> Signal | None:
        return next((s for s in self.signals if s.kind == kind), None)


def _mean(values) -> float:
    return float(np.mean(values)) if len(values) else 0.0


def classify_volatility(bars: list[OHLCBar]) -> tuple[str, float, str]:
    """(tier, recent/average range ratio, trend) over the window."""
    ranges = [b.range for b in bars[-WINDOW:]]
    avg = _mean(ranges)
    recent = _mean(ranges[-RECENT:])
    ratio = recent / avg if avg > 0 else 1.0
    if ratio < LOW_RATIO:
        tier = "low"
    elif ratio <= NORMAL_RATIO:
        tier = "normal"
    elif ratio <= HIGH_RATIO:
        tier = "high"
    else:
        tier = "extreme"

    before = ranges[-2 * RECENT : -RECENT]
    prev = _mean(before)
    if not before or prev <= 0:
        trend = "stable"
    elif recent > prev * 1.1:
        trend = "increasing"
    elif recent < prev * 0.9:
        trend = "decreasing"
    else:
        trend = "stable"
    return tier, round(ratio, 4), trend


def reversal_ratio(closes) -> float:
    """Share of close-to-close moves that flip direction."""
    signs = np.sign(np.diff(np.asarray(closes, dtype=float)))
    signs = signs[signs != 0]
    if signs.size < 2:
        return 0.0
    return float((signs[1:] != signs[:-1]).sum() / (signs.size - 1))


def count_manipulation(bars: list[OHLCBar]) -> ManipulationCounts:
    fake = hunts = wicks = 0
    for i, bar in enumerate(bars):
        rng = bar.range
        if rng <= 0:
            continue
        # strong bar fully retraced by the next one
        if i + 1 < len(bars) and bar.body >= 0.6 * rng:
            nxt = bars[i + 1]
            if (bar.is_bullish and nxt.close < bar.open) or (bar.is_bearish and nxt.close > bar.open):
                fake += 1
        if i >= 3:
            prior = bars[i - 3 : i]
            hi = max(b.high for b in prior)
            lo = min(b.low for b in prior)
            if (bar.high > hi and bar.close < hi) or (bar.low < lo and bar.close > lo):
                hunts += 1
        if bar.upper_wick > WICK_HUNT_RATIO * rng and bar.lower_wick > WICK_HUNT_RATIO * rng:
            wicks += 1
    return ManipulationCounts(fake, hunts, wicks)


def classify_volume(bars: list[OHLCBar]) -> VolumeState:
    volumes = [b.volume_proxy for b in bars[-WINDOW:]]
    avg = _mean(volumes)
    if avg <= 0:
        return VolumeState()
    last = volumes[-1]
    relative = last / avg

    recent, older = volumes[-3:], volumes[-6:-3]
    older_avg = _mean(older)
    if not older or older_avg <= 0:
        trend = "stable"
    elif _mean(recent) > older_avg * (1 + VOLUME_TREND_BAND):
        trend = "increasing"
    elif _mean(recent) < older_avg * (1 - VOLUME_TREND_BAND):
        trend = "decreasing"
    else:
        trend = "stable"

    if relative > HIGH_SIGNIFICANCE:
        significance = "high"
    elif relative > ABNORMAL_VOLUME:
        significance = "medium"
    else:
        significance = "low"
    return VolumeState(trend, relative > ABNORMAL_VOLUME, significance, round(relative, 4))


def institutional_bias(bars: list[OHLCBar]) -> str:
    """Majority direction of long-bodied bars among the last five."""
    long_bars = [b for b in bars[-RECENT:] if b.body > 0.7 * b.range]
    if len(long_bars) >= 3:
        bull = sum(b.is_bullish for b in long_bars)
        bear = sum(b.is_bearish for b in long_bars)
        if bull > bear:
            return "bullish"
        if bear > bull:
            return "bearish"
    return "neutral"


def sentiment(bars: list[OHLCBar]) -> str:
    if not bars:
        return "neutral"
    share = sum(b.is_bullish for b in bars) / len(bars)
    if share >= 0.8:
        return "very_bullish"
    if share >= 0.65:
        return "bullish"
    if share <= 0.2:
        return "very_bearish"
    if share <= 0.35:
        return "bearish"
    return "neutral"


def context_score(volatility: str, regime: str, manipulation_risk: str) -> float:
    """Operating score: 100 minus penalties, clamped to 0-100."""
    score = 100
    score -= CONTEXT_PENALTIES.get(volatility, 0)
    score -= CONTEXT_PENALTIES.get(regime, 0)
    score -= MANIPULATION_PENALTIES[manipulation_risk]
    return float(max(0, min(100, score)))


def analyze_regime(bars: list[OHLCBar]) -> RegimeReport:
    """Regime, volatility, volume and manipulation classification."""
    if len(bars) < MIN_BARS:
        return RegimeReport()
    window = bars[-WINDOW:]
    closes = [b.close for b in window]
    er = efficiency_ratio(closes)
    reversals = reversal_ratio(closes)
    direction = trend_direction(closes)

    tier, ratio, vol_trend = classify_volatility(window)
    volume = classify_volume(window)
    manipulation = count_manipulation(window)

    if er >= TREND_EFFICIENCY:
        regime = "trend"
    elif reversals > CHAOTIC_REVERSALS and er < CHAOTIC_EFFICIENCY:
        regime = "chaotic"
    elif manipulation.risk == "high":
        regime = "manipulated"
    else:
        regime = "range"

    score = context_score(tier, regime, manipulation.risk)
    last = window[-1]
    volume_action = "wait"
    if volume.abnormal and volume.trend == "increasing" and last.close != last.open:
        volume_action = "buy" if last.is_bullish else "sell"

    signals = [
        Signal(
            "market_context",
            direction if regime == "trend" else "wait",
            round(score / 100, 4),
            evidence=[f"regime {regime}", f"efficiency {er:.2f}", f"manipulation risk {manipulation.risk}"],
        ),
        Signal(
            "volatility",
            direction if tier in ("normal", "high") else "wait",
            VOLATILITY_CONFIDENCE[tier],
            evidence=[f"{tier} volatility ({ratio:.2f}x average range)", f"volatility {vol_trend}"],
        ),
        Signal(
            "volume",
            volume_action,
            round(min(1.0, volume.relative_to_average / 2), 4),
            evidence=[f"volume {volume.trend}", f"{volume.relative_to_average:.2f}x average"],
        ),
    ]
    return RegimeReport(
        regime=regime,
        trend=direction,
        volatility=tier,
        volatility_ratio=ratio,
        volatility_trend=vol_trend,
        volume=volume,
        manipulation=manipulation,
        context_score=score,
        institutional_bias=institutional_bias(window),
        sentiment=sentiment(window),
        signals=signals,
    )
