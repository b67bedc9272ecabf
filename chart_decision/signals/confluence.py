# chart_decision/signals/confluence.py
from dataclasses import dataclass, field

import numpy as np

from ..types import OHLCBar, Signal
from .patterns import detect_patterns

PIVOT_SPAN = 2
STRONG_LEVEL = 0.6
PROFILE_BINS = 24
VALUE_AREA = 0.70
MOMENTUM_BARS = 5
DIRECTIONAL_SCORE = 50


@dataclass(frozen=True)
class Level:
    """Clustered support or resistance price.

    Attributes
    ----------
    price : float
        Mean price of the clustered pivots.
    kind : str
        ``'support'`` below the last close, ``'resistance'`` otherwise.
    touches : int
        Pivots in the cluster.
    strength : float
        0-1 from touch count (70%) and recency (30%).
    """

    price: float
    kind: str
    touches: int
    strength: float

    @property
    def is_strong(self) -> bool:
        return self.strength >= STRONG_LEVEL


@dataclass(frozen=True)
class VolumeProfile:
    poc: float
    value_area_low: float
    value_area_high: float


@dataclass
class ConfluenceReport:
    score: float = 0.0
    levels: list[Level] = field(default_factory=list)
    profile: VolumeProfile | None = None
    trend: str = "wait"
    efficiency: float = 0.0
    momentum: float = 0.0
    pattern_count: int = 0
    signals: list[Signal] = field(default_factory=list)

    @property
    def strong_levels(self) -> list[Level]:
        return [lv for lv in self.levels if lv.is_strong]


def find_pivots(bars: list[OHLCBar], span: int = PIVOT_SPAN) -> list[tuple[int, float]]:
    """(index, price) of bars whose high/low is the extreme of +-span neighbours."""
    pivots = []
    for i in range(span, len(bars) - span):
        near = bars[i - span : i + span + 1]
        if bars[i].high >= max(b.high for b in near) and any(bars[i].high > b.high for b in near):
            pivots.append((i, bars[i].high))
        if bars[i].low <= min(b.low for b in near) and any(bars[i].low < b.low for b in near):
            pivots.append((i, bars[i].low))
    return pivots


def cluster_levels(bars: list[OHLCBar], pivots: list[tuple[int, float]]) -> list[Level]:
    if not bars or not pivots:
        return []
    last_close = bars[-1].close
    avg_range = sum(b.range for b in bars) / len(bars)
    tolerance = max(0.5 * avg_range, 0.001 * abs(last_close))

    groups: list[list[tuple[int, float]]] = []
    for idx, price in sorted(pivots, key=lambda p: p[1]):
        if groups and price - np.mean([p for _, p in groups[-1]]) <= tolerance:
            groups[-1].append((idx, price))
        else:
            groups.append([(idx, price)])

    n = len(bars)
    levels = []
    for group in groups:
        price = float(np.mean([p for _, p in group]))
        recency = (max(i for i, _ in group) + 1) / n
        strength = min(1.0, len(group) / 4) * 0.7 + recency * 0.3
        levels.append(
            Level(
                price=round(price, 4),
                kind="support" if price < last_close else "resistance",
                touches=len(group),
                strength=round(strength, 4),
            )
        )
    return sorted(levels, key=lambda lv: -lv.strength)


def volume_profile(bars: list[OHLCBar], bins: int = PROFILE_BINS) -> VolumeProfile | None:
    """Synthetic profile: each bar spreads its volume over its range, body rows weighted double."""
    if not bars:
        return None
    lo = min(b.low for b in bars)
    hi = max(b.high for b in bars)
    if hi <= lo:
        return VolumeProfile(lo, lo, hi)
    edges = np.linspace(lo, hi, bins + 1)
    centers = (edges[:-1] + edges[1:]) / 2
    hist = np.zeros(bins)
    for b in bars:
        volume = b.volume_proxy or 1.0
        if b.range <= 0:
            hist[min(bins - 1, int((b.close - lo) / (hi - lo) * bins))] += volume
            continue
        overlap = np.clip(np.minimum(edges[1:], b.high) - np.maximum(edges[:-1], b.low), 0, None)
        body_lo, body_hi = min(b.open, b.close), max(b.open, b.close)
        body_overlap = np.clip(np.minimum(edges[1:], body_hi) - np.maximum(edges[:-1], body_lo), 0, None)
        weight = overlap + body_overlap
        total = weight.sum()
        if total > 0:
            hist += volume * weight / total

    poc_idx = int(np.argmax(hist))
    lo_idx = hi_idx = poc_idx
    covered = hist[poc_idx]
    target = VALUE_AREA * hist.sum()
    while covered < target and (lo_idx > 0 or hi_idx < bins - 1):
        below = hist[lo_idx - 1] if lo_idx > 0 else -1.0
        above = hist[hi_idx + 1] if hi_idx < bins - 1 else -1.0
        if above >= below:
            hi_idx += 1
            covered += above
        else:
            lo_idx -= 1
            covered += below
    return VolumeProfile(
        poc=round(float(centers[poc_idx]), 4),
        value_area_low=round(float(edges[lo_idx]), 4),
        value_area_high=round(float(edges[hi_idx + 1]), 4),
    )


def efficiency_ratio(closes) -> float:
    """Net move over path length, 0-1."""
    closes = np.asarray(closes, dtype=float)
    if closes.size < 2:
        return 0.0
    path = np.abs(np.diff(closes)).sum()
    if path <= 0:
        return 0.0
    return float(abs(closes[-1] - closes[0]) / path)


def trend_direction(closes) -> str:
    if len(closes) < 2 or closes[-1] == closes[0]:
        return "wait"
    return "buy" if closes[-1] > closes[0] else "sell"


def momentum(closes, bars: int = MOMENTUM_BARS) -> float:
    """Agreement of the last ``bars`` close-to-close moves, 0-1."""
    diffs = np.sign(np.diff(np.asarray(closes, dtype=float)[-(bars + 1) :]))
    if diffs.size == 0:
        return 0.0
    return float(abs(diffs.sum()) / diffs.size)


def analyze_confluence(bars: list[OHLCBar]) -> ConfluenceReport:
    """Levels, volume profile and a 0-100 confluence score."""
    if len(bars) < 2:
        return ConfluenceReport()
    closes = [b.close for b in bars]
    levels = cluster_levels(bars, find_pivots(bars))
    strong = [lv for lv in levels if lv.is_strong]
    patterns = detect_patterns(bars)
    er = efficiency_ratio(closes)
    mom = momentum(closes)
    trend = trend_direction(closes)

    score = min(30, 10 * patterns.count) + min(20, 10 * len(strong)) + 30 * er + 20 * mom
    score = round(min(100.0, score), 2)

    evidence = [f"{patterns.count} patterns", f"{len(strong)} strong levels", f"efficiency {er:.2f}"]
    action = trend if score >= DIRECTIONAL_SCORE else "wait"
    signal = Signal("confluence", action, round(score / 100, 4), evidence=evidence)
    return ConfluenceReport(
        score=score,
        levels=levels,
        profile=volume_profile(bars),
        trend=trend,
        efficiency=round(er, 4),
        momentum=round(mom, 4),
        pattern_count=patterns.count,
        signals=[signal],
    )
