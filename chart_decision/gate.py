# chart_decision/gate.py
import logging
from dataclasses import dataclass, field

from .signals.confluence import Level
from .signals.regime import VolumeState
from .types import OHLCBar

LOGGER = logging.getLogger(__name__)

MIN_BARS = 10
TREND_BARS = 10
BASE_SCORE = 50
WAIT_SCORE = 30
ENTER_SCORE = 65
WAIT_FLOOR = 45

SIDEWAYS_RANGE_PCT = 0.1
SIDEWAYS_CHANGE_PCT = 0.05
LEVEL_PROXIMITY_PCT = 0.1
MIN_ROOM_PCT = 0.15

INSUFFICIENT_DATA = "insufficient data"


@dataclass
class GateResult:
    """Outcome of the short-window context check.

    ``trend_only`` marks a skip that would not have happened without the
    trend penalties; the aggregator may override such a skip.
    """

    score: float
    recommendation: str
    reasons: list[str] = field(default_factory=list)
    trend: str = "sideways"
    pullback: bool = False
    strong_candle: bool = False
    indecision: bool = False
    at_level: bool = False
    volume_confirmation: bool = False
    room_to_run: bool = True
    trend_only: bool = False

    @property
    def is_valid(self) -> bool:
        return self.recommendation == "enter"


def detect_trend(bars: list[OHLCBar]) -> str:
    """'up', 'down' or 'sideways' from net change and range of the bars."""
    first, last = bars[0].close, bars[-1].close
    if first <= 0 or last <= 0:
        return "sideways"
    change = (last - first) / first * 100
    spread = (max(b.high for b in bars) - min(b.low for b in bars)) / last * 100
    if spread < SIDEWAYS_RANGE_PCT or abs(change) < SIDEWAYS_CHANGE_PCT:
        return "sideways"
    return "up" if change > 0 else "down"


def has_pullback(bars: list[OHLCBar], trend: str) -> bool:
    """Counter move on the middle of the last three bars, then resumption."""
    if len(bars) < 3 or trend == "sideways":
        return False
    a, b, c = bars[-3:]
    if trend == "up":
        return a.close > b.close and c.close > b.close
    return a.close < b.close and c.close < b.close


def is_strong_confirmation(bar: OHLCBar, action: str) -> bool:
    if bar.range <= 0:
        return False
    direction = "buy" if bar.close > bar.open else "sell"
    return bar.body / bar.range >= 0.5 and direction == action


def has_indecision(bars: list[OHLCBar]) -> bool:
    """Two or more of the bars have a small body with wicks on both sides."""
    count = 0
    for bar in bars:
        rng = bar.range
        if rng <= 0:
            continue
        if bar.body < rng * 0.3 and bar.upper_wick > rng * 0.2 and bar.lower_wick > rng * 0.2:
            count += 1
    return count >= 2


def _pct(a: float, b: float) -> float:
    return abs(a - b) / b * 100 if b else float("inf")


def at_strong_level(price: float, action: str, levels: list[Level]) -> bool:
    wanted = "support" if action == "buy" else "resistance"
    return any(
        lv.kind == wanted and lv.is_strong and _pct(lv.price, price) <= LEVEL_PROXIMITY_PCT for lv in levels
    )


def room_to_run(price: float, action: str, levels: list[Level]) -> bool:
    if action == "buy":
        blocking = [lv for lv in levels if lv.kind == "resistance" and lv.price > price]
    else:
        blocking = [lv for lv in levels if lv.kind == "support" and lv.price < price]
    if not blocking:
        return True
    nearest = min(blocking, key=lambda lv: abs(lv.price - price))
    return _pct(nearest.price, price) >= MIN_ROOM_PCT


def _recommend(score: float) -> str:
    if score >= ENTER_SCORE:
        return "enter"
    if score >= WAIT_FLOOR:
        return "wait"
    return "skip"


def validate_context(
    bars: list[OHLCBar],
    action: str,
    levels: list[Level] | None = None,
    volume: VolumeState | None = None,
) -> GateResult:
    """Score a candidate action against the last bars.

    Parameters
    ----------
    bars : list[OHLCBar]
        Recent bars, oldest first. Fewer than ``MIN_BARS`` always skips.
    action : str
        Candidate ``'buy'``, ``'sell'`` or ``'wait'``.
    levels : list[Level], optional
        Support/resistance levels from the confluence engine.
    volume : VolumeState, optional
        Volume classification from the regime report.
    """
    if len(bars) < MIN_BARS:
        return GateResult(score=0, recommendation="skip", reasons=[INSUFFICIENT_DATA], indecision=True)

    trend = detect_trend(bars[-TREND_BARS:])
    if action not in ("buy", "sell"):
        return GateResult(
            score=WAIT_SCORE,
            recommendation="wait",
            reasons=["no entry signal"],
            trend=trend,
            indecision=has_indecision(bars[-3:]),
        )

    levels = levels or []
    price = bars[-1].close
    reasons = []
    score = BASE_SCORE
    trend_penalty = 0

    if trend == "sideways":
        reasons.append("price possibly sideways")
        score -= 25
        trend_penalty += 25
    else:
        score += 10

    pullback = has_pullback(bars[-5:], trend)
    if pullback:
        score += 15

    strong = is_strong_confirmation(bars[-1], action)
    if strong:
        score += 20
    else:
        reasons.append("weak confirmation candle")
        score -= 10

    indecision = has_indecision(bars[-3:])
    if indecision:
        reasons.append("indecision candles detected")
        score -= 15

    level = at_strong_level(price, action, levels)
    if level:
        score += 15

    vol_ok = volume is not None and volume.abnormal and volume.trend == "increasing"
    if vol_ok:
        score += 10

    room = room_to_run(price, action, levels)
    if not room:
        reasons.append("little room before next level")
        score -= 20

    aligned = (trend == "up" and action == "buy") or (trend == "down" and action == "sell")
    if aligned:
        score += 10
    else:
        reasons.append("signal against short-term trend")
        score -= 30
        trend_penalty += 30

    recommendation = _recommend(score)
    trend_only = recommendation == "skip" and trend_penalty > 0 and _recommend(score + trend_penalty) != "skip"
    if recommendation != "enter" and not reasons:
        reasons.append("context score too low")

    result = GateResult(
        score=max(0, min(100, score)),
        recommendation=recommendation,
        reasons=reasons,
        trend=trend,
        pullback=pullback,
        strong_candle=strong,
        indecision=indecision,
        at_level=level,
        volume_confirmation=vol_ok,
        room_to_run=room,
        trend_only=trend_only,
    )
    LOGGER.debug("Context gate %s: %s (%s)", action, result.recommendation, result.score)
    return result
