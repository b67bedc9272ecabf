# chart_decision/signals/temporal.py
from dataclasses import dataclass, field

RECENT = 5


@dataclass
class TemporalReport:
    """Entry-timing risk for the last bar.

    Attributes
    ----------
    volatility_risk, reversal_risk, candle_size_risk : str
        ``'low'``, ``'medium'`` or ``'high'``.
    risk_factors : list[str]
        One entry per high risk or timing problem.
    win_probability : float
        0.1-1.0 estimate starting from the caller's confidence.
    recommendation : str
        ``'enter'``, ``'wait'`` or ``'skip'``.
    time_to_expiry : float | None
        Seconds until the expiry candle closes, when timing is known.
    """

    volatility_risk: str = "low"
    reversal_risk: str = "low"
    candle_size_risk: str = "low"
    risk_factors: list[str] = field(default_factory=list)
    win_probability: float = 0.1
    recommendation: str = "wait"
    time_to_expiry: float | None = None


_RISK_MULTIPLIERS = {
    "volatility": {"high": 0.6, "medium": 0.8},
    "reversal": {"high": 0.5, "medium": 0.75},
    "candle_size": {"high": 0.7, "medium": 0.85},
}


def volatility_risk(bars) -> str:
    recent = bars[-RECENT:]
    ranges = [b.range / b.close * 100 if b.close else 0.0 for b in recent]
    avg = sum(ranges) / len(ranges)
    current = ranges[-1]
    if current > avg * 2:
        return "high"
    if current > avg * 1.5:
        return "medium"
    if len(ranges) >= 2 and ranges[-1] > ranges[-2]:
        return "medium"
    return "low"


def reversal_risk(bars, action: str) -> str:
    recent = bars[-RECENT:]
    cur = recent[-1]
    if action == "buy" and cur.upper_wick > cur.body * 1.5 and cur.upper_wick > cur.range * 0.4:
        return "high"
    if action == "sell" and cur.lower_wick > cur.body * 1.5 and cur.lower_wick > cur.range * 0.4:
        return "high"
    bulls = sum(b.is_bullish for b in recent)
    bears = sum(b.is_bearish for b in recent)
    if (action == "buy" and bears >= 4) or (action == "sell" and bulls >= 4):
        return "medium"
    closes = [b.close for b in recent]
    low = min(closes)
    if low > 0 and (max(closes) - low) / low * 100 > 0.3:
        return "medium"
    return "low"


def candle_size_risk(bars, seconds_into_candle: float | None = None, candle_seconds: float = 60) -> str:
    recent = bars[-RECENT:]
    cur = recent[-1]
    before = recent[:-1]
    avg = sum(b.range for b in before) / len(before) if before else 0.0
    if avg > 0 and cur.range > avg * 2.5:
        return "high"
    if avg > 0 and cur.range > avg * 1.8:
        return "medium"
    if seconds_into_candle is not None and seconds_into_candle < candle_seconds * 0.25:
        return "medium"
    return "low"


def assess_temporal_risk(
    bars,
    action: str,
    confidence: float = 1.0,
    seconds_into_candle: float | None = None,
    candle_seconds: float = 60,
) -> TemporalReport:
    """Risk of entering on the last bar right now.

    Without ``seconds_into_candle`` only the bar-shape risks are assessed.
    """
    if len(bars) < RECENT or action not in ("buy", "sell"):
        return TemporalReport()

    vol = volatility_risk(bars)
    rev = reversal_risk(bars, action)
    size = candle_size_risk(bars, seconds_into_candle, candle_seconds)

    prob = confidence
    prob *= _RISK_MULTIPLIERS["volatility"].get(vol, 1.0)
    prob *= _RISK_MULTIPLIERS["reversal"].get(rev, 1.0)
    prob *= _RISK_MULTIPLIERS["candle_size"].get(size, 1.0)

    factors = []
    if vol == "high":
        factors.append("high volatility")
    if rev == "high":
        factors.append("high reversal risk")
    if size == "high":
        factors.append("candle expansion risk")

    time_to_expiry = None
    if seconds_into_candle is not None:
        remaining = max(0.0, candle_seconds - seconds_into_candle)
        # late entries expire on the next candle
        time_to_expiry = remaining if seconds_into_candle <= candle_seconds / 2 else remaining + candle_seconds
        scale = candle_seconds / 60
        if time_to_expiry < 20 * scale:
            prob *= 0.7
            factors.append("not enough time to expiry")
        elif time_to_expiry < 35 * scale:
            prob *= 0.85
        if seconds_into_candle < 10 * scale:
            factors.append("entry too early in candle")
        if seconds_into_candle > 55 * scale:
            factors.append("entry too late in candle")

    cur = bars[-1]
    if (action == "buy" and cur.is_bearish) or (action == "sell" and cur.is_bullish):
        prob *= 0.8
    prob = round(max(0.1, min(1.0, prob)), 4)

    if prob < 0.4 or len(factors) >= 3:
        recommendation = "skip"
    elif len(factors) == 2 and prob < 0.65:
        recommendation = "wait"
    elif prob >= 0.6 and len(factors) <= 1:
        recommendation = "enter"
    else:
        recommendation = "wait"

    return TemporalReport(
        volatility_risk=vol,
        reversal_risk=rev,
        candle_size_risk=size,
        risk_factors=factors,
        win_probability=prob,
        recommendation=recommendation,
        time_to_expiry=time_to_expiry,
    )
