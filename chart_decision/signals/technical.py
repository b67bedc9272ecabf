# chart_decision/signals/technical.py
from dataclasses import dataclass, field

import numpy as np

from ..types import OHLCBar, Signal

RSI_PERIOD = 14
MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9
STOCH_PERIOD = 14
STOCH_SMOOTH = 3
BOLLINGER_PERIOD = 20
BOLLINGER_WIDTH = 2.0

# ---------- Thresholds ----------
RSI_OVERSOLD = 30
RSI_LEAN_LOW = 40
RSI_LEAN_HIGH = 60
RSI_OVERBOUGHT = 70
STOCH_LOW = 20
STOCH_HIGH = 80
STOCH_CROSS_LOW = 30
STOCH_CROSS_HIGH = 70
MACD_STRONG = 0.0005  # histogram as a share of price

STRENGTH_CONFIDENCE = {"strong": 0.8, "moderate": 0.65, "weak": 0.5}


@dataclass
class TechnicalReport:
    """Oscillator readings over the bar series.

    Attributes
    ----------
    rsi : float | None
        Wilder RSI, 0-100.
    macd_histogram : float | None
        MACD line minus its signal line.
    stochastic_k, stochastic_d : float | None
        Fast %K and its moving average, 0-100.
    bollinger_b : float | None
        Position of the last close in the bands (0 lower, 1 upper).
    signals : list[Signal]
        One signal per indicator that had enough bars.
    """

    rsi: float | None = None
    macd_histogram: float | None = None
    stochastic_k: float | None = None
    stochastic_d: float | None = None
    bollinger_b: float | None = None
    signals: list[Signal] = field(default_factory=list)


def _signal(kind: str, action: str, strength: str, evidence: str) -> Signal:
    return Signal(kind, action, STRENGTH_CONFIDENCE[strength], evidence=[evidence])


def ema(values, period: int) -> np.ndarray:
    values = np.asarray(values, dtype=float)
    out = np.empty_like(values)
    if values.size == 0:
        return out
    alpha = 2.0 / (period + 1)
    out[0] = values[0]
    for i in range(1, values.size):
        out[i] = alpha * values[i] + (1 - alpha) * out[i - 1]
    return out


def rsi(closes, period: int = RSI_PERIOD) -> float | None:
    """Wilder RSI of the last close; ``None`` with fewer than ``period + 1`` closes."""
    closes = np.asarray(closes, dtype=float)
    if closes.size < period + 1:
        return None
    deltas = np.diff(closes)
    gains = np.clip(deltas, 0, None)
    losses = np.clip(-deltas, 0, None)
    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
    if avg_loss == 0:
        return 50.0 if avg_gain == 0 else 100.0
    return float(100 - 100 / (1 + avg_gain / avg_loss))


def macd_histogram(closes) -> tuple[float, float] | None:
    """(MACD line, histogram) of the last close."""
    closes = np.asarray(closes, dtype=float)
    if closes.size < MACD_SLOW + MACD_SIGNAL - 1:
        return None
    line = ema(closes, MACD_FAST) - ema(closes, MACD_SLOW)
    signal = ema(line, MACD_SIGNAL)
    return float(line[-1]), float(line[-1] - signal[-1])


def stochastic(
    bars: list[OHLCBar], period: int = STOCH_PERIOD, smooth: int = STOCH_SMOOTH
) -> tuple[float, float] | None:
    """(%K, %D) of the last bar."""
    if len(bars) < period + smooth - 1:
        return None
    ks = []
    for end in range(len(bars) - smooth + 1, len(bars) + 1):
        window = bars[end - period : end]
        lo = min(b.low for b in window)
        hi = max(b.high for b in window)
        ks.append(50.0 if hi == lo else (window[-1].close - lo) / (hi - lo) * 100)
    return ks[-1], float(np.mean(ks))


def bollinger_b(closes, period: int = BOLLINGER_PERIOD, width: float = BOLLINGER_WIDTH) -> float | None:
    closes = np.asarray(closes, dtype=float)
    if closes.size < period:
        return None
    window = closes[-period:]
    middle = window.mean()
    spread = width * window.std()
    if spread == 0:
        return 0.5
    return float((closes[-1] - (middle - spread)) / (2 * spread))


def rsi_signal(value: float) -> Signal:
    text = f"RSI {value:.1f}"
    if value < RSI_OVERSOLD:
        return _signal("rsi", "buy", "strong", text)
    if value < RSI_LEAN_LOW:
        return _signal("rsi", "buy", "moderate", text)
    if value > RSI_OVERBOUGHT:
        return _signal("rsi", "sell", "strong", text)
    if value > RSI_LEAN_HIGH:
        return _signal("rsi", "sell", "moderate", text)
    return _signal("rsi", "wait", "weak", text)


def macd_signal(line: float, hist: float, price: float) -> Signal:
    text = f"MACD histogram {hist:+.5f}"
    if hist == 0:
        return _signal("macd", "wait", "weak", text)
    action = "buy" if hist > 0 else "sell"
    if line * hist <= 0:
        return _signal("macd", action, "weak", text)
    strength = "strong" if price > 0 and abs(hist) / price >= MACD_STRONG else "moderate"
    return _signal("macd", action, strength, text)


def stochastic_signal(k: float, d: float) -> Signal:
    text = f"stochastic %K {k:.1f} %D {d:.1f}"
    if k < STOCH_LOW and d < STOCH_LOW:
        return _signal("stochastic", "buy", "strong", text)
    if k > STOCH_HIGH and d > STOCH_HIGH:
        return _signal("stochastic", "sell", "strong", text)
    if k > d and k < STOCH_CROSS_LOW:
        return _signal("stochastic", "buy", "moderate", text)
    if k < d and k > STOCH_CROSS_HIGH:
        return _signal("stochastic", "sell", "moderate", text)
    return _signal("stochastic", "wait", "weak", text)


def bollinger_signal(b: float) -> Signal:
    text = f"Bollinger %B {b:.2f}"
    if b <= 0:
        return _signal("bollinger", "buy", "strong", text)
    if b >= 1:
        return _signal("bollinger", "sell", "strong", text)
    if b < 0.5:
        return _signal("bollinger", "buy", "weak", text)
    if b > 0.5:
        return _signal("bollinger", "sell", "weak", text)
    return _signal("bollinger", "wait", "weak", text)


def analyze_technical(bars: list[OHLCBar]) -> TechnicalReport:
    """RSI, MACD, stochastic and Bollinger readings; indicators short of bars are left out."""
    report = TechnicalReport()
    if not bars:
        return report
    closes = [b.close for b in bars]

    report.rsi = rsi(closes)
    if report.rsi is not None:
        report.signals.append(rsi_signal(report.rsi))

    macd = macd_histogram(closes)
    if macd is not None:
        line, report.macd_histogram = macd
        report.signals.append(macd_signal(line, report.macd_histogram, closes[-1]))

    stoch = stochastic(bars)
    if stoch is not None:
        report.stochastic_k, report.stochastic_d = stoch
        report.signals.append(stochastic_signal(*stoch))

    report.bollinger_b = bollinger_b(closes)
    if report.bollinger_b is not None:
        report.signals.append(bollinger_signal(report.bollinger_b))
    return report
