# chart_decision/validators.py
import logging
import math
from dataclasses import replace

from .types import OHLCBar

LOGGER = logging.getLogger(__name__)


def _finite(*values: float) -> bool:
    return all(isinstance(v, (int, float)) and math.isfinite(v) for v in values)


def normalize_bar(bar: OHLCBar) -> OHLCBar | None:
    """Repair high/low so the bar spans its body; ``None`` for unusable bars."""
    if not _finite(bar.open, bar.high, bar.low, bar.close):
        return None
    high = max(bar.high, bar.open, bar.close)
    low = min(bar.low, bar.open, bar.close)
    volume = bar.volume_proxy if _finite(bar.volume_proxy) and bar.volume_proxy >= 0 else 0.0
    if high == bar.high and low == bar.low and volume == bar.volume_proxy:
        return bar
    return replace(bar, high=high, low=low, volume_proxy=volume)


def normalize_bars(bars: list[OHLCBar]) -> list[OHLCBar]:
    """Drop non-finite bars and repair the rest, re-indexing in order."""
    out = []
    dropped = 0
    for bar in bars:
        fixed = normalize_bar(bar)
        if fixed is None:
            dropped += 1
            continue
        if fixed.index != len(out):
            fixed = replace(fixed, index=len(out))
        out.append(fixed)
    if dropped:
        LOGGER.warning("Dropped %d non-finite bars", dropped)
    return out
