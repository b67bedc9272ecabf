# chart_decision/parsers/timeframe.py
import re

_TIMEFRAME_RE = re.compile(r"^\s*([1-9][0-9]?)?\s*(s|m|min|h|d|w|mn)\s*$", re.I)

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "min": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
    "mn": 2592000,
}

DEFAULT_SPACING_SECONDS = 60


def normalize_timeframe(text: str | None) -> str | None:
    """'15M' -> '15m', 'D' -> '1d'. Unknown text gives ``None``."""
    if not text:
        return None
    m = _TIMEFRAME_RE.match(text)
    if not m:
        return None
    count = int(m.group(1) or 1)
    unit = m.group(2).lower()
    if unit == "min":
        unit = "m"
    return f"{count}{unit}"


def timeframe_seconds(text: str | None, default: int = DEFAULT_SPACING_SECONDS) -> int:
    """Bar spacing in seconds for a timeframe label."""
    tf = normalize_timeframe(text)
    if tf is None:
        return default
    m = _TIMEFRAME_RE.match(tf)
    return int(m.group(1) or 1) * _UNIT_SECONDS[m.group(2).lower()]
