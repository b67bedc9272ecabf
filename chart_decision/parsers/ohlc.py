# chart_decision/parsers/ohlc.py
import logging
import time

from ..types import Candle, ChartRegion, OHLCBar, PriceCalibration
from .timeframe import timeframe_seconds

LOGGER = logging.getLogger(__name__)

PRICE_DECIMALS = 2


def pixel_to_price(y: int, calibration: PriceCalibration, region: ChartRegion) -> float:
    """Price at row ``y``; the top of the region is ``max_price``. Never negative."""
    price = calibration.max_price - (y - region.y) / calibration.pixel_per_unit
    return max(0.0, price)


def candle_to_bar(
    candle: Candle,
    index: int,
    calibration: PriceCalibration,
    region: ChartRegion,
    timestamp: float | None = None,
) -> OHLCBar:
    top = round(pixel_to_price(candle.body_top, calibration, region), PRICE_DECIMALS)
    bottom = round(pixel_to_price(candle.body_bottom, calibration, region), PRICE_DECIMALS)
    high = round(pixel_to_price(candle.wick_top, calibration, region), PRICE_DECIMALS)
    low = round(pixel_to_price(candle.wick_bottom, calibration, region), PRICE_DECIMALS)

    # only green closes above its open
    if candle.color == "green":
        open_, close = bottom, top
    else:
        open_, close = top, bottom

    return OHLCBar(
        index=index,
        open=open_,
        high=max(high, open_, close),
        low=min(low, open_, close),
        close=close,
        volume_proxy=float(candle.total_height * candle.width),
        source_position=(candle.center_x, candle.wick_top),
        timestamp=timestamp,
    )


def synthesize_bars(
    candles: list[Candle],
    calibration: PriceCalibration,
    region: ChartRegion,
    timeframe: str | None = None,
    now: float | None = None,
) -> list[OHLCBar]:
    """Convert candles (ordered by x) into an ordered bar series.

    Timestamps are synthetic: the right-most bar sits at ``now`` and earlier
    bars step back by the timeframe spacing.
    """
    if not candles:
        return []
    spacing = timeframe_seconds(timeframe)
    now = time.time() if now is None else now
    n = len(candles)
    bars = [
        candle_to_bar(c, i, calibration, region, timestamp=now - (n - 1 - i) * spacing)
        for i, c in enumerate(candles)
    ]
    LOGGER.debug("Synthesized %d bars at %ds spacing", n, spacing)
    return bars
