# chart_decision/detectors/axis.py
import logging
import math

from ..types import ChartRegion, PriceCalibration

LOGGER = logging.getLogger(__name__)

MIN_PRICE = 0.0
MAX_PRICE = 1000.0
AXIS_OFFSET = 5
DEFAULT_PIXEL_PER_UNIT = 1.0


def calibrate_price_axis(region: ChartRegion) -> PriceCalibration:
    """Normalized 0-1000 scale spanning the region height.

    The result is relative geometry only; no axis labels are read.
    """
    axis_x = region.x + region.width + AXIS_OFFSET
    height = region.height
    ppu = height / (MAX_PRICE - MIN_PRICE) if _is_positive(height) else 0.0

    if not _is_positive(ppu):
        LOGGER.warning("Invalid pixel/unit ratio for region height %r, using default", height)
        return PriceCalibration(MIN_PRICE, MAX_PRICE, DEFAULT_PIXEL_PER_UNIT, axis_x, confidence=50)

    return PriceCalibration(
        min_price=MIN_PRICE,
        max_price=MAX_PRICE,
        pixel_per_unit=ppu,
        axis_x=axis_x,
        confidence=85 if height > 100 else 65,
    )


def _is_positive(value) -> bool:
    try:
        return math.isfinite(value) and value > 0
    except TypeError:
        return False
