# chart_decision/detectors/region.py
import logging

import numpy as np

from ..types import ChartRegion, RasterImage

LOGGER = logging.getLogger(__name__)

SAMPLE_STRIDE = 2
MARGIN = 20


def ink_mask(rgb: np.ndarray) -> np.ndarray:
    """Boolean mask of grid-line, candle-colored and near black/white pixels."""
    px = rgb.astype(np.int16)
    r, g, b = px[..., 0], px[..., 1], px[..., 2]
    grid = (np.abs(r - g) < 10) & (np.abs(r - b) < 10) & (r > 200) & (r < 240)
    red = (r > 150) & (g < 100)
    green = (g > 150) & (r < 100)
    black = (r < 50) & (g < 50) & (b < 50)
    white = (r > 200) & (g > 200) & (b > 200)
    return grid | red | green | black | white


def full_region(image: RasterImage) -> ChartRegion:
    return ChartRegion(0, 0, image.width, image.height)


def detect_chart_region(image: RasterImage, stride: int = SAMPLE_STRIDE, margin: int = MARGIN) -> ChartRegion:
    """Bounding box of chart ink, padded by ``margin`` and clamped to the image.

    Falls back to the full image when nothing is found or the box collapses.
    """
    w, h = image.width, image.height
    if image.is_empty:
        return full_region(image)

    sampled = image.pixels[::stride, ::stride]
    ys, xs = np.nonzero(ink_mask(sampled))
    if xs.size == 0:
        LOGGER.warning("No chart ink found in %dx%d image, using full frame", w, h)
        return full_region(image)

    min_x, max_x = int(xs.min()) * stride, int(xs.max()) * stride
    min_y, max_y = int(ys.min()) * stride, int(ys.max()) * stride

    x0 = max(0, min_x - margin)
    y0 = max(0, min_y - margin)
    x1 = min(w, max_x + margin)
    y1 = min(h, max_y + margin)
    if x1 - x0 <= 0 or y1 - y0 <= 0:
        LOGGER.warning("Degenerate chart region (%d,%d,%d,%d), using full frame", x0, y0, x1, y1)
        return full_region(image)
    return ChartRegion(x0, y0, x1 - x0, y1 - y0)
