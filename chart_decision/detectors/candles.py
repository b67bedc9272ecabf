# chart_decision/detectors/candles.py
import logging
import math

import numpy as np

from ..types import Candle, ChartRegion, RasterImage

LOGGER = logging.getLogger(__name__)

# ---------- Thresholds ----------
DOMINANCE = 30  # |g - r| for a body-colored pixel
DARK_MAX = 80
LIGHT_MIN = 200
GRID_MIN = 200
GRID_MAX = 240
GRID_COVERAGE = 0.8  # share of a row/column a grid line spans
BACKGROUND_DISTANCE = 40  # L1 RGB distance from the background
NEUTRAL_SPREAD = 25  # max channel spread of a wick-like pixel
WICK_LUMA_DELTA = 40

MIN_ELEMENT_PIXELS = 3
MIN_TOTAL_HEIGHT = 3
MAX_CANDLE_WIDTH = 25
BODY_FILL = 0.5
GAP_TOLERANCE = 1

MIN_CONFIDENCE = 0.3
MAX_CONFIDENCE = 0.95
DEDUP_DISTANCE = 5
MAX_CANDLES = 150


def _luma(px: np.ndarray) -> np.ndarray:
    return 0.299 * px[..., 0] + 0.587 * px[..., 1] + 0.114 * px[..., 2]


def estimate_background(rgb: np.ndarray) -> np.ndarray:
    """Per-channel median of the region, sampled at stride 2."""
    sample = rgb[::2, ::2].reshape(-1, 3)
    if sample.size == 0:
        return np.zeros(3)
    return np.median(sample, axis=0)


def grid_mask(px: np.ndarray, coverage: float = GRID_COVERAGE) -> np.ndarray:
    """Light-gray pixels lying on a row or column mostly covered by light gray."""
    r, g, b = px[..., 0], px[..., 1], px[..., 2]
    light = (np.abs(r - g) < 10) & (np.abs(r - b) < 10) & (r > GRID_MIN) & (r < GRID_MAX)
    if light.size == 0:
        return light
    rows = light.mean(axis=1) >= coverage
    cols = light.mean(axis=0) >= coverage
    return light & (rows[:, None] | cols[None, :])


def classify_pixels(rgb: np.ndarray, background: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(body, wick)`` boolean masks for a region.

    Body-like pixels show strong red/green dominance or extreme luminance.
    Wick-like pixels are near-neutral but clearly darker/lighter than the
    background. Light-gray pixels on a line spanning most of the region
    (grid lines) are neither; shorter light-gray runs stay white bodies.
    """
    px = rgb.astype(np.int16)
    r, g, b = px[..., 0], px[..., 1], px[..., 2]
    bg = np.asarray(background, dtype=np.float64)

    grid = grid_mask(px)
    away = np.abs(px - bg).sum(axis=2) > BACKGROUND_DISTANCE

    dominant = np.abs(g - r) > DOMINANCE
    extreme = ((r < DARK_MAX) & (g < DARK_MAX) & (b < DARK_MAX)) | (
        (r > LIGHT_MIN) & (g > LIGHT_MIN) & (b > LIGHT_MIN)
    )
    body = (dominant | extreme) & away & ~grid

    spread = px.max(axis=2) - px.min(axis=2)
    bg_luma = float(_luma(bg))
    wick = (spread < NEUTRAL_SPREAD) & (np.abs(_luma(px) - bg_luma) >= WICK_LUMA_DELTA) & ~grid & ~body
    return body, wick


def classify_color(pixel) -> str:
    """Resolve one RGB sample into green/red/black/white."""
    r, g, b = (int(v) for v in pixel[:3])
    if abs(r - g) > 15:
        if g - r > 10:
            return "green"
        if r - g > 10:
            return "red"
    return "black" if 0.299 * r + 0.587 * g + 0.114 * b < 128 else "white"


def _longest_run(flags: np.ndarray, gap: int = GAP_TOLERANCE) -> tuple[int, int] | None:
    """Longest run of True values, bridging holes of at most ``gap`` rows."""
    best = None
    start = last = None
    for i in np.flatnonzero(flags):
        i = int(i)
        if start is None:
            start = last = i
            continue
        if i - last > gap + 1:
            if best is None or last - start > best[1] - best[0]:
                best = (start, last)
            start = i
        last = i
    if start is not None and (best is None or last - start > best[1] - best[0]):
        best = (start, last)
    return best


def _extend(flags: np.ndarray, idx: int, step: int, gap: int = GAP_TOLERANCE) -> int:
    n = flags.shape[0]
    while True:
        for jump in range(1, gap + 2):
            nxt = idx + step * jump
            if 0 <= nxt < n and flags[nxt]:
                idx = nxt
                break
        else:
            return idx


def _measure_window(
    rgb: np.ndarray,
    body: np.ndarray,
    ink: np.ndarray,
    col: int,
    width: int,
    region: ChartRegion,
) -> Candle | None:
    body_win = body[:, col : col + width]
    ink_win = ink[:, col : col + width]

    element_rows = ink_win.sum(axis=1) > 0
    body_rows = body_win.sum(axis=1) >= max(1, math.ceil(BODY_FILL * width))

    run = _longest_run(body_rows)
    if run is None:
        return None
    body_top, body_bottom = run
    wick_top = _extend(element_rows, body_top, -1)
    wick_bottom = _extend(element_rows, body_bottom, 1)

    element_count = int(element_rows[wick_top : wick_bottom + 1].sum())
    total_height = wick_bottom - wick_top
    body_height = body_bottom - body_top
    if element_count < MIN_ELEMENT_PIXELS or total_height < MIN_TOTAL_HEIGHT or body_height <= 0:
        return None

    density = element_count / (total_height + 1)
    has_wick = wick_top < body_top or wick_bottom > body_bottom
    body_ratio = body_height / total_height
    confidence = 0.6 * density
    if has_wick:
        confidence += 0.2
    if 0.1 <= body_ratio <= 0.9:
        confidence += 0.15
    confidence = round(min(MAX_CONFIDENCE, confidence), 4)

    mid_y = (body_top + body_bottom) // 2
    color = classify_color(rgb[mid_y, col + width // 2])

    return Candle(
        x=region.x + col,
        width=width,
        body_top=region.y + body_top,
        body_bottom=region.y + body_bottom,
        wick_top=region.y + wick_top,
        wick_bottom=region.y + wick_bottom,
        color=color,
        confidence=confidence,
    )


def dedupe_candles(candles: list[Candle], distance: int = DEDUP_DISTANCE) -> list[Candle]:
    """Drop candles closer than ``distance`` px to a higher-confidence one."""
    kept: list[Candle] = []
    for c in sorted(candles, key=lambda z: (-z.confidence, z.x)):
        if all(abs(c.x - k.x) >= distance for k in kept):
            kept.append(c)
    return sorted(kept, key=lambda z: z.x)


def detect_candles(image: RasterImage, region: ChartRegion, max_candles: int = MAX_CANDLES) -> list[Candle]:
    """Scan the region column by column and return candles ordered by x."""
    x0, y0 = max(0, region.x), max(0, region.y)
    x1, y1 = min(image.width, region.right), min(image.height, region.bottom)
    if image.is_empty or x1 - x0 <= 0 or y1 - y0 <= 0:
        return []
    region = ChartRegion(x0, y0, x1 - x0, y1 - y0)
    rgb = image.pixels[y0:y1, x0:x1]

    body, wick = classify_pixels(rgb, estimate_background(rgb))
    ink = body | wick
    structural = ink.sum(axis=0) >= MIN_ELEMENT_PIXELS

    candidates: list[Candle] = []
    n_cols = rgb.shape[1]
    col = 0
    while col < n_cols:
        if not structural[col]:
            col += 1
            continue
        width = 1
        while width < MAX_CANDLE_WIDTH and col + width < n_cols and structural[col + width]:
            width += 1
        candle = _measure_window(rgb, body, ink, col, width, region)
        if candle is not None and candle.confidence > MIN_CONFIDENCE:
            candidates.append(candle)
        col += width

    candles = dedupe_candles(candidates)
    if len(candles) > max_candles:
        candles = candles[-max_candles:]
    LOGGER.debug("Detected %d candles (%d candidates) in %s", len(candles), len(candidates), region)
    return candles
