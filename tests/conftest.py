import numpy as np
import pytest

from chart_decision.types import OHLCBar

BACKGROUND = (128, 128, 128)
GREEN = (30, 200, 60)
RED = (220, 50, 50)
WICK = (40, 40, 40)

CANDLE_WIDTH = 7
CANDLE_STEP = 12
LEFT = 20

COLORS = {"green": GREEN, "red": RED}


def draw_chart(shapes, height=200, width=None, background=BACKGROUND, wick=WICK):
    """Render candles onto a flat background.

    Each shape is ``(body_top, body_bottom, wick_top, wick_bottom, color)`` in
    pixel rows, where ``color`` is ``'green'``, ``'red'`` or an RGB tuple;
    candles are laid out left to right every ``CANDLE_STEP`` px.
    """
    width = width or LEFT * 2 + CANDLE_STEP * len(shapes)
    img = np.empty((height, width, 3), dtype=np.uint8)
    img[:, :] = background
    for k, (body_top, body_bottom, wick_top, wick_bottom, color) in enumerate(shapes):
        x = LEFT + k * CANDLE_STEP
        img[wick_top : wick_bottom + 1, x + CANDLE_WIDTH // 2] = wick
        img[body_top : body_bottom + 1, x : x + CANDLE_WIDTH] = COLORS.get(color, color)
    return img


def zigzag_shapes(n=12):
    shapes = []
    for k in range(n):
        base = 80 + (k % 4) * 6
        if k % 2 == 0:
            shapes.append((base, base + 20, base - 8, base + 28, "green"))
        else:
            shapes.append((base + 4, base + 18, base - 4, base + 30, "red"))
    return shapes


@pytest.fixture
def chart_image():
    return draw_chart


@pytest.fixture
def zigzag_chart():
    return draw_chart(zigzag_shapes())


def make_bar(index, open_, high, low, close, volume=1.0):
    return OHLCBar(index=index, open=open_, high=high, low=low, close=close, volume_proxy=volume)


def build_uptrend(n=20, step=0.001):
    """``n`` bars with +0.1% closes ending in a strong bullish bar on doubled volume."""
    closes = [100 * (1 + step) ** i for i in range(n)]
    bars = []
    for i, close in enumerate(closes):
        open_ = closes[i - 1] if i else close - 0.1
        bars.append(make_bar(i, open_, close + 0.03, open_ - 0.03, close))
    last = bars[-1]
    open_ = bars[-2].open
    bars[-1] = make_bar(last.index, open_, last.close + 0.01, open_ - 0.01, last.close, volume=2.0)
    return bars


def build_flat(n=20, price=100.0):
    """Alternating tiny bars around one price."""
    bars = []
    for i in range(n):
        if i % 2:
            bars.append(make_bar(i, price + 0.01, price + 0.02, price - 0.02, price - 0.01))
        else:
            bars.append(make_bar(i, price - 0.01, price + 0.02, price - 0.02, price + 0.01))
    return bars


@pytest.fixture
def uptrend_bars():
    return build_uptrend()


@pytest.fixture
def flat_bars():
    return build_flat()
