# chart_decision/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np

Action = Literal["buy", "sell", "wait"]
CandleColor = Literal["green", "red", "black", "white"]
RiskTier = Literal["low", "medium", "high"]
Strength = Literal["strong", "moderate", "weak"]


@dataclass(frozen=True)
class RasterImage:
    """Pixel buffer handed to the pipeline for one analysis cycle.

    Attributes
    ----------
    pixels : np.ndarray
        H x W x 3 array of RGB ``uint8`` values. Never mutated by the core.
    """

    pixels: np.ndarray

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0]) if self.pixels.ndim >= 2 else 0

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1]) if self.pixels.ndim >= 2 else 0

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    @classmethod
    def empty(cls) -> "RasterImage":
        return cls(np.zeros((0, 0, 3), dtype=np.uint8))

    @classmethod
    def from_array(cls, arr: Any) -> "RasterImage":
        """Normalize gray, RGB or RGBA arrays into an RGB ``uint8`` image."""
        a = np.asarray(arr)
        if a.size == 0 or a.ndim not in (2, 3):
            return cls.empty()
        if a.dtype != np.uint8:
            a = np.clip(np.nan_to_num(a.astype(np.float64)), 0, 255).astype(np.uint8)
        if a.ndim == 2:
            a = np.repeat(a[:, :, None], 3, axis=2)
        elif a.shape[2] == 1:
            a = np.repeat(a, 3, axis=2)
        elif a.shape[2] >= 4:
            a = a[:, :, :3]
        elif a.shape[2] != 3:
            return cls.empty()
        a = np.ascontiguousarray(a)
        a.setflags(write=False)
        return cls(a)

    @classmethod
    def from_buffer(cls, buffer: bytes | bytearray | memoryview, width: Any, height: Any) -> "RasterImage":
        """Build an image from a flat RGBA (or RGB) byte buffer.

        Bad dimensions or a short buffer give an empty image instead of an error.
        """
        try:
            w = int(width)
            h = int(height)
        except (TypeError, ValueError, OverflowError):
            return cls.empty()
        if w <= 0 or h <= 0:
            return cls.empty()
        flat = np.frombuffer(bytes(buffer), dtype=np.uint8)
        for channels in (4, 3):
            if flat.size == w * h * channels:
                return cls.from_array(flat.reshape(h, w, channels))
        return cls.empty()


@dataclass(frozen=True)
class ChartRegion:
    """Rectangle of the image that holds chart ink."""

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height


@dataclass(frozen=True)
class PriceCalibration:
    """Synthetic linear pixel -> price mapping.

    Attributes
    ----------
    min_price, max_price : float
        Bounds of the normalized scale (0-1000), not real market prices.
    pixel_per_unit : float
        Pixels per price unit; always finite and positive.
    axis_x : int
        Column where a right-hand price axis would sit.
    confidence : int
        0-100 confidence of the calibration.
    """

    min_price: float
    max_price: float
    pixel_per_unit: float
    axis_x: int
    confidence: int = 0


@dataclass(frozen=True)
class Candle:
    """Candle geometry in pixel space (y grows downwards)."""

    x: int
    width: int
    body_top: int
    body_bottom: int
    wick_top: int
    wick_bottom: int
    color: CandleColor
    confidence: float

    @property
    def center_x(self) -> int:
        return self.x + self.width // 2

    @property
    def total_height(self) -> int:
        return self.wick_bottom - self.wick_top

    @property
    def body_height(self) -> int:
        return self.body_bottom - self.body_top


@dataclass(frozen=True)
class OHLCBar:
    """One synthesized bar.

    Invariant: ``low <= min(open, close) <= max(open, close) <= high``.
    """

    index: int
    open: float
    high: float
    low: float
    close: float
    volume_proxy: float = 0.0
    source_position: tuple[int, int] | None = None
    timestamp: float | None = None

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def upper_wick(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_wick(self) -> float:
        return min(self.open, self.close) - self.low

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open


@dataclass
class Signal:
    """Output unit of every extractor.

    Attributes
    ----------
    kind : str
        Name of the detected shape or condition, e.g. ``'hammer'``, ``'breakout'``.
    action : str
        ``'buy'``, ``'sell'`` or ``'wait'``.
    confidence : float
        0-1.
    weight : float
        Relative importance inside its extractor family.
    evidence : list[str]
        Human readable facts backing the signal.
    strength : str | None
        ``'strong'``, ``'moderate'`` or ``'weak'`` where the extractor grades it.
    entry_zone : tuple[float, float, float] | None
        ``(low, high, optimal)`` band for an entry, when one applies.
    """

    kind: str
    action: Action
    confidence: float
    weight: float = 1.0
    evidence: list[str] = field(default_factory=list)
    strength: Strength | None = None
    entry_zone: tuple[float, float, float] | None = None


@dataclass(frozen=True)
class Component:
    """A named, weighted vote of one extractor family."""

    name: str
    confidence: float
    weight: float
    resolved_action: Action
    is_valid: bool


@dataclass
class Decision:
    """Final output of the aggregator.

    Only one of ``supporting_reasons`` / ``rejection_reasons`` is populated,
    depending on ``accepted``.
    """

    accepted: bool
    action: Action
    confidence: float
    quality_score: float
    risk_tier: RiskTier
    supporting_reasons: list[str] = field(default_factory=list)
    rejection_reasons: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted,
            "action": self.action,
            "confidence": self.confidence,
            "quality_score": self.quality_score,
            "risk_tier": self.risk_tier,
            "supporting_reasons": list(self.supporting_reasons),
            "rejection_reasons": list(self.rejection_reasons),
        }
