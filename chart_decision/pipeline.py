# chart_decision/pipeline.py
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import numpy as np

from .aggregator import (
    MarketSnapshot,
    aggregate,
    candidate_action,
    candidate_confidence,
    family_component,
    gate_component,
    technical_component,
    temporal_component,
)
from .config import PRE_GATE_COMPONENTS, ComponentName, Settings
from .detectors.axis import calibrate_price_axis
from .detectors.candles import detect_candles
from .detectors.region import detect_chart_region
from .gate import GateResult, validate_context
from .loaders import load_image
from .parsers.ohlc import synthesize_bars
from .parsers.timeframe import timeframe_seconds
from .signals.confluence import ConfluenceReport, analyze_confluence
from .signals.patterns import PatternReport, detect_patterns
from .signals.price_action import PriceActionReport, detect_price_action
from .signals.regime import RegimeReport, analyze_regime
from .signals.technical import TechnicalReport, analyze_technical
from .signals.temporal import TemporalReport, assess_temporal_risk
from .types import Candle, ChartRegion, Component, Decision, OHLCBar, PriceCalibration, RasterImage
from .validators import normalize_bars

LOGGER = logging.getLogger(__name__)

GATE_WINDOW = 20


@dataclass
class ExtractorReports:
    patterns: PatternReport = field(default_factory=PatternReport)
    price_action: PriceActionReport = field(default_factory=PriceActionReport)
    confluence: ConfluenceReport = field(default_factory=ConfluenceReport)
    regime: RegimeReport = field(default_factory=RegimeReport)
    technical: TechnicalReport = field(default_factory=TechnicalReport)

    @property
    def signal_count(self) -> int:
        return len(self.price_action.signals) + len(self.confluence.signals)


@dataclass
class AnalysisResult:
    """Everything one analysis cycle produced.

    Attributes
    ----------
    decision : Decision
        Final decision.
    bars : list[OHLCBar]
        Bars reconstructed from this image.
    region, calibration, candles
        Intermediate geometry for overlays; ``None``/empty when evaluating bars directly.
    reports : ExtractorReports
        Output of the extractor families.
    components : list[Component]
        Weighted votes handed to the aggregator.
    gate : GateResult
        Context gate outcome for the candidate action.
    temporal : TemporalReport
        Entry timing risk for the candidate action.
    chart_quality : str
        ``'excellent'``, ``'good'``, ``'moderate'`` or ``'poor'``.
    """

    decision: Decision
    bars: list[OHLCBar]
    reports: ExtractorReports
    components: list[Component]
    gate: GateResult
    temporal: TemporalReport
    chart_quality: str = "poor"
    region: ChartRegion | None = None
    calibration: PriceCalibration | None = None
    candles: list[Candle] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out = self.decision.to_dict()
        out["chart_quality"] = self.chart_quality
        out["bars"] = len(self.bars)
        out["context_gate"] = {"score": self.gate.score, "recommendation": self.gate.recommendation}
        out["components"] = [
            {"name": c.name, "action": c.resolved_action, "confidence": c.confidence, "weight": c.weight}
            for c in self.components
        ]
        if self.calibration is not None:
            out["calibration_confidence"] = self.calibration.confidence
        return out


def chart_quality(candle_count: int, pattern_count: int, signal_count: int) -> str:
    if candle_count >= 10 and pattern_count >= 2 and signal_count >= 3:
        return "excellent"
    if candle_count >= 7 and (pattern_count >= 1 or signal_count >= 2):
        return "good"
    if candle_count >= 5:
        return "moderate"
    return "poor"


def merge_bars(prior: list[OHLCBar] | None, bars: list[OHLCBar]) -> list[OHLCBar]:
    """Prior-cycle bars strictly older than the current series, then the current bars."""
    if not prior:
        return list(bars)
    first_ts = bars[0].timestamp if bars else None
    if first_ts is not None:
        prior = [b for b in prior if b.timestamp is not None and b.timestamp < first_ts]
    return normalize_bars(list(prior) + list(bars))


def _guarded(name: str, fn: Callable, default: Callable, bars: list[OHLCBar]):
    try:
        return fn(bars)
    except Exception:
        LOGGER.exception("Extractor %s failed, using empty report", name)
        return default()


EXTRACTORS = (
    ("patterns", detect_patterns, PatternReport),
    ("price_action", detect_price_action, PriceActionReport),
    ("confluence", analyze_confluence, ConfluenceReport),
    ("regime", analyze_regime, RegimeReport),
    ("technical", analyze_technical, TechnicalReport),
)


def run_extractors(bars: list[OHLCBar], max_workers: int = len(EXTRACTORS)) -> ExtractorReports:
    """Run the extractor families concurrently and join them in fixed order."""
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [pool.submit(_guarded, name, fn, default, bars) for name, fn, default in EXTRACTORS]
        results = [f.result() for f in futures]
    return ExtractorReports(*results)


def evaluate(
    bars: list[OHLCBar],
    prior_bars: list[OHLCBar] | None = None,
    settings: Settings | None = None,
    seconds_into_candle: float | None = None,
) -> AnalysisResult:
    """Run extractors, context gate and aggregator over a bar series."""
    settings = settings or Settings()
    bars = normalize_bars(bars)
    reports = run_extractors(bars)
    weights = settings.weights

    families = {
        ComponentName.PATTERNS: reports.patterns.signals,
        ComponentName.PRICE_ACTION: reports.price_action.signals,
        ComponentName.CONFLUENCE: reports.confluence.signals,
        ComponentName.MARKET_CONTEXT: [s for s in reports.regime.signals if s.kind == "market_context"],
        ComponentName.VOLATILITY: [s for s in reports.regime.signals if s.kind == "volatility"],
        ComponentName.VOLUME: [s for s in reports.regime.signals if s.kind == "volume"],
    }
    components = [
        technical_component(reports.technical.signals, weights[name])
        if name is ComponentName.TECHNICAL
        else family_component(name, families[name], weights[name])
        for name in PRE_GATE_COMPONENTS
    ]
    candidate = candidate_action(components, settings)

    window = merge_bars(prior_bars, bars)[-GATE_WINDOW:]
    gate = validate_context(window, candidate, reports.confluence.levels, reports.regime.volume)
    components.append(gate_component(gate, candidate, weights[ComponentName.CONTEXT_GATE]))

    temporal = assess_temporal_risk(
        window,
        candidate,
        confidence=candidate_confidence(components[:-1], candidate, settings),
        seconds_into_candle=seconds_into_candle,
        candle_seconds=timeframe_seconds(settings.timeframe),
    )
    components.append(temporal_component(temporal, candidate, weights[ComponentName.TEMPORAL]))
    snapshot = MarketSnapshot(
        confluence_score=reports.confluence.score,
        pattern_confidence=reports.patterns.best_confidence,
        market_context_score=reports.regime.context_score,
        volatility=reports.regime.volatility,
        temporal_factors=len(temporal.risk_factors),
        temporal_recommendation=temporal.recommendation,
    )
    decision = aggregate(components, gate, snapshot, settings)
    LOGGER.debug("Decision %s accepted=%s confidence=%.2f", decision.action, decision.accepted, decision.confidence)
    return AnalysisResult(
        decision=decision,
        bars=bars,
        reports=reports,
        components=components,
        gate=gate,
        temporal=temporal,
        chart_quality=chart_quality(len(bars), reports.patterns.count, reports.signal_count),
    )


def analyze(
    image: str | Path | bytes | np.ndarray | RasterImage,
    prior_bars: list[OHLCBar] | None = None,
    settings: Settings | None = None,
    now: float | None = None,
    seconds_into_candle: float | None = None,
) -> AnalysisResult:
    """Full chart screenshot -> decision cycle."""
    settings = settings or Settings()
    img = load_image(image)
    region = detect_chart_region(img)
    calibration = calibrate_price_axis(region)
    candles = detect_candles(img, region)
    bars = synthesize_bars(candles, calibration, region, timeframe=settings.timeframe, now=now)
    LOGGER.debug("Region %s, %d candles, %d bars", region, len(candles), len(bars))

    result = evaluate(bars, prior_bars=prior_bars, settings=settings, seconds_into_candle=seconds_into_candle)
    result.region = region
    result.calibration = calibration
    result.candles = candles
    return result
