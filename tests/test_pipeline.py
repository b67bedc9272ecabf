import logging
from dataclasses import replace

import cv2
import numpy as np
import pytest

from chart_decision import pipeline
from chart_decision.gate import INSUFFICIENT_DATA
from chart_decision.pipeline import analyze, chart_quality, evaluate, merge_bars, run_extractors
from chart_decision.signals.patterns import PatternReport
from chart_decision.types import ChartRegion
from conftest import build_uptrend

NOW = 1_700_000_000.0


def test_zero_ink_image_is_rejected():
    img = np.full((120, 160, 3), 128, dtype=np.uint8)
    result = analyze(img, now=NOW)
    assert result.region == ChartRegion(0, 0, 160, 120)
    assert result.candles == []
    assert result.bars == []
    assert not result.decision.accepted
    assert result.decision.action == "wait"
    assert INSUFFICIENT_DATA in result.decision.rejection_reasons
    assert result.chart_quality == "poor"


def test_same_image_same_decision(zigzag_chart):
    first = analyze(zigzag_chart, now=NOW)
    second = analyze(zigzag_chart.copy(), now=NOW)
    assert first.decision == second.decision
    assert first.bars == second.bars


def test_bars_from_image_hold_invariant(zigzag_chart):
    result = analyze(zigzag_chart, now=NOW)
    assert len(result.bars) == 12
    assert result.calibration.confidence in (65, 85)
    for bar in result.bars:
        assert bar.low <= min(bar.open, bar.close) <= max(bar.open, bar.close) <= bar.high
    assert {c.name for c in result.components} >= {"patterns", "context_gate"}


def test_analyze_reads_files(tmp_path, zigzag_chart):
    path = tmp_path / "chart.png"
    cv2.imwrite(str(path), cv2.cvtColor(zigzag_chart, cv2.COLOR_RGB2BGR))
    result = analyze(str(path), now=NOW)
    assert [c.color for c in result.candles] == ["green", "red"] * 6


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        analyze(tmp_path / "nope.png")


def test_undecodable_file_raises(tmp_path):
    path = tmp_path / "broken.png"
    path.write_bytes(b"not an image")
    with pytest.raises(ValueError):
        analyze(path)


def test_uptrend_is_accepted_buy():
    result = evaluate(build_uptrend())
    assert result.gate.score >= 65
    assert result.gate.recommendation == "enter"
    assert result.decision.accepted
    assert result.decision.action == "buy"
    assert result.decision.risk_tier == "low"
    assert result.decision.rejection_reasons == []


def test_uptrend_components_include_indicators_and_timing():
    result = evaluate(build_uptrend())
    by_name = {c.name: c for c in result.components}
    assert list(by_name)[-2:] == ["context_gate", "temporal"]
    technical = by_name["technical"]
    assert technical.resolved_action == "sell" and technical.is_valid
    assert result.reports.technical.rsi == 100.0
    assert by_name["temporal"].confidence == result.temporal.win_probability
    assert result.temporal.recommendation != "skip"
    assert result.decision.action == "buy"


def test_short_series_skips():
    result = evaluate(build_uptrend(9))
    assert result.gate.score == 0
    assert result.gate.recommendation == "skip"
    assert not result.decision.accepted


def test_prior_bars_fill_the_gate_window():
    bars = build_uptrend()
    stamped = [replace(b, timestamp=float(i)) for i, b in enumerate(bars)]
    alone = evaluate(stamped[12:])
    assert alone.gate.reasons == [INSUFFICIENT_DATA]
    result = evaluate(stamped[12:], prior_bars=stamped[:12])
    assert INSUFFICIENT_DATA not in result.gate.reasons
    assert result.gate.score > 0


def test_merge_bars_drops_overlap():
    bars = [replace(b, timestamp=float(i)) for i, b in enumerate(build_uptrend())]
    merged = merge_bars(bars[:12], bars[8:])
    assert [b.timestamp for b in merged] == [float(i) for i in range(20)]
    assert [b.index for b in merged] == list(range(20))
    assert merge_bars(None, bars[:3]) == bars[:3]


def test_failing_extractor_is_contained(monkeypatch, caplog):
    def boom(bars):
        raise RuntimeError("boom")

    monkeypatch.setattr(
        pipeline,
        "EXTRACTORS",
        (("patterns", boom, PatternReport),) + pipeline.EXTRACTORS[1:],
    )
    with caplog.at_level(logging.ERROR):
        reports = run_extractors(build_uptrend())
    assert reports.patterns.count == 0
    assert reports.confluence.score > 0
    assert "patterns failed" in caplog.text


def test_chart_quality():
    assert chart_quality(12, 2, 3) == "excellent"
    assert chart_quality(8, 1, 0) == "good"
    assert chart_quality(5, 0, 0) == "moderate"
    assert chart_quality(2, 5, 5) == "poor"
