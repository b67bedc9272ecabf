# chart_decision/service.py
from __future__ import annotations

import base64
import logging
import math
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol

import numpy as np
import requests
from requests import RequestException, Session

from .config import Settings
from .loaders import encode_png, load_image
from .parsers.timeframe import normalize_timeframe
from .pipeline import AnalysisResult, analyze
from .types import Decision, OHLCBar, RasterImage, Signal

LOGGER = logging.getLogger(__name__)

SOURCE_REMOTE = "ai"
SOURCE_LOCAL = "fallback-local"

ACTION_ALIASES = {
    "buy": "buy",
    "compra": "buy",
    "sell": "sell",
    "venda": "sell",
    "wait": "wait",
    "neutral": "wait",
    "neutro": "wait",
    "hold": "wait",
}
RISK_ALIASES = {
    "low": "low",
    "baixo": "low",
    "medium": "medium",
    "médio": "medium",
    "medio": "medium",
    "high": "high",
    "alto": "high",
}


class RemoteAnalysisError(RuntimeError):
    """Raised when the remote analyzer is unreachable or answers garbage."""


@dataclass
class RemoteAnalysis:
    action: str
    confidence: float
    reasoning: str = ""
    risk_level: str = "medium"
    trend: str = "lateral"
    patterns: list[Signal] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_decision(self) -> Decision:
        reasons = [self.reasoning] if self.reasoning else []
        reasons += self.warnings
        if self.action == "wait":
            return Decision(
                False, "wait", self.confidence, round(self.confidence * 100, 2), self.risk_level,
                rejection_reasons=reasons or ["remote analyzer found no entry"],
            )
        return Decision(
            True, self.action, self.confidence, round(self.confidence * 100, 2), self.risk_level,
            supporting_reasons=reasons or [f"remote analyzer {self.action}"],
        )


def _confidence(value: Any) -> float:
    try:
        conf = float(value)
    except (TypeError, ValueError) as exc:
        raise RemoteAnalysisError(f"Invalid confidence: {value!r}") from exc
    if not math.isfinite(conf):
        raise RemoteAnalysisError(f"Invalid confidence: {value!r}")
    if conf > 1.0:
        conf /= 100.0
    return round(max(0.0, min(1.0, conf)), 4)


def parse_remote_analysis(payload: Mapping[str, Any]) -> RemoteAnalysis:
    """Normalize the analyzer JSON (Portuguese or English labels)."""
    if not isinstance(payload, Mapping):
        raise RemoteAnalysisError("Analysis payload is not an object")
    rec = payload.get("recommendation")
    if not isinstance(rec, Mapping):
        raise RemoteAnalysisError("Analysis payload has no recommendation")
    raw_action = str(rec.get("action", "")).strip().lower()
    if raw_action not in ACTION_ALIASES:
        raise RemoteAnalysisError(f"Unknown action: {raw_action!r}")
    action = ACTION_ALIASES[raw_action]

    patterns = []
    for p in payload.get("patterns") or []:
        if not isinstance(p, Mapping) or "type" not in p:
            continue
        desc = str(p.get("description", ""))
        if p.get("location"):
            desc = f"{desc} ({p['location']})"
        patterns.append(Signal(str(p["type"]), action, _confidence(p.get("confidence", 0)), evidence=[desc]))

    return RemoteAnalysis(
        action=action,
        confidence=_confidence(rec.get("confidence", 0)),
        reasoning=str(rec.get("reasoning", "")),
        risk_level=RISK_ALIASES.get(str(rec.get("riskLevel", "")).strip().lower(), "medium"),
        trend=str(payload.get("trend", "lateral")),
        patterns=patterns,
        warnings=[str(w) for w in payload.get("warnings") or []],
    )


class RemoteAnalyzer:
    """Client for the remote chart analysis endpoint."""

    def __init__(self, url: str, timeout: float = 15.0, session: Session | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def analyze(self, image: RasterImage, timeframe: str | None = None) -> RemoteAnalysis:
        png = encode_png(image)
        if not png:
            raise RemoteAnalysisError("Empty image")
        body = {
            "imageData": "data:image/png;base64," + base64.b64encode(png).decode("ascii"),
            "timeframe": normalize_timeframe(timeframe),
        }
        try:
            response = self._session.post(self.url, json=body, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except RequestException as exc:
            raise RemoteAnalysisError(f"Remote analysis failed: {exc}") from exc
        except ValueError as exc:
            raise RemoteAnalysisError("Remote analysis returned invalid JSON") from exc

        if not isinstance(data, Mapping):
            raise RemoteAnalysisError("Remote analysis returned a non-object")
        if data.get("error"):
            raise RemoteAnalysisError(str(data["error"]))
        return parse_remote_analysis(data.get("analysis", data))


@dataclass
class AnalysisRecord:
    """One analysis cycle with its provenance.

    Attributes
    ----------
    decision : Decision
        Decision from the remote analyzer or the local pipeline.
    source : str
        ``'ai'`` when the remote analyzer answered, ``'fallback-local'`` otherwise.
    created_at : float
        Epoch seconds.
    result : AnalysisResult | None
        Local pipeline output, present for local analyses.
    remote : RemoteAnalysis | None
        Remote analysis, present when ``source == 'ai'``.
    error : str | None
        Remote failure that triggered the fallback.
    record_id : str | None
        Id assigned by the store, if any.
    """

    decision: Decision
    source: str
    timeframe: str
    created_at: float
    result: AnalysisResult | None = None
    remote: RemoteAnalysis | None = None
    error: str | None = None
    record_id: str | None = None

    @property
    def bars(self) -> list[OHLCBar]:
        return self.result.bars if self.result is not None else []

    def to_dict(self) -> dict[str, Any]:
        out = self.result.to_dict() if self.result is not None else self.decision.to_dict()
        out.update(
            source=self.source,
            timeframe=self.timeframe,
            created_at=self.created_at,
            record_id=self.record_id,
        )
        if self.remote is not None:
            out["trend"] = self.remote.trend
            out["patterns"] = [
                {"kind": p.kind, "confidence": p.confidence, "evidence": list(p.evidence)}
                for p in self.remote.patterns
            ]
        if self.error:
            out["remote_error"] = self.error
        return out


class DecisionStore(Protocol):
    def save(self, record: AnalysisRecord) -> str | None: ...


class AnalysisService:
    """Remote analyzer first, local pipeline as fallback, then optional persistence."""

    def __init__(
        self,
        settings: Settings | None = None,
        remote: RemoteAnalyzer | None = None,
        store: DecisionStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or Settings()
        if remote is None and self.settings.remote_url:
            remote = RemoteAnalyzer(self.settings.remote_url, self.settings.remote_timeout)
        self.remote = remote
        self.store = store
        self.clock = clock

    def analyze(
        self,
        image: str | Path | bytes | np.ndarray | RasterImage,
        prior_bars: list[OHLCBar] | None = None,
    ) -> AnalysisRecord:
        img = load_image(image)
        now = self.clock()
        timeframe = normalize_timeframe(self.settings.timeframe) or "1m"
        record = None
        error = None

        if self.remote is not None:
            try:
                remote = self.remote.analyze(img, timeframe)
                record = AnalysisRecord(remote.to_decision(), SOURCE_REMOTE, timeframe, now, remote=remote)
            except RemoteAnalysisError as exc:
                LOGGER.warning("Remote analyzer unavailable, using local pipeline: %s", exc)
                error = str(exc)

        if record is None:
            result = analyze(img, prior_bars=prior_bars, settings=self.settings, now=now)
            record = AnalysisRecord(result.decision, SOURCE_LOCAL, timeframe, now, result=result, error=error)

        if self.store is not None:
            try:
                record.record_id = self.store.save(record)
            except Exception:
                LOGGER.exception("Failed to persist analysis record")
        return record
