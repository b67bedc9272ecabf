# chart_decision/aggregator.py
import logging
from dataclasses import dataclass

from .config import ComponentName, Settings
from .gate import GateResult
from .scoring import pick_action, score_actions
from .signals.temporal import TemporalReport
from .types import Component, Decision, Signal

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarketSnapshot:
    """Report values the aggregator reads besides the components.

    Attributes
    ----------
    confluence_score : float
        0-100 confluence score.
    pattern_confidence : float
        Best candlestick pattern confidence.
    market_context_score : float
        0-100 operating score of the regime classifier.
    volatility : str
        Volatility tier.
    temporal_factors : int
        Number of temporal risk factors for the candidate entry.
    temporal_recommendation : str
        Entry-timing verdict for the candidate; ``'skip'`` vetoes the decision.
    """

    confluence_score: float = 0.0
    pattern_confidence: float = 0.0
    market_context_score: float = 0.0
    volatility: str = "normal"
    temporal_factors: int = 0
    temporal_recommendation: str = "wait"


def family_component(name: ComponentName, signals: list[Signal], weight: float) -> Component:
    """Collapse one extractor family into a component.

    The resolved action is the one with the largest confidence-weighted vote;
    the component confidence is the best confidence backing that action.
    """
    votes = {"buy": 0.0, "sell": 0.0, "wait": 0.0}
    for s in signals:
        votes[s.action] += s.confidence * s.weight
    if not signals or max(votes.values()) <= 0:
        return Component(name.value, 0.0, weight, "wait", False)
    top = max(votes.values())
    leaders = [a for a, v in votes.items() if v == top]
    action = leaders[0] if len(leaders) == 1 else "wait"
    confidence = max((s.confidence for s in signals if s.action == action), default=0.0)
    return Component(name.value, round(confidence, 4), weight, action, confidence > 0)


def gate_component(gate: GateResult, candidate: str, weight: float) -> Component:
    action = candidate if gate.recommendation == "enter" else "wait"
    confidence = round(gate.score / 100, 4)
    return Component(ComponentName.CONTEXT_GATE.value, confidence, weight, action, confidence > 0)


def technical_component(
    signals: list[Signal], weight: float, min_signal: float = 0.6, min_confidence: float = 0.65
) -> Component:
    """Indicator family: only directional readings above ``min_signal`` vote.

    The confidence is the mean of the readings backing the resolved action.
    """
    voting = [s for s in signals if s.action != "wait" and s.confidence > min_signal]
    comp = family_component(ComponentName.TECHNICAL, voting, weight)
    backing = [s.confidence for s in voting if s.action == comp.resolved_action]
    if not backing:
        return comp
    confidence = round(sum(backing) / len(backing), 4)
    return Component(comp.name, confidence, weight, comp.resolved_action, confidence > min_confidence)


def temporal_component(report: TemporalReport, candidate: str, weight: float) -> Component:
    if report.recommendation == "skip":
        return Component(ComponentName.TEMPORAL.value, 0.0, weight, "wait", False)
    entering = report.recommendation == "enter"
    action = candidate if entering else "wait"
    return Component(ComponentName.TEMPORAL.value, report.win_probability, weight, action, entering)


def candidate_action(components: list[Component], settings: Settings) -> str:
    return pick_action(score_actions(components), settings.min_action_score)


def candidate_confidence(components: list[Component], candidate: str, settings: Settings) -> float:
    """Amplified pre-gate score of the candidate, the starting point of the timing estimate."""
    if candidate not in ("buy", "sell"):
        return 0.0
    return min(1.0, score_actions(components)[candidate] * settings.confidence_amplifier)


def conflicting_votes(components: list[Component], settings: Settings) -> tuple[int, int] | None:
    """(buy, sell) counts of valid directional components when they disagree enough to veto."""
    buys = sum(1 for c in components if c.is_valid and c.resolved_action == "buy")
    sells = sum(1 for c in components if c.is_valid and c.resolved_action == "sell")
    if buys + sells < settings.conflict_min_components:
        return None
    if min(buys, sells) < settings.conflict_min_dissent:
        return None
    return buys, sells


def _vetoes(components: list[Component], gate: GateResult, snap: MarketSnapshot, settings: Settings) -> list[str]:
    reasons = []
    if gate.recommendation == "skip":
        overridden = (
            gate.trend_only
            and snap.confluence_score >= settings.override_confluence
            and snap.pattern_confidence >= settings.override_pattern_confidence
        )
        if overridden:
            LOGGER.info("Trend-only gate skip overridden by confluence %.0f", snap.confluence_score)
        else:
            reasons.extend(gate.reasons or ["context gate skip"])
    if snap.temporal_recommendation == "skip":
        reasons.append("entry timing too risky for the candidate action")
    if snap.market_context_score < settings.market_context_floor:
        reasons.append(
            f"market context score {snap.market_context_score:.0f} below {settings.market_context_floor:.0f}"
        )
    if snap.volatility == "extreme" and snap.confluence_score < settings.low_confluence:
        reasons.append(f"extreme volatility with confluence {snap.confluence_score:.0f}")
    valid = [c for c in components if c.is_valid]
    if not valid:
        reasons.append("no valid components")
    else:
        mean_conf = sum(c.confidence for c in valid) / len(valid)
        if mean_conf < settings.mean_confidence_floor:
            reasons.append(f"mean component confidence {mean_conf:.2f} below {settings.mean_confidence_floor:.2f}")
    conflict = conflicting_votes(components, settings)
    if conflict:
        reasons.append(f"conflicting signals ({conflict[0]} buy, {conflict[1]} sell)")
    return reasons


def risk_flags(confidence: float, gate: GateResult, snap: MarketSnapshot) -> list[str]:
    flags = []
    if snap.volatility in ("high", "extreme"):
        flags.append(f"{snap.volatility} volatility")
    if snap.market_context_score < 60:
        flags.append("weak market context")
    if snap.temporal_factors >= 3:
        flags.append("multiple temporal risk factors")
    if gate.recommendation != "enter":
        flags.append(f"context gate {gate.recommendation}")
    if confidence < 0.7:
        flags.append("moderate confidence")
    return flags


def risk_tier(flag_count: int) -> str:
    if flag_count == 0:
        return "low"
    if flag_count <= 2:
        return "medium"
    return "high"


def quality_score(valid_ratio: float, confidence: float, gate_score: float) -> float:
    return round(100 * (0.3 * valid_ratio + 0.4 * confidence + 0.3 * gate_score / 100), 2)


def aggregate(
    components: list[Component],
    gate: GateResult,
    snapshot: MarketSnapshot,
    settings: Settings | None = None,
) -> Decision:
    """Combine weighted components into one explainable ``Decision``."""
    settings = settings or Settings()

    vetoes = _vetoes(components, gate, snapshot, settings)
    if vetoes:
        LOGGER.debug("Decision vetoed: %s", "; ".join(vetoes))
        return Decision(False, "wait", 0.0, 0.0, "high", rejection_reasons=vetoes)

    scores = score_actions(components)
    action = pick_action(scores, settings.min_action_score)
    confidence = round(min(1.0, scores[action] * settings.confidence_amplifier), 4)

    valid = [c for c in components if c.is_valid]
    quality = quality_score(len(valid) / len(components), confidence, gate.score)
    flags = risk_flags(confidence, gate, snapshot)
    tier = risk_tier(len(flags))

    rejections = []
    if action == "wait":
        rejections.append(
            f"no directional consensus (buy {scores['buy']:.2f}, sell {scores['sell']:.2f})"
        )
    if len(valid) < settings.min_valid_components:
        rejections.append(f"only {len(valid)} valid components, need {settings.min_valid_components}")
    if confidence < settings.min_final_confidence:
        rejections.append(f"confidence {confidence:.2f} below {settings.min_final_confidence:.2f}")
    if rejections:
        return Decision(False, "wait", confidence, quality, tier, rejection_reasons=rejections)

    supporting = [f"{action} score {scores[action]:.2f} from {len(valid)} valid components"]
    supporting += [
        f"{c.name} {c.resolved_action} ({c.confidence:.2f})"
        for c in valid
        if c.resolved_action == action
    ]
    supporting.append(f"context gate {gate.recommendation} ({gate.score:.0f})")
    if flags:
        supporting.append("risk flags: " + ", ".join(flags))
    return Decision(True, action, confidence, quality, tier, supporting_reasons=supporting)
