# chart_decision/scoring.py
from typing import Iterable

from .types import Component


def score_actions(components: Iterable[Component]) -> dict[str, float]:
    """Sum of ``confidence * weight`` per resolved action over valid components."""
    scores = {"buy": 0.0, "sell": 0.0, "wait": 0.0}
    for c in components:
        if c.is_valid:
            scores[c.resolved_action] += c.confidence * c.weight
    return scores


def pick_action(scores: dict[str, float], min_score: float) -> str:
    """Higher of buy/sell if it reaches ``min_score``; ties and weak scores give ``'wait'``."""
    buy, sell = scores.get("buy", 0.0), scores.get("sell", 0.0)
    if buy == sell:
        return "wait"
    action, best = ("buy", buy) if buy > sell else ("sell", sell)
    return action if best >= min_score else "wait"
