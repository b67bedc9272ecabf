# chart_decision/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping

LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "CHART_DECISION_"


class ComponentName(str, Enum):
    PATTERNS = "patterns"
    PRICE_ACTION = "price_action"
    CONFLUENCE = "confluence"
    MARKET_CONTEXT = "market_context"
    VOLATILITY = "volatility"
    VOLUME = "volume"
    TECHNICAL = "technical"
    CONTEXT_GATE = "context_gate"
    TEMPORAL = "temporal"


# Voting components used to pick the candidate action the gate validates.
# The gate and the temporal check both need that candidate, so they come after.
PRE_GATE_COMPONENTS: tuple[ComponentName, ...] = tuple(
    name for name in ComponentName if name not in (ComponentName.CONTEXT_GATE, ComponentName.TEMPORAL)
)

DEFAULT_WEIGHTS: dict[ComponentName, float] = {
    ComponentName.PATTERNS: 0.15,
    ComponentName.PRICE_ACTION: 0.15,
    ComponentName.CONFLUENCE: 0.15,
    ComponentName.MARKET_CONTEXT: 0.15,
    ComponentName.VOLATILITY: 0.05,
    ComponentName.VOLUME: 0.10,
    ComponentName.TECHNICAL: 0.10,
    ComponentName.CONTEXT_GATE: 0.10,
    ComponentName.TEMPORAL: 0.05,
}


@dataclass(frozen=True)
class ComponentWeights:
    """Single weight table shared by the context gate and the aggregator."""

    values: Mapping[ComponentName, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))

    def __post_init__(self) -> None:
        merged = dict(DEFAULT_WEIGHTS)
        for key, value in self.values.items():
            merged[ComponentName(key)] = max(0.0, float(value))
        object.__setattr__(self, "values", merged)

    def __getitem__(self, name: ComponentName | str) -> float:
        return self.values[ComponentName(name)]

    def total(self) -> float:
        return sum(self.values.values())


@dataclass(frozen=True)
class Settings:
    """Tunable thresholds for the decision engine and its collaborators.

    Attributes
    ----------
    weights : ComponentWeights
        Component weight table.
    min_action_score : float
        Minimum weighted score for buy/sell to beat ``wait``.
    confidence_amplifier : float
        Multiplier applied to the winning score (result capped at 1.0).
    min_valid_components : int
        Soft gate on the number of non-zero-confidence components.
    min_final_confidence : float
        Soft gate on the scaled confidence.
    market_context_floor : float
        Hard veto below this 0-100 market-context score.
    low_confluence : float
        Confluence score under which extreme volatility is vetoed.
    mean_confidence_floor : float
        Hard veto on the mean confidence of valid components.
    override_confluence : float
        Confluence score needed to override a trend-only gate skip.
    override_pattern_confidence : float
        Pattern confidence needed to override a trend-only gate skip.
    conflict_min_components : int
        Directional valid components needed before a split vote is vetoed.
    conflict_min_dissent : int
        Valid components that must vote against the majority for that veto.
    timeframe : str
        Default chart timeframe (bar spacing).
    remote_url : str | None
        Remote analyzer endpoint; ``None`` disables the remote call.
    remote_timeout : float
        Seconds before a remote call is abandoned.
    capture_interval : float
        Seconds between capture cycles.
    max_captures_per_minute : int
        Rate bound for the capture scheduler.
    """

    weights: ComponentWeights = field(default_factory=ComponentWeights)
    min_action_score: float = 0.25
    confidence_amplifier: float = 1.5
    min_valid_components: int = 3
    min_final_confidence: float = 0.55
    market_context_floor: float = 40.0
    low_confluence: float = 40.0
    mean_confidence_floor: float = 0.35
    override_confluence: float = 80.0
    override_pattern_confidence: float = 0.85
    conflict_min_components: int = 4
    conflict_min_dissent: int = 2
    timeframe: str = "1m"
    remote_url: str | None = None
    remote_timeout: float = 15.0
    capture_interval: float = 5.0
    max_captures_per_minute: int = 12

    def with_weights(self, **weights: float) -> "Settings":
        return replace(self, weights=ComponentWeights({ComponentName(k): v for k, v in weights.items()}))


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        LOGGER.warning("Ignoring invalid %s%s=%r", ENV_PREFIX, name, raw)
        return default


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    return int(_env_float(env, name, float(default)))


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build ``Settings`` from ``CHART_DECISION_*`` environment variables."""
    env = os.environ if env is None else env
    weights = {
        name: _env_float(env, f"WEIGHT_{name.name}", default)
        for name, default in DEFAULT_WEIGHTS.items()
    }
    defaults = Settings()
    return Settings(
        weights=ComponentWeights(weights),
        min_action_score=_env_float(env, "MIN_ACTION_SCORE", defaults.min_action_score),
        confidence_amplifier=_env_float(env, "CONFIDENCE_AMPLIFIER", defaults.confidence_amplifier),
        min_valid_components=_env_int(env, "MIN_VALID_COMPONENTS", defaults.min_valid_components),
        min_final_confidence=_env_float(env, "MIN_FINAL_CONFIDENCE", defaults.min_final_confidence),
        market_context_floor=_env_float(env, "MARKET_CONTEXT_FLOOR", defaults.market_context_floor),
        low_confluence=_env_float(env, "LOW_CONFLUENCE", defaults.low_confluence),
        mean_confidence_floor=_env_float(env, "MEAN_CONFIDENCE_FLOOR", defaults.mean_confidence_floor),
        override_confluence=_env_float(env, "OVERRIDE_CONFLUENCE", defaults.override_confluence),
        override_pattern_confidence=_env_float(
            env, "OVERRIDE_PATTERN_CONFIDENCE", defaults.override_pattern_confidence
        ),
        conflict_min_components=_env_int(env, "CONFLICT_MIN_COMPONENTS", defaults.conflict_min_components),
        conflict_min_dissent=_env_int(env, "CONFLICT_MIN_DISSENT", defaults.conflict_min_dissent),
        timeframe=env.get(ENV_PREFIX + "TIMEFRAME") or defaults.timeframe,
        remote_url=env.get(ENV_PREFIX + "REMOTE_URL") or None,
        remote_timeout=_env_float(env, "REMOTE_TIMEOUT", defaults.remote_timeout),
        capture_interval=_env_float(env, "CAPTURE_INTERVAL", defaults.capture_interval),
        max_captures_per_minute=_env_int(env, "MAX_CAPTURES_PER_MINUTE", defaults.max_captures_per_minute),
    )
