"""Scenario definitions — named macro regimes and risk-tolerance scaling.

Maps scenario names to the multipliers the sampler applies to nominal link
values, and risk tolerances to the variance scale used when sampling and the
variance penalty used when scoring candidate paths.
"""
from __future__ import annotations

from dataclasses import dataclass

from flowsim.models.simulation import RiskTolerance


@dataclass(frozen=True)
class ScenarioParams:
    """Parameters for a single sampling scenario."""
    name: str
    value_multiplier: float
    volatility_multiplier: float
    skew: float = 0.0  # in [-1, 1]; negative damps upside shocks


_SCENARIOS: dict[str, ScenarioParams] = {
    "baseline": ScenarioParams(
        name="baseline",
        value_multiplier=1.0,
        volatility_multiplier=1.0,
    ),
    "recession": ScenarioParams(
        name="recession",
        value_multiplier=0.85,
        volatility_multiplier=1.3,
        skew=-0.5,
    ),
    "growth": ScenarioParams(
        name="growth",
        value_multiplier=1.12,
        volatility_multiplier=1.15,
        skew=0.5,
    ),
}

# Tunable constants, not a contract
_RISK_SCALE: dict[RiskTolerance, float] = {
    RiskTolerance.conservative: 0.6,
    RiskTolerance.moderate: 1.0,
    RiskTolerance.aggressive: 1.5,
}

_RISK_PENALTY: dict[RiskTolerance, float] = {
    RiskTolerance.conservative: 0.5,
    RiskTolerance.moderate: 0.1,
    RiskTolerance.aggressive: 0.0,
}


def get_scenario_params(name: str) -> ScenarioParams:
    """Return scenario parameters by name. Defaults to baseline if unknown."""
    return _SCENARIOS.get(name, _SCENARIOS["baseline"])


def list_scenario_names() -> list[str]:
    """Return all available scenario names."""
    return list(_SCENARIOS.keys())


def list_scenarios() -> list[ScenarioParams]:
    return list(_SCENARIOS.values())


def get_risk_scale(tolerance: RiskTolerance | str) -> float:
    """Multiplier on sampling dispersion for a risk tolerance."""
    return _RISK_SCALE[RiskTolerance(tolerance)]


def get_risk_penalty(tolerance: RiskTolerance | str) -> float:
    """Standard deviations subtracted from an arm's mean when picking the optimal path."""
    return _RISK_PENALTY[RiskTolerance(tolerance)]
