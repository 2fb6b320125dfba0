"""Scenario sampler — one stochastic realization of the flow graph per iteration.

Every draw comes from the ``random.Random`` passed in, so a run is fully
reproducible from its seed: same seed and same call sequence, same values.
"""
from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Optional, Sequence

from flowsim.models.graph import Distribution, UncertaintyDescriptor
from flowsim.models.simulation import RiskTolerance
from flowsim.simulation.graph import FlowGraph
from flowsim.simulation.scenarios import ScenarioParams, get_risk_scale, get_scenario_params


@dataclass(frozen=True)
class PerturbedGraph:
    """Sampled link values for one iteration, aligned with ``graph.links``."""
    scenario: str
    values: tuple[float, ...]

    def signed_value(self, graph: FlowGraph, link_index: int) -> float:
        return graph.link_sign(link_index) * self.values[link_index]

    def path_return(self, graph: FlowGraph, path: Sequence[int]) -> float:
        return sum(self.signed_value(graph, i) for i in path)


def draw_scenario(scenarios: Sequence[str], rng: random.Random) -> str:
    """Pick this iteration's scenario uniformly from the enabled set."""
    if len(scenarios) == 1:
        return str(scenarios[0])
    return str(scenarios[rng.randrange(len(scenarios))])


def _skewed_gauss(rng: random.Random, skew: float) -> float:
    """Standard normal shock with the side opposite ``skew`` damped."""
    z = rng.gauss(0.0, 1.0)
    if z * skew < 0:
        z *= 1.0 - abs(skew)
    return z


def _draw_multiplier(
    descriptor: UncertaintyDescriptor,
    scenario: ScenarioParams,
    risk_scale: float,
    rng: random.Random,
) -> float:
    spread = scenario.volatility_multiplier * risk_scale

    if descriptor.distribution == Distribution.normal:
        sigma = descriptor.std_dev * spread
        if sigma == 0.0:
            return 1.0
        return 1.0 + sigma * _skewed_gauss(rng, scenario.skew)

    if descriptor.distribution == Distribution.lognormal:
        sigma = descriptor.std_dev * spread
        if sigma == 0.0:
            return 1.0
        # Mean-preserving lognormal shock
        return math.exp(sigma * _skewed_gauss(rng, scenario.skew) - 0.5 * sigma * sigma)

    if descriptor.low == descriptor.high:
        return descriptor.low

    if descriptor.distribution == Distribution.uniform:
        centre = 0.5 * (descriptor.low + descriptor.high)
        u = rng.uniform(descriptor.low, descriptor.high)
        return centre + (u - centre) * spread

    # triangular
    mode = descriptor.mode if descriptor.mode is not None else 0.5 * (descriptor.low + descriptor.high)
    t = rng.triangular(descriptor.low, descriptor.high, mode)
    return mode + (t - mode) * spread


def sample(
    graph: FlowGraph,
    scenario_name: str,
    rng: random.Random,
    risk_tolerance: RiskTolerance | str = RiskTolerance.moderate,
) -> PerturbedGraph:
    """Draw perturbed values for every link under a scenario.

    value = nominal * scenario multiplier * m, where m is drawn from the link's
    uncertainty descriptor with dispersion widened by scenario volatility and
    risk tolerance. m is floored at zero so a draw never reverses a flow.
    Links without a descriptor keep their nominal value and consume no
    randomness.
    """
    scenario = get_scenario_params(scenario_name)
    risk_scale = get_risk_scale(risk_tolerance)

    values: list[float] = []
    for link in graph.links:
        descriptor: Optional[UncertaintyDescriptor] = link.uncertainty
        if descriptor is None:
            values.append(link.value)
            continue
        m = _draw_multiplier(descriptor, scenario, risk_scale, rng)
        values.append(link.value * scenario.value_multiplier * max(0.0, m))
    return PerturbedGraph(scenario=scenario.name, values=tuple(values))
