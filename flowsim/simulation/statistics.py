"""Running statistics, convergence and risk metrics for a run.

Mean and variance are maintained online (Welford), so no per-iteration
history is kept apart from a bounded ring buffer of returns that feeds the
value-at-risk and max-drawdown calculations.
"""
from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from flowsim.models.results import ConfidenceInterval, RiskMetrics, RunStatistics
from flowsim.simulation.bandit import ArmTable
from flowsim.simulation.graph import FlowGraph
from flowsim.simulation.sampler import PerturbedGraph

_Z_95 = 1.96


@dataclass
class RunningStatistics:
    count: int = 0
    mean: float = 0.0
    m2: float = 0.0

    def push(self, x: float) -> None:
        self.count += 1
        delta = x - self.mean
        self.mean += delta / self.count
        self.m2 += delta * (x - self.mean)

    @property
    def variance(self) -> float:
        """Sample variance; 0.0 below two samples."""
        if self.count < 2:
            return 0.0
        return self.m2 / (self.count - 1)

    @property
    def std_dev(self) -> float:
        return math.sqrt(max(self.variance, 0.0))

    @property
    def half_width(self) -> Optional[float]:
        """95% confidence half-width of the mean; None below two samples."""
        if self.count < 2:
            return None
        return _Z_95 * self.std_dev / math.sqrt(self.count)

    def confidence_interval(self) -> Optional[ConfidenceInterval]:
        hw = self.half_width
        if hw is None:
            return None
        return ConfidenceInterval(lower=self.mean - hw, upper=self.mean + hw)

    def to_model(self) -> RunStatistics:
        return RunStatistics(
            iterations=self.count,
            mean=self.mean,
            variance=self.variance,
            std_dev=self.std_dev,
            confidence_half_width=self.half_width,
        )


class ReturnBuffer:
    """Bounded ring buffer of the most recent path returns."""

    def __init__(self, maxlen: int) -> None:
        self._values: deque[float] = deque(maxlen=maxlen)

    def append(self, value: float) -> None:
        self._values.append(value)

    def __len__(self) -> int:
        return len(self._values)

    def to_array(self) -> np.ndarray:
        return np.fromiter(self._values, dtype=float, count=len(self._values))


def update(
    stats: RunningStatistics,
    arms: ArmTable,
    graph: FlowGraph,
    path: Sequence[int],
    perturbed: PerturbedGraph,
    buffer: Optional[ReturnBuffer] = None,
) -> RunningStatistics:
    """Fold one iteration's path return into the run aggregates.

    Each traversed arm is credited with its suffix return: its own signed link
    value plus everything downstream of it on this path.
    """
    signed = [perturbed.signed_value(graph, i) for i in path]
    suffix = 0.0
    for link_index, value in zip(reversed(path), reversed(signed)):
        suffix += value
        arms.record(link_index, suffix, value)

    path_return = suffix
    stats.push(path_return)
    if buffer is not None:
        buffer.append(path_return)
    return stats


def is_statistically_converged(stats: RunningStatistics, threshold: float) -> bool:
    """True once the 95% half-width is below ``threshold`` of |mean|."""
    hw = stats.half_width
    if hw is None:
        return False
    if stats.mean == 0.0:
        return hw == 0.0
    return hw < threshold * abs(stats.mean)


def is_converged(stats: RunningStatistics, iterations: int, cap: int, threshold: float) -> bool:
    return iterations >= cap or is_statistically_converged(stats, threshold)


def max_drawdown(returns: np.ndarray) -> float:
    """Largest peak-to-trough decline across the return sequence.

    Reported in the same absolute units as the returns, not as a fraction of
    the peak. Path returns can be zero or negative, so a relative drawdown is
    not defined for every run.
    """
    if returns.size == 0:
        return 0.0
    running_peak = np.maximum.accumulate(returns)
    return float(np.max(running_peak - returns))


def compute_risk_metrics(
    stats: RunningStatistics,
    buffer: ReturnBuffer,
    risk_free_rate: float = 0.0,
    var_quantile: float = 0.05,
) -> RiskMetrics:
    returns = buffer.to_array()
    volatility = stats.std_dev
    if returns.size == 0:
        return RiskMetrics(volatility=volatility, sharpe_ratio=0.0, value_at_risk=0.0, max_drawdown=0.0)

    sharpe = (stats.mean - risk_free_rate) / volatility if volatility > 0 else 0.0
    value_at_risk = float(np.quantile(returns, var_quantile))
    return RiskMetrics(
        volatility=volatility,
        sharpe_ratio=sharpe,
        value_at_risk=value_at_risk,
        max_drawdown=max_drawdown(returns),
    )
