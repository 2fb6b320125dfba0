"""Tests for running statistics, convergence and risk metrics."""
import random
import statistics as pystats

import numpy as np
import pytest

from flowsim.models.graph import FlowLink, FlowNode
from flowsim.simulation.bandit import ArmTable
from flowsim.simulation.graph import build_graph
from flowsim.simulation.sampler import PerturbedGraph
from flowsim.simulation.statistics import (
    ReturnBuffer,
    RunningStatistics,
    compute_risk_metrics,
    is_converged,
    is_statistically_converged,
    max_drawdown,
    update,
)


def _stats_from(values) -> RunningStatistics:
    stats = RunningStatistics()
    for v in values:
        stats.push(v)
    return stats


def test_welford_matches_two_pass():
    rng = random.Random(0)
    values = [rng.gauss(50, 10) for _ in range(1000)]
    stats = _stats_from(values)
    assert stats.mean == pytest.approx(pystats.mean(values))
    assert stats.variance == pytest.approx(pystats.variance(values))


def test_welford_stable_with_large_offset():
    values = [1e9 + x for x in (4.0, 7.0, 13.0, 16.0)]
    stats = _stats_from(values)
    assert stats.variance == pytest.approx(30.0)


def test_half_width_needs_two_samples():
    stats = RunningStatistics()
    assert stats.half_width is None
    stats.push(5.0)
    assert stats.half_width is None
    assert stats.confidence_interval() is None
    stats.push(7.0)
    assert stats.half_width is not None


def test_confidence_interval_brackets_mean():
    stats = _stats_from([1.0, 2.0, 3.0, 4.0])
    ci = stats.confidence_interval()
    assert ci.lower < stats.mean < ci.upper


def test_half_width_shrinks_in_expectation():
    n = 200
    at_n, at_2n = [], []
    for seed in range(30):
        rng = random.Random(seed)
        stats = RunningStatistics()
        for _ in range(n):
            stats.push(rng.gauss(100, 25))
        at_n.append(stats.half_width)
        for _ in range(n):
            stats.push(rng.gauss(100, 25))
        at_2n.append(stats.half_width)
    assert pystats.mean(at_2n) <= pystats.mean(at_n)


def test_update_credits_suffix_rewards():
    nodes = [
        FlowNode(id="rev"),
        FlowNode(id="profit", category="equity"),
        FlowNode(id="tax", category="expense"),
    ]
    links = [FlowLink(source=0, target=1, value=100.0), FlowLink(source=1, target=2, value=30.0)]
    graph = build_graph(nodes, links)
    arms = ArmTable(graph)
    stats = RunningStatistics()
    buffer = ReturnBuffer(10)
    perturbed = PerturbedGraph(scenario="baseline", values=(100.0, 30.0))

    result = update(stats, arms, graph, [0, 1], perturbed, buffer)

    assert result is stats
    assert stats.count == 1
    assert stats.mean == 70.0
    assert arms[1].cumulative_reward == -30.0
    assert arms[0].cumulative_reward == 70.0
    assert arms[0].cumulative_value == 100.0
    assert arms[1].cumulative_value == -30.0
    assert len(buffer) == 1


def test_update_empty_path_records_zero_return():
    graph = build_graph([FlowNode(id="solo")], [])
    stats = RunningStatistics()
    update(stats, ArmTable(graph), graph, [], PerturbedGraph("baseline", ()))
    assert stats.count == 1
    assert stats.mean == 0.0


def test_return_buffer_is_bounded():
    buffer = ReturnBuffer(3)
    for v in range(10):
        buffer.append(float(v))
    assert len(buffer) == 3
    assert buffer.to_array().tolist() == [7.0, 8.0, 9.0]


def test_statistical_convergence_threshold():
    tight = _stats_from([100.0, 100.1, 99.9, 100.0] * 50)
    loose = _stats_from([0.0, 200.0] * 5)
    assert is_statistically_converged(tight, 0.01)
    assert not is_statistically_converged(loose, 0.01)


def test_cap_counts_as_converged():
    loose = _stats_from([0.0, 200.0] * 5)
    assert is_converged(loose, iterations=10, cap=10, threshold=0.01)
    assert not is_converged(loose, iterations=9, cap=10, threshold=0.01)


def test_max_drawdown_peak_to_trough():
    returns = np.array([1.0, 5.0, 3.0, 6.0, 0.0, 2.0])
    assert max_drawdown(returns) == 6.0
    assert max_drawdown(np.array([1.0, 2.0, 3.0])) == 0.0
    assert max_drawdown(np.array([])) == 0.0


def test_risk_metrics():
    values = [10.0, -5.0, 20.0, 0.0, 15.0] * 20
    stats = _stats_from(values)
    buffer = ReturnBuffer(1000)
    for v in values:
        buffer.append(v)
    metrics = compute_risk_metrics(stats, buffer, risk_free_rate=0.0, var_quantile=0.05)
    assert metrics.volatility == pytest.approx(stats.std_dev)
    assert metrics.sharpe_ratio == pytest.approx(stats.mean / stats.std_dev)
    assert metrics.value_at_risk == pytest.approx(-5.0)
    assert metrics.max_drawdown == 25.0


def test_risk_metrics_zero_volatility():
    stats = _stats_from([3.0] * 10)
    buffer = ReturnBuffer(100)
    for _ in range(10):
        buffer.append(3.0)
    metrics = compute_risk_metrics(stats, buffer)
    assert metrics.volatility == 0.0
    assert metrics.sharpe_ratio == 0.0
    assert metrics.max_drawdown == 0.0
