"""Tests for the Monte Carlo flow optimizer — end-to-end run properties."""
import pytest

from flowsim.models.graph import FlowDiagram
from flowsim.models.simulation import SimulationConfig
from flowsim.simulation.engine import FlowOptimizer, run_to_completion
from flowsim.simulation.graph import from_diagram


def _three_node_graph():
    """Revenue -> Cost, Revenue -> Profit with zero-variance uncertainty."""
    return from_diagram(FlowDiagram.model_validate({
        "nodes": [
            {"id": "revenue", "category": "income", "value": 1000.0},
            {"id": "cost", "category": "expense", "value": 400.0},
            {"id": "profit", "category": "equity", "value": 600.0},
        ],
        "links": [
            {"source": 0, "target": 1, "value": 400.0, "type": "spend",
             "uncertainty": {"distribution": "normal", "std_dev": 0.0}},
            {"source": 0, "target": 2, "value": 600.0, "type": "retain",
             "uncertainty": {"distribution": "normal", "std_dev": 0.0}},
        ],
    }))


def _exploration_graph():
    """Root with a rich branch A and a poor branch B that fans out to 8 leaves."""
    nodes = [
        {"id": "root", "category": "income"},
        {"id": "a", "category": "investment"},
        {"id": "b", "category": "asset"},
    ]
    links = [
        {"source": 0, "target": 1, "value": 100.0},
        {"source": 0, "target": 2, "value": 10.0},
    ]
    for i in range(8):
        nodes.append({"id": f"leaf{i}", "category": "investment"})
        links.append({"source": 2, "target": 3 + i, "value": float(i + 1)})
    return from_diagram(FlowDiagram.model_validate({"nodes": nodes, "links": links}))


def _noisy_graph():
    return from_diagram(FlowDiagram.model_validate({
        "nodes": [
            {"id": "revenue", "category": "income"},
            {"id": "cost", "category": "expense"},
            {"id": "profit", "category": "equity"},
            {"id": "tax", "category": "expense"},
            {"id": "invest", "category": "investment"},
        ],
        "links": [
            {"source": 0, "target": 1, "value": 500.0, "uncertainty": {"std_dev": 0.1}},
            {"source": 0, "target": 2, "value": 500.0, "uncertainty": {"std_dev": 0.2}},
            {"source": 2, "target": 3, "value": 100.0, "uncertainty": {"distribution": "uniform", "low": 0.8, "high": 1.2}},
            {"source": 2, "target": 4, "value": 300.0, "uncertainty": {"distribution": "lognormal", "std_dev": 0.25}},
        ],
    }))


def test_zero_variance_example_converges_to_nominal():
    config = SimulationConfig(
        iterations=1000,
        exploration_parameter=1.41,
        scenarios=["baseline"],
        random_seed=7,
    )
    optimizer = run_to_completion(_three_node_graph(), config)
    result = optimizer.result()

    assert optimizer.completed_iterations == 1000
    assert [(s.from_node, s.to_node) for s in result.optimal_path] == [("revenue", "profit")]
    assert result.expected_value == 600.0
    assert result.optimal_path[0].expected_value == 600.0
    assert result.convergence_achieved is True
    assert result.scenario_counts == {"baseline": 1000}
    assert 0.0 <= result.optimal_path[0].confidence <= 1.0


def test_run_respects_iteration_budget():
    config = SimulationConfig(iterations=250, random_seed=1)
    optimizer = FlowOptimizer(_noisy_graph(), config)
    assert optimizer.run(100) == 100
    assert optimizer.run(1000) == 150
    assert optimizer.is_complete
    assert optimizer.run(10) == 0


def test_same_seed_is_reproducible():
    config = SimulationConfig(iterations=500, random_seed=123)
    r1 = run_to_completion(_noisy_graph(), config).result()
    r2 = run_to_completion(_noisy_graph(), config).result()
    assert r1 == r2


def test_chunked_run_matches_single_run():
    config = SimulationConfig(iterations=600, random_seed=9)
    whole = run_to_completion(_noisy_graph(), config).result()
    chunked = FlowOptimizer(_noisy_graph(), config)
    for n in (1, 99, 250, 250):
        chunked.run(n)
    assert chunked.result() == whole


def test_path_length_bounded_by_horizon():
    config = SimulationConfig(iterations=200, time_horizon_months=1, random_seed=2)
    optimizer = run_to_completion(_noisy_graph(), config)
    assert len(optimizer.result().optimal_path) <= 1
    # Second-level links are never reached with a one-month horizon
    assert optimizer.arms[2].pulls == 0
    assert optimizer.arms[3].pulls == 0


def test_exploration_parameter_widens_coverage():
    graph = _exploration_graph()
    visited = {}
    for c in (0.6, 2.2):
        config = SimulationConfig(iterations=500, exploration_parameter=c, scenarios=["baseline"], random_seed=5)
        optimizer = run_to_completion(graph, config)
        visited[c] = optimizer.arms.distinct_arms_visited()
    assert visited[2.2] > visited[0.6]


def test_progress_reports_interval_and_remaining():
    config = SimulationConfig(iterations=400, random_seed=3)
    optimizer = FlowOptimizer(_noisy_graph(), config)
    optimizer.run(100)
    progress = optimizer.progress(elapsed_seconds=2.0)
    assert progress.iterations == 100
    assert progress.total_iterations == 400
    assert progress.estimated_remaining_seconds == pytest.approx(6.0)
    ci = progress.confidence_interval
    assert ci.lower <= optimizer.stats.mean <= ci.upper


def test_progress_before_first_iteration_has_no_interval():
    optimizer = FlowOptimizer(_noisy_graph(), SimulationConfig(iterations=10, random_seed=0))
    assert optimizer.progress().confidence_interval is None


def test_snapshot_annotates_enhanced_links_and_predictions():
    config = SimulationConfig(iterations=1000, scenarios=["baseline"], random_seed=7)
    optimizer = run_to_completion(_three_node_graph(), config)
    snapshot = optimizer.snapshot()

    cost_link, profit_link = snapshot.links
    assert profit_link.enhanced is True
    assert cost_link.enhanced is False
    assert profit_link.visits > cost_link.visits
    assert profit_link.value == 600.0
    assert profit_link.original_value == 600.0
    assert snapshot.nodes[0].predicted_value == 1000.0
    assert snapshot.nodes[2].predicted_value == 600.0
    assert "revenue -> profit" in snapshot.insights.recommendations[0]


def test_risk_metrics_populated():
    config = SimulationConfig(iterations=800, random_seed=11)
    result = run_to_completion(_noisy_graph(), config).result()
    metrics = result.risk_metrics
    assert metrics.volatility > 0
    assert metrics.max_drawdown >= 0
    assert metrics.value_at_risk <= result.statistics.mean
    assert sum(result.scenario_counts.values()) == 800
