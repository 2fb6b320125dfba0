"""Simulation engine — graph, scenarios, sampler, bandit, statistics, Monte Carlo."""
from flowsim.simulation.graph import FlowGraph, InvalidGraphError, build_graph, from_diagram
from flowsim.simulation.scenarios import get_scenario_params, list_scenario_names, ScenarioParams
from flowsim.simulation.sampler import PerturbedGraph, draw_scenario, sample
from flowsim.simulation.bandit import ArmStats, ArmTable, best_path, build_path, select_next_link
from flowsim.simulation.statistics import RunningStatistics, compute_risk_metrics, is_converged, update
from flowsim.simulation.engine import FlowOptimizer, run_to_completion

__all__ = [
    "FlowGraph",
    "InvalidGraphError",
    "build_graph",
    "from_diagram",
    "ScenarioParams",
    "get_scenario_params",
    "list_scenario_names",
    "PerturbedGraph",
    "draw_scenario",
    "sample",
    "ArmStats",
    "ArmTable",
    "best_path",
    "build_path",
    "select_next_link",
    "RunningStatistics",
    "compute_risk_metrics",
    "is_converged",
    "update",
    "FlowOptimizer",
    "run_to_completion",
]
