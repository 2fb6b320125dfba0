#!/usr/bin/env python3
"""Run a flow-optimization simulation from the command line.

Drives the background scheduler exactly as an interactive host would:
START, optional PAUSE + STEP, then waits for completion and writes the
result JSON.

Usage:
  python scripts/run_flow_simulation.py --iterations 5000 --out result.json
  python scripts/run_flow_simulation.py --graph my_flow.json --scenarios baseline recession
  python scripts/run_flow_simulation.py --step 250   # pause immediately, advance in steps
"""
import argparse
import json
import logging
import sys
from pathlib import Path

from flowsim.models.graph import FlowDiagram
from flowsim.models.messages import (
    PauseSimulation,
    StartSimulation,
    StepSimulation,
)
from flowsim.models.simulation import SimulationConfig
from flowsim.services.scheduler import SimulationScheduler

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(message)s", datefmt="%H:%M:%S")
logger = logging.getLogger(__name__)

# Revenue -> costs / profit -> taxes / investments
DEMO_DIAGRAM = {
    "nodes": [
        {"id": "revenue", "name": "Revenue", "category": "income", "value": 1000.0},
        {"id": "costs", "name": "Operating Costs", "category": "expense", "value": 550.0},
        {"id": "profit", "name": "Gross Profit", "category": "equity", "value": 450.0},
        {"id": "taxes", "name": "Taxes", "category": "expense", "value": 90.0},
        {"id": "investments", "name": "Investments", "category": "investment", "value": 250.0},
        {"id": "cash", "name": "Cash Reserve", "category": "asset", "value": 110.0},
    ],
    "links": [
        {"source": 0, "target": 1, "value": 550.0, "type": "operating",
         "uncertainty": {"distribution": "normal", "std_dev": 0.08}},
        {"source": 0, "target": 2, "value": 450.0, "type": "margin",
         "uncertainty": {"distribution": "normal", "std_dev": 0.12}},
        {"source": 2, "target": 3, "value": 90.0, "type": "tax",
         "uncertainty": {"distribution": "uniform", "low": 0.9, "high": 1.1}},
        {"source": 2, "target": 4, "value": 250.0, "type": "invest",
         "uncertainty": {"distribution": "lognormal", "std_dev": 0.2}},
        {"source": 2, "target": 5, "value": 110.0, "type": "retain",
         "uncertainty": {"distribution": "triangular", "low": 0.95, "high": 1.05, "mode": 1.0}},
    ],
}


def _load_diagram(path: str | None) -> FlowDiagram:
    if path is None:
        return FlowDiagram.model_validate(DEMO_DIAGRAM)
    return FlowDiagram.model_validate_json(Path(path).read_text())


def main():
    parser = argparse.ArgumentParser(description="Monte Carlo flow-optimization run")
    parser.add_argument("--graph", help="Path to a flow diagram JSON file (default: built-in demo)")
    parser.add_argument("--iterations", type=int, default=5000, help="Iteration budget (default: 5000)")
    parser.add_argument("--exploration", type=float, default=1.41, help="UCB1 exploration parameter")
    parser.add_argument("--horizon", type=int, default=24, help="Time horizon in months")
    parser.add_argument("--scenarios", nargs="+", default=["baseline", "recession", "growth"])
    parser.add_argument("--risk", default="moderate", choices=["conservative", "moderate", "aggressive"])
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--step", type=int, default=0,
                        help="Pause immediately and advance in steps of this size")
    parser.add_argument("--timeout", type=float, default=300.0, help="Seconds to wait for each event")
    parser.add_argument("--out", help="Write the final result JSON here")
    args = parser.parse_args()

    config = SimulationConfig(
        iterations=args.iterations,
        exploration_parameter=args.exploration,
        time_horizon_months=args.horizon,
        scenarios=args.scenarios,
        risk_tolerance=args.risk,
        random_seed=args.seed,
    )
    diagram = _load_diagram(args.graph)

    with SimulationScheduler() as scheduler:
        scheduler.post(StartSimulation(config=config, initial_graph=diagram))
        if args.step:
            scheduler.post(PauseSimulation())

        while True:
            event = scheduler.get_event(timeout=args.timeout)
            if event.type == "SIMULATION_UPDATE":
                ci = event.progress.confidence_interval
                logger.info(
                    "%d/%d iterations  CI=[%s]",
                    event.progress.iterations,
                    event.progress.total_iterations,
                    f"{ci.lower:.2f}, {ci.upper:.2f}" if ci else "n/a",
                )
                if args.step:
                    scheduler.post(StepSimulation(steps=args.step))
            elif event.type == "SIMULATION_PAUSED":
                logger.info("Paused; stepping %d iterations at a time", args.step)
                scheduler.post(StepSimulation(steps=args.step))
            elif event.type == "SIMULATION_ERROR":
                logger.error("Simulation error: %s", event.message)
                sys.exit(1)
            elif event.type == "SIMULATION_COMPLETE":
                results = event.results
                break

    logger.info("Expected value: %.2f", results.expected_value)
    for step in results.optimal_path:
        logger.info("  %s -> %s (%s): %.2f  share=%.2f",
                    step.from_node, step.to_node, step.action, step.expected_value, step.confidence)
    rm = results.risk_metrics
    logger.info("Volatility %.2f  Sharpe %.3f  VaR %.2f  MaxDD %.2f",
                rm.volatility, rm.sharpe_ratio, rm.value_at_risk, rm.max_drawdown)

    if args.out:
        Path(args.out).write_text(json.dumps(results.model_dump(mode="json"), indent=2) + "\n")
        logger.info("Wrote %s", args.out)


if __name__ == "__main__":
    main()
