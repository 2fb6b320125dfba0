"""Monte Carlo flow-optimization engine.

One FlowOptimizer holds the mutable state of a single run: the seeded RNG,
the bandit arm table, running statistics and the return buffer. Each
iteration draws a scenario, samples the graph, walks a UCB1 path and folds
the path return into the aggregates.
"""
from __future__ import annotations

import logging
import random
from collections import Counter
from typing import Optional

from flowsim.config import settings
from flowsim.models.results import (
    FlowInsights,
    FlowSnapshot,
    PathStep,
    SimulationProgress,
    SimulationResult,
    SnapshotLink,
    SnapshotNode,
)
from flowsim.models.simulation import SimulationConfig
from flowsim.simulation.bandit import ArmTable, best_path, build_path
from flowsim.simulation.graph import FlowGraph
from flowsim.simulation.sampler import draw_scenario, sample
from flowsim.simulation.scenarios import get_risk_penalty
from flowsim.simulation.statistics import (
    ReturnBuffer,
    RunningStatistics,
    compute_risk_metrics,
    is_converged,
    is_statistically_converged,
    update,
)

logger = logging.getLogger(__name__)


class FlowOptimizer:
    """State and iteration logic for one simulation run."""

    def __init__(self, graph: FlowGraph, config: SimulationConfig) -> None:
        self.graph = graph
        self.config = config
        self.rng = random.Random(config.random_seed)
        self.arms = ArmTable(graph)
        self.stats = RunningStatistics()
        self.buffer = ReturnBuffer(settings.RETURN_BUFFER_SIZE)
        self.scenario_counts: Counter[str] = Counter()
        self._scenarios = [s.value for s in config.scenarios]
        self._first_converged_at: Optional[int] = None

    @property
    def completed_iterations(self) -> int:
        return self.stats.count

    @property
    def remaining_iterations(self) -> int:
        return self.config.iterations - self.stats.count

    @property
    def is_complete(self) -> bool:
        return self.stats.count >= self.config.iterations

    def run_iteration(self) -> None:
        """Run one iteration: scenario draw, sampling, path selection, update."""
        scenario = draw_scenario(self._scenarios, self.rng)
        perturbed = sample(self.graph, scenario, self.rng, self.config.risk_tolerance)
        path = build_path(
            self.graph,
            self.arms,
            self.config.exploration_parameter,
            self.config.time_horizon_months,
        )
        update(self.stats, self.arms, self.graph, path, perturbed, self.buffer)
        self.scenario_counts[scenario] += 1

        if self._first_converged_at is None and is_statistically_converged(
            self.stats, self.config.convergence_threshold
        ):
            self._first_converged_at = self.stats.count
            logger.debug("Confidence interval converged at iteration %d", self.stats.count)

    def run(self, n: int) -> int:
        """Run up to ``n`` iterations within the remaining budget; return how many ran."""
        n = max(0, min(n, self.remaining_iterations))
        for _ in range(n):
            self.run_iteration()
        return n

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def progress(self, elapsed_seconds: float = 0.0) -> SimulationProgress:
        done = self.stats.count
        per_iteration = elapsed_seconds / done if done else 0.0
        return SimulationProgress(
            iterations=done,
            total_iterations=self.config.iterations,
            confidence_interval=self.stats.confidence_interval(),
            elapsed_seconds=elapsed_seconds,
            estimated_remaining_seconds=per_iteration * self.remaining_iterations,
        )

    def _selection_share(self, link_index: int) -> float:
        source = self.graph.links[link_index].source
        total = self.arms.node_pulls[source]
        return self.arms[link_index].pulls / total if total else 0.0

    def _confidence(self) -> float:
        hw = self.stats.half_width
        if hw is None:
            return 0.0
        scale = abs(self.stats.mean)
        if scale == 0.0:
            return 1.0 if hw == 0.0 else 0.0
        return max(0.0, min(1.0, 1.0 - hw / scale))

    def snapshot(self) -> FlowSnapshot:
        graph = self.graph
        links: list[SnapshotLink] = []
        inflow_total = [0.0] * len(graph.nodes)
        inflow_pulls = [0] * len(graph.nodes)

        for i, link in enumerate(graph.links):
            arm = self.arms[i]
            fan_out = len(graph.outgoing[link.source])
            enhanced = link.enhanced or (
                fan_out > 1
                and self._selection_share(i) > settings.ENHANCED_SHARE_FACTOR / fan_out
            )
            value = link.value
            if arm.pulls:
                # Undo the sign so the snapshot carries flow magnitudes
                value = graph.link_sign(i) * arm.mean_value
                inflow_total[link.target] += arm.cumulative_value * graph.link_sign(i)
                inflow_pulls[link.target] += arm.pulls
            links.append(SnapshotLink(
                source=link.source,
                target=link.target,
                value=value,
                original_value=link.value,
                type=link.type,
                enhanced=enhanced,
                visits=arm.pulls,
            ))

        nodes = []
        for i, node in enumerate(graph.nodes):
            predicted = inflow_total[i] / inflow_pulls[i] if inflow_pulls[i] else None
            if i == graph.source:
                predicted = node.value
            nodes.append(SnapshotNode(
                id=node.id,
                name=node.name,
                category=node.category,
                value=node.value,
                predicted_value=predicted,
            ))

        return FlowSnapshot(nodes=nodes, links=links, insights=self._insights())

    def _insights(self) -> FlowInsights:
        path = self._optimal_links()
        visited = self.arms.distinct_arms_visited()
        summary = (
            f"Monte Carlo simulation over {len(self.graph.nodes)} nodes after "
            f"{self.stats.count} iterations; {visited} of {len(self.graph.links)} flows explored."
        )
        recommendations = []
        if path:
            recommendations.append(f"Prioritize {self.graph.link_label(path[0])} flow for optimal returns.")
        unexplored = len(self.graph.links) - visited
        if unexplored:
            recommendations.append(
                f"{unexplored} flows were never sampled; raise the exploration parameter to cover them."
            )
        return FlowInsights(summary=summary, recommendations=recommendations, confidence=self._confidence())

    # ------------------------------------------------------------------
    # Final result
    # ------------------------------------------------------------------
    def _optimal_links(self) -> list[int]:
        return best_path(
            self.graph,
            self.arms,
            self.config.time_horizon_months,
            get_risk_penalty(self.config.risk_tolerance),
        )

    def result(self) -> SimulationResult:
        steps: list[PathStep] = []
        expected_value = 0.0
        for link_index in self._optimal_links():
            link = self.graph.links[link_index]
            value = self.arms[link_index].mean_value
            expected_value += value
            steps.append(PathStep(
                from_node=self.graph.nodes[link.source].id,
                to_node=self.graph.nodes[link.target].id,
                action=link.type,
                expected_value=value,
                confidence=self._selection_share(link_index),
            ))

        return SimulationResult(
            optimal_path=steps,
            expected_value=expected_value,
            risk_metrics=compute_risk_metrics(
                self.stats,
                self.buffer,
                risk_free_rate=self.config.risk_free_rate,
                var_quantile=settings.VAR_QUANTILE,
            ),
            convergence_achieved=is_converged(
                self.stats,
                self.stats.count,
                self.config.iterations,
                self.config.convergence_threshold,
            ),
            statistically_converged=self._first_converged_at is not None,
            statistics=self.stats.to_model(),
            scenario_counts=dict(self.scenario_counts),
        )


def run_to_completion(graph: FlowGraph, config: SimulationConfig) -> FlowOptimizer:
    """Run a full simulation synchronously and return the finished optimizer."""
    optimizer = FlowOptimizer(graph, config)
    optimizer.run(config.iterations)
    logger.info(
        "Simulation finished: %d iterations, mean return %.2f",
        optimizer.completed_iterations,
        optimizer.stats.mean,
    )
    return optimizer
