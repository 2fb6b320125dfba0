"""UCB1 path selection over the flow graph.

Each outgoing link of a node is an arm. Arm statistics live in an arena
indexed by link index; every link has exactly one source node, so the link
index alone identifies the (node, link) pair.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from flowsim.simulation.graph import FlowGraph


@dataclass
class ArmStats:
    pulls: int = 0
    cumulative_reward: float = 0.0
    cumulative_squared_reward: float = 0.0
    cumulative_value: float = 0.0  # signed link value only, no downstream flow

    @property
    def mean_reward(self) -> Optional[float]:
        """Mean suffix reward, or None for an unvisited arm."""
        if self.pulls == 0:
            return None
        return self.cumulative_reward / self.pulls

    @property
    def mean_value(self) -> Optional[float]:
        if self.pulls == 0:
            return None
        return self.cumulative_value / self.pulls

    @property
    def reward_std(self) -> float:
        if self.pulls < 2:
            return 0.0
        mean = self.cumulative_reward / self.pulls
        var = self.cumulative_squared_reward / self.pulls - mean * mean
        return math.sqrt(max(var, 0.0))


class ArmTable:
    """Per-run bandit state: arm stats, node pull totals, observed reward range."""

    def __init__(self, graph: FlowGraph) -> None:
        self.arms: list[ArmStats] = [ArmStats() for _ in graph.links]
        self.node_pulls: list[int] = [0] * len(graph.nodes)
        self._link_source: list[int] = [link.source for link in graph.links]
        self.reward_min: Optional[float] = None
        self.reward_max: Optional[float] = None

    def __getitem__(self, link_index: int) -> ArmStats:
        return self.arms[link_index]

    def record(self, link_index: int, reward: float, value: float) -> None:
        arm = self.arms[link_index]
        arm.pulls += 1
        arm.cumulative_reward += reward
        arm.cumulative_squared_reward += reward * reward
        arm.cumulative_value += value
        self.node_pulls[self._link_source[link_index]] += 1
        if self.reward_min is None or reward < self.reward_min:
            self.reward_min = reward
        if self.reward_max is None or reward > self.reward_max:
            self.reward_max = reward

    def normalized_mean(self, link_index: int) -> float:
        """Arm mean rescaled to [0, 1] over every reward observed so far."""
        mean = self.arms[link_index].mean_reward
        if mean is None:
            raise ValueError(f"arm {link_index} has no pulls")
        span = (self.reward_max or 0.0) - (self.reward_min or 0.0)
        if span <= 0.0:
            return 0.5
        return (mean - self.reward_min) / span

    def distinct_arms_visited(self) -> int:
        return sum(1 for arm in self.arms if arm.pulls > 0)


def ucb1_score(arms: ArmTable, link_index: int, total_pulls: int, exploration: float) -> float:
    """UCB1 score; unvisited arms score +inf."""
    pulls = arms[link_index].pulls
    if pulls == 0:
        return math.inf
    bonus = math.sqrt(math.log(total_pulls) / pulls) if total_pulls > 1 else 0.0
    return arms.normalized_mean(link_index) + exploration * bonus


def select_next_link(
    graph: FlowGraph,
    node: int,
    arms: ArmTable,
    exploration_parameter: float,
) -> Optional[int]:
    """Choose the outgoing link of ``node`` with the highest UCB1 score.

    Returns None for a terminal node. Ties go to the first declared link.
    """
    candidates = graph.outgoing[node]
    if not candidates:
        return None

    total = arms.node_pulls[node]
    best_link = candidates[0]
    best_score = -math.inf
    for link_index in candidates:
        score = ucb1_score(arms, link_index, total, exploration_parameter)
        if score > best_score:
            best_score = score
            best_link = link_index
            if score == math.inf:
                break
    return best_link


def build_path(
    graph: FlowGraph,
    arms: ArmTable,
    exploration_parameter: float,
    horizon: int,
) -> list[int]:
    """Walk from the source choosing links by UCB1, at most ``horizon`` steps."""
    path: list[int] = []
    node = graph.source
    while len(path) < horizon:
        link_index = select_next_link(graph, node, arms, exploration_parameter)
        if link_index is None:
            break
        path.append(link_index)
        node = graph.links[link_index].target
    return path


def best_path(
    graph: FlowGraph,
    arms: ArmTable,
    horizon: int,
    risk_penalty: float = 0.0,
) -> list[int]:
    """Greedy exploitation: follow the visited arm with the best risk-adjusted mean.

    Stops at a terminal node, a node whose arms were never pulled, or after
    ``horizon`` steps.
    """
    path: list[int] = []
    node = graph.source
    while len(path) < horizon:
        best_link: Optional[int] = None
        best_score = -math.inf
        for link_index in graph.outgoing[node]:
            arm = arms[link_index]
            if arm.pulls == 0:
                continue
            score = arm.mean_reward - risk_penalty * arm.reward_std
            if score > best_score:
                best_score = score
                best_link = link_index
        if best_link is None:
            break
        path.append(best_link)
        node = graph.links[best_link].target
    return path
