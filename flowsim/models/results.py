from typing import Optional

from pydantic import BaseModel

from flowsim.models.graph import NodeCategory


class ConfidenceInterval(BaseModel):
    """95% confidence interval around the running mean return."""
    lower: float
    upper: float


class SimulationProgress(BaseModel):
    """Periodic progress report for a running simulation."""
    iterations: int
    total_iterations: int
    confidence_interval: Optional[ConfidenceInterval] = None
    elapsed_seconds: float
    estimated_remaining_seconds: float


class SnapshotNode(BaseModel):
    id: str
    name: str
    category: NodeCategory
    value: float
    predicted_value: Optional[float] = None


class SnapshotLink(BaseModel):
    source: int
    target: int
    value: float
    original_value: float
    type: str
    enhanced: bool = False
    visits: int = 0


class FlowInsights(BaseModel):
    summary: str
    recommendations: list[str] = []
    confidence: float


class FlowSnapshot(BaseModel):
    """Flow graph annotated with simulated values, for visualization."""
    nodes: list[SnapshotNode]
    links: list[SnapshotLink]
    insights: FlowInsights


class PathStep(BaseModel):
    """One transition of the optimal path."""
    from_node: str
    to_node: str
    action: str
    expected_value: float
    confidence: float


class RiskMetrics(BaseModel):
    volatility: float
    sharpe_ratio: float
    value_at_risk: float
    max_drawdown: float


class RunStatistics(BaseModel):
    """Running statistics of the per-iteration path return."""
    iterations: int
    mean: float
    variance: float
    std_dev: float
    confidence_half_width: Optional[float] = None


class SimulationResult(BaseModel):
    """Terminal result of a completed run."""
    optimal_path: list[PathStep]
    expected_value: float
    risk_metrics: RiskMetrics
    convergence_achieved: bool
    statistically_converged: bool
    statistics: RunStatistics
    scenario_counts: dict[str, int]
