from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class NodeCategory(str, Enum):
    """Accounting category of a flow node."""
    income = "income"
    expense = "expense"
    asset = "asset"
    liability = "liability"
    equity = "equity"
    investment = "investment"
    finance = "finance"


class Distribution(str, Enum):
    """Distribution family used to perturb a link value."""
    normal = "normal"
    lognormal = "lognormal"
    uniform = "uniform"
    triangular = "triangular"


class UncertaintyDescriptor(BaseModel):
    """Uncertainty around a link's nominal value.

    ``std_dev`` is a coefficient of variation (fraction of nominal) for the
    normal and lognormal families. ``low``/``high``/``mode`` are multipliers
    of nominal for the uniform and triangular families.
    """
    distribution: Distribution = Distribution.normal
    std_dev: float = Field(default=0.0, ge=0.0)
    low: float = 1.0
    high: float = 1.0
    mode: Optional[float] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> "UncertaintyDescriptor":
        if self.low > self.high:
            raise ValueError(f"low ({self.low}) must not exceed high ({self.high})")
        if self.mode is not None and not (self.low <= self.mode <= self.high):
            raise ValueError(f"mode ({self.mode}) must lie within [low, high]")
        return self


class FlowNode(BaseModel):
    id: str
    name: str = ""
    category: NodeCategory = NodeCategory.income
    value: float = 0.0

    @model_validator(mode="after")
    def _default_name(self) -> "FlowNode":
        if not self.name:
            self.name = self.id
        return self


class FlowLink(BaseModel):
    source: int
    target: int
    value: float
    type: str = "flow"
    uncertainty: Optional[UncertaintyDescriptor] = None
    enhanced: bool = False


class FlowDiagram(BaseModel):
    """Caller-supplied flow graph: nodes, index-based links, optional source."""
    nodes: list[FlowNode]
    links: list[FlowLink] = []
    source: Optional[int] = None
