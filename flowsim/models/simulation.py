from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from flowsim.config import settings


class ScenarioName(str, Enum):
    """Macro-economic regimes the sampler can condition on."""
    baseline = "baseline"
    recession = "recession"
    growth = "growth"


class RiskTolerance(str, Enum):
    """Scales sampling variance and the variance penalty used when scoring paths."""
    conservative = "conservative"
    moderate = "moderate"
    aggressive = "aggressive"


class SimulationConfig(BaseModel):
    """Configuration for one flow-optimization run. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    iterations: int = Field(default=5000, ge=1)
    exploration_parameter: float = Field(default=1.41, ge=0.0, le=10.0)
    time_horizon_months: int = Field(default=24, ge=1, le=120)
    scenarios: tuple[ScenarioName, ...] = (
        ScenarioName.baseline,
        ScenarioName.recession,
        ScenarioName.growth,
    )
    risk_tolerance: RiskTolerance = RiskTolerance.moderate
    random_seed: Optional[int] = None
    risk_free_rate: float = 0.0
    convergence_threshold: float = Field(default=0.01, gt=0.0, lt=1.0)

    @field_validator("iterations")
    @classmethod
    def _cap_iterations(cls, v: int) -> int:
        if v > settings.MAX_ITERATIONS:
            raise ValueError(
                f"iterations must be at most {settings.MAX_ITERATIONS}, got {v}"
            )
        return v

    @field_validator("scenarios")
    @classmethod
    def _unique_scenarios(cls, v: tuple[ScenarioName, ...]) -> tuple[ScenarioName, ...]:
        if not v:
            raise ValueError("at least one scenario must be enabled")
        # Keep first occurrence order so scenario draws stay reproducible
        return tuple(dict.fromkeys(v))
