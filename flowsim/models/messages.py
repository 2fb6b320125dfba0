"""Control and event messages exchanged with a background simulation.

Messages cross the caller/engine boundary as JSON text, so each side works
on its own copy. Both directions are tagged unions discriminated on ``type``.
"""
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from flowsim.models.graph import FlowDiagram
from flowsim.models.results import FlowSnapshot, SimulationProgress, SimulationResult
from flowsim.models.simulation import SimulationConfig


# --- Control messages (caller -> engine) ---


class StartSimulation(BaseModel):
    type: Literal["START_SIMULATION"] = "START_SIMULATION"
    config: SimulationConfig
    initial_graph: FlowDiagram


class PauseSimulation(BaseModel):
    type: Literal["PAUSE_SIMULATION"] = "PAUSE_SIMULATION"


class ResumeSimulation(BaseModel):
    type: Literal["RESUME_SIMULATION"] = "RESUME_SIMULATION"


class StepSimulation(BaseModel):
    type: Literal["STEP_SIMULATION"] = "STEP_SIMULATION"
    steps: int = Field(default=100, ge=1)


class StopSimulation(BaseModel):
    type: Literal["STOP_SIMULATION"] = "STOP_SIMULATION"


ControlMessage = Annotated[
    Union[StartSimulation, PauseSimulation, ResumeSimulation, StepSimulation, StopSimulation],
    Field(discriminator="type"),
]


# --- Event messages (engine -> caller) ---


class SimulationUpdate(BaseModel):
    type: Literal["SIMULATION_UPDATE"] = "SIMULATION_UPDATE"
    progress: SimulationProgress
    flow_data: FlowSnapshot


class SimulationPaused(BaseModel):
    type: Literal["SIMULATION_PAUSED"] = "SIMULATION_PAUSED"


class SimulationResumed(BaseModel):
    type: Literal["SIMULATION_RESUMED"] = "SIMULATION_RESUMED"


class SimulationStopped(BaseModel):
    type: Literal["SIMULATION_STOPPED"] = "SIMULATION_STOPPED"


class SimulationComplete(BaseModel):
    type: Literal["SIMULATION_COMPLETE"] = "SIMULATION_COMPLETE"
    flow_data: FlowSnapshot
    results: SimulationResult


class SimulationError(BaseModel):
    type: Literal["SIMULATION_ERROR"] = "SIMULATION_ERROR"
    message: str


EventMessage = Annotated[
    Union[
        SimulationUpdate,
        SimulationPaused,
        SimulationResumed,
        SimulationStopped,
        SimulationComplete,
        SimulationError,
    ],
    Field(discriminator="type"),
]

_control_adapter: TypeAdapter = TypeAdapter(ControlMessage)
_event_adapter: TypeAdapter = TypeAdapter(EventMessage)


def parse_control_message(raw: str | bytes):
    """Validate JSON text into a control message model."""
    return _control_adapter.validate_json(raw)


def parse_event_message(raw: str | bytes):
    """Validate JSON text into an event message model."""
    return _event_adapter.validate_json(raw)
