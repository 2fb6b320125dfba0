"""Simulation API — scenario catalogue, synchronous runs, and the control-protocol socket."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from flowsim.models.graph import FlowDiagram
from flowsim.models.results import FlowSnapshot, SimulationResult
from flowsim.models.simulation import SimulationConfig
from flowsim.services.scheduler import SimulationScheduler
from flowsim.simulation.engine import run_to_completion
from flowsim.simulation.graph import InvalidGraphError, from_diagram
from flowsim.simulation.scenarios import list_scenarios

logger = logging.getLogger(__name__)

router = APIRouter(tags=["simulations"])


class RunRequest(BaseModel):
    """Request body for a synchronous run — inline graph, optional config."""
    initial_graph: FlowDiagram
    config: Optional[SimulationConfig] = None


class RunResponse(BaseModel):
    flow_data: FlowSnapshot
    results: SimulationResult


@router.get("/simulations/scenarios")
def get_scenarios():
    return {"scenarios": [asdict(s) for s in list_scenarios()]}


@router.post("/simulations/run", response_model=RunResponse)
def run_simulation_endpoint(request: RunRequest):
    """Run a simulation to completion and return the optimal path and risk metrics."""
    config = request.config or SimulationConfig()
    try:
        graph = from_diagram(request.initial_graph)
    except InvalidGraphError as e:
        raise HTTPException(status_code=422, detail=str(e))
    optimizer = run_to_completion(graph, config)
    return RunResponse(flow_data=optimizer.snapshot(), results=optimizer.result())


@router.websocket("/simulations/ws")
async def simulation_socket(websocket: WebSocket):
    """Relay control messages to a per-connection scheduler and stream its events back."""
    await websocket.accept()
    loop = asyncio.get_running_loop()
    events: asyncio.Queue[str] = asyncio.Queue()
    scheduler = SimulationScheduler(
        listener=lambda raw: loop.call_soon_threadsafe(events.put_nowait, raw),
    )
    scheduler.start()

    async def forward_events() -> None:
        while True:
            raw = await events.get()
            await websocket.send_text(raw)

    sender = asyncio.create_task(forward_events())
    try:
        while True:
            scheduler.post(await websocket.receive_text())
    except WebSocketDisconnect:
        logger.info("Simulation socket disconnected")
    finally:
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
        await asyncio.to_thread(scheduler.close)
