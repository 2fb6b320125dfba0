"""Background simulation scheduler.

Runs a FlowOptimizer on its own thread and talks to the caller only through
JSON messages: control messages go into an inbox queue, events go out through
a listener (by default an outbox queue). The run state is owned by the
background thread and never shared with the caller.

The iteration loop is cooperative. Iterations run in fixed-size batches and
the inbox is drained at every batch boundary, so PAUSE and STOP take effect
within one batch and never interrupt an iteration.
"""
from __future__ import annotations

import json
import logging
import queue
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError

from flowsim.config import settings
from flowsim.models.messages import (
    PauseSimulation,
    ResumeSimulation,
    SimulationComplete,
    SimulationError,
    SimulationPaused,
    SimulationResumed,
    SimulationStopped,
    SimulationUpdate,
    StartSimulation,
    StepSimulation,
    StopSimulation,
    parse_control_message,
    parse_event_message,
)
from flowsim.simulation.engine import FlowOptimizer
from flowsim.simulation.graph import InvalidGraphError, from_diagram

logger = logging.getLogger(__name__)

_SHUTDOWN = object()


class SchedulerState(str, Enum):
    idle = "idle"
    running = "running"
    paused = "paused"
    completed = "completed"
    stopped = "stopped"
    errored = "errored"


_ACTIVE = (SchedulerState.running, SchedulerState.paused)


class ProtocolError(RuntimeError):
    """A control message arrived in a state that does not accept it."""


class AlreadyRunningError(ProtocolError):
    """START_SIMULATION arrived while a run was active."""


class SimulationScheduler:
    """One background simulation context; at most one active run at a time.

    Usage::

        with SimulationScheduler() as scheduler:
            scheduler.post(StartSimulation(config=config, initial_graph=diagram))
            event = scheduler.get_event(timeout=5)
    """

    def __init__(
        self,
        listener: Optional[Callable[[str], Any]] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
    ) -> None:
        self._inbox: queue.Queue = queue.Queue()
        self._outbox: queue.Queue[str] = queue.Queue()
        self._listener = listener or self._outbox.put
        self._batch_size = batch_size or settings.BATCH_SIZE
        self._batch_delay = settings.BATCH_DELAY_SECONDS if batch_delay is None else batch_delay
        self._thread = threading.Thread(target=self._run, name="flowsim-scheduler", daemon=True)

        # Owned by the background thread
        self._state = SchedulerState.idle
        self._optimizer: Optional[FlowOptimizer] = None
        self._elapsed = 0.0

    # ------------------------------------------------------------------
    # Caller side
    # ------------------------------------------------------------------
    def start(self) -> "SimulationScheduler":
        """Launch the background thread. Messages posted earlier are kept in order."""
        self._thread.start()
        return self

    def post(self, message: BaseModel | dict | str) -> None:
        """Queue a control message. Never blocks; outcomes arrive as events."""
        if isinstance(message, BaseModel):
            raw = message.model_dump_json()
        elif isinstance(message, str):
            raw = message
        else:
            raw = json.dumps(message)
        self._inbox.put(raw)

    def get_event(self, timeout: Optional[float] = None):
        """Next event from the outbox. Raises queue.Empty on timeout."""
        return parse_event_message(self._outbox.get(timeout=timeout))

    def close(self, timeout: float = 5.0) -> None:
        self._inbox.put(_SHUTDOWN)
        if self._thread.is_alive():
            self._thread.join(timeout)

    def __enter__(self) -> "SimulationScheduler":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------
    def _run(self) -> None:
        while True:
            if self._state is SchedulerState.running:
                if not self._drain_inbox():
                    break
                if self._state is SchedulerState.running:
                    self._run_batch()
                    if self._batch_delay:
                        time.sleep(self._batch_delay)
            else:
                item = self._inbox.get()
                if item is _SHUTDOWN:
                    break
                self._handle(item)
        logger.debug("Scheduler thread exiting (state=%s)", self._state.value)

    def _drain_inbox(self) -> bool:
        """Handle every pending message; False once shutdown was requested."""
        while True:
            try:
                item = self._inbox.get_nowait()
            except queue.Empty:
                return True
            if item is _SHUTDOWN:
                return False
            self._handle(item)

    def _handle(self, raw: str) -> None:
        try:
            message = parse_control_message(raw)
        except ValidationError as e:
            logger.warning("Rejected malformed control message: %s", e)
            self._emit(SimulationError(message=f"Invalid control message: {e}"))
            return

        handlers = {
            StartSimulation: self._on_start,
            PauseSimulation: self._on_pause,
            ResumeSimulation: self._on_resume,
            StepSimulation: self._on_step,
            StopSimulation: self._on_stop,
        }
        try:
            handlers[type(message)](message)
        except ProtocolError as e:
            logger.warning("Rejected %s: %s", message.type, e)
            self._emit(SimulationError(message=str(e)))

    def _require(self, action: str, *states: SchedulerState) -> None:
        if self._state not in states:
            raise ProtocolError(f"Cannot {action} while simulation is {self._state.value}")

    # ------------------------------------------------------------------
    # Control handlers
    # ------------------------------------------------------------------
    def _on_start(self, message: StartSimulation) -> None:
        if self._state in _ACTIVE:
            raise AlreadyRunningError(
                "A simulation is already running; stop it before starting a new one"
            )
        try:
            graph = from_diagram(message.initial_graph)
        except InvalidGraphError as e:
            logger.warning("Invalid graph: %s", e)
            self._emit(SimulationError(message=f"Invalid graph: {e}"))
            return

        self._optimizer = FlowOptimizer(graph, message.config)
        self._elapsed = 0.0
        self._state = SchedulerState.running
        logger.info(
            "Simulation started: %d iterations, %d nodes, %d links, scenarios=%s",
            message.config.iterations,
            len(graph.nodes),
            len(graph.links),
            [s.value for s in message.config.scenarios],
        )

    def _on_pause(self, message: PauseSimulation) -> None:
        self._require("pause", SchedulerState.running)
        self._state = SchedulerState.paused
        logger.info("Simulation paused at iteration %d", self._optimizer.completed_iterations)
        self._emit(SimulationPaused())

    def _on_resume(self, message: ResumeSimulation) -> None:
        self._require("resume", SchedulerState.paused)
        self._state = SchedulerState.running
        logger.info("Simulation resumed at iteration %d", self._optimizer.completed_iterations)
        self._emit(SimulationResumed())

    def _on_step(self, message: StepSimulation) -> None:
        self._require("step", SchedulerState.paused)
        self._execute(message.steps)

    def _on_stop(self, message: StopSimulation) -> None:
        self._require("stop", *_ACTIVE)
        done = self._optimizer.completed_iterations
        self._optimizer = None
        self._state = SchedulerState.stopped
        logger.info("Simulation stopped after %d iterations", done)
        self._emit(SimulationStopped())

    # ------------------------------------------------------------------
    # Iteration work
    # ------------------------------------------------------------------
    def _run_batch(self) -> None:
        self._execute(self._batch_size)

    def _execute(self, n: int) -> None:
        """Run ``n`` iterations, report progress, finish the run if the budget is spent."""
        optimizer = self._optimizer
        started = time.monotonic()
        try:
            optimizer.run(n)
            self._elapsed += time.monotonic() - started
            self._emit(SimulationUpdate(
                progress=optimizer.progress(self._elapsed),
                flow_data=optimizer.snapshot(),
            ))
            if optimizer.is_complete:
                event = SimulationComplete(flow_data=optimizer.snapshot(), results=optimizer.result())
                self._optimizer = None
                self._state = SchedulerState.completed
                logger.info(
                    "Simulation complete: %d iterations in %.2fs, expected value %.2f",
                    optimizer.completed_iterations,
                    self._elapsed,
                    event.results.expected_value,
                )
                self._emit(event)
        except Exception as e:
            logger.exception("Simulation batch failed")
            self._optimizer = None
            self._state = SchedulerState.errored
            self._emit(SimulationError(message=f"Simulation failed: {e}"))

    def _emit(self, event: BaseModel) -> None:
        try:
            self._listener(event.model_dump_json())
        except Exception:
            logger.exception("Event listener failed for %s", getattr(event, "type", event))
