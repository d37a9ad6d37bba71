from typing import Any, Dict, Optional
import logging

from flowstudio.errors import NotFound
from flowstudio.locks import KeyedLocks
from flowstudio.workflows import WorkflowManager

from .engine import SimulationEngine
from .models import ExecutionState

logger = logging.getLogger(__name__)


class SimulationManager:
    """
    Holds at most one live simulation per workflow and serializes control
    requests for the same workflow.

    Every call returns a detached copy of the state so callers can serialize
    it while later steps are applied.
    """

    def __init__(
        self,
        workflows: WorkflowManager,
        engine: Optional[SimulationEngine] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        self.workflows = workflows
        self.engine = engine or SimulationEngine()
        self.locks = locks or KeyedLocks()
        self.sessions: Dict[str, ExecutionState] = {}
        workflows.add_delete_listener(self.invalidate)

    async def start(self, workflow_id: str, inputs: Optional[Dict[str, Any]] = None) -> ExecutionState:
        """Start a fresh simulation, replacing any previous one for this workflow."""
        async with self.locks.hold(workflow_id):
            workflow = self.workflows.get(workflow_id)
            state = self.engine.start(workflow_id, workflow.graph, inputs)
            self.sessions[workflow_id] = state
            return state.model_copy(deep=True)

    def get_state(self, workflow_id: str) -> ExecutionState:
        return self._session(workflow_id).model_copy(deep=True)

    async def step_forward(self, workflow_id: str) -> ExecutionState:
        async with self.locks.hold(workflow_id):
            state = self.engine.step_forward(self._session(workflow_id))
            logger.info(f"[{workflow_id}] step {state.current_step}/{state.total_steps}")
            return state.model_copy(deep=True)

    async def step_backward(self, workflow_id: str) -> ExecutionState:
        async with self.locks.hold(workflow_id):
            state = self.engine.step_backward(self._session(workflow_id))
            logger.info(f"[{workflow_id}] stepped back to {state.current_step}/{state.total_steps}")
            return state.model_copy(deep=True)

    async def run_to_completion(self, workflow_id: str) -> ExecutionState:
        async with self.locks.hold(workflow_id):
            state = self.engine.run_to_completion(self._session(workflow_id))
            logger.info(f"[{workflow_id}] ran to completion ({state.total_steps} steps)")
            return state.model_copy(deep=True)

    async def pause(self, workflow_id: str) -> ExecutionState:
        async with self.locks.hold(workflow_id):
            return self.engine.pause(self._session(workflow_id)).model_copy(deep=True)

    async def resume(self, workflow_id: str) -> ExecutionState:
        async with self.locks.hold(workflow_id):
            return self.engine.resume(self._session(workflow_id)).model_copy(deep=True)

    async def reset(self, workflow_id: str) -> bool:
        """Discard the simulation. Returns False when there was none."""
        async with self.locks.hold(workflow_id):
            discarded = self.sessions.pop(workflow_id, None) is not None
        if discarded:
            logger.info(f"[{workflow_id}] simulation reset")
        return discarded

    def invalidate(self, workflow_id: str) -> None:
        """Drop the simulation of a workflow that no longer exists."""
        if self.sessions.pop(workflow_id, None) is not None:
            logger.info(f"[{workflow_id}] simulation invalidated")

    def _session(self, workflow_id: str) -> ExecutionState:
        state = self.sessions.get(workflow_id)
        if state is None:
            raise NotFound(
                f"no simulation running for workflow {workflow_id}",
                {"workflow_id": workflow_id},
            )
        return state
