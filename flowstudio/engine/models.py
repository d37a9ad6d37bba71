from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum
from datetime import datetime

from flowstudio.graph import NodeKind


class SimulationStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class NodeStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class MessageFlowEntry(BaseModel):
    """A message sent along one edge taken during a step"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    step: int
    edge_id: str
    source: str = Field(alias="from")
    target: str = Field(alias="to")
    label: Optional[str] = None
    type: str
    timestamp: datetime
    data_preview: str = ""


class TimelineEntry(BaseModel):
    """Timing record for one executed node"""
    model_config = ConfigDict(frozen=True)

    step: int
    node_id: str
    agent: str
    kind: NodeKind
    action: str
    duration_ms: int
    timestamp: datetime
    outcome: Optional[str] = None


class PlannedStep(BaseModel):
    """One entry of the execution order computed when a simulation starts"""
    model_config = ConfigDict(frozen=True)

    index: int
    node_id: str
    label: str
    kind: NodeKind
    action: str
    duration_ms: int
    started_at: datetime
    finished_at: datetime
    outcome: Optional[str] = None
    outputs: Dict[str, Any] = {}
    messages: List[MessageFlowEntry] = []

    def timeline_entry(self) -> TimelineEntry:
        return TimelineEntry(
            step=self.index,
            node_id=self.node_id,
            agent=self.label,
            kind=self.kind,
            action=self.action,
            duration_ms=self.duration_ms,
            timestamp=self.finished_at,
            outcome=self.outcome,
        )


class StepFrame(BaseModel):
    """What a forward step changed, kept so the step can be undone exactly"""
    model_config = ConfigDict(frozen=True)

    status_before: SimulationStatus
    node_id: str
    node_status_before: NodeStatus
    message_count: int
    timeline_count: int


class ExecutionState(BaseModel):
    """Cursor over a running simulation plus its logs"""
    simulation_id: str
    workflow_id: str
    status: SimulationStatus = SimulationStatus.RUNNING
    current_step: int = 0
    total_steps: int
    inputs: Dict[str, Any] = {}
    plan: List[PlannedStep] = []
    message_flow: List[MessageFlowEntry] = []
    execution_timeline: List[TimelineEntry] = []
    node_runtime_status: Dict[str, NodeStatus] = {}
    started_at: datetime
    history: List[StepFrame] = Field(default=[], exclude=True)

    @property
    def is_running(self) -> bool:
        return self.status == SimulationStatus.RUNNING

    @property
    def is_paused(self) -> bool:
        return self.status == SimulationStatus.PAUSED

    @property
    def at_end(self) -> bool:
        return self.current_step >= self.total_steps
