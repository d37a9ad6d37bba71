from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum
from datetime import datetime

from flowstudio.graph import Edge, Graph, Node


class SnapshotKind(str, Enum):
    MANUAL = "manual"
    ROLLBACK = "rollback"


class VersionSnapshot(BaseModel):
    """Immutable capture of a workflow graph"""
    model_config = ConfigDict(frozen=True)

    workflow_id: str
    version: str
    graph: Graph
    config_hash: str
    notes: str = ""
    kind: SnapshotKind = SnapshotKind.MANUAL
    # Version restored by a rollback snapshot
    source_version: Optional[str] = None
    created_at: datetime


class NodeChange(BaseModel):
    node_id: str
    fields: List[str]
    before: Node
    after: Node


class EdgeChange(BaseModel):
    edge_id: str
    before: Edge
    after: Edge


class VersionDiff(BaseModel):
    """Structural difference from ``version_a`` to ``version_b``, keyed by id"""
    workflow_id: str
    version_a: str
    version_b: str
    added_nodes: List[Node] = []
    removed_nodes: List[Node] = []
    changed_nodes: List[NodeChange] = []
    added_edges: List[Edge] = []
    removed_edges: List[Edge] = []
    changed_edges: List[EdgeChange] = []
    same_config: bool


class ExperimentStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    COMPLETED = "completed"


class ExperimentAssignment(BaseModel):
    """A/B test between two snapshots; ``traffic_split`` is the share routed to B"""
    id: str
    workflow_id: str
    version_a: str
    version_b: str
    traffic_split: float = Field(ge=0.0, le=1.0)
    status: ExperimentStatus = ExperimentStatus.RUNNING
    start_time: datetime
    end_time: Optional[datetime] = None
