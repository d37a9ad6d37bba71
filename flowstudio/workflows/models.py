from typing import Dict, Any, Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum
from datetime import datetime, timezone

from flowstudio.graph import Graph, new_id


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"


class Workflow(BaseModel):
    """Persisted, named wrapper around a graph"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str] = None
    graph: Graph = Field(default_factory=Graph)
    status: WorkflowStatus = WorkflowStatus.DRAFT
    # Optimistic-lock counter, bumped on every successful write
    version: int = 1
    created_at: datetime
    updated_at: datetime
    published_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @classmethod
    def create(cls, name: str, graph: Graph, description: Optional[str] = None) -> "Workflow":
        now = utc_now()
        return cls(
            id=new_id("wf"),
            name=name,
            description=description,
            graph=graph,
            created_at=now,
            updated_at=now,
        )


class AuditEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    workflow_id: str
    action: str
    details: Dict[str, Any] = {}
    created_at: datetime
