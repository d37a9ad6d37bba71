from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional
from pydantic import BaseModel, Field

from flowstudio.graph import Graph, ValidationResult, validate_graph
from flowstudio.workflows import AuditEntry, Workflow, WorkflowStatus

from .dependencies import Services, get_services, idempotency_key

router = APIRouter(tags=["workflows"])


# Request/Response models
class CreateWorkflowRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    graph: Graph = Field(default_factory=Graph)


class UpdateWorkflowRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    graph: Optional[Graph] = None
    expected_version: Optional[int] = None


class LifecycleRequest(BaseModel):
    expected_version: Optional[int] = None


class ValidateGraphRequest(BaseModel):
    graph: Graph


class WorkflowListResponse(BaseModel):
    workflows: List[Workflow]
    total: int


class AuditLogResponse(BaseModel):
    workflow_id: str
    entries: List[AuditEntry]


@router.post("/workflows", response_model=Workflow, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    request: CreateWorkflowRequest,
    services: Services = Depends(get_services),
    key: Optional[str] = Depends(idempotency_key),
):
    """Save a new draft workflow. The graph does not have to be executable yet."""
    return await services.workflows.create(
        name=request.name,
        graph=request.graph,
        description=request.description,
        idempotency_key=key,
    )


@router.get("/workflows", response_model=WorkflowListResponse)
async def list_workflows(
    status_filter: Optional[WorkflowStatus] = Query(None, alias="status"),
    limit: Optional[int] = Query(None, ge=1, le=100),
    offset: int = Query(0, ge=0),
    services: Services = Depends(get_services),
):
    limit = limit or services.settings.default_list_limit
    workflows = services.workflows.list(status=status_filter, limit=limit, offset=offset)
    return WorkflowListResponse(workflows=workflows, total=len(workflows))


@router.post("/workflows/validate", response_model=ValidationResult)
async def validate_workflow_graph(request: ValidateGraphRequest):
    """Run the validator over a graph without saving anything."""
    return validate_graph(request.graph)


@router.get("/workflows/{workflow_id}", response_model=Workflow)
async def get_workflow(workflow_id: str, services: Services = Depends(get_services)):
    return services.workflows.get(workflow_id)


@router.patch("/workflows/{workflow_id}", response_model=Workflow)
async def update_workflow(
    workflow_id: str,
    request: UpdateWorkflowRequest,
    services: Services = Depends(get_services),
    key: Optional[str] = Depends(idempotency_key),
):
    """
    Replace the stored graph and/or metadata.

    Send ``expected_version`` to reject the write with 409 when someone else
    saved in between.
    """
    return await services.workflows.update(
        workflow_id,
        graph=request.graph,
        name=request.name,
        description=request.description,
        expected_version=request.expected_version,
        idempotency_key=key,
    )


@router.post("/workflows/{workflow_id}:publish", response_model=Workflow)
async def publish_workflow(
    workflow_id: str,
    request: Optional[LifecycleRequest] = None,
    services: Services = Depends(get_services),
    key: Optional[str] = Depends(idempotency_key),
):
    expected = request.expected_version if request else None
    return await services.workflows.publish(workflow_id, expected_version=expected, idempotency_key=key)


@router.post("/workflows/{workflow_id}:activate", response_model=Workflow)
async def activate_workflow(
    workflow_id: str,
    request: Optional[LifecycleRequest] = None,
    services: Services = Depends(get_services),
    key: Optional[str] = Depends(idempotency_key),
):
    expected = request.expected_version if request else None
    return await services.workflows.activate(workflow_id, expected_version=expected, idempotency_key=key)


@router.post("/workflows/{workflow_id}:deactivate", response_model=Workflow)
async def deactivate_workflow(
    workflow_id: str,
    request: Optional[LifecycleRequest] = None,
    services: Services = Depends(get_services),
    key: Optional[str] = Depends(idempotency_key),
):
    expected = request.expected_version if request else None
    return await services.workflows.deactivate(workflow_id, expected_version=expected, idempotency_key=key)


@router.post("/workflows/{workflow_id}:duplicate", response_model=Workflow, status_code=status.HTTP_201_CREATED)
async def duplicate_workflow(
    workflow_id: str,
    services: Services = Depends(get_services),
    key: Optional[str] = Depends(idempotency_key),
):
    return await services.workflows.duplicate(workflow_id, idempotency_key=key)


@router.delete("/workflows/{workflow_id}")
async def delete_workflow(
    workflow_id: str,
    services: Services = Depends(get_services),
    key: Optional[str] = Depends(idempotency_key),
):
    await services.workflows.delete(workflow_id, idempotency_key=key)
    return {"ok": True, "workflow_id": workflow_id}


@router.get("/workflows/{workflow_id}/audit", response_model=AuditLogResponse)
async def get_audit_log(workflow_id: str, services: Services = Depends(get_services)):
    return AuditLogResponse(workflow_id=workflow_id, entries=services.workflows.audit_log(workflow_id))
