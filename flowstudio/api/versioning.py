from fastapi import APIRouter, Depends, Query, status
from typing import List
from pydantic import BaseModel, Field

from flowstudio.versioning import ExperimentAssignment, VersionDiff, VersionSnapshot
from flowstudio.workflows import Workflow

from .dependencies import Services, get_services

router = APIRouter(prefix="/versioning", tags=["versioning"])


class SnapshotRequest(BaseModel):
    workflow_id: str
    notes: str = ""


class RollbackRequest(BaseModel):
    workflow_id: str
    target_version: str


class StartExperimentRequest(BaseModel):
    workflow_id: str
    version_a: str
    version_b: str
    traffic_split: float = Field(ge=0.0, le=1.0)


class VersionListResponse(BaseModel):
    data: List[VersionSnapshot]


class ExperimentListResponse(BaseModel):
    data: List[ExperimentAssignment]


class VariantResponse(BaseModel):
    workflow_id: str
    subject: str
    version: str


@router.post("/versions", response_model=VersionSnapshot, status_code=status.HTTP_201_CREATED)
async def create_version(request: SnapshotRequest, services: Services = Depends(get_services)):
    return services.versions.snapshot(request.workflow_id, request.notes)


@router.get("/versions/{workflow_id}", response_model=VersionListResponse)
async def list_versions(workflow_id: str, services: Services = Depends(get_services)):
    """All snapshots of a workflow, newest first."""
    return VersionListResponse(data=services.versions.list_versions(workflow_id))


@router.post("/rollback", response_model=Workflow)
async def rollback(request: RollbackRequest, services: Services = Depends(get_services)):
    return await services.versions.rollback(request.workflow_id, request.target_version)


@router.get("/compare", response_model=VersionDiff)
async def compare_versions(
    workflow_id: str = Query(...),
    version_a: str = Query(...),
    version_b: str = Query(...),
    services: Services = Depends(get_services),
):
    return services.versions.compare(workflow_id, version_a, version_b)


@router.post("/ab-tests", response_model=ExperimentAssignment, status_code=status.HTTP_201_CREATED)
async def start_experiment(request: StartExperimentRequest, services: Services = Depends(get_services)):
    return services.versions.start_experiment(
        request.workflow_id,
        request.version_a,
        request.version_b,
        request.traffic_split,
    )


@router.get("/ab-tests", response_model=ExperimentListResponse)
async def list_experiments(workflow_id: str = Query(...), services: Services = Depends(get_services)):
    return ExperimentListResponse(data=services.versions.list_experiments(workflow_id))


@router.get("/ab-tests/assign", response_model=VariantResponse)
async def assign_variant(
    workflow_id: str = Query(...),
    subject: str = Query(..., min_length=1),
    services: Services = Depends(get_services),
):
    """Which version a subject should be routed to under the running experiment."""
    version = services.versions.choose_variant(workflow_id, subject)
    return VariantResponse(workflow_id=workflow_id, subject=subject, version=version)


@router.post("/ab-tests/{experiment_id}:stop", response_model=ExperimentAssignment)
async def stop_experiment(experiment_id: str, services: Services = Depends(get_services)):
    return services.versions.stop_experiment(experiment_id)


@router.post("/ab-tests/{experiment_id}:complete", response_model=ExperimentAssignment)
async def complete_experiment(experiment_id: str, services: Services = Depends(get_services)):
    return services.versions.complete_experiment(experiment_id)
