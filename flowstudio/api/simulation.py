from fastapi import APIRouter, Depends, Query
from typing import Any, Dict, List
from pydantic import BaseModel, Field

from flowstudio.engine import ExecutionState, MessageFlowEntry, TimelineEntry

from .dependencies import Services, get_services

router = APIRouter(prefix="/simulation", tags=["simulation"])


class StartSimulationRequest(BaseModel):
    workflow_id: str
    inputs: Dict[str, Any] = Field(default_factory=dict)


class MessageFlowResponse(BaseModel):
    workflow_id: str
    flow: List[MessageFlowEntry]


class TimelineResponse(BaseModel):
    workflow_id: str
    timeline: List[TimelineEntry]


@router.post("/start", response_model=ExecutionState)
async def start_simulation(request: StartSimulationRequest, services: Services = Depends(get_services)):
    """
    Start (or restart) the simulation of a saved workflow.

    The graph must validate; the whole execution order is computed here and
    later calls only move through it.
    """
    return await services.simulations.start(request.workflow_id, request.inputs)


@router.post("/step-forward", response_model=ExecutionState)
async def step_forward(workflow_id: str = Query(...), services: Services = Depends(get_services)):
    return await services.simulations.step_forward(workflow_id)


@router.post("/step-backward", response_model=ExecutionState)
async def step_backward(workflow_id: str = Query(...), services: Services = Depends(get_services)):
    return await services.simulations.step_backward(workflow_id)


@router.post("/run-to-completion", response_model=ExecutionState)
async def run_to_completion(workflow_id: str = Query(...), services: Services = Depends(get_services)):
    return await services.simulations.run_to_completion(workflow_id)


@router.post("/pause", response_model=ExecutionState)
async def pause_simulation(workflow_id: str = Query(...), services: Services = Depends(get_services)):
    return await services.simulations.pause(workflow_id)


@router.post("/resume", response_model=ExecutionState)
async def resume_simulation(workflow_id: str = Query(...), services: Services = Depends(get_services)):
    return await services.simulations.resume(workflow_id)


@router.get("/state", response_model=ExecutionState)
async def get_simulation_state(workflow_id: str = Query(...), services: Services = Depends(get_services)):
    return services.simulations.get_state(workflow_id)


@router.get("/message-flow", response_model=MessageFlowResponse)
async def get_message_flow(workflow_id: str = Query(...), services: Services = Depends(get_services)):
    state = services.simulations.get_state(workflow_id)
    return MessageFlowResponse(workflow_id=workflow_id, flow=state.message_flow)


@router.get("/execution-timeline", response_model=TimelineResponse)
async def get_execution_timeline(workflow_id: str = Query(...), services: Services = Depends(get_services)):
    state = services.simulations.get_state(workflow_id)
    return TimelineResponse(workflow_id=workflow_id, timeline=state.execution_timeline)


@router.delete("")
async def reset_simulation(workflow_id: str = Query(...), services: Services = Depends(get_services)):
    """Discard the simulation state. Resetting when nothing runs is not an error."""
    discarded = await services.simulations.reset(workflow_id)
    return {"ok": True, "workflow_id": workflow_id, "discarded": discarded}
