"""
Flow API Routes.

Endpoints for saving, validating and executing flows.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
import logging

from agentflow.api.deps import get_executor
from agentflow.api.schemas import (
    ErrorResponse,
    ExecutionLogEntry,
    FlowListResponse,
    FlowResponse,
    FlowRunRequest,
    FlowRunResponse,
    FlowSaveRequest,
    FlowValidationResponse,
)
from agentflow.config import settings
from agentflow.engine.executor import ExecutionResult, FlowExecutor
from agentflow.engine.graph import FlowGraph, validate_flow
from agentflow.engine.models import Flow
from agentflow.storage.memory import flow_storage


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/flows", tags=["Flows"])


def _to_response(flow: Flow, with_diagram: bool = False) -> FlowResponse:
    diagram = FlowGraph(flow, settings.TRIGGER_PREFIX).to_mermaid() if with_diagram else None
    return FlowResponse(**flow.model_dump(), mermaid_diagram=diagram)


def _check(flow: Flow) -> None:
    errors = validate_flow(flow, settings.TRIGGER_PREFIX)
    if errors:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Flow validation failed", "errors": errors},
        )


# ============================================================
# Flow CRUD Endpoints
# ============================================================

@router.post(
    "/",
    response_model=FlowResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse, "description": "Invalid flow definition"}},
)
async def create_flow(request: FlowSaveRequest) -> FlowResponse:
    """
    Create a new flow.

    The definition is validated before it is stored: node ids, edge
    references, trigger presence, node configuration and cycles.
    """
    flow = request.to_flow()
    _check(flow)
    stored = await flow_storage.save(flow)
    logger.info(f"Created flow: {stored.id} ({stored.name})")
    return _to_response(stored)


@router.post("/validate", response_model=FlowValidationResponse)
async def validate_flow_definition(request: FlowSaveRequest) -> FlowValidationResponse:
    """Validate a flow definition without saving it."""
    errors = validate_flow(request.to_flow(), settings.TRIGGER_PREFIX)
    return FlowValidationResponse(valid=not errors, errors=errors)


@router.get("/", response_model=FlowListResponse)
async def list_flows(agent_id: Optional[str] = None) -> FlowListResponse:
    """List flows, optionally only those of one agent."""
    if agent_id:
        flows = await flow_storage.list_by_agent(agent_id)
    else:
        flows = await flow_storage.list_all()
    return FlowListResponse(flows=[_to_response(f) for f in flows], total=len(flows))


@router.get(
    "/{flow_id}",
    response_model=FlowResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_flow(flow_id: str) -> FlowResponse:
    """Get a flow, including its Mermaid diagram."""
    flow = await flow_storage.get(flow_id)
    if not flow:
        raise HTTPException(status_code=404, detail=f"Flow '{flow_id}' not found")
    return _to_response(flow, with_diagram=True)


@router.put(
    "/{flow_id}",
    response_model=FlowResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def replace_flow(flow_id: str, request: FlowSaveRequest) -> FlowResponse:
    """Replace a flow wholesale."""
    if not await flow_storage.get(flow_id):
        raise HTTPException(status_code=404, detail=f"Flow '{flow_id}' not found")
    flow = request.to_flow(flow_id)
    _check(flow)
    stored = await flow_storage.save(flow)
    logger.info(f"Replaced flow: {flow_id}")
    return _to_response(stored)


@router.delete(
    "/{flow_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_flow(flow_id: str):
    """Delete a flow."""
    deleted = await flow_storage.delete(flow_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Flow '{flow_id}' not found")
    logger.info(f"Deleted flow: {flow_id}")


# ============================================================
# Execution Endpoints
# ============================================================

@router.post(
    "/{flow_id}/execute",
    response_model=FlowRunResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Flow is inactive"},
    },
)
async def execute_flow(
    flow_id: str,
    request: FlowRunRequest,
    executor: FlowExecutor = Depends(get_executor),
) -> FlowRunResponse:
    """
    Execute a stored flow with the given input.

    Node failures do not produce an error status code: the run result
    reports `failed` with the failing node and message.
    """
    flow = await flow_storage.get(flow_id)
    if not flow:
        raise HTTPException(status_code=404, detail=f"Flow '{flow_id}' not found")
    if not flow.is_active:
        raise HTTPException(status_code=409, detail=f"Flow '{flow_id}' is inactive")

    result = await executor.run(flow, request.input, entry_node_id=request.entry_node_id)
    if result.error:
        logger.warning(f"Run {result.run_id} of flow {flow_id} {result.status.value}: {result.error}")
    return _result_to_response(result)


def _result_to_response(result: ExecutionResult) -> FlowRunResponse:
    """Convert ExecutionResult to API response."""
    data = result.to_dict()
    return FlowRunResponse(
        run_id=data["run_id"],
        flow_id=data["flow_id"],
        status=result.status,
        output=data["output"],
        execution_log=[ExecutionLogEntry(**step) for step in data["execution_log"]],
        started_at=data["started_at"],
        completed_at=data["completed_at"],
        total_duration_ms=data["total_duration_ms"],
        error=data["error"],
        failed_node=data["failed_node"],
        failed_nodes=data["failed_nodes"],
    )
