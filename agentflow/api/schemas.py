"""
Pydantic Schemas for API Request/Response Models.
"""

from typing import Any, Dict, List, Optional, Union
from datetime import datetime

from pydantic import BaseModel, Field

from agentflow.engine.executor import ExecutionStatus
from agentflow.engine.models import CredentialType, Edge, Flow, Node, Variable


# ============================================================
# Flow Schemas
# ============================================================

class FlowSaveRequest(BaseModel):
    """Request to create or replace a flow. Nodes and edges are saved wholesale."""
    agent_id: str = Field(..., min_length=1, description="Owning agent")
    name: str = Field(..., min_length=1, description="Name of the flow")
    description: str = Field("", description="What this flow does")
    is_active: bool = Field(True, description="Inactive flows are not executed")
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    variables: List[Variable] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "agent_id": "agent-1",
                "name": "Greeting",
                "nodes": [
                    {"id": "t", "type": "trigger_whatsapp", "label": "Incoming"},
                    {"id": "c", "type": "condition", "label": "Is hello?", "data": {
                        "conditions": [{"field": "message", "operator": "contains", "value": "hello"}]
                    }},
                    {"id": "s", "type": "send_message", "label": "Reply", "data": {
                        "message": "Hi {{sender.name}}!"
                    }},
                ],
                "edges": [
                    {"id": "e1", "source": "t", "target": "c"},
                    {"id": "e2", "source": "c", "target": "s", "source_handle": "true"},
                ],
            }
        }

    def to_flow(self, flow_id: str = "") -> Flow:
        return Flow(id=flow_id, **self.model_dump())


class FlowResponse(Flow):
    """A stored flow."""
    mermaid_diagram: Optional[str] = Field(None, description="Mermaid diagram of the flow")


class FlowListResponse(BaseModel):
    """Response listing flows."""
    flows: List[FlowResponse]
    total: int


class FlowValidationResponse(BaseModel):
    """Outcome of validating a flow definition."""
    valid: bool
    errors: List[str] = Field(default_factory=list)


# ============================================================
# Run Schemas
# ============================================================

class FlowRunRequest(BaseModel):
    """Request to execute a stored flow."""
    input: Dict[str, Any] = Field(
        default_factory=dict,
        description="Initial variables, typically a `message` or `text` key"
    )
    entry_node_id: Optional[str] = Field(
        None,
        description="Trigger node to start from (first trigger if omitted)"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "input": {"message": "hello there", "sender": {"name": "Ann"}},
            }
        }


class ExecutionLogEntry(BaseModel):
    """A single executed node."""
    step: int
    node_id: str
    node_label: str
    node_type: str
    started_at: str
    completed_at: Optional[str]
    duration_ms: Optional[float]
    result: str
    error: Optional[str]
    handle: Optional[str]


class FlowRunResponse(BaseModel):
    """Response after running a flow."""
    run_id: str
    flow_id: str
    status: ExecutionStatus
    output: Dict[str, Any]
    execution_log: List[ExecutionLogEntry]
    started_at: Optional[str]
    completed_at: Optional[str]
    total_duration_ms: Optional[float]
    error: Optional[str] = None
    failed_node: Optional[str] = None
    failed_nodes: List[str] = Field(default_factory=list)


# ============================================================
# Credential Schemas
# ============================================================

class CredentialCreateRequest(BaseModel):
    """Request to store a credential."""
    agent_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: CredentialType
    config: Union[Dict[str, Any], str] = Field(..., description="Type-specific configuration")

    class Config:
        json_schema_extra = {
            "example": {
                "agent_id": "agent-1",
                "name": "OpenAI",
                "type": "openai",
                "config": {"api_key": "sk-..."},
            }
        }


class CredentialUpdateRequest(BaseModel):
    """Request to update a credential's name and/or config."""
    name: Optional[str] = None
    config: Optional[Union[Dict[str, Any], str]] = None


class CredentialResponse(BaseModel):
    """A stored credential. The config is never returned."""
    id: str
    agent_id: str
    name: str
    type: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class CredentialListResponse(BaseModel):
    credentials: List[CredentialResponse]
    total: int


class DatabaseTestResponse(BaseModel):
    success: bool
    message: str


# ============================================================
# Error Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[Any] = None
    status_code: int
