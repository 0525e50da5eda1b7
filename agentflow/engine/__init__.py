"""
Engine package - Flow model, execution context and traversal.

The executor lives in `agentflow.engine.executor`; it is not re-exported
here because it pulls in the node handlers and their integrations.
"""

from agentflow.engine.context import EngineServices, ExecutionContext, ExecutionStep
from agentflow.engine.errors import (
    CancellationError,
    ConfigurationError,
    CycleDetectedError,
    ExternalCallError,
    FlowError,
    NodeExecutionError,
    NoTriggerFound,
    NotFoundError,
)
from agentflow.engine.graph import FlowGraph, validate_flow
from agentflow.engine.interpolation import interpolate
from agentflow.engine.models import Credential, Edge, Flow, Node, NodeType, Variable

__all__ = [
    "EngineServices",
    "ExecutionContext",
    "ExecutionStep",
    "CancellationError",
    "ConfigurationError",
    "CycleDetectedError",
    "ExternalCallError",
    "FlowError",
    "NodeExecutionError",
    "NoTriggerFound",
    "NotFoundError",
    "FlowGraph",
    "validate_flow",
    "interpolate",
    "Credential",
    "Edge",
    "Flow",
    "Node",
    "NodeType",
    "Variable",
]
