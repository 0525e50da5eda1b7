"""
Error taxonomy for flow execution.

Every failure raised by the engine or a node handler derives from
FlowError. A node failure reaches the caller wrapped in a
NodeExecutionError naming the node that produced it.
"""

from typing import List, Optional


class FlowError(Exception):
    """Base class for all flow engine errors."""


class ConfigurationError(FlowError):
    """A required field is missing or a node/flow is misconfigured."""


class CycleDetectedError(ConfigurationError):
    """The edge set reachable from the entry node contains a cycle."""
    
    def __init__(self, path: List[str]):
        self.path = list(path)
        super().__init__(f"cycle detected: {' -> '.join(self.path)}")


class NotFoundError(FlowError):
    """A referenced node or credential does not exist."""


class ExternalCallError(FlowError):
    """A network, database or AI-provider call failed."""


class CancellationError(FlowError):
    """The run was cancelled while waiting on a delay or an external call."""


class NoTriggerFound(FlowError):
    """The flow is empty or has no trigger-typed node to start from."""


class NodeExecutionError(FlowError):
    """
    Failure of a single node, wrapping the underlying error.
    
    Attributes:
        node_id: Id of the failing node
        node_label: Display label of the failing node
        cause: The original exception (also available as __cause__)
    """
    
    def __init__(self, node_id: str, node_label: str, cause: Exception):
        self.node_id = node_id
        self.node_label = node_label
        self.cause = cause
        super().__init__(f"node {node_label or node_id} failed: {cause}")
    
    @property
    def kind(self) -> Optional[str]:
        """Name of the wrapped error class."""
        return type(self.cause).__name__ if self.cause else None
