"""
Nodes package - Node handler registry and the built-in node handlers.

Importing this package registers every built-in handler in the global
registry.
"""

from agentflow.nodes.registry import (
    NodeHandler,
    NodeHandlerRegistry,
    node_registry,
    register_node,
)

# Register built-in handlers
from agentflow.nodes import (  # noqa: F401
    actions,
    ai_agent,
    condition,
    database,
    delay,
    http_request,
    trigger,
)

__all__ = [
    "NodeHandler",
    "NodeHandlerRegistry",
    "node_registry",
    "register_node",
]
