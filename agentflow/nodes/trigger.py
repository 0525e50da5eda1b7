"""
Trigger and fallback handlers.
"""

from typing import Any, Dict, Optional
import logging

from agentflow.engine.context import ExecutionContext
from agentflow.engine.models import Node, NodeConfig
from agentflow.nodes.registry import FALLBACK_KEY, TRIGGER_KEY, register_node


logger = logging.getLogger(__name__)


@register_node(TRIGGER_KEY)
async def run_trigger(
    context: ExecutionContext,
    node: Node,
    config: Optional[NodeConfig]
) -> Dict[str, Any]:
    """Entry point of a run. Passes the run's original input through."""
    return dict(context.input)


@register_node(FALLBACK_KEY)
async def run_unknown(
    context: ExecutionContext,
    node: Node,
    config: Optional[NodeConfig]
) -> Dict[str, Any]:
    """Unknown node types pass the variable scope through unchanged."""
    logger.warning(f"No handler for node type '{node.type}' ({node.display_name}), passing through")
    return dict(context.variables)
