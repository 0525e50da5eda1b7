"""
Delay node.
"""

from typing import Any, Dict
import asyncio
import logging

from agentflow.engine.context import ExecutionContext
from agentflow.engine.models import DelayConfig, Node, NodeType
from agentflow.nodes.registry import register_node


logger = logging.getLogger(__name__)

UNIT_SECONDS = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
}


def delay_seconds(config: DelayConfig, max_seconds: float) -> float:
    """Effective wait in seconds, clamped to max_seconds."""
    if config.duration <= 0:
        return 0.0
    seconds = config.duration * UNIT_SECONDS[config.unit]
    return min(seconds, max_seconds)


@register_node(NodeType.DELAY)
async def run_delay(
    context: ExecutionContext,
    node: Node,
    config: DelayConfig
) -> Dict[str, Any]:
    """Wait, unless the run is cancelled first."""
    seconds = delay_seconds(config, context.settings.MAX_DELAY_SECONDS)
    if seconds > 0:
        logger.info(f"Delaying {seconds:g}s at node {node.display_name}")
        await context.guard(asyncio.sleep(seconds))
    return dict(context.variables)
