"""
Action nodes: outbound message preparation and variable assignment.
"""

from typing import Any, Dict

from agentflow.engine.context import ExecutionContext
from agentflow.engine.interpolation import interpolate
from agentflow.engine.models import Node, NodeType, SendMessageConfig, SetVariableConfig
from agentflow.nodes.registry import register_node


@register_node(NodeType.SEND_MESSAGE)
async def run_send_message(
    context: ExecutionContext,
    node: Node,
    config: SendMessageConfig
) -> Dict[str, Any]:
    """
    Resolve the message template.

    The text is only prepared here; the surrounding platform reads it from
    the run output and delivers it through the channel adapter.
    """
    message = interpolate(config.message, context.variables)
    return {
        "message": message,
        "response": message,
        "reply_to_trigger": config.reply_to_trigger,
    }


@register_node(NodeType.SET_VARIABLE)
async def run_set_variable(
    context: ExecutionContext,
    node: Node,
    config: SetVariableConfig
) -> Dict[str, Any]:
    """Store a (possibly interpolated) value under a name."""
    if not config.name:
        return dict(context.variables)

    value = config.value
    if isinstance(value, str):
        value = interpolate(value, context.variables)

    context.variables[config.name] = value
    return {config.name: value}
