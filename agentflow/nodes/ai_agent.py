"""
AI agent node.

Sends the current `message` (or `text`) variable to the completion
provider with the node's system prompt and returns the completion.
"""

from typing import Any, Dict, Optional
import logging

from agentflow.engine.context import ExecutionContext
from agentflow.engine.credentials import OpenAICredential
from agentflow.engine.errors import ConfigurationError, FlowError
from agentflow.engine.interpolation import interpolate
from agentflow.engine.models import AIAgentConfig, CredentialType, Node, NodeType
from agentflow.integrations.ai import CompletionRequest
from agentflow.nodes.registry import register_node


logger = logging.getLogger(__name__)


async def resolve_ai_credential(
    context: ExecutionContext,
    config: AIAgentConfig
) -> Optional[OpenAICredential]:
    """
    Resolve the provider key: referenced credential first, then the
    inline `api_key` of the node.
    """
    if config.credential_id:
        try:
            credential = await context.services.credentials.resolve(
                config.credential_id, CredentialType.OPENAI
            )
            if credential.api_key:
                return credential
        except FlowError as e:
            logger.warning(f"AI credential '{config.credential_id}' unusable, trying inline key: {e}")
    if config.api_key:
        return OpenAICredential(api_key=config.api_key)
    return None


def current_message(variables: Dict[str, Any]) -> str:
    """The user prompt: `message`, else `text`, when they hold text."""
    for key in ("message", "text"):
        value = variables.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


@register_node(NodeType.AI_AGENT)
async def run_ai_agent(
    context: ExecutionContext,
    node: Node,
    config: AIAgentConfig
) -> Dict[str, Any]:
    """Generate an AI response to the current message."""
    credential = await resolve_ai_credential(context, config)
    if credential is None:
        raise ConfigurationError("AI agent requires API key")

    message = current_message(context.variables)
    if not message:
        raise ConfigurationError("no message to process")

    provider = context.services.ai_provider
    if provider is None:
        raise ConfigurationError("no AI provider configured")

    settings = context.settings
    request = CompletionRequest(
        prompt=message,
        model=config.model or settings.AI_DEFAULT_MODEL,
        system_prompt=interpolate(config.system_prompt, context.variables),
        max_tokens=settings.AI_MAX_TOKENS,
        temperature=settings.AI_TEMPERATURE,
    )
    response = await context.guard(provider.complete(request, credential))

    return {
        "response": response,
        "ai_response": response,
        "message": response,
    }
