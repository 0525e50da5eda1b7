"""
AI completion provider.

AI agent nodes talk to a provider through the AIProvider protocol; the
default implementation calls an OpenAI-compatible chat completions API.
"""

from typing import Optional, Protocol
from dataclasses import dataclass
import logging

from openai import AsyncOpenAI, OpenAIError

from agentflow.engine.credentials import OpenAICredential
from agentflow.engine.errors import ExternalCallError


logger = logging.getLogger(__name__)


@dataclass
class CompletionRequest:
    """A single-turn completion request."""
    prompt: str
    model: str
    system_prompt: str = ""
    max_tokens: int = 500
    temperature: float = 0.7


class AIProvider(Protocol):
    """Completion provider used by AI agent nodes."""

    async def complete(self, request: CompletionRequest, credential: OpenAICredential) -> str:
        ...


class OpenAIProvider:
    """
    Chat completions through the OpenAI SDK.

    A client is built per call from the resolved credential, so runs for
    different agents never share keys.
    """

    def __init__(self, timeout: Optional[float] = 60.0):
        self.timeout = timeout

    async def complete(self, request: CompletionRequest, credential: OpenAICredential) -> str:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        try:
            async with AsyncOpenAI(
                api_key=credential.api_key,
                organization=credential.organization or None,
                base_url=credential.base_url or None,
                timeout=self.timeout,
            ) as client:
                response = await client.chat.completions.create(
                    model=request.model,
                    messages=messages,
                    max_tokens=request.max_tokens,
                    temperature=request.temperature,
                )
        except OpenAIError as e:
            raise ExternalCallError(f"AI generation failed: {e}") from e

        if not response.choices:
            raise ExternalCallError("AI generation failed: no choices returned")

        content = response.choices[0].message.content or ""
        logger.debug(f"Completion from {request.model}: {len(content)} chars")
        return content
