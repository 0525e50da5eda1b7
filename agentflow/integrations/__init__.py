"""
Integrations package - Clients for the services nodes call out to.
"""

from agentflow.integrations.ai import AIProvider, CompletionRequest, OpenAIProvider
from agentflow.integrations.database import DatabaseConnector, build_database_url

__all__ = [
    "AIProvider",
    "CompletionRequest",
    "OpenAIProvider",
    "DatabaseConnector",
    "build_database_url",
]
