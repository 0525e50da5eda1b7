"""
Shared API dependencies.
"""

from functools import lru_cache

from agentflow.engine.executor import FlowExecutor
from agentflow.integrations.ai import OpenAIProvider
from agentflow.integrations.database import DatabaseConnector
from agentflow.storage.memory import credential_storage


@lru_cache()
def get_database_connector() -> DatabaseConnector:
    return DatabaseConnector()


@lru_cache()
def get_executor() -> FlowExecutor:
    """The executor used by the API, reading credentials from storage."""
    return FlowExecutor(
        credential_storage,
        ai_provider=OpenAIProvider(),
        database=get_database_connector(),
    )
