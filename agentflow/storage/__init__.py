"""
Storage package - In-memory storage for flows and credentials.
"""

from agentflow.storage.memory import (
    CredentialStorage,
    FlowStorage,
    credential_storage,
    flow_storage,
)

__all__ = [
    "CredentialStorage",
    "FlowStorage",
    "credential_storage",
    "flow_storage",
]
