"""
Shared fixtures for the flow engine tests.
"""

from typing import Any, Dict, List, Optional

import pytest

from agentflow.engine.executor import FlowExecutor
from agentflow.engine.models import Credential, Edge, Flow, Node
from agentflow.integrations.ai import CompletionRequest


class InMemoryCredentials:
    """Credential store backed by a dict."""
    
    def __init__(self, *credentials: Credential):
        self.credentials: Dict[str, Credential] = {c.id: c for c in credentials}
    
    def add(self, credential: Credential) -> None:
        self.credentials[credential.id] = credential
    
    async def get_credential(self, credential_id: str) -> Optional[Credential]:
        return self.credentials.get(credential_id)


class FakeAIProvider:
    """Completion provider that records requests and echoes a reply."""
    
    def __init__(self, reply: str = "Hi there!"):
        self.reply = reply
        self.requests: List[CompletionRequest] = []
        self.keys: List[str] = []
    
    async def complete(self, request, credential) -> str:
        self.requests.append(request)
        self.keys.append(credential.api_key)
        return self.reply


class FailingDatabase:
    """Database connector stand-in that must never be reached."""
    
    async def run(self, credential, operation):
        raise AssertionError("database should not be called")


def make_node(node_id: str, node_type: str, label: str = "", **data: Any) -> Node:
    return Node(id=node_id, type=node_type, label=label or node_id, data=data)


def make_edge(source: str, target: str, handle: Optional[str] = None) -> Edge:
    return Edge(id=f"{source}-{target}", source=source, target=target, source_handle=handle)


def make_flow(nodes: List[Node], edges: List[Edge], **kwargs: Any) -> Flow:
    return Flow(id=kwargs.pop("id", "flow-1"), name=kwargs.pop("name", "Test flow"),
                nodes=nodes, edges=edges, **kwargs)


@pytest.fixture
def credentials() -> InMemoryCredentials:
    return InMemoryCredentials()


@pytest.fixture
def ai_provider() -> FakeAIProvider:
    return FakeAIProvider()


@pytest.fixture
def executor(credentials, ai_provider) -> FlowExecutor:
    return FlowExecutor(credentials, ai_provider=ai_provider, database=FailingDatabase())
