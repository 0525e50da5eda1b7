"""
In-Memory Storage for flows and credentials.

Async-safe stores keyed by id. CredentialStorage doubles as the credential
store the engine reads from. Can be replaced with a database-backed
implementation exposing the same methods.
"""

from typing import Dict, List, Optional
from datetime import datetime
import asyncio
import uuid

from agentflow.engine.models import Credential, Flow


class FlowStorage:
    """
    In-memory storage for flows.

    Flows are replaced wholesale on every save.
    """
    
    def __init__(self):
        self._flows: Dict[str, Flow] = {}
        self._lock = asyncio.Lock()
    
    async def save(self, flow: Flow) -> Flow:
        """
        Create or replace a flow.
        
        Assigns an id on first save and maintains the timestamps.
        
        Returns:
            The stored flow
        """
        async with self._lock:
            now = datetime.now()
            flow_id = flow.id or str(uuid.uuid4())
            existing = self._flows.get(flow_id)
            stored = flow.model_copy(update={
                "id": flow_id,
                "created_at": existing.created_at if existing else now,
                "updated_at": now,
            })
            self._flows[flow_id] = stored
            return stored
    
    async def get(self, flow_id: str) -> Optional[Flow]:
        """Get a flow by ID."""
        async with self._lock:
            return self._flows.get(flow_id)
    
    async def delete(self, flow_id: str) -> bool:
        """Delete a flow."""
        async with self._lock:
            if flow_id in self._flows:
                del self._flows[flow_id]
                return True
            return False
    
    async def list_all(self) -> List[Flow]:
        """List all stored flows."""
        async with self._lock:
            return list(self._flows.values())
    
    async def list_by_agent(self, agent_id: str) -> List[Flow]:
        """List the flows of one agent."""
        async with self._lock:
            return [f for f in self._flows.values() if f.agent_id == agent_id]
    
    def __len__(self) -> int:
        return len(self._flows)


class CredentialStorage:
    """
    In-memory storage for credentials.
    
    Implements the engine's credential store (`get_credential`).
    """
    
    def __init__(self):
        self._credentials: Dict[str, Credential] = {}
        self._lock = asyncio.Lock()
    
    async def save(self, credential: Credential) -> Credential:
        """Create or replace a credential."""
        async with self._lock:
            now = datetime.now()
            credential_id = credential.id or str(uuid.uuid4())
            existing = self._credentials.get(credential_id)
            stored = credential.model_copy(update={
                "id": credential_id,
                "created_at": existing.created_at if existing else now,
                "updated_at": now,
            })
            self._credentials[credential_id] = stored
            return stored
    
    async def get_credential(self, credential_id: str) -> Optional[Credential]:
        """Get a credential by ID."""
        async with self._lock:
            return self._credentials.get(credential_id)
    
    async def delete(self, credential_id: str) -> bool:
        """Delete a credential."""
        async with self._lock:
            if credential_id in self._credentials:
                del self._credentials[credential_id]
                return True
            return False
    
    async def list_by_agent(self, agent_id: str) -> List[Credential]:
        """List the credentials of one agent."""
        async with self._lock:
            return [c for c in self._credentials.values() if c.agent_id == agent_id]
    
    def __len__(self) -> int:
        return len(self._credentials)


# Global storage instances
flow_storage = FlowStorage()
credential_storage = CredentialStorage()
