"""
Credential API Routes.

Credentials are write-only through the API: responses never include the
stored configuration.
"""

from typing import Any, Dict, Optional, Union
from fastapi import APIRouter, Depends, HTTPException, status
import json
import logging

from agentflow.api.deps import get_database_connector
from agentflow.api.schemas import (
    CredentialCreateRequest,
    CredentialListResponse,
    CredentialResponse,
    CredentialUpdateRequest,
    DatabaseTestResponse,
    ErrorResponse,
)
from agentflow.engine.credentials import CREDENTIAL_MODELS, DatabaseCredential, decode_credential
from agentflow.engine.errors import ConfigurationError, FlowError
from agentflow.engine.models import Credential
from agentflow.integrations.database import DatabaseConnector
from agentflow.storage.memory import credential_storage


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/credentials", tags=["Credentials"])


def _to_response(credential: Credential) -> CredentialResponse:
    return CredentialResponse(
        id=credential.id,
        agent_id=credential.agent_id,
        name=credential.name,
        type=credential.type,
        created_at=credential.created_at,
        updated_at=credential.updated_at,
    )


def _serialize(config: Union[Dict[str, Any], str]) -> str:
    return config if isinstance(config, str) else json.dumps(config)


def _check(credential: Credential) -> None:
    """Reject configs that do not decode as the credential's type."""
    try:
        decode_credential(credential, CREDENTIAL_MODELS[credential.type])
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


async def _get_or_404(credential_id: str) -> Credential:
    credential = await credential_storage.get_credential(credential_id)
    if not credential:
        raise HTTPException(status_code=404, detail=f"Credential '{credential_id}' not found")
    return credential


@router.post(
    "/",
    response_model=CredentialResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse, "description": "Invalid config"}},
)
async def create_credential(request: CredentialCreateRequest) -> CredentialResponse:
    """Store a credential for an agent."""
    credential = Credential(
        agent_id=request.agent_id,
        name=request.name,
        type=request.type.value,
        config=_serialize(request.config),
    )
    _check(credential)
    stored = await credential_storage.save(credential)
    logger.info(f"Created {stored.type} credential: {stored.id}")
    return _to_response(stored)


@router.get("/", response_model=CredentialListResponse)
async def list_credentials(agent_id: str) -> CredentialListResponse:
    """List the credentials of an agent."""
    credentials = await credential_storage.list_by_agent(agent_id)
    return CredentialListResponse(
        credentials=[_to_response(c) for c in credentials],
        total=len(credentials),
    )


@router.get(
    "/{credential_id}",
    response_model=CredentialResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_credential(credential_id: str) -> CredentialResponse:
    return _to_response(await _get_or_404(credential_id))


@router.put(
    "/{credential_id}",
    response_model=CredentialResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_credential(credential_id: str, request: CredentialUpdateRequest) -> CredentialResponse:
    """Rename a credential and/or replace its config."""
    credential = await _get_or_404(credential_id)
    updates: Dict[str, Optional[str]] = {}
    if request.name is not None:
        updates["name"] = request.name
    if request.config is not None:
        updates["config"] = _serialize(request.config)
    updated = credential.model_copy(update=updates)
    _check(updated)
    stored = await credential_storage.save(updated)
    return _to_response(stored)


@router.delete(
    "/{credential_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_credential(credential_id: str):
    deleted = await credential_storage.delete(credential_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Credential '{credential_id}' not found")
    logger.info(f"Deleted credential: {credential_id}")


@router.post("/test-database", response_model=DatabaseTestResponse)
async def test_database_connection(
    config: DatabaseCredential,
    connector: DatabaseConnector = Depends(get_database_connector),
) -> DatabaseTestResponse:
    """Check that a database configuration accepts connections."""
    try:
        await connector.test_connection(config)
    except FlowError as e:
        return DatabaseTestResponse(success=False, message=str(e))
    return DatabaseTestResponse(success=True, message="Connection successful")
