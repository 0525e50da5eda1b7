"""
Credential Resolver.

Fetches a stored credential by id and decodes its serialized payload into
the typed model for the expected credential type. Nothing is cached:
every node invocation fetches and decodes again.
"""

from typing import Any, Dict, Optional, Protocol, Type, TypeVar
import json
import logging

from pydantic import BaseModel, Field, ValidationError

from agentflow.engine.errors import ConfigurationError, NotFoundError
from agentflow.engine.models import Credential, CredentialType


logger = logging.getLogger(__name__)


# ============================================================
# Typed credential payloads
# ============================================================

class DatabaseCredential(BaseModel):
    """Relational database connection settings."""
    driver: str = "postgresql+asyncpg"
    host: str = "localhost"
    port: Optional[int] = 5432
    database: str = ""
    user: str = ""
    password: str = ""
    ssl_mode: str = ""  # disable, require, verify-ca, verify-full


class OpenAICredential(BaseModel):
    """AI provider key, with optional organization and base URL."""
    api_key: str
    organization: Optional[str] = None
    base_url: Optional[str] = None


class SMTPCredential(BaseModel):
    host: str
    port: int = 587
    user: str = ""
    password: str = ""
    from_name: str = ""
    from_email: str = ""
    use_tls: bool = True


class GoogleSheetsCredential(BaseModel):
    service_account_json: str


class SerpAPICredential(BaseModel):
    api_key: str


class CustomAPICredential(BaseModel):
    """Base URL, default headers and auth for an arbitrary HTTP API."""
    base_url: str = ""
    headers: Dict[str, str] = Field(default_factory=dict)
    auth_type: str = "none"  # none, basic, bearer, api_key
    auth_value: str = ""


CREDENTIAL_MODELS: Dict[str, Type[BaseModel]] = {
    CredentialType.DATABASE.value: DatabaseCredential,
    CredentialType.OPENAI.value: OpenAICredential,
    CredentialType.SMTP.value: SMTPCredential,
    CredentialType.GOOGLE_SHEETS.value: GoogleSheetsCredential,
    CredentialType.SERP_API.value: SerpAPICredential,
    CredentialType.CUSTOM_API.value: CustomAPICredential,
}

T = TypeVar("T", bound=BaseModel)


class CredentialStore(Protocol):
    """Read access to stored credentials."""

    async def get_credential(self, credential_id: str) -> Optional[Credential]:
        ...


def decode_credential(credential: Credential, model: Type[T]) -> T:
    """
    Decode a credential's serialized config into a typed model.

    Raises:
        ConfigurationError: If the payload is not valid JSON or does not
            match the model
    """
    try:
        payload: Any = json.loads(credential.config or "{}")
    except ValueError as e:
        raise ConfigurationError(
            f"invalid {credential.type} config for credential '{credential.id}'"
        ) from e
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise ConfigurationError(
            f"invalid {credential.type} config for credential '{credential.id}': "
            f"{e.error_count()} validation error(s)"
        ) from e


class CredentialResolver:
    """
    Resolves credential ids into typed credential payloads.

    Usage:
        resolver = CredentialResolver(store)
        db = await resolver.resolve(cred_id, CredentialType.DATABASE)
    """

    def __init__(self, store: CredentialStore):
        self.store = store

    async def fetch(self, credential_id: str) -> Credential:
        """Fetch the stored credential record."""
        credential = await self.store.get_credential(credential_id)
        if credential is None:
            raise NotFoundError(f"credential '{credential_id}' not found")
        return credential

    async def resolve(self, credential_id: str, expected_type: CredentialType) -> Any:
        """
        Fetch a credential and decode it as the expected type.

        Raises:
            NotFoundError: If no credential has this id
            ConfigurationError: If the credential has another type or an
                undecodable payload
        """
        credential = await self.fetch(credential_id)
        if credential.type != expected_type.value:
            raise ConfigurationError(
                f"credential '{credential_id}' is of type '{credential.type}', "
                f"expected '{expected_type.value}'"
            )
        logger.debug(f"Resolved {credential.type} credential '{credential_id}'")
        return decode_credential(credential, CREDENTIAL_MODELS[expected_type.value])
