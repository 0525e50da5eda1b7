"""
Flow Graph Model.

Flows, nodes, edges, variables and credentials as they are saved by the
platform, plus one typed configuration model per node type. A node keeps
its raw configuration bag in `data`; `parse_node_config` turns that bag
into the typed model for the node's type.
"""

from typing import Any, Dict, List, Literal, Optional, Type, Union
from datetime import datetime
from enum import Enum
import json

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from agentflow.engine.errors import ConfigurationError
from agentflow.engine.interpolation import check_raw_query


class NodeType(str, Enum):
    """Node type tags understood by the engine."""
    # Triggers
    TRIGGER_WHATSAPP = "trigger_whatsapp"
    TRIGGER_TELEGRAM = "trigger_telegram"
    TRIGGER_INSTAGRAM = "trigger_instagram"
    TRIGGER_WEBHOOK = "trigger_webhook"
    TRIGGER_SCHEDULE = "trigger_schedule"

    # AI & logic
    AI_AGENT = "ai_agent"
    CONDITION = "condition"
    DELAY = "delay"

    # Integrations
    HTTP_REQUEST = "http_request"
    DATABASE = "database"

    # Actions
    SEND_MESSAGE = "send_message"
    SET_VARIABLE = "set_variable"


class CredentialType(str, Enum):
    """Credential type tags."""
    DATABASE = "database"
    OPENAI = "openai"
    GOOGLE_SHEETS = "google_sheets"
    SMTP = "smtp"
    SERP_API = "serp_api"
    CUSTOM_API = "custom_api"


# Condition operators, canonical names first, then accepted aliases
CONDITION_OPERATORS = {
    "eq", "ne", "contains", "starts_with", "ends_with",
    "gt", "lt", "gte", "lte", "empty", "not_empty",
    "equals", "==", "not_equals", "!=", ">", "<", ">=", "<=",
}

# Operators accepted in structured database `where` predicates
WHERE_OPERATORS = {
    "eq", "ne", "gt", "lt", "gte", "lte",
    "contains", "starts_with", "ends_with", "in", "is_null", "not_null",
}


# ============================================================
# Graph structures
# ============================================================

class Position(BaseModel):
    """Canvas coordinates of a node. Display only."""
    x: float = 0
    y: float = 0


class Node(BaseModel):
    """A single step of a flow."""
    id: str
    type: str
    label: str = ""
    position: Position = Field(default_factory=Position)
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _none_data(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def display_name(self) -> str:
        return self.label or self.id


class Edge(BaseModel):
    """A directed connection between two nodes."""
    id: str = ""
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    label: Optional[str] = None


class Variable(BaseModel):
    """A flow-level variable. The declared type is informational only."""
    name: str
    value: Any = None
    type: str = "string"


class Flow(BaseModel):
    """
    A saved automation graph belonging to one agent.

    Nodes and edges are replaced wholesale on every save.
    """
    id: str = ""
    agent_id: str = ""
    name: str = ""
    description: str = ""
    is_active: bool = True
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    variables: List[Variable] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Credential(BaseModel):
    """
    A stored credential for an external service.

    `config` holds the serialized (JSON) type-specific payload; it is
    decoded by the credential resolver when a node needs it.
    """
    id: str = ""
    agent_id: str = ""
    name: str = ""
    type: str
    config: str = "{}"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("config", mode="before")
    @classmethod
    def _serialize_config(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return json.dumps(value)
        return value


# ============================================================
# Typed node configuration
# ============================================================

class NodeConfig(BaseModel):
    """Base class for typed node configuration."""

    class Config:
        extra = "ignore"

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # JSON nulls fall back to field defaults
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class TriggerConfig(NodeConfig):
    """
    Channel routing metadata.

    Read by the platform when it maps an inbound message to a flow run;
    the trigger handler itself only passes the run input through.
    """
    integration_id: Optional[str] = None
    message_types: List[str] = Field(default_factory=list)
    filter_keywords: List[str] = Field(default_factory=list)


class AIAgentConfig(NodeConfig):
    """AI completion. Generation parameters are fixed by settings."""
    credential_id: Optional[str] = None
    api_key: Optional[str] = None
    model: Optional[str] = None
    system_prompt: str = ""


class HTTPRequestConfig(NodeConfig):
    method: str = "GET"
    url: str = ""
    headers: Dict[str, Any] = Field(default_factory=dict)
    query_params: Dict[str, Any] = Field(default_factory=dict)
    body: Union[str, Dict[str, Any], List[Any]] = ""
    timeout: Optional[float] = None
    credential_id: Optional[str] = None

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.strip().upper() or "GET"

    @field_validator("timeout")
    @classmethod
    def _positive_timeout(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            return None
        return value

    @model_validator(mode="after")
    def _require_url(self) -> "HTTPRequestConfig":
        if not self.url.strip():
            raise ValueError("URL is required for HTTP request")
        return self


class WherePredicate(BaseModel):
    """One parameter-bound predicate of a database `where` clause."""
    column: str
    operator: str = "eq"
    value: Any = None

    @field_validator("operator")
    @classmethod
    def _known_operator(cls, value: str) -> str:
        if value not in WHERE_OPERATORS:
            raise ValueError(f"unknown where operator: {value}")
        return value


class DatabaseConfig(NodeConfig):
    credential_id: str = ""
    operation: Literal["raw", "select", "insert", "update", "delete"]
    table: str = ""
    query: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)
    columns: List[str] = Field(default_factory=list)
    where: Union[List[WherePredicate], Dict[str, Any]] = Field(default_factory=list)
    values: Dict[str, Any] = Field(default_factory=dict)
    limit: Optional[int] = None

    @field_validator("where", mode="before")
    @classmethod
    def _structured_where(cls, value: Any) -> Any:
        if isinstance(value, str):
            if not value.strip():
                return []
            raise ValueError(
                "where must be a column map or a list of predicates, not SQL text"
            )
        return value

    @model_validator(mode="after")
    def _check_operation(self) -> "DatabaseConfig":
        if not self.credential_id:
            raise ValueError("database credential is required")
        if self.operation == "raw":
            if not self.query.strip():
                raise ValueError("query required for raw operation")
            try:
                check_raw_query(self.query)
            except ConfigurationError as e:
                raise ValueError(str(e)) from e
            return self
        if not self.table:
            raise ValueError(f"table required for {self.operation}")
        if self.operation in ("insert", "update") and not self.values:
            raise ValueError(f"values required for {self.operation}")
        if self.operation in ("update", "delete") and not self.where:
            raise ValueError(f"where clause required for {self.operation}")
        return self

    @property
    def predicates(self) -> List[WherePredicate]:
        """The where clause as a list of predicates."""
        if isinstance(self.where, dict):
            return [WherePredicate(column=k, value=v) for k, v in self.where.items()]
        return list(self.where)


class ConditionRule(BaseModel):
    field: str = ""
    operator: str
    value: Any = None

    @field_validator("operator")
    @classmethod
    def _known_operator(cls, value: str) -> str:
        if value not in CONDITION_OPERATORS:
            raise ValueError(f"unknown condition operator: {value}")
        return value


class ConditionConfig(NodeConfig):
    conditions: List[ConditionRule] = Field(default_factory=list)
    combine_with: Literal["and", "or"] = "and"

    @field_validator("combine_with", mode="before")
    @classmethod
    def _default_combine(cls, value: Any) -> Any:
        return value or "and"


class DelayConfig(NodeConfig):
    duration: float = 0
    unit: Literal["seconds", "minutes", "hours"] = "seconds"

    @field_validator("unit", mode="before")
    @classmethod
    def _default_unit(cls, value: Any) -> Any:
        return value or "seconds"


class SendMessageConfig(NodeConfig):
    """
    Prepares outbound text; delivery belongs to the channel adapters.

    `integration_id` names the channel to deliver through and is only
    carried for the platform.
    """
    message: str = ""
    integration_id: Optional[str] = None
    reply_to_trigger: bool = False


class SetVariableConfig(NodeConfig):
    name: str = ""
    value: Any = None


CONFIG_MODELS: Dict[str, Type[NodeConfig]] = {
    NodeType.AI_AGENT.value: AIAgentConfig,
    NodeType.HTTP_REQUEST.value: HTTPRequestConfig,
    NodeType.DATABASE.value: DatabaseConfig,
    NodeType.CONDITION.value: ConditionConfig,
    NodeType.DELAY.value: DelayConfig,
    NodeType.SEND_MESSAGE.value: SendMessageConfig,
    NodeType.SET_VARIABLE.value: SetVariableConfig,
}


def is_trigger_type(node_type: str, prefix: str = "trigger_") -> bool:
    """Check whether a node type tag denotes a trigger."""
    return node_type.startswith(prefix)


def config_model_for(node_type: str, trigger_prefix: str = "trigger_") -> Optional[Type[NodeConfig]]:
    """Get the configuration model for a node type (None if unknown)."""
    if is_trigger_type(node_type, trigger_prefix):
        return TriggerConfig
    return CONFIG_MODELS.get(node_type)


def parse_node_config(
    node_type: str,
    data: Dict[str, Any],
    trigger_prefix: str = "trigger_"
) -> Optional[NodeConfig]:
    """
    Validate a node's configuration bag against its type's model.

    Returns None for unknown node types.

    Raises:
        ConfigurationError: If the bag does not satisfy the model
    """
    model = config_model_for(node_type, trigger_prefix)
    if model is None:
        return None
    try:
        return model.model_validate(data or {})
    except ValidationError as e:
        raise ConfigurationError(_format_validation_error(e)) from e


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ()))
        message = item.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)
