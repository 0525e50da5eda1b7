"""
HTTP request node.
"""

from typing import Any, Dict, Optional, Tuple
import json
import logging

import httpx

from agentflow.engine.context import ExecutionContext
from agentflow.engine.credentials import CustomAPICredential
from agentflow.engine.errors import ExternalCallError
from agentflow.engine.interpolation import interpolate, interpolate_value, stringify
from agentflow.engine.models import CredentialType, HTTPRequestConfig, Node, NodeType
from agentflow.nodes.registry import register_node


logger = logging.getLogger(__name__)


def join_url(base_url: str, url: str) -> str:
    """Prefix relative URLs with an API base URL."""
    if not base_url or url.startswith(("http://", "https://")):
        return url
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"


def apply_api_credential(
    api: CustomAPICredential,
    url: str,
    headers: Dict[str, str]
) -> Tuple[str, Dict[str, str], Optional[httpx.Auth]]:
    """Merge a custom API credential into the request."""
    merged = {**api.headers, **headers}
    auth: Optional[httpx.Auth] = None
    if api.auth_type == "bearer":
        merged.setdefault("Authorization", f"Bearer {api.auth_value}")
    elif api.auth_type == "api_key":
        merged.setdefault("X-API-Key", api.auth_value)
    elif api.auth_type == "basic":
        username, _, password = api.auth_value.partition(":")
        auth = httpx.BasicAuth(username, password)
    return join_url(api.base_url, url), merged, auth


def encode_body(config: HTTPRequestConfig, variables: Dict[str, Any]) -> Optional[str]:
    """Interpolate the body; structured bodies are sent as JSON."""
    if isinstance(config.body, str):
        body = interpolate(config.body, variables)
        return body or None
    return json.dumps(interpolate_value(config.body, variables))


def decode_response(response: httpx.Response) -> Dict[str, Any]:
    """Status, headers and body (structured when it parses as JSON)."""
    try:
        body: Any = response.json()
    except ValueError:
        body = response.text
    return {
        "status_code": response.status_code,
        "body": body,
        "headers": dict(response.headers),
    }


@register_node(NodeType.HTTP_REQUEST)
async def run_http_request(
    context: ExecutionContext,
    node: Node,
    config: HTTPRequestConfig
) -> Dict[str, Any]:
    """Call an HTTP endpoint and return its response."""
    variables = context.variables
    url = interpolate(config.url, variables)
    headers = {k: interpolate(stringify(v), variables) for k, v in config.headers.items()}
    params = {k: interpolate(stringify(v), variables) for k, v in config.query_params.items()}
    auth: Optional[httpx.Auth] = None

    if config.credential_id:
        api = await context.services.credentials.resolve(
            config.credential_id, CredentialType.CUSTOM_API
        )
        url, headers, auth = apply_api_credential(api, url, headers)

    body = encode_body(config, variables)
    if body is not None and not any(k.lower() == "content-type" for k in headers):
        headers["Content-Type"] = "application/json"

    timeout = config.timeout or context.settings.HTTP_DEFAULT_TIMEOUT
    request_kwargs = {
        "headers": headers,
        "params": params or None,
        "content": body,
        "timeout": timeout,
    }
    if auth is not None:
        request_kwargs["auth"] = auth

    logger.info(f"HTTP {config.method} {url}")
    try:
        response = await context.guard(
            _send(context, config.method, url, request_kwargs)
        )
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise ExternalCallError(f"HTTP request failed: {e}") from e

    return decode_response(response)


async def _send(
    context: ExecutionContext,
    method: str,
    url: str,
    request_kwargs: Dict[str, Any]
) -> httpx.Response:
    client = context.services.http_client
    if client is not None:
        return await client.request(method, url, **request_kwargs)
    async with httpx.AsyncClient() as client:
        return await client.request(method, url, **request_kwargs)
