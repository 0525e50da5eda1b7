"""
Variable Interpolation.

Substitutes `{{ path }}` tokens with values from the variable scope.
A path is split on "." and walked through nested mappings; lists are not
indexable. Tokens whose path does not resolve are left untouched.
"""

from typing import Any, Dict, Mapping, Tuple
import json
import logging
import re

from agentflow.engine.errors import ConfigurationError


logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"\{\{([^}]+)\}\}")


def get_nested_value(data: Mapping[str, Any], path: str) -> Any:
    """
    Look up a dot-separated path in nested mappings.

    Returns None when any segment is missing or an intermediate value
    is not a mapping.
    """
    current: Any = data
    for part in path.strip().split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def stringify(value: Any) -> str:
    """Render a variable value as text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def interpolate(template: str, variables: Mapping[str, Any]) -> str:
    """
    Replace every resolvable `{{ path }}` token in template.

    Example:
        interpolate("Hello {{name}}!", {"name": "Ann"}) -> "Hello Ann!"
    """
    if not template or "{{" not in template:
        return template

    def replace(match: "re.Match[str]") -> str:
        value = get_nested_value(variables, match.group(1))
        if value is None:
            logger.debug(f"Unresolved variable: {match.group(1).strip()}")
            return match.group(0)
        return stringify(value)

    return TOKEN_PATTERN.sub(replace, template)


def interpolate_value(value: Any, variables: Mapping[str, Any]) -> Any:
    """Interpolate strings, recursing into dicts and lists."""
    if isinstance(value, str):
        return interpolate(value, variables)
    if isinstance(value, dict):
        return {k: interpolate_value(v, variables) for k, v in value.items()}
    if isinstance(value, list):
        return [interpolate_value(v, variables) for v in value]
    return value


# SQL string literals, with '' as the escaped quote
_SQL_LITERAL = re.compile(r"'(?:[^']|'')*'")
# A token quoted as a whole literal, or a bare token
_BIND_PATTERN = re.compile(r"'\{\{([^}]+)\}\}'|\{\{([^}]+)\}\}")


def check_raw_query(template: str) -> None:
    """
    Reject tokens embedded in a larger SQL string literal.

    `'{{name}}'` is accepted and bound as a parameter; `'%{{name}}%'`
    cannot be bound and is rejected.

    Raises:
        ConfigurationError: If a quoted literal mixes a token with other text
    """
    for literal in _SQL_LITERAL.findall(template):
        if "{{" in literal and not _BIND_PATTERN.fullmatch(literal):
            raise ConfigurationError(
                f"quoted variable in raw query must be the whole literal: {literal}"
            )


def bind_template(template: str, variables: Mapping[str, Any]) -> Tuple[str, Dict[str, Any]]:
    """
    Turn `{{ path }}` tokens into named bind parameters.

    Each token, together with a pair of single quotes directly around it,
    is replaced by `:_v<n>` and its resolved value goes into the returned
    parameter map, so variable content never becomes query text.

    Raises:
        ConfigurationError: If a token does not resolve or is embedded in
            a larger string literal
    """
    check_raw_query(template)
    params: Dict[str, Any] = {}

    def replace(match: "re.Match[str]") -> str:
        path = (match.group(1) or match.group(2)).strip()
        value = get_nested_value(variables, path)
        if value is None:
            raise ConfigurationError(f"unresolved variable in query: {path}")
        name = f"_v{len(params)}"
        params[name] = value
        return f":{name}"

    return _BIND_PATTERN.sub(replace, template), params


def resolve_value(value: Any, variables: Mapping[str, Any]) -> Any:
    """
    Like interpolate_value, but a string consisting of exactly one token
    resolves to the variable itself, keeping its type.

    Example:
        resolve_value("{{age}}", {"age": 30}) -> 30
    """
    if isinstance(value, str):
        match = TOKEN_PATTERN.fullmatch(value.strip())
        if match:
            resolved = get_nested_value(variables, match.group(1))
            if resolved is not None:
                return resolved
        return interpolate(value, variables)
    if isinstance(value, dict):
        return {k: resolve_value(v, variables) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_value(v, variables) for v in value]
    return value
