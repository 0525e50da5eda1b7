"""
Condition node.

Evaluates `{field, operator, value}` rules against the variable scope and
emits a "true" / "false" handle that selects the outgoing branch.
"""

from typing import Any, Dict, List
import re

from agentflow.engine.context import ExecutionContext, HANDLE_KEY
from agentflow.engine.interpolation import get_nested_value, stringify
from agentflow.engine.models import ConditionConfig, Node, NodeType
from agentflow.nodes.registry import register_node


_NUMBER_PREFIX = re.compile(r"\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")


def to_float(value: Any) -> float:
    """
    Permissive numeric coercion.

    Numbers are used as-is, strings contribute their leading number
    ("12abc" -> 12.0), anything else counts as zero.
    """
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMBER_PREFIX.match(value)
        if match:
            return float(match.group(0))
    return 0.0


def evaluate_condition(actual: Any, operator: str, expected: Any) -> bool:
    """Evaluate a single comparison. Unknown operators are false."""
    if operator in ("eq", "equals", "=="):
        return stringify(actual) == stringify(expected)
    if operator in ("ne", "not_equals", "!="):
        return stringify(actual) != stringify(expected)
    if operator == "contains":
        return stringify(expected) in stringify(actual)
    if operator == "starts_with":
        return stringify(actual).startswith(stringify(expected))
    if operator == "ends_with":
        return stringify(actual).endswith(stringify(expected))
    if operator in ("gt", ">"):
        return to_float(actual) > to_float(expected)
    if operator in ("lt", "<"):
        return to_float(actual) < to_float(expected)
    if operator in ("gte", ">="):
        return to_float(actual) >= to_float(expected)
    if operator in ("lte", "<="):
        return to_float(actual) <= to_float(expected)
    if operator == "empty":
        # None renders as "", so a missing field counts as empty
        return stringify(actual) == ""
    if operator == "not_empty":
        return stringify(actual) != ""
    return False


def combine(results: List[bool], combine_with: str) -> bool:
    """Combine rule results; an empty rule list is true under "and"."""
    if combine_with == "or":
        return any(results)
    return all(results)


@register_node(NodeType.CONDITION)
async def run_condition(
    context: ExecutionContext,
    node: Node,
    config: ConditionConfig
) -> Dict[str, Any]:
    """Branch on the variable scope."""
    results = [
        evaluate_condition(
            get_nested_value(context.variables, rule.field),
            rule.operator,
            rule.value,
        )
        for rule in config.conditions
    ]
    result = combine(results, config.combine_with)
    return {
        "result": result,
        HANDLE_KEY: "true" if result else "false",
    }
