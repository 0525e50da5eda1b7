"""
Node Handler Registry.

Maps node type tags to handler coroutines and dispatches a node to its
handler. Trigger types are matched by prefix; types with no registered
handler fall back to a passthrough handler.
"""

from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional
from dataclasses import dataclass
import functools
import logging

from agentflow.engine.context import ExecutionContext
from agentflow.engine.models import Node, NodeConfig, parse_node_config


logger = logging.getLogger(__name__)

# Registry key of the handler shared by every trigger type
TRIGGER_KEY = "trigger_*"
# Registry key of the handler used for unknown types
FALLBACK_KEY = "*"

HandlerFunc = Callable[[ExecutionContext, Node, Optional[NodeConfig]], Awaitable[Dict[str, Any]]]


@dataclass
class NodeHandler:
    """
    A registered node handler.

    Attributes:
        node_type: Type tag (or TRIGGER_KEY / FALLBACK_KEY)
        func: Handler coroutine taking (context, node, config)
        description: Human-readable description
    """
    node_type: str
    func: HandlerFunc
    description: str = ""

    async def __call__(
        self,
        context: ExecutionContext,
        node: Node,
        config: Optional[NodeConfig]
    ) -> Dict[str, Any]:
        return await self.func(context, node, config)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_type": self.node_type,
            "description": self.description,
        }


class NodeHandlerRegistry:
    """
    Registry of node handlers.

    Usage:
        registry = NodeHandlerRegistry()

        @registry.register("my_type")
        async def run_my_type(context, node, config):
            return {"done": True}

        output = await registry.dispatch(node, context)
    """

    def __init__(self):
        self._handlers: Dict[str, NodeHandler] = {}

    def register(self, node_type: str, description: str = "") -> Callable:
        """
        Decorator to register a coroutine as the handler of a node type.

        Args:
            node_type: Type tag handled
            description: Handler description (defaults to docstring)
        """
        def decorator(func: HandlerFunc) -> HandlerFunc:
            self.add(func, node_type, description)

            @functools.wraps(func)
            async def wrapper(*args, **kwargs):
                return await func(*args, **kwargs)

            return wrapper

        return decorator

    def add(self, func: HandlerFunc, node_type: str, description: str = "") -> None:
        """Directly add a handler (non-decorator version)."""
        key = getattr(node_type, "value", node_type)
        self._handlers[key] = NodeHandler(
            node_type=key,
            func=func,
            description=(description or func.__doc__ or "").strip(),
        )
        logger.debug(f"Registered node handler: {key}")

    def get(self, node_type: str) -> Optional[NodeHandler]:
        """Get the handler registered for exactly this type tag."""
        return self._handlers.get(node_type)

    def resolve(self, node_type: str, trigger_prefix: str = "trigger_") -> NodeHandler:
        """
        Find the handler for a node type.

        Raises:
            KeyError: If nothing matches and no fallback is registered
        """
        handler = self._handlers.get(node_type)
        if handler is None and node_type.startswith(trigger_prefix):
            handler = self._handlers.get(TRIGGER_KEY)
        if handler is None:
            handler = self._handlers.get(FALLBACK_KEY)
        if handler is None:
            raise KeyError(f"No handler registered for node type '{node_type}'")
        return handler

    async def dispatch(self, node: Node, context: ExecutionContext) -> Dict[str, Any]:
        """
        Run a node through its handler.

        The node's configuration bag is validated against its type's model
        first; unknown types get no config.
        """
        prefix = context.settings.TRIGGER_PREFIX
        handler = self.resolve(node.type, prefix)
        config = parse_node_config(node.type, node.data, prefix)
        result = await handler(context, node, config)

        if not isinstance(result, dict):
            raise ValueError(
                f"Handler for '{node.type}' must return a dict, "
                f"got {type(result).__name__}"
            )
        return result

    def remove(self, node_type: str) -> bool:
        """Remove a handler from the registry."""
        if node_type in self._handlers:
            del self._handlers[node_type]
            return True
        return False

    def list_handlers(self) -> List[Dict[str, Any]]:
        """List all registered handlers with their metadata."""
        return [h.to_dict() for h in self._handlers.values()]

    def has(self, node_type: str) -> bool:
        return node_type in self._handlers

    def __contains__(self, node_type: str) -> bool:
        return self.has(node_type)

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self) -> Iterator[NodeHandler]:
        return iter(self._handlers.values())


# Global registry instance holding the built-in handlers
node_registry = NodeHandlerRegistry()


def register_node(node_type: str, description: str = "") -> Callable:
    """
    Convenience decorator to register a handler in the global registry.

    Usage:
        @register_node(NodeType.DELAY)
        async def run_delay(context, node, config):
            ...
    """
    return node_registry.register(node_type, description)
