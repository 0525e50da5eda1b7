"""
Async Flow Executor.

Walks a flow from its trigger node, dispatching each node to its handler,
merging outputs into the variable scope and following the selected
outgoing edges until the graph is exhausted or a node fails.
"""

from typing import Any, Callable, Dict, List, Optional, Set
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import asyncio
import logging
import time

import httpx

from agentflow.config import Settings, settings as default_settings
from agentflow.engine.context import EngineServices, ExecutionContext, ExecutionStep, HANDLE_KEY
from agentflow.engine.credentials import CredentialResolver, CredentialStore
from agentflow.engine.errors import (
    CancellationError,
    CycleDetectedError,
    FlowError,
    NodeExecutionError,
    NotFoundError,
)
from agentflow.engine.graph import FlowGraph
from agentflow.engine.models import Flow, Node
from agentflow.integrations.ai import AIProvider
from agentflow.integrations.database import DatabaseConnector
from agentflow.nodes import NodeHandlerRegistry, node_registry


logger = logging.getLogger(__name__)


class FanOutPolicy(str, Enum):
    """What happens to sibling branches when a node fails."""
    ABORT_ALL = "abort_all"                  # Stop the whole run at the first failure
    CONTINUE_SIBLINGS = "continue_siblings"  # Skip the failed subtree, keep walking


class ExecutionStatus(str, Enum):
    """Status of a flow run."""
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ExecutionResult:
    """Result of a flow run, for callers that want the log too."""
    run_id: str
    flow_id: str
    status: ExecutionStatus
    output: Dict[str, Any]
    variables: Dict[str, Any]
    execution_log: List[ExecutionStep] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_duration_ms: Optional[float] = None
    error: Optional[str] = None
    failed_node: Optional[str] = None
    failed_nodes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "flow_id": self.flow_id,
            "status": self.status.value,
            "output": self.output,
            "variables": self.variables,
            "execution_log": [step.to_dict() for step in self.execution_log],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_duration_ms": self.total_duration_ms,
            "error": self.error,
            "failed_node": self.failed_node,
            "failed_nodes": self.failed_nodes,
        }


class FlowExecutor:
    """
    Executes flows against injected collaborators.

    One executor can serve many concurrent runs: all per-run state lives
    in the ExecutionContext created for each call.

    Traversal is depth-first in edge order using an explicit stack. Each
    node runs at most once per run, and a cycle reachable from the entry
    node is rejected before any handler runs.

    Usage:
        executor = FlowExecutor(credential_store, ai_provider=OpenAIProvider())
        output = await executor.execute(flow, {"message": "hi"})
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        ai_provider: Optional[AIProvider] = None,
        database: Optional[DatabaseConnector] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        registry: Optional[NodeHandlerRegistry] = None,
        fan_out_policy: Optional[FanOutPolicy] = None,
        settings: Optional[Settings] = None,
        on_step: Optional[Callable[[ExecutionStep, ExecutionContext], None]] = None,
    ):
        """
        Initialize the executor.

        Args:
            credential_store: Source of stored credentials
            ai_provider: Completion provider for AI agent nodes
            database: Connector for database nodes
            http_client: Shared client for HTTP request nodes
            registry: Node handler registry (built-in handlers by default)
            fan_out_policy: Sibling policy on failure (from settings by default)
            settings: Engine settings
            on_step: Optional callback after each executed node
        """
        self.settings = settings or default_settings
        self.services = EngineServices(
            credentials=CredentialResolver(credential_store),
            ai_provider=ai_provider,
            database=database or DatabaseConnector(),
            http_client=http_client,
            settings=self.settings,
        )
        self.registry = registry or node_registry
        self.fan_out_policy = fan_out_policy or FanOutPolicy(self.settings.FAN_OUT_POLICY)
        self.on_step = on_step

    def create_context(
        self,
        flow: Flow,
        input_data: Optional[Dict[str, Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        run_id: Optional[str] = None,
    ) -> ExecutionContext:
        """Create the context of a new run."""
        return ExecutionContext.create(flow, input_data, self.services, cancel_event, run_id)

    async def execute(
        self,
        flow: Flow,
        input_data: Optional[Dict[str, Any]] = None,
        entry_node_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Dict[str, Any]:
        """
        Run a flow and return the output of the last executed node.

        Args:
            flow: The flow to run
            input_data: Initial variables (typically `message` / `text`)
            entry_node_id: Trigger node to start from (first trigger if None)
            cancel_event: Set it to cancel the run

        Raises:
            NoTriggerFound: If there is no trigger node to start from
            CycleDetectedError: If a cycle is reachable from the trigger
            NodeExecutionError: If a node fails
            CancellationError: If the run is cancelled between nodes
        """
        context = self.create_context(flow, input_data, cancel_event)
        await self.walk(context, entry_node_id)
        return dict(context.output)

    async def run(
        self,
        flow: Flow,
        input_data: Optional[Dict[str, Any]] = None,
        entry_node_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        run_id: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Run a flow and report the outcome as an ExecutionResult.

        Engine errors are captured on the result instead of raised.
        """
        start_time = time.time()
        started_at = datetime.now()
        context = self.create_context(flow, input_data, cancel_event, run_id)
        status = ExecutionStatus.COMPLETED
        error: Optional[str] = None
        failed_node: Optional[str] = None

        try:
            await self.walk(context, entry_node_id)
        except FlowError as e:
            error = str(e)
            cause = e.cause if isinstance(e, NodeExecutionError) else e
            if isinstance(e, NodeExecutionError):
                failed_node = e.node_id
            status = (
                ExecutionStatus.CANCELLED
                if isinstance(cause, CancellationError)
                else ExecutionStatus.FAILED
            )

        return ExecutionResult(
            run_id=context.run_id,
            flow_id=flow.id,
            status=status,
            output=dict(context.output) if status == ExecutionStatus.COMPLETED else {},
            variables=dict(context.variables),
            execution_log=list(context.steps),
            started_at=started_at,
            completed_at=datetime.now(),
            total_duration_ms=(time.time() - start_time) * 1000,
            error=error,
            failed_node=failed_node,
            failed_nodes=[s.node_id for s in context.steps if s.result == "error"],
        )

    async def walk(self, context: ExecutionContext, entry_node_id: Optional[str] = None) -> None:
        """Traverse the flow of a context from its trigger node."""
        graph = FlowGraph(context.flow, self.settings.TRIGGER_PREFIX)
        trigger = graph.find_trigger(entry_node_id)

        cycle = graph.find_cycle(trigger.id)
        if cycle:
            raise CycleDetectedError(cycle)

        logger.info(
            f"Starting run {context.run_id} of flow '{context.flow.name}' "
            f"from {trigger.display_name}"
        )

        stack: List[str] = [trigger.id]
        visited: Set[str] = set()
        failures: List[NodeExecutionError] = []

        while stack:
            node_id = stack.pop()
            if node_id in visited:
                continue
            visited.add(node_id)
            context.raise_if_cancelled()

            node = graph.get_node(node_id)
            if node is None:
                raise NotFoundError(f"node {node_id} not found")

            try:
                output = await self._execute_node(node, context)
            except NodeExecutionError as e:
                if (
                    self.fan_out_policy == FanOutPolicy.ABORT_ALL
                    or isinstance(e.cause, CancellationError)
                ):
                    raise
                logger.warning(f"Skipping branch below {node.display_name}: {e}")
                failures.append(e)
                continue

            next_ids = graph.next_node_ids(node.id, output)
            if HANDLE_KEY in output:
                logger.debug(f"Branch '{output[HANDLE_KEY]}' of {node.display_name} -> {next_ids}")
            # Reversed so the first edge is explored first
            stack.extend(reversed(next_ids))

        if failures:
            raise failures[0]

        logger.info(f"Run {context.run_id} completed after {len(context.steps)} node(s)")

    async def _execute_node(self, node: Node, context: ExecutionContext) -> Dict[str, Any]:
        """Execute a single node and merge its output into the context."""
        step = ExecutionStep(
            step=len(context.steps) + 1,
            node_id=node.id,
            node_label=node.display_name,
            node_type=node.type,
            started_at=datetime.now(),
        )
        node_start_time = time.time()
        context.current_node = node.id

        logger.info(f"Executing node: {node.display_name} ({node.type})")

        try:
            output = await self.registry.dispatch(node, context)
        except Exception as e:
            step.result = "error"
            step.error = str(e)
            logger.error(f"Node {node.display_name} failed: {e}")
            raise NodeExecutionError(node.id, node.display_name, e) from e
        else:
            context.merge(output)
            handle = output.get(HANDLE_KEY)
            step.handle = str(handle) if handle is not None else None
            return output
        finally:
            step.completed_at = datetime.now()
            step.duration_ms = (time.time() - node_start_time) * 1000
            context.steps.append(step)
            self._notify(step, context)

    def _notify(self, step: ExecutionStep, context: ExecutionContext) -> None:
        if self.on_step:
            try:
                self.on_step(step, context)
            except Exception as e:
                logger.warning(f"Step callback failed: {e}")


async def execute_flow(
    flow: Flow,
    input_data: Optional[Dict[str, Any]],
    credential_store: CredentialStore,
    **executor_options: Any
) -> Dict[str, Any]:
    """
    Convenience function to execute a flow once.

    Args:
        flow: The flow to run
        input_data: Initial variables
        credential_store: Source of stored credentials
        **executor_options: Passed to FlowExecutor

    Returns:
        Output of the last executed node
    """
    executor = FlowExecutor(credential_store, **executor_options)
    return await executor.execute(flow, input_data)
