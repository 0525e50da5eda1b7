"""
Execution Context.

Per-run mutable state: the variable scope, the run's original input, the
output of the last node, and the cancellation signal shared with every
blocking call of the run. A context lives for exactly one execution and is
discarded afterwards.
"""

from typing import Any, Awaitable, Dict, List, Optional, TypeVar, TYPE_CHECKING
from dataclasses import dataclass, field
from datetime import datetime
from copy import deepcopy
import asyncio
import uuid

from agentflow.config import Settings, settings as default_settings
from agentflow.engine.errors import CancellationError
from agentflow.engine.models import Flow

if TYPE_CHECKING:
    import httpx
    from agentflow.engine.credentials import CredentialResolver
    from agentflow.integrations.ai import AIProvider
    from agentflow.integrations.database import DatabaseConnector


T = TypeVar("T")

# Output key used by branching nodes to pick outgoing edges
HANDLE_KEY = "_handle"


@dataclass
class EngineServices:
    """
    External collaborators available to node handlers.

    Attributes:
        credentials: Resolver over the credential store
        ai_provider: Completion provider for AI agent nodes
        database: Connector for database nodes
        http_client: Shared HTTP client (a new client per call if None)
        settings: Engine settings
    """
    credentials: "CredentialResolver"
    ai_provider: Optional["AIProvider"] = None
    database: Optional["DatabaseConnector"] = None
    http_client: Optional["httpx.AsyncClient"] = None
    settings: Settings = field(default_factory=lambda: default_settings)


@dataclass
class ExecutionStep:
    """A single executed node in the run log."""
    step: int
    node_id: str
    node_label: str
    node_type: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    result: str = "success"
    error: Optional[str] = None
    handle: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "node_id": self.node_id,
            "node_label": self.node_label,
            "node_type": self.node_type,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "result": self.result,
            "error": self.error,
            "handle": self.handle,
        }


@dataclass
class ExecutionContext:
    """
    Mutable state of one flow run.

    Attributes:
        flow: The flow being run
        input: The caller-supplied input, unchanged for the whole run
        variables: The variable scope read and written by nodes
        output: Output of the last executed node
        current_node: Id of the node currently executing
        services: External collaborators
        cancel_event: Set to cancel the run
        steps: Execution log of this run
    """
    flow: Flow
    input: Dict[str, Any]
    services: EngineServices
    variables: Dict[str, Any] = field(default_factory=dict)
    output: Dict[str, Any] = field(default_factory=dict)
    current_node: Optional[str] = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    steps: List[ExecutionStep] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        flow: Flow,
        input_data: Optional[Dict[str, Any]],
        services: EngineServices,
        cancel_event: Optional[asyncio.Event] = None,
        run_id: Optional[str] = None,
    ) -> "ExecutionContext":
        """
        Build a context for a new run.

        The scope is seeded from the flow's declared variables, then the
        input is overlaid (input wins on name collision).
        """
        input_data = dict(input_data or {})
        variables = {v.name: deepcopy(v.value) for v in flow.variables}
        variables.update(input_data)
        context = cls(
            flow=flow,
            input=input_data,
            services=services,
            variables=variables,
        )
        if cancel_event is not None:
            context.cancel_event = cancel_event
        if run_id:
            context.run_id = run_id
        return context

    @property
    def settings(self) -> Settings:
        return self.services.settings

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        """Signal cancellation to the run."""
        self.cancel_event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancellationError("flow execution cancelled")

    def merge(self, output: Dict[str, Any]) -> None:
        """
        Merge a node's output into the scope and make it the current output.

        The routing handle is kept on the output only, never in the scope.
        """
        self.output = output
        for key, value in output.items():
            if key != HANDLE_KEY:
                self.variables[key] = value
        self.variables.pop(HANDLE_KEY, None)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await a blocking call, racing it against the cancellation signal.

        Raises:
            CancellationError: If the run is cancelled first; the pending
                call is cancelled
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise CancellationError("flow execution cancelled")
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            return task.result()

        # Let the cancelled call unwind before reporting
        await asyncio.gather(task, return_exceptions=True)
        raise CancellationError("flow execution cancelled")
