"""
Executor contract.

An executor is the pluggable unit of work behind a node type. The
orchestrator hands it an ExecutionContext and expects an ExecuteResult back,
or an exception describing why the node could not run. Executors never
return a partial success.

Example:
    >>> class UppercaseExecutor(NodeExecutor):
    ...     type = "uppercase"
    ...
    ...     async def execute(self, ctx):
    ...         return ExecuteResult(output=ctx.inputs.get("prompt", "").upper())
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional

from ..config import ExecuteOptions
from ..models import ExecuteResult, Node, NodeExecutionState

if TYPE_CHECKING:
    from ..backend import BackendClient
    from ..cancellation import CancellationToken
    from ..models import Edge

StreamUpdateCallback = Callable[..., None]
"""``(partial_output, debug_info=None, reasoning=None) -> None``"""

StateChangeCallback = Callable[[str, NodeExecutionState], None]


@dataclass
class ExecutionContext:
    """
    Everything an executor may use while running one node.

    Attributes:
        node: The node being executed
        inputs: Values from upstream nodes, keyed by target handle
        context: Scratch values shared by all nodes of the run. Executors
            write only keys derived from their own node id.
        outputs: Read-only view of the outputs (and ``"<id>:done"`` markers)
            of the nodes completed so far. Only the orchestrator writes it.
        options: Caller-supplied per-run options
        cancel_token: Run cancellation token
        edges: All edges of the flow (for connection checks)
        on_stream_update: Reports partial output while the node runs
        on_state_change: Reports state for any node id
        client: Shared backend client
    """

    node: Node
    inputs: Dict[str, str]
    context: Dict[str, Any] = field(default_factory=dict)
    outputs: Mapping[str, str] = field(default_factory=dict)
    options: ExecuteOptions = field(default_factory=ExecuteOptions)
    cancel_token: Optional["CancellationToken"] = None
    edges: List["Edge"] = field(default_factory=list)
    on_stream_update: Optional[StreamUpdateCallback] = None
    on_state_change: Optional[StateChangeCallback] = None
    client: Optional["BackendClient"] = None

    def stream(self, output: str, debug_info: Any = None, reasoning: Optional[str] = None) -> None:
        """Forward a partial result, if anyone is listening."""
        if self.on_stream_update is not None:
            self.on_stream_update(output, debug_info, reasoning)

    def data(self, key: str, default: Any = None) -> Any:
        """Read a node setting."""
        value = self.node.data.get(key)
        return default if value is None else value

    def text_setting(self, key: str) -> str:
        """Read a string node setting, treating other types as empty."""
        value = self.node.data.get(key)
        return value if isinstance(value, str) else ""


class NodeExecutor(ABC):
    """
    Abstract base class for node executors.

    Class attributes:
        type: Node type tag handled by the executor
        has_pulse_output: Write a ``"<id>:done"`` completion marker after success
        tracks_downstream_preview: Mirror running/streaming/error state onto
            the sink nodes reachable from this node
    """

    type: str = ""
    has_pulse_output: bool = False
    tracks_downstream_preview: bool = False

    @abstractmethod
    async def execute(self, ctx: ExecutionContext) -> ExecuteResult:
        """
        Run the node.

        Raises:
            NodeExecutionError: On malformed input or a missing connection
            BackendError: When the backend call fails
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.type!r})"


def first_available_input(inputs: Dict[str, str]) -> str:
    """``prompt``, else ``input``, else the first non-empty value, else ``""``."""
    if inputs.get("prompt"):
        return inputs["prompt"]
    if inputs.get("input"):
        return inputs["input"]
    for value in inputs.values():
        if value:
            return value
    return ""


class PassthroughExecutor(NodeExecutor):
    """Forwards its first available input. Used for unknown node types."""

    def __init__(self, node_type: str):
        self.type = node_type

    async def execute(self, ctx: ExecutionContext) -> ExecuteResult:
        return ExecuteResult(output=first_available_input(ctx.inputs))
