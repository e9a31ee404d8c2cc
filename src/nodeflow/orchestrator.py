"""
Flow orchestrator: drives a node/edge graph to completion on one event loop.

Scheduling model:
    - Roots (no incoming edges, at least one outgoing edge) start together.
    - A node runs only after every node feeding it has succeeded (the
      readiness gate). Each node runs at most once per run; later callers
      await the task already scheduled for it.
    - After a node succeeds, every successor that is now ready is started
      and the node awaits all of them (fan-out, then join).
    - A failing node is marked ``error`` and stops there. Its dependents never
      become ready; unrelated branches carry on.
    - Sinks (``preview-output``) record their output as a run result and end
      their branch.

Only configuration errors (nothing to execute) and cancellation escape
``run()``. Per-node failures are reported through the state callback.

Example:
    >>> orchestrator = FlowOrchestrator()
    >>> output = await orchestrator.run(
    ...     nodes=[{"id": "in", "type": "text-input", "data": {"inputValue": "hi"}},
    ...            {"id": "out", "type": "preview-output"}],
    ...     edges=[{"id": "e1", "source": "in", "target": "out"}],
    ...     on_state_change=lambda node_id, state: print(node_id, state.status.value),
    ... )
"""

import asyncio
import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .backend import BackendClient
from .cache import ExecutionCache, is_cacheable
from .cancellation import CancellationToken, run_cancellable
from .config import EngineConfig, ExecuteOptions
from .exceptions import ExecutionCancelledError, FlowConfigurationError, NodeExecutionError
from .executors import ExecutionContext, ExecutorRegistry, NodeExecutor, StateChangeCallback
from .executors import global_registry
from .graph import collect_inputs, downstream_sinks, find_roots, incoming_edges, outgoing_edges
from .models import (
    Edge,
    ExecuteResult,
    FlowResult,
    Node,
    NodeExecutionState,
    NodeStatus,
    make_pulse,
    pulse_key,
)

logger = logging.getLogger(__name__)

NodeLike = Union[Node, Dict[str, Any]]
EdgeLike = Union[Edge, Dict[str, Any]]

CANCELLED_MESSAGE = "Execution cancelled"


class FlowOrchestrator:
    """
    Executes flows using a registry of executors.

    Args:
        registry: Executor lookup (defaults to the process-wide registry)
        config: Engine configuration
        cache: Optional result cache for incremental re-runs
        client: Backend client shared by generation executors. When omitted,
            one is created from ``config`` for each run and closed afterwards.
    """

    def __init__(
        self,
        registry: Optional[ExecutorRegistry] = None,
        config: Optional[EngineConfig] = None,
        cache: Optional[ExecutionCache] = None,
        client: Optional[BackendClient] = None,
    ):
        self.registry = registry if registry is not None else global_registry()
        self.config = config or EngineConfig()
        self.cache = cache
        self.client = client

    async def run(
        self,
        nodes: Sequence[NodeLike],
        edges: Sequence[EdgeLike],
        on_state_change: Optional[StateChangeCallback],
        options: Optional[ExecuteOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Execute a flow and return the output of the last sink that completed.

        Raises:
            ExecutionCancelledError: If ``cancel_token`` is (or becomes) cancelled
            FlowConfigurationError: If the flow has no executable roots
        """
        result = await self.run_detailed(nodes, edges, on_state_change, options, cancel_token)
        return result.output

    async def run_detailed(
        self,
        nodes: Sequence[NodeLike],
        edges: Sequence[EdgeLike],
        on_state_change: Optional[StateChangeCallback] = None,
        options: Optional[ExecuteOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> FlowResult:
        """Like ``run`` but returns every sink output and node error."""
        if cancel_token is not None and cancel_token.is_cancelled():
            raise ExecutionCancelledError()

        flow_nodes = [Node.from_dict(n) for n in nodes]
        flow_edges = [Edge.from_dict(e) for e in edges]
        roots = find_roots(
            flow_nodes,
            flow_edges,
            sink_types=self.config.sink_types,
            include_disconnected_sinks=self.config.execute_disconnected_sinks,
        )
        if not roots:
            raise FlowConfigurationError("No connected nodes found to execute")

        client = self.client or BackendClient.from_config(self.config)
        run = _FlowRun(
            self,
            flow_nodes,
            flow_edges,
            on_state_change,
            options or ExecuteOptions(),
            cancel_token,
            client,
        )
        logger.info(f"Starting flow run: {len(flow_nodes)} nodes, {len(roots)} roots")
        try:
            await run_cancellable(run.execute(roots), cancel_token)
        except ExecutionCancelledError:
            await run.abort()
            logger.info("Flow run cancelled")
            raise
        except asyncio.CancelledError:
            await run.abort()
            logger.info("Flow run task cancelled")
            raise
        finally:
            if self.client is None:
                await client.aclose()

        logger.info(
            f"Flow run finished: {len(run.completed)} succeeded, {len(run.result.errors)} failed"
        )
        return run.result


class _FlowRun:
    """State of one execution. Created per run and discarded afterwards."""

    def __init__(
        self,
        orchestrator: FlowOrchestrator,
        nodes: List[Node],
        edges: List[Edge],
        on_state_change: Optional[StateChangeCallback],
        options: ExecuteOptions,
        cancel_token: Optional[CancellationToken],
        client: BackendClient,
    ):
        self.registry = orchestrator.registry
        self.config = orchestrator.config
        self.cache = orchestrator.cache
        self.nodes = nodes
        self.edges = edges
        self.node_map = {n.id: n for n in nodes}
        self.on_state_change = on_state_change
        self.options = options
        self.cancel_token = cancel_token
        self.client = client

        # Written only here: node id -> output, "<id>:done" -> pulse marker
        self.executed_outputs: Dict[str, str] = {}
        self.outputs_view: Mapping[str, str] = MappingProxyType(self.executed_outputs)
        self.context: Dict[str, Any] = {}
        self.completed: Set[str] = set()
        self.running: Set[str] = set()
        self.in_flight: Dict[str, "asyncio.Task[None]"] = {}
        self.tracked_sinks: Dict[str, List[Node]] = {}
        self.result = FlowResult()

    async def execute(self, roots: Iterable[Node]) -> None:
        await asyncio.gather(*(self._schedule(root) for root in roots))

    async def abort(self) -> None:
        """Cancel outstanding node tasks and mark interrupted nodes as failed."""
        pending = [task for task in self.in_flight.values() if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for node_id in list(self.running):
            self._fail(self.node_map[node_id], CANCELLED_MESSAGE)

    def _schedule(self, node: Node) -> "asyncio.Task[None]":
        """Start ``node`` once; later calls return the same task."""
        task = self.in_flight.get(node.id)
        if task is None:
            task = asyncio.ensure_future(self._run_node(node))
            self.in_flight[node.id] = task
        else:
            logger.debug(f"Node '{node.id}' already scheduled, joining existing execution")
        return task

    def _is_ready(self, node_id: str) -> bool:
        return all(e.source in self.completed for e in incoming_edges(node_id, self.edges))

    async def _wait_until_ready(self, node: Node) -> bool:
        """
        Block until every upstream node has completed.

        Returns False when an upstream node failed or was never started, in
        which case ``node`` can never run.
        """
        while not self._is_ready(node.id):
            pending = [
                self.in_flight[e.source]
                for e in incoming_edges(node.id, self.edges)
                if e.source not in self.completed
                and e.source in self.in_flight
                and not self.in_flight[e.source].done()
            ]
            if not pending:
                return False
            logger.debug(f"Node '{node.id}' waiting on {len(pending)} upstream node(s)")
            await asyncio.gather(*pending)
        return True

    async def _run_node(self, node: Node) -> None:
        if not await self._wait_until_ready(node):
            logger.debug(f"Node '{node.id}' skipped: upstream did not complete")
            return
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled()
        if self.config.step_delay > 0:
            await asyncio.sleep(self.config.step_delay)

        executor = self.registry.resolve(node.type)
        tracked: List[Node] = []
        if self.registry.tracks_downstream_preview(node.type):
            tracked = downstream_sinks(
                node.id, self.nodes, self.edges, self.config.sink_types, self.config.boundary_types
            )
        self.tracked_sinks[node.id] = tracked

        self.running.add(node.id)
        self._emit(node.id, NodeExecutionState(NodeStatus.RUNNING))
        for sink in tracked:
            self._emit(sink.id, NodeExecutionState(NodeStatus.RUNNING, source_type=node.type))

        inputs = collect_inputs(
            node.id, self.edges, self.executed_outputs, self.config.default_target_handle
        )
        try:
            result, cached = await self._execute(node, executor, inputs, tracked)
        except ExecutionCancelledError:
            self._fail(node, CANCELLED_MESSAGE)
            raise
        except Exception as e:
            logger.error(f"Node '{node.id}' ({node.type}) failed: {e}")
            self._fail(node, str(e))
            return

        self._complete(node, result, cached)
        if node.type in self.config.sink_types:
            self.result.output = result.output
            self.result.outputs[node.label] = result.output
            return

        successors: List["asyncio.Task[None]"] = []
        for edge in outgoing_edges(node.id, self.edges):
            target = self.node_map.get(edge.target)
            if target is None or target.id in self.in_flight or not self._is_ready(target.id):
                continue
            successors.append(self._schedule(target))
        if successors:
            await asyncio.gather(*successors)

    async def _execute(
        self,
        node: Node,
        executor: NodeExecutor,
        inputs: Dict[str, str],
        tracked: List[Node],
    ) -> Tuple[ExecuteResult, bool]:
        use_cache = (
            self.cache is not None
            and is_cacheable(node)
            and node.id not in self.options.input_overrides
        )
        if use_cache:
            cached = self.cache.get(
                node, self.edges, self.executed_outputs, self.config.default_target_handle
            )
            if cached is not None:
                logger.debug(f"Node '{node.id}' served from cache")
                return cached, True

        def on_stream_update(output: str, debug_info: Any = None, reasoning: Optional[str] = None) -> None:
            self._emit(
                node.id,
                NodeExecutionState(
                    NodeStatus.RUNNING, output=output, reasoning=reasoning, debug_info=debug_info
                ),
            )
            for sink in tracked:
                self._emit(
                    sink.id,
                    NodeExecutionState(NodeStatus.RUNNING, output=output, source_type=node.type),
                )

        ctx = ExecutionContext(
            node=node,
            inputs=inputs,
            context=self.context,
            outputs=self.outputs_view,
            options=self.options,
            cancel_token=self.cancel_token,
            edges=self.edges,
            on_stream_update=on_stream_update,
            on_state_change=self._emit,
            client=self.client,
        )
        result = await executor.execute(ctx)
        if not isinstance(result, ExecuteResult):
            raise NodeExecutionError(
                f"Executor for '{node.type}' returned {type(result).__name__}, expected ExecuteResult",
                node_id=node.id,
            )
        if use_cache:
            self.cache.set(node, self.edges, inputs, result, self.config.default_target_handle)
        return result, False

    def _complete(self, node: Node, result: ExecuteResult, cached: bool) -> None:
        self.executed_outputs[node.id] = result.output
        if self.registry.has_pulse_output(node.type):
            self.executed_outputs[pulse_key(node.id)] = make_pulse()
        self.completed.add(node.id)
        self.running.discard(node.id)
        self._emit(
            node.id,
            NodeExecutionState(
                NodeStatus.SUCCESS,
                output=result.output,
                reasoning=result.reasoning,
                debug_info=result.debug_info,
                cached=cached,
                extra=result.secondary_outputs(),
            ),
        )

    def _fail(self, node: Node, message: str) -> None:
        self.running.discard(node.id)
        self.result.errors[node.label] = message
        self._emit(node.id, NodeExecutionState(NodeStatus.ERROR, error=message))
        for sink in self.tracked_sinks.get(node.id, []):
            self._emit(sink.id, NodeExecutionState(NodeStatus.ERROR, error=message))

    def _emit(self, node_id: str, state: NodeExecutionState) -> None:
        self.result.states[node_id] = state
        if self.on_state_change is None:
            return
        try:
            self.on_state_change(node_id, state)
        except Exception as e:
            logger.warning(f"State callback failed for node '{node_id}': {e}")


async def run_flow(
    nodes: Sequence[NodeLike],
    edges: Sequence[EdgeLike],
    on_state_change: Optional[StateChangeCallback] = None,
    options: Optional[ExecuteOptions] = None,
    cancel_token: Optional[CancellationToken] = None,
    config: Optional[EngineConfig] = None,
) -> str:
    """Execute a flow with the process-wide executor registry."""
    orchestrator = FlowOrchestrator(config=config)
    return await orchestrator.run(nodes, edges, on_state_change, options, cancel_token)
