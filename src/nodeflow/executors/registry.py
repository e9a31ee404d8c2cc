"""
Node type -> executor lookup.

A registry is populated once at startup. Looking up an unknown type is not
an error: ``resolve`` hands back a passthrough executor so experimental node
types stay inert instead of breaking the run.

Module-level helpers (``register_executor``, ``get_executor``, ...) operate
on a process-wide registry preloaded with the built-in executors.
"""

import logging
from typing import Dict, List, Optional

from ..exceptions import ExecutorRegistrationError
from .base import NodeExecutor, PassthroughExecutor

logger = logging.getLogger(__name__)


class ExecutorRegistry:
    """Table of executors keyed by node type."""

    def __init__(self):
        self._executors: Dict[str, NodeExecutor] = {}

    def register(self, executor: NodeExecutor, replace: bool = False) -> None:
        """
        Register ``executor`` for its ``type``.

        Raises:
            ExecutorRegistrationError: If the type is already registered and
                ``replace`` is False, or the executor has no type.
        """
        if not executor.type:
            raise ExecutorRegistrationError(f"{executor!r} does not declare a node type")
        if executor.type in self._executors and not replace:
            raise ExecutorRegistrationError(
                f'Executor for type "{executor.type}" is already registered'
            )
        self._executors[executor.type] = executor

    def unregister(self, node_type: str) -> None:
        self._executors.pop(node_type, None)

    def get(self, node_type: str) -> Optional[NodeExecutor]:
        return self._executors.get(node_type)

    def has(self, node_type: str) -> bool:
        return node_type in self._executors

    def resolve(self, node_type: str) -> NodeExecutor:
        """Executor for ``node_type``, or a passthrough when none is registered."""
        executor = self._executors.get(node_type)
        if executor is None:
            logger.debug(f"No executor for node type '{node_type}', using passthrough")
            return PassthroughExecutor(node_type)
        return executor

    def registered_types(self) -> List[str]:
        return list(self._executors)

    def has_pulse_output(self, node_type: str) -> bool:
        executor = self._executors.get(node_type)
        return bool(executor and executor.has_pulse_output)

    def tracks_downstream_preview(self, node_type: str) -> bool:
        executor = self._executors.get(node_type)
        return bool(executor and executor.tracks_downstream_preview)

    def clear(self) -> None:
        self._executors.clear()

    def copy(self) -> "ExecutorRegistry":
        clone = ExecutorRegistry()
        clone._executors = dict(self._executors)
        return clone

    def __contains__(self, node_type: str) -> bool:
        return self.has(node_type)

    def __len__(self) -> int:
        return len(self._executors)
