"""
Data model for flow graphs and their execution.

Nodes and edges arrive from the editor as JSON, so both classes accept the
editor's camelCase keys as well as snake_case ones.

Example:
    >>> node = Node.from_dict({"id": "a", "type": "text-input", "data": {"inputValue": "hi"}})
    >>> edge = Edge.from_dict({"id": "e1", "source": "a", "target": "b", "targetHandle": "x"})
    >>> edge.target_handle
    'x'
"""

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

# Reserved source handle for completion-only (pulse) edges
PULSE_HANDLE = "done"

# Slot name used when an edge has no target handle
DEFAULT_TARGET_HANDLE = "prompt"


def pulse_key(node_id: str) -> str:
    """Run Context key of a node's completion marker."""
    return f"{node_id}:{PULSE_HANDLE}"


def make_pulse() -> str:
    """Build the JSON completion marker written for pulse-output nodes."""
    return json.dumps({"fired": True, "timestamp": int(time.time() * 1000)})


class NodeStatus(str, Enum):
    """Observable lifecycle of a node within one run."""

    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Node:
    """A graph vertex. ``data`` is an executor-defined bag of settings."""

    id: str
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Union["Node", Dict[str, Any]]) -> "Node":
        if isinstance(raw, Node):
            return raw
        return cls(
            id=str(raw["id"]),
            type=raw.get("type") or "",
            data=dict(raw.get("data") or {}),
        )

    @property
    def label(self) -> str:
        """Display label, falling back to the id."""
        label = self.data.get("label")
        return label if isinstance(label, str) and label else self.id

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "type": self.type, "data": dict(self.data)}


@dataclass(frozen=True)
class Edge:
    """
    A directed connection between two nodes.

    Attributes:
        source_handle: Output of the source carried by the edge. None means
            the primary output; ``"done"`` marks a pulse edge.
        target_handle: Input slot on the target. None means the default slot.
    """

    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Union["Edge", Dict[str, Any]]) -> "Edge":
        if isinstance(raw, Edge):
            return raw
        source = str(raw["source"])
        target = str(raw["target"])
        source_handle = raw.get("sourceHandle", raw.get("source_handle"))
        target_handle = raw.get("targetHandle", raw.get("target_handle"))
        return cls(
            id=str(raw.get("id") or f"{source}-{target}"),
            source=source,
            target=target,
            source_handle=source_handle or None,
            target_handle=target_handle or None,
        )

    @property
    def is_pulse(self) -> bool:
        return self.source_handle == PULSE_HANDLE

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "target": self.target,
        }
        if self.source_handle is not None:
            result["sourceHandle"] = self.source_handle
        if self.target_handle is not None:
            result["targetHandle"] = self.target_handle
        return result


@dataclass
class NodeExecutionState:
    """
    Observable state pushed to the state callback.

    This never gates scheduling; only the Run Context does.
    """

    status: NodeStatus
    output: Optional[str] = None
    error: Optional[str] = None
    reasoning: Optional[str] = None
    source_type: Optional[str] = None
    debug_info: Optional[Any] = None
    cached: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dict, omitting unset fields."""
        result: Dict[str, Any] = {"status": self.status.value}
        for key in ("output", "error", "reasoning", "source_type"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.debug_info is not None:
            to_dict = getattr(self.debug_info, "to_dict", None)
            result["debug_info"] = to_dict() if callable(to_dict) else self.debug_info
        if self.cached:
            result["cached"] = True
        result.update(self.extra)
        return result


@dataclass
class ExecuteResult:
    """
    What an executor returns on success.

    ``output`` is the primary value folded into the Run Context. The
    ``*_output`` channels are only filled by sink nodes that split their
    inputs by media type; ``switch_state`` only by switch nodes.
    """

    output: str
    reasoning: Optional[str] = None
    debug_info: Optional[Any] = None
    string_output: Optional[str] = None
    image_output: Optional[str] = None
    audio_output: Optional[str] = None
    code_output: Optional[str] = None
    switch_state: Optional[bool] = None

    def secondary_outputs(self) -> Dict[str, Any]:
        """Named secondary channels that are set."""
        names = ("string_output", "image_output", "audio_output", "code_output", "switch_state")
        return {name: getattr(self, name) for name in names if getattr(self, name) is not None}


@dataclass
class FlowResult:
    """
    Detailed outcome of a run.

    Attributes:
        output: Output of the most recently completed sink ("" when none ran).
        outputs: Sink label -> output, for every sink that completed.
        errors: Node label -> error message, for every node that failed.
        states: Node id -> last state reported for that node.
    """

    output: str = ""
    outputs: Dict[str, str] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    states: Dict[str, NodeExecutionState] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "output": self.output,
            "outputs": dict(self.outputs),
            "errors": dict(self.errors),
        }
