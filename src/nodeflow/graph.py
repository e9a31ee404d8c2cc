"""
Structural queries over a node/edge collection.

Every function here is pure: it reads the lists it is given, never mutates
them, and returns an empty result (rather than raising) for ids that do not
exist. Lookups are linear scans; flow graphs are small.

``to_digraph`` and ``to_mermaid`` convert a flow into a networkx graph and a
Mermaid diagram for inspection tooling.
"""

from collections import deque
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

import networkx as nx

from .models import DEFAULT_TARGET_HANDLE, Edge, Node, pulse_key


def outgoing_edges(node_id: str, edges: Iterable[Edge]) -> List[Edge]:
    """Edges whose source is ``node_id``."""
    return [e for e in edges if e.source == node_id]


def incoming_edges(node_id: str, edges: Iterable[Edge]) -> List[Edge]:
    """Edges whose target is ``node_id``."""
    return [e for e in edges if e.target == node_id]


def find_node(node_id: str, nodes: Iterable[Node]) -> Optional[Node]:
    for node in nodes:
        if node.id == node_id:
            return node
    return None


def nodes_by_type(node_type: str, nodes: Iterable[Node]) -> List[Node]:
    return [n for n in nodes if n.type == node_type]


def child_nodes(node_id: str, nodes: Sequence[Node], edges: Iterable[Edge]) -> List[Node]:
    """Nodes directly fed by ``node_id``, in edge order."""
    children = []
    for edge in outgoing_edges(node_id, edges):
        target = find_node(edge.target, nodes)
        if target is not None:
            children.append(target)
    return children


def parent_nodes(node_id: str, nodes: Sequence[Node], edges: Iterable[Edge]) -> List[Node]:
    """Nodes directly feeding ``node_id``, in edge order."""
    parents = []
    for edge in incoming_edges(node_id, edges):
        source = find_node(edge.source, nodes)
        if source is not None:
            parents.append(source)
    return parents


def upstream_nodes(node_id: str, nodes: Sequence[Node], edges: Sequence[Edge]) -> List[Node]:
    """
    All ancestors of ``node_id``, closest first.

    Each ancestor appears once even when several paths lead to it.
    """
    found: List[Node] = []
    seen: Set[str] = {node_id}
    queue = deque([node_id])
    while queue:
        current = queue.popleft()
        for edge in incoming_edges(current, edges):
            if edge.source in seen:
                continue
            seen.add(edge.source)
            source = find_node(edge.source, nodes)
            if source is not None:
                found.append(source)
                queue.append(source.id)
    return found


def has_path(from_id: str, to_id: str, edges: Sequence[Edge]) -> bool:
    """True when ``to_id`` is reachable from ``from_id`` (a node reaches itself)."""
    if from_id == to_id:
        return True
    seen: Set[str] = {from_id}
    queue = deque([from_id])
    while queue:
        current = queue.popleft()
        for edge in outgoing_edges(current, edges):
            if edge.target == to_id:
                return True
            if edge.target not in seen:
                seen.add(edge.target)
                queue.append(edge.target)
    return False


def downstream_sinks(
    node_id: str,
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    sink_types: Iterable[str],
    boundary_types: Iterable[str] = (),
) -> List[Node]:
    """
    Sink nodes reachable from ``node_id`` without crossing a boundary node.

    Traversal stops at sinks (they are collected) and at boundary nodes
    (they are neither collected nor crossed), so a preview sitting behind an
    image generator never receives text streamed by an upstream text
    generator.
    """
    sink_types = set(sink_types)
    boundary_types = set(boundary_types)
    sinks: List[Node] = []
    seen: Set[str] = {node_id}
    queue = deque([node_id])
    while queue:
        current = queue.popleft()
        for edge in outgoing_edges(current, edges):
            if edge.target in seen:
                continue
            seen.add(edge.target)
            target = find_node(edge.target, nodes)
            if target is None:
                continue
            if target.type in sink_types:
                sinks.append(target)
            elif target.type not in boundary_types:
                queue.append(target.id)
    return sinks


def collect_inputs(
    node_id: str,
    edges: Iterable[Edge],
    executed_outputs: Mapping[str, str],
    default_handle: str = DEFAULT_TARGET_HANDLE,
) -> Dict[str, str]:
    """
    Map each incoming edge's target handle to the value its source produced.

    Pulse edges (``source_handle == "done"``) read the source's completion
    marker instead of its primary output. Edges whose source has not produced
    the requested value yet are skipped.
    """
    inputs: Dict[str, str] = {}
    for edge in incoming_edges(node_id, edges):
        handle = edge.target_handle or default_handle
        key = pulse_key(edge.source) if edge.is_pulse else edge.source
        if key in executed_outputs:
            inputs[handle] = executed_outputs[key]
    return inputs


def find_roots(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    sink_types: Iterable[str] = (),
    include_disconnected_sinks: bool = False,
) -> List[Node]:
    """
    Nodes where execution starts.

    A root has no incoming edges and at least one outgoing edge. With
    ``include_disconnected_sinks`` a sink with no incoming edges is a root too.
    """
    sink_types = set(sink_types)
    targets = {e.target for e in edges}
    sources = {e.source for e in edges}
    roots = []
    for node in nodes:
        if node.id in targets:
            continue
        if node.id in sources:
            roots.append(node)
        elif include_disconnected_sinks and node.type in sink_types:
            roots.append(node)
    return roots


def to_digraph(nodes: Iterable[Node], edges: Iterable[Edge]) -> nx.MultiDiGraph:
    """
    Build a networkx multigraph of the flow.

    Node attributes: ``type``, ``label``. Edge attributes: ``id``,
    ``source_handle``, ``target_handle``. Parallel edges between the same pair
    (different handles) are preserved.
    """
    graph = nx.MultiDiGraph()
    for node in nodes:
        graph.add_node(node.id, type=node.type, label=node.label)
    for edge in edges:
        graph.add_edge(
            edge.source,
            edge.target,
            key=edge.id,
            id=edge.id,
            source_handle=edge.source_handle,
            target_handle=edge.target_handle,
        )
    return graph


def _mermaid_id(name: str) -> str:
    escaped = name
    for char in " -.()[]{}<>|:;,&#":
        escaped = escaped.replace(char, "_")
    return escaped


def _mermaid_label(name: str) -> str:
    return name.replace('"', "'").replace("|", "/")


def to_mermaid(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    sink_types: Iterable[str] = ("preview-output",),
) -> str:
    """
    Render the flow as a Mermaid ``graph TD`` definition.

    Example:
        >>> print(to_mermaid([Node("a", "text-input"), Node("b", "preview-output")],
        ...                  [Edge("e", "a", "b", target_handle="string")]))
        graph TD
            a[a: text-input]
            b[[b: preview-output]]
            a-->|string|b
    """
    sink_types = set(sink_types)
    graph = to_digraph(nodes, edges)
    lines = ["graph TD"]
    for node_id, attrs in graph.nodes(data=True):
        label = _mermaid_label(f"{attrs.get('label', node_id)}: {attrs.get('type', '')}")
        if attrs.get("type") in sink_types:
            lines.append(f"    {_mermaid_id(node_id)}[[{label}]]")
        else:
            lines.append(f"    {_mermaid_id(node_id)}[{label}]")
    for u, v, attrs in graph.edges(data=True):
        arrow = "-.->" if attrs.get("source_handle") == "done" else "-->"
        handle = attrs.get("target_handle")
        if handle:
            lines.append(f"    {_mermaid_id(u)}{arrow}|{_mermaid_label(handle)}|{_mermaid_id(v)}")
        else:
            lines.append(f"    {_mermaid_id(u)}{arrow}{_mermaid_id(v)}")
    return "\n".join(lines)
