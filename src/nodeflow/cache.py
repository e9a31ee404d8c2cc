"""
Result cache for incremental flow execution.

When a flow is re-run after an edit, nodes whose configuration, incoming
connections and input values are unchanged can reuse their previous result
instead of calling the backend again.

Cache validity for a node is decided by three fingerprints:
- config hash: the node type plus its cache-relevant ``data`` fields
- edge hash: the sorted (source, source handle, target handle) triples of
  its incoming edges
- input hashes: one hash per target handle of the values it received

Entries are kept in least-recently-used order and evicted once their
estimated total size exceeds ``max_size_bytes``.

Hashes are 32-bit FNV-1a rendered in base 36, which is compact and stable
across processes.

Example:
    >>> cache = ExecutionCache()
    >>> orchestrator = FlowOrchestrator(cache=cache)
    >>> await orchestrator.run(nodes, edges, on_state)   # executes everything
    >>> await orchestrator.run(nodes, edges, on_state)   # cacheable nodes are served from cache
"""

import json
import logging
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

from .models import DEFAULT_TARGET_HANDLE, Edge, ExecuteResult, Node, pulse_key

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE_BYTES = 50 * 1024 * 1024  # 50 MB

# Data fields whose change invalidates a node's cached result
CACHE_RELEVANT_FIELDS: Dict[str, tuple] = {
    "text-input": ("inputValue",),
    "image-input": ("uploadedImage",),
    "audio-input": ("audioBuffer", "audioMimeType"),
    "text-generation": (
        "userPrompt",
        "systemPrompt",
        "provider",
        "model",
        "verbosity",
        "thinking",
        "googleThinkingConfig",
        "googleSafetyPreset",
        "imageInput",
    ),
    "image-generation": (
        "prompt",
        "provider",
        "model",
        "outputFormat",
        "size",
        "quality",
        "partialImages",
        "aspectRatio",
        "imageInput",
    ),
    "react-component": ("userPrompt", "systemPrompt", "provider", "model", "stylePreset"),
    "audio-transcription": ("model", "language"),
    "string-combine": ("separator",),
    "switch": ("isOn",),
    "preview-output": (),
    "comment": (),
}

NEVER_CACHEABLE = frozenset({"audio-input", "realtime-conversation", "comment"})

IMPLICITLY_CACHEABLE = frozenset({"text-input", "image-input", "string-combine"})


def hash_string(value: str) -> str:
    """32-bit FNV-1a hash of ``value`` (UTF-16 code units), in base 36."""
    h = 2166136261
    encoded = value.encode("utf-16-le", errors="surrogatepass")
    for i in range(0, len(encoded), 2):
        h ^= encoded[i] | (encoded[i + 1] << 8)
        h = (h * 16777619) & 0xFFFFFFFF
    return _base36(h)


def _base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def compute_config_hash(node: Node) -> str:
    config: Dict[str, Any] = {"__type": node.type}
    # Types without a field list (custom executors) hash all of their data
    fields = CACHE_RELEVANT_FIELDS.get(node.type, tuple(sorted(node.data)))
    for name in fields:
        if node.data.get(name) is not None:
            config[name] = node.data[name]
    try:
        serialized = json.dumps(config, sort_keys=True)
    except (TypeError, ValueError):
        # Unserializable settings: force a miss
        serialized = f"{node.type}:{node.id}:{time.time()}"
    return hash_string(serialized)


def compute_edge_hash(
    node_id: str, edges: Iterable[Edge], default_handle: str = DEFAULT_TARGET_HANDLE
) -> str:
    incoming = sorted(
        (e.source, e.source_handle or "output", e.target_handle or default_handle)
        for e in edges
        if e.target == node_id
    )
    return hash_string(json.dumps(incoming))


def compute_input_hashes(inputs: Mapping[str, str]) -> Dict[str, str]:
    return {handle: hash_string(value) for handle, value in inputs.items()}


def is_never_cacheable(node_type: str) -> bool:
    return node_type in NEVER_CACHEABLE


def is_cacheable(node: Node) -> bool:
    """Opted in with ``data.cacheable`` or implicitly cacheable, and not excluded."""
    if is_never_cacheable(node.type):
        return False
    return bool(node.data.get("cacheable")) or node.type in IMPLICITLY_CACHEABLE


def estimate_result_size(result: ExecuteResult) -> int:
    """Approximate memory footprint: 2 bytes per character plus fixed overhead."""
    size = 200
    for text in (
        result.output,
        result.reasoning,
        result.string_output,
        result.image_output,
        result.audio_output,
        result.code_output,
    ):
        if text:
            size += len(text) * 2
    return size


@dataclass
class CacheEntry:
    config_hash: str
    edge_hash: str
    input_hashes: Dict[str, str]
    result: ExecuteResult
    cached_at: float
    size_bytes: int


@dataclass
class CacheValidity:
    valid: bool
    reason: Optional[str] = None  # not_found | config_changed | edges_changed | inputs_changed


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    entries: int = 0
    size_bytes: int = 0


class ExecutionCache:
    """LRU cache of node results keyed by node id."""

    def __init__(self, max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES):
        self.max_size_bytes = max_size_bytes
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._size_bytes = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def check_validity(
        self,
        node: Node,
        edges: Iterable[Edge],
        upstream_outputs: Mapping[str, str],
        default_handle: str = DEFAULT_TARGET_HANDLE,
    ) -> CacheValidity:
        entry = self._entries.get(node.id)
        if entry is None:
            return CacheValidity(False, "not_found")
        if entry.config_hash != compute_config_hash(node):
            return CacheValidity(False, "config_changed")
        edges = list(edges)
        if entry.edge_hash != compute_edge_hash(node.id, edges, default_handle):
            return CacheValidity(False, "edges_changed")
        if entry.input_hashes != self._current_input_hashes(
            node.id, edges, upstream_outputs, default_handle
        ):
            return CacheValidity(False, "inputs_changed")
        return CacheValidity(True)

    def get(
        self,
        node: Node,
        edges: Iterable[Edge],
        upstream_outputs: Mapping[str, str],
        default_handle: str = DEFAULT_TARGET_HANDLE,
    ) -> Optional[ExecuteResult]:
        """Cached result for ``node`` when still valid, else None."""
        if is_never_cacheable(node.type):
            self._misses += 1
            return None
        validity = self.check_validity(node, edges, upstream_outputs, default_handle)
        if not validity.valid:
            self._misses += 1
            logger.debug(f"Cache miss for '{node.id}': {validity.reason}")
            return None
        self._hits += 1
        entry = self._entries[node.id]
        entry.cached_at = time.time()
        self._entries.move_to_end(node.id)
        return entry.result

    def set(
        self,
        node: Node,
        edges: Iterable[Edge],
        inputs: Mapping[str, str],
        result: ExecuteResult,
        default_handle: str = DEFAULT_TARGET_HANDLE,
    ) -> None:
        if is_never_cacheable(node.type):
            return
        size = estimate_result_size(result)
        if size > self.max_size_bytes:
            return
        self.invalidate_node(node.id)
        while self._entries and self._size_bytes + size > self.max_size_bytes:
            self._evict_oldest()
        self._entries[node.id] = CacheEntry(
            config_hash=compute_config_hash(node),
            edge_hash=compute_edge_hash(node.id, edges, default_handle),
            input_hashes=compute_input_hashes(inputs),
            result=result,
            cached_at=time.time(),
            size_bytes=size,
        )
        self._size_bytes += size

    def has(self, node_id: str) -> bool:
        return node_id in self._entries

    def invalidate_node(self, node_id: str) -> None:
        entry = self._entries.pop(node_id, None)
        if entry is not None:
            self._size_bytes -= entry.size_bytes

    def invalidate_downstream(self, node_id: str, edges: Iterable[Edge]) -> None:
        """Drop ``node_id`` and everything reachable from it."""
        edges = list(edges)
        seen = {node_id}
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            for edge in edges:
                if edge.source == current and edge.target not in seen:
                    seen.add(edge.target)
                    queue.append(edge.target)
        for target in seen:
            self.invalidate_node(target)

    def clear(self) -> None:
        self._entries.clear()
        self._size_bytes = 0

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            entries=len(self._entries),
            size_bytes=self._size_bytes,
        )

    def _current_input_hashes(
        self,
        node_id: str,
        edges: Iterable[Edge],
        upstream_outputs: Mapping[str, str],
        default_handle: str,
    ) -> Dict[str, str]:
        hashes = {}
        for edge in edges:
            if edge.target != node_id:
                continue
            key = pulse_key(edge.source) if edge.is_pulse else edge.source
            if key in upstream_outputs:
                hashes[edge.target_handle or default_handle] = hash_string(upstream_outputs[key])
        return hashes

    def _evict_oldest(self) -> None:
        _, entry = self._entries.popitem(last=False)
        self._size_bytes -= entry.size_bytes
        self._evictions += 1
