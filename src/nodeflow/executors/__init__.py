"""
Node executors for nodeflow.

This package defines the executor contract, the registry that maps node
types to executors, and the built-in executors of the editor's node types.

Example:
    >>> from nodeflow.executors import default_registry, NodeExecutor
    >>>
    >>> registry = default_registry()
    >>> registry.register(MyExecutor())
    >>> registry.resolve("text-input")
    TextInputExecutor(type='text-input')
"""

from typing import List, Optional

from .base import (
    ExecutionContext,
    NodeExecutor,
    PassthroughExecutor,
    StateChangeCallback,
    StreamUpdateCallback,
    first_available_input,
)
from .generation import (
    AudioTranscriptionExecutor,
    ImageGenerationExecutor,
    ReactComponentExecutor,
    TextGenerationExecutor,
)
from .inputs import AudioInputExecutor, ImageInputExecutor, TextInputExecutor
from .logic import StringCombineExecutor, SwitchExecutor, is_pulse_fired
from .outputs import CommentExecutor, PreviewOutputExecutor
from .registry import ExecutorRegistry

BUILTIN_EXECUTORS = (
    TextInputExecutor,
    ImageInputExecutor,
    AudioInputExecutor,
    PreviewOutputExecutor,
    CommentExecutor,
    StringCombineExecutor,
    SwitchExecutor,
    TextGenerationExecutor,
    ImageGenerationExecutor,
    AudioTranscriptionExecutor,
    ReactComponentExecutor,
)


def default_registry() -> ExecutorRegistry:
    """New registry holding one instance of every built-in executor."""
    registry = ExecutorRegistry()
    for executor_class in BUILTIN_EXECUTORS:
        registry.register(executor_class())
    return registry


_global_registry: Optional[ExecutorRegistry] = None


def global_registry() -> ExecutorRegistry:
    """Process-wide registry, created with the built-ins on first use."""
    global _global_registry
    if _global_registry is None:
        _global_registry = default_registry()
    return _global_registry


def register_executor(executor: NodeExecutor, replace: bool = False) -> None:
    """Register a custom executor in the process-wide registry."""
    global_registry().register(executor, replace=replace)


def get_executor(node_type: str) -> Optional[NodeExecutor]:
    return global_registry().get(node_type)


def registered_types() -> List[str]:
    return sorted(global_registry().registered_types())


__all__ = [
    "ExecutionContext",
    "NodeExecutor",
    "PassthroughExecutor",
    "StateChangeCallback",
    "StreamUpdateCallback",
    "first_available_input",
    "ExecutorRegistry",
    "BUILTIN_EXECUTORS",
    "default_registry",
    "global_registry",
    "register_executor",
    "get_executor",
    "registered_types",
    "is_pulse_fired",
    "TextInputExecutor",
    "ImageInputExecutor",
    "AudioInputExecutor",
    "PreviewOutputExecutor",
    "CommentExecutor",
    "StringCombineExecutor",
    "SwitchExecutor",
    "TextGenerationExecutor",
    "ImageGenerationExecutor",
    "AudioTranscriptionExecutor",
    "ReactComponentExecutor",
]
