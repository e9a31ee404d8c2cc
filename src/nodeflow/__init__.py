__version__ = "0.3.0"

from .models import (
    DEFAULT_TARGET_HANDLE,
    PULSE_HANDLE,
    Edge,
    ExecuteResult,
    FlowResult,
    Node,
    NodeExecutionState,
    NodeStatus,
    make_pulse,
    pulse_key,
)
from .exceptions import (
    BackendError,
    ExecutionCancelledError,
    ExecutorRegistrationError,
    FlowConfigurationError,
    FlowDocumentError,
    NodeExecutionError,
    NodeflowError,
)
from .config import EngineConfig, ExecuteOptions
from .cancellation import CancellationToken, run_cancellable
from .cache import ExecutionCache
from .backend import BackendClient
from .executors import (
    ExecutionContext,
    ExecutorRegistry,
    NodeExecutor,
    PassthroughExecutor,
    default_registry,
    get_executor,
    register_executor,
)
from .orchestrator import FlowOrchestrator, run_flow
from .loader import Flow, load_flow

__all__ = [
    "__version__",
    "DEFAULT_TARGET_HANDLE",
    "PULSE_HANDLE",
    "Edge",
    "ExecuteResult",
    "FlowResult",
    "Node",
    "NodeExecutionState",
    "NodeStatus",
    "make_pulse",
    "pulse_key",
    "BackendError",
    "ExecutionCancelledError",
    "ExecutorRegistrationError",
    "FlowConfigurationError",
    "FlowDocumentError",
    "NodeExecutionError",
    "NodeflowError",
    "EngineConfig",
    "ExecuteOptions",
    "CancellationToken",
    "run_cancellable",
    "ExecutionCache",
    "BackendClient",
    "ExecutionContext",
    "ExecutorRegistry",
    "NodeExecutor",
    "PassthroughExecutor",
    "default_registry",
    "get_executor",
    "register_executor",
    "FlowOrchestrator",
    "run_flow",
    "Flow",
    "load_flow",
]
