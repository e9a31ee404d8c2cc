"""
Exception classes for nodeflow.

Exceptions live in this dependency-free module so the orchestrator, the
executors and the backend client can share them without import cycles.

Hierarchy:
    NodeflowError
        FlowConfigurationError   - the run cannot start (no roots, bad graph input)
        ExecutionCancelledError  - the run was cancelled through its token
        NodeExecutionError       - an executor failed; contained to its node
            BackendError         - the execute endpoint answered with an error
        ExecutorRegistrationError
        FlowDocumentError        - a flow document failed validation

Only FlowConfigurationError and ExecutionCancelledError ever escape
FlowOrchestrator.run(). Per-node failures are reported through the state
callback instead.
"""

from typing import Any, Dict, List, Optional


class NodeflowError(Exception):
    """Base class for all nodeflow errors."""

    pass


class FlowConfigurationError(NodeflowError):
    """Raised before any node starts when the flow cannot be executed."""

    pass


class ExecutionCancelledError(NodeflowError):
    """
    Raised when a run is cancelled through its CancellationToken.

    Kept separate from ordinary failures so callers can silence
    user-initiated aborts.
    """

    def __init__(self, message: str = "Execution cancelled"):
        super().__init__(message)


class NodeExecutionError(NodeflowError):
    """
    Descriptive failure raised by an executor.

    Attributes:
        node_id: Id of the failing node, when known.
    """

    def __init__(self, message: str, node_id: Optional[str] = None):
        self.node_id = node_id
        super().__init__(message)


class BackendError(NodeExecutionError):
    """
    Error response (or transport failure) from the execute endpoint.

    Attributes:
        status_code: HTTP status code, or None for timeouts and transport errors.

    Example:
        >>> raise BackendError("Rate limit exceeded", status_code=429)
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        node_id: Optional[str] = None,
    ):
        self.status_code = status_code
        super().__init__(message, node_id=node_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation for debug output."""
        return {
            "error": str(self),
            "status_code": self.status_code,
            "node_id": self.node_id,
        }


class ExecutorRegistrationError(NodeflowError):
    """Raised when an executor type is registered twice."""

    pass


class FlowDocumentError(NodeflowError):
    """
    Raised when a flow document fails to load or validate.

    Attributes:
        errors: Individual validation messages.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)
