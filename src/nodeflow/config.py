"""
Engine configuration for nodeflow.

EngineConfig holds the scheduling knobs of the orchestrator and the
settings of the backend client. ExecuteOptions carries per-run, caller
supplied values (credentials, owner-funded run ids, input overrides).

Example YAML Configuration (the ``settings`` block of a flow document):
    settings:
      execution:
        default_target_handle: prompt
        sink_types: [preview-output]
        boundary_types: [image-generation]
        step_delay: 0.3
        execute_disconnected_sinks: false
      backend:
        url: http://localhost:3000
        request_timeout: 60
        image_timeout: 120

Environment Variables:
    NODEFLOW_BACKEND_URL: Base URL of the execute endpoint
    NODEFLOW_REQUEST_TIMEOUT: Backend request timeout in seconds
    NODEFLOW_STEP_DELAY: Pacing delay before each node starts, in seconds
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

DEFAULT_BACKEND_URL = "http://localhost:3000"
DEFAULT_REQUEST_TIMEOUT = 60.0
DEFAULT_IMAGE_TIMEOUT = 120.0


@dataclass(frozen=True)
class EngineConfig:
    """
    Configuration for the orchestrator and backend client.

    Attributes:
        default_target_handle: Input slot used for edges without a target handle
        sink_types: Node types whose outputs are collected as run results
        boundary_types: Node types that stop live-preview forwarding
        step_delay: Pacing delay in seconds before each node starts (0 disables)
        execute_disconnected_sinks: Treat sinks without incoming edges as roots
        backend_url: Base URL of the execute endpoint
        request_timeout: Timeout for backend requests, in seconds
        image_timeout: Timeout for image generation requests, in seconds
    """

    default_target_handle: str = "prompt"
    sink_types: Tuple[str, ...] = ("preview-output",)
    boundary_types: Tuple[str, ...] = ("image-generation",)
    step_delay: float = 0.0
    execute_disconnected_sinks: bool = False
    backend_url: str = DEFAULT_BACKEND_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    image_timeout: float = DEFAULT_IMAGE_TIMEOUT

    @classmethod
    def from_yaml(cls, settings: Optional[Dict[str, Any]]) -> "EngineConfig":
        """
        Parse config from a flow document's ``settings`` dict.

        Missing keys keep their defaults.
        """
        settings = settings or {}
        exec_settings = settings.get("execution", {}) or {}
        backend_settings = settings.get("backend", {}) or {}
        defaults = cls()

        return cls(
            default_target_handle=exec_settings.get(
                "default_target_handle", defaults.default_target_handle
            ),
            sink_types=tuple(exec_settings.get("sink_types", defaults.sink_types)),
            boundary_types=tuple(
                exec_settings.get("boundary_types", defaults.boundary_types)
            ),
            step_delay=float(exec_settings.get("step_delay", defaults.step_delay)),
            execute_disconnected_sinks=bool(
                exec_settings.get(
                    "execute_disconnected_sinks", defaults.execute_disconnected_sinks
                )
            ),
            backend_url=backend_settings.get("url", defaults.backend_url),
            request_timeout=float(
                backend_settings.get("request_timeout", defaults.request_timeout)
            ),
            image_timeout=float(
                backend_settings.get("image_timeout", defaults.image_timeout)
            ),
        )

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, base: Optional["EngineConfig"] = None
    ) -> "EngineConfig":
        """Apply NODEFLOW_* environment overrides on top of ``base``."""
        environ = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {"execution": {}, "backend": {}}
        if environ.get("NODEFLOW_BACKEND_URL"):
            overrides["backend"]["url"] = environ["NODEFLOW_BACKEND_URL"]
        if environ.get("NODEFLOW_REQUEST_TIMEOUT"):
            overrides["backend"]["request_timeout"] = float(environ["NODEFLOW_REQUEST_TIMEOUT"])
        if environ.get("NODEFLOW_STEP_DELAY"):
            overrides["execution"]["step_delay"] = float(environ["NODEFLOW_STEP_DELAY"])
        return (base or cls()).with_overrides(overrides)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert config to dictionary representation.

        The result has the same shape ``from_yaml`` reads.
        """
        return {
            "execution": {
                "default_target_handle": self.default_target_handle,
                "sink_types": list(self.sink_types),
                "boundary_types": list(self.boundary_types),
                "step_delay": self.step_delay,
                "execute_disconnected_sinks": self.execute_disconnected_sinks,
            },
            "backend": {
                "url": self.backend_url,
                "request_timeout": self.request_timeout,
                "image_timeout": self.image_timeout,
            },
        }

    def with_overrides(self, overrides: Dict[str, Any]) -> "EngineConfig":
        """
        Create a new config with overridden values.

        Args:
            overrides: Dictionary with the same structure as from_yaml

        Returns:
            New EngineConfig with overrides applied
        """
        current = self.to_dict()
        for section in ("execution", "backend"):
            if overrides.get(section):
                current[section].update(overrides[section])
        return EngineConfig.from_yaml(current)


@dataclass
class ExecuteOptions:
    """
    Per-run options handed to every executor.

    Attributes:
        api_keys: Provider credentials sent with backend requests
        share_token: Owner-funded execution token; when set, api_keys are not sent
        run_id: Owner-funded run id used by the backend for rate limiting
        input_overrides: text-input node id -> value replacing the stored value
    """

    api_keys: Dict[str, str] = field(default_factory=dict)
    share_token: Optional[str] = None
    run_id: Optional[str] = None
    input_overrides: Dict[str, str] = field(default_factory=dict)
