"""
HTTP client for the generation backend.

Generation executors do not talk to model providers directly. They POST a
JSON request to the backend's ``/api/execute`` endpoint and consume the
streamed answer, so provider SDKs, key handling and rate limiting stay on
the server side.

Example:
    >>> client = BackendClient("http://localhost:3000")
    >>> body = build_request_body({"type": "text-generation", "inputs": {...}}, options)
    >>> async with client.stream(body, error_message="Failed to execute prompt") as response:
    ...     result = await parse_text_stream(response.aiter_text())
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from .config import DEFAULT_BACKEND_URL, DEFAULT_IMAGE_TIMEOUT, DEFAULT_REQUEST_TIMEOUT
from .config import EngineConfig, ExecuteOptions
from .exceptions import BackendError
from .streaming import parse_error_message

logger = logging.getLogger(__name__)

EXECUTE_PATH = "/api/execute"


def build_request_body(fields: Dict[str, Any], options: Optional[ExecuteOptions]) -> Dict[str, Any]:
    """
    Attach credentials to a request body.

    Owner-funded runs (a share token is present) send the share token and
    run id instead of API keys.
    """
    body = dict(fields)
    if options is not None and options.share_token:
        body["shareToken"] = options.share_token
        body["runId"] = options.run_id
    else:
        body["apiKeys"] = dict(options.api_keys) if options is not None else {}
    return body


def redact_request_body(body: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``body`` with credentials and binary payloads masked."""
    redacted = dict(body)
    if "apiKeys" in redacted:
        redacted["apiKeys"] = "[REDACTED]"
    if "shareToken" in redacted:
        redacted["shareToken"] = "[REDACTED]"
    if redacted.get("imageInput"):
        redacted["imageInput"] = "[BASE64_IMAGE]"
    if redacted.get("audioBuffer"):
        redacted["audioBuffer"] = "[BASE64_AUDIO]"
    return redacted


class BackendResponse:
    """A successful streamed response from the execute endpoint."""

    def __init__(self, response: httpx.Response):
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def content_type(self) -> str:
        return self._response.headers.get("content-type", "")

    @property
    def is_ndjson(self) -> bool:
        return "application/x-ndjson" in self.content_type

    @property
    def is_json(self) -> bool:
        return "application/json" in self.content_type

    def aiter_text(self) -> AsyncIterator[str]:
        return self._response.aiter_text()

    async def json(self) -> Any:
        await self._response.aread()
        return self._response.json()


class BackendClient:
    """
    Async client for ``POST /api/execute``.

    One client is shared by all executors of a run; it owns a lazily created
    ``httpx.AsyncClient`` that ``aclose()`` releases.

    Args:
        base_url: Backend root URL
        timeout: Default request timeout in seconds
        image_timeout: Timeout used for image generation requests
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BACKEND_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        image_timeout: float = DEFAULT_IMAGE_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.image_timeout = image_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(
        cls, config: EngineConfig, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "BackendClient":
        return cls(
            base_url=config.backend_url,
            timeout=config.request_timeout,
            image_timeout=config.image_timeout,
            transport=transport,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=self.base_url, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @asynccontextmanager
    async def stream(
        self,
        body: Dict[str, Any],
        error_message: str = "Request failed",
        timeout: Optional[float] = None,
    ) -> AsyncIterator[BackendResponse]:
        """
        POST ``body`` and yield the streamed response.

        Raises:
            BackendError: On a non-2xx status (message from the body's
                ``error`` field), a timeout, or a transport failure.
        """
        timeout = self.timeout if timeout is None else timeout
        client = self._get_client()
        logger.debug(f"POST {self.base_url}{EXECUTE_PATH} type={body.get('type')}")
        try:
            async with client.stream("POST", EXECUTE_PATH, json=body, timeout=timeout) as response:
                if response.status_code >= 400:
                    text = (await response.aread()).decode("utf-8", errors="replace")
                    message = parse_error_message(text, error_message)
                    logger.error(f"Backend returned {response.status_code}: {message}")
                    raise BackendError(message, status_code=response.status_code)
                yield BackendResponse(response)
        except httpx.TimeoutException:
            raise BackendError(f"Request timed out after {timeout:g} seconds")
        except httpx.TransportError as e:
            raise BackendError(f"{error_message}: {e}")
