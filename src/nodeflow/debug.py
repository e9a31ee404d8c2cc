"""Debug metadata recorded for backend calls made by executors."""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class DebugInfo:
    """
    Request summary and stream statistics of one backend call.

    Attributes:
        request: Human-readable summary of the request (type, provider, model, ...)
        raw_request_body: Redacted JSON of the request body
        raw_response_body: Raw stream content or final output
    """

    request: Dict[str, Any] = field(default_factory=dict)
    start_time: int = field(default_factory=_now_ms)
    end_time: Optional[int] = None
    stream_chunks_received: int = 0
    raw_request_body: Optional[str] = None
    raw_response_body: Optional[str] = None

    @classmethod
    def for_request(cls, summary: Dict[str, Any], redacted_body: Dict[str, Any]) -> "DebugInfo":
        return cls(
            request={k: v for k, v in summary.items() if v is not None},
            raw_request_body=json.dumps(redacted_body, indent=2, default=str),
        )

    def record_chunk(self, raw: Optional[str] = None) -> None:
        self.stream_chunks_received += 1
        if raw is not None:
            self.raw_response_body = raw

    def finalize(self, raw_response: Optional[str] = None) -> "DebugInfo":
        self.end_time = _now_ms()
        if raw_response is not None:
            self.raw_response_body = raw_response
        return self

    @property
    def duration_ms(self) -> Optional[int]:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "start_time": self.start_time,
            "request": dict(self.request),
            "stream_chunks_received": self.stream_chunks_received,
        }
        if self.end_time is not None:
            result["end_time"] = self.end_time
        if self.raw_request_body is not None:
            result["raw_request_body"] = self.raw_request_body
        if self.raw_response_body is not None:
            result["raw_response_body"] = self.raw_response_body
        return result
