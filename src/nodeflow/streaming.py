"""
Parsers for the streamed responses of the execute endpoint.

The endpoint answers in one of three shapes:

- plain text, appended chunk by chunk (text generation, transcription,
  component generation);
- NDJSON of ``{"type": "text" | "reasoning", "text": ...}`` parts (text
  generation with thinking enabled);
- NDJSON of ``{"type": "partial" | "image", "value", "mimeType"}`` records
  (streamed image generation).

Each parser consumes an async iterator of decoded text chunks and invokes a
callback with the accumulated value after every chunk.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class TextStreamResult:
    output: str = ""
    raw_chunks: List[str] = field(default_factory=list)


@dataclass
class NdjsonStreamResult:
    output: str = ""
    reasoning: str = ""
    raw_chunks: List[str] = field(default_factory=list)


@dataclass
class ImageData:
    """One streamed image record; ``type`` is "partial" or "image"."""

    type: str
    value: str
    mime_type: str = "image/png"

    def to_json(self) -> str:
        """Image edge payload consumed by downstream nodes."""
        return json.dumps({"type": "image", "value": self.value, "mimeType": self.mime_type})


@dataclass
class ImageStreamResult:
    final_image: Optional[ImageData] = None
    partials: int = 0


async def _lines(chunks: AsyncIterator[str]) -> AsyncIterator[str]:
    """Split a chunk stream into complete lines, flushing the tail at the end."""
    buffer = ""
    async for chunk in chunks:
        buffer += chunk
        *lines, buffer = buffer.split("\n")
        for line in lines:
            if line.strip():
                yield line
    if buffer.strip():
        yield buffer


async def parse_text_stream(
    chunks: AsyncIterator[str],
    on_chunk: Optional[Callable[[str, List[str]], None]] = None,
) -> TextStreamResult:
    """Accumulate a plain text stream."""
    result = TextStreamResult()
    async for chunk in chunks:
        if not chunk:
            continue
        result.raw_chunks.append(chunk)
        result.output += chunk
        if on_chunk is not None:
            on_chunk(result.output, result.raw_chunks)
    return result


async def parse_ndjson_stream(
    chunks: AsyncIterator[str],
    on_chunk: Optional[Callable[[str, str, List[str]], None]] = None,
) -> NdjsonStreamResult:
    """
    Accumulate an NDJSON stream of text and reasoning parts.

    Malformed lines are logged and skipped; parts of any other type are
    recorded as raw chunks but contribute no text.
    """
    result = NdjsonStreamResult()
    async for line in _lines(chunks):
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse NDJSON line: {e}")
            continue
        result.raw_chunks.append(line)
        if not isinstance(data, dict):
            continue
        if data.get("type") == "reasoning":
            result.reasoning += data.get("text", "")
        elif data.get("type") == "text":
            result.output += data.get("text", "")
        if on_chunk is not None:
            on_chunk(result.output, result.reasoning, result.raw_chunks)
    return result


async def parse_image_stream(
    chunks: AsyncIterator[str],
    on_image: Optional[Callable[[ImageData], None]] = None,
) -> ImageStreamResult:
    """
    Follow an NDJSON image stream, keeping the last final image.

    Partial images are reported through ``on_image`` as they arrive.
    """
    result = ImageStreamResult()
    async for line in _lines(chunks):
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse image stream line: {e}")
            continue
        if not isinstance(data, dict) or data.get("type") not in ("partial", "image"):
            continue
        image = ImageData(
            type=data["type"],
            value=data.get("value", ""),
            mime_type=data.get("mimeType", "image/png"),
        )
        if image.type == "image":
            result.final_image = image
        else:
            result.partials += 1
        if on_image is not None:
            on_image(image)
    return result


def parse_error_message(body: str, default: str) -> str:
    """
    Extract a readable error from an error response body.

    Uses the JSON ``error`` field when present, else the raw body, else
    ``default``.
    """
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return body or default
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return default
