"""
Generation executors backed by the execute endpoint.

Each executor builds a request body from its inputs and node settings, POSTs
it through the run's BackendClient and streams the answer back through
``ctx.stream`` so previews update before the node completes.

Prompt resolution shared by the text-like generators: a connected ``prompt``
(or ``system``) edge wins over the inline ``userPrompt`` (``systemPrompt``)
setting, even when the connected value is empty.
"""

import json
from typing import Any, Dict, Tuple

from ..backend import BackendClient, build_request_body, redact_request_body
from ..debug import DebugInfo
from ..exceptions import NodeExecutionError
from ..models import ExecuteResult
from ..streaming import ImageData, parse_image_stream, parse_ndjson_stream, parse_text_stream
from .base import ExecutionContext, NodeExecutor

DEFAULT_PROVIDER = "openai"
DEFAULT_TEXT_MODEL = "gpt-5.2"
DEFAULT_TRANSCRIPTION_MODEL = "gpt-4o-transcribe"


def _client(ctx: ExecutionContext) -> BackendClient:
    if ctx.client is None:
        raise NodeExecutionError("No backend client configured", node_id=ctx.node.id)
    return ctx.client


def _prompts(ctx: ExecutionContext) -> Tuple[str, str]:
    if "prompt" in ctx.inputs:
        prompt = ctx.inputs["prompt"]
    else:
        prompt = ctx.text_setting("userPrompt")
    if "system" in ctx.inputs:
        system = ctx.inputs["system"]
    else:
        system = ctx.text_setting("systemPrompt")
    return prompt, system


def _debug(summary: Dict[str, Any], body: Dict[str, Any]) -> DebugInfo:
    return DebugInfo.for_request(summary, redact_request_body(body))


class TextGenerationExecutor(NodeExecutor):
    """
    Streams an LLM completion.

    Answers arrive either as plain text or, for providers with thinking
    enabled, as NDJSON with separate text and reasoning parts.
    """

    type = "text-generation"
    has_pulse_output = True
    tracks_downstream_preview = True

    async def execute(self, ctx: ExecutionContext) -> ExecuteResult:
        prompt, system = _prompts(ctx)
        image = ctx.inputs.get("image") or ctx.text_setting("imageInput")
        provider = ctx.data("provider", DEFAULT_PROVIDER)
        model = ctx.data("model", DEFAULT_TEXT_MODEL)

        fields = {
            "type": self.type,
            "inputs": {"prompt": prompt, "system": system},
            "provider": provider,
            "model": model,
            "verbosity": ctx.data("verbosity"),
            "thinking": ctx.data("thinking"),
            "googleThinkingConfig": ctx.data("googleThinkingConfig"),
            "googleSafetyPreset": ctx.data("googleSafetyPreset"),
            "googleStructuredOutputs": ctx.data("googleStructuredOutputs"),
            "imageInput": image or None,
        }
        body = build_request_body(fields, ctx.options)
        debug_info = _debug(
            {
                "type": self.type,
                "provider": provider,
                "model": model,
                "user_prompt": prompt,
                "system_prompt": system,
                "has_image": bool(image),
                "thinking": ctx.data("thinking"),
            },
            body,
        )

        reasoning = ""
        async with _client(ctx).stream(body, error_message="Failed to execute prompt") as response:
            if response.is_ndjson:

                def on_parts(output, partial_reasoning, raw_chunks):
                    debug_info.record_chunk("\n".join(raw_chunks))
                    ctx.stream(output, debug_info, partial_reasoning)

                parsed = await parse_ndjson_stream(response.aiter_text(), on_parts)
                output, reasoning = parsed.output, parsed.reasoning
            else:

                def on_text(output, raw_chunks):
                    debug_info.record_chunk("".join(raw_chunks))
                    ctx.stream(output, debug_info)

                output = (await parse_text_stream(response.aiter_text(), on_text)).output

        debug_info.finalize(output or "(empty response)")
        if not output.strip():
            raise NodeExecutionError(
                "Model returned empty response. The prompt combination may have confused the model.",
                node_id=ctx.node.id,
            )
        return ExecuteResult(output=output, reasoning=reasoning or None, debug_info=debug_info)


class ImageGenerationExecutor(NodeExecutor):
    """
    Generates an image, streaming partial images when the provider supports it.

    The output is a JSON image record ``{"type": "image", "value", "mimeType"}``.
    """

    type = "image-generation"
    has_pulse_output = True
    tracks_downstream_preview = True

    async def execute(self, ctx: ExecutionContext) -> ExecuteResult:
        prompt = ctx.text_setting("prompt")
        prompt_input = ctx.inputs.get("prompt", "")
        image = ctx.inputs.get("image") or ctx.text_setting("imageInput")
        provider = ctx.data("provider", DEFAULT_PROVIDER)
        model = ctx.data("model", DEFAULT_TEXT_MODEL)
        settings = {
            "outputFormat": ctx.data("outputFormat", "webp"),
            "size": ctx.data("size", "1024x1024"),
            "quality": ctx.data("quality", "low"),
            "partialImages": ctx.data("partialImages", 3),
            "aspectRatio": ctx.data("aspectRatio", "1:1"),
        }

        fields = {
            "type": self.type,
            "prompt": prompt,
            "provider": provider,
            "model": model,
            "input": prompt_input,
            "imageInput": image,
            **settings,
        }
        body = build_request_body(fields, ctx.options)
        image_prompt = prompt + (f" | Input: {prompt_input}" if prompt_input else "")
        debug_info = _debug(
            {
                "type": self.type,
                "provider": provider,
                "model": model,
                "image_prompt": image_prompt,
                "has_source_image": bool(image),
                **settings,
            },
            body,
        )

        client = _client(ctx)
        async with client.stream(
            body, error_message="Image generation failed", timeout=client.image_timeout
        ) as response:
            if response.is_json:
                data = await response.json()
                debug_info.finalize()
                if data.get("type") == "image" and data.get("value"):
                    output = ImageData("image", data["value"], data.get("mimeType", "image/png")).to_json()
                    ctx.stream(output, debug_info)
                    return ExecuteResult(output=output, debug_info=debug_info)
                raise NodeExecutionError(data.get("error") or "No image generated", node_id=ctx.node.id)

            def on_image(image_data: ImageData) -> None:
                debug_info.record_chunk()
                ctx.stream(image_data.to_json(), debug_info)

            parsed = await parse_image_stream(response.aiter_text(), on_image)

        debug_info.finalize()
        if parsed.final_image is None:
            raise NodeExecutionError("No final image received", node_id=ctx.node.id)
        return ExecuteResult(output=parsed.final_image.to_json(), debug_info=debug_info)


class AudioTranscriptionExecutor(NodeExecutor):
    """Transcribes the audio record on the ``audio`` input."""

    type = "audio-transcription"
    has_pulse_output = True

    async def execute(self, ctx: ExecutionContext) -> ExecuteResult:
        audio_input = ctx.inputs.get("audio")
        if not audio_input:
            raise NodeExecutionError("No audio input connected", node_id=ctx.node.id)
        try:
            audio = json.loads(audio_input)
        except json.JSONDecodeError:
            raise NodeExecutionError("Invalid audio input format", node_id=ctx.node.id)
        if not isinstance(audio, dict) or audio.get("type") != "buffer" or not audio.get("buffer"):
            raise NodeExecutionError(
                "Only buffer-type audio is supported for transcription", node_id=ctx.node.id
            )

        model = ctx.data("model", DEFAULT_TRANSCRIPTION_MODEL)
        fields = {
            "type": self.type,
            "audioBuffer": audio["buffer"],
            "audioMimeType": audio.get("mimeType"),
            "model": model,
            "language": ctx.inputs.get("language") or ctx.data("language"),
        }
        body = build_request_body(fields, ctx.options)
        debug_info = _debug({"type": self.type, "model": model}, body)

        def on_text(output, raw_chunks):
            debug_info.record_chunk(output)
            ctx.stream(output, debug_info)

        async with _client(ctx).stream(body, error_message="Transcription failed") as response:
            parsed = await parse_text_stream(response.aiter_text(), on_text)

        debug_info.finalize(parsed.output)
        return ExecuteResult(output=parsed.output, debug_info=debug_info)


class ReactComponentExecutor(NodeExecutor):
    """
    Streams generated React component code.

    Partial and final outputs are JSON records ``{"type": "react", "code": ...}``.
    """

    type = "react-component"
    has_pulse_output = True
    tracks_downstream_preview = True

    async def execute(self, ctx: ExecutionContext) -> ExecuteResult:
        prompt, system = _prompts(ctx)
        provider = ctx.data("provider", DEFAULT_PROVIDER)
        model = ctx.data("model", DEFAULT_TEXT_MODEL)
        fields = {
            "type": self.type,
            "inputs": {"prompt": prompt, "system": system},
            "provider": provider,
            "model": model,
            "stylePreset": ctx.data("stylePreset", "simple"),
        }
        body = build_request_body(fields, ctx.options)
        debug_info = _debug(
            {
                "type": self.type,
                "provider": provider,
                "model": model,
                "user_prompt": prompt,
                "system_prompt": system,
            },
            body,
        )

        def on_text(output, raw_chunks):
            debug_info.record_chunk("".join(raw_chunks))
            ctx.stream(json.dumps({"type": "react", "code": output}), debug_info)

        async with _client(ctx).stream(
            body, error_message="Failed to generate React component"
        ) as response:
            parsed = await parse_text_stream(response.aiter_text(), on_text)

        debug_info.finalize(parsed.output or "(empty response)")
        if not parsed.output.strip():
            raise NodeExecutionError("Model returned empty response.", node_id=ctx.node.id)
        return ExecuteResult(
            output=json.dumps({"type": "react", "code": parsed.output}), debug_info=debug_info
        )
