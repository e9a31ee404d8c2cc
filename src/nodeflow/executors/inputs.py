"""Entry-point executors: text, image and audio inputs."""

import json

from ..exceptions import NodeExecutionError
from ..models import ExecuteResult
from .base import ExecutionContext, NodeExecutor


class TextInputExecutor(NodeExecutor):
    """
    Emits the text typed into the node.

    ``ExecuteOptions.input_overrides[node.id]`` wins over the stored
    ``inputValue`` so headless callers can feed values without editing the
    flow.
    """

    type = "text-input"

    async def execute(self, ctx: ExecutionContext) -> ExecuteResult:
        node_id = ctx.node.id
        if node_id in ctx.options.input_overrides:
            value = ctx.options.input_overrides[node_id]
        else:
            value = ctx.text_setting("inputValue")
        ctx.context[f"userInput_{node_id}"] = value
        return ExecuteResult(output=value)


class ImageInputExecutor(NodeExecutor):
    type = "image-input"

    async def execute(self, ctx: ExecutionContext) -> ExecuteResult:
        return ExecuteResult(output=ctx.text_setting("uploadedImage"))


class AudioInputExecutor(NodeExecutor):
    """Emits a recorded audio buffer as a JSON audio record."""

    type = "audio-input"
    has_pulse_output = True

    async def execute(self, ctx: ExecutionContext) -> ExecuteResult:
        buffer = ctx.text_setting("audioBuffer")
        if not buffer:
            raise NodeExecutionError(
                "No audio recorded. Please record audio before running.", node_id=ctx.node.id
            )
        record = {
            "type": "buffer",
            "buffer": buffer,
            "mimeType": ctx.text_setting("audioMimeType") or "audio/webm",
            "duration": ctx.data("recordingDuration"),
        }
        return ExecuteResult(output=json.dumps(record))
