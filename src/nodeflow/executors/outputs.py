"""Terminal and annotation executors."""

from ..models import ExecuteResult
from .base import ExecutionContext, NodeExecutor, first_available_input


class PreviewOutputExecutor(NodeExecutor):
    """
    Sink that collects flow results.

    Inputs arrive on media-specific handles (``string``, ``image``, ``audio``,
    ``code``); edges without a target handle land on ``prompt`` and count as
    string input. The primary output is the richest non-empty channel.
    """

    type = "preview-output"

    async def execute(self, ctx: ExecutionContext) -> ExecuteResult:
        inputs = ctx.inputs
        string_output = inputs.get("string") or inputs.get("prompt") or ""
        image_output = inputs.get("image", "")
        audio_output = inputs.get("audio", "")
        code_output = inputs.get("code", "")
        return ExecuteResult(
            output=image_output or audio_output or code_output or string_output,
            string_output=string_output,
            image_output=image_output,
            audio_output=audio_output,
            code_output=code_output,
        )


class CommentExecutor(NodeExecutor):
    # Comments are annotations; when wired they just pass values along.
    type = "comment"

    async def execute(self, ctx: ExecutionContext) -> ExecuteResult:
        return ExecuteResult(output=first_available_input(ctx.inputs))
