"""
Tests for the built-in executors.

Generation executors run against ``httpx.MockTransport`` so request bodies
and streamed responses can be asserted without a backend.
"""

import json

import httpx
import pytest

from nodeflow.backend import BackendClient
from nodeflow.config import ExecuteOptions
from nodeflow.debug import DebugInfo
from nodeflow.exceptions import BackendError, NodeExecutionError
from nodeflow.executors import ExecutionContext, PassthroughExecutor, first_available_input
from nodeflow.executors.generation import (
    AudioTranscriptionExecutor,
    ImageGenerationExecutor,
    ReactComponentExecutor,
    TextGenerationExecutor,
)
from nodeflow.executors.inputs import AudioInputExecutor, ImageInputExecutor, TextInputExecutor
from nodeflow.executors.logic import StringCombineExecutor, SwitchExecutor, is_pulse_fired
from nodeflow.executors.outputs import CommentExecutor, PreviewOutputExecutor
from nodeflow.models import Node, make_pulse

pytest_plugins = ("pytest_asyncio",)

NDJSON = {"content-type": "application/x-ndjson"}
TEXT = {"content-type": "text/plain; charset=utf-8"}
JSON = {"content-type": "application/json"}


class MockBackend:
    """Records request bodies and answers with a canned response."""

    def __init__(self, status_code=200, text="", headers=None, error=None):
        self.status_code = status_code
        self.text = text
        self.headers = headers or TEXT
        self.error = error
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, text=self.text, headers=self.headers)

    def client(self) -> BackendClient:
        return BackendClient("http://backend.test", transport=httpx.MockTransport(self.handler))

    @property
    def body(self):
        return self.requests[-1]


def make_ctx(node_type, data=None, inputs=None, client=None, options=None):
    streamed = []
    ctx = ExecutionContext(
        node=Node("n1", node_type, data or {}),
        inputs=inputs or {},
        options=options or ExecuteOptions(),
        client=client,
        on_stream_update=lambda output, debug_info=None, reasoning=None: streamed.append(
            (output, reasoning)
        ),
    )
    return ctx, streamed


class TestInputExecutors:
    """Text, image and audio inputs."""

    @pytest.mark.asyncio
    async def test_text_input_uses_stored_value(self):
        ctx, _ = make_ctx("text-input", {"inputValue": "hello"})
        result = await TextInputExecutor().execute(ctx)
        assert result.output == "hello"
        assert ctx.context == {"userInput_n1": "hello"}

    @pytest.mark.asyncio
    async def test_text_input_override_wins(self):
        ctx, _ = make_ctx(
            "text-input",
            {"inputValue": "stored"},
            options=ExecuteOptions(input_overrides={"n1": ""}),
        )
        result = await TextInputExecutor().execute(ctx)
        assert result.output == ""

    @pytest.mark.asyncio
    async def test_text_input_ignores_non_string(self):
        ctx, _ = make_ctx("text-input", {"inputValue": 42})
        assert (await TextInputExecutor().execute(ctx)).output == ""

    @pytest.mark.asyncio
    async def test_image_input(self):
        ctx, _ = make_ctx("image-input", {"uploadedImage": "data:image/png;base64,AAA"})
        assert (await ImageInputExecutor().execute(ctx)).output == "data:image/png;base64,AAA"

    @pytest.mark.asyncio
    async def test_audio_input_record(self):
        ctx, _ = make_ctx("audio-input", {"audioBuffer": "QUJD", "recordingDuration": 2.5})
        record = json.loads((await AudioInputExecutor().execute(ctx)).output)
        assert record == {"type": "buffer", "buffer": "QUJD", "mimeType": "audio/webm", "duration": 2.5}

    @pytest.mark.asyncio
    async def test_audio_input_without_recording_fails(self):
        ctx, _ = make_ctx("audio-input")
        with pytest.raises(NodeExecutionError, match="No audio recorded"):
            await AudioInputExecutor().execute(ctx)


class TestLogicExecutors:
    """String combine, switch and pulse detection."""

    @pytest.mark.asyncio
    async def test_string_combine_skips_empty_inputs(self):
        ctx, _ = make_ctx(
            "string-combine",
            {"separator": " | "},
            {"input1": "a", "input2": "", "input4": "d", "prompt": "ignored"},
        )
        assert (await StringCombineExecutor().execute(ctx)).output == "a | d"

    @pytest.mark.asyncio
    async def test_string_combine_default_separator(self):
        ctx, _ = make_ctx("string-combine", {}, {"input1": "a", "input2": "b"})
        assert (await StringCombineExecutor().execute(ctx)).output == "ab"

    @pytest.mark.parametrize(
        "is_on,inputs,expected",
        [
            (False, {}, False),
            (True, {}, True),
            (False, {"flip": make_pulse()}, True),
            (True, {"flip": make_pulse()}, False),
            (False, {"turnOn": make_pulse(), "turnOff": make_pulse()}, False),
            (False, {"turnOn": make_pulse(), "flip": make_pulse()}, True),
            (True, {"flip": "not a pulse"}, True),
        ],
    )
    @pytest.mark.asyncio
    async def test_switch(self, is_on, inputs, expected):
        ctx, _ = make_ctx("switch", {"isOn": is_on}, inputs)
        result = await SwitchExecutor().execute(ctx)
        assert result.switch_state is expected
        assert result.output == ("true" if expected else "false")

    def test_is_pulse_fired(self):
        assert is_pulse_fired(make_pulse())
        assert not is_pulse_fired('{"fired": false}')
        assert not is_pulse_fired("[]")
        assert not is_pulse_fired(None)


class TestOutputExecutors:
    """Preview sinks, comments and passthrough."""

    @pytest.mark.asyncio
    async def test_preview_prefers_image(self):
        ctx, _ = make_ctx("preview-output", inputs={"string": "text", "image": "img"})
        result = await PreviewOutputExecutor().execute(ctx)
        assert result.output == "img"
        assert result.string_output == "text"
        assert result.image_output == "img"
        assert result.audio_output == ""

    @pytest.mark.asyncio
    async def test_preview_prompt_counts_as_string(self):
        ctx, _ = make_ctx("preview-output", inputs={"prompt": "plain"})
        result = await PreviewOutputExecutor().execute(ctx)
        assert result.output == "plain"
        assert result.string_output == "plain"

    @pytest.mark.asyncio
    async def test_comment_and_passthrough(self):
        ctx, _ = make_ctx("comment", inputs={"other": "value"})
        assert (await CommentExecutor().execute(ctx)).output == "value"
        assert (await PassthroughExecutor("x").execute(ctx)).output == "value"

    def test_first_available_input(self):
        assert first_available_input({"a": "1", "prompt": "p"}) == "p"
        assert first_available_input({"a": "", "input": "i"}) == "i"
        assert first_available_input({"a": "", "b": "2"}) == "2"
        assert first_available_input({}) == ""


class TestTextGeneration:
    """TextGenerationExecutor against a mocked execute endpoint."""

    @pytest.mark.asyncio
    async def test_plain_text_stream(self):
        backend = MockBackend(text="Hello world")
        ctx, streamed = make_ctx(
            "text-generation",
            {"userPrompt": "inline", "systemPrompt": "be brief", "model": "m1"},
            {"prompt": "connected"},
            client=backend.client(),
            options=ExecuteOptions(api_keys={"openai": "sk-test"}),
        )

        result = await TextGenerationExecutor().execute(ctx)

        assert result.output == "Hello world"
        assert result.reasoning is None
        assert streamed[-1] == ("Hello world", None)
        assert backend.body["type"] == "text-generation"
        assert backend.body["inputs"] == {"prompt": "connected", "system": "be brief"}
        assert backend.body["model"] == "m1"
        assert backend.body["provider"] == "openai"
        assert backend.body["apiKeys"] == {"openai": "sk-test"}
        assert isinstance(result.debug_info, DebugInfo)
        assert "[REDACTED]" in result.debug_info.raw_request_body
        assert "sk-test" not in result.debug_info.raw_request_body
        assert result.debug_info.end_time is not None

    @pytest.mark.asyncio
    async def test_connected_empty_prompt_wins_over_inline(self):
        backend = MockBackend(text="ok")
        ctx, _ = make_ctx(
            "text-generation", {"userPrompt": "inline"}, {"prompt": ""}, client=backend.client()
        )
        await TextGenerationExecutor().execute(ctx)
        assert backend.body["inputs"]["prompt"] == ""

    @pytest.mark.asyncio
    async def test_ndjson_with_reasoning(self):
        lines = [
            {"type": "reasoning", "text": "think "},
            {"type": "text", "text": "Ans"},
            {"type": "text", "text": "wer"},
        ]
        backend = MockBackend(text="\n".join(json.dumps(l) for l in lines) + "\nnot json\n", headers=NDJSON)
        ctx, streamed = make_ctx("text-generation", {"userPrompt": "q"}, client=backend.client())

        result = await TextGenerationExecutor().execute(ctx)

        assert result.output == "Answer"
        assert result.reasoning == "think "
        assert streamed[-1] == ("Answer", "think ")

    @pytest.mark.asyncio
    async def test_share_token_replaces_api_keys(self):
        backend = MockBackend(text="ok")
        options = ExecuteOptions(api_keys={"openai": "sk"}, share_token="tok", run_id="run-1")
        ctx, _ = make_ctx("text-generation", {"userPrompt": "q"}, client=backend.client(), options=options)

        await TextGenerationExecutor().execute(ctx)

        assert backend.body["shareToken"] == "tok"
        assert backend.body["runId"] == "run-1"
        assert "apiKeys" not in backend.body

    @pytest.mark.asyncio
    async def test_empty_response_fails(self):
        backend = MockBackend(text="   ")
        ctx, _ = make_ctx("text-generation", {"userPrompt": "q"}, client=backend.client())
        with pytest.raises(NodeExecutionError, match="Model returned empty response"):
            await TextGenerationExecutor().execute(ctx)

    @pytest.mark.asyncio
    async def test_backend_error_message(self):
        backend = MockBackend(status_code=401, text='{"error": "Invalid API key"}', headers=JSON)
        ctx, _ = make_ctx("text-generation", {"userPrompt": "q"}, client=backend.client())
        with pytest.raises(BackendError) as exc_info:
            await TextGenerationExecutor().execute(ctx)
        assert str(exc_info.value) == "Invalid API key"
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_backend_error_default_message(self):
        backend = MockBackend(status_code=500, text="{}", headers=JSON)
        ctx, _ = make_ctx("text-generation", {"userPrompt": "q"}, client=backend.client())
        with pytest.raises(BackendError, match="Failed to execute prompt"):
            await TextGenerationExecutor().execute(ctx)

    @pytest.mark.asyncio
    async def test_timeout(self):
        backend = MockBackend(error=httpx.ReadTimeout("slow"))
        ctx, _ = make_ctx("text-generation", {"userPrompt": "q"}, client=backend.client())
        with pytest.raises(BackendError, match="Request timed out after 60 seconds"):
            await TextGenerationExecutor().execute(ctx)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        backend = MockBackend(error=httpx.ConnectError("refused"))
        ctx, _ = make_ctx("text-generation", {"userPrompt": "q"}, client=backend.client())
        with pytest.raises(BackendError, match="Failed to execute prompt: refused"):
            await TextGenerationExecutor().execute(ctx)

    @pytest.mark.asyncio
    async def test_missing_client(self):
        ctx, _ = make_ctx("text-generation", {"userPrompt": "q"})
        with pytest.raises(NodeExecutionError, match="No backend client configured"):
            await TextGenerationExecutor().execute(ctx)


class TestImageGeneration:
    """ImageGenerationExecutor JSON and streamed responses."""

    @pytest.mark.asyncio
    async def test_json_image(self):
        backend = MockBackend(text=json.dumps({"type": "image", "value": "AAA", "mimeType": "image/webp"}), headers=JSON)
        ctx, streamed = make_ctx("image-generation", {"prompt": "a cat"}, {"prompt": "orange"}, client=backend.client())

        result = await ImageGenerationExecutor().execute(ctx)

        assert json.loads(result.output) == {"type": "image", "value": "AAA", "mimeType": "image/webp"}
        assert streamed[-1][0] == result.output
        assert backend.body["prompt"] == "a cat"
        assert backend.body["input"] == "orange"
        assert backend.body["size"] == "1024x1024"
        assert result.debug_info.request["image_prompt"] == "a cat | Input: orange"

    @pytest.mark.asyncio
    async def test_json_error(self):
        backend = MockBackend(text=json.dumps({"error": "content policy"}), headers=JSON)
        ctx, _ = make_ctx("image-generation", {"prompt": "x"}, client=backend.client())
        with pytest.raises(NodeExecutionError, match="content policy"):
            await ImageGenerationExecutor().execute(ctx)

    @pytest.mark.asyncio
    async def test_streamed_partials_then_final(self):
        records = [
            {"type": "partial", "value": "P1"},
            {"type": "partial", "value": "P2"},
            {"type": "image", "value": "FINAL", "mimeType": "image/png"},
        ]
        backend = MockBackend(text="\n".join(json.dumps(r) for r in records), headers=NDJSON)
        ctx, streamed = make_ctx("image-generation", {"prompt": "x"}, client=backend.client())

        result = await ImageGenerationExecutor().execute(ctx)

        assert json.loads(result.output)["value"] == "FINAL"
        assert [json.loads(s[0])["value"] for s in streamed] == ["P1", "P2", "FINAL"]
        assert result.debug_info.stream_chunks_received == 3

    @pytest.mark.asyncio
    async def test_stream_without_final_image(self):
        backend = MockBackend(text=json.dumps({"type": "partial", "value": "P1"}), headers=NDJSON)
        ctx, _ = make_ctx("image-generation", {"prompt": "x"}, client=backend.client())
        with pytest.raises(NodeExecutionError, match="No final image received"):
            await ImageGenerationExecutor().execute(ctx)


class TestAudioTranscription:
    """AudioTranscriptionExecutor input validation and streaming."""

    @pytest.mark.parametrize(
        "audio,message",
        [
            (None, "No audio input connected"),
            ("not json", "Invalid audio input format"),
            (json.dumps({"type": "url", "url": "x"}), "Only buffer-type audio"),
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_audio(self, audio, message):
        inputs = {"audio": audio} if audio is not None else {}
        ctx, _ = make_ctx("audio-transcription", inputs=inputs, client=MockBackend().client())
        with pytest.raises(NodeExecutionError, match=message):
            await AudioTranscriptionExecutor().execute(ctx)

    @pytest.mark.asyncio
    async def test_transcribes_buffer(self):
        backend = MockBackend(text="hello there")
        audio = json.dumps({"type": "buffer", "buffer": "QUJD", "mimeType": "audio/webm"})
        ctx, _ = make_ctx(
            "audio-transcription", {"language": "en"}, {"audio": audio}, client=backend.client()
        )

        result = await AudioTranscriptionExecutor().execute(ctx)

        assert result.output == "hello there"
        assert backend.body["audioBuffer"] == "QUJD"
        assert backend.body["model"] == "gpt-4o-transcribe"
        assert backend.body["language"] == "en"
        assert "QUJD" not in result.debug_info.raw_request_body


class TestReactComponent:
    """ReactComponentExecutor output records."""

    @pytest.mark.asyncio
    async def test_component_record(self):
        backend = MockBackend(text="export default () => null")
        ctx, streamed = make_ctx("react-component", {"userPrompt": "a button"}, client=backend.client())

        result = await ReactComponentExecutor().execute(ctx)

        assert json.loads(result.output) == {"type": "react", "code": "export default () => null"}
        assert json.loads(streamed[-1][0])["type"] == "react"
        assert backend.body["stylePreset"] == "simple"

    @pytest.mark.asyncio
    async def test_empty_component_fails(self):
        backend = MockBackend(text="")
        ctx, _ = make_ctx("react-component", {"userPrompt": "x"}, client=backend.client())
        with pytest.raises(NodeExecutionError, match="Model returned empty response."):
            await ReactComponentExecutor().execute(ctx)
