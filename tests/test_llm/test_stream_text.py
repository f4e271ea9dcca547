import asyncio

import pytest

from codeloop.exceptions import LLMAPIError, StreamAbortedError
from codeloop.llm import (
    ErrorChunk,
    FinishChunk,
    LLMProvider,
    Message,
    TextDeltaChunk,
    ToolCallChunk,
    ToolErrorChunk,
    ToolResultChunk,
)
from codeloop.llm.streaming import ProviderChatModel, ToolBinding, stream_text


class ScriptedProvider(LLMProvider):
    def __init__(self, parts, error: Exception | None = None, hang: bool = False):
        self.parts = parts
        self.error = error
        self.hang = hang
        self.calls = []

    async def complete_streaming(self, messages, tools=None, temperature=None, max_tokens=None):
        self.calls.append((messages, tools))
        for part in self.parts:
            yield part
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.sleep(30)


def _binding(name, fn):
    async def execute(input, call_id):
        return fn(input, call_id)

    return ToolBinding(name=name, description=name, parameters={"type": "object"}, execute=execute)


async def _collect(result):
    return [chunk async for chunk in result.full_stream]


@pytest.mark.asyncio
async def test_text_only_turn_resolves_stop():
    provider = ScriptedProvider([
        TextDeltaChunk("Hel"),
        TextDeltaChunk("lo"),
        FinishChunk(usage={"input_tokens": 3, "output_tokens": 2}, finish_reason="stop"),
    ])

    result = stream_text(provider, system="sys", messages=[Message(role="user", content="hi")])
    chunks = await _collect(result)

    assert chunks[:2] == [TextDeltaChunk("Hel"), TextDeltaChunk("lo")]
    assert chunks[-1] == FinishChunk(usage={"input_tokens": 3, "output_tokens": 2}, finish_reason="stop")
    assert await result.finish_reason == "stop"
    response = await result.response
    assert [m.role for m in response.messages] == ["assistant"]
    assert response.messages[0].content == "Hello"
    sent_messages, sent_tools = provider.calls[0]
    assert sent_messages[0] == Message(role="system", content="sys")
    assert sent_tools is None


@pytest.mark.asyncio
async def test_tool_call_is_followed_by_its_result():
    provider = ScriptedProvider([
        ToolCallChunk("c1", "echo", {"text": "hi"}),
        FinishChunk(finish_reason="stop"),
    ])
    tools = {"echo": _binding("echo", lambda input, call_id: {"said": input["text"], "id": call_id})}

    result = stream_text(provider, system="", messages=[], tools=tools)
    chunks = await _collect(result)

    assert chunks[0] == ToolCallChunk("c1", "echo", {"text": "hi"})
    assert chunks[1] == ToolResultChunk("c1", "echo", {"text": "hi"}, {"said": "hi", "id": "c1"})
    assert await result.finish_reason == "tool-calls"
    response = await result.response
    assert [m.role for m in response.messages] == ["assistant", "tool"]
    assert response.messages[0].tool_calls[0].id == "c1"
    assert response.messages[1].content == '{"said": "hi", "id": "c1"}'
    assert response.messages[1].tool_call_id == "c1"
    assert provider.calls[0][1] == [{"name": "echo", "description": "echo", "parameters": {"type": "object"}}]


@pytest.mark.asyncio
async def test_failing_and_unknown_tools_become_tool_errors():
    def boom(input, call_id):
        raise RuntimeError("kaput")

    provider = ScriptedProvider([
        ToolCallChunk("c1", "boom", {}),
        ToolCallChunk("c2", "missing", {}),
    ])

    result = stream_text(provider, system="", messages=[], tools={"boom": _binding("boom", boom)})
    chunks = await _collect(result)

    errors = [c for c in chunks if isinstance(c, ToolErrorChunk)]
    assert [e.tool_call_id for e in errors] == ["c1", "c2"]
    assert str(errors[0].error) == "kaput"
    response = await result.response
    assert response.messages[1].content == "Error: kaput"


@pytest.mark.asyncio
async def test_provider_llm_error_becomes_error_chunk():
    provider = ScriptedProvider([TextDeltaChunk("partial")], error=LLMAPIError("down", status_code=503))

    result = stream_text(provider, system="", messages=[])
    chunks = await _collect(result)

    assert isinstance(chunks[-1], ErrorChunk)
    assert chunks[-1].error.status_code == 503
    assert await result.finish_reason == "error"


@pytest.mark.asyncio
async def test_abort_mid_stream_raises_and_fails_deferred_values():
    abort_event = asyncio.Event()
    provider = ScriptedProvider([TextDeltaChunk("first")], hang=True)
    result = stream_text(provider, system="", messages=[], abort_event=abort_event)

    seen = []
    with pytest.raises(StreamAbortedError):
        async for chunk in result.full_stream:
            seen.append(chunk)
            abort_event.set()

    assert seen == [TextDeltaChunk("first")]
    with pytest.raises(StreamAbortedError):
        await result.response


@pytest.mark.asyncio
async def test_abort_cancels_tool_call_in_flight():
    abort_event = asyncio.Event()
    cancelled = []

    async def execute(input, call_id):
        abort_event.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.append(call_id)
            raise

    provider = ScriptedProvider([ToolCallChunk("c1", "stuck", {}), FinishChunk(finish_reason="stop")])
    tools = {"stuck": ToolBinding(name="stuck", description="", parameters={}, execute=execute)}
    result = stream_text(provider, system="", messages=[], tools=tools, abort_event=abort_event)

    seen = []
    with pytest.raises(StreamAbortedError):
        async for chunk in result.full_stream:
            seen.append(chunk)

    assert seen == [ToolCallChunk("c1", "stuck", {})]
    assert cancelled == ["c1"]
    with pytest.raises(StreamAbortedError):
        await result.finish_reason


@pytest.mark.asyncio
async def test_provider_chat_model_delegates_to_stream_text():
    provider = ScriptedProvider([TextDeltaChunk("ok")])
    model = ProviderChatModel(provider)

    result = model.stream(system="s", messages=[], tools=None)
    chunks = await _collect(result)

    assert chunks[0] == TextDeltaChunk("ok")
    assert await result.finish_reason == "stop"
