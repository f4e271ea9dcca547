import json

import httpx
import pytest

from codeloop.config import Config
from codeloop.exceptions import LLMAPIError
from codeloop.llm import (
    FinishChunk,
    Message,
    OllamaProvider,
    TextDeltaChunk,
    ToolCall,
    ToolCallChunk,
    create_provider,
    get_provider,
    set_provider,
)


def _ndjson(*objs) -> bytes:
    return "".join(json.dumps(o) + "\n" for o in objs).encode("utf-8")


def _provider(handler) -> OllamaProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OllamaProvider(model="test-model", base_url="http://ollama.test/", client=client)


@pytest.mark.asyncio
async def test_streams_text_tool_calls_and_usage():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, content=_ndjson(
            {"message": {"role": "assistant", "content": "Let me "}},
            {"message": {"role": "assistant", "content": "look."}},
            {"message": {"role": "assistant", "content": "", "tool_calls": [
                {"function": {"name": "read_file", "arguments": {"file_path": "a.py"}}},
            ]}},
            {"done": True, "done_reason": "stop", "prompt_eval_count": 11, "eval_count": 7},
        ))

    provider = _provider(handler)
    parts = [
        part async for part in provider.complete_streaming(
            [Message(role="system", content="sys"), Message(role="user", content="hi")],
            tools=[{"name": "read_file", "description": "Read", "parameters": {"type": "object"}}],
        )
    ]
    await provider.close()

    assert parts[0] == TextDeltaChunk("Let me ")
    assert parts[1] == TextDeltaChunk("look.")
    assert isinstance(parts[2], ToolCallChunk)
    assert parts[2].tool_name == "read_file"
    assert parts[2].input == {"file_path": "a.py"}
    assert parts[2].tool_call_id.startswith("call_")
    assert parts[3] == FinishChunk(usage={"input_tokens": 11, "output_tokens": 7}, finish_reason="stop")

    assert captured["url"] == "http://ollama.test/api/chat"
    body = captured["body"]
    assert body["model"] == "test-model"
    assert body["stream"] is True
    assert body["messages"][0] == {"role": "system", "content": "sys"}
    assert body["tools"][0]["function"]["name"] == "read_file"


@pytest.mark.asyncio
async def test_converts_assistant_tool_calls_and_tool_results():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, content=_ndjson({"done": True}))

    provider = _provider(handler)
    messages = [
        Message(
            role="assistant",
            content="",
            tool_calls=[ToolCall(id="c1", name="bash", arguments={"command": "ls"})],
        ),
        Message(role="tool", content="a.py", tool_call_id="c1", tool_name="bash"),
    ]
    parts = [part async for part in provider.complete_streaming(messages)]

    assert parts == [FinishChunk(usage={"input_tokens": None, "output_tokens": None}, finish_reason="stop")]
    sent = captured["body"]["messages"]
    assert sent[0]["tool_calls"] == [{"function": {"name": "bash", "arguments": {"command": "ls"}}}]
    assert sent[1] == {"role": "tool", "content": "a.py", "tool_name": "bash"}
    assert "tools" not in captured["body"]


@pytest.mark.asyncio
async def test_http_error_raises_llm_api_error():
    provider = _provider(lambda request: httpx.Response(500, content=b"boom"))

    with pytest.raises(LLMAPIError) as exc_info:
        async for _ in provider.complete_streaming([Message(role="user", content="hi")]):
            pass

    assert exc_info.value.status_code == 500
    assert "boom" in str(exc_info.value)


def test_create_provider_rejects_unknown_provider():
    with pytest.raises(ValueError):
        create_provider(provider="nope")


@pytest.mark.asyncio
async def test_global_provider_is_built_from_config_once(monkeypatch):
    cfg = Config()
    cfg.model.model = "llama-test"
    cfg.model.base_url = "http://ollama.test:1234/"
    monkeypatch.setattr("codeloop.config._config", cfg)
    set_provider(None)

    provider = get_provider()
    try:
        assert isinstance(provider, OllamaProvider)
        assert provider.model == "llama-test"
        assert provider.base_url == "http://ollama.test:1234"
        assert get_provider() is provider
    finally:
        await provider.close()
        set_provider(None)


def test_set_provider_overrides_global():
    provider = _provider(lambda request: httpx.Response(200))
    set_provider(provider)
    try:
        assert get_provider() is provider
    finally:
        set_provider(None)
