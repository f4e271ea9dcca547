"""Model-provider layer: messages, stream chunks and the Ollama provider."""

import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Union

import httpx

from codeloop.exceptions import LLMAPIError, LLMError
from codeloop.logging import get_logger

log = get_logger(__name__)


OLLAMA_NATIVE_BASE_URL = "http://127.0.0.1:11434"


@dataclass
class ToolCall:
    """A tool call from the LLM."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class Message:
    """A message in the conversation."""

    role: str  # "system", "user", "assistant", "tool"
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None
    tool_name: str | None = None


@dataclass
class ModelResponse:
    """Messages a model turn produced: the assistant message, then tool results."""

    messages: list[Message] = field(default_factory=list)


# Stream chunks. A model turn is a sequence of these; the set is closed.


@dataclass(frozen=True)
class TextDeltaChunk:
    text: str


@dataclass(frozen=True)
class ToolCallChunk:
    tool_call_id: str
    tool_name: str
    input: dict[str, Any]


@dataclass(frozen=True)
class ToolResultChunk:
    tool_call_id: str
    tool_name: str
    input: dict[str, Any]
    output: Any


@dataclass(frozen=True)
class ToolErrorChunk:
    tool_call_id: str
    tool_name: str
    input: dict[str, Any]
    error: Any


@dataclass(frozen=True)
class ErrorChunk:
    error: Any


@dataclass(frozen=True)
class FinishChunk:
    """End of a turn. ``usage`` holds ``input_tokens``/``output_tokens``, either may be missing."""

    usage: dict[str, int | None] | None = None
    finish_reason: str = "stop"


StreamChunk = Union[
    TextDeltaChunk,
    ToolCallChunk,
    ToolResultChunk,
    ToolErrorChunk,
    ErrorChunk,
    FinishChunk,
]

# What a provider emits for one completion; tool results are added by stream_text.
ProviderPart = Union[TextDeltaChunk, ToolCallChunk, FinishChunk]


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    def complete_streaming(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[ProviderPart]:
        pass

    async def close(self) -> None:
        return None


class OllamaProvider(LLMProvider):
    """Direct Ollama API provider."""

    def __init__(
        self,
        model: str = "qwen3-coder-next",
        base_url: str = OLLAMA_NATIVE_BASE_URL,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize Ollama provider.

        Args:
            model: Ollama model name (e.g., 'llama3.2', 'qwen3:32b')
            base_url: Ollama API base URL
            temperature: Sampling temperature
            max_tokens: Max tokens to generate
            api_key: Optional API key (Ollama usually doesn't need one locally)
            client: Optional preconfigured HTTP client
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = api_key

        self.client = client or httpx.AsyncClient(
            timeout=120.0,
            follow_redirects=True,
        )

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert messages to Ollama format."""
        result = []
        for msg in messages:
            entry: dict[str, Any] = {"role": msg.role, "content": msg.content or ""}
            if msg.role == "assistant" and msg.tool_calls:
                entry["tool_calls"] = [
                    {"function": {"name": tc.name, "arguments": tc.arguments}}
                    for tc in msg.tool_calls
                ]
            elif msg.role == "tool" and msg.tool_name:
                entry["tool_name"] = msg.tool_name
            result.append(entry)
        return result

    def _convert_tools(self, tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Convert tools to Ollama format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool["name"],
                    "description": tool.get("description", "") or "",
                    "parameters": tool.get("parameters") or {},
                },
            }
            for tool in tools
            if tool.get("name")
        ]

    def _build_body(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        options: dict[str, Any] = {
            "num_ctx": 65536,
            "temperature": temperature if temperature is not None else self.temperature,
        }
        if max_tokens or self.max_tokens:
            options["num_predict"] = max_tokens or self.max_tokens

        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "stream": True,
            "options": options,
        }
        if tools:
            body["tools"] = self._convert_tools(tools)
        return body

    @staticmethod
    def _parse_tool_calls(message: dict[str, Any]) -> list[ToolCallChunk]:
        chunks = []
        for tc in message.get("tool_calls") or []:
            function = tc.get("function", {})
            arguments = function.get("arguments", {})
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except json.JSONDecodeError:
                    arguments = {"raw": arguments}
            call_id = tc.get("id") or f"call_{uuid.uuid4().hex[:12]}"
            chunks.append(ToolCallChunk(
                tool_call_id=str(call_id),
                tool_name=str(function.get("name", "")),
                input=arguments if isinstance(arguments, dict) else {},
            ))
        return chunks

    async def complete_streaming(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[ProviderPart]:
        """Stream a completion as text deltas, tool calls and a final finish part."""
        url = f"{self.base_url}/api/chat"
        body = self._build_body(messages, tools, temperature, max_tokens)

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            log.debug("Calling Ollama", model=self.model, url=url, msg_count=len(body["messages"]))
            async with self.client.stream("POST", url, json=body, headers=headers) as response:
                if not response.is_success:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMAPIError(
                        f"Ollama API error {response.status_code}: {error_text}",
                        status_code=response.status_code,
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        continue

                    message = chunk.get("message") or {}
                    if message.get("content"):
                        yield TextDeltaChunk(text=message["content"])
                    for call in self._parse_tool_calls(message):
                        yield call

                    if chunk.get("done"):
                        yield FinishChunk(
                            usage={
                                "input_tokens": chunk.get("prompt_eval_count"),
                                "output_tokens": chunk.get("eval_count"),
                            },
                            finish_reason=str(chunk.get("done_reason") or "stop"),
                        )
                        break

        except LLMError:
            raise
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Ollama streaming error: {e}")
        except Exception as e:
            raise LLMError(f"Ollama stream failed: {e}")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def create_provider(
    provider: str = "ollama",
    model: str = "qwen3-coder-next",
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 4096,
) -> LLMProvider:
    """Create an LLM provider.

    Args:
        provider: Provider name (only ``ollama`` is built in)
        model: Model name
        api_key: Optional API key
        base_url: Optional base URL
        temperature: Default temperature
        max_tokens: Default max tokens

    Returns:
        Configured LLMProvider instance
    """
    if provider == "ollama":
        return OllamaProvider(
            model=model,
            base_url=base_url or OLLAMA_NATIVE_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
        )
    raise ValueError(f"Provider '{provider}' not supported. Use 'ollama' or call set_provider().")


# Global provider instance
_provider: LLMProvider | None = None


def get_provider() -> LLMProvider:
    """Get the global LLM provider instance."""
    global _provider
    if _provider is None:
        from codeloop.config import get_config
        cfg = get_config()
        _provider = create_provider(
            provider=cfg.model.provider,
            model=cfg.model.model,
            api_key=cfg.model.api_key or None,
            base_url=cfg.model.base_url or None,
            temperature=cfg.model.temperature,
            max_tokens=cfg.model.max_tokens,
        )
    return _provider


def set_provider(provider: LLMProvider | None) -> None:
    """Set the global LLM provider instance."""
    global _provider
    _provider = provider


__all__ = [
    "Message",
    "ToolCall",
    "ModelResponse",
    "TextDeltaChunk",
    "ToolCallChunk",
    "ToolResultChunk",
    "ToolErrorChunk",
    "ErrorChunk",
    "FinishChunk",
    "StreamChunk",
    "ProviderPart",
    "LLMProvider",
    "OllamaProvider",
    "create_provider",
    "get_provider",
    "set_provider",
]
