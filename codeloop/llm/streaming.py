"""Turn a provider completion into a model stream with tool execution.

``stream_text`` runs one model step: provider parts are forwarded as stream
chunks, every tool call is executed through its binding as soon as it arrives
(so a ``tool-call`` chunk is immediately followed by its ``tool-result`` or
``tool-error``), and the turn's response messages and finish reason resolve
once the stream is exhausted.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol

from codeloop.exceptions import LLMError, StreamAbortedError, ToolNotFoundError
from codeloop.llm import (
    ErrorChunk,
    FinishChunk,
    LLMProvider,
    Message,
    ModelResponse,
    StreamChunk,
    TextDeltaChunk,
    ToolCall,
    ToolCallChunk,
    ToolErrorChunk,
    ToolResultChunk,
)
from codeloop.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class ToolBinding:
    """A tool as the model sees it: schema plus a call-id aware execute."""

    name: str
    description: str
    parameters: dict[str, Any]
    execute: Callable[[dict[str, Any], str], Awaitable[Any]]

    def get_definition(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


class StreamResult:
    """One model turn: the chunk stream plus two deferred values."""

    def __init__(
        self,
        full_stream: AsyncIterator[StreamChunk],
        response: Awaitable[ModelResponse],
        finish_reason: Awaitable[str],
    ):
        self.full_stream = full_stream
        self.response = response
        self.finish_reason = finish_reason


class ChatModel(Protocol):
    """Model binding used by the agent loop."""

    def stream(
        self,
        *,
        system: str,
        messages: list[Message],
        tools: dict[str, ToolBinding] | None,
        abort_event: asyncio.Event | None = None,
    ) -> StreamResult:
        ...


def _retrieve_exception(future: asyncio.Future[Any]) -> None:
    # Nobody awaits these after an aborted turn.
    if not future.cancelled():
        future.exception()


async def _cancel_task(task: asyncio.Future[Any] | None) -> None:
    """Cancel task and await it to avoid pending task warnings."""
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


def _raise_if_aborted(abort_event: asyncio.Event | None) -> None:
    if abort_event is not None and abort_event.is_set():
        raise StreamAbortedError()


async def await_or_abort(awaitable: Awaitable[Any], abort_event: asyncio.Event | None) -> Any:
    """Await awaitable, cancelling it with StreamAbortedError when the abort event fires."""
    if abort_event is None:
        return await awaitable

    next_task = asyncio.ensure_future(awaitable)
    abort_wait_task = asyncio.create_task(abort_event.wait())
    try:
        done, _ = await asyncio.wait(
            {next_task, abort_wait_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if next_task in done:
            return next_task.result()
        raise StreamAbortedError()
    finally:
        await _cancel_task(next_task)
        await _cancel_task(abort_wait_task)


async def next_or_abort(iterator: AsyncIterator[Any], abort_event: asyncio.Event | None) -> Any:
    """Await the next item, giving up with StreamAbortedError when the abort event fires.

    Raises StopAsyncIteration when the iterator is exhausted.
    """
    _raise_if_aborted(abort_event)
    return await await_or_abort(iterator.__anext__(), abort_event)


def stringify_tool_output(output: Any) -> str:
    """Tool output as text: strings verbatim, anything else as JSON."""
    if isinstance(output, str):
        return output
    return json.dumps(output)


def _tool_message(outcome: ToolResultChunk | ToolErrorChunk) -> Message:
    if isinstance(outcome, ToolResultChunk):
        content = stringify_tool_output(outcome.output)
    else:
        content = f"Error: {outcome.error}"
    return Message(
        role="tool",
        content=content,
        tool_call_id=outcome.tool_call_id,
        tool_name=outcome.tool_name,
    )


def stream_text(
    provider: LLMProvider,
    *,
    system: str,
    messages: list[Message],
    tools: dict[str, ToolBinding] | None = None,
    abort_event: asyncio.Event | None = None,
) -> StreamResult:
    """Open one model step. Must be called with a running event loop."""
    loop = asyncio.get_running_loop()
    response_future: asyncio.Future[ModelResponse] = loop.create_future()
    finish_future: asyncio.Future[str] = loop.create_future()
    for future in (response_future, finish_future):
        future.add_done_callback(_retrieve_exception)

    provider_messages = [Message(role="system", content=system), *messages]
    definitions = [binding.get_definition() for binding in (tools or {}).values()]

    def _resolve(response: ModelResponse, finish_reason: str) -> None:
        if not response_future.done():
            response_future.set_result(response)
        if not finish_future.done():
            finish_future.set_result(finish_reason)

    def _fail(exc: BaseException) -> None:
        for future in (response_future, finish_future):
            if not future.done():
                future.set_exception(exc)

    async def _execute(call: ToolCallChunk) -> ToolResultChunk | ToolErrorChunk:
        binding = (tools or {}).get(call.tool_name)
        try:
            if binding is None:
                raise ToolNotFoundError(call.tool_name)
            output = await binding.execute(call.input, call.tool_call_id)
        except Exception as exc:
            log.warning("Tool call failed", tool=call.tool_name, call_id=call.tool_call_id, error=str(exc))
            return ToolErrorChunk(
                tool_call_id=call.tool_call_id,
                tool_name=call.tool_name,
                input=call.input,
                error=exc,
            )
        return ToolResultChunk(
            tool_call_id=call.tool_call_id,
            tool_name=call.tool_name,
            input=call.input,
            output=output,
        )

    async def _full_stream() -> AsyncIterator[StreamChunk]:
        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        tool_messages: list[Message] = []
        finish: FinishChunk | None = None

        def _response() -> ModelResponse:
            assistant = Message(role="assistant", content="".join(text_parts), tool_calls=list(tool_calls))
            return ModelResponse(messages=[assistant, *tool_messages])

        parts = provider.complete_streaming(provider_messages, tools=definitions or None)
        try:
            try:
                while True:
                    try:
                        part = await next_or_abort(parts, abort_event)
                    except StopAsyncIteration:
                        break

                    if isinstance(part, TextDeltaChunk):
                        text_parts.append(part.text)
                        yield part
                    elif isinstance(part, ToolCallChunk):
                        tool_calls.append(ToolCall(
                            id=part.tool_call_id,
                            name=part.tool_name,
                            arguments=part.input,
                        ))
                        yield part
                        _raise_if_aborted(abort_event)
                        outcome = await await_or_abort(_execute(part), abort_event)
                        tool_messages.append(_tool_message(outcome))
                        yield outcome
                    elif isinstance(part, FinishChunk):
                        finish = part
                    else:
                        raise TypeError(f"Unexpected provider part: {type(part).__name__}")
            except LLMError as exc:
                log.error("Model stream failed", error=str(exc))
                _resolve(_response(), "error")
                yield ErrorChunk(error=exc)
                return
            except Exception as exc:
                _fail(exc)
                raise

            if tool_calls:
                finish_reason = "tool-calls"
            else:
                finish_reason = finish.finish_reason if finish is not None else "stop"
            _resolve(_response(), finish_reason)
            yield FinishChunk(usage=finish.usage if finish is not None else None, finish_reason=finish_reason)
        finally:
            aclose = getattr(parts, "aclose", None)
            if aclose is not None:
                await aclose()
            # Closed early or cancelled: nobody will resolve these any more.
            _fail(StreamAbortedError("Model stream closed before completion"))

    return StreamResult(
        full_stream=_full_stream(),
        response=response_future,
        finish_reason=finish_future,
    )


class ProviderChatModel:
    """``ChatModel`` backed by an ``LLMProvider``."""

    def __init__(self, provider: LLMProvider):
        self.provider = provider

    def stream(
        self,
        *,
        system: str,
        messages: list[Message],
        tools: dict[str, ToolBinding] | None,
        abort_event: asyncio.Event | None = None,
    ) -> StreamResult:
        return stream_text(
            self.provider,
            system=system,
            messages=messages,
            tools=tools,
            abort_event=abort_event,
        )
