"""Agent loop: drives model turns, routes tool calls and grows the history."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable

from codeloop.events import (
    AgentEvent,
    ErrorEvent,
    FinishEvent,
    TextDeltaEvent,
    TokenUsage,
    ToolCallEvent,
    ToolResultEvent,
    TurnStartEvent,
)
from codeloop.exceptions import StreamError
from codeloop.llm import (
    ErrorChunk,
    FinishChunk,
    Message,
    ModelResponse,
    StreamChunk,
    TextDeltaChunk,
    ToolCallChunk,
    ToolErrorChunk,
    ToolResultChunk,
)
from codeloop.llm.streaming import ChatModel, ToolBinding, stringify_tool_output
from codeloop.logging import get_logger
from codeloop.pipeline import PreToolUseHandler, ToolExecutionPipeline, ToolOutputSink
from codeloop.tools.registry import ToolRegistry, ToolResult, snapshot_environment

log = get_logger(__name__)

DEFAULT_MAX_TURNS = 40


class LoopState(Enum):
    AWAITING_STREAM = "awaiting-stream"
    STREAMING_TURN = "streaming-turn"
    AWAITING_HISTORY_COMMIT = "awaiting-history-commit"
    DONE = "done"


@dataclass
class AgentOptions:
    """Everything one run of the loop needs besides the history."""

    model: ChatModel
    system_prompt: str = ""
    max_turns: int = DEFAULT_MAX_TURNS
    cwd: Path = field(default_factory=Path.cwd)
    env: dict[str, str] = field(default_factory=snapshot_environment)
    tools: ToolRegistry | None = None
    on_pre_tool_use: PreToolUseHandler | None = None
    abort_event: asyncio.Event | None = None
    on_tool_output: "ToolOutputSink | Callable[[str, str], None] | None" = None


def translate_chunk(chunk: StreamChunk) -> AgentEvent:
    """Map one stream chunk to exactly one agent event."""
    if isinstance(chunk, TextDeltaChunk):
        return TextDeltaEvent(text=chunk.text)
    if isinstance(chunk, ToolCallChunk):
        return ToolCallEvent(
            tool_name=chunk.tool_name,
            input=chunk.input,
            tool_call_id=chunk.tool_call_id,
        )
    if isinstance(chunk, ToolResultChunk):
        return ToolResultEvent(
            tool_name=chunk.tool_name,
            tool_call_id=chunk.tool_call_id,
            result=ToolResult(success=True, output=stringify_tool_output(chunk.output)),
        )
    if isinstance(chunk, ToolErrorChunk):
        return ToolResultEvent(
            tool_name=chunk.tool_name,
            tool_call_id=chunk.tool_call_id,
            result=ToolResult(success=False, output="", error=str(chunk.error)),
        )
    if isinstance(chunk, ErrorChunk):
        error = chunk.error if isinstance(chunk.error, BaseException) else StreamError(str(chunk.error))
        return ErrorEvent(error=error)
    if isinstance(chunk, FinishChunk):
        usage = chunk.usage or {}
        return FinishEvent(usage=TokenUsage.from_counts(
            usage.get("input_tokens"),
            usage.get("output_tokens"),
        ))
    raise TypeError(f"Unhandled stream chunk: {type(chunk).__name__}")


class AgentLoop:
    """Runs the model/tool loop for one conversation.

    ``run`` is an async generator of ``AgentEvent``. The caller's history list
    is extended with each turn's response messages once the turn's stream has
    finished; it is never touched mid-turn.
    """

    def __init__(self) -> None:
        self.state = LoopState.AWAITING_STREAM
        self.turn = 0

    @staticmethod
    def _aborted(options: AgentOptions) -> bool:
        return options.abort_event is not None and options.abort_event.is_set()

    def _bindings(self, options: AgentOptions) -> dict[str, ToolBinding] | None:
        if options.tools is None:
            return None
        pipeline = ToolExecutionPipeline(
            tools=options.tools,
            cwd=options.cwd,
            env=options.env,
            on_pre_tool_use=options.on_pre_tool_use,
            abort_event=options.abort_event,
            output_sink=options.on_tool_output,
        )
        return pipeline.build_bindings()

    async def _deferred(self, value: Awaitable[Any], options: AgentOptions) -> tuple[bool, Any]:
        """Await a deferred stream value; ``(False, None)`` when cancelled."""
        if self._aborted(options):
            return False, None
        try:
            return True, await value
        except Exception:
            if self._aborted(options):
                return False, None
            raise

    async def run(self, history: list[Message], options: AgentOptions) -> AsyncIterator[AgentEvent]:
        self.state = LoopState.AWAITING_STREAM
        self.turn = 0
        bindings = self._bindings(options)

        while self.state == LoopState.AWAITING_STREAM:
            self.turn += 1
            if self.turn > options.max_turns:
                log.info("Max turns reached", max_turns=options.max_turns)
                break
            if self._aborted(options):
                log.info("Agent aborted before turn", turn=self.turn)
                break

            yield TurnStartEvent(turn=self.turn, max_turns=options.max_turns)
            if self._aborted(options):
                break

            result = options.model.stream(
                system=options.system_prompt,
                messages=list(history),
                tools=bindings,
                abort_event=options.abort_event,
            )
            self.state = LoopState.STREAMING_TURN
            stream = result.full_stream
            try:
                async for chunk in stream:
                    if self._aborted(options):
                        break
                    yield translate_chunk(chunk)
            except Exception as e:
                if not self._aborted(options):
                    raise
                log.info("Model stream aborted", turn=self.turn, error=str(e))
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

            if self._aborted(options):
                break

            self.state = LoopState.AWAITING_HISTORY_COMMIT
            ok, response = await self._deferred(result.response, options)
            if not ok:
                break
            ok, finish_reason = await self._deferred(result.finish_reason, options)
            if not ok:
                break

            messages = response.messages if isinstance(response, ModelResponse) else list(response)
            history.extend(messages)
            log.debug(
                "Turn committed",
                turn=self.turn,
                finish_reason=finish_reason,
                messages=len(messages),
            )

            if finish_reason == "tool-calls":
                self.state = LoopState.AWAITING_STREAM

        self.state = LoopState.DONE


async def run_agent(history: list[Message], options: AgentOptions) -> AsyncIterator[AgentEvent]:
    """Convenience wrapper: run a fresh ``AgentLoop``."""
    async for event in AgentLoop().run(history, options):
        yield event


__all__ = [
    "AgentLoop",
    "AgentOptions",
    "LoopState",
    "translate_chunk",
    "run_agent",
    "DEFAULT_MAX_TURNS",
]
