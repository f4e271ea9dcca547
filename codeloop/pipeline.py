"""Tool execution pipeline: hook check, argument validation, context, run.

The pipeline turns every registered tool into a ``ToolBinding`` the model
stream can call with ``(input, call_id)``. Each call consults the pre-tool-use
handler, builds a fresh ``ToolContext`` bound to the conversation's cwd, env,
abort event and the output sink for that call id, and normalizes the result
for the model.
"""

import asyncio
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from codeloop.hooks import HookContext, HookDecision, resolve_decision
from codeloop.llm.streaming import ToolBinding
from codeloop.logging import get_logger
from codeloop.tools.registry import Tool, ToolContext, ToolRegistry, ToolResult

log = get_logger(__name__)

PreToolUseHandler = Callable[[HookContext], "HookDecision | Awaitable[HookDecision]"]


@runtime_checkable
class ToolOutputSink(Protocol):
    """Multi-shot channel for incremental tool output, keyed by call id."""

    def write(self, call_id: str, chunk: str) -> None:
        ...

    def close(self, call_id: str) -> None:
        ...


@dataclass(frozen=True)
class ToolOutputChunk:
    call_id: str
    text: str = ""
    final: bool = False


class QueueOutputSink:
    """Sink that puts chunks on an ``asyncio.Queue``.

    Closing a call id enqueues a ``final`` marker so consumers can tell when a
    call's output is complete.
    """

    def __init__(self, queue: asyncio.Queue[ToolOutputChunk] | None = None):
        self.queue: asyncio.Queue[ToolOutputChunk] = queue or asyncio.Queue()
        self._closed: set[str] = set()

    def write(self, call_id: str, chunk: str) -> None:
        if call_id in self._closed:
            return
        self.queue.put_nowait(ToolOutputChunk(call_id=call_id, text=chunk))

    def close(self, call_id: str) -> None:
        if call_id in self._closed:
            return
        self._closed.add(call_id)
        self.queue.put_nowait(ToolOutputChunk(call_id=call_id, final=True))

    def drain(self) -> list[ToolOutputChunk]:
        """Pop everything currently queued."""
        items = []
        while not self.queue.empty():
            items.append(self.queue.get_nowait())
        return items


class CallbackOutputSink:
    """Adapts a plain ``(call_id, chunk)`` callable to the sink interface."""

    def __init__(self, callback: Callable[[str, str], None]):
        self.callback = callback

    def write(self, call_id: str, chunk: str) -> None:
        self.callback(call_id, chunk)

    def close(self, call_id: str) -> None:
        return None


def as_output_sink(
    sink: "ToolOutputSink | Callable[[str, str], None] | None",
) -> ToolOutputSink | None:
    if sink is None or isinstance(sink, ToolOutputSink):
        return sink
    return CallbackOutputSink(sink)


def to_model_output(result: ToolResult) -> Any:
    """What the model sees: structured data when present, else the whole result."""
    if result.data is not None:
        return result.data
    return result.model_dump(exclude_none=True)


class ToolExecutionPipeline:
    """Runs tools on behalf of the model stream."""

    def __init__(
        self,
        tools: ToolRegistry,
        cwd: str | Path,
        env: dict[str, str] | None = None,
        on_pre_tool_use: PreToolUseHandler | None = None,
        abort_event: asyncio.Event | None = None,
        output_sink: "ToolOutputSink | Callable[[str, str], None] | None" = None,
    ):
        self.tools = tools
        self.cwd = Path(cwd)
        self.env = dict(env or {})
        self.on_pre_tool_use = on_pre_tool_use
        self.abort_event = abort_event
        self.output_sink = as_output_sink(output_sink)

    async def run(self, tool: Tool, input: dict[str, Any], call_id: str) -> ToolResult:
        """Run one tool call and return its raw result.

        Raises:
            ToolExecutionError: when a required argument is missing
        """
        if self.on_pre_tool_use is not None:
            decision = await resolve_decision(
                self.on_pre_tool_use,
                HookContext(tool_name=tool.name, input=input),
            )
            if not decision.allowed:
                log.info("Tool call blocked", tool=tool.name, call_id=call_id, reason=decision.reason)
                return ToolResult(success=False, output="", error=f"Blocked: {decision.reason}")

        tool.validate_arguments(input)

        ctx = ToolContext(
            cwd=self.cwd,
            env=self.env,
            abort_event=self.abort_event,
            on_output=partial(self.output_sink.write, call_id) if self.output_sink else None,
        )
        log.debug("Executing tool", tool=tool.name, call_id=call_id)
        try:
            result = await tool.execute(ctx, **input)
        finally:
            if self.output_sink is not None:
                self.output_sink.close(call_id)

        if not result.success:
            log.info("Tool returned failure", tool=tool.name, call_id=call_id, error=result.error)
        return result

    async def execute(self, tool: Tool, input: dict[str, Any], call_id: str) -> Any:
        return to_model_output(await self.run(tool, input, call_id))

    def bind(self, tool: Tool) -> ToolBinding:
        return ToolBinding(
            name=tool.name,
            description=tool.description,
            parameters=tool.parameters,
            execute=partial(self.execute, tool),
        )

    def build_bindings(self) -> dict[str, ToolBinding]:
        """One binding per registered tool, keyed by tool name."""
        return {tool.name: self.bind(tool) for tool in self.tools}
