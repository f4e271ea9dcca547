"""Agent events yielded by the loop, and the progress reducer over them."""

from dataclasses import dataclass, replace
from typing import Any, Union

from codeloop.tools.registry import ToolResult


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_counts(cls, input_tokens: int | None, output_tokens: int | None) -> "TokenUsage":
        """Missing counts are treated as 0; the total is always recomputed."""
        inp = input_tokens or 0
        out = output_tokens or 0
        return cls(input_tokens=inp, output_tokens=out, total_tokens=inp + out)


@dataclass(frozen=True)
class TurnStartEvent:
    turn: int
    max_turns: int
    type: str = "turn-start"


@dataclass(frozen=True)
class TextDeltaEvent:
    text: str
    type: str = "text-delta"


@dataclass(frozen=True)
class ToolCallEvent:
    tool_name: str
    input: dict[str, Any]
    tool_call_id: str
    type: str = "tool-call"


@dataclass(frozen=True)
class ToolResultEvent:
    tool_name: str
    tool_call_id: str
    result: ToolResult
    type: str = "tool-result"


@dataclass(frozen=True)
class FinishEvent:
    usage: TokenUsage
    type: str = "finish"


@dataclass(frozen=True)
class ErrorEvent:
    error: BaseException
    type: str = "error"


AgentEvent = Union[
    TurnStartEvent,
    TextDeltaEvent,
    ToolCallEvent,
    ToolResultEvent,
    FinishEvent,
    ErrorEvent,
]


@dataclass(frozen=True)
class ProgressState:
    current_turn: int = 0
    max_turns: int = 0
    active_tool: str | None = None


INITIAL_PROGRESS = ProgressState()


def progress_reducer(state: ProgressState, event: AgentEvent) -> ProgressState:
    """Fold one event into the progress state."""
    if isinstance(event, TurnStartEvent):
        return ProgressState(current_turn=event.turn, max_turns=event.max_turns, active_tool=None)
    if isinstance(event, ToolCallEvent):
        return replace(state, active_tool=event.tool_name)
    if isinstance(event, ToolResultEvent):
        return replace(state, active_tool=None)
    return state


__all__ = [
    "TokenUsage",
    "TurnStartEvent",
    "TextDeltaEvent",
    "ToolCallEvent",
    "ToolResultEvent",
    "FinishEvent",
    "ErrorEvent",
    "AgentEvent",
    "ProgressState",
    "INITIAL_PROGRESS",
    "progress_reducer",
]
