from codeloop.events import (
    INITIAL_PROGRESS,
    FinishEvent,
    ProgressState,
    TextDeltaEvent,
    TokenUsage,
    ToolCallEvent,
    ToolResultEvent,
    TurnStartEvent,
    progress_reducer,
)
from codeloop.tools.registry import ToolResult


def test_turn_start_resets_to_new_turn():
    state = ProgressState(current_turn=1, max_turns=5, active_tool="bash")

    state = progress_reducer(state, TurnStartEvent(turn=2, max_turns=5))

    assert state == ProgressState(current_turn=2, max_turns=5, active_tool=None)


def test_tool_call_sets_and_result_clears_active_tool():
    state = progress_reducer(INITIAL_PROGRESS, TurnStartEvent(turn=1, max_turns=3))
    state = progress_reducer(state, ToolCallEvent(tool_name="grep", input={}, tool_call_id="c1"))

    assert state.active_tool == "grep"

    state = progress_reducer(
        state,
        ToolResultEvent(tool_name="grep", tool_call_id="c1", result=ToolResult(success=True)),
    )

    assert state == ProgressState(current_turn=1, max_turns=3, active_tool=None)


def test_other_events_leave_state_unchanged():
    state = ProgressState(current_turn=3, max_turns=4, active_tool="bash")

    assert progress_reducer(state, TextDeltaEvent(text="x")) is state
    assert progress_reducer(state, FinishEvent(usage=TokenUsage())) is state
