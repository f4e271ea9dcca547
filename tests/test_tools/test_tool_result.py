from codeloop.tools.registry import ToolResult


def test_failed_result_takes_output_as_error():
    result = ToolResult(success=False, output="boom")

    assert result.error == "boom"


def test_failed_result_without_text_gets_default_error():
    result = ToolResult(success=False)

    assert result.error == "Tool execution failed"


def test_explicit_error_is_kept():
    result = ToolResult(success=False, output="details", error="Blocked: nope")

    assert result.error == "Blocked: nope"
    assert result.output == "details"


def test_successful_result_has_no_error():
    result = ToolResult(success=True, output="ok")

    assert result.error is None
    assert result.model_dump(exclude_none=True) == {"success": True, "output": "ok"}
