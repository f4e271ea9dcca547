from pathlib import Path

import pytest

from codeloop.tools.edit import EditTool
from codeloop.tools.registry import ToolContext


@pytest.mark.asyncio
async def test_edit_tool_replaces_unique_match(tmp_path: Path):
    target = tmp_path / "code.py"
    target.write_text("a = 1\nb = 2\nc = 3\n", encoding="utf-8")

    result = await EditTool().execute(
        ToolContext(cwd=tmp_path),
        file_path="code.py",
        old_string="b = 2",
        new_string="b = 20\nb2 = 21",
    )

    assert result.success is True
    assert target.read_text(encoding="utf-8") == "a = 1\nb = 20\nb2 = 21\nc = 3\n"
    assert result.data["edit_line"] == 2
    assert result.data["lines_removed"] == 1
    assert result.data["lines_added"] == 2


@pytest.mark.asyncio
async def test_edit_tool_rejects_missing_string(tmp_path: Path):
    (tmp_path / "code.py").write_text("x = 1\n", encoding="utf-8")

    result = await EditTool().execute(
        ToolContext(cwd=tmp_path),
        file_path="code.py",
        old_string="y = 2",
        new_string="y = 3",
    )

    assert result.success is False
    assert result.error == "old_string not found in file"


@pytest.mark.asyncio
async def test_edit_tool_rejects_ambiguous_string(tmp_path: Path):
    target = tmp_path / "code.py"
    target.write_text("x = 1\nx = 1\n", encoding="utf-8")

    result = await EditTool().execute(
        ToolContext(cwd=tmp_path),
        file_path="code.py",
        old_string="x = 1",
        new_string="x = 2",
    )

    assert result.success is False
    assert "found 2 times" in result.error
    assert target.read_text(encoding="utf-8") == "x = 1\nx = 1\n"
