from pathlib import Path

import pytest

from codeloop.tools.read import ReadTool
from codeloop.tools.registry import ToolContext


@pytest.mark.asyncio
async def test_read_tool_numbers_lines(tmp_path: Path):
    (tmp_path / "sample.txt").write_text("alpha\nbeta", encoding="utf-8")

    result = await ReadTool().execute(ToolContext(cwd=tmp_path), file_path="sample.txt")

    assert result.success is True
    assert result.output == "    1 | alpha\n    2 | beta"
    assert result.data["content"] == "alpha\nbeta"
    assert result.data["total_lines"] == 2
    assert result.data["truncated"] is False
    assert result.data["file_path"] == str((tmp_path / "sample.txt").resolve())


@pytest.mark.asyncio
async def test_read_tool_offset_and_limit_are_one_based(tmp_path: Path):
    (tmp_path / "sample.txt").write_text("l1\nl2\nl3\nl4\nl5", encoding="utf-8")

    result = await ReadTool().execute(
        ToolContext(cwd=tmp_path),
        file_path="sample.txt",
        offset=2,
        limit=2,
    )

    assert result.data["content"] == "l2\nl3"
    assert result.data["start_line"] == 2
    assert result.data["end_line"] == 3
    assert result.data["truncated"] is True
    assert result.output.splitlines()[0] == "    2 | l2"


@pytest.mark.asyncio
async def test_read_tool_missing_file_fails(tmp_path: Path):
    result = await ReadTool().execute(ToolContext(cwd=tmp_path), file_path="missing.txt")

    assert result.success is False
    assert result.error
