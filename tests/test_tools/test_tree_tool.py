from pathlib import Path

import pytest

from codeloop.tools.registry import ToolContext
from codeloop.tools.tree import TreeTool, format_size, parse_gitignore


def test_format_size_units():
    assert format_size(12) == "12 B"
    assert format_size(2048) == "2.0 KB"
    assert format_size(3 * 1024 * 1024) == "3.0 MB"


def test_parse_gitignore_drops_comments(tmp_path: Path):
    (tmp_path / ".gitignore").write_text("# comment\n\nbuild/\n*.log\n", encoding="utf-8")

    assert parse_gitignore(tmp_path) == ["build/", "*.log"]


@pytest.mark.asyncio
async def test_tree_tool_renders_and_respects_gitignore(tmp_path: Path):
    (tmp_path / ".gitignore").write_text("build/\n*.log\n", encoding="utf-8")
    (tmp_path / "src").mkdir()
    (tmp_path / "build").mkdir()
    (tmp_path / "src" / "app.py").write_text("x" * 10, encoding="utf-8")
    (tmp_path / "build" / "out.bin").write_text("y", encoding="utf-8")
    (tmp_path / "debug.log").write_text("z", encoding="utf-8")
    (tmp_path / "README.md").write_text("hello", encoding="utf-8")

    result = await TreeTool().execute(ToolContext(cwd=tmp_path))

    assert result.success is True
    lines = result.output.splitlines()
    assert lines[0] == f"{tmp_path.name}/"
    assert lines[1] == "├── src/"
    assert lines[2] == "│   └── app.py (10 B)"
    assert lines[3] == "└── README.md (5 B)"
    assert "build" not in result.output
    assert "debug.log" not in result.output
    assert result.data["total_files"] == 2
    assert result.data["total_dirs"] == 1
    assert result.output.endswith("2 files, 1 directories, 15 B")


@pytest.mark.asyncio
async def test_tree_tool_empty_directory(tmp_path: Path):
    result = await TreeTool().execute(ToolContext(cwd=tmp_path))

    assert result.output == f"{tmp_path.name}/ (empty)"


@pytest.mark.asyncio
async def test_tree_tool_missing_directory_fails(tmp_path: Path):
    result = await TreeTool().execute(ToolContext(cwd=tmp_path), path="nope")

    assert result.success is False
    assert "Directory not found" in result.error
