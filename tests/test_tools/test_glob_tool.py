from pathlib import Path

import pytest

from codeloop.tools.glob import GlobTool, find_files
from codeloop.tools.registry import ToolContext


def _make_tree(root: Path) -> None:
    (root / "src" / "pkg").mkdir(parents=True)
    (root / "node_modules" / "dep").mkdir(parents=True)
    (root / "src" / "b.py").write_text("", encoding="utf-8")
    (root / "src" / "pkg" / "a.py").write_text("", encoding="utf-8")
    (root / "node_modules" / "dep" / "x.py").write_text("", encoding="utf-8")
    (root / "README.md").write_text("", encoding="utf-8")


def test_find_files_sorted_and_skips_node_modules(tmp_path: Path):
    _make_tree(tmp_path)

    assert find_files(tmp_path, "**/*.py") == ["src/b.py", "src/pkg/a.py"]


@pytest.mark.asyncio
async def test_glob_tool_lists_matches(tmp_path: Path):
    _make_tree(tmp_path)

    result = await GlobTool().execute(ToolContext(cwd=tmp_path), pattern="**/*.py")

    assert result.success is True
    assert result.data["count"] == 2
    assert result.output.startswith("2 files found:")


@pytest.mark.asyncio
async def test_glob_tool_no_matches(tmp_path: Path):
    result = await GlobTool().execute(ToolContext(cwd=tmp_path), pattern="**/*.rs")

    assert result.success is True
    assert result.output == "No files matched the pattern."
    assert result.data["files"] == []
