"""Glob tool for finding files by pattern."""

import asyncio
import glob
from pathlib import Path
from typing import Any

from codeloop.logging import get_logger
from codeloop.tools.registry import Tool, ToolContext, ToolResult

log = get_logger(__name__)

IGNORED_DIR_NAMES = frozenset({"node_modules", ".git"})


def find_files(root: Path, pattern: str) -> list[str]:
    """Return sorted root-relative files matching ``pattern``.

    Hidden entries and anything under ``node_modules`` or ``.git`` are skipped.
    """
    matches = glob.glob(pattern, root_dir=str(root), recursive=True)
    files: list[str] = []
    for match in matches:
        relative = Path(match)
        if any(part in IGNORED_DIR_NAMES for part in relative.parts):
            continue
        if not (root / relative).is_file():
            continue
        files.append(relative.as_posix())
    return sorted(files)


class GlobTool(Tool):
    """Find files by pattern."""

    name = "glob"
    description = (
        "Find files matching a glob pattern. Returns a list of matching file paths. "
        "Useful for discovering project structure and finding files by name pattern."
    )
    parameters = {
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": "Glob pattern to match files (e.g. '**/*.py', 'src/**/*.ts')",
            },
            "path": {
                "type": "string",
                "description": "Directory to search in. Defaults to the working directory.",
            },
        },
        "required": ["pattern"],
    }

    async def execute(
        self,
        ctx: ToolContext,
        pattern: str,
        path: str | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        """Find files matching pattern.

        Args:
            ctx: Invocation context
            pattern: Glob pattern
            path: Optional directory to search from

        Returns:
            ToolResult with matching files
        """
        try:
            root = ctx.resolve_path(path) if path else ctx.cwd
            matches = await asyncio.to_thread(find_files, root, pattern)

            if not matches:
                return ToolResult(
                    success=True,
                    output="No files matched the pattern.",
                    data={"files": [], "count": 0, "pattern": pattern},
                )

            return ToolResult(
                success=True,
                output=f"{len(matches)} files found:\n" + "\n".join(matches),
                data={
                    "files": matches,
                    "count": len(matches),
                    "pattern": pattern,
                    "search_dir": str(root),
                },
            )

        except Exception as e:
            log.error("Glob failed", pattern=pattern, error=str(e))
            return ToolResult(
                success=False,
                error=str(e),
            )
