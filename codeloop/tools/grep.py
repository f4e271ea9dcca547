"""Grep tool for regex search over file contents."""

import asyncio
import os
import re
from pathlib import Path
from typing import Any

from codeloop.logging import get_logger
from codeloop.tools.glob import find_files
from codeloop.tools.registry import Tool, ToolContext, ToolResult

log = get_logger(__name__)

MAX_RESULTS = 50


def _search(root: Path, cwd: Path, regex: re.Pattern[str], file_pattern: str) -> tuple[list[dict[str, Any]], int]:
    files = [f for f in find_files(root, file_pattern) if not f.endswith(".lock")]
    matches: list[dict[str, Any]] = []
    for relative in files:
        if len(matches) >= MAX_RESULTS:
            break
        full_path = root / relative
        try:
            content = full_path.read_text(encoding="utf-8")
        except (UnicodeDecodeError, OSError):
            continue
        for number, line in enumerate(content.split("\n"), start=1):
            if regex.search(line):
                matches.append({
                    "file": os.path.relpath(full_path, cwd),
                    "line": number,
                    "content": line.strip(),
                })
                if len(matches) >= MAX_RESULTS:
                    break
    return matches, len(files)


class GrepTool(Tool):
    """Search file contents."""

    name = "grep"
    description = (
        "Search file contents using a regex pattern. Returns matching lines with file paths "
        "and line numbers. Useful for finding where functions, variables, or patterns are used."
    )
    parameters = {
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": "Regex pattern to search for in file contents",
            },
            "file_pattern": {
                "type": "string",
                "description": "Glob to filter files (e.g. '**/*.py'). Defaults to all files.",
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
        file_pattern: str | None = None,
        path: str | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        try:
            regex = re.compile(pattern, re.IGNORECASE)
            root = ctx.resolve_path(path) if path else ctx.cwd
            matches, files_searched = await asyncio.to_thread(
                _search, root, ctx.cwd, regex, file_pattern or "**/*"
            )

            if not matches:
                return ToolResult(
                    success=True,
                    output="No matches found.",
                    data={"matches": [], "count": 0, "pattern": pattern, "truncated": False},
                )

            truncated = len(matches) >= MAX_RESULTS
            lines = [f"{m['file']}:{m['line']}: {m['content']}" for m in matches]
            header = f"{len(matches)} matches{' (truncated)' if truncated else ''}:"
            return ToolResult(
                success=True,
                output=header + "\n" + "\n".join(lines),
                data={
                    "matches": matches,
                    "count": len(matches),
                    "pattern": pattern,
                    "truncated": truncated,
                    "files_searched": files_searched,
                },
            )

        except Exception as e:
            log.error("Grep failed", pattern=pattern, error=str(e))
            return ToolResult(
                success=False,
                error=str(e),
            )
