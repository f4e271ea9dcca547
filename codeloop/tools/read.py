"""Read tool for reading file contents."""

import asyncio
from typing import Any

from codeloop.logging import get_logger
from codeloop.tools.registry import Tool, ToolContext, ToolResult

log = get_logger(__name__)


class ReadTool(Tool):
    """Read file contents."""

    name = "read_file"
    description = (
        "Read the contents of a file. Returns the file contents with line numbers. "
        "Use offset and limit for large files."
    )
    parameters = {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Absolute or relative path to the file to read",
            },
            "offset": {
                "type": "number",
                "description": "Line number to start reading from (1-based)",
            },
            "limit": {
                "type": "number",
                "description": "Maximum number of lines to read",
            },
        },
        "required": ["file_path"],
    }

    async def execute(
        self,
        ctx: ToolContext,
        file_path: str,
        offset: int | None = None,
        limit: int | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        """Read a file.

        Args:
            ctx: Invocation context
            file_path: Path to file, relative to ``ctx.cwd``
            offset: Optional 1-based first line
            limit: Optional line limit

        Returns:
            ToolResult with numbered lines in ``output`` and raw content in ``data``
        """
        try:
            path = ctx.resolve_path(file_path)
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
            size_bytes = path.stat().st_size

            lines = content.split("\n")
            total_lines = len(lines)
            start = max(int(offset or 1), 1) - 1
            count = int(limit) if limit is not None else total_lines
            selected = lines[start:start + count]

            numbered = "\n".join(
                f"{start + i + 1:>5} | {line}" for i, line in enumerate(selected)
            )

            return ToolResult(
                success=True,
                output=numbered,
                data={
                    "file_path": str(path),
                    "content": "\n".join(selected),
                    "start_line": start + 1,
                    "end_line": start + len(selected),
                    "total_lines": total_lines,
                    "size_bytes": size_bytes,
                    "truncated": start + count < total_lines,
                },
            )

        except Exception as e:
            log.error("Read failed", path=file_path, error=str(e))
            return ToolResult(
                success=False,
                error=str(e),
            )
