"""Write tool for writing file contents."""

import asyncio
from pathlib import Path
from typing import Any

from codeloop.logging import get_logger
from codeloop.tools.registry import Tool, ToolContext, ToolResult

log = get_logger(__name__)


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


class WriteTool(Tool):
    """Write content to files."""

    name = "write_file"
    description = (
        "Write content to a file. Creates the file if it doesn't exist, or overwrites it. "
        "Parent directories are created automatically."
    )
    dangerous = True
    parameters = {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Absolute or relative path to the file to write",
            },
            "content": {
                "type": "string",
                "description": "The content to write to the file",
            },
        },
        "required": ["file_path", "content"],
    }

    async def execute(self, ctx: ToolContext, file_path: str, content: str, **kwargs: Any) -> ToolResult:
        """Write content to a file.

        Args:
            ctx: Invocation context
            file_path: Path to file, relative to ``ctx.cwd``
            content: Content to write

        Returns:
            ToolResult with status
        """
        try:
            path = ctx.resolve_path(file_path)
            await asyncio.to_thread(_write_text, path, content)

            return ToolResult(
                success=True,
                output=f"Wrote {len(content)} chars to {path}",
                data={
                    "file_path": str(path),
                    "bytes_written": len(content.encode("utf-8")),
                    "lines_written": len(content.split("\n")),
                },
            )

        except Exception as e:
            log.error("Write failed", path=file_path, error=str(e))
            return ToolResult(
                success=False,
                error=str(e),
            )
