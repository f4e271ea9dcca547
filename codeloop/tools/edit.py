"""Edit tool for exact-match string replacement."""

import asyncio
from typing import Any

from codeloop.logging import get_logger
from codeloop.tools.registry import Tool, ToolContext, ToolResult

log = get_logger(__name__)


class EditTool(Tool):
    """Replace a unique string in a file."""

    name = "edit_file"
    description = (
        "Edit a file by replacing an exact string match. The old_string must appear exactly "
        "once in the file. Use this for surgical edits rather than rewriting entire files."
    )
    dangerous = True
    parameters = {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Path to the file to edit",
            },
            "old_string": {
                "type": "string",
                "description": "The exact string to find and replace",
            },
            "new_string": {
                "type": "string",
                "description": "The replacement string",
            },
        },
        "required": ["file_path", "old_string", "new_string"],
    }

    async def execute(
        self,
        ctx: ToolContext,
        file_path: str,
        old_string: str,
        new_string: str,
        **kwargs: Any,
    ) -> ToolResult:
        try:
            path = ctx.resolve_path(file_path)
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")

            count = content.count(old_string) if old_string else 0
            if count == 0:
                return ToolResult(success=False, error="old_string not found in file")
            if count > 1:
                return ToolResult(
                    success=False,
                    error=f"old_string found {count} times; it must be unique. Provide more context.",
                )

            index = content.index(old_string)
            new_content = content[:index] + new_string + content[index + len(old_string):]
            await asyncio.to_thread(path.write_text, new_content, encoding="utf-8")

            return ToolResult(
                success=True,
                output=f"Edited {path}",
                data={
                    "file_path": str(path),
                    "edit_line": content[:index].count("\n") + 1,
                    "lines_removed": len(old_string.split("\n")),
                    "lines_added": len(new_string.split("\n")),
                    "total_lines": len(new_content.split("\n")),
                },
            )

        except Exception as e:
            log.error("Edit failed", path=file_path, error=str(e))
            return ToolResult(
                success=False,
                error=str(e),
            )
