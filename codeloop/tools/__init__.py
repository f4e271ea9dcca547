"""Tools package for codeloop."""

from codeloop.config import Config, get_config
from codeloop.tools.edit import EditTool
from codeloop.tools.glob import GlobTool
from codeloop.tools.grep import GrepTool
from codeloop.tools.read import ReadTool
from codeloop.tools.registry import (
    Tool,
    ToolContext,
    ToolRegistry,
    ToolResult,
    snapshot_environment,
)
from codeloop.tools.shell import BashTool
from codeloop.tools.tree import TreeTool
from codeloop.tools.write import WriteTool


def create_tool_registry(config: Config | None = None) -> ToolRegistry:
    """Build the startup tool registry, honouring ``tools.enabled``."""
    cfg = config or get_config()
    enabled = set(cfg.tools.enabled)
    all_tools: list[Tool] = [
        ReadTool(),
        GlobTool(),
        GrepTool(),
        TreeTool(),
        WriteTool(),
        EditTool(),
        BashTool(default_timeout_ms=cfg.tools.bash.timeout_ms),
    ]

    registry = ToolRegistry()
    for tool in all_tools:
        if tool.name in enabled:
            registry.register(tool)
    return registry


__all__ = [
    "Tool",
    "ToolContext",
    "ToolRegistry",
    "ToolResult",
    "snapshot_environment",
    "create_tool_registry",
    "BashTool",
    "ReadTool",
    "WriteTool",
    "EditTool",
    "GlobTool",
    "GrepTool",
    "TreeTool",
]
