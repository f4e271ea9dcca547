"""Tool registry, base tool class and the tool call contract."""

import asyncio
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator

from pydantic import BaseModel, model_validator

from codeloop.exceptions import ToolExecutionError, ToolNotFoundError
from codeloop.logging import get_logger

log = get_logger(__name__)


class ToolResult(BaseModel):
    """Result from tool execution.

    ``output`` is a terse human-readable summary; ``data`` is the structured
    payload surfaced to the model instead of ``output`` when present.
    """

    success: bool = True
    output: str = ""
    data: dict[str, Any] | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = (self.output or "").strip()
            self.error = fallback or "Tool execution failed"
        return self


@dataclass
class ToolContext:
    """Per-invocation context handed to a tool.

    Created fresh for every call; tools must not keep a reference to it.
    """

    cwd: Path
    env: dict[str, str] = field(default_factory=dict)
    abort_event: asyncio.Event | None = None
    on_output: Callable[[str], None] | None = None

    def resolve_path(self, path: str | Path) -> Path:
        """Resolve a tool path argument against the context working directory."""
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.cwd / candidate
        return candidate.resolve()

    def emit(self, chunk: str) -> None:
        """Forward an incremental output chunk to the sink, if any."""
        if chunk and self.on_output is not None:
            self.on_output(chunk)


class Tool(ABC):
    """Base class for all tools."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {}
    dangerous: bool = False

    @abstractmethod
    async def execute(self, ctx: ToolContext, **kwargs: Any) -> ToolResult:
        """Execute the tool.

        Args:
            ctx: Invocation context (cwd, env, abort event, output sink)
            **kwargs: Tool-specific arguments

        Returns:
            ToolResult with success status and output
        """
        pass

    def get_definition(self) -> dict[str, Any]:
        """Get the tool definition for LLM.

        Returns:
            OpenAI function-style definition
        """
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Validate tool arguments against schema.

        Args:
            arguments: Arguments to validate

        Raises:
            ToolExecutionError if a required argument is missing
        """
        required = self.parameters.get("required", [])
        for name in required:
            if name not in arguments:
                raise ToolExecutionError(
                    self.name,
                    f"Missing required argument: {name}",
                )


class ToolRegistry:
    """Name-keyed registry of tools, built once at startup."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Args:
            tool: Tool instance to register
        """
        if not tool.name:
            raise ValueError("Tool must have a name")

        log.debug("Registering tool", tool=tool.name, dangerous=tool.dangerous)
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def find(self, name: str) -> Tool | None:
        """Look up a tool by name, returning None when it is not registered."""
        return self._tools.get(name)

    def is_dangerous(self, name: str) -> bool:
        """Whether the named tool is flagged as requiring approval."""
        tool = self.find(name)
        return bool(tool is not None and tool.dangerous)

    def list_tools(self) -> list[str]:
        """List all registered tool names in registration order."""
        return list(self._tools.keys())

    def get_definitions(self) -> list[dict[str, Any]]:
        """Get all tool definitions for LLM."""
        return [tool.get_definition() for tool in self._tools.values()]

    def __iter__(self) -> Iterator[Tool]:
        return iter(list(self._tools.values()))

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools


def snapshot_environment() -> dict[str, str]:
    """Copy the process environment once, for handing to tools via ToolContext."""
    env = os.environ.copy()
    env["PATH"] = os.environ.get("PATH", "/usr/local/bin:/usr/bin:/bin")
    return env
