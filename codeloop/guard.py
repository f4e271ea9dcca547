"""Dangerous-command guard: a pre-tool-use hook asking for human approval."""

import inspect
import re
from typing import Any, Awaitable, Callable

from codeloop.hooks import Hook, HookContext, HookDecision, HookEvent
from codeloop.logging import get_logger
from codeloop.tools.registry import ToolRegistry

log = get_logger(__name__)

SHELL_TOOL_NAME = "bash"

# Commands risky enough to be called out even though bash always needs approval.
DANGEROUS_COMMAND_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\brm\s+(-[rf]+\s+)?/"),
    re.compile(r"\bgit\s+push\s+--force"),
    re.compile(r"\bgit\s+reset\s+--hard"),
    re.compile(r"\bdrop\s+(table|database)", re.IGNORECASE),
    re.compile(r"\bsudo\b"),
    re.compile(r">\s*/dev/sd"),
)

DENIED_DANGEROUS_COMMAND = "user denied dangerous command"
DENIED_TOOL_USE = "user denied tool use"

ApprovalCallback = Callable[[str, dict[str, Any]], "bool | Awaitable[bool]"]


def _compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile regex pattern with literal fallback for invalid regex input."""
    try:
        return re.compile(pattern)
    except re.error:
        return re.compile(re.escape(pattern))


def match_dangerous_command(
    command: str,
    patterns: tuple[re.Pattern[str], ...] = DANGEROUS_COMMAND_PATTERNS,
) -> str | None:
    """Return the first risk pattern matching ``command``, or None."""
    for pattern in patterns:
        if pattern.search(command):
            return pattern.pattern
    return None


class DangerousCommandGuard:
    """Approval policy for tools flagged ``dangerous`` in the registry.

    Non-dangerous tools are always allowed. Dangerous ones are allowed only
    when ``request_approval`` says so; bash commands matching a risk pattern
    get a distinct denial reason.
    """

    def __init__(
        self,
        tools: ToolRegistry,
        request_approval: ApprovalCallback,
        extra_patterns: list[str] | None = None,
    ):
        self.tools = tools
        self.request_approval = request_approval
        compiled = [_compile_pattern(p) for p in (extra_patterns or []) if str(p).strip()]
        self.patterns = DANGEROUS_COMMAND_PATTERNS + tuple(compiled)

    async def _ask(self, ctx: HookContext) -> bool:
        approved = self.request_approval(ctx.tool_name, ctx.input)
        if inspect.isawaitable(approved):
            approved = await approved
        return bool(approved)

    async def __call__(self, ctx: HookContext) -> HookDecision:
        if not self.tools.is_dangerous(ctx.tool_name):
            return HookDecision.allow()

        command = ctx.input.get("command")
        if ctx.tool_name == SHELL_TOOL_NAME and isinstance(command, str):
            matched = match_dangerous_command(command, self.patterns)
            if matched is not None:
                log.info("Dangerous command needs approval", command=command, pattern=matched)
                if not await self._ask(ctx):
                    return HookDecision.deny(DENIED_DANGEROUS_COMMAND)
                return HookDecision.allow()

        if not await self._ask(ctx):
            return HookDecision.deny(DENIED_TOOL_USE)
        return HookDecision.allow()

    def as_hook(self) -> Hook:
        return Hook(
            event=HookEvent.PRE_TOOL_USE,
            name="dangerous-command-guard",
            handler=self,
        )


def create_dangerous_command_guard(
    tools: ToolRegistry,
    request_approval: ApprovalCallback,
    extra_patterns: list[str] | None = None,
) -> Hook:
    """Build the guard as a ``pre-tool-use`` hook."""
    return DangerousCommandGuard(tools, request_approval, extra_patterns).as_hook()
