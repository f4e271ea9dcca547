"""Tool-use hooks: ordered predicates that can veto a tool call.

Hooks run strictly in registration order. ``HookManager.run`` returns the
first denial it meets and allows when no hook objects (including when no
hook is registered for the event at all), so optional policies can be layered
without the agent loop knowing about them.
"""

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from codeloop.logging import get_logger

log = get_logger(__name__)

__all__ = [
    "HookEvent",
    "HookContext",
    "HookDecision",
    "HookHandler",
    "Hook",
    "HookManager",
    "resolve_decision",
]


class HookEvent(Enum):
    """Points in a tool call where hooks are evaluated."""

    PRE_TOOL_USE = "pre-tool-use"
    POST_TOOL_USE = "post-tool-use"


@dataclass(frozen=True)
class HookContext:
    """What a hook sees about the tool call under evaluation."""

    tool_name: str
    input: dict[str, Any]


@dataclass(frozen=True)
class HookDecision:
    """Allow, or deny with a reason."""

    allowed: bool
    reason: str | None = None

    @classmethod
    def allow(cls) -> "HookDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "HookDecision":
        return cls(allowed=False, reason=reason)


HookHandler = Callable[[HookContext], "HookDecision | Awaitable[HookDecision]"]


@dataclass(frozen=True)
class Hook:
    """A named handler bound to one event."""

    event: HookEvent
    name: str
    handler: HookHandler


async def resolve_decision(handler: HookHandler, ctx: HookContext) -> HookDecision:
    """Call a sync or async handler and return its decision."""
    decision = handler(ctx)
    if inspect.isawaitable(decision):
        decision = await decision
    return decision


class HookManager:
    """Insertion-ordered hook list, evaluated sequentially per event."""

    def __init__(self) -> None:
        self._hooks: list[Hook] = []

    def register(self, hook: Hook) -> None:
        """Add a hook. Registration happens during setup only."""
        log.debug("Registering hook", hook=hook.name, hook_event=hook.event.value)
        self._hooks.append(hook)

    def hooks_for(self, event: HookEvent) -> list[Hook]:
        return [hook for hook in self._hooks if hook.event == event]

    async def run(self, event: HookEvent, ctx: HookContext) -> HookDecision:
        """Evaluate hooks for ``event`` one at a time; first denial wins."""
        for hook in self.hooks_for(event):
            decision = await resolve_decision(hook.handler, ctx)
            if not decision.allowed:
                log.info(
                    "Hook denied tool use",
                    hook=hook.name,
                    tool=ctx.tool_name,
                    reason=decision.reason,
                )
                return decision
        return HookDecision.allow()

    def handler_for(self, event: HookEvent) -> Callable[[HookContext], Awaitable[HookDecision]]:
        """Bind ``run`` to one event, for use as the loop's pre-tool-use handler."""

        async def _handler(ctx: HookContext) -> HookDecision:
            return await self.run(event, ctx)

        return _handler
