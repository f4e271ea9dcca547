import pytest

from codeloop.hooks import Hook, HookContext, HookDecision, HookEvent, HookManager


def _ctx() -> HookContext:
    return HookContext(tool_name="bash", input={"command": "ls"})


@pytest.mark.asyncio
async def test_no_hooks_allows():
    decision = await HookManager().run(HookEvent.PRE_TOOL_USE, _ctx())

    assert decision.allowed is True


@pytest.mark.asyncio
async def test_first_denial_wins_and_later_hooks_are_skipped():
    calls: list[str] = []

    def allow(ctx):
        calls.append("allow")
        return HookDecision.allow()

    async def deny_first(ctx):
        calls.append("first")
        return HookDecision.deny("first reason")

    def deny_second(ctx):
        calls.append("second")
        return HookDecision.deny("second reason")

    manager = HookManager()
    manager.register(Hook(HookEvent.PRE_TOOL_USE, "allow", allow))
    manager.register(Hook(HookEvent.PRE_TOOL_USE, "deny-first", deny_first))
    manager.register(Hook(HookEvent.PRE_TOOL_USE, "deny-second", deny_second))

    decision = await manager.run(HookEvent.PRE_TOOL_USE, _ctx())

    assert decision == HookDecision(allowed=False, reason="first reason")
    assert calls == ["allow", "first"]


@pytest.mark.asyncio
async def test_hooks_only_run_for_their_event():
    manager = HookManager()
    manager.register(Hook(HookEvent.POST_TOOL_USE, "post", lambda ctx: HookDecision.deny("post")))

    decision = await manager.run(HookEvent.PRE_TOOL_USE, _ctx())

    assert decision.allowed is True
    assert [h.name for h in manager.hooks_for(HookEvent.POST_TOOL_USE)] == ["post"]


@pytest.mark.asyncio
async def test_handler_for_binds_event():
    manager = HookManager()
    manager.register(Hook(HookEvent.PRE_TOOL_USE, "deny", lambda ctx: HookDecision.deny("nope")))

    handler = manager.handler_for(HookEvent.PRE_TOOL_USE)
    decision = await handler(_ctx())

    assert decision.reason == "nope"
