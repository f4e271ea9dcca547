"""Command-line entry point for codeloop."""

import asyncio
import json
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm

from codeloop.agent import AgentLoop, AgentOptions
from codeloop.config import Config, default_system_prompt, set_config
from codeloop.exceptions import ConfigurationError
from codeloop.events import (
    ErrorEvent,
    FinishEvent,
    TextDeltaEvent,
    ToolCallEvent,
    ToolResultEvent,
    TurnStartEvent,
)
from codeloop.guard import create_dangerous_command_guard
from codeloop.hooks import HookEvent, HookManager
from codeloop.llm import Message, get_provider, set_provider
from codeloop.llm.streaming import ProviderChatModel
from codeloop.logging import configure_logging, get_logger
from codeloop.tools import create_tool_registry, snapshot_environment

log = get_logger(__name__)

app = typer.Typer(help="codeloop - a coding agent for your terminal")
console = Console()
err_console = Console(stderr=True)


def _preview(value: Any, limit: int = 200) -> str:
    """Escaped, truncated rendering of a tool argument payload."""
    text = value if isinstance(value, str) else json.dumps(value)
    return escape(text if len(text) <= limit else text[:limit] + "...")


async def _request_approval(tool_name: str, input: dict[str, Any]) -> bool:
    console.print(f"\n[bold yellow]Approve {tool_name}?[/bold yellow] {_preview(input)}")
    loop = asyncio.get_running_loop()
    answer: asyncio.Future[bool] = loop.create_future()

    def _deliver(allowed: bool) -> None:
        if not answer.done():
            answer.set_result(allowed)

    def _ask() -> None:
        try:
            allowed = Confirm.ask("Allow", default=False, console=console)
        except EOFError:
            allowed = False
        try:
            loop.call_soon_threadsafe(_deliver, allowed)
        except RuntimeError:
            # Event loop already closed after an abort.
            return

    # Daemon thread: an abort must not wait for the prompt to be answered.
    threading.Thread(target=_ask, name="approval-prompt", daemon=True).start()
    return await answer


def _print_tool_output(call_id: str, chunk: str) -> None:
    console.print(chunk, end="", style="dim", markup=False, highlight=False)


async def run_prompt(prompt: str, cfg: Config) -> int:
    """Run one prompt to completion, rendering events to the console."""
    cwd = Path.cwd()
    tools = create_tool_registry(cfg)
    hooks = HookManager()
    hooks.register(create_dangerous_command_guard(
        tools,
        _request_approval,
        extra_patterns=cfg.tools.bash.dangerous_patterns,
    ))

    provider = get_provider()

    abort_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, abort_event.set)
    except (NotImplementedError, RuntimeError):
        pass

    options = AgentOptions(
        model=ProviderChatModel(provider),
        system_prompt=cfg.agent.system_prompt or default_system_prompt(cwd),
        max_turns=cfg.agent.max_turns,
        cwd=cwd,
        env=snapshot_environment(),
        tools=tools,
        on_pre_tool_use=hooks.handler_for(HookEvent.PRE_TOOL_USE),
        abort_event=abort_event,
        on_tool_output=_print_tool_output,
    )

    history = [Message(role="user", content=prompt)]
    exit_code = 0
    try:
        async for event in AgentLoop().run(history, options):
            if isinstance(event, TurnStartEvent):
                log.debug("Turn started", turn=event.turn, max_turns=event.max_turns)
            elif isinstance(event, TextDeltaEvent):
                console.print(event.text, end="", markup=False, highlight=False)
            elif isinstance(event, ToolCallEvent):
                console.print(f"\n[cyan]> {event.tool_name}[/cyan] {_preview(event.input)}")
            elif isinstance(event, ToolResultEvent):
                if event.result.success:
                    console.print(f"\n[green]✓ {event.tool_name}[/green]")
                else:
                    console.print(f"\n[red]✗ {event.tool_name}: {escape(event.result.error or '')}[/red]")
            elif isinstance(event, FinishEvent):
                console.print(
                    f"\n[dim]tokens: {event.usage.input_tokens} in, "
                    f"{event.usage.output_tokens} out[/dim]"
                )
            elif isinstance(event, ErrorEvent):
                err_console.print(f"Error: {event.error}", style="red", markup=False)
                exit_code = 1
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass
        await provider.close()
        set_provider(None)

    if abort_event.is_set():
        console.print("\n[yellow]Aborted.[/yellow]")
        return 130
    return exit_code


@app.command()
def run(
    prompt: str = typer.Argument(..., help="Task for the agent"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    provider: str = typer.Option("", "-p", "--provider", help="Override provider"),
    max_turns: int = typer.Option(0, "--max-turns", help="Override max turns"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Run the agent on a single prompt."""
    if verbose:
        os.environ["CODELOOP_LOGGING__LEVEL"] = "DEBUG"

    if config:
        try:
            cfg = Config.from_yaml(Path(config))
        except ConfigurationError as e:
            err_console.print(str(e), style="red", markup=False)
            raise typer.Exit(code=2)
    else:
        cfg = Config.load()

    if model:
        cfg.model.model = model
    if provider:
        cfg.model.provider = provider
    if max_turns > 0:
        cfg.agent.max_turns = max_turns

    set_config(cfg)
    configure_logging("DEBUG" if verbose else None)

    try:
        code = asyncio.run(run_prompt(prompt, cfg))
    except KeyboardInterrupt:
        code = 130
    except Exception as e:
        log.error("Fatal error", error=str(e))
        err_console.print(f"Fatal error: {e}", style="red", markup=False)
        code = 1
    sys.exit(code)


@app.command()
def version() -> None:
    """Show version information."""
    from codeloop import __version__
    console.print(f"codeloop v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
