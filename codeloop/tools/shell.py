"""Bash tool: run a command line with concurrent output draining."""

import asyncio
import codecs
import os
import signal
from typing import Any, Callable

from codeloop.logging import get_logger
from codeloop.tools.registry import Tool, ToolContext, ToolResult

log = get_logger(__name__)

DEFAULT_TIMEOUT_MS = 30_000
_READ_CHUNK_SIZE = 4096
# Grace period for draining pipe contents after the process group was killed.
_DRAIN_GRACE_SECONDS = 1.0


async def read_stream(
    stream: asyncio.StreamReader | None,
    on_output: Callable[[str], None] | None = None,
) -> str:
    """Drain a byte stream, decoding incrementally and forwarding each chunk.

    Incomplete multi-byte sequences are carried over between reads and the
    decoder is flushed once the stream reaches EOF.
    """
    if stream is None:
        return ""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    parts: list[str] = []
    while True:
        data = await stream.read(_READ_CHUNK_SIZE)
        if not data:
            break
        text = decoder.decode(data)
        if text:
            parts.append(text)
            if on_output is not None:
                on_output(text)
    remaining = decoder.decode(b"", final=True)
    if remaining:
        parts.append(remaining)
        if on_output is not None:
            on_output(remaining)
    return "".join(parts)


def _kill_process(process: asyncio.subprocess.Process) -> None:
    """Kill the process group; a group that is already gone is left alone.

    The whole group is targeted so children of ``bash -c`` holding the pipes
    open die with it.
    """
    if not hasattr(os, "killpg"):
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        return
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass


async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
    """Cancel task and await it to avoid pending task warnings."""
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


def format_process_output(stdout: str, stderr: str, exit_code: int) -> str:
    """Human-readable summary: non-empty stdout/stderr sections plus the exit code."""
    sections: list[str] = []
    if stdout.strip():
        sections.append(f"stdout:\n{stdout.strip()}")
    if stderr.strip():
        sections.append(f"stderr:\n{stderr.strip()}")
    sections.append(f"exit code: {exit_code}")
    return "\n\n".join(sections)


class BashTool(Tool):
    """Execute bash commands."""

    name = "bash"
    description = (
        "Execute a bash command in the user's shell. Returns stdout and stderr. "
        "Use for running tests, installing packages, git operations, etc."
    )
    dangerous = True
    parameters = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The bash command to execute",
            },
            "timeout": {
                "type": "number",
                "description": "Timeout in milliseconds (default: 30000)",
            },
        },
        "required": ["command"],
    }

    def __init__(self, default_timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.default_timeout_ms = int(default_timeout_ms)

    async def execute(
        self,
        ctx: ToolContext,
        command: str,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        """Run a command to completion, timeout or abort.

        Args:
            ctx: Invocation context; ``cwd`` and ``env`` shape the subprocess
            command: Command line passed to ``bash -c``
            timeout: Optional timeout in milliseconds

        Returns:
            ToolResult with stdout/stderr/exit code in ``data``
        """
        timeout_ms = int(timeout) if timeout is not None else self.default_timeout_ms
        timeout_ms = max(1, timeout_ms)

        abort_event = ctx.abort_event
        if abort_event is not None and abort_event.is_set():
            return ToolResult(success=False, error="Command aborted")

        env = dict(ctx.env)
        env["TERM"] = "dumb"

        try:
            log.info("Executing bash command", command=command, timeout_ms=timeout_ms)
            process = await asyncio.create_subprocess_exec(
                "bash",
                "-c",
                command,
                cwd=str(ctx.cwd),
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except Exception as e:
            log.error("Bash command failed to start", command=command, error=str(e))
            return ToolResult(success=False, error=str(e))

        # Drain both pipes while waiting on the exit code; a full pipe blocks the child.
        stdout_task = asyncio.create_task(read_stream(process.stdout, ctx.on_output))
        stderr_task = asyncio.create_task(read_stream(process.stderr, ctx.on_output))
        completion_task = asyncio.create_task(
            self._gather_completion(stdout_task, stderr_task, process)
        )
        abort_wait_task: asyncio.Task[bool] | None = None
        if abort_event is not None:
            abort_wait_task = asyncio.create_task(abort_event.wait())

        try:
            wait_tasks: set[asyncio.Task[Any]] = {completion_task}
            if abort_wait_task is not None:
                wait_tasks.add(abort_wait_task)
            done, _ = await asyncio.wait(
                wait_tasks,
                timeout=timeout_ms / 1000,
                return_when=asyncio.FIRST_COMPLETED,
            )

            if completion_task in done:
                stdout, stderr, exit_code = completion_task.result()
                return self._build_result(command, stdout, stderr, exit_code)

            if abort_wait_task is not None and abort_wait_task in done:
                log.info("Bash command aborted", command=command)
                await self._terminate(process, stdout_task, stderr_task)
                return ToolResult(success=False, error="Command aborted")

            log.warning("Bash command timed out", command=command, timeout_ms=timeout_ms)
            await self._terminate(process, stdout_task, stderr_task)
            return ToolResult(
                success=False,
                error=f"Command timed out after {timeout_ms}ms",
            )
        except asyncio.CancelledError:
            _kill_process(process)
            raise
        finally:
            await _cancel_task(abort_wait_task)
            await _cancel_task(completion_task)
            await _cancel_task(stdout_task)
            await _cancel_task(stderr_task)

    @staticmethod
    async def _gather_completion(
        stdout_task: asyncio.Task[str],
        stderr_task: asyncio.Task[str],
        process: asyncio.subprocess.Process,
    ) -> tuple[str, str, int]:
        """Wait for both drains and the exit code together."""
        stdout, stderr, exit_code = await asyncio.gather(
            stdout_task,
            stderr_task,
            process.wait(),
        )
        return stdout, stderr, exit_code

    @staticmethod
    async def _terminate(
        process: asyncio.subprocess.Process,
        stdout_task: asyncio.Task[str],
        stderr_task: asyncio.Task[str],
    ) -> None:
        """Kill the process and flush whatever is still buffered in the pipes to the sink."""
        _kill_process(process)
        await process.wait()
        await asyncio.wait({stdout_task, stderr_task}, timeout=_DRAIN_GRACE_SECONDS)

    @staticmethod
    def _build_result(command: str, stdout: str, stderr: str, exit_code: int) -> ToolResult:
        """Build the normal-completion result."""
        success = exit_code == 0
        return ToolResult(
            success=success,
            output=format_process_output(stdout, stderr, exit_code),
            data={
                "stdout": stdout.strip(),
                "stderr": stderr.strip(),
                "exit_code": exit_code,
                "command": command,
            },
            error=None if success else f"Command exited with code {exit_code}",
        )
