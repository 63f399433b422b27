"""Shell tools: foreground commands and polled background shells."""

import asyncio
import codecs
import os
import signal
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from termpilot.exceptions import ToolExecutionError
from termpilot.logging import get_logger
from termpilot.tools.registry import Tool, ToolResult

log = get_logger(__name__)

NO_NEW_OUTPUT = "(no new output)"
_READ_CHUNK = 4096


def _terminate(process: asyncio.subprocess.Process) -> None:
    """Kill every process in the group started for a command."""
    # The group outlives its leader while children still hold the pipe.
    try:
        if hasattr(os, "killpg"):
            os.killpg(process.pid, signal.SIGKILL)
        elif process.returncode is None:
            process.kill()
    except (ProcessLookupError, PermissionError):
        pass


async def _collect(process: asyncio.subprocess.Process, chunks: list[bytes]) -> None:
    """Read merged output until EOF, then wait for the exit status."""
    while True:
        chunk = await process.stdout.read(_READ_CHUNK)
        if not chunk:
            break
        chunks.append(chunk)
    await process.wait()


async def _spawn(command: str, work_dir: Path) -> asyncio.subprocess.Process:
    return await asyncio.create_subprocess_exec(
        "bash",
        "-c",
        command,
        cwd=str(work_dir),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        start_new_session=True,
    )


@dataclass
class BackgroundShell:
    """A backgrounded command whose merged output is polled, not awaited."""

    id: str
    command: str
    process: asyncio.subprocess.Process
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    output: list[str] = field(default_factory=list)
    reader: asyncio.Task[None] | None = None
    exit_code: int | None = None
    exit_reported: bool = False

    async def append(self, text: str) -> None:
        async with self.lock:
            self.output.append(text)

    async def drain(self) -> str:
        """Return everything buffered since the last drain and clear it.

        The first drain after the process exited also carries its exit
        status. The reader records the status only after reaching EOF, so
        that drain always includes the final output.
        """
        async with self.lock:
            text = "".join(self.output)
            self.output.clear()
            if self.exit_code is not None and not self.exit_reported:
                self.exit_reported = True
                if text and not text.endswith("\n"):
                    text += "\n"
                text += f"(exited with status {self.exit_code})"
        return text

    async def wait(self) -> int | None:
        """Wait until the process exited and its output was fully read."""
        if self.reader is not None:
            await asyncio.shield(self.reader)
        return self.exit_code


class BackgroundShellManager:
    """Lock-guarded registry of background shells, keyed by tool call id.

    Shells stay registered after their process exits so late output can
    still be drained; they leave the registry on kill or on close().
    """

    def __init__(self, work_dir: Path):
        self.work_dir = work_dir
        self._shells: dict[str, BackgroundShell] = {}
        self._lock = asyncio.Lock()

    async def start(self, shell_id: str, command: str) -> BackgroundShell:
        async with self._lock:
            if shell_id in self._shells:
                raise ToolExecutionError("Bash", f"Background shell already exists: {shell_id}")
            process = await _spawn(command, self.work_dir)
            shell = BackgroundShell(id=shell_id, command=command, process=process)
            shell.reader = asyncio.create_task(self._pump(shell))
            self._shells[shell_id] = shell
        log.info("Background shell started", shell_id=shell_id, pid=process.pid)
        return shell

    async def get(self, shell_id: str) -> BackgroundShell | None:
        async with self._lock:
            return self._shells.get(shell_id)

    async def list_ids(self) -> list[str]:
        async with self._lock:
            return list(self._shells)

    async def kill(self, shell_id: str) -> bool:
        """Remove a shell and terminate its process. False when unknown."""
        async with self._lock:
            shell = self._shells.pop(shell_id, None)
        if shell is None:
            return False
        await self._stop(shell)
        log.info("Background shell killed", shell_id=shell_id)
        return True

    async def close(self) -> None:
        """Terminate every remaining shell."""
        async with self._lock:
            shells = list(self._shells.values())
            self._shells.clear()
        for shell in shells:
            await self._stop(shell)

    async def _stop(self, shell: BackgroundShell) -> None:
        _terminate(shell.process)
        if shell.reader is None:
            return
        try:
            await asyncio.wait_for(shell.reader, timeout=5.0)
        except asyncio.TimeoutError:
            log.warning("Background shell reader did not finish", shell_id=shell.id)

    async def _pump(self, shell: BackgroundShell) -> None:
        """Copy process output into the shell buffer until EOF."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        stream = shell.process.stdout
        try:
            while True:
                chunk = await stream.read(_READ_CHUNK)
                if not chunk:
                    break
                text = decoder.decode(chunk)
                if text:
                    await shell.append(text)
            tail = decoder.decode(b"", final=True)
            if tail:
                await shell.append(tail)
        finally:
            exit_code = await shell.process.wait()
            async with shell.lock:
                shell.exit_code = exit_code
            log.info("Background shell exited", shell_id=shell.id, exit_code=exit_code)


class BashInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    command: str = Field(min_length=1)
    description: str | None = None
    timeout: float | None = None
    run_in_background: bool | None = None


class BashTool(Tool):
    """Execute shell commands."""

    name = "Bash"
    description = (
        "Execute a bash command. Use for running scripts, installing packages, or system operations. "
        "Set run_in_background for long-running commands and poll them with BashOutput."
    )
    input_model = BashInput
    input_schema = {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "The bash command to execute"},
            "description": {"type": "string", "description": "Short description of what this command does"},
            "timeout": {"type": "number", "description": "Timeout in milliseconds (max 600000)"},
            "run_in_background": {
                "type": "boolean",
                "description": "Start the command in the background and return a shell id immediately",
            },
        },
        "required": ["command"],
    }

    def __init__(
        self,
        work_dir: Path | str,
        shells: BackgroundShellManager,
        default_timeout_ms: int = 120_000,
        max_timeout_ms: int = 600_000,
    ):
        super().__init__(work_dir)
        self.shells = shells
        self.default_timeout_ms = default_timeout_ms
        self.max_timeout_ms = max_timeout_ms

    def _timeout_ms(self, requested: float | None) -> float:
        if requested is None or requested <= 0:
            return self.default_timeout_ms
        return min(requested, self.max_timeout_ms)

    async def execute(self, params: BashInput, call_id: str = "") -> ToolResult:
        """Run a command in the foreground or start it in the background."""
        if params.run_in_background:
            return await self._start_background(params.command, call_id)
        return await self._run_foreground(params.command, self._timeout_ms(params.timeout))

    async def _run_foreground(self, command: str, timeout_ms: float) -> ToolResult:
        log.info("Executing shell command", command=command, timeout_ms=timeout_ms)
        process = await _spawn(command, self.work_dir)
        chunks: list[bytes] = []
        try:
            await asyncio.wait_for(_collect(process, chunks), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            _terminate(process)
            await process.wait()
            partial = b"".join(chunks).decode("utf-8", errors="replace")
            if partial and not partial.endswith("\n"):
                partial += "\n"
            return ToolResult(
                content=f"{partial}Command timed out after {timeout_ms / 1000:g}s",
                is_error=True,
            )
        except asyncio.CancelledError:
            _terminate(process)
            raise

        output = b"".join(chunks).decode("utf-8", errors="replace")
        if process.returncode != 0:
            return ToolResult(
                content=output or f"Command exited with status {process.returncode}",
                is_error=True,
            )
        return ToolResult(content=output)

    async def _start_background(self, command: str, call_id: str) -> ToolResult:
        if not call_id:
            return ToolResult(content="Background execution requires a tool call id", is_error=True)
        try:
            await self.shells.start(call_id, command)
        except OSError as e:
            return ToolResult(content=f"Failed to start: {e}", is_error=True)
        return ToolResult(content=f"Background process started (id: {call_id})")


class BashOutputInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    bash_id: str = Field(min_length=1)


class BashOutputTool(Tool):
    """Drain new output from a background shell."""

    name = "BashOutput"
    description = (
        "Return output produced by a background shell since the last call. "
        "Reports the exit status once the command has finished."
    )
    input_model = BashOutputInput
    input_schema = {
        "type": "object",
        "properties": {
            "bash_id": {"type": "string", "description": "Id returned when the background command started"},
        },
        "required": ["bash_id"],
    }

    def __init__(self, work_dir: Path | str, shells: BackgroundShellManager):
        super().__init__(work_dir)
        self.shells = shells

    async def execute(self, params: BashOutputInput, call_id: str = "") -> ToolResult:
        shell = await self.shells.get(params.bash_id)
        if shell is None:
            return ToolResult(content=f"No background shell: {params.bash_id}", is_error=True)
        output = await shell.drain()
        return ToolResult(content=output or NO_NEW_OUTPUT)


class KillBashInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    shell_id: str = Field(min_length=1)


class KillBashTool(Tool):
    """Terminate a background shell."""

    name = "KillBash"
    description = "Terminate a background shell and forget it."
    input_model = KillBashInput
    input_schema = {
        "type": "object",
        "properties": {
            "shell_id": {"type": "string", "description": "Id of the background shell to terminate"},
        },
        "required": ["shell_id"],
    }

    def __init__(self, work_dir: Path | str, shells: BackgroundShellManager):
        super().__init__(work_dir)
        self.shells = shells

    async def execute(self, params: KillBashInput, call_id: str = "") -> ToolResult:
        if not await self.shells.kill(params.shell_id):
            return ToolResult(content=f"No background shell: {params.shell_id}", is_error=True)
        return ToolResult(content=f"Shell {params.shell_id} terminated")
