"""Terminal UI for termpilot."""

import atexit
import json
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm
from rich.status import Status

from termpilot.llm.models import Usage
from termpilot.logging import get_logger

log = get_logger(__name__)

_RESULT_PREVIEW_LINES = 10
_INPUT_PREVIEW_CHARS = 120

HELP_TEXT = """Commands:
  /help   Show this help
  /clear  Start a new conversation
  /exit   Quit (also /quit)"""


def summarize_tool_input(name: str, tool_input: dict[str, Any]) -> str:
    """One-line summary of a tool call for the tool-start line."""
    for key in ("command", "file_path", "pattern", "bash_id", "shell_id"):
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            summary = value
            break
    else:
        summary = json.dumps(tool_input, ensure_ascii=False) if tool_input else ""
    summary = " ".join(summary.split())
    if len(summary) > _INPUT_PREVIEW_CHARS:
        summary = summary[: _INPUT_PREVIEW_CHARS - 3] + "..."
    return summary


def preview_result(content: str, max_lines: int = _RESULT_PREVIEW_LINES) -> str:
    """First lines of a tool result, with a count of what was cut."""
    lines = content.rstrip("\n").splitlines()
    if len(lines) <= max_lines:
        return "\n".join(lines)
    hidden = len(lines) - max_lines
    return "\n".join(lines[:max_lines] + [f"... ({hidden} more lines)"])


class TerminalUI:
    """Terminal UI using Rich."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console(highlight=False)
        self._special_commands = ["/help", "/clear", "/exit", "/quit"]
        self._status: Status | None = None
        self._streaming = False
        self._readline = None
        self._history_file = Path("~/.termpilot/history").expanduser()
        self._setup_readline()

    def _setup_readline(self) -> None:
        """Set up line editing, history, and command completion."""
        try:
            import readline  # type: ignore
        except ImportError:
            return

        self._readline = readline

        try:
            self._history_file.parent.mkdir(parents=True, exist_ok=True)
            if self._history_file.exists():
                readline.read_history_file(str(self._history_file))
            readline.set_history_length(1000)
            readline.parse_and_bind("tab: complete")
            readline.set_completer(self._complete_special_command)
            atexit.register(self._save_history)
        except OSError as e:
            log.debug("Readline setup failed", error=str(e))

    def _save_history(self) -> None:
        """Persist readline history to disk."""
        if self._readline is None:
            return
        try:
            self._readline.write_history_file(str(self._history_file))
        except OSError as e:
            log.debug("Failed to save history", error=str(e))

    def _complete_special_command(self, text: str, state: int) -> str | None:
        """Readline completer for slash commands."""
        if not text.startswith("/"):
            return None
        matches = [cmd for cmd in self._special_commands if cmd.startswith(text)]
        if state < len(matches):
            return matches[state]
        return None

    def print_welcome(self, model: str, work_dir: Path) -> None:
        self.console.print("[bold]termpilot[/bold]")
        self.console.print(f"[dim]model: {escape(model)}  cwd: {escape(str(work_dir))}[/dim]")
        self.console.print("[dim]Type /help for commands.[/dim]")

    def print_help(self) -> None:
        self.console.print(HELP_TEXT)

    def read_input(self, prompt: str = "> ") -> str | None:
        """Read one line of user input. None on EOF."""
        try:
            return input(prompt)
        except EOFError:
            return None

    # Display protocol

    def stream_text(self, text: str) -> None:
        self._streaming = True
        self.console.print(text, end="", markup=False, soft_wrap=True)

    def end_stream(self) -> None:
        if self._streaming:
            self.console.print()
            self._streaming = False

    def show_tool_start(self, name: str, tool_input: dict[str, Any]) -> None:
        self.end_stream()
        summary = summarize_tool_input(name, tool_input)
        self.console.print(f"[cyan]● {escape(name)}[/cyan]([dim]{escape(summary)}[/dim])")

    def show_tool_result(self, content: str, is_error: bool) -> None:
        text = preview_result(content)
        if not text:
            return
        style = "red" if is_error else "dim"
        for line in text.splitlines():
            self.console.print(f"  [{style}]⎿ {escape(line)}[/{style}]")

    def confirm(self, prompt: str) -> bool:
        self.stop_busy()
        return Confirm.ask(prompt, console=self.console, default=False)

    def start_busy(self, message: str) -> None:
        self.stop_busy()
        self._status = self.console.status(message, spinner="dots")
        self._status.start()

    def stop_busy(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None

    def show_error(self, message: str) -> None:
        self.stop_busy()
        self.end_stream()
        self.console.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def show_usage(self, usage: Usage) -> None:
        self.console.print(
            f"[dim]tokens: {usage.input_tokens:,} in / {usage.output_tokens:,} out[/dim]"
        )

    def show_info(self, message: str) -> None:
        self.console.print(f"[dim]{escape(message)}[/dim]")
