"""Display surface consumed by the conversation engine."""

from typing import Any, Protocol

from termpilot.llm.models import Usage


class Display(Protocol):
    """What the engine needs from a user interface.

    Everything except `confirm` is fire-and-forget. `confirm` blocks until
    the user answers; the engine calls it from a worker thread.
    """

    def stream_text(self, text: str) -> None: ...

    def end_stream(self) -> None: ...

    def show_tool_start(self, name: str, tool_input: dict[str, Any]) -> None: ...

    def show_tool_result(self, content: str, is_error: bool) -> None: ...

    def confirm(self, prompt: str) -> bool: ...

    def start_busy(self, message: str) -> None: ...

    def stop_busy(self) -> None: ...

    def show_error(self, message: str) -> None: ...

    def show_usage(self, usage: Usage) -> None: ...

    def show_info(self, message: str) -> None: ...

