"""Conversation engine: the streaming tool-use loop and message history."""

import asyncio
import json
import os
import platform
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

from termpilot.display import Display
from termpilot.instructions import InstructionLoader
from termpilot.llm import AnthropicClient, Message, MessagesRequest, MessagesResponse, StreamSink, Usage
from termpilot.llm.models import ContentBlock
from termpilot.logging import get_logger
from termpilot.tools import ToolCall, ToolExecutor, ToolResult

log = get_logger(__name__)

DEFAULT_CONFIRMATION_TOOLS = ("Bash", "Write", "Edit", "MultiEdit")
DENIED_MESSAGE = "User denied this operation"
EMPTY_RESPONSE_TEXT = "(no content)"
SYSTEM_PROMPT_TEMPLATE = "system_prompt.md"


class EngineState(str, Enum):
    IDLE = "idle"
    REQUEST_SENT = "request_sent"
    RESPONSE_RECEIVED = "response_received"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"


def decode_tool_input(raw: str) -> dict[str, Any]:
    """Decode accumulated tool input JSON; anything but an object becomes {}."""
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        log.debug("Undecodable tool input, using empty object", raw=raw[:200])
        return {}
    return value if isinstance(value, dict) else {}


def list_directory(path: Path) -> list[str]:
    """Sorted names of non-hidden entries directly under `path`."""
    try:
        names = os.listdir(path)
    except OSError:
        return []
    return sorted(name for name in names if not name.startswith("."))


def build_system_prompt(work_dir: Path, loader: InstructionLoader | None = None) -> str:
    """Render the system prompt for a session rooted at `work_dir`."""
    loader = loader or InstructionLoader()
    entries = list_directory(work_dir)
    directory_block = f"Directory contents: {', '.join(entries)}" if entries else ""
    prompt = loader.render(
        SYSTEM_PROMPT_TEMPLATE,
        work_dir=work_dir,
        platform=f"{sys.platform}/{platform.machine()}",
        directory_block=directory_block,
    )
    return prompt.rstrip() + "\n"


def assistant_content(response: MessagesResponse) -> list[dict[str, Any]]:
    """Convert response blocks into the content list stored in history."""
    content: list[dict[str, Any]] = []
    for block in response.content:
        if block.type == "text" and block.text:
            content.append({"type": "text", "text": block.text})
        elif block.is_tool_use:
            content.append(
                {
                    "type": "tool_use",
                    "id": block.id,
                    "name": block.name,
                    "input": decode_tool_input(block.input),
                }
            )
    if not content:
        # Empty assistant content is rejected on the next request.
        content.append({"type": "text", "text": EMPTY_RESPONSE_TEXT})
    return content


class EngineSink(StreamSink):
    """Stops the busy indicator on first output and streams text to the display."""

    def __init__(self, display: Display):
        self.display = display
        self._busy = True
        self.streamed_text = False

    def _first_output(self) -> None:
        if self._busy:
            self._busy = False
            self.display.stop_busy()

    def on_block_start(self, index: int, block: ContentBlock) -> None:
        self._first_output()

    def on_text(self, index: int, text: str) -> None:
        self._first_output()
        if text:
            self.streamed_text = True
            self.display.stream_text(text)

    def finish(self) -> None:
        self._first_output()
        if self.streamed_text:
            self.display.end_stream()


class ConversationEngine:
    """Drive one conversation: stream responses and run requested tools.

    History alternates user/assistant messages. Tool results for one
    assistant turn are bundled into a single user message.
    """

    def __init__(
        self,
        client: AnthropicClient,
        executor: ToolExecutor,
        display: Display,
        model: str,
        max_iterations: int = 25,
        require_confirmation: Iterable[str] = DEFAULT_CONFIRMATION_TOOLS,
        max_tokens: int = 0,
        instructions: InstructionLoader | None = None,
    ):
        self.client = client
        self.executor = executor
        self.display = display
        self.model = model
        self.max_iterations = max_iterations
        self.require_confirmation = frozenset(require_confirmation)
        self.max_tokens = max_tokens
        self.system_prompt = build_system_prompt(executor.work_dir, instructions)
        self.messages: list[Message] = []
        self.state = EngineState.IDLE
        self.last_usage = Usage()
        self.total_usage = Usage()

    def clear(self) -> None:
        """Forget the conversation history."""
        self.messages.clear()
        self.state = EngineState.IDLE

    def _build_request(self) -> MessagesRequest:
        return MessagesRequest(
            model=self.model,
            messages=list(self.messages),
            system=self.system_prompt,
            max_tokens=self.max_tokens,
            tools=self.executor.get_definitions(),
        )

    def _record_usage(self, usage: Usage) -> None:
        self.last_usage = Usage(
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            cache_creation_input_tokens=usage.cache_creation_input_tokens,
            cache_read_input_tokens=usage.cache_read_input_tokens,
        )
        self.total_usage.input_tokens += usage.input_tokens
        self.total_usage.output_tokens += usage.output_tokens
        self.total_usage.cache_creation_input_tokens += usage.cache_creation_input_tokens
        self.total_usage.cache_read_input_tokens += usage.cache_read_input_tokens

    def _append_user_input(self, user_input: str) -> None:
        # A capped loop leaves tool results as the last message; the next
        # input joins that message so roles keep alternating.
        if self.messages and self.messages[-1].role == "user":
            previous = self.messages[-1].content
            blocks = list(previous) if isinstance(previous, list) else [{"type": "text", "text": previous}]
            blocks.append({"type": "text", "text": user_input})
            self.messages[-1] = Message(role="user", content=blocks)
            return
        self.messages.append(Message(role="user", content=user_input))

    async def _request(self) -> MessagesResponse:
        self.state = EngineState.REQUEST_SENT
        sink = EngineSink(self.display)
        self.display.start_busy("Thinking...")
        try:
            response = await self.client.send_and_stream(self._build_request(), sink)
        finally:
            sink.finish()
        self.state = EngineState.RESPONSE_RECEIVED
        return response

    async def _run_tool(self, block: ContentBlock) -> ToolResult:
        call = ToolCall(id=block.id, name=block.name, input=decode_tool_input(block.input))
        self.display.show_tool_start(call.name, call.input)

        if call.name in self.require_confirmation:
            approved = await asyncio.to_thread(self.display.confirm, f"Allow {call.name}?")
            if not approved:
                log.info("Tool call denied", tool=call.name, call_id=call.id)
                result = ToolResult(tool_use_id=call.id, content=DENIED_MESSAGE, is_error=True)
                self.display.show_tool_result(result.content, result.is_error)
                return result

        result = await self.executor.execute(call)
        self.display.show_tool_result(result.content, result.is_error)
        return result

    async def send_message(self, user_input: str) -> MessagesResponse | None:
        """Run one exchange until the model stops requesting tools.

        Returns:
            The final response, or None when the iteration cap was reached

        Raises:
            LLMError: the request failed; history is restored to its
                state before this call
        """
        checkpoint = list(self.messages)
        self._append_user_input(user_input)

        try:
            for iteration in range(self.max_iterations):
                log.info("Calling model", iteration=iteration + 1, message_count=len(self.messages))
                response = await self._request()
                self.messages.append(Message(role="assistant", content=assistant_content(response)))
                self._record_usage(response.usage)

                tool_blocks = response.tool_use_blocks
                if not tool_blocks:
                    self.display.show_usage(self.last_usage)
                    self.state = EngineState.DONE
                    return response

                self.state = EngineState.DISPATCHING_TOOLS
                log.info("Tool calls requested", count=len(tool_blocks))
                results = []
                for block in tool_blocks:
                    results.append(await self._run_tool(block))
                self.messages.append(
                    Message(role="user", content=[result.to_block() for result in results])
                )
        except Exception as e:
            self.messages[:] = checkpoint
            self.state = EngineState.IDLE
            self.display.show_error(str(e))
            raise

        log.warning("Tool loop reached iteration limit", max_iterations=self.max_iterations)
        self.display.show_usage(self.last_usage)
        self.state = EngineState.DONE
        return None
