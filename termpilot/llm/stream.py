"""Incremental parsing of the Messages API server-sent event stream.

The stream is consumed in two layers:

* :func:`iter_sse` turns raw lines into ``(event, data)`` pairs. Every
  ``data:`` line becomes its own pair carrying the most recent ``event:``
  name; blank lines and ``:`` comments are dropped.
* :class:`StreamAccumulator` applies each pair to the response under
  construction and returns a tagged :class:`StreamEvent` describing what
  changed. Consumers either pull those events directly or hand them to a
  :class:`StreamSink` through :func:`dispatch_event`.

Tool input arrives as partial JSON fragments that are not valid JSON until
the block ends, so fragments are buffered per index and only written to the
block at ``content_block_stop``.
"""

import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from termpilot.exceptions import StreamEventError
from termpilot.llm.models import ContentBlock, MessagesResponse, Usage
from termpilot.logging import get_logger

log = get_logger(__name__)


@dataclass
class ServerSentEvent:
    """One `data:` line together with the event name it belongs to."""

    event: str
    data: str


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[ServerSentEvent]:
    """Split a line stream into server-sent events."""
    current_event = ""
    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        if not line or line.startswith(":"):
            continue
        name, sep, value = line.partition(":")
        if not sep:
            continue
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            current_event = value.strip()
        elif name == "data":
            yield ServerSentEvent(event=current_event, data=value)


@dataclass
class StreamEvent:
    """A change applied to the response, tagged by event kind."""

    kind: str
    response: MessagesResponse
    index: int | None = None
    block: ContentBlock | None = None
    text: str = ""
    partial_json: str = ""
    stop_reason: str = ""
    usage: Usage | None = None
    error: StreamEventError | None = None


class StreamSink:
    """Push-style receiver for stream events.

    Every method is a no-op; subclasses override what they care about.
    Callbacks run inline with parsing, so a slow sink slows the stream.
    """

    def on_message_start(self, response: MessagesResponse) -> None:
        pass

    def on_block_start(self, index: int, block: ContentBlock) -> None:
        pass

    def on_text(self, index: int, text: str) -> None:
        pass

    def on_tool_input(self, index: int, partial_json: str) -> None:
        pass

    def on_block_stop(self, index: int, block: ContentBlock) -> None:
        pass

    def on_message_delta(self, stop_reason: str, usage: Usage | None) -> None:
        pass

    def on_error(self, error: StreamEventError) -> None:
        pass


def dispatch_event(sink: StreamSink | None, event: StreamEvent) -> None:
    """Forward a tagged event to the matching sink method."""
    if sink is None:
        return
    if event.kind == "message_start":
        sink.on_message_start(event.response)
    elif event.kind == "content_block_start":
        sink.on_block_start(event.index, event.block)
    elif event.kind == "text_delta":
        sink.on_text(event.index, event.text)
    elif event.kind == "input_json_delta":
        sink.on_tool_input(event.index, event.partial_json)
    elif event.kind == "content_block_stop":
        sink.on_block_stop(event.index, event.block)
    elif event.kind == "message_delta":
        sink.on_message_delta(event.stop_reason, event.usage)
    elif event.kind == "error":
        sink.on_error(event.error)


def _parse_index(payload: dict[str, Any]) -> int | None:
    index = payload.get("index")
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        return None
    return index


@dataclass
class StreamAccumulator:
    """Per-request stream state: the response being built and tool-input buffers."""

    response: MessagesResponse = field(default_factory=MessagesResponse)
    tool_inputs: dict[int, list[str]] = field(default_factory=dict)

    def apply(self, sse: ServerSentEvent) -> StreamEvent | None:
        """Apply one event to the response.

        Returns:
            The resulting tagged event, or None when the line was ignored
        """
        try:
            payload = json.loads(sse.data)
        except json.JSONDecodeError:
            log.debug("Skipping undecodable SSE data line", sse_event=sse.event, data=sse.data[:200])
            return None
        if not isinstance(payload, dict):
            return None

        handler = getattr(self, f"_on_{sse.event}", None)
        if handler is None:
            return None
        return handler(payload)

    def _on_message_start(self, payload: dict[str, Any]) -> StreamEvent:
        self.response = MessagesResponse.from_payload(payload.get("message") or {})
        self.tool_inputs.clear()
        return StreamEvent(kind="message_start", response=self.response)

    def _on_content_block_start(self, payload: dict[str, Any]) -> StreamEvent | None:
        index = _parse_index(payload)
        if index is None:
            return None
        self.response.ensure_index(index)
        block = ContentBlock.from_payload(payload.get("content_block") or {})
        self.response.content[index] = block
        if block.is_tool_use:
            self.tool_inputs[index] = []
        return StreamEvent(kind="content_block_start", response=self.response, index=index, block=block)

    def _on_content_block_delta(self, payload: dict[str, Any]) -> StreamEvent | None:
        index = _parse_index(payload)
        if index is None:
            return None
        delta = payload.get("delta") or {}
        delta_type = delta.get("type")

        if delta_type == "text_delta":
            text = str(delta.get("text") or "")
            if index < len(self.response.content):
                self.response.content[index].text += text
            return StreamEvent(kind="text_delta", response=self.response, index=index, text=text)

        if delta_type == "input_json_delta":
            fragment = str(delta.get("partial_json") or "")
            buffer = self.tool_inputs.get(index)
            if buffer is not None:
                buffer.append(fragment)
            return StreamEvent(
                kind="input_json_delta",
                response=self.response,
                index=index,
                partial_json=fragment,
            )

        return None

    def _on_content_block_stop(self, payload: dict[str, Any]) -> StreamEvent | None:
        index = _parse_index(payload)
        if index is None:
            return None
        block = None
        if index < len(self.response.content):
            block = self.response.content[index]
        buffer = self.tool_inputs.pop(index, None)
        if buffer is not None and block is not None:
            block.input = "".join(buffer)
        return StreamEvent(kind="content_block_stop", response=self.response, index=index, block=block)

    def _on_message_delta(self, payload: dict[str, Any]) -> StreamEvent:
        delta = payload.get("delta") or {}
        stop_reason = str(delta.get("stop_reason") or "")
        if stop_reason:
            self.response.stop_reason = stop_reason
        usage_payload = payload.get("usage")
        usage = None
        if isinstance(usage_payload, dict):
            self.response.usage.merge(usage_payload)
            usage = self.response.usage
        return StreamEvent(
            kind="message_delta",
            response=self.response,
            stop_reason=stop_reason,
            usage=usage,
        )

    def _on_error(self, payload: dict[str, Any]) -> StreamEvent:
        error_body = payload.get("error") or {}
        if not isinstance(error_body, dict):
            error_body = {"message": str(error_body)}
        error = StreamEventError(
            str(error_body.get("message") or "unknown error"),
            error_type=str(error_body.get("type") or ""),
        )
        return StreamEvent(kind="error", response=self.response, error=error)
