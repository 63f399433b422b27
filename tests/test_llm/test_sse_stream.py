import json

import pytest

from termpilot.exceptions import StreamEventError
from termpilot.llm.stream import (
    ServerSentEvent,
    StreamAccumulator,
    StreamSink,
    dispatch_event,
    iter_sse,
)


async def _lines(lines: list[str]):
    for line in lines:
        yield line


async def _collect(lines: list[str]) -> list[ServerSentEvent]:
    return [event async for event in iter_sse(_lines(lines))]


def _sse(event: str, payload: dict) -> ServerSentEvent:
    return ServerSentEvent(event=event, data=json.dumps(payload))


class RecordingSink(StreamSink):
    def __init__(self):
        self.calls: list[tuple] = []

    def on_message_start(self, response):
        self.calls.append(("message_start", response.id))

    def on_block_start(self, index, block):
        self.calls.append(("block_start", index, block.type))

    def on_text(self, index, text):
        self.calls.append(("text", index, text))

    def on_tool_input(self, index, partial_json):
        self.calls.append(("tool_input", index, partial_json))

    def on_block_stop(self, index, block):
        self.calls.append(("block_stop", index))

    def on_message_delta(self, stop_reason, usage):
        self.calls.append(("message_delta", stop_reason, usage.output_tokens if usage else None))

    def on_error(self, error):
        self.calls.append(("error", str(error)))


@pytest.mark.asyncio
async def test_iter_sse_keeps_event_name_until_next_event_line():
    events = await _collect(
        [
            "event: content_block_delta",
            'data: {"a": 1}',
            "",
            'data: {"a": 2}',
            ": keep-alive comment",
            "event: message_stop",
            "data: {}",
        ]
    )

    assert [(e.event, e.data) for e in events] == [
        ("content_block_delta", '{"a": 1}'),
        ("content_block_delta", '{"a": 2}'),
        ("message_stop", "{}"),
    ]


@pytest.mark.asyncio
async def test_iter_sse_ignores_lines_without_field_separator():
    events = await _collect(["event: ping", "garbage", "data: {}"])

    assert [(e.event, e.data) for e in events] == [("ping", "{}")]


def test_message_start_initializes_response():
    acc = StreamAccumulator()
    acc.apply(
        _sse(
            "message_start",
            {
                "type": "message_start",
                "message": {
                    "id": "msg_1",
                    "role": "assistant",
                    "model": "claude-test",
                    "usage": {"input_tokens": 12, "output_tokens": 1},
                },
            },
        )
    )

    assert acc.response.id == "msg_1"
    assert acc.response.model == "claude-test"
    assert acc.response.usage.input_tokens == 12


def test_non_monotonic_block_indices_are_all_addressable():
    acc = StreamAccumulator()
    acc.apply(_sse("message_start", {"message": {"id": "m"}}))
    acc.apply(_sse("content_block_start", {"index": 2, "content_block": {"type": "text", "text": ""}}))
    acc.apply(_sse("content_block_start", {"index": 0, "content_block": {"type": "text", "text": ""}}))
    acc.apply(
        _sse(
            "content_block_start",
            {"index": 1, "content_block": {"type": "tool_use", "id": "t1", "name": "Read", "input": {}}},
        )
    )

    content = acc.response.content
    assert len(content) == 3
    assert [block.type for block in content] == ["text", "tool_use", "text"]
    assert content[1].id == "t1"
    assert content[1].input == ""


def test_text_deltas_append_to_block():
    acc = StreamAccumulator()
    acc.apply(_sse("content_block_start", {"index": 0, "content_block": {"type": "text", "text": ""}}))
    acc.apply(_sse("content_block_delta", {"index": 0, "delta": {"type": "text_delta", "text": "Hel"}}))
    acc.apply(_sse("content_block_delta", {"index": 0, "delta": {"type": "text_delta", "text": "lo"}}))

    assert acc.response.content[0].text == "Hello"
    assert acc.response.text == "Hello"


def test_partial_json_is_concatenated_at_block_stop():
    acc = StreamAccumulator()
    acc.apply(
        _sse(
            "content_block_start",
            {"index": 0, "content_block": {"type": "tool_use", "id": "t1", "name": "Bash", "input": {}}},
        )
    )
    for fragment in ['{"comm', 'and": "ec', 'ho hi"}']:
        acc.apply(
            _sse(
                "content_block_delta",
                {"index": 0, "delta": {"type": "input_json_delta", "partial_json": fragment}},
            )
        )

    assert acc.response.content[0].input == ""

    event = acc.apply(_sse("content_block_stop", {"index": 0}))

    assert event.kind == "content_block_stop"
    assert acc.response.content[0].input == '{"command": "echo hi"}'
    assert json.loads(acc.response.content[0].input) == {"command": "echo hi"}
    assert acc.tool_inputs == {}


def test_message_delta_sets_stop_reason_and_merges_usage():
    acc = StreamAccumulator()
    acc.apply(_sse("message_start", {"message": {"id": "m", "usage": {"input_tokens": 7}}}))
    event = acc.apply(
        _sse("message_delta", {"delta": {"stop_reason": "tool_use"}, "usage": {"output_tokens": 42}})
    )

    assert event.stop_reason == "tool_use"
    assert acc.response.stop_reason == "tool_use"
    assert acc.response.usage.input_tokens == 7
    assert acc.response.usage.output_tokens == 42


def test_malformed_data_line_is_skipped():
    acc = StreamAccumulator()
    acc.apply(_sse("content_block_start", {"index": 0, "content_block": {"type": "text", "text": ""}}))

    assert acc.apply(ServerSentEvent(event="content_block_delta", data="{not json")) is None

    acc.apply(_sse("content_block_delta", {"index": 0, "delta": {"type": "text_delta", "text": "ok"}}))
    assert acc.response.content[0].text == "ok"


def test_unknown_events_are_ignored():
    acc = StreamAccumulator()

    assert acc.apply(_sse("ping", {"type": "ping"})) is None
    assert acc.apply(_sse("message_stop", {"type": "message_stop"})) is None
    assert acc.response.content == []


def test_error_event_carries_stream_error():
    acc = StreamAccumulator()
    event = acc.apply(
        _sse("error", {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})
    )

    assert event.kind == "error"
    assert isinstance(event.error, StreamEventError)
    assert str(event.error) == "stream error: Overloaded"
    assert event.error.error_type == "overloaded_error"


def test_dispatch_event_routes_to_sink_methods():
    acc = StreamAccumulator()
    sink = RecordingSink()
    for sse in [
        _sse("message_start", {"message": {"id": "m"}}),
        _sse("content_block_start", {"index": 0, "content_block": {"type": "text", "text": ""}}),
        _sse("content_block_delta", {"index": 0, "delta": {"type": "text_delta", "text": "hi"}}),
        _sse("content_block_stop", {"index": 0}),
        _sse(
            "content_block_start",
            {"index": 1, "content_block": {"type": "tool_use", "id": "t", "name": "Glob", "input": {}}},
        ),
        _sse("content_block_delta", {"index": 1, "delta": {"type": "input_json_delta", "partial_json": "{}"}}),
        _sse("content_block_stop", {"index": 1}),
        _sse("message_delta", {"delta": {"stop_reason": "tool_use"}, "usage": {"output_tokens": 3}}),
    ]:
        event = acc.apply(sse)
        if event is not None:
            dispatch_event(sink, event)

    assert sink.calls == [
        ("message_start", "m"),
        ("block_start", 0, "text"),
        ("text", 0, "hi"),
        ("block_stop", 0),
        ("block_start", 1, "tool_use"),
        ("tool_input", 1, "{}"),
        ("block_stop", 1),
        ("message_delta", "tool_use", 3),
    ]


def test_dispatch_event_without_sink_is_noop():
    acc = StreamAccumulator()
    event = acc.apply(_sse("message_start", {"message": {"id": "m"}}))

    dispatch_event(None, event)
