import json

import httpx
import pytest

from termpilot.exceptions import LLMAPIError, StreamEventError
from termpilot.llm import AnthropicClient, Message, MessagesRequest, StreamSink


def _sse_body(events: list[tuple[str, dict]]) -> str:
    chunks = []
    for name, payload in events:
        chunks.append(f"event: {name}\ndata: {json.dumps(payload)}\n\n")
    return "".join(chunks)


TOOL_USE_STREAM = _sse_body(
    [
        (
            "message_start",
            {
                "type": "message_start",
                "message": {
                    "id": "msg_01",
                    "type": "message",
                    "role": "assistant",
                    "model": "claude-test",
                    "content": [],
                    "usage": {"input_tokens": 25, "output_tokens": 1},
                },
            },
        ),
        ("content_block_start", {"index": 0, "content_block": {"type": "text", "text": ""}}),
        ("ping", {"type": "ping"}),
        ("content_block_delta", {"index": 0, "delta": {"type": "text_delta", "text": "Let me check."}}),
        ("content_block_stop", {"index": 0}),
        (
            "content_block_start",
            {"index": 1, "content_block": {"type": "tool_use", "id": "toolu_1", "name": "Bash", "input": {}}},
        ),
        ("content_block_delta", {"index": 1, "delta": {"type": "input_json_delta", "partial_json": ""}}),
        ("content_block_delta", {"index": 1, "delta": {"type": "input_json_delta", "partial_json": '{"command"'}}),
        ("content_block_delta", {"index": 1, "delta": {"type": "input_json_delta", "partial_json": ': "ls"}'}}),
        ("content_block_stop", {"index": 1}),
        ("message_delta", {"delta": {"stop_reason": "tool_use"}, "usage": {"output_tokens": 30}}),
        ("message_stop", {"type": "message_stop"}),
    ]
)


def _client(handler) -> AnthropicClient:
    return AnthropicClient(
        api_key="test-key",
        base_url="https://api.example.test/",
        transport=httpx.MockTransport(handler),
    )


def _request(**overrides) -> MessagesRequest:
    values = {"model": "claude-test", "messages": [Message(role="user", content="hi")]}
    values.update(overrides)
    return MessagesRequest(**values)


class TextSink(StreamSink):
    def __init__(self):
        self.text: list[str] = []
        self.errors: list[str] = []

    def on_text(self, index, text):
        self.text.append(text)

    def on_error(self, error):
        self.errors.append(str(error))


@pytest.mark.asyncio
async def test_send_and_stream_posts_expected_request():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, text=TOOL_USE_STREAM, headers={"content-type": "text/event-stream"})

    client = _client(handler)
    try:
        await client.send_and_stream(_request(system="be brief", tools=[{"name": "Bash"}]))
    finally:
        await client.close()

    assert seen["url"] == "https://api.example.test/v1/messages"
    assert seen["headers"]["x-api-key"] == "test-key"
    assert seen["headers"]["anthropic-version"] == "2023-06-01"
    assert seen["headers"]["content-type"] == "application/json"
    assert seen["body"] == {
        "model": "claude-test",
        "messages": [{"role": "user", "content": "hi"}],
        "max_tokens": 16384,
        "stream": True,
        "system": "be brief",
        "tools": [{"name": "Bash"}],
    }


@pytest.mark.asyncio
async def test_request_omits_empty_system_and_tools():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, text=TOOL_USE_STREAM)

    client = _client(handler)
    try:
        await client.send_and_stream(_request(max_tokens=100))
    finally:
        await client.close()

    assert "system" not in seen["body"]
    assert "tools" not in seen["body"]
    assert seen["body"]["max_tokens"] == 100


@pytest.mark.asyncio
async def test_send_and_stream_reconstructs_response_and_pushes_text():
    client = _client(lambda request: httpx.Response(200, text=TOOL_USE_STREAM))
    sink = TextSink()
    try:
        response = await client.send_and_stream(_request(), sink)
    finally:
        await client.close()

    assert response.id == "msg_01"
    assert response.stop_reason == "tool_use"
    assert response.usage.input_tokens == 25
    assert response.usage.output_tokens == 30
    assert sink.text == ["Let me check."]
    assert [block.type for block in response.content] == ["text", "tool_use"]
    tool = response.tool_use_blocks[0]
    assert tool.id == "toolu_1"
    assert tool.name == "Bash"
    assert json.loads(tool.input) == {"command": "ls"}


@pytest.mark.asyncio
async def test_stream_events_yields_tagged_events_in_order():
    client = _client(lambda request: httpx.Response(200, text=TOOL_USE_STREAM))
    try:
        kinds = [event.kind async for event in client.stream_events(_request())]
    finally:
        await client.close()

    assert kinds == [
        "message_start",
        "content_block_start",
        "text_delta",
        "content_block_stop",
        "content_block_start",
        "input_json_delta",
        "input_json_delta",
        "input_json_delta",
        "content_block_stop",
        "message_delta",
    ]


@pytest.mark.asyncio
async def test_non_success_status_raises_api_error_with_body():
    client = _client(lambda request: httpx.Response(529, text='{"error": "overloaded"}'))
    try:
        with pytest.raises(LLMAPIError) as exc_info:
            await client.send_and_stream(_request())
    finally:
        await client.close()

    assert exc_info.value.status_code == 529
    assert "status 529" in str(exc_info.value)
    assert "overloaded" in str(exc_info.value)


@pytest.mark.asyncio
async def test_error_event_is_pushed_then_raised():
    body = _sse_body(
        [
            ("message_start", {"message": {"id": "m"}}),
            ("error", {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}),
        ]
    )
    client = _client(lambda request: httpx.Response(200, text=body))
    sink = TextSink()
    try:
        with pytest.raises(StreamEventError) as exc_info:
            await client.send_and_stream(_request(), sink)
    finally:
        await client.close()

    assert sink.errors == ["stream error: Overloaded"]
    assert exc_info.value.error_type == "overloaded_error"


@pytest.mark.asyncio
async def test_transport_failure_becomes_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    try:
        with pytest.raises(LLMAPIError) as exc_info:
            await client.send_and_stream(_request())
    finally:
        await client.close()

    assert exc_info.value.status_code is None
    assert "connection refused" in str(exc_info.value)
