"""Streaming Messages API client - direct HTTP calls with httpx."""

from typing import AsyncIterator

import httpx

from termpilot.config import DEFAULT_BASE_URL, DEFAULT_MAX_TOKENS
from termpilot.exceptions import LLMAPIError
from termpilot.llm.models import MessagesRequest, MessagesResponse
from termpilot.llm.stream import (
    StreamAccumulator,
    StreamEvent,
    StreamSink,
    dispatch_event,
    iter_sse,
)
from termpilot.logging import get_logger

log = get_logger(__name__)


class AnthropicClient:
    """Client for the streaming `/v1/messages` endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        api_version: str = "2023-06-01",
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = 600.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: Value sent in the `x-api-key` header
            base_url: API root, without the `/v1/messages` suffix
            api_version: Value sent in the `anthropic-version` header
            max_tokens: Used when a request leaves max_tokens unset
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.max_tokens = max_tokens or DEFAULT_MAX_TOKENS

        self.client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        return {
            "content-type": "application/json",
            "accept": "text/event-stream",
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
        }

    async def _stream(
        self,
        request: MessagesRequest,
        accumulator: StreamAccumulator,
    ) -> AsyncIterator[StreamEvent]:
        url = f"{self.base_url}/v1/messages"
        body = request.to_payload(self.max_tokens)

        try:
            log.debug("Calling Messages API", model=request.model, url=url, msg_count=len(request.messages))
            async with self.client.stream("POST", url, json=body, headers=self._headers()) as response:
                log.debug("Messages API response status", status=response.status_code)
                if not response.is_success:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMAPIError(
                        f"API error (status {response.status_code}): {error_text}",
                        status_code=response.status_code,
                    )

                async for sse in iter_sse(response.aiter_lines()):
                    event = accumulator.apply(sse)
                    if event is None:
                        continue
                    yield event
                    if event.error is not None:
                        raise event.error
        except httpx.HTTPError as e:
            raise LLMAPIError(f"stream transport error: {e}") from e

    async def stream_events(self, request: MessagesRequest) -> AsyncIterator[StreamEvent]:
        """Pull-style streaming: yield each tagged event as it is applied.

        The aggregated response is available as `event.response`. An `error`
        event is yielded and then raised as StreamEventError.
        """
        async for event in self._stream(request, StreamAccumulator()):
            yield event

    async def send_and_stream(
        self,
        request: MessagesRequest,
        sink: StreamSink | None = None,
    ) -> MessagesResponse:
        """Send a request and push every stream event to `sink`.

        Returns:
            The fully reconstructed response

        Raises:
            LLMAPIError: bad status, connection or read failure
            StreamEventError: the server sent an `error` event
        """
        accumulator = StreamAccumulator()
        async for event in self._stream(request, accumulator):
            dispatch_event(sink, event)
        response = accumulator.response
        log.debug(
            "Stream finished",
            blocks=len(response.content),
            stop_reason=response.stop_reason,
            output_tokens=response.usage.output_tokens,
        )
        return response

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
