"""Streaming Messages API client and response types."""

from termpilot.config import Config
from termpilot.llm.client import AnthropicClient
from termpilot.llm.models import (
    ContentBlock,
    Message,
    MessagesRequest,
    MessagesResponse,
    Usage,
)
from termpilot.llm.stream import (
    ServerSentEvent,
    StreamAccumulator,
    StreamEvent,
    StreamSink,
    dispatch_event,
    iter_sse,
)


def create_client(config: Config) -> AnthropicClient:
    """Create a client from the `api` section of the configuration."""
    return AnthropicClient(
        api_key=config.api.api_key,
        base_url=config.api.base_url,
        api_version=config.api.api_version,
        max_tokens=config.api.max_tokens,
        timeout=config.api.timeout,
    )


__all__ = [
    "AnthropicClient",
    "ContentBlock",
    "Message",
    "MessagesRequest",
    "MessagesResponse",
    "ServerSentEvent",
    "StreamAccumulator",
    "StreamEvent",
    "StreamSink",
    "Usage",
    "create_client",
    "dispatch_event",
    "iter_sse",
]
