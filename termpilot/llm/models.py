"""Message and response types exchanged with the Messages API."""

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Message:
    """A message in the conversation."""

    role: str  # "user", "assistant"
    content: str | list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass
class Usage:
    """Token counters reported by the server."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    def merge(self, payload: dict[str, Any] | None) -> None:
        """Overwrite the counters present in `payload`, keep the rest."""
        if not payload:
            return
        for key in (
            "input_tokens",
            "output_tokens",
            "cache_creation_input_tokens",
            "cache_read_input_tokens",
        ):
            value = payload.get(key)
            if isinstance(value, int):
                setattr(self, key, value)


@dataclass
class ContentBlock:
    """One unit of model output, addressed by its stream index.

    `input` holds the raw JSON text of a tool_use block. It is only
    meaningful once the block has been stopped.
    """

    type: str = ""
    id: str = ""
    name: str = ""
    text: str = ""
    input: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ContentBlock":
        raw_input = payload.get("input")
        return cls(
            type=str(payload.get("type") or ""),
            id=str(payload.get("id") or ""),
            name=str(payload.get("name") or ""),
            text=str(payload.get("text") or ""),
            # Servers send `{}` at block start; real input arrives as deltas.
            input=json.dumps(raw_input) if raw_input else "",
        )

    @property
    def is_tool_use(self) -> bool:
        return self.type == "tool_use"


@dataclass
class MessagesResponse:
    """Aggregated response reconstructed from the event stream."""

    id: str = ""
    type: str = "message"
    role: str = "assistant"
    model: str = ""
    content: list[ContentBlock] = field(default_factory=list)
    stop_reason: str = ""
    usage: Usage = field(default_factory=Usage)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "MessagesResponse":
        usage = Usage()
        usage.merge(payload.get("usage"))
        return cls(
            id=str(payload.get("id") or ""),
            type=str(payload.get("type") or "message"),
            role=str(payload.get("role") or "assistant"),
            model=str(payload.get("model") or ""),
            stop_reason=str(payload.get("stop_reason") or ""),
            usage=usage,
        )

    def ensure_index(self, index: int) -> ContentBlock:
        """Grow content with empty placeholders so `index` is addressable."""
        while len(self.content) <= index:
            self.content.append(ContentBlock())
        return self.content[index]

    @property
    def text(self) -> str:
        return "".join(block.text for block in self.content if block.type == "text")

    @property
    def tool_use_blocks(self) -> list[ContentBlock]:
        return [block for block in self.content if block.is_tool_use]


@dataclass
class MessagesRequest:
    """Body of a streaming Messages API call."""

    model: str
    messages: list[Message]
    system: str = ""
    max_tokens: int = 0
    tools: list[dict[str, Any]] = field(default_factory=list)

    def to_payload(self, default_max_tokens: int) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [message.to_dict() for message in self.messages],
            "max_tokens": self.max_tokens or default_max_tokens,
            "stream": True,
        }
        if self.system:
            payload["system"] = self.system
        if self.tools:
            payload["tools"] = self.tools
        return payload
