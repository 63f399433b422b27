"""Tool registry and base tool class."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError, model_validator

from termpilot.exceptions import ToolInputError, ToolNotFoundError
from termpilot.logging import get_logger

log = get_logger(__name__)

_MISSING_ERROR_TYPES = {"missing", "string_too_short", "too_short"}


def resolve_path(work_dir: Path, path: str) -> Path:
    """Join relative paths onto the work dir; absolute paths pass through."""
    candidate = Path(path).expanduser()
    if candidate.is_absolute():
        return candidate
    return work_dir / candidate


def display_path(work_dir: Path, path: Path) -> str:
    """Render a path relative to the work dir when it lives under it."""
    try:
        return str(path.relative_to(work_dir))
    except ValueError:
        return str(path)


def format_validation_error(error: ValidationError) -> str:
    """Turn the first pydantic error into a short message for the model."""
    details = error.errors()
    if not details:
        return "Invalid input"
    first = details[0]
    field_name = ".".join(str(part) for part in first.get("loc", ())) or "input"
    if first.get("type") in _MISSING_ERROR_TYPES:
        return f"Missing required parameter: {field_name}"
    return f"Invalid parameter {field_name}: {first.get('msg', 'invalid value')}"


@dataclass
class ToolCall:
    """A tool invocation decoded from a finished tool_use block."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


class ToolResult(BaseModel):
    """Result from tool execution."""

    tool_use_id: str = ""
    content: str = ""
    is_error: bool = False

    @model_validator(mode="after")
    def _normalize_failure_content(self) -> "ToolResult":
        """Ensure failed results always carry a message."""
        if self.is_error and not self.content.strip():
            self.content = "Tool execution failed"
        return self

    def to_block(self) -> dict[str, Any]:
        """Serialize as a `tool_result` content block."""
        return {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
            "is_error": self.is_error,
        }


class Tool(ABC):
    """Base class for all tools."""

    name: str = ""
    description: str = ""
    input_schema: dict[str, Any] = {}
    input_model: type[BaseModel] = BaseModel

    def __init__(self, work_dir: Path | str):
        self.work_dir = Path(work_dir)

    @abstractmethod
    async def execute(self, params: Any, call_id: str = "") -> ToolResult:
        """Execute the tool.

        Args:
            params: Validated instance of `input_model`
            call_id: Id of the originating tool_use block

        Returns:
            ToolResult with content and error flag
        """
        pass

    def get_definition(self) -> dict[str, Any]:
        """Get the tool definition advertised to the model."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }

    def parse_input(self, arguments: dict[str, Any]) -> Any:
        """Validate raw arguments into the tool's input model.

        Raises:
            ToolInputError if invalid
        """
        try:
            return self.input_model.model_validate(arguments or {})
        except ValidationError as e:
            raise ToolInputError(self.name, format_validation_error(e)) from e

    def resolve_path(self, path: str) -> Path:
        return resolve_path(self.work_dir, path)


class ToolRegistry:
    """Registry for managing available tools."""

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Args:
            tool: Tool instance to register
        """
        if not tool.name:
            raise ValueError("Tool must have a name")

        log.debug("Registering tool", tool=tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def get_definitions(self) -> list[dict[str, Any]]:
        """Get all tool definitions, in registration order."""
        return [tool.get_definition() for tool in self._tools.values()]
