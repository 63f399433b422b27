"""Write tool for writing file contents."""

from pydantic import BaseModel, ConfigDict, Field

from termpilot.logging import get_logger
from termpilot.tools.registry import Tool, ToolResult

log = get_logger(__name__)


class WriteInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    file_path: str = Field(min_length=1)
    content: str


class WriteTool(Tool):
    """Write content to files."""

    name = "Write"
    description = "Write content to a file, creating it if it doesn't exist."
    input_model = WriteInput
    input_schema = {
        "type": "object",
        "properties": {
            "file_path": {"type": "string", "description": "Path to the file to write"},
            "content": {"type": "string", "description": "Content to write to the file"},
        },
        "required": ["file_path", "content"],
    }

    async def execute(self, params: WriteInput, call_id: str = "") -> ToolResult:
        """Create parent directories and overwrite the file."""
        file_path = self.resolve_path(params.file_path)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(params.content.encode("utf-8"))
        except OSError as e:
            log.error("Write failed", path=str(file_path), error=str(e))
            return ToolResult(content=f"Error: {e}", is_error=True)

        return ToolResult(content=f"Wrote {len(params.content)} chars to {params.file_path}")
