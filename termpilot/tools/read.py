"""Read tool for reading file contents."""

from pydantic import BaseModel, ConfigDict, Field

from termpilot.logging import get_logger
from termpilot.tools.registry import Tool, ToolResult

log = get_logger(__name__)

LINE_SEPARATOR = "│"


def split_lines(text: str) -> list[str]:
    """Split on newlines; a trailing newline does not start an extra line."""
    lines = text.split("\n")
    if len(lines) > 1 and lines[-1] == "":
        lines.pop()
    return lines


def number_lines(lines: list[str], first_line: int) -> str:
    """Prefix each line with its right-aligned 1-based line number."""
    return "".join(
        f"{number:>5}{LINE_SEPARATOR}{line}\n"
        for number, line in enumerate(lines, start=first_line)
    )


class ReadInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    file_path: str = Field(min_length=1)
    offset: int | None = None
    limit: int | None = None


class ReadTool(Tool):
    """Read file contents."""

    name = "Read"
    description = "Read the contents of a file. Supports offset and limit for partial reads."
    input_model = ReadInput
    input_schema = {
        "type": "object",
        "properties": {
            "file_path": {"type": "string", "description": "Path to the file to read"},
            "offset": {"type": "number", "description": "Line number to start reading from (1-based)"},
            "limit": {"type": "number", "description": "Number of lines to read"},
        },
        "required": ["file_path"],
    }

    async def execute(self, params: ReadInput, call_id: str = "") -> ToolResult:
        """Read a file, optionally windowed by 1-based offset and limit."""
        file_path = self.resolve_path(params.file_path)
        try:
            data = file_path.read_bytes()
        except OSError as e:
            log.debug("Read failed", path=str(file_path), error=str(e))
            return ToolResult(content=f"Error: {e}", is_error=True)

        lines = split_lines(data.decode("utf-8", errors="replace"))

        start = 0
        if params.offset is not None:
            start = max(params.offset - 1, 0)
        if start >= len(lines):
            return ToolResult(
                content=f"Offset {params.offset} is beyond end of file ({len(lines)} lines)",
                is_error=True,
            )

        end = len(lines)
        if params.limit is not None and params.limit > 0:
            end = min(start + params.limit, end)

        return ToolResult(content=number_lines(lines[start:end], first_line=start + 1))
