"""Literal string-replacement edit tools."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from termpilot.logging import get_logger
from termpilot.tools.registry import Tool, ToolResult

log = get_logger(__name__)


def _load_text(path: Path) -> str:
    # Bytes round-trip keeps line endings exactly as they are on disk.
    return path.read_bytes().decode("utf-8")


def _store_text(path: Path, text: str) -> None:
    path.write_bytes(text.encode("utf-8"))


class EditInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    file_path: str = Field(min_length=1)
    old_string: str = ""
    new_string: str = ""


class EditTool(Tool):
    """Replace the first occurrence of a string in a file."""

    name = "Edit"
    description = "Edit a file by replacing the first occurrence of old_string with new_string."
    input_model = EditInput
    input_schema = {
        "type": "object",
        "properties": {
            "file_path": {"type": "string", "description": "Path to the file to edit"},
            "old_string": {"type": "string", "description": "The string to find and replace"},
            "new_string": {"type": "string", "description": "The replacement string"},
        },
        "required": ["file_path", "old_string", "new_string"],
    }

    async def execute(self, params: EditInput, call_id: str = "") -> ToolResult:
        if not params.old_string:
            return ToolResult(content="old_string must not be empty", is_error=True)

        file_path = self.resolve_path(params.file_path)
        try:
            text = _load_text(file_path)
        except (OSError, UnicodeDecodeError) as e:
            return ToolResult(content=f"Error: {e}", is_error=True)

        if params.old_string not in text:
            return ToolResult(content=f"String not found in file: {params.file_path}", is_error=True)

        try:
            _store_text(file_path, text.replace(params.old_string, params.new_string, 1))
        except OSError as e:
            log.error("Edit failed", path=str(file_path), error=str(e))
            return ToolResult(content=f"Error: {e}", is_error=True)
        return ToolResult(content=f"Edited {params.file_path}")


class EditOperation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    old_string: str = ""
    new_string: str = ""
    replace_all: bool = False


class MultiEditInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    file_path: str = Field(min_length=1)
    edits: list[EditOperation] = Field(min_length=1)


class MultiEditTool(Tool):
    """Apply several edits to one file, all or nothing."""

    name = "MultiEdit"
    description = (
        "Apply multiple edits to a single file. Edits run in order against the result of the previous "
        "one; if any edit fails nothing is written."
    )
    input_model = MultiEditInput
    input_schema = {
        "type": "object",
        "properties": {
            "file_path": {"type": "string", "description": "Path to the file to edit"},
            "edits": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "old_string": {"type": "string"},
                        "new_string": {"type": "string"},
                        "replace_all": {"type": "boolean"},
                    },
                    "required": ["old_string", "new_string"],
                },
            },
        },
        "required": ["file_path", "edits"],
    }

    async def execute(self, params: MultiEditInput, call_id: str = "") -> ToolResult:
        file_path = self.resolve_path(params.file_path)
        try:
            text = _load_text(file_path)
        except (OSError, UnicodeDecodeError) as e:
            return ToolResult(content=f"Error: {e}", is_error=True)

        for number, edit in enumerate(params.edits, start=1):
            if not edit.old_string:
                return ToolResult(content=f"Edit {number}: old_string must not be empty", is_error=True)
            if edit.old_string not in text:
                return ToolResult(content=f"Edit {number}: string not found in file", is_error=True)
            if edit.replace_all:
                text = text.replace(edit.old_string, edit.new_string)
            else:
                text = text.replace(edit.old_string, edit.new_string, 1)

        try:
            _store_text(file_path, text)
        except OSError as e:
            log.error("MultiEdit failed", path=str(file_path), error=str(e))
            return ToolResult(content=f"Error: {e}", is_error=True)
        return ToolResult(content=f"Applied {len(params.edits)} edits to {params.file_path}")
