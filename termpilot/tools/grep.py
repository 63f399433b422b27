"""Grep tool for recursive line search."""

import asyncio
import fnmatch
import os
import re
from pathlib import Path
from typing import Iterator

from pydantic import BaseModel, ConfigDict, Field

from termpilot.tools.read import split_lines
from termpilot.tools.registry import Tool, ToolResult, display_path

NO_MATCHES_FOUND = "No matches found"
_BINARY_SNIFF_BYTES = 8192


def compile_search_pattern(pattern: str) -> re.Pattern[str]:
    """Compile regex pattern with literal fallback for invalid regex input."""
    try:
        return re.compile(pattern)
    except re.error:
        return re.compile(re.escape(pattern))


def _iter_files(root: Path, include: str | None) -> Iterator[Path]:
    if root.is_file():
        yield root
        return
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            if include and not fnmatch.fnmatch(filename, include):
                continue
            yield Path(dirpath) / filename


class GrepInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pattern: str = Field(min_length=1)
    path: str | None = None
    include: str | None = None


class GrepTool(Tool):
    """Search file contents line by line."""

    name = "Grep"
    description = "Search for a pattern in files, recursively. Returns matching lines as path:line:text."
    input_model = GrepInput
    input_schema = {
        "type": "object",
        "properties": {
            "pattern": {"type": "string", "description": "Pattern to search for"},
            "path": {"type": "string", "description": "Directory or file to search in"},
            "include": {"type": "string", "description": "File pattern to include (e.g. '*.py')"},
        },
        "required": ["pattern"],
    }

    def _search(self, regex: re.Pattern[str], root: Path, include: str | None) -> list[str]:
        matches: list[str] = []
        for file_path in _iter_files(root, include):
            try:
                data = file_path.read_bytes()
            except OSError:
                continue
            if b"\0" in data[:_BINARY_SNIFF_BYTES]:
                continue
            shown = display_path(self.work_dir, file_path)
            text = data.decode("utf-8", errors="replace")
            for number, line in enumerate(split_lines(text), start=1):
                if regex.search(line):
                    matches.append(f"{shown}:{number}:{line}")
        return matches

    async def execute(self, params: GrepInput, call_id: str = "") -> ToolResult:
        root = self.resolve_path(params.path) if params.path else self.work_dir
        if not root.exists():
            return ToolResult(content=f"Path not found: {params.path}", is_error=True)

        regex = compile_search_pattern(params.pattern)
        loop = asyncio.get_running_loop()
        matches = await loop.run_in_executor(None, self._search, regex, root, params.include)

        if not matches:
            return ToolResult(content=NO_MATCHES_FOUND)
        return ToolResult(content="\n".join(matches) + "\n")
