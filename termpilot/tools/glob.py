"""Glob tool for finding files by pattern."""

import asyncio
import glob
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from termpilot.tools.registry import Tool, ToolResult, display_path

NO_FILES_FOUND = "No files found"


class GlobInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pattern: str = Field(min_length=1)


class GlobTool(Tool):
    """Find files by pattern."""

    name = "Glob"
    description = "Find files matching a glob pattern."
    input_model = GlobInput
    input_schema = {
        "type": "object",
        "properties": {
            "pattern": {"type": "string", "description": "Glob pattern to match files (e.g. '**/*.py')"},
        },
        "required": ["pattern"],
    }

    def _match(self, pattern: str) -> list[str]:
        if os.path.isabs(os.path.expanduser(pattern)):
            matches = glob.glob(os.path.expanduser(pattern), recursive=True)
            return sorted(display_path(self.work_dir, Path(match)) for match in matches)
        return sorted(glob.glob(pattern, root_dir=self.work_dir, recursive=True))

    async def execute(self, params: GlobInput, call_id: str = "") -> ToolResult:
        """Match the pattern under the work dir; paths come back relative to it."""
        loop = asyncio.get_running_loop()
        matches = await loop.run_in_executor(None, self._match, params.pattern)

        if not matches:
            return ToolResult(content=NO_FILES_FOUND)
        return ToolResult(content="\n".join(matches))
