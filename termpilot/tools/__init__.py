"""Tools package for termpilot."""

from termpilot.tools.bash import (
    BackgroundShell,
    BackgroundShellManager,
    BashOutputTool,
    BashTool,
    KillBashTool,
)
from termpilot.tools.edit import EditTool, MultiEditTool
from termpilot.tools.executor import ToolExecutor
from termpilot.tools.glob import GlobTool
from termpilot.tools.grep import GrepTool
from termpilot.tools.read import ReadTool
from termpilot.tools.registry import Tool, ToolCall, ToolRegistry, ToolResult
from termpilot.tools.write import WriteTool

__all__ = [
    "BackgroundShell",
    "BackgroundShellManager",
    "BashOutputTool",
    "BashTool",
    "EditTool",
    "GlobTool",
    "GrepTool",
    "KillBashTool",
    "MultiEditTool",
    "ReadTool",
    "Tool",
    "ToolCall",
    "ToolExecutor",
    "ToolRegistry",
    "ToolResult",
    "WriteTool",
]
