"""Tool executor: dispatches tool calls and never raises."""

from pathlib import Path
from typing import Any

from termpilot.config import ToolsConfig, get_config
from termpilot.exceptions import ToolError, ToolNotFoundError
from termpilot.logging import get_logger
from termpilot.tools.bash import BackgroundShellManager, BashOutputTool, BashTool, KillBashTool
from termpilot.tools.edit import EditTool, MultiEditTool
from termpilot.tools.glob import GlobTool
from termpilot.tools.grep import GrepTool
from termpilot.tools.read import ReadTool
from termpilot.tools.registry import ToolCall, ToolRegistry, ToolResult
from termpilot.tools.write import WriteTool

log = get_logger(__name__)


class ToolExecutor:
    """Execute named tool calls against a fixed working directory.

    Owns the tool registry and the registry of background shells. Call
    `close()` at the end of a session to terminate leftover shells.
    """

    def __init__(self, work_dir: Path | str, config: ToolsConfig | None = None):
        self.work_dir = Path(work_dir).expanduser().resolve()
        self.config = config or get_config().tools
        self.shells = BackgroundShellManager(self.work_dir)
        self.registry = ToolRegistry()
        self._register_default_tools()

    def _register_default_tools(self) -> None:
        """Register the default tool set, in catalog order."""
        for tool in (
            BashTool(
                self.work_dir,
                self.shells,
                default_timeout_ms=self.config.bash_default_timeout_ms,
                max_timeout_ms=self.config.bash_max_timeout_ms,
            ),
            ReadTool(self.work_dir),
            WriteTool(self.work_dir),
            EditTool(self.work_dir),
            MultiEditTool(self.work_dir),
            GlobTool(self.work_dir),
            GrepTool(self.work_dir),
            BashOutputTool(self.work_dir, self.shells),
            KillBashTool(self.work_dir, self.shells),
        ):
            self.registry.register(tool)

    def get_definitions(self) -> list[dict[str, Any]]:
        return self.registry.get_definitions()

    async def execute(self, call: ToolCall) -> ToolResult:
        """Execute one tool call.

        Every failure, including unknown tools and invalid input, comes back
        as a result with `is_error=True`.
        """
        try:
            tool = self.registry.get(call.name)
        except ToolNotFoundError as e:
            log.warning("Unknown tool requested", tool=call.name, call_id=call.id)
            return ToolResult(tool_use_id=call.id, content=str(e), is_error=True)

        try:
            params = tool.parse_input(call.input)
            log.info("Executing tool", tool=call.name, call_id=call.id)
            result = await tool.execute(params, call_id=call.id)
        except ToolError as e:
            result = ToolResult(content=str(e), is_error=True)
        except Exception as e:
            log.error("Tool execution failed", tool=call.name, error=str(e), exc_info=True)
            result = ToolResult(content=f"Error: {e}", is_error=True)

        log.info("Tool executed", tool=call.name, is_error=result.is_error)
        return result.model_copy(update={"tool_use_id": call.id})

    async def close(self) -> None:
        """Terminate background shells still registered."""
        await self.shells.close()
