"""Custom exceptions for termpilot."""


class TermpilotError(Exception):
    """Base exception for termpilot."""

    pass


class ConfigurationError(TermpilotError):
    """Configuration-related errors."""

    pass


class LLMError(TermpilotError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """Transport-level API errors (bad status, connection, body read)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StreamEventError(LLMError):
    """An `error` event received in the middle of a response stream."""

    def __init__(self, message: str, error_type: str = ""):
        super().__init__(f"stream error: {message}")
        self.error_type = error_type


class ToolError(TermpilotError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class ToolInputError(ToolError):
    """Tool input failed validation."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name
