"""Custom exceptions for codeloop."""


class CodeloopError(Exception):
    """Base exception for codeloop."""

    pass


class ConfigurationError(CodeloopError):
    """Configuration-related errors."""

    pass


class LLMError(CodeloopError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """LLM API errors (rate limit, auth, etc.)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StreamError(CodeloopError):
    """Model stream reported an error value that was not an exception."""

    pass


class StreamAbortedError(CodeloopError):
    """Model stream stopped because the abort event fired."""

    def __init__(self, message: str = "Model stream aborted"):
        super().__init__(message)


class ToolError(CodeloopError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name
