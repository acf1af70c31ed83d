"""Structured error types for the assistant."""


class AssistantError(Exception):
    """Base error for all assistant operations."""
    pass


class ConfigError(AssistantError):
    """Invalid tool catalog or configuration. Fatal at startup."""
    pass


class TransportError(AssistantError):
    """The model service could not be reached or failed mid-request."""
    pass


class ProtocolError(AssistantError):
    """The model service returned something the conversation cannot accept."""
    pass


class UnknownToolError(ProtocolError):
    """The model asked for a tool that is not registered."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"The requested tool with name {tool_name} does not exist")


class ToolExecutionError(AssistantError):
    """Error raised inside a tool executor. Never escapes the executor boundary."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        self.message = message
        super().__init__(f"{tool_name} error: {message}")


class DecodeError(ToolExecutionError):
    """Bytes or text that could not be decoded (UTF-8, base64, image data)."""
    pass
