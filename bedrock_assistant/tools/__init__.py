from .registry import ToolKind, ToolRegistry, TOOL_SPECS
from .schema import ToolConfiguration, ToolSpec, register
__all__ = ["ToolKind", "ToolRegistry", "TOOL_SPECS", "ToolConfiguration", "ToolSpec", "register"]
