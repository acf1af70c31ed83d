"""Executor contract and helpers for reading structured tool input."""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

from ..errors import ToolExecutionError
from ..messages import ToolResult
from ..structured import StructuredValue


class Executor(Protocol):
    """A tool handler: ``(tool_use_id, input) -> ToolResult``. Must not raise."""

    def __call__(self, tool_use_id: str, input: StructuredValue) -> ToolResult: ...


def as_object(tool_name: str, input: StructuredValue) -> Dict[str, StructuredValue]:
    if not isinstance(input, dict):
        raise ToolExecutionError(tool_name, "failed to convert input to object")
    return input


def require_string(tool_name: str, fields: Dict[str, StructuredValue],
                   key: str, what: str) -> str:
    """Return ``fields[key]`` as a string; ``what`` names it in error messages."""
    if key not in fields or fields[key] is None:
        raise ToolExecutionError(tool_name, f"{what} is not provided")
    value = fields[key]
    if not isinstance(value, str):
        raise ToolExecutionError(tool_name, f"{what} is not a string")
    return value


def optional_int(fields: Dict[str, StructuredValue], key: str, default: int) -> int:
    """Numbers may arrive as floats; anything that is not a number means default."""
    value: Any = fields.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(value)


def optional_string(fields: Dict[str, StructuredValue], key: str) -> Optional[str]:
    value = fields.get(key)
    return value if isinstance(value, str) else None
