"""JSON-like values that cross the tool input/output boundary.

Tool inputs arrive from the model as JSON and tool schemas leave as JSON, so
both sides go through one recursive representation: ``None``, ``bool``,
``int``/``float``, ``str``, ``list`` and ``dict`` with string keys.
"""

from __future__ import annotations

import json
import math
from typing import Any, Dict, List, Union

__all__ = ["StructuredValue", "to_structured", "parse_tool_input", "dump_structured"]

StructuredValue = Union[
    None, bool, int, float, str, List["StructuredValue"], Dict[str, "StructuredValue"]
]


def to_structured(value: Any) -> StructuredValue:
    """Validate ``value`` and return it as a StructuredValue.

    Tuples become lists; anything that has no JSON counterpart (sets, bytes,
    non-string keys, NaN/infinity, arbitrary objects) raises ``TypeError`` or
    ``ValueError``.
    """
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError(f"Non-finite number is not a structured value: {value!r}")
        return value
    if isinstance(value, (list, tuple)):
        return [to_structured(item) for item in value]
    if isinstance(value, dict):
        result: Dict[str, StructuredValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"Object keys must be strings, got {type(key).__name__}")
            result[key] = to_structured(item)
        return result
    raise TypeError(f"{type(value).__name__} is not a structured value")


def parse_tool_input(text: str) -> StructuredValue:
    """Parse concatenated tool-input fragments.

    Malformed JSON is not an error: the literal text becomes a single string
    value so the turn can still be recorded and answered.
    """
    try:
        return to_structured(json.loads(text))
    except (json.JSONDecodeError, TypeError, ValueError):
        return text


def dump_structured(value: StructuredValue) -> str:
    return json.dumps(value, ensure_ascii=False)
