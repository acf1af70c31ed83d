"""Tool specifications and their wire format."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Sequence, Tuple

from ..errors import ConfigError
from ..structured import StructuredValue

__all__ = [
    "PropertyType", "Property", "ToolSchema", "ToolSpec",
    "ToolConfiguration", "register",
]


class PropertyType(str, Enum):
    STRING = "string"
    OBJECT = "object"
    NUMBER = "number"
    INTEGER = "integer"
    ARRAY = "array"
    BOOLEAN = "boolean"
    NULL = "null"


@dataclass(frozen=True)
class Property:
    type: PropertyType
    description: str

    def to_structured(self) -> Dict[str, StructuredValue]:
        return {"type": self.type.value, "description": self.description}


@dataclass(frozen=True)
class ToolSchema:
    """An object schema: named properties plus the required subset."""

    properties: Tuple[Tuple[str, Property], ...]
    required: Tuple[str, ...]

    @classmethod
    def build(cls, properties: Dict[str, Property], required: Sequence[str]) -> "ToolSchema":
        return cls(tuple(properties.items()), tuple(required))

    def property_names(self) -> List[str]:
        return [name for name, _ in self.properties]

    def validate(self) -> None:
        names = self.property_names()
        if len(set(names)) != len(names):
            raise ConfigError(f"Duplicate property names in schema: {names}")
        unknown = [name for name in self.required if name not in names]
        if unknown:
            raise ConfigError(f"Required properties not declared: {', '.join(unknown)}")

    def to_structured(self) -> Dict[str, StructuredValue]:
        return {
            "type": "object",
            "properties": {name: prop.to_structured() for name, prop in self.properties},
            "required": list(self.required),
        }

    @classmethod
    def from_structured(cls, data: Any) -> "ToolSchema":
        """Parse a wire schema. Raises ConfigError when it is not an object schema."""
        if not isinstance(data, dict):
            raise ConfigError("Tool schema must be an object")
        if data.get("type") != "object":
            raise ConfigError("Tool schema must declare type: object")
        raw_properties = data.get("properties")
        if not isinstance(raw_properties, dict):
            raise ConfigError("Tool schema must declare a properties mapping")
        raw_required = data.get("required")
        if not isinstance(raw_required, list) or not all(isinstance(r, str) for r in raw_required):
            raise ConfigError("Tool schema must declare a required list of property names")

        properties: Dict[str, Property] = {}
        for name, raw in raw_properties.items():
            if not isinstance(raw, dict):
                raise ConfigError(f"Property '{name}' must be an object")
            try:
                prop_type = PropertyType(str(raw.get("type", "")).lower())
            except ValueError:
                raise ConfigError(f"Property '{name}' has unsupported type: {raw.get('type')!r}")
            properties[name] = Property(prop_type, str(raw.get("description", "")))

        schema = cls.build(properties, raw_required)
        schema.validate()
        return schema


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_schema: ToolSchema

    def to_wire(self) -> dict:
        """OpenAI-compatible function schema, the shape litellm expects."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema.to_structured(),
            },
        }

    @classmethod
    def from_wire(cls, data: dict) -> "ToolSpec":
        try:
            function = data["function"]
            return cls(
                name=function["name"],
                description=function.get("description", ""),
                input_schema=ToolSchema.from_structured(function.get("parameters")),
            )
        except (KeyError, TypeError) as e:
            raise ConfigError(f"Malformed tool definition: {e}")


@dataclass(frozen=True)
class ToolConfiguration:
    """Immutable tool catalog sent with every model turn."""

    tools: Tuple[ToolSpec, ...]

    @property
    def names(self) -> List[str]:
        return [spec.name for spec in self.tools]

    def get(self, name: str) -> ToolSpec | None:
        return next((spec for spec in self.tools if spec.name == name), None)

    def to_wire(self) -> List[dict]:
        return [spec.to_wire() for spec in self.tools]


def register(tools: Sequence[ToolSpec]) -> ToolConfiguration:
    """Validate a set of tool specs and freeze them into a configuration."""
    seen = set()
    for spec in tools:
        if not spec.name:
            raise ConfigError("Tool name must not be empty")
        if spec.name in seen:
            raise ConfigError(f"Duplicate tool name: {spec.name}")
        seen.add(spec.name)
        spec.input_schema.validate()
        # Round-trip through the wire shape so hand-built schemas get the same checks.
        ToolSchema.from_structured(spec.input_schema.to_structured())
    return ToolConfiguration(tuple(tools))
