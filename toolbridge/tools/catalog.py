"""
Tool definitions and the per-session tool catalog.

The catalog is built once when a session connects and is never mutated
afterwards. It renders itself in the OpenAI function-tool format that
LiteLLM expects:

    {"type": "function", "function": {"name": ..., "description": ..., "parameters": ...}}
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from toolbridge.errors import SchemaError
from toolbridge.tools.schema import normalize_schema


class ToolDefinition(BaseModel):
    """A single tool exposed by the tool host."""

    name: str = Field(min_length=1, description="Tool name as known to the tool host")
    description: str = Field(default="", description="Human-readable description")
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON-Schema-like parameter contract",
    )

    model_config = ConfigDict(frozen=True)

    def normalized(self) -> ToolDefinition:
        """Return a copy whose parameter schema has been repaired."""
        return self.model_copy(update={"parameters": normalize_schema(self.parameters)})

    def to_openai_tool(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": copy.deepcopy(self.parameters),
            },
        }


class ToolCatalog:
    """
    Immutable, ordered set of normalized tool definitions.

    Use ``ToolCatalog.build()`` so every schema passes through normalization.

    Example:
        >>> catalog = ToolCatalog.build([ToolDefinition(name="search")])
        >>> catalog.names()
        ('search',)
    """

    __slots__ = ("_tools",)

    def __init__(self, tools: Iterable[ToolDefinition] = ()):
        self._tools: tuple[ToolDefinition, ...] = tuple(tools)

    @classmethod
    def build(cls, definitions: Iterable[ToolDefinition | Mapping[str, Any]]) -> ToolCatalog:
        """
        Normalize and freeze a sequence of tool definitions.

        Raises:
            SchemaError: If a definition or its parameter schema is unusable.
        """
        normalized = []
        for definition in definitions:
            if not isinstance(definition, ToolDefinition):
                try:
                    definition = ToolDefinition.model_validate(definition)
                except ValidationError as e:
                    raise SchemaError(f"Invalid tool definition: {e}", cause=e) from e
            normalized.append(definition.normalized())
        return cls(normalized)

    @property
    def tools(self) -> tuple[ToolDefinition, ...]:
        return self._tools

    def names(self) -> tuple[str, ...]:
        return tuple(tool.name for tool in self._tools)

    def get(self, name: str) -> ToolDefinition | None:
        for tool in self._tools:
            if tool.name == name:
                return tool
        return None

    def to_openai_tools(self) -> list[dict[str, Any]]:
        return [tool.to_openai_tool() for tool in self._tools]

    def __contains__(self, name: object) -> bool:
        return any(tool.name == name for tool in self._tools)

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __repr__(self) -> str:
        return f"ToolCatalog(names={self.names()!r})"
