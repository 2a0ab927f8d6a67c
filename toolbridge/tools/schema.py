"""
Tool parameter schema repair.

Tool hosts publish JSON-Schema-like parameter contracts that several
completion providers refuse as-is. Two repairs are applied:

- an ``array`` node without ``items`` gets ``{"type": "object"}``
- a union ``type`` (a list of several type names) collapses to its first entry

Nothing else about the schema is validated or changed.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from toolbridge.errors import SchemaError

logger = logging.getLogger(__name__)

DEFAULT_ITEMS: dict[str, Any] = {"type": "object"}

# Keywords whose value is a single subschema or a name -> subschema mapping.
_SUBSCHEMA_KEYS = ("items", "additionalProperties", "not")
_SCHEMA_MAP_KEYS = ("properties", "patternProperties", "$defs", "definitions")
_SCHEMA_LIST_KEYS = ("anyOf", "oneOf", "allOf", "prefixItems")


def normalize_schema(
    schema: Mapping[str, Any] | None,
    default_items: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Return a repaired deep copy of ``schema``.

    Args:
        schema: Parameter schema as published by the tool host. ``None`` is
                treated as a tool without parameters.
        default_items: Subschema used for arrays that lack ``items``
                       (default: ``{"type": "object"}``).

    Returns:
        A new schema dict; the input is never modified.

    Raises:
        SchemaError: If ``schema`` is not a mapping.

    Example:
        >>> normalize_schema({"type": "object", "properties": {"a": {"type": "array"}}})
        {'type': 'object', 'properties': {'a': {'type': 'array', 'items': {'type': 'object'}}}}
    """
    if schema is None:
        return {"type": "object", "properties": {}}
    if not isinstance(schema, Mapping):
        raise SchemaError(
            f"Tool parameter schema must be an object, got {type(schema).__name__}"
        )

    items = DEFAULT_ITEMS
    if default_items is not None:
        # Arrays inside the default itself fall back to DEFAULT_ITEMS
        items = copy.deepcopy(dict(default_items))
        _repair(items, DEFAULT_ITEMS, path="default_items")
    result = copy.deepcopy(dict(schema))
    _repair(result, items, path="$")
    return result


def _repair(node: dict[str, Any], default_items: Mapping[str, Any], path: str) -> None:
    declared = node.get("type")
    if isinstance(declared, list) and len(declared) > 1:
        node["type"] = declared[0]
        logger.debug(f"Collapsed union type {declared} at {path}")

    if node.get("type") == "array" and "items" not in node:
        node["items"] = copy.deepcopy(dict(default_items))
        logger.debug(f"Added default items to array at {path}")

    for key in _SUBSCHEMA_KEYS:
        child = node.get(key)
        if isinstance(child, dict):
            _repair(child, default_items, f"{path}.{key}")
        elif key == "items" and isinstance(child, list):
            # Tuple-form items: one subschema per position
            for index, entry in enumerate(child):
                if isinstance(entry, dict):
                    _repair(entry, default_items, f"{path}.items[{index}]")

    for key in _SCHEMA_MAP_KEYS:
        children = node.get(key)
        if isinstance(children, dict):
            for name, child in children.items():
                if isinstance(child, dict):
                    _repair(child, default_items, f"{path}.{key}.{name}")

    for key in _SCHEMA_LIST_KEYS:
        children = node.get(key)
        if isinstance(children, list):
            for index, child in enumerate(children):
                if isinstance(child, dict):
                    _repair(child, default_items, f"{path}.{key}[{index}]")
