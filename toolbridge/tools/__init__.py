"""
Tool Integration Layer.

Schema repair, the per-session tool catalog, and gateways to the remote
tool host.
"""

from toolbridge.tools.base import ToolGateway
from toolbridge.tools.catalog import ToolCatalog, ToolDefinition
from toolbridge.tools.schema import normalize_schema

__all__ = [
    "ToolCatalog",
    "ToolDefinition",
    "ToolGateway",
    "normalize_schema",
]
