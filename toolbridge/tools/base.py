"""
Base class for tool gateways.

A tool gateway lists and invokes the tools of one remote tool host. The
orchestration loop only ever talks to this interface, so tests can swap in
an ``AsyncMock`` and other transports can be added without touching the loop.
"""

from abc import ABC, abstractmethod
from typing import Any

from toolbridge.tools.catalog import ToolDefinition

ToolResult = str | list[Any] | dict[str, Any]


class ToolGateway(ABC):
    """
    Abstract base class for tool gateways.

    Gateways are async context managers: entering initializes the transport
    and exiting releases it.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """
        Establish the transport to the tool host.

        Raises:
            ToolHostConnectionError: If the tool host cannot be reached
        """

    @abstractmethod
    async def shutdown(self) -> None:
        """
        Release the transport.

        Must be safe to call more than once and on a gateway that never
        finished initializing.
        """

    @abstractmethod
    async def list_tools(self) -> list[ToolDefinition]:
        """
        List the tools offered by the host, in the host's order.

        Parameter schemas are returned as published; normalization happens
        when the session builds its ToolCatalog.

        Raises:
            ToolHostConnectionError: If the tool host is unreachable
        """

    @abstractmethod
    async def invoke(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """
        Call one tool and wait for its result.

        There is no automatic retry.

        Args:
            name: Tool name
            arguments: Parsed argument map

        Returns:
            Result text, or a structured value the caller stringifies

        Raises:
            ToolInvocationError: If the call fails on the tool host
        """

    async def __aenter__(self):
        """Context manager entry - initialize the gateway."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - shut the gateway down."""
        await self.shutdown()
        return False
