"""
MCP-based tool gateway.

Launches the tool host as a subprocess and talks JSON-RPC to it over stdio
using the ``mcp`` SDK.
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.types import Implementation

from toolbridge.config.servers import ServerLaunch
from toolbridge.errors import ToolHostConnectionError, ToolInvocationError
from toolbridge.tools.base import ToolGateway, ToolResult
from toolbridge.tools.catalog import ToolDefinition
from toolbridge.trace import TraceKind, TraceRecorder

logger = logging.getLogger(__name__)


class MCPToolGateway(ToolGateway):
    """
    Tool gateway for one MCP server launched over stdio.

    Args:
        server: Resolved launch parameters (command, args, env)
        client_name: Name announced in the MCP handshake
        client_version: Version announced in the MCP handshake
        trace: Optional recorder for list/call exchanges
    """

    def __init__(
        self,
        server: ServerLaunch,
        client_name: str = "toolbridge",
        client_version: str = "0.1.0",
        trace: TraceRecorder | None = None,
    ):
        self._server = server
        self._client_info = Implementation(name=client_name, version=client_version)
        self._trace = trace
        self._exit_stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None

    @property
    def server(self) -> ServerLaunch:
        return self._server

    @property
    def initialized(self) -> bool:
        return self._session is not None

    async def _record(self, kind: TraceKind, data: Any) -> None:
        if self._trace is not None:
            await self._trace.record(kind, data)

    async def initialize(self) -> None:
        """Start the server subprocess and perform the MCP handshake."""
        if self._session is not None:
            return

        params = StdioServerParameters(
            command=self._server.command,
            args=list(self._server.args),
            env=self._server.env,
        )
        logger.info(f"Starting MCP server {self._server.name!r}: {params.command} {' '.join(params.args)}")

        stack = AsyncExitStack()
        try:
            read_stream, write_stream = await stack.enter_async_context(stdio_client(params))
            session = await stack.enter_async_context(
                ClientSession(read_stream, write_stream, client_info=self._client_info)
            )
            init_result = await session.initialize()
        except Exception as e:
            await self._close_stack(stack)
            await self._record(TraceKind.CONNECT, e)
            raise ToolHostConnectionError(
                f"Failed to connect to MCP server {self._server.name!r}: {e}", cause=e
            ) from e

        self._exit_stack = stack
        self._session = session
        await self._record(TraceKind.CONNECT, init_result)
        logger.info(f"Connected to MCP server {self._server.name!r}")

    async def shutdown(self) -> None:
        """Close the session and terminate the server subprocess."""
        stack, self._exit_stack = self._exit_stack, None
        self._session = None
        if stack is None:
            return
        await self._close_stack(stack)
        logger.info(f"Disconnected from MCP server {self._server.name!r}")

    async def _close_stack(self, stack: AsyncExitStack) -> None:
        try:
            await stack.aclose()
        except Exception as e:
            logger.error(f"Error while closing MCP server {self._server.name!r}: {e}")

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise RuntimeError("Tool gateway not initialized")
        return self._session

    async def list_tools(self) -> list[ToolDefinition]:
        session = self._require_session()
        try:
            result = await session.list_tools()
        except Exception as e:
            await self._record(TraceKind.GET_TOOLS_ERROR, e)
            raise ToolHostConnectionError(f"Failed to list tools: {e}", cause=e) from e

        tools = [
            ToolDefinition(
                name=tool.name,
                description=tool.description or "",
                parameters=tool.inputSchema or {},
            )
            for tool in result.tools
        ]
        await self._record(
            TraceKind.GET_TOOLS,
            [{"name": tool.name, "description": tool.description} for tool in tools],
        )
        logger.info(f"MCP server {self._server.name!r} offers {len(tools)} tools")
        return tools

    async def invoke(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        session = self._require_session()
        await self._record(TraceKind.TOOL_CALL, {"name": name, "arguments": arguments})

        try:
            result = await session.call_tool(name, arguments)
        except Exception as e:
            await self._record(TraceKind.TOOL_CALL_ERROR, e)
            raise ToolInvocationError(name, f"Calling tool {name} failed: {e}", cause=e) from e

        await self._record(TraceKind.TOOL_CALL_RESPONSE, result)
        content = _flatten_content(result)
        if result.isError:
            message = content if isinstance(content, str) else str(content)
            raise ToolInvocationError(name, f"Tool {name} reported an error: {message}")
        return content


def _flatten_content(result: Any) -> ToolResult:
    """
    Reduce an MCP CallToolResult to text where possible.

    Results made only of text blocks become a single string. Anything else
    (images, embedded resources, structured content) is returned as
    JSON-ready data.
    """
    blocks = list(result.content or [])
    if blocks and all(getattr(block, "type", None) == "text" for block in blocks):
        return "\n".join(block.text for block in blocks)

    structured = getattr(result, "structuredContent", None)
    if not blocks and structured is not None:
        return structured

    return [block.model_dump(mode="json", exclude_none=True) for block in blocks]
