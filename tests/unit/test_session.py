"""
Unit tests for Session.

The completion gateway and tool gateway are AsyncMocks; servers are resolved
from a temporary config document.
"""

import json
from unittest.mock import AsyncMock

import pytest

from toolbridge.config.settings import Settings
from toolbridge.errors import (
    CompletionError,
    SessionNotConnectedError,
    ToolHostConnectionError,
)
from toolbridge.llm.gateway import CompletionGateway
from toolbridge.llm.models import Candidate, QueryFailed, ToolCallRequest, UserMessage
from toolbridge.session import Session
from toolbridge.tools.base import ToolGateway
from toolbridge.tools.catalog import ToolDefinition


def _make_tool_gateway(tools=None) -> AsyncMock:
    gateway = AsyncMock(spec=ToolGateway)
    gateway.list_tools.return_value = tools if tools is not None else [
        ToolDefinition(
            name="search",
            parameters={"type": "object", "properties": {"tags": {"type": "array"}}},
        )
    ]
    return gateway


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "mcp-servers.json"
    path.write_text(
        json.dumps({
            "mcpServers": {
                "alpha": {"command": "python", "args": ["alpha.py"]},
                "beta": {"command": "node", "args": ["beta.js"]},
            },
            "defaultServer": "alpha",
            "system": "Answer briefly.",
        }),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def settings(tmp_path):
    return Settings(trace={"enabled": False, "directory": tmp_path / "logs"})


@pytest.fixture
def completion():
    gateway = AsyncMock(spec=CompletionGateway)
    gateway.complete.return_value = Candidate(content="Hello!", model="test-model")
    return gateway


@pytest.fixture
def tool_gateways():
    """Every gateway the session builds, in creation order."""
    return []


@pytest.fixture
def session(settings, completion, tool_gateways):
    def factory(server):
        gateway = _make_tool_gateway()
        tool_gateways.append(gateway)
        return gateway

    return Session(settings, completion=completion, gateway_factory=factory)


class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_builds_catalog_and_conversation(self, session, config_file, tool_gateways):
        await session.connect("default", config_file)

        assert session.connected
        assert session.server_name == "alpha"
        assert session.tools.names() == ("search",)
        assert session.tools.get("search").parameters["properties"]["tags"]["items"] == {"type": "object"}
        assert session.history[0].content == "Answer briefly."
        tool_gateways[0].initialize.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_server_raises(self, session, config_file, tool_gateways):
        with pytest.raises(ToolHostConnectionError, match="not found"):
            await session.connect("gamma", config_file)

        assert not session.connected
        assert tool_gateways == []

    @pytest.mark.asyncio
    async def test_initialize_failure_propagates(self, settings, completion, config_file):
        gateway = _make_tool_gateway()
        gateway.initialize.side_effect = ToolHostConnectionError("spawn failed")
        session = Session(settings, completion=completion, gateway_factory=lambda server: gateway)

        with pytest.raises(ToolHostConnectionError, match="spawn failed"):
            await session.connect("alpha", config_file)

        assert not session.connected

    @pytest.mark.asyncio
    async def test_list_failure_shuts_gateway_down(self, settings, completion, config_file):
        gateway = _make_tool_gateway()
        gateway.list_tools.side_effect = ToolHostConnectionError("list failed")
        session = Session(settings, completion=completion, gateway_factory=lambda server: gateway)

        with pytest.raises(ToolHostConnectionError, match="list failed"):
            await session.connect("alpha", config_file)

        gateway.shutdown.assert_awaited_once()
        assert not session.connected

    @pytest.mark.asyncio
    async def test_unusable_schema_becomes_connection_error(self, settings, completion, config_file):
        gateway = _make_tool_gateway(tools=[{"name": "broken", "parameters": "nope"}])
        session = Session(settings, completion=completion, gateway_factory=lambda server: gateway)

        with pytest.raises(ToolHostConnectionError, match="unusable tool schema"):
            await session.connect("alpha", config_file)

        gateway.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reconnect_replaces_previous_host(self, session, config_file, tool_gateways):
        await session.connect("alpha", config_file)
        await session.connect("beta", config_file)

        assert session.server_name == "beta"
        assert len(tool_gateways) == 2
        tool_gateways[0].shutdown.assert_awaited_once()
        tool_gateways[1].shutdown.assert_not_awaited()


class TestQueries:

    @pytest.mark.asyncio
    async def test_ask_before_connect(self, session):
        with pytest.raises(SessionNotConnectedError):
            await session.ask("hello")

    def test_tools_before_connect(self, session):
        with pytest.raises(SessionNotConnectedError):
            session.tools

    @pytest.mark.asyncio
    async def test_ask_returns_reply(self, session, config_file):
        await session.connect("alpha", config_file)
        assert await session.ask("hi") == "Hello!"

    @pytest.mark.asyncio
    async def test_ask_runs_tools(self, session, config_file, completion, tool_gateways):
        completion.complete.side_effect = [
            Candidate(tool_calls=(ToolCallRequest(id="c1", name="search", arguments='{"q": "x"}'),)),
            Candidate(content="Found 5."),
        ]
        await session.connect("alpha", config_file)
        tool_gateways[0].invoke.return_value = "5 results"

        reply = await session.ask("search x")

        tool_gateways[0].invoke.assert_awaited_once_with("search", {"q": "x"})
        assert "[Calling tool search" in reply
        assert reply.endswith("Found 5.")

    @pytest.mark.asyncio
    async def test_completion_failure_returns_error_text(self, session, config_file, completion):
        completion.complete.side_effect = CompletionError("Sending message to LLM failed: unreachable")
        await session.connect("alpha", config_file)

        result = await session.query("hi")
        reply_history = session.history

        assert isinstance(result, QueryFailed)
        assert "unreachable" in result.reply
        assert [m.role for m in reply_history] == ["system", "user"]
        assert reply_history[-1] == UserMessage(content="hi")

    @pytest.mark.asyncio
    async def test_reset_clears_history(self, session, config_file):
        await session.connect("alpha", config_file)
        await session.ask("hi")

        session.reset()

        assert [m.role for m in session.history] == ["system"]

    def test_reset_before_connect_is_harmless(self, session):
        session.reset()

    def test_model(self, session, completion):
        completion.model = "test-model"
        assert session.model == "test-model"


class TestShutdown:

    @pytest.mark.asyncio
    async def test_shutdown_idempotent(self, session, config_file, tool_gateways):
        await session.connect("alpha", config_file)

        await session.shutdown()
        await session.shutdown()

        assert not session.connected
        tool_gateways[0].shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_context_manager(self, session, config_file, tool_gateways):
        async with session:
            await session.connect("alpha", config_file)
        assert not session.connected
        tool_gateways[0].shutdown.assert_awaited_once()
