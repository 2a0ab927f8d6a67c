"""
Unit tests for the HTTP API.

The app runs in-process through httpx's ASGI transport, with its lifespan
entered explicitly. Sessions are built with mock gateways.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from toolbridge.api import create_app
from toolbridge.config.settings import Settings
from toolbridge.errors import CompletionError, ToolHostConnectionError
from toolbridge.llm.gateway import CompletionGateway
from toolbridge.llm.models import Candidate, ToolCallRequest
from toolbridge.session import Session
from toolbridge.tools.base import ToolGateway
from toolbridge.tools.catalog import ToolDefinition


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "mcp-servers.json"
    path.write_text(
        json.dumps({
            "mcpServers": {"alpha": {"command": "python", "args": ["alpha.py"]}},
            "defaultServer": "alpha",
        }),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def settings(tmp_path, config_file):
    return Settings(
        mcp={"config_path": config_file, "server": "default"},
        trace={"enabled": False, "directory": tmp_path / "logs"},
    )


@pytest.fixture
def completion():
    gateway = AsyncMock(spec=CompletionGateway)
    gateway.model = "test-model"
    gateway.complete.return_value = Candidate(content="Hello!", model="test-model")
    return gateway


@pytest.fixture
def tool_gateway():
    gateway = AsyncMock(spec=ToolGateway)
    gateway.list_tools.return_value = [ToolDefinition(name="search")]
    gateway.invoke.return_value = "5 results"
    return gateway


@pytest.fixture
def app(settings, completion, tool_gateway):
    def session_factory(app_settings):
        return Session(app_settings, completion=completion, gateway_factory=lambda server: tool_gateway)

    return create_app(settings=settings, session_factory=session_factory)


@pytest_asyncio.fixture
async def client(app):
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as test_client:
            yield test_client


class TestStatusEndpoints:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["session"]["initialized"] is True
        assert body["session"]["server"] == "alpha"
        assert body["session"]["tools"] == ["search"]

    @pytest.mark.asyncio
    async def test_status(self, client):
        body = (await client.get("/status")).json()

        assert body["status"] == "ready"
        assert body["model"] == "test-model"
        assert body["service"] == "toolbridge API"


class TestQuery:

    @pytest.mark.asyncio
    async def test_query(self, client):
        response = await client.post("/query", json={"query": "hi"})

        assert response.status_code == 200
        assert response.json()["response"] == "Hello!"
        assert response.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_message_field_accepted(self, client):
        response = await client.post("/query", json={"message": "hi"})
        assert response.json()["response"] == "Hello!"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{}, {"query": ""}, {"query": "   "}])
    async def test_missing_query_rejected(self, client, payload):
        response = await client.post("/query", json=payload)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_query_with_tool_call(self, client, completion, tool_gateway):
        completion.complete.side_effect = [
            Candidate(tool_calls=(ToolCallRequest(id="c1", name="search", arguments="{}"),)),
            Candidate(content="Found 5."),
        ]

        body = (await client.post("/query", json={"query": "search"})).json()

        assert "[Calling tool search" in body["response"]
        assert body["tool_calls"][0]["name"] == "search"
        assert body["tool_calls"][0]["result"] == "5 results"

    @pytest.mark.asyncio
    async def test_completion_failure_reported(self, client, completion):
        completion.complete.side_effect = CompletionError("unreachable")

        response = await client.post("/query", json={"query": "hi"})

        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        assert "unreachable" in response.json()["response"]


class TestBatchQuery:

    @pytest.mark.asyncio
    async def test_batch(self, client, completion):
        completion.complete.side_effect = [
            Candidate(content="one"),
            Candidate(content="two"),
        ]

        body = (await client.post("/batch-query", json={"queries": ["a", 42, "  ", "b"]})).json()

        assert body["total_queries"] == 4
        results = body["results"]
        assert [r["success"] for r in results] == [True, False, False, True]
        assert results[0]["response"] == "one"
        assert results[1]["error"] == "Query must be a non-empty string"
        assert results[3]["response"] == "two"

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, client):
        response = await client.post("/batch-query", json={"queries": []})
        assert response.status_code == 400


class TestSessionActions:

    @pytest.mark.asyncio
    async def test_reset(self, client, app):
        await client.post("/query", json={"query": "hi"})

        response = await client.post("/reset")

        assert response.status_code == 200
        assert len(app.state.session.history) == 1

    @pytest.mark.asyncio
    async def test_reinitialize(self, client, tool_gateway):
        response = await client.post("/reinitialize")

        assert response.status_code == 200
        assert "alpha" in response.json()["message"]
        assert tool_gateway.initialize.await_count == 2
        tool_gateway.shutdown.assert_awaited_once()


class TestFailedStartup:

    @pytest.mark.asyncio
    async def test_serves_without_session(self, app, tool_gateway):
        tool_gateway.initialize.side_effect = ToolHostConnectionError("spawn failed")

        async with app.router.lifespan_context(app):
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                health = (await client.get("/health")).json()
                query = await client.post("/query", json={"query": "hi"})
                status = (await client.get("/status")).json()

        assert health["session"]["initialized"] is False
        assert "spawn failed" in health["session"]["error"]
        assert query.status_code == 503
        assert status["status"] == "initializing"

    @pytest.mark.asyncio
    async def test_reinitialize_failure(self, app, tool_gateway):
        tool_gateway.initialize.side_effect = ToolHostConnectionError("spawn failed")

        async with app.router.lifespan_context(app):
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                response = await client.post("/reinitialize")

        assert response.status_code == 500
        assert "spawn failed" in response.json()["detail"]


class _SignallingLock(asyncio.Lock):
    """Lock that sets ``waiting`` whenever someone starts to acquire it."""

    def __init__(self):
        super().__init__()
        self.waiting = asyncio.Event()

    async def acquire(self):
        self.waiting.set()
        return await super().acquire()


class TestDisconnectWhileQueued:
    """A request that passed the connected check but queued behind a failed reconnect."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "path, payload",
        [
            ("/query", {"query": "hi"}),
            ("/batch-query", {"queries": ["hi"]}),
            ("/reset", None),
        ],
    )
    async def test_returns_503(self, app, completion, path, payload):
        async with app.router.lifespan_context(app):
            lock = _SignallingLock()
            app.state.query_lock = lock
            await lock.acquire()
            lock.waiting.clear()

            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                pending = asyncio.create_task(client.post(path, json=payload))
                await lock.waiting.wait()
                await app.state.session.shutdown()
                lock.release()
                response = await pending

        assert response.status_code == 503
        completion.complete.assert_not_awaited()
