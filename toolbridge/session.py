"""
Session: the public surface of the bridge.

A session owns one tool gateway, one conversation and one orchestration
loop. Callers (the CLI, the HTTP API) hold a reference to it explicitly;
there is no process-wide session.

    session = Session(settings)
    await session.connect("default", "mcp-servers.json")
    reply = await session.ask("What is the weather in Paris?")
    session.reset()
    await session.shutdown()

``connect()`` on a connected session shuts the previous tool host down
before starting the new one, so a session never holds two live transports.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from toolbridge.config.servers import ServerLaunch, resolve_server
from toolbridge.config.settings import Settings
from toolbridge.errors import SchemaError, SessionNotConnectedError, ToolHostConnectionError
from toolbridge.llm.conversation import ConversationState
from toolbridge.llm.gateway import CompletionGateway, LiteLLMCompletionGateway
from toolbridge.llm.models import Message, QueryResult
from toolbridge.llm.orchestrator import OrchestrationLoop
from toolbridge.tools.base import ToolGateway
from toolbridge.tools.catalog import ToolCatalog
from toolbridge.tools.mcp_gateway import MCPToolGateway
from toolbridge.trace import TraceRecorder

logger = logging.getLogger(__name__)

ToolGatewayFactory = Callable[[ServerLaunch], ToolGateway]


class Session:
    """
    One conversation with one tool host.

    Args:
        settings: Application settings
        completion: Completion gateway override (default: LiteLLM with settings.llm)
        gateway_factory: Builds the tool gateway for a resolved server
                         (default: MCPToolGateway over stdio)
        trace: Trace recorder override (default: built from settings.trace)
    """

    def __init__(
        self,
        settings: Settings,
        completion: CompletionGateway | None = None,
        gateway_factory: ToolGatewayFactory | None = None,
        trace: TraceRecorder | None = None,
    ):
        self._settings = settings
        self._trace = trace or TraceRecorder(
            settings.trace.directory, enabled=settings.trace.enabled
        )
        self._completion = completion or LiteLLMCompletionGateway(settings.llm, trace=self._trace)
        self._gateway_factory = gateway_factory or self._default_gateway
        self._gateway: ToolGateway | None = None
        self._server: ServerLaunch | None = None
        self._conversation: ConversationState | None = None
        self._loop: OrchestrationLoop | None = None

    def _default_gateway(self, server: ServerLaunch) -> ToolGateway:
        return MCPToolGateway(
            server,
            client_name=self._settings.mcp.client_name,
            client_version=self._settings.mcp.client_version,
            trace=self._trace,
        )

    @property
    def connected(self) -> bool:
        return self._loop is not None

    @property
    def server_name(self) -> str | None:
        return self._server.name if self._server else None

    @property
    def model(self) -> str:
        return self._completion.model

    @property
    def trace(self) -> TraceRecorder:
        return self._trace

    @property
    def tools(self) -> ToolCatalog:
        return self._require_loop().catalog

    @property
    def history(self) -> tuple[Message, ...]:
        return self._require_loop().conversation.snapshot()

    def _require_loop(self) -> OrchestrationLoop:
        if self._loop is None:
            raise SessionNotConnectedError("Session is not connected; call connect() first")
        return self._loop

    async def connect(self, server_identifier: str, config_path: str | Path | None = None) -> None:
        """
        Launch the tool host and build the catalog and conversation.

        Args:
            server_identifier: Server name from the config document, "default",
                               or a server script path when config_path is None
            config_path: Optional server config document

        Raises:
            ToolHostConnectionError: If the server cannot be resolved, started,
                                     or listed, or its tool schemas are unusable
        """
        if self._gateway is not None:
            logger.info(f"Replacing connection to {self.server_name!r}")
            await self.shutdown()

        server = await resolve_server(server_identifier, config_path)
        gateway = self._gateway_factory(server)
        await gateway.initialize()

        try:
            catalog = ToolCatalog.build(await gateway.list_tools())
        except (ToolHostConnectionError, SchemaError) as e:
            await gateway.shutdown()
            if isinstance(e, SchemaError):
                raise ToolHostConnectionError(
                    f"Server {server.name!r} published an unusable tool schema: {e}", cause=e
                ) from e
            raise

        self._gateway = gateway
        self._server = server
        self._conversation = ConversationState(server.system_prompt)
        self._loop = OrchestrationLoop(self._conversation, self._completion, gateway, catalog)
        logger.info(
            f"Connected to {server.name!r} with tools: {', '.join(catalog.names()) or 'none'}"
        )

    async def query(self, text: str) -> QueryResult:
        """
        Run one query and return its explicit result variant.

        Raises:
            SessionNotConnectedError: Before connect()
            ValueError: If text is empty
        """
        return await self._require_loop().run(text)

    async def ask(self, text: str) -> str:
        """Run one query and return the user-visible reply text."""
        result = await self.query(text)
        return result.reply

    def reset(self) -> None:
        """Drop the conversation back to its system message."""
        if self._conversation is not None:
            self._conversation.reset()
            logger.info("Conversation history cleared")

    async def shutdown(self) -> None:
        """Release the tool host. Safe to call repeatedly."""
        gateway, self._gateway = self._gateway, None
        self._loop = None
        self._conversation = None
        self._server = None
        if gateway is not None:
            await gateway.shutdown()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
        return False
