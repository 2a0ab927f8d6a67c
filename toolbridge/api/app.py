"""FastAPI application factory and lifespan management.

The lifespan connects one Session at startup and releases its tool host at
shutdown. A failed connect does not stop the server: the error is kept in
app state, reported by /health and /status, and /reinitialize can retry.
"""

import asyncio
import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from toolbridge import __version__
from toolbridge.api import routes
from toolbridge.config.settings import Settings
from toolbridge.errors import ToolHostConnectionError
from toolbridge.session import Session

logger = logging.getLogger(__name__)

SessionFactory = Callable[[Settings], Session]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Connect the session on startup, shut it down on exit.

    Args:
        app: The FastAPI application instance.

    Yields:
        None: Control is yielded while the app is running.
    """
    settings: Settings = app.state.settings
    session: Session = app.state.session_factory(settings)
    app.state.session = session
    app.state.query_lock = asyncio.Lock()
    app.state.initialization_error = None

    if settings.trace.enabled and settings.trace.clear_on_start:
        session.trace.clear()

    logger.info(
        f"Connecting to server {settings.mcp.server!r} "
        f"(config file: {settings.mcp.config_path or 'none'})"
    )
    try:
        await routes.connect_session(app)
        logger.info("Session initialized")
    except ToolHostConnectionError:
        logger.warning("Serving without a connected session; POST /reinitialize to retry")

    yield

    logger.info("Shutting down session...")
    await session.shutdown()
    logger.info("Session resources released")


def create_app(
    settings: Settings | None = None,
    session_factory: SessionFactory | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Optional Settings instance. If not provided, settings are
                  loaded from the environment.
        session_factory: Builds the app's Session from settings (default: Session)

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        from toolbridge.config.settings import load_settings

        settings = load_settings()

    app = FastAPI(
        title="toolbridge",
        description="Chat with a language model that can call MCP server tools",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_factory = session_factory or Session

    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(routes.router)

    return app
