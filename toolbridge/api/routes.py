"""HTTP endpoints.

Queries go through a single lock held in app state: a session's conversation
is not safe for concurrent queries, so requests are answered one at a time in
arrival order.
"""

import logging
import time

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request

from toolbridge import __version__
from toolbridge.api.models import (
    ActionResponse,
    BatchQueryItem,
    BatchQueryRequest,
    BatchQueryResponse,
    HealthResponse,
    QueryRequest,
    QueryResponse,
    SessionStatus,
    StatusResponse,
)
from toolbridge.errors import ToolHostConnectionError
from toolbridge.llm.models import QueryOk
from toolbridge.session import Session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bridge"])


def _session_status(request: Request) -> SessionStatus:
    session: Session = request.app.state.session
    return SessionStatus(
        initialized=session.connected,
        error=request.app.state.initialization_error,
        server=session.server_name,
        tools=list(session.tools.names()) if session.connected else [],
    )


def _ensure_connected(request: Request, session: Session) -> None:
    if not session.connected:
        raise HTTPException(
            status_code=503,
            detail=f"Session not initialized: {request.app.state.initialization_error or 'connecting'}",
        )


def get_connected_session(request: Request) -> Session:
    """
    Get the app's session, failing with 503 until it is connected.

    Handlers that wait on the query lock check again once they hold it: a
    /reinitialize that ran in between may have left the session disconnected.

    Raises:
        HTTPException: If the session is not connected (503 Service Unavailable).
    """
    session: Session = request.app.state.session
    _ensure_connected(request, session)
    return session


async def connect_session(app: FastAPI) -> None:
    """Connect the app's session using the configured server, recording any failure."""
    settings = app.state.settings
    session: Session = app.state.session
    try:
        await session.connect(settings.mcp.server, settings.mcp.config_path)
    except ToolHostConnectionError as e:
        app.state.initialization_error = str(e)
        logger.error(f"Session initialization failed: {e}")
        raise
    app.state.initialization_error = None


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    return HealthResponse(status="ok", session=_session_status(request))


@router.get("/status", response_model=StatusResponse)
async def service_status(request: Request) -> StatusResponse:
    session: Session = request.app.state.session
    return StatusResponse(
        version=__version__,
        status="ready" if session.connected else "initializing",
        model=session.model,
        session=_session_status(request),
    )


@router.post("/query", response_model=QueryResponse)
async def query(
    body: QueryRequest,
    request: Request,
    session: Session = Depends(get_connected_session),
) -> QueryResponse:
    """Answer one query, resolving tool calls along the way."""
    text = body.text
    if text is None:
        raise HTTPException(
            status_code=400,
            detail="Provide a non-empty query (in the 'query' or 'message' field)",
        )

    logger.info(f"Received query: {text}")
    started = time.perf_counter()
    async with request.app.state.query_lock:
        _ensure_connected(request, session)
        result = await session.query(text)
    logger.info(f"Query processed in {(time.perf_counter() - started) * 1000:.0f}ms")

    return QueryResponse(
        response=result.reply,
        status=result.status,
        tool_calls=result.tool_calls if isinstance(result, QueryOk) else [],
    )


@router.post("/batch-query", response_model=BatchQueryResponse)
async def batch_query(
    body: BatchQueryRequest,
    request: Request,
    session: Session = Depends(get_connected_session),
) -> BatchQueryResponse:
    """Answer several queries in order against the same conversation."""
    if not body.queries:
        raise HTTPException(status_code=400, detail="Provide a non-empty 'queries' array")

    logger.info(f"Received batch of {len(body.queries)} queries")
    started = time.perf_counter()
    results: list[BatchQueryItem] = []

    async with request.app.state.query_lock:
        _ensure_connected(request, session)
        for index, item in enumerate(body.queries):
            if not isinstance(item, str) or not item.strip():
                results.append(
                    BatchQueryItem(
                        index=index,
                        query=item,
                        success=False,
                        error="Query must be a non-empty string",
                    )
                )
                continue

            result = await session.query(item)
            results.append(
                BatchQueryItem(
                    index=index,
                    query=item,
                    success=result.ok,
                    response=result.reply,
                    error=None if result.ok else result.error,
                )
            )

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    logger.info(f"Batch processed in {elapsed_ms}ms")
    return BatchQueryResponse(
        total_queries=len(body.queries),
        results=results,
        processing_time_ms=elapsed_ms,
    )


@router.post("/reinitialize", response_model=ActionResponse)
async def reinitialize(request: Request) -> ActionResponse:
    """Shut the session's tool host down and connect again."""
    session: Session = request.app.state.session
    async with request.app.state.query_lock:
        await session.shutdown()
        try:
            await connect_session(request.app)
        except ToolHostConnectionError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e

    return ActionResponse(message=f"Session reconnected to {session.server_name!r}")


@router.post("/reset", response_model=ActionResponse)
async def reset(
    request: Request,
    session: Session = Depends(get_connected_session),
) -> ActionResponse:
    """Clear the conversation history."""
    async with request.app.state.query_lock:
        _ensure_connected(request, session)
        session.reset()
    return ActionResponse(message="Conversation history cleared")
