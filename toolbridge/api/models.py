"""Request and response models for the HTTP API."""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

from toolbridge.llm.models import ToolCallRecord


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionStatus(BaseModel):
    """Connection state of the API's session."""

    initialized: bool = Field(..., description="Whether the session is connected to its tool host")
    error: str | None = Field(default=None, description="Last connect error, if any")
    server: str | None = Field(default=None, description="Connected server name")
    tools: list[str] = Field(default_factory=list, description="Tool names in the catalog")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Health status of the service")
    timestamp: str = Field(default_factory=utc_now)
    session: SessionStatus


class StatusResponse(BaseModel):
    service: str = "toolbridge API"
    version: str
    status: Literal["ready", "initializing"]
    model: str = Field(..., description="LiteLLM model string in use")
    session: SessionStatus
    timestamp: str = Field(default_factory=utc_now)


class QueryRequest(BaseModel):
    """A query; ``message`` is accepted as an alias field for ``query``."""

    query: str | None = None
    message: str | None = None

    @property
    def text(self) -> str | None:
        text = self.query or self.message
        if text is None or not text.strip():
            return None
        return text


class QueryResponse(BaseModel):
    response: str = Field(..., description="User-visible reply text")
    status: Literal["ok", "failed"] = "ok"
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)


class BatchQueryRequest(BaseModel):
    queries: list[Any] = Field(default_factory=list)


class BatchQueryItem(BaseModel):
    index: int
    query: Any
    success: bool
    response: str | None = None
    error: str | None = None


class BatchQueryResponse(BaseModel):
    success: bool = True
    total_queries: int
    results: list[BatchQueryItem]
    processing_time_ms: int
    timestamp: str = Field(default_factory=utc_now)


class ActionResponse(BaseModel):
    success: bool = True
    message: str
    timestamp: str = Field(default_factory=utc_now)
