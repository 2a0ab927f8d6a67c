"""
Data models for the orchestration layer.

Messages are a discriminated union on ``role``: each variant carries only the
fields that are legal for that role and is frozen once built, so a message
appended to the conversation can never change afterwards.

Query outcomes are explicit variants too. ``QueryOk`` covers every query that
ran to completion, including ones where tools or the followup turn failed and
the failure was annotated into the reply. ``QueryFailed`` means the primary
completion call failed and the query was aborted.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class ToolCallRequest(BaseModel):
    """A tool call requested by the model in an assistant turn."""

    id: str = Field(min_length=1, description="Call identifier, unique within a turn")
    name: str = Field(min_length=1, description="Requested tool name")
    arguments: str = Field(default="", description="Raw JSON argument payload")

    model_config = ConfigDict(frozen=True)

    def parse_arguments(self) -> tuple[dict[str, Any], str | None]:
        """
        Parse the raw argument payload into a key-value map.

        Malformed payloads do not abort the call: they degrade to an empty map
        and the second element describes what went wrong.

        Returns:
            (arguments, parse_error) where parse_error is None on success.
        """
        raw = self.arguments.strip()
        if not raw:
            return {}, None
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            return {}, f"arguments are not valid JSON: {e}"
        if not isinstance(parsed, dict):
            return {}, f"arguments must be a JSON object, got {type(parsed).__name__}"
        return parsed, None

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


class SystemMessage(BaseModel):
    """The initial system prompt. Content may be empty."""

    role: Literal["system"] = "system"
    content: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def to_wire(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


class UserMessage(BaseModel):
    """A user query."""

    role: Literal["user"] = "user"
    content: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    def to_wire(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


class AssistantMessage(BaseModel):
    """A model turn: text, tool-call requests, or both."""

    role: Literal["assistant"] = "assistant"
    content: str | None = None
    tool_calls: tuple[ToolCallRequest, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _check_turn(self) -> AssistantMessage:
        if not self.content and not self.tool_calls:
            raise ValueError("assistant message needs content or tool calls")
        ids = [call.id for call in self.tool_calls]
        if len(ids) != len(set(ids)):
            raise ValueError(f"duplicate tool call ids in one turn: {ids}")
        return self

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            wire["tool_calls"] = [call.to_wire() for call in self.tool_calls]
        return wire


class ToolMessage(BaseModel):
    """The result (or error text) of one tool call."""

    role: Literal["tool"] = "tool"
    tool_call_id: str = Field(min_length=1)
    content: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    def to_wire(self) -> dict[str, Any]:
        return {"role": self.role, "tool_call_id": self.tool_call_id, "content": self.content}


Message = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage],
    Field(discriminator="role"),
]


class TokenUsage(BaseModel):
    """Token counts reported by the provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


class Candidate(BaseModel):
    """One candidate next turn returned by a completion call."""

    content: str | None = None
    tool_calls: tuple[ToolCallRequest, ...] = ()
    model: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage)

    model_config = ConfigDict(frozen=True)

    @property
    def is_empty(self) -> bool:
        return not self.content and not self.tool_calls


class ToolCallRecord(BaseModel):
    """What happened to one tool call during a query."""

    call_id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: str | None = None
    error: str | None = None
    argument_error: str | None = Field(
        default=None,
        description="Set when the raw payload could not be parsed and {} was used instead",
    )

    @property
    def succeeded(self) -> bool:
        return self.error is None


class QueryOk(BaseModel):
    """A query that ran to completion."""

    status: Literal["ok"] = "ok"
    reply: str
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    model: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage)
    followup_error: str | None = None

    @property
    def ok(self) -> bool:
        return True


class QueryFailed(BaseModel):
    """A query aborted because the primary completion call failed."""

    status: Literal["failed"] = "failed"
    reply: str
    error: str
    error_type: str = "CompletionError"

    @property
    def ok(self) -> bool:
        return False


QueryResult = Annotated[Union[QueryOk, QueryFailed], Field(discriminator="status")]
