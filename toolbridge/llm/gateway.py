"""
Completion gateways.

A completion gateway turns the conversation history (and optionally the tool
catalog) into one candidate next turn. ``LiteLLMCompletionGateway`` does this
through LiteLLM, so any provider LiteLLM routes to works by changing the model
string in settings.
"""

from __future__ import annotations

import json
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from litellm import acompletion
from pydantic import ValidationError

from toolbridge.config.settings import LLMSettings
from toolbridge.errors import CompletionError
from toolbridge.llm.models import Candidate, Message, TokenUsage, ToolCallRequest
from toolbridge.tools.catalog import ToolCatalog
from toolbridge.trace import TraceKind, TraceRecorder

logger = logging.getLogger(__name__)


class CompletionGateway(ABC):
    """Abstract base class for completion gateways."""

    @abstractmethod
    async def complete(
        self,
        messages: Sequence[Message],
        catalog: ToolCatalog | None = None,
    ) -> Candidate:
        """
        Request one candidate next turn.

        Args:
            messages: Conversation history, system message first
            catalog: Tools to offer the model; None (or empty) offers none

        Returns:
            A well-formed Candidate

        Raises:
            CompletionError: On any transport or provider failure
        """

    @property
    def model(self) -> str:
        return ""


def _as_int(value: Any) -> int:
    return value if isinstance(value, int) else 0


class LiteLLMCompletionGateway(CompletionGateway):
    """
    Completion gateway backed by ``litellm.acompletion``.

    Args:
        settings: LLM configuration (model, api_key, api_base, temperature, max_tokens)
        trace: Optional recorder for request/response exchanges
    """

    def __init__(self, settings: LLMSettings, trace: TraceRecorder | None = None):
        self._settings = settings
        self._trace = trace

    @property
    def model(self) -> str:
        return self._settings.model

    def _build_kwargs(
        self, messages: Sequence[Message], catalog: ToolCatalog | None
    ) -> dict[str, Any]:
        call_kwargs: dict[str, Any] = {
            "model": self._settings.model,
            "messages": [message.to_wire() for message in messages],
        }
        if self._settings.temperature is not None:
            call_kwargs["temperature"] = self._settings.temperature
        if self._settings.max_tokens is not None:
            call_kwargs["max_tokens"] = self._settings.max_tokens
        if self._settings.api_key:
            call_kwargs["api_key"] = self._settings.api_key
        if self._settings.api_base:
            call_kwargs["api_base"] = self._settings.api_base

        # Offer tools only when there are some to offer
        if catalog:
            call_kwargs["tools"] = catalog.to_openai_tools()
            call_kwargs["tool_choice"] = "auto"
        return call_kwargs

    async def complete(
        self,
        messages: Sequence[Message],
        catalog: ToolCatalog | None = None,
    ) -> Candidate:
        call_kwargs = self._build_kwargs(messages, catalog)
        if self._trace is not None:
            redacted = {key: value for key, value in call_kwargs.items() if key != "api_key"}
            await self._trace.record(TraceKind.LLM_REQUEST, redacted)

        try:
            response = await acompletion(**call_kwargs)
        except Exception as e:
            if self._trace is not None:
                await self._trace.record(TraceKind.LLM_ERROR, e)
            raise CompletionError(f"Sending message to LLM failed: {e}", cause=e) from e

        if self._trace is not None:
            await self._trace.record(TraceKind.LLM_RESPONSE, response)

        return self._to_candidate(response)

    def _to_candidate(self, response: Any) -> Candidate:
        choices = getattr(response, "choices", None)
        if not choices:
            raise CompletionError("LLM response contained no choices")

        message = choices[0].message
        content = message.content if isinstance(message.content, str) else None

        tool_calls: list[ToolCallRequest] = []
        for raw_call in message.tool_calls or []:
            call_type = getattr(raw_call, "type", "function")
            if call_type not in (None, "function"):
                logger.warning(f"Skipping unsupported tool call type {call_type!r}")
                continue
            call_id = raw_call.id if isinstance(raw_call.id, str) and raw_call.id else None
            if call_id is None:
                call_id = f"call_{uuid.uuid4().hex[:12]}"
                logger.warning(f"Tool call without id from provider; assigned {call_id}")
            arguments = raw_call.function.arguments
            if isinstance(arguments, dict):
                arguments = json.dumps(arguments)
            try:
                tool_calls.append(
                    ToolCallRequest(
                        id=call_id,
                        name=raw_call.function.name,
                        arguments=arguments if isinstance(arguments, str) else "",
                    )
                )
            except ValidationError as e:
                raise CompletionError(f"LLM returned a malformed tool call: {e}", cause=e) from e

        call_ids = [call.id for call in tool_calls]
        if len(call_ids) != len(set(call_ids)):
            raise CompletionError(f"LLM returned duplicate tool call ids in one turn: {call_ids}")

        usage = getattr(response, "usage", None)
        model = getattr(response, "model", None)
        return Candidate(
            content=content,
            tool_calls=tuple(tool_calls),
            model=model if isinstance(model, str) else self._settings.model,
            usage=TokenUsage(
                prompt_tokens=_as_int(getattr(usage, "prompt_tokens", 0)),
                completion_tokens=_as_int(getattr(usage, "completion_tokens", 0)),
            ),
        )
