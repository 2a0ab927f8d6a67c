"""
Orchestration loop: drives one user query to completion.

Data flow for a single query:

    user text ──► ConversationState.append(UserMessage)
                         │
                         ▼
           CompletionGateway.complete(history, catalog)      MODEL_TURN
                         │
          ┌──────────────┴──────────────┐
      text only                    tool calls
          │                             │
          │          append AssistantMessage(tool_calls)     TOOLS_PENDING
          │                             │
          │          for each call, in order:                TOOL_EXEC
          │              ToolGateway.invoke() ──► append ToolMessage
          │                             │
          │          CompletionGateway.complete(history)     FOLLOWUP_TURN
          │                             │
          └──────────────┬──────────────┘
                         ▼
                  joined reply text                          AWAITING_QUERY

Design decisions:
- Single hop. The followup turn is sent without the tool catalog, so it can
  only summarize what the tools returned. A query never triggers a second
  round of tool calls.
- Tool calls run one at a time in the order the model issued them. Each
  result is in history before the next call starts, which keeps tool
  messages in request order.
- Tool failures are written into history as the tool result ("Error: ...")
  and shown inline in the reply; they never abort the query. The same holds
  for a failed followup turn. Only a failed primary completion aborts.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

from toolbridge.errors import CompletionError, ToolInvocationError
from toolbridge.llm.conversation import ConversationState
from toolbridge.llm.gateway import CompletionGateway
from toolbridge.llm.models import (
    AssistantMessage,
    QueryFailed,
    QueryOk,
    QueryResult,
    ToolCallRecord,
    ToolCallRequest,
    ToolMessage,
    UserMessage,
)
from toolbridge.tools.base import ToolGateway, ToolResult
from toolbridge.tools.catalog import ToolCatalog

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    """Where the loop is within a query."""

    AWAITING_QUERY = "awaiting_query"
    MODEL_TURN = "model_turn"
    TOOLS_PENDING = "tools_pending"
    TOOL_EXEC = "tool_exec"
    FOLLOWUP_TURN = "followup_turn"


def stringify_result(result: ToolResult) -> str:
    """Serialize a tool result to text for the history log."""
    if isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False)


def format_tool_invocation(name: str, arguments: dict[str, Any]) -> str:
    return f"\n[Calling tool {name} with args {json.dumps(arguments, indent=2, ensure_ascii=False)}]\n"


class OrchestrationLoop:
    """
    Resolves user queries against a model and a tool host.

    The loop does not own its collaborators' lifecycles: the session creates
    the conversation, catalog and gateways, and hands them in. It does own the
    conversation while it runs, and callers must not run two queries on the
    same loop concurrently.

    Args:
        conversation: History shared across the session's queries
        completion: Gateway to the model endpoint
        tools: Gateway to the tool host
        catalog: Normalized tools offered to the model on the primary turn
    """

    def __init__(
        self,
        conversation: ConversationState,
        completion: CompletionGateway,
        tools: ToolGateway,
        catalog: ToolCatalog,
    ):
        self._conversation = conversation
        self._completion = completion
        self._tools = tools
        self._catalog = catalog
        self._state = LoopState.AWAITING_QUERY

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def conversation(self) -> ConversationState:
        return self._conversation

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    async def run(self, query: str) -> QueryResult:
        """
        Run one query through the model, tools and followup turn.

        Args:
            query: The user's text (must be non-empty after stripping whitespace)

        Returns:
            QueryOk with the joined reply, or QueryFailed when the primary
            completion call failed

        Raises:
            ValueError: If query is empty or whitespace-only
        """
        query = query.strip()
        if not query:
            raise ValueError("Query cannot be empty")

        try:
            return await self._run(query)
        finally:
            self._state = LoopState.AWAITING_QUERY

    async def _run(self, query: str) -> QueryResult:
        self._conversation.append(UserMessage(content=query))

        self._state = LoopState.MODEL_TURN
        try:
            candidate = await self._completion.complete(self._conversation.snapshot(), self._catalog)
        except CompletionError as e:
            # The user message stays in history so the caller can retry by hand
            logger.error(f"Primary completion failed: {e}")
            return QueryFailed(
                reply=f"Error processing query: {e}",
                error=str(e),
                error_type=type(e).__name__,
            )

        fragments: list[str] = []
        usage = candidate.usage
        model = candidate.model

        if candidate.is_empty:
            logger.warning("Completion returned neither content nor tool calls")
            return QueryOk(reply="", model=model, usage=usage)

        if candidate.content:
            fragments.append(candidate.content)

        if not candidate.tool_calls:
            self._conversation.append(AssistantMessage(content=candidate.content))
            return QueryOk(reply="\n".join(fragments), model=model, usage=usage)

        # The assistant turn must precede its tool results in history
        self._state = LoopState.TOOLS_PENDING
        self._conversation.append(
            AssistantMessage(content=candidate.content, tool_calls=candidate.tool_calls)
        )

        records = []
        for call in candidate.tool_calls:
            records.append(await self._resolve_tool_call(call, fragments))

        followup_error = None
        self._state = LoopState.FOLLOWUP_TURN
        try:
            followup = await self._completion.complete(self._conversation.snapshot())
        except CompletionError as e:
            logger.error(f"Followup completion failed: {e}")
            followup_error = str(e)
            fragments.append(f"[Failed to get followup response: {e}]")
        else:
            usage = usage + followup.usage
            model = followup.model or model
            if followup.tool_calls:
                logger.warning(
                    f"Ignoring {len(followup.tool_calls)} tool calls requested in the followup turn"
                )
            if followup.content:
                fragments.append(followup.content)
                self._conversation.append(AssistantMessage(content=followup.content))

        return QueryOk(
            reply="\n".join(fragments),
            tool_calls=records,
            model=model,
            usage=usage,
            followup_error=followup_error,
        )

    async def _resolve_tool_call(self, call: ToolCallRequest, fragments: list[str]) -> ToolCallRecord:
        self._state = LoopState.TOOL_EXEC
        arguments, argument_error = call.parse_arguments()
        if argument_error:
            logger.warning(f"Tool call {call.id} ({call.name}): {argument_error}; using {{}}")

        record = ToolCallRecord(
            call_id=call.id,
            name=call.name,
            arguments=arguments,
            argument_error=argument_error,
        )
        fragments.append(format_tool_invocation(call.name, arguments))

        try:
            if call.name not in self._catalog:
                raise ToolInvocationError(call.name, f"Unknown tool {call.name!r}")
            result = await self._tools.invoke(call.name, arguments)
        except ToolInvocationError as e:
            logger.warning(f"Tool '{call.name}' failed: {e}")
            record.error = str(e)
            self._conversation.append(ToolMessage(tool_call_id=call.id, content=f"Error: {e}"))
            fragments.append(f"[Tool call failed: {e}]")
        else:
            record.result = stringify_result(result)
            self._conversation.append(ToolMessage(tool_call_id=call.id, content=record.result))

        self._state = LoopState.TOOLS_PENDING
        return record
