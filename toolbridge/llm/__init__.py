"""
LLM Orchestration Layer.

Conversation history, completion gateways, and the loop that resolves one
user query into model turns and tool calls:

    Session.ask(query)
          ↓
    OrchestrationLoop.run(query)  ←→  CompletionGateway (LiteLLM)
          ↓                       ←→  ToolGateway (MCP)
    QueryOk / QueryFailed  →  reply text
"""

from toolbridge.llm.conversation import ConversationState
from toolbridge.llm.gateway import CompletionGateway, LiteLLMCompletionGateway
from toolbridge.llm.models import (
    AssistantMessage,
    Candidate,
    Message,
    QueryFailed,
    QueryOk,
    QueryResult,
    SystemMessage,
    TokenUsage,
    ToolCallRecord,
    ToolCallRequest,
    ToolMessage,
    UserMessage,
)
from toolbridge.llm.orchestrator import LoopState, OrchestrationLoop

__all__ = [
    "AssistantMessage",
    "Candidate",
    "CompletionGateway",
    "ConversationState",
    "LiteLLMCompletionGateway",
    "LoopState",
    "Message",
    "OrchestrationLoop",
    "QueryFailed",
    "QueryOk",
    "QueryResult",
    "SystemMessage",
    "TokenUsage",
    "ToolCallRecord",
    "ToolCallRequest",
    "ToolMessage",
    "UserMessage",
]
