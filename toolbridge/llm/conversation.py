"""
Append-only conversation history for one session.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from toolbridge.llm.models import AssistantMessage, Message, SystemMessage, ToolMessage

logger = logging.getLogger(__name__)


class ConversationState:
    """
    Ordered message history, always starting with a system message.

    The history only grows, except for ``reset()`` which truncates it back to
    the initial system message. Messages are frozen models, so the tuple
    returned by ``snapshot()`` is safe to hand to a completion gateway.

    Args:
        system_prompt: Content of the initial system message (may be empty)
    """

    def __init__(self, system_prompt: str = ""):
        self._system = SystemMessage(content=system_prompt)
        self._messages: list[Message] = [self._system]
        self._pending_call_ids: set[str] = set()

    @property
    def system_prompt(self) -> str:
        return self._system.content

    @property
    def last(self) -> Message:
        return self._messages[-1]

    def append(self, message: Message) -> None:
        """
        Add a message to the tail of the history.

        Raises:
            ValueError: For a second system message, or a tool message whose
                        call id was never requested by an assistant turn.
        """
        if isinstance(message, SystemMessage):
            raise ValueError("Conversation already has a system message")
        if isinstance(message, ToolMessage) and message.tool_call_id not in self._pending_call_ids:
            raise ValueError(
                f"Tool message references unknown tool call id {message.tool_call_id!r}"
            )
        if isinstance(message, AssistantMessage):
            self._pending_call_ids.update(call.id for call in message.tool_calls)

        self._messages.append(message)
        logger.debug(f"Appended {message.role} message (history length {len(self._messages)})")

    def reset(self) -> None:
        """Truncate back to the initial system message."""
        del self._messages[1:]
        self._pending_call_ids.clear()
        logger.debug("Conversation reset")

    def snapshot(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def to_wire(self) -> list[dict[str, Any]]:
        """Render the history in the OpenAI chat message format."""
        return [message.to_wire() for message in self._messages]

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __len__(self) -> int:
        return len(self._messages)
