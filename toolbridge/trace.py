"""
Exchange tracing.

Every request and response crossing a gateway can be written to its own JSON
file so a conversation can be inspected after the fact:

    logs/0_llm-request_2025-01-31_14_02_11.json
    logs/1_llm-response_2025-01-31_14_02_13.json
    logs/2_tool-call_2025-01-31_14_02_13.json

File names carry a monotonically increasing index, so a directory listing
sorted numerically replays the session in order. Writing a trace never
affects the exchange being traced: I/O errors are logged and dropped.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiofiles
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class TraceKind(str, Enum):
    """Kinds of traced exchange; the value is used in the file name."""

    GET_TOOLS = "get-tools"
    GET_TOOLS_ERROR = "get-tools-error"
    CONNECT = "connect"
    LLM_REQUEST = "llm-request"
    LLM_RESPONSE = "llm-response"
    LLM_ERROR = "llm-error"
    TOOL_CALL = "tool-call"
    TOOL_CALL_RESPONSE = "tool-call-response"
    TOOL_CALL_ERROR = "tool-call-error"


def _to_jsonable(data: Any) -> Any:
    if isinstance(data, BaseException):
        return {"error": type(data).__name__, "message": str(data)}
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if hasattr(data, "model_dump"):
        # LiteLLM response objects expose a pydantic-style model_dump()
        return data.model_dump()
    return data


class TraceRecorder:
    """
    Writes numbered JSON trace files into a directory.

    Args:
        directory: Where trace files go (created on first write)
        enabled: When False, ``record()`` is a no-op
    """

    def __init__(self, directory: str | Path, enabled: bool = True):
        self._directory = Path(directory)
        self._enabled = enabled
        self._index = 0

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _file_name(self, kind: TraceKind) -> str:
        stamp = datetime.now().strftime("%Y-%m-%d_%H_%M_%S")
        name = f"{self._index}_{kind.value}_{stamp}.json"
        self._index += 1
        return name

    async def record(self, kind: TraceKind, data: Any) -> Path | None:
        """
        Persist one exchange.

        Returns:
            Path of the written file, or None if tracing is disabled or the
            write failed.
        """
        if not self._enabled:
            return None

        path = self._directory / self._file_name(kind)
        logger.debug(f"Trace {path.name}")
        try:
            payload = json.dumps(_to_jsonable(data), indent=2, ensure_ascii=False, default=str)
            self._directory.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(payload)
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to write trace {path}: {e}")
            return None
        return path

    def clear(self) -> int:
        """
        Delete trace files left over from earlier runs.

        Returns:
            Number of files removed.
        """
        if not self._directory.is_dir():
            return 0

        removed = 0
        for path in self._directory.glob("*.json"):
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning(f"Failed to delete trace file {path}: {e}")
        logger.info(f"Cleared {removed} trace files from {self._directory}")
        return removed
