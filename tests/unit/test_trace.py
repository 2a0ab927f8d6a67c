"""
Unit tests for TraceRecorder.
"""

import json
import re

import pytest
from pydantic import BaseModel

from toolbridge.trace import TraceKind, TraceRecorder


class _Payload(BaseModel):
    name: str
    count: int


class TestTraceRecorder:

    @pytest.mark.asyncio
    async def test_files_are_numbered_in_order(self, tmp_path):
        trace = TraceRecorder(tmp_path)

        first = await trace.record(TraceKind.LLM_REQUEST, {"a": 1})
        second = await trace.record(TraceKind.LLM_RESPONSE, {"b": 2})

        assert re.fullmatch(r"0_llm-request_\d{4}-\d{2}-\d{2}_\d{2}_\d{2}_\d{2}\.json", first.name)
        assert second.name.startswith("1_llm-response_")
        assert json.loads(first.read_text(encoding="utf-8")) == {"a": 1}

    @pytest.mark.asyncio
    async def test_creates_directory(self, tmp_path):
        trace = TraceRecorder(tmp_path / "nested" / "logs")
        path = await trace.record(TraceKind.CONNECT, {})
        assert path.parent == tmp_path / "nested" / "logs"

    @pytest.mark.asyncio
    async def test_disabled_writes_nothing(self, tmp_path):
        trace = TraceRecorder(tmp_path, enabled=False)
        assert await trace.record(TraceKind.TOOL_CALL, {"name": "x"}) is None
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_exception_payload(self, tmp_path):
        path = await TraceRecorder(tmp_path).record(TraceKind.LLM_ERROR, ConnectionError("refused"))
        assert json.loads(path.read_text(encoding="utf-8")) == {
            "error": "ConnectionError",
            "message": "refused",
        }

    @pytest.mark.asyncio
    async def test_pydantic_payload(self, tmp_path):
        path = await TraceRecorder(tmp_path).record(TraceKind.GET_TOOLS, _Payload(name="x", count=2))
        assert json.loads(path.read_text(encoding="utf-8")) == {"name": "x", "count": 2}

    @pytest.mark.asyncio
    async def test_write_failure_is_dropped(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        trace = TraceRecorder(blocker)

        assert await trace.record(TraceKind.TOOL_CALL, {"name": "x"}) is None

    @pytest.mark.asyncio
    async def test_clear(self, tmp_path):
        trace = TraceRecorder(tmp_path)
        await trace.record(TraceKind.TOOL_CALL, {})
        await trace.record(TraceKind.TOOL_CALL_RESPONSE, {})
        (tmp_path / "notes.txt").write_text("keep me", encoding="utf-8")

        assert trace.clear() == 2
        assert [p.name for p in tmp_path.iterdir()] == ["notes.txt"]

    def test_clear_missing_directory(self, tmp_path):
        assert TraceRecorder(tmp_path / "missing").clear() == 0
