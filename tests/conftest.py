"""Shared fixtures: transcript builders, sample sessions and a throwaway backend."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from contextkeeper.core.types import TranscriptEntry
from contextkeeper.storage.sqlite_backend import SQLiteBackend


@pytest.fixture
def recent_base() -> datetime:
    return datetime.now(timezone.utc) - timedelta(hours=1)


@pytest.fixture
def make_entry(recent_base):
    def _make(
        type: str,
        text=None,
        *,
        at: int = 0,
        session_id: str = "sess-1",
        cwd: str | None = "/work/app",
        tool: str | None = None,
        tool_input: dict | None = None,
        error=None,
        output=None,
        base: datetime | None = None,
    ) -> TranscriptEntry:
        payload = {
            "type": type,
            "timestamp": (base or recent_base) + timedelta(seconds=at),
            "session_id": session_id,
            "cwd": cwd,
        }
        if text is not None:
            payload["content"] = text
        if tool is not None:
            payload["tool"] = {"name": tool, "input": tool_input or {}}
        if error is not None or output is not None:
            payload["result"] = {"output": output, "error": error}
        return TranscriptEntry.model_validate(payload)

    return _make


@pytest.fixture
def jwt_session(make_entry) -> list[TranscriptEntry]:
    """Question, a Write, then a confirmation."""
    sid = "sess-jwt"
    return [
        make_entry("user", "How do I implement user authentication with JWT?", at=0, session_id=sid),
        make_entry(
            "tool_use",
            at=5,
            session_id=sid,
            tool="Write",
            tool_input={"file_path": "src/auth.ts", "content": "export function sign() {}"},
        ),
        make_entry(
            "assistant",
            "I've implemented JWT authentication in src/auth.ts with sign and verify helpers.",
            at=10,
            session_id=sid,
        ),
    ]


@pytest.fixture
def npm_session(make_entry) -> list[TranscriptEntry]:
    """Failing tests fixed by two edits, with ``npm test`` run twice."""
    sid = "sess-npm"
    edit = {"file_path": "src/clock.js", "old_string": "Date.now()", "new_string": "clock.now()"}
    return [
        make_entry("user", "Why are the tests failing?", at=0, session_id=sid),
        make_entry(
            "assistant",
            "We should mock the clock because the tests depend on wall time.",
            at=2,
            session_id=sid,
        ),
        make_entry("tool_use", at=4, session_id=sid, tool="Edit", tool_input=edit),
        make_entry("tool_use", at=6, session_id=sid, tool="Bash", tool_input={"command": "npm test"}),
        make_entry("tool_result", at=8, session_id=sid, output="2 passing"),
        make_entry("tool_use", at=10, session_id=sid, tool="Edit", tool_input=edit),
        make_entry("tool_use", at=12, session_id=sid, tool="Bash", tool_input={"command": "npm  test"}),
        make_entry("assistant", "Fixed: the tests pass now.", at=14, session_id=sid),
    ]


@pytest.fixture
def backend(tmp_path: Path) -> SQLiteBackend:
    return SQLiteBackend(tmp_path / "contexts.db")
