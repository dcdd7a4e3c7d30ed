"""Line-delimited JSON transcript ingestion."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from contextkeeper.core.types import EntryType, TranscriptEntry

log = logging.getLogger(__name__)

_ENTRY_TYPES = {t.value for t in EntryType}


def parse_transcript(path: str | Path) -> list[TranscriptEntry]:
    """Read a JSONL transcript file."""
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    return parse_transcript_content(text)


def parse_transcript_content(content: str) -> list[TranscriptEntry]:
    """Parse JSONL *content*. Malformed lines are logged and skipped."""
    entries: list[TranscriptEntry] = []
    for lineno, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            raw = json.loads(line)
        except json.JSONDecodeError as exc:
            log.warning("Skipping malformed transcript line %d: %s", lineno, exc)
            continue
        if not isinstance(raw, dict):
            log.warning("Skipping transcript line %d: expected an object", lineno)
            continue
        try:
            entries.extend(normalize_entry(raw))
        except ValidationError as exc:
            log.warning("Skipping invalid transcript line %d: %s", lineno, exc.errors()[0]["msg"])
    return entries


def normalize_entry(raw: dict[str, Any]) -> list[TranscriptEntry]:
    """Turn one raw transcript object into typed entries.

    Accepts camelCase and snake_case keys. Assistant messages carrying
    ``tool_use`` blocks and user messages carrying ``tool_result`` blocks are
    split into separate entries so each tool call is seen on its own. Entry
    types outside ``EntryType`` (summaries, hook records) yield nothing.
    """
    kind = raw.get("type")
    if kind not in _ENTRY_TYPES:
        log.debug("Ignoring transcript entry of type %r", kind)
        return []

    base = {
        "timestamp": raw.get("timestamp"),
        "session_id": _first(raw, "sessionId", "session_id") or "unknown",
        "cwd": raw.get("cwd") if isinstance(raw.get("cwd"), str) else None,
    }
    message = raw.get("message")
    content = message.get("content") if isinstance(message, dict) else raw.get("content")

    tool = _first(raw, "toolUse", "tool_use")
    result = _first(raw, "toolResult", "tool_result")

    if kind in ("user", "assistant") and isinstance(content, list) and tool is None and result is None:
        split = _split_blocks(kind, content, base)
        if split:
            return split

    entry: dict[str, Any] = {**base, "type": kind, "content": content}
    if isinstance(tool, dict):
        entry["tool"] = {"name": tool.get("name"), "input": tool.get("input")}
    if isinstance(result, dict):
        entry["result"] = {"output": result.get("output"), "error": result.get("error")}
    return [TranscriptEntry.model_validate(entry)]


def _split_blocks(kind: str, blocks: list[Any], base: dict[str, Any]) -> list[TranscriptEntry]:
    tool_blocks = [b for b in blocks if isinstance(b, dict) and b.get("type") in ("tool_use", "tool_result")]
    if not tool_blocks:
        return []

    out: list[TranscriptEntry] = []
    text_blocks = [b for b in blocks if b not in tool_blocks]
    if text_blocks:
        out.append(TranscriptEntry.model_validate({**base, "type": kind, "content": text_blocks}))
    for block in tool_blocks:
        if block["type"] == "tool_use":
            out.append(
                TranscriptEntry.model_validate(
                    {
                        **base,
                        "type": "tool_use",
                        "tool": {"name": block.get("name"), "input": block.get("input")},
                    }
                )
            )
        else:
            body = block.get("content")
            failed = bool(block.get("is_error"))
            out.append(
                TranscriptEntry.model_validate(
                    {
                        **base,
                        "type": "tool_result",
                        "content": body,
                        "result": {"output": None if failed else body, "error": body if failed else None},
                    }
                )
            )
    return out


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


class SessionSummary(BaseModel):
    session_id: str
    entry_count: int
    duration_ms: int
    project_path: str
    tools_used: list[str]


def summarize_session(entries: Sequence[TranscriptEntry]) -> SessionSummary:
    """Session id, duration, project path and tools for *entries*."""
    if not entries:
        return SessionSummary(
            session_id="unknown", entry_count=0, duration_ms=0, project_path="unknown", tools_used=[]
        )
    stamps = [e.timestamp for e in entries]
    session_id = next((e.session_id for e in entries if e.session_id != "unknown"), "unknown")
    project = next((e.cwd for e in entries if e.cwd), "unknown")
    tools = sorted({e.tool.name for e in entries if e.tool is not None and e.tool.name})
    return SessionSummary(
        session_id=session_id,
        entry_count=len(entries),
        duration_ms=int((max(stamps) - min(stamps)).total_seconds() * 1000),
        project_path=project,
        tools_used=tools,
    )


def validate_entries(entries: Sequence[TranscriptEntry]) -> list[str]:
    """Return consistency problems; an empty list means the transcript is usable."""
    if not entries:
        return ["No entries found in transcript"]
    errors: list[str] = []
    sessions = sorted({e.session_id for e in entries})
    if len(sessions) > 1:
        errors.append(f"Multiple session IDs found: {', '.join(sessions)}")
    for index, entry in enumerate(entries):
        if entry.type == EntryType.tool_use and (entry.tool is None or not entry.tool.name):
            errors.append(f"Entry {index} is a tool_use without a tool name")
    return errors
