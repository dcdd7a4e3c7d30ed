"""Merge laws for patterns and stored contexts.

Two merges live here:

* ``merge_patterns`` aggregates the same ``(type, value)`` pattern seen in
  different sessions. Frequencies add up, so it forms a commutative monoid.
* ``merge_stored_contexts`` reconciles two extractions of the *same* session.
  It is a join (idempotent, commutative, associative) so repeated or racing
  writes of one session never inflate counts.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TypeVar

from pydantic import BaseModel

from contextkeeper.core.dedup import stable_id
from contextkeeper.core.types import ContextMetadata, ExtractedContext, Pattern

MAX_EXAMPLES = 10

_R = TypeVar("_R", bound=BaseModel)


def pattern_id(pattern_type: str, value: str) -> str:
    return stable_id("pattern", pattern_type, value)


def union_examples(*groups: Iterable[str]) -> list[str]:
    merged: set[str] = set()
    for group in groups:
        merged.update(group)
    return sorted(merged)[:MAX_EXAMPLES]


def merge_patterns(a: Pattern, b: Pattern) -> Pattern:
    """Combine two occurrences of the same pattern across sessions."""
    if a.key != b.key:
        raise ValueError(f"Cannot merge pattern {a.key} with {b.key}")
    return Pattern(
        id=pattern_id(*a.key),
        type=a.type,
        value=a.value,
        frequency=a.frequency + b.frequency,
        first_seen=min(a.first_seen, b.first_seen),
        last_seen=max(a.last_seen, b.last_seen),
        examples=union_examples(a.examples, b.examples),
    )


def aggregate_patterns(patterns: Iterable[Pattern]) -> dict[tuple[str, str], Pattern]:
    """Group *patterns* by ``(type, value)`` and fold each group."""
    groups: dict[tuple[str, str], Pattern] = {}
    for pattern in patterns:
        existing = groups.get(pattern.key)
        groups[pattern.key] = pattern if existing is None else merge_patterns(existing, pattern)
    return groups


def join_patterns(a: Pattern, b: Pattern) -> Pattern:
    """Reconcile two observations of the same pattern within one session."""
    return Pattern(
        id=pattern_id(*a.key),
        type=a.type,
        value=a.value,
        frequency=max(a.frequency, b.frequency),
        first_seen=min(a.first_seen, b.first_seen),
        last_seen=max(a.last_seen, b.last_seen),
        examples=union_examples(a.examples, b.examples),
    )


def merge_stored_contexts(a: ExtractedContext, b: ExtractedContext) -> ExtractedContext:
    """Join two extractions of one session into a single record."""
    if a.session_id != b.session_id:
        raise ValueError(f"Cannot merge session {a.session_id} with {b.session_id}")

    patterns: dict[tuple[str, str], Pattern] = {p.key: p for p in a.patterns}
    for p in b.patterns:
        patterns[p.key] = join_patterns(patterns[p.key], p) if p.key in patterns else p

    projects = sorted({a.project_path, b.project_path} - {"unknown"})

    return ExtractedContext(
        session_id=a.session_id,
        timestamp=max(a.timestamp, b.timestamp),
        project_path=projects[-1] if projects else "unknown",
        problems=_union_by_id(a.problems, b.problems, key=lambda r: (-r.relevance, r.timestamp, r.id)),
        implementations=_union_by_id(
            a.implementations, b.implementations, key=lambda r: (-r.relevance, r.timestamp, r.id)
        ),
        decisions=_union_by_id(a.decisions, b.decisions, key=lambda r: (r.timestamp, r.id)),
        patterns=sorted(patterns.values(), key=lambda p: (-p.frequency, p.key)),
        metadata=_join_metadata(a.metadata, b.metadata),
    )


def _union_by_id(left: list[_R], right: list[_R], *, key) -> list[_R]:
    records: dict[str, _R] = {}
    for record in [*left, *right]:
        current = records.get(record.id)
        # same id, different payload: keep the larger serialisation
        if current is None or record.model_dump_json() > current.model_dump_json():
            records[record.id] = record
    return sorted(records.values(), key=key)


def _join_metadata(a: ContextMetadata, b: ContextMetadata) -> ContextMetadata:
    return ContextMetadata(
        entry_count=max(a.entry_count, b.entry_count),
        duration_ms=max(a.duration_ms, b.duration_ms),
        tools_used=sorted(set(a.tools_used) | set(b.tools_used)),
        files_modified=sorted(set(a.files_modified) | set(b.files_modified)),
        relevance_score=max(a.relevance_score, b.relevance_score),
        extraction_version=max(a.extraction_version, b.extraction_version),
        redacted_count=max(a.redacted_count, b.redacted_count),
    )
