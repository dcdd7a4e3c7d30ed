"""Tests for pattern aggregation and same-session merges."""

from datetime import datetime, timedelta, timezone

import pytest

from contextkeeper.core.merge import (
    MAX_EXAMPLES,
    aggregate_patterns,
    merge_patterns,
    merge_stored_contexts,
    pattern_id,
)
from contextkeeper.core.types import (
    ContextMetadata,
    Decision,
    ExtractedContext,
    Pattern,
    PatternType,
    Problem,
)

T0 = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _pattern(freq, day, examples=(), value="npm test"):
    when = T0 + timedelta(days=day)
    return Pattern(
        id=pattern_id("command", value),
        type=PatternType.command,
        value=value,
        frequency=freq,
        first_seen=when,
        last_seen=when,
        examples=list(examples),
    )


def _problem(n, relevance=0.5):
    return Problem(
        id=f"p{n}",
        question=f"question {n}",
        timestamp=T0 + timedelta(minutes=n),
        relevance=relevance,
    )


def _context(problems=(), patterns=(), decisions=(), project="/p", ts=T0, **meta):
    return ExtractedContext(
        session_id="s1",
        timestamp=ts,
        project_path=project,
        problems=list(problems),
        patterns=list(patterns),
        decisions=list(decisions),
        metadata=ContextMetadata(**meta),
    )


class TestMergePatterns:
    def test_frequencies_add(self):
        merged = merge_patterns(_pattern(2, 0, ["a"]), _pattern(3, 5, ["b"]))
        assert merged.frequency == 5
        assert merged.first_seen == T0
        assert merged.last_seen == T0 + timedelta(days=5)
        assert merged.examples == ["a", "b"]

    def test_commutative(self):
        a, b = _pattern(2, 0, ["x"]), _pattern(4, 3, ["y"])
        assert merge_patterns(a, b) == merge_patterns(b, a)

    def test_associative(self):
        a, b, c = _pattern(1, 0, ["a"]), _pattern(2, 1, ["b"]), _pattern(3, 2, ["c"])
        assert merge_patterns(merge_patterns(a, b), c) == merge_patterns(a, merge_patterns(b, c))

    def test_examples_capped(self):
        a = _pattern(1, 0, [f"a{i}" for i in range(8)])
        b = _pattern(1, 0, [f"b{i}" for i in range(8)])
        assert len(merge_patterns(a, b).examples) == MAX_EXAMPLES

    def test_different_keys_rejected(self):
        with pytest.raises(ValueError):
            merge_patterns(_pattern(1, 0), _pattern(1, 0, value="make"))

    def test_aggregate_groups_by_key(self):
        groups = aggregate_patterns(
            [_pattern(2, 0), _pattern(3, 1), _pattern(2, 0, value="make build")]
        )
        assert groups[("command", "npm test")].frequency == 5
        assert groups[("command", "make build")].frequency == 2


class TestMergeStoredContexts:
    def test_idempotent(self):
        ctx = _context(problems=[_problem(1)], patterns=[_pattern(2, 0, ["x"])], tools_used=["Bash"])
        assert merge_stored_contexts(ctx, ctx) == ctx

    def test_commutative(self):
        a = _context(problems=[_problem(1)], patterns=[_pattern(2, 0)], entry_count=3)
        b = _context(problems=[_problem(2, 0.9)], patterns=[_pattern(3, 1)], entry_count=5)
        assert merge_stored_contexts(a, b) == merge_stored_contexts(b, a)

    def test_associative(self):
        a = _context(problems=[_problem(1)], tools_used=["Read"])
        b = _context(problems=[_problem(2)], tools_used=["Bash"], ts=T0 + timedelta(hours=1))
        c = _context(patterns=[_pattern(2, 0)], files_modified=["x.py"])
        left = merge_stored_contexts(merge_stored_contexts(a, b), c)
        right = merge_stored_contexts(a, merge_stored_contexts(b, c))
        assert left == right

    def test_pattern_frequency_not_inflated(self):
        a = _context(patterns=[_pattern(2, 0)])
        b = _context(patterns=[_pattern(3, 1)])
        merged = merge_stored_contexts(a, b)
        assert merged.patterns[0].frequency == 3

    def test_union_of_records(self):
        decision = Decision(id="d1", decision="use sqlite", timestamp=T0)
        a = _context(problems=[_problem(1)])
        b = _context(problems=[_problem(1), _problem(2, 0.9)], decisions=[decision])
        merged = merge_stored_contexts(a, b)
        assert [p.id for p in merged.problems] == ["p2", "p1"]
        assert merged.decisions == [decision]

    def test_known_project_preferred(self):
        merged = merge_stored_contexts(_context(project="unknown"), _context(project="/real"))
        assert merged.project_path == "/real"

    def test_latest_timestamp_kept(self):
        later = T0 + timedelta(days=1)
        merged = merge_stored_contexts(_context(), _context(ts=later))
        assert merged.timestamp == later

    def test_different_sessions_rejected(self):
        other = _context().model_copy(update={"session_id": "s2"})
        with pytest.raises(ValueError):
            merge_stored_contexts(_context(), other)
