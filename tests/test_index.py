"""Tests for the in-memory inverted index."""

from datetime import datetime, timezone

from contextkeeper.core.types import ExtractedContext, Implementation, Problem, Solution
from contextkeeper.retrieval.index import InvertedIndex, searchable_fields

T0 = datetime(2026, 2, 1, tzinfo=timezone.utc)


def _ctx(sid, question, solution=None, file=None):
    impls = []
    if file:
        impls.append(Implementation(id=f"{sid}-i", tool="Edit", file=file, timestamp=T0))
    return ExtractedContext(
        session_id=sid,
        timestamp=T0,
        problems=[
            Problem(
                id=f"{sid}-p",
                question=question,
                timestamp=T0,
                solution=Solution(approach=solution) if solution else None,
            )
        ],
        implementations=impls,
    )


class TestSearchableFields:
    def test_fields(self):
        ctx = _ctx("s1", "why?", solution="because", file="a.py")
        fields = [f for f, _ in searchable_fields(ctx)]
        assert fields == [
            "problem.question",
            "problem.solution",
            "implementation.description",
            "implementation.file",
        ]


class TestInvertedIndex:
    def test_candidates_by_substring_of_chunk(self):
        index = InvertedIndex.build([_ctx("s1", "Add JWT authentication"), _ctx("s2", "Fix CSS layout")])
        assert index.candidates(["auth"]) == {"s1"}
        assert index.candidates(["layout", "jwt"]) == {"s1", "s2"}
        assert index.candidates(["nothing"]) == set()

    def test_empty_tokens(self):
        index = InvertedIndex.build([_ctx("s1", "anything")])
        assert index.candidates([]) == set()

    def test_len_and_contains(self):
        index = InvertedIndex.build([_ctx("s1", "a b"), _ctx("s2", "c")])
        assert len(index) == 2
        assert "s1" in index
        assert "s3" not in index

    def test_postings_positions(self):
        index = InvertedIndex.build([_ctx("s1", "alpha beta alpha")])
        assert index.postings("alpha") == [("s1", 0), ("s1", 2)]

    def test_remove(self):
        index = InvertedIndex.build([_ctx("s1", "alpha"), _ctx("s2", "alpha beta")])
        index.remove("s1")
        assert index.candidates(["alpha"]) == {"s2"}
        assert "s1" not in index

    def test_remove_drops_unused_terms(self):
        index = InvertedIndex.build([_ctx("s1", "unique")])
        index.remove("s1")
        assert index.postings("unique") == []

    def test_add_replaces_previous_version(self):
        index = InvertedIndex()
        index.add(_ctx("s1", "old words"))
        index.add(_ctx("s1", "new words"))
        assert index.candidates(["old"]) == set()
        assert index.candidates(["new"]) == {"s1"}

    def test_sync_picks_up_changes(self):
        index = InvertedIndex.build([_ctx("s1", "first")])
        changed = _ctx("s1", "first", file="src/second.py")
        index.sync([changed, _ctx("s2", "third")])
        assert index.candidates(["second"]) == {"s1"}
        assert index.candidates(["third"]) == {"s2"}

    def test_file_field_indexed(self):
        index = InvertedIndex.build([_ctx("s1", "q", file="src/Auth.ts")])
        assert index.candidates(["auth.ts"]) == {"s1"}
