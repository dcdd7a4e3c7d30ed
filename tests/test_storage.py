"""Tests for the SQLite storage backend."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from contextkeeper.core.types import ContextMetadata, ExtractedContext, Problem
from contextkeeper.exceptions import StorageError
from contextkeeper.extraction.extractor import ContextExtractor
from contextkeeper.storage.base import StorageBackend
from contextkeeper.storage.sqlite_backend import SQLiteBackend

T0 = datetime(2026, 4, 1, tzinfo=timezone.utc)


def _ctx(sid, project="/p", hours=0, problems=0, relevance=0.5):
    ts = T0 + timedelta(hours=hours)
    return ExtractedContext(
        session_id=sid,
        timestamp=ts,
        project_path=project,
        problems=[
            Problem(id=f"{sid}-{i}", question=f"q{i}", timestamp=ts, relevance=relevance)
            for i in range(problems)
        ],
        metadata=ContextMetadata(relevance_score=relevance),
    )


class TestSQLiteBackend:
    def test_satisfies_protocol(self, backend):
        assert isinstance(backend, StorageBackend)

    def test_store_and_get(self, backend):
        ctx = _ctx("s1", problems=2)
        row_id = backend.store(ctx)
        assert row_id >= 1
        assert backend.get_by_session_id("s1") == ctx

    def test_get_missing(self, backend):
        assert backend.get_by_session_id("nope") is None

    def test_restore_same_session_merges(self, backend):
        first = backend.store(_ctx("s1", problems=1))
        second = backend.store(_ctx("s1", problems=3, hours=1))
        assert first == second
        stored = backend.get_by_session_id("s1")
        assert len(stored.problems) == 3
        assert stored.timestamp == T0 + timedelta(hours=1)
        assert backend.stats()["total_contexts"] == 1

    def test_store_is_idempotent(self, backend, npm_session):
        ctx = ContextExtractor().extract(npm_session)
        backend.store(ctx)
        backend.store(ctx)
        assert backend.get_by_session_id(ctx.session_id) == ctx

    def test_get_by_project_newest_first(self, backend):
        backend.store(_ctx("old", hours=0))
        backend.store(_ctx("new", hours=5))
        backend.store(_ctx("other", project="/q", hours=9))
        assert [c.session_id for c in backend.get_by_project("/p")] == ["new", "old"]

    def test_list_contexts_limit(self, backend):
        for i in range(4):
            backend.store(_ctx(f"s{i}", hours=i))
        assert [c.session_id for c in backend.list_contexts(2)] == ["s3", "s2"]
        assert len(backend.list_contexts()) == 4

    def test_search_predicate(self, backend):
        backend.store(_ctx("a", problems=1))
        backend.store(_ctx("b"))
        assert [c.session_id for c in backend.search(lambda c: c.problems)] == ["a"]

    def test_projects(self, backend):
        backend.store(_ctx("a", project="/x"))
        backend.store(_ctx("b", project="/y"))
        assert backend.projects() == ["/x", "/y"]

    def test_stats(self, backend):
        backend.store(_ctx("a", problems=2, relevance=0.4))
        backend.store(_ctx("b", project="/q", problems=1, relevance=0.8))
        stats = backend.stats()
        assert stats["total_contexts"] == 2
        assert stats["projects"] == 2
        assert stats["total_items"] == 3
        assert stats["average_relevance"] == pytest.approx(0.6)
        assert stats["by_project"] == {"/p": 1, "/q": 1}
        assert stats["db_size_mb"] >= 0

    def test_stats_empty(self, backend):
        stats = backend.stats()
        assert stats["total_contexts"] == 0
        assert stats["average_relevance"] == 0.0

    def test_persists_across_instances(self, tmp_path):
        SQLiteBackend(tmp_path / "db.sqlite").store(_ctx("s1"))
        assert SQLiteBackend(tmp_path / "db.sqlite").get_by_session_id("s1") is not None

    def test_corrupt_payload(self, backend):
        with sqlite3.connect(backend.db_path) as conn:
            conn.execute(
                "INSERT INTO contexts (session_id, ts, payload) VALUES (?, ?, ?)",
                ("broken", 0.0, "{not json"),
            )
        with pytest.raises(StorageError):
            backend.get_by_session_id("broken")

    def test_creates_parent_directory(self, tmp_path):
        backend = SQLiteBackend(tmp_path / "nested" / "dir" / "contexts.db")
        assert backend.db_path.parent.is_dir()


class TestMatchSessions:
    @pytest.fixture
    def stored(self, backend):
        if not backend.fts_enabled:
            pytest.skip("SQLite built without the FTS5 trigram tokenizer")
        backend.store(_ctx("s1", problems=0).model_copy(update={"problems": [
            Problem(id="s1-0", question="Add JWT authentication", timestamp=T0)
        ]}))
        backend.store(_ctx("s2", problems=0).model_copy(update={"problems": [
            Problem(id="s2-0", question="Fix CSS layout", timestamp=T0)
        ]}))
        return backend

    def test_substring_match(self, stored):
        assert stored.match_sessions(["auth"]) == {"s1"}
        assert stored.match_sessions(["layout", "jwt"]) == {"s1", "s2"}
        assert stored.match_sessions(["nothing"]) == set()

    def test_follows_merged_row(self, stored):
        stored.store(_ctx("s2").model_copy(update={"problems": [
            Problem(id="s2-1", question="Upgrade the webpack config", timestamp=T0)
        ]}))
        assert stored.match_sessions(["webpack"]) == {"s2"}
        assert stored.match_sessions(["layout"]) == {"s2"}

    def test_short_or_non_ascii_tokens_defer(self, stored):
        assert stored.match_sessions(["db"]) is None
        assert stored.match_sessions(["café"]) is None
        assert stored.match_sessions([]) is None

    def test_quotes_in_tokens(self, stored):
        assert stored.match_sessions(['"auth']) == set()
