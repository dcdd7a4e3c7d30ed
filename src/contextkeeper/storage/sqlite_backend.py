"""SQLite + FTS5 storage backend."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from contextkeeper.core.merge import merge_stored_contexts
from contextkeeper.core.types import ExtractedContext
from contextkeeper.exceptions import StorageError
from contextkeeper.retrieval.index import searchable_text

log = logging.getLogger(__name__)


class SQLiteBackend:
    """One row per session, the extracted context stored as JSON.

    A trigram FTS5 table over the searchable text lets retrieval narrow
    candidates by substring inside SQLite.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.fts_enabled = True
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create {self.db_path.parent}: {exc}") from exc
        self._init_db()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS contexts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL UNIQUE,
                    project_path TEXT NOT NULL DEFAULT 'unknown',
                    ts REAL NOT NULL,
                    item_count INTEGER DEFAULT 0,
                    relevance REAL DEFAULT 0.0,
                    payload TEXT NOT NULL,
                    search_text TEXT NOT NULL DEFAULT '',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_project ON contexts(project_path)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_ts ON contexts(ts DESC)")
            self._init_fts(conn)

    def _init_fts(self, conn: sqlite3.Connection) -> None:
        try:
            conn.execute("""
                CREATE VIRTUAL TABLE IF NOT EXISTS contexts_fts USING fts5(
                    search_text,
                    content='contexts',
                    content_rowid='id',
                    tokenize='trigram'
                )
            """)
        except sqlite3.OperationalError as exc:
            # SQLite older than 3.34 has no trigram tokenizer
            log.warning("FTS5 trigram index unavailable, using in-memory index: %s", exc)
            self.fts_enabled = False
            return

        # Keep FTS in sync
        conn.execute("""
            CREATE TRIGGER IF NOT EXISTS contexts_ai AFTER INSERT ON contexts BEGIN
                INSERT INTO contexts_fts(rowid, search_text) VALUES (new.id, new.search_text);
            END
        """)
        conn.execute("""
            CREATE TRIGGER IF NOT EXISTS contexts_ad AFTER DELETE ON contexts BEGIN
                INSERT INTO contexts_fts(contexts_fts, rowid, search_text)
                VALUES ('delete', old.id, old.search_text);
            END
        """)
        conn.execute("""
            CREATE TRIGGER IF NOT EXISTS contexts_au AFTER UPDATE ON contexts BEGIN
                INSERT INTO contexts_fts(contexts_fts, rowid, search_text)
                VALUES ('delete', old.id, old.search_text);
                INSERT INTO contexts_fts(rowid, search_text) VALUES (new.id, new.search_text);
            END
        """)

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open {self.db_path}: {exc}") from exc
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def store(self, context: ExtractedContext) -> int:
        """Insert *context*, or merge it into the stored row for its session.

        The read and the write share one transaction.
        """
        with self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT id, payload FROM contexts WHERE session_id = ?",
                (context.session_id,),
            ).fetchone()
            if row is None:
                cur = conn.execute(
                    """
                    INSERT INTO contexts
                        (session_id, project_path, ts, item_count, relevance, payload, search_text)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    _row_values(context),
                )
                log.debug("Stored new context %s", context.session_id)
                return cur.lastrowid

            merged = merge_stored_contexts(_decode(row["payload"]), context)
            conn.execute(
                """
                UPDATE contexts
                SET session_id = ?, project_path = ?, ts = ?, item_count = ?, relevance = ?,
                    payload = ?, search_text = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (*_row_values(merged), row["id"]),
            )
            log.debug("Merged context %s into row %d", context.session_id, row["id"])
            return row["id"]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_session_id(self, session_id: str) -> ExtractedContext | None:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT payload FROM contexts WHERE session_id = ?", (session_id,)
            ).fetchone()
        return _decode(row["payload"]) if row else None

    def get_by_project(self, project_path: str) -> list[ExtractedContext]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT payload FROM contexts WHERE project_path = ? ORDER BY ts DESC, id DESC",
                (project_path,),
            ).fetchall()
        return [_decode(r["payload"]) for r in rows]

    def list_contexts(self, limit: int | None = None) -> list[ExtractedContext]:
        sql = "SELECT payload FROM contexts ORDER BY ts DESC, id DESC"
        params: tuple[Any, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (max(limit, 0),)
        with self._conn() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_decode(r["payload"]) for r in rows]

    def search(self, predicate: Callable[[ExtractedContext], bool]) -> list[ExtractedContext]:
        return [c for c in self.list_contexts() if predicate(c)]

    def match_sessions(self, tokens: list[str]) -> set[str] | None:
        """Session ids whose searchable text contains any of *tokens*.

        Returns ``None`` when the trigram index cannot answer: FTS5 is
        unavailable, or a token is shorter than a trigram or not ASCII.
        """
        if not self.fts_enabled or not tokens:
            return None
        if any(len(t) < 3 or not t.isascii() for t in tokens):
            return None
        fts_expr = " OR ".join('"' + t.replace('"', '""') + '"' for t in tokens)
        with self._conn() as conn:
            try:
                rows = conn.execute(
                    """
                    SELECT c.session_id
                    FROM contexts c
                    JOIN contexts_fts fts ON c.id = fts.rowid
                    WHERE contexts_fts MATCH ?
                    """,
                    (fts_expr,),
                ).fetchall()
            except sqlite3.OperationalError as exc:
                log.warning("FTS5 query failed, using in-memory index: %s", exc)
                return None
        return {r["session_id"] for r in rows}

    def projects(self) -> list[str]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT DISTINCT project_path FROM contexts ORDER BY project_path"
            ).fetchall()
        return [r["project_path"] for r in rows]

    def stats(self) -> dict[str, Any]:
        with self._conn() as conn:
            agg = conn.execute(
                """
                SELECT COUNT(*) AS total,
                       COUNT(DISTINCT project_path) AS projects,
                       COALESCE(SUM(item_count), 0) AS items,
                       AVG(relevance) AS avg_relevance
                FROM contexts
                """
            ).fetchone()
            by_project = conn.execute(
                "SELECT project_path, COUNT(*) AS count FROM contexts GROUP BY project_path"
            ).fetchall()

        db_size = self.db_path.stat().st_size / (1024 * 1024) if self.db_path.exists() else 0
        return {
            "total_contexts": agg["total"],
            "projects": agg["projects"],
            "total_items": agg["items"],
            "average_relevance": round(agg["avg_relevance"] or 0.0, 3),
            "by_project": {r["project_path"]: r["count"] for r in by_project},
            "db_size_mb": round(db_size, 2),
        }


def _row_values(context: ExtractedContext) -> tuple[Any, ...]:
    return (
        context.session_id,
        context.project_path,
        context.timestamp.timestamp(),
        context.item_count,
        context.metadata.relevance_score,
        context.model_dump_json(),
        searchable_text(context),
    )


def _decode(payload: str) -> ExtractedContext:
    try:
        return ExtractedContext.model_validate_json(payload)
    except ValidationError as exc:
        raise StorageError(f"Corrupt stored context: {exc}") from exc
