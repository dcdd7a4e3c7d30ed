"""User-facing ContextKeeper client."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

from contextkeeper.config import AutoLoadSettings, KeeperConfig
from contextkeeper.context import ContextLoader
from contextkeeper.core.types import (
    DateRange,
    ExtractedContext,
    LoadedContext,
    Pattern,
    PatternType,
    Scope,
    SearchResult,
    SortBy,
    TranscriptEntry,
)
from contextkeeper.exceptions import ContextNotFound
from contextkeeper.extraction.extractor import ContextExtractor
from contextkeeper.retrieval.patterns import PatternAnalyzer, ProjectAnalysis
from contextkeeper.retrieval.retriever import ContextRetriever
from contextkeeper.security import make_filter
from contextkeeper.storage.base import StorageBackend
from contextkeeper.storage.sqlite_backend import SQLiteBackend
from contextkeeper.transcript import parse_transcript


class ContextKeeper:
    """Archive transcripts and get their context back.

    >>> keeper = ContextKeeper(db_path="/tmp/contexts.db")
    >>> keeper.archive_file("session.jsonl")
    >>> keeper.fetch_context("database connection error", scope="global")
    """

    def __init__(
        self,
        config: KeeperConfig | None = None,
        *,
        db_path: str | Path | None = None,
        storage: StorageBackend | None = None,
        project_path: str | None = None,
    ):
        self._config = config or KeeperConfig()
        if db_path:
            self._config = self._config.model_copy(update={"db_path": Path(db_path)})
        self._project_path = project_path
        self._storage = storage or SQLiteBackend(self._config.db_path)
        self._filter = make_filter(self._config.security.filter_sensitive_data)

        self.extractor = ContextExtractor(self._config.extraction, text_filter=self._filter)
        self.retriever = ContextRetriever(self._storage, self._config.retrieval)
        self.analyzer = PatternAnalyzer(self._storage)
        self.loader = ContextLoader(
            self.retriever, self.analyzer, self._config.auto_load, project_path=project_path
        )

    @property
    def storage(self) -> StorageBackend:
        return self._storage

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def archive(
        self, entries: Sequence[TranscriptEntry], project_path: str | None = None
    ) -> ExtractedContext:
        """Extract *entries* and store the result. Returns the stored record."""
        context = self.extractor.extract(entries, project_path or self._project_path)
        self._storage.store(context)
        stored = self._storage.get_by_session_id(context.session_id) or context
        self.retriever.index_context(stored)
        return stored

    def archive_file(self, path: str | Path, project_path: str | None = None) -> ExtractedContext:
        return self.archive(parse_transcript(path), project_path)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def fetch_context(
        self,
        query: str | None = None,
        *,
        limit: int | None = None,
        scope: Scope | str = Scope.project,
        min_relevance: float | None = None,
        session_id: str | None = None,
    ) -> list[ExtractedContext]:
        return self.retriever.fetch_context(
            query,
            limit=limit,
            scope=scope,
            min_relevance=min_relevance,
            project_path=self._project_path,
            session_id=session_id,
        )

    def search_archive(
        self,
        query: str,
        *,
        file_pattern: str | None = None,
        date_range: DateRange | None = None,
        project_path: str | None = None,
        limit: int = 10,
        sort_by: SortBy | str = SortBy.relevance,
    ) -> list[SearchResult]:
        return self.retriever.search_archive(
            query,
            file_pattern=file_pattern,
            date_range=date_range,
            project_path=project_path,
            limit=limit,
            sort_by=sort_by,
        )

    def get_patterns(
        self,
        type: PatternType | str = "all",
        *,
        min_frequency: int = 2,
        limit: int = 10,
        project_path: str | None = None,
    ) -> list[Pattern]:
        return self.analyzer.get_patterns(
            type=type, min_frequency=min_frequency, limit=limit, project_path=project_path
        )

    def analyze_project(self, project_path: str | None = None) -> ProjectAnalysis:
        return self.analyzer.analyze_project(project_path or self._project_path or "unknown")

    def recent(self, limit: int = 10) -> list[ExtractedContext]:
        return self.retriever.get_recent_contexts(limit)

    def get(self, session_id: str) -> ExtractedContext:
        """Fetch one session. Raises ``ContextNotFound``."""
        context = self.retriever.get_by_session_id(session_id)
        if context is None:
            raise ContextNotFound(session_id)
        return context

    def auto_load(self, settings: AutoLoadSettings | None = None) -> LoadedContext:
        return self.loader.load(settings)

    def stats(self) -> dict[str, Any]:
        return self._storage.stats()
