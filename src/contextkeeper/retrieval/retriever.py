"""Ranked retrieval over stored contexts."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import datetime

from contextkeeper.config import RetrievalSettings
from contextkeeper.core.decay import days_since, temporal_decay
from contextkeeper.core.types import (
    DateRange,
    ExtractedContext,
    Match,
    Scope,
    SearchResult,
    SortBy,
)
from contextkeeper.retrieval.index import InvertedIndex, searchable_fields
from contextkeeper.retrieval.query import (
    DEFAULT_VOCABULARY,
    QueryVocabulary,
    extract_snippet,
    matches_file_pattern,
    tokenize_query,
    word_match_score,
)
from contextkeeper.storage.base import StorageBackend

log = logging.getLogger(__name__)

# Field weights for fetch_context scoring.
FETCH_WEIGHTS: dict[str, float] = {
    "problem.question": 0.3,
    "problem.solution": 0.2,
    "implementation.description": 0.2,
    "implementation.file": 0.1,
    "decision": 0.2,
    "decision.context": 0.1,
    "pattern": 0.1,
}

# Per-match scores for search_archive.
SEARCH_WEIGHTS: dict[str, float] = {
    "problem.question": 0.8,
    "problem.solution": 0.7,
    "implementation.description": 0.6,
    "decision": 0.7,
    "pattern": 0.5,
}


class ContextRetriever:
    """Fetch and search contexts through a ``StorageBackend``."""

    def __init__(
        self,
        storage: StorageBackend,
        settings: RetrievalSettings | None = None,
        vocabulary: QueryVocabulary = DEFAULT_VOCABULARY,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.storage = storage
        self.settings = settings or RetrievalSettings()
        self.vocabulary = vocabulary
        self.index: InvertedIndex | None = InvertedIndex() if self.settings.use_index else None
        self._now = now

    # ------------------------------------------------------------------
    # fetch_context
    # ------------------------------------------------------------------

    def fetch_context(
        self,
        query: str | None = None,
        limit: int | None = None,
        scope: Scope | str = Scope.project,
        min_relevance: float | None = None,
        project_path: str | None = None,
        session_id: str | None = None,
    ) -> list[ExtractedContext]:
        """Contexts ranked by relevance to *query*, best first.

        Each returned context carries its computed relevance in
        ``metadata.relevance_score``.
        """
        scope = Scope(scope)
        limit = self.settings.default_limit if limit is None else limit
        min_relevance = self.settings.min_relevance if min_relevance is None else min_relevance
        log.info("Fetching context: query=%r scope=%s limit=%d", query or "", scope.value, limit)

        contexts = self._scoped(scope, project_path, session_id)
        tokens = tokenize_query(query or "", self.vocabulary)
        if tokens:
            contexts = self._candidates(contexts, tokens)

        scored: list[tuple[float, ExtractedContext]] = []
        for context in contexts:
            relevance = self.calculate_relevance(context, tokens)
            if tokens and relevance == 0.0:
                # matched no token
                continue
            if relevance >= min_relevance:
                scored.append((relevance, context))
        scored.sort(key=lambda pair: (pair[0], pair[1].timestamp), reverse=True)

        log.info("Found %d relevant contexts", len(scored[:limit]))
        return [_with_relevance(context, relevance) for relevance, context in scored[:limit]]

    def calculate_relevance(self, context: ExtractedContext, tokens: list[str]) -> float:
        if not tokens:
            return self._decayed(context.metadata.relevance_score, context)

        score = 0.0
        match_count = 0
        for field, text in searchable_fields(context):
            field_score = word_match_score(text, tokens)
            if field_score > 0:
                score += FETCH_WEIGHTS[field] * field_score
                match_count += 1
        if match_count == 0:
            return 0.0
        boost = min(match_count * 0.05, 0.3)
        return self._decayed(min(score, 1.0) + boost, context)

    # ------------------------------------------------------------------
    # search_archive
    # ------------------------------------------------------------------

    def search_archive(
        self,
        query: str,
        file_pattern: str | None = None,
        date_range: DateRange | None = None,
        project_path: str | None = None,
        limit: int = 10,
        sort_by: SortBy | str = SortBy.relevance,
    ) -> list[SearchResult]:
        sort_by = SortBy(sort_by)
        log.info("Searching archive: query=%r sort_by=%s", query, sort_by.value)

        def predicate(context: ExtractedContext) -> bool:
            if date_range is not None and not date_range.contains(context.timestamp):
                return False
            if project_path and project_path not in context.project_path:
                return False
            if file_pattern:
                files = [*context.metadata.files_modified, *(i.file for i in context.implementations)]
                if not any(matches_file_pattern(f, file_pattern) for f in files):
                    return False
            return True

        tokens = tokenize_query(query, self.vocabulary)
        if not tokens:
            return []
        contexts = self._candidates(self.storage.search(predicate), tokens)

        results: list[SearchResult] = []
        for context in contexts:
            matches = self.find_matches(context, query, tokens)
            if not matches:
                continue
            best = max(matches, key=lambda m: m.score)
            results.append(
                SearchResult(
                    context=context,
                    relevance=self.search_relevance(matches, context),
                    matches=matches,
                    snippet=best.snippet,
                )
            )

        if sort_by == SortBy.date:
            results.sort(key=lambda r: r.context.timestamp, reverse=True)
        elif sort_by == SortBy.frequency:
            results.sort(key=lambda r: (len(r.matches), r.context.timestamp), reverse=True)
        else:
            results.sort(key=lambda r: (r.relevance, r.context.timestamp), reverse=True)
        return results[:limit]

    def find_matches(self, context: ExtractedContext, query: str, tokens: list[str]) -> list[Match]:
        matches: list[Match] = []
        for field, text in searchable_fields(context):
            weight = SEARCH_WEIGHTS.get(field)
            if weight is None:
                continue
            field_score = word_match_score(text, tokens)
            if field_score > 0:
                matches.append(
                    Match(
                        field=field,
                        snippet=extract_snippet(text, query, tokens=tokens),
                        score=weight * field_score,
                    )
                )
        return matches

    def search_relevance(self, matches: list[Match], context: ExtractedContext) -> float:
        if not matches:
            return 0.0
        average = sum(m.score for m in matches) / len(matches)
        boost = min(len(matches) * 0.1, 0.3)
        return self._decayed(average + boost, context)

    # ------------------------------------------------------------------
    # Plain lookups
    # ------------------------------------------------------------------

    def get_recent_contexts(self, limit: int = 10) -> list[ExtractedContext]:
        return self.storage.list_contexts(limit)

    def get_by_session_id(self, session_id: str) -> ExtractedContext | None:
        return self.storage.get_by_session_id(session_id)

    def index_context(self, context: ExtractedContext) -> None:
        if self.index is not None:
            self.index.add(context)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _scoped(
        self, scope: Scope, project_path: str | None, session_id: str | None
    ) -> list[ExtractedContext]:
        if scope == Scope.session:
            if not session_id:
                log.warning("Session scope requested without a session id")
                return []
            context = self.storage.get_by_session_id(session_id)
            return [context] if context is not None else []
        if scope == Scope.project:
            return self.storage.get_by_project(project_path or os.getcwd())
        return self.storage.list_contexts()

    def _candidates(self, contexts: list[ExtractedContext], tokens: list[str]) -> list[ExtractedContext]:
        if self.index is None:
            return contexts
        match_sessions = getattr(self.storage, "match_sessions", None)
        wanted = match_sessions(tokens) if match_sessions is not None else None
        if wanted is None:
            self.index.sync(contexts)
            wanted = self.index.candidates(tokens)
        return [c for c in contexts if c.session_id in wanted]

    def _decayed(self, score: float, context: ExtractedContext) -> float:
        now = self._now() if self._now else None
        age = days_since(context.timestamp, now)
        return min(temporal_decay(score, age, self.settings.half_life_days), 1.0)


def _with_relevance(context: ExtractedContext, relevance: float) -> ExtractedContext:
    metadata = context.metadata.model_copy(update={"relevance_score": relevance})
    return context.model_copy(update={"metadata": metadata})
