"""In-memory inverted index over stored contexts.

Keys are the whitespace-delimited chunks of every searchable field, lower
cased. Query tokens never contain whitespace, so a token occurs as a
substring of a field exactly when it occurs inside one of its chunks. That
keeps index lookups consistent with the substring scoring in
``retrieval.query.word_match_score``.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Iterator

from contextkeeper.core.types import ExtractedContext


def searchable_fields(context: ExtractedContext) -> Iterator[tuple[str, str]]:
    """Yield ``(field, text)`` pairs that retrieval scores against."""
    for problem in context.problems:
        yield "problem.question", problem.question
        if problem.solution is not None:
            yield "problem.solution", problem.solution.approach
    for impl in context.implementations:
        yield "implementation.description", impl.description
        yield "implementation.file", impl.file
    for decision in context.decisions:
        yield "decision", decision.decision
        yield "decision.context", decision.context
    for pattern in context.patterns:
        yield "pattern", pattern.value


def searchable_text(context: ExtractedContext) -> str:
    """All searchable fields, newline separated."""
    return "\n".join(text for _, text in searchable_fields(context))


class InvertedIndex:
    """token -> [(session_id, position)]

    Used when the storage backend cannot narrow candidates itself. Lookup
    scans the term vocabulary, not every stored context.
    """

    def __init__(self) -> None:
        self._postings: dict[str, list[tuple[str, int]]] = defaultdict(list)
        self._terms: dict[str, set[str]] = {}
        self._fingerprints: dict[str, tuple] = {}

    def __len__(self) -> int:
        return len(self._terms)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._terms

    @classmethod
    def build(cls, contexts: Iterable[ExtractedContext]) -> InvertedIndex:
        index = cls()
        for context in contexts:
            index.add(context)
        return index

    def add(self, context: ExtractedContext) -> None:
        """Index *context*, replacing any earlier version of the same session."""
        sid = context.session_id
        if sid in self._terms:
            self.remove(sid)
        terms: set[str] = set()
        position = 0
        for _, text in searchable_fields(context):
            for chunk in text.lower().split():
                self._postings[chunk].append((sid, position))
                terms.add(chunk)
                position += 1
        self._terms[sid] = terms
        self._fingerprints[sid] = _fingerprint(context)

    def remove(self, session_id: str) -> None:
        for term in self._terms.pop(session_id, set()):
            remaining = [p for p in self._postings[term] if p[0] != session_id]
            if remaining:
                self._postings[term] = remaining
            else:
                del self._postings[term]
        self._fingerprints.pop(session_id, None)

    def sync(self, contexts: Iterable[ExtractedContext]) -> None:
        """Re-index any context that is new or changed since it was added."""
        for context in contexts:
            if self._fingerprints.get(context.session_id) != _fingerprint(context):
                self.add(context)

    def postings(self, term: str) -> list[tuple[str, int]]:
        return list(self._postings.get(term, ()))

    def candidates(self, tokens: Iterable[str]) -> set[str]:
        """Session ids whose fields contain at least one of *tokens*."""
        wanted = [t for t in tokens if t]
        if not wanted:
            return set()
        found: set[str] = set()
        for term, postings in self._postings.items():
            if any(token in term for token in wanted):
                found.update(sid for sid, _ in postings)
        return found


def _fingerprint(context: ExtractedContext) -> tuple:
    return (
        context.timestamp,
        len(context.problems),
        len(context.implementations),
        len(context.decisions),
        len(context.patterns),
        context.metadata.entry_count,
    )
