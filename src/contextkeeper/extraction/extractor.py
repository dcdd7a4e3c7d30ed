"""Context extraction: pulls problems, implementations, decisions and
patterns out of a session transcript."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from contextkeeper.config import ExtractionSettings
from contextkeeper.core.dedup import stable_id
from contextkeeper.core.merge import pattern_id, union_examples
from contextkeeper.core.scorer import RelevanceScorer
from contextkeeper.core.types import (
    ContextMetadata,
    Decision,
    EntryType,
    ExtractedContext,
    Impact,
    Implementation,
    Pattern,
    PatternType,
    Problem,
    Solution,
    TranscriptEntry,
)
from contextkeeper.exceptions import EmptyInputError
from contextkeeper.extraction.patterns import DEFAULT_TAXONOMY, Taxonomy, contains_any
from contextkeeper.security import NoopFilter, TextFilter
from contextkeeper.transcript import summarize_session

log = logging.getLogger(__name__)

_FILE_KEYS = ("file_path", "path", "notebook_path")
_CONTEXT_WINDOW = 100
_RATIONALE_WINDOW = 200
_RATIONALE_LENGTH = 100


@dataclass
class _OpenProblem:
    index: int
    question: str
    timestamp: datetime
    tags: list[str]
    relevance: float


@dataclass
class _Pending:
    approach: str
    files: list[str]
    successful: bool = True


@dataclass
class _Tally:
    frequency: int
    first_seen: datetime
    last_seen: datetime
    examples: set[str] = field(default_factory=set)


@dataclass
class _PassState:
    """Accumulator for a single ``extract`` call."""

    open_problem: _OpenProblem | None = None
    pending: _Pending | None = None
    problems: list[Problem] = field(default_factory=list)
    implementations: list[Implementation] = field(default_factory=list)
    decisions: list[Decision] = field(default_factory=list)
    tallies: dict[tuple[PatternType, str], _Tally] = field(default_factory=dict)
    files: set[str] = field(default_factory=set)


class ContextExtractor:
    """Turn transcript entries into an ``ExtractedContext``."""

    def __init__(
        self,
        settings: ExtractionSettings | None = None,
        taxonomy: Taxonomy = DEFAULT_TAXONOMY,
        scorer: RelevanceScorer | None = None,
        text_filter: TextFilter | None = None,
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.taxonomy = taxonomy
        self.scorer = scorer or RelevanceScorer(taxonomy)
        self.text_filter = text_filter or NoopFilter()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def extract(
        self,
        entries: Sequence[TranscriptEntry],
        project_path: str | None = None,
    ) -> ExtractedContext:
        """Run one forward pass over *entries*.

        Raises ``EmptyInputError`` when *entries* is empty. Any other shape
        problem in the payloads is coerced rather than raised.
        """
        if not entries:
            raise EmptyInputError()

        redacted_before = getattr(self.text_filter, "redacted_count", 0)
        summary = summarize_session(entries)
        session_id = summary.session_id
        if session_id == "unknown":
            first = entries[0]
            session_id = "session-" + stable_id(first.timestamp.isoformat(), first.text)

        state = _PassState()
        previous: TranscriptEntry | None = None
        for index, entry in enumerate(entries):
            if entry.type == EntryType.user:
                self._on_user(state, index, entry, session_id)
            elif entry.type == EntryType.assistant:
                self._on_assistant(state, index, entry, session_id)
            elif entry.type == EntryType.tool_use:
                self._on_tool_use(state, index, entry, session_id, previous)
            elif entry.type == EntryType.tool_result:
                self._on_tool_result(state, entry)
            previous = entry

        if state.open_problem is not None:
            self._emit_problem(state, session_id, solution=None)

        problems, implementations, decisions, patterns = self._finalize(state)
        limit = self.settings.max_context_items
        problems, implementations = problems[:limit], implementations[:limit]
        decisions, patterns = decisions[:limit], patterns[:limit]

        metadata = ContextMetadata(
            entry_count=summary.entry_count,
            duration_ms=summary.duration_ms,
            tools_used=summary.tools_used,
            files_modified=sorted(state.files),
            relevance_score=self._overall_relevance(problems, implementations, decisions, patterns),
            extraction_version=self.taxonomy.version,
            redacted_count=getattr(self.text_filter, "redacted_count", 0) - redacted_before,
        )
        context = ExtractedContext(
            session_id=session_id,
            timestamp=max(e.timestamp for e in entries),
            project_path=project_path or summary.project_path,
            problems=problems,
            implementations=implementations,
            decisions=decisions,
            patterns=patterns,
            metadata=metadata,
        )
        log.debug(
            "Extracted %d problems, %d implementations, %d decisions, %d patterns from %s",
            len(problems),
            len(implementations),
            len(decisions),
            len(patterns),
            session_id,
        )
        return context

    def extract_tags(self, text: str) -> list[str]:
        return self.taxonomy.topics_in(text)

    # ------------------------------------------------------------------
    # Entry handlers
    # ------------------------------------------------------------------

    def _on_user(self, state: _PassState, index: int, entry: TranscriptEntry, session_id: str) -> None:
        text = entry.text
        if not text.strip() or not self.taxonomy.is_problem(text):
            return
        if state.open_problem is not None:
            self._emit_problem(state, session_id, solution=None)
        state.open_problem = _OpenProblem(
            index=index,
            question=self._clean(text, self.settings.question_limit),
            timestamp=entry.timestamp,
            tags=self.extract_tags(text),
            relevance=self.scorer.score_entry(entry),
        )
        state.pending = None

    def _on_assistant(self, state: _PassState, index: int, entry: TranscriptEntry, session_id: str) -> None:
        text = entry.text
        self._collect_decisions(state, index, entry, session_id)

        if state.open_problem is None:
            return
        if not (self.taxonomy.is_solution(text) or state.pending is not None):
            return

        pending = state.pending
        approach = self._clean(text, self.settings.solution_limit) if text.strip() else ""
        if not approach and pending is not None:
            approach = pending.approach
        failed = self.taxonomy.is_failure(text) or (pending is not None and not pending.successful)
        solution = Solution(
            approach=approach,
            files=sorted(pending.files) if pending else [],
            successful=not failed,
        )
        self._emit_problem(state, session_id, solution=solution)

    def _on_tool_use(
        self,
        state: _PassState,
        index: int,
        entry: TranscriptEntry,
        session_id: str,
        previous: TranscriptEntry | None,
    ) -> None:
        if entry.tool is None or not entry.tool.name:
            return
        name = entry.tool.name
        tool_input = entry.tool.input
        file = self._clean(_field(tool_input, *_FILE_KEYS))
        tx = self.taxonomy

        if name in tx.code_tools:
            description = ""
            if previous is not None and previous.type == EntryType.assistant:
                description = self._clean(previous.text, self.settings.implementation_limit)
            relevance = self.scorer.score_entry(entry)
            if relevance >= self.settings.relevance_threshold:
                state.implementations.append(
                    Implementation(
                        id=stable_id("implementation", session_id, index, name, file),
                        tool=name,
                        file=file or "unknown",
                        description=description,
                        timestamp=entry.timestamp,
                        relevance=relevance,
                    )
                )
            if file:
                state.files.add(file)

        if state.open_problem is not None and name in tx.solution_tools:
            if state.pending is None:
                state.pending = _Pending(approach=f"Used {name} tool", files=[])
            if file and file not in state.pending.files:
                state.pending.files.append(file)

        if not self.settings.enable_pattern_recognition:
            return
        if name == "Bash":
            command = " ".join(_field(tool_input, "command").split())
            if command and command.split()[0] not in tx.trivial_commands:
                command = self._clean(command)
                self._tally(state, PatternType.command, command, entry.timestamp, command)
        elif name in ("Write", "Edit", "MultiEdit") and file:
            operation = f"{name}:{file}"
            self._tally(state, PatternType.code, operation, entry.timestamp, operation)

    def _on_tool_result(self, state: _PassState, entry: TranscriptEntry) -> None:
        error = entry.result.error_text if entry.result is not None else ""
        if not error:
            return
        if state.pending is not None:
            state.pending.successful = False
        if not self.settings.enable_pattern_recognition:
            return
        error_class = self.taxonomy.classify_error(error)
        if error_class:
            example = self._clean(error.strip().splitlines()[0] if error.strip() else error, 200)
            self._tally(state, PatternType.error_handling, error_class, entry.timestamp, example)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _emit_problem(self, state: _PassState, session_id: str, solution: Solution | None) -> None:
        opened = state.open_problem
        state.open_problem = None
        state.pending = None
        if opened is None or opened.relevance < self.settings.relevance_threshold:
            return
        tags = opened.tags
        if solution is not None and solution.approach:
            tags = sorted({*tags, *self.extract_tags(solution.approach)})
        state.problems.append(
            Problem(
                id=stable_id("problem", session_id, opened.index, opened.question),
                question=opened.question,
                timestamp=opened.timestamp,
                tags=tags,
                relevance=opened.relevance,
                solution=solution,
            )
        )

    def _collect_decisions(self, state: _PassState, index: int, entry: TranscriptEntry, session_id: str) -> None:
        text = entry.text
        if not text:
            return
        limit = self.settings.decision_limit
        for match in self.taxonomy.decision_matches(text):
            statement = match.group(0).strip()
            start = max(0, match.start() - _CONTEXT_WINDOW)
            end = min(len(text), match.end() + _CONTEXT_WINDOW)
            state.decisions.append(
                Decision(
                    id=stable_id("decision", session_id, index, match.start(), statement),
                    decision=self._clean(statement, limit),
                    context=self._clean(text[start:end], limit),
                    rationale=self._clean(self._rationale(text, match.start())),
                    timestamp=entry.timestamp,
                    impact=self.assess_impact(statement),
                    tags=self.extract_tags(statement),
                )
            )

    def _rationale(self, text: str, position: int) -> str:
        window = text[position : position + _RATIONALE_WINDOW]
        lower = window.lower()
        hits = []
        for connective in self.taxonomy.rationale_connectives:
            found = re.search(r"(?<!\w)" + re.escape(connective) + r"(?!\w)", lower)
            if found:
                hits.append(found.start())
        if not hits:
            return ""
        start = min(hits)
        return window[start : start + _RATIONALE_LENGTH].strip()

    def assess_impact(self, statement: str) -> Impact:
        lower = statement.lower()
        if contains_any(lower, self.taxonomy.high_impact_terms):
            return Impact.high
        if contains_any(lower, self.taxonomy.medium_impact_terms):
            return Impact.medium
        return Impact.low

    def _tally(self, state: _PassState, kind: PatternType, value: str, when: datetime, example: str) -> None:
        tally = state.tallies.get((kind, value))
        if tally is None:
            state.tallies[(kind, value)] = _Tally(1, when, when, {example})
            return
        tally.frequency += 1
        tally.first_seen = min(tally.first_seen, when)
        tally.last_seen = max(tally.last_seen, when)
        tally.examples.add(example)

    def _finalize(
        self, state: _PassState
    ) -> tuple[list[Problem], list[Implementation], list[Decision], list[Pattern]]:
        problems = sorted(state.problems, key=lambda p: (-p.relevance, p.timestamp, p.id))
        implementations = sorted(state.implementations, key=lambda i: (-i.relevance, i.timestamp, i.id))
        decisions = sorted(state.decisions, key=lambda d: (d.timestamp, d.id))
        patterns = [
            Pattern(
                id=pattern_id(kind.value, value),
                type=kind,
                value=value,
                frequency=tally.frequency,
                first_seen=tally.first_seen,
                last_seen=tally.last_seen,
                examples=union_examples(tally.examples),
            )
            for (kind, value), tally in state.tallies.items()
            if tally.frequency >= 2
        ]
        patterns.sort(key=lambda p: (-p.frequency, p.key))
        return problems, implementations, decisions, patterns

    def _overall_relevance(
        self,
        problems: list[Problem],
        implementations: list[Implementation],
        decisions: list[Decision],
        patterns: list[Pattern],
    ) -> float:
        scores = [p.relevance for p in problems]
        scores += [i.relevance for i in implementations]
        scores += [
            self.scorer.score_content("exchange", d.decision, {"has_decision": True}) for d in decisions
        ]
        scores += [min(p.frequency / 5, 1.0) for p in patterns]
        if not scores:
            return 0.0
        return min(max(sum(scores) / len(scores), 0.0), 1.0)

    def _clean(self, text: str, limit: int | None = None) -> str:
        """Redact, then truncate."""
        filtered = self.text_filter.filter_text(text) if text else text
        return filtered[:limit] if limit else filtered


def _field(tool_input: Mapping[str, Any], *keys: str) -> str:
    """First primitive value among *keys*, as a string; ``""`` otherwise."""
    for key in keys:
        value = tool_input.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (str, int, float)) and str(value):
            return str(value)
    return ""


def extract_tags(text: str, taxonomy: Taxonomy = DEFAULT_TAXONOMY) -> list[str]:
    """Sorted topic keys mentioned in *text*."""
    return taxonomy.topics_in(text)
