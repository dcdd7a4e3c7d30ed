"""Auto-load context: a size-bounded summary for the start of a session."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from contextkeeper.config import AutoLoadSettings
from contextkeeper.core.types import (
    AutoLoadStrategy,
    Decision,
    ExtractedContext,
    FormatStyle,
    Impact,
    LoadedContext,
    Pattern,
    Problem,
    utcnow,
)
from contextkeeper.retrieval.patterns import PatternAnalyzer
from contextkeeper.retrieval.retriever import ContextRetriever

log = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n*[Context truncated to fit size limit]*"

_IMPACT_RANK = {Impact.high: 0, Impact.medium: 1, Impact.low: 2}

_T = TypeVar("_T")


@dataclass
class _Section:
    content: str
    item_count: int


def truncate_text(text: str, limit: int) -> str:
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)] + "..."


def truncate_to_size(content: str, max_bytes: int) -> tuple[str, bool]:
    """Fit *content* into *max_bytes* UTF-8 bytes, marker included.

    Cuts at the last newline when that keeps at least 80% of the budget.
    """
    data = content.encode("utf-8")
    if len(data) <= max_bytes:
        return content, False
    marker = TRUNCATION_MARKER.encode("utf-8")
    budget = max_bytes - len(marker)
    if budget <= 0:
        return marker[:max(max_bytes, 0)].decode("utf-8", errors="ignore"), True
    head = data[:budget].decode("utf-8", errors="ignore")
    newline = head.rfind("\n")
    if newline > budget * 0.8:
        head = head[:newline]
    return head + TRUNCATION_MARKER, True


class ContextLoader:
    """Select and format stored context according to an ``AutoLoadStrategy``."""

    def __init__(
        self,
        retriever: ContextRetriever,
        analyzer: PatternAnalyzer,
        settings: AutoLoadSettings | None = None,
        project_path: str | None = None,
    ) -> None:
        self.retriever = retriever
        self.analyzer = analyzer
        self.settings = settings or AutoLoadSettings()
        self.project_path = project_path

    def load(self, settings: AutoLoadSettings | None = None) -> LoadedContext:
        settings = settings or self.settings
        strategy = settings.strategy if settings.enabled else AutoLoadStrategy.disabled
        if strategy == AutoLoadStrategy.disabled:
            return LoadedContext(strategy=AutoLoadStrategy.disabled)

        project = self.project_path or os.getcwd()
        if strategy == AutoLoadStrategy.recent:
            section = self._compose(project, settings, ["sessions"])
        elif strategy == AutoLoadStrategy.relevant:
            section = self._relevant(project, settings)
        elif strategy == AutoLoadStrategy.custom:
            section = self._compose(project, settings, settings.include_types, boost=True)
        else:
            section = self._compose(project, settings, ["sessions", "patterns", "decisions"])

        content, truncated = truncate_to_size(section.content, int(settings.max_size_kb * 1024))
        log.info(
            "Auto-loaded %d items (%s strategy, %.2f KB%s)",
            section.item_count,
            strategy.value,
            len(content.encode("utf-8")) / 1024,
            ", truncated" if truncated else "",
        )
        return LoadedContext(
            content=content,
            size_kb=len(content.encode("utf-8")) / 1024,
            item_count=section.item_count,
            strategy=strategy,
            truncated=truncated,
        )

    def preview(self, settings: AutoLoadSettings | None = None) -> str:
        loaded = self.load(settings)
        rule = "=" * 60
        return "\n".join(
            [
                rule,
                "AUTO-LOAD CONTEXT PREVIEW",
                rule,
                f"Strategy: {loaded.strategy.value}",
                f"Size: {loaded.size_kb:.2f} KB",
                f"Items: {loaded.item_count}",
                "-" * 60,
                "",
                loaded.content,
                "",
                rule,
            ]
        )

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _compose(
        self,
        project: str,
        settings: AutoLoadSettings,
        include: Sequence[str],
        boost: bool = False,
    ) -> _Section:
        contexts = self.retriever.storage.get_by_project(project)
        keywords = settings.priority_keywords if boost else []
        detailed = settings.format_style == FormatStyle.detailed

        parts = [
            f"# Project Context: {os.path.basename(project.rstrip('/')) or project}",
            f"*Auto-loaded on {utcnow():%Y-%m-%d %H:%M} UTC*\n",
        ]
        items = 0

        if "sessions" in include:
            sessions = _prioritise(contexts, keywords, _context_text)[: settings.session_count]
            if sessions:
                parts.append("## Recent Work\n")
                for ctx in sessions:
                    block, count = _format_session(ctx, detailed)
                    parts.append(block)
                    items += count

        if "patterns" in include and settings.pattern_count > 0:
            patterns = self.analyzer.get_patterns(
                min_frequency=2, limit=max(settings.pattern_count * 4, 20), project_path=project
            )
            patterns = _prioritise(patterns, keywords, lambda p: p.value)[: settings.pattern_count]
            if patterns:
                parts.append("\n## Recurring Patterns\n")
                parts.extend(_format_pattern(p, detailed) for p in patterns)
                items += len(patterns)

        if "decisions" in include and settings.decision_count > 0:
            decisions = sorted(
                (d for ctx in contexts for d in ctx.decisions),
                key=lambda d: (_IMPACT_RANK[d.impact], -d.timestamp.timestamp(), d.id),
            )
            decisions = _prioritise(decisions, keywords, lambda d: d.decision + " " + d.context)
            decisions = decisions[: settings.decision_count]
            if decisions:
                parts.append("\n## Key Decisions\n")
                parts.extend(_format_decision(d, detailed) for d in decisions)
                items += len(decisions)

        if "problems" in include:
            problems = sorted(
                (p for ctx in contexts for p in ctx.problems),
                key=lambda p: (-p.relevance, -p.timestamp.timestamp(), p.id),
            )
            problems = _prioritise(problems, keywords, _problem_text)[: settings.session_count * 2]
            if problems:
                parts.append("\n## Problems & Solutions\n")
                parts.extend(_format_problem(p) for p in problems)
                items += len(problems)

        return _Section("\n".join(parts), items)

    def _relevant(self, project: str, settings: AutoLoadSettings) -> _Section:
        query = " ".join(settings.priority_keywords)
        contexts = self.retriever.fetch_context(
            query=query,
            limit=20,
            min_relevance=settings.min_relevance,
            project_path=project,
        )
        if not contexts:
            log.info("No relevant context for %r, falling back to smart", query)
            return self._compose(project, settings, ["sessions", "patterns", "decisions"])

        parts = [f"# Relevant Context for: {', '.join(settings.priority_keywords) or 'recent work'}\n"]
        items = 0
        for ctx in contexts:
            if ctx.problems:
                parts.append("## Problems & Solutions")
                parts.extend(_format_problem(p) for p in ctx.problems)
                items += len(ctx.problems)
        return _Section("\n".join(parts), items or len(contexts))


# ----------------------------------------------------------------------
# Formatting
# ----------------------------------------------------------------------


def _format_session(ctx: ExtractedContext, detailed: bool) -> tuple[str, int]:
    lines = [f"### Session: {ctx.timestamp:%Y-%m-%d %H:%M}"]
    if detailed:
        lines.append(f"- Files Modified: {len(ctx.metadata.files_modified)}")
        lines.append(f"- Tools Used: {', '.join(ctx.metadata.tools_used) or 'N/A'}")
        problems = ctx.problems[:3]
        if problems:
            lines.append("**Problems & Solutions:**")
            for p in problems:
                lines.append(f"- Q: {truncate_text(p.question, 800)}")
                if p.solution:
                    lines.append(f"  A: {truncate_text(p.solution.approach, 1000)}")
        lines.append("")
        return "\n".join(lines), len(problems)

    problems = ctx.problems[:2]
    if problems:
        lines.append("**Key Problems:**")
        lines.extend(_format_problem(p) for p in problems)
    implementations = ctx.implementations[:2]
    if implementations:
        lines.append("**Key Actions:**")
        for impl in implementations:
            lines.append(f"- {impl.tool}: {truncate_text(impl.description or impl.file, 500)}")
    lines.append("")
    return "\n".join(lines), len(problems) + len(implementations)


def _format_problem(problem: Problem) -> str:
    line = f"- {truncate_text(problem.question, 800)}"
    if problem.solution:
        line += f"\n  → {truncate_text(problem.solution.approach, 1000)}"
    return line


def _format_pattern(pattern: Pattern, detailed: bool) -> str:
    if detailed:
        return "\n".join(
            [
                f"### {pattern.type.value} Pattern",
                f"- **Pattern**: `{pattern.value}`",
                f"- **Frequency**: {pattern.frequency} occurrences",
                f"- **Last Used**: {pattern.last_seen:%Y-%m-%d}",
                "",
            ]
        )
    return f"- **{pattern.type.value}** ({pattern.frequency}x): `{truncate_text(pattern.value, 400)}`"


def _format_decision(decision: Decision, detailed: bool) -> str:
    line = f"- [{decision.impact.value}] {truncate_text(decision.decision, 500)}"
    if detailed and decision.rationale:
        line += f"\n  Rationale: {truncate_text(decision.rationale, 500)}"
    return line


def _context_text(ctx: ExtractedContext) -> str:
    return " ".join(
        [*(_problem_text(p) for p in ctx.problems), *(d.decision for d in ctx.decisions)]
    )


def _problem_text(problem: Problem) -> str:
    return problem.question + (" " + problem.solution.approach if problem.solution else "")


def _prioritise(items: Sequence[_T], keywords: Sequence[str], text_of: Callable[[_T], str]) -> list[_T]:
    """Stable partition: items mentioning a keyword first."""
    wanted = [k.lower() for k in keywords if k]
    if not wanted:
        return list(items)
    hits, rest = [], []
    for item in items:
        lower = text_of(item).lower()
        (hits if any(k in lower for k in wanted) else rest).append(item)
    return hits + rest
