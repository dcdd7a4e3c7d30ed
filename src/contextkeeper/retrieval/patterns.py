"""Cross-session pattern analysis."""

from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from contextkeeper.core.merge import aggregate_patterns
from contextkeeper.core.types import ExtractedContext, Pattern, PatternType
from contextkeeper.storage.base import StorageBackend

log = logging.getLogger(__name__)

Trend = Literal["increasing", "stable", "decreasing"]


class PatternInsight(BaseModel):
    type: Literal["error-pattern", "hotspot", "workflow"]
    title: str
    description: str
    severity: Literal["high", "medium", "low", "info"] = "info"
    patterns: list[Pattern] = Field(default_factory=list)
    data: list[Any] = Field(default_factory=list)


class ProjectAnalysis(BaseModel):
    patterns: list[Pattern]
    insights: list[PatternInsight]
    recommendations: list[str]


class Occurrence(BaseModel):
    timestamp: datetime
    frequency: int
    session_id: str


class PatternTrend(BaseModel):
    occurrences: list[Occurrence]
    trend: Trend


class PatternAnalyzer:
    """Aggregate per-session patterns into cross-session statistics."""

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    def get_patterns(
        self,
        type: PatternType | str = "all",
        min_frequency: int = 2,
        limit: int = 10,
        project_path: str | None = None,
    ) -> list[Pattern]:
        """Merged patterns, most frequent first.

        Ties break on most recent ``last_seen``, then on value.
        """
        type_filter = None if type in (None, "all") else PatternType(type)
        log.info("Getting patterns: type=%s min_frequency=%d", type_filter or "all", min_frequency)

        contexts = self._contexts(project_path)
        merged = aggregate_patterns(p for ctx in contexts for p in ctx.patterns)

        patterns = [
            p
            for p in merged.values()
            if (type_filter is None or p.type == type_filter) and p.frequency >= min_frequency
        ]
        patterns.sort(key=lambda p: (-p.frequency, -p.last_seen.timestamp(), p.value))
        log.info("Found %d patterns", len(patterns[:limit]))
        return patterns[:limit]

    def analyze_project(self, project_path: str) -> ProjectAnalysis:
        contexts = self.storage.get_by_project(project_path)
        patterns = self.get_patterns(min_frequency=2, project_path=project_path)
        insights = self._insights(patterns, contexts)
        return ProjectAnalysis(
            patterns=patterns,
            insights=insights,
            recommendations=self._recommendations(patterns, insights),
        )

    def find_similar(self, pattern: Pattern, threshold: float = 0.7) -> list[Pattern]:
        candidates = self.get_patterns(type=pattern.type, min_frequency=1, limit=10_000)
        return [
            p
            for p in candidates
            if p.key != pattern.key and similarity(pattern, p) > threshold
        ]

    def pattern_trend(self, value: str, type: PatternType | str) -> PatternTrend:
        """Per-session frequency of one pattern in time order."""
        ptype = PatternType(type)
        occurrences: list[Occurrence] = []
        for ctx in self.storage.list_contexts():
            for p in ctx.patterns:
                if p.type == ptype and p.value == value:
                    occurrences.append(
                        Occurrence(timestamp=ctx.timestamp, frequency=p.frequency, session_id=ctx.session_id)
                    )
        occurrences.sort(key=lambda o: (o.timestamp, o.session_id))
        return PatternTrend(
            occurrences=occurrences,
            trend=trend_of([o.frequency for o in occurrences]),
        )

    # -- internals ---------------------------------------------------------

    def _contexts(self, project_path: str | None) -> list[ExtractedContext]:
        if project_path:
            return self.storage.get_by_project(project_path)
        return self.storage.list_contexts()

    @staticmethod
    def _insights(patterns: list[Pattern], contexts: list[ExtractedContext]) -> list[PatternInsight]:
        insights: list[PatternInsight] = []

        errors = [p for p in patterns if p.type == PatternType.error_handling]
        if errors:
            insights.append(
                PatternInsight(
                    type="error-pattern",
                    title="Recurring Errors",
                    description=f"Found {len(errors)} recurring error patterns",
                    severity="medium",
                    patterns=errors[:3],
                )
            )

        files = Counter(f for ctx in contexts for f in ctx.metadata.files_modified)
        hotspots = sorted(files.items(), key=lambda kv: (-kv[1], kv[0]))[:5]
        if hotspots:
            insights.append(
                PatternInsight(
                    type="hotspot",
                    title="Frequently Modified Files",
                    description="These files are modified most often and may need refactoring",
                    severity="low",
                    data=[list(h) for h in hotspots],
                )
            )

        commands = [p for p in patterns if p.type == PatternType.command]
        if len(commands) > 3:
            insights.append(
                PatternInsight(
                    type="workflow",
                    title="Common Workflows",
                    description=f"Identified {len(commands)} recurring command patterns",
                    patterns=commands[:5],
                )
            )
        return insights

    @staticmethod
    def _recommendations(patterns: list[Pattern], insights: list[PatternInsight]) -> list[str]:
        out: list[str] = []
        errors = [p for p in patterns if p.type == PatternType.error_handling]
        if len(errors) > 5:
            out.append(
                "Consider implementing better error handling strategies - "
                "multiple recurring errors detected"
            )
        frequent = [p for p in patterns if p.type == PatternType.command and p.frequency > 5]
        if frequent:
            out.append("Automate frequent commands: " + ", ".join(p.value for p in frequent[:3]))
        if any(p.type == PatternType.code and p.frequency > 10 for p in patterns):
            out.append("Extract common code patterns into reusable functions or utilities")
        hotspot = next((i for i in insights if i.type == "hotspot"), None)
        if hotspot and hotspot.data:
            path, count = hotspot.data[0]
            if count > 10:
                out.append(f"Consider refactoring {path} - modified {count} times")
        return out


def similarity(a: Pattern, b: Pattern) -> float:
    """1.0 for equal values, 0.8 for substring, else word-level Jaccard."""
    if a.type != b.type:
        return 0.0
    va, vb = a.value.lower(), b.value.lower()
    if va == vb:
        return 1.0
    if va in vb or vb in va:
        return 0.8
    wa = {w for w in re.split(r"\W+", va) if w}
    wb = {w for w in re.split(r"\W+", vb) if w}
    if not wa or not wb:
        return 0.0
    return len(wa & wb) / len(wa | wb)


def trend_of(values: list[int]) -> Trend:
    """Sign of the least-squares slope; ``|slope| < 0.1`` is stable."""
    n = len(values)
    if n < 2:
        return "stable"
    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(i * v for i, v in enumerate(values))
    sum_x2 = sum(i * i for i in range(n))
    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)
    if abs(slope) < 0.1:
        return "stable"
    return "increasing" if slope > 0 else "decreasing"
