"""Relevance scoring for transcript entries and extracted content.

Every public method returns a float in ``[0, 1]`` and never raises. The clamp
lives in ``_combine`` only.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from contextkeeper.core.content import coerce_text
from contextkeeper.core.types import EntryType, TranscriptEntry
from contextkeeper.extraction.patterns import DEFAULT_TAXONOMY, Taxonomy, contains_any

__all__ = ["RelevanceScorer", "ScoringWeights"]


class ScoringWeights(BaseModel):
    has_solution: float = 0.9
    has_error: float = 0.8
    lone_error: float = 0.3
    has_decision: float = 0.8
    has_code: float = 0.7
    text_bonus: float = 0.1
    tools_used: float = 0.15
    code_tool_bonus: float = 0.8
    question: float = 1.0
    request: float = 0.9
    prompt_baseline: float = 0.3


# Multiplier applied to a tool's complexity.
_TOOL_WEIGHTS: dict[str, float] = {
    "Write": 1.0,
    "Edit": 1.0,
    "MultiEdit": 1.0,
    "NotebookEdit": 1.0,
    "TodoWrite": 0.6,
    "Bash": 0.6,
}
_READ_ONLY_WEIGHT = 0.4
_UNKNOWN_WEIGHT = 0.5


class RelevanceScorer:
    """Score prompts, exchanges and tool calls."""

    def __init__(
        self,
        taxonomy: Taxonomy = DEFAULT_TAXONOMY,
        weights: ScoringWeights | None = None,
    ) -> None:
        self.taxonomy = taxonomy
        self.weights = weights or ScoringWeights()

    # -- public API ---------------------------------------------------------

    def score_content(self, kind: str, content: Any, metadata: Any = None) -> float:
        """Score free content of *kind* ``prompt``, ``exchange`` or ``tool_use``."""
        meta = metadata if isinstance(metadata, Mapping) else {}
        text = coerce_text(content)

        if kind == "prompt":
            return self._score_prompt(text)
        if kind == "tool_use":
            name = meta.get("tool_name")
            if not isinstance(name, str):
                name = text.strip()
            tool_input = meta.get("input")
            return self._score_tool(name, tool_input if isinstance(tool_input, Mapping) else {})
        if kind == "exchange":
            return self._score_exchange(text, meta)
        return self._combine(0.1 if text.strip() else 0.0)

    def score_entry(self, entry: TranscriptEntry) -> float:
        """Score one transcript entry by its type."""
        if entry.type == EntryType.user:
            return self._score_prompt(entry.text)
        if entry.type == EntryType.assistant:
            return self._score_exchange(entry.text, self.flags_for(entry.text))
        if entry.type == EntryType.tool_use:
            if entry.tool is None:
                return self._combine(0.0)
            return self._score_tool(entry.tool.name, entry.tool.input)
        if entry.type == EntryType.tool_result:
            has_error = entry.result is not None and bool(entry.result.error)
            return self._combine(0.5 if has_error else 0.1)
        return self._combine(0.0)

    def flags_for(self, text: str) -> dict[str, bool]:
        """Derive exchange flags from assistant text."""
        lower = text.lower()
        tx = self.taxonomy
        return {
            "has_code": "```" in text,
            "has_solution": tx.is_solution(lower),
            "has_error": contains_any(lower, tx.error_indicators),
            "has_decision": contains_any(lower, tx.decision_indicators),
        }

    def tool_complexity(self, name: str, tool_input: Mapping[str, Any]) -> float:
        if name == "MultiEdit":
            edits = tool_input.get("edits")
            if isinstance(edits, list):
                return min(0.5 + len(edits) * 0.1, 1.0)
            return 0.8
        if name == "Write":
            body = tool_input.get("content")
            return 0.9 if isinstance(body, str) and len(body) > 1000 else 0.7
        if name == "Edit":
            old = tool_input.get("old_string")
            return 0.7 if isinstance(old, str) and len(old) > 100 else 0.6
        if name == "NotebookEdit":
            return 0.7
        if name == "TodoWrite":
            todos = tool_input.get("todos")
            if isinstance(todos, list):
                return min(0.5 + len(todos) * 0.05, 0.8)
            return 0.5
        if name == "Bash":
            command = tool_input.get("command")
            return 0.5 if isinstance(command, str) and "git" in command else 0.4
        if name in ("Grep", "Search"):
            pattern = tool_input.get("pattern")
            return 0.4 if isinstance(pattern, str) and len(pattern) > 20 else 0.3
        return 0.3

    def tool_weight(self, name: str) -> float:
        if name in _TOOL_WEIGHTS:
            return _TOOL_WEIGHTS[name]
        if name in self.taxonomy.read_only_tools:
            return _READ_ONLY_WEIGHT
        return _UNKNOWN_WEIGHT

    # -- internals ------------------------------------------------------------

    def _score_prompt(self, text: str) -> float:
        stripped = text.strip()
        if not stripped:
            return self._combine(0.0)
        lower = stripped.lower()
        tx = self.taxonomy
        if tx.is_question(lower):
            return self._combine(self.weights.question)
        if contains_any(lower, tx.request_indicators) or contains_any(lower, tx.problem_indicators):
            return self._combine(self.weights.request)

        engagement = 0.0
        if len(stripped) > 200:
            engagement += 0.1
        if len(stripped) > 500:
            engagement += 0.1
        terms = sum(1 for term in tx.technical_terms if term in lower)
        engagement += min(terms * 0.05, 0.2)
        return self._combine(self.weights.prompt_baseline, engagement)

    def _score_exchange(self, text: str, flags: Mapping[str, Any]) -> float:
        w = self.weights
        lower = text.lower()
        tx = self.taxonomy
        has_solution = bool(flags.get("has_solution"))

        parts: list[float] = []
        if has_solution:
            parts.append(w.has_solution)
        if flags.get("has_error"):
            parts.append(w.has_error if has_solution else w.lone_error)
        if flags.get("has_decision"):
            parts.append(w.has_decision)
        if flags.get("has_code"):
            parts.append(w.has_code)
        if _as_number(flags.get("tools_used")) > 0:
            parts.append(w.tools_used)

        if lower:
            if tx.is_solution(lower):
                parts.append(w.text_bonus)
            if contains_any(lower, tx.decision_indicators):
                parts.append(w.text_bonus)
            if contains_any(lower, tx.explanation_indicators):
                parts.append(w.text_bonus)
        return self._combine(*parts)

    def _score_tool(self, name: str, tool_input: Mapping[str, Any]) -> float:
        if not name:
            return self._combine(0.0)
        score = self.tool_complexity(name, tool_input) * self.tool_weight(name)
        bonus = self.weights.code_tool_bonus if name in self.taxonomy.code_tools else 0.0
        return self._combine(score, bonus)

    @staticmethod
    def _combine(*parts: float) -> float:
        return min(max(sum(parts), 0.0), 1.0)


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value) if value == value else 0.0
    return 0.0
