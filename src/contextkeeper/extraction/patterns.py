"""Indicator taxonomy for transcript extraction.

Every table is plain data. ``Taxonomy`` bundles them into one frozen,
versioned object that the extractor and scorer receive at construction, so
tests can substitute their own tables.
"""

from __future__ import annotations

import re
from functools import lru_cache

from pydantic import BaseModel, ConfigDict

TAXONOMY_VERSION = "1.0.0"

QUESTION_PATTERNS: tuple[str, ...] = (
    r"\?",
    r"^\s*(?:who|what|when|where|why|which|how)\b",
    r"\b(?:can|could|would|will) you\b",
    r"\b(?:should|can|do|shall) (?:i|we)\b",
    r"\bis (?:there|it possible)\b",
    r"\bhow (?:do|does|can|to|should)\b",
    r"\bwhat(?:'s| is| are) the\b",
    r"\bwhy (?:is|does|do|did|am|are)\b",
)

PROBLEM_INDICATORS: tuple[str, ...] = (
    "error", "errors", "exception", "traceback", "stack trace", "bug", "bugs",
    "issue", "problem", "broken", "crash", "crashes", "crashing", "fail",
    "failed", "failing", "failure", "wrong", "not working", "doesn't work",
    "does not work", "isn't working", "won't", "can't", "cannot", "unable to",
    "stuck", "confused", "unclear", "unexpected", "undefined", "null pointer",
    "nullreferenceexception", "typeerror", "syntaxerror", "segfault", "timeout",
    "timed out", "hangs", "freezes", "slow", "leak", "vulnerability",
    "regression", "flaky", "warning", "deprecated", "missing", "denied",
    "refused", "invalid", "incorrect", "debug", "why", "how to", "how do",
    "help", "figure out", "what's wrong", "keeps", "no longer",
)

REQUEST_INDICATORS: tuple[str, ...] = (
    "implement", "create", "build", "add", "fix", "refactor", "optimize",
    "migrate", "deploy", "write", "test", "setup", "set up", "configure",
    "install", "document", "explain", "solve", "update", "upgrade", "remove",
    "delete", "rename", "replace", "convert", "integrate", "design",
    "generate", "extend", "support", "enable", "disable", "improve",
    "clean up", "restructure", "split", "merge", "port", "wire up", "hook up",
    "make it", "change", "investigate", "review", "validate",
)

SOLUTION_INDICATORS: tuple[str, ...] = (
    "fixed", "i fixed", "the fix", "the solution", "solution is", "solved",
    "resolved", "implemented", "the approach is", "here's how", "to fix this",
    "this works", "now works", "works now", "the answer", "the issue was",
    "the problem was", "the bug was", "caused by", "updated", "added",
    "changed", "replaced", "i've", "i have", "done", "should now",
)

FAILURE_INDICATORS: tuple[str, ...] = (
    "still failing", "still broken", "didn't work", "did not work",
    "doesn't work", "does not work", "still not working", "couldn't fix",
    "could not fix", "unable to fix", "not resolved", "still getting",
)

ERROR_INDICATORS: tuple[str, ...] = (
    "error", "exception", "traceback", "failed", "failure", "stack trace",
    "crash", "bug",
)

DECISION_PATTERNS: tuple[str, ...] = (
    r"\bwe should\s+[^.!?\n]+",
    r"\bbetter to\s+[^.!?\n]+",
    r"\bi recommend\s+[^.!?\n]+",
    r"\bthe approach is to\s+[^.!?\n]+",
    r"\bdecided to\s+[^.!?\n]+",
    r"\bgoing with\s+[^.!?\n]+",
    r"\bchoosing\s+[^.!?\n]+",
)

DECISION_INDICATORS: tuple[str, ...] = (
    "we should", "better to", "recommend", "suggest", "approach", "strategy",
    "decision", "decided", "choose", "choosing", "going with", "prefer",
    "optimal", "best practice", "trade-off", "tradeoff",
)

EXPLANATION_INDICATORS: tuple[str, ...] = (
    "because", "reason", "since", "therefore", "this means", "this allows",
    "the purpose", "in order to", "so that", "which enables",
)

RATIONALE_CONNECTIVES: tuple[str, ...] = ("because", "since", "due to", "as a result")

TECHNICAL_TERMS: tuple[str, ...] = (
    "function", "class", "method", "variable", "api", "database", "server",
    "client", "component", "module",
)

TOPIC_VOCABULARY: dict[str, str] = {
    "authentication": r"\b(?:auth\w*|jwt|login|logout|oauth\d?|sso|passwords?|credentials?|sign[- ]?in)\b",
    "database": r"\b(?:databases?|db|sql|postgres\w*|mysql|sqlite|mongo\w*|redis|quer(?:y|ies)|migrations?|schemas?|orm)\b",
    "api": r"\b(?:apis?|endpoints?|rest(?:ful)?|graphql|http|webhooks?|routes?)\b",
    "testing": r"\b(?:tests?|testing|pytest|jest|mocha|vitest|coverage|mocks?|fixtures?|assertions?)\b",
    "debugging": r"\b(?:debug\w*|bugs?|errors?|exceptions?|stack ?traces?|tracebacks?|crash\w*)\b",
    "deployment": r"\b(?:deploy\w*|ci/cd|ci|pipelines?|releases?|production|heroku|vercel|aws)\b",
    "security": r"\b(?:security|secure|vulnerab\w*|xss|csrf|encrypt\w*|secrets?|permissions?|cors|sanitiz\w*)\b",
    "frontend": r"\b(?:frontend|front-end|react|vue|angular|svelte|components?|ui|dom|html)\b",
    "javascript": r"\b(?:javascript|js|node(?:js)?|npm|yarn|pnpm|webpack|vite)\b",
    "typescript": r"\b(?:typescript|ts|tsc|tsconfig)\b",
    "python": r"\b(?:python|pip|django|flask|fastapi|pydantic|venv)\b",
    "styling": r"\b(?:css|scss|sass|tailwind|stylesheets?|styling|layout)\b",
    "version-control": r"\b(?:git|commits?|branch(?:es)?|rebase|pull requests?)\b",
    "performance": r"\b(?:performance|slow|latency|optimi[sz]\w*|cach\w*|memory leaks?)\b",
    "configuration": r"\b(?:config\w*|settings|env|environment variables?|yaml|toml)\b",
    "containers": r"\b(?:docker\w*|containers?|kubernetes|k8s|helm)\b",
}

HIGH_IMPACT_TERMS: tuple[str, ...] = (
    "architecture", "database", "api", "security", "framework", "schema",
)
MEDIUM_IMPACT_TERMS: tuple[str, ...] = (
    "refactor", "optimize", "structure", "design", "performance",
)

TRIVIAL_COMMANDS: tuple[str, ...] = ("ls", "pwd", "cd", "echo", "cat", "clear")

ERROR_CLASSES: dict[str, tuple[str, ...]] = {
    "permission": ("permission", "eacces", "access denied"),
    "not-found": ("not found", "enoent", "no such file", "cannot find"),
    "syntax": ("syntax",),
    "type-error": ("typeerror", "type error", "is not a function"),
    "null-reference": ("undefined", "null", "none type", "nonetype"),
    "timeout": ("timeout", "timed out"),
}

CODE_TOOLS: tuple[str, ...] = ("Write", "Edit", "MultiEdit", "NotebookEdit")
SOLUTION_TOOLS: tuple[str, ...] = (*CODE_TOOLS, "Bash")
ADMIN_TOOLS: tuple[str, ...] = ("TodoWrite", "Bash")
READ_ONLY_TOOLS: tuple[str, ...] = ("Read", "View", "Grep", "Glob", "LS", "Search", "WebFetch")


class Taxonomy(BaseModel):
    """Versioned bundle of indicator tables."""

    model_config = ConfigDict(frozen=True)

    version: str = TAXONOMY_VERSION
    question_patterns: tuple[str, ...] = QUESTION_PATTERNS
    problem_indicators: tuple[str, ...] = PROBLEM_INDICATORS
    request_indicators: tuple[str, ...] = REQUEST_INDICATORS
    solution_indicators: tuple[str, ...] = SOLUTION_INDICATORS
    failure_indicators: tuple[str, ...] = FAILURE_INDICATORS
    error_indicators: tuple[str, ...] = ERROR_INDICATORS
    decision_patterns: tuple[str, ...] = DECISION_PATTERNS
    decision_indicators: tuple[str, ...] = DECISION_INDICATORS
    explanation_indicators: tuple[str, ...] = EXPLANATION_INDICATORS
    rationale_connectives: tuple[str, ...] = RATIONALE_CONNECTIVES
    technical_terms: tuple[str, ...] = TECHNICAL_TERMS
    topics: dict[str, str] = TOPIC_VOCABULARY
    high_impact_terms: tuple[str, ...] = HIGH_IMPACT_TERMS
    medium_impact_terms: tuple[str, ...] = MEDIUM_IMPACT_TERMS
    trivial_commands: tuple[str, ...] = TRIVIAL_COMMANDS
    error_classes: dict[str, tuple[str, ...]] = ERROR_CLASSES
    code_tools: tuple[str, ...] = CODE_TOOLS
    solution_tools: tuple[str, ...] = SOLUTION_TOOLS
    admin_tools: tuple[str, ...] = ADMIN_TOOLS
    read_only_tools: tuple[str, ...] = READ_ONLY_TOOLS

    # -- matching helpers -------------------------------------------------

    def is_question(self, text: str) -> bool:
        return any(_regex(p).search(text) for p in self.question_patterns)

    def is_problem(self, text: str) -> bool:
        lower = text.lower()
        return (
            self.is_question(lower)
            or contains_any(lower, self.problem_indicators)
            or contains_any(lower, self.request_indicators)
        )

    def is_solution(self, text: str) -> bool:
        return contains_any(text.lower(), self.solution_indicators)

    def is_failure(self, text: str) -> bool:
        return contains_any(text.lower(), self.failure_indicators)

    def topics_in(self, text: str) -> list[str]:
        return sorted(topic for topic, rx in self.topics.items() if _regex(rx).search(text))

    def classify_error(self, error: str) -> str | None:
        lower = error.lower()
        for name, needles in self.error_classes.items():
            if contains_any(lower, needles):
                return name
        return None

    def decision_matches(self, text: str) -> list[re.Match[str]]:
        found: list[re.Match[str]] = []
        for pattern in self.decision_patterns:
            found.extend(_regex(pattern).finditer(text))
        return sorted(found, key=lambda m: m.start())


DEFAULT_TAXONOMY = Taxonomy()


def contains_any(text: str, needles: tuple[str, ...] | list[str]) -> bool:
    """Word-bounded phrase search over lower-cased *text*."""
    return any(_regex(_phrase(n)).search(text) for n in needles)


def _phrase(needle: str) -> str:
    return r"(?<!\w)" + re.escape(needle.lower()) + r"(?!\w)"


@lru_cache(maxsize=2048)
def _regex(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)
