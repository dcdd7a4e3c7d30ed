"""Query tokenization and text-matching helpers."""

from __future__ import annotations

import fnmatch
import re

from pydantic import BaseModel, ConfigDict

VOCABULARY_VERSION = "1.0.0"

STOP_WORDS: frozenset[str] = frozenset(
    {
        # articles and conjunctions
        "a", "an", "the", "and", "or", "but", "nor", "so", "if", "then", "than",
        # prepositions
        "in", "on", "at", "to", "for", "of", "with", "by", "from", "as", "into",
        "about", "over", "under", "up", "out", "via",
        # auxiliaries
        "is", "was", "are", "were", "been", "be", "being", "am", "have", "has",
        "had", "do", "does", "did", "will", "would", "could", "should", "may",
        "might", "must", "can", "shall",
        # pronouns
        "i", "me", "my", "we", "us", "our", "ours", "ourselves", "you", "your",
        "yours", "yourself", "it", "its", "this", "that", "these", "those",
        "they", "them", "their", "he", "she",
        # wh-words
        "what", "which", "who", "whom", "whose", "when", "where", "why", "how",
    }
)

EXPANSIONS: dict[str, tuple[str, ...]] = {
    "fix": ("fixed", "fixes", "fixing"),
    "error": ("errors",),
    "work": ("working", "worked", "works"),
    "implement": ("implementation", "implemented", "implementing"),
    "solution": ("solutions", "solve", "solved", "solving"),
    "test": ("tests", "testing", "tested"),
    "fail": ("failed", "failing", "failure"),
    "bug": ("bugs",),
    "recent": ("recently", "latest", "last"),
    "fetch": ("fetching", "fetched", "retrieve", "retrieval"),
    "tool": ("tools", "tool_use"),
    "deploy": ("deployed", "deploying", "deployment"),
    "config": ("configuration", "configure", "configured"),
    "auth": ("authentication", "authorization"),
    "build": ("builds", "building", "built"),
    "install": ("installed", "installing", "installation"),
    "mcp": ("mcp__", "modelcontextprotocol"),
}

_SPLIT = re.compile(r"[\s,;:!?.\"'()\[\]{}<>]+")


class QueryVocabulary(BaseModel):
    """Stop words and stem expansions used to tokenize queries."""

    model_config = ConfigDict(frozen=True)

    version: str = VOCABULARY_VERSION
    stop_words: frozenset[str] = STOP_WORDS
    expansions: dict[str, tuple[str, ...]] = EXPANSIONS
    min_token_length: int = 2


DEFAULT_VOCABULARY = QueryVocabulary()


def tokenize_query(query: str, vocabulary: QueryVocabulary = DEFAULT_VOCABULARY) -> list[str]:
    """Lower-case, split, drop stop words, then expand known stems.

    Order is preserved and duplicates are dropped.
    """
    tokens: list[str] = []
    seen: set[str] = set()
    for word in _SPLIT.split((query or "").lower()):
        if len(word) < vocabulary.min_token_length or word in vocabulary.stop_words:
            continue
        for token in (word, *vocabulary.expansions.get(word, ())):
            if token not in seen:
                seen.add(token)
                tokens.append(token)
    return tokens


def word_match_score(text: str, tokens: list[str]) -> float:
    """Fraction of *tokens* that occur in *text* (substring match)."""
    if not tokens or not text:
        return 0.0
    lower = text.lower()
    return sum(1 for token in tokens if token in lower) / len(tokens)


def extract_snippet(text: str, query: str, radius: int = 50, tokens: list[str] | None = None) -> str:
    """Up to *radius* characters either side of the first hit of *query*.

    Falls back to the first matching token, then to the head of *text*.
    """
    lower = text.lower()
    needle = (query or "").lower()
    index = lower.find(needle) if needle else -1
    if index == -1:
        for token in tokens or ():
            index = lower.find(token)
            if index != -1:
                needle = token
                break
    if index == -1:
        return text[: radius * 2]
    start = max(0, index - radius)
    end = min(len(text), index + len(needle) + radius)
    snippet = text[start:end]
    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."
    return snippet


def matches_file_pattern(path: str, pattern: str) -> bool:
    """Case-insensitive glob over the full path or basename, else substring."""
    if not path or not pattern:
        return False
    path_l, pattern_l = path.lower(), pattern.lower()
    basename = path_l.rsplit("/", 1)[-1]
    if fnmatch.fnmatchcase(path_l, pattern_l) or fnmatch.fnmatchcase(basename, pattern_l):
        return True
    return pattern_l.strip("*") in path_l if pattern_l.strip("*") else False
