"""Redaction of credentials and personal data before anything is stored."""

from __future__ import annotations

import logging
import re
from typing import Protocol, runtime_checkable

log = logging.getLogger(__name__)

REDACTED = "[REDACTED]"


@runtime_checkable
class TextFilter(Protocol):
    """Anything that can scrub a string."""

    def filter_text(self, text: str) -> str: ...


class NoopFilter:
    """Pass-through filter used when redaction is disabled."""

    redacted_count = 0

    def filter_text(self, text: str) -> str:
        return text


# (name, pattern, keep_label). With keep_label the text before the first
# ":" or "=" survives and only the value is replaced.
_DEFAULT_RULES: list[tuple[str, str, bool]] = [
    ("private_key", r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]+?-----END [A-Z ]*PRIVATE KEY-----", False),
    ("ssh_key", r"\bssh-(?:rsa|ed25519|ecdsa)\s+[A-Za-z0-9+/]+=*", False),
    ("db_connection", r"\b(?:mongodb(?:\+srv)?|postgresql|postgres|mysql|redis)://[^:\s]+:[^@\s]+@\S+", False),
    ("connection_string", r"\b(?:Password|User ID)=[^;]+;", True),
    ("anthropic_key", r"\bsk-ant-[A-Za-z0-9_\-]{20,}", False),
    ("openai_key", r"\bsk-[A-Za-z0-9_\-]{32,}", False),
    ("github_token", r"\bgh[pousr]_[A-Za-z0-9]{30,}", False),
    ("aws_key", r"\b(?:aws_?access_?key_?id|aws_?secret_?access_?key)\s*[:=]\s*['\"]?[A-Za-z0-9/+]{16,}['\"]?", True),
    ("aws_key_id", r"\bAKIA[0-9A-Z]{16}\b", False),
    ("bearer_token", r"\b(?:bearer|authorization)\s*[:=]\s*['\"]?(?:Bearer\s+)?[A-Za-z0-9_\-.]{20,}['\"]?", True),
    ("api_key", r"\b(?:api[_-]?key|apikey|api[_-]?secret)\s*[:=]\s*['\"]?[A-Za-z0-9_\-]{16,}['\"]?", True),
    ("jwt", r"\beyJ[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+", False),
    ("password", r"\b(?:password|passwd|pwd)\s*[:=]\s*['\"]?[^\s'\"]{4,}['\"]?", True),
    ("secret", r"\b(?:secret|client_secret)\s*[:=]\s*['\"]?[A-Za-z0-9_\-]{16,}['\"]?", True),
    ("env_secret", r"\b(?:export\s+)?[A-Z][A-Z0-9_]*_(?:KEY|TOKEN|SECRET)\s*=\s*['\"]?[^\s'\"]+['\"]?", True),
]

_EMAIL = re.compile(r"\b[A-Za-z0-9._%+-]+@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")


class SecurityFilter:
    """Regex-driven redaction with a running count of replacements."""

    def __init__(self, redact_emails: bool = True) -> None:
        self.redact_emails = redact_emails
        self.redacted_count = 0
        self._rules: dict[str, tuple[re.Pattern[str], bool]] = {
            name: (re.compile(pattern, re.IGNORECASE), keep_label)
            for name, pattern, keep_label in _DEFAULT_RULES
        }

    @property
    def pattern_names(self) -> list[str]:
        return list(self._rules)

    def add_pattern(self, name: str, pattern: str, keep_label: bool = False) -> None:
        self._rules[name] = (re.compile(pattern, re.IGNORECASE), keep_label)

    def remove_pattern(self, name: str) -> None:
        self._rules.pop(name, None)

    def filter_text(self, text: str) -> str:
        if not text:
            return text
        filtered = text
        for pattern, keep_label in self._rules.values():
            filtered = pattern.sub(self._replacer(_label_keeper if keep_label else _full), filtered)
        if self.redact_emails:
            filtered = _EMAIL.sub(self._replacer(lambda m: f"***@{m.group(1)}"), filtered)
        return filtered

    def _replacer(self, redact):
        def replace(match: re.Match[str]) -> str:
            new = redact(match)
            # an earlier rule may already have redacted this span
            if new != match.group(0):
                self.redacted_count += 1
            return new

        return replace

    def contains_sensitive_data(self, text: str) -> bool:
        if any(pattern.search(text) for pattern, _ in self._rules.values()):
            return True
        return self.redact_emails and _EMAIL.search(text) is not None

    def reset(self) -> None:
        self.redacted_count = 0


def _full(match: re.Match[str]) -> str:
    return REDACTED


def _label_keeper(match: re.Match[str]) -> str:
    found = re.search(r"[:=]\s*", match.group(0))
    if found is None:
        return REDACTED
    return match.group(0)[: found.end()] + REDACTED


def make_filter(enabled: bool) -> TextFilter:
    if not enabled:
        log.debug("Sensitive-data filtering disabled")
        return NoopFilter()
    return SecurityFilter()
