"""Stable identifiers for extracted records."""

import hashlib


def stable_id(*parts: object) -> str:
    """Return the first 16 hex characters of the SHA-256 digest of *parts*."""
    text = "\x1f".join(str(p) for p in parts)
    return hashlib.sha256(text.encode()).hexdigest()[:16]
