"""contextkeeper core types and utilities."""

from contextkeeper.core.types import ExtractedContext, Pattern, TranscriptEntry

__all__ = ["ExtractedContext", "Pattern", "TranscriptEntry"]
