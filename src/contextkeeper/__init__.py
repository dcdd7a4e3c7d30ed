"""contextkeeper: remember what was solved, decided and repeated across sessions."""

from contextkeeper.client import ContextKeeper
from contextkeeper.config import KeeperConfig
from contextkeeper.core.types import ExtractedContext, Pattern, SearchResult, TranscriptEntry

__version__ = "0.1.0"
__all__ = [
    "ContextKeeper",
    "KeeperConfig",
    "ExtractedContext",
    "Pattern",
    "SearchResult",
    "TranscriptEntry",
]
