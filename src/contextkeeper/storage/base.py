"""Storage backend protocol."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from contextkeeper.core.types import ExtractedContext


@runtime_checkable
class StorageBackend(Protocol):
    """Minimal interface every storage backend must implement."""

    def store(self, context: ExtractedContext) -> int:
        """Persist *context*. An existing session is merged, not duplicated."""
        ...

    def search(self, predicate: Callable[[ExtractedContext], bool]) -> list[ExtractedContext]:
        """All contexts for which *predicate* is true, newest first."""
        ...

    def get_by_project(self, project_path: str) -> list[ExtractedContext]:
        ...

    def get_by_session_id(self, session_id: str) -> ExtractedContext | None:
        ...

    def list_contexts(self, limit: int | None = None) -> list[ExtractedContext]:
        """Newest first."""
        ...

    def stats(self) -> dict[str, Any]:
        """Return aggregate statistics."""
        ...
