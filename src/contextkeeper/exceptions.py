"""contextkeeper exceptions."""


class KeeperError(Exception):
    """Base exception for all contextkeeper errors."""


class EmptyInputError(KeeperError):
    """Raised when extraction is called without any transcript entries."""

    def __init__(self, message: str = "No transcript entries provided"):
        super().__init__(message)


class ContextNotFound(KeeperError):
    """Raised when a session id has no stored context."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"No context stored for session {session_id!r}")


class StorageError(KeeperError):
    """Raised on storage backend failures (I/O, corruption, etc.)."""


class ConfigError(KeeperError):
    """Raised on invalid configuration."""
