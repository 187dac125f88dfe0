from pathlib import Path
from typing import Optional


class SimdexError(Exception):
    """Base class for all errors raised by simdex."""

    pass


class InvalidCollectionError(SimdexError, OSError):
    """Raised when a collection is invalid or does not exist."""

    pass


class CollectionExistsError(SimdexError, FileExistsError):
    """Raised when a collection can't be created because the target path is
    occupied (a non-empty directory or not a directory at all)."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Cannot create collection at '{path}': {reason}")
        self.path = path
        self.reason = reason


class EntryDecodeError(SimdexError, ValueError):
    """Raised when the data file of an entry can't be read into metadata and
    parameters."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(message)
        self.path = path

    def __str__(self) -> str:
        base_message = super().__str__()
        return f"{base_message} (entry: {self.path})"


class CacheError(SimdexError, RuntimeError):
    """Raised when the index database can't be opened or written to."""

    def __init__(self, message: str, *, file: Optional[str] = None) -> None:
        super().__init__(message)
        self.file = file
