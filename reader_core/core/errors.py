from enum import Enum
from typing import Optional


class ReaderError(Exception):
    """Base class for every error raised by reader_core."""


class PackageErrorKind(str, Enum):
    MISSING_CONTAINER = "missing_container"
    MALFORMED_PACKAGE = "malformed_package"


class PackageError(ReaderError):
    """The EPUB archive could not be turned into a Book."""

    def __init__(self, kind: PackageErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class NotLoadedError(ReaderError):
    """A document accessor was used before loading or after destroy()."""

    def __init__(self, message: str = "Book not loaded"):
        super().__init__(message)


class ChapterNotFoundError(ReaderError):
    """No spine entry matches the requested chapter identity."""

    def __init__(self, request, message: Optional[str] = None):
        super().__init__(message or f"Chapter not found: {request!r}")
        self.request = request


class SessionStateError(ReaderError):
    """An operation was attempted in a session state that does not allow it."""
