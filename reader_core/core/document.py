import logging
from typing import Dict, List, Optional

from reader_core.core.errors import ChapterNotFoundError, NotLoadedError
from reader_core.core.models import Book, BookMetadata, ChapterRequest, SpineItem, TocNode
from reader_core.core.parser import LoadedPackage, load_package

logger = logging.getLogger(__name__)


class DocumentModel:
    """
    Read-only view over one loaded Book.
    Owns the resource buffer; after destroy() every accessor raises NotLoadedError.
    """

    def __init__(self, package: Optional[LoadedPackage] = None):
        self._book: Optional[Book] = None
        self._resources: Dict[str, bytes] = {}
        if package is not None:
            self._book = package.book
            self._resources = package.resources

    @classmethod
    def from_bytes(cls, data: bytes) -> "DocumentModel":
        return cls(load_package(data))

    @property
    def is_loaded(self) -> bool:
        return self._book is not None

    def _require_book(self) -> Book:
        if self._book is None:
            raise NotLoadedError()
        return self._book

    @property
    def book(self) -> Book:
        return self._require_book()

    def metadata(self) -> BookMetadata:
        return self._require_book().metadata

    def toc(self) -> List[TocNode]:
        return self._require_book().toc

    def spine_items(self) -> List[SpineItem]:
        return list(self._require_book().spine)

    def read_bytes(self, href: str) -> bytes:
        self._require_book()
        try:
            return self._resources[href]
        except KeyError:
            raise ChapterNotFoundError(ChapterRequest(href=href), f"Resource not in package: {href}") from None

    def read_resource(self, href: str) -> str:
        return self.read_bytes(href).decode('utf-8', errors='ignore')

    def destroy(self) -> None:
        if self._book is not None:
            logger.debug("Releasing %r", self._book.metadata.title)
        self._book = None
        self._resources = {}
