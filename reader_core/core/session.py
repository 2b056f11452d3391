"""
A reading session: owns one DocumentModel and walks it through

    IDLE -> LOADING -> READY -> CHAPTER_LOADED <-> NAVIGATING

Any step may end in ERROR (open a file again to recover); CLOSED is reached
from anywhere through close() and releases the book for good.
"""
import asyncio
import hashlib
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from reader_core.core.document import DocumentModel
from reader_core.core.errors import ChapterNotFoundError, NotLoadedError, SessionStateError
from reader_core.core.models import BookMetadata, ChapterContent, ChapterRequest, SpineItem, TocNode
from reader_core.core.parser import load_package
from reader_core.core.resolver import ChapterResolver
from reader_core.core.sanitizer import StylesheetFetcher, sanitize_chapter
from reader_core.core.storage import ProgressStore, ReadingProgress
from reader_core.integrations.stylesheets import BookStylesheetFetcher

logger = logging.getLogger(__name__)

ResourceLoader = Callable[[str], Awaitable[str]]


class SessionState(str, Enum):
    IDLE = 'idle'
    LOADING = 'loading'
    READY = 'ready'
    CHAPTER_LOADED = 'chapter_loaded'
    NAVIGATING = 'navigating'
    ERROR = 'error'
    CLOSED = 'closed'


class ReaderSession:

    def __init__(self, progress_store: Optional[ProgressStore] = None,
                 resource_loader: Optional[ResourceLoader] = None,
                 stylesheet_fetcher: Optional[Callable[[DocumentModel, str], StylesheetFetcher]] = None):
        self.progress_store = progress_store
        self.state = SessionState.IDLE
        self.book_id: Optional[str] = None
        self.metadata: Optional[BookMetadata] = None
        self.toc: List[TocNode] = []
        self.current: Optional[ChapterContent] = None
        self.error: Optional[BaseException] = None

        self._document = DocumentModel()
        self._resolver = ChapterResolver(self._document)
        self._resource_loader = resource_loader
        self._stylesheet_fetcher = stylesheet_fetcher or BookStylesheetFetcher
        self._current_item: Optional[SpineItem] = None
        self._inflight: Optional[asyncio.Task] = None

    # --- Lifecycle ---

    @property
    def document(self) -> DocumentModel:
        return self._document

    @property
    def resolver(self) -> ChapterResolver:
        return self._resolver

    async def open(self, data: bytes, book_id: Optional[str] = None) -> BookMetadata:
        if self.state in (SessionState.CLOSED, SessionState.LOADING):
            raise SessionStateError(f"Cannot open a book while {self.state.value}")
        self._release()
        self.state = SessionState.LOADING

        try:
            package = await asyncio.to_thread(load_package, data)
            self._document = DocumentModel(package)
            self._resolver = ChapterResolver(self._document)
            # Both must be in hand before the book counts as ready
            self.metadata = self._document.metadata()
            self.toc = self._document.toc()
        except BaseException as e:
            self._fail(e)
            raise

        self.book_id = book_id or self.metadata.identifier or hashlib.sha1(data).hexdigest()
        self.state = SessionState.READY
        logger.info("Session ready for %r (%s)", self.metadata.title, self.book_id)
        return self.metadata

    def close(self) -> None:
        self._release()
        self.state = SessionState.CLOSED

    def _release(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
        self._document.destroy()
        self.current = None
        self._current_item = None
        self.metadata = None
        self.toc = []
        self.error = None

    def _fail(self, error: BaseException) -> None:
        logger.error("Session failed: %s", error)
        self._release()
        self.error = error
        self.state = SessionState.ERROR

    def _require_ready(self) -> None:
        if self.state == SessionState.CLOSED:
            raise NotLoadedError("Session is closed")
        if self.state not in (SessionState.READY, SessionState.CHAPTER_LOADED, SessionState.NAVIGATING):
            raise SessionStateError(f"No book ready (session is {self.state.value})")

    # --- Navigation ---

    async def _load_chapter(self, request: ChapterRequest) -> Tuple[SpineItem, ChapterContent]:
        item = self._resolver.resolve(request)
        if self._resource_loader is not None:
            markup = await self._resource_loader(item.href)
        else:
            markup = self._document.read_resource(item.href)
        fetcher = self._stylesheet_fetcher(self._document, item.href)
        chapter = await sanitize_chapter(item, markup, fetcher)
        return item, chapter

    async def navigate(self, request: ChapterRequest) -> Optional[ChapterContent]:
        """
        Shows the chapter matching `request`.
        Returns None when a newer navigation superseded this one.
        """
        self._require_ready()
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()

        settled = SessionState.CHAPTER_LOADED if self.current is not None else SessionState.READY
        task = asyncio.ensure_future(self._load_chapter(request))
        self._inflight = task
        self.state = SessionState.NAVIGATING

        try:
            item, chapter = await task
        except asyncio.CancelledError:
            if self._inflight is not task:
                logger.debug("Navigation to %r superseded", request)
                return None
            raise
        except ChapterNotFoundError:
            if self._inflight is task:
                self._inflight = None
                self.state = settled
            raise
        except Exception as e:
            if self._inflight is task:
                self._fail(e)
            raise

        self._inflight = None
        self._current_item = item
        self.current = chapter
        self.state = SessionState.CHAPTER_LOADED
        self._save(0)
        return chapter

    async def next_chapter(self) -> Optional[ChapterContent]:
        item = self._resolver.next_of(self._require_current())
        if item is None:
            return None
        return await self.navigate(ChapterRequest(idref=item.idref, href=item.href))

    async def previous_chapter(self) -> Optional[ChapterContent]:
        item = self._resolver.previous_of(self._require_current())
        if item is None:
            return None
        return await self.navigate(ChapterRequest(idref=item.idref, href=item.href))

    def _require_current(self) -> SpineItem:
        self._require_ready()
        if self._current_item is None:
            raise SessionStateError("No chapter is displayed yet")
        return self._current_item

    async def restore(self) -> Tuple[Optional[ChapterContent], float]:
        """Opens the saved chapter (or the first one) and returns it with the saved scroll offset."""
        self._require_ready()
        progress = self.progress_store.get_progress(self.book_id) if self.progress_store else None

        if progress is not None:
            try:
                chapter = await self.navigate(progress.location.to_request())
                # navigate() saved offset 0, put the real one back
                self._save(progress.scroll_position)
                return chapter, progress.scroll_position
            except ChapterNotFoundError:
                logger.warning("Saved position %r no longer resolves, starting over", progress.location)

        try:
            first = self._resolver.first()
        except ChapterNotFoundError:
            return None, 0
        return await self.navigate(ChapterRequest(idref=first.idref, href=first.href)), 0

    # --- Progress ---

    def record_scroll(self, scroll_position: float) -> None:
        self._require_current()
        self._save(scroll_position)

    def _save(self, scroll_position: float) -> None:
        if self.progress_store is None or self._current_item is None:
            return
        self.progress_store.save_progress(ReadingProgress(
            book_id=self.book_id,
            chapter_idref=self._current_item.idref,
            chapter_href=self._current_item.href,
            scroll_position=scroll_position,
        ))
