import logging
from typing import Optional

from reader_core.core.document import DocumentModel
from reader_core.core.errors import ChapterNotFoundError
from reader_core.core.models import ChapterRequest, SpineItem
from reader_core.utils.hrefs import strip_fragment

logger = logging.getLogger(__name__)


class ChapterResolver:
    """
    Maps a requested chapter identity to exactly one spine entry.

    Resolution order (first match wins):
      1. exact idref
      2. exact href, fragment included
      3. href with the fragment stripped on both sides
      4. containment: one fragment-less href contains the other
    """

    def __init__(self, document: DocumentModel):
        self.document = document

    def resolve(self, request: ChapterRequest) -> SpineItem:
        spine = self.document.spine_items()

        if request.idref:
            match = next((item for item in spine if item.idref == request.idref), None)
            if match:
                return match

        if request.href:
            match = next((item for item in spine if item.href == request.href), None)
            if match:
                return match

            wanted = strip_fragment(request.href)
            match = next((item for item in spine if strip_fragment(item.href) == wanted), None)
            if match:
                return match

            # Tolerates relative-path prefixes between TOC and spine hrefs.
            # Can mis-resolve when one spine href is a substring of another.
            if wanted:
                for item in spine:
                    candidate = strip_fragment(item.href)
                    if candidate and (candidate in wanted or wanted in candidate):
                        logger.debug("Resolved %r to %r by containment", request.href, item.href)
                        return item

        raise ChapterNotFoundError(request)

    def first(self) -> SpineItem:
        spine = self.document.spine_items()
        if not spine:
            raise ChapterNotFoundError(None, "Book has an empty spine")
        return spine[0]

    def next_of(self, item: SpineItem) -> Optional[SpineItem]:
        spine = self.document.spine_items()
        index = item.index + 1
        return spine[index] if index < len(spine) else None

    def previous_of(self, item: SpineItem) -> Optional[SpineItem]:
        spine = self.document.spine_items()
        index = item.index - 1
        return spine[index] if index >= 0 else None
