from dataclasses import dataclass, field
from typing import List, Dict, Optional


@dataclass
class BookMetadata:
    """Standard book metadata."""
    title: str
    creator: str
    description: Optional[str] = None
    language: Optional[str] = None
    publisher: Optional[str] = None
    pubdate: Optional[str] = None
    identifier: Optional[str] = None


@dataclass(frozen=True)
class ManifestItem:
    """A resource declared in the package manifest."""
    id: str
    href: str         # Path relative to the package document (e.g., 'Text/part01.xhtml')
    media_type: str


@dataclass(frozen=True)
class SpineItem:
    """
    One entry of the reading order.
    """
    idref: str        # Manifest id (e.g., 'item_1')
    href: str         # Resource path (e.g., 'Text/part01.xhtml')
    index: int        # 0-based position in the spine
    linear: bool = True


@dataclass
class TocNode:
    """Represents a logical entry in the navigation tree."""
    id: str
    label: str
    href: str         # original href (e.g., 'part01.xhtml#chapter1')
    children: List['TocNode'] = field(default_factory=list)

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class Book:
    """The root object representing a loaded package."""
    metadata: BookMetadata
    manifest: Dict[str, ManifestItem]
    spine: List[SpineItem]
    toc: List[TocNode]

    def item_by_href(self, href: str) -> Optional[ManifestItem]:
        return next((item for item in self.manifest.values() if item.href == href), None)


@dataclass(frozen=True)
class ChapterRequest:
    """A chapter identity as requested by a caller (TOC click, saved progress, ...)."""
    idref: Optional[str] = None
    href: Optional[str] = None

    def __post_init__(self):
        if not self.idref and not self.href:
            raise ValueError("A chapter request needs an idref or an href")


@dataclass(frozen=True)
class ChapterContent:
    """
    Sanitized markup of one spine entry.
    idref/href are those of the resolved spine item, not of the raw request.
    """
    idref: str
    href: str
    content: str
