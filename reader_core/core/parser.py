import io
import os
import logging
import posixpath
import tempfile
import zipfile
from dataclasses import dataclass
from typing import List, Dict
from urllib.parse import unquote

from bs4 import BeautifulSoup
from ebooklib import epub

from reader_core.core.errors import PackageError, PackageErrorKind
from reader_core.core.models import Book, BookMetadata, ManifestItem, SpineItem, TocNode

logger = logging.getLogger(__name__)

CONTAINER_PATH = "META-INF/container.xml"


@dataclass
class LoadedPackage:
    """A parsed Book plus the raw bytes of every manifest resource, keyed by href."""
    book: Book
    resources: Dict[str, bytes]


def load_package(data: bytes) -> LoadedPackage:
    """
    Main logic: Locate package document -> Parse (ebooklib) -> Validate spine -> Build Book.
    Either returns a complete Book or raises PackageError; nothing partial escapes.
    """
    # 1. Container descriptor
    opf_path = _locate_package_document(data)
    logger.debug("Package document at %s", opf_path)

    # 2. Package document (metadata, manifest, spine)
    data = _drop_missing_resources(data, opf_path)
    book_obj = _read_epub(data)
    manifest = _extract_manifest(book_obj)
    spine = _build_spine(book_obj, manifest)
    metadata = _extract_metadata(book_obj)

    # 3. Navigation (not fatal when absent)
    toc = _parse_toc_recursive(book_obj.toc)
    if not toc:
        logger.warning("No navigation found in %r, continuing with an empty TOC", metadata.title)

    # get_content() re-renders XHTML documents without their original <head>, keep the raw bytes
    resources = {item.get_name(): item.content or b"" for item in book_obj.get_items()}

    logger.info("Loaded %r: %d spine items, %d TOC roots", metadata.title, len(spine), len(toc))
    return LoadedPackage(
        book=Book(metadata=metadata, manifest=manifest, spine=spine, toc=toc),
        resources=resources,
    )

# --- Internal Helpers ---

def _locate_package_document(data: bytes) -> str:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            names = set(zf.namelist())
            container = zf.read(CONTAINER_PATH)
    except zipfile.BadZipFile as e:
        raise PackageError(PackageErrorKind.MISSING_CONTAINER, f"Not a valid EPUB archive: {e}") from e
    except KeyError:
        raise PackageError(PackageErrorKind.MISSING_CONTAINER, f"{CONTAINER_PATH} is missing") from None

    soup = BeautifulSoup(container, 'xml')
    for rootfile in soup.find_all('rootfile'):
        full_path = rootfile.get('full-path')
        if full_path and full_path in names:
            return full_path

    raise PackageError(
        PackageErrorKind.MISSING_CONTAINER,
        f"{CONTAINER_PATH} does not point at a package document",
    )


def _drop_missing_resources(data: bytes, opf_path: str) -> bytes:
    """
    Removes manifest items whose file is absent from the archive, so a missing
    stylesheet, image or navigation file degrades the book instead of failing it.
    A spine item without its file still makes the package malformed.
    """
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        names = set(zf.namelist())
        soup = BeautifulSoup(zf.read(opf_path), 'xml')
        manifest = soup.find('manifest')
        spine = soup.find('spine')
        if manifest is None or spine is None:
            # Left for ebooklib to reject
            return data

        opf_dir = posixpath.dirname(opf_path)
        spine_ids = {ref.get('idref') for ref in spine.find_all('itemref')}
        missing = []
        for item in manifest.find_all('item'):
            href = item.get('href')
            if not href:
                continue
            path = posixpath.normpath(posixpath.join(opf_dir, unquote(href)))
            if path in names:
                continue
            if item.get('id') in spine_ids:
                raise PackageError(
                    PackageErrorKind.MALFORMED_PACKAGE,
                    f"Spine item {item.get('id')!r} points at missing file {path}",
                )
            missing.append(item)

        if not missing:
            return data

        for item in missing:
            logger.warning("Manifest item %r (%s) is not in the archive, dropping it", item.get('id'), item.get('href'))
            if spine.get('toc') == item.get('id'):
                del spine['toc']
            item.decompose()

        # Same archive, rewritten package document
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w') as out:
            for info in zf.infolist():
                content = str(soup).encode('utf-8') if info.filename == opf_path else zf.read(info)
                out.writestr(info, content)
        return buffer.getvalue()


def _read_epub(data: bytes) -> epub.EpubBook:
    # ebooklib wants a path on disk
    with tempfile.TemporaryDirectory() as tmpdirname:
        epub_path = os.path.join(tmpdirname, "book.epub")
        with open(epub_path, 'wb') as f:
            f.write(data)
        try:
            return epub.read_epub(epub_path, options={"ignore_ncx": False})
        except Exception as e:
            raise PackageError(PackageErrorKind.MALFORMED_PACKAGE, f"Failed to parse package document: {e}") from e


def _extract_manifest(book_obj) -> Dict[str, ManifestItem]:
    manifest = {}
    for item in book_obj.get_items():
        item_id = item.get_id()
        if not item_id:
            continue
        manifest[item_id] = ManifestItem(id=item_id, href=item.get_name(), media_type=item.media_type or "")
    return manifest


def _build_spine(book_obj, manifest: Dict[str, ManifestItem]) -> List[SpineItem]:
    spine = []
    for entry in book_obj.spine:
        idref, linear = entry if isinstance(entry, tuple) else (entry, 'yes')
        item = manifest.get(idref)
        if item is None:
            raise PackageError(
                PackageErrorKind.MALFORMED_PACKAGE,
                f"Spine entry refers to unknown manifest id {idref!r}",
            )
        spine.append(SpineItem(idref=idref, href=item.href, index=len(spine), linear=linear != 'no'))
    return spine


def _extract_metadata(book_obj) -> BookMetadata:
    def get_list(key):
        data = book_obj.get_metadata('DC', key)
        return [x[0] for x in data if x[0]] if data else []

    def get_one(key):
        values = get_list(key)
        return values[0] if values else None

    creators = get_list('creator')
    return BookMetadata(
        title=get_one('title') or "Unknown Title",
        creator=", ".join(creators) or "Unknown Author",
        description=get_one('description'),
        language=get_one('language'),
        publisher=get_one('publisher'),
        pubdate=get_one('date'),
        identifier=get_one('identifier'),
    )


def _toc_node(entry, children=None) -> TocNode:
    href = entry.href or ""
    return TocNode(
        id=getattr(entry, 'uid', None) or href,
        label=(entry.title or "").strip(),
        href=href,
        children=children or [],
    )


def _parse_toc_recursive(toc_list) -> List[TocNode]:
    result = []
    for item in toc_list or []:
        # ebooklib TOC items are either `Link` objects or tuples (Section, [Children])
        if isinstance(item, tuple):
            section, children = item
            result.append(_toc_node(section, _parse_toc_recursive(children)))
        elif isinstance(item, (epub.Link, epub.Section)):
            result.append(_toc_node(item))
    return result
