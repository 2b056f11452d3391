"""
Chapter markup normalization.

A fixed, ordered list of tree transforms applied to one parsed chapter and
serialized once at the end. Every transform is a no-op on its own output, so
running the whole pipeline twice gives the same markup as running it once.

    1. unwrap_bare_anchors      <a> without href -> its children (or nothing)
    2. mark_no_translate        <pre>/<code> -> translate="no" + class notranslate
    3. repair_footnote_markers  <sup></sup><a noteref> -> <sup><a noteref></a></sup>
    4. inline_stylesheets       <link rel="stylesheet"> -> <style> without !important

Anchors are unwrapped before stylesheets are inlined so that no styling is
ever computed for elements that are about to disappear.
"""
import asyncio
import logging
import re
from typing import Awaitable, Callable, Optional

from bs4 import BeautifulSoup, Tag

from reader_core.core.models import ChapterContent, SpineItem

logger = logging.getLogger(__name__)

StylesheetFetcher = Callable[[str], Awaitable[str]]

NO_TRANSLATE_CLASS = 'notranslate'
IMPORTANT_RE = re.compile(r'\s*!\s*important\b', re.IGNORECASE)


def unwrap_bare_anchors(soup: BeautifulSoup) -> BeautifulSoup:
    for anchor in soup.find_all('a'):
        if anchor.has_attr('href'):
            continue
        if anchor.contents:
            anchor.unwrap()
        else:
            anchor.decompose()
    return soup


def mark_no_translate(soup: BeautifulSoup) -> BeautifulSoup:
    for tag in soup.find_all(['pre', 'code']):
        tag['translate'] = 'no'
        classes = tag.get('class') or []
        if isinstance(classes, str):
            classes = classes.split()
        if NO_TRANSLATE_CLASS not in classes:
            tag['class'] = list(classes) + [NO_TRANSLATE_CLASS]
    return soup


def _is_noteref(tag: Tag) -> bool:
    if tag.name != 'a':
        return False
    if tag.get('data-type') == 'noteref':
        return True
    if 'noteref' in (tag.get('epub:type') or '').split():
        return True
    return tag.get('role') == 'doc-noteref'


def _next_element_sibling(tag: Tag) -> Optional[Tag]:
    """The next sibling element, provided only whitespace separates the two."""
    sibling = tag.next_sibling
    while sibling is not None:
        if isinstance(sibling, Tag):
            return sibling
        if str(sibling).strip():
            return None
        sibling = sibling.next_sibling
    return None


def repair_footnote_markers(soup: BeautifulSoup) -> BeautifulSoup:
    for sup in soup.find_all('sup'):
        if sup.find(True) or sup.get_text(strip=True):
            continue
        marker = _next_element_sibling(sup)
        if marker is not None and _is_noteref(marker):
            sup.append(marker.extract())
    return soup


def strip_important(css: str) -> str:
    """'p{color:red !important;}' -> 'p{color:red;}'"""
    return IMPORTANT_RE.sub('', css)


def _is_stylesheet(link: Tag) -> bool:
    rel = link.get('rel') or []
    if isinstance(rel, str):
        rel = rel.split()
    return 'stylesheet' in (value.lower() for value in rel)


async def inline_stylesheets(soup: BeautifulSoup, fetch_stylesheet: StylesheetFetcher) -> BeautifulSoup:
    links = [link for link in soup.find_all('link') if _is_stylesheet(link)]
    if not links:
        return soup

    async def fetch(link: Tag) -> str:
        href = link.get('href')
        if not href:
            raise ValueError("stylesheet link without href")
        return await fetch_stylesheet(href)

    # Independent per link, so fetch them all at once
    results = await asyncio.gather(*(fetch(link) for link in links), return_exceptions=True)

    for link, result in zip(links, results):
        if isinstance(result, Exception):
            logger.warning("Could not inline stylesheet %r: %s", link.get('href'), result)
            link.decompose()
            continue
        if isinstance(result, BaseException):
            raise result
        style = soup.new_tag('style')
        if link.get('media'):
            style['media'] = link['media']
        style.string = strip_important(result)
        link.replace_with(style)
    return soup


TREE_TRANSFORMS = (
    unwrap_bare_anchors,
    mark_no_translate,
    repair_footnote_markers,
)


async def _no_stylesheets(url: str) -> str:
    raise LookupError(f"no stylesheet source configured for {url}")


async def sanitize_markup(markup: str, fetch_stylesheet: Optional[StylesheetFetcher] = None) -> str:
    """
    Runs the full pipeline over one chapter and returns the serialized document.
    Without a fetcher, stylesheet links are dropped.
    """
    soup = BeautifulSoup(markup, 'html.parser')
    for transform in TREE_TRANSFORMS:
        soup = transform(soup)
    soup = await inline_stylesheets(soup, fetch_stylesheet or _no_stylesheets)
    return str(soup)


async def sanitize_chapter(item: SpineItem, markup: str,
                           fetch_stylesheet: Optional[StylesheetFetcher] = None) -> ChapterContent:
    content = await sanitize_markup(markup, fetch_stylesheet)
    return ChapterContent(idref=item.idref, href=item.href, content=content)
