import logging
from typing import Optional

import httpx

from reader_core import config
from reader_core.core.document import DocumentModel
from reader_core.utils.hrefs import is_remote, resolve_relative

logger = logging.getLogger(__name__)


async def fetch_remote_stylesheet(url: str, timeout: Optional[float] = None) -> str:
    """GETs a stylesheet over HTTP(S), URL taken verbatim."""
    if not is_remote(url):
        raise ValueError(f"Not an http(s) URL: {url}")
    async with httpx.AsyncClient(follow_redirects=True, timeout=timeout or config.STYLESHEET_TIMEOUT) as client:
        response = await client.get(url)
        response.raise_for_status()
        logger.debug("Fetched %s (%d bytes)", url, len(response.content))
        return response.text


class BookStylesheetFetcher:
    """
    Reads stylesheets referenced by one chapter.
    Relative links come from the package itself; absolute http(s) links go over the network.
    """

    def __init__(self, document: DocumentModel, chapter_href: str, timeout: Optional[float] = None):
        self.document = document
        self.chapter_href = chapter_href
        self.timeout = timeout

    async def __call__(self, url: str) -> str:
        if is_remote(url):
            return await fetch_remote_stylesheet(url, self.timeout)
        path = resolve_relative(self.chapter_href, url)
        return self.document.read_bytes(path).decode('utf-8', errors='ignore')
