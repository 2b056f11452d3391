import posixpath
from typing import Tuple
from urllib.parse import unquote, urlsplit


def split_fragment(href: str) -> Tuple[str, str]:
    """
    Splits 'part01.xhtml#chapter1' into ('part01.xhtml', 'chapter1').
    The fragment is empty if there is none.
    """
    if '#' not in href:
        return href, ""
    path, fragment = href.split('#', 1)
    return path, fragment


def strip_fragment(href: str) -> str:
    return split_fragment(href)[0]


def is_remote(url: str) -> bool:
    return urlsplit(url).scheme in ("http", "https")


def resolve_relative(base_href: str, link: str) -> str:
    """
    Resolves a link found inside `base_href` to a path relative to the package document.
    e.g. ('Text/ch1.xhtml', '../Styles/main.css') -> 'Styles/main.css'
    """
    path = unquote(strip_fragment(link))
    if path.startswith('/'):
        return posixpath.normpath(path.lstrip('/'))
    base_dir = posixpath.dirname(base_href)
    return posixpath.normpath(posixpath.join(base_dir, path))
