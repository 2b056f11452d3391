from __future__ import annotations

import io
import zipfile
from typing import Iterable

import pytest

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="{opf_path}" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

CHAPTER_ONE = """<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<head>
<title>Chapter One</title>
<link rel="stylesheet" type="text/css" href="../Styles/main.css"/>
</head>
<body>
<h1>Chapter One</h1>
<p>It was a <a id="start">dark</a> night.<sup></sup><a data-type="noteref" href="ch2.xhtml#n1">1</a></p>
<pre>print("hello")</pre>
</body>
</html>
"""

CHAPTER_TWO = """<?xml version="1.0" encoding="utf-8"?>
<html xmlns="http://www.w3.org/1999/xhtml">
<head><title>Chapter Two</title></head>
<body>
<h1 id="sec1">Chapter Two</h1>
<p>Some <code>code</code> here.</p>
<p id="n1">1. A footnote.</p>
</body>
</html>
"""

CHAPTER_THREE = """<?xml version="1.0" encoding="utf-8"?>
<html xmlns="http://www.w3.org/1999/xhtml">
<head><title>Chapter Three</title></head>
<body><p>The end.</p></body>
</html>
"""

STYLESHEET = "body { margin: 0; }\np { color: red !important; }\n"

DEFAULT_CHAPTERS = (
    ("ch1", "Text/ch1.xhtml", CHAPTER_ONE),
    ("ch2", "Text/ch2.xhtml", CHAPTER_TWO),
    ("ch3", "Text/ch3.xhtml", CHAPTER_THREE),
)

NCX = """<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <head><meta name="dtb:uid" content="urn:uuid:test-book"/></head>
  <docTitle><text>A Test Book</text></docTitle>
  <navMap>
    <navPoint id="nav-1" playOrder="1">
      <navLabel><text>Chapter One</text></navLabel>
      <content src="Text/ch1.xhtml"/>
    </navPoint>
    <navPoint id="nav-2" playOrder="2">
      <navLabel><text>Chapter Two</text></navLabel>
      <content src="Text/ch2.xhtml"/>
      <navPoint id="nav-2-1" playOrder="3">
        <navLabel><text>Section 2.1</text></navLabel>
        <content src="Text/ch2.xhtml#sec1"/>
      </navPoint>
    </navPoint>
    <navPoint id="nav-3" playOrder="4">
      <navLabel><text>Chapter Three</text></navLabel>
      <content src="Text/ch3.xhtml"/>
    </navPoint>
  </navMap>
</ncx>
"""


def build_epub(
    chapters: Iterable[tuple[str, str, str]] = DEFAULT_CHAPTERS,
    spine: Iterable[str] | None = None,
    title: str | None = "A Test Book",
    creators: Iterable[str] = ("Jane Doe",),
    ncx: str | None = NCX,
    container: str | None = CONTAINER_XML,
    opf_path: str = "OEBPS/content.opf",
    opf_override: str | None = None,
) -> bytes:
    chapters = list(chapters)
    spine = list(spine) if spine is not None else [chapter_id for chapter_id, _, _ in chapters]

    manifest = [
        f'<item id="{chapter_id}" href="{href}" media-type="application/xhtml+xml"/>'
        for chapter_id, href, _ in chapters
    ]
    manifest.append('<item id="css" href="Styles/main.css" media-type="text/css"/>')
    if ncx is not None:
        manifest.append('<item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>')

    metadata = ['<dc:identifier id="bookid">urn:uuid:test-book</dc:identifier>', '<dc:language>en</dc:language>']
    if title is not None:
        metadata.append(f"<dc:title>{title}</dc:title>")
    metadata.extend(f"<dc:creator>{creator}</dc:creator>" for creator in creators)

    spine_attrs = ' toc="ncx"' if ncx is not None else ""
    opf = opf_override or f"""<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="2.0" unique-identifier="bookid">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/" xmlns:opf="http://www.idpf.org/2007/opf">
    {"".join(metadata)}
  </metadata>
  <manifest>
    {"".join(manifest)}
  </manifest>
  <spine{spine_attrs}>
    {"".join(f'<itemref idref="{idref}"/>' for idref in spine)}
  </spine>
</package>
"""

    base = opf_path.rsplit("/", 1)[0] + "/" if "/" in opf_path else ""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED)
        if container is not None:
            zf.writestr("META-INF/container.xml", container.format(opf_path=opf_path))
        zf.writestr(opf_path, opf)
        zf.writestr(base + "Styles/main.css", STYLESHEET)
        if ncx is not None:
            zf.writestr(base + "toc.ncx", ncx)
        for _, href, markup in chapters:
            zf.writestr(base + href, markup)
    return buffer.getvalue()


@pytest.fixture
def epub_factory():
    return build_epub


@pytest.fixture
def sample_epub() -> bytes:
    return build_epub()


def without_entries(data: bytes, *names: str) -> bytes:
    """Copies an EPUB archive, leaving out the named entries."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(io.BytesIO(data)) as src, zipfile.ZipFile(buffer, "w") as dst:
        for info in src.infolist():
            if info.filename not in names:
                dst.writestr(info, src.read(info))
    return buffer.getvalue()


@pytest.fixture
def strip_entries():
    return without_entries
