import sys
import asyncio
import logging
import argparse
from pathlib import Path

from reader_core import config
from reader_core.core.errors import ReaderError
from reader_core.core.models import ChapterRequest
from reader_core.core.session import ReaderSession


def _print_toc(nodes, depth=0):
    for node in nodes:
        print(f"{'  ' * depth}- {node.label or '(untitled)'} [{node.href}]")
        _print_toc(node.children, depth + 1)


async def _show_info(data: bytes):
    session = ReaderSession()
    metadata = await session.open(data)
    try:
        print(f"Title: {metadata.title}")
        print(f"Creator: {metadata.creator}")
        for label, value in (("Language", metadata.language), ("Publisher", metadata.publisher),
                             ("Date", metadata.pubdate), ("Identifier", metadata.identifier)):
            if value:
                print(f"{label}: {value}")

        print("\n--- Spine ---")
        for item in session.document.spine_items():
            print(f"{item.index:3d}  {item.idref}  {item.href}")

        print("\n--- Table of Contents ---")
        if session.toc:
            _print_toc(session.toc)
        else:
            print("(none)")
    finally:
        session.close()


async def _show_chapter(data: bytes, idref=None, href=None):
    session = ReaderSession()
    await session.open(data)
    try:
        if idref or href:
            chapter = await session.navigate(ChapterRequest(idref=idref, href=href))
        else:
            chapter, _ = await session.restore()
        if chapter is not None:
            print(chapter.content)
    finally:
        session.close()


def main():
    parser = argparse.ArgumentParser(description="EPUB Reader")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("serve", help="Start Server")

    info_parser = subparsers.add_parser("info", help="Show metadata, spine and TOC")
    info_parser.add_argument("file")

    chapter_parser = subparsers.add_parser("chapter", help="Print sanitized chapter markup")
    chapter_parser.add_argument("file")
    chapter_parser.add_argument("--idref")
    chapter_parser.add_argument("--href")

    args = parser.parse_args()
    logging.basicConfig(level=config.LOG_LEVEL)

    if args.command == "serve":
        from reader_core.web.app import start_server
        start_server()
    elif args.command in ("info", "chapter"):
        try:
            data = Path(args.file).read_bytes()
            if args.command == "info":
                asyncio.run(_show_info(data))
            else:
                asyncio.run(_show_chapter(data, args.idref, args.href))
        except (ReaderError, OSError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
