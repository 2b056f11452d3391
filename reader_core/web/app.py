import logging
from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from reader_core import config
from reader_core.core.errors import ChapterNotFoundError, NotLoadedError, PackageError, SessionStateError
from reader_core.core.models import ChapterContent, ChapterRequest, TocNode
from reader_core.core.session import ReaderSession, SessionState
from reader_core.core.storage import KeyValueStore, ProgressStore, SettingsStore

logger = logging.getLogger(__name__)

app = FastAPI(title="EPUB Reader")

storage = KeyValueStore(config.STORAGE_FILE)
sessions: Dict[str, ReaderSession] = {}


class ScrollUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scroll_position: float = Field(ge=0, alias="scrollPosition")


def _toc_json(node: TocNode) -> Dict[str, Any]:
    item = {"id": node.id, "label": node.label, "href": node.href}
    if node.children:
        item["subitems"] = [_toc_json(child) for child in node.children]
    return item


def _chapter_json(chapter: Optional[ChapterContent]) -> Optional[Dict[str, str]]:
    return asdict(chapter) if chapter is not None else None


def _get_session(book_id: str) -> ReaderSession:
    session = sessions.get(book_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Book not open")
    if session.state in (SessionState.ERROR, SessionState.CLOSED):
        raise HTTPException(status_code=409, detail=f"Book is unavailable (session is {session.state.value})")
    return session


async def _navigate(session: ReaderSession, request: ChapterRequest) -> ChapterContent:
    try:
        chapter = await session.navigate(request)
    except ChapterNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (NotLoadedError, SessionStateError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.exception("Navigation to %r failed", request)
        raise HTTPException(status_code=500, detail=str(e))
    if chapter is None:
        raise HTTPException(status_code=409, detail="Superseded by a newer navigation")
    return chapter


@app.post("/api/books")
async def open_book(request: Request):
    """Opens the EPUB sent as the request body and jumps to the saved position."""
    data = await request.body()
    session = ReaderSession(progress_store=ProgressStore(storage))
    try:
        metadata = await session.open(data, request.query_params.get("book_id"))
    except PackageError as e:
        raise HTTPException(status_code=422, detail={"kind": e.kind.value, "message": str(e)})

    previous = sessions.pop(session.book_id, None)
    if previous is not None:
        previous.close()
    sessions[session.book_id] = session

    chapter, scroll_position = await session.restore()
    return {
        "book_id": session.book_id,
        "metadata": asdict(metadata),
        "chapter": _chapter_json(chapter),
        "scroll_position": scroll_position,
    }


@app.get("/api/books/{book_id}/metadata")
async def get_metadata(book_id: str):
    return asdict(_get_session(book_id).metadata)


@app.get("/api/books/{book_id}/toc")
async def get_toc(book_id: str):
    return [_toc_json(node) for node in _get_session(book_id).toc]


@app.get("/api/books/{book_id}/spine")
async def get_spine(book_id: str):
    return [asdict(item) for item in _get_session(book_id).document.spine_items()]


@app.get("/api/books/{book_id}/chapter")
async def get_chapter(book_id: str, idref: Optional[str] = None, href: Optional[str] = None):
    session = _get_session(book_id)
    if not idref and not href:
        raise HTTPException(status_code=400, detail="idref or href is required")
    return asdict(await _navigate(session, ChapterRequest(idref=idref, href=href)))


@app.post("/api/books/{book_id}/next")
async def next_chapter(book_id: str):
    session = _get_session(book_id)
    try:
        chapter = await session.next_chapter()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"chapter": _chapter_json(chapter)}


@app.post("/api/books/{book_id}/previous")
async def previous_chapter(book_id: str):
    session = _get_session(book_id)
    try:
        chapter = await session.previous_chapter()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"chapter": _chapter_json(chapter)}


@app.get("/api/books/{book_id}/progress")
async def get_progress(book_id: str):
    progress = ProgressStore(storage).get_progress(book_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="No saved progress")
    return progress.model_dump(mode="json", by_alias=True)


@app.put("/api/books/{book_id}/progress")
async def save_progress(book_id: str, update: ScrollUpdate):
    session = _get_session(book_id)
    try:
        session.record_scroll(update.scroll_position)
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"status": "saved"}


@app.delete("/api/books/{book_id}")
async def close_book(book_id: str):
    session = sessions.pop(book_id, None)
    if session is None:
        raise HTTPException(status_code=404, detail="Book not open")
    session.close()
    return {"status": "closed"}


@app.get("/api/settings")
async def get_settings():
    return SettingsStore(storage).get_settings().model_dump(mode="json", by_alias=True)


@app.put("/api/settings")
async def update_settings(changes: Dict[str, Any]):
    try:
        settings = SettingsStore(storage).update(**changes)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
    return settings.model_dump(mode="json", by_alias=True)


def start_server():
    import uvicorn
    logger.info("Starting server at http://%s:%d", config.HOST, config.PORT)
    uvicorn.run(app, host=config.HOST, port=config.PORT)
