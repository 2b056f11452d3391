from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from reader_core.core.models import ChapterRequest
from reader_core.core.storage import (
    PROGRESS_KEY,
    SETTINGS_KEY,
    HrefLocation,
    IdrefLocation,
    KeyValueStore,
    ProgressStore,
    ReaderSettings,
    ReadingProgress,
    SettingsStore,
    Theme,
    clear_all,
)


@pytest.fixture
def store(tmp_path: Path) -> KeyValueStore:
    return KeyValueStore(tmp_path / "state" / "storage.json")


def test_progress_round_trip(store: KeyValueStore) -> None:
    progress = ProgressStore(store)

    progress.save_progress(ReadingProgress(book_id="b1", chapter_idref="c1", chapter_href="c1.xhtml", scroll_position=420))
    loaded = progress.get_progress("b1")

    assert loaded is not None
    assert (loaded.chapter_idref, loaded.chapter_href, loaded.scroll_position) == ("c1", "c1.xhtml", 420)
    assert loaded.location == IdrefLocation(href="c1.xhtml", idref="c1")


def test_progress_is_stored_camel_case(store: KeyValueStore) -> None:
    ProgressStore(store).save_progress(ReadingProgress(book_id="b1", chapter_href="c1.xhtml"))

    records = json.loads(store.get(PROGRESS_KEY))

    assert set(records["b1"]) == {"bookId", "chapterIdref", "chapterHref", "scrollPosition", "lastReadDate"}


def test_last_write_wins(store: KeyValueStore) -> None:
    progress = ProgressStore(store)
    progress.save_progress(ReadingProgress(book_id="b1", chapter_href="c1.xhtml", scroll_position=10))
    progress.save_progress(ReadingProgress(book_id="b2", chapter_href="x.xhtml"))
    progress.save_progress(ReadingProgress(book_id="b1", chapter_href="c2.xhtml", scroll_position=5))

    assert progress.get_progress("b1").chapter_href == "c2.xhtml"
    assert progress.get_progress("b2").chapter_href == "x.xhtml"


def test_legacy_href_only_record(store: KeyValueStore) -> None:
    legacy = {"b1": {"chapterHref": "Text/c3.xhtml", "scrollPosition": 12, "lastReadDate": "2024-01-01T00:00:00Z"}}
    store.set(PROGRESS_KEY, json.dumps(legacy))

    loaded = ProgressStore(store).get_progress("b1")

    assert loaded.chapter_idref is None
    assert loaded.book_id == "b1"
    assert loaded.location == HrefLocation(href="Text/c3.xhtml")
    assert loaded.location.to_request() == ChapterRequest(href="Text/c3.xhtml")


def test_missing_progress_is_none(store: KeyValueStore) -> None:
    assert ProgressStore(store).get_progress("unknown") is None


def test_corrupt_progress_is_none(store: KeyValueStore) -> None:
    store.set(PROGRESS_KEY, "{not json")
    assert ProgressStore(store).get_progress("b1") is None

    store.set(PROGRESS_KEY, json.dumps({"b1": {"currentChapter": 3}}))
    assert ProgressStore(store).get_progress("b1") is None


def test_corrupt_storage_file_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "storage.json"
    path.write_text("]]]", encoding="utf-8")
    store = KeyValueStore(path)

    assert ProgressStore(store).get_progress("b1") is None
    assert SettingsStore(store).get_settings() == ReaderSettings()

    ProgressStore(store).save_progress(ReadingProgress(book_id="b1", chapter_href="c.xhtml"))
    assert ProgressStore(store).get_progress("b1") is not None


def test_negative_scroll_position_is_rejected() -> None:
    with pytest.raises(ValidationError):
        ReadingProgress(book_id="b1", chapter_href="c.xhtml", scroll_position=-1)


def test_failed_write_is_not_raised(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    store = KeyValueStore(blocker / "storage.json")

    ProgressStore(store).save_progress(ReadingProgress(book_id="b1", chapter_href="c.xhtml"))
    SettingsStore(store).save_settings(ReaderSettings())

    assert ProgressStore(store).get_progress("b1") is None


def test_default_settings(store: KeyValueStore) -> None:
    settings = SettingsStore(store).get_settings()

    assert settings.font_size == 18
    assert settings.theme is Theme.SEPIA
    assert settings.line_height == 1.6
    assert settings.font_family == "Georgia, serif"
    assert settings.align == "left"


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"theme": "neon"}'])
def test_unparsable_settings_fall_back_to_defaults(store: KeyValueStore, raw: str) -> None:
    store.set(SETTINGS_KEY, raw)
    assert SettingsStore(store).get_settings() == ReaderSettings()


def test_partial_settings_are_completed(store: KeyValueStore) -> None:
    store.set(SETTINGS_KEY, json.dumps({"theme": "dark", "fontSize": 22}))

    settings = SettingsStore(store).get_settings()

    assert settings.theme is Theme.DARK
    assert settings.font_size == 22
    assert settings.line_height == 1.6


def test_settings_round_trip_and_update(store: KeyValueStore) -> None:
    settings_store = SettingsStore(store)
    settings_store.save_settings(ReaderSettings(theme=Theme.LIGHT, align="justify"))

    updated = settings_store.update(font_size=20, lineHeight=1.8)

    assert updated == settings_store.get_settings()
    assert (updated.theme, updated.align, updated.font_size, updated.line_height) == (Theme.LIGHT, "justify", 20, 1.8)
    assert json.loads(store.get(SETTINGS_KEY))["lineHeight"] == 1.8


def test_invalid_update_raises(store: KeyValueStore) -> None:
    with pytest.raises(ValidationError):
        SettingsStore(store).update(theme="neon")


def test_clear_all(store: KeyValueStore) -> None:
    ProgressStore(store).save_progress(ReadingProgress(book_id="b1", chapter_href="c.xhtml"))
    SettingsStore(store).update(theme="dark")

    clear_all(store)

    assert store.get(PROGRESS_KEY) is None
    assert store.get(SETTINGS_KEY) is None
