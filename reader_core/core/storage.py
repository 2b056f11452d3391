"""Module for persisting reading progress and reader settings."""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from reader_core.core.models import ChapterRequest
from reader_core.utils.paths import ensure_dir_exists

logger = logging.getLogger(__name__)

PROGRESS_KEY = 'epub_reader_progress'
SETTINGS_KEY = 'epub_reader_settings'


class KeyValueStore:
    """A flat JSON document mapping string keys to string values."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Unreadable storage file %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.error("Storage file %s does not hold an object, ignoring it", self.path)
            return {}
        return {key: value for key, value in data.items() if isinstance(value, str)}

    def _save(self, data: Dict[str, str]) -> None:
        ensure_dir_exists(self.path.parent)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)


class _Record(BaseModel):
    # camelCase on disk, snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Progress ---

@dataclass(frozen=True)
class HrefLocation:
    """Legacy position: only the chapter path was recorded."""
    href: str

    def to_request(self) -> ChapterRequest:
        return ChapterRequest(href=self.href)


@dataclass(frozen=True)
class IdrefLocation:
    href: str
    idref: str

    def to_request(self) -> ChapterRequest:
        return ChapterRequest(idref=self.idref, href=self.href)


ChapterLocation = Union[HrefLocation, IdrefLocation]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ReadingProgress(_Record):
    book_id: str
    chapter_href: str
    chapter_idref: Optional[str] = None
    scroll_position: float = Field(default=0, ge=0)
    last_read_date: datetime = Field(default_factory=_now)

    @property
    def location(self) -> ChapterLocation:
        if self.chapter_idref:
            return IdrefLocation(href=self.chapter_href, idref=self.chapter_idref)
        return HrefLocation(href=self.chapter_href)


class ProgressStore:
    """One record per book, last write wins."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _load_all(self) -> Dict[str, Any]:
        raw = self.store.get(PROGRESS_KEY)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning("Discarding corrupt progress data: %s", e)
            return {}
        return data if isinstance(data, dict) else {}

    def save_progress(self, progress: ReadingProgress) -> None:
        try:
            records = self._load_all()
            records[progress.book_id] = progress.model_dump(mode='json', by_alias=True)
            self.store.set(PROGRESS_KEY, json.dumps(records))
        except OSError as e:
            logger.error("Failed to save reading progress for %s: %s", progress.book_id, e)

    def get_progress(self, book_id: str) -> Optional[ReadingProgress]:
        record = self._load_all().get(book_id)
        if record is None:
            return None
        if isinstance(record, dict):
            record = {'bookId': book_id, **record}
        try:
            return ReadingProgress.model_validate(record)
        except ValidationError as e:
            logger.warning("Ignoring unreadable progress record for %s: %s", book_id, e)
            return None


# --- Settings ---

class Theme(str, Enum):
    LIGHT = 'light'
    DARK = 'dark'
    SEPIA = 'sepia'


class ReaderSettings(_Record):
    font_size: int = 18
    theme: Theme = Theme.SEPIA
    line_height: float = 1.6
    font_family: str = 'Georgia, serif'
    align: str = 'left'


class SettingsStore:

    def __init__(self, store: KeyValueStore):
        self.store = store

    def get_settings(self) -> ReaderSettings:
        raw = self.store.get(SETTINGS_KEY)
        if raw:
            try:
                return ReaderSettings.model_validate_json(raw)
            except ValidationError as e:
                logger.warning("Stored settings are unreadable, using defaults: %s", e)
        return ReaderSettings()

    def save_settings(self, settings: ReaderSettings) -> None:
        try:
            self.store.set(SETTINGS_KEY, settings.model_dump_json(by_alias=True))
        except OSError as e:
            logger.error("Failed to save settings: %s", e)

    def update(self, **changes) -> ReaderSettings:
        """Merges a partial change (snake_case or camelCase keys) into the stored settings."""
        merged = self.get_settings().model_dump(mode='json', by_alias=True)
        fields = ReaderSettings.model_fields
        for key, value in changes.items():
            merged[fields[key].alias if key in fields else key] = value
        settings = ReaderSettings.model_validate(merged)
        self.save_settings(settings)
        return settings


def clear_all(store: KeyValueStore) -> None:
    store.remove(PROGRESS_KEY)
    store.remove(SETTINGS_KEY)
