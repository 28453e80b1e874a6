from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DataSource(StrEnum):
    SCRAPE = "scrape"
    UPLOAD = "upload"
    API = "api"


class SavedStatus(StrEnum):
    """Canonical on-disk form of the saved flag."""

    SAVED = "saved"
    CACHED = "cached"

    @classmethod
    def from_flag(cls, saved: bool) -> SavedStatus:
        return cls.SAVED if saved else cls.CACHED


class ChordSheet(BaseModel):
    """Chord sheet payload as produced by a fetch or an upload."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str
    artist: str
    content: str  # Chords + lyrics blob
    song_key: str = ""
    guitar_capo: int = 0
    guitar_tuning: list[str] = Field(default_factory=list)


class ChordSheetRecord(ChordSheet):
    """Chord sheet persisted in the local record store.

    ``saved`` records never expire (``expires_at is None``). Un-saving a
    record sets ``deleted_at`` and a short grace-period ``expires_at``.
    """

    path: str  # Normalised "artist/title", primary key
    saved: bool = False
    timestamp: datetime
    last_accessed: datetime
    access_count: int = 1
    data_source: DataSource = DataSource.SCRAPE
    version: int = 1
    expires_at: datetime | None = None
    deleted_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return not self.saved and self.expires_at is not None and self.expires_at <= now
