"""Shared test fixtures for the chordtier test suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import aiosqlite
import pytest

from chordtier.artists import ArtistDirectory
from chordtier.models.records import ChordSheet
from chordtier.models.search import CanonicalSong
from chordtier.record_store import RecordStore
from chordtier.search_cache import SearchCache


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
async def db():
    async with aiosqlite.connect(":memory:") as conn:
        yield conn


@pytest.fixture()
async def record_store(db: aiosqlite.Connection, clock: FakeClock) -> RecordStore:
    store = RecordStore(db, clock=clock)
    await store.init_db()
    return store


@pytest.fixture()
async def search_cache(db: aiosqlite.Connection, clock: FakeClock) -> SearchCache:
    cache = SearchCache(db, clock=clock)
    await cache.init_db()
    return cache


@pytest.fixture()
async def directory(db: aiosqlite.Connection) -> ArtistDirectory:
    artist_directory = ArtistDirectory(db)
    await artist_directory.init_db()
    return artist_directory


@pytest.fixture()
def wonderwall() -> ChordSheet:
    return ChordSheet(
        title="Wonderwall",
        artist="Oasis",
        content="[Intro] Em7 G Dsus4 A7sus4",
        song_key="F#m",
        guitar_capo=2,
    )


@pytest.fixture()
def ed_sheeran_songs() -> list[CanonicalSong]:
    return [
        CanonicalSong(
            title="Perfect", artist="Ed Sheeran", path="ed-sheeran/perfect", display_name="Perfect"
        ),
        CanonicalSong(
            title="Photograph",
            artist="Ed Sheeran",
            path="ed-sheeran/photograph",
            display_name="Photograph",
        ),
    ]
