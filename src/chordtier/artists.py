"""Relational artist directory behind ``GET /artists``.

Unlike the cache tiers, failures here are raised: the orchestrator falls
back to a live search when the directory cannot answer.
"""

from __future__ import annotations

from collections.abc import Iterable

import aiosqlite
import structlog

from chordtier.models.search import CanonicalArtist, RecordSource, SourceRecord
from chordtier.normalizer import normalize_artist_results
from chordtier.paths import normalize_path

log = structlog.get_logger()

_CREATE_ARTISTS_TABLE = """
CREATE TABLE IF NOT EXISTS artists (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    path         TEXT NOT NULL UNIQUE,
    display_name TEXT NOT NULL,
    song_count   INTEGER
)
"""


class ArtistDirectory:
    """aiosqlite-backed artist table with substring search."""

    def __init__(self, db: aiosqlite.Connection, *, limit: int = 50) -> None:
        self._db = db
        self._limit = limit

    async def init_db(self) -> None:
        await self._db.execute(_CREATE_ARTISTS_TABLE)
        await self._db.commit()

    async def search(self, query: str) -> list[CanonicalArtist]:
        """Case-insensitive substring match on display name or path.

        Raises ``aiosqlite.Error`` on failure.
        """
        pattern = f"%{query.strip().lower()}%"
        cursor = await self._db.execute(
            "SELECT id, display_name, path, song_count FROM artists "
            "WHERE lower(display_name) LIKE ? OR path LIKE ? "
            "ORDER BY display_name COLLATE NOCASE LIMIT ?",
            (pattern, pattern, self._limit),
        )
        rows = await cursor.fetchall()
        records = (
            SourceRecord(
                RecordSource.DATABASE,
                {"id": row[0], "displayName": row[1], "path": row[2], "songCount": row[3]},
            )
            for row in rows
        )
        artists = normalize_artist_results(records)
        log.debug("artist_directory_search", query=query, count=len(artists))
        return artists

    async def upsert(self, artists: Iterable[CanonicalArtist]) -> int:
        """Insert or update artists by path. Returns the number written."""
        rows = [
            (normalize_path(artist.path), artist.display_name, artist.song_count)
            for artist in artists
        ]
        await self._db.executemany(
            "INSERT INTO artists (path, display_name, song_count) VALUES (?, ?, ?) "
            "ON CONFLICT(path) DO UPDATE SET "
            "display_name = excluded.display_name, song_count = excluded.song_count",
            rows,
        )
        await self._db.commit()
        return len(rows)
