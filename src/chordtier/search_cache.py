"""SQLite query-result cache with popularity+recency eviction.

Entries are keyed by the normalised ``artist|song`` query. The table is
bounded to ``max_items`` rows; on overflow the lowest-scoring entries go
first, where::

    score = access_count * 0.7 + (timestamp / now) * 0.3

Reads refresh the timestamp and bump the access count, so a query that is
repeated often outlives a query that was issued once, even a recent one.

Like the record store, every ``aiosqlite.Error`` is caught here: a broken
cache behaves as an empty cache.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

import aiosqlite
import structlog
from pydantic import TypeAdapter

from chordtier.models.search import (
    CanonicalArtist,
    CanonicalSong,
    ResultKind,
    SearchCacheEntry,
)

log = structlog.get_logger()

KEY_SEPARATOR = "|"

_CREATE_SEARCH_TABLE = """
CREATE TABLE IF NOT EXISTS search_cache (
    key          TEXT PRIMARY KEY,
    result_kind  TEXT NOT NULL,
    results      TEXT NOT NULL,
    timestamp    TEXT NOT NULL,
    access_count INTEGER NOT NULL DEFAULT 1,
    query_artist TEXT,
    query_song   TEXT
)
"""

_ADAPTERS: dict[str, TypeAdapter] = {
    "artist": TypeAdapter(list[CanonicalArtist]),
    "song": TypeAdapter(list[CanonicalSong]),
}


def build_key(artist: str | None, song: str | None) -> str | None:
    """Normalise a query into a cache key, or None when both parts are empty."""
    artist_part = (artist or "").strip().lower()
    song_part = (song or "").strip().lower()
    if not artist_part and not song_part:
        return None
    return f"{artist_part}{KEY_SEPARATOR}{song_part}"


def eviction_score(access_count: int, timestamp: float, now: float) -> float:
    return access_count * 0.7 + (timestamp / now) * 0.3


def _infer_kind(results: Sequence[CanonicalArtist | CanonicalSong], song: str | None) -> ResultKind:
    if results:
        return "song" if isinstance(results[0], CanonicalSong) else "artist"
    return "song" if (song or "").strip() else "artist"


class SearchCache:
    """Bounded, persisted cache of search results."""

    def __init__(
        self,
        db: aiosqlite.Connection,
        *,
        max_items: int = 100,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._db = db
        self._max_items = max_items
        self._ttl = ttl
        self._clock = clock

    async def init_db(self) -> None:
        await self._db.execute(_CREATE_SEARCH_TABLE)
        await self._db.commit()

    async def cache_results(
        self,
        artist: str | None,
        song: str | None,
        results: Sequence[CanonicalArtist] | Sequence[CanonicalSong],
        *,
        kind: ResultKind | None = None,
    ) -> None:
        """Upsert results for a query, then evict down to ``max_items``.

        Re-caching an existing key carries its access count forward (+1).
        No-op for an empty query. Non-fatal on failure.
        """
        key = build_key(artist, song)
        if key is None:
            return

        result_kind = kind or _infer_kind(results, song)
        payload = json.dumps([item.model_dump(mode="json", by_alias=True) for item in results])
        now = self._clock()
        try:
            cursor = await self._db.execute(
                "SELECT access_count FROM search_cache WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
            access_count = row[0] + 1 if row is not None else 1

            await self._db.execute(
                "INSERT OR REPLACE INTO search_cache "
                "(key, result_kind, results, timestamp, access_count, query_artist, query_song) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (key, result_kind, payload, now.isoformat(), access_count, artist, song),
            )
            evicted = await self._evict_overflow(now)
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("search_cache_write_error", key=key, exc_info=True)
            return

        if evicted:
            log.info("search_cache_evicted", count=evicted, max_items=self._max_items)

    async def _evict_overflow(self, now: datetime) -> int:
        """Delete the lowest-scoring entries beyond ``max_items``. Caller commits."""
        cursor = await self._db.execute("SELECT key, access_count, timestamp FROM search_cache")
        rows = await cursor.fetchall()
        overflow = len(rows) - self._max_items
        if overflow <= 0:
            return 0

        now_ts = now.timestamp()
        ranked = sorted(
            rows,
            key=lambda row: eviction_score(
                row[1], datetime.fromisoformat(row[2]).timestamp(), now_ts
            ),
        )
        victims = [(row[0],) for row in ranked[:overflow]]
        await self._db.executemany("DELETE FROM search_cache WHERE key = ?", victims)
        return len(victims)

    async def peek(self, artist: str | None, song: str | None) -> SearchCacheEntry | None:
        """Read an entry without refreshing it or checking its TTL."""
        key = build_key(artist, song)
        if key is None:
            return None
        try:
            cursor = await self._db.execute(
                "SELECT key, result_kind, results, timestamp, access_count, "
                "query_artist, query_song FROM search_cache WHERE key = ?",
                (key,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("search_cache_read_error", key=key, exc_info=True)
            return None
        if row is None:
            return None

        try:
            return SearchCacheEntry(
                key=row[0],
                result_kind=row[1],
                results=_ADAPTERS[row[1]].validate_json(row[2]),
                timestamp=datetime.fromisoformat(row[3]),
                access_count=row[4],
                query_artist=row[5],
                query_song=row[6],
            )
        except (KeyError, ValueError):
            log.warning("search_cache_corrupt_entry", key=key, exc_info=True)
            return None

    async def get_results(
        self, artist: str | None, song: str | None
    ) -> list[CanonicalArtist] | list[CanonicalSong] | None:
        """Return cached results, or ``None`` on miss, expiry, or failure.

        A hit refreshes the entry's timestamp and increments its access count.
        """
        entry = await self.peek(artist, song)
        if entry is None:
            return None

        now = self._clock()
        try:
            if now - entry.timestamp > self._ttl:
                log.debug("search_cache_expired", key=entry.key)
                await self._db.execute("DELETE FROM search_cache WHERE key = ?", (entry.key,))
                await self._db.commit()
                return None

            await self._db.execute(
                "UPDATE search_cache SET timestamp = ?, access_count = access_count + 1 "
                "WHERE key = ?",
                (now.isoformat(), entry.key),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("search_cache_write_error", key=entry.key, exc_info=True)
            return None

        log.debug("search_cache_hit", key=entry.key, access_count=entry.access_count + 1)
        return entry.results

    async def purge_expired(self) -> int:
        """Delete every entry older than the TTL. Returns the count."""
        cutoff = (self._clock() - self._ttl).isoformat()
        try:
            cursor = await self._db.execute(
                "DELETE FROM search_cache WHERE timestamp < ?", (cutoff,)
            )
            removed = cursor.rowcount
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("search_cache_cleanup_error", exc_info=True)
            return 0
        log.info("search_cache_cleanup_complete", removed=removed)
        return removed

    async def count(self) -> int:
        try:
            cursor = await self._db.execute("SELECT COUNT(*) FROM search_cache")
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("search_cache_read_error", op="count", exc_info=True)
            return 0
        return row[0] if row is not None else 0

    async def clear(self) -> None:
        try:
            await self._db.execute("DELETE FROM search_cache")
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("search_cache_write_error", op="clear", exc_info=True)
