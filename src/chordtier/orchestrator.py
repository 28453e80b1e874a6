"""Resolution orchestrator: walks the tier chain for each request.

Chord sheets:   local record store → scraper (write-back to local store)
Artist songs:   remote tier        → scraper (write-back to remote tier)
Uploads:        local record store, then appended to a cached remote artist list
Artist search:  query cache → artist directory → scraper search
Song search:    query cache → scraper search

Cache tiers never fail a request. Anything they raise is logged and treated
as a miss; only the scraper, as the last tier, may surface an error.
There is no stale fallback: an expired local record is never served when
the scraper fails.

Concurrent identical requests share one in-flight task per resolution key.
The task is shielded, so a caller that gives up does not cancel the fetch
for the others, and the map entry is dropped as soon as the task settles.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from chordtier.errors import invalid_input
from chordtier.models.records import ChordSheet, ChordSheetRecord, DataSource
from chordtier.models.search import CanonicalSong
from chordtier.paths import normalize_artist_path, normalize_path, song_path_for, split_song_path

if TYPE_CHECKING:
    from chordtier.models.search import CanonicalArtist, ResultKind
    from chordtier.protocols import (
        ArtistDirectoryProtocol,
        RecordStoreProtocol,
        RemoteTierProtocol,
        ScraperProtocol,
        SearchCacheProtocol,
    )

log = structlog.get_logger()

T = TypeVar("T")


class Orchestrator:
    """Top-level coordinator over the injected tiers."""

    def __init__(
        self,
        *,
        record_store: RecordStoreProtocol,
        search_cache: SearchCacheProtocol,
        remote: RemoteTierProtocol,
        scraper: ScraperProtocol,
        directory: ArtistDirectoryProtocol | None = None,
    ) -> None:
        self._record_store = record_store
        self._search_cache = search_cache
        self._remote = remote
        self._scraper = scraper
        self._directory = directory
        self._in_flight: dict[str, asyncio.Task[Any]] = {}

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def _dedupe(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        else:
            log.debug("in_flight_joined", key=key)
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Mark the outcome retrieved; every waiter already got it via shield.
        if not task.cancelled():
            task.exception()

    # ------------------------------------------------------------------
    # Chord sheets
    # ------------------------------------------------------------------

    async def get_chord_sheet(self, path: str) -> ChordSheetRecord | None:
        """Resolve a chord sheet by ``artist/song`` path.

        Returns ``None`` when the live source has no chords for the path.
        Raises ``INVALID_INPUT`` for a malformed path and
        ``UPSTREAM_UNAVAILABLE`` when the scraper fails on a local miss.
        """
        key = self._song_key(path)
        return await self._dedupe(f"chord-sheet:{key}", lambda: self._resolve_chord_sheet(key))

    async def _resolve_chord_sheet(self, key: str) -> ChordSheetRecord | None:
        record = await self._read_local(key)
        if record is not None:
            log.info("cache_hit", tier="local", path=key)
            return record

        log.info("cache_miss", tier="local", path=key)
        sheet = await self._scraper.get_chord_sheet(self._scraper.song_url(key))
        if sheet is None:
            log.info("chord_sheet_not_found", path=key)
            return None

        return await self._record_store.store(key, sheet, saved=False)

    async def _read_local(self, key: str) -> ChordSheetRecord | None:
        try:
            return await self._record_store.get(key)
        except Exception:
            log.warning("local_read_failed", path=key, exc_info=True)
            return None

    async def save_chord_sheet(self, path: str) -> bool:
        """Mark an existing record as saved so it never expires."""
        return await self._record_store.set_saved_status(normalize_path(path), True)

    async def unsave_chord_sheet(self, path: str) -> bool:
        """Un-save a record; it stays readable for the grace period."""
        return await self._record_store.set_saved_status(normalize_path(path), False)

    async def upload_chord_sheet(
        self, sheet: ChordSheet, *, path: str | None = None
    ) -> ChordSheetRecord:
        """Store a user-provided sheet as saved. Derives the path if absent."""
        key = normalize_path(path) or song_path_for(sheet.artist, sheet.title)
        if split_song_path(key) is None:
            raise invalid_input(
                "Invalid song path format",
                details="Provide an artist/song path or a title and artist to derive one.",
            )
        record = await self._record_store.store(
            key, sheet, saved=True, data_source=DataSource.UPLOAD
        )
        log.info("chord_sheet_uploaded", path=key)
        await self._add_to_remote(record)
        return record

    async def saved_chord_sheets(self) -> list[ChordSheetRecord]:
        return await self._record_store.get_all_saved()

    async def find_saved(self, query: str) -> list[ChordSheetRecord]:
        return await self._record_store.find_saved(query)

    async def edit_chord_sheet(self, path: str, content: str) -> ChordSheetRecord | None:
        """Replace the content of a stored sheet. None if there is no live record."""
        key = self._song_key(path)
        record = await self._record_store.update_content(key, content)
        if record is not None:
            log.info("chord_sheet_edited", path=key, version=record.version)
        return record

    async def delete_chord_sheet(self, path: str) -> bool:
        """Hard-delete a stored sheet. An uploaded sheet also leaves the shared artist list."""
        key = self._song_key(path)
        record = await self._read_local(key)
        if not await self._record_store.delete(key):
            return False
        log.info("chord_sheet_deleted", path=key)
        if record is not None and record.data_source is DataSource.UPLOAD:
            await self._remove_from_remote(key)
        return True

    async def import_chord_sheets(self, items: Iterable[Mapping[str, Any]]) -> int:
        """Import sheets exported from an older client store."""
        return await self._record_store.import_legacy(items)

    def _song_key(self, path: str) -> str:
        key = normalize_path(path)
        if split_song_path(key) is None:
            raise invalid_input(
                "Invalid song path format",
                details=f"Expected path format: artist/song. Received: {path}",
            )
        return key

    # ------------------------------------------------------------------
    # Artist songs
    # ------------------------------------------------------------------

    async def get_artist_songs(self, artist_path: str) -> list[CanonicalSong]:
        """Resolve an artist's song list: remote tier first, scraper on miss."""
        try:
            key = normalize_artist_path(artist_path)
        except ValueError as exc:
            raise invalid_input("Missing artist path") from exc
        return await self._dedupe(f"artist-songs:{key}", lambda: self._resolve_artist_songs(key))

    async def _resolve_artist_songs(self, key: str) -> list[CanonicalSong]:
        cached = await self._read_remote(key)
        if cached:
            log.info("cache_hit", tier="remote", artist_path=key, song_count=len(cached))
            return cached

        log.info("cache_miss", tier="remote", artist_path=key)
        songs = await self._scraper.get_artist_songs(self._scraper.artist_url(key))
        if songs:
            await self._write_back_remote(key, songs)
        return songs

    async def _read_remote(self, key: str) -> list[CanonicalSong] | None:
        try:
            return await self._remote.get_artist_songs(key)
        except Exception:
            log.warning("remote_read_failed", artist_path=key, exc_info=True)
            return None

    async def _write_back_remote(self, key: str, songs: list[CanonicalSong]) -> None:
        try:
            stored = await self._remote.store_artist_songs(key, songs)
        except Exception:
            log.warning("remote_write_back_failed", artist_path=key, exc_info=True)
            return
        if not stored:
            log.warning("remote_write_back_failed", artist_path=key)

    async def _add_to_remote(self, record: ChordSheetRecord) -> None:
        artist_path = record.path.split("/", 1)[0]
        try:
            song = CanonicalSong(
                title=record.title,
                artist=record.artist,
                path=record.path,
                display_name=record.title,
            )
            await self._remote.add_song_to_artist(artist_path, song)
        except Exception:
            log.warning("remote_add_song_failed", path=record.path, exc_info=True)

    async def _remove_from_remote(self, key: str) -> None:
        try:
            await self._remote.remove_song_from_artist(key.split("/", 1)[0], key)
        except Exception:
            log.warning("remote_remove_song_failed", path=key, exc_info=True)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_artists(self, artist: str) -> list[CanonicalArtist]:
        """Artist search: query cache → directory → live search fallback."""
        query = (artist or "").strip()
        if not query:
            raise invalid_input("Missing artist query parameter")
        return await self._dedupe(f"artists:{query.lower()}", lambda: self._resolve_artists(query))

    async def _resolve_artists(self, query: str) -> list[CanonicalArtist]:
        cached = await self._read_search_cache(query, "")
        if cached is not None:
            return cached

        artists = await self._search_directory(query)
        if not artists:
            log.info("artist_directory_fallback", query=query)
            artists = await self._scraper.search(query, "artist")
            await self._remember_artists(artists)

        await self._write_search_cache(query, "", artists, "artist")
        return artists

    async def _remember_artists(self, artists: list[CanonicalArtist]) -> None:
        if self._directory is None or not artists:
            return
        try:
            await self._directory.upsert(artists)
        except Exception:
            log.warning("artist_directory_write_failed", count=len(artists), exc_info=True)

    async def _search_directory(self, query: str) -> list[CanonicalArtist]:
        if self._directory is None:
            return []
        try:
            return await self._directory.search(query)
        except Exception:
            log.warning("artist_directory_failed", query=query, exc_info=True)
            return []

    async def search(
        self, artist: str | None, song: str | None
    ) -> list[CanonicalArtist] | list[CanonicalSong]:
        """Combined search. Artist-only queries resolve like ``search_artists``."""
        artist_part = (artist or "").strip()
        song_part = (song or "").strip()
        if not artist_part and not song_part:
            raise invalid_input("Missing or invalid search query")
        if not song_part:
            return await self.search_artists(artist_part)

        key = f"search:{artist_part.lower()}|{song_part.lower()}"
        return await self._dedupe(key, lambda: self._resolve_songs(artist_part, song_part))

    async def _resolve_songs(self, artist: str, song: str) -> list[CanonicalSong]:
        cached = await self._read_search_cache(artist, song)
        if cached is not None:
            return cached

        query = f"{song} {artist}".strip()
        songs = await self._scraper.search(query, "song")
        await self._write_search_cache(artist, song, songs, "song")
        return songs

    async def _read_search_cache(self, artist: str, song: str) -> Any:
        try:
            results = await self._search_cache.get_results(artist, song)
        except Exception:
            log.warning("search_cache_read_failed", artist=artist, song=song, exc_info=True)
            return None
        if results is not None:
            log.info("cache_hit", tier="search", artist=artist, song=song)
        return results

    async def _write_search_cache(
        self, artist: str, song: str, results: list[Any], kind: ResultKind
    ) -> None:
        try:
            await self._search_cache.cache_results(artist, song, results, kind=kind)
        except Exception:
            log.warning("search_cache_write_failed", artist=artist, song=song, exc_info=True)
