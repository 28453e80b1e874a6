"""Protocol interfaces for the tiers the orchestrator walks.

The orchestrator and AppState reference these protocols, not the concrete
classes, so tests can substitute ``AsyncMock`` doubles and a different
backend can be swapped in without touching the resolution logic.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from chordtier.models.records import ChordSheet, ChordSheetRecord, DataSource
    from chordtier.models.search import CanonicalArtist, CanonicalSong, ResultKind


class RecordStoreProtocol(Protocol):
    """Local tier for chord-sheet records."""

    async def get(self, path: str) -> ChordSheetRecord | None: ...

    async def store(
        self,
        path: str,
        sheet: ChordSheet,
        *,
        saved: bool = False,
        data_source: DataSource = ...,
    ) -> ChordSheetRecord: ...

    async def set_saved_status(self, path: str, saved: bool) -> bool: ...

    async def update_content(self, path: str, content: str) -> ChordSheetRecord | None: ...

    async def delete(self, path: str) -> bool: ...

    async def import_legacy(self, items: Iterable[Mapping[str, Any]]) -> int: ...

    async def get_all_saved(self) -> list[ChordSheetRecord]: ...

    async def find_saved(self, query: str) -> list[ChordSheetRecord]: ...

    async def remove_expired(self) -> int: ...

    async def cleanup_if_due(self, interval_hours: int) -> int: ...


class SearchCacheProtocol(Protocol):
    """Bounded cache of query results."""

    async def get_results(
        self, artist: str | None, song: str | None
    ) -> list[CanonicalArtist] | list[CanonicalSong] | None: ...

    async def cache_results(
        self,
        artist: str | None,
        song: str | None,
        results: Sequence[CanonicalArtist] | Sequence[CanonicalSong],
        *,
        kind: ResultKind | None = None,
    ) -> None: ...

    async def purge_expired(self) -> int: ...


class RemoteTierProtocol(Protocol):
    """Shared artist → songs cache. Never raises."""

    @property
    def enabled(self) -> bool: ...

    async def get_artist_songs(self, artist_path: str) -> list[CanonicalSong] | None: ...

    async def store_artist_songs(self, artist_path: str, songs: list[CanonicalSong]) -> bool: ...

    async def add_song_to_artist(self, artist_path: str, song: CanonicalSong) -> bool: ...

    async def remove_song_from_artist(self, artist_path: str, song_path: str) -> bool: ...

    async def check_connection(self) -> bool: ...


class ScraperProtocol(Protocol):
    """Terminal live tier. Raises ``UPSTREAM_UNAVAILABLE`` on failure."""

    def artist_url(self, artist_path: str) -> str: ...

    def song_url(self, path: str) -> str: ...

    async def search(
        self, query: str, kind: ResultKind
    ) -> list[CanonicalArtist] | list[CanonicalSong]: ...

    async def get_artist_songs(self, url: str) -> list[CanonicalSong]: ...

    async def get_chord_sheet(self, url: str) -> ChordSheet | None: ...


class ArtistDirectoryProtocol(Protocol):
    """Relational artist lookup. Raises on failure."""

    async def search(self, query: str) -> list[CanonicalArtist]: ...

    async def upsert(self, artists: Iterable[CanonicalArtist]) -> int: ...
