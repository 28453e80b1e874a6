"""Shared remote tier: artist → song-list blobs in an HTTP object store.

One JSON object per artist lives at ``<base_url>/<prefix><artist>.json``.
Any S3-compatible bucket exposed over HTTP (or a plain blob server) works;
the client only issues GET/PUT/HEAD.

Every method swallows transport and decoding errors: reads return ``None``
(the orchestrator treats that exactly like a miss) and writes return
``False``. A write-back failure must never fail the caller's request.
There is no TTL at this tier; concurrent writers are last-write-wins.
"""

from __future__ import annotations

from datetime import UTC, datetime
from urllib.parse import quote

import httpx
import structlog

from chordtier.errors import ErrorCode
from chordtier.models.search import CanonicalSong
from chordtier.normalizer import normalize_song_results
from chordtier.paths import normalize_path

log = structlog.get_logger()

_TRANSPORT_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


class RemoteTier:
    """Read-through / write-back client for the shared artist cache."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str | None,
        prefix: str = "artist-songs/",
        timeout_seconds: float = 5.0,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/") if base_url else None
        self._prefix = prefix
        self._timeout = httpx.Timeout(timeout_seconds)

    @property
    def enabled(self) -> bool:
        return self._base_url is not None

    def _object_url(self, artist_path: str) -> str:
        return f"{self._base_url}/{self._prefix}{artist_path}.json"

    def _key(self, artist_path: str) -> str | None:
        if not self.enabled:
            log.debug("remote_tier_disabled")
            return None
        key = normalize_path(artist_path)
        return key or None

    async def get_artist_songs(self, artist_path: str) -> list[CanonicalSong] | None:
        """Return the cached song list, or ``None`` on miss or any failure."""
        key = self._key(artist_path)
        if key is None:
            return None

        try:
            response = await self._client.get(self._object_url(key), timeout=self._timeout)
        except _TRANSPORT_ERRORS:
            log.warning("remote_read_error", artist_path=key, exc_info=True)
            return None

        if response.status_code == 404:
            log.info("remote_miss", artist_path=key)
            return None
        if not response.is_success:
            log.warning("remote_read_error", artist_path=key, status_code=response.status_code)
            return None

        try:
            payload = response.json()
        except ValueError:
            log.warning("remote_corrupt_object", artist_path=key, exc_info=True)
            return None

        songs = normalize_song_results(payload if isinstance(payload, list) else None)
        log.info("remote_hit", artist_path=key, song_count=len(songs))
        return songs

    async def store_artist_songs(self, artist_path: str, songs: list[CanonicalSong]) -> bool:
        """Write an artist's song list. Returns False on any failure, never raises.

        Only ``title``/``path``/``artist`` are stored; ``displayName``
        defaults back to the title on read.
        """
        key = self._key(artist_path)
        if key is None:
            return False

        body = [{"title": song.title, "path": song.path, "artist": song.artist} for song in songs]
        headers = {
            # Header values must be ASCII; object metadata carries the key percent-encoded.
            "x-amz-meta-artist": quote(key, safe=""),
            "x-amz-meta-song-count": str(len(songs)),
            "x-amz-meta-last-updated": datetime.now(UTC).isoformat(),
        }
        try:
            response = await self._client.put(
                self._object_url(key),
                json=body,
                headers=headers,
                timeout=self._timeout,
            )
        except _TRANSPORT_ERRORS:
            log.warning(
                "remote_write_error",
                artist_path=key,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                exc_info=True,
            )
            return False

        if not response.is_success:
            log.warning(
                "remote_write_error",
                artist_path=key,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                status_code=response.status_code,
            )
            return False

        log.info("remote_write_complete", artist_path=key, song_count=len(songs))
        return True

    async def add_song_to_artist(self, artist_path: str, song: CanonicalSong) -> bool:
        """Append one song to an already cached artist list.

        False if the song is present, the list is not cached, or on failure.
        A missing list is never created; a remote object always holds an
        artist's full song list.
        """
        existing = await self.get_artist_songs(artist_path)
        if not existing:
            log.info("remote_song_list_missing", artist_path=artist_path)
            return False
        if any(item.path == song.path for item in existing):
            log.info("remote_song_exists", artist_path=artist_path, song_path=song.path)
            return False
        return await self.store_artist_songs(artist_path, [*existing, song])

    async def remove_song_from_artist(self, artist_path: str, song_path: str) -> bool:
        """Drop one song from an artist's list. False if absent or on failure."""
        existing = await self.get_artist_songs(artist_path)
        if not existing:
            return False

        target = normalize_path(song_path)
        remaining = [item for item in existing if item.path != target]
        if len(remaining) == len(existing):
            log.info("remote_song_absent", artist_path=artist_path, song_path=target)
            return False
        return await self.store_artist_songs(artist_path, remaining)

    async def check_connection(self) -> bool:
        """HEAD the store's base URL. True only for a 2xx answer."""
        if not self.enabled:
            return False
        try:
            response = await self._client.head(f"{self._base_url}/", timeout=self._timeout)
        except _TRANSPORT_ERRORS:
            log.warning("remote_connection_failed", base_url=self._base_url, exc_info=True)
            return False
        return response.is_success
