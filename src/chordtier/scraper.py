"""Scraping fallback client: the terminal tier of every resolution chain.

The actual page automation lives in a separate collaborator reached
through a ``PageSource``. This module only turns its raw ``{title, url}``
pairs into canonical results, filters out anything that is not a real
artist or song page, and bounds every call with a timeout.

This is the only tier allowed to raise: timeouts and collaborator errors
surface as ``UPSTREAM_UNAVAILABLE``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Mapping
from typing import Any, Protocol, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from chordtier import __version__
from chordtier.errors import ChordTierError, upstream_unavailable
from chordtier.models.records import ChordSheet
from chordtier.models.search import (
    ArtistPage,
    CanonicalArtist,
    CanonicalSong,
    RawResult,
    RecordSource,
    ResultKind,
    SourceRecord,
)
from chordtier.normalizer import (
    extract_title_and_artist,
    normalize_artist_results,
    strip_site_suffix,
)
from chordtier.paths import normalize_path, path_from_url

log = structlog.get_logger()

T = TypeVar("T")

# Lyric-only pages share the song URL shape but carry no chords.
_LYRICS_SEGMENT = "letra"


def build_http_client() -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        follow_redirects=False,
        timeout=httpx.Timeout(30.0),
        headers={"User-Agent": f"chordtier/{__version__}"},
        limits=httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        ),
    )


def is_valid_result(path: str, kind: ResultKind) -> bool:
    """Return True if ``path`` looks like a real artist or song page.

    Artists have exactly one path segment, songs exactly two. Paths ending
    in a file (``.html``, ``.php`` ...) and lyric-only pages are rejected.
    """
    segments = [segment for segment in normalize_path(path).split("/") if segment]
    if not segments:
        return False
    if "." in segments[-1]:
        return False
    if kind == "artist":
        return len(segments) == 1
    return len(segments) == 2 and segments[1] != _LYRICS_SEGMENT


def artist_name_from_slug(slug: str) -> str:
    """``"ed-sheeran"`` → ``"Ed Sheeran"``."""
    return " ".join(word.capitalize() for word in slug.split("-") if word)


class PageSource(Protocol):
    """Interface for the page-automation collaborator."""

    async def search(self, query: str, kind: ResultKind) -> list[RawResult]: ...

    async def artist_page(self, url: str) -> ArtistPage: ...

    async def chord_sheet_page(self, url: str) -> Mapping[str, Any] | None: ...


class HttpPageSource:
    """PageSource backed by a page-automation service spoken to over HTTP.

    Endpoints (all GET, JSON responses):
      - ``/search?q=&type=``  → ``[{title, url}]``
      - ``/artist?url=``      → ``{title, songs: [{title, url}]}``
      - ``/chord-sheet?url=`` → chord sheet mapping, 404 when absent
    """

    def __init__(self, client: httpx.AsyncClient, service_url: str) -> None:
        self._client = client
        self._service_url = service_url.rstrip("/")

    async def _get(self, endpoint: str, params: dict[str, str]) -> httpx.Response:
        response = await self._client.get(f"{self._service_url}/{endpoint}", params=params)
        if response.status_code != 404:
            response.raise_for_status()
        return response

    async def search(self, query: str, kind: ResultKind) -> list[RawResult]:
        response = await self._get("search", {"q": query, "type": kind})
        if response.status_code == 404:
            return []
        payload = response.json()
        if not isinstance(payload, list):
            return []
        return [RawResult.model_validate(item) for item in payload if isinstance(item, dict)]

    async def artist_page(self, url: str) -> ArtistPage:
        response = await self._get("artist", {"url": url})
        if response.status_code == 404:
            return ArtistPage()
        return ArtistPage.model_validate(response.json())

    async def chord_sheet_page(self, url: str) -> Mapping[str, Any] | None:
        response = await self._get("chord-sheet", {"url": url})
        if response.status_code == 404:
            return None
        payload = response.json()
        return payload if isinstance(payload, dict) else None


class ScraperClient:
    """Canonicalising, time-bounded wrapper around a PageSource."""

    def __init__(
        self,
        source: PageSource,
        *,
        site_url: str = "https://www.cifraclub.com.br",
        site_name: str = "Cifra Club",
        timeout_seconds: float = 60.0,
    ) -> None:
        self._source = source
        self._site_url = site_url.rstrip("/")
        self._site_name = site_name
        self._timeout = timeout_seconds

    def artist_url(self, artist_path: str) -> str:
        return f"{self._site_url}/{normalize_path(artist_path)}/"

    def song_url(self, path: str) -> str:
        return f"{self._site_url}/{normalize_path(path)}/"

    async def _call(self, operation: str, target: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except ChordTierError:
            raise
        except TimeoutError as exc:
            log.warning("scrape_timeout", operation=operation, target=target, timeout=self._timeout)
            raise upstream_unavailable(
                f"{operation} timed out after {self._timeout}s for {target}"
            ) from exc
        except Exception as exc:
            log.warning("scrape_failed", operation=operation, target=target, exc_info=True)
            raise upstream_unavailable(f"{operation} failed for {target}: {exc}") from exc

    async def search(
        self, query: str, kind: ResultKind
    ) -> list[CanonicalArtist] | list[CanonicalSong]:
        raw = await self._call("search", query, self._source.search(query, kind))
        valid = [item for item in raw if is_valid_result(path_from_url(item.url), kind)]
        log.info("scrape_search_complete", query=query, kind=kind, raw=len(raw), kept=len(valid))

        if kind == "artist":
            return normalize_artist_results(
                SourceRecord(RecordSource.SCRAPE, item.model_dump()) for item in valid
            )
        return [song for item in valid if (song := self._song_from_raw(item)) is not None]

    async def get_artist_songs(self, url: str) -> list[CanonicalSong]:
        page = await self._call("artist_page", url, self._source.artist_page(url))

        slug = path_from_url(url).split("/", 1)[0]
        artist = strip_site_suffix(page.title, self._site_name) or artist_name_from_slug(slug)

        songs: dict[str, CanonicalSong] = {}
        for item in page.songs:
            path = path_from_url(item.url)
            title = item.title.strip()
            if not title or path in songs or not is_valid_result(path, "song"):
                continue
            song = _song(title, artist, path)
            if song is not None:
                songs[path] = song

        log.info("scrape_artist_complete", url=url, song_count=len(songs))
        return list(songs.values())

    async def get_chord_sheet(self, url: str) -> ChordSheet | None:
        """Fetch one chord sheet. ``None`` when the page has no chords."""
        payload = await self._call("chord_sheet", url, self._source.chord_sheet_page(url))
        if not payload:
            return None
        if not isinstance(payload, Mapping):
            raise upstream_unavailable(f"chord_sheet returned a malformed page for {url}")

        try:
            return self._chord_sheet_from_payload(payload, url)
        except (ValueError, TypeError) as exc:
            log.warning(
                "scrape_malformed_payload", operation="chord_sheet", target=url, exc_info=True
            )
            raise upstream_unavailable(
                f"chord_sheet returned a malformed page for {url}: {exc}"
            ) from exc

    def _chord_sheet_from_payload(
        self, payload: Mapping[str, Any], url: str
    ) -> ChordSheet | None:
        content = payload.get("songChords") or payload.get("content") or ""
        if not content:
            log.info("scrape_chord_sheet_empty", url=url)
            return None

        title = str(payload.get("title") or "").strip()
        artist = str(payload.get("artist") or "").strip()
        if not artist:
            title, artist = extract_title_and_artist(title, self._site_name)
        if not artist:
            slug = path_from_url(url).split("/", 1)[0]
            artist = artist_name_from_slug(slug)

        return ChordSheet(
            title=title,
            artist=artist,
            content=content,
            song_key=str(payload.get("songKey") or ""),
            guitar_capo=int(payload.get("guitarCapo") or 0),
            guitar_tuning=[str(note) for note in payload.get("guitarTuning") or []],
        )

    def _song_from_raw(self, item: RawResult) -> CanonicalSong | None:
        path = path_from_url(item.url)
        title, artist = extract_title_and_artist(item.title, self._site_name)
        if not artist:
            artist = artist_name_from_slug(path.split("/", 1)[0])
        if not title:
            return None
        return _song(title, artist, path)


def _song(title: str, artist: str, path: str) -> CanonicalSong | None:
    try:
        return CanonicalSong(title=title, artist=artist, path=path, display_name=title)
    except ValidationError:
        log.debug("scrape_result_dropped", title=title, path=path)
        return None
