"""Normalization layer: heterogeneous source rows → canonical Artist/Song.

Pure business logic, no I/O. Each source kind (relational row, scraped
title/url pair) has exactly one extractor; malformed entries are dropped,
never raised.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from typing import Any, NamedTuple

from pydantic import ValidationError

from chordtier.models.search import CanonicalArtist, CanonicalSong, RecordSource, SourceRecord
from chordtier.paths import path_from_url

DEFAULT_SITE_NAME = "Cifra Club"
TITLE_SEPARATOR = " - "


class TitleAndArtist(NamedTuple):
    title: str
    artist: str


def _suffix_pattern(site_name: str) -> re.Pattern[str]:
    return re.compile(rf"\s*-\s*{re.escape(site_name)}\s*$", re.IGNORECASE)


def strip_site_suffix(raw: str | None, site_name: str = DEFAULT_SITE_NAME) -> str:
    """Remove a trailing ``" - <SiteName>"`` and surrounding whitespace."""
    if not raw:
        return ""
    return _suffix_pattern(site_name).sub("", raw).strip()


def extract_title_and_artist(
    raw_title: str | None, site_name: str = DEFAULT_SITE_NAME
) -> TitleAndArtist:
    """Split a scraped page title into song title and artist.

    The last ``" - "`` segment is the artist; everything before it, rejoined,
    is the title, so titles containing the separator survive intact.
    """
    cleaned = strip_site_suffix(raw_title, site_name)
    if not cleaned:
        return TitleAndArtist("", "")

    segments = [segment.strip() for segment in cleaned.split(TITLE_SEPARATOR)]
    if len(segments) < 2:
        return TitleAndArtist(cleaned, "")

    return TitleAndArtist(TITLE_SEPARATOR.join(segments[:-1]), segments[-1])


def _text(payload: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _song_count(payload: Mapping[str, Any]) -> int | None:
    value = payload.get("songCount", payload.get("song_count"))
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


def _path(payload: Mapping[str, Any]) -> str:
    path = _text(payload, "path")
    if path:
        return path_from_url(path)
    return path_from_url(_text(payload, "url"))


# ---------------------------------------------------------------------------
# Artist extractors, one per source kind
# ---------------------------------------------------------------------------


def _artist_from_database(payload: Mapping[str, Any]) -> dict[str, Any]:
    # Relational rows already hold the stored key; only a url needs deriving.
    return {
        "display_name": _text(payload, "displayName", "display_name", "name"),
        "path": _text(payload, "path") or path_from_url(_text(payload, "url")),
        "song_count": _song_count(payload),
    }


def _artist_from_scrape(payload: Mapping[str, Any]) -> dict[str, Any]:
    display_name = _text(payload, "displayName", "display_name")
    if not display_name:
        display_name = strip_site_suffix(_text(payload, "title"))
    return {
        "display_name": display_name,
        "path": _path(payload),
        "song_count": _song_count(payload),
    }


_ARTIST_EXTRACTORS: dict[RecordSource, Callable[[Mapping[str, Any]], dict[str, Any]]] = {
    RecordSource.DATABASE: _artist_from_database,
    RecordSource.SCRAPE: _artist_from_scrape,
}


def _tag(item: Any, source: RecordSource | None) -> SourceRecord | None:
    """Wrap an untagged mapping in a SourceRecord, or None if unusable."""
    if isinstance(item, SourceRecord):
        return item
    if isinstance(item, CanonicalArtist | CanonicalSong):
        return SourceRecord(RecordSource.DATABASE, item.model_dump())
    if not isinstance(item, Mapping):
        return None
    if source is None:
        # Untagged input: rows that already carry a display name came from
        # the relational store, anything else is a scraped pair.
        has_name = bool(_text(item, "displayName", "display_name"))
        source = RecordSource.DATABASE if has_name else RecordSource.SCRAPE
    return SourceRecord(source, dict(item))


def normalize_artist_results(
    items: Iterable[Any] | None, source: RecordSource | str | None = None
) -> list[CanonicalArtist]:
    """Map raw artist rows to CanonicalArtist, dropping invalid entries.

    Source-internal fields (ids, timestamps, urls) never survive: only the
    canonical fields are copied across.
    """
    if items is None or isinstance(items, str | bytes | Mapping):
        return []
    try:
        iterator = iter(items)
    except TypeError:
        return []

    tag = RecordSource(source) if source is not None else None
    artists: list[CanonicalArtist] = []
    for item in iterator:
        record = _tag(item, tag)
        if record is None:
            continue
        fields = _ARTIST_EXTRACTORS[record.source](record.payload)
        if not fields["display_name"] or not fields["path"]:
            continue
        try:
            artists.append(CanonicalArtist(**fields))
        except ValidationError:
            continue
    return artists


def normalize_song_results(items: Iterable[Any] | None) -> list[CanonicalSong]:
    """Map raw song rows to CanonicalSong, dropping invalid entries."""
    if items is None or isinstance(items, str | bytes | Mapping):
        return []

    songs: list[CanonicalSong] = []
    for item in items:
        if isinstance(item, CanonicalSong):
            songs.append(item)
            continue
        payload = item.payload if isinstance(item, SourceRecord) else item
        if not isinstance(payload, Mapping):
            continue

        title = _text(payload, "title")
        artist = _text(payload, "artist")
        path = _path(payload)
        if not title or not artist or not path:
            continue

        display_name = _text(payload, "displayName", "display_name") or title
        try:
            songs.append(
                CanonicalSong(title=title, artist=artist, path=path, display_name=display_name)
            )
        except ValidationError:
            continue
    return songs
