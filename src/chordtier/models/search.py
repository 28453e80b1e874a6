from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ResultKind = Literal["artist", "song"]


class _WireModel(BaseModel):
    """Base for models that travel over HTTP as camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class CanonicalArtist(_WireModel):
    """Single artist as returned to clients, whatever the source."""

    display_name: str = Field(min_length=1)
    path: str = Field(min_length=1)
    song_count: int | None = None


class CanonicalSong(_WireModel):
    """Single song as returned to clients, whatever the source."""

    title: str = Field(min_length=1)
    artist: str = Field(min_length=1)
    path: str = Field(min_length=1)
    display_name: str = Field(min_length=1)


class RawResult(BaseModel):
    """A ``{title, url}`` pair as yielded by the page-automation collaborator."""

    title: str = ""
    url: str = ""


class RecordSource(StrEnum):
    DATABASE = "database"
    SCRAPE = "scrape"


@dataclass(frozen=True)
class SourceRecord:
    """Tagged source row handed to the normalization layer."""

    source: RecordSource
    payload: dict[str, Any] = field(default_factory=dict)


class SearchCacheEntry(BaseModel):
    """One cached query result set. All results share a single kind."""

    key: str
    result_kind: ResultKind
    results: list[CanonicalArtist] | list[CanonicalSong]
    timestamp: datetime
    access_count: int = 1
    query_artist: str | None = None
    query_song: str | None = None


class ArtistPage(BaseModel):
    """An artist page as seen by the page-automation collaborator."""

    title: str = ""  # Page title, usually "<Artist> - <SiteName>"
    songs: list[RawResult] = Field(default_factory=list)
