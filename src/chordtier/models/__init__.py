from __future__ import annotations

from chordtier.models.handlers import (
    ArtistSearchInput,
    ArtistSongsInput,
    ChordSheetInput,
    SearchInput,
)
from chordtier.models.records import ChordSheet, ChordSheetRecord, DataSource, SavedStatus
from chordtier.models.search import (
    ArtistPage,
    CanonicalArtist,
    CanonicalSong,
    RawResult,
    RecordSource,
    ResultKind,
    SearchCacheEntry,
    SourceRecord,
)

__all__ = [
    # records
    "ChordSheet",
    "ChordSheetRecord",
    "DataSource",
    "SavedStatus",
    # search
    "ArtistPage",
    "CanonicalArtist",
    "CanonicalSong",
    "RawResult",
    "RecordSource",
    "ResultKind",
    "SearchCacheEntry",
    "SourceRecord",
    # handler inputs
    "ArtistSongsInput",
    "ChordSheetInput",
    "ArtistSearchInput",
    "SearchInput",
]
