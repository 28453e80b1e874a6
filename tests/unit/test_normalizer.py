"""Unit tests for chordtier.normalizer."""

from __future__ import annotations

import pytest

from chordtier.models.search import CanonicalArtist, CanonicalSong, RecordSource, SourceRecord
from chordtier.normalizer import (
    extract_title_and_artist,
    normalize_artist_results,
    normalize_song_results,
    strip_site_suffix,
)

# ---------------------------------------------------------------------------
# Title / artist extraction
# ---------------------------------------------------------------------------


class TestExtractTitleAndArtist:
    def test_simple_title(self) -> None:
        result = extract_title_and_artist("Wonderwall - Oasis - Cifra Club")
        assert result.title == "Wonderwall"
        assert result.artist == "Oasis"

    def test_title_with_hyphens(self) -> None:
        result = extract_title_and_artist(
            "Song - With - Multiple - Hyphens - Artist Name - Cifra Club"
        )
        assert result == ("Song - With - Multiple - Hyphens", "Artist Name")

    def test_no_artist(self) -> None:
        assert extract_title_and_artist("Instrumental Track - Cifra Club") == (
            "Instrumental Track",
            "",
        )

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_input(self, raw: str | None) -> None:
        assert extract_title_and_artist(raw) == ("", "")

    def test_unicode_preserved(self) -> None:
        result = extract_title_and_artist("Garota de Ipanema - Tom Jobim - Cifra Club")
        assert result == ("Garota de Ipanema", "Tom Jobim")

    def test_parts_trimmed(self) -> None:
        result = extract_title_and_artist("  Creep  -   Radiohead  - Cifra Club ")
        assert result == ("Creep", "Radiohead")

    def test_custom_site_name(self) -> None:
        result = extract_title_and_artist("Creep - Radiohead - Chord Site", site_name="Chord Site")
        assert result == ("Creep", "Radiohead")


class TestStripSiteSuffix:
    def test_case_insensitive(self) -> None:
        assert strip_site_suffix("Oasis - CIFRA CLUB") == "Oasis"

    def test_no_suffix(self) -> None:
        assert strip_site_suffix("Oasis") == "Oasis"


# ---------------------------------------------------------------------------
# Artist normalisation
# ---------------------------------------------------------------------------


class TestNormalizeArtistResults:
    def test_drops_empty_display_name(self) -> None:
        results = normalize_artist_results(
            [
                {"displayName": "", "path": "x"},
                {"displayName": "Valid", "path": "y", "songCount": 5},
            ]
        )
        assert results == [CanonicalArtist(display_name="Valid", path="y", song_count=5)]

    def test_relational_path_kept_as_stored(self) -> None:
        record = SourceRecord(
            RecordSource.DATABASE, {"displayName": "AC/DC", "path": "AC-DC", "songCount": 3}
        )
        assert normalize_artist_results([record]) == [
            CanonicalArtist(display_name="AC/DC", path="AC-DC", song_count=3)
        ]

    def test_strips_source_internal_fields(self) -> None:
        results = normalize_artist_results(
            [{"id": 42, "displayName": "Oasis", "path": "oasis", "created_at": "2024-01-01"}]
        )
        dumped = results[0].model_dump(by_alias=True)
        assert dumped == {"displayName": "Oasis", "path": "oasis", "songCount": None}

    def test_scraped_pair(self) -> None:
        record = SourceRecord(
            RecordSource.SCRAPE,
            {"title": "Oasis - Cifra Club", "url": "https://www.cifraclub.com.br/oasis/"},
        )
        assert normalize_artist_results([record]) == [
            CanonicalArtist(display_name="Oasis", path="oasis")
        ]

    def test_untagged_pair_treated_as_scrape(self) -> None:
        results = normalize_artist_results(
            [{"title": "Queen - Cifra Club", "url": "https://www.cifraclub.com.br/queen/"}]
        )
        assert [artist.path for artist in results] == ["queen"]

    def test_song_count_coercion(self) -> None:
        results = normalize_artist_results(
            [
                {"displayName": "A", "path": "a", "songCount": "12"},
                {"displayName": "B", "path": "b", "songCount": "many"},
                {"displayName": "C", "path": "c", "songCount": True},
            ]
        )
        assert [artist.song_count for artist in results] == [12, None, None]

    @pytest.mark.parametrize("items", [None, "oasis", {"displayName": "Oasis"}, 42])
    def test_non_list_input(self, items: object) -> None:
        assert normalize_artist_results(items) == []  # type: ignore[arg-type]

    def test_skips_non_mapping_items(self) -> None:
        items = ["oasis", None, {"displayName": "Oasis", "path": "oasis"}]
        results = normalize_artist_results(items)  # type: ignore[arg-type]
        assert len(results) == 1


# ---------------------------------------------------------------------------
# Song normalisation
# ---------------------------------------------------------------------------


class TestNormalizeSongResults:
    def test_display_name_defaults_to_title(self) -> None:
        results = normalize_song_results(
            [{"title": "Perfect", "path": "ed-sheeran/perfect", "artist": "Ed Sheeran"}]
        )
        assert results == [
            CanonicalSong(
                title="Perfect",
                artist="Ed Sheeran",
                path="ed-sheeran/perfect",
                display_name="Perfect",
            )
        ]

    def test_drops_invalid_entries(self) -> None:
        results = normalize_song_results(
            [
                {"title": "", "path": "a/b", "artist": "A"},
                {"title": "T", "path": "", "artist": "A"},
                {"title": "T", "path": "a/b"},
                {"title": "T", "path": "a/b", "artist": "A"},
            ]
        )
        assert len(results) == 1

    def test_url_used_when_path_missing(self) -> None:
        results = normalize_song_results(
            [{"title": "Creep", "url": "https://x.com/radiohead/creep/", "artist": "Radiohead"}]
        )
        assert results[0].path == "radiohead/creep"

    def test_non_list_input(self) -> None:
        assert normalize_song_results(None) == []
        assert normalize_song_results({"title": "x"}) == []  # type: ignore[arg-type]
