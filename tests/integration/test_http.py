"""HTTP-level tests for the Starlette routes."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from chordtier import __version__
from chordtier.errors import upstream_unavailable
from chordtier.models.records import ChordSheet
from chordtier.models.search import CanonicalArtist, CanonicalSong

if TYPE_CHECKING:
    from chordtier.artists import ArtistDirectory
    from chordtier.record_store import RecordStore


# ---------------------------------------------------------------------------
# /health
# ---------------------------------------------------------------------------


class TestHealth:
    async def test_remote_reachable(self, http: httpx.AsyncClient) -> None:
        response = await http.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__, "remote": "ok"}

    async def test_remote_unreachable(self, http: httpx.AsyncClient, remote: AsyncMock) -> None:
        remote.check_connection.return_value = False
        response = await http.get("/health")
        assert response.status_code == 200
        assert response.json()["remote"] == "unreachable"

    async def test_remote_disabled(self, http: httpx.AsyncClient, remote: AsyncMock) -> None:
        remote.enabled = False
        response = await http.get("/health")
        assert response.json()["remote"] == "disabled"
        remote.check_connection.assert_not_awaited()


# ---------------------------------------------------------------------------
# /artist-songs
# ---------------------------------------------------------------------------


class TestArtistSongs:
    @pytest.mark.parametrize("query", ["", "?artistPath=", "?artistPath=%20%20"])
    async def test_missing_artist_path_is_400_without_tier_calls(
        self,
        http: httpx.AsyncClient,
        remote: AsyncMock,
        scraper: MagicMock,
        query: str,
    ) -> None:
        response = await http.get(f"/artist-songs{query}")

        assert response.status_code == 400
        assert response.json()["error"] == "Missing artist path"
        remote.get_artist_songs.assert_not_awaited()
        scraper.get_artist_songs.assert_not_awaited()

    async def test_remote_hit(
        self,
        http: httpx.AsyncClient,
        remote: AsyncMock,
        scraper: MagicMock,
        ed_sheeran_songs: list[CanonicalSong],
    ) -> None:
        remote.get_artist_songs.return_value = ed_sheeran_songs

        response = await http.get("/artist-songs", params={"artistPath": "ed-sheeran"})

        assert response.status_code == 200
        assert response.json()[0] == {
            "title": "Perfect",
            "artist": "Ed Sheeran",
            "path": "ed-sheeran/perfect",
            "displayName": "Perfect",
        }
        scraper.get_artist_songs.assert_not_awaited()

    async def test_scraper_failure_is_502(
        self, http: httpx.AsyncClient, scraper: MagicMock
    ) -> None:
        scraper.get_artist_songs.side_effect = upstream_unavailable("artist_page timed out")

        response = await http.get("/artist-songs", params={"artistPath": "ed-sheeran"})

        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "Bad Gateway"
        assert body["details"] == "artist_page timed out"


# ---------------------------------------------------------------------------
# /artists and /search
# ---------------------------------------------------------------------------


class TestArtists:
    async def test_missing_query_is_400(self, http: httpx.AsyncClient) -> None:
        response = await http.get("/artists")
        assert response.status_code == 400
        assert response.json()["error"] == "Missing artist query parameter"

    async def test_directory_results(
        self, http: httpx.AsyncClient, directory: ArtistDirectory
    ) -> None:
        await directory.upsert([CanonicalArtist(display_name="Oasis", path="oasis", song_count=3)])

        response = await http.get("/artists", params={"artist": "oasis"})

        assert response.status_code == 200
        assert response.json() == [{"displayName": "Oasis", "path": "oasis", "songCount": 3}]


class TestSearch:
    async def test_both_empty_is_400(self, http: httpx.AsyncClient, scraper: MagicMock) -> None:
        response = await http.get("/search", params={"artist": "", "song": ""})
        assert response.status_code == 400
        scraper.search.assert_not_awaited()

    async def test_song_search(self, http: httpx.AsyncClient, scraper: MagicMock) -> None:
        scraper.search.return_value = [
            CanonicalSong(
                title="Creep", artist="Radiohead", path="radiohead/creep", display_name="Creep"
            )
        ]
        response = await http.get("/search", params={"artist": "Radiohead", "song": "Creep"})
        assert response.status_code == 200
        assert response.json()[0]["path"] == "radiohead/creep"


# ---------------------------------------------------------------------------
# /chord-sheet and /saved
# ---------------------------------------------------------------------------


class TestChordSheet:
    async def test_malformed_path_is_400(self, http: httpx.AsyncClient) -> None:
        response = await http.get("/chord-sheet", params={"path": "radiohead"})
        assert response.status_code == 400

    async def test_not_found_is_404(self, http: httpx.AsyncClient) -> None:
        response = await http.get("/chord-sheet", params={"path": "radiohead/nothing"})
        assert response.status_code == 404
        assert response.json()["error"] == "Chord sheet not found"

    async def test_scraped_sheet(
        self, http: httpx.AsyncClient, scraper: MagicMock, wonderwall: ChordSheet
    ) -> None:
        scraper.get_chord_sheet.return_value = wonderwall

        response = await http.get("/chord-sheet", params={"path": "oasis/wonderwall"})

        assert response.status_code == 200
        body = response.json()
        assert body["path"] == "oasis/wonderwall"
        assert body["songKey"] == "F#m"
        assert body["saved"] is False
        assert body["dataSource"] == "scrape"

    async def test_upload_then_list_saved(self, http: httpx.AsyncClient) -> None:
        response = await http.post(
            "/chord-sheet",
            json={"title": "Creep", "artist": "Radiohead", "content": "G B C Cm"},
        )
        assert response.status_code == 200
        assert response.json()["path"] == "radiohead/creep"

        saved = await http.get("/saved")
        assert [item["path"] for item in saved.json()] == ["radiohead/creep"]

    async def test_upload_rejects_bad_body(self, http: httpx.AsyncClient) -> None:
        response = await http.post(
            "/chord-sheet", content=b"not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400

    async def test_save_and_unsave(
        self, http: httpx.AsyncClient, record_store: RecordStore, wonderwall: ChordSheet
    ) -> None:
        await record_store.store("oasis/wonderwall", wonderwall)

        saved = await http.put("/saved", params={"path": "oasis/wonderwall"})
        assert saved.json() == {"path": "oasis/wonderwall", "saved": True}

        unsaved = await http.delete("/saved", params={"path": "oasis/wonderwall"})
        assert unsaved.status_code == 200
        assert (await http.get("/saved")).json() == []

    async def test_save_unknown_path_is_404(self, http: httpx.AsyncClient) -> None:
        response = await http.put("/saved", params={"path": "no/such"})
        assert response.status_code == 404

    async def test_malformed_scraper_page_is_502(
        self, http: httpx.AsyncClient, scraper: MagicMock
    ) -> None:
        scraper.get_chord_sheet.side_effect = upstream_unavailable(
            "chord_sheet returned a malformed page for oasis/wonderwall"
        )

        response = await http.get("/chord-sheet", params={"path": "oasis/wonderwall"})

        assert response.status_code == 502
        assert "malformed" in response.json()["details"]


class TestChordSheetEdits:
    async def test_edit_content(
        self, http: httpx.AsyncClient, record_store: RecordStore, wonderwall: ChordSheet
    ) -> None:
        await record_store.store("oasis/wonderwall", wonderwall)

        response = await http.patch(
            "/chord-sheet", params={"path": "oasis/wonderwall"}, json={"content": "Em7 G D A"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["content"] == "Em7 G D A"
        assert body["version"] == 2

    @pytest.mark.parametrize("body", [{"content": ""}, {"content": 3}, ["Em7"]])
    async def test_edit_rejects_bad_body(
        self,
        http: httpx.AsyncClient,
        record_store: RecordStore,
        wonderwall: ChordSheet,
        body: object,
    ) -> None:
        await record_store.store("oasis/wonderwall", wonderwall)

        response = await http.patch("/chord-sheet", params={"path": "oasis/wonderwall"}, json=body)

        assert response.status_code == 400

    async def test_edit_unknown_path_is_404(self, http: httpx.AsyncClient) -> None:
        response = await http.patch(
            "/chord-sheet", params={"path": "no/such"}, json={"content": "Em"}
        )
        assert response.status_code == 404

    async def test_delete_upload(self, http: httpx.AsyncClient, remote: AsyncMock) -> None:
        await http.post(
            "/chord-sheet",
            json={"title": "Creep", "artist": "Radiohead", "content": "G B C Cm"},
        )

        response = await http.delete("/chord-sheet", params={"path": "radiohead/creep"})

        assert response.status_code == 200
        assert response.json() == {"path": "radiohead/creep", "deleted": True}
        assert (await http.get("/saved")).json() == []
        remote.remove_song_from_artist.assert_awaited_once_with("radiohead", "radiohead/creep")

    async def test_delete_unknown_path_is_404(self, http: httpx.AsyncClient) -> None:
        response = await http.delete("/chord-sheet", params={"path": "no/such"})
        assert response.status_code == 404

    async def test_import(self, http: httpx.AsyncClient) -> None:
        response = await http.post(
            "/saved/import",
            json=[
                {"title": "Creep", "artist": "Radiohead", "songChords": "G B C Cm", "saved": True},
                {"title": "Broken", "artist": "Nobody", "songChords": "Em", "guitarCapo": "2nd"},
                "not a sheet",
            ],
        )

        assert response.status_code == 200
        assert response.json() == {"received": 3, "imported": 1}
        saved = await http.get("/saved")
        assert [item["path"] for item in saved.json()] == ["radiohead/creep"]

    async def test_import_rejects_object(self, http: httpx.AsyncClient) -> None:
        response = await http.post("/saved/import", json={"title": "Creep"})
        assert response.status_code == 400
