"""Unit tests for chordtier.search_cache."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import aiosqlite
import pytest

from chordtier.models.search import CanonicalArtist, CanonicalSong
from chordtier.search_cache import SearchCache, build_key, eviction_score

if TYPE_CHECKING:
    from tests.conftest import FakeClock


def _artists(*names: str) -> list[CanonicalArtist]:
    return [CanonicalArtist(display_name=name, path=name.lower()) for name in names]


# ---------------------------------------------------------------------------
# Keys and scoring
# ---------------------------------------------------------------------------


class TestBuildKey:
    def test_normalises_case_and_whitespace(self) -> None:
        assert build_key("  Oasis ", " Wonderwall") == "oasis|wonderwall"

    def test_one_empty_part_allowed(self) -> None:
        assert build_key("Oasis", "") == "oasis|"
        assert build_key(None, "Creep") == "|creep"

    @pytest.mark.parametrize(("artist", "song"), [("", ""), (None, None), ("  ", " ")])
    def test_both_empty(self, artist: str | None, song: str | None) -> None:
        assert build_key(artist, song) is None


class TestEvictionScore:
    def test_popularity_outweighs_recency(self) -> None:
        now = 1_000_000.0
        popular_but_old = eviction_score(5, now / 2, now)
        fresh_but_unpopular = eviction_score(1, now, now)
        assert popular_but_old > fresh_but_unpopular

    def test_recency_breaks_ties(self) -> None:
        now = 1_000_000.0
        assert eviction_score(1, now, now) > eviction_score(1, now - 1000, now)


# ---------------------------------------------------------------------------
# Read / write
# ---------------------------------------------------------------------------


class TestCacheResults:
    async def test_round_trip_artists(self, search_cache: SearchCache) -> None:
        await search_cache.cache_results("oasis", "", _artists("Oasis"))
        results = await search_cache.get_results("Oasis", "")
        assert results == _artists("Oasis")

    async def test_round_trip_songs(self, search_cache: SearchCache) -> None:
        songs = [
            CanonicalSong(
                title="Creep", artist="Radiohead", path="radiohead/creep", display_name="Creep"
            )
        ]
        await search_cache.cache_results("radiohead", "creep", songs)
        entry = await search_cache.peek("radiohead", "creep")
        assert entry is not None
        assert entry.result_kind == "song"
        assert entry.results == songs

    async def test_empty_results_keep_explicit_kind(self, search_cache: SearchCache) -> None:
        await search_cache.cache_results("nobody", "", [], kind="artist")
        assert await search_cache.get_results("nobody", "") == []

    async def test_empty_query_is_ignored(self, search_cache: SearchCache) -> None:
        await search_cache.cache_results("", "", _artists("Oasis"))
        assert await search_cache.count() == 0

    async def test_upsert_carries_access_count(self, search_cache: SearchCache) -> None:
        await search_cache.cache_results("oasis", "", _artists("Oasis"))
        await search_cache.cache_results("oasis", "", _artists("Oasis", "Oasis Tribute"))

        entry = await search_cache.peek("oasis", "")
        assert entry is not None
        assert entry.access_count == 2
        assert len(entry.results) == 2
        assert await search_cache.count() == 1

    async def test_hit_refreshes_entry(
        self, search_cache: SearchCache, clock: FakeClock
    ) -> None:
        await search_cache.cache_results("oasis", "", _artists("Oasis"))
        clock.advance(hours=1)
        await search_cache.get_results("oasis", "")

        entry = await search_cache.peek("oasis", "")
        assert entry is not None
        assert entry.access_count == 2
        assert entry.timestamp == clock.now

    async def test_miss(self, search_cache: SearchCache) -> None:
        assert await search_cache.get_results("queen", "") is None


class TestExpiry:
    async def test_expired_entry_is_a_miss(
        self, search_cache: SearchCache, clock: FakeClock
    ) -> None:
        await search_cache.cache_results("oasis", "", _artists("Oasis"))
        clock.advance(hours=25)
        assert await search_cache.get_results("oasis", "") is None
        assert await search_cache.count() == 0

    async def test_purge_expired(self, search_cache: SearchCache, clock: FakeClock) -> None:
        await search_cache.cache_results("oasis", "", _artists("Oasis"))
        clock.advance(hours=20)
        await search_cache.cache_results("queen", "", _artists("Queen"))
        clock.advance(hours=5)

        assert await search_cache.purge_expired() == 1
        assert await search_cache.peek("queen", "") is not None


class TestEviction:
    async def test_size_never_exceeds_max_items(
        self, db: aiosqlite.Connection, clock: FakeClock
    ) -> None:
        cache = SearchCache(db, max_items=5, ttl=timedelta(hours=24), clock=clock)
        await cache.init_db()

        for i in range(12):
            clock.advance(seconds=1)
            await cache.cache_results(f"artist-{i}", "", _artists(f"Artist{i}"))
            assert await cache.count() <= 5

    async def test_popular_entry_survives(
        self, db: aiosqlite.Connection, clock: FakeClock
    ) -> None:
        cache = SearchCache(db, max_items=3, ttl=timedelta(hours=24), clock=clock)
        await cache.init_db()

        await cache.cache_results("popular", "", _artists("Popular"))
        for _ in range(3):
            await cache.get_results("popular", "")

        for i in range(5):
            clock.advance(minutes=1)
            await cache.cache_results(f"one-off-{i}", "", _artists(f"OneOff{i}"))

        assert await cache.peek("popular", "") is not None
        assert await cache.peek("one-off-0", "") is None
        assert await cache.count() == 3

    async def test_clear(self, search_cache: SearchCache) -> None:
        await search_cache.cache_results("oasis", "", _artists("Oasis"))
        await search_cache.clear()
        assert await search_cache.count() == 0


class TestFailures:
    async def test_read_failure_returns_none(self, search_cache: SearchCache) -> None:
        await search_cache.cache_results("oasis", "", _artists("Oasis"))
        original_execute = search_cache._db.execute

        async def failing_execute(*args, **kwargs):
            raise aiosqlite.OperationalError("disk I/O error")

        search_cache._db.execute = failing_execute  # type: ignore[assignment]
        assert await search_cache.get_results("oasis", "") is None
        search_cache._db.execute = original_execute  # type: ignore[assignment]

    async def test_write_failure_does_not_raise(self, search_cache: SearchCache) -> None:
        original_execute = search_cache._db.execute

        async def failing_execute(*args, **kwargs):
            raise aiosqlite.OperationalError("disk I/O error")

        search_cache._db.execute = failing_execute  # type: ignore[assignment]
        await search_cache.cache_results("oasis", "", _artists("Oasis"))
        search_cache._db.execute = original_execute  # type: ignore[assignment]
        assert await search_cache.count() == 0
