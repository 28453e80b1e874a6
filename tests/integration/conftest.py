"""Integration test fixtures.

Provides the Starlette app with a fully wired AppState: real record store,
query cache and artist directory on in-memory SQLite, and mocked remote and
scraping tiers. The lifespan is not run; state is attached directly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from chordtier.config import Settings
from chordtier.orchestrator import Orchestrator
from chordtier.server import create_app
from chordtier.state import AppState

if TYPE_CHECKING:
    from chordtier.artists import ArtistDirectory
    from chordtier.record_store import RecordStore
    from chordtier.search_cache import SearchCache

SITE = "https://www.cifraclub.com.br"


@pytest.fixture()
def remote() -> AsyncMock:
    mock = AsyncMock()
    mock.get_artist_songs.return_value = None
    mock.store_artist_songs.return_value = True
    mock.add_song_to_artist.return_value = True
    mock.remove_song_from_artist.return_value = True
    mock.check_connection.return_value = True
    mock.enabled = True
    return mock


@pytest.fixture()
def scraper() -> MagicMock:
    mock = MagicMock()
    mock.artist_url.side_effect = lambda path: f"{SITE}/{path}/"
    mock.song_url.side_effect = lambda path: f"{SITE}/{path}/"
    mock.search = AsyncMock(return_value=[])
    mock.get_artist_songs = AsyncMock(return_value=[])
    mock.get_chord_sheet = AsyncMock(return_value=None)
    return mock


@pytest.fixture()
def app_state(
    record_store: RecordStore,
    search_cache: SearchCache,
    directory: ArtistDirectory,
    remote: AsyncMock,
    scraper: MagicMock,
) -> AppState:
    orchestrator = Orchestrator(
        record_store=record_store,
        search_cache=search_cache,
        remote=remote,
        scraper=scraper,
        directory=directory,
    )
    return AppState(
        settings=Settings(),
        orchestrator=orchestrator,
        record_store=record_store,
        search_cache=search_cache,
        remote=remote,
        scraper=scraper,
        directory=directory,
    )


@pytest.fixture()
async def http(app_state: AppState):
    app = create_app(app_state.settings)
    app.state.chordtier = app_state
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
