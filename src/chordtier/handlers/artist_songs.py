"""Handler for GET /artist-songs.

Receives AppState, validates the artist path, delegates to the
orchestrator and returns JSON-ready data. No Starlette imports;
server.py handles the HTTP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from chordtier.errors import invalid_input
from chordtier.models.handlers import ArtistSongsInput

if TYPE_CHECKING:
    from chordtier.state import AppState


async def handle(artist_path: str | None, state: AppState) -> list[dict]:
    """Handle an artist-songs request."""
    log = structlog.get_logger().bind(route="artist_songs", artist_path=artist_path)
    log.info("handler_called")

    try:
        validated = ArtistSongsInput(artist_path=artist_path or "")
    except ValueError as exc:
        raise invalid_input("Missing artist path") from exc

    songs = await state.orchestrator.get_artist_songs(validated.artist_path)
    log.info("artist_songs_complete", song_count=len(songs))
    return [song.model_dump(mode="json", by_alias=True) for song in songs]
