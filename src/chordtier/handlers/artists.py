"""Handler for GET /artists."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from chordtier.errors import invalid_input
from chordtier.models.handlers import ArtistSearchInput

if TYPE_CHECKING:
    from chordtier.state import AppState


async def handle(artist: str | None, state: AppState) -> list[dict]:
    """Handle an artist search request."""
    log = structlog.get_logger().bind(route="artists", artist=artist)
    log.info("handler_called")

    try:
        validated = ArtistSearchInput(artist=(artist or "").strip())
    except ValueError as exc:
        raise invalid_input("Missing artist query parameter") from exc

    artists = await state.orchestrator.search_artists(validated.artist)
    log.info("artists_complete", match_count=len(artists))
    return [item.model_dump(mode="json", by_alias=True) for item in artists]
