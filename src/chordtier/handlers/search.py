"""Handler for GET /search.

Either query dimension may be empty, but not both. Artist-only queries
return artists; anything with a song part returns songs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from chordtier.errors import invalid_input
from chordtier.models.handlers import SearchInput

if TYPE_CHECKING:
    from chordtier.state import AppState


async def handle(artist: str | None, song: str | None, state: AppState) -> list[dict]:
    """Handle a combined search request."""
    log = structlog.get_logger().bind(route="search", artist=artist, song=song)
    log.info("handler_called")

    try:
        validated = SearchInput(artist=artist or "", song=song or "")
    except ValueError as exc:
        raise invalid_input("Missing or invalid search query") from exc

    results = await state.orchestrator.search(validated.artist, validated.song)
    log.info("search_complete", result_count=len(results))
    return [item.model_dump(mode="json", by_alias=True) for item in results]
