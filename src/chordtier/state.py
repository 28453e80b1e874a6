"""Application state container.

AppState is created once inside the Starlette lifespan and handed to every
route handler through ``request.app.state.chordtier``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import aiosqlite
    import httpx

    from chordtier.config import Settings
    from chordtier.orchestrator import Orchestrator
    from chordtier.protocols import (
        ArtistDirectoryProtocol,
        RecordStoreProtocol,
        RemoteTierProtocol,
        ScraperProtocol,
        SearchCacheProtocol,
    )


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every handler."""

    settings: Settings
    orchestrator: Orchestrator
    record_store: RecordStoreProtocol
    search_cache: SearchCacheProtocol
    remote: RemoteTierProtocol
    scraper: ScraperProtocol
    directory: ArtistDirectoryProtocol | None = None
    http_client: httpx.AsyncClient | None = None
    db: aiosqlite.Connection | None = None
