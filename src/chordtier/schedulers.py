"""Startup maintenance for the local tiers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from chordtier.state import AppState

log = structlog.get_logger()


async def run_startup_maintenance(state: AppState) -> None:
    """Sweep expired records and query-cache entries once at startup.

    The record sweep is skipped if one ran within the configured interval.
    Failures are logged; they never block startup.
    """
    interval_hours = state.settings.store.cleanup_interval_hours
    try:
        removed_records = await state.record_store.cleanup_if_due(interval_hours)
        removed_queries = await state.search_cache.purge_expired()
    except Exception:
        log.warning("startup_maintenance_error", exc_info=True)
        return

    log.info(
        "startup_maintenance_complete",
        removed_records=removed_records,
        removed_queries=removed_queries,
    )
