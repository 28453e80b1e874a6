"""Handlers for /chord-sheet: read, edit and delete.

A read resolves one chord sheet through the local store and the live source.
A path the live source has no chords for is a 404, not an upstream error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from chordtier.errors import chord_sheet_not_found, invalid_input
from chordtier.models.handlers import ChordSheetInput

if TYPE_CHECKING:
    from chordtier.state import AppState


async def handle(path: str | None, state: AppState) -> dict:
    """Handle a chord-sheet request."""
    log = structlog.get_logger().bind(route="chord_sheet", path=path)
    log.info("handler_called")

    validated = _validate_path(path)
    record = await state.orchestrator.get_chord_sheet(validated)
    if record is None:
        raise chord_sheet_not_found(validated)

    log.info("chord_sheet_complete", version=record.version, saved=record.saved)
    return record.model_dump(mode="json", by_alias=True)


async def edit(path: str | None, payload: Any, state: AppState) -> dict:
    """Replace the content of a stored sheet; its version is bumped."""
    log = structlog.get_logger().bind(route="chord_sheet_edit", path=path)
    log.info("handler_called")

    validated = _validate_path(path)
    content = payload.get("content") if isinstance(payload, dict) else None
    if not isinstance(content, str) or not content.strip():
        raise invalid_input("Invalid chord sheet", details="Expected a JSON object with content")

    record = await state.orchestrator.edit_chord_sheet(validated, content)
    if record is None:
        raise chord_sheet_not_found(validated)
    return record.model_dump(mode="json", by_alias=True)


async def delete(path: str | None, state: AppState) -> dict:
    log = structlog.get_logger().bind(route="chord_sheet_delete", path=path)
    log.info("handler_called")

    validated = _validate_path(path)
    if not await state.orchestrator.delete_chord_sheet(validated):
        raise chord_sheet_not_found(validated)
    return {"path": validated, "deleted": True}


def _validate_path(path: str | None) -> str:
    try:
        return ChordSheetInput(path=path or "").path
    except ValueError as exc:
        raise invalid_input(
            "Missing song path parameter",
            details="Expected path format: artist/song (e.g., radiohead/creep)",
        ) from exc
