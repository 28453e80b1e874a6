"""Handlers for the saved-sheet routes: list, save, un-save, upload, import."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from chordtier.errors import chord_sheet_not_found, invalid_input
from chordtier.models.handlers import ChordSheetInput
from chordtier.models.records import ChordSheet

if TYPE_CHECKING:
    from chordtier.state import AppState


async def list_saved(query: str | None, state: AppState) -> list[dict]:
    """All saved sheets, or a fuzzy match over them when ``query`` is given."""
    log = structlog.get_logger().bind(route="saved", query=query)
    log.info("handler_called")

    if query and query.strip():
        records = await state.orchestrator.find_saved(query)
    else:
        records = await state.orchestrator.saved_chord_sheets()
    return [record.model_dump(mode="json", by_alias=True) for record in records]


async def set_saved(path: str | None, saved: bool, state: AppState) -> dict:
    log = structlog.get_logger().bind(route="saved", path=path, saved=saved)
    log.info("handler_called")

    try:
        validated = ChordSheetInput(path=path or "")
    except ValueError as exc:
        raise invalid_input("Missing song path parameter") from exc

    if saved:
        changed = await state.orchestrator.save_chord_sheet(validated.path)
    else:
        changed = await state.orchestrator.unsave_chord_sheet(validated.path)
    if not changed:
        raise chord_sheet_not_found(validated.path)
    return {"path": validated.path, "saved": saved}


async def upload(payload: Any, state: AppState) -> dict:
    """Store a user-provided chord sheet as saved."""
    log = structlog.get_logger().bind(route="upload")
    log.info("handler_called")

    if not isinstance(payload, dict):
        raise invalid_input("Invalid chord sheet", details="Expected a JSON object")
    try:
        sheet = ChordSheet.model_validate(payload)
    except ValidationError as exc:
        raise invalid_input("Invalid chord sheet", details=str(exc)) from exc
    if not sheet.title.strip() or not sheet.artist.strip() or not sheet.content.strip():
        raise invalid_input("Invalid chord sheet", details="title, artist and content are required")

    record = await state.orchestrator.upload_chord_sheet(sheet, path=payload.get("path"))
    log.info("upload_complete", path=record.path)
    return record.model_dump(mode="json", by_alias=True)


async def import_sheets(payload: Any, state: AppState) -> dict:
    """Import a JSON array of sheets exported from an older client store."""
    log = structlog.get_logger().bind(route="saved_import")
    log.info("handler_called")

    if not isinstance(payload, list):
        raise invalid_input("Invalid import", details="Expected a JSON array of chord sheets")

    imported = await state.orchestrator.import_chord_sheets(payload)
    log.info("import_complete", received=len(payload), imported=imported)
    return {"received": len(payload), "imported": imported}
