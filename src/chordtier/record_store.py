"""SQLite chord-sheet record store with save/expire/soft-delete lifecycle.

All store operations catch ``aiosqlite.Error`` internally and degrade
gracefully: read failures return ``None`` (treated as a miss by the
orchestrator), write failures are logged and ignored (the fetched sheet is
still returned to the caller). Infrastructure errors never cross the
RecordStore class boundary.

Lifecycle of a record:
  - ``saved``   → never expires (``expires_at`` is NULL)
  - ``cached``  → expires ``cache_ttl`` after ``timestamp``
  - saved → cached transition (un-save) → ``deleted_at = now`` and
    ``expires_at = now + grace_period``
Expired rows are hard-deleted by ``remove_expired`` or lazily when a read
observes the expiry.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import aiosqlite
import structlog
from rapidfuzz import fuzz, process

from chordtier.errors import ErrorCode
from chordtier.models.records import ChordSheet, ChordSheetRecord, DataSource, SavedStatus
from chordtier.paths import fold_for_search, normalize_path, song_path_for

log = structlog.get_logger()

Clock = Callable[[], datetime]

_CREATE_RECORD_TABLE = """
CREATE TABLE IF NOT EXISTS chord_sheets (
    path          TEXT PRIMARY KEY,
    artist        TEXT NOT NULL,
    title         TEXT NOT NULL,
    content       TEXT NOT NULL,
    song_key      TEXT NOT NULL DEFAULT '',
    guitar_capo   INTEGER NOT NULL DEFAULT 0,
    guitar_tuning TEXT NOT NULL DEFAULT '[]',
    status        TEXT NOT NULL,
    timestamp     TEXT NOT NULL,
    last_accessed TEXT NOT NULL,
    access_count  INTEGER NOT NULL DEFAULT 1,
    data_source   TEXT NOT NULL DEFAULT 'scrape',
    version       INTEGER NOT NULL DEFAULT 1,
    expires_at    TEXT,
    deleted_at    TEXT
)
"""

_CREATE_STATUS_INDEX = "CREATE INDEX IF NOT EXISTS idx_chord_sheets_status ON chord_sheets(status)"
_CREATE_EXPIRES_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_chord_sheets_expires ON chord_sheets(expires_at)"
)

_CREATE_METADATA_TABLE = """
CREATE TABLE IF NOT EXISTS store_metadata (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""

_COLUMNS = (
    "path, artist, title, content, song_key, guitar_capo, guitar_tuning, status, "
    "timestamp, last_accessed, access_count, data_source, version, expires_at, deleted_at"
)

_SAVED_FLAG_MIGRATION_KEY = "saved_flag_migrated_at"
_TRUTHY_FLAGS = frozenset({"1", "true", "t", "yes", "y", "saved"})


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def coerce_saved_flag(value: Any) -> SavedStatus:
    """Map any historical representation of the saved flag to SavedStatus.

    Legacy rows stored the flag as booleans, 0/1 integers, or strings such
    as ``"true"``/``"false"``.
    """
    if isinstance(value, SavedStatus):
        return value
    if isinstance(value, bool):
        return SavedStatus.from_flag(value)
    if isinstance(value, int | float):
        return SavedStatus.from_flag(value != 0)
    if isinstance(value, str):
        return SavedStatus.from_flag(value.strip().lower() in _TRUTHY_FLAGS)
    return SavedStatus.CACHED


def _record_from_row(row: tuple) -> ChordSheetRecord:
    status = coerce_saved_flag(row[7])
    return ChordSheetRecord(
        path=row[0],
        artist=row[1],
        title=row[2],
        content=row[3],
        song_key=row[4] or "",
        guitar_capo=row[5] or 0,
        guitar_tuning=json.loads(row[6] or "[]"),
        saved=status is SavedStatus.SAVED,
        timestamp=_parse(row[8]),
        last_accessed=_parse(row[9]),
        access_count=row[10],
        data_source=DataSource(row[11]),
        version=row[12],
        expires_at=_parse(row[13]),
        deleted_at=_parse(row[14]),
    )


class RecordStore:
    """SQLite-backed local tier for chord-sheet records."""

    def __init__(
        self,
        db: aiosqlite.Connection,
        *,
        cache_ttl: timedelta = timedelta(days=7),
        grace_period: timedelta = timedelta(days=1),
        clock: Clock = _utcnow,
    ) -> None:
        self._db = db
        self._cache_ttl = cache_ttl
        self._grace_period = grace_period
        self._clock = clock
        self._purge_tasks: set[asyncio.Task[None]] = set()

    async def init_db(self) -> None:
        """Create tables and indexes, then run the saved-flag migration once."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_RECORD_TABLE)
        await self._db.execute(_CREATE_STATUS_INDEX)
        await self._db.execute(_CREATE_EXPIRES_INDEX)
        await self._db.execute(_CREATE_METADATA_TABLE)
        await self._db.commit()
        await self.migrate_legacy_saved_flags()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _read(self, path: str) -> ChordSheetRecord | None:
        """Read a row without any expiry or access bookkeeping."""
        try:
            cursor = await self._db.execute(
                f"SELECT {_COLUMNS} FROM chord_sheets WHERE path = ?", (path,)
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("store_read_error", path=path, exc_info=True)
            return None
        if row is None:
            return None
        try:
            return _record_from_row(row)
        except ValueError:
            log.warning("store_corrupt_record", path=path, exc_info=True)
            return None

    async def get(self, path: str) -> ChordSheetRecord | None:
        """Return a live record, or ``None`` if absent, expired, or unreadable.

        A hit bumps ``access_count`` and ``last_accessed``. An expired row is
        purged in the background; the caller is not blocked on the delete.
        """
        key = normalize_path(path)
        if not key:
            return None

        record = await self._read(key)
        if record is None:
            return None

        now = self._clock()
        if record.is_expired(now):
            log.info("store_record_expired", path=key, expires_at=_iso(record.expires_at))
            self._schedule_purge(key)
            return None

        try:
            await self._db.execute(
                "UPDATE chord_sheets SET access_count = access_count + 1, last_accessed = ? "
                "WHERE path = ?",
                (now.isoformat(), key),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("store_write_error", path=key, op="touch", exc_info=True)

        return record.model_copy(
            update={"access_count": record.access_count + 1, "last_accessed": now}
        )

    async def get_all_saved(self) -> list[ChordSheetRecord]:
        """All saved records, ordered by artist then title. Empty on failure."""
        try:
            cursor = await self._db.execute(
                f"SELECT {_COLUMNS} FROM chord_sheets WHERE status = ? "
                "ORDER BY artist COLLATE NOCASE, title COLLATE NOCASE",
                (SavedStatus.SAVED.value,),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error:
            log.warning("store_read_error", op="get_all_saved", exc_info=True)
            return []

        records: list[ChordSheetRecord] = []
        for row in rows:
            try:
                records.append(_record_from_row(row))
            except ValueError:
                log.warning("store_corrupt_record", path=row[0], exc_info=True)
        return records

    async def find_saved(
        self,
        query: str,
        *,
        limit: int = 20,
        score_cutoff: int = 70,
    ) -> list[ChordSheetRecord]:
        """Accent-insensitive fuzzy search over saved records (title + artist)."""
        folded = fold_for_search(query)
        if not folded:
            return []

        saved = await self.get_all_saved()
        choices = [fold_for_search(f"{record.title} {record.artist}") for record in saved]
        results = process.extract(
            folded,
            choices,
            scorer=fuzz.partial_ratio,
            limit=limit,
            score_cutoff=score_cutoff,
        )
        return [saved[idx] for _choice, _score, idx in results]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def store(
        self,
        path: str,
        sheet: ChordSheet,
        *,
        saved: bool = False,
        data_source: DataSource = DataSource.SCRAPE,
    ) -> ChordSheetRecord:
        """Upsert a record and return it. Non-fatal on write failure.

        A saved record is never downgraded here; un-saving goes through
        ``set_saved_status`` so the grace period applies. ``version`` is
        bumped when the content changes.
        """
        key = normalize_path(path)
        if not key:
            raise ValueError("Record path must not be empty")

        existing = await self._read(key)
        now = self._clock()

        if existing is not None and existing.saved:
            saved = True

        version = 1
        access_count = 1
        if existing is not None:
            version = existing.version + (1 if existing.content != sheet.content else 0)
            access_count = existing.access_count

        record = ChordSheetRecord(
            **sheet.model_dump(include=set(ChordSheet.model_fields)),
            path=key,
            saved=saved,
            timestamp=now,
            last_accessed=now,
            access_count=access_count,
            data_source=data_source,
            version=version,
            expires_at=None if saved else now + self._cache_ttl,
            deleted_at=None,
        )
        await self._write(record)
        return record

    async def _write(self, record: ChordSheetRecord) -> None:
        try:
            await self._db.execute(
                f"INSERT OR REPLACE INTO chord_sheets ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.path,
                    record.artist,
                    record.title,
                    record.content,
                    record.song_key,
                    record.guitar_capo,
                    json.dumps(record.guitar_tuning),
                    SavedStatus.from_flag(record.saved).value,
                    record.timestamp.isoformat(),
                    record.last_accessed.isoformat(),
                    record.access_count,
                    record.data_source.value,
                    record.version,
                    _iso(record.expires_at),
                    _iso(record.deleted_at),
                ),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning(
                "store_write_error",
                path=record.path,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                exc_info=True,
            )

    async def set_saved_status(self, path: str, saved: bool) -> bool:
        """Save or un-save a record. Returns False if it does not exist or has expired.

        Saving clears ``expires_at`` and ``deleted_at``. Un-saving a saved
        record starts the grace period; un-saving a cached record is a no-op.
        """
        key = normalize_path(path)
        existing = await self._read(key) if key else None
        if existing is None:
            log.info("store_set_saved_missing", path=key, saved=saved)
            return False

        now = self._clock()
        if existing.is_expired(now):
            log.info("store_set_saved_expired", path=key, saved=saved)
            self._schedule_purge(key)
            return False

        if saved:
            status, expires_at, deleted_at = SavedStatus.SAVED, None, None
        elif existing.saved:
            status, expires_at, deleted_at = SavedStatus.CACHED, now + self._grace_period, now
        else:
            return True

        try:
            await self._db.execute(
                "UPDATE chord_sheets SET status = ?, expires_at = ?, deleted_at = ? "
                "WHERE path = ?",
                (status.value, _iso(expires_at), _iso(deleted_at), key),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("store_write_error", path=key, op="set_saved_status", exc_info=True)
            return False

        log.info("store_saved_status_changed", path=key, saved=saved)
        return True

    async def update_content(self, path: str, content: str) -> ChordSheetRecord | None:
        """Replace a live record's content, bumping its version. None if absent or expired."""
        key = normalize_path(path)
        existing = await self._read(key) if key else None
        if existing is None:
            return None
        if existing.is_expired(self._clock()):
            self._schedule_purge(key)
            return None
        if existing.content == content:
            return existing

        updated = existing.model_copy(
            update={"content": content, "version": existing.version + 1}
        )
        try:
            await self._db.execute(
                "UPDATE chord_sheets SET content = ?, version = ? WHERE path = ?",
                (content, updated.version, key),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("store_write_error", path=key, op="update_content", exc_info=True)
            return None
        return updated

    async def delete(self, path: str) -> bool:
        """Hard-delete a record regardless of its status."""
        key = normalize_path(path)
        try:
            cursor = await self._db.execute("DELETE FROM chord_sheets WHERE path = ?", (key,))
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("store_write_error", path=key, op="delete", exc_info=True)
            return False
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def _schedule_purge(self, path: str) -> None:
        task = asyncio.create_task(self._purge_if_expired(path))
        self._purge_tasks.add(task)
        task.add_done_callback(self._purge_tasks.discard)

    async def _purge_if_expired(self, path: str) -> None:
        # Re-check expiry in SQL: the row may have been re-stored meanwhile.
        try:
            await self._db.execute(
                "DELETE FROM chord_sheets WHERE path = ? AND status = ? "
                "AND expires_at IS NOT NULL AND expires_at <= ?",
                (path, SavedStatus.CACHED.value, self._clock().isoformat()),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("store_purge_error", path=path, exc_info=True)

    async def wait_for_purges(self) -> None:
        """Await any in-flight lazy purges (used at shutdown and in tests)."""
        if self._purge_tasks:
            await asyncio.gather(*self._purge_tasks, return_exceptions=True)

    async def remove_expired(self) -> int:
        """Delete every cached record whose expiry has passed. Returns the count."""
        try:
            cursor = await self._db.execute(
                "DELETE FROM chord_sheets WHERE status = ? "
                "AND expires_at IS NOT NULL AND expires_at < ?",
                (SavedStatus.CACHED.value, self._clock().isoformat()),
            )
            removed = cursor.rowcount
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("store_cleanup_error", exc_info=True)
            return 0

        log.info("store_cleanup_complete", removed=removed)
        return removed

    async def cleanup_if_due(self, interval_hours: int) -> int:
        """Run ``remove_expired`` only if ``interval_hours`` have elapsed.

        Falls through to run cleanup if the metadata row is missing or
        unreadable. Non-fatal on failure.
        """
        now = self._clock()
        last_run = await self._get_metadata("last_cleanup_at")
        if last_run is not None:
            try:
                if now - datetime.fromisoformat(last_run) < timedelta(hours=interval_hours):
                    log.debug("store_cleanup_skipped", reason="not_due")
                    return 0
            except ValueError:
                log.warning("store_metadata_corrupt", key="last_cleanup_at")

        removed = await self.remove_expired()
        await self._set_metadata("last_cleanup_at", now.isoformat())
        return removed

    # ------------------------------------------------------------------
    # Legacy data
    # ------------------------------------------------------------------

    async def migrate_legacy_saved_flags(self) -> int:
        """Rewrite non-canonical ``status`` values to SavedStatus. Runs once.

        Rows imported from older stores carry the saved flag as booleans,
        numbers or strings. They are coerced once and the migration is
        recorded in ``store_metadata``; later calls are no-ops.
        """
        if await self._get_metadata(_SAVED_FLAG_MIGRATION_KEY) is not None:
            return 0

        try:
            cursor = await self._db.execute(
                "SELECT path, status, timestamp, expires_at FROM chord_sheets "
                "WHERE status NOT IN (?, ?)",
                (SavedStatus.SAVED.value, SavedStatus.CACHED.value),
            )
            rows = await cursor.fetchall()
            for path, raw_status, timestamp, expires_at in rows:
                status = coerce_saved_flag(raw_status)
                if status is SavedStatus.SAVED:
                    new_expiry = None
                elif expires_at:
                    new_expiry = expires_at
                else:
                    anchor = _parse(timestamp) or self._clock()
                    new_expiry = (anchor + self._cache_ttl).isoformat()
                await self._db.execute(
                    "UPDATE chord_sheets SET status = ?, expires_at = ? WHERE path = ?",
                    (status.value, new_expiry, path),
                )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("store_migration_error", migration="saved_flag", exc_info=True)
            return 0

        await self._set_metadata(_SAVED_FLAG_MIGRATION_KEY, self._clock().isoformat())
        if rows:
            log.info("store_migration_complete", migration="saved_flag", migrated=len(rows))
        return len(rows)

    async def import_legacy(
        self, items: Iterable[Mapping[str, Any]], *, data_source: DataSource = DataSource.UPLOAD
    ) -> int:
        """Import chord sheets exported from an older client store.

        Accepts the historical field names (``songChords``/``content``,
        ``songKey``/``key``, ``saved``/``isSaved``). Entries without a title,
        artist or content are skipped. Returns the number imported.
        """
        imported = 0
        for item in items:
            if not isinstance(item, Mapping):
                continue
            title = str(item.get("title") or "").strip()
            artist = str(item.get("artist") or "").strip()
            content = item.get("songChords") or item.get("content") or ""
            if not title or not artist or not content:
                log.debug("store_import_skipped", title=title, artist=artist)
                continue

            path = normalize_path(item.get("path")) or song_path_for(artist, title)
            if not path:
                continue
            try:
                sheet = ChordSheet(
                    title=title,
                    artist=artist,
                    content=content,
                    song_key=item.get("songKey") or item.get("key") or "",
                    guitar_capo=int(item.get("guitarCapo") or 0),
                    guitar_tuning=list(item.get("guitarTuning") or []),
                )
            except (ValueError, TypeError):
                log.debug("store_import_skipped", title=title, artist=artist, exc_info=True)
                continue
            saved_flag = item.get("saved", item.get("isSaved", False))
            await self.store(
                path,
                sheet,
                saved=coerce_saved_flag(saved_flag) is SavedStatus.SAVED,
                data_source=data_source,
            )
            imported += 1

        log.info("store_import_complete", imported=imported)
        return imported

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def _get_metadata(self, key: str) -> str | None:
        try:
            cursor = await self._db.execute(
                "SELECT value FROM store_metadata WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("store_metadata_read_error", key=key, exc_info=True)
            return None
        return row[0] if row is not None else None

    async def _set_metadata(self, key: str, value: str) -> None:
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO store_metadata (key, value) VALUES (?, ?)",
                (key, value),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("store_metadata_write_error", key=key, exc_info=True)
