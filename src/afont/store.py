"""SQLite font index with an FTS5 shadow table.

``families`` is authoritative; ``families_fts`` is a derived projection that
is rebuilt wholesale after every refresh. All refresh writes happen inside
:meth:`IndexStore.transaction`, so a reader sees either the previous mirror or
the new one, never a mix.

If the SQLite build lacks FTS5 the store is marked unavailable at
``init_db()``; engine-dependent operations then raise
``IndexEngineUnavailable`` and callers fall back to live API search.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import aiosqlite
import structlog

from afont.errors import AfontError, ErrorCode, IndexEngineUnavailable
from afont.freshness import is_stale, parse_timestamp
from afont.models.entry import Entry, Variation
from afont.models.index import IndexStats, IndexStatus, PageFingerprint, TopCount

if TYPE_CHECKING:
    from afont.config import IndexSettings

log = structlog.get_logger()

_CREATE_FAMILIES_TABLE = """
CREATE TABLE IF NOT EXISTS families (
    id               TEXT PRIMARY KEY,
    slug             TEXT,
    name             TEXT NOT NULL,
    description      TEXT,
    web_link         TEXT,
    classification   TEXT,
    foundry          TEXT,
    css_name         TEXT,
    css_stack        TEXT,
    languages_json   TEXT,
    variations_json  TEXT,
    updated_at       TEXT NOT NULL
)
"""

_CREATE_METADATA_TABLE = """
CREATE TABLE IF NOT EXISTS metadata (
    key    TEXT PRIMARY KEY,
    value  TEXT NOT NULL
)
"""

_CREATE_PAGE_HASHES_TABLE = """
CREATE TABLE IF NOT EXISTS page_hashes (
    library_id    TEXT NOT NULL,
    page          INTEGER NOT NULL,
    hash          TEXT NOT NULL,
    family_count  INTEGER NOT NULL,
    updated_at    TEXT NOT NULL,
    PRIMARY KEY (library_id, page)
)
"""

_CREATE_FTS_TABLE = """
CREATE VIRTUAL TABLE IF NOT EXISTS families_fts USING fts5(
    id UNINDEXED,
    slug,
    name,
    description,
    classification,
    foundry
)
"""

_CREATE_LIVE_IDS_TABLE = "CREATE TEMP TABLE IF NOT EXISTS live_ids (id TEXT PRIMARY KEY)"

_FAMILY_COLUMNS = (
    "f.id, f.slug, f.name, f.description, f.web_link, f.classification, f.foundry, "
    "f.css_name, f.css_stack, f.languages_json, f.variations_json, f.updated_at"
)

_UPSERT_FAMILY = """
INSERT INTO families (
    id, slug, name, description, web_link, classification, foundry,
    css_name, css_stack, languages_json, variations_json, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    slug = excluded.slug,
    name = excluded.name,
    description = excluded.description,
    web_link = excluded.web_link,
    classification = excluded.classification,
    foundry = excluded.foundry,
    css_name = excluded.css_name,
    css_stack = excluded.css_stack,
    languages_json = excluded.languages_json,
    variations_json = excluded.variations_json,
    updated_at = excluded.updated_at
"""


def _normalized(column: str) -> str:
    return (
        f"CASE WHEN TRIM(COALESCE({column}, '')) = '' THEN 'unknown' "
        f"ELSE LOWER(TRIM({column})) END"
    )


def _json_list(raw: str | None) -> list[Any]:
    try:
        value = json.loads(raw or "[]")
    except ValueError:
        return []
    return value if isinstance(value, list) else []


def _row_to_entry(row: aiosqlite.Row | tuple[Any, ...]) -> Entry:
    variations = [v for v in (Variation.parse(raw) for raw in _json_list(row[10])) if v]
    return Entry(
        id=row[0],
        slug=row[1] or "",
        name=row[2],
        description=row[3] or "",
        web_link=row[4] or "",
        classification=row[5] or "",
        foundry=row[6] or "",
        css_name=row[7] or "",
        css_stack=row[8] or "serif",
        languages=[str(code) for code in _json_list(row[9])],
        variations=variations,
        updated_at=parse_timestamp(row[11]),
    )


def _filter_clause(classification: str | None, language: str | None) -> tuple[str, list[str]]:
    clauses: list[str] = []
    params: list[str] = []
    if classification:
        clauses.append("instr(LOWER(COALESCE(f.classification, '')), ?) > 0")
        params.append(classification.lower())
    if language:
        clauses.append(
            "EXISTS (SELECT 1 FROM json_each(COALESCE(f.languages_json, '[]')) "
            "WHERE LOWER(json_each.value) = ?)"
        )
        params.append(language.lower())
    sql = "".join(f" AND {clause}" for clause in clauses)
    return sql, params


class IndexStore:
    """SQLite-backed font index."""

    def __init__(self, db: aiosqlite.Connection, settings: IndexSettings) -> None:
        self._db = db
        self._settings = settings
        self._available = True

    @property
    def available(self) -> bool:
        return self._available

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_FAMILIES_TABLE)
        await self._db.execute(_CREATE_METADATA_TABLE)
        await self._db.execute(_CREATE_PAGE_HASHES_TABLE)
        await self._db.execute(_CREATE_LIVE_IDS_TABLE)
        try:
            await self._db.execute(_CREATE_FTS_TABLE)
        except aiosqlite.OperationalError:
            log.warning("index_engine_unavailable", exc_info=True)
            self._available = False
        await self._db.commit()

    def require_engine(self) -> None:
        if not self._available:
            raise IndexEngineUnavailable()

    # ------------------------------------------------------------------
    # Refresh writes (call inside transaction())
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Single write transaction; rolled back if the body raises."""
        self.require_engine()
        try:
            await self._db.execute("BEGIN IMMEDIATE")
        except aiosqlite.Error as exc:
            raise AfontError(
                ErrorCode.INDEX_WRITE_FAILED, f"Could not start index transaction: {exc}"
            ) from exc
        try:
            yield
            await self._db.commit()
        except aiosqlite.Error as exc:
            await self._db.rollback()
            log.error("index_write_failed", exc_info=True)
            raise AfontError(ErrorCode.INDEX_WRITE_FAILED, f"Index write failed: {exc}") from exc
        except BaseException:
            await self._db.rollback()
            raise

    async def upsert(self, entries: Iterable[Entry], updated_at: datetime) -> None:
        stamp = updated_at.isoformat()
        await self._db.executemany(
            _UPSERT_FAMILY,
            [
                (
                    entry.id,
                    entry.slug,
                    entry.name or entry.id,
                    entry.description,
                    entry.web_link,
                    entry.classification,
                    entry.foundry,
                    entry.css_name,
                    entry.css_stack or "serif",
                    json.dumps(entry.languages),
                    json.dumps([v.model_dump() for v in entry.variations]),
                    stamp,
                )
                for entry in entries
            ],
        )

    async def delete_not_in(self, live_ids: Iterable[str]) -> int:
        """Delete every family whose id is not in ``live_ids``."""
        await self._db.execute("DELETE FROM live_ids")
        await self._db.executemany(
            "INSERT OR IGNORE INTO live_ids (id) VALUES (?)", [(i,) for i in live_ids]
        )
        cursor = await self._db.execute(
            "DELETE FROM families WHERE id NOT IN (SELECT id FROM live_ids)"
        )
        deleted = cursor.rowcount
        await self._db.execute("DELETE FROM live_ids")
        return deleted

    async def replace_fingerprints(
        self, partitions: Iterable[str], fingerprints: Iterable[PageFingerprint]
    ) -> None:
        await self._db.executemany(
            "DELETE FROM page_hashes WHERE library_id = ?", [(p,) for p in partitions]
        )
        await self._db.executemany(
            "INSERT OR REPLACE INTO page_hashes "
            "(library_id, page, hash, family_count, updated_at) VALUES (?, ?, ?, ?, ?)",
            [
                (fp.partition_id, fp.page, fp.hash, fp.entry_count, fp.updated_at.isoformat())
                for fp in fingerprints
            ],
        )

    async def rebuild_full_text(self) -> None:
        self.require_engine()
        await self._db.execute("DELETE FROM families_fts")
        await self._db.execute(
            "INSERT INTO families_fts (id, slug, name, description, classification, foundry) "
            "SELECT id, COALESCE(slug, ''), COALESCE(name, ''), COALESCE(description, ''), "
            "COALESCE(classification, ''), COALESCE(foundry, '') FROM families"
        )

    async def set_metadata(self, values: dict[str, str]) -> None:
        await self._db.executemany(
            "INSERT INTO metadata (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            list(values.items()),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_metadata(self) -> dict[str, str]:
        cursor = await self._db.execute("SELECT key, value FROM metadata")
        return {row[0]: row[1] for row in await cursor.fetchall()}

    async def load_fingerprints(self) -> dict[tuple[str, int], PageFingerprint]:
        cursor = await self._db.execute(
            "SELECT library_id, page, hash, family_count, updated_at FROM page_hashes"
        )
        return {
            (row[0], row[1]): PageFingerprint(
                partition_id=row[0],
                page=row[1],
                hash=row[2],
                entry_count=row[3],
                updated_at=parse_timestamp(row[4]) or datetime.now(UTC),
            )
            for row in await cursor.fetchall()
        }

    async def entry_ids(self) -> set[str]:
        cursor = await self._db.execute("SELECT id FROM families")
        return {row[0] for row in await cursor.fetchall()}

    async def count(self) -> int:
        cursor = await self._db.execute("SELECT COUNT(*) FROM families")
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def status(self) -> IndexStatus:
        """Mirror state. Read failures are reported, not raised.

        ``exists`` means a refresh has committed at least once.
        """
        stale_after = self._settings.stale_after_hours
        if not self._available:
            return IndexStatus(
                exists=False,
                db_path=self._settings.db_path,
                stale_after_hours=stale_after,
                error=IndexEngineUnavailable().message,
            )
        try:
            metadata = await self.get_metadata()
            entry_count = await self.count()
        except aiosqlite.Error as exc:
            log.warning("index_status_error", exc_info=True)
            return IndexStatus(
                exists=False,
                db_path=self._settings.db_path,
                stale_after_hours=stale_after,
                error=f"Index status unavailable: {exc}",
            )

        last_refresh_at = parse_timestamp(metadata.get("last_refresh_at"))
        partitions = [p for p in metadata.get("partitions", "").split(",") if p]
        return IndexStatus(
            exists=last_refresh_at is not None,
            db_path=self._settings.db_path,
            entry_count=entry_count,
            last_refresh_at=last_refresh_at,
            stale=is_stale(last_refresh_at, stale_after),
            stale_after_hours=stale_after,
            partitions=partitions,
        )

    async def _top_counts(self, column: str, limit: int) -> list[TopCount]:
        cursor = await self._db.execute(
            f"SELECT {_normalized(column)} AS value, COUNT(*) AS count FROM families "
            "GROUP BY value ORDER BY count DESC, value ASC LIMIT ?",
            (limit,),
        )
        return [TopCount(value=row[0], count=row[1]) for row in await cursor.fetchall()]

    async def _distinct(self, column: str) -> int:
        cursor = await self._db.execute(
            f"SELECT COUNT(DISTINCT {_normalized(column)}) FROM families"
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def stats(self, limit: int = 8) -> IndexStats:
        self.require_engine()
        limit = min(max(limit, 1), 50)
        return IndexStats(
            entry_count=await self.count(),
            distinct_classifications=await self._distinct("classification"),
            distinct_foundries=await self._distinct("foundry"),
            top_classifications=await self._top_counts("classification", limit),
            top_foundries=await self._top_counts("foundry", limit),
        )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_full_text(
        self,
        match: str,
        *,
        classification: str | None = None,
        language: str | None = None,
        limit: int = 8,
    ) -> list[Entry]:
        """FTS5 ``MATCH`` query ranked by bm25."""
        self.require_engine()
        filters, params = _filter_clause(classification, language)
        cursor = await self._db.execute(
            f"SELECT {_FAMILY_COLUMNS} FROM families_fts "
            "JOIN families f ON f.id = families_fts.id "
            f"WHERE families_fts MATCH ?{filters} "
            "ORDER BY bm25(families_fts), f.name COLLATE NOCASE LIMIT ?",
            (match, *params, limit),
        )
        return [_row_to_entry(row) for row in await cursor.fetchall()]

    async def search_substring(
        self,
        query: str,
        *,
        classification: str | None = None,
        language: str | None = None,
        limit: int = 8,
    ) -> list[Entry]:
        """Plain substring match on name, slug and description, by name."""
        self.require_engine()
        needle = query.lower()
        filters, params = _filter_clause(classification, language)
        cursor = await self._db.execute(
            f"SELECT {_FAMILY_COLUMNS} FROM families f "
            "WHERE (instr(LOWER(COALESCE(f.name, '')), ?) > 0 "
            "OR instr(LOWER(COALESCE(f.slug, '')), ?) > 0 "
            f"OR instr(LOWER(COALESCE(f.description, '')), ?) > 0){filters} "
            "ORDER BY f.name COLLATE NOCASE LIMIT ?",
            (needle, needle, needle, *params, limit),
        )
        return [_row_to_entry(row) for row in await cursor.fetchall()]
