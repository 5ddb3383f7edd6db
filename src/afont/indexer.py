"""Incremental index refresh.

Each listing page is fingerprinted by the ordered ``id:name`` pairs it holds.
Only pages whose fingerprint changed since the last refresh have their
families re-fetched in full; unchanged pages cost one listing request.
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from afont.errors import AfontError, ErrorCode
from afont.models.index import PageFingerprint
from afont.models.tools import RefreshResult
from afont.workers import map_bounded

if TYPE_CHECKING:
    from afont.catalog import CatalogClient
    from afont.config import Settings
    from afont.models.entry import BasicFamily
    from afont.store import IndexStore

log = structlog.get_logger()


def hash_page(entries: Sequence[BasicFamily]) -> str:
    payload = "|".join(f"{entry.id}:{entry.name}" for entry in entries)
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


class Indexer:
    def __init__(self, settings: Settings, catalog: CatalogClient, store: IndexStore) -> None:
        self._settings = settings
        self._catalog = catalog
        self._store = store

    async def refresh(
        self,
        partition_id: str | None = None,
        *,
        page_size: int | None = None,
        max_pages: int | None = None,
    ) -> RefreshResult:
        """Bring the local mirror up to date with the selected partitions.

        Entries absent from this refresh's listing are deleted, even when
        they came from a partition this refresh did not walk.
        """
        self._store.require_engine()
        if not self._settings.api.has_token:
            raise AfontError(ErrorCode.MISSING_TOKEN, "Missing Adobe Fonts API token.")

        index_settings = self._settings.index
        page_size = min(max(page_size or index_settings.page_size, 1), 500)
        max_pages = min(max(max_pages or index_settings.max_pages, 1), 200)
        warnings: list[str] = []

        partitions = await self._catalog.resolve_partitions(partition_id, warnings)
        log.info("refresh_started", partitions=partitions, page_size=page_size, max_pages=max_pages)

        prior = await self._store.load_fingerprints()
        existing_ids = await self._store.entry_ids()
        now = datetime.now(UTC)

        live_ids: set[str] = set()
        to_fetch: dict[str, None] = {}  # insertion-ordered set
        fingerprints: list[PageFingerprint] = []

        for pid in partitions:
            page_count = 0
            async for page in self._catalog.iter_partition_pages(pid, page_size, max_pages):
                page_count = page.page_count
                digest = hash_page(page.entries)
                previous = prior.get((pid, page.page))
                changed = previous is None or previous.hash != digest
                fingerprints.append(
                    PageFingerprint(
                        partition_id=pid,
                        page=page.page,
                        hash=digest,
                        entry_count=len(page.entries),
                        updated_at=previous.updated_at if previous and not changed else now,
                    )
                )
                if changed:
                    log.debug("page_changed", partition=pid, page=page.page)

                for entry in page.entries:
                    if not entry.id:
                        continue
                    live_ids.add(entry.id)
                    if changed or entry.id not in existing_ids:
                        to_fetch[entry.id] = None

            if page_count > max_pages:
                warnings.append(
                    f'Library "{pid}" was truncated at max pages ({max_pages} of {page_count}).'
                )

        requested = list(to_fetch)
        details = await map_bounded(
            requested,
            index_settings.concurrency,
            lambda ref: self._catalog.get_entry_safe(ref, warnings),
        )
        entries = [entry for entry in details if entry is not None]

        refreshed_at = datetime.now(UTC)
        async with self._store.transaction():
            await self._store.upsert(entries, refreshed_at)
            if live_ids:
                await self._store.delete_not_in(live_ids)
            await self._store.replace_fingerprints(partitions, fingerprints)
            await self._store.rebuild_full_text()
            await self._store.set_metadata(
                {
                    "last_refresh_at": refreshed_at.isoformat(),
                    "partitions": ",".join(partitions),
                }
            )

        entry_count = await self._store.count()
        log.info(
            "refresh_complete",
            partitions=partitions,
            requested=len(requested),
            fetched=len(entries),
            entry_count=entry_count,
            warnings=len(warnings),
        )
        return RefreshResult(
            refreshed_at=refreshed_at,
            fetched_count=len(entries),
            requested_count=len(requested),
            partitions=partitions,
            entry_count=entry_count,
            warnings=warnings,
        )
