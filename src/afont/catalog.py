"""Remote catalog access: partitions, paginated listings and family detail."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import pydantic
import structlog

from afont.errors import AfontError, EntryNotFound, ErrorCode, HttpStatusError
from afont.models.entry import BasicFamily, Partition, UpstreamFamily

if TYPE_CHECKING:
    from afont.client import ApiClient
    from afont.models.entry import Entry

log = structlog.get_logger()

PREFERRED_PARTITIONS = ("full", "personal", "trial")


@dataclass
class CatalogPage:
    page: int
    entries: list[BasicFamily]
    page_count: int


@dataclass
class PartitionScan:
    partition_id: str
    entries: list[BasicFamily] = field(default_factory=list)
    pages_scanned: int = 0
    page_count: int = 0

    @property
    def truncated(self) -> bool:
        return self.page_count > self.pages_scanned


def _positive_int(value: Any, fallback: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return fallback
    return parsed if parsed > 0 else fallback


def preferred_partitions(partitions: list[Partition]) -> list[str]:
    """Pick the single partition a default refresh or scan should cover."""
    ids = [p.key for p in partitions if p.key]
    for preferred in PREFERRED_PARTITIONS:
        if preferred in ids:
            return [preferred]
    return ids[:1]


class CatalogClient:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    async def list_partitions(self) -> list[Partition]:
        data = await self._api.request("/libraries")
        if not isinstance(data, dict):
            return []
        raw = data.get("libraries") or data.get("library") or []
        if not isinstance(raw, list):
            return []
        return [Partition.model_validate(item) for item in raw if isinstance(item, dict)]

    async def resolve_partitions(self, requested: str | None, warnings: list[str]) -> list[str]:
        """Partitions a refresh should walk.

        An explicitly requested id that the token cannot see is still
        attempted; it only produces a warning.
        """
        partitions = await self.list_partitions()
        available = [p.key for p in partitions if p.key]
        selected = [requested] if requested else preferred_partitions(partitions)
        if not selected:
            raise AfontError(
                ErrorCode.NO_PARTITIONS,
                "No libraries available for indexing.",
                details={"available": available},
            )
        for partition_id in selected:
            if partition_id not in available:
                warnings.append(
                    f'Library "{partition_id}" is not in token-visible libraries: '
                    f"{', '.join(available)}"
                )
        return selected

    async def list_partition_page(
        self, partition_id: str, page: int, page_size: int
    ) -> CatalogPage:
        data = await self._api.request(
            f"/libraries/{quote(partition_id, safe='')}",
            query={"page": page, "per_page": page_size},
        )
        if not isinstance(data, dict):
            data = {}
        library = data.get("library")
        if not isinstance(library, dict):
            library = data
        raw_entries = library.get("families")
        entries: list[BasicFamily] = []
        for item in raw_entries if isinstance(raw_entries, list) else []:
            if not isinstance(item, dict):
                continue
            try:
                entries.append(BasicFamily.model_validate(item))
            except pydantic.ValidationError:
                log.warning("listing_item_skipped", partition=partition_id, page=page)
        pagination = library.get("pagination")
        if not isinstance(pagination, dict):
            pagination = {}
        return CatalogPage(
            page=page,
            entries=entries,
            page_count=_positive_int(pagination.get("page_count"), page),
        )

    async def iter_partition_pages(
        self, partition_id: str, page_size: int, max_pages: int
    ) -> AsyncIterator[CatalogPage]:
        """Yield listing pages in order.

        The page count is only known from the previous response, so pages are
        requested one at a time. Stops past the last page, past ``max_pages``,
        or after the first empty page.
        """
        page = 1
        page_count = 1
        while page <= page_count and page <= max_pages:
            result = await self.list_partition_page(partition_id, page, page_size)
            page_count = result.page_count
            yield result
            if not result.entries:
                break
            page += 1

    async def scan_partition(
        self, partition_id: str, page_size: int, max_pages: int
    ) -> PartitionScan:
        scan = PartitionScan(partition_id=partition_id)
        async for result in self.iter_partition_pages(partition_id, page_size, max_pages):
            scan.entries.extend(result.entries)
            scan.page_count = result.page_count
            scan.pages_scanned = min(max_pages, result.page_count)
        return scan

    async def get_entry(self, ref: str) -> Entry:
        try:
            data = await self._api.request(f"/families/{quote(ref, safe='')}")
        except HttpStatusError as exc:
            if exc.status == 404:
                raise EntryNotFound(ref) from exc
            raise
        family = data.get("family") if isinstance(data, dict) else None
        if not isinstance(family, dict):
            raise EntryNotFound(ref)
        try:
            entry = UpstreamFamily.model_validate(family).to_entry()
        except pydantic.ValidationError as exc:
            raise AfontError(
                ErrorCode.MALFORMED_RESPONSE,
                f"Unexpected family payload for {ref}",
                details={"errors": exc.error_count()},
            ) from exc
        if not entry.id:
            raise EntryNotFound(ref)
        return entry

    async def get_entry_safe(self, ref: str, warnings: list[str]) -> Entry | None:
        """Fetch detail, downgrading failures: not-found is dropped silently,
        anything else becomes a warning."""
        try:
            return await self.get_entry(ref)
        except EntryNotFound:
            return None
        except AfontError as exc:
            log.warning("family_fetch_failed", ref=ref, code=exc.code, error=exc.message)
            warnings.append(f"Failed loading family {ref}: {exc.message}")
            return None
