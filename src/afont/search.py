"""Two-tier font search.

Tier A searches the local mirror (FTS5 prefix match, then substring
fallback). Tier B scans the live catalog listing, ranks families by name
heuristics and resolves the best candidates' details over the API. A query
uses Tier B only when Tier A is unavailable, bypassed or came up empty.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import pydantic
import structlog

from afont.catalog import preferred_partitions
from afont.errors import AfontError, ErrorCode, InvalidInputError
from afont.freshness import MirrorState, mirror_state, stale_warning, warmup_warning
from afont.models.tools import SearchRequest, SearchResult
from afont.workers import map_bounded

if TYPE_CHECKING:
    from afont.catalog import CatalogClient
    from afont.config import Settings
    from afont.indexer import Indexer
    from afont.models.entry import BasicFamily, Entry
    from afont.models.index import IndexStatus
    from afont.store import IndexStore

log = structlog.get_logger()

_MAX_QUERY_TOKENS = 8
_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")
_NAME_PART_SPLIT = re.compile(r"[\s-]+")


def build_fts_query(query: str) -> str:
    """``"Source Sans"`` -> ``"source* AND sans*"``; empty if no tokens."""
    tokens = [t for t in _TOKEN_SPLIT.split(query.lower()) if t][:_MAX_QUERY_TOKENS]
    return " AND ".join(f"{token}*" for token in tokens)


def score_basic(name: str, entry_id: str, query: str) -> int:
    """Coarse rank of a listing item from its name and id alone."""
    n = name.lower()
    q = query.lower()
    if not q:
        return 0
    score = 0
    if n == q:
        score += 140
    if entry_id.lower() == q:
        score += 130
    if q in n:
        score += 90
    if any(part.startswith(q) for part in _NAME_PART_SPLIT.split(n)):
        score += 35
    return score


def score_entry(
    entry: Entry, query: str, classification: str | None, language: str | None
) -> int:
    """Rank a detailed entry. Classification and language filters are hard:
    a mismatch scores 0 whatever the text match."""
    if classification and classification.lower() not in entry.classification.lower():
        return 0
    if language and language.lower() not in {code.lower() for code in entry.languages}:
        return 0

    q = query.lower()
    name = entry.name.lower()
    slug = (entry.slug or entry.id).lower()
    score = 0
    if name == q or slug == q:
        score += 120
    if q in name:
        score += 90
    if q in slug:
        score += 70
    if classification:
        score += 20
    if language:
        score += 15
    return score


def _mirror_state(status: IndexStatus) -> MirrorState:
    return mirror_state(status.exists, status.last_refresh_at, status.stale_after_hours)


class Searcher:
    def __init__(
        self,
        settings: Settings,
        store: IndexStore,
        catalog: CatalogClient,
        indexer: Indexer,
    ) -> None:
        self._settings = settings
        self._store = store
        self._catalog = catalog
        self._indexer = indexer

    async def search(
        self,
        query: str,
        *,
        classification: str | None = None,
        language: str | None = None,
        limit: int = 8,
        cache_only: bool = False,
        no_cache: bool = False,
        refresh_first: bool = False,
        confirm_uncached: bool = False,
    ) -> SearchResult:
        """Search the local mirror, falling back to the live catalog.

        ``no_cache`` skips the mirror entirely. Because a live scan is slow,
        it is refused while the mirror is absent or stale unless
        ``confirm_uncached`` is also set.
        """
        try:
            request = SearchRequest(
                query=query,
                classification=classification,
                language=language,
                limit=min(max(limit, 1), 50),
            )
        except pydantic.ValidationError as exc:
            raise InvalidInputError(exc.errors()[0]["msg"].removeprefix("Value error, ")) from exc

        warnings: list[str] = []
        has_token = self._settings.api.has_token
        status = None

        if no_cache and not confirm_uncached:
            await self._refuse_uncached_if_cold()

        if not no_cache:
            if not self._store.available:
                warnings.append(
                    "Local index engine is unavailable; falling back to live catalog search."
                )
            else:
                status = await self._store.status()
                if refresh_first and has_token:
                    try:
                        refreshed = await self._indexer.refresh()
                        warnings.extend(refreshed.warnings)
                    except AfontError as exc:
                        log.warning("search_refresh_failed", code=exc.code, error=exc.message)
                        warnings.append(f"Cache refresh failed: {exc.message}")
                    status = await self._store.status()
                elif refresh_first:
                    warnings.append("Token missing; cache refresh skipped.")
                else:
                    state = _mirror_state(status)
                    if state is MirrorState.ABSENT:
                        warnings.append(warmup_warning())
                    elif state is MirrorState.STALE:
                        warnings.append(stale_warning(status.last_refresh_at))

                if status.exists:
                    entries = await self.search_local(request, warnings)
                    if entries or cache_only or not has_token:
                        return SearchResult(
                            entries=[e.to_result() for e in entries],
                            warnings=warnings,
                            source="cache",
                            cache=status,
                        )

        if cache_only:
            warnings.append("Cache-only mode enabled and no cache match found.")
            return SearchResult(entries=[], warnings=warnings, source="cache", cache=status)

        entries = await self.search_remote(request, warnings)
        return SearchResult(
            entries=[e.to_result() for e in entries],
            warnings=warnings,
            source="api",
            cache=status,
        )

    async def _refuse_uncached_if_cold(self) -> None:
        status = await self._store.status()
        state = _mirror_state(status)
        if state is MirrorState.FRESH:
            return
        label = "empty" if state is MirrorState.ABSENT else "stale"
        raise AfontError(
            ErrorCode.UNCACHED_SEARCH_REFUSED,
            f"Refusing uncached search with {label} index. Refresh the index first, "
            "or pass confirm_uncached=True to accept a slow live catalog scan.",
            details={"cache": status.model_dump(mode="json")},
        )

    async def search_local(self, request: SearchRequest, warnings: list[str]) -> list[Entry]:
        """Tier A: full-text prefix match, then substring fallback."""
        entries: list[Entry] = []
        match = build_fts_query(request.query)
        if match:
            entries = await self._store.search_full_text(
                match,
                classification=request.classification,
                language=request.language,
                limit=request.limit,
            )
        if not entries:
            entries = await self._store.search_substring(
                request.query,
                classification=request.classification,
                language=request.language,
                limit=request.limit,
            )
        if not entries:
            warnings.append("No local cache match. Try again with a cache refresh first.")
        log.debug("search_local", query=request.query, hits=len(entries))
        return entries

    async def search_remote(self, request: SearchRequest, warnings: list[str]) -> list[Entry]:
        """Tier B: heuristic scan of the live listing plus detail lookups."""
        if not self._settings.api.has_token:
            raise AfontError(ErrorCode.MISSING_TOKEN, "Missing Adobe Fonts API token.")

        index_settings = self._settings.index
        partitions = preferred_partitions(await self._catalog.list_partitions())
        if not partitions:
            raise AfontError(
                ErrorCode.NO_PARTITIONS, "No Adobe font libraries are available for this token."
            )

        basics: dict[str, BasicFamily] = {}
        for pid in partitions:
            try:
                scan = await self._catalog.scan_partition(
                    pid, index_settings.page_size, index_settings.search_max_pages
                )
            except AfontError as exc:
                warnings.append(f"Failed loading library {pid}: {exc.message}")
                continue
            if scan.truncated:
                warnings.append(
                    f"Search scanned first {scan.pages_scanned}/{scan.page_count} pages "
                    f'in "{pid}". '
                    "Increase max pages for exhaustive results."
                )
            for family in scan.entries:
                if family.id and family.id not in basics:
                    basics[family.id] = family

        query = request.query
        ranked = sorted(
            (
                (score_basic(family.name, family.id, query), family)
                for family in basics.values()
            ),
            key=lambda pair: (-pair[0], pair[1].name.casefold()),
        )
        ranked = [(score, family) for score, family in ranked if score > 0]

        details: dict[str, Entry] = {}
        for ref in dict.fromkeys([query, re.sub(r"\s+", "-", query.lower())]):
            direct = await self._catalog.get_entry_safe(ref, warnings)
            if direct is not None:
                details[direct.id] = direct

        window = max(request.limit * 8, 40)
        candidates = [f.id for _, f in ranked[:window] if f.id not in details]
        fetched = await map_bounded(
            candidates,
            index_settings.concurrency,
            lambda ref: self._catalog.get_entry_safe(ref, warnings),
        )
        for entry in fetched:
            if entry is not None:
                details[entry.id] = entry

        scored = [
            (score_entry(entry, query, request.classification, request.language), entry)
            for entry in details.values()
        ]
        scored = [pair for pair in scored if pair[0] > 0]
        scored.sort(key=lambda pair: (-pair[0], pair[1].name.casefold()))
        log.debug(
            "search_remote",
            query=query,
            scanned=len(basics),
            candidates=len(candidates),
            hits=len(scored),
        )
        return [entry for _, entry in scored[: request.limit]]
