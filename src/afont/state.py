"""Application state: every component wired from one Settings value."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import aiosqlite
import httpx
import structlog

from afont.catalog import CatalogClient
from afont.client import ApiClient, build_http_client
from afont.config import Settings
from afont.indexer import Indexer
from afont.logging_config import setup_logging
from afont.search import Searcher
from afont.store import IndexStore

log = structlog.get_logger()


@dataclass
class AppState:
    settings: Settings
    http_client: httpx.AsyncClient
    api: ApiClient
    catalog: CatalogClient
    store: IndexStore
    indexer: Indexer
    searcher: Searcher


def build_state(
    settings: Settings, http_client: httpx.AsyncClient, db: aiosqlite.Connection
) -> AppState:
    """Wire components around an already-open client and connection.

    The store still needs ``init_db()`` before use.
    """
    api = ApiClient(http_client, settings.api)
    catalog = CatalogClient(api)
    store = IndexStore(db, settings.index)
    indexer = Indexer(settings, catalog, store)
    searcher = Searcher(settings, store, catalog, indexer)
    return AppState(
        settings=settings,
        http_client=http_client,
        api=api,
        catalog=catalog,
        store=store,
        indexer=indexer,
        searcher=searcher,
    )


@asynccontextmanager
async def open_state(settings: Settings) -> AsyncIterator[AppState]:
    """Open the index database and HTTP client for the duration of the block."""
    setup_logging(settings.logging)
    db_path = Path(settings.index.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    async with aiosqlite.connect(db_path) as db, build_http_client(settings.api) as client:
        state = build_state(settings, client, db)
        await state.store.init_db()
        log.info("state_opened", db_path=str(db_path), engine_available=state.store.available)
        yield state
