"""Integration test fixtures.

Provides a fully wired AppState with in-memory SQLite and an HTTP client
whose traffic is answered by the ``upstream`` fake catalog (tests/conftest.py).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import pytest

from afont.client import build_http_client
from afont.state import AppState, build_state

if TYPE_CHECKING:
    from afont.config import Settings
    from tests.conftest import FakeCatalog


@pytest.fixture()
async def app_state(settings: Settings, upstream: FakeCatalog) -> AppState:
    """Full AppState wired for integration tests."""
    async with aiosqlite.connect(":memory:") as db:
        async with build_http_client(settings.api) as client:
            state = build_state(settings, client, db)
            await state.store.init_db()
            yield state
