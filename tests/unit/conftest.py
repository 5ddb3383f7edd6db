"""Unit-specific fixtures (no I/O beyond in-memory SQLite)."""

from __future__ import annotations

import aiosqlite
import pytest

from afont.config import Settings
from afont.store import IndexStore


@pytest.fixture()
async def store(settings: Settings):
    """In-memory SQLite index for unit tests."""
    async with aiosqlite.connect(":memory:") as db:
        s = IndexStore(db, settings.index)
        await s.init_db()
        yield s
