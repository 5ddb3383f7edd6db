from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class PageFingerprint(BaseModel):
    """Identity hash of one listing page."""

    partition_id: str
    page: int
    hash: str  # SHA-1 of "id:name|id:name|..." in listing order
    entry_count: int
    updated_at: datetime


class TopCount(BaseModel):
    value: str
    count: int


class IndexStatus(BaseModel):
    """Snapshot of the local mirror's state."""

    exists: bool
    db_path: str
    entry_count: int = 0
    last_refresh_at: datetime | None = None
    stale: bool = True
    stale_after_hours: int
    partitions: list[str] = []
    error: str | None = None  # Set when the store could not be read


class IndexStats(BaseModel):
    entry_count: int
    distinct_classifications: int
    distinct_foundries: int
    top_classifications: list[TopCount]
    top_foundries: list[TopCount]
