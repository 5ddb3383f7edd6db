"""Mirror freshness: absent, fresh or stale."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import StrEnum

WARMUP_PAGE_SIZE = 500
WARMUP_MAX_PAGES = 40


class MirrorState(StrEnum):
    ABSENT = "absent"
    FRESH = "fresh"
    STALE = "stale"


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def is_stale(
    last_refresh_at: str | datetime | None,
    stale_after_hours: int,
    now: datetime | None = None,
) -> bool:
    """A mirror without a readable refresh timestamp is always stale."""
    refreshed = parse_timestamp(last_refresh_at)
    if refreshed is None:
        return True
    now = now or datetime.now(UTC)
    return now - refreshed > timedelta(hours=stale_after_hours)


def mirror_state(
    exists: bool,
    last_refresh_at: str | datetime | None,
    stale_after_hours: int,
    now: datetime | None = None,
) -> MirrorState:
    if not exists:
        return MirrorState.ABSENT
    if is_stale(last_refresh_at, stale_after_hours, now):
        return MirrorState.STALE
    return MirrorState.FRESH


def warmup_warning() -> str:
    return (
        "Local index is empty. First uncached searches can be slow; run a one-time "
        f"index refresh (page_size={WARMUP_PAGE_SIZE}, max_pages={WARMUP_MAX_PAGES})."
    )


def stale_warning(last_refresh_at: datetime | None) -> str:
    since = f" (last refresh: {last_refresh_at.isoformat()})" if last_refresh_at else ""
    return (
        f"Local index is stale{since}. Refresh it for faster, complete searches "
        f"(page_size={WARMUP_PAGE_SIZE}, max_pages={WARMUP_MAX_PAGES})."
    )
