"""Environment health check for the index and the catalog API."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from afont.errors import AfontError
from afont.freshness import MirrorState, mirror_state, stale_warning, warmup_warning
from afont.models.tools import DoctorReport

if TYPE_CHECKING:
    from afont.state import AppState

log = structlog.get_logger()


async def diagnose(state: AppState) -> DoctorReport:
    settings = state.settings
    warnings: list[str] = []

    token_present = settings.api.has_token
    if not token_present:
        warnings.append(
            "Adobe Fonts API token is not set. Generate one at "
            "https://fonts.adobe.com/account/tokens and set AFONT__API__TOKEN."
        )

    api_reachable = False
    try:
        await state.api.request("/libraries", max_retries=0)
        api_reachable = True
    except AfontError as exc:
        log.info("doctor_api_unreachable", code=exc.code, error=exc.message)
        warnings.append(f"API reachability check failed: {exc.message}")

    cache = await state.store.status()
    freshness = mirror_state(cache.exists, cache.last_refresh_at, cache.stale_after_hours)
    if not state.store.available:
        warnings.append("SQLite FTS5 is not available; local search cache cannot be used.")
    elif freshness is MirrorState.ABSENT:
        warnings.append(warmup_warning())
    elif freshness is MirrorState.STALE:
        warnings.append(stale_warning(cache.last_refresh_at))

    return DoctorReport(
        token_present=token_present,
        api_reachable=api_reachable,
        endpoint=settings.api.base_url,
        index_engine_available=state.store.available,
        cache=cache,
        warnings=warnings,
    )
