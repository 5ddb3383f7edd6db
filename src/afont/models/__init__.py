from __future__ import annotations

from afont.models.entry import (
    BasicFamily,
    BrowseInfo,
    Entry,
    FontResult,
    Partition,
    UpstreamFamily,
    Variation,
)
from afont.models.index import IndexStats, IndexStatus, PageFingerprint, TopCount
from afont.models.tools import DoctorReport, RefreshResult, SearchRequest, SearchResult

__all__ = [
    # entries
    "Entry",
    "Variation",
    "FontResult",
    # upstream
    "Partition",
    "BasicFamily",
    "BrowseInfo",
    "UpstreamFamily",
    # index
    "PageFingerprint",
    "TopCount",
    "IndexStatus",
    "IndexStats",
    # tools
    "SearchRequest",
    "SearchResult",
    "RefreshResult",
    "DoctorReport",
]
