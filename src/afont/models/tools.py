from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from afont.models.entry import FontResult
from afont.models.index import IndexStatus


class SearchRequest(BaseModel):
    query: str
    classification: str | None = None
    language: str | None = None
    limit: int = Field(default=8, ge=1, le=50)

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("query must not be empty")
        if len(v) > 500:
            raise ValueError("query must not exceed 500 characters")
        return v

    @field_validator("classification", "language")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


class SearchResult(BaseModel):
    entries: list[FontResult]
    warnings: list[str] = []
    source: Literal["cache", "api"]
    cache: IndexStatus | None = None


class RefreshResult(BaseModel):
    refreshed_at: datetime
    fetched_count: int  # Details successfully fetched and upserted
    requested_count: int  # Details requested because their page changed
    partitions: list[str]
    entry_count: int
    warnings: list[str] = []


class DoctorReport(BaseModel):
    token_present: bool
    api_reachable: bool
    endpoint: str
    index_engine_available: bool
    cache: IndexStatus
    warnings: list[str] = []
