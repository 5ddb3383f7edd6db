from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


def _scalar_str(v: Any) -> str | None:
    """Numbers become strings; containers and null are treated as absent."""
    if isinstance(v, str):
        return v
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return None


def _str_list(v: Any) -> list[str]:
    if v is None:
        return []
    items = v if isinstance(v, (list, tuple)) else [v]
    return [s for s in (_scalar_str(item) for item in items) if s is not None]


class Variation(BaseModel):
    """One (style, weight) pair, e.g. ``normal``/``4`` for fvd ``n4``."""

    style: str
    weight: str

    @classmethod
    def parse(cls, raw: Any) -> Variation | None:
        if isinstance(raw, dict):
            if raw.keys() >= {"style", "weight"}:
                return cls(style=str(raw["style"]), weight=str(raw["weight"]))
            fvd = raw.get("fvd")
            if isinstance(fvd, str) and len(fvd) >= 2:
                return cls(style="normal" if fvd[0] == "n" else "italic", weight=fvd[1:])
            return None
        if isinstance(raw, str) and raw:
            return cls(
                style="italic" if "i" in raw else "normal",
                weight=re.sub(r"[^0-9]", "", raw) or raw,
            )
        return None


class Entry(BaseModel):
    """A catalog entry (font family) as stored in the local index."""

    id: str
    slug: str = ""
    name: str
    description: str = ""
    web_link: str = ""
    classification: str = ""
    foundry: str = ""
    css_name: str = ""
    css_stack: str = "serif"
    languages: list[str] = []
    variations: list[Variation] = []
    updated_at: datetime | None = None

    def to_result(self) -> FontResult:
        weights: list[str] = []
        styles: list[str] = []
        for variation in self.variations:
            if variation.weight not in weights:
                weights.append(variation.weight)
            if variation.style not in styles:
                styles.append(variation.style)
        slug = self.slug or self.id
        return FontResult(
            id=self.id,
            slug=slug,
            name=self.name,
            css_name=self.css_name or slug,
            css_stack=self.css_stack or "serif",
            description=self.description,
            web_link=self.web_link,
            classification=self.classification or "unknown",
            foundry=self.foundry or "unknown",
            languages=self.languages,
            weights=weights,
            styles=styles,
        )


class FontResult(BaseModel):
    """Normalized search hit, identical for local and live results."""

    id: str
    slug: str
    name: str
    css_name: str
    css_stack: str
    description: str
    web_link: str
    classification: str
    foundry: str
    languages: list[str]
    weights: list[str]
    styles: list[str]


# ---------------------------------------------------------------------------
# Upstream shapes
# ---------------------------------------------------------------------------


class _Upstream(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Partition(_Upstream):
    """A library visible to the API token."""

    id: str = ""
    slug: str = ""
    name: str = ""

    @field_validator("id", "slug", "name", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> str:
        return _scalar_str(v) or ""

    @property
    def key(self) -> str:
        return self.id or self.slug


class BasicFamily(_Upstream):
    """Listing item: only identity fields are present on library pages."""

    id: str = ""
    name: str = ""
    slug: str = ""

    @field_validator("id", "name", "slug", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> str:
        return _scalar_str(v) or ""


class BrowseInfo(_Upstream):
    classification: list[str] = []
    language: list[str] = []

    @field_validator("classification", "language", mode="before")
    @classmethod
    def _coerce_list(cls, v: Any) -> list[str]:
        return _str_list(v)


class UpstreamFamily(_Upstream):
    """Family detail as returned by ``GET /families/:id``.

    Every field is optional; older responses use alternate field names
    (``family``, ``css_name``, ``classifications``, ``languages``) and a
    foundry that is either an object or a bare string. Nulls, numbers and
    single values where a list is expected are coerced, never rejected.
    """

    id: str | None = None
    slug: str | None = None
    name: str | None = None
    family: str | None = None
    description: str | None = None
    web_link: str | None = None
    css_names: list[str] = []
    css_name: str | None = None
    css_stack: str | None = None
    browse_info: BrowseInfo | None = None
    classification: str | None = None
    classifications: list[str] = []
    foundry: dict[str, Any] | str | None = None
    language: list[str] = []
    languages: list[str] = []
    variations: list[Any] = []

    @field_validator(
        "id",
        "slug",
        "name",
        "family",
        "description",
        "web_link",
        "css_name",
        "css_stack",
        "classification",
        mode="before",
    )
    @classmethod
    def _coerce_str(cls, v: Any) -> str | None:
        return _scalar_str(v)

    @field_validator("css_names", "classifications", "language", "languages", mode="before")
    @classmethod
    def _coerce_str_list(cls, v: Any) -> list[str]:
        return _str_list(v)

    @field_validator("variations", mode="before")
    @classmethod
    def _coerce_variations(cls, v: Any) -> list[Any]:
        if v is None:
            return []
        return list(v) if isinstance(v, (list, tuple)) else [v]

    @field_validator("browse_info", mode="before")
    @classmethod
    def _drop_malformed_browse_info(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else None

    @field_validator("foundry", mode="before")
    @classmethod
    def _coerce_foundry(cls, v: Any) -> dict[str, Any] | str | None:
        if isinstance(v, dict):
            return v
        return _scalar_str(v)

    def _classification(self) -> str:
        if self.browse_info and self.browse_info.classification:
            return self.browse_info.classification[0]
        if self.classification:
            return self.classification
        if self.classifications:
            return self.classifications[0]
        return ""

    def _foundry(self) -> str:
        if isinstance(self.foundry, dict):
            return str(self.foundry.get("name") or "")
        return self.foundry or ""

    def _languages(self) -> list[str]:
        if self.browse_info and self.browse_info.language:
            return list(self.browse_info.language)
        return list(self.language or self.languages)

    def to_entry(self) -> Entry:
        name = self.name or self.family or self.slug or self.id or "unknown"
        entry_id = self.id or self.slug or ""
        slug = self.slug or self.id or re.sub(r"\s+", "-", name.lower())
        variations = [v for v in (Variation.parse(raw) for raw in self.variations) if v]
        return Entry(
            id=entry_id,
            slug=slug,
            name=name,
            description=self.description or "",
            web_link=self.web_link or "",
            classification=self._classification(),
            foundry=self._foundry(),
            css_name=(self.css_names[0] if self.css_names else self.css_name) or "",
            css_stack=self.css_stack or "serif",
            languages=self._languages(),
            variations=variations,
        )
