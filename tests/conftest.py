"""Shared fixtures: settings, family fixtures and a fake catalog API."""

from __future__ import annotations

import math
from collections.abc import Callable, Iterator
from typing import Any

import httpx
import pytest
import respx

from afont.config import Settings

BASE_URL = "https://api.test/v1/json"
API_PATH = "/v1/json"


def make_family(id: str, **options: Any) -> dict[str, Any]:
    """Family detail payload shaped like ``GET /families/:id``."""
    slug = options.get("slug", id)
    name = options.get("name") or " ".join(part.capitalize() for part in id.split("-"))
    classification = options.get("classification", "serif")
    return {
        "id": id,
        "slug": slug,
        "name": name,
        "description": options.get("description", f"{name} test fixture family"),
        "web_link": f"http://typekit.com/fonts/{slug}",
        "css_names": options.get("css_names", [slug]),
        "browse_info": {
            "classification": [classification],
            "language": options.get("languages", ["en"]),
        },
        "foundry": {"name": options.get("foundry", "Adobe")},
        "css_stack": "sans-serif" if "sans" in classification else "serif",
        "variations": options.get("variations", [{"fvd": "n4"}, {"fvd": "n7"}]),
    }


class FakeCatalog:
    """In-memory upstream served through respx.

    ``libraries`` maps partition id -> ordered family ids; ``families`` holds
    detail payloads. ``listing_noise`` items are appended to every listing page
    as-is, and ``raw_pages`` replaces a library's listing body outright.
    Every request is recorded for assertions.
    """

    def __init__(self) -> None:
        self.libraries: dict[str, list[str]] = {}
        self.families: dict[str, dict[str, Any]] = {}
        self.hidden_libraries: set[str] = set()
        self.detail_errors: dict[str, int] = {}
        self.listing_noise: list[Any] = []
        self.raw_pages: dict[str, Any] = {}
        self.page_calls: list[tuple[str, int]] = []
        self.detail_calls: list[str] = []
        self.libraries_calls = 0
        self.outage = False

    def seed(self, library_id: str, families: list[dict[str, Any]]) -> None:
        self.libraries[library_id] = [family["id"] for family in families]
        for family in families:
            self.families[family["id"]] = family

    def rename(self, family_id: str, name: str) -> None:
        self.families[family_id] = {**self.families[family_id], "name": name}

    def remove(self, library_id: str, family_id: str) -> None:
        self.libraries[library_id].remove(family_id)

    # -- handlers ----------------------------------------------------------

    def _list_libraries(self, request: httpx.Request) -> httpx.Response:
        self.libraries_calls += 1
        if self.outage:
            return httpx.Response(503, json={"errors": ["Service unavailable"]})
        visible = [lid for lid in self.libraries if lid not in self.hidden_libraries]
        return httpx.Response(
            200, json={"libraries": [{"id": lid, "name": lid.title()} for lid in visible]}
        )

    def _library_page(self, request: httpx.Request, library_id: str) -> httpx.Response:
        page = int(request.url.params.get("page", "1"))
        per_page = int(request.url.params.get("per_page", "500"))
        self.page_calls.append((library_id, page))
        if library_id in self.raw_pages:
            return httpx.Response(200, json=self.raw_pages[library_id])
        ids = self.libraries.get(library_id)
        if ids is None:
            return httpx.Response(404, json={"errors": ["Not found"]})
        start = (page - 1) * per_page
        families = [
            {
                "id": fid,
                "name": self.families[fid]["name"],
                "slug": self.families[fid]["slug"],
            }
            for fid in ids[start : start + per_page]
        ] + self.listing_noise
        page_count = max(1, math.ceil(len(ids) / per_page))
        return httpx.Response(
            200,
            json={
                "library": {
                    "id": library_id,
                    "families": families,
                    "pagination": {"page": page, "page_count": page_count},
                }
            },
        )

    def _family(self, request: httpx.Request, family_id: str) -> httpx.Response:
        self.detail_calls.append(family_id)
        if family_id in self.detail_errors:
            return httpx.Response(self.detail_errors[family_id], json={"errors": ["boom"]})
        family = self.families.get(family_id)
        if family is None:
            return httpx.Response(404, json={"errors": ["Not found"]})
        return httpx.Response(200, json={"family": family})

    def install(self, router: respx.MockRouter) -> None:
        router.get(host="api.test", path=f"{API_PATH}/libraries").mock(
            side_effect=self._list_libraries
        )
        router.get(
            host="api.test", path__regex=rf"^{API_PATH}/libraries/(?P<library_id>[^/]+)$"
        ).mock(side_effect=self._library_page)
        router.get(
            host="api.test", path__regex=rf"^{API_PATH}/families/(?P<family_id>[^/]+)$"
        ).mock(side_effect=self._family)


@pytest.fixture()
def family_factory() -> Callable[..., dict[str, Any]]:
    return make_family


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        api={
            "base_url": BASE_URL,
            "token": "test-token",
            "max_retries": 0,
            "retry_base_seconds": 0,
        },
        index={"db_path": ":memory:", "stale_after_hours": 1},
    )


@pytest.fixture()
def upstream() -> Iterator[FakeCatalog]:
    fake = FakeCatalog()
    with respx.mock(assert_all_called=False) as router:
        fake.install(router)
        yield fake
