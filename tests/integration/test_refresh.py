"""Integration tests for incremental index refresh."""

from __future__ import annotations

import hashlib
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pytest

from afont.errors import AfontError, ErrorCode, HttpStatusError
from afont.indexer import Indexer, hash_page
from afont.models import BasicFamily

if TYPE_CHECKING:
    from afont.state import AppState
    from afont.store import IndexStore
    from tests.conftest import FakeCatalog

FamilyFactory = Callable[..., dict[str, Any]]


@pytest.fixture()
def seeded(upstream: FakeCatalog, family_factory: FamilyFactory) -> FakeCatalog:
    upstream.seed(
        "full",
        [
            family_factory("droid-serif", name="Droid Serif", classification="serif"),
            family_factory("source-sans-3", name="Source Sans 3", classification="sans-serif"),
            family_factory("adobe-caslon-pro", name="Adobe Caslon Pro", classification="serif"),
        ],
    )
    return upstream


async def _family_rows(store: IndexStore) -> list[tuple[Any, ...]]:
    cursor = await store._db.execute("SELECT * FROM families ORDER BY id")
    return [tuple(row) for row in await cursor.fetchall()]


def _seed_many(upstream: FakeCatalog, factory: FamilyFactory, count: int) -> list[str]:
    ids = [f"family-{chr(ord('a') + i)}" for i in range(count)]
    upstream.seed("full", [factory(fid) for fid in ids])
    return ids


class TestHashPage:
    def test_order_sensitive(self) -> None:
        a = BasicFamily(id="a", name="A")
        b = BasicFamily(id="b", name="B")
        assert hash_page([a, b]) != hash_page([b, a])

    def test_name_sensitive(self) -> None:
        assert hash_page([BasicFamily(id="a", name="A")]) != hash_page(
            [BasicFamily(id="a", name="A2")]
        )

    def test_sha1_of_id_name_pairs(self) -> None:
        expected = hashlib.sha1(b"a:A|b:B").hexdigest()
        assert hash_page([BasicFamily(id="a", name="A"), BasicFamily(id="b", name="B")]) == expected


class TestRefresh:
    async def test_initial_refresh(self, app_state: AppState, seeded: FakeCatalog) -> None:
        result = await app_state.indexer.refresh()
        assert result.entry_count == 3
        assert result.fetched_count == 3
        assert result.requested_count == 3
        assert result.partitions == ["full"]
        assert result.warnings == []

        status = await app_state.store.status()
        assert status.exists is True
        assert status.stale is False
        assert status.entry_count == 3
        assert status.last_refresh_at == result.refreshed_at
        assert status.partitions == ["full"]

    async def test_second_refresh_is_idempotent(
        self, app_state: AppState, seeded: FakeCatalog
    ) -> None:
        await app_state.indexer.refresh()
        fingerprints = await app_state.store.load_fingerprints()
        rows = await _family_rows(app_state.store)
        detail_calls = len(seeded.detail_calls)

        result = await app_state.indexer.refresh()

        assert result.requested_count == 0
        assert result.fetched_count == 0
        assert result.entry_count == 3
        assert len(seeded.detail_calls) == detail_calls
        assert await app_state.store.load_fingerprints() == fingerprints
        assert await _family_rows(app_state.store) == rows

    async def test_only_changed_pages_are_refetched(
        self, app_state: AppState, upstream: FakeCatalog, family_factory: FamilyFactory
    ) -> None:
        _seed_many(upstream, family_factory, 4)
        await app_state.indexer.refresh(page_size=2)
        upstream.detail_calls.clear()

        upstream.rename("family-d", "Family Delta")
        result = await app_state.indexer.refresh(page_size=2)

        assert sorted(upstream.detail_calls) == ["family-c", "family-d"]
        assert result.requested_count == 2
        (entry,) = await app_state.store.search_substring("family-d")
        assert entry.name == "Family Delta"

    async def test_removed_entries_are_deleted(
        self, app_state: AppState, seeded: FakeCatalog
    ) -> None:
        await app_state.indexer.refresh()
        seeded.remove("full", "source-sans-3")

        result = await app_state.indexer.refresh()

        assert result.entry_count == 2
        assert await app_state.store.entry_ids() == {"droid-serif", "adobe-caslon-pro"}

    async def test_truncation_warning(
        self, app_state: AppState, upstream: FakeCatalog, family_factory: FamilyFactory
    ) -> None:
        _seed_many(upstream, family_factory, 5)
        result = await app_state.indexer.refresh(page_size=2, max_pages=2)
        assert result.warnings == ['Library "full" was truncated at max pages (2 of 3).']
        assert result.entry_count == 4
        assert upstream.page_calls == [("full", 1), ("full", 2)]

    async def test_failed_detail_is_a_warning_and_retried_next_time(
        self, app_state: AppState, seeded: FakeCatalog
    ) -> None:
        seeded.detail_errors["source-sans-3"] = 500
        result = await app_state.indexer.refresh()

        assert result.entry_count == 2
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("Failed loading family source-sans-3: ")

        del seeded.detail_errors["source-sans-3"]
        seeded.detail_calls.clear()
        result = await app_state.indexer.refresh()

        # page unchanged, but the missing id is fetched again
        assert seeded.detail_calls == ["source-sans-3"]
        assert result.entry_count == 3
        assert result.warnings == []

    async def test_not_found_detail_is_dropped_silently(
        self, app_state: AppState, seeded: FakeCatalog
    ) -> None:
        seeded.detail_errors["adobe-caslon-pro"] = 404
        result = await app_state.indexer.refresh()
        assert result.warnings == []
        assert result.requested_count == 3
        assert result.fetched_count == 2
        assert await app_state.store.entry_ids() == {"droid-serif", "source-sans-3"}

    async def test_invisible_partition_is_attempted_with_warning(
        self, app_state: AppState, upstream: FakeCatalog, family_factory: FamilyFactory
    ) -> None:
        upstream.seed("full", [family_factory("droid-serif")])
        upstream.seed("secret", [family_factory("hidden-gem")])
        upstream.hidden_libraries.add("secret")

        result = await app_state.indexer.refresh("secret")

        assert result.partitions == ["secret"]
        assert result.warnings == ['Library "secret" is not in token-visible libraries: full']
        assert await app_state.store.entry_ids() == {"hidden-gem"}

    async def test_refreshing_one_partition_drops_entries_from_others(
        self, app_state: AppState, upstream: FakeCatalog, family_factory: FamilyFactory
    ) -> None:
        upstream.seed("full", [family_factory("droid-serif")])
        upstream.seed("personal", [family_factory("adobe-caslon-pro")])
        await app_state.indexer.refresh("full")

        await app_state.indexer.refresh("personal")

        assert await app_state.store.entry_ids() == {"adobe-caslon-pro"}

    async def test_failed_refresh_keeps_previous_mirror(
        self, app_state: AppState, seeded: FakeCatalog
    ) -> None:
        first = await app_state.indexer.refresh()

        with pytest.raises(HttpStatusError):
            await app_state.indexer.refresh("missing")

        status = await app_state.store.status()
        assert status.entry_count == 3
        assert status.last_refresh_at == first.refreshed_at
        assert status.partitions == ["full"]

    async def test_missing_token(self, app_state: AppState, seeded: FakeCatalog) -> None:
        settings = app_state.settings.model_copy(
            update={"api": app_state.settings.api.model_copy(update={"token": ""})}
        )
        indexer = Indexer(settings, app_state.catalog, app_state.store)
        with pytest.raises(AfontError) as exc_info:
            await indexer.refresh()
        assert exc_info.value.code == ErrorCode.MISSING_TOKEN
        assert seeded.libraries_calls == 0

    async def test_refresh_then_search_end_to_end(
        self, app_state: AppState, seeded: FakeCatalog
    ) -> None:
        result = await app_state.indexer.refresh()
        assert result.entry_count == 3

        found = await app_state.searcher.search("droid")
        assert found.source == "cache"
        assert [font.id for font in found.entries] == ["droid-serif"]

        serif = await app_state.searcher.search("serif", classification="serif")
        assert {"droid-serif", "adobe-caslon-pro"} <= {font.id for font in serif.entries}


class TestLooseUpstreamPayloads:
    async def test_null_lists_in_detail_are_indexed(
        self, app_state: AppState, upstream: FakeCatalog, family_factory: FamilyFactory
    ) -> None:
        payload = family_factory("droid-serif", css_names=None, variations=None)
        payload["classifications"] = None
        upstream.seed("full", [payload, family_factory("adobe-caslon-pro")])

        result = await app_state.indexer.refresh()

        assert result.warnings == []
        assert result.entry_count == 2
        (entry,) = await app_state.store.search_substring("droid-serif")
        assert entry.css_name == ""
        assert entry.variations == []

    async def test_numeric_listing_name_is_indexed(
        self, app_state: AppState, upstream: FakeCatalog, family_factory: FamilyFactory
    ) -> None:
        upstream.seed("full", [family_factory("numeric", name=12345)])

        result = await app_state.indexer.refresh()

        assert result.entry_count == 1
        (entry,) = await app_state.store.search_substring("12345")
        assert entry.id == "numeric"
        assert entry.name == "12345"

    async def test_junk_listing_items_are_ignored(
        self, app_state: AppState, seeded: FakeCatalog
    ) -> None:
        seeded.listing_noise = ["stray", None, 7]

        result = await app_state.indexer.refresh()

        assert result.warnings == []
        assert await app_state.store.entry_ids() == {
            "droid-serif",
            "source-sans-3",
            "adobe-caslon-pro",
        }
