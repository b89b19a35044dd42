from __future__ import annotations

import json

import pytest

from strategy_flow.cache import (
    ENTRIES_STORAGE_KEY,
    MARKUP_INDEX_STORAGE_KEY,
    CacheStore,
    build_cache_store,
    cache_key,
)
from strategy_flow.config import StrategySettings
from strategy_flow.errors import StorageWriteFailed
from strategy_flow.schemas import CacheEntry, CacheFormat, ContentLength
from strategy_flow.storage import InMemoryStorage, JsonFileStorage

DAY_MS = 24 * 60 * 60 * 1000
TTL_MS = 30 * DAY_MS


def test_cache_key_combines_context_and_variant() -> None:
    assert cache_key("ctx", ContentLength.BRIEF) == "ctx-brief"
    assert cache_key("ctx", "detailed") == "ctx-detailed"


def test_markup_round_trip_is_scoped_to_variant(store: CacheStore, sample_strategy) -> None:
    assert store.save_markup(sample_strategy, "# Marketing Strategy\nbody", "ctx", ContentLength.STANDARD)

    hit = store.load_markup("ctx", ContentLength.STANDARD)

    assert hit is not None
    assert hit.strategies == sample_strategy
    assert hit.raw_markdown == "# Marketing Strategy\nbody"
    assert store.load_markup("ctx", ContentLength.BRIEF) is None


def test_loaded_strategies_are_copies(store: CacheStore, sample_strategy) -> None:
    store.save(sample_strategy, "key")

    loaded = store.load("key")
    loaded.marketing_strategies.clear()

    assert store.load("key").marketing_strategies


def test_invalidate_one_variant_leaves_the_others(store: CacheStore, sample_strategy) -> None:
    for variant in ContentLength:
        store.save_markup(sample_strategy, f"markup {variant.value}", "ctx", variant)

    store.invalidate("ctx", ContentLength.BRIEF)

    assert store.load_markup("ctx", ContentLength.BRIEF) is None
    assert store.load_markup("ctx", ContentLength.STANDARD).raw_markdown == "markup standard"
    assert store.load_markup("ctx", ContentLength.DETAILED).raw_markdown == "markup detailed"


def test_invalidate_all_variants(store: CacheStore, sample_strategy) -> None:
    for variant in ContentLength:
        store.save_markup(sample_strategy, "markup", "ctx", variant)
    store.save_markup(sample_strategy, "markup", "other", ContentLength.BRIEF)

    store.invalidate_all("ctx")

    assert all(store.load_markup("ctx", variant) is None for variant in ContentLength)
    assert store.load_markup("other", ContentLength.BRIEF) is not None


def test_stats_count_formats(store: CacheStore, sample_strategy, clock) -> None:
    store.save_markup(sample_strategy, "markup", "ctx", ContentLength.STANDARD)
    first_write = clock.now
    clock.advance(1000)
    store.save(sample_strategy, "legacy")

    stats = store.stats()

    assert (stats.total_entries, stats.markup_entries, stats.structured_entries) == (2, 1, 1)
    assert stats.oldest_entry == first_write


def test_empty_stats(store: CacheStore) -> None:
    assert store.stats().to_wire() == {
        "totalEntries": 0,
        "markupEntries": 0,
        "structuredEntries": 0,
        "oldestEntry": None,
    }


def test_expired_entries_are_evicted_on_read(store: CacheStore, sample_strategy, clock) -> None:
    store.save_markup(sample_strategy, "markup", "ctx", ContentLength.STANDARD)
    clock.advance(TTL_MS + 1)

    assert store.load_markup("ctx", ContentLength.STANDARD) is None
    assert "ctx-standard" not in store


def test_entries_at_the_ttl_boundary_are_still_served(store: CacheStore, sample_strategy, clock) -> None:
    store.save(sample_strategy, "key")
    clock.advance(TTL_MS)

    assert store.load("key") is not None


def test_structured_entry_is_not_a_markup_hit(store: CacheStore, sample_strategy) -> None:
    store.save(sample_strategy, cache_key("ctx", ContentLength.STANDARD))

    assert store.load_markup("ctx", ContentLength.STANDARD) is None
    assert "ctx-standard" in store


def test_markup_entry_without_markup_is_evicted(
    store: CacheStore, sample_strategy, clock, caplog: pytest.LogCaptureFixture
) -> None:
    store.put_many(
        {
            "ctx-standard": CacheEntry(
                structured_strategy=sample_strategy,
                timestamp=clock.now,
                format=CacheFormat.MARKUP,
            )
        }
    )

    with caplog.at_level("WARNING", logger="strategy_flow.cache"):
        assert store.load_markup("ctx", ContentLength.STANDARD) is None

    assert "ctx-standard" not in store
    assert "markup missing" in caplog.text


def test_writes_mirror_both_blobs(store: CacheStore, storage: InMemoryStorage, sample_strategy) -> None:
    store.save_markup(sample_strategy, "markup text", "ctx", ContentLength.DETAILED)
    store.save(sample_strategy, "plain")

    entries = json.loads(storage.read(ENTRIES_STORAGE_KEY))
    index = json.loads(storage.read(MARKUP_INDEX_STORAGE_KEY))

    assert set(entries) == {"ctx-detailed", "plain"}
    assert entries["ctx-detailed"]["format"] == "markup"
    assert entries["ctx-detailed"]["rawMarkup"] == "markup text"
    assert entries["ctx-detailed"]["structuredStrategy"]["id"] == sample_strategy.id
    assert entries["plain"]["format"] == "structured"
    assert set(index) == {"ctx-detailed"}
    assert index["ctx-detailed"]["markup"] == "markup text"
    assert index["ctx-detailed"]["contentLengthVariant"] == "detailed"


def test_cache_survives_a_restart(tmp_path, sample_strategy, clock) -> None:
    first = CacheStore(JsonFileStorage(tmp_path), ttl_ms=TTL_MS, clock=clock)
    first.save_markup(sample_strategy, "persisted markup", "ctx", ContentLength.BRIEF)

    second = CacheStore(JsonFileStorage(tmp_path), ttl_ms=TTL_MS, clock=clock)

    hit = second.load_markup("ctx", ContentLength.BRIEF)
    assert hit is not None
    assert hit.raw_markdown == "persisted markup"


def test_hydration_heals_markup_from_the_index(storage: InMemoryStorage, sample_strategy, clock) -> None:
    storage.write(
        ENTRIES_STORAGE_KEY,
        json.dumps(
            {
                "ctx-standard": {
                    "structuredStrategy": sample_strategy.to_wire(),
                    "timestamp": clock.now,
                    "contextHash": "abc",
                    "format": "json",
                }
            }
        ),
    )
    storage.write(
        MARKUP_INDEX_STORAGE_KEY,
        json.dumps({"ctx-standard": {"markdown": "healed markup", "timestamp": clock.now, "contentLength": "standard"}}),
    )

    store = CacheStore(storage, ttl_ms=TTL_MS, clock=clock)

    hit = store.load_markup("ctx", ContentLength.STANDARD)
    assert hit is not None
    assert hit.raw_markdown == "healed markup"


def test_hydration_drops_orphaned_index_entries(storage: InMemoryStorage, clock) -> None:
    storage.write(ENTRIES_STORAGE_KEY, json.dumps({}))
    storage.write(
        MARKUP_INDEX_STORAGE_KEY,
        json.dumps({"ghost-standard": {"markup": "orphan", "timestamp": clock.now}}),
    )

    store = CacheStore(storage, ttl_ms=TTL_MS, clock=clock)

    assert store.markup_index() == {}
    assert json.loads(storage.read(MARKUP_INDEX_STORAGE_KEY)) == {}


def test_hydration_sweeps_expired_and_unreadable_entries(storage: InMemoryStorage, sample_strategy, clock) -> None:
    storage.write(
        ENTRIES_STORAGE_KEY,
        json.dumps(
            {
                "old": {"structuredStrategy": sample_strategy.to_wire(), "timestamp": clock.now - 31 * DAY_MS},
                "broken": {"timestamp": "not a number"},
                "fresh": {"structuredStrategy": sample_strategy.to_wire(), "timestamp": clock.now},
            }
        ),
    )

    store = CacheStore(storage, ttl_ms=TTL_MS, clock=clock)

    assert set(store.entries()) == {"fresh"}
    assert set(json.loads(storage.read(ENTRIES_STORAGE_KEY))) == {"fresh"}


def test_corrupt_blob_starts_empty(storage: InMemoryStorage, clock, caplog: pytest.LogCaptureFixture) -> None:
    storage.write(ENTRIES_STORAGE_KEY, "{ not json")

    with caplog.at_level("ERROR", logger="strategy_flow.cache"):
        store = CacheStore(storage, ttl_ms=TTL_MS, clock=clock)

    assert len(store) == 0
    assert "Failed to load strategies cache" in caplog.text


def test_quota_failure_is_logged_and_memory_stays_authoritative(
    sample_strategy, clock, caplog: pytest.LogCaptureFixture
) -> None:
    store = CacheStore(InMemoryStorage(quota=10), ttl_ms=TTL_MS, clock=clock)

    with caplog.at_level("ERROR", logger="strategy_flow.cache"):
        persisted = store.save_markup(sample_strategy, "markup", "ctx", ContentLength.STANDARD)

    assert persisted is False
    assert "Failed to save markdown cache" in caplog.text
    assert store.load_markup("ctx", ContentLength.STANDARD) is not None


def test_list_entries_newest_first(store: CacheStore, sample_strategy, clock) -> None:
    store.save(sample_strategy, "older")
    clock.advance(5)
    store.save(sample_strategy, "newer")

    summaries = store.list_entries()

    assert [summary.key for summary in summaries] == ["newer", "older"]
    assert summaries[0].title == "Meal kit delivery for busy parents"


def test_clear_single_key_and_everything(store: CacheStore, sample_strategy) -> None:
    store.save(sample_strategy, "a")
    store.save(sample_strategy, "b")

    store.clear("a")
    assert set(store.entries()) == {"b"}

    store.clear()
    assert len(store) == 0


def test_build_cache_store_uses_settings(tmp_path, sample_strategy) -> None:
    persistent = build_cache_store(StrategySettings(storage_dir=str(tmp_path), cache_ttl_days=1))
    persistent.save(sample_strategy, "key")

    assert (tmp_path / f"{ENTRIES_STORAGE_KEY}.json").exists()
    assert len(build_cache_store(StrategySettings())) == 0


class IndexWriteFailingStorage(InMemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.fail_index_writes = False

    def write(self, key: str, value: str) -> None:
        if self.fail_index_writes and key == MARKUP_INDEX_STORAGE_KEY:
            raise StorageWriteFailed(key, "disk full")
        super().write(key, value)


def test_stale_index_markup_is_not_attached_to_a_newer_entry(strategy_factory, clock) -> None:
    storage = IndexWriteFailingStorage()
    store = CacheStore(storage, ttl_ms=TTL_MS, clock=clock)
    store.save_markup(strategy_factory(), "# Old markup\nstale", "ctx", ContentLength.STANDARD)

    storage.fail_index_writes = True
    clock.advance(1000)
    newer = strategy_factory("new-structured")
    assert store.save(newer, cache_key("ctx", ContentLength.STANDARD)) is False
    storage.fail_index_writes = False

    reopened = CacheStore(storage, ttl_ms=TTL_MS, clock=clock)

    assert reopened.load_markup("ctx", ContentLength.STANDARD) is None
    assert reopened.load("ctx-standard").id == "new-structured"
    assert json.loads(storage.read(MARKUP_INDEX_STORAGE_KEY)) == {}


def test_index_with_a_different_context_hash_is_not_healed(storage: InMemoryStorage, sample_strategy, clock) -> None:
    storage.write(
        ENTRIES_STORAGE_KEY,
        json.dumps(
            {"ctx-brief": {"structuredStrategy": sample_strategy.to_wire(), "timestamp": clock.now, "contextHash": "new"}}
        ),
    )
    storage.write(
        MARKUP_INDEX_STORAGE_KEY,
        json.dumps({"ctx-brief": {"markup": "other context", "timestamp": clock.now, "contextHash": "old"}}),
    )

    store = CacheStore(storage, ttl_ms=TTL_MS, clock=clock)

    assert store.load_markup("ctx", ContentLength.BRIEF) is None
    assert store.get_entry("ctx-brief").raw_markup is None


def test_expired_entries_are_not_counted_listed_or_copied(store: CacheStore, storage, sample_strategy, clock) -> None:
    store.save_markup(sample_strategy, "markup", "ctx", ContentLength.STANDARD)
    clock.advance(TTL_MS + 1)
    store.save(sample_strategy, "fresh")

    assert store.stats().total_entries == 1
    assert store.stats().markup_entries == 0
    assert [summary.key for summary in store.list_entries()] == ["fresh"]
    assert set(store.entries()) == {"fresh"}
    assert set(json.loads(storage.read(ENTRIES_STORAGE_KEY))) == {"fresh"}


def test_stats_ignore_entries_past_the_ttl(store: CacheStore, sample_strategy, clock) -> None:
    store.save_markup(sample_strategy, "markup", "ctx", ContentLength.STANDARD)
    clock.advance(31 * DAY_MS)

    assert store.stats().total_entries == 0
    assert store.list_entries() == []
