from __future__ import annotations

import json

import pytest

from strategy_flow.cache import CacheStore
from strategy_flow.lifecycle import SNAPSHOT_VERSION, CacheLifecycleManager
from strategy_flow.schemas import CacheEntry, CacheFormat, ContentLength, StructuredStrategy
from strategy_flow.storage import InMemoryStorage

TTL_MS = 30 * 24 * 60 * 60 * 1000


@pytest.fixture
def manager(store: CacheStore, converter, clock) -> CacheLifecycleManager:
    return CacheLifecycleManager(store, converter, clock=clock)


@pytest.fixture
def fresh_manager(converter, clock) -> CacheLifecycleManager:
    return CacheLifecycleManager(CacheStore(InMemoryStorage(), ttl_ms=TTL_MS, clock=clock), converter, clock=clock)


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def test_export_writes_versioned_snapshot(manager: CacheLifecycleManager, sample_strategy) -> None:
    manager.store.save_markup(sample_strategy, "# Marketing Strategy\ntext", "ctx", ContentLength.BRIEF)
    manager.store.save(sample_strategy, "plain")

    snapshot = json.loads(manager.export())

    assert set(snapshot) == {"entries", "markupIndex", "exportedAt", "version"}
    assert snapshot["version"] == SNAPSHOT_VERSION
    assert set(snapshot["entries"]) == {"ctx-brief", "plain"}
    assert set(snapshot["markupIndex"]) == {"ctx-brief"}
    assert snapshot["markupIndex"]["ctx-brief"]["contentLengthVariant"] == "brief"


def test_export_then_import_restores_entries(
    manager: CacheLifecycleManager, fresh_manager: CacheLifecycleManager, sample_strategy
) -> None:
    manager.store.save_markup(sample_strategy, "# Marketing Strategy\ntext", "ctx", ContentLength.DETAILED)

    assert fresh_manager.import_snapshot(manager.export())

    hit = fresh_manager.store.load_markup("ctx", ContentLength.DETAILED)
    assert hit is not None
    assert hit.raw_markdown == "# Marketing Strategy\ntext"
    assert hit.strategies == sample_strategy


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def test_invalid_json_fails_and_logs(manager: CacheLifecycleManager, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("ERROR", logger="strategy_flow.lifecycle"):
        assert manager.import_snapshot("{ invalid json }") is False

    assert "Failed to import cache" in caplog.text
    assert len(manager.store) == 0


def test_non_object_snapshot_fails(manager: CacheLifecycleManager) -> None:
    assert manager.import_snapshot("[1, 2, 3]") is False


def test_flat_legacy_import_skips_bad_entries(
    manager: CacheLifecycleManager, sample_strategy, clock, caplog: pytest.LogCaptureFixture
) -> None:
    snapshot = {
        "valid-entry": {"strategies": sample_strategy.to_wire(), "timestamp": clock.now, "contextHash": "abc"},
        "invalid-entry": {"strategies": sample_strategy.to_wire(), "timestamp": clock.now},
    }

    with caplog.at_level("WARNING", logger="strategy_flow.lifecycle"):
        assert manager.import_snapshot(json.dumps(snapshot)) is True

    assert set(manager.store.entries()) == {"valid-entry"}
    assert "invalid-entry" in caplog.text
    assert "Invalid legacy entry invalid-entry, skipping" in caplog.text

    entry = manager.store.get_entry("valid-entry")
    assert entry.format is CacheFormat.MARKUP
    assert entry.raw_markup.startswith("# Marketing Strategy")
    assert entry.timestamp == clock.now
    assert entry.context_hash == "abc"


def test_enhanced_import_converts_structured_entries(
    manager: CacheLifecycleManager, sample_strategy, clock
) -> None:
    snapshot = {
        "version": "2.0",
        "exportedAt": "2024-01-01T00:00:00+00:00",
        "entries": {
            "ctx-standard": {
                "structuredStrategy": sample_strategy.to_wire(),
                "timestamp": clock.now,
                "contextHash": "h",
                "format": "structured",
            }
        },
        "markupIndex": {},
    }

    assert manager.import_snapshot(snapshot)

    hit = manager.store.load_markup("ctx", ContentLength.STANDARD)
    assert hit is not None
    assert "## Online Store" in hit.raw_markdown


def test_enhanced_import_keeps_unconvertible_entries_structured(
    manager: CacheLifecycleManager, clock, caplog: pytest.LogCaptureFixture
) -> None:
    broken = StructuredStrategy(id="").to_wire()
    snapshot = {
        "version": "2.0",
        "entries": {"broken-standard": {"structuredStrategy": broken, "timestamp": clock.now, "format": "json"}},
    }

    with caplog.at_level("WARNING", logger="strategy_flow.lifecycle"):
        assert manager.import_snapshot(snapshot)

    entry = manager.store.get_entry("broken-standard")
    assert entry is not None
    assert entry.format is CacheFormat.STRUCTURED
    assert entry.raw_markup is None
    assert "Keeping entry broken-standard as structured" in caplog.text


def test_enhanced_import_skips_unknown_payloads(
    manager: CacheLifecycleManager, clock, caplog: pytest.LogCaptureFixture
) -> None:
    snapshot = {
        "version": "2.0",
        "entries": {"mystery": {"structuredStrategy": {"unexpected": True}, "timestamp": clock.now}},
    }

    with caplog.at_level("WARNING", logger="strategy_flow.lifecycle"):
        assert manager.import_snapshot(snapshot)

    assert len(manager.store) == 0
    assert "Unknown format for entry mystery, skipping" in caplog.text


def test_enhanced_import_accepts_markup_payloads(
    manager: CacheLifecycleManager, converter, sample_strategy, clock
) -> None:
    markup = converter.to_markup(sample_strategy, ContentLength.BRIEF)
    snapshot = {
        "version": "2.0",
        "strategies": {"ctx-brief": {"strategies": markup.to_wire(), "timestamp": clock.now}},
    }

    assert manager.import_snapshot(snapshot)

    entry = manager.store.get_entry("ctx-brief")
    assert entry.format is CacheFormat.MARKUP
    assert entry.content_length_variant is ContentLength.BRIEF
    assert entry.raw_markup == markup.raw_markup
    assert [channel.name for channel in entry.structured_strategy.sales_channels] == ["Online Store"]


def test_legacy_dual_cache_import_merges_markup(manager: CacheLifecycleManager, sample_strategy, clock) -> None:
    snapshot = {
        "strategies": {
            "ctx-brief": {
                "strategies": sample_strategy.to_wire(),
                "timestamp": clock.now,
                "contextHash": "h",
                "format": "json",
            },
            "bad": {"timestamp": clock.now},
        },
        "markdownCache": {
            "ctx-brief": {"markdown": "# Legacy markup", "timestamp": clock.now, "contentLength": "brief"},
        },
    }

    assert manager.import_snapshot(json.dumps(snapshot))

    assert set(manager.store.entries()) == {"ctx-brief"}
    hit = manager.store.load_markup("ctx", ContentLength.BRIEF)
    assert hit is not None
    assert hit.raw_markdown == "# Legacy markup"


def test_import_merges_with_existing_entries(manager: CacheLifecycleManager, sample_strategy, clock) -> None:
    manager.store.save(sample_strategy, "existing")
    snapshot = {"new": {"strategies": sample_strategy.to_wire(), "timestamp": clock.now, "contextHash": "abc"}}

    assert manager.import_snapshot(snapshot)

    assert set(manager.store.entries()) == {"existing", "new"}


def test_import_drops_expired_entries(manager: CacheLifecycleManager, sample_strategy, clock) -> None:
    snapshot = {
        "stale": {"strategies": sample_strategy.to_wire(), "timestamp": clock.now - TTL_MS - 1, "contextHash": "a"},
        "fresh": {"strategies": sample_strategy.to_wire(), "timestamp": clock.now, "contextHash": "b"},
    }

    assert manager.import_snapshot(snapshot)

    assert set(manager.store.entries()) == {"fresh"}


# ---------------------------------------------------------------------------
# Migration
# ---------------------------------------------------------------------------


def test_migrate_converts_structured_entries(manager: CacheLifecycleManager, sample_strategy, clock) -> None:
    store = manager.store
    store.save(sample_strategy, "ctx-standard")
    store.save(StructuredStrategy(id="broken"), "broken-standard")
    store.put_many(
        {
            "untagged-brief": CacheEntry(
                structured_strategy=sample_strategy,
                timestamp=clock.now - 1000,
                content_length_variant=ContentLength.BRIEF,
            )
        }
    )

    assert manager.migrate() == 3

    assert store.load_markup("ctx", ContentLength.STANDARD).raw_markdown.startswith("# Marketing Strategy")
    assert "# Go-to-Market Strategy" in store.load_markup("broken", ContentLength.STANDARD).raw_markdown
    untagged = store.get_entry("untagged-brief")
    assert untagged.format is CacheFormat.MARKUP
    assert untagged.timestamp == clock.now - 1000
    assert set(store.markup_index()) == {"ctx-standard", "broken-standard", "untagged-brief"}
    assert store.stats().structured_entries == 0


def test_migrate_is_idempotent(manager: CacheLifecycleManager, sample_strategy) -> None:
    manager.store.save(sample_strategy, "ctx-standard")
    manager.store.save_markup(sample_strategy, "already markup", "ctx", ContentLength.BRIEF)

    assert manager.migrate() == 1
    after_first = manager.store.entries()

    assert manager.migrate() == 0
    assert manager.store.entries() == after_first
    assert manager.store.get_entry("ctx-brief").raw_markup == "already markup"


def test_migrate_tags_untagged_entries_that_carry_markup(manager: CacheLifecycleManager, sample_strategy, clock) -> None:
    snapshot = {
        "strategies": {
            "ctx-detailed": {
                "strategies": sample_strategy.to_wire(),
                "timestamp": clock.now,
                "rawMarkdown": "# Marketing Strategy\nkept as written",
                "contentLength": "detailed",
            }
        },
        "markdownCache": {},
    }
    assert manager.import_snapshot(snapshot)

    assert manager.migrate() == 1

    hit = manager.store.load_markup("ctx", ContentLength.DETAILED)
    assert hit is not None
    assert hit.raw_markdown == "# Marketing Strategy\nkept as written"
    assert manager.store.stats().markup_entries == 1
    assert set(manager.store.markup_index()) == {"ctx-detailed"}
    assert manager.migrate() == 0
