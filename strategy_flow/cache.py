"""Strategy cache partitioned by context id and content-length variant."""

from __future__ import annotations

import json
import logging
import time
from typing import Callable, Dict, List, Mapping

from pydantic import ValidationError

from .config import StrategySettings, get_settings
from .converter import context_hash
from .errors import StorageWriteFailed
from .schemas import (
    CacheEntry,
    CacheFormat,
    CachedStrategySummary,
    CacheStats,
    ContentLength,
    MarkupCacheHit,
    MarkupIndexEntry,
    StructuredStrategy,
)
from .storage import InMemoryStorage, JsonFileStorage, KeyValueStorage

logger = logging.getLogger(__name__)

ENTRIES_STORAGE_KEY = "gotomarket-v2-strategies"
MARKUP_INDEX_STORAGE_KEY = "gotomarket-v2-markdown-cache"


def now_ms() -> int:
    return int(time.time() * 1000)


def cache_key(context_id: str, variant: ContentLength | str) -> str:
    """Return the composite key used for a markup variant of a context."""

    return f"{context_id}-{ContentLength(variant).value}"


def _index_matches(indexed: MarkupIndexEntry, entry: CacheEntry) -> bool:
    """Whether an index record was written together with *entry*."""

    if indexed.timestamp != entry.timestamp:
        return False
    if indexed.context_hash and entry.context_hash:
        return indexed.context_hash == entry.context_hash
    return True


class CacheStore:
    """Keep cache entries in memory and mirror them to durable storage.

    Markup lives on the entry itself; the markup index written next to the
    entries blob is derived from it on every write, so the two blobs cannot
    drift apart inside one process. A failed write is logged and the
    in-memory map stays authoritative until the next successful write.
    Entries past the TTL are swept before any read or listing sees them.
    Concurrent writers in other processes are not detected (last write wins).
    """

    def __init__(
        self,
        storage: KeyValueStorage | None = None,
        *,
        ttl_ms: int | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._storage = storage if storage is not None else InMemoryStorage()
        self._ttl_ms = ttl_ms if ttl_ms is not None else get_settings().cache_ttl_ms
        self._clock = clock or now_ms
        self._entries: Dict[str, CacheEntry] = {}
        self._hydrate()

    # -- persistence --------------------------------------------------------

    def _read_blob(self, storage_key: str) -> Dict[str, object]:
        try:
            raw = self._storage.read(storage_key)
        except OSError as exc:
            logger.error("Failed to read %s: %s", storage_key, exc)
            return {}
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Failed to load strategies cache from %s: %s", storage_key, exc)
            return {}
        if not isinstance(parsed, dict):
            logger.error("Ignoring %s: expected an object, got %s", storage_key, type(parsed).__name__)
            return {}
        return parsed

    def _hydrate(self) -> None:
        dirty = False
        for key, value in self._read_blob(ENTRIES_STORAGE_KEY).items():
            try:
                self._entries[key] = CacheEntry.model_validate(value)
            except ValidationError as exc:
                logger.warning("Dropping unreadable cache entry %s: %s", key, exc.error_count())
                dirty = True

        for key, value in self._read_blob(MARKUP_INDEX_STORAGE_KEY).items():
            entry = self._entries.get(key)
            try:
                indexed = MarkupIndexEntry.model_validate(value)
            except ValidationError:
                logger.warning("Dropping unreadable markup index entry %s", key)
                dirty = True
                continue
            if entry is None:
                # Orphaned by a write that only half landed.
                dirty = True
                continue
            if not entry.raw_markup:
                if not _index_matches(indexed, entry):
                    logger.warning("Dropping stale markup index entry %s", key)
                    dirty = True
                    continue
                self._entries[key] = entry.model_copy(
                    update={
                        "raw_markup": indexed.markup,
                        "format": CacheFormat.MARKUP,
                        "content_length_variant": entry.content_length_variant or indexed.content_length_variant,
                    }
                )
                dirty = True

        if self._drop_expired():
            dirty = True
        if dirty:
            self._persist()

    def markup_index(self) -> Dict[str, MarkupIndexEntry]:
        """Derive the markup-only view of every markup entry."""

        return {
            key: MarkupIndexEntry(
                markup=entry.raw_markup or "",
                timestamp=entry.timestamp,
                content_length_variant=entry.content_length_variant or ContentLength.STANDARD,
                context_hash=entry.context_hash,
            )
            for key, entry in self._entries.items()
            if entry.has_markup
        }

    def _persist(self) -> bool:
        entries_blob = json.dumps({key: entry.to_wire() for key, entry in self._entries.items()})
        index_blob = json.dumps({key: entry.to_wire() for key, entry in self.markup_index().items()})
        try:
            self._storage.write(ENTRIES_STORAGE_KEY, entries_blob)
            self._storage.write(MARKUP_INDEX_STORAGE_KEY, index_blob)
        except (StorageWriteFailed, OSError) as exc:
            logger.error("Failed to save markdown cache: %s", exc)
            return False
        return True

    # -- expiry -------------------------------------------------------------

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp > self._ttl_ms

    def _drop_expired(self) -> int:
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("Swept %d expired cache entries", len(expired))
        return len(expired)

    def sweep_expired(self) -> int:
        """Remove expired entries and persist when anything was dropped."""

        removed = self._drop_expired()
        if removed:
            self._persist()
        return removed

    def _evict(self, key: str) -> None:
        self._entries.pop(key, None)
        self._persist()

    # -- writes -------------------------------------------------------------

    def save(self, strategy: StructuredStrategy, key: str) -> bool:
        """Store a structured-only entry under *key*."""

        self._entries[key] = CacheEntry(
            structured_strategy=strategy.model_copy(deep=True),
            timestamp=self._clock(),
            context_hash=context_hash(strategy.business_context),
            format=CacheFormat.STRUCTURED,
        )
        return self._persist()

    def save_markup(
        self,
        strategy: StructuredStrategy,
        raw_markup: str,
        context_id: str,
        variant: ContentLength | str,
    ) -> bool:
        """Store a strategy with its markup under ``<context_id>-<variant>``."""

        variant = ContentLength(variant)
        self._entries[cache_key(context_id, variant)] = CacheEntry(
            structured_strategy=strategy.model_copy(deep=True),
            timestamp=self._clock(),
            context_hash=context_hash(strategy.business_context),
            format=CacheFormat.MARKUP,
            content_length_variant=variant,
            raw_markup=raw_markup,
        )
        return self._persist()

    def put_many(self, entries: Mapping[str, CacheEntry]) -> bool:
        """Replace the entries at the given keys wholesale in one write."""

        for key, entry in entries.items():
            self._entries[key] = entry.model_copy(deep=True)
        return self._persist()

    def invalidate(self, context_id: str, variant: ContentLength | str | None = None) -> bool:
        """Drop one variant of a context, or every variant when omitted."""

        variants = [ContentLength(variant)] if variant is not None else list(ContentLength)
        removed = [key for key in (cache_key(context_id, item) for item in variants) if key in self._entries]
        if not removed:
            return True
        for key in removed:
            del self._entries[key]
        return self._persist()

    def invalidate_all(self, context_id: str) -> bool:
        return self.invalidate(context_id)

    def clear(self, key: str | None = None) -> bool:
        """Remove one entry by key, or everything."""

        if key is None:
            self._entries.clear()
        elif self._entries.pop(key, None) is None:
            return True
        return self._persist()

    # -- reads --------------------------------------------------------------

    def load(self, key: str) -> StructuredStrategy | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            self._evict(key)
            return None
        return entry.structured_strategy.model_copy(deep=True)

    def load_markup(self, context_id: str, variant: ContentLength | str) -> MarkupCacheHit | None:
        """Return the strategy and markup for a variant, or ``None``.

        Expired entries and markup-tagged entries that lost their markup are
        evicted so no half-written state is served later.
        """

        key = cache_key(context_id, variant)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            self._evict(key)
            return None
        if not entry.has_markup:
            if entry.format is CacheFormat.MARKUP:
                logger.warning("Evicting cache entry %s: markup missing", key)
                self._evict(key)
            return None
        return MarkupCacheHit(
            strategies=entry.structured_strategy.model_copy(deep=True),
            raw_markdown=entry.raw_markup or "",
        )

    def get_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        return entry.model_copy(deep=True) if entry is not None else None

    def entries(self) -> Dict[str, CacheEntry]:
        """Return a deep copy of every entry keyed by cache key."""

        self.sweep_expired()
        return {key: entry.model_copy(deep=True) for key, entry in self._entries.items()}

    def stats(self) -> CacheStats:
        self.sweep_expired()
        markup = sum(1 for entry in self._entries.values() if entry.format is CacheFormat.MARKUP)
        return CacheStats(
            total_entries=len(self._entries),
            markup_entries=markup,
            structured_entries=len(self._entries) - markup,
            oldest_entry=min((entry.timestamp for entry in self._entries.values()), default=None),
        )

    def list_entries(self) -> List[CachedStrategySummary]:
        """Summarise cached strategies, newest first."""

        self.sweep_expired()
        summaries = []
        for key, entry in self._entries.items():
            context = entry.structured_strategy.business_context
            summaries.append(
                CachedStrategySummary(
                    key=key,
                    title=(context.business_idea if context else "") or key,
                    timestamp=entry.timestamp,
                )
            )
        return sorted(summaries, key=lambda summary: summary.timestamp, reverse=True)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


def build_cache_store(settings: StrategySettings | None = None) -> CacheStore:
    """Create a store backed by the configured storage directory."""

    settings = settings or get_settings()
    storage: KeyValueStorage
    if settings.is_persistent:
        storage = JsonFileStorage(settings.storage_dir)
    else:
        storage = InMemoryStorage()
    return CacheStore(storage, ttl_ms=settings.cache_ttl_ms)
