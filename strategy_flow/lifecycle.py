"""Export, import and in-place migration of the strategy cache.

Three snapshot shapes are accepted:

* enhanced: ``{"version", "entries", "markupIndex", "exportedAt"}`` (earlier
  releases wrote ``strategies`` / ``markdownCache`` for the two maps);
* legacy dual-cache: the same two sibling maps without a version tag;
* legacy flat: ``{context_id: {"strategies", "timestamp", "contextHash"}}``.

Entries are processed one at a time; a bad entry is logged and skipped and
never aborts the rest of the import.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Tuple

from pydantic import ValidationError

from .cache import CacheStore, now_ms
from .converter import StrategyConverter, context_hash, detect_format
from .errors import ConversionValidationFailed, ImportEntrySkipped, ImportMalformed, InvalidInput
from .schemas import (
    LEGACY_FORMAT_TAGS,
    CacheEntry,
    CacheFormat,
    CacheSnapshot,
    ContentLength,
    MarkupStrategy,
    StructuredStrategy,
)

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "2.0"

# (entries map, markup index map) names, current first.
SNAPSHOT_MAP_KEYS = (("entries", "markupIndex"), ("strategies", "markdownCache"))

EntryHandler = Callable[[str, Any, Any], CacheEntry]


def _format_tag(value: Any) -> CacheFormat | None:
    if isinstance(value, str):
        value = LEGACY_FORMAT_TAGS.get(value, value)
        try:
            return CacheFormat(value)
        except ValueError:
            return None
    return None


def _variant(*candidates: Any) -> ContentLength | None:
    for candidate in candidates:
        if candidate is None:
            continue
        try:
            return ContentLength(candidate)
        except ValueError:
            continue
    return None


def _index_field(indexed: Any, *names: str) -> Any:
    if not isinstance(indexed, dict):
        return None
    for name in names:
        if indexed.get(name) is not None:
            return indexed[name]
    return None


class CacheLifecycleManager:
    """Move cache contents between processes and between schema versions."""

    def __init__(
        self,
        store: CacheStore,
        converter: StrategyConverter | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._store = store
        self._converter = converter or StrategyConverter()
        self._clock = clock or now_ms

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def converter(self) -> StrategyConverter:
        return self._converter

    # -- export -------------------------------------------------------------

    def export(self) -> str:
        """Serialise the whole cache as a versioned snapshot document."""

        snapshot = CacheSnapshot(
            entries=self._store.entries(),
            markup_index=self._store.markup_index(),
            exported_at=datetime.now(timezone.utc).isoformat(),
            version=SNAPSHOT_VERSION,
        )
        return json.dumps(snapshot.to_wire(), indent=2)

    # -- import -------------------------------------------------------------

    def import_snapshot(self, data: str | Mapping[str, Any]) -> bool:
        """Merge a snapshot into the cache.

        Returns ``False`` only when the document itself cannot be read, in
        which case nothing is imported. Skipped entries are logged as
        warnings and the import still counts as a success.
        """

        try:
            document = self._parse(data)
            entries, index, handler = self._select_shape(document)
        except ImportMalformed as exc:
            logger.error("Failed to import cache: %s", exc)
            return False

        imported: Dict[str, CacheEntry] = {}
        skipped = 0
        for key, raw in entries.items():
            try:
                imported[key] = handler(key, raw, index.get(key))
            except ImportEntrySkipped as exc:
                skipped += 1
                logger.warning("%s", exc)

        if imported:
            self._store.put_many(imported)
            self._store.sweep_expired()
        logger.info("Imported %d cache entries, skipped %d", len(imported), skipped)
        return True

    def _parse(self, data: str | Mapping[str, Any]) -> Dict[str, Any]:
        if isinstance(data, (str, bytes)):
            try:
                document = json.loads(data)
            except json.JSONDecodeError as exc:
                raise ImportMalformed(f"Snapshot is not valid JSON: {exc}") from exc
        else:
            document = data
        if not isinstance(document, Mapping):
            raise ImportMalformed("Snapshot must be a JSON object")
        return dict(document)

    def _select_shape(self, document: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any], EntryHandler]:
        if "version" in document:
            for entries_key, index_key in SNAPSHOT_MAP_KEYS:
                if entries_key in document:
                    entries = document[entries_key]
                    index = document.get(index_key) or {}
                    if not isinstance(entries, dict) or not isinstance(index, dict):
                        raise ImportMalformed("Snapshot maps must be JSON objects")
                    return entries, index, self._enhanced_entry
            return {}, {}, self._enhanced_entry

        for entries_key, index_key in SNAPSHOT_MAP_KEYS:
            entries = document.get(entries_key)
            index = document.get(index_key)
            if isinstance(entries, dict) and isinstance(index, dict):
                return entries, index, self._dual_cache_entry

        return document, {}, self._flat_entry

    # -- per-entry handlers -------------------------------------------------

    def _strategy(self, key: str, payload: Any) -> StructuredStrategy:
        try:
            return StructuredStrategy.model_validate(payload)
        except ValidationError as exc:
            raise ImportEntrySkipped(key, f"Invalid entry {key}, skipping") from exc

    def _timestamp(self, raw: Mapping[str, Any]) -> int:
        timestamp = raw.get("timestamp")
        if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool) and timestamp > 0:
            return int(timestamp)
        return self._clock()

    def _enhanced_entry(self, key: str, raw: Any, indexed: Any) -> CacheEntry:
        if not isinstance(raw, dict):
            raise ImportEntrySkipped(key, f"Unknown format for entry {key}, skipping")

        payload = raw.get("structuredStrategy", raw.get("strategies"))
        tag = _format_tag(raw.get("format"))
        markup = raw.get("rawMarkup") or raw.get("rawMarkdown") or _index_field(indexed, "markup", "markdown")
        variant = _variant(
            raw.get("contentLengthVariant"),
            raw.get("contentLength"),
            _index_field(indexed, "contentLengthVariant", "contentLength"),
        )
        timestamp = self._timestamp(raw)

        if tag is CacheFormat.MARKUP and markup and isinstance(payload, dict):
            strategy = self._strategy(key, payload)
            return CacheEntry(
                structured_strategy=strategy,
                timestamp=timestamp,
                context_hash=raw.get("contextHash") or context_hash(strategy.business_context),
                format=CacheFormat.MARKUP,
                content_length_variant=variant or ContentLength.STANDARD,
                raw_markup=markup,
            )

        detected = detect_format(payload)
        if detected is CacheFormat.MARKUP:
            return self._from_markup_payload(key, payload, raw, timestamp)
        if detected is CacheFormat.STRUCTURED:
            strategy = self._strategy(key, payload)
            return self._convert_structured(key, strategy, timestamp, raw.get("contextHash"), variant)
        raise ImportEntrySkipped(key, f"Unknown format for entry {key}, skipping")

    def _dual_cache_entry(self, key: str, raw: Any, indexed: Any) -> CacheEntry:
        try:
            entry = CacheEntry.model_validate(raw)
        except ValidationError as exc:
            raise ImportEntrySkipped(key, f"Invalid entry {key}, skipping") from exc

        markup = _index_field(indexed, "markup", "markdown")
        if not entry.raw_markup and markup:
            entry = entry.model_copy(
                update={
                    "raw_markup": markup,
                    "format": CacheFormat.MARKUP,
                    "content_length_variant": entry.content_length_variant
                    or _variant(_index_field(indexed, "contentLengthVariant", "contentLength"))
                    or ContentLength.STANDARD,
                }
            )
        return entry

    def _flat_entry(self, key: str, raw: Any, indexed: Any) -> CacheEntry:
        if not isinstance(raw, dict) or not (raw.get("strategies") and raw.get("timestamp") and raw.get("contextHash")):
            raise ImportEntrySkipped(key, f"Invalid legacy entry {key}, skipping")

        payload = raw["strategies"]
        timestamp = self._timestamp(raw)
        detected = detect_format(payload)
        if detected is CacheFormat.MARKUP:
            return self._from_markup_payload(key, payload, raw, timestamp)
        if detected is None:
            raise ImportEntrySkipped(key, f"Unknown format for entry {key}, skipping")
        strategy = self._strategy(key, payload)
        return self._convert_structured(key, strategy, timestamp, raw["contextHash"], None)

    def _from_markup_payload(self, key: str, payload: Any, raw: Mapping[str, Any], timestamp: int) -> CacheEntry:
        try:
            markup_strategy = MarkupStrategy.model_validate(payload)
        except ValidationError as exc:
            raise ImportEntrySkipped(key, f"Invalid entry {key}, skipping") from exc

        result = self._converter.to_structured(markup_strategy)
        strategy = result.data or StructuredStrategy(id=markup_strategy.id)
        return CacheEntry(
            structured_strategy=strategy,
            timestamp=timestamp,
            context_hash=raw.get("contextHash") or context_hash(markup_strategy.business_context),
            format=CacheFormat.MARKUP,
            content_length_variant=markup_strategy.metadata.content_length,
            raw_markup=markup_strategy.raw_markup,
        )

    def _convert_structured(
        self,
        key: str,
        strategy: StructuredStrategy,
        timestamp: int,
        stored_hash: str | None,
        variant: ContentLength | None,
    ) -> CacheEntry:
        """Attach markup when the forward conversion succeeds, else keep structured."""

        entry_hash = stored_hash or context_hash(strategy.business_context)
        try:
            converted = self._converter.to_markup(strategy, variant or ContentLength.STANDARD)
        except (InvalidInput, ConversionValidationFailed) as exc:
            logger.warning("Keeping entry %s as structured: %s", key, exc)
            return CacheEntry(
                structured_strategy=strategy,
                timestamp=timestamp,
                context_hash=entry_hash,
                format=CacheFormat.STRUCTURED,
                content_length_variant=variant,
            )
        return CacheEntry(
            structured_strategy=strategy,
            timestamp=timestamp,
            context_hash=entry_hash,
            format=CacheFormat.MARKUP,
            content_length_variant=converted.metadata.content_length,
            raw_markup=converted.raw_markup,
        )

    # -- migration ----------------------------------------------------------

    def migrate(self) -> int:
        """Bring every entry to the markup format in place.

        Untagged entries that already carry markup are tagged as markup;
        the rest count as structured. Structured entries without markup go
        through the recovery-aware conversion; creation timestamps
        are kept so migration never extends an entry's lifetime. Running it
        again changes nothing. Returns the number of rewritten entries.
        """

        rewritten: Dict[str, CacheEntry] = {}
        for key, entry in self._store.entries().items():
            if entry.format is CacheFormat.MARKUP and entry.raw_markup:
                continue
            if entry.raw_markup:
                if entry.format is None:
                    rewritten[key] = entry.model_copy(
                        update={
                            "format": CacheFormat.MARKUP,
                            "content_length_variant": entry.content_length_variant or ContentLength.STANDARD,
                        }
                    )
                continue

            variant = entry.content_length_variant or ContentLength.STANDARD
            converted = self._converter.to_markup_with_recovery(entry.structured_strategy, variant)
            rewritten[key] = entry.model_copy(
                update={
                    "format": CacheFormat.MARKUP,
                    "raw_markup": converted.raw_markup,
                    "content_length_variant": variant,
                    "context_hash": entry.context_hash or context_hash(entry.structured_strategy.business_context),
                }
            )

        if rewritten:
            self._store.put_many(rewritten)
            logger.info("Migrated %d cache entries", len(rewritten))
        return len(rewritten)
