"""Strategy conversion and cache endpoints for the strategy_flow backend."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from ..cache import build_cache_store, cache_key
from ..errors import ConversionValidationFailed, InvalidInput
from ..extraction import parse_markdown_response
from ..insights import action_plan, query_strategy, strategy_summary
from ..lifecycle import CacheLifecycleManager
from ..schemas import (
    ActionPlan,
    CachedStrategySummary,
    CacheStats,
    CacheWriteRequest,
    ContentLength,
    ConversionResult,
    ImportResponse,
    MarkupCacheHit,
    MarkupRequest,
    MarkupStrategy,
    MigrateResponse,
    ParseRequest,
    StrategyQuery,
    StrategySummary,
    StructuredStrategy,
)


router = APIRouter(prefix="/strategy", tags=["strategy"])


@lru_cache(maxsize=1)
def get_lifecycle_manager() -> CacheLifecycleManager:
    """Return the process-wide cache manager built from settings."""

    return CacheLifecycleManager(build_cache_store())


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    """Simple health check endpoint."""

    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


@router.post("/markup", response_model=MarkupStrategy)
async def convert_to_markup(
    payload: MarkupRequest,
    manager: CacheLifecycleManager = Depends(get_lifecycle_manager),
) -> MarkupStrategy:
    """Render a structured strategy as markup with its section index."""

    converter = manager.converter
    if payload.recover:
        return converter.to_markup_with_recovery(payload.strategy, payload.content_length)
    try:
        return converter.to_markup(payload.strategy, payload.content_length)
    except InvalidInput as exc:
        raise HTTPException(status_code=422, detail={"message": str(exc), "errors": exc.errors}) from exc
    except ConversionValidationFailed as exc:
        raise HTTPException(status_code=422, detail={"message": str(exc), "warnings": exc.warnings}) from exc


@router.post("/structured", response_model=ConversionResult)
async def convert_to_structured(
    payload: MarkupStrategy,
    manager: CacheLifecycleManager = Depends(get_lifecycle_manager),
) -> ConversionResult:
    """Rebuild a structured strategy from markup."""

    return manager.converter.to_structured(payload)


@router.post("/parse", response_model=StructuredStrategy)
async def parse_markdown(
    payload: ParseRequest,
    manager: CacheLifecycleManager = Depends(get_lifecycle_manager),
) -> StructuredStrategy:
    """Extract a structured strategy from free-form markdown."""

    return parse_markdown_response(payload.markdown, payload.business_context, manager.converter.extractor)


# ---------------------------------------------------------------------------
# Progress and planning
# ---------------------------------------------------------------------------


@router.post("/summary", response_model=StrategySummary)
async def summarise_strategy(strategy: StructuredStrategy) -> StrategySummary:
    """Count items and report completion per category."""

    return strategy_summary(strategy)


@router.post("/action-plan", response_model=ActionPlan)
async def plan_next_actions(strategy: StructuredStrategy) -> ActionPlan:
    return action_plan(strategy)


@router.post("/query", response_model=StructuredStrategy)
async def query_strategies(payload: StrategyQuery) -> StructuredStrategy:
    """Filter by status, search, then sort the marketing, sales and pricing lists."""

    return query_strategy(payload.strategy, status=payload.status, query=payload.query, sort_by=payload.sort_by)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


@router.get("/cache/stats", response_model=CacheStats)
async def cache_stats(manager: CacheLifecycleManager = Depends(get_lifecycle_manager)) -> CacheStats:
    return manager.store.stats()


@router.get("/cache/entries", response_model=list[CachedStrategySummary])
async def cache_entries(
    manager: CacheLifecycleManager = Depends(get_lifecycle_manager),
) -> list[CachedStrategySummary]:
    """List cached strategies, newest first."""

    return manager.store.list_entries()


@router.get("/cache/export")
async def export_cache(manager: CacheLifecycleManager = Depends(get_lifecycle_manager)) -> Response:
    """Download the whole cache as a versioned snapshot."""

    return Response(content=manager.export(), media_type="application/json")


@router.post("/cache/import", response_model=ImportResponse)
async def import_cache(
    request: Request,
    manager: CacheLifecycleManager = Depends(get_lifecycle_manager),
) -> ImportResponse:
    """Merge an uploaded snapshot into the cache."""

    # Read the raw body so unparseable snapshots reach the importer's own handling.
    body = (await request.body()).decode("utf-8", errors="replace")
    if not manager.import_snapshot(body):
        raise HTTPException(status_code=400, detail="Failed to import cache.")
    return ImportResponse(success=True, total_entries=len(manager.store))


@router.post("/cache/migrate", response_model=MigrateResponse)
async def migrate_cache(manager: CacheLifecycleManager = Depends(get_lifecycle_manager)) -> MigrateResponse:
    """Convert every structured-only entry to markup in place."""

    return MigrateResponse(migrated=manager.migrate())


@router.put("/cache/{context_id}/{variant}")
async def store_strategy(
    context_id: str,
    variant: ContentLength,
    payload: CacheWriteRequest,
    manager: CacheLifecycleManager = Depends(get_lifecycle_manager),
) -> dict[str, Any]:
    """Cache a strategy for one content-length variant of a context."""

    store = manager.store
    if payload.raw_markup:
        persisted = store.save_markup(payload.strategy, payload.raw_markup, context_id, variant)
    else:
        persisted = store.save(payload.strategy, cache_key(context_id, variant))
    return {"key": cache_key(context_id, variant), "persisted": persisted}


@router.get("/cache/{context_id}/{variant}", response_model=MarkupCacheHit)
async def fetch_cached_markup(
    context_id: str,
    variant: ContentLength,
    manager: CacheLifecycleManager = Depends(get_lifecycle_manager),
) -> MarkupCacheHit:
    """Return the cached markup for a variant of a context."""

    hit = manager.store.load_markup(context_id, variant)
    if hit is None:
        raise HTTPException(
            status_code=404,
            detail=f"No cached markup for '{context_id}' ({variant.value}).",
        )
    return hit


@router.delete("/cache/{context_id}")
async def invalidate_cache(
    context_id: str,
    variant: Optional[ContentLength] = None,
    manager: CacheLifecycleManager = Depends(get_lifecycle_manager),
) -> dict[str, Any]:
    """Drop one variant of a context, or all of them when none is given."""

    persisted = manager.store.invalidate(context_id, variant)
    return {"contextId": context_id, "persisted": persisted}
