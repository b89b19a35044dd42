"""Progress, budget and planning views over a structured strategy."""

from __future__ import annotations

import math
import re
from typing import Any, Iterable, List, Sequence

from .schemas import (
    ActionItem,
    ActionPlan,
    BudgetTotal,
    CategoryProgress,
    MarketingStrategy,
    PricingStrategy,
    SalesChannel,
    SectionType,
    SortKey,
    StatusFilter,
    StrategySummary,
    StructuredStrategy,
)

AMOUNT_PATTERN = re.compile(r"[\d,]+")
DIFFICULTY_ORDER = {"low": 1, "medium": 2, "high": 3}
DIFFICULTY_PRIORITY = {"low": 3, "medium": 2}
PHASED_BUDGET_THRESHOLD = 50_000


def _round(value: float) -> int:
    # Halves round up, never to even.
    return int(math.floor(value + 0.5))


def _percent_completed(items: Sequence[Any]) -> int:
    if not items:
        return 0
    completed = sum(1 for item in items if item.completed)
    return _round(completed / len(items) * 100)


def _tracked_items(strategy: StructuredStrategy) -> List[Any]:
    return [*strategy.marketing_strategies, *strategy.sales_channels, *strategy.pricing_strategies]


def calculate_overall_progress(strategy: StructuredStrategy) -> int:
    """Percentage of completed marketing, sales and pricing items."""

    return _percent_completed(_tracked_items(strategy))


def progress_by_category(strategy: StructuredStrategy) -> CategoryProgress:
    return CategoryProgress(
        marketing=_percent_completed(strategy.marketing_strategies),
        sales=_percent_completed(strategy.sales_channels),
        pricing=_percent_completed(strategy.pricing_strategies),
        overall=calculate_overall_progress(strategy),
    )


def strategy_summary(strategy: StructuredStrategy) -> StrategySummary:
    items = _tracked_items(strategy)
    return StrategySummary(
        total_strategies=len(items),
        completed_strategies=sum(1 for item in items if item.completed),
        progress=progress_by_category(strategy),
        generated_at=strategy.generated_at,
        business_idea=strategy.business_context.business_idea if strategy.business_context else "",
    )


def filter_by_status(strategy: StructuredStrategy, status: StatusFilter | str) -> StructuredStrategy:
    """Keep only completed or pending items; ``all`` keeps everything."""

    status = StatusFilter(status)
    if status is StatusFilter.ALL:
        return strategy.model_copy(deep=True)
    wanted = status is StatusFilter.COMPLETED
    return strategy.model_copy(
        update={
            "marketing_strategies": [item for item in strategy.marketing_strategies if item.completed is wanted],
            "sales_channels": [item for item in strategy.sales_channels if item.completed is wanted],
            "pricing_strategies": [item for item in strategy.pricing_strategies if item.completed is wanted],
        },
        deep=True,
    )


def _mentions(term: str, texts: Iterable[str]) -> bool:
    return any(term in text.lower() for text in texts)


def search_strategies(strategy: StructuredStrategy, query: str) -> StructuredStrategy:
    """Case-insensitive substring search over titles, descriptions and children."""

    term = query.strip().lower()
    if not term:
        return strategy.model_copy(deep=True)

    def marketing_matches(item: MarketingStrategy) -> bool:
        return _mentions(term, [item.title, item.description, item.type]) or any(
            _mentions(term, [tactic.name, tactic.description]) for tactic in item.tactics
        )

    def sales_matches(item: SalesChannel) -> bool:
        return _mentions(term, [item.name, item.description, item.type]) or any(
            _mentions(term, [step.title, step.description]) for step in item.implementation_steps
        )

    def pricing_matches(item: PricingStrategy) -> bool:
        return _mentions(term, [item.title, item.description, item.model]) or any(
            _mentions(term, [point.tier, *point.features]) for point in item.price_points
        )

    return strategy.model_copy(
        update={
            "marketing_strategies": [item for item in strategy.marketing_strategies if marketing_matches(item)],
            "sales_channels": [item for item in strategy.sales_channels if sales_matches(item)],
            "pricing_strategies": [item for item in strategy.pricing_strategies if pricing_matches(item)],
        },
        deep=True,
    )


def sort_strategies(strategy: StructuredStrategy, sort_by: SortKey | str) -> StructuredStrategy:
    """Order each list by *sort_by*; keys a list has no field for keep its order."""

    sort_by = SortKey(sort_by)
    marketing = list(strategy.marketing_strategies)
    sales = list(strategy.sales_channels)
    pricing = list(strategy.pricing_strategies)

    if sort_by is SortKey.NAME:
        marketing.sort(key=lambda item: item.title.casefold())
        sales.sort(key=lambda item: item.name.casefold())
        pricing.sort(key=lambda item: item.title.casefold())
    elif sort_by is SortKey.DIFFICULTY:
        marketing.sort(key=lambda item: DIFFICULTY_ORDER.get(item.difficulty, DIFFICULTY_ORDER["medium"]))
    elif sort_by is SortKey.PRIORITY:
        sales.sort(key=lambda item: item.suitability_score, reverse=True)
        pricing.sort(key=lambda item: item.market_fit, reverse=True)
    elif sort_by is SortKey.COMPLETION:
        marketing.sort(key=lambda item: item.completed)
        sales.sort(key=lambda item: item.completed)
        pricing.sort(key=lambda item: item.completed)

    return strategy.model_copy(
        update={"marketing_strategies": marketing, "sales_channels": sales, "pricing_strategies": pricing},
        deep=True,
    )


def next_action_items(strategy: StructuredStrategy, limit: int = 5) -> List[ActionItem]:
    """Pending items, highest priority first.

    Marketing priority follows difficulty (low is most urgent); sales and
    pricing scores are scaled from 0-100 down to 0-4.
    """

    items = [
        ActionItem(
            id=item.id,
            title=item.title,
            type=SectionType.MARKETING,
            completed=item.completed,
            difficulty=item.difficulty,
            priority=DIFFICULTY_PRIORITY.get(item.difficulty, 1),
        )
        for item in strategy.marketing_strategies
    ]
    items.extend(
        ActionItem(
            id=item.id,
            title=item.name,
            type=SectionType.SALES,
            completed=item.completed,
            priority=_round(item.suitability_score / 25),
        )
        for item in strategy.sales_channels
    )
    items.extend(
        ActionItem(
            id=item.id,
            title=item.title,
            type=SectionType.PRICING,
            completed=item.completed,
            priority=_round(item.market_fit / 25),
        )
        for item in strategy.pricing_strategies
    )
    pending = [item for item in items if not item.completed]
    pending.sort(key=lambda item: item.priority, reverse=True)
    return pending[:limit]


def _first_amount(text: str) -> int | None:
    match = AMOUNT_PATTERN.search(text)
    if match is None:
        return None
    digits = match.group(0).replace(",", "")
    return int(digits) if digits else None


def estimate_total_budget(strategy: StructuredStrategy) -> BudgetTotal:
    """Sum marketing budgets and sales setup costs.

    Amounts that do not parse (``TBD``) contribute nothing. The currency is
    the last marketing budget's; mixed currencies are not converted.
    """

    total = BudgetTotal()
    for item in strategy.marketing_strategies:
        low = _first_amount(item.budget.min)
        high = _first_amount(item.budget.max)
        if low is not None:
            total.min += low
        if high is not None:
            total.max += high
        total.currency = item.budget.currency or total.currency
    for channel in strategy.sales_channels:
        setup = _first_amount(channel.cost_structure.setup)
        if setup is not None:
            total.min += setup
            total.max += setup
    return total


def action_plan(strategy: StructuredStrategy) -> ActionPlan:
    progress = progress_by_category(strategy)
    budget = estimate_total_budget(strategy)
    recommendations = []
    if progress.marketing < 50:
        recommendations.append("Focus on completing marketing strategies first")
    if progress.sales < 30:
        recommendations.append("Prioritize sales channel setup")
    if progress.pricing < 25:
        recommendations.append("Finalize pricing strategy early")
    if budget.min > PHASED_BUDGET_THRESHOLD:
        recommendations.append("Consider phased implementation to manage budget")
    return ActionPlan(
        next_actions=next_action_items(strategy, limit=10),
        progress=progress,
        budget=budget,
        recommendations=recommendations,
    )


def query_strategy(
    strategy: StructuredStrategy,
    *,
    status: StatusFilter | str = StatusFilter.ALL,
    query: str = "",
    sort_by: SortKey | str | None = None,
) -> StructuredStrategy:
    """Apply status filter, search and sort in that order."""

    result = search_strategies(filter_by_status(strategy, status), query)
    if sort_by is not None:
        result = sort_strategies(result, sort_by)
    return result
