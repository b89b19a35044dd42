from __future__ import annotations

import random

import pytest

from strategy_flow.cache import CacheStore
from strategy_flow.config import get_settings
from strategy_flow.converter import StrategyConverter
from strategy_flow.extraction import FieldExtractor
from strategy_flow.schemas import (
    BudgetEstimate,
    BusinessContext,
    ImplementationStep,
    MarketingStrategy,
    MarketingTactic,
    PricePoint,
    PricingStrategy,
    SalesChannel,
    StructuredStrategy,
)
from strategy_flow.storage import InMemoryStorage

DAY_MS = 24 * 60 * 60 * 1000
TTL_MS = 30 * DAY_MS


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    """Ensure cached settings do not leak between tests."""

    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def store(storage: InMemoryStorage, clock: FakeClock) -> CacheStore:
    return CacheStore(storage, ttl_ms=TTL_MS, clock=clock)


@pytest.fixture
def extractor() -> FieldExtractor:
    return FieldExtractor(rng=random.Random(7))


@pytest.fixture
def converter(extractor: FieldExtractor) -> StrategyConverter:
    return StrategyConverter(extractor)


def make_strategy(strategy_id: str = "strategy-1") -> StructuredStrategy:
    return StructuredStrategy(
        id=strategy_id,
        business_context=BusinessContext(
            business_idea="Meal kit delivery for busy parents",
            target_market="Working parents",
            value_proposition="Healthy dinners in fifteen minutes",
        ),
        marketing_strategies=[
            MarketingStrategy(
                id="marketing-1",
                type="social",
                title="Social Media Campaign",
                description="Build an engaged audience on Instagram and TikTok.",
                tactics=[
                    MarketingTactic(
                        id="tactic-1",
                        name="Instagram Reels",
                        description="Short recipe demos",
                        timeframe="2 weeks",
                        estimated_cost="$500",
                    )
                ],
                budget=BudgetEstimate(min="2000", max="4000", currency="USD"),
                timeline="6 weeks",
                expected_roi="150%",
            )
        ],
        sales_channels=[
            SalesChannel(
                id="sales-1",
                name="Online Store",
                type="online",
                description="Direct-to-consumer web shop.",
                implementation_steps=[
                    ImplementationStep(
                        id="step-1",
                        title="Launch store",
                        description="Configure checkout",
                        estimated_time="1 week",
                    )
                ],
                expected_reach="5,000 customers",
                suitability_score=85,
            )
        ],
        pricing_strategies=[
            PricingStrategy(
                id="pricing-1",
                model="subscription",
                title="Weekly Subscription",
                description="Recurring weekly boxes.",
                price_points=[PricePoint(tier="Basic", price="$59", features=["3 meals"], target_segment="Couples")],
                market_fit=90,
            )
        ],
        generated_at="2024-01-01T00:00:00+00:00",
    )


@pytest.fixture
def sample_strategy() -> StructuredStrategy:
    return make_strategy()


@pytest.fixture
def strategy_factory():
    return make_strategy
