"""Pydantic models and enums for go-to-market strategies and their cache."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        """Dump the model with its JSON field names."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ContentLength(str, Enum):
    """Enumerate the verbosity variants used to partition the cache."""

    BRIEF = "brief"
    STANDARD = "standard"
    DETAILED = "detailed"


class CacheFormat(str, Enum):
    """Tag describing which representation a cache entry carries."""

    STRUCTURED = "structured"
    MARKUP = "markup"


class SectionType(str, Enum):
    """Enumerate the top-level blocks of a markup strategy."""

    MARKETING = "marketing"
    SALES = "sales"
    PRICING = "pricing"
    DISTRIBUTION = "distribution"
    TIMELINE = "timeline"
    TOOLS = "tools"
    OVERVIEW = "overview"


ESSENTIAL_SECTION_TYPES = (SectionType.MARKETING, SectionType.SALES, SectionType.PRICING)

# Tags written by earlier releases of the cache.
LEGACY_FORMAT_TAGS = {
    "json": CacheFormat.STRUCTURED,
    "markdown": CacheFormat.MARKUP,
}


# ---------------------------------------------------------------------------
# Structured strategy
# ---------------------------------------------------------------------------


class ImplementationPhase(WireModel):
    id: str = ""
    name: str = ""
    objectives: List[str] = Field(default_factory=list)
    duration: Optional[str] = None


class BusinessContext(WireModel):
    """Describe the business plan a strategy was generated for."""

    business_idea: str = ""
    target_market: str = ""
    value_proposition: str = ""
    implementation_phases: List[ImplementationPhase] = Field(default_factory=list)
    goals: List[str] = Field(default_factory=list)
    constraints: List[str] = Field(default_factory=list)


class BudgetEstimate(WireModel):
    min: str = ""
    max: str = ""
    currency: str = "USD"


class MarketingTactic(WireModel):
    id: str = ""
    name: str = ""
    description: str = ""
    estimated_cost: str = "TBD"
    timeframe: str = "TBD"
    difficulty: str = "medium"


class MarketingStrategy(WireModel):
    id: str = ""
    type: str = "traditional"
    title: str = ""
    description: str = ""
    tactics: List[MarketingTactic] = Field(default_factory=list)
    budget: BudgetEstimate = Field(default_factory=BudgetEstimate)
    timeline: str = ""
    expected_roi: str = Field(default="", alias="expectedROI")
    difficulty: str = "medium"
    completed: bool = False


class ImplementationStep(WireModel):
    id: str = ""
    title: str = ""
    description: str = ""
    estimated_time: str = "TBD"
    dependencies: Optional[List[str]] = None


class CostStructure(WireModel):
    setup: str = "TBD"
    monthly: str = "TBD"
    commission: Optional[str] = None
    notes: Optional[str] = None


class SalesChannel(WireModel):
    id: str = ""
    name: str = ""
    type: str = "direct"
    description: str = ""
    implementation_steps: List[ImplementationStep] = Field(default_factory=list)
    cost_structure: CostStructure = Field(default_factory=CostStructure)
    expected_reach: str = ""
    suitability_score: float = 0
    completed: bool = False


class PricePoint(WireModel):
    tier: str = ""
    price: str = ""
    features: List[str] = Field(default_factory=list)
    target_segment: str = "General"


class PricingStrategy(WireModel):
    id: str = ""
    model: str = "one-time"
    title: str = ""
    description: str = ""
    price_points: List[PricePoint] = Field(default_factory=list)
    market_fit: float = 0
    competitive_analysis: str = ""
    completed: bool = False


class DistributionPlan(WireModel):
    id: str = ""
    channel: str = ""
    strategy: str = ""
    timeline: str = ""
    resources: List[str] = Field(default_factory=list)
    expected_outcome: str = ""


class TimelinePhase(WireModel):
    phase: str = ""
    start_date: str = ""
    end_date: str = ""
    activities: List[str] = Field(default_factory=list)
    milestones: List[str] = Field(default_factory=list)


class ToolRecommendation(WireModel):
    id: str = ""
    name: str = ""
    category: str = ""
    relevance_score: float = 0
    implementation_priority: str = "medium"
    cost_estimate: str = ""
    integration_complexity: str = "moderate"
    recommended_for: List[str] = Field(default_factory=list)


class StructuredStrategy(WireModel):
    """Field-typed go-to-market strategy.

    ``business_context`` is optional here so damaged legacy data can still be
    held in the cache; the forward conversion rejects it.
    """

    id: str = ""
    business_context: Optional[BusinessContext] = None
    marketing_strategies: List[MarketingStrategy] = Field(default_factory=list)
    sales_channels: List[SalesChannel] = Field(default_factory=list)
    pricing_strategies: List[PricingStrategy] = Field(default_factory=list)
    distribution_plans: List[DistributionPlan] = Field(default_factory=list)
    implementation_timeline: List[TimelinePhase] = Field(default_factory=list)
    tool_recommendations: List[ToolRecommendation] = Field(default_factory=list)
    generated_at: str = ""
    version: str = "2.0"

    @property
    def has_content(self) -> bool:
        """True when at least one strategy list is populated."""

        return any(
            [
                self.marketing_strategies,
                self.sales_channels,
                self.pricing_strategies,
                self.distribution_plans,
                self.implementation_timeline,
                self.tool_recommendations,
            ]
        )


# ---------------------------------------------------------------------------
# Markup strategy
# ---------------------------------------------------------------------------


class MarkupSubsection(WireModel):
    id: str
    heading: str
    content: str = ""
    action_items: List[str] = Field(default_factory=list)
    key_metrics: List[str] = Field(default_factory=list)


class MarkupSection(WireModel):
    id: str
    type: SectionType
    title: str
    body: str = Field(default="", validation_alias=AliasChoices("body", "content"))
    subsections: List[MarkupSubsection] = Field(default_factory=list)
    completed: bool = False
    editable: bool = True


class MarkupMetadata(WireModel):
    content_length: ContentLength = ContentLength.STANDARD
    generated_at: str = ""
    word_count: int = 0
    estimated_read_time: int = 0


class MarkupStrategy(WireModel):
    """Heading-based strategy text plus its section index and metadata."""

    id: str = ""
    business_context: Optional[BusinessContext] = None
    raw_markup: str = Field(
        default="",
        validation_alias=AliasChoices("rawMarkup", "raw_markup", "rawMarkdown"),
        serialization_alias="rawMarkup",
    )
    sections: List[MarkupSection] = Field(default_factory=list)
    metadata: MarkupMetadata = Field(default_factory=MarkupMetadata)


# ---------------------------------------------------------------------------
# Cache models
# ---------------------------------------------------------------------------


def _normalise_format(value: Any) -> Any:
    if isinstance(value, str):
        return LEGACY_FORMAT_TAGS.get(value, value)
    return value


class CacheEntry(WireModel):
    """One stored strategy snapshot at a composite cache key."""

    structured_strategy: StructuredStrategy = Field(
        validation_alias=AliasChoices("structuredStrategy", "structured_strategy", "strategies"),
        serialization_alias="structuredStrategy",
    )
    timestamp: int
    context_hash: str = ""
    # Absent on entries written before format tagging existed.
    format: Optional[CacheFormat] = None
    content_length_variant: Optional[ContentLength] = Field(
        default=None,
        validation_alias=AliasChoices("contentLengthVariant", "content_length_variant", "contentLength"),
        serialization_alias="contentLengthVariant",
    )
    raw_markup: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("rawMarkup", "raw_markup", "rawMarkdown"),
        serialization_alias="rawMarkup",
    )

    @field_validator("format", mode="before")
    @classmethod
    def coerce_legacy_format(cls, value: Any) -> Any:
        return _normalise_format(value)

    @property
    def has_markup(self) -> bool:
        return self.format is CacheFormat.MARKUP and bool(self.raw_markup)


class MarkupIndexEntry(WireModel):
    """Markup-only view of a cache entry, mirrored to its own blob."""

    markup: str = Field(validation_alias=AliasChoices("markup", "markdown"))
    timestamp: int
    content_length_variant: ContentLength = Field(
        default=ContentLength.STANDARD,
        validation_alias=AliasChoices("contentLengthVariant", "content_length_variant", "contentLength"),
        serialization_alias="contentLengthVariant",
    )
    context_hash: str = ""


class CacheSnapshot(WireModel):
    entries: Dict[str, CacheEntry] = Field(default_factory=dict)
    markup_index: Dict[str, MarkupIndexEntry] = Field(default_factory=dict)
    exported_at: str
    version: str


class CacheStats(WireModel):
    total_entries: int = 0
    markup_entries: int = 0
    structured_entries: int = 0
    oldest_entry: Optional[int] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class CachedStrategySummary(WireModel):
    key: str
    title: str
    timestamp: int


class MarkupCacheHit(WireModel):
    strategies: StructuredStrategy
    raw_markdown: str


# ---------------------------------------------------------------------------
# Validation / conversion results
# ---------------------------------------------------------------------------


class ValidationResult(WireModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ConversionResult(WireModel):
    data: Optional[StructuredStrategy] = None
    warnings: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# HTTP payloads
# ---------------------------------------------------------------------------


class MarkupRequest(WireModel):
    """Payload for converting a structured strategy to markup."""

    strategy: StructuredStrategy
    content_length: ContentLength = ContentLength.STANDARD
    recover: bool = Field(default=False, description="Fall back to the recovery template instead of failing.")


class ParseRequest(WireModel):
    markdown: str = Field(..., min_length=1)
    business_context: Optional[BusinessContext] = None


class CacheWriteRequest(WireModel):
    """Store a strategy, with or without its markup, at a cache key."""

    strategy: StructuredStrategy
    raw_markup: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("rawMarkup", "raw_markup", "rawMarkdown"),
    )


class ImportResponse(WireModel):
    success: bool
    total_entries: int


class MigrateResponse(WireModel):
    migrated: int


# ---------------------------------------------------------------------------
# Progress and planning
# ---------------------------------------------------------------------------


class StatusFilter(str, Enum):
    ALL = "all"
    COMPLETED = "completed"
    PENDING = "pending"


class SortKey(str, Enum):
    NAME = "name"
    DIFFICULTY = "difficulty"
    PRIORITY = "priority"
    COMPLETION = "completion"


class CategoryProgress(WireModel):
    """Completion percentages, rounded to whole numbers."""

    marketing: int = 0
    sales: int = 0
    pricing: int = 0
    overall: int = 0


class StrategySummary(WireModel):
    total_strategies: int = 0
    completed_strategies: int = 0
    progress: CategoryProgress = Field(default_factory=CategoryProgress)
    generated_at: str = ""
    business_idea: str = ""


class BudgetTotal(WireModel):
    min: int = 0
    max: int = 0
    currency: str = "USD"


class ActionItem(WireModel):
    id: str
    title: str
    type: SectionType
    completed: bool = False
    difficulty: Optional[str] = None
    priority: int = 0


class ActionPlan(WireModel):
    next_actions: List[ActionItem] = Field(default_factory=list)
    progress: CategoryProgress = Field(default_factory=CategoryProgress)
    budget: BudgetTotal = Field(default_factory=BudgetTotal)
    recommendations: List[str] = Field(default_factory=list)


class StrategyQuery(WireModel):
    """Filter, search and sort a strategy's marketing, sales and pricing lists."""

    strategy: StructuredStrategy
    status: StatusFilter = StatusFilter.ALL
    query: str = ""
    sort_by: Optional[SortKey] = None
