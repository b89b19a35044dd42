"""Bidirectional conversion between structured and markup strategies."""

from __future__ import annotations

import hashlib
import json
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Sequence
from uuid import uuid4

from .errors import ConversionValidationFailed, InvalidInput
from .extraction import CATEGORY_KEYWORDS, CURRENCY_PATTERN, FieldExtractor
from .markdown_parser import parse_sections
from .schemas import (
    ESSENTIAL_SECTION_TYPES,
    BudgetEstimate,
    BusinessContext,
    CacheFormat,
    ContentLength,
    ConversionResult,
    DistributionPlan,
    ImplementationStep,
    MarketingStrategy,
    MarketingTactic,
    MarkupMetadata,
    MarkupSection,
    MarkupStrategy,
    MarkupSubsection,
    PricePoint,
    PricingStrategy,
    SalesChannel,
    SectionType,
    StructuredStrategy,
    TimelinePhase,
    ToolRecommendation,
    ValidationResult,
)

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 200
MIN_MARKUP_LENGTH = 50
MARKUP_PUNCTUATION = re.compile(r"[#*_`\[\]()]")
BUDGET_RANGE_PATTERN = re.compile(r"^([\d,]+(?:\.\d+)?)\s*-\s*([\d,]+(?:\.\d+)?)(?:\s+([A-Z]{3}))?$")
REVERSE_CONVERSION_WARNING = "Reverse conversion may lose some formatting and detail"

FALLBACK_SECTION_TEXT = {
    SectionType.MARKETING: (
        "Marketing Strategy",
        "Marketing strategies will be developed based on your business context.",
    ),
    SectionType.SALES: (
        "Sales Strategy",
        "Sales channels and approaches will be defined to reach your target market.",
    ),
    SectionType.PRICING: (
        "Pricing Strategy",
        "Pricing models will be established to maximize value and adoption.",
    ),
}


def count_words(markup: str) -> int:
    """Count whitespace tokens once markdown punctuation is stripped."""

    return len(MARKUP_PUNCTUATION.sub("", markup).split())


def estimate_read_time(markup: str) -> int:
    """Return the read time in whole minutes at 200 words per minute."""

    return math.ceil(count_words(markup) / WORDS_PER_MINUTE)


def context_hash(business_context: BusinessContext | Mapping[str, Any] | None) -> str:
    """Fingerprint a business context so stale cache entries can be spotted."""

    if isinstance(business_context, BusinessContext):
        payload: Any = business_context.to_wire()
    else:
        payload = business_context or {}
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def detect_format(payload: Any) -> CacheFormat | None:
    """Classify a stored payload as markup, structured or unrecognised."""

    if not isinstance(payload, dict):
        return None
    raw = payload.get("rawMarkup") or payload.get("rawMarkdown")
    if raw and isinstance(payload.get("sections"), list) and isinstance(payload.get("metadata"), dict):
        return CacheFormat.MARKUP
    if all(
        isinstance(payload.get(key), list)
        for key in ("marketingStrategies", "salesChannels", "pricingStrategies")
    ):
        return CacheFormat.STRUCTURED
    return None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _score(value: float) -> str:
    return f"{value:g}"


def _fallback_business_context() -> BusinessContext:
    return BusinessContext(
        business_idea="Business idea not available",
        target_market="Target market to be defined",
        value_proposition="Value proposition to be developed",
    )


def _metric(metrics: Sequence[str], label: str) -> str | None:
    prefix = f"{label.lower()}:"
    for metric in metrics:
        if metric.lower().startswith(prefix):
            return metric[len(prefix):].strip()
    return None


def _unlabeled(metrics: Sequence[str]) -> str | None:
    for metric in metrics:
        if ":" not in metric:
            return metric
    return None


# ---------------------------------------------------------------------------
# Markdown renderers
# ---------------------------------------------------------------------------


def _block(lines: Iterable[str]) -> str:
    return "\n".join(line for line in lines if line)


def _list_block(heading: str, items: Iterable[str]) -> str:
    items = [item for item in items if item]
    if not items:
        return ""
    return f"### {heading}\n" + "\n".join(items)


def _render_marketing(strategies: Sequence[MarketingStrategy]) -> str:
    parts = ["# Marketing Strategy"]
    for strategy in strategies:
        budget = strategy.budget
        parts.append(
            _block(
                [
                    f"## {strategy.title}",
                    strategy.description,
                    f"**Budget**: {budget.min} - {budget.max} {budget.currency}",
                    f"**Timeline**: {strategy.timeline}",
                    f"**Expected ROI**: {strategy.expected_roi}",
                    _list_block(
                        "Key Tactics:",
                        (
                            f"- **{tactic.name}**: {tactic.description} ({tactic.timeframe}, {tactic.estimated_cost})"
                            for tactic in strategy.tactics
                        ),
                    ),
                ]
            )
        )
    return "\n\n".join(parts)


def _render_sales(channels: Sequence[SalesChannel]) -> str:
    parts = ["# Sales Strategy"]
    for channel in channels:
        parts.append(
            _block(
                [
                    f"## {channel.name}",
                    channel.description,
                    f"**Setup Cost**: {channel.cost_structure.setup}",
                    f"**Monthly Cost**: {channel.cost_structure.monthly}",
                    f"**Expected Reach**: {channel.expected_reach}",
                    f"**Suitability Score**: {_score(channel.suitability_score)}/100",
                    _list_block(
                        "Implementation Steps:",
                        (
                            f"- **{step.title}**: {step.description} ({step.estimated_time})"
                            for step in channel.implementation_steps
                        ),
                    ),
                ]
            )
        )
    return "\n\n".join(parts)


def _render_pricing(strategies: Sequence[PricingStrategy]) -> str:
    parts = ["# Pricing Strategy"]
    for pricing in strategies:
        price_lines = []
        for point in pricing.price_points:
            price_lines.append(f"- **{point.tier}**: {point.price} - {point.target_segment}")
            price_lines.extend(f"  - {feature}" for feature in point.features)
        parts.append(
            _block(
                [
                    f"## {pricing.title}",
                    pricing.description,
                    f"**Pricing Model**: {pricing.model}",
                    f"**Market Fit Score**: {_score(pricing.market_fit)}/100",
                    f"**Competitive Analysis**: {pricing.competitive_analysis}" if pricing.competitive_analysis else "",
                    _list_block("Price Points:", price_lines),
                ]
            )
        )
    return "\n\n".join(parts)


def _render_distribution(plans: Sequence[DistributionPlan]) -> str:
    parts = ["# Distribution Strategy"]
    for plan in plans:
        parts.append(
            _block(
                [
                    f"## {plan.channel}",
                    plan.strategy,
                    f"**Timeline**: {plan.timeline}",
                    f"**Expected Outcome**: {plan.expected_outcome}",
                    _list_block("Required Resources:", (f"- {resource}" for resource in plan.resources)),
                ]
            )
        )
    return "\n\n".join(parts)


def _render_timeline(phases: Sequence[TimelinePhase]) -> str:
    parts = ["# Implementation Timeline"]
    for phase in phases:
        parts.append(
            _block(
                [
                    f"## {phase.phase}",
                    f"**Duration**: {phase.start_date} - {phase.end_date}",
                    _list_block("Activities:", (f"- {activity}" for activity in phase.activities)),
                    _list_block("Milestones:", (f"- {milestone}" for milestone in phase.milestones)),
                ]
            )
        )
    return "\n\n".join(parts)


def _render_tools(tools: Sequence[ToolRecommendation]) -> str:
    parts = ["# Recommended Tools"]
    for tool in tools:
        parts.append(
            _block(
                [
                    f"## {tool.name}",
                    f"**Category**: {tool.category}",
                    f"**Cost Estimate**: {tool.cost_estimate}",
                    f"**Implementation Priority**: {tool.implementation_priority}",
                    f"**Integration Complexity**: {tool.integration_complexity}",
                    _list_block("Recommended For:", (f"- {use}" for use in tool.recommended_for)),
                ]
            )
        )
    return "\n\n".join(parts)


def render_markup(strategy: StructuredStrategy) -> str:
    """Render every populated strategy list as a top-level heading block."""

    blocks = []
    if strategy.marketing_strategies:
        blocks.append(_render_marketing(strategy.marketing_strategies))
    if strategy.sales_channels:
        blocks.append(_render_sales(strategy.sales_channels))
    if strategy.pricing_strategies:
        blocks.append(_render_pricing(strategy.pricing_strategies))
    if strategy.distribution_plans:
        blocks.append(_render_distribution(strategy.distribution_plans))
    if strategy.implementation_timeline:
        blocks.append(_render_timeline(strategy.implementation_timeline))
    if strategy.tool_recommendations:
        blocks.append(_render_tools(strategy.tool_recommendations))
    if not blocks:
        return ""
    return "\n\n".join(blocks) + "\n"


# ---------------------------------------------------------------------------
# Section index built straight from structured data
# ---------------------------------------------------------------------------


def build_sections(strategy: StructuredStrategy) -> List[MarkupSection]:
    """Build the section index in the same order :func:`render_markup` uses."""

    sections: List[MarkupSection] = []

    if strategy.marketing_strategies:
        sections.append(
            MarkupSection(
                id="marketing",
                type=SectionType.MARKETING,
                title="Marketing Strategy",
                body="Comprehensive marketing approach to reach target customers.",
                subsections=[
                    MarkupSubsection(
                        id=f"marketing-{index}",
                        heading=item.title,
                        content=item.description,
                        action_items=[tactic.name for tactic in item.tactics],
                        key_metrics=[
                            item.expected_roi,
                            f"Budget: {item.budget.min}-{item.budget.max} {item.budget.currency}",
                        ],
                    )
                    for index, item in enumerate(strategy.marketing_strategies)
                ],
                completed=all(item.completed for item in strategy.marketing_strategies),
            )
        )

    if strategy.sales_channels:
        sections.append(
            MarkupSection(
                id="sales",
                type=SectionType.SALES,
                title="Sales Strategy",
                body="Multi-channel sales approach to maximize revenue.",
                subsections=[
                    MarkupSubsection(
                        id=f"sales-{index}",
                        heading=item.name,
                        content=item.description,
                        action_items=[step.title for step in item.implementation_steps],
                        key_metrics=[item.expected_reach, f"Suitability: {_score(item.suitability_score)}/100"],
                    )
                    for index, item in enumerate(strategy.sales_channels)
                ],
                completed=all(item.completed for item in strategy.sales_channels),
            )
        )

    if strategy.pricing_strategies:
        sections.append(
            MarkupSection(
                id="pricing",
                type=SectionType.PRICING,
                title="Pricing Strategy",
                body="Strategic pricing approach to maximize value and adoption.",
                subsections=[
                    MarkupSubsection(
                        id=f"pricing-{index}",
                        heading=item.title,
                        content=item.description,
                        action_items=[f"{point.tier}: {point.price}" for point in item.price_points],
                        key_metrics=[f"Market Fit: {_score(item.market_fit)}/100"],
                    )
                    for index, item in enumerate(strategy.pricing_strategies)
                ],
                completed=all(item.completed for item in strategy.pricing_strategies),
            )
        )

    if strategy.distribution_plans:
        sections.append(
            MarkupSection(
                id="distribution",
                type=SectionType.DISTRIBUTION,
                title="Distribution Strategy",
                body="Efficient distribution channels to reach customers.",
                subsections=[
                    MarkupSubsection(
                        id=f"distribution-{index}",
                        heading=item.channel,
                        content=item.strategy,
                        action_items=list(item.resources),
                        key_metrics=[item.expected_outcome],
                    )
                    for index, item in enumerate(strategy.distribution_plans)
                ],
                completed=True,
            )
        )

    if strategy.implementation_timeline:
        sections.append(
            MarkupSection(
                id="timeline",
                type=SectionType.TIMELINE,
                title="Implementation Timeline",
                body="Phased approach to implementation with clear milestones.",
                subsections=[
                    MarkupSubsection(
                        id=f"timeline-{index}",
                        heading=item.phase,
                        content=f"{item.start_date} - {item.end_date}",
                        action_items=list(item.activities),
                        key_metrics=list(item.milestones),
                    )
                    for index, item in enumerate(strategy.implementation_timeline)
                ],
                completed=True,
            )
        )

    if strategy.tool_recommendations:
        sections.append(
            MarkupSection(
                id="tools",
                type=SectionType.TOOLS,
                title="Recommended Tools",
                body="Essential tools and platforms for implementation.",
                subsections=[
                    MarkupSubsection(
                        id=f"tools-{index}",
                        heading=item.name,
                        content=f"{item.category} - {item.cost_estimate}",
                        action_items=list(item.recommended_for),
                        key_metrics=[
                            f"Priority: {item.implementation_priority}",
                            f"Complexity: {item.integration_complexity}",
                        ],
                    )
                    for index, item in enumerate(strategy.tool_recommendations)
                ],
                completed=True,
            )
        )

    return sections


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_structured_input(strategy: StructuredStrategy) -> ValidationResult:
    """Check that a structured strategy can be rendered at all."""

    errors: List[str] = []
    warnings: List[str] = []

    if not strategy.id:
        errors.append("Missing strategy ID")
    if strategy.business_context is None:
        errors.append("Missing business context")
    else:
        if not strategy.business_context.business_idea:
            warnings.append("Missing business idea")
        if not strategy.business_context.target_market:
            warnings.append("Missing target market")
        if not strategy.business_context.value_proposition:
            warnings.append("Missing value proposition")
    if not strategy.generated_at:
        warnings.append("Missing generation timestamp")

    if not strategy.has_content:
        warnings.append("No strategy content found - conversion will create placeholder sections")

    for index, item in enumerate(strategy.marketing_strategies, start=1):
        if not item.title:
            warnings.append(f"Marketing strategy {index} missing title")
        if not item.description:
            warnings.append(f"Marketing strategy {index} missing description")
    for index, channel in enumerate(strategy.sales_channels, start=1):
        if not channel.name:
            warnings.append(f"Sales channel {index} missing name")
        if not channel.description:
            warnings.append(f"Sales channel {index} missing description")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_conversion(original: StructuredStrategy | None, converted: MarkupStrategy) -> bool:
    """Structural check of a forward conversion.

    Passing is necessary, not sufficient: the markup can still be thin.
    """

    if not converted.id or converted.business_context is None or not converted.raw_markup:
        return False
    if not converted.sections:
        return False
    if not converted.metadata.generated_at or converted.metadata.word_count <= 0:
        return False
    if len(converted.raw_markup.strip()) < MIN_MARKUP_LENGTH:
        return False
    section_types = {section.type for section in converted.sections}
    return any(essential in section_types for essential in ESSENTIAL_SECTION_TYPES)


# ---------------------------------------------------------------------------
# Converter
# ---------------------------------------------------------------------------


class StrategyConverter:
    """Convert strategies between their structured and markup forms."""

    def __init__(self, extractor: FieldExtractor | None = None) -> None:
        self._extractor = extractor or FieldExtractor()

    @property
    def extractor(self) -> FieldExtractor:
        return self._extractor

    def to_markup(
        self,
        strategy: StructuredStrategy,
        content_length: ContentLength = ContentLength.STANDARD,
        *,
        validate_output: bool = True,
        preserve_ids: bool = True,
    ) -> MarkupStrategy:
        """Render *strategy* as markup plus a matching section index.

        Raises :class:`InvalidInput` when the id or business context is
        missing and :class:`ConversionValidationFailed` when the rendered
        output fails :func:`validate_conversion`.
        """

        validation = validate_structured_input(strategy)
        if not validation.is_valid:
            raise InvalidInput(validation.errors)
        if validation.warnings:
            logger.debug("Structured input warnings for %s: %s", strategy.id, "; ".join(validation.warnings))

        markup = render_markup(strategy)
        converted = MarkupStrategy(
            id=strategy.id if preserve_ids else f"converted-{uuid4().hex[:12]}",
            business_context=strategy.business_context,
            raw_markup=markup,
            sections=build_sections(strategy),
            metadata=MarkupMetadata(
                content_length=content_length,
                generated_at=strategy.generated_at or _now_iso(),
                word_count=count_words(markup),
                estimated_read_time=estimate_read_time(markup),
            ),
        )

        if validate_output and not validate_conversion(strategy, converted):
            raise ConversionValidationFailed(warnings=["Generated markdown may be incomplete"])
        return converted

    def recover_from_failure(self, strategy: StructuredStrategy | None, reason: str) -> MarkupStrategy:
        """Return the minimal placeholder document; never raises."""

        logger.warning("Attempting recovery from conversion failure: %s", reason)
        context = strategy.business_context if strategy is not None else None

        lines = [
            "# Go-to-Market Strategy",
            "",
            "*This strategy was recovered from incomplete data and may be incomplete.*",
            "",
        ]
        if context is not None and context.business_idea:
            lines.extend([f"**Business Idea**: {context.business_idea}", ""])
        if context is not None and context.target_market:
            lines.extend([f"**Target Market**: {context.target_market}", ""])

        sections = []
        for section_type in ESSENTIAL_SECTION_TYPES:
            title, text = FALLBACK_SECTION_TEXT[section_type]
            lines.extend([f"## {title}", text, ""])
            sections.append(
                MarkupSection(
                    id=f"{section_type.value}-fallback",
                    type=section_type,
                    title=title,
                    body=text,
                    subsections=[],
                    completed=False,
                    editable=True,
                )
            )
        markup = "\n".join(lines)

        return MarkupStrategy(
            id=(strategy.id if strategy is not None else "") or f"converted-{uuid4().hex[:12]}",
            business_context=context or _fallback_business_context(),
            raw_markup=markup,
            sections=sections,
            metadata=MarkupMetadata(
                content_length=ContentLength.STANDARD,
                generated_at=(strategy.generated_at if strategy is not None else "") or _now_iso(),
                word_count=count_words(markup),
                estimated_read_time=estimate_read_time(markup),
            ),
        )

    def to_markup_with_recovery(
        self,
        strategy: StructuredStrategy,
        content_length: ContentLength = ContentLength.STANDARD,
    ) -> MarkupStrategy:
        """Convert normally, falling back to the recovery template."""

        try:
            return self.to_markup(strategy, content_length)
        except (InvalidInput, ConversionValidationFailed) as exc:
            recovered = self.recover_from_failure(strategy, str(exc))
            recovered.metadata.content_length = content_length
            return recovered

    def to_structured(self, markup: MarkupStrategy) -> ConversionResult:
        """Rebuild a structured strategy from a markup strategy.

        Items are reconstructed positionally from each category's
        subsections; anything the forward template did not capture is lost.
        """

        warnings = [REVERSE_CONVERSION_WARNING]
        sections = list(markup.sections)
        if not sections and markup.raw_markup:
            sections = self._extractor.build_sections(parse_sections(markup.raw_markup))
            warnings.append("Section index rebuilt from raw markup")

        def section_for(section_type: SectionType) -> MarkupSection | None:
            for section in sections:
                if section.type is section_type:
                    return section
            keywords = CATEGORY_KEYWORDS[section_type]
            for section in sections:
                if any(keyword in section.title.lower() for keyword in keywords):
                    return section
            return None

        strategy = StructuredStrategy(
            id=markup.id,
            business_context=markup.business_context,
            marketing_strategies=self._marketing_from(section_for(SectionType.MARKETING)),
            sales_channels=self._sales_from(section_for(SectionType.SALES)),
            pricing_strategies=self._pricing_from(section_for(SectionType.PRICING)),
            distribution_plans=self._distribution_from(section_for(SectionType.DISTRIBUTION)),
            implementation_timeline=self._timeline_from(section_for(SectionType.TIMELINE)),
            tool_recommendations=self._tools_from(section_for(SectionType.TOOLS)),
            generated_at=markup.metadata.generated_at or _now_iso(),
            version="2.0",
        )
        if not strategy.has_content:
            warnings.append("No strategy content recovered from markup")
        return ConversionResult(data=strategy, warnings=warnings)

    # -- positional reconstruction -----------------------------------------

    def _budget_from(self, text: str | None) -> BudgetEstimate:
        """Read a ``min-max [CODE]`` metric back, or symbol amounts from prose."""

        if text:
            match = BUDGET_RANGE_PATTERN.match(text.strip())
            if match:
                return BudgetEstimate(min=match.group(1), max=match.group(2), currency=match.group(3) or "USD")
            if CURRENCY_PATTERN.search(text):
                return self._extractor.extract_budget(text)
        return BudgetEstimate(min="TBD", max="TBD", currency="USD")

    def _marketing_from(self, section: MarkupSection | None) -> List[MarketingStrategy]:
        if section is None:
            return []
        items = []
        for sub in section.subsections:
            budget_text = _metric(sub.key_metrics, "Budget")
            items.append(
                MarketingStrategy(
                    id=sub.id,
                    type=self._extractor.infer_marketing_type(sub.heading, sub.content),
                    title=sub.heading,
                    description=sub.content,
                    tactics=[
                        MarketingTactic(id=f"tactic-{index + 1}", name=item, description=item)
                        for index, item in enumerate(sub.action_items)
                    ],
                    budget=self._budget_from(budget_text),
                    timeline=_metric(sub.key_metrics, "Timeline") or "TBD",
                    expected_roi=_metric(sub.key_metrics, "Expected ROI") or _unlabeled(sub.key_metrics) or "TBD",
                    difficulty=self._extractor.infer_difficulty(sub.content),
                    completed=section.completed,
                )
            )
        return items

    def _sales_from(self, section: MarkupSection | None) -> List[SalesChannel]:
        if section is None:
            return []
        items = []
        for sub in section.subsections:
            metrics_text = "\n".join(sub.key_metrics)
            items.append(
                SalesChannel(
                    id=sub.id,
                    name=sub.heading,
                    type=self._extractor.infer_channel_type(sub.heading, sub.content),
                    description=sub.content,
                    implementation_steps=[
                        ImplementationStep(id=f"step-{index + 1}", title=item, description=item)
                        for index, item in enumerate(sub.action_items)
                    ],
                    expected_reach=_metric(sub.key_metrics, "Expected Reach")
                    or _unlabeled(sub.key_metrics)
                    or self._extractor.extract_reach(sub.content),
                    suitability_score=self._extractor.suitability_score(metrics_text),
                    completed=section.completed,
                )
            )
        return items

    def _pricing_from(self, section: MarkupSection | None) -> List[PricingStrategy]:
        if section is None:
            return []
        items = []
        for sub in section.subsections:
            points = []
            for item in sub.action_items:
                tier, _, price = item.partition(":")
                points.append(PricePoint(tier=tier.strip(), price=price.strip(), features=[]))
            items.append(
                PricingStrategy(
                    id=sub.id,
                    model=_metric(sub.key_metrics, "Pricing Model")
                    or self._extractor.infer_pricing_model(sub.heading, sub.content),
                    title=sub.heading,
                    description=sub.content,
                    price_points=points,
                    market_fit=self._extractor.market_fit_score("\n".join(sub.key_metrics)),
                    competitive_analysis=_metric(sub.key_metrics, "Competitive Analysis") or "",
                    completed=section.completed,
                )
            )
        return items

    def _distribution_from(self, section: MarkupSection | None) -> List[DistributionPlan]:
        if section is None:
            return []
        return [
            DistributionPlan(
                id=sub.id,
                channel=sub.heading,
                strategy=sub.content,
                timeline=_metric(sub.key_metrics, "Timeline") or "TBD",
                resources=list(sub.action_items),
                expected_outcome=_metric(sub.key_metrics, "Expected Outcome") or _unlabeled(sub.key_metrics) or "",
            )
            for sub in section.subsections
        ]

    def _timeline_from(self, section: MarkupSection | None) -> List[TimelinePhase]:
        if section is None:
            return []
        phases = []
        for sub in section.subsections:
            duration = _metric(sub.key_metrics, "Duration") or sub.content
            start, _, end = duration.partition(" - ")
            phases.append(
                TimelinePhase(
                    phase=sub.heading,
                    start_date=start.strip(),
                    end_date=end.strip(),
                    activities=list(sub.action_items),
                    milestones=[metric for metric in sub.key_metrics if not metric.lower().startswith("duration:")],
                )
            )
        return phases

    def _tools_from(self, section: MarkupSection | None) -> List[ToolRecommendation]:
        if section is None:
            return []
        tools = []
        for sub in section.subsections:
            category, _, cost = sub.content.partition(" - ")
            tools.append(
                ToolRecommendation(
                    id=sub.id,
                    name=sub.heading,
                    category=_metric(sub.key_metrics, "Category") or category.strip() or "General",
                    relevance_score=self._extractor.relevance_score("\n".join(sub.key_metrics)),
                    implementation_priority=(
                        _metric(sub.key_metrics, "Priority")
                        or _metric(sub.key_metrics, "Implementation Priority")
                        or "medium"
                    ),
                    cost_estimate=_metric(sub.key_metrics, "Cost Estimate") or cost.strip() or "TBD",
                    integration_complexity=(
                        _metric(sub.key_metrics, "Complexity")
                        or _metric(sub.key_metrics, "Integration Complexity")
                        or "moderate"
                    ),
                    recommended_for=list(sub.action_items),
                )
            )
        return tools

