"""Heuristic extraction of structured strategy fields from markdown sections.

Every extractor is an ordered pipeline of ``predicate -> value`` rules that
ends in a fixed default, so extraction never raises. The results are
syntactically valid but only approximate what the text meant.
"""

from __future__ import annotations

import calendar
import logging
import random
import re
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Sequence, Tuple
from uuid import uuid4

from .config import get_settings
from .markdown_parser import ParsedSection, find_section_by_keywords, parse_sections
from .schemas import (
    BudgetEstimate,
    BusinessContext,
    CostStructure,
    DistributionPlan,
    ImplementationStep,
    MarketingStrategy,
    MarketingTactic,
    MarkupSection,
    MarkupSubsection,
    PricePoint,
    PricingStrategy,
    SalesChannel,
    SectionType,
    StructuredStrategy,
    TimelinePhase,
    ToolRecommendation,
)
from .validation import validate_markdown_structure

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Patterns and rule tables
# ---------------------------------------------------------------------------

LIST_ITEM_PATTERN = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(.+)$")
LABELED_ITEM_PATTERN = re.compile(r"^\*\*(.+?)\*\*:?\s*(.*)$")
TRAILING_DETAILS_PATTERN = re.compile(r"^(.*?)\s*\(([^()]*)\)\s*$")
LABEL_LINE_PATTERN = re.compile(r"^\s*\*\*(.+?)\*\*:\s*(.+?)\s*$")
CURRENCY_PATTERN = re.compile(r"([$€£¥])\s?(\d+(?:,\d+)*(?:\.\d{2})?)")
PERCENT_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*%")
REACH_PATTERN = re.compile(r"(\d+(?:,\d+)*)\+?\s*(customers?|users?|people)", re.IGNORECASE)
DURATION_PATTERN = re.compile(r"(\d+)\s+(days?|weeks?|months?)", re.IGNORECASE)

CURRENCY_CODES = {"$": "USD", "€": "EUR", "£": "GBP", "¥": "JPY"}

DEFAULT_BUDGET_AMOUNT = "1000"
DEFAULT_ROI = "15-25%"
DEFAULT_REACH = "1,000+ potential customers"
DEFAULT_TIMELINE = "4-6 weeks"
DEFAULT_DESCRIPTION = "No description available"
DEFAULT_COMPETITIVE_ANALYSIS = "Competitive analysis extracted from markdown content"
DEFAULT_ACTIVITIES = ["Activity 1", "Activity 2"]
DEFAULT_MILESTONES = ["Milestone 1", "Milestone 2"]
BUDGET_MAX_FACTOR = 1.5
SCORE_FLOOR = 60
SCORE_CEILING = 100

# (title keywords, body keywords, value); first hit wins.
Rule = Tuple[Tuple[str, ...], Tuple[str, ...], str]

MARKETING_TYPE_RULES: List[Rule] = [
    (("social",), ("social media",), "social"),
    (("content",), ("blog",), "content"),
    (("digital",), ("online",), "digital"),
]
CHANNEL_TYPE_RULES: List[Rule] = [
    (("online",), ("website",), "online"),
    (("retail",), ("store",), "retail"),
    (("partner",), ("partnership",), "partner"),
]
PRICING_MODEL_RULES: List[Rule] = [
    (("freemium",), ("free tier",), "freemium"),
    (("subscription",), ("monthly",), "subscription"),
    (("tiered",), ("tier",), "tiered"),
]
DIFFICULTY_RULES: List[Rule] = [
    ((), ("easy", "simple"), "low"),
    ((), ("complex", "difficult"), "high"),
]

CATEGORY_KEYWORDS: Dict[SectionType, Tuple[str, ...]] = {
    SectionType.MARKETING: ("marketing", "promotion", "advertising"),
    SectionType.SALES: ("sales", "channel"),
    SectionType.PRICING: ("pricing", "price", "cost"),
    SectionType.DISTRIBUTION: ("distribution",),
    SectionType.TIMELINE: ("timeline", "schedule", "roadmap", "implementation"),
    SectionType.TOOLS: ("tools", "software", "technology", "platform"),
}


def _infer(rules: Sequence[Rule], title: str, body: str, fallback: str) -> str:
    title_lower = title.lower()
    body_lower = body.lower()
    for title_keywords, body_keywords, value in rules:
        if any(keyword in title_lower for keyword in title_keywords):
            return value
        if any(keyword in body_lower for keyword in body_keywords):
            return value
    return fallback


def _scale_amount(amount: str, factor: float) -> str:
    value = float(amount.replace(",", "")) * factor
    if value.is_integer():
        return str(int(value))
    return f"{value:.2f}"


def _add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def labeled_value(text: str, labels: Sequence[str]) -> str | None:
    """Return the value of the first ``**Label**: value`` line for *labels*."""

    wanted = {label.lower() for label in labels}
    for line in text.splitlines():
        match = LABEL_LINE_PATTERN.match(line)
        if match and match.group(1).strip().lower() in wanted:
            return match.group(2)
    return None


def list_item_texts(text: str) -> List[str]:
    """Return the captured text of every bullet or numbered line."""

    items = []
    for line in text.splitlines():
        match = LIST_ITEM_PATTERN.match(line)
        if match:
            items.append(match.group(1).strip())
    return items


def split_list_item(item: str) -> Tuple[str, str, List[str]]:
    """Split ``**Name**: description (a, b)`` into its parts.

    Without bold-name structure the whole text is both name and description.
    """

    labeled = LABELED_ITEM_PATTERN.match(item)
    if not labeled:
        return item, item, []
    name = labeled.group(1).strip()
    rest = labeled.group(2).strip()
    details: List[str] = []
    trailing = TRAILING_DETAILS_PATTERN.match(rest)
    if trailing:
        rest = trailing.group(1).strip()
        details = [part.strip() for part in trailing.group(2).split(",") if part.strip()]
    return name, rest or name, details


def plain_paragraphs(text: str) -> List[str]:
    """Return lines that are neither headings, list items nor labels."""

    paragraphs = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if LIST_ITEM_PATTERN.match(line) or LABEL_LINE_PATTERN.match(line):
            continue
        paragraphs.append(stripped)
    return paragraphs


class FieldExtractor:
    """Infer structured fields from section text without ever failing.

    Scores missing from the text are synthesized from *rng*; pass a seeded
    ``random.Random`` for reproducible output.
    """

    def __init__(self, rng: random.Random | None = None, today: Callable[[], date] | None = None) -> None:
        if rng is None:
            rng = random.Random(get_settings().score_seed)
        self._rng = rng
        self._today = today or _utc_today

    # -- categories ---------------------------------------------------------

    def infer_marketing_type(self, title: str, body: str) -> str:
        return _infer(MARKETING_TYPE_RULES, title, body, "traditional")

    def infer_channel_type(self, title: str, body: str) -> str:
        return _infer(CHANNEL_TYPE_RULES, title, body, "direct")

    def infer_pricing_model(self, title: str, body: str) -> str:
        return _infer(PRICING_MODEL_RULES, title, body, "one-time")

    def infer_difficulty(self, body: str) -> str:
        return _infer(DIFFICULTY_RULES, "", body, "medium")

    # -- scalar fields ------------------------------------------------------

    def extract_budget(self, text: str) -> BudgetEstimate:
        """Read ``min``/``max`` from currency amounts, synthesizing ``max``."""

        matches = list(CURRENCY_PATTERN.finditer(text))
        if not matches:
            return BudgetEstimate(
                min=DEFAULT_BUDGET_AMOUNT,
                max=_scale_amount(DEFAULT_BUDGET_AMOUNT, BUDGET_MAX_FACTOR),
                currency="USD",
            )
        first = matches[0]
        amount = first.group(2)
        if len(matches) > 1:
            maximum = matches[1].group(2)
        else:
            maximum = _scale_amount(amount, BUDGET_MAX_FACTOR)
        return BudgetEstimate(min=amount, max=maximum, currency=CURRENCY_CODES[first.group(1)])

    def extract_roi(self, text: str) -> str:
        labeled = labeled_value(text, ["Expected ROI", "ROI"])
        if labeled:
            return labeled
        match = PERCENT_PATTERN.search(text)
        if match:
            return f"{match.group(1)}%"
        return DEFAULT_ROI

    def extract_reach(self, text: str) -> str:
        labeled = labeled_value(text, ["Expected Reach", "Reach"])
        if labeled:
            return labeled
        match = REACH_PATTERN.search(text)
        if match:
            return match.group(0)
        return DEFAULT_REACH

    def extract_timeline(self, text: str) -> str:
        labeled = labeled_value(text, ["Timeline", "Timeframe"])
        if labeled:
            return labeled
        match = DURATION_PATTERN.search(text)
        if match:
            return match.group(0)
        return DEFAULT_TIMELINE

    def extract_description(self, text: str) -> str:
        for paragraph in plain_paragraphs(text):
            if len(paragraph) > 20:
                return paragraph
        return DEFAULT_DESCRIPTION

    def _score(self, text: str, labels: Sequence[str]) -> int:
        label_pattern = "|".join(re.escape(label) for label in labels)
        match = re.search(
            rf"(?:{label_pattern})(?:\s+score)?\W*?(\d+(?:\.\d+)?)(?:\s*/\s*(\d+))?",
            text,
            re.IGNORECASE,
        )
        if match:
            value = float(match.group(1))
            if match.group(2) and float(match.group(2)) > 0:
                value = value / float(match.group(2)) * 100
            return int(round(min(SCORE_CEILING, max(0.0, value))))
        return self._rng.randint(SCORE_FLOOR, SCORE_CEILING)

    def suitability_score(self, text: str) -> int:
        return self._score(text, ["suitability"])

    def market_fit_score(self, text: str) -> int:
        return self._score(text, ["market fit"])

    def relevance_score(self, text: str) -> int:
        return self._score(text, ["relevance"])

    # -- list fields --------------------------------------------------------

    def extract_tactics(self, text: str) -> List[MarketingTactic]:
        tactics = []
        for index, item in enumerate(list_item_texts(text)):
            name, description, details = split_list_item(item)
            tactics.append(
                MarketingTactic(
                    id=f"tactic-{index + 1}",
                    name=name,
                    description=description,
                    timeframe=details[0] if details else "TBD",
                    estimated_cost=details[1] if len(details) > 1 else "TBD",
                    difficulty="medium",
                )
            )
        return tactics

    def extract_implementation_steps(self, text: str) -> List[ImplementationStep]:
        steps = []
        for index, item in enumerate(list_item_texts(text)):
            title, description, details = split_list_item(item)
            steps.append(
                ImplementationStep(
                    id=f"step-{index + 1}",
                    title=title,
                    description=description,
                    estimated_time=details[0] if details else "TBD",
                )
            )
        return steps

    def extract_price_points(self, text: str) -> List[PricePoint]:
        """Label every currency amount positionally as ``Tier N``."""

        return [
            PricePoint(tier=f"Tier {index + 1}", price=match.group(0), features=[], target_segment="General")
            for index, match in enumerate(CURRENCY_PATTERN.finditer(text))
        ]

    def extract_cost_structure(self, text: str) -> CostStructure:
        return CostStructure(
            setup=labeled_value(text, ["Setup Cost", "Setup"]) or "TBD",
            monthly=labeled_value(text, ["Monthly Cost", "Monthly"]) or "TBD",
            notes="Extracted from markdown content",
        )

    # -- item builders ------------------------------------------------------

    def marketing_strategy(self, section: ParsedSection, index: int) -> MarketingStrategy:
        text = section.full_text()
        budget_text = labeled_value(text, ["Budget"]) or text
        return MarketingStrategy(
            id=f"marketing-{index + 1}",
            type=self.infer_marketing_type(section.title, text),
            title=section.title,
            description=self.extract_description(text),
            tactics=self.extract_tactics(text),
            budget=self.extract_budget(budget_text),
            timeline=self.extract_timeline(text),
            expected_roi=self.extract_roi(text),
            difficulty=self.infer_difficulty(text),
            completed=False,
        )

    def sales_channel(self, section: ParsedSection, index: int) -> SalesChannel:
        text = section.full_text()
        return SalesChannel(
            id=f"sales-{index + 1}",
            name=section.title,
            type=self.infer_channel_type(section.title, text),
            description=self.extract_description(text),
            implementation_steps=self.extract_implementation_steps(text),
            cost_structure=self.extract_cost_structure(text),
            expected_reach=self.extract_reach(text),
            suitability_score=self.suitability_score(text),
            completed=False,
        )

    def pricing_strategy(self, section: ParsedSection, index: int) -> PricingStrategy:
        text = section.full_text()
        return PricingStrategy(
            id=f"pricing-{index + 1}",
            model=self.infer_pricing_model(section.title, text),
            title=section.title,
            description=self.extract_description(text),
            price_points=self.extract_price_points(text),
            market_fit=self.market_fit_score(text),
            competitive_analysis=labeled_value(text, ["Competitive Analysis"]) or DEFAULT_COMPETITIVE_ANALYSIS,
            completed=False,
        )

    def distribution_plan(self, section: ParsedSection, index: int) -> DistributionPlan:
        text = section.full_text()
        resources_section = section.child_by_keywords(["resources"])
        resources_text = resources_section.full_text() if resources_section else text
        return DistributionPlan(
            id=f"distribution-{index + 1}",
            channel=section.title,
            strategy=self.extract_description(text),
            timeline=self.extract_timeline(text),
            resources=list_item_texts(resources_text),
            expected_outcome=labeled_value(text, ["Expected Outcome"]) or "",
        )

    def timeline_phase(self, section: ParsedSection) -> TimelinePhase:
        text = section.full_text()
        start = self._today()
        start_date, end_date = start.isoformat(), _add_months(start, 3).isoformat()
        duration = labeled_value(text, ["Duration"])
        if duration and " - " in duration:
            start_date, end_date = [part.strip() for part in duration.split(" - ", 1)]

        activities_section = section.child_by_keywords(["activities"])
        milestones_section = section.child_by_keywords(["milestones"])
        if activities_section:
            activities = list_item_texts(activities_section.full_text())
        else:
            activities = list_item_texts(section.body)
        milestones = list_item_texts(milestones_section.full_text()) if milestones_section else []
        return TimelinePhase(
            phase=section.title,
            start_date=start_date,
            end_date=end_date,
            activities=activities or list(DEFAULT_ACTIVITIES),
            milestones=milestones or list(DEFAULT_MILESTONES),
        )

    def tool_recommendation(self, section: ParsedSection, index: int) -> ToolRecommendation:
        text = section.full_text()
        return ToolRecommendation(
            id=f"tool-{index + 1}",
            name=section.title,
            category=labeled_value(text, ["Category"]) or "General",
            relevance_score=self.relevance_score(text),
            implementation_priority=(labeled_value(text, ["Implementation Priority", "Priority"]) or "medium").lower(),
            cost_estimate=labeled_value(text, ["Cost Estimate", "Cost"]) or "TBD",
            integration_complexity=(labeled_value(text, ["Integration Complexity", "Complexity"]) or "moderate").lower(),
            recommended_for=list_item_texts(text),
        )

    # -- whole documents ----------------------------------------------------

    def _category_items(self, sections: Sequence[ParsedSection], category: SectionType) -> List[ParsedSection]:
        found = find_section_by_keywords(sections, CATEGORY_KEYWORDS[category])
        if found is None:
            return []
        # Label children such as "Key Tactics:" belong to the item itself.
        items = [child for child in found.children if not child.title.rstrip().endswith(":")]
        return items or [found]

    def extract_strategy(
        self,
        sections: Sequence[ParsedSection],
        business_context: BusinessContext | None = None,
    ) -> StructuredStrategy:
        """Build a structured strategy from every recognised category."""

        timeline_sections = self._category_items(sections, SectionType.TIMELINE)
        return StructuredStrategy(
            id=f"gtm-{uuid4().hex[:12]}",
            business_context=business_context or default_business_context(),
            marketing_strategies=[
                self.marketing_strategy(section, index)
                for index, section in enumerate(self._category_items(sections, SectionType.MARKETING))
            ],
            sales_channels=[
                self.sales_channel(section, index)
                for index, section in enumerate(self._category_items(sections, SectionType.SALES))
            ],
            pricing_strategies=[
                self.pricing_strategy(section, index)
                for index, section in enumerate(self._category_items(sections, SectionType.PRICING))
            ],
            distribution_plans=[
                self.distribution_plan(section, index)
                for index, section in enumerate(self._category_items(sections, SectionType.DISTRIBUTION))
            ],
            implementation_timeline=[self.timeline_phase(section) for section in timeline_sections],
            tool_recommendations=[
                self.tool_recommendation(section, index)
                for index, section in enumerate(self._category_items(sections, SectionType.TOOLS))
            ],
            generated_at=datetime.now(timezone.utc).isoformat(),
            version="2.0",
        )

    def build_sections(self, sections: Sequence[ParsedSection]) -> List[MarkupSection]:
        """Create the typed section index for markdown that arrived without one."""

        built: List[MarkupSection] = []
        for category in CATEGORY_KEYWORDS:
            found = find_section_by_keywords(sections, CATEGORY_KEYWORDS[category])
            if found is None:
                continue
            subsections = []
            for index, child in enumerate(found.children):
                text = child.full_text()
                metrics = []
                for line in text.splitlines():
                    match = LABEL_LINE_PATTERN.match(line)
                    if match:
                        metrics.append(f"{match.group(1).strip()}: {match.group(2)}")
                subsections.append(
                    MarkupSubsection(
                        id=f"{category.value}-{index}",
                        heading=child.title,
                        content=" ".join(plain_paragraphs(child.body)),
                        action_items=[split_list_item(item)[0] for item in list_item_texts(text)],
                        key_metrics=metrics,
                    )
                )
            built.append(
                MarkupSection(
                    id=category.value,
                    type=category,
                    title=found.title,
                    body=found.body,
                    subsections=subsections,
                    completed=False,
                    editable=True,
                )
            )
        return built


def default_business_context() -> BusinessContext:
    return BusinessContext(
        business_idea="Default business idea",
        target_market="General market",
        value_proposition="Value proposition",
    )


def parse_markdown_response(
    markdown: str,
    business_context: BusinessContext | None = None,
    extractor: FieldExtractor | None = None,
) -> StructuredStrategy:
    """Extract a structured strategy from free-form strategy markdown."""

    sections = parse_sections(markdown)
    structure = validate_markdown_structure(sections)
    if structure.warnings:
        logger.warning("Markdown structure validation warnings: %s", "; ".join(structure.warnings))
    return (extractor or FieldExtractor()).extract_strategy(sections, business_context)


def sections_from_markdown(markdown: str, extractor: FieldExtractor | None = None) -> List[MarkupSection]:
    return (extractor or FieldExtractor()).build_sections(parse_sections(markdown))
