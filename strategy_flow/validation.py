"""Validation helpers for structured strategies and strategy markdown."""

from __future__ import annotations

from typing import Iterable, List

from .markdown_parser import ParsedSection, all_titles, find_empty_sections
from .schemas import StructuredStrategy, ValidationResult

MARKETING_TYPES = {"digital", "content", "social", "traditional"}
CHANNEL_TYPES = {"direct", "retail", "online", "partner"}
PRICING_MODELS = {"freemium", "subscription", "one-time", "tiered"}
RECOMMENDED_SECTIONS = ("marketing", "sales", "pricing")
MIN_CONTENT_LENGTH = 100


def validate_strategies(strategies: StructuredStrategy) -> ValidationResult:
    """Check a structured strategy for missing fields and out-of-range values."""

    errors: List[str] = []
    warnings: List[str] = []

    if not strategies.id:
        errors.append("Strategy ID is required")

    context = strategies.business_context
    if context is None:
        errors.append("Business context is required")
    else:
        if not context.business_idea:
            errors.append("Business idea is required")
        if not context.target_market:
            warnings.append("Target market is missing")
        if not context.value_proposition:
            warnings.append("Value proposition is missing")

    if not strategies.marketing_strategies:
        warnings.append("No marketing strategies found")
    if not strategies.sales_channels:
        warnings.append("No sales channels found")
    if not strategies.pricing_strategies:
        warnings.append("No pricing strategies found")

    for index, strategy in enumerate(strategies.marketing_strategies, start=1):
        if not strategy.title:
            errors.append(f"Marketing strategy {index} missing title")
        if not strategy.description:
            warnings.append(f"Marketing strategy {index} missing description")
        if strategy.type not in MARKETING_TYPES:
            errors.append(f"Marketing strategy {index} has invalid type")

    for index, channel in enumerate(strategies.sales_channels, start=1):
        if not channel.name:
            errors.append(f"Sales channel {index} missing name")
        if channel.type not in CHANNEL_TYPES:
            errors.append(f"Sales channel {index} has invalid type")
        if not 0 <= channel.suitability_score <= 100:
            errors.append(f"Sales channel {index} has invalid suitability score")

    for index, pricing in enumerate(strategies.pricing_strategies, start=1):
        if not pricing.title:
            errors.append(f"Pricing strategy {index} missing title")
        if pricing.model not in PRICING_MODELS:
            errors.append(f"Pricing strategy {index} has invalid model")
        if not 0 <= pricing.market_fit <= 100:
            errors.append(f"Pricing strategy {index} has invalid market fit score")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_markdown_content(content: str | None) -> ValidationResult:
    """Run the cheap checks on raw strategy markdown."""

    errors: List[str] = []
    warnings: List[str] = []

    if not content or not content.strip():
        errors.append("Content is empty")
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

    if "#" not in content:
        warnings.append("No headers found in content")
    if len(content) < MIN_CONTENT_LENGTH:
        warnings.append("Content appears to be very short")

    return ValidationResult(is_valid=True, errors=errors, warnings=warnings)


def validate_markdown_structure(sections: Iterable[ParsedSection]) -> ValidationResult:
    """Warn about missing recommended sections and empty ones."""

    sections = list(sections)
    warnings: List[str] = []
    titles = [title.lower() for title in all_titles(sections)]
    for required in RECOMMENDED_SECTIONS:
        if not any(required in title for title in titles):
            warnings.append(f"Missing recommended section: {required}")

    empty = find_empty_sections(sections)
    if empty:
        warnings.append(f"Empty sections found: {', '.join(empty)}")

    return ValidationResult(is_valid=True, errors=[], warnings=warnings)
