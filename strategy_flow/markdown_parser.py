"""Turn heading-delimited markdown into a nested section tree."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Sequence

HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+)$")


@dataclass
class ParsedSection:
    """One heading and the text beneath it, before typing."""

    title: str
    level: int
    body: str = ""
    children: List["ParsedSection"] = field(default_factory=list)

    def full_text(self) -> str:
        """Return the body followed by every descendant heading and body."""

        parts = [self.body] if self.body else []
        for child in self.children:
            parts.append(f"{'#' * child.level} {child.title}")
            child_text = child.full_text()
            if child_text:
                parts.append(child_text)
        return "\n".join(parts)

    def child_by_keywords(self, keywords: Sequence[str]) -> "ParsedSection | None":
        """Return the first direct child whose title contains a keyword."""

        for child in self.children:
            title = child.title.lower()
            if any(keyword in title for keyword in keywords):
                return child
        return None


def _close(section: ParsedSection | None, lines: List[str]) -> None:
    if section is None:
        return
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    section.body = "\n".join(lines[start:end])


def _nest(flat_sections: Iterable[ParsedSection]) -> List[ParsedSection]:
    """Attach each section under the nearest preceding shallower heading."""

    roots: List[ParsedSection] = []
    stack: List[ParsedSection] = []
    for section in flat_sections:
        while stack and stack[-1].level >= section.level:
            stack.pop()
        if stack:
            stack[-1].children.append(section)
        else:
            roots.append(section)
        stack.append(section)
    return roots


def parse_sections(markdown: str | None) -> List[ParsedSection]:
    """Parse *markdown* into an ordered forest of sections.

    Text before the first heading is dropped. A heading followed directly by
    another heading yields a section with an empty body.
    """

    if not markdown:
        return []

    flat: List[ParsedSection] = []
    current: ParsedSection | None = None
    lines: List[str] = []
    for line in markdown.splitlines():
        match = HEADING_PATTERN.match(line)
        if match:
            _close(current, lines)
            current = ParsedSection(title=match.group(2).strip(), level=len(match.group(1)))
            flat.append(current)
            lines = []
        elif current is not None:
            lines.append(line)
    _close(current, lines)

    return _nest(flat)


def iter_sections(sections: Iterable[ParsedSection]) -> Iterator[ParsedSection]:
    """Walk the forest depth first, parents before children."""

    for section in sections:
        yield section
        yield from iter_sections(section.children)


def all_titles(sections: Iterable[ParsedSection]) -> List[str]:
    return [section.title for section in iter_sections(sections)]


def find_empty_sections(sections: Iterable[ParsedSection]) -> List[str]:
    """Return titles of sections with neither body text nor children."""

    return [
        section.title
        for section in iter_sections(sections)
        if not section.body.strip() and not section.children
    ]


def iter_breadth_first(sections: Iterable[ParsedSection]) -> Iterator[ParsedSection]:
    """Walk the forest level by level, keeping document order per level."""

    level = list(sections)
    while level:
        yield from level
        level = [child for section in level for child in section.children]


def find_section_by_keywords(sections: Iterable[ParsedSection], keywords: Sequence[str]) -> ParsedSection | None:
    """Return the shallowest section whose title mentions a keyword.

    Label headings ending in a colon ("Implementation Steps:") introduce a
    list inside an item and never name a category, so they are skipped.
    """

    lowered = [keyword.lower() for keyword in keywords]
    for section in iter_breadth_first(sections):
        title = section.title.lower().rstrip()
        if title.endswith(":"):
            continue
        if any(keyword in title for keyword in lowered):
            return section
    return None
