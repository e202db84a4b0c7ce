"""Detect tickets and keywords in notes and group the notes that share them."""

from __future__ import annotations

import re
from typing import Iterable, Optional

from .config import DEFAULT_TECHNOLOGY_KEYWORDS
from .models import (
    Confidence,
    DocumentAnalysis,
    Relationship,
    RelationshipGroup,
    RelationshipType,
)

TICKET_RE = re.compile(r"\b[A-Z]+-\d+\b")

FEATURE_KEYWORDS = ["feature", "enhancement", "improvement", "fix", "bug"]

_TYPE_ORDER = {
    RelationshipType.TICKET: 0,
    RelationshipType.FEATURE_TYPE: 1,
    RelationshipType.TECHNOLOGY: 2,
}


def _keyword_pattern(term: str) -> re.Pattern:
    return re.compile(r"\b" + re.escape(term), re.IGNORECASE)


def detect_tickets(text: str) -> set[Relationship]:
    return {
        Relationship(RelationshipType.TICKET, ticket, Confidence.HIGH)
        for ticket in TICKET_RE.findall(text)
    }


def detect_keywords(text: str, keywords: Iterable[str], rel_type: RelationshipType) -> set[Relationship]:
    return {
        Relationship(rel_type, term, Confidence.MEDIUM)
        for term in keywords
        if _keyword_pattern(term).search(text)
    }


def detect_relationships(text: str, technology_keywords: Optional[Iterable[str]] = None) -> set[Relationship]:
    """Tickets (high confidence) plus feature and technology keywords (medium)."""
    found = detect_tickets(text)
    found |= detect_keywords(text, FEATURE_KEYWORDS, RelationshipType.FEATURE_TYPE)
    found |= detect_keywords(
        text,
        technology_keywords if technology_keywords is not None else DEFAULT_TECHNOLOGY_KEYWORDS,
        RelationshipType.TECHNOLOGY,
    )
    return found


def relationship_sort_key(rel: Relationship) -> tuple[int, str]:
    return (_TYPE_ORDER[rel.type], rel.value)


def aggregate_relationships(analyses: Iterable[DocumentAnalysis]) -> list[RelationshipGroup]:
    """Group analyses by shared (type, value).

    Each group lists the distinct (project, branch) pairs carrying it.
    Cross-branch groups come first, then by type and value.
    """
    groups: dict[tuple[RelationshipType, str], RelationshipGroup] = {}
    for analysis in analyses:
        location = (analysis.project, analysis.branch)
        for rel in sorted(analysis.relationships, key=relationship_sort_key):
            group = groups.get((rel.type, rel.value))
            if group is None:
                group = RelationshipGroup(type=rel.type, value=rel.value, confidence=rel.confidence)
                groups[(rel.type, rel.value)] = group
            if location not in group.locations:
                group.locations.append(location)

    return sorted(
        groups.values(),
        key=lambda g: (not g.is_cross_branch, _TYPE_ORDER[g.type], g.value),
    )
