"""Completeness and production-readiness heuristics for a branch note."""

from __future__ import annotations

from typing import Iterable, Optional

from .config import DEFAULT_DEVELOPMENT_TERMS, DEFAULT_PRODUCTION_TERMS
from .models import Readiness, ScoreResult
from .parsing import (
    count_body_words,
    count_nonblank_lines,
    count_section_entries,
    has_commit_marker,
    has_iso_date,
)

MAX_ENTRY_POINTS = 30
MAX_WORD_POINTS = 25
COMMIT_POINTS = 20
DATE_POINTS = 15
LENGTH_POINTS = 10
LENGTH_THRESHOLD = 10
READINESS_RATIO = 1.5


def completeness_score(text: str) -> int:
    """Score documentation depth on a 0-100 scale.

    Each component is capped before summing:
        5 per ``## `` entry (max 30), 1 per ten body words (max 25),
        20 for a commit marker, 15 for an ISO date, 10 for more than
        ten non-blank lines.
    """
    score = min(5 * count_section_entries(text), MAX_ENTRY_POINTS)
    score += min(count_body_words(text) // 10, MAX_WORD_POINTS)
    if has_commit_marker(text):
        score += COMMIT_POINTS
    if has_iso_date(text):
        score += DATE_POINTS
    if count_nonblank_lines(text) > LENGTH_THRESHOLD:
        score += LENGTH_POINTS
    return min(score, 100)


def count_terms(text: str, terms: Iterable[str]) -> int:
    """Number of distinct terms that occur in text, case-insensitively."""
    lowered = text.lower()
    return sum(1 for term in terms if term.lower() in lowered)


def production_readiness(
    text: str,
    production_terms: Optional[Iterable[str]] = None,
    development_terms: Optional[Iterable[str]] = None,
) -> Readiness:
    """Label a note Production, Development or Mixed.

    A side wins only when it exceeds 1.5 times the other; anything closer,
    including exactly 1.5 times, is Mixed.
    """
    prod = count_terms(text, production_terms or DEFAULT_PRODUCTION_TERMS)
    dev = count_terms(text, development_terms or DEFAULT_DEVELOPMENT_TERMS)
    if prod > dev * READINESS_RATIO:
        return Readiness.PRODUCTION
    if dev > prod * READINESS_RATIO:
        return Readiness.DEVELOPMENT
    return Readiness.MIXED


def score(
    text: str,
    production_terms: Optional[Iterable[str]] = None,
    development_terms: Optional[Iterable[str]] = None,
) -> ScoreResult:
    return ScoreResult(
        completeness_score=completeness_score(text),
        production_readiness=production_readiness(text, production_terms, development_terms),
    )
