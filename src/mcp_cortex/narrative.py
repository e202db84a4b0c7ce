"""Compose a project narrative from branch notes, knowledge documents and context.

Everything here is best-effort text matching meant to surface candidates for
a human reader. Nothing raises on content.
"""

from __future__ import annotations

import re
from itertools import combinations
from typing import Iterable, Optional, Sequence

from .models import (
    BusinessValue,
    CrossReference,
    Decision,
    KeywordContext,
    Narrative,
    NarrativeSummary,
    NoteDocument,
    ProblemSolution,
    ProductionStory,
    ProjectContext,
    TechnicalJourney,
)
from .parsing import Section, extract_commits, extract_entries, split_sections
from .scoring import score
from .timeline import build_timeline

NARRATIVE_TYPES = ("full", "technical", "executive")

DEFAULT_TITLE = "Technical Implementation Project"

ARCHITECTURE_PATTERNS = [
    "microservices", "monolith", "api", "database", "cache", "queue",
    "docker", "kubernetes", "serverless", "event-driven", "mcp", "node.js",
]

IMPACT_KEYWORDS = [
    "efficiency", "performance", "scalability", "reliability", "security",
    "user experience", "cost reduction", "automation", "productivity",
]

PRODUCTION_SIGNALS = [
    "deployed", "production", "live", "released", "shipping",
    "testing", "qa", "staging", "integration",
]
HIGH_READINESS_SIGNALS = 4
MEDIUM_READINESS_SIGNALS = 2

DEPLOYMENT_KEYWORDS = ["deploy", "release", "launch", "rollout"]

PROBLEM_TERMS = ["issue", "problem", "bug", "error", "challenge", "limitation"]
SOLUTION_TERMS = ["solved", "fixed", "implemented", "resolved", "approach", "solution"]

CROSS_REFERENCE_RE = re.compile(
    r"\b(see also|related to|refer to|depends on|builds on|follow-up to|as described in)\b[:\s]+([^\n.;]+)",
    re.IGNORECASE,
)

DECISION_PATTERNS = [
    re.compile(r"decided to (.+?)(?:\.|$)", re.IGNORECASE | re.MULTILINE),
    re.compile(r"chose (.+?) because (.+?)(?:\.|$)", re.IGNORECASE | re.MULTILINE),
    re.compile(r"approach(?:ed)? (.+?) by (.+?)(?:\.|$)", re.IGNORECASE | re.MULTILINE),
    re.compile(r"implemented (.+?) to (.+?)(?:\.|$)", re.IGNORECASE | re.MULTILINE),
]

_KEYWORD_RE = re.compile(r"[A-Za-z][A-Za-z_-]{4,}")

STOPWORDS = frozenset({
    "about", "above", "added", "after", "again", "against", "along", "already",
    "also", "among", "another", "because", "before", "being", "below", "between",
    "could", "doing", "during", "every", "first", "found", "getting", "going",
    "having", "into", "later", "makes", "might", "needs", "other", "ought",
    "should", "since", "still", "their", "there", "these", "thing", "things",
    "those", "three", "through", "under", "until", "using", "where", "which",
    "while", "would", "message", "commit",
})

CONTEXT_LENGTH = 100
MAX_IMPLICIT_REFERENCES = 10
MIN_SHARED_KEYWORDS = 2


def _mentions(text: str, term: str) -> bool:
    return re.search(r"\b" + re.escape(term), text, re.IGNORECASE) is not None


def _collapse(text: str) -> str:
    return " ".join(text.split())


# ========== Context files ==========

def parse_context(text: str) -> ProjectContext:
    """Read title, description, additional info and related projects."""
    context = ProjectContext()
    for section in split_sections(text):
        body = section.body.split("\n---", 1)[0].strip()
        if section.level == 1 and context.title is None:
            context.title = section.heading
        elif section.heading == "Description":
            context.description = body or None
        elif section.heading == "Additional Information":
            context.additional_info = body or None
        elif section.heading == "Related Projects":
            context.related_projects = [
                line.strip()[2:].strip()
                for line in body.splitlines()
                if line.strip().startswith("- ")
            ]
    return context


# ========== Technical journey ==========

def extract_keyword_contexts(text: str, keyword: str, context_length: int = CONTEXT_LENGTH) -> list[str]:
    """The line mentioning ``keyword`` joined with its neighbours.

    Snippets of ten characters or fewer, or longer than twice
    ``context_length``, are dropped.
    """
    contexts = []
    lines = text.splitlines()
    for index, line in enumerate(lines):
        if not _mentions(line, keyword):
            continue
        snippet = " ".join(lines[max(0, index - 1):index + 2]).strip()
        if 10 < len(snippet) <= context_length * 2:
            contexts.append(snippet)
    return contexts


def _keyword_contexts(text: str, keywords: Iterable[str]) -> list[KeywordContext]:
    found = []
    for keyword in keywords:
        contexts = extract_keyword_contexts(text, keyword)
        if contexts:
            found.append(KeywordContext(keyword=keyword, contexts=contexts))
    return found


def architecture_contexts(text: str) -> list[KeywordContext]:
    return _keyword_contexts(text, ARCHITECTURE_PATTERNS)


def problem_solutions(sections: Sequence[Section]) -> list[ProblemSolution]:
    """Pair problem and solution vocabulary within each section."""
    found = []
    for section in sections:
        content = f"{section.heading}\n{section.body}"
        has_problem = any(_mentions(content, term) for term in PROBLEM_TERMS)
        if not has_problem:
            continue
        has_solution = any(_mentions(content, term) for term in SOLUTION_TERMS)
        found.append(ProblemSolution(
            heading=section.heading,
            status="resolved" if has_solution else "identified",
            excerpt=_collapse(section.body)[:150],
        ))
    return found


def section_keywords(section: Section) -> set[str]:
    words = {w.lower() for w in _KEYWORD_RE.findall(section.body)}
    return words - STOPWORDS


def cross_references(sections: Sequence[Section]) -> list[CrossReference]:
    """Explicit reference phrases, then sections sharing keywords."""
    refs = []
    for section in sections:
        for match in CROSS_REFERENCE_RE.finditer(section.body):
            refs.append(CrossReference(
                kind="explicit",
                source=section.heading,
                target=match.group(2).strip(),
                keywords=[match.group(1).lower()],
            ))

    keyed = [(section, section_keywords(section)) for section in sections]
    implicit = []
    for (first, first_words), (second, second_words) in combinations(keyed, 2):
        shared = first_words & second_words
        if len(shared) < MIN_SHARED_KEYWORDS:
            continue
        implicit.append(CrossReference(
            kind="implicit",
            source=first.heading,
            target=second.heading,
            keywords=sorted(shared)[:5],
        ))
        if len(implicit) >= MAX_IMPLICIT_REFERENCES:
            break

    return refs + implicit


def technical_journey(text: str) -> TechnicalJourney:
    sections = split_sections(text)
    return TechnicalJourney(
        architecture=architecture_contexts(text),
        problem_solving=problem_solutions(sections),
        cross_references=cross_references(sections),
    )


# ========== Decisions ==========

def key_decisions(text: str) -> list[Decision]:
    decisions = []
    for pattern in DECISION_PATTERNS:
        for match in pattern.finditer(text):
            groups = match.groups()
            decisions.append(Decision(
                decision=groups[0].strip(),
                reasoning=groups[1].strip() if len(groups) > 1 else None,
                context=match.group(0).strip(),
            ))
    return decisions


# ========== Business value and production story ==========

def business_value(text: str, context: Optional[ProjectContext] = None) -> BusinessValue:
    """Objectives from the context description, impacts from keyword contexts."""
    objectives = []
    if context is not None and context.description:
        objectives.append(context.description)
    return BusinessValue(objectives=objectives, impacts=_keyword_contexts(text, IMPACT_KEYWORDS))


def production_story(text: str) -> ProductionStory:
    """Readiness is high at four distinct signals, medium at two, low otherwise."""
    signals = [signal for signal in PRODUCTION_SIGNALS if _mentions(text, signal)]
    if len(signals) >= HIGH_READINESS_SIGNALS:
        readiness = "high"
    elif len(signals) >= MEDIUM_READINESS_SIGNALS:
        readiness = "medium"
    else:
        readiness = "low"
    return ProductionStory(
        readiness=readiness,
        signals=signals,
        deployment_path=_keyword_contexts(text, DEPLOYMENT_KEYWORDS),
    )


# ========== Summary ==========

def complexity_label(word_count: int) -> str:
    if word_count > 5000:
        return "high"
    if word_count > 1000:
        return "medium"
    return "low"


def documentation_health(word_count: int) -> str:
    return "good" if word_count > 500 else "needs attention"


def summarize(
    notes_text: str,
    knowledge_text: str,
    knowledge_count: int,
    context: Optional[ProjectContext],
    project: str,
    branch: Optional[str],
) -> NarrativeSummary:
    word_count = len(f"{notes_text}\n{knowledge_text}".split())
    commits = extract_commits(notes_text)

    achievements: list[str] = []
    for commit in commits:
        message = commit.payload["message"].strip()
        if len(message) > 5 and message not in achievements:
            achievements.append(message)

    context = context or ProjectContext()
    return NarrativeSummary(
        project=project,
        branch=branch,
        title=context.title or DEFAULT_TITLE,
        description=context.description,
        related_projects=list(context.related_projects),
        entry_count=len(extract_entries(notes_text)),
        word_count=word_count,
        commit_count=len(commits),
        knowledge_doc_count=knowledge_count,
        complexity=complexity_label(word_count),
        documentation_health=documentation_health(word_count),
        key_achievements=achievements,
    )


def compose_narrative(
    branch_notes: Iterable[NoteDocument],
    knowledge_docs: Iterable[str] = (),
    context: Optional[ProjectContext] = None,
    project: str = "",
    branch: Optional[str] = None,
    narrative_type: str = "full",
    production_terms: Optional[Iterable[str]] = None,
    development_terms: Optional[Iterable[str]] = None,
) -> Narrative:
    """Build the summary, timeline, journey, value, production story and decisions.

    The timeline comes from the branch notes alone; every other section
    reads notes and knowledge documents together.
    """
    notes = list(branch_notes)
    knowledge = list(knowledge_docs)
    notes_text = "\n\n".join(doc.text for doc in notes)
    knowledge_text = "\n\n".join(knowledge)
    combined = f"{notes_text}\n\n{knowledge_text}" if knowledge_text else notes_text

    readiness = None
    if notes_text.strip():
        readiness = score(notes_text, production_terms, development_terms)

    return Narrative(
        narrative_type=narrative_type,
        summary=summarize(notes_text, knowledge_text, len(knowledge), context, project, branch),
        timeline=build_timeline(notes),
        journey=technical_journey(combined),
        decisions=key_decisions(combined),
        readiness=readiness,
        business_value=business_value(combined, context),
        production_story=production_story(combined),
    )
