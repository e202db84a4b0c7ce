"""Data models for stored documents and the analyses derived from them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


NOTE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class EventKind(Enum):
    """Kind of event extracted from a branch note."""
    COMMIT = "commit"
    ENTRY = "entry"
    MILESTONE = "milestone"
    PHASE = "phase"


class Significance(Enum):
    """How much an event matters in a timeline."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


SIGNIFICANCE_BY_KIND = {
    EventKind.COMMIT: Significance.HIGH,
    EventKind.ENTRY: Significance.MEDIUM,
    EventKind.MILESTONE: Significance.MEDIUM,
    EventKind.PHASE: Significance.LOW,
}


class Readiness(Enum):
    """Coarse lifecycle label for a branch note."""
    PRODUCTION = "Production"
    DEVELOPMENT = "Development"
    MIXED = "Mixed"


class RelationshipType(Enum):
    TICKET = "ticket"
    FEATURE_TYPE = "feature_type"
    TECHNOLOGY = "technology"


class Confidence(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Priority(Enum):
    """Recommendation priority; lower rank sorts first."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def format_note_timestamp(dt: datetime) -> str:
    """Format a datetime as the YYYY-MM-DD HH:MM:SS stamp used in notes."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime(NOTE_TIMESTAMP_FORMAT)


def parse_event_time(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-like timestamp; None when absent or unparseable.

    Aware values are normalized to naive UTC so every result compares.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


# ========== Timeline ==========

@dataclass
class Event:
    """One occurrence in a project's history, derived from note text."""
    kind: EventKind
    project: str = ""
    branch: str = ""
    timestamp: Optional[str] = None
    payload: dict[str, str] = field(default_factory=dict)

    @property
    def significance(self) -> Significance:
        return SIGNIFICANCE_BY_KIND[self.kind]

    @property
    def time(self) -> Optional[datetime]:
        return parse_event_time(self.timestamp)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "project": self.project,
            "branch": self.branch,
            "timestamp": self.timestamp,
            "payload": dict(self.payload),
            "significance": self.significance.value,
        }


@dataclass
class NoteDocument:
    """A branch note's text with the project/branch it belongs to."""
    project: str
    branch: str
    text: str
    last_modified: Optional[datetime] = None


# ========== Survey ==========

@dataclass(frozen=True)
class Relationship:
    type: RelationshipType
    value: str
    confidence: Confidence


@dataclass
class ScoreResult:
    completeness_score: int
    production_readiness: Readiness


@dataclass
class DocumentAnalysis:
    """Per-branch-note survey record."""
    project: str
    branch: str
    completeness_score: int
    production_readiness: Optional[Readiness]
    relationships: set[Relationship] = field(default_factory=set)
    entry_count: int = 0
    word_count: int = 0
    has_commit_separators: bool = False
    last_modified: Optional[datetime] = None
    is_current_project: bool = False


@dataclass
class RelationshipGroup:
    """Documents sharing one (type, value) relationship."""
    type: RelationshipType
    value: str
    confidence: Confidence
    locations: list[tuple[str, str]] = field(default_factory=list)

    @property
    def branch_count(self) -> int:
        return len(self.locations)

    @property
    def is_cross_branch(self) -> bool:
        return self.branch_count > 1


@dataclass
class ProjectStats:
    project: str
    branches: int = 0
    total_completeness: int = 0
    production_ready: int = 0
    in_development: int = 0

    @property
    def average_score(self) -> int:
        if self.branches == 0:
            return 0
        return round(self.total_completeness / self.branches)


@dataclass
class SurveyReport:
    analyses: list[DocumentAnalysis]
    project_stats: list[ProjectStats]
    relationship_groups: list[RelationshipGroup]
    current_project: Optional[str] = None
    include_analysis: bool = True
    detect_relationships: bool = True


# ========== Narrative ==========

@dataclass
class ProjectContext:
    """Fields read back from a context file."""
    title: Optional[str] = None
    description: Optional[str] = None
    additional_info: Optional[str] = None
    related_projects: list[str] = field(default_factory=list)


@dataclass
class NarrativeSummary:
    project: str
    branch: Optional[str]
    title: str
    description: Optional[str]
    related_projects: list[str]
    entry_count: int
    word_count: int
    commit_count: int
    knowledge_doc_count: int
    complexity: str
    documentation_health: str
    key_achievements: list[str] = field(default_factory=list)


@dataclass
class KeywordContext:
    keyword: str
    contexts: list[str]


@dataclass
class ProblemSolution:
    heading: str
    status: str  # "resolved" or "identified"
    excerpt: str


@dataclass
class CrossReference:
    kind: str  # "explicit" or "implicit"
    source: str
    target: str
    keywords: list[str] = field(default_factory=list)


@dataclass
class TechnicalJourney:
    architecture: list[KeywordContext] = field(default_factory=list)
    problem_solving: list[ProblemSolution] = field(default_factory=list)
    cross_references: list[CrossReference] = field(default_factory=list)


@dataclass
class Decision:
    decision: str
    reasoning: Optional[str]
    context: str


@dataclass
class BusinessValue:
    objectives: list[str] = field(default_factory=list)
    impacts: list[KeywordContext] = field(default_factory=list)


@dataclass
class ProductionStory:
    """Deployment readiness read from production and testing vocabulary."""
    readiness: str  # "high", "medium" or "low"
    signals: list[str] = field(default_factory=list)
    deployment_path: list[KeywordContext] = field(default_factory=list)


@dataclass
class Narrative:
    narrative_type: str
    summary: NarrativeSummary
    timeline: list[Event]
    journey: TechnicalJourney
    decisions: list[Decision]
    readiness: Optional[ScoreResult] = None
    business_value: BusinessValue = field(default_factory=BusinessValue)
    production_story: ProductionStory = field(default_factory=lambda: ProductionStory("low"))


# ========== Documentation gaps ==========

@dataclass
class DependencyInfo:
    imports: list[str] = field(default_factory=list)
    exports: list[str] = field(default_factory=list)
    internal_deps: list[str] = field(default_factory=list)
    external_deps: list[str] = field(default_factory=list)


@dataclass
class Complexity:
    score: float
    lines: int
    functions: int
    classes: int
    conditionals: int
    loops: int
    category: str


@dataclass
class SourceFile:
    """One file recorded by the documentation gap walk."""
    path: str
    relative_path: str
    name: str
    extension: str
    size_bytes: int
    is_entry_point: bool = False
    dependency_info: Optional[DependencyInfo] = None
    complexity: Optional[Complexity] = None


@dataclass
class Gap:
    """A documentation gap; each one yields a recommendation."""
    type: str
    priority: Priority
    file: Optional[str]
    description: str


@dataclass
class Recommendation:
    priority: Priority
    type: str
    action: str
    rationale: str
    file: Optional[str] = None


@dataclass
class GapAnalysis:
    root: str
    project: str
    file_structure: list[SourceFile] = field(default_factory=list)
    dependency_map: dict[str, DependencyInfo] = field(default_factory=dict)
    complexity_analysis: dict[str, Complexity] = field(default_factory=dict)
    gaps: list[Gap] = field(default_factory=list)
    recommendations: list[Recommendation] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)
    checklist_path: Optional[str] = None

    def to_checklist_markdown(self, created: str) -> str:
        """Render the recommendations as a persisted checklist document."""
        lines = [
            f"# Completion Checklist: Documentation Gaps ({self.project})",
            "",
            "## Project Information",
            f"- **Project:** {self.project}",
            f"- **Analyzed Folder:** {self.root}",
            f"- **Creation Date:** {created}",
            "",
        ]
        for priority in Priority:
            items = [r for r in self.recommendations if r.priority is priority]
            if not items:
                continue
            lines.append(f"### {priority.value.title()} Priority")
            for rec in items:
                lines.append(f"- [ ] {rec.action}")
            lines.append("")
        if not self.recommendations:
            lines.extend(["### Documentation", "- [x] No documentation gaps detected", ""])
        return "\n".join(lines)


# ========== Stored documents ==========

def branch_note_header(project: str, branch: str) -> str:
    return f"# Branch Note: {branch} ({project})\n\n"


@dataclass
class BranchNoteEntry:
    """A timestamped entry appended to a branch note."""
    timestamp: datetime
    message: str

    def to_markdown(self) -> str:
        return f"## {format_note_timestamp(self.timestamp)}\n{self.message}\n\n"


@dataclass
class CommitSeparator:
    """Marks a commit boundary inside a branch note."""
    commit_hash: str
    message: str
    timestamp: datetime

    @property
    def short_hash(self) -> str:
        return self.commit_hash[:8]

    def to_markdown(self) -> str:
        return (
            f"\n---\n\n## COMMIT: {self.short_hash} | {format_note_timestamp(self.timestamp)}\n"
            f"**Full Hash:** {self.commit_hash}\n"
            f"**Message:** {self.message}\n\n---\n\n"
        )


@dataclass
class ContextFile:
    """Describes what a branch is for."""
    project: str
    branch: str
    title: str
    description: str
    updated: datetime
    additional_info: Optional[str] = None
    related_projects: list[str] = field(default_factory=list)

    def to_markdown(self) -> str:
        lines = [f"# {self.title}", "", "## Description", self.description, ""]
        if self.additional_info:
            lines.extend(["## Additional Information", self.additional_info, ""])
        if self.related_projects:
            lines.append("## Related Projects")
            lines.extend(f"- {p}" for p in self.related_projects)
            lines.append("")
        lines.extend([
            "---",
            f"Last Updated: {format_note_timestamp(self.updated)}",
            f"Branch: {self.branch}",
            f"Project: {self.project}",
            "",
        ])
        return "\n".join(lines)


@dataclass
class TacitKnowledge:
    """A structured write-up of problem, approach and outcome."""
    title: str
    author: str
    project: str
    captured: datetime
    problem_statement: str
    approach: str
    outcome: str
    branch: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    environment: Optional[str] = None
    constraints: Optional[str] = None
    related_documentation: Optional[str] = None

    @property
    def date(self) -> str:
        return self.captured.strftime("%Y-%m-%d")

    def to_markdown(self) -> str:
        lines = [
            "# Tacit Knowledge Capture",
            "",
            "## Overview",
            f"This document captures tacit knowledge related to {self.title}.",
            "",
            "## Knowledge Details",
            "",
            "### Basic Information",
            f"**Title:** {self.title}",
            f"**Date Captured:** {self.date}",
            f"**Author:** {self.author}",
            f"**Project:** {self.project}",
        ]
        if self.branch:
            lines.append(f"**Branch:** {self.branch}")
        if self.tags:
            lines.append(f"**Tags:** {', '.join(self.tags)}")
        lines.extend(["", "### Context", "**Problem Statement:**", self.problem_statement, ""])
        if self.environment:
            lines.extend(["**Environment/Conditions:**", self.environment, ""])
        if self.constraints:
            lines.extend(["**Constraints:**", self.constraints, ""])
        lines.extend([
            "---",
            "",
            "## Knowledge Content",
            "",
            "### Approach",
            self.approach,
            "",
            "---",
            "",
            "## Outcomes and Learning",
            "",
            "### Results",
            "**Outcome:**",
            self.outcome,
            "",
        ])
        if self.related_documentation:
            lines.extend([
                "### Knowledge Connection",
                "**Related Documentation:**",
                self.related_documentation,
                "",
            ])
        return "\n".join(lines)


DEFAULT_KNOWLEDGE_ITEMS = [
    "Technical decisions and their rationale",
    "Implementation challenges and solutions",
    "Lessons learned during development",
    "Areas for future improvement",
]

# Sign-off key -> label written in the checklist
SIGN_OFF_LABELS = {
    "Implementation": "Implementation Complete",
    "Testing": "Testing Complete",
    "Knowledge": "Knowledge Documented",
    "Approval": "Project Owner Approval",
}


def _checkbox_lines(text: str) -> list[str]:
    return [f"- [ ] {item.strip()}" for item in text.splitlines() if item.strip()]


@dataclass
class CompletionChecklist:
    """Objectives, requirements and sign-off lines for a feature."""
    project: str
    feature: str
    owner: str
    created: datetime
    objectives: str
    requirements: str
    test_criteria: Optional[str] = None
    knowledge_items: Optional[str] = None
    ticket: Optional[str] = None

    @property
    def date(self) -> str:
        return self.created.strftime("%Y-%m-%d")

    def to_markdown(self) -> str:
        lines = [
            f"# Completion Checklist: {self.feature}",
            "",
            "## Project Information",
            f"- **Project:** {self.project}",
            f"- **Feature/Module:** {self.feature}",
            f"- **Owner:** {self.owner}",
            f"- **Creation Date:** {self.date}",
        ]
        if self.ticket:
            lines.append(f"- **Jira Ticket:** {self.ticket}")
        lines.extend(["", "## Objectives and Requirements", "", "### Objectives"])
        lines.extend(_checkbox_lines(self.objectives))
        lines.extend(["", "### Requirements"])
        lines.extend(_checkbox_lines(self.requirements))
        lines.append("")
        if self.test_criteria:
            lines.append("## Testing Criteria")
            lines.extend(_checkbox_lines(self.test_criteria))
            lines.append("")
        lines.extend(["## Knowledge Capture Requirements", "", "### Knowledge Items to Document"])
        if self.knowledge_items:
            lines.extend(_checkbox_lines(self.knowledge_items))
        else:
            lines.extend(f"- [ ] {item}" for item in DEFAULT_KNOWLEDGE_ITEMS)
        lines.extend(["", "## Sign-off", ""])
        for label in SIGN_OFF_LABELS.values():
            lines.extend([f"**{label}:** _____________ Date: _______", ""])
        return "\n".join(lines)
