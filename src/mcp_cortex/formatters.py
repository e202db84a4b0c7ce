"""Render analysis results as markdown text.

Pure functions: identical input gives identical output.
"""

from __future__ import annotations

from collections import Counter
from typing import Optional

from .models import (
    Event,
    EventKind,
    GapAnalysis,
    Narrative,
    Priority,
    Readiness,
    RelationshipType,
    SurveyReport,
)
from .relationships import relationship_sort_key
from .timeline import DateRange

HIGH_SCORE = 70
MEDIUM_SCORE = 30
MAX_MEDIUM_LISTED = 10
MAX_LOW_LISTED = 5
MAX_TECHNOLOGIES_LISTED = 5


def _first_line(text: str, limit: int = 120) -> str:
    for line in text.splitlines():
        if line.strip():
            line = line.strip()
            return line if len(line) <= limit else line[:limit - 3] + "..."
    return ""


def describe_event(event: Event) -> str:
    """One-line description of an event, without its time."""
    payload = event.payload
    if event.kind is EventKind.COMMIT:
        return f"Commit {payload.get('short_hash', '')}: {payload.get('message', '')}".rstrip(": ")
    if event.kind is EventKind.ENTRY:
        return f"Entry: {_first_line(payload.get('content', '')) or '(empty)'}"
    if event.kind is EventKind.PHASE:
        return f"Phase {payload.get('number', '')}: {payload.get('description', '')}"
    return f"Milestone: {payload.get('description', '')}"


def _event_lines(events: list[Event], show_source: bool) -> list[str]:
    lines = []
    current_day = None
    undated = []
    for event in events:
        moment = event.time
        source = f"[{event.project}/{event.branch}] " if show_source else ""
        if moment is None:
            undated.append(f"- {source}{describe_event(event)}")
            continue
        day = moment.strftime("%Y-%m-%d")
        if day != current_day:
            if current_day is not None:
                lines.append("")
            lines.extend([f"### {day}", ""])
            current_day = day
        lines.append(f"- **{moment.strftime('%H:%M:%S')}** {source}{describe_event(event)}")
    if undated:
        if lines:
            lines.append("")
        lines.extend(["### Undated", ""])
        lines.extend(undated)
    return lines


def format_timeline(events: list[Event], scope: str, date_range: Optional[DateRange] = None) -> str:
    """Timeline grouped by day with undated events last."""
    if not events:
        return f"No timeline events found for {scope}."

    counts = Counter(e.kind for e in events)
    sources = sorted({(e.project, e.branch) for e in events})
    lines = [
        f"# Timeline Reconstruction: {scope}",
        "",
        f"**Events**: {len(events)}",
        f"**Commits**: {counts[EventKind.COMMIT]} | **Entries**: {counts[EventKind.ENTRY]} | "
        f"**Milestones**: {counts[EventKind.MILESTONE]} | **Phases**: {counts[EventKind.PHASE]}",
        f"**Sources**: {', '.join(f'{p}/{b}' for p, b in sources)}",
    ]
    if date_range is not None:
        start = date_range.start.isoformat() if date_range.start else "start"
        end = date_range.end.isoformat() if date_range.end else "now"
        lines.append(f"**Date Range**: {start} to {end}")
    lines.extend(["", "## Events", ""])
    lines.extend(_event_lines(events, show_source=len(sources) > 1))
    lines.append("")
    return "\n".join(lines)


def format_survey(report: SurveyReport) -> str:
    """Branch survey: summary, per-project stats, relationships, tiers."""
    analyses = report.analyses
    if not analyses:
        return "No branch notes matched the survey criteria."

    total = len(analyses)
    average = round(sum(a.completeness_score for a in analyses) / total)
    production = [a for a in analyses if a.production_readiness is Readiness.PRODUCTION]

    lines = [
        "# Branch Survey",
        "",
        "## Summary",
        f"- **Branches analyzed**: {total} across {len(report.project_stats)} projects",
    ]
    if report.include_analysis:
        lines.extend([
            f"- **Average completeness**: {average}/100",
            f"- **Production ready**: {len(production)} branches ({round(len(production) / total * 100)}%)",
        ])
    lines.append("")

    lines.extend(["## Projects", ""])
    for stats in report.project_stats:
        marker = " (current)" if stats.project == report.current_project else ""
        lines.append(f"### {stats.project}{marker}")
        lines.append(f"- **Branches**: {stats.branches}")
        if report.include_analysis:
            lines.append(f"- **Average completeness**: {stats.average_score}/100")
            lines.append(f"- **Production ready**: {stats.production_ready} | **In development**: {stats.in_development}")
        lines.append("")

    groups = report.relationship_groups
    if report.detect_relationships and groups:
        lines.extend(["## Cross-Branch Relationships", ""])
        shared_tickets = [g for g in groups if g.type is RelationshipType.TICKET and g.is_cross_branch]
        if shared_tickets:
            lines.append("### Shared Tickets")
            for group in shared_tickets:
                lines.append(f"- **{group.value}**: {group.branch_count} branches")
                lines.extend(f"  - {p}/{b}" for p, b in group.locations)
            lines.append("")
        shared_features = [g for g in groups if g.type is RelationshipType.FEATURE_TYPE and g.is_cross_branch]
        if shared_features:
            lines.append("### Shared Work Types")
            lines.extend(f"- **{g.value}**: {g.branch_count} branches" for g in shared_features)
            lines.append("")
        technologies = sorted(
            (g for g in groups if g.type is RelationshipType.TECHNOLOGY),
            key=lambda g: (-g.branch_count, g.value),
        )
        if technologies:
            lines.append("### Technology Distribution")
            lines.extend(
                f"- **{g.value}**: {g.branch_count} branches"
                for g in technologies[:MAX_TECHNOLOGIES_LISTED]
            )
            lines.append("")

    lines.extend(["## Branch Details", ""])
    high = [a for a in analyses if a.completeness_score >= HIGH_SCORE]
    medium = [a for a in analyses if MEDIUM_SCORE <= a.completeness_score < HIGH_SCORE]
    low = [a for a in analyses if a.completeness_score < MEDIUM_SCORE]

    if not report.include_analysis:
        for a in analyses:
            lines.append(f"- **{a.project}/{a.branch}** - Entries: {a.entry_count} | Words: {a.word_count}")
        lines.append("")
    else:
        if high:
            lines.append(f"### Well Documented (score >= {HIGH_SCORE})")
            for a in high:
                marker = " (current)" if a.is_current_project else ""
                lines.append(f"- **{a.project}/{a.branch}**{marker} - Score: {a.completeness_score}/100")
                lines.append(
                    f"  - Status: {a.production_readiness.value} | Entries: {a.entry_count} | Words: {a.word_count}"
                )
                if a.relationships:
                    related = ", ".join(r.value for r in sorted(a.relationships, key=relationship_sort_key))
                    lines.append(f"  - Related: {related}")
            lines.append("")
        if medium:
            lines.append(f"### Partially Documented (score {MEDIUM_SCORE}-{HIGH_SCORE - 1})")
            for a in medium[:MAX_MEDIUM_LISTED]:
                marker = " (current)" if a.is_current_project else ""
                lines.append(
                    f"- **{a.project}/{a.branch}**{marker} - Score: {a.completeness_score}/100 "
                    f"({a.production_readiness.value})"
                )
            if len(medium) > MAX_MEDIUM_LISTED:
                lines.append(f"- ... and {len(medium) - MAX_MEDIUM_LISTED} more")
            lines.append("")
        if low:
            lines.append(f"### Needs Attention (score < {MEDIUM_SCORE})")
            lines.append(f"{len(low)} branches have minimal documentation")
            for a in low[:MAX_LOW_LISTED]:
                lines.append(f"- {a.project}/{a.branch} (score: {a.completeness_score})")
            lines.append("")

    recommendations = []
    if production:
        recommendations.append(
            f"**Consolidate**: {len(production)} branches hold production-ready work "
            "worth folding into main branch documentation"
        )
    if any(g.is_cross_branch for g in groups):
        recommendations.append(
            "**Synthesize**: several branches share tickets or features; consider consolidating related work"
        )
    if report.include_analysis and low:
        recommendations.append(f"**Improve**: {len(low)} branches need more documentation")
    if recommendations:
        lines.extend(["## Recommendations", ""])
        lines.extend(f"{i}. {text}" for i, text in enumerate(recommendations, 1))
        lines.append("")

    return "\n".join(lines)


def _summary_lines(narrative: Narrative) -> list[str]:
    summary = narrative.summary
    scope = summary.project + (f"/{summary.branch}" if summary.branch else "")
    lines = [
        "## Summary",
        "",
        f"**Project**: {summary.title}",
        f"**Scope**: {scope}",
    ]
    if summary.description:
        lines.append(f"**Description**: {summary.description}")
    lines.extend([
        f"**Entries**: {summary.entry_count} | **Commits**: {summary.commit_count} | "
        f"**Words**: {summary.word_count} | **Knowledge documents**: {summary.knowledge_doc_count}",
        f"**Complexity**: {summary.complexity}",
        f"**Documentation health**: {summary.documentation_health}",
    ])
    if narrative.readiness is not None:
        lines.append(
            f"**Completeness**: {narrative.readiness.completeness_score}/100 | "
            f"**Readiness**: {narrative.readiness.production_readiness.value}"
        )
    if summary.related_projects:
        lines.append(f"**Related projects**: {', '.join(summary.related_projects)}")
    lines.append("")
    if summary.key_achievements:
        lines.append("**Key achievements**:")
        lines.extend(f"- {a}" for a in summary.key_achievements[:5])
        lines.append("")
    return lines


def _journey_lines(narrative: Narrative) -> list[str]:
    journey = narrative.journey
    lines = ["## Technical Journey", ""]
    if journey.architecture:
        lines.append("### Architecture & Technology")
        for item in journey.architecture:
            lines.append(f"- **{item.keyword}**: {item.contexts[0][:150]}")
        lines.append("")
    if journey.problem_solving:
        lines.append("### Problem Solving")
        for item in journey.problem_solving[:5]:
            excerpt = f": {item.excerpt}" if item.excerpt else ""
            lines.append(f"- [{item.status}] **{item.heading}**{excerpt}")
        lines.append("")
    if journey.cross_references:
        lines.append("### Cross References")
        for ref in journey.cross_references:
            if ref.kind == "explicit":
                lines.append(f"- {ref.source} -> {ref.target} ({ref.keywords[0]})")
            else:
                lines.append(f"- {ref.source} <-> {ref.target} (shared: {', '.join(ref.keywords)})")
        lines.append("")
    if len(lines) == 2:
        lines.extend(["No technical patterns detected.", ""])
    return lines


def _value_lines(narrative: Narrative) -> list[str]:
    value = narrative.business_value
    if not value.objectives and not value.impacts:
        return []
    lines = ["## Business Value", ""]
    lines.extend(f"- **Objective**: {objective}" for objective in value.objectives)
    for impact in value.impacts[:5]:
        lines.append(f"- **{impact.keyword}**: {impact.contexts[0][:100]}")
    lines.append("")
    return lines


def _production_lines(narrative: Narrative) -> list[str]:
    story = narrative.production_story
    lines = ["## Production Readiness", "", f"**Status**: {story.readiness} readiness"]
    if story.signals:
        lines.append(f"**Signals**: {', '.join(story.signals)}")
    if story.deployment_path:
        lines.append("**Deployment context**:")
        steps = [context for item in story.deployment_path for context in item.contexts]
        lines.extend(f"- {step[:100]}" for step in steps[:3])
    lines.append("")
    return lines


def _decision_lines(narrative: Narrative) -> list[str]:
    if not narrative.decisions:
        return []
    lines = ["## Key Decisions", ""]
    for decision in narrative.decisions[:5]:
        lines.append(f"- **Decision**: {decision.decision}")
        if decision.reasoning:
            lines.append(f"  - **Reasoning**: {decision.reasoning}")
    lines.append("")
    return lines


def format_narrative(narrative: Narrative) -> str:
    """Full, technical or executive narrative."""
    kind = narrative.narrative_type
    lines = [f"# Project Narrative: {narrative.summary.project}", ""]
    lines.extend(_summary_lines(narrative))

    if kind in ("full", "technical"):
        lines.extend(["## Timeline", ""])
        if narrative.timeline:
            lines.extend(_event_lines(narrative.timeline, show_source=True))
        else:
            lines.append("No timeline events found.")
        lines.append("")
        lines.extend(_journey_lines(narrative))

    lines.extend(_value_lines(narrative))
    lines.extend(_production_lines(narrative))
    lines.extend(_decision_lines(narrative))
    return "\n".join(lines)


def format_gap_report(analysis: GapAnalysis) -> str:
    """Files scanned, complexity hot spots and recommendations by priority."""
    lines = [f"# Documentation Gap Analysis: {analysis.project}", "", f"**Folder**: {analysis.root}"]

    if not analysis.file_structure and not analysis.recommendations:
        lines.extend(["", "No matching files found.", ""])
        return "\n".join(lines)

    counts = Counter(r.priority for r in analysis.recommendations)
    entry_points = [f.relative_path for f in analysis.file_structure if f.is_entry_point]
    lines.extend([
        f"**Files analyzed**: {len(analysis.file_structure)}",
        f"**Entry points**: {', '.join(entry_points) if entry_points else 'none'}",
        f"**Recommendations**: {len(analysis.recommendations)} "
        f"(high: {counts[Priority.HIGH]}, medium: {counts[Priority.MEDIUM]}, low: {counts[Priority.LOW]})",
    ])
    if analysis.skipped_files:
        lines.append(f"**Skipped (unreadable)**: {', '.join(analysis.skipped_files)}")
    lines.append("")

    ranked = sorted(analysis.complexity_analysis.items(), key=lambda item: (-item[1].score, item[0]))
    if ranked:
        lines.extend(["## Complexity", ""])
        for path, complexity in ranked[:10]:
            lines.append(
                f"- `{path}`: {complexity.score} ({complexity.category}) - "
                f"{complexity.lines} lines, {complexity.functions} functions, {complexity.classes} classes"
            )
        lines.append("")

    for priority in Priority:
        items = [r for r in analysis.recommendations if r.priority is priority]
        if not items:
            continue
        lines.extend([f"## {priority.value} Priority", ""])
        for rec in items:
            lines.append(f"- {rec.action}")
            lines.append(f"  - {rec.rationale}")
        lines.append("")

    if analysis.checklist_path:
        lines.extend([f"**Checklist created**: {analysis.checklist_path}", ""])
    return "\n".join(lines)
