"""Named extraction rules turning branch-note markdown into events.

Each rule is a pure function ``text -> list[Event]``. Rules never raise on
content: anything that does not match the expected shape is skipped. Rules
are independent, so a line may yield an event from more than one rule.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from .models import Event, EventKind

COMMIT_MARKER = "COMMIT:"

_COMMIT_RE = re.compile(
    r"^## COMMIT:[ \t]*(\S+)[ \t]*\|[ \t]*(.+?)[ \t]*\n"
    r"\*\*Full Hash:\*\*[ \t]*(\S+)[ \t]*\n"
    r"\*\*Message:\*\*[ \t]*(.*?)[ \t]*$",
    re.MULTILINE,
)
_ENTRY_HEADING_RE = re.compile(r"^(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})$")
_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.*?)[ \t]*$")
_LEADING_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_PHASE_RE = re.compile(r"\bPhase[ \t]+(\d+(?:\.\d+)?):?[ \t]+(\S.*?)[ \t]*$")
_ISO_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_SECTION_ENTRY_RE = re.compile(r"^## ", re.MULTILINE)
_FENCE = "```"


@dataclass
class Section:
    """A heading and the lines that follow it up to the next heading."""
    level: int
    heading: str
    body: str


def _heading(line: str):
    match = _HEADING_RE.match(line)
    if match is None:
        return None
    return len(match.group(1)), match.group(2)


def split_sections(text: str) -> list[Section]:
    """Split markdown into sections; text before the first heading is dropped.

    Headings inside fenced code blocks are ignored, except ``## `` lines:
    those always start a section and close any fence left open.
    """
    sections: list[Section] = []
    level = 0
    heading = None
    body: list[str] = []
    in_fence = False

    for line in text.splitlines():
        parsed = _heading(line)
        if parsed is not None and parsed[0] == 2:
            in_fence = False
        elif line.lstrip().startswith(_FENCE):
            in_fence = not in_fence
            parsed = None
        elif in_fence:
            parsed = None
        if parsed is None:
            if heading is not None:
                body.append(line)
            continue
        if heading is not None:
            sections.append(Section(level, heading, "\n".join(body)))
        level, heading = parsed
        body = []

    if heading is not None:
        sections.append(Section(level, heading, "\n".join(body)))
    return sections


def _strip_entry_body(body: str) -> str:
    lines = body.splitlines()
    while lines and (not lines[-1].strip() or lines[-1].strip() == "---"):
        lines.pop()
    while lines and not lines[0].strip():
        lines.pop(0)
    return "\n".join(lines)


# ========== Extraction rules ==========

def extract_commits(text: str) -> list[Event]:
    """Commit separators: heading, full-hash line and message line in order."""
    events = []
    for match in _COMMIT_RE.finditer(text):
        short_hash, timestamp, full_hash, message = match.groups()
        events.append(Event(
            kind=EventKind.COMMIT,
            timestamp=timestamp,
            payload={
                "short_hash": short_hash,
                "full_hash": full_hash,
                "message": message,
            },
        ))
    return events


def extract_entries(text: str) -> list[Event]:
    """Sections headed by an exact ``## YYYY-MM-DD HH:MM:SS`` stamp."""
    events = []
    for section in split_sections(text):
        if section.level != 2:
            continue
        match = _ENTRY_HEADING_RE.match(section.heading)
        if match is None:
            continue
        events.append(Event(
            kind=EventKind.ENTRY,
            timestamp=match.group(1),
            payload={"content": _strip_entry_body(section.body)},
        ))
    return events


def extract_milestones(text: str) -> list[Event]:
    """Any other level-two heading of more than three characters."""
    events = []
    for section in split_sections(text):
        if section.level != 2:
            continue
        heading = section.heading
        if COMMIT_MARKER in heading or _LEADING_DATE_RE.match(heading) or len(heading) <= 3:
            continue
        events.append(Event(kind=EventKind.MILESTONE, payload={"description": heading}))
    return events


def extract_phases(text: str) -> list[Event]:
    """``Phase <n>[.<m>] <description>`` anywhere on a line."""
    events = []
    for line in text.splitlines():
        match = _PHASE_RE.search(line)
        if match is None:
            continue
        events.append(Event(
            kind=EventKind.PHASE,
            payload={"number": match.group(1), "description": match.group(2)},
        ))
    return events


EXTRACTION_RULES: tuple[Callable[[str], list[Event]], ...] = (
    extract_commits,
    extract_entries,
    extract_milestones,
    extract_phases,
)


def parse_events(text: str, project: str = "", branch: str = "") -> list[Event]:
    """Run every extraction rule and tag the events with their source."""
    events = []
    for rule in EXTRACTION_RULES:
        for event in rule(text):
            event.project = project
            event.branch = branch
            events.append(event)
    return events


# ========== Document measures ==========

def is_heading_line(line: str) -> bool:
    return _HEADING_RE.match(line) is not None


def count_section_entries(text: str) -> int:
    """Number of lines starting with a level-two heading marker."""
    return len(_SECTION_ENTRY_RE.findall(text))


def count_body_words(text: str) -> int:
    """Whitespace-separated words on non-heading lines."""
    return sum(len(line.split()) for line in text.splitlines() if not is_heading_line(line))


def count_nonblank_lines(text: str) -> int:
    return sum(1 for line in text.splitlines() if line.strip())


def has_commit_marker(text: str) -> bool:
    return COMMIT_MARKER in text


def has_iso_date(text: str) -> bool:
    return _ISO_DATE_RE.search(text) is not None
