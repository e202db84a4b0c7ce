"""Merge events from many branch notes into one chronological timeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterable, Optional

from .models import Event, EventKind, NoteDocument
from .parsing import parse_events

logger = logging.getLogger(__name__)


@dataclass
class DateRange:
    """Inclusive calendar-day range; either end may be open."""
    start: Optional[date] = None
    end: Optional[date] = None

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and moment < datetime.combine(self.start, time.min):
            return False
        if self.end is not None and moment > datetime.combine(self.end, time.max):
            return False
        return True


def parse_date_range(value: Optional[str]) -> Optional[DateRange]:
    """Parse ``"YYYY-MM-DD,YYYY-MM-DD"``; either side may be empty.

    Raises:
        ValueError: If a side is present but is not a calendar date
    """
    if value is None or not value.strip():
        return None

    parts = value.split(",")
    if len(parts) > 2:
        raise ValueError(f"Invalid date range '{value}'. Expected 'YYYY-MM-DD,YYYY-MM-DD'")
    if len(parts) == 1:
        parts.append("")

    bounds = []
    for part in parts:
        part = part.strip()
        if not part:
            bounds.append(None)
            continue
        try:
            bounds.append(date.fromisoformat(part))
        except ValueError:
            raise ValueError(f"Invalid date '{part}' in range. Expected YYYY-MM-DD") from None

    start, end = bounds
    if start is not None and end is not None and start > end:
        raise ValueError(f"Date range start {start} is after end {end}")
    return DateRange(start=start, end=end)


def sort_events(events: Iterable[Event]) -> list[Event]:
    """Ascending by parseable timestamp; the rest follow in discovery order."""
    def key(event: Event):
        moment = event.time
        return (moment is None, moment or datetime.min)

    return sorted(events, key=key)


def filter_by_range(events: Iterable[Event], date_range: DateRange) -> list[Event]:
    """Keep events inside the range and every event whose time is unknown."""
    return [e for e in events if e.time is None or date_range.contains(e.time)]


def build_timeline(
    documents: Iterable[NoteDocument],
    date_range: Optional[DateRange] = None,
    kinds: Optional[set[EventKind]] = None,
) -> list[Event]:
    """Parse, tag, merge, filter and sort the events of many documents.

    Args:
        documents: Branch notes to read events from
        date_range: Optional inclusive date filter
        kinds: Optional subset of event kinds to keep
    """
    events: list[Event] = []
    for doc in documents:
        doc_events = parse_events(doc.text, project=doc.project, branch=doc.branch)
        logger.debug("Parsed %d events from %s/%s", len(doc_events), doc.project, doc.branch)
        events.extend(doc_events)

    if kinds is not None:
        events = [e for e in events if e.kind in kinds]
    if date_range is not None:
        events = filter_by_range(events, date_range)

    return sort_events(events)
