"""Document parser — ToDo.md text -> ParsedDocument.

Scans line by line, tracking the open date section and the sub-section
type. Unrecognised or malformed lines are skipped rather than reported:
a damaged document yields fewer tasks, never an exception.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from mypa.markdown.codec import decode_task_line
from mypa.models.document import Blocker, DailySection, Note, ParsedDocument, SectionType

logger = logging.getLogger(__name__)

DATE_HEADER = re.compile(r"^# (\d{4}-\d{2}-\d{2}) \(Local: Australia/Sydney\)$")

# Sub-section headers, matched by prefix so "(Top 3 max)" and similar
# suffixes are tolerated.
SECTION_HEADERS: tuple[tuple[str, SectionType], ...] = (
    ("## \U0001F4CC Priorities", "priorities"),
    ("## \U0001F4C5 Schedule", "schedule"),
    ("## \U0001F504 Follow-ups", "follow_ups"),
    ("## \U0001F9E0 Notes & Ideas", "notes"),
    ("## ✅ Completed", "completed"),
    ("## \U0001F9F1 Blockers", "blockers"),
)

BLOCKER_SEPARATOR = " → "

_TASK_LIST_TYPES = {"priorities", "schedule", "follow_ups", "completed"}


def _section_type(line: str) -> SectionType | None:
    for prefix, section_type in SECTION_HEADERS:
        if line.startswith(prefix):
            return section_type
    return None


def _is_ignorable(line: str) -> bool:
    return line == "" or line.startswith("#") or line.startswith("---") or line.startswith(">")


def parse_blocker_line(line: str, now: datetime | None = None) -> Blocker | None:
    """``- <content> → <next step>``; the next step is optional."""
    text = re.sub(r"^-\s*", "", line)
    content, _, next_step = text.partition(BLOCKER_SEPARATOR)
    content = content.strip()
    if not content:
        return None
    return Blocker(
        content=content,
        next_step=next_step.strip() or None,
        created_at=now or datetime.now(timezone.utc),
    )


def parse_document(text: str, now: datetime | None = None) -> ParsedDocument:
    """Parse a whole document.

    Sections are returned in order of appearance. Two headers for the same
    date give two sections; nothing is merged here.
    """
    timestamp = now or datetime.now(timezone.utc)
    document = ParsedDocument()
    current: DailySection | None = None
    current_type: SectionType | None = None

    for raw_line in text.splitlines():
        line = raw_line.strip()

        header = DATE_HEADER.match(line)
        if header:
            if current is not None:
                document.sections.append(current)
            current = DailySection(date=header.group(1))
            current_type = None
            continue

        if current is None:
            continue

        section_type = _section_type(line)
        if section_type is not None:
            current_type = section_type
            continue

        if _is_ignorable(line) or current_type is None:
            continue

        if current_type in _TASK_LIST_TYPES:
            task = decode_task_line(line, now=timestamp)
            if task is None:
                logger.debug("Skipping unrecognised line in %s/%s: %r", current.date, current_type, line)
                continue
            getattr(current, current_type).append(task)
            if task.project:
                document.register_project(task.project)
        elif current_type == "notes":
            # Serialised notes carry a "- " bullet; strip it on the way back in.
            content = re.sub(r"^-\s+", "", line).strip()
            if content and content != "-":
                current.notes.append(Note(content=content, timestamp=timestamp))
        elif current_type == "blockers" and line.startswith("-"):
            blocker = parse_blocker_line(line, now=timestamp)
            if blocker is not None:
                current.blockers.append(blocker)

    if current is not None:
        document.sections.append(current)

    return document
