"""Document serializer — sections -> canonical ToDo.md text.

Inverse of ``parse_document``: every section is written with all six
sub-sections in fixed order, followed by a ``---`` rule.
"""

from __future__ import annotations

from collections.abc import Iterable

from mypa.markdown.codec import encode_task_line
from mypa.models.document import Blocker, DailySection, Project

PRIORITIES_HEADER = "## \U0001F4CC Priorities (Top 3 max)"
SCHEDULE_HEADER = "## \U0001F4C5 Schedule"
FOLLOW_UPS_HEADER = "## \U0001F504 Follow-ups"
NOTES_HEADER = "## \U0001F9E0 Notes & Ideas"
COMPLETED_HEADER = "## ✅ Completed"
BLOCKERS_HEADER = "## \U0001F9F1 Blockers"

SECTION_SEPARATOR = "---"


def format_date_header(date: str) -> str:
    return f"# {date} (Local: Australia/Sydney)"


def format_blocker(blocker: Blocker) -> str:
    line = f"- {blocker.content}"
    if blocker.next_step:
        line += f" → {blocker.next_step}"
    return line


def serialize_section(section: DailySection) -> str:
    lines: list[str] = [format_date_header(section.date), ""]

    for header, tasks in (
        (PRIORITIES_HEADER, section.priorities),
        (SCHEDULE_HEADER, section.schedule),
        (FOLLOW_UPS_HEADER, section.follow_ups),
    ):
        lines.append(header)
        lines.extend(encode_task_line(task) for task in tasks)
        lines.append("")

    lines.append(NOTES_HEADER)
    lines.extend(f"- {note.content}" for note in section.notes)
    lines.append("")

    lines.append(COMPLETED_HEADER)
    lines.extend(encode_task_line(task) for task in section.completed)
    lines.append("")

    lines.append(BLOCKERS_HEADER)
    lines.extend(format_blocker(blocker) for blocker in section.blockers)
    lines.append("")

    lines.append(SECTION_SEPARATOR)
    lines.append("")
    return "\n".join(lines) + "\n"


def serialize_document(
    sections: Iterable[DailySection],
    projects: Iterable[Project] = (),
) -> str:
    """Emit sections in the order given.

    Projects have no block of their own in the format; tasks carry their
    tags inline. The argument is accepted so callers can pass a
    ParsedDocument's fields straight through.
    """
    return "".join(serialize_section(section) for section in sections)
