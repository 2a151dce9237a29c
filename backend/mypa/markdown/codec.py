"""Line codec — one Markdown task line <-> one Task.

Line format::

    - [ ] <content> [#Project] [@assignee] [Due: YYYY-MM-DD] [!P1|!P2|!P3]

Metadata is pulled out by an ordered list of extractors. Each extractor
captures the first match of its pattern and strips every match from the
text before the next one runs, so the precedence is fixed and each step
can be tested on its own.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from mypa.models.document import Task

logger = logging.getLogger(__name__)

TASK_LINE = re.compile(r"^- \[( |x)\] (.+)$")

ROLLOVER_MARKER = "⏭ "

# Status annotations some editors append; dropped without being captured.
ANNOTATION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\[\U0001F195 New\]"),
    re.compile(r"\[\U0001F504 Day \d+\]"),
    re.compile(r"\[\u26a0\ufe0f? Overdue \d+ days?\]"),
    re.compile(r"\[\U0001F6A7 Blocked\]"),
)
# Only a leading marker; a ⏭ inside the text is content
ROLLOVER_MARKER_PATTERN = re.compile(r"^\s*\u23ed\ufe0f?\s*")

_WHITESPACE_RUN = re.compile(r"\s{2,}")

Extraction = tuple[str, str | None]


@dataclass(frozen=True)
class Extractor:
    """Captures one metadata field from task text."""

    field: str
    pattern: re.Pattern[str]
    to_value: Callable[[re.Match[str]], str]

    def __call__(self, text: str) -> Extraction:
        match = self.pattern.search(text)
        if match is None:
            return text, None
        return self.pattern.sub(" ", text), self.to_value(match)


EXTRACTORS: tuple[Extractor, ...] = (
    Extractor("project", re.compile(r"#(\w+)"), lambda m: f"#{m.group(1)}"),
    Extractor("assignee", re.compile(r"@(\w+)"), lambda m: m.group(1)),
    Extractor("due_date", re.compile(r"Due: (\d{4}-\d{2}-\d{2})"), lambda m: m.group(1)),
    Extractor("priority", re.compile(r"!P([123])"), lambda m: f"P{m.group(1)}"),
)


def extract_metadata(text: str) -> tuple[str, dict[str, str]]:
    """Run every extractor in order.

    Returns the remaining content (annotations and rollover marker removed,
    whitespace normalised) and the captured fields.
    """
    fields: dict[str, str] = {}
    for extractor in EXTRACTORS:
        text, value = extractor(text)
        if value is not None:
            fields[extractor.field] = value

    for pattern in ANNOTATION_PATTERNS:
        text = pattern.sub(" ", text)
    text = ROLLOVER_MARKER_PATTERN.sub("", text, count=1)

    return _WHITESPACE_RUN.sub(" ", text).strip(), fields


def decode_task_line(line: str, now: datetime | None = None) -> Task | None:
    """Decode a single task line.

    Returns None when the line is not a task line or has no content left
    once metadata is stripped.
    """
    match = TASK_LINE.match(line.strip())
    if match is None:
        return None

    content, fields = extract_metadata(match.group(2))
    if not content:
        logger.debug("Skipping task line with no content: %r", line)
        return None

    completed = match.group(1) == "x"
    timestamp = now or datetime.now(timezone.utc)
    return Task(
        content=content,
        status="completed" if completed else "pending",
        project=fields.get("project"),
        assignee=fields.get("assignee"),
        due_date=fields.get("due_date"),
        priority=fields.get("priority"),
        created_at=timestamp,
        updated_at=timestamp,
        completed_at=timestamp if completed else None,
    )


def encode_task_line(task: Task) -> str:
    """Encode a task as one line (no trailing newline).

    ``in_progress`` has no checkbox of its own and is written as ``[ ]``.
    """
    checkbox = "[x]" if task.status == "completed" else "[ ]"
    parts = [f"- {checkbox} {task.content}"]
    if task.project:
        parts.append(task.project)
    if task.assignee:
        parts.append(f"@{task.assignee}")
    if task.due_date:
        parts.append(f"Due: {task.due_date}")
    if task.priority:
        parts.append(f"!{task.priority}")
    return " ".join(parts)
