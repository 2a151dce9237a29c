"""Rollover Engine — carry unfinished tasks into a new day.

Pure functions over DailySection values. ``rollover`` is deliberately not
idempotent: calling it twice on the same previous section carries the same
tasks twice. Callers relocate the originals (SyncCoordinator.perform_rollover
does) so each task moves forward exactly once per day transition.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, Field

from mypa.markdown.codec import ROLLOVER_MARKER
from mypa.models.document import OPEN_TASK_LISTS, DailySection, Task, TaskListName
from mypa.utils.dates import is_due_today, is_overdue

logger = logging.getLogger(__name__)

OVERDUE_SUFFIX = " (Overdue)"
DUE_TODAY_SUFFIX = " (Due today)"

PRIORITY_RANK = {"P1": 1, "P2": 2, "P3": 3}
TOP_PRIORITY_LIMIT = 3

NOTHING_TO_ROLL = "No previous tasks to roll over."
ALL_DONE = "🎉 All tasks completed yesterday! Starting fresh today."
FALLBACK_INSIGHT = "Tasks rolled over successfully. Consider reviewing priorities for the day."
ALL_CAUGHT_UP_INSIGHT = "🎉 All caught up! Ready for a productive new day."

# External AI collaborator: generate(messages, options) -> text
Generate = Callable[[list[dict], dict], Awaitable[str]]


class RolloverOrigin(BaseModel):
    """Where a carried copy came from."""

    source_id: str
    list_name: TaskListName


class RolloverResult(BaseModel):
    carried: list[Task] = Field(default_factory=list)
    overdue_count: int = 0
    due_today_count: int = 0
    rollover_count: int = 0
    summary: str = ""
    # carried task id -> origin
    origins: dict[str, RolloverOrigin] = Field(default_factory=dict)


class SmartRolloverResult(RolloverResult):
    ai_insights: str = ""


def should_trigger_rollover(last_rollover_date: str | None, current_date: str) -> bool:
    return last_rollover_date != current_date


def _carry(task: Task, previous_date: str, now: datetime) -> Task:
    return task.model_copy(
        update={
            "id": str(uuid4()),
            "content": f"{ROLLOVER_MARKER}{task.content}",
            "created_at": now,
            "updated_at": now,
            "completed_at": None,
            "rolled_from_date": previous_date,
        }
    )


def top_priorities(tasks: Sequence[Task], limit: int = TOP_PRIORITY_LIMIT) -> list[Task]:
    """Highest priority first; P1 < P2 < P3 < none, stable on ties."""
    ranked = sorted(tasks, key=lambda t: PRIORITY_RANK.get(t.priority or "", 4))
    return ranked[:limit]


def build_summary(
    previous_date: str,
    total: int,
    overdue_count: int,
    due_today_count: int,
    top: Sequence[str],
) -> str:
    parts = [f"📋 Rolled over {total} task{'s' if total != 1 else ''} from {previous_date}"]
    if overdue_count:
        parts.append(f"⚠️ {overdue_count} overdue")
    if due_today_count:
        parts.append(f"📅 {due_today_count} due today")
    if top:
        parts.append(f"🎯 Top priorities: {', '.join(top)}")
    return "\n".join(parts)


def rollover(
    previous_section: DailySection | None,
    current_date: str,
    now: datetime | None = None,
) -> RolloverResult:
    """Compute the tasks that carry from ``previous_section`` into ``current_date``.

    Every non-completed task in priorities, schedule and follow-ups is copied
    with a new id, the ``⏭`` marker and ``rolled_from_date`` set. A due date
    before ``current_date`` adds " (Overdue)"; a due date equal to it adds
    " (Due today)".
    """
    if previous_section is None:
        return RolloverResult(summary=NOTHING_TO_ROLL)

    sources: list[tuple[TaskListName, Task]] = [
        (name, task)
        for name in OPEN_TASK_LISTS
        for task in getattr(previous_section, name)
        if task.status != "completed"
    ]
    if not sources:
        return RolloverResult(summary=ALL_DONE)

    timestamp = now or datetime.now(timezone.utc)
    result = RolloverResult(rollover_count=len(sources))

    for list_name, source in sources:
        carried = _carry(source, previous_section.date, timestamp)
        if source.due_date:
            if is_overdue(source.due_date, current_date):
                carried.content += OVERDUE_SUFFIX
                result.overdue_count += 1
            elif is_due_today(source.due_date, current_date):
                carried.content += DUE_TODAY_SUFFIX
                result.due_today_count += 1
        result.carried.append(carried)
        result.origins[carried.id] = RolloverOrigin(source_id=source.id, list_name=list_name)

    top = [task.content for task in top_priorities([task for _, task in sources])]
    result.summary = build_summary(
        previous_section.date,
        result.rollover_count,
        result.overdue_count,
        result.due_today_count,
        top,
    )
    return result


def _insight_prompt(result: RolloverResult) -> str:
    lines = []
    for task in result.carried:
        content = task.content.removeprefix(ROLLOVER_MARKER)
        lines.append(f'"{content}" ({task.priority or "no priority"}, due: {task.due_date or "no date"})')
    return (
        f"Analyze these {len(result.carried)} rolled-over tasks and provide smart insights:\n\n"
        f"Tasks: {', '.join(lines)}\n\n"
        f"Overdue: {result.overdue_count}\n"
        f"Due today: {result.due_today_count}\n\n"
        "Provide actionable suggestions for prioritizing and organizing these tasks "
        "for maximum productivity."
    )


async def smart_rollover(
    previous_section: DailySection | None,
    current_date: str,
    generate: Generate | None = None,
    now: datetime | None = None,
) -> SmartRolloverResult:
    """``rollover`` plus advisory text from an AI generator.

    The generator is optional; any failure falls back to a fixed message
    and never affects the carried tasks.
    """
    basic = rollover(previous_section, current_date, now=now)
    if not basic.carried:
        return SmartRolloverResult(**basic.model_dump(), ai_insights=ALL_CAUGHT_UP_INSIGHT)

    insights = FALLBACK_INSIGHT
    if generate is not None:
        try:
            text = await generate(
                [{"role": "user", "content": _insight_prompt(basic)}],
                {"max_tokens": 512, "temperature": 0.3},
            )
            insights = text.strip() or FALLBACK_INSIGHT
        except Exception as e:
            logger.warning("AI rollover insights failed: %s", e)

    return SmartRolloverResult(**basic.model_dump(), ai_insights=insights)


def daily_insight(section: DailySection, all_tasks: Sequence[Task], current_date: str) -> str:
    """Rule-based digest for the day's section."""
    insights: list[str] = []

    priority_count = len(section.priorities)
    if priority_count == 0:
        insights.append("🎯 Consider setting 1-3 priorities for today")
    elif priority_count > 3:
        insights.append("⚖️ You have more than 3 priorities - consider moving some to schedule")

    open_tasks = [t for t in all_tasks if t.status != "completed"]

    overdue = [t for t in open_tasks if t.due_date and is_overdue(t.due_date, current_date)]
    if overdue:
        insights.append(f"⚠️ {len(overdue)} overdue task{'s' if len(overdue) > 1 else ''} need attention")

    due_today = [t for t in open_tasks if t.due_date and is_due_today(t.due_date, current_date)]
    if due_today:
        insights.append(f"📅 {len(due_today)} task{'s' if len(due_today) > 1 else ''} due today")

    if len([t for t in section.follow_ups if t.status != "completed"]) > 3:
        insights.append("💬 Consider consolidating or scheduling some follow-ups")

    projects = Counter(t.project for t in open_tasks if t.project)
    if projects:
        tag, count = projects.most_common(1)[0]
        insights.append(f"📊 Most active project: {tag} ({count} tasks)")

    if not insights:
        insights.append("✨ Everything looks well organized! Have a productive day.")
    return "\n".join(insights)
