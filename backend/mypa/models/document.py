"""Document models — Task, Project, DailySection, Note, Blocker.

Pydantic-only models shared by the Markdown codec, the rollover engine and
the sync coordinator. The SQL tables that persist them live in
``mypa.models.store``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

# === Enumerations ===

TaskStatus = Literal["pending", "in_progress", "completed"]
Priority = Literal["P1", "P2", "P3"]

# Lists of a DailySection that hold tasks, in document order
TaskListName = Literal["priorities", "schedule", "follow_ups", "completed"]
SectionType = Literal["priorities", "schedule", "follow_ups", "notes", "completed", "blockers"]

TASK_LISTS: tuple[TaskListName, ...] = ("priorities", "schedule", "follow_ups", "completed")
OPEN_TASK_LISTS: tuple[TaskListName, ...] = ("priorities", "schedule", "follow_ups")

ISO_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# === Entities ===


class Task(BaseModel):
    """A single task line.

    ``completed_at`` is kept in step with ``status``: it is filled in when a
    task is completed without one and cleared when it is not completed.
    """

    id: str = Field(default_factory=_new_id)
    content: str
    status: TaskStatus = "pending"
    project: str | None = None  # "#Tag", must match a Project.tag
    assignee: str | None = None
    due_date: str | None = Field(default=None, pattern=ISO_DATE_PATTERN)
    priority: Priority | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None
    rolled_from_date: str | None = Field(default=None, pattern=ISO_DATE_PATTERN)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Task content must not be empty")
        return v

    @field_validator("project")
    @classmethod
    def _project_is_tag(cls, v: str | None) -> str | None:
        if v is not None and not v.startswith("#"):
            return f"#{v}"
        return v

    @model_validator(mode="after")
    def _completion_timestamp(self) -> Task:
        if self.status == "completed" and self.completed_at is None:
            self.completed_at = _utcnow()
        elif self.status != "completed" and self.completed_at is not None:
            self.completed_at = None
        return self


class Project(BaseModel):
    """A project referenced from tasks by its ``#Tag``."""

    id: str = Field(default_factory=_new_id)
    name: str
    tag: str
    description: str = ""
    color: str | None = None

    @field_validator("tag")
    @classmethod
    def _tag_prefix(cls, v: str) -> str:
        if not v.startswith("#") or len(v) < 2:
            raise ValueError(f"Project tag must start with '#': {v!r}")
        return v

    @classmethod
    def from_tag(cls, tag: str) -> Project:
        return cls(name=tag.lstrip("#"), tag=tag)


class Note(BaseModel):
    id: str = Field(default_factory=_new_id)
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Note content must not be empty")
        return v


class Blocker(BaseModel):
    """Parsed from ``<content> → <next_step>``."""

    id: str = Field(default_factory=_new_id)
    content: str
    next_step: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Blocker content must not be empty")
        return v


class DailySection(BaseModel):
    """Everything recorded for one calendar date.

    A task lives in exactly one of the four task lists; moving it between
    lists is a relocation (see ``remove_task``), never a copy.
    """

    id: str = Field(default_factory=_new_id)
    date: str = Field(pattern=ISO_DATE_PATTERN)
    priorities: list[Task] = Field(default_factory=list)
    schedule: list[Task] = Field(default_factory=list)
    follow_ups: list[Task] = Field(default_factory=list)
    notes: list[Note] = Field(default_factory=list)
    completed: list[Task] = Field(default_factory=list)
    blockers: list[Blocker] = Field(default_factory=list)

    def task_lists(self) -> dict[TaskListName, list[Task]]:
        return {name: getattr(self, name) for name in TASK_LISTS}

    def all_tasks(self) -> list[Task]:
        return [task for name in TASK_LISTS for task in getattr(self, name)]

    def pending_tasks(self) -> list[Task]:
        """Tasks not yet completed, in priorities → schedule → follow_ups order."""
        return [
            task
            for name in OPEN_TASK_LISTS
            for task in getattr(self, name)
            if task.status != "completed"
        ]

    def find_task(self, task_id: str) -> tuple[TaskListName, Task] | None:
        for name in TASK_LISTS:
            for task in getattr(self, name):
                if task.id == task_id:
                    return name, task
        return None

    def remove_task(self, task_id: str) -> tuple[TaskListName, Task] | None:
        """Detach a task from whichever list holds it."""
        for name in TASK_LISTS:
            tasks: list[Task] = getattr(self, name)
            for index, task in enumerate(tasks):
                if task.id == task_id:
                    return name, tasks.pop(index)
        return None

    def is_empty(self) -> bool:
        return not (self.all_tasks() or self.notes or self.blockers)


class ParsedDocument(BaseModel):
    """Sections in order of appearance plus the projects they reference."""

    sections: list[DailySection] = Field(default_factory=list)
    projects: list[Project] = Field(default_factory=list)

    def section_for(self, date: str) -> DailySection | None:
        for section in self.sections:
            if section.date == date:
                return section
        return None

    def all_tasks(self) -> list[Task]:
        return [task for section in self.sections for task in section.all_tasks()]

    def find_task(self, task_id: str) -> tuple[DailySection, TaskListName, Task] | None:
        for section in self.sections:
            found = section.find_task(task_id)
            if found:
                return section, found[0], found[1]
        return None

    def register_project(self, tag: str) -> Project:
        for project in self.projects:
            if project.tag == tag:
                return project
        project = Project.from_tag(tag)
        self.projects.append(project)
        return project


# === Inputs of the coordinator API ===


class TaskCreate(BaseModel):
    """Fields a caller supplies when adding a task."""

    content: str
    status: TaskStatus = "pending"
    project: str | None = None
    assignee: str | None = None
    due_date: str | None = Field(default=None, pattern=ISO_DATE_PATTERN)
    priority: Priority | None = None

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Task content must not be empty")
        return v.strip()


class TaskUpdate(BaseModel):
    """Partial update; only fields explicitly set are applied."""

    content: str | None = None
    status: TaskStatus | None = None
    project: str | None = None
    assignee: str | None = None
    due_date: str | None = Field(default=None, pattern=ISO_DATE_PATTERN)
    priority: Priority | None = None

    def changes(self) -> dict:
        changes = self.model_dump(exclude_unset=True)
        # content and status cannot be cleared
        for name in ("content", "status"):
            if name in changes and changes[name] is None:
                del changes[name]
        return changes
