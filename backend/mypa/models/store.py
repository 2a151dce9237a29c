"""SQL tables backing the indexed store.

One row per section and per task. Notes and blockers have no identity
outside their section, so they are kept as JSON on the section row.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlmodel import JSON, Column, SQLModel
from sqlmodel import Field as SQLField


class SectionRecord(SQLModel, table=True):
    """A DailySection without its tasks."""

    __tablename__ = "section_record"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    date: str = SQLField(index=True)  # YYYY-MM-DD, one row per date
    position: int = 0  # Document order
    notes: list[dict] = SQLField(default_factory=list, sa_column=Column(JSON))
    blockers: list[dict] = SQLField(default_factory=list, sa_column=Column(JSON))


class TaskRecord(SQLModel, table=True):
    """A Task plus its placement inside a section."""

    __tablename__ = "task_record"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    section_id: str = SQLField(index=True)
    list_name: str = "priorities"  # "priorities" | "schedule" | "follow_ups" | "completed"
    previous_list: str | None = None  # Where a completed task came from
    position: int = 0
    content: str
    status: str = SQLField(default="pending", index=True)
    project: str | None = None
    assignee: str | None = None
    due_date: str | None = SQLField(default=None, index=True)
    priority: str | None = None
    created_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None
    rolled_from_date: str | None = None


class ProjectRecord(SQLModel, table=True):
    __tablename__ = "project_record"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str
    tag: str = SQLField(unique=True, index=True)
    description: str = ""
    color: str | None = None


class SyncMetadata(SQLModel, table=True):
    """Key/value bookkeeping: last_sync, last_rollover_date, ..."""

    __tablename__ = "sync_metadata"

    key: str = SQLField(primary_key=True)
    value: dict = SQLField(default_factory=dict, sa_column=Column(JSON))
    updated_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))
