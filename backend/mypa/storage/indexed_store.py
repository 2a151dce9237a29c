"""IndexedStore — SQLite-backed record store for sections, tasks and projects.

The fast path of the sync coordinator: every mutation lands here first and
reads are always served from here. Converts between the pydantic document
models and the SQL rows in ``mypa.models.store``.

Usage:
    store = IndexedStore(engine)
    store.init()
    task = store.add_task(Task(content="Write report"), "2025-01-10", "priorities")
    section = store.get_section_by_date("2025-01-10")
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from mypa.db.database import create_db_and_tables
from mypa.models.document import (
    TASK_LISTS,
    Blocker,
    DailySection,
    Note,
    ParsedDocument,
    Project,
    Task,
    TaskListName,
)
from mypa.models.store import ProjectRecord, SectionRecord, SyncMetadata, TaskRecord

logger = logging.getLogger(__name__)

_TASK_FIELDS = (
    "content", "status", "project", "assignee", "due_date", "priority",
    "created_at", "updated_at", "completed_at", "rolled_from_date",
)


class TaskNotFoundError(KeyError):
    """Raised when a task id is not in the store."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(task_id)

    def __str__(self) -> str:
        return f"Task not found: {self.task_id}"


def merge_duplicate_dates(sections: list[DailySection]) -> list[DailySection]:
    """Fold sections sharing a date into the first one, keeping list order."""
    merged: dict[str, DailySection] = {}
    for section in sections:
        existing = merged.get(section.date)
        if existing is None:
            merged[section.date] = section.model_copy(deep=True)
            continue
        logger.warning("Duplicate section for %s merged on import", section.date)
        for name in (*TASK_LISTS, "notes", "blockers"):
            getattr(existing, name).extend(getattr(section, name))
    return list(merged.values())


def _utc(value: datetime | None) -> datetime | None:
    # SQLite hands datetimes back naive
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class IndexedStore:
    """Synchronous store; each call runs in its own short session."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def init(self) -> None:
        create_db_and_tables(self.engine)

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _to_task(record: TaskRecord) -> Task:
        return Task(
            id=record.id,
            content=record.content,
            status=record.status,
            project=record.project,
            assignee=record.assignee,
            due_date=record.due_date,
            priority=record.priority,
            created_at=_utc(record.created_at),
            updated_at=_utc(record.updated_at),
            completed_at=_utc(record.completed_at),
            rolled_from_date=record.rolled_from_date,
        )

    @staticmethod
    def _to_record(task: Task, section_id: str, list_name: str, position: int) -> TaskRecord:
        return TaskRecord(
            id=task.id,
            section_id=section_id,
            list_name=list_name,
            position=position,
            **{name: getattr(task, name) for name in _TASK_FIELDS},
        )

    def _assemble(self, session: Session, record: SectionRecord) -> DailySection:
        section = DailySection(
            id=record.id,
            date=record.date,
            notes=[Note.model_validate(n) for n in record.notes or []],
            blockers=[Blocker.model_validate(b) for b in record.blockers or []],
        )
        rows = session.exec(
            select(TaskRecord)
            .where(TaskRecord.section_id == record.id)
            .order_by(TaskRecord.position)
        ).all()
        for row in rows:
            if row.list_name in TASK_LISTS:
                getattr(section, row.list_name).append(self._to_task(row))
        return section

    @staticmethod
    def _next_task_position(session: Session, section_id: str, list_name: str) -> int:
        current = session.exec(
            select(func.max(TaskRecord.position)).where(
                TaskRecord.section_id == section_id,
                TaskRecord.list_name == list_name,
            )
        ).one()
        return 0 if current is None else current + 1

    @staticmethod
    def _next_section_position(session: Session) -> int:
        current = session.exec(select(func.max(SectionRecord.position))).one()
        return 0 if current is None else current + 1

    def _write_section(self, session: Session, record: SectionRecord, section: DailySection) -> None:
        """Copy notes, blockers and tasks of ``section`` onto ``record``."""
        record.notes = [n.model_dump(mode="json") for n in section.notes]
        record.blockers = [b.model_dump(mode="json") for b in section.blockers]
        session.add(record)
        for list_name in TASK_LISTS:
            for index, task in enumerate(getattr(section, list_name)):
                session.add(self._to_record(task, record.id, list_name, index))

    @staticmethod
    def _clear_tasks(session: Session, section_id: str | None = None) -> None:
        statement = select(TaskRecord)
        if section_id is not None:
            statement = statement.where(TaskRecord.section_id == section_id)
        for row in session.exec(statement).all():
            session.delete(row)

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def _section_record(self, session: Session, date: str) -> SectionRecord | None:
        return session.exec(
            select(SectionRecord).where(SectionRecord.date == date).order_by(SectionRecord.position)
        ).first()

    def ensure_section(self, date: str) -> str:
        """Return the id of the section for ``date``, creating it if needed."""
        with Session(self.engine) as session:
            record = self._section_record(session, date)
            if record is None:
                record = SectionRecord(date=date, position=self._next_section_position(session))
                session.add(record)
                session.commit()
                logger.debug("Section created for %s", date)
            return record.id

    def get_section_by_date(self, date: str) -> DailySection | None:
        with Session(self.engine) as session:
            record = self._section_record(session, date)
            return self._assemble(session, record) if record else None

    def list_sections(self) -> list[DailySection]:
        with Session(self.engine) as session:
            records = session.exec(select(SectionRecord).order_by(SectionRecord.position)).all()
            return [self._assemble(session, r) for r in records]

    def latest_section_before(self, date: str) -> DailySection | None:
        with Session(self.engine) as session:
            record = session.exec(
                select(SectionRecord)
                .where(SectionRecord.date < date)
                .order_by(SectionRecord.date.desc())
            ).first()
            return self._assemble(session, record) if record else None

    def add_note(self, date: str, note: Note) -> Note:
        self.ensure_section(date)
        with Session(self.engine) as session:
            record = self._section_record(session, date)
            record.notes = [*(record.notes or []), note.model_dump(mode="json")]
            session.add(record)
            session.commit()
        return note

    def add_blocker(self, date: str, blocker: Blocker) -> Blocker:
        self.ensure_section(date)
        with Session(self.engine) as session:
            record = self._section_record(session, date)
            record.blockers = [*(record.blockers or []), blocker.model_dump(mode="json")]
            session.add(record)
            session.commit()
        return blocker

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def add_task(self, task: Task, date: str, list_name: TaskListName = "priorities") -> Task:
        """Append a task to the end of ``list_name`` in the section for ``date``."""
        section_id = self.ensure_section(date)
        with Session(self.engine) as session:
            position = self._next_task_position(session, section_id, list_name)
            session.add(self._to_record(task, section_id, list_name, position))
            session.commit()
        return task

    def get_task(self, task_id: str) -> tuple[Task, str, TaskListName] | None:
        """Return (task, section date, list name) or None."""
        with Session(self.engine) as session:
            record = session.get(TaskRecord, task_id)
            if record is None:
                return None
            section = session.get(SectionRecord, record.section_id)
            return self._to_task(record), section.date if section else "", record.list_name

    def all_tasks(self) -> list[Task]:
        with Session(self.engine) as session:
            return [self._to_task(r) for r in session.exec(select(TaskRecord)).all()]

    def update_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        """Apply field changes, keeping completion and list placement consistent.

        Completing a task moves it to the ``completed`` list; reopening moves it
        back to the list it came from.

        Raises:
            TaskNotFoundError: If no task has this id.
        """
        with Session(self.engine) as session:
            record = session.get(TaskRecord, task_id)
            if record is None:
                raise TaskNotFoundError(task_id)

            current = self._to_task(record).model_dump()
            current.update({k: v for k, v in changes.items() if k in _TASK_FIELDS})
            if changes.get("status") not in (None, "completed"):
                current["completed_at"] = None
            current["updated_at"] = datetime.now(timezone.utc)
            task = Task.model_validate(current)

            for name in _TASK_FIELDS:
                setattr(record, name, getattr(task, name))

            if task.status == "completed" and record.list_name != "completed":
                record.previous_list = record.list_name
                record.list_name = "completed"
                record.position = self._next_task_position(session, record.section_id, "completed")
            elif task.status != "completed" and record.list_name == "completed":
                target = record.previous_list or "priorities"
                record.list_name = target
                record.previous_list = None
                record.position = self._next_task_position(session, record.section_id, target)

            session.add(record)
            session.commit()
            return task

    def move_task(self, task_id: str, list_name: TaskListName) -> Task:
        with Session(self.engine) as session:
            record = session.get(TaskRecord, task_id)
            if record is None:
                raise TaskNotFoundError(task_id)
            if record.list_name != list_name:
                record.list_name = list_name
                record.position = self._next_task_position(session, record.section_id, list_name)
                session.add(record)
                session.commit()
                session.refresh(record)
            return self._to_task(record)

    def delete_task(self, task_id: str) -> bool:
        with Session(self.engine) as session:
            record = session.get(TaskRecord, task_id)
            if record is None:
                return False
            session.delete(record)
            session.commit()
            return True

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def get_all_projects(self) -> list[Project]:
        with Session(self.engine) as session:
            rows = session.exec(select(ProjectRecord).order_by(ProjectRecord.name)).all()
            return [Project.model_validate(r.model_dump()) for r in rows]

    def get_project_by_tag(self, tag: str) -> Project | None:
        with Session(self.engine) as session:
            row = session.exec(select(ProjectRecord).where(ProjectRecord.tag == tag)).first()
            return Project.model_validate(row.model_dump()) if row else None

    def add_project(self, project: Project) -> Project:
        """Insert, or update name/colour of an existing project with the same tag."""
        with Session(self.engine) as session:
            row = session.exec(select(ProjectRecord).where(ProjectRecord.tag == project.tag)).first()
            if row is None:
                row = ProjectRecord(**project.model_dump())
            else:
                row.name = project.name
                row.description = project.description or row.description
                row.color = project.color or row.color
            session.add(row)
            session.commit()
            session.refresh(row)
            return Project.model_validate(row.model_dump())

    def ensure_project(self, tag: str) -> Project:
        return self.get_project_by_tag(tag) or self.add_project(Project.from_tag(tag))

    def _upsert_projects(self, session: Session, projects: list[Project]) -> None:
        known = {r.tag for r in session.exec(select(ProjectRecord)).all()}
        for project in projects:
            if project.tag not in known:
                session.add(ProjectRecord(**project.model_dump()))
                known.add(project.tag)

    # ------------------------------------------------------------------
    # Document import / export
    # ------------------------------------------------------------------

    def import_document(self, document: ParsedDocument) -> None:
        """Replace every section and task with the document's content.

        Projects are upserted; declared projects absent from the document
        are kept since the text format has no project block.
        """
        sections = merge_duplicate_dates(document.sections)
        with Session(self.engine) as session:
            self._clear_tasks(session)
            for record in session.exec(select(SectionRecord)).all():
                session.delete(record)
            session.flush()
            # Re-importing an export reuses ids; drop the deleted identities
            session.expunge_all()
            for position, section in enumerate(sections):
                record = SectionRecord(id=section.id, date=section.date, position=position)
                self._write_section(session, record, section)
            self._upsert_projects(session, document.projects)
            session.commit()
        self.set_metadata("last_sync", datetime.now(timezone.utc).isoformat())
        logger.info("Imported %d sections into the indexed store", len(sections))

    def replace_sections(self, document: ParsedDocument) -> list[str]:
        """Overwrite only the sections whose dates appear in ``document``.

        Returns the replaced/added dates.
        """
        sections = merge_duplicate_dates(document.sections)
        with Session(self.engine) as session:
            for section in sections:
                record = self._section_record(session, section.date)
                if record is not None:
                    self._clear_tasks(session, record.id)
                    session.flush()
                else:
                    record = SectionRecord(
                        id=section.id, date=section.date,
                        position=self._next_section_position(session),
                    )
                self._write_section(session, record, section)
                session.flush()
            self._upsert_projects(session, document.projects)
            session.commit()
        self.set_metadata("last_sync", datetime.now(timezone.utc).isoformat())
        return [s.date for s in sections]

    def export_document(self) -> ParsedDocument:
        return ParsedDocument(sections=self.list_sections(), projects=self.get_all_projects())

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def set_metadata(self, key: str, value: Any) -> None:
        with Session(self.engine) as session:
            row = session.get(SyncMetadata, key)
            if row is None:
                row = SyncMetadata(key=key)
            row.value = {"value": value}
            row.updated_at = datetime.now(timezone.utc)
            session.add(row)
            session.commit()

    def get_metadata(self, key: str, default: Any = None) -> Any:
        with Session(self.engine) as session:
            row = session.get(SyncMetadata, key)
            if row is None or not row.value:
                return default
            return row.value.get("value", default)
