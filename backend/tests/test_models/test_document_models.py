"""Tests for document models and date helpers."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from mypa.models.document import (
    Blocker,
    DailySection,
    Note,
    ParsedDocument,
    Project,
    Task,
    TaskCreate,
    TaskUpdate,
)
from mypa.utils.dates import days_overdue, is_iso_date, previous_date, today_local

# === Task ===


def test_task_defaults():
    task = Task(content="Write tests")
    assert task.status == "pending"
    assert task.completed_at is None
    assert task.id


def test_task_project_gets_hash():
    assert Task(content="x", project="Ops").project == "#Ops"
    assert Task(content="x", project="#Ops").project == "#Ops"


def test_task_completion_timestamp():
    done = Task(content="x", status="completed")
    assert done.completed_at is not None

    reopened = Task(content="x", status="pending", completed_at=datetime.now(timezone.utc))
    assert reopened.completed_at is None


def test_task_rejects_bad_values():
    with pytest.raises(ValidationError):
        Task(content="  ")
    with pytest.raises(ValidationError):
        Task(content="x", due_date="10/01/2025")
    with pytest.raises(ValidationError):
        Task(content="x", priority="P4")


def test_task_create_strips_content():
    assert TaskCreate(content="  Call Bob  ").content == "Call Bob"


def test_task_update_changes():
    update = TaskUpdate(assignee=None, priority="P1", content=None)
    assert update.changes() == {"assignee": None, "priority": "P1"}
    assert TaskUpdate().changes() == {}


def test_project_tag_validation():
    assert Project.from_tag("#Finance").name == "Finance"
    with pytest.raises(ValidationError):
        Project(name="x", tag="Finance")
    with pytest.raises(ValidationError):
        Project(name="x", tag="#")


# === DailySection / ParsedDocument ===


class TestDailySection:

    def _section(self):
        return DailySection(
            date="2025-01-10",
            priorities=[Task(id="a", content="A")],
            schedule=[Task(id="b", content="B", status="completed")],
            follow_ups=[Task(id="c", content="C")],
            completed=[Task(id="d", content="D", status="completed")],
        )

    def test_pending_tasks_order(self):
        assert [t.id for t in self._section().pending_tasks()] == ["a", "c"]

    def test_find_and_remove(self):
        section = self._section()
        assert section.find_task("c")[0] == "follow_ups"
        name, task = section.remove_task("c")
        assert (name, task.id) == ("follow_ups", "c")
        assert section.find_task("c") is None
        assert section.remove_task("zzz") is None

    def test_is_empty(self):
        assert DailySection(date="2025-01-10").is_empty()
        assert not self._section().is_empty()

    def test_date_must_be_iso(self):
        with pytest.raises(ValidationError):
            DailySection(date="Jan 10")


def test_parsed_document_register_project():
    document = ParsedDocument()
    first = document.register_project("#Ops")
    assert document.register_project("#Ops") is first
    assert [p.tag for p in document.projects] == ["#Ops"]


def test_parsed_document_find_task():
    section = DailySection(date="2025-01-10", priorities=[Task(id="a", content="A")])
    document = ParsedDocument(sections=[section])
    found_section, name, task = document.find_task("a")
    assert found_section is section
    assert name == "priorities"
    assert document.find_task("b") is None


# === Dates ===


def test_today_local_uses_zone():
    # 20:00 UTC on Jan 9 is already Jan 10 in Sydney
    moment = datetime(2025, 1, 9, 20, 0, tzinfo=timezone.utc)
    assert today_local("Australia/Sydney", now=moment) == "2025-01-10"
    assert today_local("UTC", now=moment) == "2025-01-09"


def test_is_iso_date():
    assert is_iso_date("2025-01-10")
    assert not is_iso_date("2025-1-10")
    assert not is_iso_date("2025-02-30")


def test_previous_date_crosses_year():
    assert previous_date("2025-01-01") == "2024-12-31"


def test_days_overdue():
    assert days_overdue("2025-01-08", "2025-01-10") == 2


def test_note_and_blocker_reject_blank_content():
    with pytest.raises(ValidationError):
        Note(content="  ")
    with pytest.raises(ValidationError):
        Blocker(content="", next_step="Ask IT")
