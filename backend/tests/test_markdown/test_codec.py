"""Tests for the line codec — decode_task_line / encode_task_line."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from mypa.markdown.codec import EXTRACTORS, decode_task_line, encode_task_line, extract_metadata
from mypa.models.document import Task

NOW = datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)


class TestDecodeTaskLine:

    def test_full_metadata(self):
        task = decode_task_line("- [ ] Finish report #DataTables Due: 2025-01-09 !P1", now=NOW)
        assert task is not None
        assert task.content == "Finish report"
        assert task.project == "#DataTables"
        assert task.due_date == "2025-01-09"
        assert task.priority == "P1"
        assert task.status == "pending"
        assert task.completed_at is None

    def test_completed_checkbox(self):
        task = decode_task_line("- [x] Email client @Jim", now=NOW)
        assert task.status == "completed"
        assert task.assignee == "Jim"
        assert task.content == "Email client"
        assert task.completed_at == NOW

    def test_metadata_in_any_position(self):
        task = decode_task_line("- [ ] !P2 @ana Call #Sales back Due: 2025-02-01")
        assert task.content == "Call back"
        assert task.project == "#Sales"
        assert task.assignee == "ana"
        assert task.priority == "P2"
        assert task.due_date == "2025-02-01"

    def test_first_tag_wins_and_all_are_stripped(self):
        task = decode_task_line("- [ ] Plan #Launch work #Later")
        assert task.project == "#Launch"
        assert task.content == "Plan work"

    def test_annotations_are_dropped(self):
        line = (
            "- [ ] Call supplier [\U0001F195 New] [\U0001F504 Day 2] "
            "[⚠️ Overdue 3 days] [\U0001F6A7 Blocked]"
        )
        task = decode_task_line(line)
        assert task.content == "Call supplier"

    def test_rollover_marker_is_dropped(self):
        task = decode_task_line("- [ ] ⏭ Finish report (Overdue) #DataTables")
        assert task.content == "Finish report (Overdue)"
        assert task.project == "#DataTables"

    def test_marker_inside_content_is_kept(self):
        task = decode_task_line("- [ ] Press ⏭ on the remote")
        assert task.content == "Press ⏭ on the remote"

        carried = decode_task_line("- [ ] ⏭ Press ⏭ on the remote")
        assert carried.content == "Press ⏭ on the remote"

    def test_indented_line(self):
        task = decode_task_line("   - [ ] Indented task   ")
        assert task.content == "Indented task"

    @pytest.mark.parametrize("line", [
        "- Email client",
        "* [ ] Wrong bullet",
        "- [X] Capital X",
        "-[ ] No space",
        "- [ ]",
        "Plain text",
        "",
    ])
    def test_not_a_task_line(self, line):
        assert decode_task_line(line) is None

    def test_metadata_only_is_rejected(self):
        assert decode_task_line("- [ ] #Tag @bob Due: 2025-01-01 !P1") is None

    def test_bad_priority_stays_in_content(self):
        task = decode_task_line("- [ ] Triage !P4")
        assert task.priority is None
        assert task.content == "Triage !P4"


class TestExtractors:
    """Precedence is fixed: project, assignee, due date, priority."""

    def test_order(self):
        assert [e.field for e in EXTRACTORS] == ["project", "assignee", "due_date", "priority"]

    def test_single_extractor_returns_remaining_text(self):
        text, value = EXTRACTORS[0]("Plan #Q1 launch #Q2")
        assert value == "#Q1"
        assert "#" not in text

    def test_no_match(self):
        text, value = EXTRACTORS[1]("Nothing here")
        assert value is None
        assert text == "Nothing here"

    def test_extract_metadata_collapses_whitespace(self):
        content, fields = extract_metadata("Ship   it #Ops   !P3")
        assert content == "Ship it"
        assert fields == {"project": "#Ops", "priority": "P3"}


class TestEncodeTaskLine:

    def test_field_order(self):
        task = Task(content="Finish report", project="#DataTables", assignee="Jim",
                    due_date="2025-01-09", priority="P1")
        assert encode_task_line(task) == "- [ ] Finish report #DataTables @Jim Due: 2025-01-09 !P1"

    def test_content_only(self):
        assert encode_task_line(Task(content="Just this")) == "- [ ] Just this"

    def test_completed(self):
        assert encode_task_line(Task(content="Done", status="completed")) == "- [x] Done"

    def test_in_progress_has_open_checkbox(self):
        assert encode_task_line(Task(content="Working", status="in_progress")) == "- [ ] Working"


@pytest.mark.parametrize("task", [
    Task(content="Finish report", project="#DataTables", due_date="2025-01-09", priority="P1"),
    Task(content="Email client", assignee="Jim", status="completed"),
    Task(content="Book flights", project="#Travel", assignee="Ana", priority="P3"),
    Task(content="Plain"),
])
def test_round_trip(task):
    decoded = decode_task_line(encode_task_line(task))
    for field in ("content", "project", "assignee", "due_date", "priority", "status"):
        assert getattr(decoded, field) == getattr(task, field)
