"""Tests for the document parser."""

from __future__ import annotations

from mypa.markdown.parser import parse_blocker_line, parse_document

E2E_DOCUMENT = """\
# 2025-01-10 (Local: Australia/Sydney)

## 📌 Priorities (Top 3 max)
- [ ] Finish report #DataTables Due: 2025-01-09 !P1

## ✅ Completed
- [x] Email client @Jim
"""


def _contents(tasks):
    return [t.content for t in tasks]


def test_empty_document_has_no_sections():
    assert parse_document("").sections == []
    assert parse_document("Just some text\n- [ ] Orphan task\n").sections == []


def test_end_to_end_example():
    document = parse_document(E2E_DOCUMENT)

    assert len(document.sections) == 1
    section = document.sections[0]
    assert section.date == "2025-01-10"

    assert len(section.priorities) == 1
    task = section.priorities[0]
    assert task.content == "Finish report"
    assert task.project == "#DataTables"
    assert task.due_date == "2025-01-09"
    assert task.priority == "P1"
    assert task.status == "pending"

    assert len(section.completed) == 1
    done = section.completed[0]
    assert done.content == "Email client"
    assert done.assignee == "Jim"
    assert done.status == "completed"


def test_sample_document(sample_text):
    document = parse_document(sample_text)
    assert [s.date for s in document.sections] == ["2025-01-10", "2025-01-11"]

    first = document.sections[0]
    assert _contents(first.priorities) == ["Finish report", "Review budget"]
    assert _contents(first.schedule) == ["10:00 Standup"]
    assert _contents(first.follow_ups) == ["Chase invoice"]
    assert [n.content for n in first.notes] == ["Try batching the exports"]
    assert _contents(first.completed) == ["Email client"]
    assert first.blockers[0].content == "Waiting on legal sign-off"
    assert first.blockers[0].next_step == "Ping Sam on Monday"

    second = document.sections[1]
    assert _contents(second.priorities) == ["Draft Q1 plan"]
    assert second.schedule == [] and second.notes == [] and second.blockers == []


def test_projects_discovered_in_order_of_first_use(sample_text):
    document = parse_document(sample_text)
    assert [p.tag for p in document.projects] == ["#DataTables", "#Finance", "#Strategy"]
    assert document.projects[0].name == "DataTables"


def test_malformed_task_line_is_skipped():
    with_bad_line = E2E_DOCUMENT.replace(
        "- [ ] Finish report",
        "- Missing checkbox\n- [ ] Finish report",
    )
    clean = parse_document(E2E_DOCUMENT).sections[0]
    lenient = parse_document(with_bad_line).sections[0]
    assert _contents(lenient.priorities) == _contents(clean.priorities)
    assert _contents(lenient.completed) == _contents(clean.completed)


def test_duplicate_dates_stay_separate():
    text = (
        "# 2025-01-10 (Local: Australia/Sydney)\n"
        "## 📌 Priorities\n- [ ] First\n"
        "# 2025-01-10 (Local: Australia/Sydney)\n"
        "## 📌 Priorities\n- [ ] Second\n"
    )
    document = parse_document(text)
    assert [s.date for s in document.sections] == ["2025-01-10", "2025-01-10"]
    assert _contents(document.sections[0].priorities) == ["First"]
    assert _contents(document.sections[1].priorities) == ["Second"]


def test_malformed_date_header_attributed_to_previous_section():
    text = (
        "# 2025-01-10 (Local: Australia/Sydney)\n"
        "## 📌 Priorities\n- [ ] Kept\n"
        "# 2025-1-11 (Local: Australia/Sydney)\n"
        "## 📅 Schedule\n- [ ] Also kept\n"
    )
    document = parse_document(text)
    assert len(document.sections) == 1
    assert _contents(document.sections[0].schedule) == ["Also kept"]


def test_wrong_timezone_label_is_not_a_header():
    document = parse_document("# 2025-01-10 (Local: Europe/London)\n## 📌 Priorities\n- [ ] X\n")
    assert document.sections == []


def test_lines_before_any_subsection_are_ignored():
    document = parse_document("# 2025-01-10 (Local: Australia/Sydney)\n- [ ] Stray\n")
    assert document.sections[0].all_tasks() == []


def test_rules_quotes_and_other_headings_are_discarded():
    text = (
        "# 2025-01-10 (Local: Australia/Sydney)\n"
        "## 📌 Priorities\n"
        "> quoted\n"
        "### Sub heading\n"
        "---\n"
        "- [ ] Real task\n"
    )
    assert _contents(parse_document(text).sections[0].priorities) == ["Real task"]


def test_notes_accept_bullets_and_plain_lines():
    text = (
        "# 2025-01-10 (Local: Australia/Sydney)\n"
        "## 🧠 Notes & Ideas\n"
        "- Bullet idea\n"
        "Plain idea\n"
    )
    notes = parse_document(text).sections[0].notes
    assert [n.content for n in notes] == ["Bullet idea", "Plain idea"]


def test_blockers_only_from_dash_lines():
    text = (
        "# 2025-01-10 (Local: Australia/Sydney)\n"
        "## 🧱 Blockers\n"
        "- Server down\n"
        "not a blocker\n"
        "- Vendor late → Call vendor\n"
    )
    blockers = parse_document(text).sections[0].blockers
    assert [(b.content, b.next_step) for b in blockers] == [
        ("Server down", None),
        ("Vendor late", "Call vendor"),
    ]


def test_parse_blocker_line():
    blocker = parse_blocker_line("- Access denied → Ask IT → escalate")
    assert blocker.content == "Access denied"
    assert blocker.next_step == "Ask IT → escalate"
    assert parse_blocker_line("- ") is None


def test_tasks_appended_in_document_order():
    lines = "\n".join(f"- [ ] Task {i}" for i in range(5))
    text = f"# 2025-01-10 (Local: Australia/Sydney)\n## 📅 Schedule\n{lines}\n"
    assert _contents(parse_document(text).sections[0].schedule) == [f"Task {i}" for i in range(5)]
