"""Shared test fixtures for MyPA backend tests."""

import os
import sys

import pytest

# Ensure backend is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("TODO_FILE_PATH", "")

from mypa.db.database import make_engine
from mypa.storage.indexed_store import IndexedStore

SAMPLE_DOCUMENT = """\
# 2025-01-10 (Local: Australia/Sydney)

## 📌 Priorities (Top 3 max)
- [ ] Finish report #DataTables Due: 2025-01-09 !P1
- [ ] Review budget #Finance @Ana !P2

## 📅 Schedule
- [ ] 10:00 Standup @Team

## 🔄 Follow-ups
- [ ] Chase invoice #Finance Due: 2025-01-11

## 🧠 Notes & Ideas
- Try batching the exports

## ✅ Completed
- [x] Email client @Jim

## 🧱 Blockers
- Waiting on legal sign-off → Ping Sam on Monday

---

# 2025-01-11 (Local: Australia/Sydney)

## 📌 Priorities (Top 3 max)
- [ ] Draft Q1 plan #Strategy !P1

## 📅 Schedule

## 🔄 Follow-ups

## 🧠 Notes & Ideas

## ✅ Completed

## 🧱 Blockers

---
"""


@pytest.fixture
def engine():
    """Fresh in-memory SQLite engine per test."""
    engine = make_engine("sqlite:///:memory:")
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    store = IndexedStore(engine)
    store.init()
    return store


@pytest.fixture
def sample_text():
    return SAMPLE_DOCUMENT


@pytest.fixture
def todo_file(tmp_path):
    path = tmp_path / "ToDo.md"
    path.write_text(SAMPLE_DOCUMENT, encoding="utf-8")
    return path
