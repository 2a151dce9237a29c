"""Tests for the task, section, project and rollover endpoints."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mypa.api.v1.tasks import router as tasks_router
from mypa.api.v1.tasks import set_dependencies
from mypa.sync.coordinator import SyncCoordinator


@pytest.fixture
def coordinator(store):
    return SyncCoordinator(store)


@pytest.fixture
def client(coordinator):
    """Test app with just the tasks router (no middleware)."""
    set_dependencies(coordinator)
    test_app = FastAPI()
    test_app.include_router(tasks_router)
    with TestClient(test_app) as client:
        yield client
    set_dependencies(None)


def _create_task(client, **overrides):
    payload = {"content": "Finish report", "date": "2025-01-10", **overrides}
    resp = client.post("/api/v1/tasks", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_not_initialized_returns_503():
    set_dependencies(None)
    test_app = FastAPI()
    test_app.include_router(tasks_router)
    client = TestClient(test_app)
    assert client.get("/api/v1/sections/2025-01-10").status_code == 503
    assert client.post("/api/v1/tasks", json={"content": "x"}).status_code == 503


def test_create_task(client):
    data = _create_task(client, project="DataTables", priority="P1", due_date="2025-01-09")
    assert data["content"] == "Finish report"
    assert data["project"] == "#DataTables"
    assert data["priority"] == "P1"
    assert data["status"] == "pending"
    assert "id" in data


def test_create_task_validation(client):
    assert client.post("/api/v1/tasks", json={"content": "   "}).status_code == 422
    assert client.post("/api/v1/tasks", json={"content": "x", "due_date": "tomorrow"}).status_code == 422
    assert client.post("/api/v1/tasks", json={"content": "x", "priority": "P9"}).status_code == 422
    assert client.post("/api/v1/tasks", json={"content": "x", "section_type": "notes"}).status_code == 422


def test_get_section(client):
    _create_task(client)
    _create_task(client, content="Standup", section_type="schedule")
    resp = client.get("/api/v1/sections/2025-01-10")
    assert resp.status_code == 200
    section = resp.json()
    assert [t["content"] for t in section["priorities"]] == ["Finish report"]
    assert [t["content"] for t in section["schedule"]] == ["Standup"]


def test_get_missing_section(client):
    assert client.get("/api/v1/sections/2030-01-01").status_code == 404


def test_today_section(client, coordinator):
    _create_task(client, date=None, content="Today thing")
    resp = client.get("/api/v1/sections/today")
    assert resp.status_code == 200
    assert resp.json()["date"] == coordinator.today()


def test_get_task(client):
    created = _create_task(client)
    resp = client.get(f"/api/v1/tasks/{created['id']}")
    assert resp.status_code == 200
    assert resp.json()["id"] == created["id"]
    assert client.get("/api/v1/tasks/nope").status_code == 404


def test_update_task(client):
    created = _create_task(client)
    resp = client.patch(f"/api/v1/tasks/{created['id']}", json={"assignee": "Ana", "priority": "P2"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["assignee"] == "Ana"
    assert data["priority"] == "P2"
    assert data["content"] == "Finish report"


def test_update_unknown_task(client):
    resp = client.patch("/api/v1/tasks/nope", json={"content": "x"})
    assert resp.status_code == 404
    assert "nope" in resp.json()["detail"]


def test_complete_task(client):
    created = _create_task(client)
    resp = client.post(f"/api/v1/tasks/{created['id']}/complete")
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"
    assert resp.json()["completed_at"] is not None

    section = client.get("/api/v1/sections/2025-01-10").json()
    assert section["priorities"] == []
    assert [t["id"] for t in section["completed"]] == [created["id"]]


def test_delete_task(client):
    created = _create_task(client)
    assert client.delete(f"/api/v1/tasks/{created['id']}").status_code == 204
    assert client.delete(f"/api/v1/tasks/{created['id']}").status_code == 404


def test_notes_and_blockers(client):
    resp = client.post("/api/v1/sections/2025-01-10/notes", json={"content": "Idea"})
    assert resp.status_code == 201
    resp = client.post(
        "/api/v1/sections/2025-01-10/blockers",
        json={"content": "No access", "next_step": "Ask IT"},
    )
    assert resp.status_code == 201
    section = client.get("/api/v1/sections/2025-01-10").json()
    assert section["notes"][0]["content"] == "Idea"
    assert section["blockers"][0]["next_step"] == "Ask IT"


def test_projects(client):
    _create_task(client, project="#Ops")
    resp = client.post("/api/v1/projects", json={"name": "Garden", "tag": "Garden", "color": "green"})
    assert resp.status_code == 201
    assert resp.json()["tag"] == "#Garden"

    tags = {p["tag"] for p in client.get("/api/v1/projects").json()}
    assert tags == {"#Ops", "#Garden"}


def test_rollover(client):
    _create_task(client, content="Late", due_date="2025-01-09")
    _create_task(client, content="Done", status="completed")
    resp = client.post("/api/v1/rollover", json={"date": "2025-01-11"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["date"] == "2025-01-11"
    assert data["rollover_count"] == 1
    assert data["overdue_count"] == 1
    assert data["carried"][0]["content"].endswith("Late (Overdue)")

    again = client.post("/api/v1/rollover", json={"date": "2025-01-11"}).json()
    assert again["rollover_count"] == 0

    today = client.get("/api/v1/sections/2025-01-11").json()
    assert len(today["priorities"]) == 1


def test_inline_metadata_moves_to_fields(client):
    data = _create_task(client, content="Call @Bob about #Home")
    assert data["content"] == "Call about"
    assert data["assignee"] == "Bob"
    assert data["project"] == "#Home"

    resp = client.post("/api/v1/tasks", json={"content": "#Home @Bob", "date": "2025-01-10"})
    assert resp.status_code == 422


def test_blank_note_is_rejected(client):
    assert client.post("/api/v1/sections/2025-01-10/notes", json={"content": "   "}).status_code == 422
    assert client.get("/api/v1/sections/2025-01-10").status_code == 404
