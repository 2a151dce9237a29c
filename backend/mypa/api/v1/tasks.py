"""Task API endpoints — sections, tasks, projects and rollover.

GET    /api/v1/sections/today            — today's section
GET    /api/v1/sections/{date}           — section for a date
POST   /api/v1/sections/{date}/notes     — add a note
POST   /api/v1/sections/{date}/blockers  — add a blocker
GET    /api/v1/tasks/{task_id}           — get a task
POST   /api/v1/tasks                     — add a task
PATCH  /api/v1/tasks/{task_id}           — partial update
POST   /api/v1/tasks/{task_id}/complete  — complete a task
DELETE /api/v1/tasks/{task_id}           — delete a task
GET    /api/v1/projects                  — list projects
POST   /api/v1/projects                  — add or update a project
POST   /api/v1/rollover                  — roll unfinished tasks into a date
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from mypa.engines.rollover import RolloverResult
from mypa.models.document import (
    ISO_DATE_PATTERN,
    Blocker,
    DailySection,
    Note,
    Project,
    Task,
    TaskCreate,
    TaskListName,
    TaskUpdate,
)
from mypa.sync.coordinator import DocumentAccessError, SyncCoordinator, TaskNotFoundError

router = APIRouter(prefix="/api/v1", tags=["tasks"])

# Module-level reference, set by main.py at startup
_coordinator: SyncCoordinator | None = None


def set_dependencies(coordinator: SyncCoordinator | None) -> None:
    """Wire up the coordinator (called from main.py lifespan)."""
    global _coordinator
    _coordinator = coordinator


def _get_coordinator() -> SyncCoordinator:
    if _coordinator is None:
        raise HTTPException(status_code=503, detail="Sync coordinator not initialized.")
    return _coordinator


def _document_error(e: DocumentAccessError) -> HTTPException:
    return HTTPException(status_code=409, detail=str(e))


# === Request / Response Models ===


class AddTaskRequest(TaskCreate):
    section_type: TaskListName = "priorities"
    date: str | None = Field(default=None, pattern=ISO_DATE_PATTERN)


class AddNoteRequest(BaseModel):
    content: str = Field(min_length=1)


class AddBlockerRequest(BaseModel):
    content: str = Field(min_length=1)
    next_step: str | None = None


class AddProjectRequest(BaseModel):
    name: str = Field(min_length=1)
    tag: str = Field(min_length=1)
    color: str | None = None
    description: str = ""


class RolloverRequest(BaseModel):
    date: str | None = Field(default=None, pattern=ISO_DATE_PATTERN)


class RolloverResponse(BaseModel):
    date: str
    rollover_count: int
    overdue_count: int
    due_today_count: int
    summary: str
    carried: list[Task]

    @classmethod
    def from_result(cls, date: str, result: RolloverResult) -> RolloverResponse:
        return cls(
            date=date,
            rollover_count=result.rollover_count,
            overdue_count=result.overdue_count,
            due_today_count=result.due_today_count,
            summary=result.summary,
            carried=result.carried,
        )


# === Sections ===


@router.get("/sections/today", response_model=DailySection)
async def get_today_section() -> DailySection:
    coordinator = _get_coordinator()
    return await get_section(coordinator.today())


@router.get("/sections/{date}", response_model=DailySection)
async def get_section(date: str) -> DailySection:
    coordinator = _get_coordinator()
    try:
        section = await coordinator.load_current_section(date)
    except DocumentAccessError as e:
        raise _document_error(e)
    if section is None:
        raise HTTPException(status_code=404, detail=f"No section for {date}")
    return section


@router.post("/sections/{date}/notes", response_model=Note, status_code=201)
async def add_note(date: str, request: AddNoteRequest) -> Note:
    coordinator = _get_coordinator()
    try:
        return await coordinator.add_note(request.content, date=date)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except DocumentAccessError as e:
        raise _document_error(e)


@router.post("/sections/{date}/blockers", response_model=Blocker, status_code=201)
async def add_blocker(date: str, request: AddBlockerRequest) -> Blocker:
    coordinator = _get_coordinator()
    try:
        return await coordinator.add_blocker(request.content, request.next_step, date=date)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except DocumentAccessError as e:
        raise _document_error(e)


# === Tasks ===


@router.get("/tasks/{task_id}", response_model=Task)
async def get_task(task_id: str) -> Task:
    coordinator = _get_coordinator()
    try:
        return await coordinator.get_task(task_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DocumentAccessError as e:
        raise _document_error(e)


@router.post("/tasks", response_model=Task, status_code=201)
async def add_task(request: AddTaskRequest) -> Task:
    coordinator = _get_coordinator()
    data = TaskCreate(**request.model_dump(exclude={"section_type", "date"}))
    try:
        return await coordinator.add_task(data, request.section_type, date=request.date)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except DocumentAccessError as e:
        raise _document_error(e)


@router.patch("/tasks/{task_id}", response_model=Task)
async def update_task(task_id: str, request: TaskUpdate) -> Task:
    coordinator = _get_coordinator()
    try:
        return await coordinator.update_task(task_id, request)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except DocumentAccessError as e:
        raise _document_error(e)


@router.post("/tasks/{task_id}/complete", response_model=Task)
async def complete_task(task_id: str) -> Task:
    coordinator = _get_coordinator()
    try:
        return await coordinator.complete_task(task_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DocumentAccessError as e:
        raise _document_error(e)


@router.delete("/tasks/{task_id}", status_code=204)
async def delete_task(task_id: str) -> None:
    coordinator = _get_coordinator()
    try:
        await coordinator.delete_task(task_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DocumentAccessError as e:
        raise _document_error(e)


# === Projects ===


@router.get("/projects", response_model=list[Project])
async def list_projects() -> list[Project]:
    coordinator = _get_coordinator()
    try:
        return await coordinator.get_all_projects()
    except DocumentAccessError as e:
        raise _document_error(e)


@router.post("/projects", response_model=Project, status_code=201)
async def add_project(request: AddProjectRequest) -> Project:
    coordinator = _get_coordinator()
    try:
        return await coordinator.add_project(
            request.name, request.tag, color=request.color, description=request.description,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except DocumentAccessError as e:
        raise _document_error(e)


# === Rollover ===


@router.post("/rollover", response_model=RolloverResponse)
async def perform_rollover(request: RolloverRequest | None = None) -> RolloverResponse:
    coordinator = _get_coordinator()
    date = (request.date if request else None) or coordinator.today()
    try:
        result = await coordinator.perform_rollover(date)
    except DocumentAccessError as e:
        raise _document_error(e)
    return RolloverResponse.from_result(date, result)
