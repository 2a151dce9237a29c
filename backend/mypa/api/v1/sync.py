"""Sync API endpoints — document connection and write-back control.

GET  /api/v1/sync/status      — coordinator + watcher status
POST /api/v1/sync/connect     — (re)connect the configured document
POST /api/v1/sync/disconnect  — flush and release the document
POST /api/v1/sync/flush       — write pending changes now
POST /api/v1/sync/check       — check the document for external edits
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from mypa.sync.coordinator import DocumentAccessError, SyncCoordinator
from mypa.sync.watcher import ExternalChangeWatcher

router = APIRouter(prefix="/api/v1/sync", tags=["sync"])

_coordinator: SyncCoordinator | None = None
_watcher: ExternalChangeWatcher | None = None


def set_dependencies(
    coordinator: SyncCoordinator | None,
    watcher: ExternalChangeWatcher | None = None,
) -> None:
    """Wire up coordinator and watcher (called from main.py lifespan)."""
    global _coordinator, _watcher
    _coordinator = coordinator
    _watcher = watcher


def _get_coordinator() -> SyncCoordinator:
    if _coordinator is None:
        raise HTTPException(status_code=503, detail="Sync coordinator not initialized.")
    return _coordinator


# === Response Models ===


class SyncStatusResponse(BaseModel):
    mode: str
    state: str
    connected: bool
    document: str | None = None
    pending_changes: bool
    last_synced_at: str | None = None
    last_error: str | None = None
    write_failures: int = 0
    watcher: dict | None = None


class SyncActionResponse(BaseModel):
    ok: bool
    state: str
    detail: str = ""


def _status() -> SyncStatusResponse:
    coordinator = _get_coordinator()
    return SyncStatusResponse(
        **coordinator.get_status(),
        watcher=_watcher.get_status() if _watcher else None,
    )


# === Endpoints ===


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status() -> SyncStatusResponse:
    return _status()


@router.post("/connect", response_model=SyncActionResponse)
async def connect() -> SyncActionResponse:
    coordinator = _get_coordinator()
    try:
        connected = await coordinator.connect()
    except DocumentAccessError as e:
        raise HTTPException(status_code=409, detail=str(e))
    detail = "" if connected else f"not connected ({coordinator.get_mode()} mode or no document)"
    return SyncActionResponse(ok=connected, state=coordinator.state, detail=detail)


@router.post("/disconnect", response_model=SyncActionResponse)
async def disconnect() -> SyncActionResponse:
    coordinator = _get_coordinator()
    await coordinator.disconnect()
    return SyncActionResponse(ok=True, state=coordinator.state)


@router.post("/flush", response_model=SyncActionResponse)
async def flush() -> SyncActionResponse:
    coordinator = _get_coordinator()
    written = await coordinator.flush()
    status = coordinator.get_status()
    return SyncActionResponse(ok=written, state=coordinator.state, detail=status["last_error"] or "")


@router.post("/check", response_model=SyncActionResponse)
async def check_external() -> SyncActionResponse:
    coordinator = _get_coordinator()
    changed = await coordinator.check_external_changes()
    return SyncActionResponse(
        ok=True,
        state=coordinator.state,
        detail="external change imported" if changed else "no change",
    )
