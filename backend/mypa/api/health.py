"""Health check endpoint — indexed store, document connection, watcher."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from mypa.context import AppContext

router = APIRouter()

VERSION = "0.1.0"

# Set by main.py at startup
_context: AppContext | None = None


def set_context(context: AppContext | None) -> None:
    global _context
    _context = context


class HealthStatus(BaseModel):
    status: str  # "healthy" | "degraded" | "unhealthy"
    version: str
    checks: dict[str, dict]
    timestamp: datetime


@router.get("/health", response_model=HealthStatus)
async def health_check() -> HealthStatus:
    checks: dict[str, dict] = {}
    overall_healthy = True
    has_warning = False

    if _context is None:
        return HealthStatus(
            status="unhealthy",
            version=VERSION,
            checks={"context": {"status": "error", "detail": "not initialized"}},
            timestamp=datetime.now(timezone.utc),
        )

    # 1. SQLite DB
    if _context.engine is not None:
        try:
            with _context.engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
                wal = conn.execute(text("PRAGMA journal_mode")).fetchone()
                checks["database"] = {"status": "ok", "detail": f"journal_mode={wal[0]}"}
        except Exception as e:
            checks["database"] = {"status": "error", "detail": str(e)}
            overall_healthy = False
    else:
        checks["database"] = {"status": "disabled", "detail": "file-only mode"}

    # 2. Document
    sync = _context.coordinator.get_status()
    if sync["connected"]:
        status = "warning" if sync["last_error"] else "ok"
        checks["document"] = {"status": status, "detail": f"{sync['document']} ({sync['state']})"}
        has_warning = has_warning or bool(sync["last_error"])
    elif sync["mode"] == "db-only":
        checks["document"] = {"status": "disabled", "detail": "db-only mode"}
    else:
        checks["document"] = {"status": "warning", "detail": "no document connected"}
        has_warning = True

    # 3. External change watcher
    watcher = _context.watcher.get_status()
    if not watcher["enabled"]:
        checks["watcher"] = {"status": "disabled", "detail": "external checks off"}
    else:
        checks["watcher"] = {
            "status": "ok" if watcher["running"] else "warning",
            "detail": f"interval={watcher['interval_seconds']}s, checks={watcher['checks_run']}",
        }
        has_warning = has_warning or not watcher["running"]

    if overall_healthy:
        status = "degraded" if has_warning else "healthy"
    else:
        status = "unhealthy"

    return HealthStatus(
        status=status,
        version=VERSION,
        checks=checks,
        timestamp=datetime.now(timezone.utc),
    )
