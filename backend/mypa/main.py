"""MyPA FastAPI Application.

Entry point for the backend server:
    uvicorn mypa.main:app --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mypa.api.health import VERSION
from mypa.api.health import router as health_router
from mypa.api.health import set_context
from mypa.api.v1.sync import router as sync_router
from mypa.api.v1.sync import set_dependencies as set_sync_deps
from mypa.api.v1.tasks import router as tasks_router
from mypa.api.v1.tasks import set_dependencies as set_task_deps
from mypa.config import settings
from mypa.context import AppContext

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    context = AppContext.create(settings)
    await context.start()

    # Wire up API modules
    set_context(context)
    set_task_deps(context.coordinator)
    set_sync_deps(context.coordinator, context.watcher)
    app.state.context = context

    yield

    # Shutdown: stop the watcher, flush pending write-back
    set_task_deps(None)
    set_sync_deps(None)
    set_context(None)
    await context.aclose()


app = FastAPI(
    title="MyPA",
    description="Personal assistant task manager backed by a Markdown ToDo file",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
)


# Global exception handler: no internal details in responses
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    if isinstance(exc, HTTPException):
        raise exc
    logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error."},
    )


# Routes
app.include_router(health_router)
app.include_router(tasks_router)
app.include_router(sync_router)


@app.get("/")
async def root():
    return {"name": "MyPA", "version": VERSION, "status": "running"}
