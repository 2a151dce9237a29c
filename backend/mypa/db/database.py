"""Database setup — SQLite with WAL mode via SQLModel/SQLAlchemy.

The engine is built explicitly (``make_engine``) and handed to the indexed
store by ``AppContext``; nothing in the core reaches for a global engine.
"""

from __future__ import annotations

import os

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

# Register tables on SQLModel.metadata
from mypa.models.store import ProjectRecord, SectionRecord, SyncMetadata, TaskRecord  # noqa: F401


def ensure_sqlite_dir(url: str) -> str:
    """Create the directory of a file-backed SQLite URL."""
    if url.startswith("sqlite:///") and ":memory:" not in url:
        db_dir = os.path.dirname(url.replace("sqlite:///", ""))
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
    return url


# Enable WAL mode for all SQLite connections
@event.listens_for(Engine, "connect")
def set_sqlite_wal(dbapi_connection, connection_record):
    if type(dbapi_connection).__module__.split(".")[0] not in ("sqlite3", "pysqlite2"):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")  # Safe with WAL
    cursor.execute("PRAGMA busy_timeout=5000")    # 5s wait on lock
    cursor.close()


def make_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection."""
    if ":memory:" in url or url == "sqlite://":
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(
        ensure_sqlite_dir(url),
        echo=echo,
        connect_args={"check_same_thread": False},  # Required for SQLite + async
    )


def create_db_and_tables(engine: Engine) -> None:
    """Create all tables defined by SQLModel metadata."""
    SQLModel.metadata.create_all(engine)
