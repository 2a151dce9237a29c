"""Alembic environment for the MyPA indexed store.

The database URL comes from mypa.config.settings (DATABASE_URL) unless
overridden on the command line:

    alembic -x db=sqlite:///other.db upgrade head
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlmodel import SQLModel, create_engine

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Registers section_record, task_record, project_record, sync_metadata
from mypa.models.store import ProjectRecord, SectionRecord, SyncMetadata, TaskRecord  # noqa: F401, E402
from mypa.config import settings  # noqa: E402
from mypa.db.database import ensure_sqlite_dir  # noqa: E402

target_metadata = SQLModel.metadata


def _database_url() -> str:
    url = context.get_x_argument(as_dictionary=True).get("db") or settings.database_url
    return ensure_sqlite_dir(url)


def run_migrations_offline() -> None:
    """Emit SQL without connecting."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,  # SQLite ALTER TABLE
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(_database_url(), poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
            compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
