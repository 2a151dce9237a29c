"""Application context — builds the engine, store, coordinator and watcher.

Entry points (``main.py``, the CLI, tests) create one AppContext and pass its
pieces around; nothing below this module reads ``settings`` directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from mypa.config import Settings
from mypa.db.database import make_engine
from mypa.storage.indexed_store import IndexedStore
from mypa.sync.coordinator import DocumentAccessError, SyncCoordinator
from mypa.sync.document import open_file_document
from mypa.sync.watcher import ExternalChangeWatcher

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Central container for shared app resources."""

    settings: Settings
    engine: Engine | None
    store: IndexedStore | None
    coordinator: SyncCoordinator
    watcher: ExternalChangeWatcher

    @classmethod
    def create(cls, settings: Settings) -> AppContext:
        engine = None
        store = None
        if settings.storage_mode != "file-only":
            engine = make_engine(settings.database_url)
            store = IndexedStore(engine)

        opener = open_file_document(settings.todo_file_path) if settings.todo_file_path else None
        coordinator = SyncCoordinator(
            store,
            opener,
            mode=settings.storage_mode,
            debounce_seconds=settings.sync_debounce_seconds,
            max_write_retries=settings.write_back_max_retries,
            local_timezone=settings.local_timezone,
        )
        watcher = ExternalChangeWatcher(
            coordinator,
            interval_seconds=settings.external_check_interval_seconds,
            enabled=settings.external_check_enabled,
        )
        logger.info(
            "AppContext initialized (mode=%s, db=%s, document=%s)",
            settings.storage_mode, settings.database_url if store else "-",
            settings.todo_file_path or "-",
        )
        return cls(settings=settings, engine=engine, store=store,
                   coordinator=coordinator, watcher=watcher)

    async def start(self, watch: bool = True) -> None:
        """Init the store, connect the document, roll over and start watching.

        A document that cannot be opened leaves the coordinator disconnected;
        the indexed store keeps serving.
        """
        await self.coordinator.init()

        if self.coordinator.opener is not None and self.coordinator.mode != "db-only":
            try:
                await self.coordinator.connect()
            except DocumentAccessError as e:
                logger.error("Starting without document: %s", e)

        if self.settings.rollover_on_startup and (
            self.coordinator.mode != "file-only" or self.coordinator.is_connected()
        ):
            result = await self.coordinator.perform_rollover()
            if result.carried:
                logger.info("Startup rollover: %s", result.summary.splitlines()[0])

        if watch:
            await self.watcher.start()

    async def aclose(self) -> None:
        self.watcher.stop()
        await self.coordinator.aclose()
        if self.engine is not None:
            self.engine.dispose()
