"""Sync Coordinator — keeps the indexed store and ToDo.md in step.

States:
    disconnected     no document handle; the indexed store is authoritative
    connected-idle   handle present, store and document agree
    connected-dirty  a local mutation is waiting for write-back
    syncing          write-back in flight

Every mutation is applied to the indexed store first and, when a document
is connected, schedules a trailing-debounced write-back: each new mutation
cancels the pending timer and starts a fresh one, so a burst of edits ends
in a single document write. A write that has started is never cancelled.

External edits are picked up by ``check_external_changes`` (driven by
``ExternalChangeWatcher``). The document wins per date section; if local
changes were still pending, an ``external_overwrite`` event is emitted and
a warning logged so the race is visible rather than silent.

Modes:
    hybrid     store + document (default)
    db-only    store only; ``connect()`` returns False
    file-only  no store; every operation reads and rewrites the document
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, Field

from mypa.engines.rollover import (
    Generate,
    RolloverResult,
    rollover,
    should_trigger_rollover,
    smart_rollover,
)
from mypa.markdown.codec import extract_metadata
from mypa.markdown.parser import parse_document
from mypa.markdown.serializer import serialize_document
from mypa.models.document import (
    TASK_LISTS,
    Blocker,
    DailySection,
    Note,
    ParsedDocument,
    Project,
    Task,
    TaskCreate,
    TaskListName,
    TaskUpdate,
)
from mypa.storage.indexed_store import IndexedStore, TaskNotFoundError
from mypa.sync.document import DocumentCache, DocumentHandle, DocumentOpener
from mypa.utils.dates import DEFAULT_TIMEZONE, today_local

logger = logging.getLogger(__name__)

SyncState = Literal["disconnected", "connected-idle", "connected-dirty", "syncing"]
StorageMode = Literal["file-only", "db-only", "hybrid"]
STORAGE_MODES: tuple[StorageMode, ...] = ("file-only", "db-only", "hybrid")

T = TypeVar("T")

__all__ = [
    "DocumentAccessError",
    "StorageMode",
    "SyncCoordinator",
    "SyncEvent",
    "SyncState",
    "TaskNotFoundError",
]


class DocumentAccessError(Exception):
    """The document could not be opened, read or written when required."""

    def __init__(self, message: str, document: str | None = None) -> None:
        self.document = document
        super().__init__(message)


class SyncEvent(BaseModel):
    """Published to subscribers: connected, disconnected, synced, sync_error,
    external_change, external_overwrite."""

    type: str
    detail: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


SyncListener = Callable[[SyncEvent], None]


def apply_changes(document: ParsedDocument, task_id: str, changes: dict[str, Any]) -> Task:
    """Update a task inside a parsed document, relocating on (un)completion."""
    found = document.find_task(task_id)
    if found is None:
        raise TaskNotFoundError(task_id)
    section, list_name, task = found

    merged = task.model_dump()
    merged.update(changes)
    if changes.get("status") not in (None, "completed"):
        merged["completed_at"] = None
    merged["updated_at"] = datetime.now(timezone.utc)
    updated = Task.model_validate(merged)

    target: TaskListName = list_name
    if updated.status == "completed" and list_name != "completed":
        target = "completed"
    elif updated.status != "completed" and list_name == "completed":
        target = "priorities"

    tasks: list[Task] = getattr(section, list_name)
    index = next(i for i, t in enumerate(tasks) if t.id == task_id)
    if target == list_name:
        tasks[index] = updated
    else:
        tasks.pop(index)
        getattr(section, target).append(updated)
    return updated


def split_inline_metadata(fields: dict[str, Any]) -> dict[str, Any]:
    """Move ``#Tag @who Due: … !Pn`` tokens typed into ``content`` into fields.

    Values passed explicitly win over tokens found in the text.

    Raises:
        ValueError: If nothing but metadata is left in the content.
    """
    if fields.get("content") is None:
        return fields
    content, extracted = extract_metadata(fields["content"])
    if not content:
        raise ValueError(f"Task content has no text besides metadata: {fields['content']!r}")
    split = {**fields, "content": content}
    for name, value in extracted.items():
        if split.get(name) is None:
            split[name] = value
    return split


class SyncCoordinator:
    """Orchestrates the indexed store, the document and rollover.

    Usage:
        coordinator = SyncCoordinator(store, opener=open_file_document("ToDo.md"))
        await coordinator.init()
        await coordinator.connect()
        task = await coordinator.add_task(TaskCreate(content="Ship it"), "priorities")
        await coordinator.complete_task(task.id)
        await coordinator.aclose()
    """

    def __init__(
        self,
        store: IndexedStore | None,
        opener: DocumentOpener | None = None,
        *,
        mode: StorageMode = "hybrid",
        debounce_seconds: float = 2.0,
        max_write_retries: int = 3,
        local_timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        if mode not in STORAGE_MODES:
            raise ValueError(f"Unknown storage mode: {mode}")
        if store is None and mode != "file-only":
            raise ValueError(f"Storage mode {mode!r} needs an indexed store")
        self.store = store
        self.opener = opener
        self.mode: StorageMode = mode
        self.debounce_seconds = debounce_seconds
        self.max_write_retries = max_write_retries
        self.local_timezone = local_timezone

        self._handle: DocumentHandle | None = None
        self._cache: DocumentCache | None = None
        self._state: SyncState = "disconnected"
        self._last_seen: tuple[str, float] | None = None
        self._pending: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()
        self._generation = 0
        self._written_generation = 0
        self._write_failures = 0
        self._last_error: str | None = None
        self._last_synced_at: datetime | None = None
        self._listeners: list[SyncListener] = []

    # ------------------------------------------------------------------
    # Lifecycle and status
    # ------------------------------------------------------------------

    async def init(self) -> None:
        if self.store is not None:
            self.store.init()

    @property
    def state(self) -> SyncState:
        return self._state

    def is_connected(self) -> bool:
        return self._handle is not None

    def get_mode(self) -> StorageMode:
        return self.mode

    def set_mode(self, mode: StorageMode) -> None:
        if mode not in STORAGE_MODES:
            raise ValueError(f"Unknown storage mode: {mode}")
        if mode != "file-only" and self.store is None:
            raise ValueError(f"Storage mode {mode!r} needs an indexed store")
        self.mode = mode
        logger.info("Storage mode set to %s", mode)

    @property
    def has_pending_changes(self) -> bool:
        return self._generation != self._written_generation

    def today(self) -> str:
        return today_local(self.local_timezone)

    def get_status(self) -> dict:
        return {
            "mode": self.mode,
            "state": self._state,
            "connected": self.is_connected(),
            "document": self._handle.name if self._handle else None,
            "pending_changes": self.has_pending_changes,
            "last_synced_at": self._last_synced_at.isoformat() if self._last_synced_at else None,
            "last_error": self._last_error,
            "write_failures": self._write_failures,
        }

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        """Register a sync event listener; returns an unsubscribe callable."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def _emit(self, event_type: str, **detail: Any) -> None:
        event = SyncEvent(type=event_type, detail=detail)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error("Sync listener failed on %s: %s", event_type, e, exc_info=True)

    def _set_state(self, state: SyncState) -> None:
        if state != self._state:
            logger.debug("Sync state %s -> %s", self._state, state)
            self._state = state

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self, opener: DocumentOpener | None = None) -> bool:
        """Acquire the document and make it authoritative.

        In hybrid mode the indexed store is overwritten with the parsed
        document. Returns False in db-only mode or when the opener yields no
        handle (selection cancelled).

        Raises:
            DocumentAccessError: If the document cannot be opened or read;
                the coordinator stays disconnected.
        """
        if self.mode == "db-only":
            logger.info("connect() ignored in db-only mode")
            return False

        opener = opener or self.opener
        if opener is None:
            raise DocumentAccessError("No document opener configured")

        self._cancel_pending()
        try:
            handle = await opener()
        except Exception as e:
            self._drop_connection()
            logger.error("Failed to open document: %s", e)
            self._emit("sync_error", error=str(e), stage="connect")
            raise DocumentAccessError(f"Could not open document: {e}") from e

        if handle is None:
            logger.info("Document selection cancelled")
            return False

        cache = DocumentCache(handle)
        try:
            document = await cache.load()
        except Exception as e:
            self._drop_connection()
            logger.error("Failed to read document %s: %s", handle.name, e)
            self._emit("sync_error", error=str(e), stage="connect", document=handle.name)
            raise DocumentAccessError(f"Could not read {handle.name}: {e}", handle.name) from e

        if self.mode == "hybrid":
            self.store.import_document(document)

        self._handle = handle
        self._cache = cache
        self._last_seen = cache.snapshot.signature
        self._written_generation = self._generation
        self._write_failures = 0
        self._last_error = None
        self._set_state("connected-idle")
        logger.info("Connected to %s (%d sections)", handle.name, len(document.sections))
        self._emit("connected", document=handle.name, sections=len(document.sections))
        return True

    async def disconnect(self, flush: bool = True) -> None:
        """Release the document, writing pending changes first if asked."""
        if self._handle is None:
            return
        if flush and self.has_pending_changes:
            await self.flush()
        self._cancel_pending()
        name = self._handle.name
        self._drop_connection()
        logger.info("Disconnected from %s", name)
        self._emit("disconnected", document=name)

    def _drop_connection(self) -> None:
        self._handle = None
        self._cache = None
        self._last_seen = None
        self._set_state("disconnected")

    async def aclose(self) -> None:
        """Flush pending changes and wait for in-flight writes."""
        if self._handle is not None and self.mode == "hybrid" and self.has_pending_changes:
            await self.flush()
        self._cancel_pending()
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    # ------------------------------------------------------------------
    # Write-back
    # ------------------------------------------------------------------

    def _mark_dirty(self) -> None:
        self._generation += 1
        if self._handle is None or self.mode != "hybrid":
            return
        if self._state != "syncing":
            self._set_state("connected-dirty")
        self._schedule_write_back()

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    def _schedule_write_back(self) -> None:
        """Restart the debounce timer."""
        self._cancel_pending()
        self._pending = asyncio.get_running_loop().create_task(self._debounced_write_back())

    async def _debounced_write_back(self) -> None:
        try:
            await asyncio.sleep(self.debounce_seconds)
        except asyncio.CancelledError:
            return  # Superseded by a newer mutation

        # From here on the write is in flight and no longer cancellable
        current = asyncio.current_task()
        if self._pending is current:
            self._pending = None
        self._in_flight.add(current)
        try:
            await self._write_back()
        finally:
            self._in_flight.discard(current)

    async def _write_back(self) -> bool:
        async with self._write_lock:
            handle = self._handle
            if handle is None or self.mode != "hybrid":
                return False

            generation = self._generation
            self._set_state("syncing")
            try:
                document = self.store.export_document()
                content = serialize_document(document.sections, document.projects)
                snapshot = await handle.write(content)
            except Exception as e:
                self._write_failures += 1
                self._last_error = str(e)
                logger.error(
                    "Write-back to %s failed (attempt %d): %s",
                    handle.name, self._write_failures, e, exc_info=True,
                )
                if self._handle is handle:
                    self._set_state("connected-dirty")
                    if self._write_failures <= self.max_write_retries:
                        self._schedule_write_back()
                self._emit("sync_error", error=str(e), stage="write", attempt=self._write_failures)
                return False

            self._write_failures = 0
            self._last_error = None
            self._written_generation = generation
            self._last_synced_at = datetime.now(timezone.utc)
            self.store.set_metadata("last_sync", self._last_synced_at.isoformat())
            if self._handle is handle:
                self._last_seen = snapshot.signature
                if self._cache is not None:
                    self._cache.remember(snapshot, document)
                self._set_state("connected-idle" if self._generation == generation else "connected-dirty")
            logger.info("Synced %d sections to %s", len(document.sections), handle.name)
            self._emit("synced", document=handle.name, sections=len(document.sections))
            return True

    async def flush(self) -> bool:
        """Write pending changes now instead of waiting for the debounce."""
        self._cancel_pending()
        if self._handle is None or self.mode != "hybrid":
            return False
        if not self.has_pending_changes and self._state == "connected-idle":
            return True
        return await self._write_back()

    # ------------------------------------------------------------------
    # External changes
    # ------------------------------------------------------------------

    async def check_external_changes(self) -> bool:
        """Re-import the document if it changed outside this process.

        Returns True when an external change was imported.
        """
        handle = self._handle
        if handle is None:
            return False
        try:
            snapshot = await handle.read()
        except Exception as e:
            logger.warning("External change check on %s failed: %s", handle.name, e)
            self._emit("sync_error", error=str(e), stage="check")
            return False

        if self._last_seen is not None:
            if snapshot.signature == self._last_seen:
                return False
            if snapshot.content_hash == self._last_seen[0]:
                # Touched but identical
                self._last_seen = snapshot.signature
                return False

        document = parse_document(snapshot.content)
        dates = [section.date for section in document.sections]

        if self.has_pending_changes:
            logger.warning(
                "External edit to %s overwrites unsynced local changes (sections: %s)",
                handle.name, ", ".join(dates) or "none",
            )
            self._emit("external_overwrite", document=handle.name, dates=dates)

        if self.mode == "hybrid":
            self.store.replace_sections(document)
        if self._cache is not None:
            self._cache.remember(snapshot, document)
        self._last_seen = snapshot.signature
        logger.info("Imported external change to %s (%d sections)", handle.name, len(dates))
        self._emit("external_change", document=handle.name, dates=dates)
        return True

    # ------------------------------------------------------------------
    # File-only plumbing
    # ------------------------------------------------------------------

    def _require_cache(self) -> DocumentCache:
        if self._cache is None:
            raise DocumentAccessError("No document connected (file-only mode)")
        return self._cache

    async def _read_document(self) -> ParsedDocument:
        cache = self._require_cache()
        try:
            return await cache.load()
        except Exception as e:
            raise DocumentAccessError(f"Could not read {cache.handle.name}: {e}", cache.handle.name) from e

    async def _mutate_document(self, mutate: Callable[[ParsedDocument], T]) -> T:
        """Load, mutate a copy, serialise and write immediately."""
        cache = self._require_cache()
        async with self._write_lock:
            document = (await self._read_document()).model_copy(deep=True)
            result = mutate(document)
            content = serialize_document(document.sections, document.projects)
            try:
                snapshot = await cache.handle.write(content)
            except Exception as e:
                self._last_error = str(e)
                self._emit("sync_error", error=str(e), stage="write")
                raise DocumentAccessError(f"Could not write {cache.handle.name}: {e}", cache.handle.name) from e
            cache.remember(snapshot, document)
            self._last_seen = snapshot.signature
            self._last_synced_at = datetime.now(timezone.utc)
        return result

    @staticmethod
    def _section_in(document: ParsedDocument, date: str) -> DailySection:
        section = document.section_for(date)
        if section is None:
            section = DailySection(date=date)
            document.sections.append(section)
        return section

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def load_current_section(self, date: str | None = None) -> DailySection | None:
        """Section for ``date`` (default: today), or None if there is none yet."""
        date = date or self.today()
        if self.mode == "file-only":
            section = (await self._read_document()).section_for(date)
            return section.model_copy(deep=True) if section else None
        return self.store.get_section_by_date(date)

    async def get_all_projects(self) -> list[Project]:
        if self.mode == "file-only":
            return [p.model_copy() for p in (await self._read_document()).projects]
        return self.store.get_all_projects()

    async def get_task(self, task_id: str) -> Task:
        if self.mode == "file-only":
            found = (await self._read_document()).find_task(task_id)
            if found is None:
                raise TaskNotFoundError(task_id)
            return found[2].model_copy(deep=True)
        found = self.store.get_task(task_id)
        if found is None:
            raise TaskNotFoundError(task_id)
        return found[0]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_task(
        self,
        data: TaskCreate | dict,
        section_type: TaskListName = "priorities",
        date: str | None = None,
    ) -> Task:
        """Create a task at the end of ``section_type`` for ``date`` (default today).

        A task created as completed goes to the ``completed`` list.
        """
        if section_type not in TASK_LISTS:
            raise ValueError(f"Unknown task list: {section_type}")
        data = data if isinstance(data, TaskCreate) else TaskCreate.model_validate(data)
        date = date or self.today()
        task = Task(**split_inline_metadata(data.model_dump()))
        list_name: TaskListName = "completed" if task.status == "completed" else section_type

        if self.mode == "file-only":
            def _add(document: ParsedDocument) -> Task:
                getattr(self._section_in(document, date), list_name).append(task)
                if task.project:
                    document.register_project(task.project)
                return task
            return await self._mutate_document(_add)

        if task.project:
            self.store.ensure_project(task.project)
        self.store.add_task(task, date, list_name)
        self._mark_dirty()
        return task

    async def update_task(self, task_id: str, partial: TaskUpdate | dict) -> Task:
        """Apply a partial update.

        Raises:
            TaskNotFoundError: If no task has this id.
        """
        update = partial if isinstance(partial, TaskUpdate) else TaskUpdate.model_validate(partial)
        changes = split_inline_metadata(update.changes())

        if self.mode == "file-only":
            def _update(document: ParsedDocument) -> Task:
                updated = apply_changes(document, task_id, changes)
                if updated.project:
                    document.register_project(updated.project)
                return updated
            return await self._mutate_document(_update)

        task = self.store.update_task(task_id, changes)
        if task.project:
            self.store.ensure_project(task.project)
        self._mark_dirty()
        return task

    async def complete_task(self, task_id: str) -> Task:
        return await self.update_task(task_id, TaskUpdate(status="completed"))

    async def delete_task(self, task_id: str) -> None:
        """Raises TaskNotFoundError for an unknown id."""
        if self.mode == "file-only":
            def _delete(document: ParsedDocument) -> None:
                found = document.find_task(task_id)
                if found is None:
                    raise TaskNotFoundError(task_id)
                found[0].remove_task(task_id)
            await self._mutate_document(_delete)
            return

        if not self.store.delete_task(task_id):
            raise TaskNotFoundError(task_id)
        self._mark_dirty()

    async def add_note(self, content: str, date: str | None = None) -> Note:
        date = date or self.today()
        note = Note(content=content.strip())
        if self.mode == "file-only":
            await self._mutate_document(lambda d: self._section_in(d, date).notes.append(note))
            return note
        self.store.add_note(date, note)
        self._mark_dirty()
        return note

    async def add_blocker(self, content: str, next_step: str | None = None,
                          date: str | None = None) -> Blocker:
        date = date or self.today()
        blocker = Blocker(content=content.strip(), next_step=(next_step or "").strip() or None)
        if self.mode == "file-only":
            await self._mutate_document(lambda d: self._section_in(d, date).blockers.append(blocker))
            return blocker
        self.store.add_blocker(date, blocker)
        self._mark_dirty()
        return blocker

    async def add_project(self, name: str, tag: str, color: str | None = None,
                          description: str = "") -> Project:
        project = Project(name=name, tag=tag if tag.startswith("#") else f"#{tag}",
                          color=color, description=description)
        if self.mode == "file-only":
            # Projects are not stored in the document; keep them in the cache only
            document = await self._read_document()
            existing = document.register_project(project.tag)
            existing.name, existing.color, existing.description = name, color, description
            return existing
        return self.store.add_project(project)

    # ------------------------------------------------------------------
    # Rollover
    # ------------------------------------------------------------------

    async def perform_rollover(
        self,
        current_date: str | None = None,
        generate: Generate | None = None,
    ) -> RolloverResult:
        """Carry unfinished tasks from the latest earlier section into ``current_date``.

        Carried originals are removed from the previous section and the date
        is recorded, so each task moves forward once per day transition.
        """
        current_date = current_date or self.today()

        if self.mode == "file-only":
            document = await self._read_document()
            previous = self._latest_before(document, current_date)
            result = await self._compute_rollover(previous, current_date, generate)
            if result.carried:
                await self._mutate_document(lambda d: self._place_carried(d, result, current_date))
            return result

        last = self.store.get_metadata("last_rollover_date")
        if not should_trigger_rollover(last, current_date):
            logger.debug("Rollover already performed for %s", current_date)
            return RolloverResult(summary=f"Rollover already performed for {current_date}.")

        previous = self.store.latest_section_before(current_date)
        result = await self._compute_rollover(previous, current_date, generate)
        for task in result.carried:
            origin = result.origins[task.id]
            if task.project:
                self.store.ensure_project(task.project)
            self.store.add_task(task, current_date, origin.list_name)
            self.store.delete_task(origin.source_id)
        self.store.set_metadata("last_rollover_date", current_date)

        if result.carried:
            logger.info(
                "Rolled over %d tasks into %s (%d overdue, %d due today)",
                result.rollover_count, current_date, result.overdue_count, result.due_today_count,
            )
            self._mark_dirty()
        return result

    @staticmethod
    async def _compute_rollover(previous: DailySection | None, current_date: str,
                                generate: Generate | None) -> RolloverResult:
        if generate is not None:
            return await smart_rollover(previous, current_date, generate=generate)
        return rollover(previous, current_date)

    @staticmethod
    def _latest_before(document: ParsedDocument, date: str) -> DailySection | None:
        earlier = [s for s in document.sections if s.date < date]
        return max(earlier, key=lambda s: s.date) if earlier else None

    def _place_carried(self, document: ParsedDocument, result: RolloverResult, date: str) -> None:
        target = self._section_in(document, date)
        for task in result.carried:
            origin = result.origins[task.id]
            found = document.find_task(origin.source_id)
            if found is not None:
                found[0].remove_task(origin.source_id)
            getattr(target, origin.list_name).append(task)
