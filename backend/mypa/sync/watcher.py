"""External-change watcher — periodic check of ToDo.md for outside edits.

Usage:
    watcher = ExternalChangeWatcher(coordinator, interval_seconds=30)
    await watcher.start()
    # ... app runs ...
    watcher.stop()
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from mypa.sync.coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


class ExternalChangeWatcher:
    """Calls ``coordinator.check_external_changes()`` on a fixed interval."""

    def __init__(
        self,
        coordinator: SyncCoordinator,
        interval_seconds: float = 30.0,
        enabled: bool = True,
    ) -> None:
        self.coordinator = coordinator
        self.interval_seconds = interval_seconds
        self.enabled = enabled
        self._task: asyncio.Task | None = None
        self._running = False
        self.checks_run = 0
        self.changes_detected = 0
        self.last_check_at: datetime | None = None

    async def start(self) -> None:
        if not self.enabled:
            logger.info("External change watcher disabled")
            return

        if self._running:
            logger.warning("External change watcher already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("External change watcher started (interval: %.1fs)", self.interval_seconds)

    def stop(self) -> None:
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            logger.info("External change watcher stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
                if not self._running:
                    break
                await self.check_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("External change watcher error: %s", e, exc_info=True)

    async def check_once(self) -> bool:
        """Run a single check; skipped while no document is connected."""
        if not self.coordinator.is_connected():
            return False
        self.checks_run += 1
        self.last_check_at = datetime.now(timezone.utc)
        changed = await self.coordinator.check_external_changes()
        if changed:
            self.changes_detected += 1
        return changed

    @property
    def is_running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    def get_status(self) -> dict:
        return {
            "enabled": self.enabled,
            "running": self.is_running,
            "interval_seconds": self.interval_seconds,
            "checks_run": self.checks_run,
            "changes_detected": self.changes_detected,
            "last_check_at": self.last_check_at.isoformat() if self.last_check_at else None,
        }
