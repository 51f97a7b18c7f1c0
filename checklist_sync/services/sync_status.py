"""Read-only sync status for UI indicators."""

import asyncio
import logging
from typing import Any, Callable

from checklist_sync.config import settings
from checklist_sync.schemas.sync import SyncEvent, SyncStatusSnapshot
from checklist_sync.services.local_store import LocalStore
from checklist_sync.services.sync import SyncManager

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[SyncStatusSnapshot], Any]


class SyncStatusObserver:
    """Recomputes queue counts on an interval and after every sync event.

    Never writes to the store it reads.
    """

    def __init__(
        self,
        store: LocalStore,
        sync_manager: SyncManager,
        interval: float = settings.SYNC_STATUS_REFRESH_SECONDS,
    ):
        self.store = store
        self.sync_manager = sync_manager
        self.interval = interval
        self._snapshot = SyncStatusSnapshot()
        self._listeners: list[SnapshotListener] = []
        self._task: asyncio.Task | None = None
        self._pending_refreshes: set[asyncio.Task] = set()
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def snapshot(self) -> SyncStatusSnapshot:
        return self._snapshot

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def refresh(self) -> SyncStatusSnapshot:
        queue = await self.store.get_sync_queue_stats()
        files = await self.store.get_file_queue_stats()
        unsynced = await self.store.get_unsynced_field_responses()
        snapshot = SyncStatusSnapshot(
            is_syncing=self.sync_manager.is_running,
            queue=queue,
            files=files,
            unsynced_fields=len(unsynced),
            has_pending_items=queue.pending > 0 or queue.processing > 0,
            has_errors=queue.failed > 0,
        )
        changed = snapshot != self._snapshot
        self._snapshot = snapshot
        if changed:
            for listener in list(self._listeners):
                try:
                    listener(snapshot)
                except Exception:
                    logger.exception("Sync status listener failed")
        return snapshot

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.sync_manager.subscribe(self._on_sync_event)
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        tasks = [t for t in [self._task, *self._pending_refreshes] if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
        self._pending_refreshes.clear()

    def _on_sync_event(self, event: SyncEvent) -> None:
        self._snapshot = self._snapshot.model_copy(update={"is_syncing": event.is_syncing})
        task = asyncio.create_task(self._refresh_logged())
        self._pending_refreshes.add(task)
        task.add_done_callback(self._pending_refreshes.discard)

    async def _refresh_logged(self) -> None:
        try:
            await self.refresh()
        except Exception:
            logger.exception("Refreshing sync status failed")

    async def _run(self) -> None:
        while True:
            await self._refresh_logged()
            await asyncio.sleep(self.interval)
