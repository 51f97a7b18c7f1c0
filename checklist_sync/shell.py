"""Application shell: builds every service once and wires them together."""

import logging

import httpx

from checklist_sync.config import Settings, settings as default_settings
from checklist_sync.core.errors import ChecklistSyncError
from checklist_sync.database import create_engine
from checklist_sync.services.checklist_api import ChecklistApiClient
from checklist_sync.services.connectivity import ConnectivityMonitor, HttpProbe, StatusProvider
from checklist_sync.services.gateway import RemoteGateway
from checklist_sync.services.local_store import LocalStore
from checklist_sync.services.preferences import PreferenceStore
from checklist_sync.services.sync import SyncManager
from checklist_sync.services.sync_status import SyncStatusObserver

logger = logging.getLogger(__name__)


class AppServices:
    """The service graph shared by the HTTP surface and background work."""

    def __init__(
        self,
        store: LocalStore,
        preferences: PreferenceStore,
        api: ChecklistApiClient,
        connectivity: ConnectivityMonitor,
        gateway: RemoteGateway,
        sync_manager: SyncManager,
        status_observer: SyncStatusObserver,
        poll_interval: float | None = None,
    ):
        self.store = store
        self.preferences = preferences
        self.api = api
        self.connectivity = connectivity
        self.gateway = gateway
        self.sync_manager = sync_manager
        self.status_observer = status_observer
        self.poll_interval = poll_interval
        self._unsubscribe_reconnect = None

    async def start(self) -> None:
        await self.store.create_schema()
        cleared = await self.store.clear_completed_sync_items()
        if cleared:
            logger.info("Removed %d completed sync items left from a previous run", cleared)
        # nothing can be in flight before start, so these were cut off mid-run
        await self.store.reset_interrupted_sync_items()
        await self.store.reset_interrupted_files()
        self._unsubscribe_reconnect = self.connectivity.on_reconnected(self.sync_on_reconnect)
        self.status_observer.start()
        if self.poll_interval:
            self.connectivity.start_polling(self.poll_interval)

    async def stop(self) -> None:
        if self._unsubscribe_reconnect is not None:
            self._unsubscribe_reconnect()
            self._unsubscribe_reconnect = None
        await self.connectivity.stop()
        await self.status_observer.stop()
        await self.sync_manager.aclose()
        await self.store.engine.dispose()

    async def sync_on_reconnect(self) -> None:
        """Sync silently once the connection has settled, if there is work."""
        snapshot = await self.status_observer.refresh()
        if not (snapshot.has_pending_items or snapshot.unsynced_fields or snapshot.files.pending):
            logger.info("Back online with nothing to sync")
            return
        logger.info("Back online, starting sync")
        try:
            await self.sync_manager.sync_all()
        except ChecklistSyncError as exc:
            logger.warning("Automatic sync aborted: %s", exc)


def create_services(
    config: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    status_providers: list[StatusProvider] | None = None,
) -> AppServices:
    config = config or default_settings
    store = LocalStore(create_engine(config.DATABASE_URL))
    preferences = PreferenceStore(store)
    api = ChecklistApiClient(
        config.API_URL,
        token_provider=preferences.require_token,
        timeout=config.API_TIMEOUT_SECONDS,
        transport=transport,
    )
    if status_providers is None:
        status_providers = [
            HttpProbe(
                config.CONNECTIVITY_PROBE_URL,
                timeout=config.CONNECTIVITY_PROBE_TIMEOUT_SECONDS,
            )
        ]
    connectivity = ConnectivityMonitor(
        status_providers, settle_delay=config.RECONNECT_SETTLE_SECONDS
    )
    sync_manager = SyncManager(
        store,
        api,
        preferences,
        completed_grace_seconds=config.COMPLETED_ITEM_GRACE_SECONDS,
    )
    return AppServices(
        store=store,
        preferences=preferences,
        api=api,
        connectivity=connectivity,
        gateway=RemoteGateway(store, api, connectivity, preferences),
        sync_manager=sync_manager,
        status_observer=SyncStatusObserver(
            store, sync_manager, interval=config.SYNC_STATUS_REFRESH_SECONDS
        ),
        poll_interval=config.CONNECTIVITY_POLL_SECONDS,
    )
