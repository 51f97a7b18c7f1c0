import asyncio

from checklist_sync.models.enums import QueueItemStatus, QueueItemType
from checklist_sync.services.sync_status import SyncStatusObserver


async def test_snapshot_counts_queue_and_fields(store, sync_manager, cached_response):
    observer = SyncStatusObserver(store, sync_manager, interval=60)
    await store.enqueue(QueueItemType.SUBMIT_FORM, {}, priority=1)
    failed = await store.enqueue(QueueItemType.UPDATE_FIELD, {}, priority=5)
    await store.set_sync_item_status(failed, QueueItemStatus.FAILED)
    await store.save_field_response(cached_response, 1, {"kind": "text", "text": "a"})
    await store.enqueue_file(1, "foto.jpg", "AAAA", "image/jpeg")

    snapshot = await observer.refresh()

    assert snapshot.queue.pending == 1
    assert snapshot.queue.failed == 1
    assert snapshot.files.pending == 1
    assert snapshot.unsynced_fields == 1
    assert snapshot.has_pending_items
    assert snapshot.has_errors
    assert not snapshot.is_syncing


async def test_refresh_does_not_write(store, sync_manager, cached_response):
    observer = SyncStatusObserver(store, sync_manager, interval=60)
    await store.enqueue(QueueItemType.SUBMIT_FORM, {}, priority=1)
    before = await store.get_database_stats()
    pending_before = await store.get_pending_sync_items()

    await observer.refresh()

    assert await store.get_database_stats() == before
    assert [i.updated_at for i in await store.get_pending_sync_items()] == [
        i.updated_at for i in pending_before
    ]


async def test_listeners_notified_only_on_change(store, sync_manager):
    observer = SyncStatusObserver(store, sync_manager, interval=60)
    snapshots = []
    observer.subscribe(snapshots.append)

    await observer.refresh()
    await observer.refresh()
    assert snapshots == []

    await store.enqueue(QueueItemType.SUBMIT_FORM, {}, priority=1)
    await observer.refresh()
    await observer.refresh()
    assert len(snapshots) == 1
    assert snapshots[0].has_pending_items


async def test_sync_events_trigger_refresh(store, server, sync_manager):
    server.route("POST", "/salvar_campo", {"success": True})
    observer = SyncStatusObserver(store, sync_manager, interval=60)
    seen = []
    observer.subscribe(seen.append)
    await store.enqueue(
        QueueItemType.UPDATE_FIELD,
        {"valor": "a", "id_campo": 1, "id_resposta": 10, "web": 0},
        priority=5,
    )
    observer.start()
    await asyncio.sleep(0.05)
    assert observer.snapshot.has_pending_items

    await sync_manager.sync_all()
    await sync_manager.wait_for_cleanup()
    await asyncio.sleep(0.05)
    await observer.refresh()

    assert not observer.snapshot.has_pending_items
    assert not observer.snapshot.is_syncing
    assert seen[0].has_pending_items
    assert not seen[-1].has_pending_items
    await observer.stop()
