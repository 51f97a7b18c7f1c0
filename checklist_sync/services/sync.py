"""Reconciliation engine for offline checklist work.

One run drains the sync queue, pushes answers that never made it to the
server (creating missing server-side responses first), then drains the file
queue. Steps run strictly in order because later ones rely on the server ids
resolved by earlier ones. Overlapping runs are rejected.

Pushed field answers are deleted rather than marked synced: the presence of a
field_response row is the only "pending" signal, and no tombstone is kept.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from checklist_sync.config import settings
from checklist_sync.core.errors import (
    ChecklistSyncError,
    RemoteRejectedError,
    UnauthenticatedError,
    UnavailableError,
)
from checklist_sync.models.base import utcnow
from checklist_sync.models.checklist import FieldResponse, FormResponse
from checklist_sync.models.enums import (
    FileStatus,
    QueueItemStatus,
    QueueItemType,
    SyncOutcome,
    SyncStatus,
)
from checklist_sync.models.queue import FileQueueItem, SyncQueueItem
from checklist_sync.schemas.field_value import to_wire_value
from checklist_sync.schemas.sync import SyncEvent, SyncReport
from checklist_sync.services.checklist_api import ChecklistApiClient, extract_id
from checklist_sync.services.local_store import LocalStore
from checklist_sync.services.preferences import PreferenceStore

logger = logging.getLogger(__name__)

SyncListener = Callable[[SyncEvent], Any]


class SyncManager:
    def __init__(
        self,
        store: LocalStore,
        api: ChecklistApiClient,
        preferences: PreferenceStore,
        completed_grace_seconds: float = settings.COMPLETED_ITEM_GRACE_SECONDS,
    ):
        self.store = store
        self.api = api
        self.preferences = preferences
        self.completed_grace_seconds = completed_grace_seconds
        self._running = False
        self._listeners: list[SyncListener] = []
        self._cleanup_tasks: set[asyncio.Task] = set()
        self._handlers: dict[QueueItemType, Callable[[dict], Awaitable[None]]] = {
            QueueItemType.CREATE_RESPONSE: self._handle_create_response,
            QueueItemType.UPDATE_FIELD: self._handle_update_field,
            QueueItemType.SUBMIT_FORM: self._handle_submit_form,
            QueueItemType.UPLOAD_FILE: self._handle_upload_file,
        }

    @property
    def is_running(self) -> bool:
        return self._running

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        """Register for start/finish events. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: SyncEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Sync listener failed")

    async def sync_all(self) -> SyncReport | None:
        """Run a full reconciliation pass.

        Returns None without doing anything when a run is already in flight.
        """
        if self._running:
            logger.debug("Sync already running, ignoring request")
            return None

        self._running = True
        self._notify(SyncEvent(is_syncing=True))
        report: SyncReport | None = None
        try:
            await self.preferences.require_token()
            report = SyncReport()
            # no other run is in flight, so a processing item was cut off
            await self.store.reset_interrupted_sync_items()
            await self.process_sync_queue(report)
            await self.reconcile_field_responses(report)
            await self.process_file_queue(report)

            report.stats = await self.store.get_sync_queue_stats()
            report.finished_at = utcnow()
            if report.stats.failed > 0:
                report.outcome = SyncOutcome.PARTIAL_FAILURE
                logger.warning(
                    "Sync finished with %d failed item(s)", report.stats.failed
                )
            elif report.stats.pending == 0:
                report.outcome = SyncOutcome.SUCCESS
                logger.info("All data synchronized")
            else:
                report.outcome = SyncOutcome.INCOMPLETE
                logger.info("Sync finished, %d item(s) still pending", report.stats.pending)
            logger.info(
                "Sync result: queue_completed=%d, queue_retried=%d, queue_failed=%d, "
                "fields_synced=%d, fields_failed=%d, files_uploaded=%d, files_failed=%d",
                report.queue_completed,
                report.queue_retried,
                report.queue_failed,
                report.fields_synced,
                report.fields_failed,
                report.files_uploaded,
                report.files_failed,
            )
            return report
        finally:
            self._running = False
            self._notify(SyncEvent(is_syncing=False, report=report))

    # ==================== STEP 1: SYNC QUEUE ====================

    async def process_sync_queue(self, report: SyncReport) -> None:
        items = await self.store.get_pending_sync_items()
        for item in items:
            await self.store.set_sync_item_status(item.id, QueueItemStatus.PROCESSING)
            handler = self._handlers.get(item.type)
            try:
                if handler is None:
                    raise ValueError(f"Unsupported queue item type: {item.type}")
                await handler(item.payload or {})
            except Exception as exc:
                logger.warning(
                    "Failed to process sync item %s (%s): %s",
                    item.id,
                    item.type.value,
                    exc,
                )
                updated = await self.store.record_sync_failure(item.id, str(exc) or repr(exc))
                if updated is not None and updated.status == QueueItemStatus.FAILED:
                    logger.warning(
                        "Sync item %s gave up after %d attempts", item.id, updated.retry_count
                    )
                    report.queue_failed += 1
                else:
                    report.queue_retried += 1
                continue

            await self.store.set_sync_item_status(item.id, QueueItemStatus.COMPLETED)
            self._remove_later(SyncQueueItem, item.id)
            report.queue_completed += 1

    async def _handle_create_response(self, payload: dict) -> None:
        response = None
        if payload.get("localResponseId") is not None:
            response = await self.store.get(FormResponse, payload["localResponseId"])
        if response is None:
            logger.warning(
                "Response %s for CREATE_RESPONSE no longer exists", payload.get("localResponseId")
            )
            return
        await self._ensure_server_response(response, user_id=payload.get("idUsuario"))

    async def _handle_update_field(self, payload: dict) -> None:
        """Push the field's current value, not the one captured when queued.

        A missing row means a later save already delivered the field.
        """
        local_response_id = payload.get("localResponseId")
        body = {k: v for k, v in payload.items() if k != "localResponseId"}
        row = None
        if local_response_id is not None:
            row = await self.store.get_field_response(local_response_id, payload.get("id_campo"))
            if row is None:
                logger.debug(
                    "Field %s of response %s already delivered, dropping queued update",
                    payload.get("id_campo"),
                    local_response_id,
                )
                return
            body["valor"] = to_wire_value(row.value)

        if body.get("id_resposta") is None:
            response = None
            if local_response_id is not None:
                response = await self.store.get(FormResponse, local_response_id)
            if response is None or not response.server_response_id:
                raise UnavailableError("Response has no server id yet.")
            body["id_resposta"] = response.server_response_id
        await self.api.save_field(body)
        if row is not None:
            await self.store.delete_synced_field_response(row)

    async def _handle_submit_form(self, payload: dict) -> None:
        checklist_id = payload.get("checklistId")
        response_id = payload.get("id_resposta")
        local_response_id = payload.get("localResponseId")

        response = None
        if local_response_id is not None:
            response = await self.store.get(FormResponse, local_response_id)
        if response is not None:
            if response_id is None:
                response = await self._ensure_server_response(response)
                response_id = response.server_response_id
            checklist_id = response.server_checklist_id or checklist_id

        await self.api.submit_checklist(checklist_id, response_id)
        if response is not None:
            await self.store.update(FormResponse, response.id, {"sync_status": SyncStatus.SYNCED})

    async def _handle_upload_file(self, payload: dict) -> None:
        file = None
        if payload.get("fileQueueId") is not None:
            file = await self.store.get(FileQueueItem, payload["fileQueueId"])
        if file is None or file.status == FileStatus.UPLOADED:
            return
        await self._upload(file)

    # ==================== STEP 2: UNSYNCED FIELDS ====================

    async def reconcile_field_responses(self, report: SyncReport) -> None:
        fields = await self.store.get_unsynced_field_responses()
        # fields with a queued update are pushed by the queue, once
        queued = await self.store.get_queued_field_keys()

        groups: dict[int, list[FieldResponse]] = {}
        for field in fields:
            if (field.response_id, field.field_id) in queued:
                report.fields_skipped += 1
                continue
            groups.setdefault(field.response_id, []).append(field)

        for response_id, group in groups.items():
            response = await self.store.get(FormResponse, response_id)
            if response is None:
                logger.warning("Response %s not found, skipping %d field(s)", response_id, len(group))
                report.fields_skipped += len(group)
                continue

            try:
                response = await self._ensure_server_response(response)
            except ChecklistSyncError as exc:
                logger.warning("Could not resolve server id for response %s: %s", response_id, exc)
                for field in group:
                    await self.store.set_field_sync_status(field.id, SyncStatus.ERROR)
                report.fields_failed += len(group)
                continue

            for field in group:
                payload = {
                    "valor": to_wire_value(field.value),
                    "id_campo": field.server_field_id or field.field_id,
                    "id_resposta": response.server_response_id or field.server_response_id,
                    "web": 0,
                }
                try:
                    await self.api.save_field(payload)
                except ChecklistSyncError as exc:
                    logger.warning("Error syncing field %s: %s", field.id, exc)
                    await self.store.set_field_sync_status(field.id, SyncStatus.ERROR)
                    report.fields_failed += 1
                    continue
                await self.store.delete_synced_field_response(field)
                report.fields_synced += 1

    async def _ensure_server_response(
        self, response: FormResponse, user_id: int | None = None
    ) -> FormResponse:
        """Give a response its server ids, creating the remote records if needed."""
        if response.server_response_id:
            return response

        if not response.server_checklist_id:
            # Checklist was generated offline: create checklist and response in
            # one call. The remote API uses the returned id for both.
            if response.form_server_id is None:
                raise UnavailableError(
                    f"Response {response.id} has neither a form nor a server checklist."
                )
            if user_id is None:
                user_id = await self.preferences.get_user_id()
            if user_id is None:
                raise UnauthenticatedError("No current user to generate the checklist for.")
            data = await self.api.generate_checklist(response.form_server_id, user_id)
            server_id = extract_id(data)
            if server_id is None:
                raise RemoteRejectedError("Server did not return an id for the offline checklist.")
            server_checklist_id = server_id
        else:
            data = await self.api.create_response(response.server_checklist_id)
            server_id = extract_id(data)
            if server_id is None:
                raise RemoteRejectedError("Server did not return a response id.")
            server_checklist_id = None

        logger.info("Response %s resolved to server id %s", response.id, server_id)
        return await self.store.resolve_server_ids(
            response.id, server_id, server_checklist_id=server_checklist_id
        )

    # ==================== STEP 3: FILE QUEUE ====================

    async def process_file_queue(self, report: SyncReport) -> None:
        files = await self.store.get_pending_files()
        for file in files:
            try:
                await self._upload(file)
            except Exception as exc:
                logger.warning("Error uploading file %s: %s", file.id, exc)
                report.files_failed += 1
                continue
            report.files_uploaded += 1

    async def _upload(self, file: FileQueueItem) -> None:
        await self.store.set_file_status(file.id, FileStatus.UPLOADING)
        try:
            await self.api.upload_file(
                file.field_response_id, file.file_name, file.file_data, file.mime_type
            )
        except Exception as exc:
            await self.store.set_file_status(file.id, FileStatus.ERROR, str(exc) or repr(exc))
            raise
        await self.store.set_file_status(file.id, FileStatus.UPLOADED)
        self._remove_later(FileQueueItem, file.id)

    # ==================== CLEANUP ====================

    def _remove_later(self, model: type, record_id: int) -> None:
        """Delete a finished row after a grace delay so observers can see it."""
        task = asyncio.create_task(self._delete_after_grace(model, record_id))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def _delete_after_grace(self, model: type, record_id: int) -> None:
        await asyncio.sleep(self.completed_grace_seconds)
        await self.store.delete(model, record_id)

    async def wait_for_cleanup(self) -> None:
        """Wait until every scheduled deletion has run."""
        while self._cleanup_tasks:
            await asyncio.gather(*list(self._cleanup_tasks))

    async def aclose(self) -> None:
        for task in list(self._cleanup_tasks):
            task.cancel()
        await asyncio.gather(*list(self._cleanup_tasks), return_exceptions=True)
        self._cleanup_tasks.clear()
