"""Remote gateway: every checklist-related network call goes through here.

Each operation commits to the local store first and only then tries the
network, so a failed request never loses user input. Failed field saves and
submissions are queued and reported as an offline success.
"""

import logging
from typing import Any

from checklist_sync.config import settings
from checklist_sync.core.errors import (
    ChecklistSyncError,
    RemoteRejectedError,
    TransientError,
    UnavailableError,
)
from checklist_sync.models.checklist import Checklist, FormResponse
from checklist_sync.models.enums import FieldType, FileStatus, QueueItemType, SyncStatus
from checklist_sync.models.queue import FileQueueItem
from checklist_sync.schemas.checklist import (
    ChecklistDefinition,
    GenerateResult,
    SaveFieldResult,
    SubmitResult,
    UploadResult,
)
from checklist_sync.schemas.field_value import coerce_field_value
from checklist_sync.services.checklist_api import ChecklistApiClient, extract_id
from checklist_sync.services.connectivity import ConnectivityMonitor
from checklist_sync.services.local_store import LocalStore
from checklist_sync.services.preferences import PreferenceStore

logger = logging.getLogger(__name__)

IN_PROGRESS_STATUS = "em_andamento"


class RemoteGateway:
    def __init__(
        self,
        store: LocalStore,
        api: ChecklistApiClient,
        connectivity: ConnectivityMonitor,
        preferences: PreferenceStore,
    ):
        self.store = store
        self.api = api
        self.connectivity = connectivity
        self.preferences = preferences

    # ==================== CHECKLISTS ====================

    async def fetch_checklist(self, checklist_id: int) -> ChecklistDefinition:
        """Load a checklist definition, refreshing the cache when online.

        ``checklist_id`` is a server id, or the local id of a checklist that
        was generated offline (those are always served from cache).
        """
        await self.preferences.require_token()
        online = await self.connectivity.current_status()

        cached = await self.store.get_checklist_by_server_id(checklist_id)
        if cached is None:
            local = await self.store.get(Checklist, checklist_id)
            if local is not None and local.server_id is None:
                cached = local

        if online and (cached is None or cached.server_id is not None):
            try:
                data = await self.api.get_checklist(checklist_id)
            except (TransientError, RemoteRejectedError) as exc:
                logger.warning("Fetching checklist %s failed: %s", checklist_id, exc)
                if cached is None:
                    if isinstance(exc, RemoteRejectedError):
                        raise
                    raise UnavailableError(
                        "Checklist could not be loaded. Connect to the internet "
                        "or open it online first."
                    ) from exc
            else:
                return await self._cache_remote_checklist(checklist_id, data)

        if cached is None:
            raise UnavailableError(
                "This checklist is not available offline. Connect to the internet "
                "and open it first."
            )
        return await self._from_cache(cached)

    async def _cache_remote_checklist(
        self, server_id: int, data: dict[str, Any]
    ) -> ChecklistDefinition:
        body = data.get("data") or {}
        title = body.get("titulo") or ""
        fields = body.get("campos") or []
        existing = await self.store.get_checklist_by_server_id(server_id)
        record: dict[str, Any] = {
            "server_id": server_id,
            "title": title,
            "fields": fields,
            "sync_status": SyncStatus.SYNCED,
        }
        if existing is not None:
            record["id"] = existing.id
        local_id = await self.store.put(Checklist, record)

        server_response_id = (body.get("resposta") or {}).get("id")
        response = await self.store.get_active_form_response(local_id)
        if response is None:
            response_id = await self.store.create_form_response(
                local_id,
                server_checklist_id=server_id,
                server_response_id=server_response_id,
            )
        else:
            response_id = response.id
            if server_response_id and not response.server_response_id:
                await self.store.update(
                    FormResponse, response.id, {"server_response_id": server_response_id}
                )

        return ChecklistDefinition(
            id=server_id,
            title=title,
            fields=fields,
            response_id=server_response_id,
            saved_answers=body.get("respostasSalvas") or {},
            local_checklist_id=local_id,
            local_response_id=response_id,
        )

    async def _from_cache(self, cached: Checklist) -> ChecklistDefinition:
        response = await self.store.get_active_form_response(cached.id)
        if response is None:
            response_id = await self.store.create_form_response(
                cached.id, server_checklist_id=cached.server_id
            )
            response = await self.store.get(FormResponse, response_id)
        saved = await self.store.form_values(response.id)
        return ChecklistDefinition(
            id=cached.server_id or cached.id,
            title=cached.title,
            fields=cached.fields,
            # None until the server has assigned one; callers use local_response_id.
            response_id=response.server_response_id,
            saved_answers={str(k): v for k, v in saved.items()},
            form_server_id=response.form_server_id,
            local_checklist_id=cached.id,
            local_response_id=response.id,
            from_cache=True,
        )

    async def prefetch_in_progress(self, checklists: list[dict[str, Any]]) -> int:
        """Cache the definitions of in-progress server checklists for offline use."""
        await self.preferences.require_token()
        cached_count = 0
        for item in checklists:
            if item.get("status") != IN_PROGRESS_STATUS or item.get("id") is None:
                continue
            server_id = int(item["id"])
            if await self.store.get_checklist_by_server_id(server_id) is not None:
                continue
            try:
                data = await self.api.get_checklist(server_id)
            except ChecklistSyncError as exc:
                logger.warning("Could not cache checklist %s: %s", server_id, exc)
                continue
            await self._cache_remote_checklist(server_id, data)
            cached_count += 1
        logger.info("Cached %d in-progress checklists for offline use", cached_count)
        return cached_count

    # ==================== FIELDS ====================

    async def save_field(
        self,
        value: Any,
        field_id: int,
        response_server_id: int | None,
        local_response_id: int,
        form_server_id: int | None = None,
        field_type: FieldType | str | None = None,
    ) -> SaveFieldResult:
        """Commit one answer locally, then try to deliver it.

        ``local_response_id`` is required: the answer is stored under it
        before any request is made.
        """
        await self.preferences.require_token()
        if local_response_id is None:
            raise ValueError("local_response_id is required to save a field.")
        field_value = coerce_field_value(value, field_type)

        await self.store.save_field_response(
            local_response_id,
            field_id,
            field_value.model_dump(),
            server_field_id=field_id,
            server_response_id=response_server_id,
        )
        row = await self.store.get_field_response(local_response_id, field_id)

        payload: dict[str, Any] = {
            "valor": field_value.to_wire(),
            "id_campo": field_id,
            "id_resposta": response_server_id,
            "web": 0,
        }
        if form_server_id:
            payload["id_formulario"] = form_server_id

        if await self.connectivity.current_status() and response_server_id is not None:
            try:
                data = await self.api.save_field(payload)
            except ChecklistSyncError as exc:
                logger.warning("Saving field %s online failed, queuing: %s", field_id, exc)
            else:
                await self.store.delete_synced_field_response(row)
                return SaveFieldResult(data=data)

        await self.store.enqueue(
            QueueItemType.UPDATE_FIELD,
            {**payload, "localResponseId": local_response_id},
            priority=settings.PRIORITY_UPDATE_FIELD,
        )
        return SaveFieldResult(offline=True, queued=True)

    # ==================== SUBMISSION ====================

    async def submit_form(
        self,
        checklist_id: int,
        response_server_id: int | None,
        local_response_id: int | None,
    ) -> SubmitResult:
        """Mark a response complete; failures never block the user."""
        await self.preferences.require_token()
        if local_response_id is not None:
            await self.store.update(
                FormResponse,
                local_response_id,
                {"is_complete": True, "sync_status": SyncStatus.LOCAL_ONLY},
            )

        if await self.connectivity.current_status() and response_server_id is not None:
            try:
                data = await self.api.submit_checklist(checklist_id, response_server_id)
            except ChecklistSyncError as exc:
                logger.warning("Submitting checklist %s failed, queuing: %s", checklist_id, exc)
            else:
                if local_response_id is not None:
                    await self.store.update(
                        FormResponse, local_response_id, {"sync_status": SyncStatus.SYNCED}
                    )
                return SubmitResult(data=data)

        await self.store.enqueue(
            QueueItemType.SUBMIT_FORM,
            {
                "checklistId": checklist_id,
                "id_resposta": response_server_id,
                "localResponseId": local_response_id,
            },
            priority=settings.PRIORITY_SUBMIT_FORM,
        )
        return SubmitResult(offline=True)

    # ==================== FORMS & GENERATION ====================

    async def list_forms(self) -> list[dict[str, Any]]:
        """Forms available for generating checklists, cached for offline use."""
        await self.preferences.require_token()
        if await self.connectivity.current_status():
            try:
                forms = await self.api.list_forms()
                for form in forms:
                    fields: list = []
                    try:
                        detail = await self.api.get_form(form["id"])
                        fields = (detail.get("data") or {}).get("campos") or detail.get("campos") or []
                    except RemoteRejectedError as exc:
                        logger.warning("No field list for form %s: %s", form["id"], exc)
                    await self.store.save_form_definition(form["id"], form.get("nome", ""), fields)
                    form["campos"] = fields
                return forms
            except TransientError as exc:
                logger.warning("Listing forms failed, using cache: %s", exc)

        cached = await self.store.list_form_definitions()
        if not cached:
            raise UnavailableError(
                "No forms are available offline. Connect to the internet first."
            )
        return [{"id": f.server_id, "nome": f.name, "campos": f.fields} for f in cached]

    async def generate_checklist(self, form_id: int, user_id: int) -> GenerateResult:
        """Create a checklist for ``form_id``, locally when the server is unreachable."""
        await self.preferences.require_token()
        form = await self.store.get_form_definition_by_server_id(form_id)

        if await self.connectivity.current_status():
            try:
                data = await self.api.generate_checklist(form_id, user_id)
            except TransientError as exc:
                logger.warning("Generating checklist online failed, creating offline: %s", exc)
            else:
                server_id = extract_id(data)
                if server_id is None:
                    raise RemoteRejectedError("Server did not return a checklist id.")
                title = (data.get("data") or {}).get("titulo") or (form.name if form else "")
                local_checklist_id = await self.store.save_checklist(
                    title,
                    form.fields if form else [],
                    server_id=server_id,
                    sync_status=SyncStatus.SYNCED,
                )
                local_response_id = await self.store.create_form_response(
                    local_checklist_id,
                    server_checklist_id=server_id,
                    server_response_id=server_id,
                    form_server_id=form_id,
                )
                return GenerateResult(
                    checklist_id=server_id,
                    title=title,
                    local_checklist_id=local_checklist_id,
                    local_response_id=local_response_id,
                )

        if form is None:
            raise UnavailableError(
                "Form not found in the offline cache. Connect to the internet first."
            )

        local_checklist_id = await self.store.save_checklist(form.name, form.fields)
        local_response_id = await self.store.create_form_response(
            local_checklist_id, form_server_id=form_id
        )
        await self.store.enqueue(
            QueueItemType.CREATE_RESPONSE,
            {
                "localChecklistId": local_checklist_id,
                "localResponseId": local_response_id,
                "idFormulario": form_id,
                "idUsuario": user_id,
            },
            priority=settings.PRIORITY_CREATE_RESPONSE,
        )
        logger.info(
            "Generated checklist %s offline from form %s", local_checklist_id, form_id
        )
        return GenerateResult(
            offline=True,
            checklist_id=local_checklist_id,
            title=form.name,
            local_checklist_id=local_checklist_id,
            local_response_id=local_response_id,
        )

    # ==================== FILES ====================

    async def upload_file(
        self, field_response_id: int, file_name: str, file_data: str, mime_type: str
    ) -> UploadResult:
        """Keep a capture in the file queue and try to upload it right away."""
        await self.preferences.require_token()
        file_id = await self.store.enqueue_file(field_response_id, file_name, file_data, mime_type)
        if not await self.connectivity.current_status():
            return UploadResult(offline=True, file_queue_id=file_id)

        await self.store.set_file_status(file_id, FileStatus.UPLOADING)
        try:
            await self.api.upload_file(field_response_id, file_name, file_data, mime_type)
        except ChecklistSyncError as exc:
            logger.warning("Uploading %s failed, queuing: %s", file_name, exc)
            await self.store.set_file_status(file_id, FileStatus.ERROR, str(exc))
            await self.store.enqueue(
                QueueItemType.UPLOAD_FILE,
                {"fileQueueId": file_id},
                priority=settings.PRIORITY_UPLOAD_FILE,
            )
            return UploadResult(offline=True, file_queue_id=file_id)

        await self.store.delete(FileQueueItem, file_id)
        return UploadResult(file_queue_id=file_id)
