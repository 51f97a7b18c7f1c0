import httpx
import pytest

from checklist_sync.core.errors import (
    RemoteRejectedError,
    UnauthenticatedError,
    UnavailableError,
)
from checklist_sync.models.checklist import FieldResponse, FormResponse
from checklist_sync.models.enums import FileStatus, QueueItemType, SyncStatus
from checklist_sync.models.queue import FileQueueItem

CHECKLIST_BODY = {
    "success": True,
    "data": {
        "titulo": "Inspeção diária",
        "campos": [{"id": 1, "tipo": "texto_simples"}, {"id": 2, "tipo": "foto"}],
        "resposta": {"id": 10},
        "respostasSalvas": {"1": "ok"},
    },
}


async def test_fetch_online_caches_checklist(store, server, gateway):
    server.route("GET", "/checklist/5", CHECKLIST_BODY)

    checklist = await gateway.fetch_checklist(5)

    assert not checklist.from_cache
    assert checklist.title == "Inspeção diária"
    assert checklist.response_id == 10
    assert checklist.saved_answers == {"1": "ok"}
    cached = await store.get_checklist_by_server_id(5)
    assert cached.sync_status == SyncStatus.SYNCED
    response = await store.get(FormResponse, checklist.local_response_id)
    assert response.server_response_id == 10


async def test_fetch_serves_cache_when_offline(server, gateway, network):
    server.route("GET", "/checklist/5", CHECKLIST_BODY)
    online = await gateway.fetch_checklist(5)

    network.online = False
    offline = await gateway.fetch_checklist(5)

    assert offline.from_cache
    assert offline.title == online.title
    assert offline.fields == online.fields
    assert offline.response_id == 10
    assert offline.local_response_id == online.local_response_id
    assert len(server.requests) == 1


async def test_fetch_falls_back_to_cache_on_network_failure(server, gateway):
    server.route("GET", "/checklist/5", CHECKLIST_BODY)
    await gateway.fetch_checklist(5)

    server.down = True
    checklist = await gateway.fetch_checklist(5)

    assert checklist.from_cache


async def test_fetch_uncached_while_offline_is_unavailable(server, gateway, network):
    network.online = False
    with pytest.raises(UnavailableError):
        await gateway.fetch_checklist(5)
    assert server.requests == []


async def test_fetch_rejection_without_cache_propagates(server, gateway):
    with pytest.raises(RemoteRejectedError) as exc_info:
        await gateway.fetch_checklist(404)
    assert exc_info.value.status_code == 404


async def test_expired_session_surfaces_as_unauthenticated(server, gateway):
    server.route("GET", "/checklist/5", lambda r: httpx.Response(401))
    with pytest.raises(UnauthenticatedError):
        await gateway.fetch_checklist(5)


async def test_operations_require_a_token(preferences, server, gateway, cached_response):
    await preferences.clear_session()
    with pytest.raises(UnauthenticatedError):
        await gateway.fetch_checklist(5)
    with pytest.raises(UnauthenticatedError):
        await gateway.save_field("x", 1, 10, cached_response)
    assert server.requests == []


async def test_fetch_offline_generated_checklist_from_cache(store, server, gateway):
    await store.save_form_definition(7, "Inspeção veicular", [{"id": 3}])
    server.down = True
    generated = await gateway.generate_checklist(7, 99)

    server.down = False
    checklist = await gateway.fetch_checklist(generated.checklist_id)

    assert checklist.from_cache
    assert checklist.response_id is None
    assert checklist.local_response_id == generated.local_response_id
    assert checklist.form_server_id == 7
    assert server.calls("GET", f"/checklist/{generated.checklist_id}") == []


async def test_prefetch_caches_in_progress_checklists(store, server, gateway):
    server.route("GET", "/checklist/5", CHECKLIST_BODY)
    server.route("GET", "/checklist/6", CHECKLIST_BODY)

    cached = await gateway.prefetch_in_progress([
        {"id": 5, "status": "em_andamento"},
        {"id": 6, "status": "finalizado"},
        {"id": 8, "status": "em_andamento"},
    ])

    assert cached == 1
    assert await store.get_checklist_by_server_id(5) is not None
    assert await store.get_checklist_by_server_id(6) is None
    assert len(server.calls("GET", "/checklist/6")) == 0


async def test_save_field_online_leaves_nothing_pending(store, server, gateway, cached_response):
    server.route("POST", "/salvar_campo", {"success": True})

    result = await gateway.save_field("ok", 1, 10, cached_response)

    assert not result.offline
    assert server.json_calls("POST", "/salvar_campo") == [
        {"valor": "ok", "id_campo": 1, "id_resposta": 10, "web": 0}
    ]
    assert await store.get_field_response(cached_response, 1) is None
    assert await store.get_pending_sync_items() == []


async def test_save_field_failure_is_queued_not_raised(store, server, gateway, cached_response):
    server.route("POST", "/salvar_campo", lambda r: httpx.Response(503))

    result = await gateway.save_field("ok", 1, 10, cached_response, form_server_id=7)

    assert result.success and result.offline and result.queued
    row = await store.get_field_response(cached_response, 1)
    assert row.value == {"kind": "text", "text": "ok"}
    [item] = await store.get_pending_sync_items()
    assert item.type == QueueItemType.UPDATE_FIELD
    assert item.priority == 5
    assert item.payload["id_formulario"] == 7
    assert item.payload["localResponseId"] == cached_response


async def test_ocr_answer_kept_locally_and_sent_as_image(
    store, server, gateway, network, cached_response
):
    server.route("POST", "/salvar_campo", {"success": True})
    value = {"imageDataUrl": "data:image/png;base64,AAA", "ocrTexto": "ABC1234"}

    network.online = False
    await gateway.save_field(value, 4, 10, cached_response, field_type="leitura_automatica")
    row = await store.get_field_response(cached_response, 4)
    assert row.value["kind"] == "ocr"
    assert row.value["text"] == "ABC1234"

    network.online = True
    await gateway.save_field(value, 4, 10, cached_response, field_type="leitura_automatica")
    [body] = server.json_calls("POST", "/salvar_campo")
    assert body["valor"] == "data:image/png;base64,AAA"


async def test_offline_submit_resolves_and_queues(store, server, gateway, network, cached_response):
    network.online = False

    result = await gateway.submit_form(5, 10, cached_response)

    assert result.success and result.offline
    response = await store.get(FormResponse, cached_response)
    assert response.is_complete
    assert response.sync_status == SyncStatus.LOCAL_ONLY
    [item] = await store.get_pending_sync_items()
    assert item.type == QueueItemType.SUBMIT_FORM
    assert item.priority == 1
    assert item.payload == {"checklistId": 5, "id_resposta": 10, "localResponseId": cached_response}
    assert server.requests == []


async def test_online_submit_marks_response_synced(store, server, gateway, cached_response):
    server.route("POST", "/checklist/5", {"success": True})

    result = await gateway.submit_form(5, 10, cached_response)

    assert not result.offline
    response = await store.get(FormResponse, cached_response)
    assert response.is_complete
    assert response.sync_status == SyncStatus.SYNCED


async def test_forms_cached_for_offline_generation(store, server, gateway, network):
    server.route("GET", "/gerar_checklist", {"data": {"formularios": [{"id": 7, "nome": "Inspeção"}]}})
    server.route("GET", "/formulario/7", {"data": {"campos": [{"id": 1}]}})

    online = await gateway.list_forms()
    network.online = False
    offline = await gateway.list_forms()

    assert online == offline == [{"id": 7, "nome": "Inspeção", "campos": [{"id": 1}]}]


async def test_forms_unavailable_without_cache(gateway, network):
    network.online = False
    with pytest.raises(UnavailableError):
        await gateway.list_forms()


async def test_generate_online_creates_local_copy(store, server, gateway):
    server.route("POST", "/gerar_checklist", {"data": {"id": 42, "titulo": "Inspeção veicular"}})

    result = await gateway.generate_checklist(7, 99)

    assert not result.offline
    assert result.checklist_id == 42
    response = await store.get(FormResponse, result.local_response_id)
    assert (response.server_checklist_id, response.server_response_id) == (42, 42)
    assert await store.get_pending_sync_items() == []


async def test_generate_offline_queues_creation(store, gateway, network):
    await store.save_form_definition(7, "Inspeção veicular", [{"id": 3}])
    network.online = False

    result = await gateway.generate_checklist(7, 99)

    assert result.offline
    assert result.title == "Inspeção veicular"
    [item] = await store.get_pending_sync_items()
    assert item.type == QueueItemType.CREATE_RESPONSE
    assert item.priority == 2
    assert item.payload == {
        "localChecklistId": result.local_checklist_id,
        "localResponseId": result.local_response_id,
        "idFormulario": 7,
        "idUsuario": 99,
    }


async def test_generate_offline_needs_cached_form(gateway, network):
    network.online = False
    with pytest.raises(UnavailableError):
        await gateway.generate_checklist(7, 99)


async def test_upload_failure_keeps_file_queued(store, server, gateway):
    server.down = True

    result = await gateway.upload_file(15, "placa.jpg", "AAAA", "image/jpeg")

    assert result.offline
    file = await store.get(FileQueueItem, result.file_queue_id)
    assert file.status == FileStatus.ERROR
    [item] = await store.get_pending_sync_items()
    assert item.type == QueueItemType.UPLOAD_FILE
    assert item.payload == {"fileQueueId": result.file_queue_id}


async def test_upload_success_drops_file(store, server, gateway):
    server.route("POST", "/upload_arquivo", {"success": True})

    result = await gateway.upload_file(15, "placa.jpg", "AAAA", "image/jpeg")

    assert not result.offline
    assert await store.get(FileQueueItem, result.file_queue_id) is None


async def test_save_field_without_local_response_is_rejected(store, server, gateway):
    server.route("POST", "/salvar_campo", {"success": True})

    with pytest.raises(ValueError):
        await gateway.save_field("ok", 1, 10, None)

    assert server.requests == []
    assert await store.get_pending_sync_items() == []
    assert await store.count(FieldResponse) == 0
