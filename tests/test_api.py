import httpx
import pytest

from checklist_sync.config import Settings
from checklist_sync.main import app
from checklist_sync.models.enums import QueueItemStatus, QueueItemType
from checklist_sync.shell import create_services


@pytest.fixture
async def services(tmp_path, server, network):
    config = Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        API_URL="http://api.test",
        COMPLETED_ITEM_GRACE_SECONDS=0,
    )
    services = create_services(
        config, transport=httpx.MockTransport(server), status_providers=[network.probe]
    )
    await services.store.create_schema()
    app.state.services = services
    yield services
    del app.state.services
    await services.sync_manager.aclose()
    await services.store.engine.dispose()


@pytest.fixture
async def client(services):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://local") as client:
        yield client


@pytest.fixture
async def session(client):
    resp = await client.put(
        "/api/v1/session", json={"token": "test-token", "user": {"id": 99}}
    )
    assert resp.status_code == 200


async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["store"]["tables"]["sync_queue"] == 0


async def test_missing_session_is_401(client):
    resp = await client.get("/api/v1/checklists/5")
    assert resp.status_code == 401
    assert resp.json() == {
        "success": False,
        "error": {"code": "UNAUTHENTICATED", "message": "Token not found. Please log in again."},
    }


async def test_uncached_checklist_offline_is_503(client, session, network):
    network.online = False
    resp = await client.get("/api/v1/checklists/5")
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "UNAVAILABLE"


async def test_remote_rejection_is_502(client, session):
    resp = await client.get("/api/v1/checklists/5")
    assert resp.status_code == 502
    assert resp.json()["error"]["code"] == "REMOTE_REJECTED"


async def test_fetch_checklist(client, session, server):
    server.route("GET", "/checklist/5", {"data": {"titulo": "Inspeção", "campos": [], "resposta": {"id": 10}}})
    resp = await client.get("/api/v1/checklists/5")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["title"] == "Inspeção"
    assert data["response_id"] == 10


async def test_offline_save_and_status(client, session, services, network):
    checklist_id = await services.store.save_checklist("Inspeção", [], server_id=5)
    response_id = await services.store.create_form_response(
        checklist_id, server_checklist_id=5, server_response_id=10
    )
    network.online = False

    resp = await client.post(
        "/api/v1/checklists/5/fields",
        json={"value": "ok", "field_id": 1, "response_server_id": 10, "local_response_id": response_id},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["offline"] is True

    resp = await client.get("/api/v1/sync/status")
    status = resp.json()["data"]
    assert status["queue"]["pending"] == 1
    assert status["unsynced_fields"] == 1
    assert status["has_pending_items"] is True


async def test_run_sync(client, session, services, server):
    server.route("POST", "/checklist/5", {"success": True})
    await services.store.enqueue(
        QueueItemType.SUBMIT_FORM, {"checklistId": 5, "id_resposta": 10}, priority=1
    )

    resp = await client.post("/api/v1/sync/run")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["started"] is True
    assert data["report"]["outcome"] == "success"


async def test_failed_items_listed_and_reset(client, session, services):
    item_id = await services.store.enqueue(QueueItemType.SUBMIT_FORM, {"checklistId": 5}, priority=1)
    await services.store.set_sync_item_status(item_id, QueueItemStatus.FAILED, "HTTP 500")

    resp = await client.get("/api/v1/sync/failed")
    [failed] = resp.json()["data"]
    assert failed["id"] == item_id
    assert failed["type"] == "SUBMIT_FORM"
    assert failed["error"] == "HTTP 500"

    resp = await client.post("/api/v1/sync/retry-failed")

    assert resp.json()["data"]["reset_items"] == 1


async def test_connectivity_report(client, services):
    resp = await client.post("/api/v1/sync/connectivity", json={"online": False})
    assert resp.json()["data"] == {"online": False}
    assert not services.connectivity.is_online


async def test_validation_error_envelope(client, session):
    resp = await client.post("/api/v1/checklists/generate", json={"form_id": "abc"})
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["error"]["details"]


async def test_clear_session(client, session, services):
    resp = await client.delete("/api/v1/session")
    assert resp.status_code == 204
    assert await services.preferences.get_token() is None


async def test_list_cached_checklists(client, services):
    await services.store.save_checklist("Inspeção A", [], server_id=5)
    await services.store.save_checklist("Inspeção B", [])

    resp = await client.get("/api/v1/checklists")

    data = resp.json()["data"]
    assert {c["title"] for c in data} == {"Inspeção A", "Inspeção B"}
    assert {c["server_id"] for c in data} == {5, None}


async def test_unsupported_answer_is_400(client, session, services):
    checklist_id = await services.store.save_checklist("Inspeção", [], server_id=5)
    response_id = await services.store.create_form_response(
        checklist_id, server_checklist_id=5, server_response_id=10
    )

    resp = await client.post(
        "/api/v1/checklists/5/fields",
        json={"value": {"unexpected": True}, "field_id": 1, "local_response_id": response_id},
    )

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_ANSWER"
    assert await services.store.get_field_response(response_id, 1) is None


async def test_save_field_requires_local_response_id(client, session):
    resp = await client.post(
        "/api/v1/checklists/5/fields", json={"value": "ok", "field_id": 1}
    )

    assert resp.status_code == 422
    [detail] = resp.json()["error"]["details"]
    assert detail["field"] == "local_response_id"
