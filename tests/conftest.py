"""Shared pytest fixtures: a throwaway store, a scripted remote API and a
connectivity switch the tests flip by hand."""

import inspect
import json

import httpx
import pytest

from checklist_sync.database import create_engine
from checklist_sync.services.checklist_api import ChecklistApiClient
from checklist_sync.services.connectivity import ConnectivityMonitor
from checklist_sync.services.gateway import RemoteGateway
from checklist_sync.services.local_store import LocalStore
from checklist_sync.services.preferences import PreferenceStore
from checklist_sync.services.sync import SyncManager

API_URL = "http://api.test"
TOKEN = "test-token"
USER = {"id": 99, "nome": "Inspector"}


class MockServer:
    """Routes (method, path) to handlers and records every request.

    A handler returns an ``httpx.Response`` or a JSON-able body (sent as 200).
    With ``down`` set every request fails like a dropped connection.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], object] = {}
        self.requests: list[httpx.Request] = []
        self.down = False

    def route(self, method: str, path: str, handler) -> None:
        if not callable(handler):
            body = handler
            handler = lambda request: body  # noqa: E731
        self.routes[(method, path)] = handler

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def json_calls(self, method: str, path: str) -> list[dict]:
        return [json.loads(r.content) for r in self.calls(method, path)]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("Network is unreachable", request=request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": "Not found"})
        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)


class NetworkSwitch:
    """Status source whose answer the test controls."""

    def __init__(self, online: bool = True):
        self.online = online

    async def probe(self) -> bool:
        return self.online


@pytest.fixture
async def store(tmp_path):
    store = LocalStore(create_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}"))
    await store.create_schema()
    yield store
    await store.engine.dispose()


@pytest.fixture
async def preferences(store):
    preferences = PreferenceStore(store)
    await preferences.save_session(TOKEN, USER)
    return preferences


@pytest.fixture
def server():
    return MockServer()


@pytest.fixture
def api(server, preferences):
    return ChecklistApiClient(
        API_URL,
        token_provider=preferences.require_token,
        transport=httpx.MockTransport(server),
    )


@pytest.fixture
def network():
    return NetworkSwitch()


@pytest.fixture
def connectivity(network):
    return ConnectivityMonitor([network.probe], settle_delay=0)


@pytest.fixture
def gateway(store, api, connectivity, preferences):
    return RemoteGateway(store, api, connectivity, preferences)


@pytest.fixture
async def sync_manager(store, api, preferences):
    manager = SyncManager(store, api, preferences, completed_grace_seconds=0)
    yield manager
    await manager.aclose()


@pytest.fixture
async def cached_response(store):
    """A checklist already known to the server, with its open response."""
    checklist_id = await store.save_checklist("Inspeção diária", [{"id": 1}], server_id=5)
    return await store.create_form_response(
        checklist_id, server_checklist_id=5, server_response_id=10
    )
