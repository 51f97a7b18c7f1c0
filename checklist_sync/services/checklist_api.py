"""Async HTTP client for the remote checklist API."""

import base64
import logging
from typing import Any, Awaitable, Callable

import httpx

from checklist_sync.config import settings
from checklist_sync.core.errors import (
    RemoteRejectedError,
    TransientError,
    UnauthenticatedError,
)

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str]]


class ChecklistApiClient:
    """Thin async wrapper around the checklist REST API.

    Transport failures and timeouts surface as TransientError, 401 as
    UnauthenticatedError and any other error status as RemoteRejectedError.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        timeout: float = settings.API_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        )

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        """Make an authenticated request and decode the JSON body."""
        token = await self.token_provider()
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {token}",
            "X-Requested-With": "XMLHttpRequest",
        }
        try:
            async with self._client() as client:
                resp = await client.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as exc:
            logger.debug("%s %s failed: %s", method, path, exc)
            raise TransientError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code == 401:
            raise UnauthenticatedError("Session expired. Please log in again.")
        if resp.is_error:
            raise RemoteRejectedError(
                f"HTTP {resp.status_code}: {_error_message(resp)}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError:
            return {}

    async def get_checklist(self, checklist_id: int) -> dict[str, Any]:
        """Checklist definition with the current response and saved answers."""
        return await self._request("GET", f"/checklist/{checklist_id}")

    async def save_field(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Save one answer: ``{valor, id_campo, id_resposta, web, id_formulario?}``."""
        return await self._request("POST", "/salvar_campo", json=payload)

    async def submit_checklist(
        self, checklist_id: int, response_id: int | None
    ) -> dict[str, Any]:
        return await self._request(
            "POST", f"/checklist/{checklist_id}", json={"id_resposta": response_id}
        )

    async def generate_checklist(self, form_id: int, user_id: int) -> dict[str, Any]:
        """Create a checklist+response pair; the returned id names both."""
        return await self._request(
            "POST",
            "/gerar_checklist",
            json={"id_formulario": form_id, "id_usuario": user_id},
        )

    async def create_response(self, checklist_id: int) -> dict[str, Any]:
        """Open a new response on a checklist the server already knows."""
        return await self._request(
            "POST", "/gerar_checklist", json={"id_checklist": checklist_id}
        )

    async def list_forms(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/gerar_checklist")
        return (data.get("data") or {}).get("formularios") or []

    async def get_form(self, form_id: int) -> dict[str, Any]:
        return await self._request("GET", f"/formulario/{form_id}")

    async def upload_file(
        self,
        field_response_id: int,
        file_name: str,
        file_data: str,
        mime_type: str,
    ) -> dict[str, Any]:
        """Upload a base64 payload as multipart form data."""
        if file_data.startswith("data:"):
            file_data = file_data.split(",", 1)[-1]
        content = base64.b64decode(file_data)
        return await self._request(
            "POST",
            settings.FILE_UPLOAD_PATH,
            data={"id_campo_resposta": str(field_response_id)},
            files={"arquivo": (file_name, content, mime_type)},
        )


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return resp.text[:200]


def extract_id(data: dict[str, Any] | None) -> int | None:
    """Pull ``data.id`` out of an API envelope, if it is usable."""
    value = ((data or {}).get("data") or {}).get("id")
    if value in (None, "", 0):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
