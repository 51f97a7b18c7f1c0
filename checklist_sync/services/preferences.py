"""Persisted session preferences: bearer token and current user."""

import logging

from checklist_sync.core.errors import UnauthenticatedError
from checklist_sync.services.local_store import LocalStore

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "current_user"


class PreferenceStore:
    def __init__(self, store: LocalStore):
        self.store = store

    async def get_token(self) -> str | None:
        return await self.store.get_preference(TOKEN_KEY)

    async def require_token(self) -> str:
        """Return the stored token or fail; every remote call needs one."""
        token = await self.get_token()
        if not token:
            raise UnauthenticatedError("Token not found. Please log in again.")
        return token

    async def get_user(self) -> dict | None:
        return await self.store.get_preference(USER_KEY)

    async def get_user_id(self) -> int | None:
        user = await self.get_user()
        if not user or user.get("id") is None:
            return None
        return int(user["id"])

    async def save_session(self, token: str, user: dict | None = None) -> None:
        await self.store.set_preference(TOKEN_KEY, token)
        if user is not None:
            await self.store.set_preference(USER_KEY, user)
        logger.info("Session stored for user %s", (user or {}).get("id"))

    async def clear_session(self) -> None:
        await self.store.delete_preference(TOKEN_KEY)
        await self.store.delete_preference(USER_KEY)
