"""Async engine and session factory for the on-device store."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from checklist_sync.config import settings


class Base(DeclarativeBase):
    pass


def create_engine(url: str | None = None) -> AsyncEngine:
    return create_async_engine(url or settings.DATABASE_URL, echo=False)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Rows are handed to callers after commit, so keep their attributes loaded.
    return async_sessionmaker(bind, expire_on_commit=False)
