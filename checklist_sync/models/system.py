"""Persisted preferences (auth token, current user)."""

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from checklist_sync.models.base import BaseModel


class Preference(BaseModel):
    __tablename__ = "preference"

    key: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
