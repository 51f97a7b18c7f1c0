"""Checklist, form definition, form response and field response tables."""

from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from checklist_sync.models.base import BaseModel
from checklist_sync.models.enums import SyncStatus


class Checklist(BaseModel):
    """Cached copy of a checklist's form definition."""

    __tablename__ = "checklist"

    server_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    fields: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    sync_status: Mapped[SyncStatus] = mapped_column(
        nullable=False, default=SyncStatus.LOCAL_ONLY
    )

    __table_args__ = (
        Index("ix_checklist_server_id", "server_id"),
        Index("ix_checklist_sync_status", "sync_status"),
        Index("ix_checklist_updated", "updated_at"),
    )


class FormDefinition(BaseModel):
    """Form template cached for generating checklists offline."""

    __tablename__ = "form_definition"

    server_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    fields: Mapped[list] = mapped_column(JSON, nullable=False, default=list)


class FormResponse(BaseModel):
    __tablename__ = "form_response"

    checklist_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("checklist.id"), nullable=False
    )
    server_checklist_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    server_response_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Needed to create the checklist remotely when it was generated offline.
    form_server_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Legacy value bag, superseded by field_response rows.
    form_values: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sync_status: Mapped[SyncStatus] = mapped_column(
        nullable=False, default=SyncStatus.LOCAL_ONLY
    )

    __table_args__ = (
        Index("ix_form_response_checklist", "checklist_id"),
        Index("ix_form_response_server_checklist", "server_checklist_id"),
        Index("ix_form_response_server_response", "server_response_id"),
        Index("ix_form_response_sync_status", "sync_status"),
    )


class FieldResponse(BaseModel):
    """Answer to one field. The row only exists while it is unsynced."""

    __tablename__ = "field_response"

    response_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("form_response.id"), nullable=False
    )
    field_id: Mapped[int] = mapped_column(Integer, nullable=False)
    server_field_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    server_response_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    sync_status: Mapped[SyncStatus] = mapped_column(
        nullable=False, default=SyncStatus.LOCAL_ONLY
    )

    __table_args__ = (
        UniqueConstraint("response_id", "field_id", name="uq_field_response_field"),
        Index("ix_field_response_response", "response_id"),
        Index("ix_field_response_server_response", "server_response_id"),
        Index("ix_field_response_field", "field_id"),
        Index("ix_field_response_sync_status", "sync_status"),
    )
