"""Durable sync and file upload queues."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from checklist_sync.config import settings
from checklist_sync.models.base import BaseModel
from checklist_sync.models.enums import FileStatus, QueueItemStatus, QueueItemType


class SyncQueueItem(BaseModel):
    __tablename__ = "sync_queue"

    type: Mapped[QueueItemType] = mapped_column(nullable=False)
    payload: Mapped[Any] = mapped_column(JSON, nullable=False, default=dict)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_retries: Mapped[int] = mapped_column(
        Integer, default=lambda: settings.SYNC_MAX_RETRIES, nullable=False
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[QueueItemStatus] = mapped_column(
        nullable=False, default=QueueItemStatus.PENDING
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_sync_queue_type", "type"),
        Index("ix_sync_queue_status", "status"),
        Index("ix_sync_queue_priority", "priority"),
        Index("ix_sync_queue_created", "created_at"),
    )


class FileQueueItem(BaseModel):
    """Binary payload (photo, signature) waiting for upload."""

    __tablename__ = "file_queue"

    field_response_id: Mapped[int] = mapped_column(Integer, nullable=False)
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_data: Mapped[str] = mapped_column(Text, nullable=False)  # base64
    mime_type: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[FileStatus] = mapped_column(
        nullable=False, default=FileStatus.PENDING
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_file_queue_field_response", "field_response_id"),
        Index("ix_file_queue_status", "status"),
        Index("ix_file_queue_created", "created_at"),
    )
