"""Sync statistics, run reports and observer snapshots."""

from datetime import datetime

from pydantic import BaseModel, Field

from checklist_sync.models.enums import SyncOutcome


class QueueStats(BaseModel):
    pending: int = 0
    processing: int = 0
    failed: int = 0
    completed: int = 0
    total: int = 0


class FileQueueStats(BaseModel):
    pending: int = 0
    uploading: int = 0
    uploaded: int = 0
    error: int = 0
    total: int = 0


class SyncReport(BaseModel):
    """Summary of one sync_all run."""
    queue_completed: int = 0
    queue_retried: int = 0
    queue_failed: int = 0
    fields_synced: int = 0
    fields_failed: int = 0
    fields_skipped: int = 0
    files_uploaded: int = 0
    files_failed: int = 0
    stats: QueueStats = Field(default_factory=QueueStats)
    outcome: SyncOutcome = SyncOutcome.SUCCESS
    finished_at: datetime | None = None


class SyncEvent(BaseModel):
    """Sent to Sync Manager subscribers when a run starts or ends."""
    is_syncing: bool
    report: SyncReport | None = None


class SyncStatusSnapshot(BaseModel):
    is_syncing: bool = False
    queue: QueueStats = Field(default_factory=QueueStats)
    files: FileQueueStats = Field(default_factory=FileQueueStats)
    unsynced_fields: int = 0
    has_pending_items: bool = False
    has_errors: bool = False


class ConnectivityUpdate(BaseModel):
    online: bool
