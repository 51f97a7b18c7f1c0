"""On-device store for checklists, answers and the sync/file queues.

Every call runs in its own short transaction. Nothing here talks to the
network. Returned rows are detached copies; change them through ``update``.
"""

import logging
from typing import Any, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncEngine

from checklist_sync.config import settings
from checklist_sync.core.errors import NotFoundError
from checklist_sync.database import Base, create_session_factory
from checklist_sync.models.base import BaseModel, utcnow
from checklist_sync.models.checklist import (
    Checklist,
    FieldResponse,
    FormDefinition,
    FormResponse,
)
from checklist_sync.models.enums import (
    FileStatus,
    QueueItemStatus,
    QueueItemType,
    SyncStatus,
)
from checklist_sync.models.queue import FileQueueItem, SyncQueueItem
from checklist_sync.models.system import Preference
from checklist_sync.schemas.sync import FileQueueStats, QueueStats

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

UNSYNCED_STATUSES = (SyncStatus.LOCAL_ONLY, SyncStatus.ERROR)

ALL_TABLES: tuple[type[BaseModel], ...] = (
    Checklist,
    FormDefinition,
    FormResponse,
    FieldResponse,
    SyncQueueItem,
    FileQueueItem,
)


class LocalStore:
    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = create_session_factory(engine)

    async def create_schema(self) -> None:
        """Create missing tables. Safe to call on every start."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    # ==================== GENERIC ====================

    async def put(self, model: type[ModelT], record: dict[str, Any]) -> int:
        """Insert a row, or merge into it when ``record`` carries an existing id."""
        async with self.session_factory() as session:
            row = None
            if record.get("id") is not None:
                row = await session.get(model, record["id"])
            if row is None:
                row = model(**record)
                session.add(row)
            else:
                for key, value in record.items():
                    setattr(row, key, value)
                row.updated_at = utcnow()
            await session.commit()
            return row.id

    async def get(self, model: type[ModelT], record_id: int) -> ModelT | None:
        async with self.session_factory() as session:
            return await session.get(model, record_id)

    async def update(
        self, model: type[ModelT], record_id: int, partial: dict[str, Any]
    ) -> ModelT:
        """Merge ``partial`` into a row and re-stamp its last-modified time."""
        async with self.session_factory() as session:
            row = await session.get(model, record_id)
            if row is None:
                raise NotFoundError(f"{model.__tablename__} {record_id} not found.")
            for key, value in partial.items():
                setattr(row, key, value)
            row.updated_at = utcnow()
            await session.commit()
            return row

    async def query_by(self, model: type[ModelT], field: str, value: Any) -> list[ModelT]:
        """All rows where ``field`` equals ``value``, in insertion order."""
        if field not in model.__table__.columns:
            raise ValueError(f"{model.__tablename__} has no column '{field}'.")
        column = getattr(model, field)
        query = select(model).order_by(model.id)
        query = query.where(column.is_(None) if value is None else column == value)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def delete(self, model: type[ModelT], record_id: int) -> None:
        """Delete a row. Deleting an absent id is a no-op."""
        async with self.session_factory() as session:
            await session.execute(delete(model).where(model.id == record_id))
            await session.commit()

    async def count(self, model: type[ModelT]) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(model))
            return result.scalar_one()

    async def clear_all(self) -> None:
        """Wipe every data table. Preferences (the session) are kept."""
        async with self.session_factory() as session:
            for model in ALL_TABLES:
                await session.execute(delete(model))
            await session.commit()

    async def get_database_stats(self) -> dict[str, int]:
        return {model.__tablename__: await self.count(model) for model in ALL_TABLES}

    # ==================== CHECKLISTS ====================

    async def save_checklist(
        self,
        title: str,
        fields: list,
        server_id: int | None = None,
        sync_status: SyncStatus = SyncStatus.LOCAL_ONLY,
    ) -> int:
        return await self.put(Checklist, {
            "server_id": server_id,
            "title": title,
            "fields": fields,
            "sync_status": sync_status,
        })

    async def get_checklist_by_server_id(self, server_id: int) -> Checklist | None:
        rows = await self.query_by(Checklist, "server_id", server_id)
        return rows[0] if rows else None

    async def list_checklists(self) -> list[Checklist]:
        """All cached checklists, most recently modified first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Checklist).order_by(Checklist.updated_at.desc(), Checklist.id.desc())
            )
            return list(result.scalars().all())

    # ==================== FORM DEFINITIONS ====================

    async def save_form_definition(self, server_id: int, name: str, fields: list) -> int:
        """Insert or refresh the cached template for ``server_id``."""
        existing = await self.get_form_definition_by_server_id(server_id)
        record = {"server_id": server_id, "name": name, "fields": fields}
        if existing is not None:
            record["id"] = existing.id
        return await self.put(FormDefinition, record)

    async def get_form_definition_by_server_id(
        self, server_id: int
    ) -> FormDefinition | None:
        rows = await self.query_by(FormDefinition, "server_id", server_id)
        return rows[0] if rows else None

    async def list_form_definitions(self) -> list[FormDefinition]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(FormDefinition).order_by(FormDefinition.name)
            )
            return list(result.scalars().all())

    # ==================== FORM RESPONSES ====================

    async def create_form_response(
        self,
        checklist_id: int,
        server_checklist_id: int | None = None,
        server_response_id: int | None = None,
        form_server_id: int | None = None,
    ) -> int:
        return await self.put(FormResponse, {
            "checklist_id": checklist_id,
            "server_checklist_id": server_checklist_id,
            "server_response_id": server_response_id,
            "form_server_id": form_server_id,
            "form_values": {},
            "is_complete": False,
            "sync_status": SyncStatus.LOCAL_ONLY,
        })

    async def get_active_form_response(self, checklist_id: int) -> FormResponse | None:
        """The response the UI works on: the most recently created one."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(FormResponse)
                .where(FormResponse.checklist_id == checklist_id)
                .order_by(FormResponse.created_at.desc(), FormResponse.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def resolve_server_ids(
        self, response_id: int, server_response_id: int, server_checklist_id: int | None = None
    ) -> FormResponse:
        """Record the server ids of a response in one transaction.

        With ``server_checklist_id`` the owning checklist is marked synced under
        that id as well, so the two rows never disagree after a crash.
        """
        async with self.session_factory() as session:
            response = await session.get(FormResponse, response_id)
            if response is None:
                raise NotFoundError(f"form_responses {response_id} not found.")
            now = utcnow()
            response.server_response_id = server_response_id
            response.updated_at = now
            if server_checklist_id is not None:
                response.server_checklist_id = server_checklist_id
                checklist = await session.get(Checklist, response.checklist_id)
                if checklist is None:
                    logger.warning(
                        "Checklist %s of response %s is gone, only the response is updated",
                        response.checklist_id,
                        response_id,
                    )
                else:
                    checklist.server_id = server_checklist_id
                    checklist.sync_status = SyncStatus.SYNCED
                    checklist.updated_at = now
            await session.commit()
            return response

    async def delete_form_response_and_fields(self, response_id: int) -> None:
        async with self.session_factory() as session:
            await session.execute(
                delete(FieldResponse).where(FieldResponse.response_id == response_id)
            )
            await session.execute(delete(FormResponse).where(FormResponse.id == response_id))
            await session.commit()

    # ==================== FIELD RESPONSES ====================

    async def save_field_response(
        self,
        response_id: int,
        field_id: int,
        value: Any,
        server_field_id: int | None = None,
        server_response_id: int | None = None,
    ) -> int:
        """Upsert the answer for (response_id, field_id).

        A second write to the same field updates the existing row and puts it
        back in the unsynced state.
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(FieldResponse).where(
                    FieldResponse.response_id == response_id,
                    FieldResponse.field_id == field_id,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = FieldResponse(
                    response_id=response_id,
                    field_id=field_id,
                    server_field_id=server_field_id,
                    server_response_id=server_response_id,
                    value=value,
                    sync_status=SyncStatus.LOCAL_ONLY,
                )
                session.add(row)
            else:
                row.value = value
                row.sync_status = SyncStatus.LOCAL_ONLY
                if server_field_id is not None:
                    row.server_field_id = server_field_id
                if server_response_id is not None:
                    row.server_response_id = server_response_id
                row.updated_at = utcnow()
            await session.commit()
            return row.id

    async def get_field_responses(self, response_id: int) -> list[FieldResponse]:
        return await self.query_by(FieldResponse, "response_id", response_id)

    async def get_field_response(
        self, response_id: int, field_id: int
    ) -> FieldResponse | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(FieldResponse).where(
                    FieldResponse.response_id == response_id,
                    FieldResponse.field_id == field_id,
                )
            )
            return result.scalar_one_or_none()

    async def set_field_sync_status(self, field_response_id: int, status: SyncStatus) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(FieldResponse)
                .where(FieldResponse.id == field_response_id)
                .values(sync_status=status, updated_at=utcnow())
            )
            await session.commit()

    async def get_unsynced_field_responses(self) -> list[FieldResponse]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(FieldResponse)
                .where(FieldResponse.sync_status.in_(UNSYNCED_STATUSES))
                .order_by(FieldResponse.id)
            )
            return list(result.scalars().all())

    async def delete_synced_field_response(self, field: FieldResponse) -> bool:
        """Delete a pushed answer unless it was edited while being pushed.

        Row absence is the only record that a field reached the server.
        Returns False when a newer value arrived and the row was kept.
        """
        async with self.session_factory() as session:
            result = await session.execute(
                delete(FieldResponse).where(
                    FieldResponse.id == field.id,
                    FieldResponse.updated_at == field.updated_at,
                )
            )
            await session.commit()
            return result.rowcount > 0

    async def form_values(self, response_id: int) -> dict[int, Any]:
        """fieldId -> stored value for every pending answer of a response."""
        fields = await self.get_field_responses(response_id)
        return {f.field_id: f.value for f in fields}

    # ==================== SYNC QUEUE ====================

    async def enqueue(
        self,
        item_type: QueueItemType,
        payload: dict,
        priority: int | None = None,
        max_retries: int | None = None,
    ) -> int:
        item_id = await self.put(SyncQueueItem, {
            "type": item_type,
            "payload": payload,
            "priority": settings.PRIORITY_DEFAULT if priority is None else priority,
            "max_retries": settings.SYNC_MAX_RETRIES if max_retries is None else max_retries,
            "retry_count": 0,
            "status": QueueItemStatus.PENDING,
        })
        logger.debug("Queued %s as sync item %s", item_type.value, item_id)
        return item_id

    async def get_pending_sync_items(self) -> list[SyncQueueItem]:
        """Pending items by ascending priority, then insertion order."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(SyncQueueItem)
                .where(SyncQueueItem.status == QueueItemStatus.PENDING)
                .order_by(SyncQueueItem.priority, SyncQueueItem.id)
            )
            return list(result.scalars().all())

    async def get_queued_field_keys(self) -> set[tuple[int, int]]:
        """(localResponseId, fieldId) of every field update still waiting in the queue."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(SyncQueueItem.payload).where(
                    SyncQueueItem.type == QueueItemType.UPDATE_FIELD,
                    SyncQueueItem.status.in_(
                        (QueueItemStatus.PENDING, QueueItemStatus.PROCESSING)
                    ),
                )
            )
            payloads = result.scalars().all()
        return {
            (p["localResponseId"], p["id_campo"])
            for p in payloads
            if p and p.get("localResponseId") is not None and p.get("id_campo") is not None
        }

    async def reset_interrupted_sync_items(self) -> int:
        """Put items left processing by an interrupted run back to pending."""
        async with self.session_factory() as session:
            result = await session.execute(
                update(SyncQueueItem)
                .where(SyncQueueItem.status == QueueItemStatus.PROCESSING)
                .values(status=QueueItemStatus.PENDING, updated_at=utcnow())
            )
            await session.commit()
        if result.rowcount:
            logger.info("Reset %d interrupted sync item(s) to pending", result.rowcount)
        return result.rowcount

    async def get_failed_sync_items(self) -> list[SyncQueueItem]:
        return await self.query_by(SyncQueueItem, "status", QueueItemStatus.FAILED)

    async def set_sync_item_status(
        self, item_id: int, status: QueueItemStatus, error: str | None = None
    ) -> None:
        values: dict[str, Any] = {"status": status, "last_attempt_at": utcnow()}
        if error:
            values["error"] = error
        async with self.session_factory() as session:
            await session.execute(
                update(SyncQueueItem).where(SyncQueueItem.id == item_id).values(**values)
            )
            await session.commit()

    async def record_sync_failure(self, item_id: int, error: str) -> SyncQueueItem | None:
        """Count a failed attempt; the item becomes failed once retries run out."""
        async with self.session_factory() as session:
            item = await session.get(SyncQueueItem, item_id)
            if item is None:
                return None
            item.retry_count += 1
            item.error = error
            item.last_attempt_at = utcnow()
            if item.retry_count >= item.max_retries:
                item.status = QueueItemStatus.FAILED
            else:
                item.status = QueueItemStatus.PENDING
            await session.commit()
            return item

    async def retry_failed_sync_items(self) -> int:
        """Explicit reset of failed items back to pending."""
        async with self.session_factory() as session:
            result = await session.execute(
                update(SyncQueueItem)
                .where(SyncQueueItem.status == QueueItemStatus.FAILED)
                .values(status=QueueItemStatus.PENDING, retry_count=0, updated_at=utcnow())
            )
            await session.commit()
            return result.rowcount

    async def clear_completed_sync_items(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(SyncQueueItem).where(SyncQueueItem.status == QueueItemStatus.COMPLETED)
            )
            await session.commit()
            return result.rowcount

    async def get_sync_queue_stats(self) -> QueueStats:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SyncQueueItem.status, func.count()).group_by(SyncQueueItem.status)
            )
            counts = {status: total for status, total in result.all()}
        return QueueStats(
            pending=counts.get(QueueItemStatus.PENDING, 0),
            processing=counts.get(QueueItemStatus.PROCESSING, 0),
            failed=counts.get(QueueItemStatus.FAILED, 0),
            completed=counts.get(QueueItemStatus.COMPLETED, 0),
            total=sum(counts.values()),
        )

    # ==================== FILE QUEUE ====================

    async def enqueue_file(
        self, field_response_id: int, file_name: str, file_data: str, mime_type: str
    ) -> int:
        return await self.put(FileQueueItem, {
            "field_response_id": field_response_id,
            "file_name": file_name,
            "file_data": file_data,
            "mime_type": mime_type,
            "status": FileStatus.PENDING,
        })

    async def get_pending_files(self) -> list[FileQueueItem]:
        return await self.query_by(FileQueueItem, "status", FileStatus.PENDING)

    async def get_files_by_field_response(self, field_response_id: int) -> list[FileQueueItem]:
        return await self.query_by(FileQueueItem, "field_response_id", field_response_id)

    async def set_file_status(
        self, file_id: int, status: FileStatus, error: str | None = None
    ) -> None:
        values: dict[str, Any] = {"status": status, "updated_at": utcnow()}
        if error:
            values["error"] = error
        async with self.session_factory() as session:
            await session.execute(
                update(FileQueueItem).where(FileQueueItem.id == file_id).values(**values)
            )
            await session.commit()

    async def retry_failed_files(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                update(FileQueueItem)
                .where(FileQueueItem.status == FileStatus.ERROR)
                .values(status=FileStatus.PENDING, updated_at=utcnow())
            )
            await session.commit()
            return result.rowcount

    async def reset_interrupted_files(self) -> int:
        """Put files left uploading by a previous process back to pending."""
        async with self.session_factory() as session:
            result = await session.execute(
                update(FileQueueItem)
                .where(FileQueueItem.status == FileStatus.UPLOADING)
                .values(status=FileStatus.PENDING, updated_at=utcnow())
            )
            await session.commit()
        if result.rowcount:
            logger.info("Reset %d interrupted upload(s) to pending", result.rowcount)
        return result.rowcount

    async def clear_uploaded_files(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(FileQueueItem).where(FileQueueItem.status == FileStatus.UPLOADED)
            )
            await session.commit()
            return result.rowcount

    async def get_file_queue_stats(self) -> FileQueueStats:
        async with self.session_factory() as session:
            result = await session.execute(
                select(FileQueueItem.status, func.count()).group_by(FileQueueItem.status)
            )
            counts = {status: total for status, total in result.all()}
        return FileQueueStats(
            pending=counts.get(FileStatus.PENDING, 0),
            uploading=counts.get(FileStatus.UPLOADING, 0),
            uploaded=counts.get(FileStatus.UPLOADED, 0),
            error=counts.get(FileStatus.ERROR, 0),
            total=sum(counts.values()),
        )

    # ==================== PREFERENCES ====================

    async def get_preference(self, key: str) -> Any:
        rows = await self.query_by(Preference, "key", key)
        return rows[0].value if rows else None

    async def set_preference(self, key: str, value: Any) -> None:
        rows = await self.query_by(Preference, "key", key)
        record: dict[str, Any] = {"key": key, "value": value}
        if rows:
            record["id"] = rows[0].id
        await self.put(Preference, record)

    async def delete_preference(self, key: str) -> None:
        async with self.session_factory() as session:
            await session.execute(delete(Preference).where(Preference.key == key))
            await session.commit()
