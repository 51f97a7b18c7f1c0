"""Checklist payloads exchanged between the gateway and its callers."""

from typing import Any

from pydantic import BaseModel, Field

from checklist_sync.models.enums import FieldType


class ChecklistDefinition(BaseModel):
    """A checklist as served to the UI, from the server or from cache."""
    id: int | None
    title: str
    fields: list[dict[str, Any]] = Field(default_factory=list)
    response_id: int | None = None
    saved_answers: dict[str, Any] = Field(default_factory=dict)
    form_server_id: int | None = None
    local_checklist_id: int | None = None
    local_response_id: int | None = None
    from_cache: bool = False


class SaveFieldResult(BaseModel):
    success: bool = True
    offline: bool = False
    queued: bool = False
    data: dict | None = None


class SubmitResult(BaseModel):
    success: bool = True
    offline: bool = False
    data: dict | None = None


class GenerateResult(BaseModel):
    success: bool = True
    offline: bool = False
    checklist_id: int
    title: str
    local_checklist_id: int
    local_response_id: int


class UploadResult(BaseModel):
    success: bool = True
    offline: bool = False
    file_queue_id: int


# -- Request bodies --

class SaveFieldRequest(BaseModel):
    value: Any = None
    field_id: int
    response_server_id: int | None = None
    local_response_id: int
    form_server_id: int | None = None
    field_type: FieldType | None = None


class SubmitRequest(BaseModel):
    response_server_id: int | None = None
    local_response_id: int | None = None


class GenerateRequest(BaseModel):
    form_id: int
    user_id: int


class FileUploadRequest(BaseModel):
    field_response_id: int
    file_name: str = Field(min_length=1, max_length=500)
    file_data: str = Field(min_length=1, description="Base64 encoded content")
    mime_type: str = Field(max_length=200)


class SessionRequest(BaseModel):
    token: str = Field(min_length=1)
    user: dict | None = None
