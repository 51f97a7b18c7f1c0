"""All enum types for the checklist sync data model."""

import enum


# --- Record sync state ---

class SyncStatus(str, enum.Enum):
    LOCAL_ONLY = "local_only"
    SYNCING = "syncing"
    SYNCED = "synced"
    CONFLICT = "conflict"
    ERROR = "error"


# --- Sync queue ---

class QueueItemType(str, enum.Enum):
    CREATE_RESPONSE = "CREATE_RESPONSE"
    UPDATE_FIELD = "UPDATE_FIELD"
    SUBMIT_FORM = "SUBMIT_FORM"
    UPLOAD_FILE = "UPLOAD_FILE"


class QueueItemStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    FAILED = "failed"
    COMPLETED = "completed"


# --- File queue ---

class FileStatus(str, enum.Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    ERROR = "error"


# --- Form fields ---

class FieldType(str, enum.Enum):
    SHORT_TEXT = "texto_simples"
    LONG_TEXT = "texto_longo"
    CPF = "cpf"
    DATE = "data"
    SINGLE_SELECT = "select_unico"
    MULTI_SELECT = "select_multiplo"
    PHOTO = "foto"
    OCR_READING = "leitura_automatica"
    SIGNATURE = "assinatura"


class SyncOutcome(str, enum.Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    INCOMPLETE = "incomplete"
