"""All checklist sync store models.

Import all models here so SQLAlchemy can discover them for create_all.
"""

from checklist_sync.models.base import Base, BaseModel  # noqa: F401

# Checklists & answers
from checklist_sync.models.checklist import (  # noqa: F401
    Checklist,
    FieldResponse,
    FormDefinition,
    FormResponse,
)

# Queues
from checklist_sync.models.queue import FileQueueItem, SyncQueueItem  # noqa: F401

# Preferences
from checklist_sync.models.system import Preference  # noqa: F401
